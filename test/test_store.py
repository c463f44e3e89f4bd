from decimal import Decimal

import pytest

from loanbook_sync.decision import decide
from loanbook_sync.exceptions import BatchClosedError, StoreError, TicketStateError
from loanbook_sync.model import SyncCounts, SyncInputRecord
from loanbook_sync.store import MANUAL_REOPEN_SOURCE, SYNC_SOURCE


# --------------------------------------------------------------------
# SNAPSHOT LOOKUP
# --------------------------------------------------------------------
def test_find_many_returns_known_identifiers_only(store, seed):
    seed("123", "500")
    seed("456", "0", status=None)

    found = store.find_many(["123", "456", "999"])

    assert set(found) == {"123", "456"}
    assert found["123"].ticket.amount_owed == Decimal("500")
    assert found["456"].ticket is None


def test_find_many_prefers_unresolved_ticket(store, seed):
    customer, open_ticket = seed("123", "300")
    store.add_ticket(customer.id, Decimal("0"), status="Resolved")

    snapshot = store.find_by_identifier(" 123 ")

    assert snapshot.ticket.id == open_ticket.id


def test_list_all_identifiers_sorted(store, seed):
    seed("b-2")
    seed("a-1")
    assert store.list_all_identifiers() == ["a-1", "b-2"]


def test_duplicate_identifier_is_a_store_error(store, seed):
    seed("123")
    with pytest.raises(StoreError):
        store.add_customer("123", "Someone Else")


# --------------------------------------------------------------------
# CHUNK WRITES
# --------------------------------------------------------------------
def test_apply_chunk_updates_balances_and_audits(store, seed):
    customer, ticket = seed("123", "500", total_paid="1000")
    batch_id = store.begin_sync_batch("ops-1", 1)
    record = SyncInputRecord(nrc_number="123", arrears_amount=Decimal("200"), days_in_arrears=14)
    decision = decide(record, store.find_by_identifier("123"))

    store.apply_chunk(batch_id, "ops-1", [decision])

    updated = store.get_customer(customer.id)
    assert updated.total_owed == Decimal("1200")
    assert updated.outstanding_balance == Decimal("200")
    assert updated.payment_status == "Partially Paid"
    assert updated.loan_book_arrears == Decimal("200")
    assert updated.days_in_arrears == 14

    refreshed = store.get_ticket(ticket.id)
    assert refreshed.amount_owed == Decimal("200")
    assert refreshed.previous_arrears == Decimal("200")

    [adjustment] = store.adjustments_for_ticket(ticket.id)
    assert adjustment.old_amount == Decimal("500")
    assert adjustment.new_amount == Decimal("200")
    assert adjustment.source == SYNC_SOURCE
    assert adjustment.sync_batch_id == batch_id

    [entry] = store.sync_log_entries(batch_id)
    assert entry.movement_type == "reduced"
    assert entry.old_arrears == Decimal("500")
    assert entry.new_arrears == Decimal("200")


def test_apply_chunk_fully_paid_when_cleared(store, seed):
    customer, _ = seed("123", "500", total_paid="1000")
    batch_id = store.begin_sync_batch("ops-1", 1)
    decision = decide(
        SyncInputRecord(nrc_number="123", arrears_amount=Decimal("0")),
        store.find_by_identifier("123"),
    )

    store.apply_chunk(batch_id, "ops-1", [decision])

    assert store.get_customer(customer.id).payment_status == "Fully Paid"


def test_apply_chunk_rolls_back_whole_chunk(store, seed):
    first, _ = seed("111", "500")
    seed("222", "500")
    batch_id = store.begin_sync_batch("ops-1", 2)
    snapshots = store.find_many(["111", "222"])
    good = decide(SyncInputRecord(nrc_number="111", arrears_amount=Decimal("100")), snapshots["111"])
    bad = decide(SyncInputRecord(nrc_number="222", arrears_amount=Decimal("100")), snapshots["222"])
    bad.ticket.id = "vanished"

    with pytest.raises(StoreError):
        store.apply_chunk(batch_id, "ops-1", [good, bad])

    assert store.get_customer(first.id).outstanding_balance == Decimal("500")
    assert store.sync_log_entries(batch_id) == []


# --------------------------------------------------------------------
# SYNC BATCH AUDIT
# --------------------------------------------------------------------
def test_sync_batch_lifecycle(store):
    assert store.last_sync() is None

    batch_id = store.begin_sync_batch("ops-1", 3)
    store.record_audit_entry(batch_id, SyncCounts(processed=2, updated=1, maintained=1), ["a"])
    store.record_audit_entry(batch_id, SyncCounts(processed=1, not_found=1), ["b"])
    store.complete_sync_batch(batch_id, "completed")

    batch = store.get_sync_batch(batch_id)
    assert batch.status == "completed"
    assert batch.expected == 3
    assert batch.counts.processed == 3
    assert batch.counts.not_found == 1
    assert batch.errors == ["a", "b"]
    assert batch.completed_at is not None
    assert store.last_sync().id == batch_id


def test_completed_batch_is_immutable(store):
    batch_id = store.begin_sync_batch("ops-1", 1)
    store.complete_sync_batch(batch_id, "completed")

    with pytest.raises(BatchClosedError):
        store.record_audit_entry(batch_id, SyncCounts(processed=1))
    with pytest.raises(BatchClosedError):
        store.complete_sync_batch(batch_id, "halted")


def test_unknown_batch(store):
    with pytest.raises(StoreError):
        store.record_audit_entry("nope", SyncCounts())


# --------------------------------------------------------------------
# MANUAL TICKET OPERATIONS
# --------------------------------------------------------------------
def test_confirm_resolution(store, seed):
    _, ticket = seed("123", "0", status="Pending Confirmation")

    resolved = store.confirm_resolution(ticket.id, "supervisor")

    assert resolved.status == "Resolved"
    assert resolved.resolved_date is not None


def test_confirm_resolution_refuses_open_ticket(store, seed):
    _, ticket = seed("123", "0", status="Open")
    with pytest.raises(TicketStateError):
        store.confirm_resolution(ticket.id)


def test_confirm_resolution_refuses_outstanding_balance(store, seed):
    _, ticket = seed("123", "75", status="Pending Confirmation")
    with pytest.raises(TicketStateError, match="Outstanding balance"):
        store.confirm_resolution(ticket.id)
    assert store.get_ticket(ticket.id).status == "Pending Confirmation"


def test_confirm_unknown_ticket(store):
    with pytest.raises(TicketStateError):
        store.confirm_resolution("missing")


def test_reopen_ticket_with_new_amount(store, seed):
    customer, ticket = seed("123", "0", status="Resolved")

    reopened = store.reopen_ticket(ticket.id, Decimal("350"), "supervisor")

    assert reopened.status == "Open"
    assert reopened.amount_owed == Decimal("350")
    assert reopened.resolved_date is None
    assert store.get_customer(customer.id).outstanding_balance == Decimal("350")
    [adjustment] = store.adjustments_for_ticket(ticket.id)
    assert adjustment.source == MANUAL_REOPEN_SOURCE
    assert adjustment.changed_by == "supervisor"


def test_reopen_refuses_open_ticket(store, seed):
    _, ticket = seed("123", "100")
    with pytest.raises(TicketStateError):
        store.reopen_ticket(ticket.id)


def test_reopen_rejects_negative_amount(store, seed):
    _, ticket = seed("123", "0", status="Pending Confirmation")
    with pytest.raises(ValueError):
        store.reopen_ticket(ticket.id, Decimal("-1"))
    assert store.get_ticket(ticket.id).status == "Pending Confirmation"


def test_pending_confirmations_by_agent(store, seed):
    _, mine = seed("1", "0", status="Pending Confirmation", agent="agent-1")
    seed("2", "0", status="Pending Confirmation", agent="agent-2")
    seed("3", "100", status="Open", agent="agent-1")

    assert [t.id for t in store.pending_confirmations("agent-1")] == [mine.id]
    assert len(store.pending_confirmations()) == 2


# --------------------------------------------------------------------
# NOTIFICATIONS
# --------------------------------------------------------------------
def test_notifications_round_trip(store, seed):
    customer, ticket = seed("123")
    store.create_notification("agent-1", "arrears_reduced", ticket.id, "T", "M", customer.id)
    store.create_notification("agent-2", "info", None, "Other", "M")

    [note] = store.notifications_for("agent-1", unread_only=True)
    assert note.related_ticket_id == ticket.id
    assert note.related_customer_id == customer.id
    assert not note.is_read
    assert len(store.notifications_for()) == 2
