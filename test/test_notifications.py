from decimal import Decimal
from unittest.mock import Mock

import pytest

from loanbook_sync.applier import BatchApplier
from loanbook_sync.decision import decide
from loanbook_sync.exceptions import StoreError
from loanbook_sync.model import SyncInputRecord
from loanbook_sync.notifications import NotificationDispatcher, build_message, format_amount


def decided(store, nrc, amount):
    value = Decimal(amount) if amount is not None else None
    record = SyncInputRecord(nrc_number=nrc, arrears_amount=value, row_number=2)
    return decide(record, store.find_by_identifier(nrc))


# --------------------------------------------------------------------
# MESSAGES
# --------------------------------------------------------------------
def test_format_amount():
    assert format_amount(Decimal("1234.5")) == "K1,234.50"


@pytest.mark.parametrize(
    "status, amount, title",
    [
        ("Open", "0", "Arrears cleared - pending confirmation"),
        ("Resolved", "200", "Ticket reopened"),
        ("Open", "900", "Arrears increased"),
        ("Open", "100", "Arrears reduced"),
    ],
)
def test_build_message_titles(store, seed, status, amount, title):
    seed("123", "500" if status == "Open" else "0", status=status, name="Mwila Banda")

    got_title, message = build_message(decided(store, "123", amount))

    assert got_title == title
    assert "Mwila Banda (123)" in message


# --------------------------------------------------------------------
# DISPATCHER
# --------------------------------------------------------------------
def test_notify_targets_assigned_agent(store, seed):
    customer, ticket = seed("123", "500", agent="agent-7")

    note = NotificationDispatcher(store).notify(decided(store, "123", "0"))

    assert note.agent_id == "agent-7"
    assert note.type == "arrears_cleared"
    assert note.related_ticket_id == ticket.id
    assert note.related_customer_id == customer.id


def test_reopen_uses_increased_type(store, seed):
    seed("123", "0", status="Resolved")
    note = NotificationDispatcher(store).notify(decided(store, "123", "200"))
    assert note.type == "arrears_increased"


def test_no_notification_for_maintained_or_unassigned(store, seed):
    seed("123", "500")
    seed("456", "500", agent=None)
    dispatcher = NotificationDispatcher(store)

    assert dispatcher.notify(decided(store, "123", "500")) is None
    assert dispatcher.notify(decided(store, "456", "100")) is None
    assert dispatcher.notify(decided(store, "999", "100")) is None
    assert store.notifications_for() == []


def test_notify_all_collects_sink_failures(store, seed):
    seed("123", "500")
    sink = Mock()
    sink.create_notification.side_effect = RuntimeError("smtp down")

    errors = NotificationDispatcher(sink).notify_all([decided(store, "123", "100")])

    assert errors == ["Row 2 (123): notification failed: smtp down"]


# --------------------------------------------------------------------
# BATCH APPLIER
# --------------------------------------------------------------------
def test_applier_counts_and_notifies(store, seed):
    seed("123", "500")
    seed("456", "500")
    batch_id = store.begin_sync_batch("ops-1", 3)
    applier = BatchApplier(
        store, NotificationDispatcher(store), sync_batch_id=batch_id, operator_id="ops-1"
    )
    decisions = [
        decided(store, "123", "0"),
        decided(store, "456", "500"),
        decided(store, "999", "10"),
    ]

    result = applier.apply(decisions, first_row=2, last_row=4, skipped=1)

    assert not result.failed
    assert result.counts.processed == 3
    assert result.counts.updated == 1
    assert result.counts.cleared == 1
    assert result.counts.maintained == 1
    assert result.counts.not_found == 1
    assert result.counts.skipped == 1
    assert len(store.notifications_for("agent-1")) == 1


def test_applier_store_failure_reports_chunk(seed, store):
    seed("123", "500")
    failing_store = Mock()
    failing_store.apply_chunk.side_effect = StoreError("deadlock")
    dispatcher = Mock()
    applier = BatchApplier(failing_store, dispatcher, sync_batch_id="b1", operator_id="ops-1")

    result = applier.apply(
        [decided(store, "123", "100")],
        chunk_index=2,
        first_row=6,
        last_row=7,
        errors=["Row 6: Missing NRC Number"],
        skipped=1,
    )

    assert result.failed
    assert result.counts.processed == 0
    assert result.counts.skipped == 1
    assert result.errors == [
        "Row 6: Missing NRC Number",
        "Chunk 3 (rows 6-7) failed and was rolled back: deadlock",
    ]
    dispatcher.notify_all.assert_not_called()


def test_notification_failure_keeps_committed_update(store, seed):
    _, ticket = seed("123", "500")
    batch_id = store.begin_sync_batch("ops-1", 1)
    sink = Mock()
    sink.create_notification.side_effect = RuntimeError("queue full")
    applier = BatchApplier(
        store, NotificationDispatcher(sink), sync_batch_id=batch_id, operator_id="ops-1"
    )

    result = applier.apply([decided(store, "123", "100")], first_row=2, last_row=2)

    assert not result.failed
    assert result.counts.reduced == 1
    assert "notification failed: queue full" in result.errors[0]
    assert store.get_ticket(ticket.id).amount_owed == Decimal("100")
