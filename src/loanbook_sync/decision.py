"""Reconciliation decision engine.

Given one feed record and the customer/ticket snapshot found for its NRC,
:func:`decide` classifies the arrears movement and the ticket status
transition. Rules, evaluated in order (``new`` is the feed amount, ``previous``
the snapshot taken at the last sync)::

    new is None                                        -> maintained (no write)
    new == 0, ticket Resolved                          -> maintained
    new == 0, ticket Pending Confirmation, previous 0  -> maintained
    new == 0, other ticket                             -> cleared -> Pending Confirmation
    new > 0, ticket Resolved / Pending Confirmation    -> reopened -> Open
    new > previous                                     -> increased
    new < previous                                     -> reduced
    new == previous                                    -> maintained

A sync never resolves a ticket: a zero reading from the loan book only moves
the ticket to Pending Confirmation until someone confirms it.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from .model import (
    OPEN,
    PENDING_CONFIRMATION,
    RESOLVED,
    ZERO,
    AccountSnapshot,
    Decision,
    SyncInputRecord,
    derive_payment_status,
    outstanding_balance,
)


def previous_arrears(snapshot: AccountSnapshot) -> Decimal:
    """Arrears figure the new reading is compared against."""
    ticket = snapshot.ticket
    if ticket is not None:
        if ticket.previous_arrears is not None:
            return ticket.previous_arrears
        return ticket.amount_owed
    customer = snapshot.customer
    if customer.loan_book_arrears is not None:
        return customer.loan_book_arrears
    return customer.outstanding_balance


def decide(record: SyncInputRecord, snapshot: AccountSnapshot | None) -> Decision:
    """Classify ``record`` against the current ``snapshot`` (None = not found)."""

    if snapshot is None:
        return Decision(record=record, movement="not_found")

    ticket = snapshot.ticket
    status = ticket.status if ticket is not None else None
    old = previous_arrears(snapshot)
    decision = Decision(
        record=record,
        movement="maintained",
        customer=snapshot.customer,
        ticket=ticket,
        old_arrears=old,
        status_before=status,
    )

    if record.arrears_amount is None:
        return decision  # No new information; nothing is written

    new = max(record.arrears_amount, ZERO)  # Credit balances count as cleared
    decision.new_arrears = new

    if new == 0:
        if status == RESOLVED:
            return decision
        if status == PENDING_CONFIRMATION and old == 0:
            return decision  # Already cleared and awaiting confirmation
        if ticket is None:
            if old > 0:
                decision.movement = "cleared"
            return decision
        decision.movement = "cleared"
        decision.status_after = PENDING_CONFIRMATION
        return decision

    if status in (RESOLVED, PENDING_CONFIRMATION):
        decision.movement = "reopened"
        decision.status_after = OPEN
    elif new > old:
        decision.movement = "increased"
    elif new < old:
        decision.movement = "reduced"
    return decision


def apply_to_snapshot(decision: Decision) -> AccountSnapshot | None:
    """Return the snapshot as it will look once ``decision`` is written.

    Used to decide later records for the same NRC within one run against the
    latest state rather than the stored one.
    """
    if decision.customer is None:
        return None
    customer = decision.customer
    ticket = decision.ticket
    record = decision.record

    changes = {}
    if record.days_in_arrears is not None:
        changes["days_in_arrears"] = record.days_in_arrears
    if record.last_payment_date is not None:
        changes["loan_book_last_payment_date"] = record.last_payment_date

    new = decision.new_arrears
    if new is not None:
        total_owed = customer.total_paid + new
        changes.update(
            loan_book_arrears=new,
            total_owed=total_owed,
            outstanding_balance=outstanding_balance(total_owed, customer.total_paid),
            payment_status=derive_payment_status(total_owed, customer.total_paid),
        )
        if ticket is not None:
            ticket = replace(
                ticket,
                amount_owed=new,
                previous_arrears=new,
                status=decision.status_after or ticket.status,
            )

    return AccountSnapshot(customer=replace(customer, **changes), ticket=ticket)


__all__ = ["decide", "previous_arrears", "apply_to_snapshot"]
