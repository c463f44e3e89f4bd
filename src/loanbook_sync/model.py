"""Domain models for loan-book reconciliation.

These dataclasses represent the core entities shared throughout the engine:
feed records, the customer/ticket state they are reconciled against, the
per-record decision, and the counters and summaries built from decisions.
"""

from __future__ import annotations  # Postponed evaluation of annotations (PEP 563)

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal

TicketStatus = Literal["Open", "In Progress", "Pending Confirmation", "Resolved"]
PaymentStatus = Literal["Not Paid", "Partially Paid", "Fully Paid"]
Movement = Literal[
    "cleared", "reduced", "increased", "maintained", "reopened", "not_found"
]  # Outcome of reconciling one feed record
NotificationType = Literal[
    "arrears_cleared", "arrears_increased", "arrears_reduced", "info"
]
BatchStatus = Literal["running", "completed", "halted", "cancelled"]

OPEN: TicketStatus = "Open"
IN_PROGRESS: TicketStatus = "In Progress"
PENDING_CONFIRMATION: TicketStatus = "Pending Confirmation"
RESOLVED: TicketStatus = "Resolved"

# Movements that change the ticket/customer state and count as "updated"
UPDATE_MOVEMENTS = frozenset({"cleared", "reduced", "increased", "reopened"})

ZERO = Decimal("0")


def outstanding_balance(total_owed: Decimal, total_paid: Decimal) -> Decimal:
    """Return the unpaid part of ``total_owed``, never negative."""
    return max(total_owed - total_paid, ZERO)


def derive_payment_status(total_owed: Decimal, total_paid: Decimal) -> PaymentStatus:
    """Payment status is always derived from the owed/paid totals."""
    if total_paid <= 0:
        return "Not Paid"
    if outstanding_balance(total_owed, total_paid) <= 0:
        return "Fully Paid"
    return "Partially Paid"


@dataclass(slots=True)
class SyncInputRecord:
    """One row of the loan-book feed after parsing."""

    nrc_number: str  # Identifier matched against the customer store
    arrears_amount: Decimal | None = None  # None = no new information, 0 = cleared
    days_in_arrears: int | None = None
    last_payment_date: date | None = None
    row_number: int | None = None  # Spreadsheet row (header is row 1)


@dataclass(slots=True)
class Valid:
    """Validator result for a processable row."""

    record: SyncInputRecord


@dataclass(slots=True)
class Skipped:
    """Validator result for a row that cannot be processed."""

    row_number: int | None
    reason: str

    def __str__(self) -> str:
        if self.row_number is None:
            return self.reason
        return f"Row {self.row_number}: {self.reason}"


@dataclass(slots=True)
class CustomerAccount:
    id: str
    nrc_number: str
    name: str
    total_owed: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal
    payment_status: PaymentStatus
    assigned_agent_id: str | None = None
    loan_book_arrears: Decimal | None = None
    days_in_arrears: int | None = None
    loan_book_last_payment_date: date | None = None


@dataclass(slots=True)
class Ticket:
    id: str
    customer_id: str
    amount_owed: Decimal
    status: TicketStatus
    assigned_agent_id: str | None = None
    previous_arrears: Decimal | None = None  # Snapshot from the last sync
    resolved_date: datetime | None = None


@dataclass(slots=True)
class AccountSnapshot:
    """Customer and its active ticket as seen by the decision engine."""

    customer: CustomerAccount
    ticket: Ticket | None = None


@dataclass(slots=True)
class Decision:
    """Outcome of reconciling one record against the store snapshot."""

    record: SyncInputRecord
    movement: Movement
    customer: CustomerAccount | None = None
    ticket: Ticket | None = None
    old_arrears: Decimal | None = None
    new_arrears: Decimal | None = None  # None when the feed carried no amount
    status_before: TicketStatus | None = None
    status_after: TicketStatus | None = None  # Set only when the status changes

    @property
    def found(self) -> bool:
        return self.customer is not None

    @property
    def is_update(self) -> bool:
        return self.movement in UPDATE_MOVEMENTS

    @property
    def changes_status(self) -> bool:
        return self.status_after is not None and self.status_after != self.status_before


@dataclass(slots=True)
class SyncCounts:
    """Running counters for a chunk or a whole run."""

    processed: int = 0
    updated: int = 0
    maintained: int = 0
    not_found: int = 0
    resolved: int = 0
    reopened: int = 0
    cleared: int = 0
    reduced: int = 0
    increased: int = 0
    skipped: int = 0

    def record(self, decision: Decision) -> None:
        """Count one decided record."""
        self.processed += 1
        if decision.movement == "not_found":
            self.not_found += 1
        elif decision.movement == "maintained":
            self.maintained += 1
        else:
            self.updated += 1
            if decision.movement == "reopened":
                self.reopened += 1
            elif decision.movement == "cleared":
                self.cleared += 1
            elif decision.movement == "reduced":
                self.reduced += 1
            elif decision.movement == "increased":
                self.increased += 1
        if decision.status_after == RESOLVED:
            self.resolved += 1

    def add(self, other: SyncCounts) -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(slots=True)
class ChunkResult:
    """What the batch applier reports for one chunk."""

    index: int
    counts: SyncCounts = field(default_factory=SyncCounts)
    errors: List[str] = field(default_factory=list)
    failed: bool = False  # True when the store rejected the chunk


@dataclass(slots=True)
class SyncSummary:
    """Result of a full orchestrator run, returned to the caller."""

    success: bool
    sync_batch_id: str | None
    status: str  # BatchStatus, or "failed" when the run never started
    expected: int = 0
    counts: SyncCounts = field(default_factory=SyncCounts)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, reason: str, expected: int = 0) -> SyncSummary:
        return cls(
            success=False,
            sync_batch_id=None,
            status="failed",
            expected=expected,
            errors=[reason],
        )

    def to_payload(self) -> Dict[str, Any]:
        counts = self.counts
        return {
            "success": self.success,
            "sync_batch_id": self.sync_batch_id,
            "processed": counts.processed,
            "updated": counts.updated,
            "maintained": counts.maintained,
            "not_found": counts.not_found,
            "resolved": counts.resolved,
            "reopened": counts.reopened,
            "errors": list(self.errors),
            "status": self.status,
            "expected": self.expected,
            "skipped": counts.skipped,
            "cleared": counts.cleared,
            "reduced": counts.reduced,
            "increased": counts.increased,
        }


@dataclass(slots=True)
class SyncBatch:
    """Audit header for one logical sync run."""

    id: str
    created_at: datetime
    operator_id: str
    status: BatchStatus
    expected: int
    counts: SyncCounts = field(default_factory=SyncCounts)
    errors: List[str] = field(default_factory=list)
    completed_at: datetime | None = None


@dataclass(slots=True)
class SyncLogEntry:
    """Audit row written for every decided record of a batch."""

    sync_batch_id: str
    nrc_number: str
    movement_type: Movement
    old_arrears: Decimal | None
    new_arrears: Decimal | None
    customer_id: str | None = None
    ticket_id: str | None = None
    status_before: TicketStatus | None = None
    status_after: TicketStatus | None = None
    loan_book_payment_date: date | None = None
    days_in_arrears: int | None = None


@dataclass(slots=True)
class AmountOwedAdjustment:
    """Payment-equivalent ledger row for a change to a ticket's amount owed."""

    ticket_id: str
    customer_id: str
    old_amount: Decimal
    new_amount: Decimal
    source: str
    changed_by: str
    sync_batch_id: str | None = None


@dataclass(slots=True)
class AgentNotification:
    id: str
    agent_id: str
    type: NotificationType
    title: str
    message: str
    related_ticket_id: str | None = None
    related_customer_id: str | None = None
    is_read: bool = False
    created_at: datetime | None = None


__all__ = [
    "TicketStatus",
    "PaymentStatus",
    "Movement",
    "NotificationType",
    "BatchStatus",
    "OPEN",
    "IN_PROGRESS",
    "PENDING_CONFIRMATION",
    "RESOLVED",
    "UPDATE_MOVEMENTS",
    "ZERO",
    "outstanding_balance",
    "derive_payment_status",
    "SyncInputRecord",
    "Valid",
    "Skipped",
    "CustomerAccount",
    "Ticket",
    "AccountSnapshot",
    "Decision",
    "SyncCounts",
    "ChunkResult",
    "SyncSummary",
    "SyncBatch",
    "SyncLogEntry",
    "AmountOwedAdjustment",
    "AgentNotification",
]
