"""Customer/ticket store gateway backed by SQLAlchemy.

This module is the only place that talks to the database. It exposes the
operations the reconciliation engine consumes (snapshot lookup, atomic chunk
writes, the sync batch audit header) plus the manual ticket operations
around Pending Confirmation. Every public method runs inside its own session;
database errors surface as :class:`StoreError`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import DEFAULT_DATABASE_URL, DEFAULT_OPERATOR_ID
from .db import (
    AmountOwedAdjustmentRow,
    Base,
    CustomerRow,
    NotificationRow,
    SyncBatchRow,
    SyncLogRow,
    TicketRow,
    make_engine,
    utc_now,
)
from .exceptions import BatchClosedError, StoreError, TicketStateError
from .model import (
    OPEN,
    PENDING_CONFIRMATION,
    RESOLVED,
    AccountSnapshot,
    AgentNotification,
    AmountOwedAdjustment,
    CustomerAccount,
    Decision,
    NotificationType,
    SyncBatch,
    SyncCounts,
    SyncLogEntry,
    Ticket,
    TicketStatus,
    derive_payment_status,
    outstanding_balance,
)

logger = logging.getLogger(__name__)

SYNC_SOURCE = "loan_book_sync"
MANUAL_REOPEN_SOURCE = "manual_reopen"


class LoanBookStore:
    """SQLAlchemy implementation of the customer/ticket store."""

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, *, engine=None) -> None:
        self.engine = engine if engine is not None else make_engine(database_url)
        self._sessions = sessionmaker(
            bind=self.engine, autoflush=True, expire_on_commit=False, future=True
        )

    def create_schema(self) -> None:
        """Create missing tables (safe to call repeatedly)."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create schema: {exc}") from exc

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on any error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- Snapshot lookup -------------------------------------------------------

    def find_many(self, nrc_numbers: Iterable[str]) -> Dict[str, AccountSnapshot]:
        """Return snapshots keyed by NRC; unknown identifiers are simply absent."""
        wanted = sorted({nrc for nrc in nrc_numbers if nrc})
        if not wanted:
            return {}

        with self.session_scope() as session:
            customers = session.scalars(
                select(CustomerRow).where(CustomerRow.nrc_number.in_(wanted))
            ).all()
            customer_ids = [customer.id for customer in customers]
            tickets = []
            if customer_ids:
                tickets = session.scalars(
                    select(TicketRow)
                    .where(TicketRow.customer_id.in_(customer_ids))
                    .order_by(TicketRow.created_at.desc())
                ).all()

            # Newest unresolved ticket wins, otherwise the newest ticket
            active: Dict[str, TicketRow] = {}
            for ticket in tickets:
                current = active.get(ticket.customer_id)
                if current is None or (
                    current.status == RESOLVED and ticket.status != RESOLVED
                ):
                    active[ticket.customer_id] = ticket

            return {
                customer.nrc_number: AccountSnapshot(
                    customer=_to_customer(customer),
                    ticket=_to_ticket(active[customer.id]) if customer.id in active else None,
                )
                for customer in customers
            }

    def find_by_identifier(self, nrc_number: str) -> AccountSnapshot | None:
        nrc = nrc_number.strip()
        return self.find_many([nrc]).get(nrc)

    def list_all_identifiers(self) -> List[str]:
        with self.session_scope() as session:
            return list(
                session.scalars(select(CustomerRow.nrc_number).order_by(CustomerRow.nrc_number))
            )

    # --- Chunk writes ----------------------------------------------------------

    def apply_chunk(
        self, sync_batch_id: str, operator_id: str, decisions: Iterable[Decision]
    ) -> None:
        """Write all decisions of one chunk in a single transaction."""
        with self.session_scope() as session:
            for decision in decisions:
                if decision.found:
                    self._apply_decision(session, sync_batch_id, operator_id, decision)

    def _apply_decision(
        self, session: Session, sync_batch_id: str, operator_id: str, decision: Decision
    ) -> None:
        record = decision.record
        customer = session.get(CustomerRow, decision.customer.id)
        if customer is None:
            raise StoreError(f"Customer {decision.customer.id} ({record.nrc_number}) no longer exists")

        if record.days_in_arrears is not None:
            customer.days_in_arrears = record.days_in_arrears
        if record.last_payment_date is not None:
            customer.loan_book_last_payment_date = record.last_payment_date

        ticket = None
        if decision.ticket is not None:
            ticket = session.get(TicketRow, decision.ticket.id)
            if ticket is None:
                raise StoreError(f"Ticket {decision.ticket.id} ({record.nrc_number}) no longer exists")

        new = decision.new_arrears
        if new is not None:
            customer.loan_book_arrears = new
            _set_balance(customer, new)
            if ticket is not None:
                if ticket.amount_owed != new:
                    session.add(
                        AmountOwedAdjustmentRow(
                            ticket_id=ticket.id,
                            customer_id=customer.id,
                            old_amount=ticket.amount_owed,
                            new_amount=new,
                            source=SYNC_SOURCE,
                            changed_by=operator_id,
                            sync_batch_id=sync_batch_id,
                        )
                    )
                ticket.amount_owed = new
                ticket.previous_arrears = new
                if decision.changes_status:
                    ticket.status = decision.status_after
                    if decision.status_after != RESOLVED:
                        ticket.resolved_date = None

        session.add(
            SyncLogRow(
                sync_batch_id=sync_batch_id,
                operator_id=operator_id,
                customer_id=customer.id,
                ticket_id=ticket.id if ticket is not None else None,
                nrc_number=record.nrc_number,
                movement_type=decision.movement,
                old_arrears=decision.old_arrears,
                new_arrears=new,
                status_before=decision.status_before,
                status_after=ticket.status if ticket is not None else None,
                loan_book_payment_date=record.last_payment_date,
                days_in_arrears=record.days_in_arrears,
            )
        )

    # --- Sync batch audit ------------------------------------------------------

    def begin_sync_batch(self, operator_id: str, expected: int) -> str:
        """Open the audit header for a run and return its sync batch id."""
        with self.session_scope() as session:
            row = SyncBatchRow(operator_id=operator_id, expected=expected, errors=[])
            session.add(row)
            session.flush()
            return row.id

    def record_audit_entry(
        self, sync_batch_id: str, counts: SyncCounts, errors: Iterable[str] = ()
    ) -> None:
        """Append one chunk's counts and errors to a running batch."""
        with self.session_scope() as session:
            row = self._open_batch(session, sync_batch_id)
            for name, value in counts.as_dict().items():
                setattr(row, name, getattr(row, name) + value)
            row.errors = list(row.errors or []) + list(errors)

    def complete_sync_batch(
        self, sync_batch_id: str, status: str, errors: Iterable[str] = ()
    ) -> None:
        """Close a batch, appending any final ``errors``; it is immutable afterwards."""
        with self.session_scope() as session:
            row = self._open_batch(session, sync_batch_id)
            extra = list(errors)
            if extra:
                row.errors = list(row.errors or []) + extra
            row.status = status
            row.completed_at = utc_now()

    @staticmethod
    def _open_batch(session: Session, sync_batch_id: str) -> SyncBatchRow:
        row = session.get(SyncBatchRow, sync_batch_id)
        if row is None:
            raise StoreError(f"Unknown sync batch {sync_batch_id}")
        if row.status != "running":
            raise BatchClosedError(f"Sync batch {sync_batch_id} is already {row.status}")
        return row

    def get_sync_batch(self, sync_batch_id: str) -> SyncBatch | None:
        with self.session_scope() as session:
            row = session.get(SyncBatchRow, sync_batch_id)
            return _to_batch(row) if row is not None else None

    def last_sync(self) -> SyncBatch | None:
        """Most recent sync batch; drives the "last sync" time shown to users."""
        with self.session_scope() as session:
            row = session.scalars(
                select(SyncBatchRow).order_by(SyncBatchRow.created_at.desc()).limit(1)
            ).first()
            return _to_batch(row) if row is not None else None

    def sync_log_entries(self, sync_batch_id: str) -> List[SyncLogEntry]:
        with self.session_scope() as session:
            rows = session.scalars(
                select(SyncLogRow)
                .where(SyncLogRow.sync_batch_id == sync_batch_id)
                .order_by(SyncLogRow.id)
            )
            return [
                SyncLogEntry(
                    sync_batch_id=row.sync_batch_id,
                    nrc_number=row.nrc_number,
                    movement_type=row.movement_type,
                    old_arrears=row.old_arrears,
                    new_arrears=row.new_arrears,
                    customer_id=row.customer_id,
                    ticket_id=row.ticket_id,
                    status_before=row.status_before,
                    status_after=row.status_after,
                    loan_book_payment_date=row.loan_book_payment_date,
                    days_in_arrears=row.days_in_arrears,
                )
                for row in rows
            ]

    def adjustments_for_ticket(self, ticket_id: str) -> List[AmountOwedAdjustment]:
        with self.session_scope() as session:
            rows = session.scalars(
                select(AmountOwedAdjustmentRow)
                .where(AmountOwedAdjustmentRow.ticket_id == ticket_id)
                .order_by(AmountOwedAdjustmentRow.id)
            )
            return [
                AmountOwedAdjustment(
                    ticket_id=row.ticket_id,
                    customer_id=row.customer_id,
                    old_amount=row.old_amount,
                    new_amount=row.new_amount,
                    source=row.source,
                    changed_by=row.changed_by,
                    sync_batch_id=row.sync_batch_id,
                )
                for row in rows
            ]

    # --- Notifications ---------------------------------------------------------

    def create_notification(
        self,
        agent_id: str,
        type: NotificationType,
        related_ticket_id: str | None,
        title: str,
        message: str,
        related_customer_id: str | None = None,
    ) -> AgentNotification:
        with self.session_scope() as session:
            row = NotificationRow(
                agent_id=agent_id,
                type=type,
                title=title,
                message=message,
                related_ticket_id=related_ticket_id,
                related_customer_id=related_customer_id,
                is_read=False,
            )
            session.add(row)
            session.flush()
            return _to_notification(row)

    def notifications_for(
        self, agent_id: str | None = None, *, unread_only: bool = False
    ) -> List[AgentNotification]:
        with self.session_scope() as session:
            query = select(NotificationRow).order_by(NotificationRow.created_at)
            if agent_id is not None:
                query = query.where(NotificationRow.agent_id == agent_id)
            if unread_only:
                query = query.where(NotificationRow.is_read.is_(False))
            return [_to_notification(row) for row in session.scalars(query)]

    # --- Manual ticket operations ----------------------------------------------

    def pending_confirmations(self, agent_id: str | None = None) -> List[Ticket]:
        """Tickets cleared by a sync that still await confirmation."""
        with self.session_scope() as session:
            query = (
                select(TicketRow)
                .where(TicketRow.status == PENDING_CONFIRMATION)
                .order_by(TicketRow.updated_at)
            )
            if agent_id is not None:
                query = query.where(TicketRow.assigned_agent_id == agent_id)
            return [_to_ticket(row) for row in session.scalars(query)]

    def confirm_resolution(
        self, ticket_id: str, operator_id: str = DEFAULT_OPERATOR_ID
    ) -> Ticket:
        """Finalise a Pending Confirmation ticket as Resolved."""
        with self.session_scope() as session:
            ticket = _get_ticket_row(session, ticket_id)
            if ticket.status != PENDING_CONFIRMATION:
                raise TicketStateError(
                    f"Ticket {ticket_id} is {ticket.status}, not {PENDING_CONFIRMATION}"
                )
            if ticket.amount_owed > 0:
                raise TicketStateError(
                    f"Cannot resolve ticket. Outstanding balance: K{ticket.amount_owed:,.2f}"
                )
            ticket.status = RESOLVED
            ticket.resolved_date = utc_now()
            logger.info("Ticket %s resolved by %s", ticket_id, operator_id)
            return _to_ticket(ticket)

    def reopen_ticket(
        self,
        ticket_id: str,
        new_amount_owed: Decimal | None = None,
        operator_id: str = DEFAULT_OPERATOR_ID,
    ) -> Ticket:
        """Move a Resolved or Pending Confirmation ticket back to Open."""
        with self.session_scope() as session:
            ticket = _get_ticket_row(session, ticket_id)
            if ticket.status not in (RESOLVED, PENDING_CONFIRMATION):
                raise TicketStateError(f"Ticket {ticket_id} is {ticket.status}; nothing to reopen")
            ticket.status = OPEN
            ticket.resolved_date = None

            if new_amount_owed is not None:
                if new_amount_owed < 0:
                    raise ValueError("new_amount_owed cannot be negative")
                if ticket.amount_owed != new_amount_owed:
                    session.add(
                        AmountOwedAdjustmentRow(
                            ticket_id=ticket.id,
                            customer_id=ticket.customer_id,
                            old_amount=ticket.amount_owed,
                            new_amount=new_amount_owed,
                            source=MANUAL_REOPEN_SOURCE,
                            changed_by=operator_id,
                        )
                    )
                ticket.amount_owed = new_amount_owed
                ticket.previous_arrears = new_amount_owed
                customer = session.get(CustomerRow, ticket.customer_id)
                if customer is not None:
                    _set_balance(customer, new_amount_owed)
            logger.info("Ticket %s reopened by %s", ticket_id, operator_id)
            return _to_ticket(ticket)

    # --- Lookups and seeding ---------------------------------------------------

    def get_ticket(self, ticket_id: str) -> Ticket | None:
        with self.session_scope() as session:
            row = session.get(TicketRow, ticket_id)
            return _to_ticket(row) if row is not None else None

    def get_customer(self, customer_id: str) -> CustomerAccount | None:
        with self.session_scope() as session:
            row = session.get(CustomerRow, customer_id)
            return _to_customer(row) if row is not None else None

    def add_customer(
        self,
        nrc_number: str,
        name: str,
        *,
        total_owed: Decimal = Decimal("0"),
        total_paid: Decimal = Decimal("0"),
        assigned_agent_id: str | None = None,
    ) -> CustomerAccount:
        with self.session_scope() as session:
            row = CustomerRow(
                nrc_number=nrc_number.strip(),
                name=name,
                total_owed=total_owed,
                total_paid=total_paid,
                outstanding_balance=outstanding_balance(total_owed, total_paid),
                payment_status=derive_payment_status(total_owed, total_paid),
                assigned_agent_id=assigned_agent_id,
            )
            session.add(row)
            session.flush()
            return _to_customer(row)

    def add_ticket(
        self,
        customer_id: str,
        amount_owed: Decimal,
        *,
        status: TicketStatus = OPEN,
        assigned_agent_id: str | None = None,
        previous_arrears: Decimal | None = None,
    ) -> Ticket:
        with self.session_scope() as session:
            row = TicketRow(
                customer_id=customer_id,
                amount_owed=amount_owed,
                status=status,
                assigned_agent_id=assigned_agent_id,
                previous_arrears=previous_arrears,
                resolved_date=utc_now() if status == RESOLVED else None,
            )
            session.add(row)
            session.flush()
            return _to_ticket(row)


def _set_balance(customer: CustomerRow, arrears: Decimal) -> None:
    """Make the customer's outstanding balance equal ``arrears``."""
    customer.total_owed = customer.total_paid + arrears
    customer.outstanding_balance = outstanding_balance(customer.total_owed, customer.total_paid)
    customer.payment_status = derive_payment_status(customer.total_owed, customer.total_paid)


def _get_ticket_row(session: Session, ticket_id: str) -> TicketRow:
    ticket = session.get(TicketRow, ticket_id)
    if ticket is None:
        raise TicketStateError(f"Ticket {ticket_id} not found")
    return ticket


def _to_customer(row: CustomerRow) -> CustomerAccount:
    return CustomerAccount(
        id=row.id,
        nrc_number=row.nrc_number,
        name=row.name,
        total_owed=row.total_owed,
        total_paid=row.total_paid,
        outstanding_balance=row.outstanding_balance,
        payment_status=row.payment_status,
        assigned_agent_id=row.assigned_agent_id,
        loan_book_arrears=row.loan_book_arrears,
        days_in_arrears=row.days_in_arrears,
        loan_book_last_payment_date=row.loan_book_last_payment_date,
    )


def _to_ticket(row: TicketRow) -> Ticket:
    return Ticket(
        id=row.id,
        customer_id=row.customer_id,
        amount_owed=row.amount_owed,
        status=row.status,
        assigned_agent_id=row.assigned_agent_id,
        previous_arrears=row.previous_arrears,
        resolved_date=row.resolved_date,
    )


def _to_batch(row: SyncBatchRow) -> SyncBatch:
    counts = SyncCounts(
        **{name: getattr(row, name) for name in SyncCounts().as_dict()}
    )
    return SyncBatch(
        id=row.id,
        created_at=row.created_at,
        operator_id=row.operator_id,
        status=row.status,
        expected=row.expected,
        counts=counts,
        errors=list(row.errors or []),
        completed_at=row.completed_at,
    )


def _to_notification(row: NotificationRow) -> AgentNotification:
    return AgentNotification(
        id=row.id,
        agent_id=row.agent_id,
        type=row.type,
        title=row.title,
        message=row.message,
        related_ticket_id=row.related_ticket_id,
        related_customer_id=row.related_customer_id,
        is_read=row.is_read,
        created_at=row.created_at,
    )


__all__ = ["LoanBookStore", "SYNC_SOURCE", "MANUAL_REOPEN_SOURCE"]
