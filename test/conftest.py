from decimal import Decimal

import pytest

from loanbook_sync.store import LoanBookStore


@pytest.fixture
def store():
    """Fresh in-memory store with all tables created."""
    s = LoanBookStore("sqlite://")
    s.create_schema()
    yield s
    s.engine.dispose()


@pytest.fixture
def seed(store):
    """Factory creating a customer with one ticket; returns (customer, ticket).

    ``arrears`` becomes the ticket's amount owed and the customer's
    outstanding balance. Pass ``status=None`` for a customer without a ticket.
    """

    def _seed(
        nrc,
        arrears="500",
        *,
        status="Open",
        agent="agent-1",
        previous=None,
        total_paid="0",
        name=None,
    ):
        arrears = Decimal(arrears)
        paid = Decimal(total_paid)
        customer = store.add_customer(
            nrc,
            name or f"Customer {nrc}",
            total_owed=paid + arrears,
            total_paid=paid,
            assigned_agent_id=agent,
        )
        ticket = None
        if status is not None:
            ticket = store.add_ticket(
                customer.id,
                arrears,
                status=status,
                assigned_agent_id=agent,
                previous_arrears=Decimal(previous) if previous is not None else None,
            )
        return customer, ticket

    return _seed
