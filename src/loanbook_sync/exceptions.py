"""Exception types raised by the loan-book store and ticket operations."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Raised when the customer/ticket store cannot complete an operation."""


class BatchClosedError(StoreError):
    """Raised when appending to a sync batch that has already completed."""


class TicketStateError(ValueError):
    """Raised when a manual ticket transition is not allowed from its status."""


__all__ = ["StoreError", "BatchClosedError", "TicketStateError"]
