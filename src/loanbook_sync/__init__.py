"""Loan-book arrears reconciliation toolkit.

Exposes the orchestrator and the high-level ``run_loan_book_sync`` API for
programmatic use.
"""

from .orchestrator import SyncOrchestrator, run_sync  # Chunked reconciliation engine
from .runner import run_loan_book_sync  # Feed file -> JSON report
from .store import LoanBookStore  # SQLAlchemy customer/ticket store

__all__ = ["SyncOrchestrator", "run_sync", "run_loan_book_sync", "LoanBookStore"]
