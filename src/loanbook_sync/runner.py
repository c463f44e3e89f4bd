from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

from loanbook_sync import feed_reader
from loanbook_sync.config import load_config
from loanbook_sync.orchestrator import SyncOrchestrator
from loanbook_sync.report import build_error_payload, write_payload, write_report_to_json
from loanbook_sync.store import LoanBookStore

logger = logging.getLogger(__name__)

DEFAULT_REPORT_NAME = "sync_report.json"


def run_loan_book_sync(
    feed_path: str | Path,
    *,
    database_url: str | None = None,
    operator_id: str | None = None,
    output_path: str | Path | None = None,
    chunk_size: int | None = None,
    halt_on_chunk_failure: bool | None = None,
    store: LoanBookStore | None = None,
) -> Path:
    """Reconcile a loan-book feed against the store and write a JSON report."""

    report_path = Path(output_path) if output_path else Path(DEFAULT_REPORT_NAME)

    try:
        # 1. Resolve settings: explicit arguments over environment over defaults
        config = load_config()
        overrides = {
            "database_url": database_url,
            "operator_id": operator_id,
            "chunk_size": chunk_size,
            "halt_on_chunk_failure": halt_on_chunk_failure,
        }
        config = dataclasses.replace(
            config, **{key: value for key, value in overrides.items() if value is not None}
        )

        # 2. Open the store
        if store is None:
            store = LoanBookStore(config.database_url)
        store.create_schema()

        # 3. Read the loan-book snapshot
        rows = feed_reader.read_feed_rows(Path(feed_path))
        logger.info("Read %d rows from %s", len(rows), feed_path)

        # 4. Reconcile
        summary = SyncOrchestrator(store, config).run_sync(rows)

        # 5. Write JSON report
        write_report_to_json(summary, report_path)

    except Exception as exc:
        logger.error("Loan-book sync failed: %s", exc)
        write_payload(build_error_payload(exc), report_path)

    return report_path


__all__ = ["run_loan_book_sync", "DEFAULT_REPORT_NAME"]
