"""Sync orchestrator: drives a full loan-book feed through the engine.

One run gets one sync batch id. Rows are split into sequential chunks and each
chunk goes Validator -> snapshot lookup -> Decision Engine -> Batch Applier.
Chunks never run concurrently, so progress is linear and backend load is
bounded by the chunk size.

Chunk failure policy is set by ``SyncConfig.halt_on_chunk_failure``: by
default the run stops at the first chunk the store rejects (earlier chunks
stay committed, later ones are never attempted); otherwise later chunks are
attempted independently.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Union

from .applier import BatchApplier
from .config import DEFAULT_CONFIG, SyncConfig
from .decision import apply_to_snapshot, decide
from .exceptions import StoreError
from .model import AccountSnapshot, ChunkResult, Decision, Skipped, SyncInputRecord, SyncSummary
from .notifications import NotificationDispatcher
from .validator import validate

logger = logging.getLogger(__name__)

FEED_HEADER_ROWS = 1  # Row numbers in errors count the header as row 1

Row = Union[Mapping[str, Any], SyncInputRecord]
ProgressCallback = Callable[[int, int], None]
SyncSubscriber = Callable[[SyncSummary], None]


class SyncOrchestrator:
    """Owns the chunk loop for one or more reconciliation runs."""

    def __init__(
        self,
        store,
        config: SyncConfig = DEFAULT_CONFIG,
        *,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.dispatcher = dispatcher if dispatcher is not None else NotificationDispatcher(store)
        self._subscribers: List[SyncSubscriber] = []

    def subscribe(self, callback: SyncSubscriber) -> None:
        """Register ``callback`` to receive the summary of every finished run."""
        self._subscribers.append(callback)

    def run_sync(
        self,
        rows: Iterable[Row],
        *,
        chunk_size: int | None = None,
        operator_id: str | None = None,
        cancel_event: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncSummary:
        """Reconcile ``rows`` against the store and return the run summary."""

        rows = list(rows)
        total = len(rows)
        if not rows:
            logger.warning("Sync requested with no records")
            return SyncSummary.failed("No records to sync")

        size = chunk_size if chunk_size is not None else self.config.chunk_size
        if size < 1:
            raise ValueError(f"chunk_size must be positive, got {size}")
        operator = operator_id or self.config.operator_id

        try:
            batch_id = self.store.begin_sync_batch(operator, total)
        except StoreError as exc:
            logger.error("Could not start sync: %s", exc)
            return SyncSummary.failed(f"Could not start sync: {exc}", expected=total)

        logger.info("Sync %s started: %d records in chunks of %d", batch_id, total, size)
        summary = SyncSummary(
            success=True, sync_batch_id=batch_id, status="completed", expected=total
        )
        applier = BatchApplier(
            self.store, self.dispatcher, sync_batch_id=batch_id, operator_id=operator
        )

        try:
            self._run_chunks(applier, rows, size, summary, cancel_event, on_progress)
        except Exception as exc:
            logger.exception("Sync %s aborted", batch_id)
            reason = f"Sync aborted: {exc}"
            summary.status = "halted"
            summary.errors.append(reason)
            self._close_batch(batch_id, summary, [reason])
            raise
        self._close_batch(batch_id, summary)

        logger.info(
            "Sync %s %s: %s", batch_id, summary.status, summary.counts.as_dict()
        )
        self._publish(summary)
        return summary

    def _run_chunks(
        self,
        applier: BatchApplier,
        rows: List[Row],
        size: int,
        summary: SyncSummary,
        cancel_event: threading.Event | None,
        on_progress: ProgressCallback | None,
    ) -> None:
        batch_id = summary.sync_batch_id
        total = len(rows)
        done = 0
        for chunk_index, start in enumerate(range(0, total, size)):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Sync %s cancelled after %d of %d records", batch_id, done, total)
                summary.status = "cancelled"
                return

            chunk = rows[start : start + size]
            result = self._process_chunk(applier, chunk, chunk_index, start)
            summary.counts.add(result.counts)
            summary.errors.extend(result.errors)
            self._record_audit(batch_id, result, summary)

            done += len(chunk)
            if on_progress is not None:
                on_progress(done, total)

            if result.failed and self.config.halt_on_chunk_failure:
                logger.error("Sync %s halted at chunk %d", batch_id, chunk_index + 1)
                summary.status = "halted"
                return

    def _close_batch(
        self, batch_id: str, summary: SyncSummary, errors: Sequence[str] = ()
    ) -> None:
        try:
            self.store.complete_sync_batch(batch_id, summary.status, errors)
        except StoreError as exc:
            logger.error("Could not close sync batch %s: %s", batch_id, exc)
            summary.errors.append(f"Sync batch could not be closed: {exc}")

    def _process_chunk(
        self,
        applier: BatchApplier,
        chunk: Sequence[Row],
        chunk_index: int,
        start: int,
    ) -> ChunkResult:
        first_row = start + FEED_HEADER_ROWS + 1
        last_row = start + len(chunk) + FEED_HEADER_ROWS
        errors: List[str] = []
        skipped = 0
        records: List[SyncInputRecord] = []

        for offset, raw in enumerate(chunk):
            result = validate(raw, row_number=first_row + offset)
            if isinstance(result, Skipped):
                logger.debug("Skipping %s", result)
                skipped += 1
                errors.append(str(result))
                continue
            records.append(result.record)

        try:
            snapshots: Dict[str, AccountSnapshot | None] = dict(
                self.store.find_many(record.nrc_number for record in records)
            )
        except StoreError as exc:
            return applier.failure(
                exc,
                chunk_index=chunk_index,
                first_row=first_row,
                last_row=last_row,
                errors=errors,
                skipped=skipped,
            )

        decisions: List[Decision] = []
        for record in records:
            try:
                decision = decide(record, snapshots.get(record.nrc_number))
                # Later rows for the same NRC see this row's outcome
                overlay = apply_to_snapshot(decision) if decision.found else None
            except (ArithmeticError, TypeError, ValueError) as exc:
                skipped += 1
                errors.append(
                    f"Row {record.row_number} ({record.nrc_number}): could not reconcile: {exc}"
                )
                continue
            decisions.append(decision)
            if overlay is not None:
                snapshots[record.nrc_number] = overlay

        return applier.apply(
            decisions,
            chunk_index=chunk_index,
            first_row=first_row,
            last_row=last_row,
            errors=errors,
            skipped=skipped,
        )

    def _record_audit(self, batch_id: str, result: ChunkResult, summary: SyncSummary) -> None:
        try:
            self.store.record_audit_entry(batch_id, result.counts, result.errors)
        except StoreError as exc:
            logger.error("Audit entry for chunk %d not recorded: %s", result.index + 1, exc)
            summary.errors.append(f"Chunk {result.index + 1}: audit entry not recorded: {exc}")

    def _publish(self, summary: SyncSummary) -> None:
        for callback in self._subscribers:
            try:
                callback(summary)
            except Exception:  # A subscriber must not change a committed run
                logger.exception("Sync completion subscriber %r failed", callback)


def run_sync(
    store,
    rows: Iterable[Row],
    *,
    config: SyncConfig = DEFAULT_CONFIG,
    chunk_size: int | None = None,
    operator_id: str | None = None,
) -> SyncSummary:
    """Convenience wrapper running one sync with a fresh orchestrator."""
    return SyncOrchestrator(store, config).run_sync(
        rows, chunk_size=chunk_size, operator_id=operator_id
    )


__all__ = ["SyncOrchestrator", "run_sync", "FEED_HEADER_ROWS"]
