"""Batch applier: writes one chunk of decisions as a single unit."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .exceptions import StoreError
from .model import ChunkResult, Decision, SyncCounts
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class BatchApplier:
    """Applies decided chunks to the store and notifies agents afterwards."""

    def __init__(
        self,
        store,
        dispatcher: NotificationDispatcher | None,
        *,
        sync_batch_id: str,
        operator_id: str,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.sync_batch_id = sync_batch_id
        self.operator_id = operator_id

    def apply(
        self,
        decisions: Sequence[Decision],
        *,
        chunk_index: int = 0,
        first_row: int | None = None,
        last_row: int | None = None,
        errors: Iterable[str] = (),
        skipped: int = 0,
    ) -> ChunkResult:
        """Write ``decisions`` atomically and return the chunk's counts.

        A store failure rolls the whole chunk back: the result is marked
        ``failed`` with zero counts and one error naming the chunk and rows.
        ``errors`` and ``skipped`` carry row-level problems found before the
        write and are reported either way.
        """
        row_errors: List[str] = list(errors)

        try:
            self.store.apply_chunk(self.sync_batch_id, self.operator_id, decisions)
        except StoreError as exc:
            return self.failure(
                exc,
                chunk_index=chunk_index,
                first_row=first_row,
                last_row=last_row,
                errors=row_errors,
                skipped=skipped,
            )

        counts = SyncCounts(skipped=skipped)
        for decision in decisions:
            counts.record(decision)

        if self.dispatcher is not None:
            row_errors.extend(
                self.dispatcher.notify_all(d for d in decisions if d.found and d.is_update)
            )

        logger.info(
            "Chunk %d applied: %d processed, %d updated, %d maintained, %d not found",
            chunk_index + 1,
            counts.processed,
            counts.updated,
            counts.maintained,
            counts.not_found,
        )
        return ChunkResult(index=chunk_index, counts=counts, errors=row_errors)

    def failure(
        self,
        exc: Exception,
        *,
        chunk_index: int,
        first_row: int | None,
        last_row: int | None,
        errors: Iterable[str] = (),
        skipped: int = 0,
    ) -> ChunkResult:
        """Result for a chunk the store rejected; nothing from it is counted."""
        logger.error("Chunk %d failed, rolled back: %s", chunk_index + 1, exc)
        return ChunkResult(
            index=chunk_index,
            counts=SyncCounts(skipped=skipped),
            errors=list(errors)
            + [
                f"Chunk {chunk_index + 1} (rows {first_row}-{last_row}) failed and was "
                f"rolled back: {exc}"
            ],
            failed=True,
        )


__all__ = ["BatchApplier"]
