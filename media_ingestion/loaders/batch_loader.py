"""
BatchLoader -- fixed-size batched upsert into one target collection.

Contract:
    ``load()`` partitions resolved documents into batches of
    ``config.batch_size`` and upserts each batch through a DocumentStore.
    Records are inserted when their key is absent and replaced when present.

Architecture: media_ingestion/loaders. Depends on the DocumentStore protocol
    only; the SQL implementation lives in loaders/store.py.

Invariants enforced:
    - One record's write failure never aborts its batch or later batches.
    - A batch that fails outright is retried ``config.batch_retry_attempts``
      times with the same records, then recorded as rejected. There is no
      unbounded retry loop.
    - Batches run sequentially; no batch depends on another batch's outcome.
    - Cancellation is honored at batch boundaries only. A batch in flight
      runs to completion.
    - REPLACE clears the collection first and is never the default.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Sequence
from uuid import UUID

from media_config.schema import PipelineConfig
from media_kernel.logging_config import LogContext, get_logger

from media_ingestion.domain.types import BatchResult, RecordWriteOutcome, ResolvedDocument
from media_ingestion.loaders.store import DocumentStore

logger = get_logger("ingestion.batch_loader")


class LoadMode(str, Enum):
    UPSERT = "upsert"
    REPLACE = "replace"  # Destructive full refresh


class CancellationToken:
    """Operator abort signal, checked by the loader between batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one collection."""

    collection: str
    mode: LoadMode
    batches: tuple[BatchResult, ...] = ()
    failed_records: tuple[RecordWriteOutcome, ...] = ()
    written_keys: tuple[UUID, ...] = ()
    cleared: int = 0
    cancelled: bool = False
    not_attempted: int = 0

    @property
    def inserted(self) -> int:
        return sum(b.inserted for b in self.batches)

    @property
    def updated(self) -> int:
        return sum(b.updated for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.failed for b in self.batches)

    @property
    def rejected_batches(self) -> tuple[BatchResult, ...]:
        return tuple(b for b in self.batches if b.rejected)


def partition(documents: Sequence[ResolvedDocument], size: int) -> list[Sequence[ResolvedDocument]]:
    """Split into consecutive batches of at most ``size`` records, order preserved."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    return [documents[i : i + size] for i in range(0, len(documents), size)]


class BatchLoader:
    """Batched, retrying, cancellable upsert into a DocumentStore.

    Non-goals:
        - Does NOT run batches concurrently.
        - Does NOT coordinate concurrent runs against the same collection.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: PipelineConfig | None = None,
        cancellation: CancellationToken | None = None,
    ):
        self._store = store
        self._config = config or PipelineConfig()
        self._cancellation = cancellation or CancellationToken()

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    def load(
        self,
        collection: str,
        documents: Sequence[ResolvedDocument],
        mode: LoadMode = LoadMode.UPSERT,
        run_id: UUID | None = None,
        unique_fields: Sequence[str] = (),
    ) -> LoadResult:
        cleared = 0
        if mode == LoadMode.REPLACE:
            cleared = self._store.clear(collection)

        batches: list[BatchResult] = []
        failed_records: list[RecordWriteOutcome] = []
        written: list[UUID] = []
        chunks = partition(documents, self._config.batch_size)
        logger.info(
            "collection_load_started",
            extra={
                "collection": collection,
                "records": len(documents),
                "batches": len(chunks),
                "mode": mode.value,
            },
        )

        for index, chunk in enumerate(chunks):
            if self._cancellation.is_cancelled:
                remaining = sum(len(c) for c in chunks[index:])
                logger.warning(
                    "collection_load_cancelled",
                    extra={"collection": collection, "next_batch": index, "not_attempted": remaining},
                )
                return LoadResult(
                    collection=collection,
                    mode=mode,
                    batches=tuple(batches),
                    failed_records=tuple(failed_records),
                    written_keys=tuple(written),
                    cleared=cleared,
                    cancelled=True,
                    not_attempted=remaining,
                )
            with LogContext.bind(batch_index=str(index)):
                result, outcomes = self._write_batch(collection, index, chunk, run_id, unique_fields)
            batches.append(result)
            for outcome in outcomes:
                if outcome.success:
                    written.append(outcome.document_key)
                else:
                    failed_records.append(outcome)

        result = LoadResult(
            collection=collection,
            mode=mode,
            batches=tuple(batches),
            failed_records=tuple(failed_records),
            written_keys=tuple(written),
            cleared=cleared,
        )
        logger.info(
            "collection_load_completed",
            extra={
                "collection": collection,
                "inserted": result.inserted,
                "updated": result.updated,
                "failed": result.failed,
                "rejected_batches": len(result.rejected_batches),
            },
        )
        return result

    def _write_batch(
        self,
        collection: str,
        index: int,
        chunk: Sequence[ResolvedDocument],
        run_id: UUID | None,
        unique_fields: Sequence[str],
    ) -> tuple[BatchResult, list[RecordWriteOutcome]]:
        """Write one batch, retrying a total rejection. Returns the result and per-record outcomes."""
        max_attempts = 1 + max(self._config.batch_retry_attempts, 0)
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            try:
                outcomes = self._store.upsert_batch(
                    collection, chunk, run_id=run_id, unique_fields=unique_fields
                )
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "batch_write_attempt_failed",
                    extra={"attempt": attempt, "max_attempts": max_attempts, "error_msg": last_error},
                )
                continue

            failures = [o for o in outcomes if not o.success]
            result = BatchResult(
                batch_index=index,
                attempted=len(chunk),
                inserted=sum(1 for o in outcomes if o.inserted),
                updated=sum(1 for o in outcomes if o.updated),
                failed=len(failures),
                failure_reasons=tuple(
                    f"{o.business_id}: {o.error}"
                    for o in failures[: self._config.max_failure_reasons]
                ),
                attempts=attempt,
            )
            logger.info(
                "batch_written",
                extra={
                    "attempted": result.attempted,
                    "inserted": result.inserted,
                    "updated": result.updated,
                    "failed": result.failed,
                    "attempts": attempt,
                },
            )
            return result, outcomes

        logger.error(
            "batch_rejected",
            extra={"attempted": len(chunk), "attempts": max_attempts, "error_msg": last_error},
        )
        outcomes = [
            RecordWriteOutcome(business_id=d.business_id, document_key=d.document_key, error=last_error)
            for d in chunk
        ]
        return (
            BatchResult(
                batch_index=index,
                attempted=len(chunk),
                failed=len(chunk),
                failure_reasons=(last_error,),
                rejected=True,
                attempts=max_attempts,
            ),
            outcomes,
        )
