"""
Post-load verification.

Checks the target store against what this run reports having written:
every written document key must be present, and in full-replace mode the
collection must hold exactly the written documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from media_kernel.logging_config import get_logger

from media_ingestion.loaders.store import DocumentStore

logger = get_logger("ingestion.verification")


@dataclass(frozen=True)
class VerificationResult:
    collection: str
    written: int
    present: int
    count: int
    missing_keys: tuple[UUID, ...] = ()
    expected_count: int | None = None

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def failures(self) -> tuple[str, ...]:
        failures: list[str] = []
        if self.missing_keys:
            failures.append(
                f"{self.collection}: {len(self.missing_keys)} written document(s) missing from the store"
            )
        if self.expected_count is not None and self.count != self.expected_count:
            failures.append(
                f"{self.collection}: expected {self.expected_count} document(s), found {self.count}"
            )
        return tuple(failures)


class VerificationService:
    def __init__(self, store: DocumentStore):
        self._store = store

    def verify_collection(
        self,
        collection: str,
        written_keys: Iterable[UUID],
        expected_count: int | None = None,
    ) -> VerificationResult:
        """Compare written keys (and optionally the exact count) against the store."""
        written = list(dict.fromkeys(written_keys))
        stored = self._store.keys(collection)
        missing = tuple(k for k in written if k not in stored)
        result = VerificationResult(
            collection=collection,
            written=len(written),
            present=len(written) - len(missing),
            count=len(stored),
            missing_keys=missing,
            expected_count=expected_count,
        )
        if result.passed:
            logger.info("collection_verified", extra={"collection": collection, "count": result.count})
        else:
            logger.warning(
                "collection_verification_failed",
                extra={"collection": collection, "failures": list(result.failures)},
            )
        return result
