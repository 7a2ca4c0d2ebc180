"""
media_ingestion.loaders -- Batched idempotent upsert into target collections.
"""

from media_ingestion.loaders.batch_loader import (
    BatchLoader,
    CancellationToken,
    LoadMode,
    LoadResult,
    partition,
)
from media_ingestion.loaders.store import DocumentStore, SqlDocumentStore

__all__ = [
    "BatchLoader",
    "CancellationToken",
    "DocumentStore",
    "LoadMode",
    "LoadResult",
    "SqlDocumentStore",
    "partition",
]
