"""Relationship indices shared across entity types within one run."""

from media_ingestion.indexing.indexer import (
    OneToManyIndex,
    PointIndex,
    SourceIndices,
    user_business_id,
)

__all__ = ["OneToManyIndex", "PointIndex", "SourceIndices", "user_business_id"]
