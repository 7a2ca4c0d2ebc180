"""
Document store ORM models.

Contract:
    DocumentModel holds one document per (collection, document_key). The key
    is derived from the business id, so an upsert keyed on it is idempotent
    across runs. DocumentUniqueValueModel enforces per-collection secondary
    unique fields (e.g. campaignNumber); a clash fails only the offending
    record.

Architecture: media_ingestion/models. Imports from media_kernel.db.base only.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from media_kernel.db.base import TimestampedBase, UUIDString


class DocumentModel(TimestampedBase):
    """One document in one target collection."""

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("collection", "document_key", name="uq_documents_collection_key"),
        Index("ix_documents_collection_business_id", "collection", "business_id"),
    )

    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    document_key: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    business_id: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    run_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


class DocumentUniqueValueModel(TimestampedBase):
    """Secondary unique value claimed by one document."""

    __tablename__ = "document_unique_values"

    __table_args__ = (
        UniqueConstraint(
            "collection", "field_name", "field_value", name="uq_document_unique_values"
        ),
        Index("ix_document_unique_values_key", "collection", "document_key"),
    )

    collection: Mapped[str] = mapped_column(String(100), nullable=False)
    document_key: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_value: Mapped[str] = mapped_column(String(500), nullable=False)
