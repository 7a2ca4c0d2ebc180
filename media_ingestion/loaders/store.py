"""
Document store: the target collections behind the batch loader.

SAVEPOINT per record: a constraint violation on one document rolls back that
document only; the rest of the batch is still written. The batch commits as
a unit at the end. A database error that is not a per-record constraint
violation (lost connection, lock timeout) rolls the whole batch back and
propagates, so the loader can retry the batch.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from media_kernel.logging_config import get_logger

from media_ingestion.domain.types import RecordWriteOutcome, ResolvedDocument
from media_ingestion.models.documents import DocumentModel, DocumentUniqueValueModel

logger = get_logger("ingestion.store")


@runtime_checkable
class DocumentStore(Protocol):
    """Target collection storage used by the batch loader."""

    def upsert_batch(
        self,
        collection: str,
        documents: Sequence[ResolvedDocument],
        run_id: UUID | None = None,
        unique_fields: Sequence[str] = (),
    ) -> list[RecordWriteOutcome]:
        """Insert or replace each document by key. One outcome per document, in order."""
        ...

    def clear(self, collection: str) -> int:
        """Remove every document in the collection. Returns the number removed."""
        ...

    def count(self, collection: str) -> int:
        ...

    def keys(self, collection: str) -> set[UUID]:
        ...


def _unique_value(body: dict[str, Any], field_name: str) -> str | None:
    value = body.get(field_name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SqlDocumentStore:
    """DocumentStore over the ``documents`` table (SQLAlchemy session)."""

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def upsert_batch(
        self,
        collection: str,
        documents: Sequence[ResolvedDocument],
        run_id: UUID | None = None,
        unique_fields: Sequence[str] = (),
    ) -> list[RecordWriteOutcome]:
        outcomes: list[RecordWriteOutcome] = []
        try:
            for doc in documents:
                outcomes.append(self._upsert_one(collection, doc, run_id, unique_fields))
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            raise
        return outcomes

    def _upsert_one(
        self,
        collection: str,
        doc: ResolvedDocument,
        run_id: UUID | None,
        unique_fields: Sequence[str],
    ) -> RecordWriteOutcome:
        savepoint = self._session.begin_nested()
        try:
            existing = self._session.scalars(
                select(DocumentModel).where(
                    DocumentModel.collection == collection,
                    DocumentModel.document_key == doc.document_key,
                )
            ).first()
            if existing is None:
                self._session.add(
                    DocumentModel(
                        collection=collection,
                        document_key=doc.document_key,
                        entity_type=doc.entity_type.value,
                        business_id=doc.business_id,
                        body=doc.body,
                        run_id=run_id,
                    )
                )
            else:
                existing.entity_type = doc.entity_type.value
                existing.business_id = doc.business_id
                existing.body = doc.body
                existing.run_id = run_id

            if unique_fields:
                self._session.execute(
                    delete(DocumentUniqueValueModel).where(
                        DocumentUniqueValueModel.collection == collection,
                        DocumentUniqueValueModel.document_key == doc.document_key,
                    )
                )
                for field_name in unique_fields:
                    value = _unique_value(doc.body, field_name)
                    if value is None:
                        continue
                    self._session.add(
                        DocumentUniqueValueModel(
                            collection=collection,
                            document_key=doc.document_key,
                            field_name=field_name,
                            field_value=value,
                        )
                    )
            self._session.flush()
            savepoint.commit()
        except (IntegrityError, DataError) as exc:
            savepoint.rollback()
            reason = str(exc.orig) if exc.orig is not None else str(exc)
            logger.warning(
                "record_write_failed",
                extra={
                    "business_id": doc.business_id,
                    "document_key": str(doc.document_key),
                    "error_msg": reason,
                },
            )
            return RecordWriteOutcome(
                business_id=doc.business_id,
                document_key=doc.document_key,
                error=reason,
            )
        inserted = existing is None
        return RecordWriteOutcome(
            business_id=doc.business_id,
            document_key=doc.document_key,
            inserted=inserted,
            updated=not inserted,
        )

    def clear(self, collection: str) -> int:
        try:
            self._session.execute(
                delete(DocumentUniqueValueModel).where(
                    DocumentUniqueValueModel.collection == collection
                )
            )
            result = self._session.execute(
                delete(DocumentModel).where(DocumentModel.collection == collection)
            )
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            raise
        removed = result.rowcount or 0
        logger.info("collection_cleared", extra={"collection": collection, "removed": removed})
        return removed

    def count(self, collection: str) -> int:
        return self._session.scalar(
            select(func.count()).select_from(DocumentModel).where(
                DocumentModel.collection == collection
            )
        ) or 0

    def keys(self, collection: str) -> set[UUID]:
        return set(
            self._session.scalars(
                select(DocumentModel.document_key).where(DocumentModel.collection == collection)
            )
        )

    def get(self, collection: str, document_key: UUID) -> DocumentModel | None:
        return self._session.scalars(
            select(DocumentModel).where(
                DocumentModel.collection == collection,
                DocumentModel.document_key == document_key,
            )
        ).first()
