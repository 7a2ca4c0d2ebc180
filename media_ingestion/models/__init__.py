"""Target document store ORM models."""

from media_ingestion.models.documents import DocumentModel, DocumentUniqueValueModel

__all__ = ["DocumentModel", "DocumentUniqueValueModel"]
