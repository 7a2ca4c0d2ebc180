"""Stable document identity derived from business ids."""

from media_ingestion.identity.resolver import IdentityResolver, derive_document_key

__all__ = ["IdentityResolver", "derive_document_key"]
