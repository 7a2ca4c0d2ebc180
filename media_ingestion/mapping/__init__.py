"""
media_ingestion.mapping -- Field transformation: coercion, status tables and
vocabulary normalization.

The per-entity transformers live in ``media_ingestion.mapping.transformers``
and are imported from there. They sit above indexing and aggregation, which
themselves use the coercion helpers here, so this package does not import
them.
"""

from media_ingestion.mapping.engine import (
    CoercionResult,
    FieldCoercer,
    business_id_of,
    normalize_decimal,
    parse_date,
    to_jsonable,
)
from media_ingestion.mapping.status import DisplayLevel, LifecycleStatus, map_status

__all__ = [
    "CoercionResult",
    "DisplayLevel",
    "FieldCoercer",
    "LifecycleStatus",
    "business_id_of",
    "map_status",
    "normalize_decimal",
    "parse_date",
    "to_jsonable",
]
