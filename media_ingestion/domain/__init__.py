"""
media_ingestion.domain -- Pure types and value objects for reconciliation.

ZERO I/O.
"""

from media_ingestion.domain.line_items import (
    LineItemKind,
    ManagementFeeTerms,
    StandardTerms,
    ZeroDollarTerms,
    ZeroMarginTerms,
    classify_line_item,
)
from media_ingestion.domain.types import (
    BatchResult,
    EntityRunReport,
    EntityState,
    EntityType,
    IssueCode,
    IssueSeverity,
    RecordIssue,
    Reference,
    ResolvedDocument,
    RunReport,
    TransformedRecord,
)

__all__ = [
    "BatchResult",
    "EntityRunReport",
    "EntityState",
    "EntityType",
    "IssueCode",
    "IssueSeverity",
    "LineItemKind",
    "ManagementFeeTerms",
    "RecordIssue",
    "Reference",
    "ResolvedDocument",
    "RunReport",
    "StandardTerms",
    "TransformedRecord",
    "ZeroDollarTerms",
    "ZeroMarginTerms",
    "classify_line_item",
]
