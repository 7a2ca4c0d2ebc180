"""
media_ingestion.domain.types -- Pure frozen dataclasses for the reconciliation engine.

ZERO I/O. Imports only from the standard library.

Recoverable, per-record conditions are values (RecordIssue), accumulated per
entity run and tallied in the run report. Entity-fatal conditions are typed
exceptions from media_kernel.exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Entity types and per-entity run state
# =============================================================================


class EntityType(str, Enum):
    """Target entity types, listed in load (dependency) order."""

    ACCOUNT = "account"
    USER = "user"
    CAMPAIGN = "campaign"
    STRATEGY = "strategy"
    LINE_ITEM = "line_item"
    MEDIA_BUY = "media_buy"


# Source set each entity type is transformed from.
SOURCE_FOR_ENTITY: dict[EntityType, str] = {
    EntityType.ACCOUNT: "accounts",
    EntityType.USER: "users",
    EntityType.CAMPAIGN: "campaigns",
    EntityType.STRATEGY: "strategies",
    EntityType.LINE_ITEM: "line_items",
    EntityType.MEDIA_BUY: "media_buys",
}

# Entity types whose keys must be registered before this one can load.
LOAD_DEPENDENCIES: dict[EntityType, tuple[EntityType, ...]] = {
    EntityType.ACCOUNT: (),
    EntityType.USER: (),
    EntityType.CAMPAIGN: (EntityType.ACCOUNT, EntityType.USER),
    EntityType.STRATEGY: (EntityType.CAMPAIGN,),
    EntityType.LINE_ITEM: (EntityType.STRATEGY,),
    EntityType.MEDIA_BUY: (EntityType.LINE_ITEM,),
}

# Source sets an entity type aggregates over, beyond its own.
AGGREGATION_SOURCES: dict[EntityType, tuple[str, ...]] = {
    EntityType.ACCOUNT: ("campaigns",),
    EntityType.CAMPAIGN: ("strategies", "line_items"),
    EntityType.STRATEGY: ("line_items",),
}


class EntityState(str, Enum):
    """Per-entity-type lifecycle within one pipeline run."""

    IDLE = "idle"
    READING = "reading"
    INDEXING = "indexing"
    AGGREGATING = "aggregating"  # Campaigns only
    TRANSFORMING = "transforming"
    RESOLVING_IDENTITY = "resolving_identity"
    LOADING = "loading"
    DONE = "done"
    DONE_WITH_ERRORS = "done_with_errors"  # Record-level failures, run completed
    FAILED = "failed"  # Entity-fatal; reachable from any step

    @property
    def is_terminal(self) -> bool:
        return self in (EntityState.DONE, EntityState.DONE_WITH_ERRORS, EntityState.FAILED)


# =============================================================================
# Record issues
# =============================================================================


class IssueCode(str, Enum):
    """Machine-readable codes for recoverable, per-record conditions."""

    ORPHAN_RECORD = "ORPHAN_RECORD"
    FIELD_COERCION = "FIELD_COERCION"
    UNMAPPED_STATUS = "UNMAPPED_STATUS"
    MISSING_BUSINESS_ID = "MISSING_BUSINESS_ID"
    DUPLICATE_BUSINESS_ID = "DUPLICATE_BUSINESS_ID"
    UNRESOLVED_USER = "UNRESOLVED_USER"
    WRITE_FAILURE = "WRITE_FAILURE"
    VALIDATION_FAILED = "VALIDATION_FAILED"


class IssueSeverity(str, Enum):
    WARNING = "warning"  # Record proceeds
    ERROR = "error"  # Record is not loaded


@dataclass(frozen=True)
class RecordIssue:
    """One recoverable condition observed on one record."""

    code: IssueCode
    message: str
    entity_type: str
    business_id: str | None = None
    field: str | None = None
    severity: IssueSeverity = IssueSeverity.WARNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "entity_type": self.entity_type,
            "business_id": self.business_id,
            "field": self.field,
            "severity": self.severity.value,
        }


# =============================================================================
# Transformed and resolved records
# =============================================================================


@dataclass(frozen=True)
class Reference:
    """
    A cross-entity reference carried by a transformed record.

    ``field`` is the body key that will hold the parent's document key once
    identity is resolved; ``raw_value`` is the parent's business id as it
    appeared in the source row, kept for orphan reporting.

    A ``many`` reference carries several parent ids in ``raw_values`` and
    resolves to a list of keys in the same order.
    """

    field: str
    target_type: EntityType
    raw_value: str | None = None
    required: bool = True
    many: bool = False
    raw_values: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransformedRecord:
    """Output of a field transformer: body plus unresolved references."""

    entity_type: EntityType
    business_id: str | None
    body: dict[str, Any]
    references: tuple[Reference, ...] = ()
    issues: tuple[RecordIssue, ...] = ()


@dataclass(frozen=True)
class ResolvedDocument:
    """A record ready for the loader: stable key, body with references rewritten."""

    entity_type: EntityType
    business_id: str
    document_key: UUID
    body: dict[str, Any]
    orphan: bool = False


# =============================================================================
# Load and run reporting
# =============================================================================


@dataclass(frozen=True)
class RecordWriteOutcome:
    """Outcome of writing one document inside a batch."""

    business_id: str
    document_key: UUID
    inserted: bool = False
    updated: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchResult:
    """Per-batch counts and the first few failure reasons."""

    batch_index: int
    attempted: int
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    failure_reasons: tuple[str, ...] = ()
    rejected: bool = False  # Whole batch failed, including its retry
    attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_index": self.batch_index,
            "attempted": self.attempted,
            "inserted": self.inserted,
            "updated": self.updated,
            "failed": self.failed,
            "failure_reasons": list(self.failure_reasons),
            "rejected": self.rejected,
            "attempts": self.attempts,
        }


@dataclass(frozen=True)
class EntityRunReport:
    """Summary of one entity type's run, handed to the report sink."""

    entity_type: EntityType
    collection: str
    state: EntityState
    rows_read: int = 0
    skipped: int = 0
    transformed: int = 0
    rejected: int = 0
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    orphans: int = 0
    issue_counts: dict[str, int] = field(default_factory=dict)
    batches: tuple[BatchResult, ...] = ()
    error_code: str | None = None
    error_message: str | None = None
    document_keys: tuple[UUID, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "collection": self.collection,
            "state": self.state.value,
            "rows_read": self.rows_read,
            "skipped": self.skipped,
            "transformed": self.transformed,
            "rejected": self.rejected,
            "inserted": self.inserted,
            "updated": self.updated,
            "failed": self.failed,
            "orphans": self.orphans,
            "issue_counts": dict(self.issue_counts),
            "batches": [b.to_dict() for b in self.batches],
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class RunReport:
    """Summary of one pipeline run across all entity types."""

    run_id: UUID
    started_at: datetime
    finished_at: datetime
    config_hash: str
    full_replace: bool
    entities: tuple[EntityRunReport, ...] = ()
    verification_passed: bool | None = None  # None when verification was not requested
    verification_failures: tuple[str, ...] = ()
    aborted: bool = False

    @property
    def failed_entities(self) -> tuple[EntityType, ...]:
        return tuple(e.entity_type for e in self.entities if e.state == EntityState.FAILED)

    @property
    def exit_code(self) -> int:
        """Non-zero when any entity type failed or post-load verification failed."""
        if self.failed_entities or self.verification_passed is False:
            return 1
        return 0

    def entity(self, entity_type: EntityType) -> EntityRunReport | None:
        for e in self.entities:
            if e.entity_type == entity_type:
                return e
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "config_hash": self.config_hash,
            "full_replace": self.full_replace,
            "aborted": self.aborted,
            "verification_passed": self.verification_passed,
            "verification_failures": list(self.verification_failures),
            "entities": [e.to_dict() for e in self.entities],
            "exit_code": self.exit_code,
        }
