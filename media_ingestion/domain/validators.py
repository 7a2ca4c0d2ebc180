"""
Pluggable record validators.

A validator is any callable ``(TransformedRecord) -> Sequence[RecordIssue]``.
Returning one or more issues rejects the record before it reaches the loader.
Validation against a formal schema language is left to the caller; the
helpers here cover the common shape checks.

ZERO I/O.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from media_ingestion.domain.types import (
    EntityType,
    IssueCode,
    IssueSeverity,
    RecordIssue,
    TransformedRecord,
)

RecordValidator = Callable[[TransformedRecord], Sequence[RecordIssue]]


def _issue(record: TransformedRecord, field: str, message: str) -> RecordIssue:
    return RecordIssue(
        code=IssueCode.VALIDATION_FAILED,
        message=message,
        entity_type=record.entity_type.value,
        business_id=record.business_id,
        field=field,
        severity=IssueSeverity.ERROR,
    )


def require_fields(
    fields_by_type: dict[EntityType, Iterable[str]],
) -> RecordValidator:
    """Reject records whose body lacks a non-empty value for any listed field."""
    required = {k: tuple(v) for k, v in fields_by_type.items()}

    def _validate(record: TransformedRecord) -> list[RecordIssue]:
        issues: list[RecordIssue] = []
        for name in required.get(record.entity_type, ()):
            value = record.body.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(_issue(record, name, f"Required field {name!r} is empty"))
        return issues

    return _validate


def compose_validators(*validators: RecordValidator) -> RecordValidator:
    """Run several validators and concatenate their issues."""

    def _validate(record: TransformedRecord) -> list[RecordIssue]:
        issues: list[RecordIssue] = []
        for v in validators:
            issues.extend(v(record))
        return issues

    return _validate
