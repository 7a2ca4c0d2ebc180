"""
Mapping engine: pure coercion from loosely-typed source values to typed values.

Every coercion that fails substitutes a safe default and records a
FIELD_COERCION issue; a row is never aborted because one field is bad.
ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from media_config.schema import PipelineConfig
from media_ingestion.domain.types import IssueCode, RecordIssue


# -----------------------------------------------------------------------------
# Result types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing one value to a target type."""

    success: bool
    value: Any = None
    error: str | None = None


# -----------------------------------------------------------------------------
# Pure coercions
# -----------------------------------------------------------------------------


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def clean_str(value: Any) -> str | None:
    """Strip strings; stringify scalars; blank -> None."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    return str(value)


def business_id_of(value: Any) -> str | None:
    """
    Canonical string form of a source identifier, or None if absent.

    Integer-valued numbers drop any fractional zeros so ``5`` and ``5.0``
    identify the same record.
    """
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(int(value))
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_decimal(
    value: Any,
    places: int = 6,
    rounding: str = ROUND_HALF_UP,
) -> CoercionResult:
    """
    Parse ``value`` into a fixed-point Decimal with ``places`` fractional digits.

    "12.3456785" -> 12.345679 with ROUND_HALF_UP. Floats go through ``str`` so
    binary representation error is not carried into the result.
    """
    if isinstance(value, bool):
        return CoercionResult(success=False, error=f"Cannot coerce boolean to decimal: {value!r}")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip().replace(",", "").lstrip("$")
        try:
            d = Decimal(s)
        except InvalidOperation:
            return CoercionResult(success=False, error=f"Cannot coerce to decimal: {value!r}")
    else:
        return CoercionResult(success=False, error=f"Cannot coerce to decimal: {value!r}")

    if not d.is_finite():
        return CoercionResult(success=False, error=f"Non-finite decimal: {value!r}")
    quantum = Decimal(1).scaleb(-places)
    try:
        return CoercionResult(success=True, value=d.quantize(quantum, rounding=rounding))
    except InvalidOperation:
        return CoercionResult(success=False, error=f"Decimal out of range: {value!r}")


def parse_date(value: Any) -> CoercionResult:
    """Parse an ISO date or datetime string to a date."""
    if isinstance(value, datetime):
        return CoercionResult(success=True, value=value.date())
    if isinstance(value, date):
        return CoercionResult(success=True, value=value)
    if not isinstance(value, str):
        return CoercionResult(success=False, error=f"Cannot coerce to date: {value!r}")
    s = value.strip()
    try:
        return CoercionResult(success=True, value=date.fromisoformat(s))
    except ValueError:
        pass
    try:
        return CoercionResult(
            success=True, value=datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        )
    except ValueError:
        return CoercionResult(success=False, error=f"Cannot coerce to date: {value!r}")


def parse_bool(value: Any) -> CoercionResult:
    if isinstance(value, bool):
        return CoercionResult(success=True, value=value)
    if isinstance(value, (int, Decimal)):
        return CoercionResult(success=True, value=value != 0)
    if isinstance(value, str):
        low = value.strip().lower()
        if low in ("true", "t", "yes", "y", "1"):
            return CoercionResult(success=True, value=True)
        if low in ("false", "f", "no", "n", "0", ""):
            return CoercionResult(success=True, value=False)
    return CoercionResult(success=False, error=f"Cannot coerce to boolean: {value!r}")


def is_soft_deleted(row: dict[str, Any]) -> bool:
    """True when the row carries a truthy ``is_deleted`` flag."""
    result = parse_bool(row.get("is_deleted"))
    return result.success and result.value is True


def to_jsonable(value: Any) -> Any:
    """Recursively convert Decimal/date/UUID/Enum values into JSON-safe primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# -----------------------------------------------------------------------------
# Row-bound coercer collecting issues
# -----------------------------------------------------------------------------


class FieldCoercer:
    """
    Reads typed fields from one raw row, collecting FIELD_COERCION issues.

    Absent values yield the default silently; present-but-unparseable values
    yield the default and an issue.
    """

    def __init__(
        self,
        row: dict[str, Any],
        config: PipelineConfig,
        entity_type: str,
        business_id: str | None,
    ):
        self._row = row
        self._config = config
        self._entity_type = entity_type
        self._business_id = business_id
        self.issues: list[RecordIssue] = []

    def _flag(self, field: str, message: str) -> None:
        self.issues.append(
            RecordIssue(
                code=IssueCode.FIELD_COERCION,
                message=message,
                entity_type=self._entity_type,
                business_id=self._business_id,
                field=field,
            )
        )

    def text(self, field: str, default: str | None = None) -> str | None:
        value = clean_str(self._row.get(field))
        return default if value is None else value

    def decimal(self, field: str, default: Decimal | None = Decimal("0")) -> Decimal | None:
        raw = self._row.get(field)
        if is_blank(raw):
            return self.normalize(default) if default is not None else None
        result = normalize_decimal(raw, self._config.decimal_places, self._config.rounding)
        if not result.success:
            self._flag(field, result.error or "invalid decimal")
            return self.normalize(default) if default is not None else None
        return result.value

    def normalize(self, value: Decimal) -> Decimal:
        """Quantize an already-computed Decimal to the configured precision."""
        return normalize_decimal(value, self._config.decimal_places, self._config.rounding).value

    def integer(self, field: str, default: int | None = None) -> int | None:
        raw = self._row.get(field)
        if is_blank(raw):
            return default
        result = normalize_decimal(raw, 0, self._config.rounding)
        if not result.success:
            self._flag(field, result.error or "invalid integer")
            return default
        return int(result.value)

    def date(self, field: str) -> date | None:
        raw = self._row.get(field)
        if is_blank(raw):
            return None
        result = parse_date(raw)
        if not result.success:
            self._flag(field, result.error or "invalid date")
            return None
        return result.value

    def end_date(self, field: str, start: date | None) -> date | None:
        """End date, defaulting to start + configured horizon when absent or invalid."""
        end = self.date(field)
        if end is None and start is not None:
            return start + timedelta(days=self._config.end_date_horizon_days)
        return end

    def boolean(self, field: str, default: bool = False) -> bool:
        raw = self._row.get(field)
        if raw is None:
            return default
        result = parse_bool(raw)
        if not result.success:
            self._flag(field, result.error or "invalid boolean")
            return default
        return result.value
