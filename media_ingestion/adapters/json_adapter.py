"""
JSON source adapter.

Each source set is one file holding a JSON array of objects. Numbers with a
fractional part are read as Decimal, never float. Row keys are stripped and
lower-cased so exports with mixed casing line up.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from media_kernel.exceptions import MalformedSourceError, SourceNotFoundError
from media_kernel.logging_config import get_logger

from media_ingestion.adapters.base import SourceRows

logger = get_logger("ingestion.json_adapter")


def _normalize_row_keys(item: dict[str, Any]) -> dict[str, Any]:
    return {str(k).strip().lower(): v for k, v in item.items() if isinstance(k, str)}


class JsonSourceAdapter:
    """Read a JSON array file as one dict per element."""

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding

    def read(self, source_name: str, source_path: Path) -> SourceRows:
        if not source_path.is_file():
            raise SourceNotFoundError(source_name, str(source_path))

        try:
            with source_path.open("r", encoding=self._encoding) as f:
                data = json.load(f, parse_float=Decimal)
        except json.JSONDecodeError as exc:
            raise MalformedSourceError(source_name, str(source_path), f"invalid JSON: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise MalformedSourceError(
                source_name, str(source_path), f"not {self._encoding}: {exc}"
            ) from exc

        if not isinstance(data, list):
            raise MalformedSourceError(
                source_name,
                str(source_path),
                f"expected a JSON array, got {type(data).__name__}",
            )

        rows: list[dict[str, Any]] = []
        skipped = 0
        for item in data:
            if not isinstance(item, dict):
                skipped += 1
                continue
            rows.append(_normalize_row_keys(item))
        if skipped:
            logger.warning(
                "source_non_object_rows_skipped",
                extra={"source": source_name, "skipped": skipped},
            )
        return SourceRows(source_name=source_name, rows=tuple(rows), skipped=skipped)
