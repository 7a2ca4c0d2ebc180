"""
Source adapter protocol and the rows DTO it returns.

Contract:
    SourceAdapter.read() returns the ordered rows of one source set, or raises
    SourceNotFoundError / MalformedSourceError.

Architecture: media_ingestion/adapters. File I/O only, no DB imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for reading one source set into row dicts."""

    def read(self, source_name: str, source_path: Path) -> "SourceRows":
        """Return every row of the source set, in source order."""
        ...


@dataclass(frozen=True)
class SourceRows:
    """Rows read from one source set."""

    source_name: str
    rows: tuple[dict[str, Any], ...]
    skipped: int = 0  # Array elements that were not objects
    present: bool = True  # False when an optional source was absent

    def __len__(self) -> int:
        return len(self.rows)
