"""
Export service: JSON files for downstream consumers.

Per collection it writes
    <collection>.json             -- array of {"_id": document key, ...body}
    <collection>-id-mapping.json  -- {business id: document key}
Bodies are already JSON-safe (see mapping.engine.to_jsonable).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Sequence
from uuid import UUID

from media_kernel.logging_config import get_logger

from media_ingestion.domain.types import ResolvedDocument

logger = get_logger("ingestion.export")


def export_document(document: ResolvedDocument) -> dict[str, Any]:
    return {"_id": str(document.document_key), **document.body}


class ExportService:
    """Writes collection and id-mapping files into one output directory."""

    def __init__(self, output_dir: Path | str):
        self._output_dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def export(
        self,
        collection: str,
        documents: Sequence[ResolvedDocument],
        id_mapping: Mapping[str, UUID],
    ) -> tuple[Path, Path]:
        """Write both files for one collection. Returns (documents path, mapping path)."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        documents_path = self._output_dir / f"{collection}.json"
        mapping_path = self._output_dir / f"{collection}-id-mapping.json"

        documents_path.write_text(
            json.dumps([export_document(d) for d in documents], indent=2),
            encoding="utf-8",
        )
        mapping_path.write_text(
            json.dumps({bid: str(key) for bid, key in id_mapping.items()}, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        logger.info(
            "collection_exported",
            extra={
                "collection": collection,
                "documents": len(documents),
                "path": str(documents_path),
            },
        )
        return documents_path, mapping_path
