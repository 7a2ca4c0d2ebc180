"""
Record reader: resolves a named source set to its file and reads it.

Required source sets that are absent raise SourceNotFoundError. Optional ones
return an empty SourceRows with ``present=False``; presence is advisory.
"""

from __future__ import annotations

from pathlib import Path

from media_config.schema import PipelineConfig
from media_kernel.exceptions import SourceNotFoundError
from media_kernel.logging_config import get_logger

from media_ingestion.adapters.base import SourceAdapter, SourceRows
from media_ingestion.adapters.json_adapter import JsonSourceAdapter

logger = get_logger("ingestion.reader")


class RecordReader:
    """Reads source sets from one export directory."""

    def __init__(
        self,
        source_dir: Path | str,
        config: PipelineConfig,
        adapter: SourceAdapter | None = None,
    ):
        self._source_dir = Path(source_dir)
        self._config = config
        self._adapter = adapter or JsonSourceAdapter()

    def path_for(self, source_name: str) -> Path:
        source = self._config.sources.get(source_name)
        if source is None:
            raise KeyError(f"Unknown source set: {source_name!r}")
        return self._source_dir / source.filename

    def read(self, source_name: str) -> SourceRows:
        """Read one source set. No side effects."""
        path = self.path_for(source_name)
        source = self._config.sources[source_name]

        if not path.is_file():
            if source.optional:
                logger.info(
                    "optional_source_absent",
                    extra={"source": source_name, "path": str(path)},
                )
                return SourceRows(source_name=source_name, rows=(), present=False)
            raise SourceNotFoundError(source_name, str(path))

        result = self._adapter.read(source_name, path)
        logger.info(
            "source_read",
            extra={"source": source_name, "rows": len(result.rows), "skipped": result.skipped},
        )
        return result
