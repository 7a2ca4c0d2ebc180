"""Source adapters: read export files into ordered row dicts."""

from media_ingestion.adapters.base import SourceAdapter, SourceRows
from media_ingestion.adapters.json_adapter import JsonSourceAdapter
from media_ingestion.adapters.reader import RecordReader

__all__ = [
    "JsonSourceAdapter",
    "RecordReader",
    "SourceAdapter",
    "SourceRows",
]
