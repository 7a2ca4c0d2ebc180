"""
Configuration Loader (``media_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into a frozen ``PipelineConfig``. Keys in the
file override the documented defaults; anything not mentioned keeps its
default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or badly-typed value  -> ``InvalidConfigError``.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from media_config.schema import CollectionDef, PipelineConfig, SourceDef
from media_kernel.exceptions import InvalidConfigError

_INT_KEYS = (
    "batch_size",
    "decimal_places",
    "end_date_horizon_days",
    "max_failure_reasons",
    "batch_retry_attempts",
)
_DECIMAL_KEYS = ("media_buy_completion_ratio", "default_margin_percentage")
_ROUNDING_MODES = (
    "ROUND_HALF_UP",
    "ROUND_HALF_EVEN",
    "ROUND_HALF_DOWN",
    "ROUND_UP",
    "ROUND_DOWN",
    "ROUND_CEILING",
    "ROUND_FLOOR",
    "ROUND_05UP",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError("<root>", f"expected a mapping, got {type(data).__name__}")
    return data


def _parse_sources(raw: Any) -> dict[str, SourceDef]:
    if not isinstance(raw, dict):
        raise InvalidConfigError("sources", "expected a mapping of source name to definition")
    sources = dict(PipelineConfig().sources)
    for name, entry in raw.items():
        if isinstance(entry, str):
            sources[name] = SourceDef(filename=entry)
        elif isinstance(entry, dict):
            unknown = set(entry) - {"filename", "optional"}
            if unknown:
                raise InvalidConfigError(f"sources.{name}", f"unknown keys {sorted(unknown)}")
            if "filename" not in entry:
                raise InvalidConfigError(f"sources.{name}", "filename is required")
            sources[name] = SourceDef(
                filename=str(entry["filename"]),
                optional=bool(entry.get("optional", False)),
            )
        else:
            raise InvalidConfigError(f"sources.{name}", "expected a filename or a mapping")
    return sources


def _parse_collections(raw: Any) -> dict[str, CollectionDef]:
    if not isinstance(raw, dict):
        raise InvalidConfigError("collections", "expected a mapping of entity type to collection")
    collections = dict(PipelineConfig().collections)
    for entity_type, entry in raw.items():
        if entity_type not in collections:
            raise InvalidConfigError(f"collections.{entity_type}", "unknown entity type")
        if isinstance(entry, str):
            collections[entity_type] = CollectionDef(
                name=entry, unique_fields=collections[entity_type].unique_fields
            )
        elif isinstance(entry, dict):
            unknown = set(entry) - {"name", "unique_fields"}
            if unknown:
                raise InvalidConfigError(
                    f"collections.{entity_type}", f"unknown keys {sorted(unknown)}"
                )
            collections[entity_type] = CollectionDef(
                name=str(entry.get("name", collections[entity_type].name)),
                unique_fields=tuple(entry.get("unique_fields", ())),
            )
        else:
            raise InvalidConfigError(f"collections.{entity_type}", "expected a name or a mapping")
    return collections


def parse_pipeline_config(data: dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from a parsed dict, validating every key."""
    known = {f.name for f in fields(PipelineConfig)}
    unknown = set(data) - known
    if unknown:
        raise InvalidConfigError(sorted(unknown)[0], "unknown configuration key")

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigError(key, f"expected an integer, got {value!r}")
            if value < 0 or (key == "batch_size" and value == 0):
                raise InvalidConfigError(key, f"out of range: {value!r}")
            kwargs[key] = value
        elif key in _DECIMAL_KEYS:
            try:
                kwargs[key] = str(Decimal(str(value)))
            except InvalidOperation:
                raise InvalidConfigError(key, f"expected a number, got {value!r}")
        elif key == "rounding":
            if value not in _ROUNDING_MODES:
                raise InvalidConfigError(key, f"unsupported rounding mode {value!r}")
            kwargs[key] = value
        elif key == "key_namespace":
            try:
                kwargs[key] = UUID(str(value))
            except ValueError:
                raise InvalidConfigError(key, f"expected a UUID, got {value!r}")
        elif key == "sources":
            kwargs[key] = _parse_sources(value)
        elif key == "collections":
            kwargs[key] = _parse_collections(value)
        else:
            kwargs[key] = str(value)
    return PipelineConfig(**kwargs)


def load_pipeline_config(path: Path | str) -> PipelineConfig:
    """Load a YAML file and return the effective PipelineConfig."""
    return parse_pipeline_config(load_yaml_file(Path(path)))
