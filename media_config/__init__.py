"""
Pipeline configuration for the reconciliation engine.

Every component receives a ``PipelineConfig`` at construction. Defaults match
the reference export/load behavior; ``load_pipeline_config`` overrides them
from a YAML file.
"""

from media_config.loader import load_pipeline_config, load_yaml_file, parse_pipeline_config
from media_config.schema import (
    DEFAULT_KEY_NAMESPACE,
    CollectionDef,
    PipelineConfig,
    SourceDef,
)

__all__ = [
    "DEFAULT_KEY_NAMESPACE",
    "CollectionDef",
    "PipelineConfig",
    "SourceDef",
    "load_pipeline_config",
    "load_yaml_file",
    "parse_pipeline_config",
]
