"""
PipelineConfig schema.

The explicit configuration struct passed into every pipeline component at
construction. Defaults reproduce the reference behavior of the export/load
runs (batch size 1000, six fractional digits, round-half-up, 30-day end-date
horizon). YAML files parsed by ``media_config.loader`` override individual
fields; nothing reads module-level constants at run time.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field, fields
from decimal import ROUND_HALF_UP
from typing import Any, Mapping
from uuid import UUID

# Fixed namespace for document-key derivation. Changing it re-keys every
# document in every collection.
DEFAULT_KEY_NAMESPACE = UUID("6f1d3c2e-8a4b-5e9f-9c3d-2b7a1e4f5d60")


@dataclass(frozen=True)
class SourceDef:
    """One source set in the export directory."""

    filename: str
    optional: bool = False


@dataclass(frozen=True)
class CollectionDef:
    """Target collection for one entity type."""

    name: str
    unique_fields: tuple[str, ...] = ()


def _default_sources() -> Mapping[str, SourceDef]:
    return {
        "accounts": SourceDef("accounts.json"),
        "users": SourceDef("users.json"),
        "campaigns": SourceDef("campaigns.json"),
        "strategies": SourceDef("strategies.json"),
        "line_items": SourceDef("line_items.json"),
        "media_buys": SourceDef("media_buys.json"),
        "line_item_media_buys": SourceDef("line_item_media_buys.json", optional=True),
        "media_platforms": SourceDef("media_platforms.json", optional=True),
        "platform_buy_daily_impressions": SourceDef(
            "platform_buy_daily_impressions.json", optional=True
        ),
    }


def _default_collections() -> Mapping[str, CollectionDef]:
    return {
        "account": CollectionDef("accounts"),
        "user": CollectionDef("users"),
        "campaign": CollectionDef("campaigns", unique_fields=("campaignNumber",)),
        "strategy": CollectionDef("strategies"),
        "line_item": CollectionDef("lineItems"),
        "media_buy": CollectionDef("mediaBuys"),
    }


@dataclass(frozen=True)
class PipelineConfig:
    """Effective configuration for one reconciliation run."""

    batch_size: int = 1000
    decimal_places: int = 6
    rounding: str = ROUND_HALF_UP
    end_date_horizon_days: int = 30
    max_failure_reasons: int = 5
    batch_retry_attempts: int = 1
    media_buy_completion_ratio: str = "0.95"
    default_currency: str = "USD"
    default_margin_percentage: str = "30"
    key_namespace: UUID = DEFAULT_KEY_NAMESPACE
    sources: Mapping[str, SourceDef] = field(default_factory=_default_sources)
    collections: Mapping[str, CollectionDef] = field(default_factory=_default_collections)

    def collection_for(self, entity_type: str) -> CollectionDef:
        """Return the target collection definition for an entity type."""
        return self.collections[entity_type]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("sources", "collections")
        }
        data["key_namespace"] = str(self.key_namespace)
        data["sources"] = {k: asdict(v) for k, v in self.sources.items()}
        data["collections"] = {
            k: {"name": v.name, "unique_fields": list(v.unique_fields)}
            for k, v in self.collections.items()
        }
        return data

    def config_hash(self) -> str:
        """Deterministic SHA-256 of the effective configuration."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
