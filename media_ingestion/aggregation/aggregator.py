"""
Aggregator: roll child line-item facts up to strategies and campaigns.

A campaign's roll-up walks campaign -> strategies -> line items through the
one-to-many indices, in source order. Nothing is mutated; the same index
contents always yield the same result.

Trader sets are deduplicated by user business id and keep first-seen order;
the first display name seen for an id wins. A line item's trader set is
exactly what ``resolve_line_item_traders`` returns for it, so a campaign's
trader set is the union of its reachable line items' sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Sequence

from media_config.schema import PipelineConfig
from media_kernel.clock import Clock, SystemClock
from media_kernel.logging_config import get_logger

from media_ingestion.indexing.indexer import SourceIndices, user_business_id
from media_ingestion.mapping.engine import (
    business_id_of,
    clean_str,
    normalize_decimal,
    parse_date,
)
from media_ingestion.mapping.vocabulary import classify_user_role, normalize_platform

logger = get_logger("ingestion.aggregator")

Row = dict[str, Any]


@dataclass(frozen=True)
class TraderRef:
    """A user assigned to trade one or more line items."""

    business_id: str
    name: str | None
    email: str | None
    role: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.business_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


@dataclass(frozen=True)
class LineItemRollup:
    """Facts accumulated over a sequence of line items."""

    traders: tuple[TraderRef, ...] = ()
    line_item_count: int = 0
    active_line_item_count: int = 0
    channels: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    formats: tuple[str, ...] = ()
    total_budget: Decimal = Decimal("0")
    line_item_ids: tuple[str, ...] = ()
    unresolved_trader_ids: tuple[str, ...] = ()

    @property
    def trader_ids(self) -> frozenset[str]:
        return frozenset(t.business_id for t in self.traders)


@dataclass(frozen=True)
class CampaignAggregate(LineItemRollup):
    """Roll-up for one campaign across all of its strategies."""

    strategy_count: int = 0
    strategy_ids: tuple[str, ...] = ()


@dataclass
class _Accumulator:
    traders: dict[str, TraderRef] = field(default_factory=dict)
    line_item_count: int = 0
    active: int = 0
    channels: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    formats: list[str] = field(default_factory=list)
    total: Decimal = Decimal("0")
    line_item_ids: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @staticmethod
    def _add_distinct(values: list[str], value: str | None) -> None:
        if value and value not in values:
            values.append(value)


def trader_ids_of(row: Row) -> list[str]:
    """Raw user row ids assigned to a line item, in source order."""
    raw = row.get("media_trader_user_ids")
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        values: Iterable[Any] = raw
    else:
        values = str(raw).strip("{}[]").split(",")
    ids: list[str] = []
    for v in values:
        bid = business_id_of(v.strip().strip('"') if isinstance(v, str) else v)
        if bid and bid not in ids:
            ids.append(bid)
    return ids


def resolve_line_item_traders(
    row: Row, indices: SourceIndices
) -> tuple[list[TraderRef], list[str]]:
    """Resolve a line item's assigned user ids to TraderRefs; returns (resolved, unresolved ids)."""
    resolved: list[TraderRef] = []
    unresolved: list[str] = []
    seen: set[str] = set()
    for raw_id in trader_ids_of(row):
        user = indices.users_by_row_id.get(raw_id) or indices.users.get(raw_id)
        if user is None:
            unresolved.append(raw_id)
            continue
        bid = user_business_id(user)
        if bid is None or bid in seen:
            continue
        seen.add(bid)
        resolved.append(
            TraderRef(
                business_id=bid,
                name=clean_str(user.get("name")),
                email=(clean_str(user.get("email")) or "").lower() or None,
                role=classify_user_role(user.get("role"), user.get("zoho_role")),
            )
        )
    return resolved, unresolved


class Aggregator:
    """Computes line-item roll-ups for strategies and campaigns."""

    def __init__(
        self,
        indices: SourceIndices,
        config: PipelineConfig,
        clock: Clock | None = None,
    ):
        self._indices = indices
        self._config = config
        self._clock = clock or SystemClock()

    def is_active(self, row: Row, today: date | None = None) -> bool:
        """start <= today <= end; any unresolved date counts as active."""
        today = today or self._clock.today()
        start = parse_date(row.get("start_date")).value if row.get("start_date") else None
        end = parse_date(row.get("end_date")).value if row.get("end_date") else None
        if end is None and start is not None:
            end = start + timedelta(days=self._config.end_date_horizon_days)
        if start is None or end is None:
            return True
        return start <= today <= end

    def _budget(self, row: Row) -> Decimal:
        raw = row.get("price")
        if raw is None:
            return Decimal("0")
        result = normalize_decimal(raw, self._config.decimal_places, self._config.rounding)
        return result.value if result.success else Decimal("0")

    def _accumulate(self, acc: _Accumulator, line_items: Sequence[Row], today: date) -> None:
        for li in line_items:
            acc.line_item_count += 1
            if self.is_active(li, today):
                acc.active += 1
            li_id = business_id_of(li.get("id"))
            if li_id:
                acc.line_item_ids.append(li_id)
            acc._add_distinct(acc.channels, clean_str(li.get("media_type")))
            if clean_str(li.get("platform")):
                acc._add_distinct(acc.platforms, normalize_platform(li.get("platform")))
            acc._add_distinct(acc.formats, clean_str(li.get("ad_format")))
            acc.total += self._budget(li)
            traders, unresolved = resolve_line_item_traders(li, self._indices)
            for t in traders:
                if t.business_id not in acc.traders:
                    acc.traders[t.business_id] = t
            for u in unresolved:
                if u not in acc.unresolved:
                    acc.unresolved.append(u)

    def _rollup_fields(self, acc: _Accumulator) -> dict[str, Any]:
        return {
            "traders": tuple(acc.traders.values()),
            "line_item_count": acc.line_item_count,
            "active_line_item_count": acc.active,
            "channels": tuple(acc.channels),
            "platforms": tuple(acc.platforms),
            "formats": tuple(acc.formats),
            "total_budget": acc.total,
            "line_item_ids": tuple(acc.line_item_ids),
            "unresolved_trader_ids": tuple(acc.unresolved),
        }

    def aggregate_strategy(self, strategy_id: Any) -> LineItemRollup:
        """Roll up one strategy's line items. Zero line items -> empty roll-up."""
        acc = _Accumulator()
        self._accumulate(
            acc,
            self._indices.line_items_by_strategy.children(strategy_id),
            self._clock.today(),
        )
        return LineItemRollup(**self._rollup_fields(acc))

    def aggregate_campaign(self, campaign_id: Any) -> CampaignAggregate:
        """Roll up every line item reachable through a campaign's strategies."""
        acc = _Accumulator()
        today = self._clock.today()
        strategies = self._indices.strategies_by_campaign.children(campaign_id)
        strategy_ids: list[str] = []
        for strategy in strategies:
            sid = business_id_of(strategy.get("id"))
            if sid is None:
                continue
            strategy_ids.append(sid)
            self._accumulate(acc, self._indices.line_items_by_strategy.children(sid), today)
        return CampaignAggregate(
            **self._rollup_fields(acc),
            strategy_count=len(strategy_ids),
            strategy_ids=tuple(strategy_ids),
        )

    def aggregate_campaigns(self, campaign_ids: Iterable[Any]) -> dict[str, CampaignAggregate]:
        """Aggregate many campaigns, keyed by campaign business id."""
        result: dict[str, CampaignAggregate] = {}
        for cid in campaign_ids:
            key = business_id_of(cid)
            if key is None or key in result:
                continue
            result[key] = self.aggregate_campaign(key)
        logger.info("campaigns_aggregated", extra={"campaigns": len(result)})
        return result
