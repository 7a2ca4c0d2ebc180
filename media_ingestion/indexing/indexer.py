"""
Relationship indexer.

Two index kinds, both built in one pass over their rows:

* ``OneToManyIndex`` -- parent id -> children in source order. Children whose
  foreign key is null or blank go to an orphan bucket instead of being
  dropped.
* ``PointIndex`` -- row id -> row. The first row seen for an id wins.

``SourceIndices`` bundles every index the transformers and the aggregator
consult, built once per run from whatever source sets were read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from media_ingestion.mapping.engine import business_id_of, is_soft_deleted

Row = dict[str, Any]
KeyFn = Callable[[Row], Any]


def _key_fn(key: str | KeyFn) -> KeyFn:
    if callable(key):
        return key
    return lambda row: row.get(key)


class OneToManyIndex:
    """Parent id -> ordered children; null foreign keys land in ``orphans``."""

    def __init__(self, rows: Iterable[Row], foreign_key: str | KeyFn):
        get = _key_fn(foreign_key)
        self._children: dict[str, list[Row]] = {}
        self._orphans: list[Row] = []
        for row in rows:
            parent_id = business_id_of(get(row))
            if parent_id is None:
                self._orphans.append(row)
                continue
            self._children.setdefault(parent_id, []).append(row)

    def children(self, parent_id: Any) -> Sequence[Row]:
        key = business_id_of(parent_id)
        if key is None:
            return ()
        return tuple(self._children.get(key, ()))

    def count(self, parent_id: Any) -> int:
        key = business_id_of(parent_id)
        return len(self._children.get(key, ())) if key is not None else 0

    @property
    def orphans(self) -> Sequence[Row]:
        return tuple(self._orphans)

    def __contains__(self, parent_id: Any) -> bool:
        key = business_id_of(parent_id)
        return key is not None and key in self._children

    def __len__(self) -> int:
        return len(self._children)


class PointIndex:
    """Row id -> row, first occurrence wins."""

    def __init__(self, rows: Iterable[Row], key: str | KeyFn):
        get = _key_fn(key)
        self._rows: dict[str, Row] = {}
        for row in rows:
            row_id = business_id_of(get(row))
            if row_id is None or row_id in self._rows:
                continue
            self._rows[row_id] = row

    def get(self, row_id: Any) -> Row | None:
        key = business_id_of(row_id)
        if key is None:
            return None
        return self._rows.get(key)

    def __contains__(self, row_id: Any) -> bool:
        return self.get(row_id) is not None

    def __len__(self) -> int:
        return len(self._rows)


def user_business_id(row: Row) -> str | None:
    """Users are identified by their CRM id, falling back to the row id."""
    return business_id_of(row.get("zoho_user_id")) or business_id_of(row.get("id"))


def _not_deleted(rows: Iterable[Row]) -> list[Row]:
    return [r for r in rows if not is_soft_deleted(r)]


def first_per_id(rows: Iterable[Row], *, require_id: bool = True) -> list[Row]:
    """
    Keep the first row for each ``id``, in source order.

    The pipeline loads only the first row of a repeated business id and
    rejects rows without one, so roll-ups must see the same rows. Rows
    without an id are dropped unless ``require_id`` is False.
    """
    seen: set[str] = set()
    kept: list[Row] = []
    for row in rows:
        row_id = business_id_of(row.get("id"))
        if row_id is None:
            if not require_id:
                kept.append(row)
            continue
        if row_id in seen:
            continue
        seen.add(row_id)
        kept.append(row)
    return kept


@dataclass
class SourceIndices:
    """Every relationship index used by one pipeline run."""

    campaigns_by_account: OneToManyIndex
    strategies_by_campaign: OneToManyIndex
    line_items_by_strategy: OneToManyIndex
    links_by_line_item: OneToManyIndex
    links_by_media_buy: OneToManyIndex
    impressions_by_media_buy: OneToManyIndex
    accounts: PointIndex
    campaigns: PointIndex
    users: PointIndex
    users_by_row_id: PointIndex
    line_items: PointIndex
    media_platforms: PointIndex
    sizes: dict[str, int] = field(default_factory=dict)

    @classmethod
    def build(cls, sources: dict[str, Sequence[Row]]) -> "SourceIndices":
        """Build all indices from the source sets that were read; missing sets index as empty."""

        def rows(name: str) -> Sequence[Row]:
            return sources.get(name, ())

        links = first_per_id(_not_deleted(rows("line_item_media_buys")), require_id=False)
        indices = cls(
            campaigns_by_account=OneToManyIndex(
                first_per_id(_not_deleted(rows("campaigns"))), "account_id"
            ),
            strategies_by_campaign=OneToManyIndex(first_per_id(rows("strategies")), "campaign_id"),
            line_items_by_strategy=OneToManyIndex(first_per_id(rows("line_items")), "strategy_id"),
            links_by_line_item=OneToManyIndex(links, "line_item_id"),
            links_by_media_buy=OneToManyIndex(links, "media_buy_id"),
            impressions_by_media_buy=OneToManyIndex(
                rows("platform_buy_daily_impressions"), "media_buy_id"
            ),
            accounts=PointIndex(rows("accounts"), "id"),
            campaigns=PointIndex(rows("campaigns"), "id"),
            users=PointIndex(rows("users"), user_business_id),
            users_by_row_id=PointIndex(rows("users"), "id"),
            line_items=PointIndex(rows("line_items"), "id"),
            media_platforms=PointIndex(rows("media_platforms"), "id"),
        )
        indices.sizes = {
            "campaigns_by_account": len(indices.campaigns_by_account),
            "strategies_by_campaign": len(indices.strategies_by_campaign),
            "line_items_by_strategy": len(indices.line_items_by_strategy),
            "links_by_line_item": len(indices.links_by_line_item),
            "accounts": len(indices.accounts),
            "users": len(indices.users),
            "media_platforms": len(indices.media_platforms),
        }
        for name in ("campaigns_by_account", "strategies_by_campaign", "line_items_by_strategy"):
            indices.sizes[f"{name}_orphans"] = len(getattr(indices, name).orphans)
        return indices
