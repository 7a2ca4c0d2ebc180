"""Child-to-parent roll-ups (campaigns and strategies)."""

from media_ingestion.aggregation.aggregator import (
    Aggregator,
    CampaignAggregate,
    LineItemRollup,
    TraderRef,
    resolve_line_item_traders,
    trader_ids_of,
)

__all__ = [
    "Aggregator",
    "CampaignAggregate",
    "LineItemRollup",
    "TraderRef",
    "resolve_line_item_traders",
    "trader_ids_of",
]
