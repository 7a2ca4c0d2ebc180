"""
Field transformers: one per entity type.

Each transformer is a pure function of (raw row, shared indices, optional
roll-up) -> TransformedRecord. Bodies are JSON-safe (Decimal as fixed-point
string, dates as ISO strings). Cross-entity references are not resolved here;
they are listed on the record as ``Reference`` values and rewritten to
document keys by the identity resolver.

Every transformer keeps the source ids it saw under ``legacy`` so an orphaned
record still carries its original parent reference.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from media_config.schema import PipelineConfig
from media_kernel.clock import Clock, SystemClock

from media_ingestion.aggregation.aggregator import (
    Aggregator,
    CampaignAggregate,
    LineItemRollup,
    resolve_line_item_traders,
    trader_ids_of,
)
from media_ingestion.domain.line_items import build_terms, classify_line_item
from media_ingestion.domain.types import (
    EntityType,
    IssueCode,
    IssueSeverity,
    RecordIssue,
    Reference,
    TransformedRecord,
)
from media_ingestion.indexing.indexer import SourceIndices, user_business_id
from media_ingestion.mapping.engine import (
    FieldCoercer,
    business_id_of,
    clean_str,
    is_soft_deleted,
    to_jsonable,
)
from media_ingestion.mapping.status import map_status
from media_ingestion.mapping.vocabulary import (
    classify_platform_type,
    classify_user_role,
    infer_unit_type,
    normalize_platform,
    split_kpis,
    split_name,
)

Row = dict[str, Any]


@dataclass
class TransformContext:
    """Shared, read-only inputs for every transformer in one run."""

    config: PipelineConfig
    indices: SourceIndices
    aggregator: Aggregator
    clock: Clock

    @classmethod
    def build(
        cls,
        config: PipelineConfig,
        indices: SourceIndices,
        clock: Clock | None = None,
    ) -> "TransformContext":
        clock = clock or SystemClock()
        return cls(
            config=config,
            indices=indices,
            aggregator=Aggregator(indices, config, clock),
            clock=clock,
        )


class EntityTransformer:
    """Base transformer: business id check, coercion issue collection, JSON-safe body."""

    entity_type: EntityType

    def __init__(self, context: TransformContext):
        self._ctx = context
        self._config = context.config
        self._indices = context.indices

    def business_id(self, row: Row) -> str | None:
        return business_id_of(row.get("id"))

    def transform(self, row: Row, rollup: Any = None) -> TransformedRecord:
        bid = self.business_id(row)
        if bid is None:
            return TransformedRecord(
                entity_type=self.entity_type,
                business_id=None,
                body={},
                issues=(
                    RecordIssue(
                        code=IssueCode.MISSING_BUSINESS_ID,
                        message=f"{self.entity_type.value} row has no business id",
                        entity_type=self.entity_type.value,
                        severity=IssueSeverity.ERROR,
                    ),
                ),
            )
        coercer = FieldCoercer(row, self._config, self.entity_type.value, bid)
        issues: list[RecordIssue] = []
        body, references = self._build(row, bid, coercer, issues, rollup)
        return TransformedRecord(
            entity_type=self.entity_type,
            business_id=bid,
            body=to_jsonable(body),
            references=tuple(references),
            issues=tuple(coercer.issues) + tuple(issues),
        )

    def _build(
        self,
        row: Row,
        bid: str,
        c: FieldCoercer,
        issues: list[RecordIssue],
        rollup: Any,
    ) -> tuple[dict[str, Any], list[Reference]]:
        raise NotImplementedError

    # -- shared helpers --------------------------------------------------------

    def _status(
        self, raw: Any, field: str, bid: str, issues: list[RecordIssue]
    ) -> tuple[str, str]:
        mapping = map_status(clean_str(raw))
        if not mapping.mapped:
            issues.append(
                RecordIssue(
                    code=IssueCode.UNMAPPED_STATUS,
                    message=f"Unknown status {raw!r}; defaulted to {mapping.status.value}",
                    entity_type=self.entity_type.value,
                    business_id=bid,
                    field=field,
                )
            )
        return mapping.status.value, mapping.level.value

    def _user_ref(self, raw: Any) -> Row | None:
        return self._indices.users.get(raw) or self._indices.users_by_row_id.get(raw)

    def _unresolved_users(
        self, raw_ids: list[str], field: str, bid: str, issues: list[RecordIssue]
    ) -> None:
        for raw in raw_ids:
            issues.append(
                RecordIssue(
                    code=IssueCode.UNRESOLVED_USER,
                    message=f"{field} references unknown user {raw!r}",
                    entity_type=self.entity_type.value,
                    business_id=bid,
                    field=field,
                )
            )

    def _ratio(self, numerator: Decimal, denominator: Decimal, c: FieldCoercer) -> Decimal:
        if denominator == 0:
            return c.normalize(Decimal("0"))
        return c.normalize(numerator / denominator)


# -----------------------------------------------------------------------------
# Accounts
# -----------------------------------------------------------------------------


class AccountTransformer(EntityTransformer):
    entity_type = EntityType.ACCOUNT

    def _build(self, row, bid, c, issues, rollup):
        referral = c.decimal("referral_percentage", default=None)
        markup = c.decimal("agency_markup_percentage", default=None)

        address_parts = {
            "street1": c.text("street_address"),
            "city": c.text("city"),
            "state": c.text("state"),
            "postalCode": c.text("postal_code"),
        }
        billing_address = None
        if any(address_parts.values()):
            billing_address = {k: v for k, v in address_parts.items() if v}
            billing_address["country"] = c.text("country", default="US")

        campaign_count = 0
        revenue = Decimal("0")
        for campaign in self._indices.campaigns_by_account.children(bid):
            campaign_count += 1
            cc = FieldCoercer(campaign, self._config, self.entity_type.value, bid)
            amount = cc.decimal("expected_revenue", default=None)
            if not amount:
                amount = cc.decimal("budget")
            revenue += amount

        body = {
            "name": c.text("name"),
            "status": "active",
            "referralRate": c.normalize(referral / 100) if referral is not None else None,
            "agencyMarkupRate": c.normalize(markup / 100) if markup is not None else None,
            "contact": {
                "primaryContactName": c.text("primary_contact_name"),
                "primaryContactEmail": (c.text("primary_contact_email") or "").lower() or None,
                "primaryContactPhone": c.text("primary_contact_phone"),
            },
            "billingAddress": billing_address,
            "campaignCount": campaign_count,
            "totalRevenue": c.normalize(revenue),
            "currency": self._config.default_currency,
            "legacy": {
                "id": bid,
                "zohoAccountId": c.text("zoho_account_id"),
                "teamId": c.text("team_id"),
            },
        }
        return body, []


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------


class UserTransformer(EntityTransformer):
    entity_type = EntityType.USER

    def business_id(self, row: Row) -> str | None:
        return user_business_id(row)

    def _build(self, row, bid, c, issues, rollup):
        first, last = c.text("first_name"), c.text("last_name")
        if not (first and last):
            first, last = split_name(row.get("name"))
        body = {
            "email": (c.text("email") or "").lower() or None,
            "firstName": first,
            "lastName": last or "",
            "displayName": c.text("name"),
            "role": classify_user_role(row.get("role"), row.get("zoho_role")),
            "phone": c.text("phone"),
            "isActive": c.boolean("is_active") and c.boolean("is_confirmed"),
            "legacy": {
                "id": business_id_of(row.get("id")),
                "zohoUserId": business_id_of(row.get("zoho_user_id")),
                "teamId": c.text("team_id"),
            },
        }
        return body, []


# -----------------------------------------------------------------------------
# Campaigns
# -----------------------------------------------------------------------------


class CampaignTransformer(EntityTransformer):
    entity_type = EntityType.CAMPAIGN

    def _build(self, row, bid, c, issues, rollup):
        aggregate: CampaignAggregate = rollup or self._ctx.aggregator.aggregate_campaign(bid)
        status, level = self._status(row.get("stage"), "stage", bid, issues)
        today = self._ctx.clock.today()

        start = c.date("flight_date")
        end = c.end_date("end_date", start)
        total_duration = (end - start).days if start and end else None
        days_elapsed = None
        if start and total_duration is not None:
            days_elapsed = max(0, min((today - start).days, total_duration))

        target = c.decimal("budget")
        actual = c.normalize(aggregate.total_budget)

        manager_raw = business_id_of(row.get("lead_account_owner_user_id"))
        manager_row = self._user_ref(manager_raw) if manager_raw else None
        manager = None
        manager_bid = manager_raw
        if manager_row is not None:
            manager_bid = user_business_id(manager_row)
            manager = {
                "userId": manager_bid,
                "name": clean_str(manager_row.get("name")),
                "email": (clean_str(manager_row.get("email")) or "").lower() or None,
            }
        elif manager_raw:
            self._unresolved_users([manager_raw], "accountManagerId", bid, issues)

        senior = [t for t in aggregate.traders if t.role == "senior_media_trader"]
        traders = [t for t in aggregate.traders if t.role != "senior_media_trader"]
        if aggregate.unresolved_trader_ids:
            self._unresolved_users(list(aggregate.unresolved_trader_ids), "traderIds", bid, issues)

        account_raw = business_id_of(row.get("account_id"))
        body = {
            "campaignNumber": c.text("campaign_number"),
            "name": c.text("campaign_name"),
            "status": status,
            "statusLevel": level,
            "team": {
                "accountManager": manager,
                "seniorMediaTraders": [t.to_dict() for t in senior],
                "mediaTraders": [t.to_dict() for t in traders],
            },
            "dates": {
                "start": start,
                "end": end,
                "totalDuration": total_duration,
                "daysElapsed": days_elapsed,
            },
            "price": {
                "targetAmount": target,
                "actualAmount": actual,
                "remainingAmount": c.normalize(target - actual),
                "currency": self._config.default_currency,
            },
            "expectedRevenue": c.decimal("expected_revenue", default=None),
            "proposedBudget": c.decimal("proposed_budget", default=None),
            "newBusiness": c.boolean("new_business"),
            "goalsKpis": split_kpis(row.get("goals_kpis")),
            "metrics": {
                "strategyCount": aggregate.strategy_count,
                "lineItemCount": aggregate.line_item_count,
                "activeLineItemCount": aggregate.active_line_item_count,
                "traderCount": len(aggregate.traders),
                "channels": list(aggregate.channels),
                "platforms": list(aggregate.platforms),
                "formats": list(aggregate.formats),
            },
            "legacy": {
                "id": bid,
                "accountId": account_raw,
                "leadAccountOwnerUserId": manager_raw,
            },
        }
        references = [
            Reference(field="accountId", target_type=EntityType.ACCOUNT, raw_value=account_raw),
            Reference(
                field="accountManagerId",
                target_type=EntityType.USER,
                raw_value=manager_bid if manager_row is not None else None,
                required=False,
            ),
            Reference(
                field="traderIds",
                target_type=EntityType.USER,
                required=False,
                many=True,
                raw_values=tuple(t.business_id for t in aggregate.traders),
            ),
        ]
        return body, references


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------


class StrategyTransformer(EntityTransformer):
    entity_type = EntityType.STRATEGY

    def _build(self, row, bid, c, issues, rollup):
        mix: LineItemRollup = rollup or self._ctx.aggregator.aggregate_strategy(bid)
        status, level = self._status(row.get("status"), "status", bid, issues)

        start = c.date("start_date")
        end = c.end_date("end_date", start)
        target = c.decimal("budget")
        allocated = c.normalize(mix.total_budget)
        margin_pct = c.decimal("margin", default=None)
        if not margin_pct:
            margin_pct = c.normalize(Decimal(self._config.default_margin_percentage))

        campaign_raw = business_id_of(row.get("campaign_id"))
        campaign_row = self._indices.campaigns.get(campaign_raw) if campaign_raw else None
        body = {
            "name": c.text("name"),
            "status": status,
            "statusLevel": level,
            "campaignNumber": clean_str(campaign_row.get("campaign_number")) if campaign_row else None,
            "dates": {
                "start": start,
                "end": end,
                "duration": (end - start).days if start and end else None,
            },
            "budget": {
                "targetAmount": target,
                "allocatedAmount": allocated,
                "remainingAmount": c.normalize(target - allocated),
                "currency": self._config.default_currency,
            },
            "margin": {
                "targetPercentage": margin_pct,
                "targetAmount": c.normalize(target * margin_pct / 100),
            },
            "kpis": split_kpis(row.get("kpis")),
            "objectives": c.text("objectives"),
            "targetAudience": c.text("target_audience"),
            "notes": c.text("notes"),
            "mediaMix": {
                "channels": list(mix.channels),
                "platforms": list(mix.platforms),
                "formats": list(mix.formats),
                "totalLineItems": mix.line_item_count,
                "activeLineItems": mix.active_line_item_count,
            },
            "lineItemIds": list(mix.line_item_ids),
            "legacy": {"id": bid, "campaignId": campaign_raw},
        }
        references = [
            Reference(field="campaignId", target_type=EntityType.CAMPAIGN, raw_value=campaign_raw),
        ]
        return body, references


# -----------------------------------------------------------------------------
# Line items
# -----------------------------------------------------------------------------


class LineItemTransformer(EntityTransformer):
    entity_type = EntityType.LINE_ITEM

    def _build(self, row, bid, c, issues, rollup):
        status, level = self._status(row.get("status"), "status", bid, issues)
        price = c.decimal("price")
        raw_price = None if row.get("price") is None else price
        target_margin = c.decimal("target_margin", default=None)
        name = c.text("name")
        line_item_type = c.text("line_item_type")
        kind = classify_line_item(name, line_item_type, raw_price, target_margin)

        unit_price = c.decimal("unit_price", default=None)
        quantity = c.decimal("quantity", default=None)
        estimated_value = None
        if unit_price is not None:
            estimated_value = c.normalize(unit_price * (quantity or 0))
        terms = build_terms(
            kind,
            price=price,
            target_margin=target_margin,
            default_margin_percentage=c.normalize(Decimal(self._config.default_margin_percentage)),
            notes=c.text("notes"),
            estimated_value=estimated_value,
            quantize=c.normalize,
        )

        start = c.date("start_date")
        end = c.end_date("end_date", start)
        impressions = c.integer("impressions")
        platform_raw = c.text("platform")

        traders, unresolved = resolve_line_item_traders(row, self._indices)
        self._unresolved_users(unresolved, "traderIds", bid, issues)

        strategy_raw = business_id_of(row.get("strategy_id"))
        campaign_raw = business_id_of(row.get("campaign_id"))
        body = {
            "name": name,
            "type": kind.value,
            "terms": terms.to_dict(),
            "status": status,
            "statusLevel": level,
            "unitType": infer_unit_type(
                row.get("conversions"), row.get("clicks"), row.get("media_type"), row.get("ad_format")
            ),
            "flightDates": {"start": start, "end": end},
            "isActive": self._ctx.aggregator.is_active(row),
            "mediaBudget": price,
            "estimatedUnits": c.integer("quantity") or impressions or 0,
            "platform": normalize_platform(platform_raw) if platform_raw else None,
            "mediaType": c.text("media_type"),
            "adFormat": c.text("ad_format"),
            "metrics": {
                "impressions": impressions,
                "clicks": c.integer("clicks"),
                "conversions": c.integer("conversions"),
            },
            "traders": [t.to_dict() for t in traders],
            "notes": c.text("notes"),
            "legacy": {
                "id": bid,
                "strategyId": strategy_raw,
                "campaignId": campaign_raw,
                "zohoLineItemId": c.text("zoho_line_item_id"),
                "mediaTraderUserIds": trader_ids_of(row),
            },
        }
        references = [
            Reference(field="strategyId", target_type=EntityType.STRATEGY, raw_value=strategy_raw),
            Reference(
                field="campaignId",
                target_type=EntityType.CAMPAIGN,
                raw_value=campaign_raw,
                required=False,
            ),
            Reference(
                field="traderIds",
                target_type=EntityType.USER,
                required=False,
                many=True,
                raw_values=tuple(t.business_id for t in traders),
            ),
        ]
        return body, references


# -----------------------------------------------------------------------------
# Media buys
# -----------------------------------------------------------------------------


def media_buy_status(
    deleted: bool,
    start: date | None,
    end: date | None,
    spend: Decimal,
    budget: Decimal,
    today: date,
    completion_ratio: Decimal,
) -> str:
    """Status from deletion, flight dates and spend ratio, in that order."""
    if deleted:
        return "cancelled"
    if start is None or start > today:
        return "pending"
    if end is not None and end < today:
        return "completed"
    if spend and budget and spend >= budget * completion_ratio:
        return "completed"
    return "active"


def parse_campaign_numbers(value: Any) -> list[str]:
    """Campaign numbers from a list, a JSON array string, or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [s for s in (clean_str(v) for v in value) if s]
    text = str(value).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [s for s in (clean_str(v) for v in parsed) if s]
    return [s.strip() for s in text.strip("{}").split(",") if s.strip()]


class MediaBuyTransformer(EntityTransformer):
    entity_type = EntityType.MEDIA_BUY

    def _build(self, row, bid, c, issues, rollup):
        budget = c.decimal("budget")
        spend = c.decimal("spend")
        start = c.date("start_date")
        end = c.date("end_date")
        status = media_buy_status(
            is_soft_deleted(row),
            start,
            end,
            spend,
            budget,
            self._ctx.clock.today(),
            Decimal(self._config.media_buy_completion_ratio),
        )

        platform_id = business_id_of(row.get("media_platform_id"))
        platform_row = self._indices.media_platforms.get(platform_id) if platform_id else None
        platform_name = clean_str(platform_row.get("name")) if platform_row else None
        platform = {
            "id": platform_id,
            "name": platform_name,
            "type": classify_platform_type(
                platform_name, platform_row.get("platform_type") if platform_row else None
            ),
        }

        allocations = []
        line_item_ids: list[str | None] = []
        for link in self._indices.links_by_media_buy.children(bid):
            lc = FieldCoercer(link, self._config, self.entity_type.value, bid)
            pct = lc.decimal("allocation_percentage", default=None)
            if pct is None:
                pct = c.normalize(Decimal("100"))
            li_raw = business_id_of(link.get("line_item_id"))
            line_item_ids.append(li_raw)
            allocations.append(
                {
                    "lineItemId": li_raw,
                    "allocationPercentage": pct,
                    "allocatedBudget": c.normalize(budget * pct / 100),
                }
            )
            issues.extend(lc.issues)

        performance = None
        daily = self._indices.impressions_by_media_buy.children(bid)
        if daily:
            total_impressions = 0
            total_clicks = 0
            for day in daily:
                dc = FieldCoercer(day, self._config, self.entity_type.value, bid)
                total_impressions += dc.integer("impressions", default=0)
                total_clicks += dc.integer("clicks", default=0)
                issues.extend(dc.issues)
            performance = {
                "impressions": total_impressions,
                "clicks": total_clicks,
                "ctr": self._ratio(Decimal(total_clicks), Decimal(total_impressions), c),
                "days": len(daily),
            }

        body = {
            "name": c.text("name"),
            "status": status,
            "platform": platform,
            "dates": {"start": start, "end": end},
            "financials": {
                "budget": budget,
                "spend": spend,
                "remainingBudget": c.normalize(max(Decimal("0"), budget - spend)),
                "utilization": self._ratio(spend, budget, c),
                "currency": self._config.default_currency,
            },
            "allocations": allocations,
            "performance": performance,
            "campaignNumbers": parse_campaign_numbers(row.get("campaign_numbers")),
            "legacy": {"id": bid, "mediaPlatformId": platform_id, "lineItemIds": line_item_ids},
        }

        if line_item_ids:
            references = [
                Reference(
                    field="lineItemId", target_type=EntityType.LINE_ITEM, raw_value=line_item_ids[0]
                ),
                Reference(
                    field="lineItemIds",
                    target_type=EntityType.LINE_ITEM,
                    many=True,
                    raw_values=tuple(v for v in line_item_ids if v is not None),
                ),
            ]
        else:
            # No association row: unattached buy, reported as an orphan.
            references = [
                Reference(field="lineItemId", target_type=EntityType.LINE_ITEM, raw_value=None),
            ]
        return body, references


TRANSFORMERS: dict[EntityType, type[EntityTransformer]] = {
    EntityType.ACCOUNT: AccountTransformer,
    EntityType.USER: UserTransformer,
    EntityType.CAMPAIGN: CampaignTransformer,
    EntityType.STRATEGY: StrategyTransformer,
    EntityType.LINE_ITEM: LineItemTransformer,
    EntityType.MEDIA_BUY: MediaBuyTransformer,
}


def transformer_for(entity_type: EntityType, context: TransformContext) -> EntityTransformer:
    return TRANSFORMERS[entity_type](context)
