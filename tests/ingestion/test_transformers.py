"""Tests for the per-entity field transformers."""

from datetime import date
from decimal import Decimal

import pytest

from media_config import PipelineConfig
from media_ingestion.domain.types import EntityType, IssueCode, IssueSeverity
from media_ingestion.indexing.indexer import SourceIndices
from media_ingestion.mapping.transformers import (
    TransformContext,
    media_buy_status,
    parse_campaign_numbers,
    transformer_for,
)
from tests.conftest import sample_sources


@pytest.fixture
def sources():
    return sample_sources()


@pytest.fixture
def context_for(deterministic_clock):
    def _build(sources, config=None):
        return TransformContext.build(
            config or PipelineConfig(), SourceIndices.build(sources), deterministic_clock
        )

    return _build


def _transform(context, entity_type, row):
    return transformer_for(entity_type, context).transform(row)


def _codes(record):
    return [i.code for i in record.issues]


class TestAccountTransformer:
    def test_rates_address_and_revenue(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.ACCOUNT, sources["accounts"][0])
        body = record.body
        assert record.business_id == "1"
        assert body["referralRate"] == "0.050000"
        assert body["agencyMarkupRate"] == "0.125000"
        assert body["billingAddress"] == {"city": "Austin", "state": "TX", "country": "US"}
        assert body["contact"]["primaryContactEmail"] == "buyer@acme.example"
        assert body["campaignCount"] == 1
        assert body["totalRevenue"] == "60000.000000"
        assert record.references == ()

    def test_revenue_falls_back_to_budget(self, sources, context_for):
        del sources["campaigns"][0]["expected_revenue"]
        record = _transform(context_for(sources), EntityType.ACCOUNT, sources["accounts"][0])
        assert record.body["totalRevenue"] == "50000.000000"

    def test_no_address_parts_means_no_address(self, context_for):
        record = _transform(context_for({}), EntityType.ACCOUNT, {"id": 2, "name": "Bare"})
        assert record.body["billingAddress"] is None
        assert record.body["referralRate"] is None


class TestUserTransformer:
    def test_user_fields(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.USER, sources["users"][0])
        body = record.body
        assert record.business_id == "Z10"
        assert body["email"] == "alice@example.com"
        assert (body["firstName"], body["lastName"]) == ("Alice", "Adams")
        assert body["role"] == "media_trader"
        assert body["isActive"] is True
        assert body["legacy"] == {"id": "10", "zohoUserId": "Z10", "teamId": None}

    def test_unconfirmed_user_is_inactive(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.USER, sources["users"][2])
        assert record.body["isActive"] is False

    def test_row_id_is_fallback_business_id(self, context_for):
        record = _transform(context_for({}), EntityType.USER, {"id": 55, "name": "No Crm"})
        assert record.business_id == "55"


class TestCampaignTransformer:
    def test_status_team_dates_price(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        body = record.body
        assert body["status"] == "active"
        assert body["statusLevel"] == "L3"
        assert body["team"]["accountManager"]["userId"] == "Z13"
        assert [t["userId"] for t in body["team"]["seniorMediaTraders"]] == ["Z11"]
        assert [t["userId"] for t in body["team"]["mediaTraders"]] == ["Z10", "Z12"]
        assert body["dates"] == {
            "start": "2025-06-01",
            "end": "2025-08-30",
            "totalDuration": 90,
            "daysElapsed": 30,
        }
        assert body["price"]["targetAmount"] == "50000.000000"
        assert body["price"]["actualAmount"] == "20000.000000"
        assert body["price"]["remainingAmount"] == "30000.000000"
        assert body["metrics"]["strategyCount"] == 2
        assert body["metrics"]["traderCount"] == 3

    def test_references(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        refs = {r.field: r for r in record.references}
        assert refs["accountId"].raw_value == "1"
        assert refs["accountId"].required
        assert refs["accountManagerId"].raw_value == "Z13"
        assert not refs["accountManagerId"].required
        assert set(refs["traderIds"].raw_values) == {"Z10", "Z11", "Z12"}

    def test_missing_end_date_uses_horizon(self, sources, context_for):
        del sources["campaigns"][0]["end_date"]
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        assert record.body["dates"]["end"] == "2025-07-01"
        assert record.body["dates"]["totalDuration"] == 30

    def test_unknown_stage_is_a_warning(self, sources, context_for):
        sources["campaigns"][0]["stage"] = "Negotiating"
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        assert record.body["status"] == "draft"
        assert record.body["statusLevel"] == "L1"
        assert IssueCode.UNMAPPED_STATUS in _codes(record)
        assert all(i.severity == IssueSeverity.WARNING for i in record.issues)

    def test_bad_budget_defaults_and_flags(self, sources, context_for):
        sources["campaigns"][0]["budget"] = "fifty grand"
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        assert record.body["price"]["targetAmount"] == "0.000000"
        assert IssueCode.FIELD_COERCION in _codes(record)

    def test_unknown_account_manager_is_flagged(self, sources, context_for):
        sources["campaigns"][0]["lead_account_owner_user_id"] = 404
        record = _transform(context_for(sources), EntityType.CAMPAIGN, sources["campaigns"][0])
        assert record.body["team"]["accountManager"] is None
        assert IssueCode.UNRESOLVED_USER in _codes(record)

    def test_missing_business_id_is_an_error(self, sources, context_for):
        row = dict(sources["campaigns"][0], id=None)
        record = _transform(context_for(sources), EntityType.CAMPAIGN, row)
        assert record.business_id is None
        assert record.body == {}
        assert _codes(record) == [IssueCode.MISSING_BUSINESS_ID]
        assert record.issues[0].severity == IssueSeverity.ERROR


class TestStrategyTransformer:
    def test_budget_margin_and_mix(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.STRATEGY, sources["strategies"][0])
        body = record.body
        assert body["campaignNumber"] == "CN-100"
        assert body["budget"]["targetAmount"] == "20000.000000"
        assert body["budget"]["allocatedAmount"] == "12000.000000"
        assert body["budget"]["remainingAmount"] == "8000.000000"
        assert body["margin"]["targetPercentage"] == "25.000000"
        assert body["margin"]["targetAmount"] == "5000.000000"
        assert body["mediaMix"]["platforms"] == ["google_ads"]
        assert body["lineItemIds"] == ["300"]
        assert record.references[0].raw_value == "100"

    def test_default_margin(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.STRATEGY, sources["strategies"][1])
        assert record.body["margin"]["targetPercentage"] == "30.000000"


class TestLineItemTransformer:
    def test_standard_line_item(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.LINE_ITEM, sources["line_items"][0])
        body = record.body
        assert body["type"] == "standard"
        assert body["terms"] == {
            "price": "12000.000000",
            "netRevenue": "9000.000000",
            "marginAmount": "3000.000000",
            "marginPercentage": "25.000000",
        }
        assert body["platform"] == "google_ads"
        assert body["unitType"] == "impressions"
        assert body["isActive"] is True
        assert [t["userId"] for t in body["traders"]] == ["Z10", "Z11"]
        assert body["legacy"]["strategyId"] == "200"

    def test_management_fee_variant(self, context_for):
        row = {"id": 900, "strategy_id": 1, "name": "Management Fee - Bonus", "price": "0"}
        record = _transform(context_for({}), EntityType.LINE_ITEM, row)
        assert record.body["type"] == "management_fee"
        assert set(record.body["terms"]) == {"managementFee", "feePercentage"}

    def test_zero_dollar_variant(self, context_for):
        row = {"id": 901, "strategy_id": 1, "name": "Bonus spots", "unit_price": "2.5", "quantity": "10"}
        record = _transform(context_for({}), EntityType.LINE_ITEM, row)
        assert record.body["type"] == "zero_dollar"
        assert record.body["terms"]["estimatedValue"] == "25.000000"

    def test_references(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.LINE_ITEM, sources["line_items"][1])
        refs = {r.field: r for r in record.references}
        assert refs["strategyId"].raw_value == "201"
        assert refs["strategyId"].required
        assert not refs["campaignId"].required
        assert refs["traderIds"].raw_values == ("Z11", "Z12")


class TestMediaBuyTransformer:
    def test_platform_allocations_financials(self, sources, context_for):
        record = _transform(context_for(sources), EntityType.MEDIA_BUY, sources["media_buys"][0])
        body = record.body
        assert body["status"] == "active"
        assert body["platform"] == {"id": "1", "name": "Google Ads", "type": "search"}
        assert body["allocations"] == [
            {"lineItemId": "300", "allocationPercentage": "100.000000", "allocatedBudget": "5000.000000"}
        ]
        assert body["financials"]["remainingBudget"] == "4000.000000"
        assert body["financials"]["utilization"] == "0.200000"
        assert body["performance"] is None
        assert record.references[0].raw_value == "300"

    def test_daily_performance_rollup(self, sources, context_for):
        sources["platform_buy_daily_impressions"] = [
            {"media_buy_id": 400, "impressions": 1000, "clicks": 10},
            {"media_buy_id": 400, "impressions": "3000", "clicks": "30"},
        ]
        record = _transform(context_for(sources), EntityType.MEDIA_BUY, sources["media_buys"][0])
        assert record.body["performance"] == {
            "impressions": 4000,
            "clicks": 40,
            "ctr": "0.010000",
            "days": 2,
        }

    def test_unlinked_buy_has_required_reference_without_value(self, sources, context_for):
        sources["line_item_media_buys"] = []
        record = _transform(context_for(sources), EntityType.MEDIA_BUY, sources["media_buys"][0])
        assert len(record.references) == 1
        assert record.references[0].raw_value is None
        assert record.references[0].required


class TestMediaBuyStatus:
    today = date(2025, 7, 1)
    ratio = Decimal("0.95")

    def _status(self, deleted=False, start="2025-06-01", end="2025-07-31", spend="0", budget="100"):
        return media_buy_status(
            deleted,
            date.fromisoformat(start) if start else None,
            date.fromisoformat(end) if end else None,
            Decimal(spend),
            Decimal(budget),
            self.today,
            self.ratio,
        )

    def test_order_of_rules(self):
        assert self._status(deleted=True, start="2030-01-01") == "cancelled"
        assert self._status(start="2025-07-02") == "pending"
        assert self._status(start=None) == "pending"
        assert self._status(end="2025-06-30") == "completed"
        assert self._status(spend="95") == "completed"
        assert self._status(spend="94.99") == "active"


def test_parse_campaign_numbers():
    assert parse_campaign_numbers(["CN-1", " ", "CN-2"]) == ["CN-1", "CN-2"]
    assert parse_campaign_numbers('["CN-1"]') == ["CN-1"]
    assert parse_campaign_numbers("{CN-1,CN-2}") == ["CN-1", "CN-2"]
    assert parse_campaign_numbers(None) == []
