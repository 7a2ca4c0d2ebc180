"""Tests for status mapping and free-text vocabulary normalization."""

import pytest

from media_ingestion.mapping.status import DisplayLevel, LifecycleStatus, map_status
from media_ingestion.mapping.vocabulary import (
    classify_platform_type,
    classify_user_role,
    infer_unit_type,
    normalize_platform,
    split_kpis,
    split_name,
)


class TestMapStatus:
    @pytest.mark.parametrize(
        "raw,status,level",
        [
            ("New", LifecycleStatus.DRAFT, DisplayLevel.L1),
            ("Planning", LifecycleStatus.PENDING_APPROVAL, DisplayLevel.L2),
            ("Approved", LifecycleStatus.APPROVED, DisplayLevel.L2),
            ("Live", LifecycleStatus.ACTIVE, DisplayLevel.L3),
            ("paused", LifecycleStatus.PAUSED, DisplayLevel.L3),
            (" Completed ", LifecycleStatus.COMPLETED, DisplayLevel.L3),
            ("Canceled", LifecycleStatus.CANCELLED, DisplayLevel.L3),
        ],
    )
    def test_known_stages(self, raw, status, level):
        mapping = map_status(raw)
        assert mapping.status == status
        assert mapping.level == level
        assert mapping.mapped

    def test_unknown_stage_defaults_to_draft_and_is_flagged(self):
        mapping = map_status("Negotiating")
        assert mapping.status == LifecycleStatus.DRAFT
        assert mapping.level == DisplayLevel.L1
        assert mapping.mapped is False

    def test_missing_stage_is_draft_without_flag(self):
        assert map_status(None).mapped is True
        assert map_status("").status == LifecycleStatus.DRAFT

    def test_lifecycle_is_ordered(self):
        assert LifecycleStatus.DRAFT.rank < LifecycleStatus.ACTIVE.rank < LifecycleStatus.CANCELLED.rank


class TestPlatforms:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Google Ads", "google_ads"),
            ("AdWords", "google_ads"),
            ("FB", "facebook"),
            ("LinkedIn Sponsored", "linkedin"),
            ("The Trade Desk DSP", "programmatic"),
            ("Billboards", "other"),
            (None, "other"),
        ],
    )
    def test_normalize_platform(self, raw, expected):
        assert normalize_platform(raw) == expected

    @pytest.mark.parametrize(
        "name,declared,expected",
        [
            ("Google Ads", None, "search"),
            ("Partner", "Search", "search"),
            ("LinkedIn", None, "social"),
            ("YouTube", None, "video"),
            ("DV360", None, "programmatic"),
            ("Publisher", "display", "display"),
            ("Radio", None, "other"),
        ],
    )
    def test_classify_platform_type(self, name, declared, expected):
        assert classify_platform_type(name, declared) == expected


class TestUserRoles:
    @pytest.mark.parametrize(
        "role,expected",
        [
            ("Sales Director", "csd"),
            ("Account Manager", "account_manager"),
            ("Senior Media Trader", "senior_media_trader"),
            ("Media Trader", "media_trader"),
            ("Media Director", "media_director"),
            ("Operations", "operations_manager"),
            ("Finance", "finance_manager"),
            ("Admin", "admin"),
            ("Intern", "viewer"),
        ],
    )
    def test_classify(self, role, expected):
        assert classify_user_role(role) == expected

    def test_falls_back_to_crm_role(self):
        assert classify_user_role(None, "Media Trader") == "media_trader"
        assert classify_user_role("", None) == "viewer"


class TestUnitTypeAndText:
    def test_unit_type_priority(self):
        assert infer_unit_type(5, 10, "Video", None) == "conversions"
        assert infer_unit_type(0, 10, "Video", None) == "clicks"
        assert infer_unit_type(None, None, None, "Pre-roll video") == "views"
        assert infer_unit_type(None, None, "Display", "Banner") == "impressions"

    def test_split_kpis(self):
        assert split_kpis("CTR, CPA; ROAS|CTR\nReach") == ["CTR", "CPA", "ROAS", "Reach"]
        assert split_kpis(["CTR", " ", "CTR"]) == ["CTR"]
        assert split_kpis(None) == []

    def test_split_name(self):
        assert split_name("Alice van Adams") == ("Alice", "van Adams")
        assert split_name("Cher") == ("Cher", None)
        assert split_name(None) == (None, None)
