"""
Vocabulary normalization for free-text source fields.

Each function is an ordered substring rule list over the lower-cased input;
the first matching rule wins.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from media_ingestion.mapping.engine import clean_str

# (substrings, normalized platform); every substring in a tuple must match.
_PLATFORM_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("google",), "google_ads"),
    (("adwords",), "google_ads"),
    (("facebook",), "facebook"),
    (("fb",), "facebook"),
    (("instagram",), "instagram"),
    (("linkedin",), "linkedin"),
    (("twitter",), "twitter"),
    (("tiktok",), "tiktok"),
    (("programmatic",), "programmatic"),
    (("dsp",), "programmatic"),
    (("direct",), "direct"),
)

_ROLE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("sales",), "csd"),
    (("csd",), "csd"),
    (("account", "manager"), "account_manager"),
    (("senior", "media"), "senior_media_trader"),
    (("media", "trader"), "media_trader"),
    (("media", "director"), "media_director"),
    (("operations",), "operations_manager"),
    (("finance",), "finance_manager"),
    (("admin",), "admin"),
)

_KPI_SEPARATORS = re.compile(r"[,;|\n]+")


def _first_match(
    text: str,
    rules: tuple[tuple[tuple[str, ...], str], ...],
    default: str,
) -> str:
    for needles, result in rules:
        if all(n in text for n in needles):
            return result
    return default


def normalize_platform(value: Any) -> str:
    """google/adwords -> google_ads, fb -> facebook, ..., anything else -> other."""
    text = (clean_str(value) or "").lower()
    if not text:
        return "other"
    return _first_match(text, _PLATFORM_RULES, "other")


def classify_platform_type(name: Any, declared_type: Any = None) -> str:
    """Media platform type (search, social, video, programmatic, display, other)."""
    n = (clean_str(name) or "").lower()
    t = (clean_str(declared_type) or "").lower()
    if "google" in n or "bing" in n or "search" in t:
        return "search"
    if any(s in n for s in ("facebook", "linkedin", "twitter")) or "social" in t:
        return "social"
    if "youtube" in n or "tiktok" in n or "video" in t:
        return "video"
    if "programmatic" in t or "dv360" in n or "amazon" in n:
        return "programmatic"
    if "display" in t:
        return "display"
    return "other"


def classify_user_role(role: Any, zoho_role: Any = None) -> str:
    """Role from the app role, else the CRM role. Unknown roles get read-only access."""
    text = (clean_str(role) or clean_str(zoho_role) or "").lower()
    if not text:
        return "viewer"
    return _first_match(text, _ROLE_RULES, "viewer")


def infer_unit_type(
    conversions: Any,
    clicks: Any,
    media_type: Any,
    ad_format: Any,
) -> str:
    """Billing unit: conversions > clicks > video views > impressions."""
    if _positive(conversions):
        return "conversions"
    if _positive(clicks):
        return "clicks"
    text = " ".join((clean_str(v) or "").lower() for v in (media_type, ad_format))
    if "video" in text:
        return "views"
    return "impressions"


def _positive(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return Decimal(str(value).replace(",", "")) > 0
    except InvalidOperation:
        return False


def split_kpis(value: Any) -> list[str]:
    """Split a KPI string on commas, semicolons, pipes or newlines; lists pass through."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return _dedupe(clean_str(v) for v in value)
    return _dedupe(part.strip() for part in _KPI_SEPARATORS.split(str(value)))


def _dedupe(values: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return seen


def split_name(full_name: Any) -> tuple[str | None, str | None]:
    """First token is the first name; the remainder is the last name."""
    text = clean_str(full_name)
    if not text:
        return None, None
    parts = text.split(None, 1)
    return parts[0], parts[1] if len(parts) > 1 else None
