"""
Line item variants and classification.

A line item is exactly one of four kinds. Each kind carries its own financial
terms as a separate frozen dataclass; there is no shared object with optional
fields for every variant.

Classification is an ordered rule list, first match wins:

    1. management_fee -- type mentions "management" or "fee", or the name
       mentions "management fee" / "agency fee"
    2. zero_dollar    -- price is zero or absent AND type/name mentions
       "bonus" or "added value"
    3. zero_margin    -- target margin is exactly zero, or type/name mentions
       "zero margin", or the name mentions "at cost"
    4. standard

The order matters: "Management Fee - Bonus" is a management fee, not a
zero-dollar item.

ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Union


class LineItemKind(str, Enum):
    STANDARD = "standard"
    MANAGEMENT_FEE = "management_fee"
    ZERO_DOLLAR = "zero_dollar"
    ZERO_MARGIN = "zero_margin"


def _text(*parts: str | None) -> str:
    return " ".join(p.lower() for p in parts if p)


def _is_management_fee(name: str, type_text: str) -> bool:
    if "management" in type_text or "fee" in type_text:
        return True
    return "management fee" in name or "agency fee" in name


def _is_zero_dollar(name: str, type_text: str, price: Decimal | None) -> bool:
    if price is not None and price != 0:
        return False
    combined = f"{type_text} {name}"
    return "bonus" in combined or "added value" in combined


def _is_zero_margin(name: str, type_text: str, target_margin: Decimal | None) -> bool:
    if target_margin is not None and target_margin == 0:
        return True
    if "zero margin" in f"{type_text} {name}":
        return True
    return "at cost" in name


def classify_line_item(
    name: str | None,
    line_item_type: str | None,
    price: Decimal | None,
    target_margin: Decimal | None,
) -> LineItemKind:
    """Classify a line item. Pure; first matching rule wins."""
    name_text = _text(name)
    type_text = _text(line_item_type)
    if _is_management_fee(name_text, type_text):
        return LineItemKind.MANAGEMENT_FEE
    if _is_zero_dollar(name_text, type_text, price):
        return LineItemKind.ZERO_DOLLAR
    if _is_zero_margin(name_text, type_text, target_margin):
        return LineItemKind.ZERO_MARGIN
    return LineItemKind.STANDARD


# -----------------------------------------------------------------------------
# Kind-specific terms
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StandardTerms:
    """Priced media with a target margin."""

    price: Decimal
    net_revenue: Decimal
    margin_amount: Decimal
    margin_percentage: Decimal

    kind = LineItemKind.STANDARD

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "netRevenue": self.net_revenue,
            "marginAmount": self.margin_amount,
            "marginPercentage": self.margin_percentage,
        }


@dataclass(frozen=True)
class ManagementFeeTerms:
    """Agency fee line; the fee is the line's price."""

    management_fee: Decimal
    fee_percentage: Decimal | None

    kind = LineItemKind.MANAGEMENT_FEE

    def to_dict(self) -> dict[str, Any]:
        return {
            "managementFee": self.management_fee,
            "feePercentage": self.fee_percentage,
        }


@dataclass(frozen=True)
class ZeroDollarTerms:
    """Bonus or added-value inventory delivered at no charge."""

    added_value_reason: str
    estimated_value: Decimal | None

    kind = LineItemKind.ZERO_DOLLAR

    def to_dict(self) -> dict[str, Any]:
        return {
            "addedValueReason": self.added_value_reason,
            "estimatedValue": self.estimated_value,
        }


@dataclass(frozen=True)
class ZeroMarginTerms:
    """Media passed through at cost."""

    price: Decimal
    zero_margin_reason: str

    kind = LineItemKind.ZERO_MARGIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "price": self.price,
            "zeroMarginReason": self.zero_margin_reason,
        }


LineItemTerms = Union[StandardTerms, ManagementFeeTerms, ZeroDollarTerms, ZeroMarginTerms]

DEFAULT_ADDED_VALUE_REASON = "Bonus inventory"
DEFAULT_ZERO_MARGIN_REASON = "Client requirement"


def build_terms(
    kind: LineItemKind,
    price: Decimal,
    target_margin: Decimal | None,
    default_margin_percentage: Decimal,
    notes: str | None,
    estimated_value: Decimal | None,
    quantize: Callable[[Decimal], Decimal],
) -> LineItemTerms:
    """Build the kind-specific payload. ``quantize`` normalizes derived amounts."""
    if kind == LineItemKind.MANAGEMENT_FEE:
        return ManagementFeeTerms(management_fee=price, fee_percentage=target_margin)
    if kind == LineItemKind.ZERO_DOLLAR:
        return ZeroDollarTerms(
            added_value_reason=notes or DEFAULT_ADDED_VALUE_REASON,
            estimated_value=estimated_value,
        )
    if kind == LineItemKind.ZERO_MARGIN:
        return ZeroMarginTerms(price=price, zero_margin_reason=notes or DEFAULT_ZERO_MARGIN_REASON)
    margin_percentage = target_margin if target_margin else default_margin_percentage
    margin_amount = quantize(price * margin_percentage / 100)
    return StandardTerms(
        price=price,
        net_revenue=quantize(price - margin_amount),
        margin_amount=margin_amount,
        margin_percentage=margin_percentage,
    )
