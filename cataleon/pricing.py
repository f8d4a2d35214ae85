import numbers
import re
from dataclasses import dataclass
from typing import Any, Optional

from cataleon.models import AdjustmentDirection, Metal, Product, PurityUnit

DEFAULT_PURITY_KARAT = 18.0
MIN_COST_PRICE = 0.01
CARATS_PER_GRAM = 5.0

KARAT_OPTIONS = {
    "14K": 14 / 24,
    "18K": 18 / 24,
    "22K": 22 / 24,
    "24K": 24 / 24,
}


def round_money(value: float) -> float:
    return round(value, 2)


def safe_number(value: Any) -> float:
    """Parses numbers out of sheet cells such as '₹1,234.56'; anything else is 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Real):
        return 0.0 if value != value else float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.\-]", "", value)
        try:
            return float(cleaned)
        except ValueError:
            return 0.0
    return 0.0


@dataclass(frozen=True)
class Purity:
    value: float
    unit: PurityUnit

    @property
    def fraction(self) -> float:
        if self.unit == PurityUnit.KARAT:
            return self.value / 24
        if self.unit == PurityUnit.PERCENT:
            return self.value / 100
        return self.value

    @classmethod
    def infer(cls, raw: Any) -> "Purity":
        # Legacy rows store a fraction, a karat or a percentage in the same
        # column. 24 reads as 24K and 1 as a whole fraction.
        if isinstance(raw, str) and "%" in raw:
            number = safe_number(raw)
            if number > 0:
                return cls(number, PurityUnit.PERCENT)
            return cls(DEFAULT_PURITY_KARAT, PurityUnit.KARAT)

        number = safe_number(raw)
        if number <= 0:
            return cls(DEFAULT_PURITY_KARAT, PurityUnit.KARAT)
        if number <= 1:
            return cls(number, PurityUnit.FRACTION)
        if number <= 24:
            return cls(number, PurityUnit.KARAT)
        return cls(number, PurityUnit.PERCENT)


def normalize_purity(raw: Any, unit: Optional[str] = None) -> float:
    if unit:
        number = safe_number(raw)
        if number > 0:
            return Purity(number, PurityUnit(unit)).fraction
    return Purity.infer(raw).fraction


def select_weight(net_weight: Optional[float], gross_weight: Optional[float]) -> float:
    return float(net_weight or gross_weight or 0.0)


def resolve_metal(metal_type: Optional[str]) -> Metal:
    label = (metal_type or "").strip().lower()
    if "silver" in label:
        return Metal.SILVER
    if "platinum" in label:
        return Metal.PLATINUM
    return Metal.GOLD


@dataclass(frozen=True)
class Valuation:
    purity_fraction: float
    weight: float
    metal_value: float
    total: float

    @property
    def cost_price(self) -> float:
        return self.total

    @property
    def retail_price(self) -> float:
        return self.total


def value_product(
    *,
    weight: float,
    purity: Any,
    metal_rate: float,
    diamond_value: float = 0.0,
    making_charge: float = 0.0,
    certification_cost: float = 0.0,
    gemstone_cost: float = 0.0,
    purity_unit: Optional[str] = None,
) -> Valuation:
    purity_fraction = normalize_purity(purity, purity_unit)
    metal_value = weight * purity_fraction * metal_rate
    total = (
        metal_value
        + (diamond_value or 0.0)
        + (making_charge or 0.0)
        + (certification_cost or 0.0)
        + (gemstone_cost or 0.0)
    )
    return Valuation(
        purity_fraction=purity_fraction,
        weight=weight,
        metal_value=metal_value,
        total=round_money(total),
    )


def value_existing_product(product: Product, metal_rate: float) -> Valuation:
    return value_product(
        weight=select_weight(product.net_weight, product.weight_grams),
        purity=product.purity_fraction_used,
        purity_unit=product.purity_unit,
        metal_rate=metal_rate,
        diamond_value=product.d_value or 0.0,
        making_charge=product.mkg or 0.0,
        certification_cost=product.certification_cost or 0.0,
        gemstone_cost=product.gemstone_cost or 0.0,
    )


def calculate_diamond_weight(d_wt_1: Any, d_wt_2: Any) -> float:
    return safe_number(d_wt_1) + safe_number(d_wt_2)


def calculate_net_weight(gross_weight: Any, total_diamond_weight: Any, gemstone_weight: Any) -> float:
    stones_grams = (safe_number(total_diamond_weight) + safe_number(gemstone_weight)) / CARATS_PER_GRAM
    return max(0.0, safe_number(gross_weight) - stones_grams)


def calculate_diamond_value(d_wt_1: Any, d_rate_1: Any, d_wt_2: Any, pointer_rate: Any) -> float:
    return safe_number(d_wt_1) * safe_number(d_rate_1) + safe_number(d_wt_2) * safe_number(pointer_rate)


def calculate_making_charges(gross_weight: Any, making_charges_per_gram: Any) -> float:
    return safe_number(gross_weight) * safe_number(making_charges_per_gram)


def calculate_jewelry_pricing(
    *,
    gross_weight: float,
    gold_rate: float,
    purity: Any,
    making_charges_per_gram: float = 0.0,
    gemstone_weight: float = 0.0,
    d_wt_1: float = 0.0,
    d_wt_2: float = 0.0,
    d_rate_1: float = 0.0,
    pointer_rate: float = 0.0,
    certification_cost: float = 0.0,
    gemstone_cost: float = 0.0,
    net_weight_override: float = 0.0,
    diamond_value_override: float = 0.0,
) -> dict[str, float]:
    total_diamond_weight = calculate_diamond_weight(d_wt_1, d_wt_2)
    net_weight = net_weight_override or calculate_net_weight(gross_weight, total_diamond_weight, gemstone_weight)
    diamond_value = diamond_value_override or calculate_diamond_value(d_wt_1, d_rate_1, d_wt_2, pointer_rate)
    making_charges = calculate_making_charges(gross_weight, making_charges_per_gram)

    valuation = value_product(
        weight=net_weight,
        purity=purity,
        metal_rate=gold_rate,
        diamond_value=diamond_value,
        making_charge=making_charges,
        certification_cost=safe_number(certification_cost),
        gemstone_cost=safe_number(gemstone_cost),
    )
    cost_price = valuation.total if valuation.total > 0 else MIN_COST_PRICE

    return {
        "total_diamond_weight": round(total_diamond_weight, 3),
        "net_weight": round(net_weight, 3),
        "purity_fraction": valuation.purity_fraction,
        "diamond_value": round_money(diamond_value),
        "making_charges": round_money(making_charges),
        "gold_value": round_money(valuation.metal_value),
        "total_price": valuation.total,
        "cost_price": cost_price,
    }


def pricing_multiplier(percentage: float, direction: AdjustmentDirection) -> float:
    if AdjustmentDirection(direction) == AdjustmentDirection.MARKDOWN:
        return 1 - percentage / 100
    return 1 + percentage / 100


def apply_pricing_adjustment(price: Optional[float], percentage: float, direction: AdjustmentDirection) -> float:
    return max(0.0, float(price or 0.0) * pricing_multiplier(percentage, direction))


def shared_display_price(retail_price: Optional[float], markup_pct: float, markdown_pct: float) -> float:
    price = float(retail_price or 0.0)
    if markup_pct and markup_pct > 0:
        price = apply_pricing_adjustment(price, markup_pct, AdjustmentDirection.MARKUP)
    elif markdown_pct and markdown_pct > 0:
        price = apply_pricing_adjustment(price, markdown_pct, AdjustmentDirection.MARKDOWN)
    return round_money(price)
