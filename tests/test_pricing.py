"""Valuation rule and price adjustment tests."""

import pytest

from cataleon.models import AdjustmentDirection, Metal, Product, PurityUnit
from cataleon.pricing import (
    Purity,
    apply_pricing_adjustment,
    calculate_jewelry_pricing,
    normalize_purity,
    resolve_metal,
    safe_number,
    select_weight,
    shared_display_price,
    value_existing_product,
    value_product,
)


class TestPurity:
    """Fraction, karat and percent all normalise to a fraction."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (0.75, 0.75),
            (18, 0.75),
            (75, 0.75),
            ("75%", 0.75),
            ("18", 0.75),
            (24, 1.0),
            (1, 1.0),
            (91.6, 0.916),
        ],
    )
    def test_inferred_units(self, raw, expected):
        assert normalize_purity(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, 0, -3, "", "abc"])
    def test_missing_defaults_to_18k(self, raw):
        assert normalize_purity(raw) == pytest.approx(0.75)

    def test_explicit_unit_wins_over_magnitude(self):
        # 0.9 as a percentage is unusual but must not be read as a fraction.
        assert normalize_purity(0.9, "percent") == pytest.approx(0.009)
        assert Purity(22, PurityUnit.KARAT).fraction == pytest.approx(22 / 24)

    def test_infer_returns_tagged_value(self):
        assert Purity.infer(18) == Purity(18, PurityUnit.KARAT)
        assert Purity.infer(0.5) == Purity(0.5, PurityUnit.FRACTION)
        assert Purity.infer(92.5).unit == PurityUnit.PERCENT


class TestWeightAndMetal:
    def test_net_weight_preferred_over_gross(self):
        assert select_weight(2.0, 5.0) == 2.0

    def test_gross_used_when_net_missing(self):
        assert select_weight(None, 5.0) == 5.0
        assert select_weight(0, 5.0) == 5.0

    def test_no_weight_is_zero(self):
        assert select_weight(None, None) == 0.0

    @pytest.mark.parametrize(
        "label, metal",
        [
            ("Silver 925", Metal.SILVER),
            ("18K Platinum", Metal.PLATINUM),
            ("Rose Gold", Metal.GOLD),
            ("", Metal.GOLD),
            (None, Metal.GOLD),
        ],
    )
    def test_resolve_metal(self, label, metal):
        assert resolve_metal(label) == metal


class TestValueProduct:
    def test_metal_only(self):
        valuation = value_product(weight=2.0, purity=0.75, metal_rate=6000)
        assert valuation.metal_value == pytest.approx(9000)
        assert valuation.cost_price == valuation.retail_price == pytest.approx(9000)

    def test_all_components_summed(self):
        valuation = value_product(
            weight=2.0,
            purity=18,
            metal_rate=6000,
            diamond_value=1000,
            making_charge=500,
            certification_cost=200,
            gemstone_cost=300,
        )
        assert valuation.total == pytest.approx(11000)

    def test_zero_weight_keeps_other_components(self):
        valuation = value_product(weight=0.0, purity=0.75, metal_rate=6000, diamond_value=2500)
        assert valuation.metal_value == 0
        assert valuation.total == pytest.approx(2500)

    def test_rounded_to_two_decimals(self):
        valuation = value_product(weight=1.333, purity=0.75, metal_rate=6001)
        assert valuation.total == round(1.333 * 0.75 * 6001, 2)

    def test_existing_product_uses_stored_fields(self):
        product = Product(
            id=1,
            name="Ring",
            net_weight=3.0,
            weight_grams=3.5,
            purity_fraction_used=75,
            d_value=1000,
            mkg=400,
        )
        valuation = value_existing_product(product, 6000)
        assert valuation.total == pytest.approx(3.0 * 0.75 * 6000 + 1400)


class TestJewelryPricing:
    def test_full_breakdown(self):
        pricing = calculate_jewelry_pricing(
            gross_weight=10,
            gold_rate=7000,
            purity=0.75,
            making_charges_per_gram=500,
            gemstone_weight=0.2,
            d_wt_1=0.5,
            d_wt_2=0.3,
            d_rate_1=50000,
            pointer_rate=20000,
            certification_cost=500,
            gemstone_cost=2000,
        )
        assert pricing["total_diamond_weight"] == pytest.approx(0.8)
        assert pricing["net_weight"] == pytest.approx(9.8)
        assert pricing["diamond_value"] == pytest.approx(31000)
        assert pricing["making_charges"] == pytest.approx(5000)
        assert pricing["gold_value"] == pytest.approx(51450)
        assert pricing["total_price"] == pytest.approx(89950)
        assert pricing["cost_price"] == pytest.approx(89950)

    def test_overrides_from_sheet(self):
        pricing = calculate_jewelry_pricing(
            gross_weight=10,
            gold_rate=7000,
            purity=0.75,
            d_wt_1=0.5,
            d_rate_1=50000,
            net_weight_override=9.0,
            diamond_value_override=40000,
        )
        assert pricing["net_weight"] == pytest.approx(9.0)
        assert pricing["diamond_value"] == pytest.approx(40000)

    def test_cost_price_never_zero(self):
        pricing = calculate_jewelry_pricing(gross_weight=0, gold_rate=0, purity=None)
        assert pricing["total_price"] == 0
        assert pricing["cost_price"] == 0.01


class TestAdjustments:
    def test_markup(self):
        assert apply_pricing_adjustment(1000, 10, AdjustmentDirection.MARKUP) == pytest.approx(1100)

    def test_markdown(self):
        assert apply_pricing_adjustment(1000, 25, AdjustmentDirection.MARKDOWN) == pytest.approx(750)

    def test_markdown_floored_at_zero(self):
        assert apply_pricing_adjustment(1000, 150, AdjustmentDirection.MARKDOWN) == 0.0

    def test_missing_price_is_zero(self):
        assert apply_pricing_adjustment(None, 10, AdjustmentDirection.MARKUP) == 0.0

    def test_shared_price_markup_wins(self):
        assert shared_display_price(1000, 10, 20) == pytest.approx(1100)

    def test_shared_price_markdown(self):
        assert shared_display_price(1000, 0, 20) == pytest.approx(800)

    def test_shared_price_rounded(self):
        assert shared_display_price(999.999, 0, 0) == 1000.0


class TestSafeNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("₹1,234.56", 1234.56),
            (42, 42.0),
            ("invalid", 0.0),
            (None, 0.0),
            (True, 0.0),
            (float("nan"), 0.0),
        ],
    )
    def test_parsing(self, raw, expected):
        assert safe_number(raw) == pytest.approx(expected)
