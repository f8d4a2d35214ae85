"""Catalog actions against a real sqlite file."""

import pytest

from cataleon import db
from cataleon.catalog import (
    apply_category_suggestions,
    bulk_update,
    delete_selected,
    fetch_catalog,
    reprice_metal,
    update_metal_rate,
    update_metal_rates,
)
from cataleon.errors import AuthenticationError, BatchError, ValidationError
from cataleon.models import AdjustmentDirection, Metal, PricingAdjustment, Selection


@pytest.fixture
def priced_catalog(conn, session, make_product):
    db.update_vendor_profile(conn, session.user_id, {"gold_rate_24k_per_gram": 6000.0})
    ids = {
        "two_gram": make_product(session, "Ring 1", net_weight=2.0, purity_fraction_used=0.75,
                                 cost_price=9000, retail_price=9000),
        "three_gram": make_product(session, "Ring 2", net_weight=3.0, purity_fraction_used=0.75,
                                   cost_price=13500, retail_price=13500),
        "weightless": make_product(session, "Ring 3", purity_fraction_used=0.75,
                                   cost_price=5000, retail_price=5000),
    }
    return ids


def _by_id(products):
    return {product.id: product for product in products}


class TestFetchCatalog:
    def test_requires_session(self, conn):
        with pytest.raises(AuthenticationError):
            fetch_catalog(conn, None)

    def test_only_own_products(self, conn, session, other_session, make_product):
        mine = make_product(session, "Mine")
        make_product(other_session, "Theirs")
        assert [product.id for product in fetch_catalog(conn, session)] == [mine]

    def test_jewellery_includes_untyped_rows(self, conn, session, make_product):
        untyped = make_product(session, "Old Ring")
        typed = make_product(session, "New Ring", product_type="Jewellery")
        diamond = make_product(session, "Round 1ct", product_type="Loose Diamonds")

        assert {p.id for p in fetch_catalog(conn, session, "Jewellery")} == {untyped, typed}
        assert [p.id for p in fetch_catalog(conn, session, "Loose Diamonds")] == [diamond]

    def test_newest_first(self, conn, session, make_product):
        first = make_product(session, "A", created_at="2024-01-01T00:00:00+00:00")
        second = make_product(session, "B", created_at="2024-06-01T00:00:00+00:00")
        assert [p.id for p in fetch_catalog(conn, session)] == [second, first]


class TestUpdateMetalRate:
    """A new gold rate reprices every product that carries a weight."""

    def test_cascade(self, conn, session, priced_catalog):
        products = fetch_catalog(conn, session)
        result = update_metal_rate(conn, session, 6500, products)

        assert result.batch.ok
        assert sorted(result.batch.succeeded) == sorted([priced_catalog["two_gram"], priced_catalog["three_gram"]])

        after = _by_id(result.products)
        assert after[priced_catalog["two_gram"]].retail_price == pytest.approx(9750)
        assert after[priced_catalog["two_gram"]].cost_price == pytest.approx(9750)
        assert after[priced_catalog["three_gram"]].retail_price == pytest.approx(14625)
        assert after[priced_catalog["three_gram"]].gold_per_gram_price == pytest.approx(6500)
        assert after[priced_catalog["weightless"]].retail_price == pytest.approx(5000)

        profile = db.get_vendor_profile(conn, session.user_id)
        assert profile.gold_rate_24k_per_gram == pytest.approx(6500)
        assert profile.gold_rate_updated_at is not None

    def test_accepts_numeric_string(self, conn, session, priced_catalog):
        result = update_metal_rate(conn, session, "6500", fetch_catalog(conn, session))
        assert result.rate == 6500.0

    @pytest.mark.parametrize("rate", [0, -10, "abc", "", None, "inf", "nan"])
    def test_invalid_rate_changes_nothing(self, conn, session, priced_catalog, rate):
        with pytest.raises(ValidationError, match="valid rate"):
            update_metal_rate(conn, session, rate, fetch_catalog(conn, session))
        assert db.get_vendor_profile(conn, session.user_id).gold_rate_24k_per_gram == pytest.approx(6000)

    def test_every_weighted_product_repriced(self, conn, session, make_product):
        silver = make_product(session, "Anklet", metal_type="Silver", net_weight=10.0,
                              purity_fraction_used=0.75, retail_price=700)
        platinum = make_product(session, "Band", metal_type="Platinum", weight_grams=2.0,
                                purity_fraction_used=0.5, retail_price=100)
        plain = make_product(session, "Chain", metal_type="", net_weight=1.0,
                             purity_fraction_used=1.0, retail_price=100)

        result = update_metal_rate(conn, session, 6500, fetch_catalog(conn, session))

        after = _by_id(result.products)
        assert sorted(result.batch.succeeded) == sorted([silver, platinum, plain])
        assert after[silver].retail_price == pytest.approx(48750)
        assert after[platinum].retail_price == pytest.approx(6500)
        assert after[plain].retail_price == pytest.approx(6500)

    def test_reprice_metal_only_touches_that_metal(self, conn, session, make_product):
        silver = make_product(session, "Anklet", metal_type="Silver 925", net_weight=10.0,
                              purity_fraction_used=0.925, retail_price=900)
        gold = make_product(session, "Chain", metal_type="", net_weight=1.0,
                            purity_fraction_used=1.0, retail_price=100)

        result = reprice_metal(conn, session, 100, fetch_catalog(conn, session), Metal.SILVER)

        after = _by_id(result.products)
        assert result.batch.succeeded == [silver]
        assert after[silver].retail_price == pytest.approx(925)
        assert after[gold].retail_price == pytest.approx(100)
        assert db.get_vendor_profile(conn, session.user_id).silver_rate_per_gram == pytest.approx(100)

    def test_reprice_metal_blank_metal_counts_as_gold(self, conn, session, make_product):
        silver = make_product(session, "Anklet", metal_type="Silver", net_weight=10.0, retail_price=900)
        gold = make_product(session, "Chain", metal_type=None, net_weight=1.0,
                            purity_fraction_used=1.0, retail_price=100)

        result = reprice_metal(conn, session, 7000, fetch_catalog(conn, session), Metal.GOLD)

        assert result.batch.succeeded == [gold]
        assert _by_id(result.products)[silver].retail_price == pytest.approx(900)

    def test_partial_failure_keeps_successes(self, conn, session, other_session, priced_catalog, make_product):
        foreign = make_product(other_session, "Not mine", net_weight=1.0, retail_price=1)
        products = fetch_catalog(conn, session) + db.get_products_by_ids(conn, other_session.user_id, [foreign])

        result = update_metal_rate(conn, session, 6500, products)

        assert list(result.batch.failed) == [foreign]
        assert len(result.batch.succeeded) == 2
        assert _by_id(result.products)[priced_catalog["two_gram"]].retail_price == pytest.approx(9750)
        with pytest.raises(BatchError):
            result.batch.raise_for_failures()

    def test_requires_session(self, conn):
        with pytest.raises(AuthenticationError):
            update_metal_rate(conn, None, 6500, [])


class TestUpdateMetalRates:
    def test_all_rates_stored(self, conn, session):
        update_metal_rates(conn, session, "7000", 90, 3100.5)
        profile = db.get_vendor_profile(conn, session.user_id)
        assert profile.gold_rate_24k_per_gram == 7000
        assert profile.silver_rate_per_gram == 90
        assert profile.platinum_rate_per_gram == 3100.5

    def test_one_bad_rate_rejects_all(self, conn, session):
        with pytest.raises(ValidationError):
            update_metal_rates(conn, session, 7000, 0, 3100)
        assert db.get_vendor_profile(conn, session.user_id).gold_rate_24k_per_gram == 0


class TestDeleteSelected:
    def test_soft_delete_clears_selection(self, conn, session, make_product):
        keep = make_product(session, "Keep")
        drop = make_product(session, "Drop")

        count, selection = delete_selected(conn, session, Selection(frozenset({drop})))

        assert count == 1
        assert len(selection) == 0
        assert [p.id for p in fetch_catalog(conn, session)] == [keep]
        row = conn.execute("SELECT deleted_at FROM products WHERE id = ?", (drop,)).fetchone()
        assert row["deleted_at"] is not None

    def test_foreign_ids_ignored(self, conn, session, other_session, make_product):
        theirs = make_product(other_session, "Theirs")
        count, _ = delete_selected(conn, session, Selection(frozenset({theirs})))
        assert count == 0
        assert len(fetch_catalog(conn, other_session)) == 1

    def test_empty_selection_is_noop(self, conn, session):
        count, selection = delete_selected(conn, session, Selection())
        assert count == 0
        assert not selection


class TestBulkUpdate:
    def test_markup_applies_to_both_prices(self, conn, session, make_product):
        product_id = make_product(session, "Ring", cost_price=500, retail_price=1000)

        batch, selection = bulk_update(
            conn,
            session,
            Selection(frozenset({product_id})),
            adjustment=PricingAdjustment(10, AdjustmentDirection.MARKUP),
        )

        assert batch.ok
        assert not selection
        product = fetch_catalog(conn, session)[0]
        assert product.retail_price == pytest.approx(1100)
        assert product.cost_price == pytest.approx(550)

    def test_markdown(self, conn, session, make_product):
        product_id = make_product(session, "Ring", cost_price=500, retail_price=1000)
        bulk_update(conn, session, Selection(frozenset({product_id})),
                    adjustment=PricingAdjustment(20, AdjustmentDirection.MARKDOWN))
        assert fetch_catalog(conn, session)[0].retail_price == pytest.approx(800)

    def test_explicit_price_wins_over_adjustment(self, conn, session, make_product):
        product_id = make_product(session, "Ring", cost_price=500, retail_price=1000)
        bulk_update(
            conn,
            session,
            Selection(frozenset({product_id})),
            fields={"retail_price": "1234"},
            adjustment=PricingAdjustment(10),
        )
        product = fetch_catalog(conn, session)[0]
        assert product.retail_price == pytest.approx(1234)
        assert product.cost_price == pytest.approx(550)

    def test_field_parsing(self, conn, session, make_product):
        product_id = make_product(session, "Ring", stock_quantity=1, retail_price=100, category="Rings")

        bulk_update(
            conn,
            session,
            Selection(frozenset({product_id})),
            fields={
                "stock_quantity": "7",
                "retail_price": "-5",
                "purity_fraction_used": "91.6",
                "category": "   ",
                "metal_type": " Platinum ",
                "not_a_column": "ignored",
            },
        )

        product = fetch_catalog(conn, session)[0]
        assert product.stock_quantity == 7
        assert product.retail_price == pytest.approx(100)
        assert product.purity_fraction_used == pytest.approx(0.916)
        assert product.category == "Rings"
        assert product.metal_type == "Platinum"

    @pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "Infinity"])
    def test_non_finite_numbers_ignored(self, conn, session, make_product, raw):
        product_id = make_product(session, "Ring", retail_price=100, cost_price=80, purity_fraction_used=0.75)

        bulk_update(
            conn,
            session,
            Selection(frozenset({product_id})),
            fields={"retail_price": raw, "cost_price": raw, "purity_fraction_used": raw, "stock_quantity": "2"},
        )

        product = fetch_catalog(conn, session)[0]
        assert product.retail_price == pytest.approx(100)
        assert product.cost_price == pytest.approx(80)
        assert product.purity_fraction_used == pytest.approx(0.75)
        assert product.stock_quantity == 2

    def test_empty_selection_rejected(self, conn, session):
        with pytest.raises(ValidationError, match="Select at least one"):
            bulk_update(conn, session, Selection(), fields={"stock_quantity": 1})

    def test_nothing_to_update_rejected(self, conn, session, make_product):
        product_id = make_product(session, "Ring")
        with pytest.raises(ValidationError, match="Nothing to update"):
            bulk_update(conn, session, Selection(frozenset({product_id})), fields={"sku": ""},
                        adjustment=PricingAdjustment(0))

    def test_partial_failure_keeps_selection(self, conn, session, make_product):
        alive = make_product(session, "Alive")
        gone = make_product(session, "Gone")
        db.soft_delete_products(conn, session.user_id, [gone])
        selection = Selection(frozenset({alive, gone}))

        batch, remaining = bulk_update(conn, session, selection, fields={"stock_quantity": "3"})

        assert batch.succeeded == [alive]
        assert list(batch.failed) == [gone]
        assert remaining == selection
        assert fetch_catalog(conn, session)[0].stock_quantity == 3


class TestApplyCategorySuggestions:
    def test_applies_non_empty_categories(self, conn, session, make_product):
        ring = make_product(session, "CLR101 Ring")
        chain = make_product(session, "Chain")

        batch = apply_category_suggestions(conn, session, {ring: "Ladies Rings", chain: ""})

        assert batch.succeeded == [ring]
        categories = {p.id: p.category for p in fetch_catalog(conn, session)}
        assert categories == {ring: "Ladies Rings", chain: None}
