"""Spreadsheet import: header matching, repricing and SKU upsert."""

import io

import pandas as pd
import pytest

from cataleon import db
from cataleon.errors import AuthenticationError, ValidationError
from cataleon.importer import (
    build_import_template,
    find_best_match,
    import_products,
    map_columns,
    missing_required_columns,
    normalize_column_name,
    parse_image_urls,
    rows_to_products,
)
from cataleon.models import VendorProfile


def jewellery_row(**overrides):
    row = {
        "PRODUCT": "Solitaire Ring",
        "CERT": "SKU-1",
        "CATEGORY": "Rings",
        "WEIGHT (grams)": 10,
        "GEMSTONE WT": 0.2,
        "D WT 1": 0.5,
        "D WT 2": 0.3,
        "D RATE 1": 50000,
        "POINTER DIAMOND": 20000,
        "PURITY FRACTION USED": 18,
        "CERTIFICATION COST": 500,
        "GEMSTONE COST": 2000,
        "COST PRICE": 1,
        "RETAIL PRICE": 1,
        "STOCK QUANTITY": 2,
    }
    row.update(overrides)
    return row


class TestColumnMatching:
    def test_normalize(self):
        assert normalize_column_name("Stock_Quantity") == "stockquantity"
        assert normalize_column_name(" D WT-1\n") == "dwt1"

    def test_contains_match(self):
        assert find_best_match("Retail Price (INR)", ["COST PRICE", "RETAIL PRICE"]) == "RETAIL PRICE"

    def test_no_match(self):
        assert find_best_match("stock qty", ["STOCK QUANTITY"]) is None
        assert find_best_match("   ", ["STOCK QUANTITY"]) is None

    def test_map_columns(self):
        assert map_columns(["product", "Random"], "Jewellery") == {"product": "PRODUCT", "Random": None}

    def test_missing_required(self):
        missing = missing_required_columns(["PRODUCT", "Cost_Price"], "Jewellery")
        assert missing == ["RETAIL PRICE", "STOCK QUANTITY"]


class TestParseImageUrls:
    def test_escaped_pipe_list(self):
        raw = "https\\://a.com/1.jpg\\|https\\://a.com/2.jpg"
        assert parse_image_urls(raw) == ("https://a.com/1.jpg", "https://a.com/2.jpg", None)

    def test_extra_urls_dropped(self):
        assert parse_image_urls("a|b|c|d") == ("a", "b", "c")

    @pytest.mark.parametrize("raw", [None, "", float("nan")])
    def test_blank(self, raw):
        assert parse_image_urls(raw) == (None, None, None)


class TestRowsToProducts:
    def test_jewellery_repriced_from_profile(self):
        profile = VendorProfile(user_id=1, gold_rate_24k_per_gram=7000, making_charges_per_gram=500)
        [product] = rows_to_products(pd.DataFrame([jewellery_row()]), "Jewellery", profile)

        assert product.name == "Solitaire Ring"
        assert product.sku == "SKU-1"
        assert product.product_type == "Jewellery"
        assert product.net_weight == pytest.approx(9.8)
        assert product.d_value == pytest.approx(31000)
        assert product.mkg == pytest.approx(5000)
        assert product.diamond_weight == pytest.approx(0.8)
        assert product.purity_fraction_used == pytest.approx(0.75)
        assert product.retail_price == pytest.approx(89950)
        assert product.cost_price == pytest.approx(89950)
        assert product.stock_quantity == 2

    def test_sheet_prices_kept_without_gold_rate(self):
        profile = VendorProfile(user_id=1)
        row = jewellery_row(**{"COST PRICE": 40000, "RETAIL PRICE": 52000})
        [product] = rows_to_products(pd.DataFrame([row]), "Jewellery", profile)
        assert product.cost_price == 40000
        assert product.retail_price == 52000

    def test_jewellery_clarity_is_diamond_clarity(self):
        row = jewellery_row(**{"DIAMOND COLOR": "F", "CLARITY": "VVS1"})
        [product] = rows_to_products(pd.DataFrame([row]), "Jewellery", VendorProfile(user_id=1))
        assert (product.diamond_color, product.diamond_clarity) == ("F", "VVS1")

    def test_rows_without_name_skipped(self):
        df = pd.DataFrame([jewellery_row(), jewellery_row(PRODUCT="")])
        assert len(rows_to_products(df, "Jewellery", VendorProfile(user_id=1))) == 1

    def test_loose_diamond_name(self):
        row = {
            "SKU NO": "LD-1",
            "DIAMOND TYPE": "Natural",
            "SHAPE": "Round",
            "CARAT": 1.01,
            "COLOR": "G",
            "CLARITY": "VS2",
            "PRICE INR": 520000,
            "STOCK QUANTITY": 1,
        }
        [product] = rows_to_products(pd.DataFrame([row]), "Loose Diamonds", VendorProfile(user_id=1))
        assert product.name == "Round 1.01ct G VS2"
        assert product.retail_price == 520000
        assert product.diamond_color == "G"
        assert product.diamond_clarity == "VS2"

    def test_gemstone_price_fallback(self):
        row = {"SKU ID": "GEM-1", "GEMSTONE NAME": "Ruby", "PRICE INR": 9000, "STOCK QUANTITY": 3}
        [product] = rows_to_products(pd.DataFrame([row]), "Gemstones", VendorProfile(user_id=1))
        assert product.cost_price == product.retail_price == 9000
        assert product.product_type == "Gemstones"

    def test_missing_columns_rejected(self):
        with pytest.raises(ValidationError, match="Missing required columns"):
            rows_to_products(pd.DataFrame([{"PRODUCT": "Ring"}]), "Jewellery", VendorProfile(user_id=1))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            rows_to_products(pd.DataFrame([jewellery_row()]), "Watches", VendorProfile(user_id=1))


class TestImportProducts:
    def test_upsert_by_sku(self, conn, session):
        first = import_products(conn, session, pd.DataFrame([jewellery_row()]), "Jewellery")
        second = import_products(
            conn, session, pd.DataFrame([jewellery_row(**{"STOCK QUANTITY": 9})]), "Jewellery"
        )

        assert (first.inserted, first.updated) == (1, 0)
        assert (second.inserted, second.updated) == (0, 1)
        [product] = db.list_products(conn, session.user_id)
        assert product.stock_quantity == 9

    def test_same_sku_other_vendor_inserted(self, conn, session, other_session):
        import_products(conn, session, pd.DataFrame([jewellery_row()]), "Jewellery")
        result = import_products(conn, other_session, pd.DataFrame([jewellery_row()]), "Jewellery")
        assert result.inserted == 1

    def test_empty_sheet_rejected(self, conn, session):
        df = pd.DataFrame([jewellery_row(PRODUCT="")])
        with pytest.raises(ValidationError, match="No valid products"):
            import_products(conn, session, df, "Jewellery")

    def test_requires_session(self, conn):
        with pytest.raises(AuthenticationError):
            import_products(conn, None, pd.DataFrame([jewellery_row()]), "Jewellery")


class TestImportTemplate:
    def test_workbook_sheets(self):
        content = build_import_template("Gemstones")
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)

        assert list(sheets) == ["Instructions", "Products"]
        assert "SKU ID" in sheets["Products"].columns
        assert sheets["Products"].iloc[0]["GEMSTONE NAME"] == "Ceylon Blue Sapphire"

    def test_template_passes_own_validation(self):
        content = build_import_template("Jewellery")
        df = pd.read_excel(io.BytesIO(content), sheet_name="Products")
        assert missing_required_columns(list(df.columns), "Jewellery") == []
