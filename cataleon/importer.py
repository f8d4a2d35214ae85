"""
Spreadsheet import of products.

Vendors upload CSV or Excel sheets whose headers drift between suppliers
("D.WT 1", "D WT 1", "DWT1"...). Headers are compared after normalisation and
each product type has its own required/optional column set. Jewellery rows are
always repriced from the vendor's own gold rate and making charges; only the
sheet's NET WEIGHT and D VALUE are trusted as pre-computed inputs.
"""

import io
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from cataleon import db
from cataleon.errors import AuthenticationError, ValidationError
from cataleon.models import PRODUCT_TYPES, Product, Session, VendorProfile
from cataleon.pricing import calculate_jewelry_pricing, normalize_purity, safe_number

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS: dict[str, dict[str, list[str]]] = {
    "Jewellery": {
        "required": ["PRODUCT", "COST PRICE", "RETAIL PRICE", "STOCK QUANTITY"],
        "optional": [
            "CERT",
            "CATEGORY",
            "DESCRIPTION",
            "METAL TYPE",
            "GEMSTONE",
            "WEIGHT (grams)",
            "IMAGE URL",
            "DELIVERY TYPE",
        ],
    },
    "Gemstones": {
        "required": ["SKU ID", "GEMSTONE NAME", "PRICE INR", "STOCK QUANTITY"],
        "optional": [
            "GEMSTONE TYPE",
            "CARAT WEIGHT",
            "COLOR",
            "CLARITY",
            "CUT",
            "POLISH",
            "SYMMETRY",
            "MEASUREMENT",
            "CERTIFICATION",
            "IMAGE URL",
            "COST PRICE",
            "RETAIL PRICE",
        ],
    },
    "Loose Diamonds": {
        "required": ["SKU NO", "DIAMOND TYPE", "SHAPE", "CARAT", "COLOR", "CLARITY", "PRICE INR", "STOCK QUANTITY"],
        "optional": [
            "STATUS",
            "COLOR SHADE AMOUNT",
            "CUT",
            "POLISH",
            "SYMMETRY",
            "FLO",
            "MEASUREMENT",
            "RATIO",
            "LAB",
            "IMAGE URL",
            "COST PRICE",
            "RETAIL PRICE",
        ],
    },
}


@dataclass
class ImportResult:
    inserted: int
    updated: int

    @property
    def total(self) -> int:
        return self.inserted + self.updated


def get_expected_columns(product_type: str) -> dict[str, list[str]]:
    return EXPECTED_COLUMNS.get(product_type, EXPECTED_COLUMNS["Jewellery"])


def normalize_column_name(column_name: str) -> str:
    return "".join(ch for ch in str(column_name).lower() if ch not in "_ -\t\n").strip()


def find_best_match(detected_column: str, expected_columns: list[str]) -> Optional[str]:
    normalized = normalize_column_name(detected_column)
    if not normalized:
        return None
    for expected in expected_columns:
        expected_norm = normalize_column_name(expected)
        if normalized == expected_norm:
            return expected
        if normalized in expected_norm or expected_norm in normalized:
            return expected
    return None


def map_columns(df_columns: list[str], product_type: str) -> dict[str, Optional[str]]:
    """Maps each sheet header to the expected column it stands for, or None."""
    expected = get_expected_columns(product_type)
    candidates = expected["required"] + expected["optional"]
    return {str(column): find_best_match(str(column), candidates) for column in df_columns}


def missing_required_columns(df_columns: list[str], product_type: str) -> list[str]:
    mapped = {target for target in map_columns(df_columns, product_type).values() if target}
    return [column for column in get_expected_columns(product_type)["required"] if column not in mapped]


def parse_image_urls(value: Any) -> tuple[Optional[str], Optional[str], Optional[str]]:
    if _is_blank(value):
        return None, None, None
    # Excel exports escape ':' and '|' with backslashes.
    text = str(value).strip().replace("\\:", ":").replace("\\|", "|").replace("\\", "")
    urls = [part.strip() for part in text.split("|") if part.strip()]
    urls += [None] * (3 - len(urls))
    return urls[0], urls[1], urls[2]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


class _Row:
    """Case/spacing-insensitive view over one sheet row."""

    def __init__(self, raw: dict[str, Any]):
        self.values = {normalize_column_name(key): value for key, value in raw.items()}

    def get(self, *names: str) -> Any:
        for name in names:
            value = self.values.get(normalize_column_name(name))
            if not _is_blank(value):
                return value
        return None

    def text(self, *names: str) -> Optional[str]:
        value = self.get(*names)
        if value is None:
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip()

    def number(self, *names: str) -> float:
        return safe_number(self.get(*names))


def _jewellery_product(row: _Row, profile: VendorProfile) -> Optional[Product]:
    name = row.text("PRODUCT", "Product Name", "NAME")
    if not name:
        return None

    gross_weight = row.number("WEIGHT (grams)", "Gross Weight", "G WT", "GWT")
    purity_raw = row.get("PURITY FRACTION USED", "Purity", "Purity Fraction")
    d_wt_1 = row.number("D WT 1", "D.WT 1", "Diamond Weight 1", "DWT1")
    d_wt_2 = row.number("D WT 2", "D.WT 2", "Diamond Weight 2", "DWT2")
    d_rate_1 = row.number("D RATE 1", "Diamond RATE 1", "DRATE1")
    pointer_rate = row.number("POINTER DIAMOND", "Pointer diamond", "Diamond Rate 2", "D RATE 2")
    certification_cost = row.number("CERTIFICATION COST", "Cert Cost")
    gemstone_cost = row.number("GEMSTONE COST", "GS COST")
    net_weight_sheet = row.number("NET WEIGHT", "NET WT")
    d_value_sheet = row.number("D VALUE", "DVALUE", "Diamond Value")

    cost_price = row.number("COST PRICE")
    retail_price = row.number("RETAIL PRICE", "TOTAL") or cost_price
    purity_fraction = normalize_purity(purity_raw)
    net_weight = net_weight_sheet or None
    d_value = d_value_sheet or None
    making = None

    if (gross_weight or net_weight_sheet) and profile.gold_rate_24k_per_gram > 0:
        pricing = calculate_jewelry_pricing(
            gross_weight=gross_weight,
            gold_rate=profile.gold_rate_24k_per_gram,
            purity=purity_raw,
            making_charges_per_gram=profile.making_charges_per_gram,
            gemstone_weight=row.number("GEMSTONE WT", "Gemstone Weight"),
            d_wt_1=d_wt_1,
            d_wt_2=d_wt_2,
            d_rate_1=d_rate_1,
            pointer_rate=pointer_rate,
            certification_cost=certification_cost,
            gemstone_cost=gemstone_cost,
            net_weight_override=net_weight_sheet,
            diamond_value_override=d_value_sheet,
        )
        cost_price = pricing["cost_price"]
        retail_price = pricing["total_price"] or cost_price
        net_weight = pricing["net_weight"]
        d_value = pricing["diamond_value"]
        making = pricing["making_charges"]

    image_1, image_2, image_3 = parse_image_urls(row.get("IMAGE URL", "IMAGE_URL", "THUMBNAIL"))
    diamond_weight = row.number("DIAMOND WEIGHT", "T DWT") or (d_wt_1 + d_wt_2) or None

    return Product(
        id=None,
        name=name,
        sku=row.text("CERT", "SKU", "SKU ID"),
        product_type="Jewellery",
        category=row.text("CATEGORY"),
        description=row.text("DESCRIPTION"),
        metal_type=row.text("METAL TYPE"),
        gemstone=row.text("GEMSTONE"),
        color=row.text("COLOR"),
        diamond_color=row.text("DIAMOND COLOR"),
        diamond_clarity=row.text("DIAMOND CLARITY", "CLARITY"),
        clarity=row.text("CLARITY"),
        delivery_type=row.text("DELIVERY TYPE"),
        dispatches_in_days=row.number("DISPATCHES IN DAYS") or None,
        weight_grams=gross_weight or None,
        net_weight=net_weight,
        purity_fraction_used=purity_fraction,
        purity_unit="fraction",
        gold_per_gram_price=profile.gold_rate_24k_per_gram or None,
        d_wt_1=d_wt_1 or None,
        d_wt_2=d_wt_2 or None,
        diamond_weight=diamond_weight,
        d_rate_1=d_rate_1 or None,
        pointer_diamond=pointer_rate or None,
        d_value=d_value,
        mkg=making if making is not None else (row.number("MKG") or None),
        certification_cost=certification_cost or None,
        gemstone_cost=gemstone_cost or None,
        cost_price=cost_price,
        retail_price=retail_price,
        stock_quantity=int(row.number("STOCK QUANTITY")),
        image_url=image_1,
        image_url_2=image_2,
        image_url_3=image_3,
    )


def _gemstone_product(row: _Row) -> Optional[Product]:
    name = row.text("GEMSTONE NAME", "PRODUCT")
    if not name:
        return None
    price = row.number("PRICE INR")
    image_1, image_2, image_3 = parse_image_urls(row.get("IMAGE URL", "IMAGE_URL"))
    return Product(
        id=None,
        name=name,
        sku=row.text("SKU ID", "SKU"),
        product_type="Gemstones",
        category=row.text("GEMSTONE TYPE"),
        gemstone_type=row.text("GEMSTONE TYPE"),
        carat_weight=row.number("CARAT WEIGHT") or None,
        color=row.text("COLOR"),
        clarity=row.text("CLARITY"),
        cut=row.text("CUT"),
        polish=row.text("POLISH"),
        symmetry=row.text("SYMMETRY"),
        lab=row.text("CERTIFICATION"),
        description=row.text("MEASUREMENT"),
        cost_price=row.number("COST PRICE") or price,
        retail_price=row.number("RETAIL PRICE") or price,
        stock_quantity=int(row.number("STOCK QUANTITY")),
        image_url=image_1,
        image_url_2=image_2,
        image_url_3=image_3,
    )


def _diamond_product(row: _Row) -> Optional[Product]:
    shape = row.text("SHAPE")
    carat = row.number("CARAT")
    color = row.text("COLOR")
    clarity = row.text("CLARITY")
    sku = row.text("SKU NO", "SKU")
    if not sku and not shape:
        return None
    name = " ".join(part for part in [shape, f"{carat:g}ct" if carat else None, color, clarity] if part)
    price = row.number("PRICE INR")
    image_1, image_2, image_3 = parse_image_urls(row.get("IMAGE URL", "IMAGE_URL"))
    return Product(
        id=None,
        name=name or sku,
        sku=sku,
        product_type="Loose Diamonds",
        category=shape,
        diamond_type=row.text("DIAMOND TYPE"),
        shape=shape,
        carat=carat or None,
        diamond_color=color,
        diamond_clarity=clarity,
        color=color,
        clarity=clarity,
        cut=row.text("CUT"),
        polish=row.text("POLISH"),
        symmetry=row.text("SYMMETRY"),
        fluorescence=row.text("FLO", "FLUORESCENCE"),
        lab=row.text("LAB"),
        description=row.text("MEASUREMENT"),
        cost_price=row.number("COST PRICE") or price,
        retail_price=row.number("RETAIL PRICE") or price,
        stock_quantity=int(row.number("STOCK QUANTITY")),
        image_url=image_1,
        image_url_2=image_2,
        image_url_3=image_3,
    )


def rows_to_products(df: pd.DataFrame, product_type: str, profile: VendorProfile) -> list[Product]:
    if product_type not in PRODUCT_TYPES:
        raise ValidationError(f"Unknown product type: {product_type}")

    missing = missing_required_columns(list(df.columns), product_type)
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(missing)}")

    products: list[Product] = []
    for record in df.to_dict(orient="records"):
        row = _Row(record)
        if product_type == "Gemstones":
            product = _gemstone_product(row)
        elif product_type == "Loose Diamonds":
            product = _diamond_product(row)
        else:
            product = _jewellery_product(row, profile)
        if product is not None:
            products.append(product)
    return products


def import_products(
    conn: sqlite3.Connection,
    session: Optional[Session],
    df: pd.DataFrame,
    product_type: str,
) -> ImportResult:
    """Inserts new rows and updates existing products that share a SKU."""
    if session is None:
        raise AuthenticationError()

    profile = db.get_vendor_profile(conn, session.user_id)
    products = rows_to_products(df, product_type, profile)
    if not products:
        raise ValidationError("No valid products found in file")

    inserted = 0
    updated = 0
    for product in products:
        existing = db.find_product_by_sku(conn, session.user_id, product.sku) if product.sku else None
        if existing is None:
            db.add_product(conn, session.user_id, product)
            inserted += 1
            continue
        changes = {
            name: value
            for name, value in product.to_record().items()
            if name in db.WRITABLE_PRODUCT_COLUMNS and value is not None
        }
        db.update_product(conn, session.user_id, existing.id, changes)
        updated += 1

    logger.info(
        "User %s imported %s: %d new, %d updated",
        session.user_id,
        product_type,
        inserted,
        updated,
    )
    return ImportResult(inserted=inserted, updated=updated)


TEMPLATE_SAMPLES: dict[str, list[dict[str, Any]]] = {
    "Jewellery": [
        {
            "PRODUCT": "Sample Ring",
            "CERT": "SKU-001",
            "CATEGORY": "Ring",
            "DESCRIPTION": "Gold ring with diamond",
            "METAL TYPE": "Gold",
            "GEMSTONE": "F VS1",
            "WEIGHT (grams)": 5.5,
            "NET WEIGHT": 5.2,
            "D WT 1": 0.2,
            "D WT 2": 0.1,
            "DIAMOND COLOR": "F",
            "COLOR": "Yellow",
            "CLARITY": "VS1",
            "POINTER DIAMOND": 30000,
            "D RATE 1": 45000,
            "D VALUE": "",
            "PURITY FRACTION USED": 0.75,
            "CERTIFICATION COST": 500,
            "GEMSTONE COST": 0,
            "COST PRICE": 45000,
            "RETAIL PRICE": 55000,
            "STOCK QUANTITY": 10,
            "IMAGE URL": "https://example.com/ring-1.jpg|https://example.com/ring-2.jpg",
            "DELIVERY TYPE": "immediate delivery",
            "DISPATCHES IN DAYS": "",
        },
        {
            "PRODUCT": "Sample Necklace",
            "CERT": "SKU-002",
            "CATEGORY": "Necklace",
            "DESCRIPTION": "Platinum diamond necklace",
            "METAL TYPE": "Platinum",
            "GEMSTONE": "D VVS1",
            "WEIGHT (grams)": 15.0,
            "NET WEIGHT": 14.5,
            "D WT 1": 0.3,
            "D WT 2": 0.2,
            "DIAMOND COLOR": "D",
            "COLOR": "White",
            "CLARITY": "VVS1",
            "POINTER DIAMOND": 50000,
            "D RATE 1": 75000,
            "D VALUE": 40000,
            "PURITY FRACTION USED": 0.95,
            "CERTIFICATION COST": 1000,
            "GEMSTONE COST": 5000,
            "COST PRICE": 120000,
            "RETAIL PRICE": 150000,
            "STOCK QUANTITY": 5,
            "IMAGE URL": "https://example.com/necklace.jpg",
            "DELIVERY TYPE": "Despatches in 5 working days",
            "DISPATCHES IN DAYS": 5,
        },
    ],
    "Gemstones": [
        {
            "SKU ID": "GEM-001",
            "GEMSTONE NAME": "Ceylon Blue Sapphire",
            "GEMSTONE TYPE": "Sapphire",
            "CARAT WEIGHT": 2.15,
            "COLOR": "Royal Blue",
            "CLARITY": "VS",
            "CUT": "Oval",
            "POLISH": "Excellent",
            "SYMMETRY": "Very Good",
            "MEASUREMENT": "8.1 x 6.2 x 4.0 mm",
            "CERTIFICATION": "GRS",
            "PRICE INR": 185000,
            "STOCK QUANTITY": 1,
            "IMAGE URL": "https://example.com/sapphire.jpg",
        },
    ],
    "Loose Diamonds": [
        {
            "SKU NO": "LD-001",
            "DIAMOND TYPE": "Natural",
            "SHAPE": "Round",
            "CARAT": 1.01,
            "COLOR": "G",
            "CLARITY": "VS2",
            "CUT": "Excellent",
            "POLISH": "Excellent",
            "SYMMETRY": "Excellent",
            "FLO": "None",
            "MEASUREMENT": "6.42 x 6.45 x 3.98 mm",
            "LAB": "GIA",
            "PRICE INR": 520000,
            "STOCK QUANTITY": 1,
            "IMAGE URL": "https://example.com/diamond.jpg",
        },
    ],
}


def _instructions(product_type: str) -> list[str]:
    expected = get_expected_columns(product_type)
    lines = [f"{product_type.upper()} IMPORT TEMPLATE - INSTRUCTIONS", "", "REQUIRED FIELDS (must be filled):"]
    lines += [f"- {column}" for column in expected["required"]]
    lines += ["", "OPTIONAL FIELDS:"]
    lines += [f"- {column}" for column in expected["optional"]]
    lines += [
        "",
        "IMAGE URL can hold up to 3 URLs separated by | (pipe).",
        "Keep the header row and fill product data from row 2.",
        "If a product with the same SKU exists, it will be updated.",
    ]
    if product_type == "Jewellery":
        lines.append("Prices are recalculated from your gold rate and making charges when a weight is given.")
    return lines


def build_import_template(product_type: str) -> bytes:
    """Returns an .xlsx workbook with an Instructions sheet and sample rows."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame({"Instructions": _instructions(product_type)}).to_excel(
            writer, sheet_name="Instructions", index=False
        )
        pd.DataFrame(TEMPLATE_SAMPLES[product_type]).to_excel(writer, sheet_name="Products", index=False)
        writer.sheets["Instructions"].column_dimensions["A"].width = 80
    return buffer.getvalue()


def read_upload(uploaded: Any) -> pd.DataFrame:
    name = str(getattr(uploaded, "name", "")).lower()
    if name.endswith((".xlsx", ".xls")):
        return pd.read_excel(uploaded, sheet_name=0, engine="openpyxl" if name.endswith(".xlsx") else None)
    return pd.read_csv(uploaded)
