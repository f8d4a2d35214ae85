import logging
import math
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional

from cataleon import db
from cataleon.batch import DEFAULT_MAX_WORKERS, BatchResult, run_batch
from cataleon.errors import AuthenticationError, CataleonError, ValidationError
from cataleon.models import Metal, PricingAdjustment, Product, Selection, Session
from cataleon.pricing import apply_pricing_adjustment, resolve_metal, select_weight, value_existing_product

logger = logging.getLogger(__name__)

RATE_COLUMNS = {
    Metal.GOLD: "gold_rate_24k_per_gram",
    Metal.SILVER: "silver_rate_per_gram",
    Metal.PLATINUM: "platinum_rate_per_gram",
}

NUMERIC_FIELDS = ["cost_price", "retail_price", "weight_grams", "stock_quantity", "dispatches_in_days"]
TEXT_FIELDS = [
    "name",
    "sku",
    "category",
    "description",
    "metal_type",
    "gemstone",
    "color",
    "diamond_color",
    "diamond_clarity",
    "clarity",
    "delivery_type",
]


@dataclass
class RateUpdateResult:
    metal: Metal
    rate: float
    batch: BatchResult
    products: list[Product]


def _require_session(session: Optional[Session]) -> Session:
    if session is None:
        raise AuthenticationError()
    return session


def fetch_catalog(conn: sqlite3.Connection, session: Optional[Session], product_type: Optional[str] = None) -> list[Product]:
    session = _require_session(session)
    return db.list_products(conn, session.user_id, product_type)


def _parse_rate(value: Any) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid rate") from None
    if not math.isfinite(rate) or rate <= 0:
        raise ValidationError("Please enter a valid rate")
    return rate


def _apply_rate(
    conn: sqlite3.Connection,
    session: Session,
    rate: float,
    metal: Metal,
    targets: list[Product],
    product_type: Optional[str],
    max_workers: int,
) -> RateUpdateResult:
    changes: dict[str, Any] = {RATE_COLUMNS[metal]: rate}
    if metal == Metal.GOLD:
        changes["gold_rate_updated_at"] = db.utc_now_iso()
    db.update_vendor_profile(conn, session.user_id, changes)
    logger.info("User %s set %s rate to %.2f", session.user_id, metal.value, rate)

    def reprice(product: Product) -> None:
        valuation = value_existing_product(product, rate)
        db.update_product(
            conn,
            session.user_id,
            product.id,
            {
                "cost_price": valuation.cost_price,
                "retail_price": valuation.retail_price,
                "purity_fraction_used": valuation.purity_fraction,
                "purity_unit": "fraction",
                "gold_per_gram_price": rate,
            },
        )

    batch = run_batch(targets, reprice, key=lambda product: product.id, max_workers=max_workers)
    logger.info("Repriced %s for %s rate change", batch.summary(), metal.value)

    return RateUpdateResult(
        metal=metal,
        rate=rate,
        batch=batch,
        products=db.list_products(conn, session.user_id, product_type),
    )


def _weighted(products: list[Product]) -> list[Product]:
    return [
        product
        for product in products
        if product.id is not None and select_weight(product.net_weight, product.weight_grams) > 0
    ]


def update_metal_rate(
    conn: sqlite3.Connection,
    session: Optional[Session],
    new_rate: Any,
    products: list[Product],
    product_type: Optional[str] = "Jewellery",
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> RateUpdateResult:
    """
    Store a new 24K gold rate and reprice every product that carries a weight.

    The profile write happens first and any error from it propagates before a
    single product is touched. Product writes then run independently; the
    returned batch says which ones failed and the catalog is re-read afterwards
    so the caller sees whatever actually landed.
    """
    session = _require_session(session)
    rate = _parse_rate(new_rate)
    return _apply_rate(conn, session, rate, Metal.GOLD, _weighted(products), product_type, max_workers)


def reprice_metal(
    conn: sqlite3.Connection,
    session: Optional[Session],
    new_rate: Any,
    products: list[Product],
    metal: Metal,
    product_type: Optional[str] = "Jewellery",
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> RateUpdateResult:
    """Like update_metal_rate, limited to products whose metal resolves to ``metal``."""
    session = _require_session(session)
    rate = _parse_rate(new_rate)
    metal = Metal(metal)
    targets = [product for product in _weighted(products) if resolve_metal(product.metal_type) == metal]
    return _apply_rate(conn, session, rate, metal, targets, product_type, max_workers)


def update_metal_rates(
    conn: sqlite3.Connection,
    session: Optional[Session],
    gold: Any,
    silver: Any,
    platinum: Any,
) -> None:
    session = _require_session(session)
    changes = {
        RATE_COLUMNS[Metal.GOLD]: _parse_rate(gold),
        RATE_COLUMNS[Metal.SILVER]: _parse_rate(silver),
        RATE_COLUMNS[Metal.PLATINUM]: _parse_rate(platinum),
        "gold_rate_updated_at": db.utc_now_iso(),
    }
    db.update_vendor_profile(conn, session.user_id, changes)
    logger.info("User %s updated metal rates", session.user_id)


def delete_selected(
    conn: sqlite3.Connection,
    session: Optional[Session],
    selection: Selection,
) -> tuple[int, Selection]:
    session = _require_session(session)
    if not selection:
        return 0, selection
    try:
        count = db.soft_delete_products(conn, session.user_id, selection.ids)
    except sqlite3.Error as exc:
        raise CataleonError(str(exc), code="STORAGE_ERROR") from exc
    logger.info("User %s soft-deleted %d product(s)", session.user_id, count)
    return count, selection.clear()


def _parse_field_changes(fields: dict[str, Any]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for name in NUMERIC_FIELDS:
        raw = fields.get(name)
        if raw is None or str(raw).strip() == "":
            continue
        try:
            number = float(raw)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number) and number >= 0:
            changes[name] = int(number) if name == "stock_quantity" else number

    raw_purity = fields.get("purity_fraction_used")
    if raw_purity is not None and str(raw_purity).strip() != "":
        try:
            purity = float(raw_purity)
        except (TypeError, ValueError):
            purity = None
        if purity is not None and math.isfinite(purity) and purity >= 0:
            changes["purity_fraction_used"] = purity / 100 if purity > 1 else purity
            changes["purity_unit"] = "fraction"

    for name in TEXT_FIELDS:
        raw = fields.get(name)
        if raw is not None and str(raw).strip():
            changes[name] = str(raw).strip()
    return changes


def bulk_update(
    conn: sqlite3.Connection,
    session: Optional[Session],
    selection: Selection,
    fields: Optional[dict[str, Any]] = None,
    adjustment: Optional[PricingAdjustment] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> tuple[BatchResult, Selection]:
    session = _require_session(session)
    if not selection:
        raise ValidationError("Select at least one product first")

    field_changes = _parse_field_changes(fields or {})
    if adjustment is not None and adjustment.percentage <= 0:
        adjustment = None
    if not field_changes and adjustment is None:
        raise ValidationError("Nothing to update")

    current: dict[int, Product] = {}
    if adjustment is not None:
        current = {product.id: product for product in db.get_products_by_ids(conn, session.user_id, selection.ids)}

    def apply(product_id: int) -> None:
        changes = dict(field_changes)
        if adjustment is not None:
            product = current.get(product_id)
            if product is None:
                raise LookupError(f"Product {product_id} not found")
            changes.setdefault(
                "cost_price",
                apply_pricing_adjustment(product.cost_price, adjustment.percentage, adjustment.direction),
            )
            changes.setdefault(
                "retail_price",
                apply_pricing_adjustment(product.retail_price, adjustment.percentage, adjustment.direction),
            )
        db.update_product(conn, session.user_id, product_id, changes)

    batch = run_batch(sorted(selection.ids), apply, key=lambda product_id: product_id, max_workers=max_workers)
    logger.info("Bulk update for user %s: %s", session.user_id, batch.summary())
    return batch, selection.clear() if batch.ok else selection


def apply_category_suggestions(
    conn: sqlite3.Connection,
    session: Optional[Session],
    suggestions: dict[int, str],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> BatchResult:
    session = _require_session(session)
    items = [(product_id, category) for product_id, category in suggestions.items() if category]

    def apply(item: tuple[int, str]) -> None:
        db.update_product(conn, session.user_id, item[0], {"category": item[1]})

    batch = run_batch(items, apply, key=lambda item: item[0], max_workers=max_workers)
    logger.info("Applied category suggestions for user %s: %s", session.user_id, batch.summary())
    return batch