"""
Manufacturing estimates and the invoices raised from them.

An estimate is a list of line items priced with the same valuation rule as the
catalog, plus a profit margin. Generating an invoice stamps an estimate with a
number, dates and a payment status; both live in the same ``estimates`` table.
"""

import logging
import re
import sqlite3
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from cataleon import db
from cataleon.errors import AuthenticationError, ValidationError
from cataleon.models import Estimate, LineItem, Product, Selection, Session
from cataleon.pricing import round_money, safe_number, select_weight, value_existing_product, value_product

logger = logging.getLogger(__name__)

ESTIMATE_STATUSES = ["draft", "quoted", "approved", "in_production", "completed"]
INVOICE_STATUSES = ["pending", "partial", "paid", "overdue"]
INVOICE_TYPES = ["tax", "export", "proforma"]
PAYMENT_TERMS = ["Due on receipt", "Net 7", "Net 15", "Net 30", "Net 45", "Net 60"]
DEFAULT_PAYMENT_TERMS = "Net 30"
DEFAULT_INVOICE_PREFIX = "INV"
DEFAULT_ESTIMATE_PURITY = 0.76
MAX_PROFIT_MARGIN = 200.0

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_NET_DAYS = re.compile(r"^\s*net\s*(\d+)\s*$", re.IGNORECASE)
_TRAILING_NUMBER = re.compile(r"(\d+)$")


@dataclass(frozen=True)
class EstimateTotals:
    total_cost: float
    profit_amount: float
    final_selling_price: float


def _require_session(session: Optional[Session]) -> Session:
    if session is None:
        raise AuthenticationError()
    return session


def _clean(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def line_item_from_product(product: Product, gold_rate: float, quantity: int = 1) -> LineItem:
    """Price a catalog product at ``gold_rate``.

    Weighted pieces are broken into the valuation components. Pieces with no
    weight, or any piece when there is no gold rate, carry their retail price.
    """
    weight = select_weight(product.net_weight, product.weight_grams)
    item = LineItem(
        item_name=product.name,
        product_id=product.id,
        description=product.description,
        quantity=quantity,
        net_weight=weight,
        gross_weight=float(product.weight_grams or 0.0),
        diamond_weight=float(product.diamond_weight or product.carat or product.carat_weight or 0.0),
    )
    if weight <= 0 or gold_rate <= 0:
        return replace(item, listed_price=float(product.retail_price or 0.0))

    valuation = value_existing_product(product, gold_rate)
    return replace(
        item,
        purity_fraction=valuation.purity_fraction,
        gold_cost=round_money(valuation.metal_value),
        diamond_cost=float(product.d_value or 0.0),
        gemstone_cost=float(product.gemstone_cost or 0.0),
        making_charges=float(product.mkg or 0.0),
        certification_cost=float(product.certification_cost or 0.0),
    )


def line_items_from_products(products: Iterable[Product], gold_rate: float) -> list[LineItem]:
    return [line_item_from_product(product, gold_rate) for product in products]


def manual_line_item(
    item_name: str,
    gold_rate: float,
    net_weight: Any = 0,
    purity: Any = DEFAULT_ESTIMATE_PURITY,
    gross_weight: Any = 0,
    diamond_weight: Any = 0,
    gemstone_weight: Any = 0,
    diamond_cost: Any = 0,
    gemstone_cost: Any = 0,
    making_charges: Any = 0,
    certification_cost: Any = 0,
    cad_design_charges: Any = 0,
    camming_charges: Any = 0,
    quantity: int = 1,
    description: Optional[str] = None,
) -> LineItem:
    """A custom piece that is not in the catalog, gold valued from weight and purity."""
    name = (item_name or "").strip()
    if not name:
        raise ValidationError("Item name is required")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    valuation = value_product(weight=safe_number(net_weight), purity=purity, metal_rate=safe_number(gold_rate))
    return LineItem(
        item_name=name,
        description=_clean(description),
        quantity=quantity,
        net_weight=valuation.weight,
        gross_weight=safe_number(gross_weight),
        purity_fraction=valuation.purity_fraction,
        diamond_weight=safe_number(diamond_weight),
        gemstone_weight=safe_number(gemstone_weight),
        gold_cost=round_money(valuation.metal_value),
        diamond_cost=safe_number(diamond_cost),
        gemstone_cost=safe_number(gemstone_cost),
        making_charges=safe_number(making_charges),
        certification_cost=safe_number(certification_cost),
        cad_design_charges=safe_number(cad_design_charges),
        camming_charges=safe_number(camming_charges),
    )


def estimate_totals(line_items: Iterable[LineItem], profit_margin: float) -> EstimateTotals:
    total_cost = round_money(sum(item.subtotal for item in line_items))
    profit_amount = round_money(total_cost * profit_margin / 100)
    return EstimateTotals(
        total_cost=total_cost,
        profit_amount=profit_amount,
        final_selling_price=round_money(total_cost + profit_amount),
    )


def _validate_margin(profit_margin: Any) -> float:
    margin = safe_number(profit_margin)
    if margin < 0 or margin > MAX_PROFIT_MARGIN:
        raise ValidationError(f"Profit margin must be between 0 and {MAX_PROFIT_MARGIN:g}%")
    return margin


def create_estimate(
    conn: sqlite3.Connection,
    session: Optional[Session],
    estimate_name: str,
    line_items: list[LineItem],
    profit_margin: Any = 0,
    gold_rate: Optional[float] = None,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    customer_email: Optional[str] = None,
    customer_address: Optional[str] = None,
    notes: Optional[str] = None,
) -> Estimate:
    session = _require_session(session)
    name = (estimate_name or "").strip()
    if not name:
        raise ValidationError("Please enter an estimate/order name")
    if not line_items:
        raise ValidationError("Add at least one item to the estimate")
    margin = _validate_margin(profit_margin)
    email = _clean(customer_email)
    if email and not _EMAIL.match(email):
        raise ValidationError("Invalid email address")
    if gold_rate is None:
        gold_rate = db.get_vendor_profile(conn, session.user_id).gold_rate_24k_per_gram

    totals = estimate_totals(line_items, margin)
    estimate = db.insert_estimate(
        conn,
        session.user_id,
        Estimate(
            id=None,
            user_id=session.user_id,
            estimate_name=name,
            line_items=list(line_items),
            gold_rate_24k=float(gold_rate or 0.0),
            profit_margin_percentage=margin,
            total_cost=totals.total_cost,
            final_selling_price=totals.final_selling_price,
            customer_name=_clean(customer_name),
            customer_phone=_clean(customer_phone),
            customer_email=email,
            customer_address=_clean(customer_address),
            notes=_clean(notes),
        ),
    )
    logger.info(
        "User %s saved estimate %s with %d item(s) totalling %.2f",
        session.user_id,
        estimate.id,
        len(line_items),
        totals.final_selling_price,
    )
    return estimate


def estimate_from_selection(
    conn: sqlite3.Connection,
    session: Optional[Session],
    selection: Selection,
    estimate_name: str,
    **details: Any,
) -> Estimate:
    """Estimate the selected catalog products at the vendor's current gold rate."""
    session = _require_session(session)
    if not selection:
        raise ValidationError("Select at least one product first")
    products = db.get_products_by_ids(conn, session.user_id, selection.ids)
    if not products:
        raise ValidationError("None of the selected products were found")
    gold_rate = details.pop("gold_rate", None)
    if gold_rate is None:
        gold_rate = db.get_vendor_profile(conn, session.user_id).gold_rate_24k_per_gram
    items = line_items_from_products(products, gold_rate)
    return create_estimate(conn, session, estimate_name, items, gold_rate=gold_rate, **details)


def _matches(estimate: Estimate, search: str, fields: list[str]) -> bool:
    query = (search or "").strip().lower()
    if not query:
        return True
    return any(query in (getattr(estimate, name) or "").lower() for name in fields)


def list_estimates(
    conn: sqlite3.Connection,
    session: Optional[Session],
    status: Optional[str] = None,
    search: str = "",
) -> list[Estimate]:
    session = _require_session(session)
    return [
        estimate
        for estimate in db.list_estimates(conn, session.user_id)
        if (not status or estimate.status == status)
        and _matches(estimate, search, ["estimate_name", "customer_name", "customer_email"])
    ]


def get_estimate(conn: sqlite3.Connection, session: Optional[Session], estimate_id: int) -> Estimate:
    session = _require_session(session)
    estimate = db.get_estimate(conn, session.user_id, estimate_id)
    if estimate is None:
        raise ValidationError("Estimate not found")
    return estimate


def update_estimate_status(conn: sqlite3.Connection, session: Optional[Session], estimate_id: int, status: str) -> None:
    session = _require_session(session)
    if status not in ESTIMATE_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(ESTIMATE_STATUSES)}")
    if db.update_estimate(conn, session.user_id, estimate_id, {"status": status}) == 0:
        raise ValidationError("Estimate not found")
    logger.info("User %s moved estimate %s to %s", session.user_id, estimate_id, status)


def next_invoice_number(
    conn: sqlite3.Connection,
    session: Optional[Session],
    prefix: str = DEFAULT_INVOICE_PREFIX,
    today: Optional[date] = None,
) -> str:
    """``PREFIX-YYYY-NNN`` continuing from the highest number used this year."""
    session = _require_session(session)
    today = today or date.today()
    stem = f"{(prefix or DEFAULT_INVOICE_PREFIX).strip()}-{today.year}-"
    used = []
    for number in db.list_invoice_numbers(conn, session.user_id, stem):
        match = _TRAILING_NUMBER.search(number)
        if match:
            used.append(int(match.group(1)))
    return f"{stem}{max(used, default=0) + 1:03d}"


def payment_due_date(invoice_date: date, payment_terms: Optional[str]) -> Optional[date]:
    terms = (payment_terms or "").strip()
    if terms.lower() == "due on receipt":
        return invoice_date
    match = _NET_DAYS.match(terms)
    if match:
        return invoice_date + timedelta(days=int(match.group(1)))
    return None


def generate_invoice(
    conn: sqlite3.Connection,
    session: Optional[Session],
    estimate_id: int,
    invoice_date: Optional[date] = None,
    payment_terms: str = DEFAULT_PAYMENT_TERMS,
    due_date: Optional[date] = None,
    invoice_type: str = "tax",
    invoice_status: str = "pending",
    invoice_number: Optional[str] = None,
    invoice_notes: Optional[str] = None,
    prefix: str = DEFAULT_INVOICE_PREFIX,
) -> Estimate:
    session = _require_session(session)
    estimate = get_estimate(conn, session, estimate_id)
    if not estimate.customer_name:
        raise ValidationError("Please enter customer name")
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"Invoice type must be one of: {', '.join(INVOICE_TYPES)}")
    if invoice_status not in INVOICE_STATUSES:
        raise ValidationError(f"Payment status must be one of: {', '.join(INVOICE_STATUSES)}")

    invoice_date = invoice_date or date.today()
    due_date = due_date or payment_due_date(invoice_date, payment_terms)
    if due_date is not None and due_date < invoice_date:
        raise ValidationError("Payment due date cannot be before the invoice date")
    number = (
        _clean(invoice_number)
        or estimate.invoice_number
        or next_invoice_number(conn, session, prefix, invoice_date)
    )

    db.update_estimate(
        conn,
        session.user_id,
        estimate_id,
        {
            "invoice_number": number,
            "invoice_date": invoice_date.isoformat(),
            "invoice_type": invoice_type,
            "payment_terms": _clean(payment_terms),
            "payment_due_date": due_date.isoformat() if due_date else None,
            "invoice_status": invoice_status,
            "invoice_notes": _clean(invoice_notes),
            "payment_date": invoice_date.isoformat() if invoice_status == "paid" else None,
        },
    )
    logger.info("User %s generated invoice %s from estimate %s", session.user_id, number, estimate_id)
    return get_estimate(conn, session, estimate_id)


def list_invoices(
    conn: sqlite3.Connection,
    session: Optional[Session],
    status: Optional[str] = None,
    search: str = "",
) -> list[Estimate]:
    session = _require_session(session)
    invoices = [
        estimate
        for estimate in db.list_estimates(conn, session.user_id, invoiced_only=True)
        if (not status or estimate.invoice_status == status)
        and _matches(estimate, search, ["invoice_number", "customer_name", "customer_email"])
    ]
    return sorted(invoices, key=lambda estimate: estimate.invoice_date or "", reverse=True)


def record_payment(
    conn: sqlite3.Connection,
    session: Optional[Session],
    estimate_id: int,
    status: str = "paid",
    payment_date: Optional[date] = None,
) -> Estimate:
    session = _require_session(session)
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"Payment status must be one of: {', '.join(INVOICE_STATUSES)}")
    estimate = get_estimate(conn, session, estimate_id)
    if not estimate.is_invoice:
        raise ValidationError("Generate an invoice before recording payment")

    paid_on = (payment_date or date.today()).isoformat() if status == "paid" else None
    db.update_estimate(conn, session.user_id, estimate_id, {"invoice_status": status, "payment_date": paid_on})
    logger.info("User %s set invoice %s to %s", session.user_id, estimate.invoice_number, status)
    return get_estimate(conn, session, estimate_id)


def mark_overdue_invoices(conn: sqlite3.Connection, session: Optional[Session], today: Optional[date] = None) -> int:
    """Pending, unpaid invoices whose due date has passed become overdue."""
    session = _require_session(session)
    count = db.mark_overdue_invoices(conn, session.user_id, (today or date.today()).isoformat())
    if count:
        logger.info("Marked %d invoice(s) overdue for user %s", count, session.user_id)
    return count
