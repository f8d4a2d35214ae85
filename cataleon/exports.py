import re
from datetime import datetime
from html import escape
from typing import Optional

import pandas as pd

from cataleon.filters import catalog_totals
from cataleon.models import Estimate, Product, VendorProfile
from cataleon.pricing import normalize_purity
from cataleon.providers.exchange_rate import format_currency

CSV_COLUMNS = [
    "sku",
    "name",
    "product_type",
    "category",
    "metal_type",
    "gemstone",
    "diamond_color",
    "diamond_clarity",
    "clarity",
    "d_wt_1",
    "d_wt_2",
    "diamond_weight",
    "weight_grams",
    "net_weight",
    "purity_fraction_used",
    "d_rate_1",
    "pointer_diamond",
    "d_value",
    "mkg",
    "certification_cost",
    "gemstone_cost",
    "cost_price",
    "retail_price",
    "stock_quantity",
    "delivery_type",
    "image_url",
]

TABLE_HEADERS = [
    "SKU",
    "Product name",
    "Diamond color",
    "Clarity",
    "D.WT 1 (ct)",
    "D.WT 2 (ct)",
    "Total D.WT (ct)",
    "Gross WT (g)",
    "Net WT (g)",
    "Purity %",
    "D rate 1 (₹/ct)",
    "Pointer diamond",
    "D value (₹)",
    "Gemstone",
    "MKG (₹)",
    "Cert cost (₹)",
    "Gem cost (₹)",
    "Total (₹)",
    "Total (USD)",
]


def _cell(value: Optional[float], money: bool = False) -> str:
    if not value:
        return "-"
    if money:
        return format_currency(value, "INR", decimals=0).lstrip("₹")
    return f"{value:g}"


def _vendor_block(profile: Optional[VendorProfile]) -> str:
    if profile is None:
        return ""
    lines = []
    if profile.address_line1:
        address = profile.address_line1
        if profile.address_line2:
            address += f", {profile.address_line2}"
        lines.append(address)
    if profile.city:
        lines.append(" ".join(part for part in [f"{profile.city},", profile.state, profile.pincode] if part))
    contact = []
    if profile.email:
        contact.append(f"Email: {profile.email}")
    if profile.phone:
        contact.append(f"Phone: {profile.phone}")
    if profile.whatsapp_number:
        contact.append(f"WhatsApp: {profile.whatsapp_number}")
    if contact:
        lines.append(" | ".join(contact))
    return "".join(f"<div class='small'>{escape(line)}</div>" for line in lines)


def build_catalog_html(
    products: list[Product],
    profile: Optional[VendorProfile],
    usd_rate: float,
    gold_rate: float,
) -> str:
    title = (profile.business_name if profile and profile.business_name else None) or "Product Catalog"
    created = datetime.now().strftime("%d/%m/%Y")
    total_inr, total_usd = catalog_totals(products, usd_rate)

    rows = ""
    for index, product in enumerate(products, start=1):
        purity = (
            f"{normalize_purity(product.purity_fraction_used, product.purity_unit) * 100:.1f}%"
            if product.purity_fraction_used
            else "-"
        )
        usd = product.retail_price / usd_rate if usd_rate else 0.0
        cells = [
            escape(product.sku or str(index)),
            escape(product.name),
            escape(product.diamond_color or "-"),
            escape(product.diamond_clarity or product.clarity or "-"),
            _cell(product.d_wt_1),
            _cell(product.d_wt_2),
            _cell(product.diamond_weight),
            _cell(product.weight_grams),
            _cell(product.net_weight),
            purity,
            _cell(product.d_rate_1, money=True),
            _cell(product.pointer_diamond, money=True),
            _cell(product.d_value, money=True),
            escape(product.gemstone or "NONE"),
            _cell(product.mkg, money=True),
            _cell(product.certification_cost, money=True),
            _cell(product.gemstone_cost, money=True),
            format_currency(product.retail_price, "INR", decimals=0),
            f"$ {usd:.2f}",
        ]
        rows += "<tr>" + "".join(f"<td>{cell}</td>" for cell in cells) + "</tr>"

    header = "".join(f"<th>{escape(label)}</th>" for label in TABLE_HEADERS)
    empty_row = f"<tr><td colspan='{len(TABLE_HEADERS)}'>No products</td></tr>"
    gold_label = format_currency(gold_rate, "INR")
    totals_label = f"{format_currency(total_inr, 'INR', decimals=0)} | {format_currency(total_usd, 'USD')}"
    return f"""
<!doctype html>
<html>
<head>
<meta charset='utf-8' />
<title>{escape(title)}</title>
<style>
@page {{ size: A4 landscape; margin: 10mm 5mm; }}
body {{ font-family: Arial, sans-serif; color: #1f2937; font-size: 8pt; }}
h1 {{ text-align: center; margin-bottom: 4px; }}
.small {{ color: #6b7280; text-align: center; }}
.rates {{ text-align: center; margin: 8px 0; }}
table {{ width: 100%; border-collapse: collapse; }}
th {{ background: #2980b9; color: #fff; padding: 4px; }}
td {{ border: 1px solid #dcdcdc; padding: 3px; }}
tr:nth-child(even) td {{ background: #f8f9fa; }}
.total {{ font-size: 1.2em; font-weight: bold; margin-top: 12px; text-align: right; }}
</style>
</head>
<body>
  <h1>{escape(title)}</h1>
  {_vendor_block(profile)}
  <div class='rates'>Date: {created} | Exchange Rate: 1 USD = ₹{usd_rate:.2f} | Gold Rate (24K): {gold_label}/g</div>
  <table>
    <tr>{header}</tr>
    {rows or empty_row}
  </table>
  <div class='total'>Total: {totals_label}</div>
</body>
</html>
"""


def render_catalog_pdf(
    products: list[Product],
    profile: Optional[VendorProfile],
    usd_rate: float,
    gold_rate: float,
) -> bytes:
    from weasyprint import HTML

    html = build_catalog_html(products, profile, usd_rate, gold_rate)
    return HTML(string=html).write_pdf()


def catalog_csv(products: list[Product]) -> bytes:
    df = pd.DataFrame([product.to_record() for product in products], columns=Product.column_names())
    return df[CSV_COLUMNS].to_csv(index=False).encode("utf-8")


LINE_ITEM_HEADERS = [
    "#",
    "Item",
    "Qty",
    "Net WT (g)",
    "Purity %",
    "Gold (₹)",
    "Diamond (₹)",
    "Gemstone (₹)",
    "Making (₹)",
    "Cert (₹)",
    "CAD (₹)",
    "Camming (₹)",
    "Listed (₹)",
    "Subtotal (₹)",
]


def _money(value: float) -> str:
    return format_currency(value, "INR")


def _customer_block(estimate: Estimate) -> str:
    if not estimate.customer_name:
        return ""
    lines = [f"Name: {estimate.customer_name}"]
    if estimate.customer_phone:
        lines.append(f"Phone: {estimate.customer_phone}")
    if estimate.customer_email:
        lines.append(f"Email: {estimate.customer_email}")
    if estimate.customer_address:
        lines.append(f"Address: {estimate.customer_address}")
    body = "".join(f"<div>{escape(line)}</div>" for line in lines)
    return f"<h3>CUSTOMER DETAILS</h3>{body}"


def build_invoice_html(estimate: Estimate, profile: Optional[VendorProfile]) -> str:
    """Invoice when the estimate has an invoice number, estimate otherwise."""
    heading = "MANUFACTURING INVOICE" if estimate.is_invoice else "MANUFACTURING ESTIMATE"
    vendor = (profile.business_name if profile and profile.business_name else None) or ""

    meta = []
    if estimate.is_invoice:
        meta.append(f"Invoice No: {estimate.invoice_number}")
        meta.append(f"Invoice Date: {estimate.invoice_date}")
        if estimate.payment_due_date:
            meta.append(f"Due Date: {estimate.payment_due_date}")
        if estimate.payment_terms:
            meta.append(f"Terms: {estimate.payment_terms}")
        if estimate.invoice_type:
            meta.append(f"Type: {estimate.invoice_type.upper()}")
        status = estimate.invoice_status or "pending"
    else:
        status = estimate.status
    meta.append(f"Estimate: {estimate.estimate_name}")
    meta.append(f"Status: {status.replace('_', ' ').upper()}")
    if estimate.gold_rate_24k:
        meta.append(f"Gold Rate (24K): {_money(estimate.gold_rate_24k)}/g")

    rows = ""
    for index, item in enumerate(estimate.line_items, start=1):
        cells = [
            str(index),
            escape(item.item_name),
            str(item.quantity),
            _cell(item.net_weight),
            f"{item.purity_fraction * 100:.1f}%" if item.purity_fraction else "-",
            _cell(item.gold_cost, money=True),
            _cell(item.diamond_cost, money=True),
            _cell(item.gemstone_cost, money=True),
            _cell(item.making_charges, money=True),
            _cell(item.certification_cost, money=True),
            _cell(item.cad_design_charges, money=True),
            _cell(item.camming_charges, money=True),
            _cell(item.listed_price, money=True),
            _money(item.subtotal),
        ]
        rows += "<tr>" + "".join(f"<td>{cell}</td>" for cell in cells) + "</tr>"

    header = "".join(f"<th>{escape(label)}</th>" for label in LINE_ITEM_HEADERS)
    empty_row = f"<tr><td colspan='{len(LINE_ITEM_HEADERS)}'>No items</td></tr>"
    notes = estimate.invoice_notes or estimate.notes
    notes_block = f"<h3>NOTES</h3><div>{escape(notes)}</div>" if notes else ""
    generated = datetime.now().strftime("%d/%m/%Y %H:%M")
    return f"""
<!doctype html>
<html>
<head>
<meta charset='utf-8' />
<title>{escape(heading)}</title>
<style>
@page {{ size: A4; margin: 12mm; }}
body {{ font-family: Arial, sans-serif; color: #1f2937; font-size: 9pt; }}
h1 {{ text-align: center; margin-bottom: 2px; }}
h2 {{ text-align: center; color: #4f46e5; margin-top: 0; }}
.small {{ color: #6b7280; text-align: center; }}
.meta div {{ margin: 1px 0; }}
table {{ width: 100%; border-collapse: collapse; margin-top: 10px; }}
th {{ background: #4f46e5; color: #fff; padding: 4px; }}
td {{ border: 1px solid #dcdcdc; padding: 3px; }}
.totals {{ margin-top: 12px; text-align: right; }}
.final {{ font-size: 1.3em; font-weight: bold; color: #4f46e5; }}
.footer {{ margin-top: 24px; color: #808080; text-align: center; font-size: 7pt; }}
</style>
</head>
<body>
  <h1>{escape(heading)}</h1>
  {f"<h2>{escape(vendor)}</h2>" if vendor else ""}
  {_vendor_block(profile)}
  <div class='meta'>{"".join(f"<div>{escape(line)}</div>" for line in meta)}</div>
  {_customer_block(estimate)}
  <h3>COST BREAKDOWN</h3>
  <table>
    <tr>{header}</tr>
    {rows or empty_row}
  </table>
  <div class='totals'>
    <div>Total Manufacturing Cost: {_money(estimate.total_cost)}</div>
    <div>Profit Margin ({estimate.profit_margin_percentage:g}%): {_money(estimate.profit_amount)}</div>
    <div class='final'>Final Selling Price: {_money(estimate.final_selling_price)}</div>
  </div>
  {notes_block}
  <div class='footer'>Generated on {generated}</div>
</body>
</html>
"""


def render_invoice_pdf(estimate: Estimate, profile: Optional[VendorProfile]) -> bytes:
    from weasyprint import HTML

    return HTML(string=build_invoice_html(estimate, profile)).write_pdf()


def invoice_file_name(estimate: Estimate) -> str:
    label = estimate.invoice_number or estimate.estimate_name
    stem = re.sub(r"[^A-Za-z0-9]", "_", label)
    return f"{'Invoice' if estimate.is_invoice else 'Estimate'}_{stem}.pdf"
