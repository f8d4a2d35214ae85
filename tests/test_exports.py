import csv
import io

from cataleon.exports import (
    CSV_COLUMNS,
    LINE_ITEM_HEADERS,
    TABLE_HEADERS,
    build_catalog_html,
    build_invoice_html,
    catalog_csv,
    invoice_file_name,
)
from cataleon.models import Estimate, LineItem, Product, VendorProfile


def ring(**fields):
    defaults = {
        "id": 1,
        "name": "Solitaire Ring",
        "sku": "CLR101",
        "diamond_color": "F",
        "clarity": "VS1",
        "net_weight": 4.0,
        "purity_fraction_used": 18,
        "retail_price": 123456.0,
    }
    defaults.update(fields)
    return Product(**defaults)


class TestCatalogHtml:
    def test_header_and_rows(self):
        profile = VendorProfile(user_id=1, business_name="A & B Jewels", city="Mumbai", state="MH")
        html = build_catalog_html([ring()], profile, usd_rate=80.0, gold_rate=7000)

        assert "<h1>A &amp; B Jewels</h1>" in html
        assert "Mumbai, MH" in html
        assert all(f"<th>{label}</th>" in html for label in TABLE_HEADERS)
        assert "<td>CLR101</td>" in html
        assert "<td>75.0%</td>" in html
        assert "₹1,23,456" in html
        assert "$ 1543.20" in html
        assert "Gold Rate (24K): ₹7,000.00/g" in html

    def test_names_escaped(self):
        html = build_catalog_html([ring(name="<b>Ring</b>")], None, usd_rate=80.0, gold_rate=0)
        assert "&lt;b&gt;Ring&lt;/b&gt;" in html
        assert "<b>Ring</b>" not in html

    def test_default_title_and_empty_table(self):
        html = build_catalog_html([], None, usd_rate=80.0, gold_rate=0)
        assert "<h1>Product Catalog</h1>" in html
        assert "No products" in html


class TestCatalogCsv:
    def test_columns_and_values(self):
        content = catalog_csv([ring(), ring(id=2, name="Band", sku=None)]).decode("utf-8")
        rows = list(csv.DictReader(io.StringIO(content)))

        assert list(rows[0]) == CSV_COLUMNS
        assert rows[0]["sku"] == "CLR101"
        assert rows[1]["name"] == "Band"
        assert rows[1]["sku"] == ""

    def test_empty_catalog_still_has_header(self):
        assert catalog_csv([]).decode("utf-8").strip() == ",".join(CSV_COLUMNS)


def quote(**fields):
    defaults = {
        "id": 3,
        "user_id": 1,
        "estimate_name": "Wedding set",
        "line_items": [
            LineItem(item_name="Band <18K>", net_weight=4.0, purity_fraction=0.75, gold_cost=18000.0, quantity=2),
            LineItem(item_name="Round 1ct", listed_price=50000.0),
        ],
        "status": "in_production",
        "gold_rate_24k": 6000.0,
        "profit_margin_percentage": 20.0,
        "total_cost": 86000.0,
        "final_selling_price": 103200.0,
        "customer_name": "Asha & Co",
    }
    defaults.update(fields)
    return Estimate(**defaults)


class TestInvoiceHtml:
    def test_estimate(self):
        html = build_invoice_html(quote(), VendorProfile(user_id=1, business_name="Shine"))

        assert "<h1>MANUFACTURING ESTIMATE</h1>" in html
        assert "<h2>Shine</h2>" in html
        assert "Status: IN PRODUCTION" in html
        assert "Invoice No" not in html
        assert all(f"<th>{label}</th>" in html for label in LINE_ITEM_HEADERS)
        assert "Band &lt;18K&gt;" in html
        assert "Name: Asha &amp; Co" in html
        assert "<td>75.0%</td>" in html
        assert "<td>₹36,000.00</td>" in html
        assert "Total Manufacturing Cost: ₹86,000.00" in html
        assert "Profit Margin (20%): ₹17,200.00" in html
        assert "Final Selling Price: ₹1,03,200.00" in html

    def test_invoice(self):
        estimate = quote(invoice_number="INV-2026-004", invoice_date="2026-01-10", payment_due_date="2026-02-09",
                         payment_terms="Net 30", invoice_type="tax", invoice_status="pending",
                         invoice_notes="Bank transfer only")
        html = build_invoice_html(estimate, None)

        assert "<h1>MANUFACTURING INVOICE</h1>" in html
        assert "Invoice No: INV-2026-004" in html
        assert "Due Date: 2026-02-09" in html
        assert "Type: TAX" in html
        assert "Status: PENDING" in html
        assert "Bank transfer only" in html
        assert invoice_file_name(estimate) == "Invoice_INV_2026_004.pdf"

    def test_empty_estimate(self):
        estimate = quote(line_items=[], customer_name=None, estimate_name="Draft 1")
        html = build_invoice_html(estimate, None)

        assert "No items" in html
        assert "CUSTOMER DETAILS" not in html
        assert invoice_file_name(estimate) == "Estimate_Draft_1.pdf"
