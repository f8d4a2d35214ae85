import sqlite3
from datetime import date

import pandas as pd
import streamlit as st

from cataleon.catalog import fetch_catalog
from cataleon.db import get_vendor_profile
from cataleon.errors import CataleonError
from cataleon.exports import invoice_file_name, render_invoice_pdf
from cataleon.invoices import (
    DEFAULT_PAYMENT_TERMS,
    ESTIMATE_STATUSES,
    INVOICE_STATUSES,
    INVOICE_TYPES,
    PAYMENT_TERMS,
    create_estimate,
    estimate_totals,
    generate_invoice,
    line_items_from_products,
    list_estimates,
    list_invoices,
    manual_line_item,
    mark_overdue_invoices,
    record_payment,
    update_estimate_status,
)
from cataleon.models import Estimate, Session
from cataleon.providers.exchange_rate import format_currency


def _label(value: str) -> str:
    return value.replace("_", " ").title()


def _line_items_frame(estimate_items) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "item": item.item_name,
                "qty": item.quantity,
                "net wt (g)": item.net_weight,
                "gold (₹)": item.gold_cost,
                "diamond (₹)": item.diamond_cost,
                "gemstone (₹)": item.gemstone_cost,
                "making (₹)": item.making_charges,
                "listed (₹)": item.listed_price,
                "subtotal (₹)": item.subtotal,
            }
            for item in estimate_items
        ]
    )


def _pdf_button(conn: sqlite3.Connection, session: Session, estimate: Estimate, key: str) -> None:
    if st.button("Generate PDF", key=key):
        try:
            pdf_bytes = render_invoice_pdf(estimate, get_vendor_profile(conn, session.user_id))
        except Exception as exc:
            st.error(f"Failed to generate PDF: {exc}")
        else:
            st.download_button(
                "Download PDF",
                data=pdf_bytes,
                file_name=invoice_file_name(estimate),
                mime="application/pdf",
                key=f"{key}_download",
            )


def _render_new_estimate(conn: sqlite3.Connection, session: Session) -> None:
    profile = get_vendor_profile(conn, session.user_id)
    products = fetch_catalog(conn, session, None)
    by_id = {product.id: product for product in products}

    gold_rate = st.number_input(
        "24K gold rate (₹/g)", min_value=0.0, value=float(profile.gold_rate_24k_per_gram), step=10.0
    )
    chosen = st.multiselect(
        "Catalog products",
        options=list(by_id),
        format_func=lambda product_id: f"{by_id[product_id].name} ({by_id[product_id].sku or '-'})",
    )
    items = line_items_from_products([by_id[product_id] for product_id in chosen], gold_rate)

    with st.expander("Add a custom piece"):
        custom_name = st.text_input("Item name", key="estimate_custom_name")
        col1, col2, col3 = st.columns(3)
        with col1:
            custom_weight = st.number_input("Net weight (g)", min_value=0.0, value=0.0, step=0.1)
            custom_purity = st.number_input("Purity (fraction)", min_value=0.0, max_value=1.0, value=0.76, step=0.01)
        with col2:
            custom_diamond = st.number_input("Diamond cost (₹)", min_value=0.0, value=0.0, step=500.0)
            custom_gemstone = st.number_input("Gemstone cost (₹)", min_value=0.0, value=0.0, step=500.0)
            custom_making = st.number_input(
                "Making charges (₹)",
                min_value=0.0,
                value=0.0,
                step=100.0,
                help=f"Your profile rate is {format_currency(profile.making_charges_per_gram, 'INR')}/g",
            )
        with col3:
            custom_cert = st.number_input("Certification (₹)", min_value=0.0, value=0.0, step=100.0)
            custom_cad = st.number_input("CAD design (₹)", min_value=0.0, value=0.0, step=100.0)
            custom_camming = st.number_input("Camming (₹)", min_value=0.0, value=0.0, step=100.0)
        if custom_name.strip():
            items.append(
                manual_line_item(
                    custom_name,
                    gold_rate,
                    net_weight=custom_weight,
                    purity=custom_purity,
                    diamond_cost=custom_diamond,
                    gemstone_cost=custom_gemstone,
                    making_charges=custom_making,
                    certification_cost=custom_cert,
                    cad_design_charges=custom_cad,
                    camming_charges=custom_camming,
                )
            )

    profit_margin = st.slider("Profit margin (%)", min_value=0, max_value=200, value=20)
    if items:
        st.dataframe(_line_items_frame(items), width="stretch", hide_index=True)
        totals = estimate_totals(items, profit_margin)
        col1, col2, col3 = st.columns(3)
        col1.metric("Manufacturing cost", format_currency(totals.total_cost, "INR"))
        col2.metric("Profit", format_currency(totals.profit_amount, "INR"))
        col3.metric("Final selling price", format_currency(totals.final_selling_price, "INR"))

    with st.form("new_estimate_form"):
        estimate_name = st.text_input("Estimate / order name")
        col1, col2 = st.columns(2)
        with col1:
            customer_name = st.text_input("Customer name")
            customer_phone = st.text_input("Customer phone")
        with col2:
            customer_email = st.text_input("Customer email")
            customer_address = st.text_input("Customer address")
        notes = st.text_area("Notes")
        submitted = st.form_submit_button("Save estimate", type="primary")

    if submitted:
        try:
            estimate = create_estimate(
                conn,
                session,
                estimate_name,
                items,
                profit_margin=profit_margin,
                gold_rate=gold_rate,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                customer_address=customer_address,
                notes=notes,
            )
        except CataleonError as exc:
            st.error(exc.message)
        else:
            st.success(f"Estimate #{estimate.id} saved.")


def _render_estimates(conn: sqlite3.Connection, session: Session) -> None:
    col1, col2 = st.columns(2)
    with col1:
        status = st.selectbox(
            "Status", [""] + ESTIMATE_STATUSES, format_func=lambda value: _label(value) if value else "All", key="estimate_filter"
        )
    with col2:
        search = st.text_input("Search estimates", placeholder="Name, customer or email")

    estimates = list_estimates(conn, session, status or None, search)
    if not estimates:
        st.info("No estimates yet.")
        return

    for estimate in estimates:
        title = f"#{estimate.id} {estimate.estimate_name} | {format_currency(estimate.final_selling_price, 'INR')}"
        with st.expander(title):
            st.caption(f"{_label(estimate.status)} | {estimate.customer_name or 'No customer'} | {estimate.created_at[:10]}")
            st.dataframe(_line_items_frame(estimate.line_items), width="stretch", hide_index=True)

            new_status = st.selectbox(
                "Estimate status",
                ESTIMATE_STATUSES,
                index=ESTIMATE_STATUSES.index(estimate.status) if estimate.status in ESTIMATE_STATUSES else 0,
                format_func=_label,
                key=f"estimate_status_{estimate.id}",
            )
            if new_status != estimate.status and st.button("Update status", key=f"estimate_status_btn_{estimate.id}"):
                try:
                    update_estimate_status(conn, session, estimate.id, new_status)
                except CataleonError as exc:
                    st.error(exc.message)
                else:
                    st.rerun()

            _pdf_button(conn, session, estimate, key=f"estimate_pdf_{estimate.id}")

            with st.form(f"invoice_form_{estimate.id}"):
                st.markdown("**Generate invoice**")
                col1, col2 = st.columns(2)
                with col1:
                    invoice_date = st.date_input("Invoice date", value=date.today(), key=f"invoice_date_{estimate.id}")
                    payment_terms = st.selectbox(
                        "Payment terms",
                        PAYMENT_TERMS,
                        index=PAYMENT_TERMS.index(DEFAULT_PAYMENT_TERMS),
                        key=f"invoice_terms_{estimate.id}",
                    )
                    invoice_number = st.text_input(
                        "Invoice number",
                        value=estimate.invoice_number or "",
                        placeholder="Auto",
                        key=f"invoice_number_{estimate.id}",
                    )
                with col2:
                    invoice_type = st.selectbox("Invoice type", INVOICE_TYPES, format_func=_label, key=f"invoice_type_{estimate.id}")
                    invoice_status = st.selectbox(
                        "Payment status", INVOICE_STATUSES[:3], format_func=_label, key=f"invoice_status_{estimate.id}"
                    )
                    prefix = st.text_input("Number prefix", value="INV", key=f"invoice_prefix_{estimate.id}")
                invoice_notes = st.text_area("Invoice notes", key=f"invoice_notes_{estimate.id}")
                submitted = st.form_submit_button("Generate invoice", type="primary")

            if submitted:
                try:
                    invoice = generate_invoice(
                        conn,
                        session,
                        estimate.id,
                        invoice_date=invoice_date,
                        payment_terms=payment_terms,
                        invoice_type=invoice_type,
                        invoice_status=invoice_status,
                        invoice_number=invoice_number,
                        invoice_notes=invoice_notes,
                        prefix=prefix,
                    )
                except CataleonError as exc:
                    st.error(exc.message)
                else:
                    st.success(f"Invoice {invoice.invoice_number} generated.")


def _render_invoices(conn: sqlite3.Connection, session: Session) -> None:
    overdue = mark_overdue_invoices(conn, session)
    if overdue:
        st.warning(f"{overdue} invoice(s) are now overdue.")

    col1, col2 = st.columns(2)
    with col1:
        status = st.selectbox(
            "Payment status", [""] + INVOICE_STATUSES, format_func=lambda value: _label(value) if value else "All", key="invoice_filter"
        )
    with col2:
        search = st.text_input("Search invoices", placeholder="Invoice number, customer name or email")

    invoices = list_invoices(conn, session, status or None, search)
    if not invoices:
        st.info("No invoices found.")
        return

    st.dataframe(
        pd.DataFrame(
            [
                {
                    "invoice": invoice.invoice_number,
                    "date": invoice.invoice_date,
                    "due": invoice.payment_due_date,
                    "customer": invoice.customer_name,
                    "type": invoice.invoice_type,
                    "status": invoice.invoice_status,
                    "amount (₹)": invoice.final_selling_price,
                }
                for invoice in invoices
            ]
        ),
        width="stretch",
        hide_index=True,
    )

    by_id = {invoice.id: invoice for invoice in invoices}
    selected_id = st.selectbox("Invoice", options=list(by_id), format_func=lambda estimate_id: by_id[estimate_id].invoice_number)
    selected = by_id[selected_id]
    col1, col2 = st.columns(2)
    with col1:
        payment_status = st.selectbox("Set payment status", INVOICE_STATUSES, format_func=_label, key="invoice_payment_status")
        if st.button("Record"):
            try:
                record_payment(conn, session, selected.id, payment_status)
            except CataleonError as exc:
                st.error(exc.message)
            else:
                st.success("Payment status updated.")
                st.rerun()
    with col2:
        _pdf_button(conn, session, selected, key=f"invoice_pdf_{selected.id}")


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Estimates & Invoices")
    new_tab, estimates_tab, invoices_tab = st.tabs(["New estimate", "Estimates", "Invoices"])
    with new_tab:
        _render_new_estimate(conn, session)
    with estimates_tab:
        _render_estimates(conn, session)
    with invoices_tab:
        _render_invoices(conn, session)
