import sqlite3
from datetime import UTC, datetime

import pandas as pd
import streamlit as st

from cataleon.catalog import fetch_catalog, update_metal_rates
from cataleon.db import get_vendor_profile
from cataleon.errors import CataleonError
from cataleon.filters import catalog_totals, category_counts
from cataleon.models import PRODUCT_TYPES, Session
from cataleon.providers.exchange_rate import format_currency, get_usd_inr_rate


def _format_timestamp(timestamp_iso: str | None) -> str:
    if not timestamp_iso:
        return "Never"
    try:
        parsed = datetime.fromisoformat(timestamp_iso)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")
    except ValueError:
        return timestamp_iso


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Dashboard")

    refresh_now = st.button("Refresh exchange rate", type="primary")
    usd_rate, warning = get_usd_inr_rate(conn, force_refresh=refresh_now)
    if warning:
        st.warning(warning)

    profile = get_vendor_profile(conn, session.user_id)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("24K Gold (₹/g)", format_currency(profile.gold_rate_24k_per_gram, "INR"))
    col2.metric("Silver (₹/g)", format_currency(profile.silver_rate_per_gram, "INR"))
    col3.metric("Platinum (₹/g)", format_currency(profile.platinum_rate_per_gram, "INR"))
    col4.metric("1 USD", f"₹{usd_rate:.2f}")
    st.caption(f"Gold rate last updated: {_format_timestamp(profile.gold_rate_updated_at)}")

    rows = []
    for product_type in PRODUCT_TYPES:
        products = fetch_catalog(conn, session, product_type)
        total_inr, total_usd = catalog_totals(products, usd_rate)
        rows.append(
            {
                "Product type": product_type,
                "Products": len(products),
                "Categories": len(category_counts(products)) - 1,
                "Catalog value (INR)": format_currency(total_inr, "INR", decimals=0),
                "Catalog value (USD)": format_currency(total_usd, "USD"),
            }
        )
    st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)

    with st.expander("Update metal rates (no repricing)"):
        st.caption("Use the Catalog page to update the gold rate and reprice products.")
        with st.form("metal_rates_form"):
            col1, col2, col3 = st.columns(3)
            with col1:
                gold = st.number_input(
                    "24K gold (₹/g)",
                    min_value=0.0,
                    value=float(profile.gold_rate_24k_per_gram),
                    step=10.0,
                )
            with col2:
                silver = st.number_input(
                    "Silver (₹/g)",
                    min_value=0.0,
                    value=float(profile.silver_rate_per_gram),
                    step=1.0,
                )
            with col3:
                platinum = st.number_input(
                    "Platinum (₹/g)",
                    min_value=0.0,
                    value=float(profile.platinum_rate_per_gram),
                    step=10.0,
                )
            submitted = st.form_submit_button("Save rates", type="primary")

        if submitted:
            try:
                update_metal_rates(conn, session, gold, silver, platinum)
            except CataleonError as exc:
                st.error(exc.message)
            else:
                st.success("Metal rates saved.")
                st.rerun()

    st.info(
        "If the exchange rate API is unavailable, the last cached rate or the "
        "fallback rate from Settings is used automatically."
    )
