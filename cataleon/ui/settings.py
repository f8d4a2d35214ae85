import sqlite3

import streamlit as st

from cataleon.db import get_all_settings, save_settings
from cataleon.models import Session


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Settings")

    current = get_all_settings(conn)

    with st.form("settings_form"):
        col1, col2 = st.columns(2)
        with col1:
            cache_ttl = st.number_input(
                "Exchange rate cache age (seconds)",
                min_value=60,
                max_value=86400,
                value=int(current["exchange_rate_cache_ttl_seconds"]),
                step=60,
            )
            fallback_rate = st.number_input(
                "Fallback USD/INR rate",
                min_value=1.0,
                value=float(current["fallback_usd_inr_rate"]),
                step=0.01,
                help="Used when the exchange rate API fails and nothing is cached.",
            )
            default_purity = st.number_input(
                "Default purity (karat)",
                min_value=1.0,
                max_value=24.0,
                value=float(current["default_purity_karat"]),
                step=1.0,
            )
        with col2:
            page_size = st.number_input(
                "Products per page",
                min_value=10,
                max_value=500,
                value=int(current["products_page_size"]),
                step=10,
            )
            max_workers = st.number_input(
                "Parallel updates",
                min_value=1,
                max_value=32,
                value=int(current["bulk_update_max_workers"]),
                step=1,
                help="How many product updates run at once during repricing and bulk edits.",
            )

        submitted = st.form_submit_button("Save settings", type="primary")

    if submitted:
        save_settings(
            conn,
            {
                "exchange_rate_cache_ttl_seconds": cache_ttl,
                "fallback_usd_inr_rate": fallback_rate,
                "default_purity_karat": default_purity,
                "products_page_size": page_size,
                "bulk_update_max_workers": max_workers,
            },
        )
        st.success("Settings saved.")
