import sqlite3

import pandas as pd
import streamlit as st

from cataleon.errors import CataleonError, RateLimitError
from cataleon.providers.exchange_rate import format_currency
from cataleon.sharing import RateLimiter, get_shared_catalog, submit_purchase_inquiry


@st.cache_resource
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


def _client_ip() -> str:
    headers = st.context.headers
    forwarded = headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("X-Real-Ip", "") or "unknown"


def render(conn: sqlite3.Connection, token: str) -> None:
    try:
        catalog = get_shared_catalog(conn, token, _client_ip(), get_rate_limiter())
    except RateLimitError as exc:
        st.error(f"{exc.message} (retry in {exc.retry_after}s)")
        return
    except CataleonError as exc:
        st.error(exc.message)
        return

    profile = catalog.vendor_profile
    if profile is not None and profile.business_name:
        st.subheader(profile.business_name)
        if profile.brand_tagline:
            st.caption(profile.brand_tagline)
        contact = [value for value in [profile.email, profile.phone, profile.whatsapp_number] if value]
        if contact:
            st.caption(" | ".join(contact))
    else:
        st.subheader("Shared Catalog")

    if not catalog.products:
        st.info("This catalog is empty.")
        return

    df = pd.DataFrame(catalog.products)
    df["price"] = df["displayed_price"].apply(lambda value: format_currency(value, "INR"))
    visible = ["sku", "name", "product_type", "category", "metal_type", "gemstone", "net_weight", "carat", "price"]
    columns = [column for column in visible if column in df.columns]
    st.dataframe(df[columns], width="stretch", hide_index=True)

    st.markdown("#### Send a purchase inquiry")
    with st.form("purchase_inquiry_form"):
        product_id = st.selectbox(
            "Product",
            options=[int(product["id"]) for product in catalog.products],
            format_func=lambda pid: next(p["name"] for p in catalog.products if p["id"] == pid),
        )
        col1, col2 = st.columns(2)
        with col1:
            customer_name = st.text_input("Your name")
            customer_email = st.text_input("Email")
        with col2:
            customer_phone = st.text_input("Phone (optional)")
            quantity = st.number_input("Quantity", min_value=1, value=1, step=1)
        message = st.text_area("Message (optional)")
        submitted = st.form_submit_button("Send inquiry", type="primary")

    if submitted:
        try:
            submit_purchase_inquiry(
                conn,
                token,
                product_id,
                customer_name,
                customer_email,
                customer_phone=customer_phone,
                message=message,
                quantity=int(quantity),
            )
        except CataleonError as exc:
            st.error(exc.message)
        else:
            st.success("Inquiry sent. The vendor will contact you soon.")
