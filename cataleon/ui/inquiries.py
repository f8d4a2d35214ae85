import sqlite3

import pandas as pd
import streamlit as st

from cataleon.errors import CataleonError
from cataleon.models import Session
from cataleon.sharing import INQUIRY_STATUSES, list_purchase_inquiries, update_inquiry_status


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Purchase Inquiries")

    status_filter = st.selectbox("Status", [""] + INQUIRY_STATUSES, format_func=lambda value: value or "All")
    rows = list_purchase_inquiries(conn, session, status_filter or None)
    if not rows:
        st.info("No inquiries yet. Customers can send them from a shared catalog.")
        return

    df = pd.DataFrame([dict(row) for row in rows])
    st.dataframe(
        df[
            [
                "id",
                "created_at",
                "customer_name",
                "customer_email",
                "customer_phone",
                "product_name",
                "product_sku",
                "quantity",
                "status",
                "message",
            ]
        ],
        width="stretch",
        hide_index=True,
    )

    with st.form("inquiry_status_form"):
        col1, col2 = st.columns(2)
        with col1:
            inquiry_id = st.selectbox("Inquiry", options=[int(row["id"]) for row in rows])
        with col2:
            new_status = st.selectbox("New status", INQUIRY_STATUSES)
        submitted = st.form_submit_button("Update status", type="primary")

    if submitted:
        try:
            update_inquiry_status(conn, session, inquiry_id, new_status)
        except CataleonError as exc:
            st.error(exc.message)
        else:
            st.success("Inquiry updated.")
            st.rerun()
