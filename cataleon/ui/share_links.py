import sqlite3

import pandas as pd
import streamlit as st

from cataleon.errors import CataleonError
from cataleon.models import PRODUCT_TYPES, Session
from cataleon.sharing import create_share_link, deactivate_share_link, list_share_links


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Share Links")

    with st.form("create_share_link_form"):
        categories = st.multiselect("Product types to share", PRODUCT_TYPES, default=["Jewellery"])
        col1, col2, col3 = st.columns(3)
        with col1:
            markup = st.number_input("Markup (%)", min_value=0.0, max_value=500.0, value=0.0, step=1.0)
        with col2:
            markdown = st.number_input("Markdown (%)", min_value=0.0, max_value=99.0, value=0.0, step=1.0)
        with col3:
            expires_in_days = st.number_input("Expires in (days)", min_value=1, max_value=365, value=30, step=1)
        show_vendor_details = st.checkbox("Show my business details", value=True)
        submitted = st.form_submit_button("Create link", type="primary")

    if submitted:
        try:
            link = create_share_link(
                conn,
                session,
                categories,
                markup_pct=markup,
                markdown_pct=markdown,
                expires_in_days=int(expires_in_days),
                show_vendor_details=show_vendor_details,
            )
        except CataleonError as exc:
            st.error(exc.message)
        else:
            st.success("Share link created.")
            st.code(f"?share={link.share_token}")
            if markup and markdown:
                st.info("Markup takes precedence over markdown on shared prices.")

    links = list_share_links(conn, session)
    if not links:
        st.info("No share links yet.")
        return

    st.dataframe(
        pd.DataFrame(
            [
                {
                    "id": link.id,
                    "token": link.share_token,
                    "types": ", ".join(link.shared_categories),
                    "markup %": link.markup_percentage,
                    "markdown %": link.markdown_percentage,
                    "active": link.is_active,
                    "expires": link.expires_at[:10],
                    "views": link.view_count,
                }
                for link in links
            ]
        ),
        width="stretch",
        hide_index=True,
    )

    active_ids = [link.id for link in links if link.is_active]
    if active_ids:
        selected_id = st.selectbox("Deactivate link", options=active_ids, format_func=lambda link_id: f"#{link_id}")
        if st.button("Deactivate"):
            try:
                deactivate_share_link(conn, session, selected_id)
            except CataleonError as exc:
                st.error(exc.message)
            else:
                st.success("Share link deactivated.")
                st.rerun()
