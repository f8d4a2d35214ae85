import sqlite3

import pandas as pd
import streamlit as st

from cataleon.errors import CataleonError
from cataleon.importer import build_import_template, get_expected_columns, import_products, map_columns, read_upload
from cataleon.models import PRODUCT_TYPES, Session

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Import Products")

    product_type = st.radio("Product type", PRODUCT_TYPES, horizontal=True, key="import_product_type")
    expected = get_expected_columns(product_type)
    st.caption("Required columns: " + ", ".join(expected["required"]))

    st.download_button(
        "Download Excel template",
        data=build_import_template(product_type),
        file_name=f"{product_type.lower().replace(' ', '_')}_import_template.xlsx",
        mime=XLSX_MIME,
    )

    uploaded = st.file_uploader("Upload CSV or Excel", type=["csv", "xlsx", "xls"])
    if uploaded is None:
        return

    try:
        import_df = read_upload(uploaded)
    except Exception as exc:
        st.error(f"Failed to read file: {exc}")
        return

    mapping = map_columns(list(import_df.columns), product_type)
    st.markdown("#### Column mapping")
    st.dataframe(
        pd.DataFrame(
            [{"Sheet column": column, "Maps to": target or "(ignored)"} for column, target in mapping.items()]
        ),
        width="stretch",
        hide_index=True,
    )
    st.markdown(f"#### Preview ({len(import_df)} rows)")
    st.dataframe(import_df.head(20), width="stretch", hide_index=True)

    if st.button("Import", type="primary"):
        try:
            result = import_products(conn, session, import_df, product_type)
        except CataleonError as exc:
            st.error(exc.message)
        else:
            st.success(f"Updated {result.updated} products, imported {result.inserted} new products.")
