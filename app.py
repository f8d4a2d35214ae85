import logging
import os
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

from cataleon.db import (
    authenticate_user,
    create_user,
    delete_user_account,
    delete_user_data,
    get_auth_connection,
    open_catalog_db,
    update_user_password,
)
from cataleon.ui import (
    add_product,
    catalog,
    dashboard,
    import_products,
    inquiries,
    invoices,
    settings,
    share_links,
    shared_catalog,
    vendor_profile,
)


# Load environment variables from local .env file.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")

logging.basicConfig(
    level=os.getenv("CATALEON_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


st.set_page_config(page_title="Cataleon", page_icon="💎", layout="wide")


def _render_auth_gate() -> bool:
    if "session" not in st.session_state:
        st.session_state["session"] = None

    if st.session_state["session"] is not None:
        return True

    st.subheader("Sign in")
    st.caption("Create an account or log in to manage your catalog.")

    auth_conn = get_auth_connection()
    login_tab, signup_tab = st.tabs(["Login", "Sign up"])

    with login_tab:
        with st.form("login_form"):
            login_username = st.text_input("Username", key="login_username")
            login_password = st.text_input("Password", type="password", key="login_password")
            login_submit = st.form_submit_button("Log in", type="primary")
        if login_submit:
            session = authenticate_user(auth_conn, login_username, login_password)
            if session is not None:
                st.session_state["session"] = session
                logger.info("User %s signed in", session.user_id)
                st.success("Logged in successfully.")
                st.rerun()
            else:
                st.error("Invalid username or password.")

    with signup_tab:
        with st.form("signup_form"):
            signup_username = st.text_input("Username", key="signup_username")
            signup_password = st.text_input("Password", type="password", key="signup_password")
            signup_submit = st.form_submit_button("Create account", type="primary")
        if signup_submit:
            session, message = create_user(auth_conn, signup_username, signup_password)
            if session is not None:
                st.session_state["session"] = session
                st.success("Account created and logged in.")
                st.rerun()
            else:
                st.error(message)

    return False


def _render_account_sidebar(conn) -> None:
    session = st.session_state["session"]
    st.sidebar.caption(f"Signed in: {session.username}")

    with st.sidebar.expander("Security"):
        with st.form("change_password_form"):
            current_password = st.text_input("Current password", type="password")
            new_password = st.text_input("New password", type="password")
            confirm_password = st.text_input("Confirm new password", type="password")
            change_password_submit = st.form_submit_button("Change password")

        if change_password_submit:
            if new_password != confirm_password:
                st.sidebar.error("New passwords do not match.")
            else:
                updated, message = update_user_password(
                    get_auth_connection(),
                    session.username,
                    current_password,
                    new_password,
                )
                if updated:
                    st.sidebar.success(message)
                else:
                    st.sidebar.error(message)

        st.caption("Danger zone")
        with st.form("delete_account_form"):
            delete_password = st.text_input("Password to confirm", type="password")
            delete_confirmation = st.text_input("Type DELETE to confirm")
            delete_submit = st.form_submit_button("Delete account")

        if delete_submit:
            if delete_confirmation.strip().upper() != "DELETE":
                st.sidebar.error("Type DELETE to confirm account removal.")
            else:
                deleted, message = delete_user_account(get_auth_connection(), session.username, delete_password)
                if deleted:
                    delete_user_data(conn, session.user_id)
                    logger.info("User %s deleted their account", session.user_id)
                    st.session_state["session"] = None
                    st.success("Account and catalog deleted.")
                    st.rerun()
                else:
                    st.sidebar.error(message)

    if st.sidebar.button("Log out"):
        st.session_state["session"] = None
        st.rerun()


def _render_pages(conn) -> None:
    share_token = st.query_params.get("share")
    if share_token:
        shared_catalog.render(conn, share_token)
        return

    st.title("💎 Cataleon")
    st.caption("Jewellery catalog and pricing for vendors")

    if not _render_auth_gate():
        return

    _render_account_sidebar(conn)
    session = st.session_state["session"]

    page = st.sidebar.radio(
        "Navigate",
        [
            "Dashboard",
            "Catalog",
            "Add Product",
            "Import Products",
            "Share Links",
            "Purchase Inquiries",
            "Estimates & Invoices",
            "Vendor Profile",
            "Settings",
        ],
    )

    if page == "Dashboard":
        dashboard.render(conn, session)
    elif page == "Catalog":
        catalog.render(conn, session)
    elif page == "Add Product":
        add_product.render(conn, session)
    elif page == "Import Products":
        import_products.render(conn, session)
    elif page == "Share Links":
        share_links.render(conn, session)
    elif page == "Purchase Inquiries":
        inquiries.render(conn, session)
    elif page == "Estimates & Invoices":
        invoices.render(conn, session)
    elif page == "Vendor Profile":
        vendor_profile.render(conn, session)
    elif page == "Settings":
        settings.render(conn, session)


def main() -> None:
    # One connection per script run; writes from worker threads share db._write_lock.
    conn = open_catalog_db()
    try:
        _render_pages(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
