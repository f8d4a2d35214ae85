import sqlite3

import streamlit as st

from cataleon.db import get_vendor_profile, update_vendor_profile
from cataleon.models import Session


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Vendor Profile")

    profile = get_vendor_profile(conn, session.user_id)

    with st.form("vendor_profile_form"):
        col1, col2 = st.columns(2)
        with col1:
            business_name = st.text_input("Business name", value=profile.business_name or "")
            brand_tagline = st.text_input("Tagline", value=profile.brand_tagline or "")
            address_line1 = st.text_input("Address line 1", value=profile.address_line1 or "")
            address_line2 = st.text_input("Address line 2", value=profile.address_line2 or "")
            city = st.text_input("City", value=profile.city or "")
            state = st.text_input("State", value=profile.state or "")
            pincode = st.text_input("Pincode", value=profile.pincode or "")
        with col2:
            country = st.text_input("Country", value=profile.country or "India")
            email = st.text_input("Email", value=profile.email or "")
            phone = st.text_input("Phone", value=profile.phone or "")
            whatsapp_number = st.text_input("WhatsApp", value=profile.whatsapp_number or "")
            making_charges = st.number_input(
                "Making charges (₹/g)",
                min_value=0.0,
                value=float(profile.making_charges_per_gram),
                step=50.0,
                help="Applied to gross weight when pricing and importing jewellery.",
            )

        submitted = st.form_submit_button("Save profile", type="primary")

    if submitted:
        update_vendor_profile(
            conn,
            session.user_id,
            {
                "business_name": business_name.strip() or None,
                "brand_tagline": brand_tagline.strip() or None,
                "address_line1": address_line1.strip() or None,
                "address_line2": address_line2.strip() or None,
                "city": city.strip() or None,
                "state": state.strip() or None,
                "pincode": pincode.strip() or None,
                "country": country.strip() or None,
                "email": email.strip() or None,
                "phone": phone.strip() or None,
                "whatsapp_number": whatsapp_number.strip() or None,
                "making_charges_per_gram": making_charges,
            },
        )
        st.success("Profile saved.")
