import sqlite3

import streamlit as st

from cataleon.db import add_product, get_all_settings, get_vendor_profile
from cataleon.importer import parse_image_urls
from cataleon.models import PRODUCT_TYPES, Product, Session
from cataleon.pricing import KARAT_OPTIONS, calculate_jewelry_pricing, resolve_metal
from cataleon.providers.exchange_rate import format_currency

DELIVERY_TYPES = ["immediate delivery", "Despatches in working days"]


def _render_jewellery(conn: sqlite3.Connection, session: Session) -> None:
    profile = get_vendor_profile(conn, session.user_id)
    default_karat = f"{int(get_all_settings(conn)['default_purity_karat'])}K"
    karat_labels = list(KARAT_OPTIONS.keys())
    if profile.gold_rate_24k_per_gram <= 0:
        st.warning("Set your 24K gold rate on the Dashboard before pricing jewellery.")

    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Product name *")
        sku = st.text_input("SKU / certificate")
        category = st.text_input("Category")
        metal_type = st.selectbox("Metal", ["Gold", "Silver", "Platinum"])
        karat = st.selectbox(
            "Purity",
            karat_labels,
            index=karat_labels.index(default_karat) if default_karat in karat_labels else 1,
        )
    with col2:
        gross_weight = st.number_input("Gross weight (g)", min_value=0.0, value=0.0, step=0.01)
        gemstone_weight = st.number_input("Gemstone weight (ct)", min_value=0.0, value=0.0, step=0.01)
        d_wt_1 = st.number_input("D.WT 1 (ct)", min_value=0.0, value=0.0, step=0.01)
        d_wt_2 = st.number_input("D.WT 2 (ct)", min_value=0.0, value=0.0, step=0.01)
        d_rate_1 = st.number_input("D rate 1 (₹/ct)", min_value=0.0, value=0.0, step=500.0)
        pointer_rate = st.number_input("Pointer diamond rate (₹/ct)", min_value=0.0, value=0.0, step=500.0)
    with col3:
        diamond_color = st.text_input("Diamond color")
        clarity = st.text_input("Diamond clarity")
        certification_cost = st.number_input("Certification cost (₹)", min_value=0.0, value=0.0, step=100.0)
        gemstone_cost = st.number_input("Gemstone cost (₹)", min_value=0.0, value=0.0, step=100.0)
        stock_quantity = st.number_input("Stock quantity", min_value=0, value=1, step=1)
        delivery_type = st.selectbox("Delivery", DELIVERY_TYPES)
        dispatches_in_days = 0
        if delivery_type != DELIVERY_TYPES[0]:
            dispatches_in_days = st.number_input("Working days", min_value=1, value=5, step=1)

    description = st.text_area("Description")
    image_urls = st.text_input("Image URLs (up to 3, separated by |)")

    metal = resolve_metal(metal_type)
    pricing = calculate_jewelry_pricing(
        gross_weight=gross_weight,
        gold_rate=profile.rate_for(metal),
        purity=KARAT_OPTIONS[karat],
        making_charges_per_gram=profile.making_charges_per_gram,
        gemstone_weight=gemstone_weight,
        d_wt_1=d_wt_1,
        d_wt_2=d_wt_2,
        d_rate_1=d_rate_1,
        pointer_rate=pointer_rate,
        certification_cost=certification_cost,
        gemstone_cost=gemstone_cost,
    )

    st.markdown("#### Valuation")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Net weight (g)", f"{pricing['net_weight']:.3f}")
    col2.metric("Metal value", format_currency(pricing["gold_value"], "INR"))
    col3.metric("Diamond value", format_currency(pricing["diamond_value"], "INR"))
    col4.metric("Making charges", format_currency(pricing["making_charges"], "INR"))
    st.metric("Total price", format_currency(pricing["total_price"], "INR"))

    retail_override = st.number_input(
        "Retail price override (₹, 0 uses total)",
        min_value=0.0,
        value=0.0,
        step=100.0,
    )

    if st.button("Add product", type="primary"):
        if not name.strip():
            st.error("Product name is required.")
            return
        image_1, image_2, image_3 = parse_image_urls(image_urls)
        product_id = add_product(
            conn,
            session.user_id,
            Product(
                id=None,
                name=name.strip(),
                sku=sku.strip() or None,
                product_type="Jewellery",
                category=category.strip() or None,
                description=description.strip() or None,
                metal_type=metal_type,
                gemstone=" ".join(part for part in [diamond_color.strip(), clarity.strip()] if part) or None,
                diamond_color=diamond_color.strip() or None,
                diamond_clarity=clarity.strip() or None,
                delivery_type=delivery_type if not dispatches_in_days else f"Despatches in {dispatches_in_days} working days",
                dispatches_in_days=dispatches_in_days or None,
                weight_grams=gross_weight or None,
                net_weight=pricing["net_weight"] or None,
                purity_fraction_used=pricing["purity_fraction"],
                purity_unit="fraction",
                gold_per_gram_price=profile.rate_for(metal) or None,
                d_wt_1=d_wt_1 or None,
                d_wt_2=d_wt_2 or None,
                diamond_weight=pricing["total_diamond_weight"] or None,
                d_rate_1=d_rate_1 or None,
                pointer_diamond=pointer_rate or None,
                d_value=pricing["diamond_value"] or None,
                mkg=pricing["making_charges"] or None,
                certification_cost=certification_cost or None,
                gemstone_cost=gemstone_cost or None,
                cost_price=pricing["cost_price"],
                retail_price=retail_override or pricing["total_price"],
                stock_quantity=int(stock_quantity),
                image_url=image_1,
                image_url_2=image_2,
                image_url_3=image_3,
            ),
        )
        st.success(f"Product #{product_id} added.")


def _render_stone(conn: sqlite3.Connection, session: Session, product_type: str) -> None:
    with st.form(f"add_{product_type}_form"):
        col1, col2 = st.columns(2)
        with col1:
            sku = st.text_input("SKU")
            shape = st.text_input("Shape")
            carat = st.number_input("Carat", min_value=0.0, value=0.0, step=0.01)
            color = st.text_input("Color")
            clarity = st.text_input("Clarity")
            cut = st.text_input("Cut")
        with col2:
            gemstone_type = st.text_input("Gemstone type") if product_type == "Gemstones" else ""
            diamond_type = st.selectbox("Diamond type", ["Natural", "Lab"]) if product_type == "Loose Diamonds" else ""
            lab = st.text_input("Lab / certification")
            cost_price = st.number_input("Cost price (₹)", min_value=0.0, value=0.0, step=100.0)
            retail_price = st.number_input("Retail price (₹)", min_value=0.0, value=0.0, step=100.0)
            stock_quantity = st.number_input("Stock quantity", min_value=0, value=1, step=1)
        submitted = st.form_submit_button("Add product", type="primary")

    if submitted:
        name = " ".join(part for part in [gemstone_type or shape, f"{carat:g}ct" if carat else "", color, clarity] if part)
        if not name:
            st.error("Enter at least a shape or type and a grade.")
            return
        product_id = add_product(
            conn,
            session.user_id,
            Product(
                id=None,
                name=name,
                sku=sku.strip() or None,
                product_type=product_type,
                category=(gemstone_type or shape).strip() or None,
                gemstone_type=gemstone_type.strip() or None,
                diamond_type=diamond_type or None,
                shape=shape.strip() or None,
                carat=carat or None,
                carat_weight=carat or None,
                color=color.strip() or None,
                diamond_color=color.strip() or None if product_type == "Loose Diamonds" else None,
                diamond_clarity=clarity.strip() or None if product_type == "Loose Diamonds" else None,
                clarity=clarity.strip() or None,
                cut=cut.strip() or None,
                lab=lab.strip() or None,
                cost_price=cost_price,
                retail_price=retail_price or cost_price,
                stock_quantity=int(stock_quantity),
            ),
        )
        st.success(f"Product #{product_id} added.")


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Add Product")
    product_type = st.radio("Product type", PRODUCT_TYPES, horizontal=True, key="add_product_type")
    if product_type == "Jewellery":
        _render_jewellery(conn, session)
    else:
        _render_stone(conn, session, product_type)
