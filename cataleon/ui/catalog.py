import sqlite3

import pandas as pd
import streamlit as st

from cataleon.batch import BatchResult
from cataleon.catalog import (
    apply_category_suggestions,
    bulk_update,
    delete_selected,
    fetch_catalog,
    reprice_metal,
    update_metal_rate,
)
from cataleon.categorization import analyze_catalog, suggestion_stats
from cataleon.db import get_all_settings, get_vendor_profile
from cataleon.errors import CataleonError
from cataleon.exports import catalog_csv, render_catalog_pdf
from cataleon.filters import catalog_totals, filter_options, filter_products, next_display_count, paginate
from cataleon.invoices import estimate_from_selection
from cataleon.models import (
    PRODUCT_TYPES,
    AdjustmentDirection,
    FilterState,
    Metal,
    PricingAdjustment,
    Product,
    Selection,
    Session,
)
from cataleon.providers.exchange_rate import format_currency, get_usd_inr_rate

TABLE_COLUMNS = [
    "id",
    "sku",
    "name",
    "category",
    "metal_type",
    "gemstone",
    "net_weight",
    "weight_grams",
    "diamond_weight",
    "cost_price",
    "retail_price",
    "stock_quantity",
]


def _state_key(name: str, product_type: str) -> str:
    return f"catalog_{name}_{product_type}"


def _bump_editor(product_type: str) -> None:
    key = _state_key("editor_version", product_type)
    st.session_state[key] = st.session_state.get(key, 0) + 1


def _show_batch(result: BatchResult) -> None:
    if result.ok:
        st.success(result.summary())
        return
    st.warning(result.summary())
    st.dataframe(
        pd.DataFrame([{"Product id": key, "Error": message} for key, message in result.failed.items()]),
        width="stretch",
        hide_index=True,
    )


def _select_options(label: str, options: list[str], current: str, key: str) -> str:
    choices = [""] + options
    index = choices.index(current) if current in choices else 0
    return st.selectbox(label, choices, index=index, key=key, format_func=lambda value: value or "All")


def _render_filters(products: list[Product], product_type: str, state: FilterState) -> FilterState:
    options = filter_options(products)
    with st.expander("Filters", expanded=not state.is_empty):
        search_query = st.text_input("Search", value=state.search_query, key=_state_key("search", product_type))
        col1, col2, col3, col4 = st.columns(4)
        with col1:
            category = _select_options("Category", options["categories"], state.category, _state_key("f_cat", product_type))
            min_price = st.text_input("Min price (₹)", value=state.min_price, key=_state_key("f_minp", product_type))
        with col2:
            max_price = st.text_input("Max price (₹)", value=state.max_price, key=_state_key("f_maxp", product_type))
            diamond_color = _select_options(
                "Diamond color", options["diamond_colors"], state.diamond_color, _state_key("f_dcol", product_type)
            )
        with col3:
            diamond_clarity = _select_options(
                "Diamond clarity", options["diamond_clarities"], state.diamond_clarity, _state_key("f_dcla", product_type)
            )
            delivery_type = _select_options(
                "Delivery", options["delivery_types"], state.delivery_type, _state_key("f_del", product_type)
            )
        with col4:
            metal_type = _select_options("Metal", options["metal_types"], state.metal_type, _state_key("f_metal", product_type))

        changes = {
            "search_query": search_query,
            "category": category,
            "min_price": min_price,
            "max_price": max_price,
            "diamond_color": diamond_color,
            "diamond_clarity": diamond_clarity,
            "delivery_type": delivery_type,
            "metal_type": metal_type,
        }

        if product_type == "Jewellery":
            col1, col2, col3, col4 = st.columns(4)
            changes["min_diamond_weight"] = col1.text_input(
                "Min diamond wt (ct)", value=state.min_diamond_weight, key=_state_key("f_mindw", product_type)
            )
            changes["max_diamond_weight"] = col2.text_input(
                "Max diamond wt (ct)", value=state.max_diamond_weight, key=_state_key("f_maxdw", product_type)
            )
            changes["min_net_weight"] = col3.text_input(
                "Min net wt (g)", value=state.min_net_weight, key=_state_key("f_minnw", product_type)
            )
            changes["max_net_weight"] = col4.text_input(
                "Max net wt (g)", value=state.max_net_weight, key=_state_key("f_maxnw", product_type)
            )
        else:
            col1, col2, col3, col4 = st.columns(4)
            with col1:
                changes["shape"] = _select_options("Shape", options["shapes"], state.shape, _state_key("f_shape", product_type))
                changes["gemstone_type"] = _select_options(
                    "Gemstone type", options["gemstone_types"], state.gemstone_type, _state_key("f_gtype", product_type)
                )
            with col2:
                changes["cut"] = _select_options("Cut", options["cuts"], state.cut, _state_key("f_cut", product_type))
                changes["lab"] = _select_options("Lab", options["labs"], state.lab, _state_key("f_lab", product_type))
            with col3:
                changes["min_carat"] = st.text_input("Min carat", value=state.min_carat, key=_state_key("f_minc", product_type))
            with col4:
                changes["max_carat"] = st.text_input("Max carat", value=state.max_carat, key=_state_key("f_maxc", product_type))

        if st.button("Clear filters", key=_state_key("clear_filters", product_type)):
            for key in list(st.session_state.keys()):
                if key.startswith("catalog_f_") or key == _state_key("search", product_type):
                    del st.session_state[key]
            st.session_state[_state_key("filters", product_type)] = FilterState.reset()
            st.rerun()

    return state.with_changes(**changes)


def _render_rate_update(conn: sqlite3.Connection, session: Session, products: list[Product], product_type: str, max_workers: int) -> None:
    profile = get_vendor_profile(conn, session.user_id)
    current_rates = {
        Metal.GOLD: profile.gold_rate_24k_per_gram,
        Metal.SILVER: profile.silver_rate_per_gram,
        Metal.PLATINUM: profile.platinum_rate_per_gram,
    }
    with st.expander("Update metal rate and reprice"):
        st.caption(f"Current 24K gold rate: {format_currency(profile.gold_rate_24k_per_gram, 'INR')}/g")
        st.caption("A gold rate reprices every weighted product. Silver and platinum only reprice their own pieces.")
        with st.form(_state_key("gold_rate_form", product_type)):
            metal = st.selectbox("Metal", list(Metal), format_func=lambda m: m.value.title(), key=_state_key("rate_metal", product_type))
            new_rate = st.number_input(
                "New rate (₹/g)",
                min_value=0.0,
                value=float(current_rates[metal] or 0.0),
                step=10.0,
            )
            submitted = st.form_submit_button("Update rate and reprice", type="primary")

        if submitted:
            try:
                if metal == Metal.GOLD:
                    result = update_metal_rate(
                        conn,
                        session,
                        new_rate,
                        products,
                        product_type=product_type,
                        max_workers=max_workers,
                    )
                else:
                    result = reprice_metal(
                        conn,
                        session,
                        new_rate,
                        products,
                        metal,
                        product_type=product_type,
                        max_workers=max_workers,
                    )
            except CataleonError as exc:
                st.error(exc.message)
            else:
                _show_batch(result.batch)
                st.info(f"{result.metal.value.title()} rate set to {format_currency(result.rate, 'INR')}/g.")


def _render_bulk_edit(conn: sqlite3.Connection, session: Session, selection: Selection, product_type: str, max_workers: int) -> None:
    with st.expander(f"Bulk edit ({len(selection)} selected)"):
        with st.form(_state_key("bulk_form", product_type)):
            col1, col2 = st.columns(2)
            with col1:
                cost_price = st.text_input("Cost price")
                retail_price = st.text_input("Retail price")
                weight_grams = st.text_input("Gross weight (g)")
                stock_quantity = st.text_input("Stock quantity")
                purity = st.text_input("Purity (fraction or %)")
            with col2:
                category = st.text_input("Category")
                metal_type = st.text_input("Metal type")
                delivery_type = st.text_input("Delivery type")
                dispatches_in_days = st.text_input("Dispatches in days")
                percentage = st.number_input("Price adjustment (%)", min_value=0.0, max_value=1000.0, value=0.0, step=1.0)
                direction = st.radio(
                    "Adjustment",
                    [AdjustmentDirection.MARKUP.value, AdjustmentDirection.MARKDOWN.value],
                    horizontal=True,
                )
            submitted = st.form_submit_button("Apply to selected", type="primary")

        if submitted:
            adjustment = PricingAdjustment(percentage, AdjustmentDirection(direction)) if percentage > 0 else None
            try:
                result, remaining = bulk_update(
                    conn,
                    session,
                    selection,
                    {
                        "cost_price": cost_price,
                        "retail_price": retail_price,
                        "weight_grams": weight_grams,
                        "stock_quantity": stock_quantity,
                        "purity_fraction_used": purity,
                        "category": category,
                        "metal_type": metal_type,
                        "delivery_type": delivery_type,
                        "dispatches_in_days": dispatches_in_days,
                    },
                    adjustment=adjustment,
                    max_workers=max_workers,
                )
            except CataleonError as exc:
                st.error(exc.message)
            else:
                _show_batch(result)
                st.session_state[_state_key("selection", product_type)] = remaining
                _bump_editor(product_type)

        confirm = st.checkbox("I understand selected products will be removed", key=_state_key("confirm_delete", product_type))
        if st.button("Delete selected", disabled=not confirm or not selection, key=_state_key("delete", product_type)):
            try:
                count, remaining = delete_selected(conn, session, selection)
            except CataleonError as exc:
                st.error(exc.message)
            else:
                st.session_state[_state_key("selection", product_type)] = remaining
                _bump_editor(product_type)
                st.success(f"Deleted {count} product(s).")
                st.rerun()


def _render_estimate_from_selection(conn: sqlite3.Connection, session: Session, selection: Selection, product_type: str) -> None:
    with st.expander(f"Create estimate ({len(selection)} selected)"):
        with st.form(_state_key("estimate_form", product_type)):
            estimate_name = st.text_input("Estimate / order name")
            customer_name = st.text_input("Customer name")
            profit_margin = st.slider("Profit margin (%)", min_value=0, max_value=200, value=20)
            submitted = st.form_submit_button("Create estimate", disabled=not selection)

        if submitted:
            try:
                estimate = estimate_from_selection(
                    conn,
                    session,
                    selection,
                    estimate_name,
                    customer_name=customer_name,
                    profit_margin=profit_margin,
                )
            except CataleonError as exc:
                st.error(exc.message)
            else:
                st.success(
                    f"Estimate #{estimate.id} saved at {format_currency(estimate.final_selling_price, 'INR')}. "
                    "Open Estimates & Invoices to invoice it."
                )


def _render_categorization(conn: sqlite3.Connection, session: Session, products: list[Product], max_workers: int) -> None:
    suggestions = analyze_catalog(products)
    with st.expander(f"Auto-categorise ({len(suggestions)} suggestion(s))"):
        if not suggestions:
            st.info("Every product already has a category or no pattern matched.")
            return
        stats = suggestion_stats(suggestions)
        st.caption(", ".join(f"{name}: {count}" for name, count in stats["by_confidence"].items()))
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "Product": s.product_name,
                        "Suggested category": s.suggested_category,
                        "Confidence": s.confidence,
                    }
                    for s in suggestions
                ]
            ),
            width="stretch",
            hide_index=True,
        )
        if st.button("Apply suggestions", key="apply_category_suggestions"):
            try:
                result = apply_category_suggestions(
                    conn,
                    session,
                    {s.product_id: s.suggested_category for s in suggestions},
                    max_workers=max_workers,
                )
            except CataleonError as exc:
                st.error(exc.message)
            else:
                _show_batch(result)


def render(conn: sqlite3.Connection, session: Session) -> None:
    st.subheader("Catalog")

    settings = get_all_settings(conn)
    page_size = settings["products_page_size"]
    max_workers = settings["bulk_update_max_workers"]

    product_type = st.radio("Product type", PRODUCT_TYPES, horizontal=True)
    products = fetch_catalog(conn, session, product_type)
    usd_rate, warning = get_usd_inr_rate(conn)
    if warning:
        st.caption(warning)

    filters_key = _state_key("filters", product_type)
    previous = st.session_state.get(filters_key, FilterState())
    filters = _render_filters(products, product_type, previous)
    count_key = _state_key("display_count", product_type)
    if filters != previous or count_key not in st.session_state:
        st.session_state[count_key] = page_size
    st.session_state[filters_key] = filters

    filtered = filter_products(products, filters)
    displayed, has_more = paginate(filtered, st.session_state[count_key])
    total_inr, total_usd = catalog_totals(filtered, usd_rate)

    col1, col2, col3 = st.columns(3)
    col1.metric("Products", f"{len(filtered)} / {len(products)}")
    col2.metric("Total (INR)", format_currency(total_inr, "INR", decimals=0))
    col3.metric("Total (USD)", format_currency(total_usd, "USD"))

    if product_type == "Jewellery":
        _render_rate_update(conn, session, products, product_type, max_workers)

    selection_key = _state_key("selection", product_type)
    selection = st.session_state.get(selection_key, Selection()).restrict_to(p.id for p in filtered)
    visible_ids = [p.id for p in displayed]

    col1, col2, _ = st.columns([1, 1, 4])
    if col1.button("Select all / none", key=_state_key("toggle_all", product_type)):
        selection = selection.toggle_all(visible_ids)
        _bump_editor(product_type)
    if col2.button("Clear selection", key=_state_key("clear_selection", product_type)):
        selection = selection.clear()
        _bump_editor(product_type)

    if not displayed:
        st.info("No products match. Add products or import a sheet.")
    else:
        df = pd.DataFrame([product.to_record() for product in displayed], columns=Product.column_names())[TABLE_COLUMNS]
        df.insert(0, "selected", [product_id in selection for product_id in df["id"]])
        edited = st.data_editor(
            df,
            key=_state_key(f"editor_{st.session_state.get(_state_key('editor_version', product_type), 0)}", product_type),
            disabled=TABLE_COLUMNS,
            width="stretch",
            hide_index=True,
        )
        picked = {int(product_id) for product_id in edited.loc[edited["selected"], "id"]}
        hidden = {product_id for product_id in selection.ids if product_id not in visible_ids}
        selection = Selection(frozenset(picked | hidden))
    st.session_state[selection_key] = selection

    if has_more and st.button("Load more", key=_state_key("load_more", product_type)):
        st.session_state[count_key] = next_display_count(st.session_state[count_key], page_size)
        st.rerun()

    _render_bulk_edit(conn, session, selection, product_type, max_workers)
    _render_estimate_from_selection(conn, session, selection, product_type)
    _render_categorization(conn, session, products, max_workers)

    with st.expander("Export"):
        profile = get_vendor_profile(conn, session.user_id)
        st.download_button(
            "Download CSV",
            data=catalog_csv(filtered),
            file_name=f"catalog_{product_type.lower().replace(' ', '_')}.csv",
            mime="text/csv",
        )
        if st.button("Generate PDF", key=_state_key("pdf", product_type)):
            try:
                pdf_bytes = render_catalog_pdf(filtered, profile, usd_rate, profile.gold_rate_24k_per_gram)
            except Exception as exc:
                st.error(f"Failed to generate PDF: {exc}")
            else:
                st.download_button(
                    "Download PDF",
                    data=pdf_bytes,
                    file_name="catalog.pdf",
                    mime="application/pdf",
                )
