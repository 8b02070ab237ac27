import streamlit as st
import pandas as pd
import altair as alt
import logging
import sys
from pathlib import Path

# Configure logger
logger = logging.getLogger(__name__)

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.storage.database import (
    get_line_items_joined,
    get_price_observations,
    get_product,
    get_product_categories,
    get_product_price_trends,
    get_product_purchase_history,
    search_products,
)
from invoice_analyzer.processing.analytics import get_product_summaries
from invoice_analyzer.processing.categorization import PRODUCT_CATEGORIES, DEFAULT_CATEGORY, set_product_category
from invoice_analyzer.processing.price_analyzer import compare_pack_sizes
from invoice_analyzer.ingestion.pack_size import parse_pack_size, price_per_unit

st.set_page_config(page_title="Products", page_icon="🛒", layout="wide")


@st.cache_data(ttl=300)
def load_summaries():
    try:
        return get_product_summaries(get_line_items_joined())
    except Exception as e:
        logger.error(f"Failed to load product summaries: {e}")
        st.error(f"Could not load products: {e}")
        return None


st.title("🛒 Products")

summaries = load_summaries()
if summaries is None:
    st.stop()
if summaries.empty:
    st.info("No purchases recorded yet.")
    st.stop()

# ---------------------------
# Search & filter
# ---------------------------
col1, col2 = st.columns([2, 1])
with col1:
    search_term = st.text_input("Search by description or product number")
with col2:
    categories = ["All"] + get_product_categories()
    selected_category = st.selectbox("Category", categories)

view = summaries
if search_term:
    matches = {p["product_number"] for p in search_products(search_term, limit=200)}
    view = view[view["product_number"].isin(matches)]
if selected_category != "All":
    view = view[view["category"] == selected_category]

st.caption(f"{len(view)} of {len(summaries)} products")
st.dataframe(
    view.assign(
        pack_sizes=view["pack_sizes"].apply(", ".join),
        locations=view["locations"].apply(", ".join),
    ).sort_values("total_spent", ascending=False),
    use_container_width=True,
    hide_index=True,
)

if view.empty:
    st.stop()

# ---------------------------
# Product detail
# ---------------------------
st.markdown("---")
labels = dict(zip(view["product_number"], view["product_number"] + " | " + view["name"].astype(str)))
product_number = st.selectbox("Product detail", list(labels.keys()), format_func=labels.get)
product = get_product(product_number) or {}

st.header(product.get("description") or labels[product_number])
info1, info2, info3 = st.columns(3)
with info1:
    st.metric("Category", product.get("category", DEFAULT_CATEGORY))
with info2:
    st.metric("Brand", product.get("brand") or "N/A")
with info3:
    pack = parse_pack_size(product.get("pack_size"))
    st.metric("Pack", product.get("pack_size") or "N/A", help=f"{pack.total_units:g} {pack.unit_type} per case")

with st.expander("Change category"):
    options = list(PRODUCT_CATEGORIES.keys()) + [DEFAULT_CATEGORY]
    current = product.get("category", DEFAULT_CATEGORY)
    new_category = st.selectbox("Category", options, index=options.index(current) if current in options else len(options) - 1)
    if st.button("Save category"):
        result = set_product_category(product_number, product.get("description", ""), new_category)
        if result["success"]:
            st.cache_data.clear()
            st.success(f"Moved to '{new_category}', including future imports.")
        else:
            st.error(result["message"])

tab1, tab2, tab3 = st.tabs(["📈 Price Trend", "🧾 Purchase History", "📦 Pack Sizes"])

with tab1:
    trend = get_product_price_trends(product_number, months=12)
    if trend.empty:
        st.write("No price history in the last 12 months.")
    else:
        chart = (
            alt.Chart(trend)
            .mark_line(point=True)
            .encode(
                x=alt.X("date:T", title="Invoice Date"),
                y=alt.Y("price:Q", title="Unit Price"),
                color="location:N",
                tooltip=["date:T", alt.Tooltip("price:Q", format="$,.2f"), "location"],
            )
            .properties(height=300)
        )
        st.altair_chart(chart, use_container_width=True)

with tab2:
    history = get_product_purchase_history(product_number)
    if history.empty:
        st.write("No purchases.")
    else:
        history["price_per_unit"] = [
            price_per_unit(price, pack) for price, pack in zip(history["unit_price"], history["pack_size"])
        ]
        st.dataframe(history, use_container_width=True, hide_index=True)

with tab3:
    comparison = compare_pack_sizes(get_price_observations(product_number=product_number))
    if comparison.empty:
        st.write("This product was bought in a single pack size.")
    else:
        row = comparison.iloc[0]
        st.success(f"Best value pack: **{row['best_value_pack']}**")
        st.dataframe(pd.DataFrame(row["per_unit_comparison"]), use_container_width=True, hide_index=True)
