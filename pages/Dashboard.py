import streamlit as st
import pandas as pd
import numpy as np
import altair as alt
import logging
import sys
from pathlib import Path

# Configure logger
logger = logging.getLogger(__name__)

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.config import CONFIG
from invoice_analyzer.storage.database import (
    get_all_restaurants,
    get_invoices_df,
    get_line_items_joined,
    get_price_observations,
    get_recent_invoices,
)
from invoice_analyzer.processing.analytics import (
    get_dashboard_metrics,
    get_spending_by_category,
    get_top_spending_products,
    get_price_range_alerts,
    get_location_comparison,
    get_monthly_spend_trends,
    get_weekly_spend,
)
from invoice_analyzer.processing.price_analyzer import find_volatile_products, find_same_pack_increases

st.set_page_config(page_title="Dashboard", page_icon="📊", layout="wide")


# ---------------------------
# Load & Prepare Data
# ---------------------------
@st.cache_data(ttl=300)
def load_data(restaurant_ids=None):
    """Load invoices and joined line items from MongoDB."""
    try:
        invoices = get_invoices_df(restaurant_ids=restaurant_ids)
        line_items = get_line_items_joined(restaurant_ids=restaurant_ids)
        return invoices, line_items
    except Exception as e:
        logger.error(f"Failed to load dashboard data: {e}")
        st.error(f"Could not load data from database: {e}")
        return None, None


@st.cache_data(ttl=300)
def load_observations(restaurant_ids=None):
    try:
        return get_price_observations(restaurant_ids=restaurant_ids)
    except Exception as e:
        logger.error(f"Failed to load price observations: {e}")
        return pd.DataFrame()


def safe_metric(value, fmt="{:,.0f}", default="N/A"):
    if value is None or (isinstance(value, (int, float)) and np.isnan(value)):
        return default
    try:
        return fmt.format(value)
    except Exception as e:
        logger.debug(f"Could not format value '{value}' with format '{fmt}': {e}")
        return str(value)


# ---------------------------
# Sidebar Filters
# ---------------------------
st.title("📊 Purchasing Dashboard")

restaurants = get_all_restaurants()
location_options = {r["location"]: str(r["_id"]) for r in restaurants}

st.sidebar.header("Filters")
selected_locations = st.sidebar.multiselect("Locations", list(location_options.keys()))
restaurant_ids = tuple(location_options[loc] for loc in selected_locations) or None

alert_threshold = st.sidebar.slider(
    "Price range alert threshold (%)",
    min_value=5,
    max_value=50,
    value=min(max(int(CONFIG["dashboard_alert_threshold"]), 5), 50),
    step=1,
)

invoices, line_items = load_data(restaurant_ids)
if invoices is None:
    st.stop()

if invoices.empty:
    st.info("No invoices in the database yet. Import US Foods CSV exports from the Upload page.")
    st.stop()

# ---------------------------
# KPI cards
# ---------------------------
metrics = get_dashboard_metrics(line_items, invoices, location_count=len(restaurants) if not restaurant_ids else None)

col1, col2, col3, col4, col5 = st.columns(5)
with col1:
    st.metric("Total Spend", safe_metric(metrics["total_spend"], "${:,.0f}"))
with col2:
    st.metric("Invoices", safe_metric(metrics["total_invoices"]))
with col3:
    st.metric("Products", safe_metric(metrics["total_products"]))
with col4:
    st.metric("Avg Order Value", safe_metric(metrics["avg_order_value"], "${:,.2f}"))
with col5:
    st.metric("Avg Products / Invoice", safe_metric(metrics["avg_products_per_invoice"], "{:,.1f}"))

st.markdown("---")

# ---------------------------
# Spend structure
# ---------------------------
c1, c2 = st.columns(2)

with c1:
    st.subheader("💰 Spend by Category")
    cat_df = get_spending_by_category(line_items)
    if cat_df.empty:
        st.write("No data.")
    else:
        cat_chart = (
            alt.Chart(cat_df)
            .mark_arc(innerRadius=50)
            .encode(
                theta="total_spend:Q",
                color="category:N",
                tooltip=["category", alt.Tooltip("total_spend:Q", format="$,.2f"),
                         alt.Tooltip("percentage:Q", format=".1f")],
            )
            .properties(height=300)
        )
        st.altair_chart(cat_chart, use_container_width=True)

with c2:
    st.subheader("🔝 Top Products by Spend")
    top_df = get_top_spending_products(line_items, limit=10)
    if top_df.empty:
        st.write("No data.")
    else:
        bar_chart = (
            alt.Chart(top_df)
            .mark_bar()
            .encode(
                x=alt.X("total_spent:Q", title="Total Spend"),
                y=alt.Y("name:N", sort="-x", title="Product"),
                tooltip=["product_number", "name", "purchase_frequency",
                         alt.Tooltip("total_spent:Q", format="$,.2f")],
            )
            .properties(height=300)
        )
        st.altair_chart(bar_chart, use_container_width=True)

# ---------------------------
# Trends
# ---------------------------
st.subheader("📅 Monthly Spend")
monthly = get_monthly_spend_trends(invoices, line_items, months=12)
if monthly.empty:
    st.write("No dated invoices.")
else:
    monthly["month_start"] = pd.to_datetime(
        monthly["year"].astype(str) + "-" + monthly["month"].astype(str) + "-01"
    )
    line = (
        alt.Chart(monthly)
        .mark_line(point=True)
        .encode(
            x=alt.X("month_start:T", title="Month"),
            y=alt.Y("total_spend:Q", title="Spend"),
            tooltip=["month_name", "year", "invoice_count",
                     alt.Tooltip("total_spend:Q", format="$,.2f"),
                     alt.Tooltip("avg_invoice_value:Q", format="$,.2f")],
        )
        .properties(height=260)
    )
    st.altair_chart(line, use_container_width=True)

with st.expander("Weekly spend"):
    weekly = get_weekly_spend(line_items)
    if weekly.empty:
        st.write("No data.")
    else:
        st.altair_chart(
            alt.Chart(weekly)
            .mark_area(opacity=0.6)
            .encode(
                x=alt.X("week:T", title="Week"),
                y=alt.Y("total_spend:Q", title="Spend"),
                tooltip=["week:T", "total_spend:Q"],
            ),
            use_container_width=True,
        )

# ---------------------------
# Locations
# ---------------------------
st.subheader("🏪 Location Comparison")
locations = get_location_comparison(line_items, invoices)
st.dataframe(
    locations.rename(columns={
        "location_name": "Location",
        "total_spend": "Total Spend",
        "total_invoices": "Invoices",
        "avg_invoice_value": "Avg Invoice",
        "unique_products": "Unique Products",
        "last_invoice_date": "Last Invoice",
    }),
    use_container_width=True,
    hide_index=True,
)

st.markdown("---")

# ---------------------------
# Price movement
# ---------------------------
c3, c4 = st.columns(2)

with c3:
    st.subheader(f"🚨 Price Range Alerts (≥{alert_threshold}%)")
    alerts = get_price_range_alerts(line_items, threshold=alert_threshold)
    if alerts.empty:
        st.success("No products above the threshold.")
    else:
        st.dataframe(
            alerts[["product_number", "name", "previous_price", "current_price",
                    "price_change_percent", "location_name"]].head(20),
            use_container_width=True,
            hide_index=True,
        )

observations = load_observations(restaurant_ids)

with c4:
    st.subheader("📈 Most Volatile Products")
    volatile = find_volatile_products(observations) if not observations.empty else pd.DataFrame()
    if volatile.empty:
        st.write("Not enough purchase history yet.")
    else:
        vol_chart = (
            alt.Chart(volatile)
            .mark_bar()
            .encode(
                x=alt.X("price_volatility:Q", title="Volatility (%)"),
                y=alt.Y("product_description:N", sort="-x", title="Product"),
                tooltip=["product_number", "price_count",
                         alt.Tooltip("average_price:Q", format="$,.2f"),
                         alt.Tooltip("price_volatility:Q", format=".1f")],
            )
            .properties(height=300)
        )
        st.altair_chart(vol_chart, use_container_width=True)

st.subheader("📦 Price Increases Within the Same Pack Size")
increases = find_same_pack_increases(observations) if not observations.empty else pd.DataFrame()
if increases.empty:
    st.write("No same-pack price increases found.")
else:
    st.dataframe(increases, use_container_width=True, hide_index=True)

st.subheader("🧾 Recent Invoices")
st.dataframe(get_recent_invoices(limit=10, restaurant_ids=restaurant_ids), use_container_width=True, hide_index=True)
