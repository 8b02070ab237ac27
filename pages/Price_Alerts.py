import streamlit as st
import pandas as pd
import logging
import sys
from pathlib import Path

# Configure logger
logger = logging.getLogger(__name__)

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.config import CONFIG
from invoice_analyzer.storage.database import get_price_alerts, get_price_observations, mark_alert_read
from invoice_analyzer.processing.price_analyzer import analyze_price_changes, generate_price_alerts

st.set_page_config(page_title="Price Alerts", page_icon="🚨", layout="wide")

st.title("🚨 Price Alerts")

tab1, tab2 = st.tabs(["📬 Stored Alerts", "🔍 Price Change Analysis"])

# TAB 1: alerts raised while importing
with tab1:
    unread_only = st.checkbox("Unread only", value=True)
    try:
        alerts = get_price_alerts(unread_only=unread_only)
    except Exception as e:
        logger.error(f"Failed to load price alerts: {e}")
        st.error(f"Could not load alerts: {e}")
        alerts = pd.DataFrame()

    if alerts.empty:
        st.success("No price alerts.")
    else:
        st.caption(f"{len(alerts)} alert(s)")
        for alert in alerts.itertuples(index=False):
            icon = "🔺" if alert.alert_type == "increase" else "🔻"
            col1, col2 = st.columns([5, 1])
            with col1:
                st.markdown(
                    f"{icon} **{alert.product_number}** {alert.description}: "
                    f"${alert.previous_price:,.2f} → ${alert.new_price:,.2f} "
                    f"({alert.percentage_change:+.1f}%) on {pd.Timestamp(alert.invoice_date):%Y-%m-%d}"
                )
            with col2:
                if not alert.is_read and st.button("Mark read", key=f"read_{alert.alert_id}"):
                    result = mark_alert_read(alert.alert_id)
                    if result["success"]:
                        st.rerun()
                    else:
                        st.error(result["message"])

# TAB 2: analysis over the whole purchase history
with tab2:
    threshold = st.slider(
        "Minimum change between consecutive purchases (%)",
        min_value=5,
        max_value=100,
        value=int(CONFIG["price_change_threshold"]),
        step=5,
    )

    try:
        observations = get_price_observations()
    except Exception as e:
        logger.error(f"Failed to load price observations: {e}")
        st.error(f"Could not load purchase history: {e}")
        st.stop()

    changes = analyze_price_changes(observations, threshold=threshold)
    st.subheader(f"Price changes ≥ {threshold}%")
    if changes.empty:
        st.write("No price changes above the threshold.")
    else:
        col1, col2 = st.columns(2)
        with col1:
            st.metric("Increases", int((changes["change_type"] == "increase").sum()))
        with col2:
            st.metric("Decreases", int((changes["change_type"] == "decrease").sum()))
        st.dataframe(changes, use_container_width=True, hide_index=True)

    st.subheader("Unusual pricing")
    unusual = generate_price_alerts(observations)
    if unusual.empty:
        st.write("Nothing unusual.")
    else:
        st.dataframe(unusual, use_container_width=True, hide_index=True)
