import os
import streamlit as st
from pathlib import Path

from invoice_analyzer.config import setup_logging

setup_logging()

# Ensure working directory is set to the app's location for cross-platform compatibility
APP_DIR = Path(__file__).parent.resolve()
os.chdir(APP_DIR)

# Define pages using relative paths (works now that cwd is set correctly)
dashboard = st.Page("pages/Dashboard.py", icon='📊', default=True)
products = st.Page("pages/Products.py", icon='🛒')
price_alerts = st.Page("pages/Price_Alerts.py", icon='🚨')
upload = st.Page("pages/Upload_Invoices.py", icon='📤')


# Group pages
pg = st.navigation({
    "Analysis": [dashboard, products, price_alerts],
    "Upload": [upload],
})

# Run the navigation
pg.run()
