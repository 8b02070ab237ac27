import streamlit as st
import pandas as pd
import logging
import sys
from pathlib import Path

# Configure logger
logger = logging.getLogger(__name__)

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.config import DEFAULT_RESTAURANT_NAME, DEFAULT_LOCATION
from invoice_analyzer.ingestion.csv_parser import (
    CSVParseError,
    invoices_to_dataframes,
    parse_csv_content,
    validate_usfoods_format,
)
from invoice_analyzer.ingestion.data_importer import get_or_create_restaurant_id, import_invoices_to_database
from invoice_analyzer.storage.database import check_duplicate_invoice

st.set_page_config(page_title="Upload Invoices", page_icon="📤", layout="wide")

st.title("📤 Upload US Foods Invoices")
st.markdown("Upload CSV exports from US Foods. Each file may hold many invoices.")

col1, col2 = st.columns(2)
with col1:
    restaurant_name = st.text_input("Restaurant", value=DEFAULT_RESTAURANT_NAME)
with col2:
    location = st.text_input("Location", value=DEFAULT_LOCATION)

uploaded_files = st.file_uploader(
    "Choose invoice CSV files",
    type=["csv"],
    accept_multiple_files=True,
    key="file_uploader",
)

if not uploaded_files:
    st.stop()

# ---------------------------
# Validate & preview
# ---------------------------
ready = {}
for uploaded_file in uploaded_files:
    content = uploaded_file.getvalue().decode("utf-8", errors="replace")

    with st.expander(f"📄 {uploaded_file.name}", expanded=len(uploaded_files) == 1):
        is_valid, errors = validate_usfoods_format(content)
        if not is_valid:
            for error in errors:
                st.error(error)
            continue

        try:
            invoices = parse_csv_content(content)
        except CSVParseError as e:
            st.error(str(e))
            continue

        if not invoices:
            st.warning("No invoices found in this file.")
            continue

        inv_df, li_df = invoices_to_dataframes(invoices)
        inv_df["already_imported"] = inv_df["document_number"].apply(
            lambda n: check_duplicate_invoice(n) is not None
        )
        new_count = int((~inv_df["already_imported"]).sum())
        st.info(f"{len(invoices)} invoice(s), {len(li_df)} line item(s), {new_count} new")
        st.dataframe(inv_df, use_container_width=True, hide_index=True)
        st.dataframe(li_df.head(50), use_container_width=True, hide_index=True)

        ready[uploaded_file.name] = invoices

if not ready:
    st.stop()

# ---------------------------
# Import
# ---------------------------
if st.button("🚀 Import to Database", type="primary", use_container_width=True):
    try:
        restaurant_id = get_or_create_restaurant_id(restaurant_name, location)
    except Exception as e:
        st.error(f"Could not resolve restaurant: {e}")
        st.stop()

    progress_bar = st.progress(0)
    status_text = st.empty()
    total_imported = 0
    total_skipped = 0
    failures = []

    for idx, (file_name, invoices) in enumerate(ready.items()):
        status_text.text(f"Importing {idx + 1}/{len(ready)}: {file_name}")
        try:
            imported, skipped = import_invoices_to_database(invoices, restaurant_id)
            total_imported += imported
            total_skipped += skipped
        except Exception as e:
            logger.error(f"Import failed for {file_name}: {e}")
            failures.append(f"{file_name}: {e}")
        progress_bar.progress((idx + 1) / len(ready))

    progress_bar.empty()
    status_text.text("✅ Import complete!")
    st.cache_data.clear()

    st.success(f"Imported {total_imported} invoice(s); skipped {total_skipped} already in the database.")
    for failure in failures:
        st.error(failure)

    summary = pd.DataFrame([{"file": name, "invoices": len(invs)} for name, invs in ready.items()])
    st.dataframe(summary, use_container_width=True, hide_index=True)
