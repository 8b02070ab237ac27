"""
Dashboard analytics.

Every function works on the frames returned by the storage loaders:

    line_items  -> database.get_line_items_joined()  (one row per line item)
    invoices    -> database.get_invoices_df()        (one row per invoice)

so the pages can load once and slice the same data many ways.
"""

import calendar
import logging
from typing import Any, Dict, Optional

import pandas as pd

from invoice_analyzer.config import CONFIG

logger = logging.getLogger(__name__)

PRODUCT_SUMMARY_COLUMNS = [
    "product_number", "name", "category", "last_price", "last_purchase_date",
    "purchase_frequency", "total_spent", "avg_price", "min_price", "max_price",
    "pack_sizes", "locations",
]


def _unique(values) -> list:
    return [v for v in dict.fromkeys(values) if isinstance(v, str) and v.strip()]


def _by_date(line_items: pd.DataFrame) -> pd.DataFrame:
    df = line_items.copy()
    df["invoice_date"] = pd.to_datetime(df["invoice_date"], errors="coerce")
    return df.sort_values("invoice_date", kind="mergesort")


# ---------------------------------------------------------
# KPI cards
# ---------------------------------------------------------
def get_dashboard_metrics(
    line_items: pd.DataFrame,
    invoices: pd.DataFrame,
    location_count: Optional[int] = None,
) -> Dict[str, Any]:
    total_invoices = len(invoices)
    total_spend = float(invoices["net_amount"].sum()) if total_invoices else 0.0

    if line_items.empty:
        products_per_invoice = 0
        total_products = 0
    else:
        products_per_invoice = line_items.groupby("invoice_id")["product_number"].nunique().sum()
        total_products = line_items["product_number"].nunique()

    if location_count is None:
        location_count = invoices["location"].nunique() if total_invoices else 0

    return {
        "total_products": int(total_products),
        "total_invoices": total_invoices,
        "total_spend": total_spend,
        "total_locations": int(location_count),
        "avg_order_value": total_spend / total_invoices if total_invoices else 0.0,
        "avg_products_per_invoice": products_per_invoice / total_invoices if total_invoices else 0.0,
    }


def get_spending_by_category(line_items: pd.DataFrame) -> pd.DataFrame:
    """Spend per product category, highest first."""
    columns = ["category", "total_spend", "product_count", "percentage"]
    if line_items.empty:
        return pd.DataFrame(columns=columns)

    df = line_items.assign(category=line_items["category"].fillna("Unknown"))
    result = (
        df.groupby("category")
        .agg(total_spend=("extended_price", "sum"), product_count=("extended_price", "size"))
        .reset_index()
    )
    grand_total = result["total_spend"].sum()
    result["percentage"] = result["total_spend"] / grand_total * 100 if grand_total > 0 else 0.0
    return result.sort_values("total_spend", ascending=False).reset_index(drop=True)[columns]


# ---------------------------------------------------------
# Product level
# ---------------------------------------------------------
def get_product_summaries(line_items: pd.DataFrame) -> pd.DataFrame:
    """
    One row per product: last price and purchase date, frequency, spend,
    price range, pack sizes and locations it was bought at.
    """
    if line_items.empty:
        return pd.DataFrame(columns=PRODUCT_SUMMARY_COLUMNS)

    rows = []
    for product_number, group in _by_date(line_items).groupby("product_number", sort=False):
        prices = group.loc[group["unit_price"] > 0, "unit_price"]
        last = group.iloc[-1]
        rows.append({
            "product_number": product_number,
            "name": group["product_description"].iloc[0],
            "category": last["category"] if isinstance(last["category"], str) else "Unknown",
            "last_price": last["unit_price"],
            "last_purchase_date": last["invoice_date"],
            "purchase_frequency": len(group),
            "total_spent": group["extended_price"].sum(),
            "avg_price": prices.mean() if not prices.empty else last["unit_price"],
            "min_price": prices.min() if not prices.empty else 0.0,
            "max_price": prices.max() if not prices.empty else 0.0,
            "pack_sizes": _unique(group["pack_size"]),
            "locations": _unique(group["location"]),
        })

    return pd.DataFrame(rows, columns=PRODUCT_SUMMARY_COLUMNS)


def get_top_spending_products(line_items: pd.DataFrame, limit: int = 10) -> pd.DataFrame:
    summaries = get_product_summaries(line_items)
    return (
        summaries.sort_values("total_spent", ascending=False, kind="mergesort")
        .head(limit)
        .reset_index(drop=True)
    )


def get_price_range_alerts(line_items: pd.DataFrame, threshold: Optional[float] = None) -> pd.DataFrame:
    """
    Products whose highest price is at least `threshold` percent above their
    lowest price. Widest spread first.
    """
    threshold = CONFIG["dashboard_alert_threshold"] if threshold is None else threshold
    columns = [
        "product_number", "name", "category", "current_price", "previous_price",
        "price_change", "price_change_percent", "last_purchase_date", "location_name",
    ]

    summaries = get_product_summaries(line_items)
    summaries = summaries[summaries["min_price"] > 0]
    if summaries.empty:
        return pd.DataFrame(columns=columns)

    alerts = pd.DataFrame({
        "product_number": summaries["product_number"],
        "name": summaries["name"],
        "category": summaries["category"],
        "current_price": summaries["last_price"],
        "previous_price": summaries["min_price"],
        "price_change": summaries["max_price"] - summaries["min_price"],
        "last_purchase_date": summaries["last_purchase_date"],
        "location_name": summaries["locations"].apply(lambda locs: locs[0] if locs else "Unknown"),
    })
    alerts["price_change_percent"] = alerts["price_change"] / alerts["previous_price"] * 100
    alerts = alerts[alerts["price_change_percent"] >= threshold]

    return (
        alerts.sort_values("price_change_percent", ascending=False, kind="mergesort")
        .reset_index(drop=True)[columns]
    )


# ---------------------------------------------------------
# Locations & time
# ---------------------------------------------------------
def get_location_comparison(line_items: pd.DataFrame, invoices: pd.DataFrame) -> pd.DataFrame:
    columns = [
        "location_name", "total_spend", "total_invoices", "avg_invoice_value",
        "unique_products", "last_invoice_date",
    ]
    if invoices.empty:
        return pd.DataFrame(columns=columns)

    result = (
        invoices.groupby("location")
        .agg(
            total_spend=("net_amount", "sum"),
            total_invoices=("invoice_id", "size"),
            last_invoice_date=("invoice_date", "max"),
        )
        .reset_index()
        .rename(columns={"location": "location_name"})
    )
    result["avg_invoice_value"] = result["total_spend"] / result["total_invoices"].clip(lower=1)

    if line_items.empty:
        result["unique_products"] = 0
    else:
        products = line_items.groupby("location")["product_number"].nunique()
        result["unique_products"] = result["location_name"].map(products).fillna(0).astype(int)

    return result.sort_values("total_spend", ascending=False).reset_index(drop=True)[columns]


def get_monthly_spend_trends(
    invoices: pd.DataFrame,
    line_items: Optional[pd.DataFrame] = None,
    months: int = 12,
) -> pd.DataFrame:
    """Spend per calendar month, oldest first, limited to the last `months` months with data."""
    columns = [
        "year", "month", "month_name", "total_spend", "invoice_count",
        "avg_invoice_value", "unique_products",
    ]
    dated = invoices.assign(invoice_date=pd.to_datetime(invoices["invoice_date"], errors="coerce"))
    dated = dated.dropna(subset=["invoice_date"])
    if dated.empty:
        return pd.DataFrame(columns=columns)

    dated["period"] = dated["invoice_date"].dt.to_period("M")
    monthly = (
        dated.groupby("period")
        .agg(total_spend=("net_amount", "sum"), invoice_count=("invoice_id", "size"))
        .sort_index()
        .tail(months)
    )

    if line_items is not None and not line_items.empty:
        items = line_items.assign(
            period=pd.to_datetime(line_items["invoice_date"], errors="coerce").dt.to_period("M")
        )
        unique_products = items.groupby("period")["product_number"].nunique()
        monthly["unique_products"] = unique_products.reindex(monthly.index).fillna(0).astype(int)
    else:
        monthly["unique_products"] = 0

    monthly["avg_invoice_value"] = monthly["total_spend"] / monthly["invoice_count"].clip(lower=1)
    monthly["year"] = [p.year for p in monthly.index]
    monthly["month"] = [p.month for p in monthly.index]
    monthly["month_name"] = [calendar.month_name[p.month] for p in monthly.index]

    return monthly.reset_index(drop=True)[columns]


def get_weekly_spend(line_items: pd.DataFrame) -> pd.DataFrame:
    if line_items.empty:
        return pd.DataFrame(columns=["week", "total_spend"])
    weekly = (
        _by_date(line_items)
        .dropna(subset=["invoice_date"])
        .set_index("invoice_date")
        .resample("W")["extended_price"]
        .sum()
        .reset_index()
    )
    weekly.rename(columns={"invoice_date": "week", "extended_price": "total_spend"}, inplace=True)
    return weekly
