"""
Price change detection over a product's purchase history.

All analysis functions take a DataFrame of price observations, one row per
purchased line item:

    product_number, product_description, unit_price, invoice_date,
    invoice_number, pack_size (optional), location (optional)

Observations come either from freshly parsed invoices
(price_observations_from_invoices) or from the database
(storage.database.get_price_observations).
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from invoice_analyzer.config import CONFIG
from invoice_analyzer.ingestion.csv_parser import ParsedInvoice
from invoice_analyzer.ingestion.pack_size import price_per_unit
from invoice_analyzer.processing.categorization import categorize_for_spending

logger = logging.getLogger(__name__)

OBSERVATION_COLUMNS = [
    "product_number", "product_description", "unit_price", "invoice_date",
    "invoice_number", "pack_size", "location",
]

CHANGE_COLUMNS = [
    "product_number", "product_description", "previous_price", "new_price",
    "percentage_change", "change_type", "invoice_date", "previous_invoice_date",
]

STATS_COLUMNS = [
    "product_number", "product_description", "price_count", "average_price",
    "min_price", "max_price", "latest_price", "price_volatility",
    "first_purchase_date", "last_purchase_date",
]

ALERT_COLUMNS = [
    "product_number", "product_description", "current_price", "average_price",
    "deviation", "alert_type", "threshold",
]

PACK_INCREASE_COLUMNS = [
    "product_number", "product_description", "pack_size", "previous_price",
    "current_price", "price_increase", "price_increase_percent",
    "last_purchase_date", "location", "purchase_frequency",
]


def price_observations_from_invoices(invoices: List[ParsedInvoice]) -> pd.DataFrame:
    """Flatten parsed invoices into one price observation per line item."""
    records = []
    for invoice in invoices:
        for item in invoice.line_items:
            records.append({
                "product_number": item.product_number,
                "product_description": item.product_description,
                "unit_price": item.unit_price,
                "invoice_date": invoice.document_date,
                "invoice_number": invoice.document_number,
                "pack_size": item.packing_size,
                "location": invoice.usf_sales_location,
            })
    return _prepare(pd.DataFrame(records, columns=OBSERVATION_COLUMNS))


def _prepare(observations: pd.DataFrame) -> pd.DataFrame:
    """Copy, coerce types and order observations chronologically (stable)."""
    obs = observations.copy()
    for col in OBSERVATION_COLUMNS:
        if col not in obs.columns:
            obs[col] = None
    obs["unit_price"] = pd.to_numeric(obs["unit_price"], errors="coerce").fillna(0.0).astype(float)
    obs["invoice_date"] = pd.to_datetime(obs["invoice_date"], errors="coerce")
    obs["product_number"] = obs["product_number"].astype(str)
    return obs.sort_values("invoice_date", kind="mergesort").reset_index(drop=True)


def _text_or(value, default: str) -> str:
    return value if isinstance(value, str) and value.strip() else default


def _descriptions(obs: pd.DataFrame) -> pd.Series:
    """Description from each product's earliest observation."""
    return obs.groupby("product_number", sort=False)["product_description"].first()


# ---------------------------------------------------------
# Price changes between consecutive purchases
# ---------------------------------------------------------
def check_price_change(
    previous_price: Optional[float],
    current_price: float,
    threshold: Optional[float] = None,
) -> Optional[Tuple[float, str]]:
    """
    Compare two consecutive prices.

    Returns:
        (percentage_change, "increase" | "decrease") when the change reaches
        the threshold, otherwise None.
    """
    threshold = CONFIG["price_change_threshold"] if threshold is None else threshold
    if previous_price is None or previous_price <= 0:
        return None

    percentage_change = (current_price - previous_price) / previous_price * 100
    if percentage_change == 0 or abs(percentage_change) < threshold:
        return None

    return round(percentage_change, 2), "increase" if percentage_change > 0 else "decrease"


def analyze_price_changes(observations: pd.DataFrame, threshold: Optional[float] = None) -> pd.DataFrame:
    """
    Flag every consecutive pair of purchases of a product whose price moved by
    at least `threshold` percent. Largest absolute change first.
    """
    threshold = CONFIG["price_change_threshold"] if threshold is None else threshold
    obs = _prepare(observations)
    if obs.empty:
        return pd.DataFrame(columns=CHANGE_COLUMNS)

    grouped = obs.groupby("product_number", sort=False)
    obs["previous_price"] = grouped["unit_price"].shift(1)
    obs["previous_invoice_date"] = grouped["invoice_date"].shift(1)

    candidates = obs[
        obs["previous_price"].notna()
        & (obs["previous_price"] > 0)
        & (obs["unit_price"] != obs["previous_price"])
    ].copy()

    candidates["raw_change"] = (
        (candidates["unit_price"] - candidates["previous_price"]) / candidates["previous_price"] * 100
    )
    changes = candidates[candidates["raw_change"].abs() >= threshold].copy()
    if changes.empty:
        return pd.DataFrame(columns=CHANGE_COLUMNS)

    changes["product_description"] = changes["product_number"].map(_descriptions(obs))
    changes["new_price"] = changes["unit_price"]
    changes["percentage_change"] = changes["raw_change"].round(2)
    changes["change_type"] = np.where(changes["raw_change"] > 0, "increase", "decrease")
    changes["abs_change"] = changes["raw_change"].abs()

    changes = changes.sort_values("abs_change", ascending=False, kind="mergesort")
    return changes[CHANGE_COLUMNS].reset_index(drop=True)


# ---------------------------------------------------------
# Per-product statistics & alerts
# ---------------------------------------------------------
def calculate_product_stats(observations: pd.DataFrame) -> pd.DataFrame:
    """
    Mean, min, max, latest price and volatility for each product.

    Volatility is the coefficient of variation (population standard deviation
    over mean, as a percentage); 0 when the mean is not positive.
    """
    obs = _prepare(observations)
    if obs.empty:
        return pd.DataFrame(columns=STATS_COLUMNS)

    stats = (
        obs.groupby("product_number", sort=False)
        .agg(
            product_description=("product_description", "first"),
            price_count=("unit_price", "size"),
            average_price=("unit_price", "mean"),
            min_price=("unit_price", "min"),
            max_price=("unit_price", "max"),
            latest_price=("unit_price", "last"),
            std_price=("unit_price", lambda s: s.std(ddof=0)),
            first_purchase_date=("invoice_date", "min"),
            last_purchase_date=("invoice_date", "max"),
        )
        .reset_index()
    )

    positive = stats["average_price"] > 0
    stats["price_volatility"] = 0.0
    stats.loc[positive, "price_volatility"] = (
        stats.loc[positive, "std_price"] / stats.loc[positive, "average_price"] * 100
    )
    return stats[STATS_COLUMNS]


def generate_price_alerts(
    observations: pd.DataFrame,
    deviation_threshold: Optional[float] = None,
    volatility_threshold: Optional[float] = None,
) -> pd.DataFrame:
    """
    Alerts for products with unusual pricing.

    * significant_increase / significant_decrease: the latest price deviates
      from the product's average by more than deviation_threshold percent.
    * unusual_pricing: volatility above volatility_threshold percent.
    """
    deviation_threshold = CONFIG["deviation_threshold"] if deviation_threshold is None else deviation_threshold
    volatility_threshold = CONFIG["volatility_threshold"] if volatility_threshold is None else volatility_threshold

    stats = calculate_product_stats(observations)
    alerts = []

    for row in stats.itertuples(index=False):
        if row.average_price > 0:
            deviation = abs((row.latest_price - row.average_price) / row.average_price * 100)
            if deviation > deviation_threshold:
                alerts.append({
                    "product_number": row.product_number,
                    "product_description": row.product_description,
                    "current_price": row.latest_price,
                    "average_price": row.average_price,
                    "deviation": deviation,
                    "alert_type": (
                        "significant_increase" if row.latest_price > row.average_price
                        else "significant_decrease"
                    ),
                    "threshold": deviation_threshold,
                })

        if row.price_volatility > volatility_threshold:
            alerts.append({
                "product_number": row.product_number,
                "product_description": row.product_description,
                "current_price": row.latest_price,
                "average_price": row.average_price,
                "deviation": row.price_volatility,
                "alert_type": "unusual_pricing",
                "threshold": volatility_threshold,
            })

    if not alerts:
        return pd.DataFrame(columns=ALERT_COLUMNS)

    return (
        pd.DataFrame(alerts, columns=ALERT_COLUMNS)
        .sort_values("deviation", ascending=False, kind="mergesort")
        .reset_index(drop=True)
    )


def find_volatile_products(observations: pd.DataFrame, limit: int = 10) -> pd.DataFrame:
    """Products with the most volatile pricing (needs at least three purchases)."""
    stats = calculate_product_stats(observations)
    stats = stats[stats["price_count"] >= CONFIG["min_volatility_points"]]
    return (
        stats.sort_values("price_volatility", ascending=False, kind="mergesort")
        .head(limit)
        .reset_index(drop=True)
    )


# ---------------------------------------------------------
# Pack size aware analysis
# ---------------------------------------------------------
def find_same_pack_increases(
    observations: pd.DataFrame,
    min_increase: Optional[float] = None,
    limit: int = 6,
) -> pd.DataFrame:
    """
    Real price increases: first vs. latest price within the same pack size, so
    a switch from "6/10 LB" to "4/5 LB" is not mistaken for a price jump.
    """
    min_increase = CONFIG["pack_increase_threshold"] if min_increase is None else min_increase
    obs = _prepare(observations)
    if obs.empty:
        return pd.DataFrame(columns=PACK_INCREASE_COLUMNS)

    obs["pack_size"] = obs["pack_size"].fillna("").replace("", "N/A")
    rows = []

    for (product_number, pack_size), group in obs.groupby(["product_number", "pack_size"], sort=False):
        if len(group) < 2:
            continue
        first = group.iloc[0]
        last = group.iloc[-1]
        if first["unit_price"] <= 0 or last["unit_price"] <= first["unit_price"]:
            continue

        increase = last["unit_price"] - first["unit_price"]
        increase_percent = increase / first["unit_price"] * 100
        if increase_percent <= min_increase:
            continue

        rows.append({
            "product_number": product_number,
            "product_description": _text_or(first["product_description"], "Unknown Product"),
            "pack_size": pack_size,
            "previous_price": first["unit_price"],
            "current_price": last["unit_price"],
            "price_increase": increase,
            "price_increase_percent": increase_percent,
            "last_purchase_date": last["invoice_date"],
            "location": _text_or(last["location"], "Multiple"),
            "purchase_frequency": len(group),
        })

    if not rows:
        return pd.DataFrame(columns=PACK_INCREASE_COLUMNS)

    return (
        pd.DataFrame(rows, columns=PACK_INCREASE_COLUMNS)
        .sort_values("price_increase_percent", ascending=False, kind="mergesort")
        .head(limit)
        .reset_index(drop=True)
    )


def compare_pack_sizes(observations: pd.DataFrame) -> pd.DataFrame:
    """
    For products bought in more than one pack size, compare the per-unit price
    of each pack and name the best value.
    """
    columns = [
        "product_number", "product_description", "pack_sizes", "current_pack",
        "current_price", "per_unit_comparison", "best_value_pack", "last_purchase_date",
    ]
    obs = _prepare(observations)
    obs = obs[obs["pack_size"].fillna("").astype(str).str.strip() != ""]
    if obs.empty:
        return pd.DataFrame(columns=columns)

    rows = []
    for product_number, group in obs.groupby("product_number", sort=False):
        pack_sizes = list(dict.fromkeys(group["pack_size"]))
        if len(pack_sizes) < 2:
            continue

        comparison = []
        for pack_size in pack_sizes:
            avg_price = group.loc[group["pack_size"] == pack_size, "unit_price"].mean()
            comparison.append({
                "pack_size": pack_size,
                "unit_price": avg_price,
                "per_unit_price": price_per_unit(avg_price, pack_size),
            })

        best = min(comparison, key=lambda c: c["per_unit_price"])
        latest = group.iloc[-1]
        rows.append({
            "product_number": product_number,
            "product_description": group["product_description"].iloc[0],
            "pack_sizes": pack_sizes,
            "current_pack": latest["pack_size"],
            "current_price": latest["unit_price"],
            "per_unit_comparison": comparison,
            "best_value_pack": best["pack_size"],
            "last_purchase_date": latest["invoice_date"],
        })

    if not rows:
        return pd.DataFrame(columns=columns)

    result = pd.DataFrame(rows, columns=columns)
    result["pack_count"] = result["pack_sizes"].apply(len)
    result = result.sort_values("pack_count", ascending=False, kind="mergesort")
    return result[columns].reset_index(drop=True)


# ---------------------------------------------------------
# Monthly spending
# ---------------------------------------------------------
def calculate_monthly_spending(invoices: List[ParsedInvoice], top_n: int = 5) -> pd.DataFrame:
    """
    Spend per calendar month with the top categories of that month.

    Category percentages are relative to the month's invoice net amount.
    """
    columns = [
        "period", "month", "year", "total_spent", "invoice_count",
        "average_invoice_amount", "top_categories",
    ]

    invoice_rows = []
    item_rows = []
    for invoice in invoices:
        date = pd.to_datetime(invoice.document_date, errors="coerce")
        if pd.isna(date):
            logger.warning(f"Skipping invoice {invoice.document_number}: unreadable date '{invoice.document_date}'")
            continue
        period = date.to_period("M")
        invoice_rows.append({"period": period, "net_amount": invoice.net_amount_after_adjustment})
        for item in invoice.line_items:
            item_rows.append({
                "period": period,
                "category": categorize_for_spending(item.product_description),
                "amount": item.extended_price,
            })

    if not invoice_rows:
        return pd.DataFrame(columns=columns)

    monthly = (
        pd.DataFrame(invoice_rows)
        .groupby("period")
        .agg(total_spent=("net_amount", "sum"), invoice_count=("net_amount", "size"))
        .sort_index()
    )

    items = pd.DataFrame(item_rows, columns=["period", "category", "amount"])

    results = []
    for period, row in monthly.iterrows():
        top_categories = []
        month_items = items[items["period"] == period]
        if not month_items.empty:
            month_categories = (
                month_items.groupby("category", sort=False)["amount"].sum()
                .sort_values(ascending=False, kind="mergesort")
                .head(top_n)
            )
            for category, amount in month_categories.items():
                top_categories.append({
                    "category": category,
                    "amount": amount,
                    "percentage": amount / row["total_spent"] * 100 if row["total_spent"] else 0.0,
                })

        results.append({
            "period": str(period),
            "month": period.strftime("%B"),
            "year": period.year,
            "total_spent": row["total_spent"],
            "invoice_count": int(row["invoice_count"]),
            "average_invoice_amount": row["total_spent"] / row["invoice_count"],
            "top_categories": top_categories,
        })

    return pd.DataFrame(results, columns=columns)
