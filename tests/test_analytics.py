import pandas as pd
import pytest

from invoice_analyzer.ingestion.csv_parser import parse_csv_content
from invoice_analyzer.ingestion.data_importer import import_invoices_to_database
from invoice_analyzer.processing import analytics
from invoice_analyzer.storage import database


@pytest.fixture
def loaded(mock_db, restaurant_id, sample_csv):
    import_invoices_to_database(parse_csv_content(sample_csv), restaurant_id)
    return database.get_line_items_joined(), database.get_invoices_df()


def test_dashboard_metrics(loaded):
    line_items, invoices = loaded
    metrics = analytics.get_dashboard_metrics(line_items, invoices)

    assert metrics["total_products"] == 2
    assert metrics["total_invoices"] == 2
    assert metrics["total_spend"] == pytest.approx(1090.0)
    assert metrics["total_locations"] == 1
    assert metrics["avg_order_value"] == pytest.approx(545.0)
    assert metrics["avg_products_per_invoice"] == pytest.approx(1.5)


def test_dashboard_metrics_empty():
    metrics = analytics.get_dashboard_metrics(
        pd.DataFrame(columns=database.LINE_ITEM_JOINED_COLUMNS),
        pd.DataFrame(columns=["invoice_id", "document_number", "invoice_date", "location", "net_amount"]),
    )
    assert metrics["total_invoices"] == 0
    assert metrics["avg_order_value"] == 0.0


def test_spending_by_category(loaded):
    line_items, _ = loaded
    categories = analytics.get_spending_by_category(line_items)

    assert list(categories["category"]) == ["Protein", "Produce"]
    assert list(categories["total_spend"]) == pytest.approx([1024.0, 66.0])
    assert list(categories["product_count"]) == [1, 2]
    assert categories["percentage"].sum() == pytest.approx(100.0)


def test_product_summaries_and_top_products(loaded):
    line_items, _ = loaded
    summaries = analytics.get_product_summaries(line_items).set_index("product_number")

    tomato = summaries.loc["3077930"]
    assert tomato["last_price"] == 26.0
    assert tomato["purchase_frequency"] == 2
    assert tomato["total_spent"] == pytest.approx(66.0)
    assert tomato["min_price"] == 20.0
    assert tomato["max_price"] == 26.0
    assert tomato["pack_sizes"] == ["25 LB"]
    assert tomato["locations"] == ["Bee Caves"]
    assert tomato["last_purchase_date"] == pd.Timestamp("2024-02-05")

    top = analytics.get_top_spending_products(line_items, limit=1)
    assert list(top["product_number"]) == ["4432211"]


def test_price_range_alerts(loaded):
    line_items, _ = loaded

    alerts = analytics.get_price_range_alerts(line_items, threshold=15)
    assert list(alerts["product_number"]) == ["3077930"]
    assert alerts.iloc[0]["price_change_percent"] == pytest.approx(30.0)
    assert alerts.iloc[0]["location_name"] == "Bee Caves"

    assert analytics.get_price_range_alerts(line_items, threshold=35).empty


def test_location_comparison(loaded):
    line_items, invoices = loaded
    locations = analytics.get_location_comparison(line_items, invoices)

    row = locations.iloc[0]
    assert row["location_name"] == "Bee Caves"
    assert row["total_spend"] == pytest.approx(1090.0)
    assert row["total_invoices"] == 2
    assert row["avg_invoice_value"] == pytest.approx(545.0)
    assert row["unique_products"] == 2


def test_monthly_spend_trends(loaded):
    line_items, invoices = loaded
    monthly = analytics.get_monthly_spend_trends(invoices, line_items)

    assert list(monthly["month_name"]) == ["January", "February"]
    assert list(monthly["total_spend"]) == pytest.approx([1064.0, 26.0])
    assert list(monthly["unique_products"]) == [2, 1]

    last = analytics.get_monthly_spend_trends(invoices, line_items, months=1)
    assert list(last["month"]) == [2]


def test_weekly_spend(loaded):
    line_items, _ = loaded
    weekly = analytics.get_weekly_spend(line_items)

    assert weekly["total_spend"].sum() == pytest.approx(1090.0)
    assert weekly.iloc[0]["total_spend"] == pytest.approx(1064.0)
    assert analytics.get_weekly_spend(line_items.iloc[0:0]).empty
