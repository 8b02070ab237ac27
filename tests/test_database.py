import datetime

import mongomock
import pytest
from pymongo.errors import PyMongoError

from invoice_analyzer.storage import database


def save_sample_invoice(restaurant_id, document_number="1001", date="01/05/2024"):
    return database.save_invoice(
        {
            "restaurant_id": restaurant_id,
            "document_number": document_number,
            "document_date": date,
            "net_amount_after_adjustment": 64.0,
            "raw_data": [{"DocumentNumber": document_number}],
        },
        [
            {"product_number": "111", "product_description": "ONION, YELLOW", "packing_size": "50 LB",
             "qty_shipped": 2, "unit_price": 20.0, "extended_price": 40.0},
            {"product_number": "222", "product_description": "CHEESE, CHEDDAR", "packing_size": "4/5 LB",
             "qty_shipped": 1, "unit_price": 24.0, "extended_price": 24.0},
        ],
    )


def test_create_and_find_restaurant(mock_db):
    restaurant_id = database.create_restaurant({"name": "Los Pinos", "location": "Bee Caves"})

    assert database.find_restaurant("Los Pinos", "Bee Caves") == restaurant_id
    assert database.find_restaurant("Los Pinos", "Dripping Springs") is None
    assert [r["location"] for r in database.get_all_restaurants()] == ["Bee Caves"]


def test_create_restaurant_requires_name_and_location(mock_db):
    assert database.create_restaurant({"name": "Los Pinos"}) is None


def test_save_invoice_stores_header_and_line_items(restaurant_id):
    result = save_sample_invoice(restaurant_id)

    assert result["success"]
    invoice = database.get_invoice_by_id(result["invoice_id"])
    assert invoice["document_date"] == datetime.datetime(2024, 1, 5)
    assert invoice["raw_data"] == [{"DocumentNumber": "1001"}]
    assert [li["line_number"] for li in invoice["line_items"]] == [1, 2]
    assert invoice["line_items"][0]["packing_size"] == "50 LB"


def test_save_invoice_without_document_number(restaurant_id):
    result = database.save_invoice({"restaurant_id": restaurant_id}, [])
    assert not result["success"]
    assert result["invoice_id"] is None


def test_check_duplicate_invoice(restaurant_id):
    assert database.check_duplicate_invoice("1001") is None
    save_sample_invoice(restaurant_id)
    assert database.check_duplicate_invoice("1001") is not None
    assert database.check_duplicate_invoice("") is None


def test_failed_line_item_insert_rolls_back_invoice(restaurant_id, mock_db, monkeypatch):
    original_insert_many = mongomock.Collection.insert_many

    def partial_insert_many(self, documents, *args, **kwargs):
        # One line item lands before the write fails
        original_insert_many(self, documents[:1])
        raise PyMongoError("write failed")

    monkeypatch.setattr(mongomock.Collection, "insert_many", partial_insert_many)
    result = save_sample_invoice(restaurant_id)

    assert not result["success"]
    assert "write failed" in result["message"]
    assert database.check_duplicate_invoice("1001") is None
    assert mock_db.invoices.count_documents({}) == 0
    assert mock_db.line_items.count_documents({}) == 0

    monkeypatch.setattr(mongomock.Collection, "insert_many", original_insert_many)
    retry = save_sample_invoice(restaurant_id)
    assert retry["success"]
    assert len(database.get_invoice_by_id(retry["invoice_id"])["line_items"]) == 2


def test_get_invoice_by_id_with_bad_id(mock_db):
    assert database.get_invoice_by_id("not-an-id") is None


def test_products(mock_db):
    assert database.insert_product({"product_number": "111", "description": "ONION, YELLOW",
                                    "category": "Produce"})["success"]
    database.insert_product({"product_number": "222", "description": "CHEESE, CHEDDAR", "category": "Dairy"})

    assert database.get_product("111")["category"] == "Produce"
    assert database.get_product_categories() == ["Dairy", "Produce"]
    assert [p["product_number"] for p in database.get_products("Dairy")] == ["222"]
    assert [p["product_number"] for p in database.search_products("onion")] == ["111"]
    assert [p["product_number"] for p in database.search_products("22")] == ["222"]
    assert database.search_products("") == []


def test_previous_price_is_latest_strictly_earlier(restaurant_id):
    for price, date in [(10.0, "2024-01-01"), (12.0, "2024-02-01"), (15.0, "2024-03-01")]:
        database.insert_price_history({
            "product_number": "111", "restaurant_id": restaurant_id, "price": price, "invoice_date": date,
        })

    previous = database.get_previous_price("111", restaurant_id, "2024-03-01")
    assert previous["price"] == 12.0
    assert database.get_previous_price("111", restaurant_id, "2024-01-01") is None

    other_restaurant = database.create_restaurant({"name": "Los Pinos", "location": "Lakeway"})
    assert database.get_previous_price("111", other_restaurant, "2024-03-01") is None


def test_price_alerts_roundtrip(restaurant_id):
    database.insert_product({"product_number": "111", "description": "ONION, YELLOW"})
    result = database.insert_price_alert({
        "restaurant_id": restaurant_id, "product_number": "111", "previous_price": 10.0,
        "new_price": 13.0, "percentage_change": 30.0, "alert_type": "increase",
        "invoice_date": "2024-02-01",
    })
    assert result["success"]

    alerts = database.get_price_alerts(unread_only=True)
    assert list(alerts["description"]) == ["ONION, YELLOW"]
    assert not alerts.iloc[0]["is_read"]

    assert database.mark_alert_read(result["alert_id"])["success"]
    assert database.get_price_alerts(unread_only=True).empty
    assert len(database.get_price_alerts()) == 1
    assert not database.mark_alert_read("not-an-id")["success"]


def test_item_mapping(mock_db):
    assert database.get_stored_category("onion yellow") is None
    database.upsert_item_mapping("onion yellow", "Produce")
    database.upsert_item_mapping("onion yellow", "Dry Goods")
    assert database.get_stored_category("onion yellow") == "Dry Goods"


def test_update_product_category_reaches_joined_line_items(restaurant_id):
    save_sample_invoice(restaurant_id)
    database.insert_product({"product_number": "111", "description": "ONION, YELLOW", "category": "Produce"})

    result = database.update_product_category("111", "Dry Goods")

    assert result["success"]
    assert database.get_product("111")["category"] == "Dry Goods"
    df = database.get_line_items_joined()
    assert df.loc[df["product_number"] == "111", "category"].tolist() == ["Dry Goods"]


def test_update_category_of_unknown_product(mock_db):
    result = database.update_product_category("999", "Dairy")
    assert not result["success"]
    assert "999" in result["message"]


def test_line_items_joined(restaurant_id):
    save_sample_invoice(restaurant_id)
    save_sample_invoice(restaurant_id, document_number="1002", date="02/05/2024")
    database.insert_product({"product_number": "111", "description": "ONION, YELLOW", "category": "Produce"})

    df = database.get_line_items_joined()

    assert len(df) == 4
    assert list(df.columns) == database.LINE_ITEM_JOINED_COLUMNS
    assert set(df["location"]) == {"Bee Caves"}
    assert df.loc[df["product_number"] == "111", "category"].unique().tolist() == ["Produce"]
    # Products missing from the master list fall back to the default category
    assert df.loc[df["product_number"] == "222", "category"].unique().tolist() == ["Dry Goods"]

    january = database.get_line_items_joined(
        start_date=datetime.datetime(2024, 1, 1), end_date=datetime.datetime(2024, 1, 31)
    )
    assert set(january["document_number"]) == {"1001"}

    onion = database.get_price_observations(product_number="111")
    assert list(onion["unit_price"]) == [20.0, 20.0]
    assert list(onion["invoice_number"]) == ["1001", "1002"]


def test_invoices_df_filters_by_restaurant(restaurant_id):
    save_sample_invoice(restaurant_id)
    other = database.create_restaurant({"name": "Los Pinos", "location": "Lakeway"})
    save_sample_invoice(other, document_number="2001")

    df = database.get_invoices_df(restaurant_ids=[other])
    assert list(df["document_number"]) == ["2001"]
    assert list(df["location"]) == ["Lakeway"]
    assert df.iloc[0]["net_amount"] == 64.0


def test_empty_database_loaders(mock_db):
    assert database.get_invoices_df().empty
    assert list(database.get_line_items_joined().columns) == database.LINE_ITEM_JOINED_COLUMNS
    assert database.get_recent_invoices().empty
    assert database.get_price_alerts().empty
    assert database.get_product_price_trends("111").empty


def test_purchase_history_and_recent_invoices(restaurant_id):
    save_sample_invoice(restaurant_id)
    save_sample_invoice(restaurant_id, document_number="1002", date="02/05/2024")

    history = database.get_product_purchase_history("222")
    assert list(history["document_number"]) == ["1002", "1001"]
    assert list(history["location_name"]) == ["Bee Caves", "Bee Caves"]

    recent = database.get_recent_invoices(limit=1)
    assert list(recent["document_number"]) == ["1002"]
    assert recent.iloc[0]["total_items"] == 2
    assert recent.iloc[0]["unique_products"] == 2


def test_collection_counts(restaurant_id):
    save_sample_invoice(restaurant_id)
    counts = database.get_collection_counts()
    assert counts["restaurants"] == 1
    assert counts["invoices"] == 1
    assert counts["line_items"] == 2
    assert counts["price_alerts"] == 0


@pytest.mark.parametrize("value, expected", [(None, 0.0), ("12.5", 12.5), ("abc", 0.0), (float("nan"), 0.0)])
def test_to_float(value, expected):
    assert database.to_float(value) == expected
