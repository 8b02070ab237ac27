import mongomock
import pytest
from pymongo.errors import PyMongoError

from conftest import make_csv, make_row
from invoice_analyzer.ingestion import data_importer
from invoice_analyzer.ingestion.csv_parser import parse_csv_content
from invoice_analyzer.ingestion.data_importer import (
    check_and_create_price_alert,
    get_or_create_restaurant_id,
    import_invoices_from_directory,
    import_invoices_to_database,
)
from invoice_analyzer.storage import database


def test_import_stores_invoices_products_and_history(mock_db, restaurant_id, sample_csv):
    imported, skipped = import_invoices_to_database(parse_csv_content(sample_csv), restaurant_id)

    assert (imported, skipped) == (2, 0)
    assert mock_db.invoices.count_documents({}) == 2
    assert mock_db.line_items.count_documents({}) == 3
    assert mock_db.price_history.count_documents({}) == 3

    tomato = database.get_product("3077930")
    assert tomato["category"] == "Produce"
    assert tomato["brand"] == "CROSS VALLEY"
    assert tomato["pack_size"] == "25 LB"
    assert database.get_product("4432211")["category"] == "Protein"


def test_price_jump_creates_unread_alert(mock_db, restaurant_id, sample_csv):
    import_invoices_to_database(parse_csv_content(sample_csv), restaurant_id)

    alerts = list(mock_db.price_alerts.find())
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert["product_number"] == "3077930"
    assert alert["previous_price"] == 20.0
    assert alert["new_price"] == 26.0
    assert alert["percentage_change"] == 30.0
    assert alert["alert_type"] == "increase"
    assert alert["is_read"] is False


def test_reimport_skips_existing_invoices(mock_db, restaurant_id, sample_csv):
    invoices = parse_csv_content(sample_csv)
    import_invoices_to_database(invoices, restaurant_id)

    assert import_invoices_to_database(invoices, restaurant_id) == (0, 2)
    assert mock_db.invoices.count_documents({}) == 2
    assert mock_db.price_history.count_documents({}) == 3


def test_category_override_is_used_for_new_products(mock_db, restaurant_id):
    database.upsert_item_mapping("oil canola fry", "Supplies")
    content = make_csv([make_row("1", "01/05/2024", "555", "OIL, CANOLA FRY", "30.00")])

    import_invoices_to_database(parse_csv_content(content), restaurant_id)

    assert database.get_product("555")["category"] == "Supplies"


def test_small_change_creates_no_alert(mock_db, restaurant_id):
    database.insert_price_history({
        "product_number": "111", "restaurant_id": restaurant_id, "price": 10.0, "invoice_date": "2024-01-01",
    })

    assert check_and_create_price_alert("111", 11.0, "2024-02-01", restaurant_id) is None
    assert check_and_create_price_alert("111", 7.5, "2024-02-01", restaurant_id)["alert_type"] == "decrease"
    assert check_and_create_price_alert("222", 99.0, "2024-02-01", restaurant_id) is None
    assert mock_db.price_alerts.count_documents({}) == 1


def test_failed_save_raises(mock_db, restaurant_id, sample_csv, monkeypatch):
    monkeypatch.setattr(
        database, "save_invoice", lambda record, items: {"success": False, "message": "boom", "invoice_id": None}
    )
    with pytest.raises(data_importer.InvoiceImportError):
        import_invoices_to_database(parse_csv_content(sample_csv), restaurant_id)


def test_import_directory(mock_db, restaurant_id, sample_csv, tmp_path):
    (tmp_path / "a_invoices.csv").write_text(sample_csv, encoding="utf-8")
    (tmp_path / "b_empty.csv").write_text("", encoding="utf-8")
    (tmp_path / "c_header_only.csv").write_text(sample_csv.splitlines()[0] + "\n", encoding="utf-8")
    (tmp_path / "d_broken.csv").write_text("DocumentNumber,ProductNumber\n1,2\n3,4,5,6\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not an export", encoding="utf-8")

    progress = []
    result = import_invoices_from_directory(tmp_path, restaurant_id, on_progress=progress.append)

    assert result.success
    assert result.total_files == 4
    assert result.processed_files == 1
    assert result.total_invoices == 2
    assert result.total_line_items == 3
    assert result.skipped_files == ["b_empty.csv", "c_header_only.csv"]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error processing d_broken.csv")
    assert [p.current_file for p in progress[:4]] == [
        "a_invoices.csv", "b_empty.csv", "c_header_only.csv", "d_broken.csv",
    ]
    assert progress[-1].percentage == 100.0


def test_import_directory_without_csv_files(mock_db, restaurant_id, tmp_path):
    result = import_invoices_from_directory(tmp_path, restaurant_id)

    assert not result.success
    assert result.errors == ["No CSV files found in directory"]


def test_get_or_create_restaurant_id(mock_db):
    first = get_or_create_restaurant_id("Los Pinos", "Bee Caves")
    second = get_or_create_restaurant_id("Los Pinos", "Bee Caves")

    assert first == second
    restaurant = mock_db.restaurants.find_one()
    assert restaurant["address"] == "11715 BEE CAVES RD, BEE CAVE, TX 78738-5011"
    assert mock_db.restaurants.count_documents({}) == 1


def test_reimport_directory_counts_only_new_line_items(mock_db, restaurant_id, sample_csv, tmp_path):
    (tmp_path / "invoices.csv").write_text(sample_csv, encoding="utf-8")
    import_invoices_from_directory(tmp_path, restaurant_id)

    result = import_invoices_from_directory(tmp_path, restaurant_id)

    assert result.success
    assert result.total_invoices == 0
    assert result.skipped_invoices == 2
    assert result.total_line_items == 0


def test_invoice_can_be_retried_after_failed_line_item_write(mock_db, restaurant_id, sample_csv, monkeypatch):
    invoices = parse_csv_content(sample_csv)
    original_insert_many = mongomock.Collection.insert_many

    def failing_insert_many(self, documents, *args, **kwargs):
        raise PyMongoError("write failed")

    monkeypatch.setattr(mongomock.Collection, "insert_many", failing_insert_many)
    with pytest.raises(data_importer.InvoiceImportError):
        import_invoices_to_database(invoices, restaurant_id)

    monkeypatch.setattr(mongomock.Collection, "insert_many", original_insert_many)
    assert import_invoices_to_database(invoices, restaurant_id) == (2, 0)
    assert mock_db.line_items.count_documents({}) == 3
    assert mock_db.price_history.count_documents({}) == 3
