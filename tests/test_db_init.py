import mongomock
import pytest

from invoice_analyzer.storage import database
from invoice_analyzer.storage.db_init import create_indexes


def test_indexes_reject_duplicate_documents(mock_db):
    create_indexes(mock_db)

    mock_db.invoices.insert_one({"document_number": "1001"})
    with pytest.raises(mongomock.DuplicateKeyError):
        mock_db.invoices.insert_one({"document_number": "1001"})

    mock_db.products.insert_one({"product_number": "111"})
    with pytest.raises(mongomock.DuplicateKeyError):
        mock_db.products.insert_one({"product_number": "111"})


def test_duplicate_invoice_save_reports_failure(mock_db, restaurant_id):
    create_indexes(mock_db)
    record = {"restaurant_id": restaurant_id, "document_number": "1001", "document_date": "01/05/2024"}

    assert database.save_invoice(record, [])["success"]
    result = database.save_invoice(record, [])
    assert not result["success"]
    assert result["message"].startswith("Error saving invoice")


def test_duplicate_product_insert_reports_failure(mock_db):
    create_indexes(mock_db)
    assert database.insert_product({"product_number": "111", "description": "ONION"})["success"]
    assert not database.insert_product({"product_number": "111", "description": "ONION"})["success"]
