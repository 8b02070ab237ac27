import csv
import io

import mongomock
import pytest

from invoice_analyzer.storage import database

# Column layout of a US Foods invoice export (street columns appear twice)
USFOODS_HEADERS = [
    "DocumentNumber", "DocumentType", "DocumentDate", "CustomerNumber", "CustomerName",
    "AccountNumber", "PurchaseOrder", "USFSalesLocation", "USFSalesRep", "DateOrdered",
    "OrderNumber", "PaymentTerms", "DateShipped", "DeliveryAdjustment",
    "NetAmountAfter Adjustment", "NetAmountBefore Adj", "CreditMemoNumber", "CreditMemoDate",
    "BillToName", "BillToStreet", "BillToStreet", "BillToCity", "BillToState", "BillToZip",
    "BillToPhone", "BillToAttn", "ShipToName", "ShipToStreet", "ShipToStreet", "ShipToCity",
    "ShipToState", "ShipToZip", "ShipToPhone", "ShipToDept", "ShipToDeptName", "RemitToName",
    "RemitToStreet1", "RemitToStreet2", "RemitToCity", "RemitToState", "RemitToZip",
    "RemitToPhone", "ShipFromStreet1", "ShipFromStreet2", "ShipFromCity", "ShipFromState",
    "ProductNumber", "ProductDescription", "Product Label", "PackingSize", "Weight",
    "QtyOrder", "QtyShip", "QtyAdjust", "PricingUnit", "UnitPrice", "ExtendedPrice",
]


def make_row(document_number, document_date, product_number, description, unit_price,
             qty=1, pack="6/10 LB", net_amount="100.00", **extra):
    row = {
        "DocumentNumber": document_number,
        "DocumentType": "INVOICE",
        "DocumentDate": document_date,
        "CustomerNumber": "12345678",
        "CustomerName": "LOS PINOS BEE CAVES",
        "USFSalesLocation": "AUSTIN",
        "USFSalesRep": "JANE DOE",
        "OrderNumber": f"ORD-{document_number}",
        "PaymentTerms": "NET 14",
        "NetAmountAfter Adjustment": net_amount,
        "NetAmountBefore Adj": net_amount,
        "DeliveryAdjustment": "0",
        "ProductNumber": product_number,
        "ProductDescription": description,
        "Product Label": "CROSS VALLEY",
        "PackingSize": pack,
        "Weight": "10",
        "QtyOrder": str(qty),
        "QtyShip": str(qty),
        "QtyAdjust": "0",
        "PricingUnit": "CS",
        "UnitPrice": str(unit_price),
        "ExtendedPrice": f"{float(unit_price) * qty:.2f}",
    }
    row.update(extra)
    return row


def make_csv(rows):
    """Render rows (dicts keyed by header) as a US Foods export."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(USFOODS_HEADERS)
    for row in rows:
        writer.writerow([row.get(header, "") for header in USFOODS_HEADERS])
    return buffer.getvalue()


@pytest.fixture
def mock_db(monkeypatch):
    """Route every storage call to an in-memory MongoDB."""
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def restaurant_id(mock_db):
    return database.create_restaurant({"name": "Los Pinos", "location": "Bee Caves"})


@pytest.fixture
def sample_csv():
    return make_csv([
        make_row("1001", "01/05/2024", "3077930", "TOMATO, #2 GRD RND BULK FRESH", "20.00", qty=2,
                 pack="25 LB", net_amount="1,064.00"),
        make_row("1001", "01/05/2024", "4432211", "BEEF, GROUND 80/20 CHUB", "512.00", qty=2,
                 pack="4/10 LB", net_amount="1,064.00"),
        make_row("1002", "02/05/2024", "3077930", "TOMATO, #2 GRD RND BULK FRESH", "26.00",
                 pack="25 LB", net_amount="26.00"),
    ])
