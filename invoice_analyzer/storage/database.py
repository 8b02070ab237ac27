import re
import datetime
import logging
import pandas as pd
from typing import Optional, List, Dict, Any
from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo import MongoClient, DESCENDING

from invoice_analyzer.config import MONGODB_URI, DB_NAME

# Configure logger
logger = logging.getLogger(__name__)

# Setup MongoDB Connection (connects lazily on first operation)
client = MongoClient(MONGODB_URI)
db = client[DB_NAME]

# ---------------------------------------------------------
# Collection Names
# ---------------------------------------------------------
COL_RESTAURANTS = "restaurants"
COL_PRODUCTS = "products"
COL_INVOICES = "invoices"
COL_LINE_ITEMS = "line_items"
COL_PRICE_HISTORY = "price_history"
COL_PRICE_ALERTS = "price_alerts"
COL_ITEM_LOOKUP = "item_lookup_map"

LINE_ITEM_JOINED_COLUMNS = [
    "invoice_id", "document_number", "invoice_date", "location",
    "product_number", "product_description", "category", "pack_size",
    "pricing_unit", "qty_shipped", "unit_price", "extended_price",
]


# ---------------------------------------------------------
# HELPER: Type Conversion
# ---------------------------------------------------------
def to_float(val):
    """Helper to convert generic numbers/strings to float."""
    if val is None:
        return 0.0
    if isinstance(val, Decimal128):
        return float(val.to_decimal())
    try:
        if pd.isna(val):
            return 0.0
    except (TypeError, ValueError):
        pass
    try:
        return float(val)
    except (ValueError, TypeError) as e:
        logger.debug(f"Could not convert value '{val}' to float: {e}")
        return 0.0


def to_datetime(val) -> Optional[datetime.datetime]:
    """Invoice dates arrive as strings like 03/15/2024; store them as BSON dates."""
    if val is None or val == "":
        return None
    ts = pd.to_datetime(val, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _oid(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        logger.warning(f"Invalid ObjectId format: {value}")
        return None


# ---------------------------------------------------------
# Restaurant Methods
# ---------------------------------------------------------
def find_restaurant(name: str, location: str) -> Optional[str]:
    doc = db[COL_RESTAURANTS].find_one({"name": name, "location": location}, {"_id": 1})
    return str(doc["_id"]) if doc else None


def create_restaurant(restaurant_data: Dict[str, Any]) -> Optional[str]:
    """
    Creates a new restaurant (one document per location).

    Args:
        restaurant_data: name and location are required; address and phone optional.
    """
    if not restaurant_data.get("name") or not restaurant_data.get("location"):
        return None

    new_restaurant = {
        "name": restaurant_data["name"],
        "location": restaurant_data["location"],
        "address": restaurant_data.get("address"),
        "phone": restaurant_data.get("phone"),
        "created_at": datetime.datetime.now(),
        "is_active": True,
    }
    # Remove keys with None values to keep documents clean
    new_restaurant = {k: v for k, v in new_restaurant.items() if v is not None}

    result = db[COL_RESTAURANTS].insert_one(new_restaurant)
    return str(result.inserted_id)


def get_all_restaurants() -> List[Dict[str, Any]]:
    """All active restaurants, sorted by location."""
    return list(db[COL_RESTAURANTS].find(
        {"is_active": True},
        {"_id": 1, "name": 1, "location": 1}
    ).sort("location", 1))


# ---------------------------------------------------------
# Invoice + Line Item Save Method
# ---------------------------------------------------------
def check_duplicate_invoice(document_number: str) -> Optional[Dict[str, Any]]:
    """
    Check if an invoice with this document number was already imported.

    Returns:
        Existing invoice document (only _id) or None
    """
    if not document_number:
        return None
    return db[COL_INVOICES].find_one({"document_number": str(document_number)}, {"_id": 1})


def save_invoice(invoice_record: Dict[str, Any], line_items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Saves an invoice and its line items.

    1. Inserts the Invoice record -> Gets the new _id.
    2. Links every line item to that _id.
    3. Bulk Inserts the Line Items.

    Returns:
        Dict with 'success', 'message' and 'invoice_id' keys
    """
    document_number = str(invoice_record.get("document_number") or "")
    if not document_number:
        return {"success": False, "message": "Invoice has no document number", "invoice_id": None}

    new_invoice_id = None
    try:
        invoice_doc = {
            "restaurant_id": _oid(invoice_record.get("restaurant_id")),
            "document_number": document_number,
            "document_type": invoice_record.get("document_type") or "INVOICE",
            "document_date": to_datetime(invoice_record.get("document_date")),
            "customer_number": invoice_record.get("customer_number", ""),
            "customer_name": invoice_record.get("customer_name", ""),
            "order_number": invoice_record.get("order_number", ""),
            "net_amount_after_adjustment": to_float(invoice_record.get("net_amount_after_adjustment")),
            "net_amount_before_adjustment": to_float(invoice_record.get("net_amount_before_adjustment")),
            "delivery_adjustment": to_float(invoice_record.get("delivery_adjustment")),
            "payment_terms": invoice_record.get("payment_terms", ""),
            "date_ordered": to_datetime(invoice_record.get("date_ordered")),
            "date_shipped": to_datetime(invoice_record.get("date_shipped")),
            "usf_sales_location": invoice_record.get("usf_sales_location", ""),
            "usf_sales_rep": invoice_record.get("usf_sales_rep", ""),
            "raw_data": invoice_record.get("raw_data", []),
            "created_at": datetime.datetime.now(),
        }

        logger.info(f"Inserting invoice: {document_number}...")
        result = db[COL_INVOICES].insert_one(invoice_doc)
        new_invoice_id = result.inserted_id

        clean_line_items = []
        for idx, item in enumerate(line_items):
            clean_line_items.append({
                "invoice_id": new_invoice_id,
                "line_number": idx + 1,
                "product_number": str(item.get("product_number", "")),
                "product_description": str(item.get("product_description", "")),
                "product_label": str(item.get("product_label") or ""),
                "packing_size": str(item.get("packing_size") or ""),
                "weight": to_float(item.get("weight")),
                "qty_ordered": int(item.get("qty_ordered") or 0),
                "qty_shipped": int(item.get("qty_shipped") or 0),
                "qty_adjusted": int(item.get("qty_adjusted") or 0),
                "pricing_unit": str(item.get("pricing_unit") or ""),
                "unit_price": to_float(item.get("unit_price")),
                "extended_price": to_float(item.get("extended_price")),
            })

        if clean_line_items:
            db[COL_LINE_ITEMS].insert_many(clean_line_items)
            logger.info(f"Saved {len(clean_line_items)} line items for invoice {document_number}.")

        return {
            "success": True,
            "message": f"Invoice {document_number} saved successfully",
            "invoice_id": str(new_invoice_id),
        }

    except Exception as e:
        logger.error(f"Failed to save invoice/line_items for {document_number}: {e}")
        if new_invoice_id is not None:
            # A half-saved invoice would be skipped as a duplicate on every retry
            db[COL_LINE_ITEMS].delete_many({"invoice_id": new_invoice_id})
            db[COL_INVOICES].delete_one({"_id": new_invoice_id})
            logger.info(f"Rolled back partial invoice {document_number}.")
        return {
            "success": False,
            "message": f"Error saving invoice: {str(e)}",
            "invoice_id": None,
        }


def get_invoice_by_id(invoice_id: str) -> Optional[Dict[str, Any]]:
    """
    Retrieve an invoice by its ID with its line items.

    Returns:
        Invoice document with line_items array or None
    """
    oid = _oid(invoice_id)
    if oid is None:
        return None

    invoice = db[COL_INVOICES].find_one({"_id": oid})
    if invoice:
        invoice["line_items"] = list(db[COL_LINE_ITEMS].find({"invoice_id": oid}).sort("line_number", 1))
    return invoice


# ---------------------------------------------------------
# Product Master Methods
# ---------------------------------------------------------
def get_product(product_number: str) -> Optional[Dict[str, Any]]:
    return db[COL_PRODUCTS].find_one({"product_number": str(product_number)})


def insert_product(product_data: Dict[str, Any]) -> Dict[str, Any]:
    """Adds a product to the master list; product_number is unique."""
    doc = {
        "product_number": str(product_data["product_number"]),
        "description": product_data.get("description", ""),
        "brand": product_data.get("brand") or None,
        "category": product_data.get("category", "Dry Goods"),
        "pack_size": product_data.get("pack_size", ""),
        "unit_type": product_data.get("unit_type", ""),
        "created_at": datetime.datetime.now(),
    }
    try:
        result = db[COL_PRODUCTS].insert_one(doc)
        return {"success": True, "message": "Product created", "product_id": str(result.inserted_id)}
    except Exception as e:
        return {"success": False, "message": f"Error creating product: {str(e)}", "product_id": None}


def update_product_category(product_number: str, category: str) -> Dict[str, Any]:
    """Re-files an existing product; joined line items pick up the new category."""
    try:
        result = db[COL_PRODUCTS].update_one(
            {"product_number": str(product_number)},
            {"$set": {"category": category}},
        )
    except Exception as e:
        logger.error(f"Failed to update category for {product_number}: {e}")
        return {"success": False, "message": f"Error updating category: {str(e)}"}

    if result.matched_count == 0:
        return {"success": False, "message": f"Product {product_number} not found"}
    return {"success": True, "message": f"Product {product_number} moved to {category}"}


def get_products(category: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"category": category} if category else {}
    return list(db[COL_PRODUCTS].find(query).sort("description", 1))


def search_products(search_term: str, limit: int = 20) -> List[Dict[str, Any]]:
    """Case-insensitive search by description or product number."""
    if not search_term:
        return []
    regex = re.compile(re.escape(search_term), re.IGNORECASE)
    return list(db[COL_PRODUCTS].find(
        {"$or": [{"description": regex}, {"product_number": regex}]}
    ).limit(limit))


def get_product_categories() -> List[str]:
    return sorted(c for c in db[COL_PRODUCTS].distinct("category") if c)


# ---------------------------------------------------------
# Price History & Alerts
# ---------------------------------------------------------
def insert_price_history(entry: Dict[str, Any]) -> None:
    db[COL_PRICE_HISTORY].insert_one({
        "product_number": str(entry["product_number"]),
        "restaurant_id": _oid(entry.get("restaurant_id")),
        "price": to_float(entry.get("price")),
        "pricing_unit": entry.get("pricing_unit", ""),
        "invoice_date": to_datetime(entry.get("invoice_date")),
        "invoice_id": _oid(entry.get("invoice_id")),
        "created_at": datetime.datetime.now(),
    })


def get_previous_price(product_number: str, restaurant_id: str, before_date) -> Optional[Dict[str, Any]]:
    """Most recent price recorded strictly before `before_date` for a product at a restaurant."""
    before = to_datetime(before_date)
    if before is None:
        return None

    return db[COL_PRICE_HISTORY].find_one(
        {
            "product_number": str(product_number),
            "restaurant_id": _oid(restaurant_id),
            "invoice_date": {"$lt": before},
        },
        {"price": 1, "invoice_date": 1, "_id": 0},
        sort=[("invoice_date", DESCENDING)],
    )


def get_product_price_trends(product_number: str, months: int = 12) -> pd.DataFrame:
    """Price history of a product over the last `months` months, oldest first."""
    start_date = datetime.datetime.now() - datetime.timedelta(days=months * 30)
    cursor = db[COL_PRICE_HISTORY].find(
        {"product_number": str(product_number), "invoice_date": {"$gte": start_date}},
        {"_id": 0, "invoice_date": 1, "price": 1, "restaurant_id": 1},
    ).sort("invoice_date", 1)

    results = list(cursor)
    if not results:
        return pd.DataFrame(columns=["date", "price", "location"])

    locations = _location_names()
    df = pd.DataFrame(results)
    df["date"] = pd.to_datetime(df["invoice_date"])
    df["price"] = df["price"].apply(to_float)
    df["location"] = df["restaurant_id"].map(lambda r: locations.get(str(r), "Unknown"))
    return df[["date", "price", "location"]]


def insert_price_alert(alert: Dict[str, Any]) -> Dict[str, Any]:
    doc = {
        "restaurant_id": _oid(alert.get("restaurant_id")),
        "product_number": str(alert["product_number"]),
        "previous_price": to_float(alert.get("previous_price")),
        "new_price": to_float(alert.get("new_price")),
        "percentage_change": to_float(alert.get("percentage_change")),
        "alert_type": alert.get("alert_type"),
        "invoice_date": to_datetime(alert.get("invoice_date")),
        "is_read": False,
        "created_at": datetime.datetime.now(),
    }
    try:
        result = db[COL_PRICE_ALERTS].insert_one(doc)
        return {"success": True, "message": "Price alert created", "alert_id": str(result.inserted_id)}
    except Exception as e:
        return {"success": False, "message": f"Error creating price alert: {str(e)}", "alert_id": None}


def get_price_alerts(unread_only: bool = False, restaurant_id: Optional[str] = None) -> pd.DataFrame:
    """Stored price alerts, newest invoice first, enriched with product description."""
    columns = [
        "alert_id", "product_number", "description", "previous_price", "new_price",
        "percentage_change", "alert_type", "invoice_date", "is_read",
    ]
    query: Dict[str, Any] = {}
    if unread_only:
        query["is_read"] = False
    if restaurant_id:
        query["restaurant_id"] = _oid(restaurant_id)

    results = list(db[COL_PRICE_ALERTS].find(query).sort("invoice_date", DESCENDING))
    if not results:
        return pd.DataFrame(columns=columns)

    descriptions = {
        p["product_number"]: p.get("description", "")
        for p in db[COL_PRODUCTS].find({}, {"product_number": 1, "description": 1})
    }
    df = pd.DataFrame(results)
    df["alert_id"] = df["_id"].astype(str)
    df["description"] = df["product_number"].map(descriptions).fillna("")
    df["invoice_date"] = pd.to_datetime(df["invoice_date"])
    return df[columns]


def mark_alert_read(alert_id: str) -> Dict[str, Any]:
    oid = _oid(alert_id)
    if oid is None:
        return {"success": False, "message": "Invalid alert id"}

    result = db[COL_PRICE_ALERTS].update_one({"_id": oid}, {"$set": {"is_read": True}})
    if result.matched_count > 0:
        return {"success": True, "message": "Alert marked as read"}
    return {"success": False, "message": "Alert not found"}


# ---------------------------------------------------------
# Category & Lookup Method
# ---------------------------------------------------------
def get_stored_category(description: str) -> Optional[str]:
    """Finds if we have a manual category override for this description."""
    doc = db[COL_ITEM_LOOKUP].find_one({"_id": description})
    return doc.get("category") if doc else None


def upsert_item_mapping(description: str, category_name: str) -> None:
    """Links a cleaned description to a category."""
    db[COL_ITEM_LOOKUP].update_one(
        {"_id": description},
        {"$set": {"category": category_name}},
        upsert=True
    )


# ============================================================================
# DASHBOARD QUERY FUNCTIONS
# ============================================================================

def _location_names() -> Dict[str, str]:
    return {
        str(r["_id"]): r.get("location") or r.get("name", "Unknown")
        for r in db[COL_RESTAURANTS].find({}, {"_id": 1, "name": 1, "location": 1})
    }


def _date_filter(start_date, end_date) -> Dict[str, Any]:
    date_filter: Dict[str, Any] = {}
    if start_date:
        date_filter["$gte"] = start_date
    if end_date:
        # Include the entire end date (until 23:59:59)
        date_filter["$lte"] = end_date.replace(hour=23, minute=59, second=59)
    return date_filter


def get_invoices_df(
    start_date: Optional[datetime.datetime] = None,
    end_date: Optional[datetime.datetime] = None,
    restaurant_ids: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    One row per invoice with its location name.

    Returns:
        DataFrame with columns: invoice_id, document_number, invoice_date,
        location, net_amount
    """
    columns = ["invoice_id", "document_number", "invoice_date", "location", "net_amount"]
    match_filter: Dict[str, Any] = {}
    date_filter = _date_filter(start_date, end_date)
    if date_filter:
        match_filter["document_date"] = date_filter
    if restaurant_ids:
        match_filter["restaurant_id"] = {"$in": [_oid(r) for r in restaurant_ids]}

    results = list(db[COL_INVOICES].find(
        match_filter,
        {"_id": 1, "document_number": 1, "document_date": 1, "restaurant_id": 1,
         "net_amount_after_adjustment": 1},
    ))
    if not results:
        return pd.DataFrame(columns=columns)

    locations = _location_names()
    df = pd.DataFrame(results)
    df["invoice_id"] = df["_id"].astype(str)
    df["invoice_date"] = pd.to_datetime(df["document_date"])
    df["location"] = df["restaurant_id"].map(lambda r: locations.get(str(r), "Unknown"))
    df["net_amount"] = df["net_amount_after_adjustment"].apply(to_float)
    return df[columns].sort_values("invoice_date").reset_index(drop=True)


def get_line_items_joined(
    start_date: Optional[datetime.datetime] = None,
    end_date: Optional[datetime.datetime] = None,
    restaurant_ids: Optional[List[str]] = None,
    product_number: Optional[str] = None,
) -> pd.DataFrame:
    """
    Joined invoice, line item and product data. This is the primary query for
    dashboard analytics: one row per line item.
    """
    invoices = get_invoices_df(start_date, end_date, restaurant_ids)
    if invoices.empty:
        return pd.DataFrame(columns=LINE_ITEM_JOINED_COLUMNS)

    query: Dict[str, Any] = {"invoice_id": {"$in": [ObjectId(i) for i in invoices["invoice_id"]]}}
    if product_number:
        query["product_number"] = str(product_number)

    line_items = list(db[COL_LINE_ITEMS].find(query))
    if not line_items:
        return pd.DataFrame(columns=LINE_ITEM_JOINED_COLUMNS)

    li_df = pd.DataFrame(line_items)
    li_df["invoice_id"] = li_df["invoice_id"].astype(str)
    li_df = li_df.rename(columns={"packing_size": "pack_size"})

    df = pd.merge(
        li_df,
        invoices[["invoice_id", "document_number", "invoice_date", "location"]],
        on="invoice_id",
        how="inner",
    )

    categories = {
        p["product_number"]: p.get("category", "Dry Goods")
        for p in db[COL_PRODUCTS].find({}, {"product_number": 1, "category": 1})
    }
    df["category"] = df["product_number"].map(categories).fillna("Dry Goods")

    for col in ["unit_price", "extended_price"]:
        df[col] = df[col].apply(to_float)
    df["qty_shipped"] = pd.to_numeric(df["qty_shipped"], errors="coerce").fillna(0)

    return df[LINE_ITEM_JOINED_COLUMNS].sort_values("invoice_date", kind="mergesort").reset_index(drop=True)


def get_price_observations(
    product_number: Optional[str] = None,
    restaurant_ids: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Stored line items shaped as price observations for the price analyzer."""
    df = get_line_items_joined(restaurant_ids=restaurant_ids, product_number=product_number)
    return df.rename(columns={"document_number": "invoice_number"})[
        ["product_number", "product_description", "unit_price", "invoice_date",
         "invoice_number", "pack_size", "location"]
    ]


def get_product_purchase_history(product_number: str) -> pd.DataFrame:
    """Every purchase of a product, newest first."""
    df = get_line_items_joined(product_number=product_number)
    history = df.rename(columns={"qty_shipped": "quantity", "location": "location_name"})[
        ["invoice_date", "location_name", "document_number", "pack_size", "quantity",
         "unit_price", "extended_price", "pricing_unit"]
    ]
    return history.sort_values("invoice_date", ascending=False, kind="mergesort").reset_index(drop=True)


def get_recent_invoices(limit: int = 10, restaurant_ids: Optional[List[str]] = None) -> pd.DataFrame:
    """Most recent invoices with item counts."""
    invoices = get_invoices_df(restaurant_ids=restaurant_ids)
    if invoices.empty:
        return invoices.assign(total_items=pd.Series(dtype=int), unique_products=pd.Series(dtype=int))

    recent = invoices.sort_values("invoice_date", ascending=False).head(limit).copy()
    total_items = []
    unique_products = []
    for invoice_id in recent["invoice_id"]:
        oid = ObjectId(invoice_id)
        total_items.append(db[COL_LINE_ITEMS].count_documents({"invoice_id": oid}))
        unique_products.append(len(db[COL_LINE_ITEMS].distinct("product_number", {"invoice_id": oid})))
    recent["total_items"] = total_items
    recent["unique_products"] = unique_products
    return recent.reset_index(drop=True)


def get_collection_counts() -> Dict[str, int]:
    return {
        name: db[name].count_documents({})
        for name in [COL_RESTAURANTS, COL_PRODUCTS, COL_INVOICES, COL_LINE_ITEMS,
                     COL_PRICE_HISTORY, COL_PRICE_ALERTS]
    }
