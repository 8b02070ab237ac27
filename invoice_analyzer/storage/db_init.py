from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.errors import CollectionInvalid

from invoice_analyzer.config import MONGODB_URI, DB_NAME


def start_connection():
    """
    Connects to MongoDB and pings the server.
    Returns: the database object, or None when the server is unreachable.
    """
    try:
        client = MongoClient(MONGODB_URI)
        client.admin.command('ping')  # Check connection

        existing_dbs = client.list_database_names()
        if DB_NAME in existing_dbs:
            print(f"[INFO] Database '{DB_NAME}' exists. Connected.")
        else:
            print(f"[INFO] Database '{DB_NAME}' created (virtual). Connected.")

        return client[DB_NAME]

    except Exception as e:
        print(f"[ERROR] Could not connect to MongoDB: {e}")
        return None


def create_validation_rules(db):
    """Creates collections with JSON Schema Validation."""

    # 1. RESTAURANTS (one document per location)
    restaurant_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["name", "location", "created_at", "is_active"],
            "properties": {
                "name": {"bsonType": "string"},
                "location": {"bsonType": "string"},
                "address": {"bsonType": "string"},
                "phone": {"bsonType": "string"},
                "created_at": {"bsonType": "date"},
                "is_active": {"bsonType": "bool"}
            }
        }
    }

    # 2. PRODUCTS (master list, keyed by vendor product number)
    product_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["product_number", "description", "category"],
            "properties": {
                "product_number": {"bsonType": "string"},
                "description": {"bsonType": "string"},
                "brand": {"bsonType": ["string", "null"]},
                "category": {"bsonType": "string"},
                "pack_size": {"bsonType": "string"},
                "unit_type": {"bsonType": "string"},
                "created_at": {"bsonType": "date"}
            }
        }
    }

    # 3. INVOICES (header only; raw export rows kept for auditing)
    invoice_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["restaurant_id", "document_number", "document_type", "created_at"],
            "properties": {
                "restaurant_id": {"bsonType": ["objectId", "null"]},
                "document_number": {"bsonType": "string"},
                "document_type": {"bsonType": "string"},
                "document_date": {"bsonType": ["date", "null"]},
                "customer_name": {"bsonType": "string"},
                "net_amount_after_adjustment": {"bsonType": "double"},
                "net_amount_before_adjustment": {"bsonType": "double"},
                "delivery_adjustment": {"bsonType": "double"},
                "date_ordered": {"bsonType": ["date", "null"]},
                "date_shipped": {"bsonType": ["date", "null"]},
                "raw_data": {"bsonType": "array"},
                "created_at": {"bsonType": "date"}
            }
        }
    }

    # 4. LINE ITEMS
    line_item_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": [
                "invoice_id", "line_number", "product_number", "product_description",
                "unit_price", "extended_price"
            ],
            "properties": {
                "invoice_id": {"bsonType": "objectId"},
                "line_number": {"bsonType": "int"},
                "product_number": {"bsonType": "string"},
                "product_description": {"bsonType": "string"},
                "packing_size": {"bsonType": "string"},
                "qty_shipped": {"bsonType": "int"},
                "pricing_unit": {"bsonType": "string"},
                "unit_price": {"bsonType": "double"},
                "extended_price": {"bsonType": "double"}
            }
        }
    }

    # 5. PRICE HISTORY
    price_history_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["product_number", "price", "invoice_date"],
            "properties": {
                "product_number": {"bsonType": "string"},
                "restaurant_id": {"bsonType": ["objectId", "null"]},
                "price": {"bsonType": "double"},
                "pricing_unit": {"bsonType": "string"},
                "invoice_date": {"bsonType": ["date", "null"]},
                "invoice_id": {"bsonType": ["objectId", "null"]}
            }
        }
    }

    # 6. PRICE ALERTS
    price_alert_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["product_number", "previous_price", "new_price", "percentage_change",
                         "alert_type", "is_read"],
            "properties": {
                "restaurant_id": {"bsonType": ["objectId", "null"]},
                "product_number": {"bsonType": "string"},
                "previous_price": {"bsonType": "double"},
                "new_price": {"bsonType": "double"},
                "percentage_change": {"bsonType": "double"},
                "alert_type": {"enum": ["increase", "decrease"]},
                "is_read": {"bsonType": "bool"}
            }
        }
    }

    # 7. ITEM LOOKUP MAP
    # _id is the "Normalized description" (string)
    lookup_validator = {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["category"],
            "properties": {
                "_id": {"bsonType": "string"},
                "category": {"bsonType": "string"}
            }
        }
    }

    collections = {
        "restaurants": restaurant_validator,
        "products": product_validator,
        "invoices": invoice_validator,
        "line_items": line_item_validator,
        "price_history": price_history_validator,
        "price_alerts": price_alert_validator,
        "item_lookup_map": lookup_validator,
    }

    for name, validator in collections.items():
        try:
            db.create_collection(name, validator=validator)
            print(f"[CREATED] Collection: {name}")
        except CollectionInvalid:
            try:
                db.command("collMod", name, validator=validator)
                print(f"[UPDATED] Validator: {name}")
            except Exception as e:
                print(f"[ERROR] Update failed for {name}: {e}")


def create_indexes(db):
    """Applies unique constraints and performance indexes."""
    print("[INFO] Checking Indexes...")

    # 1. Restaurants
    db.restaurants.create_index([("name", ASCENDING), ("location", ASCENDING)], unique=True)

    # 2. Products
    db.products.create_index([("product_number", ASCENDING)], unique=True)
    db.products.create_index([("category", ASCENDING)])

    # 3. Invoices
    # Document numbers are unique across the vendor export
    db.invoices.create_index([("document_number", ASCENDING)], unique=True)
    # Sorting index for UI
    db.invoices.create_index([("restaurant_id", ASCENDING), ("document_date", DESCENDING)])

    # 4. Line Items
    db.line_items.create_index([("invoice_id", ASCENDING)])
    db.line_items.create_index([("product_number", ASCENDING)])

    # 5. Price History
    db.price_history.create_index([
        ("product_number", ASCENDING), ("restaurant_id", ASCENDING), ("invoice_date", DESCENDING)
    ])

    # 6. Price Alerts
    db.price_alerts.create_index([("is_read", ASCENDING), ("invoice_date", DESCENDING)])

    # 7. Item Lookup Map
    db.item_lookup_map.create_index([("category", ASCENDING)])

    print("[SUCCESS] Indexes verified.")


if __name__ == "__main__":
    db = start_connection()

    if db is not None:
        try:
            create_validation_rules(db)
            create_indexes(db)
            print("[FINISH] Database setup complete.")
        except Exception as e:
            print(f"[ERROR] Setup failed: {e}")
