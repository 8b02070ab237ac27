"""
Database Verification Script
Prints collection counts and a sample of each collection so an import can be
checked at a glance.
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.storage.database import (
    db,
    get_all_restaurants,
    get_collection_counts,
    get_price_alerts,
    to_float,
)


def verify_database():
    print("🔍 Verifying database connection and data...\n")

    try:
        db.client.admin.command("ping")
    except Exception as e:
        print(f"[ERROR] Could not connect to MongoDB: {e}")
        return False

    counts = get_collection_counts()
    print("=== Collection Counts ===")
    for name, count in counts.items():
        print(f"  {name:<15} {count:>8,}")

    print("\n=== Restaurants ===")
    for restaurant in get_all_restaurants():
        print(f"  - {restaurant.get('name')} ({restaurant.get('location')})")

    print("\n=== First 5 Products ===")
    for product in db.products.find({}).limit(5):
        print(f"  - {product['product_number']}: {product.get('description')} ({product.get('category')})")

    print("\n=== First 3 Invoices ===")
    for invoice in db.invoices.find({}).sort("document_date", 1).limit(3):
        amount = to_float(invoice.get("net_amount_after_adjustment"))
        print(f"  - {invoice['document_number']}: ${amount:,.2f} ({invoice.get('document_date')})")

    print("\n=== Unread Price Alerts (latest 10) ===")
    alerts = get_price_alerts(unread_only=True).head(10)
    if alerts.empty:
        print("  none")
    for alert in alerts.itertuples(index=False):
        print(
            f"  - {alert.product_number} {alert.description}: "
            f"${alert.previous_price:,.2f} -> ${alert.new_price:,.2f} ({alert.percentage_change:+.1f}%)"
        )

    # Every line item must point at a stored invoice
    invoice_ids = set(db.invoices.distinct("_id"))
    orphans = [i for i in db.line_items.distinct("invoice_id") if i not in invoice_ids]
    if orphans:
        print(f"\n[WARN] {len(orphans)} invoice id(s) referenced by line items are missing")
    else:
        print("\n✅ All line items reference stored invoices")

    return True


if __name__ == "__main__":
    sys.exit(0 if verify_database() else 1)
