"""
Imports parsed US Foods invoices into MongoDB.

For every new invoice the importer stores the header (with the raw export
rows), the line items, a product master record for products seen for the
first time, a price history row per line item, and an unread price alert
when a product's price moved sharply since its previous purchase at the same
restaurant.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from invoice_analyzer.ingestion.csv_parser import ParsedInvoice, parse_csv_content
from invoice_analyzer.processing.categorization import get_line_item_category
from invoice_analyzer.processing.price_analyzer import check_price_change
from invoice_analyzer.storage import database
from invoice_analyzer.config import CONFIG

logger = logging.getLogger(__name__)

# Known store addresses, used when a restaurant location is first created
KNOWN_ADDRESSES = {
    "Bee Caves": "11715 BEE CAVES RD, BEE CAVE, TX 78738-5011",
}
DEFAULT_PHONE = "5125894228"


class InvoiceImportError(RuntimeError):
    """Raised when an invoice cannot be written to the database."""


@dataclass
class ImportResult:
    success: bool = False
    total_files: int = 0
    processed_files: int = 0
    total_invoices: int = 0
    total_line_items: int = 0
    skipped_invoices: int = 0
    errors: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)


@dataclass
class ImportProgress:
    current_file: str
    processed_files: int
    total_files: int
    percentage: float


def import_invoices_from_directory(
    directory,
    restaurant_id: str,
    on_progress: Optional[Callable[[ImportProgress], None]] = None,
) -> ImportResult:
    """
    Import every CSV export in `directory` (sorted by file name).

    A failing file is recorded in `errors` and the run carries on with the
    next one. The import counts as successful when at least one file was
    processed.
    """
    result = ImportResult()
    directory = Path(directory)

    if not directory.is_dir():
        result.errors.append(f"Directory import failed: {directory} is not a directory")
        return result

    files = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".csv")
    result.total_files = len(files)

    if not files:
        result.errors.append("No CSV files found in directory")
        return result

    logger.info(f"Found {len(files)} CSV files to process")

    for i, file_path in enumerate(files):
        file_name = file_path.name

        if on_progress:
            on_progress(ImportProgress(
                current_file=file_name,
                processed_files=i,
                total_files=len(files),
                percentage=i / len(files) * 100,
            ))

        try:
            content = file_path.read_text(encoding="utf-8")

            lines = content.strip().splitlines()
            if len(lines) <= 1:
                logger.info(f"Skipping empty or header-only file: {file_name}")
                result.skipped_files.append(file_name)
                continue

            invoices = parse_csv_content(content)
            if not invoices:
                logger.info(f"No invoices found in file: {file_name}")
                result.skipped_files.append(file_name)
                continue

            imported, skipped, line_item_count = _store_invoices(invoices, restaurant_id)

            result.processed_files += 1
            result.total_invoices += imported
            result.skipped_invoices += skipped
            result.total_line_items += line_item_count

            logger.info(f"Processed {file_name}: {imported} imported, {skipped} already present")

        except Exception as e:
            error_msg = f"Error processing {file_name}: {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)

    if on_progress:
        on_progress(ImportProgress(
            current_file="",
            processed_files=len(files),
            total_files=len(files),
            percentage=100.0,
        ))

    result.success = result.processed_files > 0
    return result


def import_invoices_to_database(invoices: List[ParsedInvoice], restaurant_id: str) -> Tuple[int, int]:
    """
    Store parsed invoices, skipping document numbers that are already in the
    database.

    Returns:
        (imported, skipped)
    """
    imported, skipped, _ = _store_invoices(invoices, restaurant_id)
    return imported, skipped


def _store_invoices(invoices: List[ParsedInvoice], restaurant_id: str) -> Tuple[int, int, int]:
    """Returns (imported, skipped, line items stored for the imported invoices)."""
    imported = 0
    skipped = 0
    line_item_count = 0

    for invoice in invoices:
        if database.check_duplicate_invoice(invoice.document_number):
            logger.info(f"Invoice {invoice.document_number} already exists, skipping")
            skipped += 1
            continue

        invoice_record = {
            "restaurant_id": restaurant_id,
            "document_number": invoice.document_number,
            "document_type": invoice.document_type,
            "document_date": invoice.document_date,
            "customer_number": invoice.customer_number,
            "customer_name": invoice.customer_name,
            "order_number": invoice.order_number,
            "net_amount_after_adjustment": invoice.net_amount_after_adjustment,
            "net_amount_before_adjustment": invoice.net_amount_before_adjustment,
            "delivery_adjustment": invoice.delivery_adjustment,
            "payment_terms": invoice.payment_terms,
            "date_ordered": invoice.date_ordered,
            "date_shipped": invoice.date_shipped,
            "usf_sales_location": invoice.usf_sales_location,
            "usf_sales_rep": invoice.usf_sales_rep,
            "raw_data": invoice.raw_data,
        }
        line_items = [vars(item) for item in invoice.line_items]

        save_result = database.save_invoice(invoice_record, line_items)
        if not save_result["success"]:
            raise InvoiceImportError(
                f"Failed to insert invoice {invoice.document_number}: {save_result['message']}"
            )

        if invoice.line_items:
            update_product_master_and_price_history(invoice, save_result["invoice_id"], restaurant_id)

        imported += 1
        line_item_count += len(line_items)

    return imported, skipped, line_item_count


def update_product_master_and_price_history(invoice: ParsedInvoice, invoice_id: str, restaurant_id: str) -> None:
    """Product master, price history and price alerts for each line item."""
    for item in invoice.line_items:
        try:
            if database.get_product(item.product_number) is None:
                insert_result = database.insert_product({
                    "product_number": item.product_number,
                    "description": item.product_description,
                    "brand": item.product_label,
                    "category": get_line_item_category(item.product_description),
                    "pack_size": item.packing_size,
                    "unit_type": item.pricing_unit,
                })
                if not insert_result["success"]:
                    logger.error(f"Failed to insert product {item.product_number}: {insert_result['message']}")

            database.insert_price_history({
                "product_number": item.product_number,
                "restaurant_id": restaurant_id,
                "price": item.unit_price,
                "pricing_unit": item.pricing_unit,
                "invoice_date": invoice.document_date,
                "invoice_id": invoice_id,
            })

            check_and_create_price_alert(
                item.product_number, item.unit_price, invoice.document_date, restaurant_id
            )

        except Exception as e:
            logger.error(f"Error updating product {item.product_number}: {e}")


def check_and_create_price_alert(
    product_number: str,
    current_price: float,
    invoice_date,
    restaurant_id: str,
    threshold: Optional[float] = None,
) -> Optional[dict]:
    """
    Compare with the product's latest earlier price at this restaurant and
    store an unread alert when the change reaches `threshold` percent.

    Returns:
        The alert that was stored, or None
    """
    threshold = CONFIG["price_change_threshold"] if threshold is None else threshold

    try:
        previous = database.get_previous_price(product_number, restaurant_id, invoice_date)
        if not previous:
            return None

        previous_price = database.to_float(previous.get("price"))
        change = check_price_change(previous_price, current_price, threshold)
        if change is None:
            return None

        percentage_change, alert_type = change
        alert = {
            "restaurant_id": restaurant_id,
            "product_number": product_number,
            "previous_price": previous_price,
            "new_price": current_price,
            "percentage_change": percentage_change,
            "alert_type": alert_type,
            "invoice_date": invoice_date,
        }
        insert_result = database.insert_price_alert(alert)
        if not insert_result["success"]:
            logger.error(f"Failed to create price alert for {product_number}: {insert_result['message']}")
            return None

        logger.info(f"Price alert created: {product_number} changed {percentage_change:.1f}%")
        return alert

    except Exception as e:
        logger.error(f"Error checking price alert for {product_number}: {e}")
        return None


def get_or_create_restaurant_id(name: str, location: str) -> str:
    """Restaurant id for a name/location pair, creating the restaurant if needed."""
    restaurant_id = database.find_restaurant(name, location)
    if restaurant_id:
        return restaurant_id

    restaurant_id = database.create_restaurant({
        "name": name,
        "location": location,
        "address": KNOWN_ADDRESSES.get(location),
        "phone": DEFAULT_PHONE,
    })
    if not restaurant_id:
        raise InvoiceImportError(f"Failed to create restaurant: {name} ({location})")

    logger.info(f"Created restaurant {name} ({location}): {restaurant_id}")
    return restaurant_id
