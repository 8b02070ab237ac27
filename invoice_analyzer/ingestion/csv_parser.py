"""
CSV parser for US Foods invoice exports.

The export has one row per invoice line with the invoice header repeated on
every row (~51 columns). This module groups those rows back into invoices and
normalizes the line items.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = [
    "DocumentNumber",
    "DocumentType",
    "DocumentDate",
    "CustomerName",
    "ProductNumber",
    "ProductDescription",
    "UnitPrice",
    "ExtendedPrice",
]

EXPECTED_MIN_COLUMNS = 50


class CSVParseError(ValueError):
    """Raised when an invoice export cannot be read as CSV."""


@dataclass
class ParsedLineItem:
    product_number: str
    product_description: str
    product_label: str = ""
    packing_size: str = ""
    weight: float = 0.0
    qty_ordered: int = 0
    qty_shipped: int = 0
    qty_adjusted: int = 0
    pricing_unit: str = ""
    unit_price: float = 0.0
    extended_price: float = 0.0


@dataclass
class ParsedInvoice:
    document_number: str
    document_type: str = "INVOICE"
    document_date: str = ""
    customer_number: str = ""
    customer_name: str = ""
    order_number: str = ""
    net_amount_after_adjustment: float = 0.0
    net_amount_before_adjustment: float = 0.0
    delivery_adjustment: float = 0.0
    payment_terms: str = ""
    date_ordered: str = ""
    date_shipped: str = ""
    usf_sales_location: str = ""
    usf_sales_rep: str = ""
    line_items: List[ParsedLineItem] = field(default_factory=list)
    raw_data: List[Dict[str, str]] = field(default_factory=list)


# ---------------------------------------------------------
# HELPER: Type Conversion
# ---------------------------------------------------------
def _to_float(val: Any) -> float:
    """Parse an export amount like "1,234.56" or "$12.00"; blanks become 0."""
    if val is None:
        return 0.0
    cleaned = re.sub(r"[$,\s]", "", str(val))
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        logger.debug(f"Could not convert value '{val}' to float")
        return 0.0


def _to_int(val: Any) -> int:
    return int(_to_float(val))


def _text(row: Dict[str, str], key: str) -> str:
    return str(row.get(key) or "").strip()


# ---------------------------------------------------------
# Parsing
# ---------------------------------------------------------
def _read_rows(csv_content: str) -> List[Dict[str, str]]:
    try:
        # pandas renames repeated headers, so the second BillToStreet /
        # ShipToStreet column arrives as "BillToStreet.1" / "ShipToStreet.1".
        df = pd.read_csv(
            io.StringIO(csv_content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise CSVParseError(f"CSV parsing error: {e}") from e
    except pd.errors.ParserError as e:
        raise CSVParseError(f"CSV parsing error: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict("records")


def _build_line_item(row: Dict[str, str]) -> ParsedLineItem:
    return ParsedLineItem(
        product_number=_text(row, "ProductNumber"),
        product_description=_text(row, "ProductDescription"),
        product_label=_text(row, "Product Label"),
        packing_size=_text(row, "PackingSize"),
        weight=_to_float(row.get("Weight")),
        qty_ordered=_to_int(row.get("QtyOrder")),
        qty_shipped=_to_int(row.get("QtyShip")),
        qty_adjusted=_to_int(row.get("QtyAdjust")),
        pricing_unit=_text(row, "PricingUnit"),
        unit_price=_to_float(row.get("UnitPrice")),
        extended_price=_to_float(row.get("ExtendedPrice")),
    )


def _build_invoice(document_number: str, row: Dict[str, str]) -> ParsedInvoice:
    return ParsedInvoice(
        document_number=document_number,
        document_type=_text(row, "DocumentType") or "INVOICE",
        document_date=_text(row, "DocumentDate"),
        customer_number=_text(row, "CustomerNumber"),
        customer_name=_text(row, "CustomerName"),
        order_number=_text(row, "OrderNumber"),
        net_amount_after_adjustment=_to_float(row.get("NetAmountAfter Adjustment")),
        net_amount_before_adjustment=_to_float(row.get("NetAmountBefore Adj")),
        delivery_adjustment=_to_float(row.get("DeliveryAdjustment")),
        payment_terms=_text(row, "PaymentTerms"),
        date_ordered=_text(row, "DateOrdered"),
        date_shipped=_text(row, "DateShipped"),
        usf_sales_location=_text(row, "USFSalesLocation"),
        usf_sales_rep=_text(row, "USFSalesRep"),
    )


def process_invoice_rows(rows: List[Dict[str, str]]) -> List[ParsedInvoice]:
    """
    Group export rows into invoices keyed by document number.

    Invoices are returned in the order their first row appears. Rows without a
    document number are ignored; rows without a product number contribute to
    raw_data only.
    """
    invoice_map: Dict[str, ParsedInvoice] = {}

    for row in rows:
        document_number = _text(row, "DocumentNumber")
        if not document_number:
            continue

        invoice = invoice_map.get(document_number)
        if invoice is None:
            invoice = _build_invoice(document_number, row)
            invoice_map[document_number] = invoice

        if _text(row, "ProductNumber"):
            invoice.line_items.append(_build_line_item(row))

        invoice.raw_data.append(dict(row))

    return list(invoice_map.values())


def parse_csv_content(csv_content: str) -> List[ParsedInvoice]:
    """Parse the text of a US Foods export into invoices."""
    if not csv_content or not csv_content.strip():
        return []
    return process_invoice_rows(_read_rows(csv_content))


def parse_csv_file(file_path) -> List[ParsedInvoice]:
    content = Path(file_path).read_text(encoding="utf-8")
    return parse_csv_content(content)


def validate_usfoods_format(csv_content: str) -> Tuple[bool, List[str]]:
    """
    Check that a file looks like a US Foods invoice export.

    Returns:
        (is_valid, errors)
    """
    errors: List[str] = []

    lines = [line for line in (csv_content or "").splitlines() if line.strip()]
    if len(lines) < 2:
        errors.append("File must contain at least a header row and one data row")
        return False, errors

    headers = [h.strip().replace('"', "") for h in lines[0].split(",")]

    for required in REQUIRED_HEADERS:
        if required not in headers:
            errors.append(f"Missing required header: {required}")

    if len(headers) < EXPECTED_MIN_COLUMNS:
        errors.append(f"Expected ~51 columns, found {len(headers)}")

    return len(errors) == 0, errors


# ---------------------------------------------------------
# DataFrame builders
# ---------------------------------------------------------
INVOICE_COLUMNS = [
    "document_number", "document_type", "document_date", "customer_number",
    "customer_name", "order_number", "net_amount_after_adjustment",
    "net_amount_before_adjustment", "delivery_adjustment", "payment_terms",
    "date_ordered", "date_shipped", "usf_sales_location", "usf_sales_rep",
    "line_item_count",
]

LINE_ITEM_COLUMNS = [
    "document_number", "line_number", "product_number", "product_description",
    "product_label", "packing_size", "weight", "qty_ordered", "qty_shipped",
    "qty_adjusted", "pricing_unit", "unit_price", "extended_price",
]


def invoices_to_dataframes(invoices: List[ParsedInvoice]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Flatten parsed invoices into (invoice_df, line_items_df).

    Line items carry their invoice's document_number and a 1-based line_number.
    """
    invoice_records = []
    line_records = []

    for invoice in invoices:
        record = {col: getattr(invoice, col) for col in INVOICE_COLUMNS if col != "line_item_count"}
        record["line_item_count"] = len(invoice.line_items)
        invoice_records.append(record)

        for idx, item in enumerate(invoice.line_items):
            line = {"document_number": invoice.document_number, "line_number": idx + 1}
            line.update({col: getattr(item, col) for col in LINE_ITEM_COLUMNS[2:]})
            line_records.append(line)

    if not invoice_records:
        return pd.DataFrame(columns=INVOICE_COLUMNS), pd.DataFrame(columns=LINE_ITEM_COLUMNS)

    inv_df = pd.DataFrame(invoice_records, columns=INVOICE_COLUMNS)
    li_df = pd.DataFrame(line_records, columns=LINE_ITEM_COLUMNS)
    inv_df["document_date"] = pd.to_datetime(inv_df["document_date"], errors="coerce")
    return inv_df, li_df
