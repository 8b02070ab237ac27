# Root package initializer
from .ingestion import parse_csv_content, parse_csv_file, import_invoices_from_directory
from .storage import start_connection, create_indexes, save_invoice


__all__ = [
    "parse_csv_content",
    "parse_csv_file",
    "import_invoices_from_directory",
    "start_connection",
    "create_indexes",
    "save_invoice",
]
