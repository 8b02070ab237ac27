from .csv_parser import parse_csv_content, parse_csv_file, validate_usfoods_format, CSVParseError
from .pack_size import parse_pack_size, price_per_unit
from .data_importer import import_invoices_from_directory, import_invoices_to_database

__all__ = [
    "parse_csv_content",
    "parse_csv_file",
    "validate_usfoods_format",
    "CSVParseError",
    "parse_pack_size",
    "price_per_unit",
    "import_invoices_from_directory",
    "import_invoices_to_database",
]
