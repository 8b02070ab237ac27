import argparse
import sys
from pathlib import Path

from invoice_analyzer.config import DEFAULT_RESTAURANT_NAME, DEFAULT_LOCATION, PATHS, setup_logging
from invoice_analyzer.ingestion.data_importer import (
    ImportProgress,
    get_or_create_restaurant_id,
    import_invoices_from_directory,
)
from invoice_analyzer.storage.db_init import start_connection, create_indexes


def print_progress(progress: ImportProgress):
    if progress.current_file:
        print(f"[{progress.percentage:5.1f}%] {progress.current_file}")


def run_pipeline(directory: Path, restaurant: str, location: str) -> int:
    # checks if db exists, makes sure unique indexes are in place
    db = start_connection()
    if db is None:
        return 1
    create_indexes(db)

    restaurant_id = get_or_create_restaurant_id(restaurant, location)
    print(f"[INFO] Importing into {restaurant} ({location}): {restaurant_id}")

    result = import_invoices_from_directory(directory, restaurant_id, on_progress=print_progress)

    print("\n=== Import Summary ===")
    print(f"Files:      {result.processed_files}/{result.total_files} processed")
    print(f"Invoices:   {result.total_invoices} imported, {result.skipped_invoices} already present")
    print(f"Line items: {result.total_line_items}")
    if result.skipped_files:
        print(f"Skipped:    {', '.join(result.skipped_files)}")
    for error in result.errors:
        print(f"[ERROR] {error}")

    return 0 if result.success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import US Foods invoice CSV exports into MongoDB")
    parser.add_argument("directory", nargs="?", default=str(PATHS["data_dir"]), help="Folder of CSV exports")
    parser.add_argument("--restaurant", default=DEFAULT_RESTAURANT_NAME, help="Restaurant name")
    parser.add_argument("--location", default=DEFAULT_LOCATION, help="Restaurant location")
    args = parser.parse_args(argv)

    setup_logging()
    return run_pipeline(Path(args.directory), args.restaurant, args.location)


if __name__ == "__main__":
    sys.exit(main())
