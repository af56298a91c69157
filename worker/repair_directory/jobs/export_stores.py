"""Dump the store table to CSV, one page at a time."""

import argparse
import csv
import json
import logging
from typing import Any, Dict, Optional, TextIO

from repair_directory.core.repository import StoreRepository

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
LIST_COLUMNS = {"categories", "places_tags", "supported_brands"}


def flatten_row(row: Dict[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in row.items():
        if value is None:
            flat[key] = ""
        elif key in LIST_COLUMNS and isinstance(value, (list, tuple)):
            flat[key] = ";".join(str(item) for item in value)
        elif isinstance(value, (dict, list)):
            flat[key] = json.dumps(value, default=str)
        else:
            flat[key] = value
    return flat


def export_stores(out: TextIO, repository: Optional[StoreRepository] = None, page_size: int = PAGE_SIZE) -> int:
    repository = repository or StoreRepository()
    writer: Optional[csv.DictWriter] = None
    cursor = None
    total = 0

    while True:
        page = repository.fetch_stores("all", limit=page_size, after=cursor, full_rows=True)
        for row in page.stores:
            flat = flatten_row(row)
            if writer is None:
                writer = csv.DictWriter(out, fieldnames=list(flat.keys()), quoting=csv.QUOTE_NONNUMERIC)
                writer.writeheader()
            writer.writerow(flat)
        total += len(page.stores)
        logger.info("Exported %d stores", total)
        if not page.has_more:
            break
        cursor = page.next_cursor

    return total


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = argparse.ArgumentParser(description="Export all stores to CSV")
    parser.add_argument("--output", default="all_stores.csv", help="CSV file to write")
    args = parser.parse_args()
    with open(args.output, "w", encoding="utf-8", newline="") as fh:
        total = export_stores(fh)
    logger.info("Total stores written: %d", total)


if __name__ == "__main__":
    main()
