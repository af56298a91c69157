"""CLI job that re-imports an existing crawler dataset without a new crawl."""

import argparse
import logging
from typing import Any, Dict

from repair_directory.core.config import get_settings
from repair_directory.core.repository import StoreRepository
from repair_directory.core.scraper import ListingScraper

logger = logging.getLogger(__name__)


def reprocess_dataset(dataset_id: str) -> Dict[str, Any]:
    settings = get_settings()
    if not settings.apify_api_token:
        raise RuntimeError("APIFY_API_TOKEN is required")

    scraper = ListingScraper(
        token=settings.apify_api_token,
        actor_id=settings.apify_actor_id,
        excluded_retailers=settings.excluded_retailers,
    )
    repository = StoreRepository(write_batch_size=settings.store_write_batch_size)

    result = scraper.reprocess_dataset(dataset_id)
    upsert = repository.upsert_stores(result.stores)
    result.run_details.store_processing_results = {
        **upsert.summary(),
        "validationFailures": result.validation_failures,
        "excluded": result.excluded,
    }
    repository.write_run_details(result.run_details)
    logger.info("Reprocessed dataset %s: %s", dataset_id, result.run_details.store_processing_results)
    return result.run_details.store_processing_results


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = argparse.ArgumentParser(description="Re-import an existing Google Places crawler dataset")
    parser.add_argument("dataset_id", help="Dataset id of a previous crawler run")
    args = parser.parse_args()
    reprocess_dataset(args.dataset_id)


if __name__ == "__main__":
    main()
