"""Run the Google Places crawler for a jurisdiction and map its items to stores."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from repair_directory.etl.transform import transform_items
from repair_directory.models import RunDetails, ScrapeResult
from repair_directory.vendors import apify

logger = logging.getLogger(__name__)


def _describe_run(run: Dict[str, Any], run_id: str, search_params: Dict[str, Any]) -> RunDetails:
    usage = run.get("usage") or {}
    stats = run.get("stats") or {}
    return RunDetails(
        run_id=run_id,
        apify_run_id=run.get("id"),
        actor_id=run.get("actId"),
        status=run.get("status") or "UNKNOWN",
        status_message=run.get("statusMessage"),
        timing={
            "startedAt": run.get("startedAt"),
            "finishedAt": run.get("finishedAt"),
            "runTimeSecs": stats.get("runTimeSecs"),
        },
        data_ids={
            "defaultDatasetId": run.get("defaultDatasetId"),
            "defaultKeyValueStoreId": run.get("defaultKeyValueStoreId"),
            "defaultRequestQueueId": run.get("defaultRequestQueueId"),
        },
        usage={
            "computeUnits": usage.get("ACTOR_COMPUTE_UNITS"),
            "datasetReads": usage.get("DATASET_READS"),
            "datasetWrites": usage.get("DATASET_WRITES"),
            "totalCostUsd": run.get("usageTotalUsd"),
        },
        search_params=search_params,
    )


class ListingScraper:
    def __init__(
        self,
        *,
        token: str,
        actor_id: str = "compass~crawler-google-places",
        crawler_config: Optional[apify.PlacesCrawlerConfig] = None,
        excluded_retailers: Iterable[str] = (),
        keep_raw_items: bool = False,
        run_actor: Optional[Callable[..., Dict[str, Any]]] = None,
        get_dataset_items: Optional[Callable[..., List[Dict[str, Any]]]] = None,
    ) -> None:
        self.token = token
        self.actor_id = actor_id
        self.crawler_config = crawler_config or apify.PlacesCrawlerConfig()
        self.excluded_retailers = tuple(excluded_retailers)
        self.keep_raw_items = keep_raw_items
        self._run_actor = run_actor or apify.run_actor
        self._get_dataset_items = get_dataset_items or apify.get_dataset_items

    def _build_result(self, items: List[Dict[str, Any]], run_details: RunDetails) -> ScrapeResult:
        stores, failures, excluded = transform_items(items, self.excluded_retailers)
        run_details.results_count = len(items)
        return ScrapeResult(
            stores=stores,
            run_details=run_details,
            validation_failures=failures,
            excluded=excluded,
            raw_items=items if self.keep_raw_items else None,
        )

    def scrape(
        self,
        search_queries: Sequence[str],
        state: str,
        city: str = "",
        max_results: int = 5,
        run_id: Optional[str] = None,
    ) -> ScrapeResult:
        if isinstance(search_queries, str):
            search_queries = [search_queries]
        if not search_queries:
            raise ValueError("At least one search query is required")
        if not state:
            raise ValueError("State is required")
        if max_results <= 0:
            raise ValueError("max_results must be positive")

        run_id = run_id or str(uuid.uuid4())
        search_params = {
            "queries": list(search_queries),
            "state": state,
            "city": city,
            "maxResults": max_results,
        }
        logger.info(
            "Starting scrape for %s in %s%s (max results: %d)",
            ", ".join(search_queries),
            f"{city}, " if city else "",
            state,
            max_results,
        )

        run_input = self.crawler_config.to_actor_input(search_queries, state, city, max_results)
        run = self._run_actor(self.actor_id, run_input, self.token)
        run_details = _describe_run(run, run_id, search_params)
        items = self._get_dataset_items(run["defaultDatasetId"], self.token)
        logger.info("Scraped %d places for %s (apify run %s)", len(items), state, run_details.apify_run_id)
        return self._build_result(items, run_details)

    def reprocess_dataset(self, dataset_id: str, run_id: Optional[str] = None) -> ScrapeResult:
        """Re-run transform and filtering over an existing dataset without a new crawl."""
        if not dataset_id:
            raise ValueError("dataset_id is required")
        items = self._get_dataset_items(dataset_id, self.token)
        run_details = RunDetails(
            run_id=run_id or str(uuid.uuid4()),
            search_params={"datasetId": dataset_id},
            status="REPROCESSED",
            data_ids={"defaultDatasetId": dataset_id},
        )
        logger.info("Reprocessing %d items from dataset %s", len(items), dataset_id)
        return self._build_result(items, run_details)
