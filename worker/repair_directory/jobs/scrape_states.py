"""CLI job that scrapes repair shops state by state and persists them."""

from __future__ import annotations

import argparse
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from repair_directory.core.config import Settings, get_settings
from repair_directory.core.repository import StoreRepository
from repair_directory.core.scraper import ListingScraper
from repair_directory.models import JurisdictionOutcome, RunDetails

logger = logging.getLogger(__name__)


@dataclass
class ScrapeRunReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[JurisdictionOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[JurisdictionOutcome]:
        return [outcome for outcome in self.outcomes if outcome.scrape_succeeded]

    @property
    def failed(self) -> List[JurisdictionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.scrape_succeeded]

    def summary(self) -> Dict[str, Any]:
        end = self.finished_at or datetime.now(timezone.utc)
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "duration": f"{(end - self.started_at).total_seconds():.1f}s",
            "jurisdictions": len(self.outcomes),
            "successful": len(self.succeeded),
            "failed": len(self.failed),
            "writeFailures": sum(1 for o in self.succeeded if not o.write_succeeded),
            "storesScraped": sum(o.stores_scraped for o in self.outcomes),
            "newStores": sum(o.new_stores for o in self.outcomes),
            "updatedStores": sum(o.updated_stores for o in self.outcomes),
            "runIds": [o.run_id for o in self.outcomes],
            "failedJurisdictions": [{"state": o.state, "city": o.city, "error": o.error} for o in self.failed],
        }


class ScrapeOrchestrator:
    """Scrape jurisdictions in bounded concurrent batches.

    A jurisdiction's failure never cancels its siblings, and every
    jurisdiction leaves exactly one run-metadata row whatever its outcome.
    """

    def __init__(
        self,
        scraper: ListingScraper,
        repository: StoreRepository,
        *,
        concurrency: int = 25,
        batch_delay_seconds: float = 5.0,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.scraper = scraper
        self.repository = repository
        self.concurrency = concurrency
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep or time.sleep

    def _persist_run(self, run_details: RunDetails) -> None:
        try:
            self.repository.write_run_details(run_details)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to store run details for %s: %s", run_details.run_id, exc)

    def scrape_jurisdiction(
        self,
        state: str,
        city: str,
        search_queries: Sequence[str],
        max_results: int,
    ) -> JurisdictionOutcome:
        run_id = str(uuid.uuid4())
        outcome = JurisdictionOutcome(state=state, city=city, run_id=run_id)
        logger.info("Starting scrape for state=%s city=%s run_id=%s", state, city or "-", run_id)

        try:
            result = self.scraper.scrape(search_queries, state, city, max_results, run_id=run_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Scrape failed for %s: %s", state, exc)
            outcome.error = str(exc)
            self._persist_run(
                RunDetails(
                    run_id=run_id,
                    status="FAILED",
                    status_message=str(exc),
                    search_params={
                        "queries": list(search_queries),
                        "state": state,
                        "city": city,
                        "maxResults": max_results,
                    },
                    store_processing_results={"error": f"Scrape failed: {exc}"},
                )
            )
            return outcome

        outcome.scrape_succeeded = True
        outcome.apify_run_id = result.run_details.apify_run_id
        outcome.stores_scraped = len(result.stores)
        run_details = result.run_details

        try:
            upsert = self.repository.upsert_stores(result.stores)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to write stores for %s: %s", state, exc)
            run_details.store_processing_results = {
                "error": str(exc),
                "validationFailures": result.validation_failures,
                "excluded": result.excluded,
            }
        else:
            outcome.write_succeeded = not upsert.failed
            outcome.new_stores = len(upsert.new_stores)
            outcome.updated_stores = len(upsert.updated_stores)
            run_details.store_processing_results = {
                **upsert.summary(),
                "validationFailures": result.validation_failures,
                "excluded": result.excluded,
            }

        self._persist_run(run_details)
        logger.info(
            "Scrape job completed for %s: run_id=%s stores=%d new=%d updated=%d",
            state,
            run_id,
            outcome.stores_scraped,
            outcome.new_stores,
            outcome.updated_stores,
        )
        return outcome

    def run(
        self,
        states: Sequence[str],
        search_queries: Sequence[str],
        *,
        city: str = "",
        max_results: int,
    ) -> ScrapeRunReport:
        report = ScrapeRunReport(started_at=datetime.now(timezone.utc))
        logger.info("Starting scrape job for %d states", len(states))

        batches = [states[i:i + self.concurrency] for i in range(0, len(states), self.concurrency)]
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for index, batch in enumerate(batches, start=1):
                futures = [
                    (state, executor.submit(self.scrape_jurisdiction, state, city, search_queries, max_results))
                    for state in batch
                ]
                for state, future in futures:
                    try:
                        report.outcomes.append(future.result())
                    except Exception as exc:  # noqa: BLE001
                        logger.exception("Unexpected failure scraping %s: %s", state, exc)
                        report.outcomes.append(
                            JurisdictionOutcome(state=state, city=city, run_id="", error=str(exc))
                        )
                logger.info("Finished batch %d/%d (%d states)", index, len(batches), len(batch))
                if index < len(batches) and self.batch_delay_seconds > 0:
                    self._sleep(self.batch_delay_seconds)

        report.finished_at = datetime.now(timezone.utc)
        logger.info("Scrape job finished: %s", report.summary())
        return report


def build_orchestrator(settings: Optional[Settings] = None, concurrency: Optional[int] = None) -> ScrapeOrchestrator:
    settings = settings or get_settings()
    scraper = ListingScraper(
        token=settings.apify_api_token,
        actor_id=settings.apify_actor_id,
        excluded_retailers=settings.excluded_retailers,
        keep_raw_items=settings.is_development,
    )
    repository = StoreRepository(
        write_batch_size=settings.store_write_batch_size,
        summary_batch_size=settings.summary_write_batch_size,
    )
    return ScrapeOrchestrator(
        scraper,
        repository,
        concurrency=concurrency or settings.scrape_concurrency,
        batch_delay_seconds=settings.scrape_batch_delay_seconds,
    )


def run_scrape_job(
    *,
    states: Optional[Sequence[str]] = None,
    search_queries: Optional[Sequence[str]] = None,
    city: str = "",
    max_results: Optional[int] = None,
    concurrency: Optional[int] = None,
) -> Dict[str, Any]:
    settings = get_settings()
    if not settings.apify_api_token:
        raise RuntimeError("APIFY_API_TOKEN is required")

    orchestrator = build_orchestrator(settings, concurrency=concurrency)
    report = orchestrator.run(
        list(states or settings.scrape_states),
        list(search_queries or settings.scrape_search_queries),
        city=city,
        max_results=max_results or settings.scrape_max_results,
    )
    return report.summary()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape e-scooter repair shops by state")
    parser.add_argument("--state", dest="states", action="append", help="State to scrape (repeatable)")
    parser.add_argument("--query", dest="queries", action="append", help="Search query (repeatable)")
    parser.add_argument("--city", default="", help="Optional city within the state")
    parser.add_argument(
        "--max-results",
        dest="max_results",
        type=int,
        default=get_settings().scrape_max_results,
        help="Maximum places per search query",
    )
    parser.add_argument("--concurrency", type=int, help="States scraped concurrently per batch")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args()
    run_scrape_job(
        states=args.states,
        search_queries=args.queries,
        city=args.city,
        max_results=args.max_results,
        concurrency=args.concurrency,
    )


if __name__ == "__main__":
    main()
