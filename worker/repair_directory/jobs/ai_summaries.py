"""CLI job that pages through stores without summaries and enriches them."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from repair_directory.core.config import Settings, get_settings
from repair_directory.core.rate_limiter import RateLimiter
from repair_directory.core.repository import StoreRepository
from repair_directory.core.retry import FixedDelay, RetryExecutor
from repair_directory.core.summarizer import SummaryGenerator
from repair_directory.etl.store_text import format_store_for_ai
from repair_directory.models import ProcessingLedger, StoreSummary

logger = logging.getLogger(__name__)

INSUFFICIENT_REVIEWS_SUMMARY = "insufficient reviews"


class AIProcessingError(RuntimeError):
    """Raised when a run cannot produce a ledger at all."""


@dataclass
class AIRunReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    ledger: ProcessingLedger = field(default_factory=ProcessingLedger)
    total_stores: int = 0
    pages: int = 0
    total_tokens: int = 0
    skipped_summaries: List[StoreSummary] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        if not self.total_stores:
            return 0.0
        return len(self.ledger.succeeded) / self.total_stores

    def summary(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "duration": f"{self.duration_seconds:.1f}s",
            "total": self.total_stores,
            "pages": self.pages,
            "successful": len(self.ledger.succeeded),
            "failed": len(self.ledger.failed),
            "skipped": len(self.ledger.skipped),
            "successRate": f"{self.success_rate * 100:.1f}%",
            "totalTokens": self.total_tokens,
            "failedStores": list(self.ledger.failed),
            "skippedStores": list(self.ledger.skipped),
        }


class AIProcessingOrchestrator:
    """Fetch -> format -> summarize each store -> batch write, page by page.

    Stores are summarized one at a time so the shared rate limiter's
    accounting stays exact.
    """

    def __init__(
        self,
        repository: StoreRepository,
        generator: SummaryGenerator,
        *,
        batch_size: int = 25,
        min_reviews: int = 10,
        max_reviews: int = 300,
        max_qas: int = 300,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.batch_size = batch_size
        self.min_reviews = min_reviews
        self.max_reviews = max_reviews
        self.max_qas = max_qas

    def _process_page(self, stores: Sequence[Dict[str, Any]], report: AIRunReport) -> None:
        ledger = report.ledger
        pending: List[StoreSummary] = []

        for raw in stores:
            report.total_stores += 1
            try:
                formatted = format_store_for_ai(raw, max_reviews=self.max_reviews, max_qas=self.max_qas)
            except Exception as exc:  # noqa: BLE001
                place_id = raw.get("place_id") if isinstance(raw, dict) else None
                ledger.record_failure(place_id or "unknown", f"Could not format store: {exc}")
                logger.error("Failed to format store %s: %s", place_id, exc)
                continue

            if formatted.reviews_count < self.min_reviews:
                reason = f"insufficient reviews ({formatted.reviews_count}/{self.min_reviews})"
                ledger.record_skip(formatted.place_id, reason)
                report.skipped_summaries.append(
                    StoreSummary(place_id=formatted.place_id, summary_text=INSUFFICIENT_REVIEWS_SUMMARY)
                )
                logger.info("Skipping %s: %s", formatted.place_id, reason)
                continue

            try:
                summary = self.generator.summarize(formatted)
            except Exception as exc:  # noqa: BLE001
                ledger.record_failure(formatted.place_id, str(exc))
                logger.error("Failed to process store %s: %s", formatted.place_id, exc)
                continue

            pending.append(summary)
            ledger.record_success(formatted.place_id)
            report.total_tokens += summary.token_usage.total_tokens
            logger.info(
                "Processed store %s (%d so far, tokens=%s)",
                formatted.place_id,
                report.total_stores,
                summary.token_usage.as_dict(),
            )

        if not pending:
            return

        logger.info("Writing %d summaries", len(pending))
        try:
            result = self.repository.write_summaries(pending)
        except Exception as exc:  # noqa: BLE001
            logger.error("Summary write failed for the whole page: %s", exc)
            for summary in pending:
                ledger.demote(summary.place_id, f"Database write failed: {exc}")
            return

        for failure in result.failed:
            ledger.demote(failure["place_id"], f"Database write failed: {failure.get('error') or 'Unknown error'}")
        if result.failed:
            logger.warning(
                "Some summaries failed to write: successful=%d failed=%d",
                len(result.successful),
                len(result.failed),
            )

    def run(
        self,
        *,
        mode: str = "unsummarized",
        states: Optional[Sequence[str]] = None,
        place_id: Optional[str] = None,
        max_stores: Optional[int] = None,
    ) -> AIRunReport:
        report = AIRunReport(started_at=datetime.now(timezone.utc))
        logger.info("Starting AI processing job (mode=%s)", mode)

        cursor: Optional[str] = None
        while True:
            page_size = self.batch_size
            if max_stores is not None:
                remaining = max_stores - report.total_stores
                if remaining <= 0:
                    break
                page_size = min(page_size, remaining)

            try:
                page = self.repository.fetch_stores(
                    mode,
                    place_id=place_id,
                    states=states,
                    unsummarized_only=mode == "state",
                    limit=page_size,
                    after=cursor,
                )
            except Exception as exc:
                logger.error("AI processing job failed while fetching stores: %s", exc)
                raise AIProcessingError(f"AI processing job failed: {exc}") from exc

            report.pages += 1
            self._process_page(page.stores, report)
            if not page.has_more:
                break
            cursor = page.next_cursor

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "AI processing complete: %d/%d stores successful (%.1fs) summary=%s",
            len(report.ledger.succeeded),
            report.total_stores,
            report.duration_seconds,
            report.summary(),
        )
        return report


def build_orchestrator(settings: Optional[Settings] = None) -> AIProcessingOrchestrator:
    settings = settings or get_settings()
    limiter = RateLimiter(
        max_requests=settings.ai_requests_per_minute,
        max_tokens=settings.ai_tokens_per_minute,
    )
    generator = SummaryGenerator(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        rate_limiter=limiter,
        retry=RetryExecutor(settings.ai_max_attempts, FixedDelay(settings.ai_retry_delay_seconds)),
    )
    repository = StoreRepository(
        write_batch_size=settings.store_write_batch_size,
        summary_batch_size=settings.summary_write_batch_size,
    )
    return AIProcessingOrchestrator(
        repository,
        generator,
        batch_size=settings.ai_batch_size,
        min_reviews=settings.ai_min_reviews,
        max_reviews=settings.ai_max_reviews,
        max_qas=settings.ai_max_qas,
    )


def run_ai_job(
    *,
    mode: str = "unsummarized",
    states: Optional[Sequence[str]] = None,
    place_id: Optional[str] = None,
    limit: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> Dict[str, Any]:
    settings = get_settings()
    if not settings.anthropic_api_key:
        raise RuntimeError("ANTHROPIC_API_KEY is required")

    orchestrator = build_orchestrator(settings)
    if batch_size:
        orchestrator.batch_size = batch_size
    return orchestrator.run(mode=mode, states=states, place_id=place_id, max_stores=limit).summary()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate AI summaries for stores")
    parser.add_argument("--mode", choices=("unsummarized", "single", "all", "state"), default="unsummarized")
    parser.add_argument("--place-id", dest="place_id", help="Store to process in single mode")
    parser.add_argument("--state", dest="states", action="append", help="State to process (repeatable)")
    parser.add_argument("--limit", type=int, help="Maximum number of stores to process")
    parser.add_argument("--batch-size", dest="batch_size", type=int, help="Stores fetched per page")
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args()
    run_ai_job(
        mode=args.mode,
        states=args.states,
        place_id=args.place_id,
        limit=args.limit,
        batch_size=args.batch_size,
    )


if __name__ == "__main__":
    main()
