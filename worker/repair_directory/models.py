"""Core data models shared by the ingestion and enrichment pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def as_dict(self) -> Dict[str, int]:
        return {"input": self.input_tokens, "output": self.output_tokens, "total": self.total_tokens}


@dataclass(slots=True)
class StoreSummary:
    """Summary text produced for one store plus what it cost."""

    place_id: str
    summary_text: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(slots=True)
class FormattedStore:
    place_id: str
    name: Optional[str]
    reviews_count: int
    store_text: str


@dataclass
class UpsertResult:
    successful: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    new_stores: List[Dict[str, Any]] = field(default_factory=list)
    updated_stores: List[Dict[str, Any]] = field(default_factory=list)
    dropped: int = 0

    @property
    def total_processed(self) -> int:
        return len(self.successful) + len(self.failed)

    def summary(self) -> Dict[str, Any]:
        return {
            "totalProcessed": self.total_processed,
            "successful": len(self.successful),
            "failed": len(self.failed),
            "newStores": len(self.new_stores),
            "updatedStores": len(self.updated_stores),
            "dropped": self.dropped,
            "failedStores": [
                {"place_id": row.get("place_id"), "name": row.get("name"), "error": row.get("error")}
                for row in self.failed
            ],
        }


@dataclass
class SummaryWriteResult:
    successful: List[StoreSummary] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class StorePage:
    stores: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
    has_more: bool = False


@dataclass
class ProcessingLedger:
    """Partition of processed place_ids into succeeded, failed and skipped."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)

    def record_success(self, place_id: str) -> None:
        self.succeeded.append(place_id)

    def record_failure(self, place_id: str, reason: str) -> None:
        self.failed.append({"place_id": place_id, "error": reason})

    def record_skip(self, place_id: str, reason: str) -> None:
        self.skipped.append({"place_id": place_id, "reason": reason})

    def demote(self, place_id: str, reason: str) -> None:
        """Move a tentatively succeeded place_id to failed."""
        if place_id in self.succeeded:
            self.succeeded.remove(place_id)
        self.record_failure(place_id, reason)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    def place_ids(self) -> List[str]:
        return (
            list(self.succeeded)
            + [entry["place_id"] for entry in self.failed]
            + [entry["place_id"] for entry in self.skipped]
        )


@dataclass
class RunDetails:
    """Metadata for one ingestion invocation, written once to ``apify_runs``."""

    run_id: str
    search_params: Dict[str, Any]
    apify_run_id: Optional[str] = None
    actor_id: Optional[str] = None
    status: str = "PENDING"
    status_message: Optional[str] = None
    timing: Dict[str, Any] = field(default_factory=dict)
    data_ids: Dict[str, Any] = field(default_factory=dict)
    usage: Dict[str, Any] = field(default_factory=dict)
    results_count: int = 0
    store_processing_results: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScrapeResult:
    stores: List[Dict[str, Any]]
    run_details: RunDetails
    validation_failures: int = 0
    excluded: int = 0
    raw_items: Optional[List[Dict[str, Any]]] = field(default=None, repr=False)


@dataclass
class JurisdictionOutcome:
    state: str
    city: str
    run_id: str
    scrape_succeeded: bool = False
    write_succeeded: bool = False
    apify_run_id: Optional[str] = None
    stores_scraped: int = 0
    new_stores: int = 0
    updated_stores: int = 0
    error: Optional[str] = None
