"""Client utilities for the Apify actor and dataset APIs."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
# Reads only; starting a run must not be repeated by the transport.
_SESSION.mount(
    "https://",
    HTTPAdapter(
        max_retries=Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=(500, 502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
    ),
)
_BASE_URL = "https://api.apify.com/v2"
_WAIT_SECONDS = 60
_PAGE_SIZE = 1000
_TERMINAL_STATUSES = {"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"}


class ApifyError(RuntimeError):
    """Raised when an Apify request or actor run does not succeed."""


@dataclass(frozen=True)
class PlacesCrawlerConfig:
    """Fixed input profile for the Google Places crawler actor."""

    country_code: str = "us"
    max_images: int = 0
    max_reviews: int = 400
    reviews_sort: str = "newest"
    scrape_reviews_personal_data: bool = False
    max_questions: int = 999
    scrape_directories: bool = True
    deeper_city_scrape: bool = True
    skip_closed_places: bool = True

    def to_actor_input(
        self,
        search_queries: Sequence[str],
        state: str,
        city: Optional[str],
        max_results: int,
    ) -> Dict[str, Any]:
        return {
            "searchStringsArray": list(search_queries),
            "maxCrawledPlacesPerSearch": max_results,
            "maxImages": self.max_images,
            "scrapeDirectories": self.scrape_directories,
            "deeperCityScrape": self.deeper_city_scrape,
            "maxReviews": self.max_reviews,
            "reviewsSort": self.reviews_sort,
            "scrapeReviewsPersonalData": self.scrape_reviews_personal_data,
            "maxQuestions": self.max_questions,
            "countryCode": self.country_code,
            "state": state,
            "city": city or "",
            "skipClosedPlaces": self.skip_closed_places,
        }


def _headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _unwrap(response: requests.Response, action: str) -> Dict[str, Any]:
    if response.status_code >= 400:
        logger.error("%s failed: status=%s body=%s", action, response.status_code, response.text[:500])
        raise ApifyError(f"{action} failed with HTTP {response.status_code}")
    payload = response.json()
    data = payload.get("data") if isinstance(payload, dict) else None
    if not data:
        raise ApifyError(f"{action} returned no run data")
    return data


def run_actor(actor_id: str, run_input: Dict[str, Any], token: str, max_polls: int = 120) -> Dict[str, Any]:
    """Start an actor run and block until it reaches a terminal status."""
    if not token:
        raise RuntimeError("APIFY_API_TOKEN is required")

    response = _SESSION.post(
        f"{_BASE_URL}/acts/{actor_id}/runs",
        params={"waitForFinish": _WAIT_SECONDS},
        json=run_input,
        headers=_headers(token),
        timeout=_WAIT_SECONDS + 30,
    )
    run = _unwrap(response, "Actor start")
    logger.info("Started actor run %s (status=%s)", run.get("id"), run.get("status"))

    polls = 0
    while run.get("status") not in _TERMINAL_STATUSES:
        polls += 1
        if polls > max_polls:
            raise ApifyError(f"Actor run {run.get('id')} did not finish after {max_polls} polls")
        response = _SESSION.get(
            f"{_BASE_URL}/actor-runs/{run['id']}",
            params={"waitForFinish": _WAIT_SECONDS},
            headers=_headers(token),
            timeout=_WAIT_SECONDS + 30,
        )
        run = _unwrap(response, "Actor run poll")

    if run.get("status") != "SUCCEEDED":
        logger.error("Actor run %s ended with status=%s: %s", run.get("id"), run.get("status"), run.get("statusMessage"))
        raise ApifyError(f"Actor run {run.get('id')} ended with status {run.get('status')}")
    return run


def get_dataset_items(dataset_id: str, token: str) -> List[Dict[str, Any]]:
    """Return every item of a dataset, paging through the items endpoint."""
    if not token:
        raise RuntimeError("APIFY_API_TOKEN is required")

    items: List[Dict[str, Any]] = []
    offset = 0
    while True:
        response = _SESSION.get(
            f"{_BASE_URL}/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json", "offset": offset, "limit": _PAGE_SIZE},
            headers=_headers(token),
            timeout=30,
        )
        if response.status_code >= 400:
            logger.error("Dataset read failed: status=%s body=%s", response.status_code, response.text[:500])
            raise ApifyError(f"Dataset {dataset_id} read failed with HTTP {response.status_code}")
        page = response.json()
        if not isinstance(page, list):
            raise ApifyError(f"Dataset {dataset_id} returned a non-list payload")
        items.extend(page)
        if len(page) < _PAGE_SIZE:
            break
        offset += _PAGE_SIZE
    logger.info("Read %d items from dataset %s", len(items), dataset_id)
    return items
