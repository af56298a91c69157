"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

UNBOUNDED_RESULTS = 9999999

_DEFAULT_QUERIES = "electric scooter repair,stand-up electric scooter,bicycle Repair"
_DEFAULT_EXCLUDED_RETAILERS = "Best Buy,Walmart,Costco,Target,Home Depot"


@dataclass(frozen=True)
class Settings:
    apify_api_token: str
    anthropic_api_key: str
    database_url: str
    apify_actor_id: str = "compass~crawler-google-places"
    anthropic_model: str = "claude-3-5-haiku-latest"
    port: int = 8080
    app_env: str = "development"
    scrape_states: Tuple[str, ...] = ("Illinois",)
    scrape_search_queries: Tuple[str, ...] = tuple(_DEFAULT_QUERIES.split(","))
    scrape_max_results: int = UNBOUNDED_RESULTS
    scrape_concurrency: int = 25
    scrape_batch_delay_seconds: float = 5.0
    db_pool_max_connections: int = 30
    store_write_batch_size: int = 100
    summary_write_batch_size: int = 50
    ai_batch_size: int = 25
    ai_min_reviews: int = 10
    ai_max_reviews: int = 300
    ai_max_qas: int = 300
    ai_requests_per_minute: int = 45
    ai_tokens_per_minute: int = 35000
    ai_max_attempts: int = 3
    ai_retry_delay_seconds: float = 65.0
    zip_data_path: str = "data/zip_coordinates.json"
    excluded_retailers: Tuple[str, ...] = field(default=tuple(_DEFAULT_EXCLUDED_RETAILERS.split(",")))

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


def _split_list(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    apify_api_token = os.getenv("APIFY_API_TOKEN", "")
    anthropic_api_key = os.getenv("ANTHROPIC_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not apify_api_token:
        logger.warning("APIFY_API_TOKEN is not configured; scrape runs will fail.")
    if not anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not configured; AI summaries will fail.")

    return Settings(
        apify_api_token=apify_api_token,
        anthropic_api_key=anthropic_api_key,
        database_url=database_url,
        apify_actor_id=os.getenv("APIFY_ACTOR_ID", "compass~crawler-google-places"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-5-haiku-latest"),
        port=_int_env("PORT", 8080),
        app_env=os.getenv("APP_ENV", "development"),
        scrape_states=_split_list(os.getenv("SCRAPE_STATES", "Illinois")),
        scrape_search_queries=_split_list(os.getenv("SCRAPE_SEARCH_QUERIES", _DEFAULT_QUERIES)),
        scrape_max_results=_int_env("SCRAPE_MAX_RESULTS", UNBOUNDED_RESULTS),
        scrape_concurrency=_int_env("SCRAPE_CONCURRENCY", 25),
        scrape_batch_delay_seconds=_float_env("SCRAPE_BATCH_DELAY_SECONDS", 5.0),
        db_pool_max_connections=_int_env("DB_POOL_MAX_CONNECTIONS", 30),
        store_write_batch_size=_int_env("STORE_WRITE_BATCH_SIZE", 100),
        summary_write_batch_size=_int_env("SUMMARY_WRITE_BATCH_SIZE", 50),
        ai_batch_size=_int_env("AI_BATCH_SIZE", 25),
        ai_min_reviews=_int_env("AI_MIN_REVIEWS", 10),
        ai_max_reviews=_int_env("AI_MAX_REVIEWS", 300),
        ai_max_qas=_int_env("AI_MAX_QAS", 300),
        ai_requests_per_minute=_int_env("AI_REQUESTS_PER_MINUTE", 45),
        ai_tokens_per_minute=_int_env("AI_TOKENS_PER_MINUTE", 35000),
        ai_max_attempts=_int_env("AI_MAX_ATTEMPTS", 3),
        ai_retry_delay_seconds=_float_env("AI_RETRY_DELAY_SECONDS", 65.0),
        zip_data_path=os.getenv("ZIP_DATA_PATH", "data/zip_coordinates.json"),
        excluded_retailers=_split_list(os.getenv("EXCLUDED_RETAILERS", _DEFAULT_EXCLUDED_RETAILERS)),
    )
