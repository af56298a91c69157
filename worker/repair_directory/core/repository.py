"""Store and run-metadata persistence on top of the pooled Postgres connection."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Callable, ContextManager, Dict, Iterable, List, Optional, Sequence

from psycopg2 import extras

from repair_directory.core import db
from repair_directory.core.retry import ExponentialBackoff, LinearBackoff, RetryExecutor, RetryExhaustedError
from repair_directory.models import RunDetails, StorePage, StoreSummary, SummaryWriteResult, UpsertResult

logger = logging.getLogger(__name__)

FETCH_MODES = ("unsummarized", "single", "all", "state")

STORE_COLUMNS = (
    "place_id",
    "name",
    "subtitle",
    "description",
    "category_name",
    "categories",
    "website",
    "phone",
    "permanently_closed",
    "temporarily_closed",
    "address",
    "street",
    "city",
    "state",
    "postal_code",
    "country_code",
    "neighborhood",
    "located_in",
    "plus_code",
    "latitude",
    "longitude",
    "opening_hours",
    "total_score",
    "reviews_count",
    "reviews_distribution",
    "reviews",
    "reviews_tags",
    "questions_and_answers",
    "places_tags",
    "additional_info",
    "people_also_search",
    "search_string",
    "search_page_url",
    "maps_url",
)

# Only overwritten when the incoming row carries a value.
ENRICHMENT_COLUMNS = (
    "escooter_repair_confirmed",
    "confidence_score",
    "repair_tier",
    "service_tiers",
)

JSON_COLUMNS = {
    "opening_hours",
    "reviews_distribution",
    "reviews",
    "reviews_tags",
    "questions_and_answers",
    "additional_info",
    "people_also_search",
    "service_tiers",
}

AI_COLUMNS = (
    "place_id",
    "name",
    "subtitle",
    "description",
    "categories",
    "total_score",
    "reviews",
    "questions_and_answers",
    "reviews_count",
)

_EXISTING_SQL = "SELECT place_id FROM stores WHERE place_id = ANY(%s)"

_SUMMARY_SQL = """
UPDATE stores AS s SET
    ai_summary = v.ai_summary,
    ai_summary_updated_at = NOW(),
    last_updated = NOW()
FROM (VALUES %s) AS v (place_id, ai_summary)
WHERE s.place_id = v.place_id
RETURNING s.place_id
"""

_RUN_SQL = """
INSERT INTO apify_runs (
    run_id,
    apify_run_id,
    actor_id,
    status,
    status_message,
    timing,
    data_ids,
    usage,
    search_params,
    results_count,
    store_processing_results
) VALUES (
    %(run_id)s,
    %(apify_run_id)s,
    %(actor_id)s,
    %(status)s,
    %(status_message)s,
    %(timing)s,
    %(data_ids)s,
    %(usage)s,
    %(search_params)s,
    %(results_count)s,
    %(store_processing_results)s
)
RETURNING id
"""

_NEARBY_SQL = "SELECT * FROM nearby_stores(%(lat)s, %(lng)s, %(radius_meters)s)"


class StoreValidationError(ValueError):
    """Raised for rows or read parameters that break the store table's rules."""


def validate_store_row(row: Dict[str, Any]) -> None:
    if not row.get("name"):
        raise StoreValidationError("name is required")

    confidence = row.get("confidence_score")
    if confidence is not None and not 0 <= float(confidence) <= 1:
        raise StoreValidationError(f"confidence_score {confidence} outside [0, 1]")

    tier = row.get("repair_tier")
    if tier is not None and (isinstance(tier, bool) or int(tier) != tier or not 1 <= int(tier) <= 3):
        raise StoreValidationError(f"repair_tier {tier} outside 1-3")

    score = row.get("total_score")
    if score is not None and not 0 <= float(score) <= 5:
        raise StoreValidationError(f"total_score {score} outside [0, 5]")

    reviews_count = row.get("reviews_count")
    if reviews_count is not None and int(reviews_count) < 0:
        raise StoreValidationError("reviews_count must be non-negative")


def _adapt(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None:
        return extras.Json(value)
    return value


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _build_upsert_sql(columns: Sequence[str]) -> str:
    updates = []
    for column in columns:
        if column == "place_id":
            continue
        if column in ENRICHMENT_COLUMNS:
            updates.append(f"{column} = COALESCE(EXCLUDED.{column}, stores.{column})")
        else:
            updates.append(f"{column} = EXCLUDED.{column}")
    updates.append("last_updated = NOW()")
    return (
        f"INSERT INTO stores ({', '.join(columns)}) VALUES %s "
        f"ON CONFLICT (place_id) DO UPDATE SET {', '.join(updates)}"
    )


class StoreRepository:
    """Chunked, retried writes and paginated reads against ``stores``."""

    def __init__(
        self,
        connection_factory: Optional[Callable[[], ContextManager[Any]]] = None,
        write_batch_size: int = 100,
        summary_batch_size: int = 50,
        max_attempts: int = 3,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._connection = connection_factory or db.get_connection
        self.write_batch_size = write_batch_size
        self.summary_batch_size = summary_batch_size
        self._lookup_retry = RetryExecutor(max_attempts, ExponentialBackoff(base=2.0), sleep=sleep)
        self._write_retry = RetryExecutor(max_attempts, LinearBackoff(base=1.0), sleep=sleep)
        self._summary_retry = RetryExecutor(max_attempts, ExponentialBackoff(base=1.0), sleep=sleep)

    # ---------- Write path ----------

    def _existing_place_ids(self, place_ids: Sequence[str]) -> set:
        existing: set = set()
        for index, chunk in enumerate(_chunks(place_ids, self.write_batch_size), start=1):

            def lookup(chunk=chunk):
                with self._connection() as conn:
                    with conn.cursor() as cur:
                        cur.execute(_EXISTING_SQL, (list(chunk),))
                        return [row[0] for row in cur.fetchall()]

            existing.update(self._lookup_retry.execute(lookup, f"Existing-store lookup chunk {index}"))
        return existing

    def _write_chunk(self, chunk: Sequence[Dict[str, Any]]) -> None:
        columns = list(STORE_COLUMNS) + [
            column for column in ENRICHMENT_COLUMNS if any(row.get(column) is not None for row in chunk)
        ]
        sql = _build_upsert_sql(columns)
        values = [tuple(_adapt(column, row.get(column)) for column in columns) for row in chunk]
        with self._connection() as conn:
            with conn.cursor() as cur:
                extras.execute_values(cur, sql, values, page_size=len(values))

    def upsert_stores(self, stores: Sequence[Dict[str, Any]]) -> UpsertResult:
        """Idempotently upsert stores keyed on ``place_id``.

        Every record with a ``place_id`` ends up in exactly one of
        ``successful``/``failed``; successful ones are further split into
        ``new_stores``/``updated_stores`` by whether the key existed beforehand.
        """
        result = UpsertResult()
        valid: List[Dict[str, Any]] = []
        for store in stores:
            if not store.get("place_id"):
                result.dropped += 1
                logger.warning("Skipping store with missing place_id: %s", store.get("name") or "unknown")
                continue
            try:
                validate_store_row(store)
            except (StoreValidationError, TypeError, ValueError) as exc:
                logger.warning("Rejecting store %s: %s", store["place_id"], exc)
                result.failed.append({**store, "error": str(exc)})
                continue
            valid.append(store)

        if not valid:
            logger.info("No valid stores to write (dropped=%d rejected=%d)", result.dropped, len(result.failed))
            return result

        existing = self._existing_place_ids([store["place_id"] for store in valid])

        for index, chunk in enumerate(_chunks(valid, self.write_batch_size), start=1):
            try:
                self._write_retry.execute(lambda chunk=chunk: self._write_chunk(chunk), f"Store batch {index}")
            except RetryExhaustedError as exc:
                logger.error("Store batch %d failed all retry attempts: %s", index, exc.last_error)
                result.failed.extend({**store, "error": str(exc.last_error)} for store in chunk)
                continue
            for store in chunk:
                result.successful.append(store)
                if store["place_id"] in existing:
                    result.updated_stores.append(store)
                else:
                    result.new_stores.append(store)

        logger.info(
            "Store operation completed: processed=%d successful=%d failed=%d new=%d updated=%d",
            result.total_processed,
            len(result.successful),
            len(result.failed),
            len(result.new_stores),
            len(result.updated_stores),
        )
        return result

    def write_summaries(self, summaries: Sequence[StoreSummary]) -> SummaryWriteResult:
        """Write AI summaries in batches; a batch that fails fails as a whole."""
        result = SummaryWriteResult()
        for index, batch in enumerate(_chunks(summaries, self.summary_batch_size), start=1):
            values = [(summary.place_id, summary.summary_text) for summary in batch]

            def write(values=values):
                with self._connection() as conn:
                    with conn.cursor() as cur:
                        rows = extras.execute_values(cur, _SUMMARY_SQL, values, page_size=len(values), fetch=True)
                        return {row[0] for row in rows}

            try:
                updated = self._summary_retry.execute(write, f"Summary batch {index}")
            except RetryExhaustedError as exc:
                logger.error("Summary batch %d failed after all retries: %s", index, exc.last_error)
                result.failed.extend(
                    {"place_id": summary.place_id, "error": str(exc.last_error)} for summary in batch
                )
                continue
            for summary in batch:
                if summary.place_id in updated:
                    result.successful.append(summary)
                else:
                    logger.warning("Summary for %s matched no store row", summary.place_id)
                    result.failed.append({"place_id": summary.place_id, "error": "store not found"})
            logger.info(
                "Summary batch %d written (%d/%d)",
                index,
                len(result.successful) + len(result.failed),
                len(summaries),
            )
        return result

    def write_run_details(self, run_details: RunDetails) -> int:
        if not run_details.run_id:
            raise StoreValidationError("run_id is required")
        params = asdict(run_details)
        for key in ("timing", "data_ids", "usage", "search_params", "store_processing_results"):
            params[key] = extras.Json(params[key])
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_RUN_SQL, params)
                row_id = cur.fetchone()[0]
        logger.info("Stored run details for run %s (row %s)", run_details.run_id, row_id)
        return row_id

    # ---------- Read path ----------

    def fetch_stores(
        self,
        mode: str = "unsummarized",
        *,
        place_id: Optional[str] = None,
        states: Optional[Sequence[str]] = None,
        unsummarized_only: bool = False,
        limit: Optional[int] = None,
        after: Optional[str] = None,
        full_rows: bool = False,
    ) -> StorePage:
        """Fetch one page of stores ordered by ``place_id``.

        ``after`` is the cursor returned by the previous page. ``limit=None``
        returns every match in a single page.
        """
        if mode not in FETCH_MODES:
            raise StoreValidationError(f"Invalid mode: {mode}")
        if mode == "single" and not place_id:
            raise StoreValidationError("place_id is required when mode is 'single'")
        if mode == "state" and not states:
            raise StoreValidationError("states are required when mode is 'state'")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
            raise StoreValidationError("limit must be a positive integer or None")

        columns = "*" if full_rows else ", ".join(AI_COLUMNS)
        clauses: List[str] = []
        params: Dict[str, Any] = {}
        if mode == "unsummarized" or (mode == "state" and unsummarized_only):
            clauses.append("ai_summary IS NULL")
        if mode == "single":
            clauses.append("place_id = %(place_id)s")
            params["place_id"] = place_id
        if mode == "state":
            clauses.append("state = ANY(%(states)s)")
            params["states"] = list(states)
        if after is not None and mode != "single":
            clauses.append("place_id > %(after)s")
            params["after"] = after

        sql = f"SELECT {columns} FROM stores"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY place_id"
        if limit is not None and mode != "single":
            sql += " LIMIT %(limit)s"
            params["limit"] = limit + 1

        with self._connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, params)
                rows = [dict(row) for row in cur.fetchall()]

        has_more = limit is not None and mode != "single" and len(rows) > limit
        if has_more:
            rows = rows[:limit]
        next_cursor = rows[-1]["place_id"] if has_more else None
        logger.info("Fetched %d stores (mode=%s, has_more=%s)", len(rows), mode, has_more)
        return StorePage(stores=rows, next_cursor=next_cursor, has_more=has_more)

    def nearby_stores(self, latitude: float, longitude: float, radius_meters: float) -> List[Dict[str, Any]]:
        """Rows strictly inside ``radius_meters``, nearest first."""
        with self._connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(_NEARBY_SQL, {"lat": latitude, "lng": longitude, "radius_meters": radius_meters})
                return [dict(row) for row in cur.fetchall()]
