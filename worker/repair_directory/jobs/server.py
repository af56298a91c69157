"""HTTP entrypoint that queues scrape and AI jobs and serves proximity search."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from repair_directory.core.config import get_settings
from repair_directory.core.job_registry import JobRegistry
from repair_directory.core.repository import FETCH_MODES, StoreRepository
from repair_directory.core.search import (
    ZipCodeNotFoundError,
    ZipLookup,
    ZipServiceUnavailableError,
    search_by_zip,
)
from repair_directory.jobs.ai_summaries import run_ai_job
from repair_directory.jobs.scrape_states import run_scrape_job

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & registry ----------
app = Flask(__name__)
_registry = JobRegistry(max_workers=4)


@lru_cache(maxsize=1)
def _zip_lookup() -> ZipLookup:
    return ZipLookup(get_settings().zip_data_path)


@lru_cache(maxsize=1)
def _repository() -> StoreRepository:
    return StoreRepository()


def _string_list(value: Any, field: str) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item.strip() for item in value):
        raise ValueError(f"{field} must be a list of non-empty strings")
    return [item.strip() for item in value]


def _positive_int(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be numeric") from None
    if parsed <= 0:
        raise ValueError(f"{field} must be positive")
    return parsed


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    return jsonify({"status": "ok", "revision": os.getenv("K_REVISION", "unknown")}), 200


@app.post("/scrape")
def enqueue_scrape() -> Any:
    """
    Queue a scrape job.
    Optional JSON fields: states (list), search_queries (list), city (str), max_results (int)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        job_args = dict(
            states=_string_list(payload.get("states"), "states"),
            search_queries=_string_list(payload.get("search_queries"), "search_queries"),
            city=str(payload.get("city") or "").strip(),
            max_results=_positive_int(payload.get("max_results"), "max_results"),
        )
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    job_id = _registry.submit("scrape", run_scrape_job, **job_args)
    return jsonify({"data": {"status": "queued", "job_id": job_id}}), 202


@app.post("/ai/process")
def enqueue_ai_processing() -> Any:
    """
    Queue an AI summary job.
    Optional JSON fields: mode, states (list), place_id, limit (int)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    mode = payload.get("mode", "unsummarized")
    if mode not in FETCH_MODES:
        return jsonify({"error": f"mode must be one of {', '.join(FETCH_MODES)}"}), 400
    try:
        states = _string_list(payload.get("states"), "states")
        limit = _positive_int(payload.get("limit"), "limit")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if mode == "state" and not states:
        return jsonify({"error": "states are required when mode is 'state'"}), 400
    if mode == "single" and not payload.get("place_id"):
        return jsonify({"error": "place_id is required when mode is 'single'"}), 400

    job_id = _registry.submit(
        "ai",
        run_ai_job,
        mode=mode,
        states=states,
        place_id=payload.get("place_id"),
        limit=limit,
    )
    return jsonify({"data": {"status": "queued", "job_id": job_id}}), 202


@app.get("/jobs/<job_id>")
def job_status(job_id: str) -> Any:
    record = _registry.get(job_id)
    if record is None:
        return jsonify({"error": "job not found"}), 404
    return jsonify({"data": record}), 200


@app.get("/search")
def search() -> Any:
    zip_code = request.args.get("zipCode")
    radius = request.args.get("radius")
    if not zip_code:
        return jsonify({"error": "ZIP code is required"}), 400

    try:
        results = search_by_zip(zip_code, radius, _repository(), _zip_lookup())
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except ZipCodeNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except ZipServiceUnavailableError as exc:
        return jsonify({"error": str(exc)}), 503
    except Exception as exc:  # noqa: BLE001
        logger.exception("Search request failed: %s", exc)
        return jsonify({"error": "Failed to process search request"}), 500

    logger.info("Search for %s within %s miles returned %d stores", zip_code, radius, results["metadata"]["count"])
    return jsonify(results), 200


def main() -> None:
    port = get_settings().port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
