"""ZIP-code proximity search over the store table."""

from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.34
MIN_RADIUS_MILES = 1
MAX_RADIUS_MILES = 150
_ZIP_PATTERN = re.compile(r"^[0-9]{5}$")

RESULT_FIELDS = (
    "id",
    "name",
    "address",
    "description",
    "category_name",
    "website",
    "phone",
    "opening_hours",
    "total_score",
    "reviews_count",
    "additional_info",
    "ai_summary",
    "last_updated",
    "maps_url",
)


class ZipCodeFormatError(ValueError):
    """Raised when a ZIP code is not exactly five digits."""


class ZipCodeNotFoundError(LookupError):
    """Raised when a well-formed ZIP code has no known coordinates."""


class ZipServiceUnavailableError(RuntimeError):
    """Raised when the ZIP coordinate file cannot be loaded."""


class ZipLookup:
    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._data: Optional[Dict[str, Dict[str, float]]] = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            if self._data is None:
                try:
                    with self.path.open("r", encoding="utf-8") as fh:
                        self._data = json.load(fh)
                except (OSError, ValueError) as exc:
                    logger.error("Failed to load ZIP database from %s: %s", self.path, exc)
                    raise ZipServiceUnavailableError("ZIP code service unavailable") from exc
                logger.info("Loaded %d ZIP codes from %s", len(self._data), self.path)
            return self._data

    def coordinates(self, zip_code: str) -> Dict[str, float]:
        if not isinstance(zip_code, str) or not _ZIP_PATTERN.match(zip_code):
            raise ZipCodeFormatError("ZIP code must be exactly 5 digits")
        coords = self._load().get(zip_code)
        if not coords:
            raise ZipCodeNotFoundError("ZIP code not found")
        return coords


def build_zip_index(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """Convert OpenDataSoft ``zc-point`` records into the lookup file format."""
    index: Dict[str, Dict[str, float]] = {}
    for record in records:
        zip_code = str(record.get("zip_code") or "").strip()
        point = record.get("geo_point_2d") or {}
        if not zip_code or point.get("lat") is None or point.get("lon") is None:
            continue
        index[zip_code.zfill(5)] = {"latitude": float(point["lat"]), "longitude": float(point["lon"])}
    return index


def validate_radius(radius: Any) -> float:
    try:
        value = float(radius)
    except (TypeError, ValueError):
        value = float("nan")
    if not MIN_RADIUS_MILES <= value <= MAX_RADIUS_MILES:
        raise ValueError(f"Radius must be between {MIN_RADIUS_MILES} and {MAX_RADIUS_MILES} miles")
    return value


def search_by_zip(zip_code: str, radius_miles: Any, repository, lookup: ZipLookup) -> Dict[str, Any]:
    radius = validate_radius(radius_miles)
    coords = lookup.coordinates(zip_code)
    logger.info("Searching stores within %s miles of %s (%s)", radius, zip_code, coords)

    rows = repository.nearby_stores(coords["latitude"], coords["longitude"], radius * METERS_PER_MILE)
    stores = []
    for row in rows:
        store = {key: row.get(key) for key in RESULT_FIELDS}
        store["distance_miles"] = round(float(row["distance_meters"]) / METERS_PER_MILE, 1)
        stores.append(store)

    return {"stores": stores, "metadata": {"count": len(stores), "radius": radius}}
