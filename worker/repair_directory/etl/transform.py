"""Utilities for transforming Google Places crawler items into store rows."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_SNAPSHOT_LIMIT = 500


class StoreTransformError(ValueError):
    """Raised when a raw crawler item cannot be mapped to a store row."""


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _rating(value: Any) -> Optional[float]:
    rating = _safe_float(value)
    if rating is None:
        return None
    return round(min(max(rating, 0.0), 5.0), 1)


def _review_count(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _categories(raw: Dict[str, Any]) -> List[str]:
    seen: List[str] = []
    for category in raw.get("categories") or []:
        name = _strip_or_none(category)
        if name and name not in seen:
            seen.append(name)
    return seen


def snapshot(raw: Any) -> str:
    try:
        text = json.dumps(raw, default=str)
    except (TypeError, ValueError):
        text = repr(raw)
    return text[:_SNAPSHOT_LIMIT]


def to_store_row(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map one crawler item onto the ``stores`` table columns."""
    if not isinstance(raw, dict):
        raise StoreTransformError("item is not an object")

    place_id = _strip_or_none(raw.get("placeId"))
    if not place_id:
        raise StoreTransformError("missing placeId")
    name = _strip_or_none(raw.get("title"))
    if not name:
        raise StoreTransformError("missing title")

    latitude = longitude = None
    location = raw.get("location")
    if location is not None:
        latitude = _safe_float((location or {}).get("lat"))
        longitude = _safe_float((location or {}).get("lng"))
        if latitude is None or longitude is None:
            raise StoreTransformError("location present without lat/lng")

    return {
        "place_id": place_id,
        "name": name,
        "subtitle": _strip_or_none(raw.get("subTitle")),
        "description": _strip_or_none(raw.get("description")),
        "category_name": _strip_or_none(raw.get("categoryName")),
        "categories": _categories(raw),
        "website": _strip_or_none(raw.get("website")),
        "phone": _strip_or_none(raw.get("phone")),
        "permanently_closed": bool(raw.get("permanentlyClosed", False)),
        "temporarily_closed": bool(raw.get("temporarilyClosed", False)),
        "address": _strip_or_none(raw.get("address")),
        "street": _strip_or_none(raw.get("street")),
        "city": _strip_or_none(raw.get("city")),
        "state": _strip_or_none(raw.get("state")),
        "postal_code": _strip_or_none(raw.get("postalCode")),
        "country_code": _strip_or_none(raw.get("countryCode")),
        "neighborhood": _strip_or_none(raw.get("neighborhood")),
        "located_in": _strip_or_none(raw.get("locatedIn")),
        "plus_code": _strip_or_none(raw.get("plusCode")),
        "latitude": latitude,
        "longitude": longitude,
        "opening_hours": raw.get("openingHours") or [],
        "total_score": _rating(raw.get("totalScore")),
        "reviews_count": _review_count(raw.get("reviewsCount")),
        "reviews_distribution": raw.get("reviewsDistribution") or {},
        "reviews": raw.get("reviews") or [],
        "reviews_tags": raw.get("reviewsTags") or [],
        "questions_and_answers": raw.get("questionsAndAnswers") or [],
        "places_tags": [tag.get("title") for tag in raw.get("placesTags") or [] if isinstance(tag, dict) and tag.get("title")],
        "additional_info": raw.get("additionalInfo") or {},
        "people_also_search": raw.get("peopleAlsoSearch") or [],
        "search_string": _strip_or_none(raw.get("searchString")),
        "search_page_url": _strip_or_none(raw.get("searchPageUrl")),
        "maps_url": _strip_or_none(raw.get("url")),
    }


def is_excluded(name: Optional[str], excluded_names: Iterable[str]) -> bool:
    """Case-insensitive substring match against known non-target retailers."""
    if not name:
        return False
    lowered = name.lower()
    return any(excluded.lower() in lowered for excluded in excluded_names if excluded)


def transform_items(
    items: Sequence[Any],
    excluded_names: Iterable[str] = (),
) -> Tuple[List[Dict[str, Any]], int, int]:
    """Transform crawler items, dropping bad records instead of aborting.

    Returns ``(stores, validation_failures, excluded_count)``.
    """
    excluded_names = tuple(excluded_names)
    stores: List[Dict[str, Any]] = []
    failures = 0
    excluded = 0
    for index, raw in enumerate(items):
        try:
            row = to_store_row(raw)
        except StoreTransformError as exc:
            failures += 1
            logger.warning("Dropping item %d (%s): %s", index, exc, snapshot(raw))
            continue
        if is_excluded(row["name"], excluded_names):
            excluded += 1
            logger.debug("Excluding big-box retailer %s (%s)", row["name"], row["place_id"])
            continue
        stores.append(row)
    logger.info(
        "Transformed %d items: %d stores, %d failures, %d excluded",
        len(items),
        len(stores),
        failures,
        excluded,
    )
    return stores, failures, excluded
