"""Record normalizer: raw store rows to typed places.

Every input maps to exactly one of NormalizedPlace or Rejected. Nothing in
here raises for bad data; malformed rows are rejected with a reason code that
callers aggregate into rejection counts.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .models import Coordinates, NormalizedPlace, NormalizeOutcome, Rejected

logger = logging.getLogger(__name__)


def normalize(raw: Any) -> NormalizeOutcome:
    try:
        return _normalize(raw)
    except Exception as exc:
        logger.debug("Rejected record (%s): %s", type(raw).__name__, exc)
        return Rejected(reason="malformed", detail=str(exc))


def normalize_all(raws: Iterable[Any]) -> Tuple[List[NormalizedPlace], Dict[str, int]]:
    """Normalize a batch, keeping the last record per id."""
    by_id: Dict[str, NormalizedPlace] = {}
    rejection_counts: Dict[str, int] = {}
    for raw in raws:
        outcome = normalize(raw)
        if isinstance(outcome, Rejected):
            rejection_counts[outcome.reason] = rejection_counts.get(outcome.reason, 0) + 1
            continue
        if outcome.id in by_id:
            rejection_counts["duplicate_id"] = rejection_counts.get("duplicate_id", 0) + 1
        by_id[outcome.id] = outcome
    return list(by_id.values()), rejection_counts


def _normalize(raw: Any) -> NormalizeOutcome:
    if not isinstance(raw, Mapping):
        return _reject("not_a_record", None, type(raw).__name__)

    place_id = clean_text(raw.get("id"))
    if place_id is None:
        return _reject("missing_id", None)
    name = clean_text(raw.get("name"))
    if name is None:
        return _reject("missing_name", place_id)
    if raw.get("is_active") is False:
        return _reject("inactive", place_id)

    review_count = parse_review_count(raw.get("review_count", raw.get("reviewCount")))
    rating = parse_rating(raw.get("rating"), review_count)

    return NormalizedPlace(
        id=place_id,
        name=name,
        city=_city_name(raw),
        state=clean_text(raw.get("state")),
        category=clean_text(raw.get("category")) or config.DEFAULT_CATEGORY,
        rating=rating,
        review_count=review_count,
        entry_fee=format_entry_fee(raw.get("entry_fee")),
        images=parse_images(raw),
        description=clean_text(raw.get("description")) or "",
        duration=clean_text(raw.get("duration")) or config.DEFAULT_DURATION,
        opening_hours=format_opening_hours(raw.get("opening_hours")),
        best_time_to_visit=clean_text(raw.get("best_time_to_visit")) or config.DEFAULT_BEST_TIME,
        coordinates=parse_coordinates(raw),
        features=tuple(s for s in (clean_text(f) for f in _as_list(raw.get("features"))) if s),
        is_featured=raw.get("is_featured") is True,
        is_active=True,
    )


def _reject(reason: str, record_id: Optional[str], detail: str = "") -> Rejected:
    logger.debug("Rejected record id=%s reason=%s %s", record_id, reason, detail)
    return Rejected(reason=reason, record_id=record_id, detail=detail)


def _city_name(raw: Mapping) -> Optional[str]:
    city = clean_text(raw.get("city"))
    if city is not None:
        return city
    for alias in config.CITY_FIELD_ALIASES:
        city = clean_text(raw.get(alias))
        if city is not None:
            return city
    return None


# Field parsers

def clean_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def parse_rating(value: Any, review_count: int = 0) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(rating) or rating < config.RATING_MIN or rating > config.RATING_MAX:
        return None
    # The store defaults unreviewed places to 0.
    if rating == 0.0 and review_count == 0:
        return None
    return rating


def parse_review_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, count)


def format_entry_fee(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return config.DEFAULT_ENTRY_FEE
    if isinstance(value, int):
        return f"{config.ENTRY_FEE_CURRENCY}{value}" if value > 0 else config.DEFAULT_ENTRY_FEE
    if isinstance(value, float):
        if not math.isfinite(value) or value <= 0:
            return config.DEFAULT_ENTRY_FEE
        amount = int(value) if value.is_integer() else value
        return f"{config.ENTRY_FEE_CURRENCY}{amount}"
    return clean_text(value) or config.DEFAULT_ENTRY_FEE


def format_opening_hours(value: Any) -> str:
    if isinstance(value, Mapping):
        parts = [f"{k}: {v}" for k, v in value.items() if clean_text(v)]
        if parts:
            return ", ".join(parts)
        return config.DEFAULT_OPENING_HOURS
    return clean_text(value) or config.DEFAULT_OPENING_HOURS


def parse_images(raw: Mapping) -> Tuple[str, ...]:
    images = [s for s in (clean_text(i) for i in _as_list(raw.get("images"))) if s]
    if not images:
        single = clean_text(raw.get("image_url")) or clean_text(raw.get("imageUrl"))
        if single:
            images = [single]
    if not images:
        images = [config.PLACEHOLDER_IMAGE]
    return tuple(images)


def parse_coordinates(raw: Mapping) -> Optional[Coordinates]:
    lat = raw.get("latitude")
    lng = raw.get("longitude")
    nested = raw.get("coordinates")
    if (lat is None or lng is None) and isinstance(nested, Mapping):
        lat = nested.get("lat", nested.get("latitude"))
        lng = nested.get("lng", nested.get("lon", nested.get("longitude")))
    if lat is None or lng is None or isinstance(lat, bool) or isinstance(lng, bool):
        return None
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError, OverflowError):
        return None
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
        return None
    return Coordinates(lat=lat_f, lng=lng_f)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []
