"""Group statistics: rating averages, counts and featured selection."""
from __future__ import annotations

import locale
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .models import CityGroup, GroupStats, NormalizedPlace


def text_sort_key(text: str) -> Tuple[str, str]:
    folded = text.casefold()
    try:
        collated = locale.strxfrm(folded)
    except (ValueError, OSError):
        collated = folded
    return collated, text


def place_sort_key(place: NormalizedPlace) -> Tuple[str, str, str]:
    collated, raw = text_sort_key(place.name)
    return collated, raw, place.id


def has_rating(place: NormalizedPlace) -> bool:
    return place.rating is not None and not math.isnan(place.rating)


def mean_rating(places: Iterable[NormalizedPlace]) -> Optional[float]:
    ratings = [p.rating for p in places if has_rating(p)]
    if not ratings:
        return None
    return math.fsum(ratings) / len(ratings)


def pick_featured(ordered: Sequence[NormalizedPlace]) -> Optional[NormalizedPlace]:
    """Highest rated place; ties go to the earliest place in `ordered`."""
    best: Optional[NormalizedPlace] = None
    for place in ordered:
        if best is None:
            best = place
            continue
        if not has_rating(place):
            continue
        if not has_rating(best) or place.rating > best.rating:
            best = place
    return best


def compute_city_stats(places: Sequence[NormalizedPlace]) -> GroupStats:
    ordered = sorted(places, key=place_sort_key)
    return GroupStats(
        average_rating=mean_rating(ordered),
        count=len(ordered),
        featured=pick_featured(ordered),
    )


def compute_state_stats(city_groups: Sequence[CityGroup]) -> GroupStats:
    # Mean over every rated place, never a mean of city means.
    members = [p for city in city_groups for p in city.places]
    ordered = sorted(members, key=place_sort_key)
    return GroupStats(
        average_rating=mean_rating(ordered),
        count=sum(city.count for city in city_groups),
        featured=pick_featured(ordered),
    )


def round_rating(value: Optional[float]) -> Optional[float]:
    """Round to one decimal for display; internal math keeps full precision."""
    if value is None or math.isnan(value):
        return None
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def top_rated(places: Iterable[NormalizedPlace], limit: int) -> List[NormalizedPlace]:
    rated = [p for p in places if has_rating(p)]
    rated.sort(key=lambda p: (-p.rating, place_sort_key(p)))
    return rated[: max(0, limit)]


def catalog_summary(places: Sequence[NormalizedPlace], limit: int = config.TOP_RATED_LIMIT) -> Dict[str, object]:
    return {
        "total_places": len(places),
        "rated_places": sum(1 for p in places if has_rating(p)),
        "featured_places": sum(1 for p in places if p.is_featured),
        "average_rating": round_rating(mean_rating(places)),
        "top_rated": [p.id for p in top_rated(places, limit)],
    }
