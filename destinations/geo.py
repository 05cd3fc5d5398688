"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from .models import Coordinates, NormalizedPlace


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def distance_km(a: Coordinates, b: Coordinates) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def nearest_places(
    origin: NormalizedPlace,
    candidates: Sequence[NormalizedPlace],
    radius_km: float,
) -> List[Tuple[NormalizedPlace, float]]:
    """Places within `radius_km` of `origin`, closest first. Places without coordinates are skipped."""
    if origin.coordinates is None:
        return []
    found: List[Tuple[NormalizedPlace, float]] = []
    for place in candidates:
        if place.id == origin.id or place.coordinates is None:
            continue
        dist = distance_km(origin.coordinates, place.coordinates)
        if dist <= radius_km:
            found.append((place, dist))
    found.sort(key=lambda item: (item[1], item[0].name, item[0].id))
    return found
