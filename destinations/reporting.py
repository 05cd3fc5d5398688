"""Output reporting helpers."""
from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, TextIO

from .models import CityGroup, NormalizedPlace, StateGroup
from .stats import round_rating


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


# Serialization. Ratings are rounded here and only here.

def place_to_dict(place: NormalizedPlace, favorite: bool = False) -> Dict[str, Any]:
    coords = place.coordinates
    return {
        "id": place.id,
        "name": place.name,
        "city": place.city,
        "state": place.state,
        "category": place.category,
        "rating": round_rating(place.rating),
        "review_count": place.review_count,
        "entry_fee": place.entry_fee,
        "image": place.image,
        "images": list(place.images),
        "description": place.description,
        "duration": place.duration,
        "opening_hours": place.opening_hours,
        "best_time_to_visit": place.best_time_to_visit,
        "coordinates": {"lat": coords.lat, "lng": coords.lng} if coords else None,
        "features": list(place.features),
        "is_featured": place.is_featured,
        "is_favorite": favorite,
    }


def city_to_dict(city: CityGroup, favorites: Sequence[str] = ()) -> Dict[str, Any]:
    fav = set(favorites)
    return {
        "city": city.city,
        "count": city.count,
        "average_rating": round_rating(city.average_rating),
        "featured": city.featured.id if city.featured else None,
        "places": [place_to_dict(p, p.id in fav) for p in city.places],
    }


def hierarchy_to_dict(
    hierarchy: Sequence[StateGroup], favorites: Sequence[str] = ()
) -> List[Dict[str, Any]]:
    favorites = list(favorites)
    return [
        {
            "state": state.state,
            "count": state.count,
            "average_rating": round_rating(state.average_rating),
            "featured": state.featured.id if state.featured else None,
            "is_expanded": state.is_expanded,
            "cities": [city_to_dict(c, favorites) for c in state.cities],
        }
        for state in hierarchy
    ]


def _fmt_rating(value: Optional[float]) -> str:
    rounded = round_rating(value)
    return "-" if rounded is None else f"{rounded:.1f}"


def render_hierarchy(hierarchy: Sequence[StateGroup], show_places: bool = False) -> List[str]:
    lines: List[str] = []
    for state in hierarchy:
        featured = state.featured.name if state.featured else "-"
        lines.append(
            f"{state.state} ({state.count} places, avg {_fmt_rating(state.average_rating)}, featured: {featured})"
        )
        if not (state.is_expanded or show_places):
            continue
        for city in state.cities:
            lines.append(f"  {city.city} ({city.count}, avg {_fmt_rating(city.average_rating)})")
            if show_places:
                for place in city.places:
                    lines.append(f"    - {place.name} [{place.category}] {_fmt_rating(place.rating)}")
    return lines


def render_summary(summary: Dict[str, Any]) -> List[str]:
    rejections = summary.get("rejection_counts") or {}
    rejected = ", ".join(f"{k}={v}" for k, v in sorted(rejections.items())) or "none"
    avg = summary.get("average_rating")
    return [
        f"Source: {summary.get('source')} (catalog v{summary.get('version')})",
        f"Places: {summary.get('total_places')} in {summary.get('states')} states / {summary.get('cities')} cities",
        f"Rated: {summary.get('rated_places')}  average: {'-' if avg is None else f'{avg:.1f}'}",
        f"Rejected: {rejected}",
    ]
