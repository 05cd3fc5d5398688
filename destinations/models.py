"""Typed entities for the destination hierarchy."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar, Union

T = TypeVar("T")


class CatalogError(RuntimeError):
    pass


class UnknownPlaceError(CatalogError):
    pass


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class NormalizedPlace:
    id: str
    name: str
    city: Optional[str]
    state: Optional[str]
    category: str
    rating: Optional[float]
    review_count: int
    entry_fee: str
    images: Tuple[str, ...]
    description: str = ""
    duration: str = ""
    opening_hours: str = ""
    best_time_to_visit: str = ""
    coordinates: Optional[Coordinates] = None
    features: Tuple[str, ...] = ()
    is_featured: bool = False
    is_active: bool = True

    @property
    def image(self) -> str:
        return self.images[0]


@dataclass(frozen=True)
class Rejected:
    reason: str
    record_id: Optional[str] = None
    detail: str = ""


NormalizeOutcome = Union[NormalizedPlace, Rejected]


@dataclass(frozen=True)
class GroupStats:
    average_rating: Optional[float]
    count: int
    featured: Optional[NormalizedPlace]


@dataclass(frozen=True)
class CityGroup:
    city: str
    key: str
    places: Tuple[NormalizedPlace, ...]
    average_rating: Optional[float]
    count: int
    featured: Optional[NormalizedPlace]


@dataclass(frozen=True)
class StateGroup:
    state: str
    key: str
    cities: Tuple[CityGroup, ...]
    count: int
    average_rating: Optional[float]
    featured: Optional[NormalizedPlace]
    # Presentation flag only; not part of equality.
    is_expanded: bool = field(default=False, compare=False)

    def places(self) -> Tuple[NormalizedPlace, ...]:
        return tuple(p for c in self.cities for p in c.places)


@dataclass(frozen=True)
class Selectors:
    state: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Selectors":
        data = data or {}
        return cls(state=_selector_value(data.get("state")), category=_selector_value(data.get("category")))

    def is_empty(self) -> bool:
        return self.state is None and self.category is None


@dataclass(frozen=True)
class CatalogResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "CatalogResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "CatalogResult[T]":
        return cls(ok=False, error=error)


def _selector_value(value: Any) -> Optional[str]:
    # Numbers are accepted as their text form; anything else selects nothing.
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    return value.strip() or None
