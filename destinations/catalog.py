"""Session-owned destination catalog.

DestinationCatalog holds the one live hierarchy for a session and is the
surface presentation code talks to. Reads are served from the current
snapshot (filters are memoised per hierarchy version). Mutations arrive as
notifications and are applied as targeted branch patches: the (state, city)
key captured when a place entered the hierarchy locates its branch, so a
place whose fields were edited since is still found where it actually lives.
"""
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from . import config
from .favorites import FavoriteSet
from .geo import nearest_places
from .hierarchy import GroupKey, build, group_key, patch_branch
from .models import (
    CatalogError,
    CatalogResult,
    CityGroup,
    NormalizedPlace,
    Rejected,
    Selectors,
    StateGroup,
    UnknownPlaceError,
)
from .normalize import normalize, normalize_all, parse_rating
from .query import filter_hierarchy, fold_names, fold_text
from .stats import catalog_summary, text_sort_key

logger = logging.getLogger(__name__)

PlaceInput = Union[NormalizedPlace, Mapping[str, Any]]


@dataclass
class LoadReport:
    source: str
    version: int
    places_loaded: int
    states: int
    cities: int
    rejection_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def rejected(self) -> int:
        return sum(self.rejection_counts.values())


class DestinationCatalog:
    def __init__(
        self,
        favorites: Optional[FavoriteSet] = None,
        memo_size: int = config.FILTER_MEMO_SIZE,
    ) -> None:
        self.favorites = favorites if favorites is not None else FavoriteSet()
        self.version = 0
        self.source = "empty"
        self.rejection_counts: Dict[str, int] = {}
        self._places: Dict[str, NormalizedPlace] = {}
        self._keys: Dict[str, GroupKey] = {}
        self._hierarchy: List[StateGroup] = []
        self._memo: "OrderedDict[Tuple[Any, ...], List[StateGroup]]" = OrderedDict()
        self._memo_size = max(1, int(memo_size))

    # Loading

    def load(self, raws: Iterable[Any], source: str = "store") -> CatalogResult[LoadReport]:
        places, rejection_counts = normalize_all(raws)
        if rejection_counts:
            logger.info("Rejected %d records: %s", sum(rejection_counts.values()), rejection_counts)
        return self.load_places(places, source=source, rejection_counts=rejection_counts)

    def load_places(
        self,
        places: Iterable[NormalizedPlace],
        source: str = "store",
        rejection_counts: Optional[Dict[str, int]] = None,
    ) -> CatalogResult[LoadReport]:
        self._places = {p.id: p for p in places}
        self._hierarchy = build(self._places.values())
        self._keys = {}
        for p in self._places.values():
            key = group_key(p)
            if key is not None:
                self._keys[p.id] = key
        counts = dict(rejection_counts or {})
        missing_state = len(self._places) - len(self._keys)
        if missing_state:
            counts["missing_state"] = counts.get("missing_state", 0) + missing_state
        self.rejection_counts = counts
        self.source = source
        self._bump()
        report = LoadReport(
            source=source,
            version=self.version,
            places_loaded=len(self._keys),
            states=len(self._hierarchy),
            cities=sum(len(s.cities) for s in self._hierarchy),
            rejection_counts=dict(counts),
        )
        logger.info(
            "Catalog v%d loaded from %s: %d places, %d states, %d cities",
            report.version,
            source,
            report.places_loaded,
            report.states,
            report.cities,
        )
        return CatalogResult.success(report)

    # Reads

    def get_hierarchy(self) -> CatalogResult[List[StateGroup]]:
        return CatalogResult.success(list(self._hierarchy))

    def filter(
        self,
        query: str = "",
        selectors: Optional[Union[Selectors, Mapping[str, Any]]] = None,
        expanded: Iterable[str] = (),
    ) -> CatalogResult[List[StateGroup]]:
        if isinstance(selectors, Selectors):
            selectors = {"state": selectors.state, "category": selectors.category}
        elif selectors is not None and not isinstance(selectors, Mapping):
            return CatalogResult.failure(f"selectors must be a mapping, got {type(selectors).__name__}")
        sel = Selectors.from_dict(dict(selectors) if selectors else None)
        expanded_key = tuple(fold_names(expanded))
        memo_key = (self.version, fold_text(query), sel, expanded_key)
        cached = self._memo.get(memo_key)
        if cached is not None:
            self._memo.move_to_end(memo_key)
            return CatalogResult.success(list(cached))
        view = filter_hierarchy(self._hierarchy, query, sel, expanded_key)
        self._memo[memo_key] = view
        while len(self._memo) > self._memo_size:
            self._memo.popitem(last=False)
        return CatalogResult.success(list(view))

    def get_place_by_id(self, place_id: str) -> CatalogResult[NormalizedPlace]:
        place = self._places.get(str(place_id))
        if place is None:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        return CatalogResult.success(place)

    def get_cities_for_state(self, name: str) -> CatalogResult[List[CityGroup]]:
        key = (name or "").strip().casefold()
        for state in self._hierarchy:
            if state.key == key:
                return CatalogResult.success(list(state.cities))
        return CatalogResult.failure(f"unknown state: {name}")

    def get_states(self) -> List[str]:
        return [s.state for s in self._hierarchy]

    def get_categories(self) -> List[str]:
        seen: Dict[str, str] = {}
        for place in self._places.values():
            if place.id in self._keys:
                seen.setdefault(place.category.casefold(), place.category)
        return sorted(seen.values(), key=text_sort_key)

    def nearby_places(
        self, place_id: str, radius_km: float = config.NEARBY_RADIUS_KM
    ) -> CatalogResult[List[Tuple[NormalizedPlace, float]]]:
        place = self._places.get(str(place_id))
        if place is None:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        if place.coordinates is None:
            return CatalogResult.failure(f"place {place_id} has no coordinates")
        candidates = [p for p in self._places.values() if p.id in self._keys]
        return CatalogResult.success(nearest_places(place, candidates, radius_km))

    def summary(self, limit: int = config.TOP_RATED_LIMIT) -> Dict[str, Any]:
        placed = [p for p in self._places.values() if p.id in self._keys]
        out = catalog_summary(placed, limit=limit)
        out.update(
            {
                "source": self.source,
                "version": self.version,
                "states": len(self._hierarchy),
                "cities": sum(len(s.cities) for s in self._hierarchy),
                "rejection_counts": dict(self.rejection_counts),
                "favorites": len(self.favorite_places()),
            }
        )
        return out

    # Favorites: looked up by id, never stored on places or groups.

    def is_favorite(self, place_id: str) -> bool:
        return str(place_id) in self.favorites

    def toggle_favorite(self, place_id: str) -> CatalogResult[bool]:
        if str(place_id) not in self._places:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        return CatalogResult.success(self.favorites.toggle(place_id))

    def favorite_places(self) -> List[NormalizedPlace]:
        return [self._places[pid] for pid in self.favorites if pid in self._places]

    # Mutation notifications

    def on_rating_changed(
        self, place_id: str, new_rating: Optional[float], review_count: Optional[int] = None
    ) -> CatalogResult[List[StateGroup]]:
        try:
            place = self._require(place_id)
            if new_rating is not None and not _valid_rating(new_rating):
                return CatalogResult.failure(f"invalid rating for {place_id}: {new_rating!r}")
            count = place.review_count if review_count is None else max(0, int(review_count))
            rating = parse_rating(new_rating, count)
            updated = replace(place, rating=rating, review_count=count)
            return CatalogResult.success(self._apply(place.id, updated))
        except CatalogError as exc:
            return CatalogResult.failure(str(exc))

    def on_place_upserted(self, place: PlaceInput) -> CatalogResult[List[StateGroup]]:
        """Insert or replace one place.

        A record that no longer qualifies (deactivated, or edited into an
        invalid shape) removes the place it used to be, when that id is known.
        """
        outcome = place if isinstance(place, NormalizedPlace) else normalize(place)
        if isinstance(outcome, NormalizedPlace) and not outcome.is_active:
            outcome = Rejected(reason="inactive", record_id=outcome.id)
        if isinstance(outcome, Rejected):
            self.rejection_counts[outcome.reason] = self.rejection_counts.get(outcome.reason, 0) + 1
            if outcome.record_id is not None and outcome.record_id in self._places:
                logger.info("Place %s dropped on update (%s)", outcome.record_id, outcome.reason)
                return CatalogResult.success(self._apply(outcome.record_id, None))
            return CatalogResult.failure(f"rejected record {outcome.record_id}: {outcome.reason}")
        return CatalogResult.success(self._apply(outcome.id, outcome))

    def on_place_removed(self, place_id: str) -> CatalogResult[List[StateGroup]]:
        try:
            place = self._require(place_id)
        except CatalogError as exc:
            return CatalogResult.failure(str(exc))
        return CatalogResult.success(self._apply(place.id, None))

    # Internals

    def _require(self, place_id: str) -> NormalizedPlace:
        place = self._places.get(str(place_id))
        if place is None:
            raise UnknownPlaceError(f"unknown place id: {place_id}")
        return place

    def _apply(self, place_id: str, updated: Optional[NormalizedPlace]) -> List[StateGroup]:
        old_key = self._keys.get(place_id)
        new_key = group_key(updated) if updated is not None else None
        hierarchy = self._hierarchy

        if old_key is not None and old_key == new_key:
            hierarchy = patch_branch(hierarchy, old_key, place_id, updated)
        else:
            if old_key is not None:
                hierarchy = patch_branch(hierarchy, old_key, place_id, None)
                del self._keys[place_id]
            if new_key is not None:
                hierarchy = patch_branch(hierarchy, new_key, place_id, updated)
                self._keys[place_id] = new_key
            if old_key != new_key:
                logger.debug("Place %s moved %s -> %s", place_id, old_key, new_key)

        if updated is None:
            self._places.pop(place_id, None)
        else:
            self._places[place_id] = updated
        self._refresh_missing_state()
        self._hierarchy = hierarchy
        self._bump()
        return list(hierarchy)

    def _refresh_missing_state(self) -> None:
        missing = len(self._places) - len(self._keys)
        if missing:
            self.rejection_counts["missing_state"] = missing
        else:
            self.rejection_counts.pop("missing_state", None)

    def _bump(self) -> None:
        self.version += 1
        self._memo.clear()


def _valid_rating(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        rating = float(value)
    except (TypeError, ValueError, OverflowError):
        return False
    return not math.isnan(rating) and config.RATING_MIN <= rating <= config.RATING_MAX
