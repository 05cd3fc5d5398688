"""State -> City -> Place hierarchy builder and branch patch helpers.

The builder is a pure function of the place set: grouping keys are the
trimmed, casefolded (state, city) pair, and every level is sorted, so the
output never depends on input order. The patch helpers rebuild a single
branch with the same primitives the builder uses, which keeps a patched
hierarchy structurally equal to a full rebuild.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .models import CityGroup, NormalizedPlace, StateGroup
from .stats import compute_city_stats, compute_state_stats, place_sort_key, text_sort_key

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str]


def group_key(place: NormalizedPlace) -> Optional[GroupKey]:
    """Grouping key for a place, or None when it has no state."""
    state = (place.state or "").strip()
    if not state:
        return None
    city = (place.city or "").strip() or config.UNKNOWN_CITY
    return state.casefold(), city.casefold()


def city_display_name(place: NormalizedPlace) -> str:
    return (place.city or "").strip() or config.UNKNOWN_CITY


def build(places: Iterable[NormalizedPlace]) -> List[StateGroup]:
    buckets: Dict[str, Dict[str, List[NormalizedPlace]]] = {}
    skipped = 0
    for place in places:
        key = group_key(place)
        if key is None:
            skipped += 1
            logger.info("Place %s (%s) has no state; left out of hierarchy", place.id, place.name)
            continue
        state_key, city_key = key
        buckets.setdefault(state_key, {}).setdefault(city_key, []).append(place)

    states = [
        make_state_group(state_key, [make_city_group(city_key, members) for city_key, members in cities.items()])
        for state_key, cities in buckets.items()
    ]
    if skipped:
        logger.debug("build: %d places without state skipped", skipped)
    return sort_states(states)


def flatten(hierarchy: Sequence[StateGroup]) -> List[NormalizedPlace]:
    return [place for state in hierarchy for city in state.cities for place in city.places]


def make_city_group(city_key: str, members: Sequence[NormalizedPlace]) -> CityGroup:
    ordered = tuple(sorted(members, key=place_sort_key))
    stats = compute_city_stats(ordered)
    return CityGroup(
        city=city_display_name(ordered[0]),
        key=city_key,
        places=ordered,
        average_rating=stats.average_rating,
        count=stats.count,
        featured=stats.featured,
    )


def make_state_group(state_key: str, cities: Sequence[CityGroup], is_expanded: bool = False) -> StateGroup:
    ordered = tuple(sorted(cities, key=lambda c: (text_sort_key(c.city), c.key)))
    stats = compute_state_stats(ordered)
    first = min((p for c in ordered for p in c.places), key=place_sort_key)
    return StateGroup(
        state=(first.state or "").strip(),
        key=state_key,
        cities=ordered,
        count=stats.count,
        average_rating=stats.average_rating,
        featured=stats.featured,
        is_expanded=is_expanded,
    )


def sort_states(states: Iterable[StateGroup]) -> List[StateGroup]:
    return sorted(states, key=lambda s: (text_sort_key(s.state), s.key))


def find_state(hierarchy: Sequence[StateGroup], state_key: str) -> Optional[int]:
    for idx, state in enumerate(hierarchy):
        if state.key == state_key:
            return idx
    return None


def find_city(state: StateGroup, city_key: str) -> Optional[int]:
    for idx, city in enumerate(state.cities):
        if city.key == city_key:
            return idx
    return None


# Branch patches. Each returns a new hierarchy list; untouched groups are reused.

def patch_branch(
    hierarchy: Sequence[StateGroup],
    key: GroupKey,
    place_id: str,
    replacement: Optional[NormalizedPlace],
) -> List[StateGroup]:
    """Replace (or drop, when replacement is None) one place inside branch `key`.

    When the place is not yet in the branch the replacement is inserted.
    Empty city and state groups are pruned.
    """
    state_key, city_key = key
    result = list(hierarchy)
    state_idx = find_state(result, state_key)
    state = result[state_idx] if state_idx is not None else None

    cities: List[CityGroup] = list(state.cities) if state is not None else []
    city_idx = find_city(state, city_key) if state is not None else None
    members: List[NormalizedPlace] = list(cities[city_idx].places) if city_idx is not None else []

    members = [p for p in members if p.id != place_id]
    if replacement is not None:
        members.append(replacement)

    if city_idx is not None:
        if members:
            cities[city_idx] = make_city_group(city_key, members)
        else:
            del cities[city_idx]
    elif members:
        cities.append(make_city_group(city_key, members))

    if state_idx is not None:
        if cities:
            result[state_idx] = make_state_group(state_key, cities, is_expanded=state.is_expanded)
        else:
            del result[state_idx]
    elif cities:
        result.append(make_state_group(state_key, cities))
    return sort_states(result)
