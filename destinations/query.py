"""Query/filter projection over a built hierarchy."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, List, Optional, Sequence

from .hierarchy import make_city_group, make_state_group
from .models import NormalizedPlace, Selectors, StateGroup
from .normalize import clean_text


def place_matches(place: NormalizedPlace, needle: str) -> bool:
    return needle in place.name.casefold() or needle in place.description.casefold()


def fold_text(value: Any) -> str:
    return (clean_text(value) or "").casefold()


def fold_names(names: Optional[Iterable[Any]]) -> List[str]:
    return sorted({key for key in (fold_text(name) for name in names or ()) if key})


def filter_hierarchy(
    hierarchy: Sequence[StateGroup],
    query: str = "",
    selectors: Optional[Selectors] = None,
    expanded: Iterable[str] = (),
) -> List[StateGroup]:
    """Project `hierarchy` through a free-text query and state/category selectors.

    Matching is monotonic upward: a matching place keeps its city and state,
    a matching city keeps all its places, a matching state keeps all its
    cities. The category selector is applied to places first and any group
    left empty is dropped. The source hierarchy is never modified; groups whose
    membership changed are rebuilt so their stats describe what is shown.
    """
    selectors = selectors or Selectors()
    needle = fold_text(query)
    expanded_keys = set(fold_names(expanded))

    if not needle and selectors.is_empty():
        return [replace(state, is_expanded=state.key in expanded_keys) for state in hierarchy]

    state_filter = fold_text(selectors.state) or None
    category_filter = fold_text(selectors.category) or None

    result: List[StateGroup] = []
    for state in hierarchy:
        if state_filter is not None and state.key != state_filter:
            continue
        state_hit = bool(needle) and needle in state.state.casefold()

        cities = []
        changed = False
        for city in state.cities:
            places = list(city.places)
            if category_filter is not None:
                places = [p for p in places if p.category.casefold() == category_filter]
            if needle and not state_hit and needle not in city.city.casefold():
                places = [p for p in places if place_matches(p, needle)]
            if not places:
                changed = True
                continue
            if len(places) == len(city.places):
                cities.append(city)
            else:
                changed = True
                cities.append(make_city_group(city.key, places))

        if not cities:
            continue
        expand = bool(needle) or state_filter is not None or state.key in expanded_keys
        if changed:
            result.append(make_state_group(state.key, cities, is_expanded=expand))
        else:
            result.append(replace(state, is_expanded=expand))
    return result
