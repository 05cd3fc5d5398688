"""Per-user favorite place ids, kept outside the hierarchy."""
from __future__ import annotations

from typing import Iterable, Iterator, Optional, Set


class FavoriteSet:
    def __init__(self, place_ids: Optional[Iterable[str]] = None) -> None:
        self._ids: Set[str] = {str(p) for p in (place_ids or []) if p}

    def __contains__(self, place_id: object) -> bool:
        return place_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, place_id: str) -> None:
        self._ids.add(str(place_id))

    def discard(self, place_id: str) -> None:
        self._ids.discard(str(place_id))

    def toggle(self, place_id: str) -> bool:
        """Flip membership; returns True when the id is now a favorite."""
        place_id = str(place_id)
        if place_id in self._ids:
            self._ids.remove(place_id)
            return False
        self._ids.add(place_id)
        return True

    def replace_all(self, place_ids: Iterable[str]) -> None:
        self._ids = {str(p) for p in place_ids if p}
