"""Fetch coordination between the remote store and the catalog.

Fetching is the only suspending step. The blocking store call runs in a
worker thread; its rows are normalized and applied back on the event loop.
Every refresh takes a new generation number and only the newest generation
may be applied, so a slow fetch that completes after a newer one was issued
is discarded instead of overwriting fresher data. close() invalidates all
outstanding generations and cancels the pending task.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from . import config
from .catalog import DestinationCatalog, LoadReport
from .http import BudgetExceededError
from .models import CatalogResult, Selectors, StateGroup
from .seed import load_seed_records
from .store_client import CatalogStoreClient, StoreError

logger = logging.getLogger(__name__)

FETCH_ERRORS = (requests.RequestException, StoreError, BudgetExceededError, ValueError)


@dataclass
class FetchOutcome:
    status: str  # "applied", "stale" or "cancelled"
    generation: int
    source: Optional[str] = None
    report: Optional[LoadReport] = None
    error: Optional[str] = None


class CatalogLoader:
    def __init__(
        self,
        catalog: DestinationCatalog,
        store: Optional[CatalogStoreClient] = None,
        seed_path: Optional[str] = None,
        seed_on_empty: bool = True,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.seed_path = seed_path
        self.seed_on_empty = seed_on_empty
        self._generation = 0
        self._pending: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    async def refresh(
        self,
        selectors: Optional[Selectors] = None,
        search: Optional[str] = None,
    ) -> CatalogResult[FetchOutcome]:
        if self._closed:
            return CatalogResult.failure("loader is closed")
        self._generation += 1
        generation = self._generation
        selectors = selectors or Selectors()

        task = asyncio.create_task(self._fetch(selectors, search))
        self._pending = task
        try:
            rows, source, error = await task
        except asyncio.CancelledError:
            if not self._closed and generation == self._generation:
                raise
            logger.info("Fetch generation %d cancelled", generation)
            return CatalogResult.success(FetchOutcome(status="cancelled", generation=generation))
        finally:
            if self._pending is task:
                self._pending = None

        if self._closed or generation != self._generation:
            logger.info(
                "Discarding stale fetch generation %d (current %d)", generation, self._generation
            )
            return CatalogResult.success(
                FetchOutcome(status="stale", generation=generation, source=source, error=error)
            )

        loaded = self.catalog.load(rows, source=source)
        if not loaded.ok:
            return CatalogResult.failure(loaded.error or "load failed")
        return CatalogResult.success(
            FetchOutcome(
                status="applied",
                generation=generation,
                source=source,
                report=loaded.value,
                error=error,
            )
        )

    async def _fetch(
        self, selectors: Selectors, search: Optional[str]
    ) -> Tuple[List[Dict[str, Any]], str, Optional[str]]:
        if self.store is None:
            return await asyncio.to_thread(self._seed_rows), "seed", "store not configured"
        try:
            rows = await asyncio.to_thread(
                self.store.fetch_all_places,
                state=selectors.state,
                category=selectors.category,
                search=search,
            )
        except FETCH_ERRORS as exc:
            logger.warning("Store fetch failed (%s); falling back to bundled seed", exc)
            return await asyncio.to_thread(self._seed_rows), "seed", str(exc)
        if not rows and self.seed_on_empty and selectors.is_empty() and not search:
            logger.warning("Store returned no places; falling back to bundled seed")
            return await asyncio.to_thread(self._seed_rows), "seed", "store returned no places"
        return rows, "store", None

    def _seed_rows(self) -> List[Dict[str, Any]]:
        try:
            return load_seed_records(self.seed_path or config.SEED_PATH)
        except (OSError, ValueError) as exc:
            logger.error("Seed data unavailable: %s", exc)
            return []

    async def refresh_place(self, place_id: str) -> CatalogResult[List[StateGroup]]:
        """Re-read one edited record and patch it in (or out, when it is gone or inactive)."""
        if self.store is None:
            return CatalogResult.failure("store not configured")
        generation = self._generation
        try:
            row = await asyncio.to_thread(self.store.fetch_place, place_id)
        except FETCH_ERRORS as exc:
            logger.warning("Could not refresh place %s: %s", place_id, exc)
            return CatalogResult.failure(f"fetch failed: {exc}")
        if self._closed or generation != self._generation:
            return CatalogResult.failure("stale: catalog was reloaded")
        if row is None:
            return self.catalog.on_place_removed(place_id)
        return self.catalog.on_place_upserted(row)

    async def save_place(self, record: Dict[str, Any]) -> CatalogResult[List[StateGroup]]:
        """Create (no id) or update (with id) a place in the store, then patch the catalog from the stored row."""
        if self.store is None:
            return CatalogResult.failure("store not configured")
        place_id = record.get("id")
        try:
            if place_id is None:
                stored = await asyncio.to_thread(self.store.create_place, record)
            else:
                stored = await asyncio.to_thread(self.store.update_place, str(place_id), record)
        except FETCH_ERRORS as exc:
            logger.warning("Place %s not saved: %s", place_id, exc)
            return CatalogResult.failure(f"save failed: {exc}")
        if self._closed:
            return CatalogResult.failure("loader is closed")
        if stored is None:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        return self.catalog.on_place_upserted(stored)

    async def deactivate_place(self, place_id: str) -> CatalogResult[List[StateGroup]]:
        if self.store is None:
            return CatalogResult.failure("store not configured")
        try:
            stored = await asyncio.to_thread(self.store.deactivate_place, place_id)
        except FETCH_ERRORS as exc:
            logger.warning("Place %s not deactivated: %s", place_id, exc)
            return CatalogResult.failure(f"deactivate failed: {exc}")
        if self._closed:
            return CatalogResult.failure("loader is closed")
        if stored is None:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        if not self.catalog.get_place_by_id(place_id).ok:
            return self.catalog.get_hierarchy()
        return self.catalog.on_place_removed(place_id)

    async def add_review(
        self,
        place_id: str,
        user_name: str,
        rating: int,
        review_text: str,
        visit_date: Optional[str] = None,
    ) -> CatalogResult[List[StateGroup]]:
        """Insert a review, recompute the place's stored rating and patch its branch."""
        if self.store is None:
            return CatalogResult.failure("store not configured")
        if not self.catalog.get_place_by_id(place_id).ok:
            return CatalogResult.failure(f"unknown place id: {place_id}")
        try:
            await asyncio.to_thread(
                self.store.add_review, place_id, user_name, rating, review_text, visit_date
            )
            new_rating, count = await asyncio.to_thread(self.store.refresh_place_rating, place_id)
        except FETCH_ERRORS as exc:
            logger.warning("Review for %s not recorded: %s", place_id, exc)
            return CatalogResult.failure(f"review failed: {exc}")
        if self._closed:
            return CatalogResult.failure("loader is closed")
        if count == 0:
            return self.catalog.get_hierarchy()
        return self.catalog.on_rating_changed(place_id, new_rating, review_count=count)

    async def close(self) -> None:
        self._closed = True
        self._generation += 1
        task = self._pending
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
