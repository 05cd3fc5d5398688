"""PostgREST client for the places catalog store."""
from __future__ import annotations

import logging
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .http import HttpClient, RequestBudget, RequestMetrics

logger = logging.getLogger(__name__)

_UNSAFE_FILTER_CHARS = re.compile(r'[,()"*\\]')


class StoreError(RuntimeError):
    pass


class CatalogStoreClient:
    def __init__(
        self,
        http_client: HttpClient,
        base_url: str,
        budget: RequestBudget,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.base_url = base_url.rstrip("/")
        self.budget = budget
        self.metrics = metrics

    def table_url(self, table: str) -> str:
        return f"{self.base_url}{config.REST_PATH}/{table}"

    def fetch_places(
        self,
        state: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        featured: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = build_places_query_params(state, category, search, featured, limit, offset)
        self.budget.consume("read")
        rows = self.http.get_json(self.table_url(config.PLACES_TABLE), params=params)
        return _as_rows(rows, config.PLACES_TABLE)

    def fetch_all_places(
        self,
        state: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page_size: Optional[int] = None,
        max_pages: int = 20,
    ) -> List[Dict[str, Any]]:
        page_size = page_size or config.PLACES_PAGE_SIZE
        rows: List[Dict[str, Any]] = []
        for page in range(max_pages):
            batch = self.fetch_places(
                state=state,
                category=category,
                search=search,
                limit=page_size,
                offset=page * page_size,
            )
            rows.extend(batch)
            if len(batch) < page_size:
                break
        else:
            logger.warning("fetch_all_places stopped after %d pages; catalog may be truncated", max_pages)
        return rows

    def fetch_place(self, place_id: str) -> Optional[Dict[str, Any]]:
        params = {"select": config.PLACES_SELECT, "id": f"eq.{place_id}", "is_active": "eq.true"}
        self.budget.consume("read")
        rows = _as_rows(self.http.get_json(self.table_url(config.PLACES_TABLE), params=params), config.PLACES_TABLE)
        return rows[0] if rows else None

    def fetch_reviews(self, place_id: str) -> List[Dict[str, Any]]:
        params = {"select": "*", "place_id": f"eq.{place_id}", "order": "created_at.desc"}
        self.budget.consume("read")
        return _as_rows(self.http.get_json(self.table_url(config.REVIEWS_TABLE), params=params), config.REVIEWS_TABLE)

    def add_review(
        self,
        place_id: str,
        user_name: str,
        rating: int,
        review_text: str,
        visit_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise StoreError(f"Review rating must be an integer 1-5, got {rating!r}")
        body = {
            "place_id": place_id,
            "user_name": user_name,
            "rating": rating,
            "review_text": review_text,
            "visit_date": visit_date or date.today().isoformat(),
        }
        self.budget.consume("write")
        rows = _as_rows(
            self.http.post_json(
                self.table_url(config.REVIEWS_TABLE),
                [body],
                extra_headers={"Prefer": "return=representation"},
            ),
            config.REVIEWS_TABLE,
        )
        if not rows:
            raise StoreError(f"Store returned no row for new review on {place_id}")
        return rows[0]

    def refresh_place_rating(self, place_id: str) -> Tuple[Optional[float], int]:
        """Recompute a place's rating from its reviews and write it back.

        Returns (rating, review_count). The stored value is rounded to one
        decimal; a place without reviews keeps its current rating.
        """
        reviews = self.fetch_reviews(place_id)
        ratings = [float(r["rating"]) for r in reviews if isinstance(r.get("rating"), (int, float))]
        if not ratings:
            return None, 0
        rating = round_store_rating(sum(ratings) / len(ratings))
        self.budget.consume("write")
        self.http.patch_json(
            self.table_url(config.PLACES_TABLE),
            {"rating": rating},
            params={"id": f"eq.{place_id}"},
            extra_headers={"Prefer": "return=minimal"},
        )
        return rating, len(ratings)

    def create_place(self, record: Dict[str, Any]) -> Dict[str, Any]:
        body = {k: v for k, v in record.items() if k != "id" or v is not None}
        self.budget.consume("write")
        rows = _as_rows(
            self.http.post_json(
                self.table_url(config.PLACES_TABLE),
                [body],
                extra_headers={"Prefer": "return=representation"},
            ),
            config.PLACES_TABLE,
        )
        if not rows:
            raise StoreError("Store returned no row for new place")
        return rows[0]

    def update_place(self, place_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """PATCH one place and return the stored row, or None when no row matched."""
        body = {k: v for k, v in fields.items() if k != "id"}
        if not body:
            raise StoreError(f"No fields to update for place {place_id}")
        self.budget.consume("write")
        rows = _as_rows(
            self.http.patch_json(
                self.table_url(config.PLACES_TABLE),
                body,
                params={"id": f"eq.{place_id}"},
                extra_headers={"Prefer": "return=representation"},
            ),
            config.PLACES_TABLE,
        )
        return rows[0] if rows else None

    def deactivate_place(self, place_id: str) -> Optional[Dict[str, Any]]:
        # Soft delete; the row stays in the table with is_active false.
        return self.update_place(place_id, {"is_active": False})

    def fetch_states(self) -> List[str]:
        return self._distinct("state")

    def fetch_categories(self) -> List[str]:
        return self._distinct("category")

    def _distinct(self, column: str) -> List[str]:
        params = {"select": column, "is_active": "eq.true", "order": f"{column}.asc"}
        self.budget.consume("read")
        rows = _as_rows(self.http.get_json(self.table_url(config.PLACES_TABLE), params=params), config.PLACES_TABLE)
        seen: Dict[str, str] = {}
        for row in rows:
            value = row.get(column)
            if isinstance(value, str) and value.strip():
                seen.setdefault(value.strip().casefold(), value.strip())
        return sorted(seen.values(), key=str.casefold)


def build_places_query_params(
    state: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    featured: bool = False,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Dict[str, str]:
    params: Dict[str, str] = {
        "select": config.PLACES_SELECT,
        "is_active": "eq.true",
        "order": config.PLACES_ORDER,
    }
    if state:
        params["state"] = f"eq.{state}"
    if category:
        params["category"] = f"eq.{category}"
    if featured:
        params["is_featured"] = "eq.true"
    term = _UNSAFE_FILTER_CHARS.sub(" ", search or "").strip()
    if term:
        clauses = ",".join(f"{col}.ilike.*{term}*" for col in config.PLACES_SEARCH_COLUMNS)
        params["or"] = f"({clauses})"
    if limit:
        params["limit"] = str(int(limit))
    if offset:
        params["offset"] = str(int(offset))
    return params


def round_store_rating(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _as_rows(payload: Any, table: str) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise StoreError(f"Unexpected payload from {table}: {type(payload).__name__}")
    return [row for row in payload if isinstance(row, dict)]
