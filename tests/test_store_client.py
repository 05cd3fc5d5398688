import json

import pytest

from destinations import config
from destinations.http import BudgetExceededError, HttpClient, RequestBudget, RequestMetrics
from destinations.store_client import (
    CatalogStoreClient,
    StoreError,
    build_places_query_params,
    round_store_rating,
)

BASE_URL = "https://example.supabase.co/"
PLACES_URL = "https://example.supabase.co/rest/v1/places"
REVIEWS_URL = "https://example.supabase.co/rest/v1/places_reviews"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")

    def json(self):
        return self._payload

    def raise_for_status(self):
        return None


class FakeSession:
    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def request(self, method, url, params=None, data=None, headers=None, timeout=None):
        body = json.loads(data) if data else None
        self.calls.append({"method": method, "url": url, "params": params, "body": body, "headers": headers})
        return FakeResponse(self.handler(method, url, params, body))


def make_store(handler, max_reads=10, max_writes=10):
    metrics = RequestMetrics()
    client = HttpClient(api_key="anon", timeout=1, retry_max=1, backoff_base=0.0, backoff_max=0.0)
    client.session = FakeSession(handler)
    budget = RequestBudget(max_reads=max_reads, max_writes=max_writes, metrics=metrics)
    return CatalogStoreClient(client, BASE_URL, budget, metrics=metrics), client.session, metrics


def test_build_places_query_params():
    params = build_places_query_params(state="Goa", category="Beach", search="fort", featured=True, limit=10, offset=20)

    assert params == {
        "select": config.PLACES_SELECT,
        "is_active": "eq.true",
        "order": "is_featured.desc,rating.desc",
        "state": "eq.Goa",
        "category": "eq.Beach",
        "is_featured": "eq.true",
        "or": "(name.ilike.*fort*,description.ilike.*fort*,city.ilike.*fort*)",
        "limit": "10",
        "offset": "20",
    }


def test_search_term_is_sanitized():
    params = build_places_query_params(search='a,b(c)"*')
    assert params["or"].startswith("(name.ilike.*a b c")
    assert "or" not in build_places_query_params(search=" ,() ")


def test_fetch_places_sends_auth_headers():
    store, session, metrics = make_store(lambda m, u, p, b: [{"id": "1", "name": "Red Fort"}])

    rows = store.fetch_places(state="Delhi")

    assert rows == [{"id": "1", "name": "Red Fort"}]
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == PLACES_URL
    assert call["params"]["state"] == "eq.Delhi"
    assert call["headers"]["apikey"] == "anon"
    assert call["headers"]["Authorization"] == "Bearer anon"
    assert metrics.network_reads == 1


def test_fetch_all_places_pages_until_short_batch():
    pages = {"0": [{"id": str(i)} for i in range(2)], "2": [{"id": "2"}]}

    def handler(method, url, params, body):
        return pages[params.get("offset", "0")]

    store, session, _ = make_store(handler)
    rows = store.fetch_all_places(page_size=2)

    assert [r["id"] for r in rows] == ["0", "1", "2"]
    assert len(session.calls) == 2


def test_unexpected_payload_raises_store_error():
    store, _, _ = make_store(lambda m, u, p, b: {"message": "oops"})
    with pytest.raises(StoreError):
        store.fetch_places()


def test_fetch_place_returns_none_when_missing():
    store, session, _ = make_store(lambda m, u, p, b: [])
    assert store.fetch_place("9") is None
    assert session.calls[0]["params"]["id"] == "eq.9"


def test_add_review_and_refresh_rating():
    def handler(method, url, params, body):
        if method == "POST":
            return [dict(body[0], id="r1")]
        if method == "GET" and url == REVIEWS_URL:
            return [{"rating": 5}, {"rating": 4}, {"rating": 4}]
        return None

    store, session, metrics = make_store(handler)

    created = store.add_review("p1", "Asha", 5, "Lovely", visit_date="2026-01-02")
    assert created["id"] == "r1"
    assert session.calls[0]["headers"]["Prefer"] == "return=representation"
    assert session.calls[0]["body"][0]["visit_date"] == "2026-01-02"

    rating, count = store.refresh_place_rating("p1")
    assert (rating, count) == (4.3, 3)
    patch = session.calls[-1]
    assert patch["method"] == "PATCH"
    assert patch["params"] == {"id": "eq.p1"}
    assert patch["body"] == {"rating": 4.3}
    assert metrics.network_writes == 2


def test_add_review_rejects_bad_rating():
    store, session, _ = make_store(lambda m, u, p, b: [])
    with pytest.raises(StoreError):
        store.add_review("p1", "A", 6, "x")
    with pytest.raises(StoreError):
        store.add_review("p1", "A", True, "x")
    assert session.calls == []


def test_refresh_rating_without_reviews_writes_nothing():
    store, session, metrics = make_store(lambda m, u, p, b: [])
    assert store.refresh_place_rating("p1") == (None, 0)
    assert metrics.network_writes == 0


def test_distinct_states():
    rows = [{"state": "goa"}, {"state": "Delhi"}, {"state": "Goa"}, {"state": " "}, {"state": None}]
    store, _, _ = make_store(lambda m, u, p, b: rows)
    assert store.fetch_states() == ["Delhi", "goa"]


def test_read_budget_is_enforced():
    store, session, _ = make_store(lambda m, u, p, b: [], max_reads=1)
    store.fetch_places()
    with pytest.raises(BudgetExceededError):
        store.fetch_places()
    assert len(session.calls) == 1


def test_round_store_rating():
    assert round_store_rating(4.333) == 4.3
    assert round_store_rating(4.25) == 4.3


def test_distinct_categories_request():
    store, session, _ = make_store(lambda m, u, p, b: [{"category": "Fort"}, {"category": "Beach"}])
    assert store.fetch_categories() == ["Beach", "Fort"]
    assert session.calls[0]["params"] == {"select": "category", "is_active": "eq.true", "order": "category.asc"}


def test_create_update_and_deactivate_place():
    def handler(method, url, params, body):
        if method == "POST":
            return [dict(body[0], id="p9", is_active=True)]
        if params == {"id": "eq.missing"}:
            return []
        return [dict(body, id=params["id"][3:], name="Hawa Mahal")]

    store, session, metrics = make_store(handler)

    created = store.create_place({"id": None, "name": "Hawa Mahal", "state": "Rajasthan"})
    assert created["id"] == "p9"
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["url"] == PLACES_URL
    assert session.calls[0]["body"] == [{"name": "Hawa Mahal", "state": "Rajasthan"}]

    updated = store.update_place("p9", {"id": "p9", "city": "Jaipur"})
    assert updated["city"] == "Jaipur"
    assert session.calls[1]["body"] == {"city": "Jaipur"}
    assert session.calls[1]["headers"]["Prefer"] == "return=representation"

    deactivated = store.deactivate_place("p9")
    assert deactivated["is_active"] is False
    assert session.calls[2]["method"] == "PATCH"
    assert session.calls[2]["params"] == {"id": "eq.p9"}

    assert store.deactivate_place("missing") is None
    assert metrics.network_writes == 4


def test_place_writes_use_write_budget():
    store, session, _ = make_store(lambda m, u, p, b: [], max_writes=0)
    with pytest.raises(BudgetExceededError):
        store.deactivate_place("p1")
    with pytest.raises(StoreError):
        store.update_place("p1", {"id": "p1"})
    assert session.calls == []
