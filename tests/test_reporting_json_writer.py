import json

from destinations.hierarchy import build
from destinations.normalize import normalize
from destinations.reporting import hierarchy_to_dict, render_hierarchy, render_summary, write_json_object


def make_place(pid, name, rating):
    return normalize(
        {"id": pid, "name": name, "state": "Kerala", "city": "Munnar", "rating": rating, "review_count": 4}
    )


def test_write_json_object_nested_atomic(tmp_path):
    path = tmp_path / "catalog.json"
    payload = {
        "summary": {"total_places": 3},
        "nested": {"list": [1, 2, 3], "fee": "₹50"},
    }

    write_json_object(str(path), payload)

    text = path.read_text(encoding="utf-8")
    data = json.loads(text)
    assert data == payload
    assert "₹" in text

    leftovers = [p for p in tmp_path.iterdir() if p.name != "catalog.json"]
    assert not leftovers


def test_hierarchy_to_dict_rounds_only_at_output():
    hierarchy = build([make_place("1", "Tea Museum", 4.25), make_place("2", "Eravikulam", 4.0)])

    (state,) = hierarchy_to_dict(hierarchy, favorites=["2"])

    assert state["state"] == "Kerala"
    assert state["average_rating"] == 4.1
    city = state["cities"][0]
    assert city["featured"] == "1"
    assert [(p["name"], p["rating"], p["is_favorite"]) for p in city["places"]] == [
        ("Eravikulam", 4.0, True),
        ("Tea Museum", 4.3, False),
    ]
    assert hierarchy[0].average_rating == 4.125


def test_render_lines():
    hierarchy = build([make_place("1", "Tea Museum", 4.5)])

    lines = render_hierarchy(hierarchy, show_places=True)
    assert lines[0] == "Kerala (1 places, avg 4.5, featured: Tea Museum)"
    assert lines[-1] == "    - Tea Museum [Attraction] 4.5"

    summary = {
        "source": "seed",
        "version": 2,
        "total_places": 1,
        "states": 1,
        "cities": 1,
        "rated_places": 1,
        "average_rating": 4.5,
        "rejection_counts": {"missing_name": 2},
    }
    assert render_summary(summary) == [
        "Source: seed (catalog v2)",
        "Places: 1 in 1 states / 1 cities",
        "Rated: 1  average: 4.5",
        "Rejected: missing_name=2",
    ]
