import pytest

from destinations.hierarchy import build
from destinations.models import Selectors
from destinations.normalize import normalize
from destinations.query import filter_hierarchy


def make_place(pid, name, state, city, rating=None, category="Monument", description=""):
    raw = {
        "id": pid,
        "name": name,
        "state": state,
        "city": city,
        "category": category,
        "description": description,
    }
    if rating is not None:
        raw["rating"] = rating
        raw["review_count"] = 5
    return normalize(raw)


def small_catalog():
    return build(
        [
            make_place("a", "Red Fort", "Delhi", "Delhi", 4.5),
            make_place("b", "India Gate", "Delhi", "Delhi", 4.7, category="Memorial"),
            make_place("c", "Taj Mahal", "Uttar Pradesh", "Agra", 4.9, description="Ivory marble mausoleum"),
        ]
    )


def test_build_example_groups():
    delhi, up = small_catalog()

    assert delhi.state == "Delhi"
    assert delhi.average_rating == pytest.approx(4.6)
    assert delhi.featured.name == "India Gate"
    assert up.state == "Uttar Pradesh"
    assert up.average_rating == pytest.approx(4.9)
    assert up.featured.name == "Taj Mahal"
    assert len(delhi.cities) == 1 and len(up.cities) == 1


def test_query_fort_keeps_only_matching_branch():
    result = filter_hierarchy(small_catalog(), "fort")

    assert [s.state for s in result] == ["Delhi"]
    (city,) = result[0].cities
    assert city.city == "Delhi"
    assert [p.name for p in city.places] == ["Red Fort"]
    # Stats describe the visible subset.
    assert city.count == 1
    assert result[0].average_rating == pytest.approx(4.5)
    assert result[0].is_expanded is True


def test_empty_query_returns_everything_with_expansion_flags():
    hierarchy = small_catalog()
    result = filter_hierarchy(hierarchy, "  ", expanded=["delhi"])

    assert result == hierarchy
    assert [s.is_expanded for s in result] == [True, False]


def test_matching_is_case_insensitive_and_covers_description():
    result = filter_hierarchy(small_catalog(), "MARBLE")
    assert [p.name for s in result for p in s.places()] == ["Taj Mahal"]


def test_state_match_keeps_all_cities_and_places():
    hierarchy = small_catalog()
    result = filter_hierarchy(hierarchy, "uttar")
    assert result[0].places() == hierarchy[1].places()


def test_city_match_keeps_all_places():
    result = filter_hierarchy(small_catalog(), "delhi")
    assert {p.name for p in result[0].places()} == {"Red Fort", "India Gate"}


def test_category_selector_drops_empty_groups():
    result = filter_hierarchy(small_catalog(), "", Selectors(category="memorial"))

    assert [s.state for s in result] == ["Delhi"]
    assert [p.name for p in result[0].places()] == ["India Gate"]
    assert result[0].featured.name == "India Gate"


def test_state_selector_is_exact_and_expands():
    result = filter_hierarchy(small_catalog(), "", Selectors(state="uttar pradesh"))
    assert [s.state for s in result] == ["Uttar Pradesh"]
    assert result[0].is_expanded is True

    assert filter_hierarchy(small_catalog(), "", Selectors(state="Uttar")) == []


def test_no_match_returns_empty():
    assert filter_hierarchy(small_catalog(), "zzz") == []


def test_filter_never_mutates_source():
    hierarchy = small_catalog()
    snapshot = list(hierarchy)
    filter_hierarchy(hierarchy, "fort", Selectors(category="Monument"))
    assert hierarchy == snapshot
    assert hierarchy[0].count == 2
