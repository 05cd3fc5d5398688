import json

from destinations import config
from destinations.seed import load_seed_records


def test_missing_config_file_returns_false(tmp_path):
    assert config.load_catalog_config(str(tmp_path / "absent.json")) is False


def test_load_catalog_config_overrides(tmp_path, monkeypatch):
    for name in (
        "DEFAULT_CATEGORY",
        "UNKNOWN_CITY",
        "PLACES_TABLE",
        "PLACES_PAGE_SIZE",
        "CITY_FIELD_ALIASES",
        "FILTER_MEMO_SIZE",
        "NEARBY_RADIUS_KM",
        "HTTP_RETRY_MAX",
        "SEED_PATH",
    ):
        monkeypatch.setattr(config, name, getattr(config, name))

    path = tmp_path / "catalog_config.json"
    path.write_text(
        json.dumps(
            {
                "defaults": {"category": "Sight", "unknown_city": "Other"},
                "store": {"places_table": "destinations", "page_size": 50, "city_aliases": ["location"]},
                "filter_memo_size": 0,
                "nearby_radius_km": 12.5,
                "http": {"retry_max": 0},
                "seed_path": "seed.json",
            }
        ),
        encoding="utf-8",
    )

    assert config.load_catalog_config(str(path)) is True
    assert config.DEFAULT_CATEGORY == "Sight"
    assert config.UNKNOWN_CITY == "Other"
    assert config.PLACES_TABLE == "destinations"
    assert config.PLACES_PAGE_SIZE == 50
    assert config.CITY_FIELD_ALIASES == ["location"]
    assert config.FILTER_MEMO_SIZE == 1
    assert config.NEARBY_RADIUS_KM == 12.5
    assert config.HTTP_RETRY_MAX == 1
    assert config.SEED_PATH == "seed.json"


def test_supabase_credentials(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", " https://demo.supabase.co ")
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    assert config.supabase_credentials() == ("https://demo.supabase.co", None)


def test_seed_accepts_wrapped_list(tmp_path):
    path = tmp_path / "seed.json"
    path.write_text(json.dumps({"places": [{"id": "1"}, "junk"]}), encoding="utf-8")
    assert load_seed_records(str(path)) == [{"id": "1"}]

    assert len(load_seed_records()) == 12
