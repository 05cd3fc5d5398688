"""Project configuration.

Loads deployment overrides from catalog_config.json when available, falling
back to sensible defaults. Keep store request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- Remote store ---

SUPABASE_URL_ENV = "SUPABASE_URL"
SUPABASE_KEY_ENV = "SUPABASE_ANON_KEY"
REST_PATH = "/rest/v1"

PLACES_TABLE = "places"
REVIEWS_TABLE = "places_reviews"

PLACES_SELECT = "*"
PLACES_ORDER = "is_featured.desc,rating.desc"
PLACES_SEARCH_COLUMNS: List[str] = ["name", "description", "city"]
PLACES_PAGE_SIZE = 1000

# --- Normalizer defaults ---

DEFAULT_CATEGORY = "Attraction"
PLACEHOLDER_IMAGE = (
    "https://images.pexels.com/photos/1583339/pexels-photo-1583339.jpeg"
    "?auto=compress&cs=tinysrgb&w=1200"
)
DEFAULT_ENTRY_FEE = "Free"
ENTRY_FEE_CURRENCY = "₹"
DEFAULT_DURATION = "1-2 hours"
DEFAULT_OPENING_HOURS = "9:00 AM - 6:00 PM"
DEFAULT_BEST_TIME = "Year round"
UNKNOWN_CITY = "Unknown"
RATING_MIN = 0.0
RATING_MAX = 5.0

# Extra record keys to read the city name from, in order, when "city" is absent.
# Empty by default: the legacy "location" column is not reconciled.
CITY_FIELD_ALIASES: List[str] = []

# --- Query engine ---

FILTER_MEMO_SIZE = 64
TOP_RATED_LIMIT = 5
NEARBY_RADIUS_KM = 50.0

# --- Budgets ---

MAX_READ_REQUESTS_PER_SESSION = 500
MAX_WRITE_REQUESTS_PER_SESSION = 50

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 4
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Seed ---

SEED_PATH = str(Path(__file__).resolve().parent / "data" / "seed_places.json")


def supabase_credentials() -> tuple[Optional[str], Optional[str]]:
    url = (os.environ.get(SUPABASE_URL_ENV) or "").strip() or None
    key = (os.environ.get(SUPABASE_KEY_ENV) or "").strip() or None
    return url, key


def load_catalog_config(path: Optional[str] = None) -> bool:
    """Load catalog configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "catalog_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    defaults: Dict[str, Any] = data.get("defaults", {})
    for key, name in (
        ("category", "DEFAULT_CATEGORY"),
        ("image", "PLACEHOLDER_IMAGE"),
        ("entry_fee", "DEFAULT_ENTRY_FEE"),
        ("duration", "DEFAULT_DURATION"),
        ("opening_hours", "DEFAULT_OPENING_HOURS"),
        ("best_time_to_visit", "DEFAULT_BEST_TIME"),
        ("unknown_city", "UNKNOWN_CITY"),
    ):
        if key in defaults:
            globals_ref[name] = str(defaults[key])

    store = data.get("store", {})
    if "places_table" in store:
        globals_ref["PLACES_TABLE"] = str(store["places_table"])
    if "reviews_table" in store:
        globals_ref["REVIEWS_TABLE"] = str(store["reviews_table"])
    if "page_size" in store:
        globals_ref["PLACES_PAGE_SIZE"] = int(store["page_size"])
    if "city_aliases" in store:
        globals_ref["CITY_FIELD_ALIASES"] = [str(a) for a in store["city_aliases"]]

    if "filter_memo_size" in data:
        globals_ref["FILTER_MEMO_SIZE"] = max(1, int(data["filter_memo_size"]))
    if "nearby_radius_km" in data:
        globals_ref["NEARBY_RADIUS_KM"] = float(data["nearby_radius_km"])

    http = data.get("http", {})
    if "timeout_seconds" in http:
        globals_ref["HTTP_TIMEOUT_SECONDS"] = int(http["timeout_seconds"])
    if "retry_max" in http:
        globals_ref["HTTP_RETRY_MAX"] = max(1, int(http["retry_max"]))

    if "seed_path" in data:
        globals_ref["SEED_PATH"] = str(data["seed_path"])

    return True
