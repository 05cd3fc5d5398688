"""Bundled static seed used when the store cannot be reached."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config


def load_seed_records(path: Optional[str] = None) -> List[Dict[str, Any]]:
    seed_path = Path(path or config.SEED_PATH)
    with seed_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("places") or []
    if not isinstance(data, list):
        raise ValueError(f"Seed file {seed_path} must contain a list of place records")
    return [row for row in data if isinstance(row, dict)]
