"""CLI entrypoint."""
from __future__ import annotations

import argparse
import asyncio
import locale
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv as _load_dotenv

from destinations import config
from destinations.catalog import DestinationCatalog
from destinations.favorites import FavoriteSet
from destinations.http import HttpClient, RequestBudget, RequestMetrics
from destinations.loader import CatalogLoader
from destinations.models import Selectors
from destinations.reporting import (
    ensure_dir,
    hierarchy_to_dict,
    place_to_dict,
    render_hierarchy,
    render_summary,
    utc_now_iso,
    write_json_object,
)
from destinations.seed import load_seed_records
from destinations.store_client import CatalogStoreClient


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def build_store(
    url: str,
    api_key: str,
    max_reads: int = config.MAX_READ_REQUESTS_PER_SESSION,
    max_writes: int = config.MAX_WRITE_REQUESTS_PER_SESSION,
    metrics: Optional[RequestMetrics] = None,
) -> CatalogStoreClient:
    http_client = HttpClient(
        api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
        metrics=metrics,
    )
    budget = RequestBudget(max_reads=max_reads, max_writes=max_writes, metrics=metrics)
    return CatalogStoreClient(http_client, url, budget, metrics=metrics)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Browse the destination catalog by state and city")
    parser.add_argument("--preflight", action="store_true", help="Run offline checks only")
    parser.add_argument("--preflight-online", action="store_true", help="Preflight plus one store read")
    parser.add_argument("--state", type=str, default=None, help="Only show this state")
    parser.add_argument("--category", type=str, default=None, help="Only show places in this category")
    parser.add_argument("--query", type=str, default="", help="Free-text filter over names and descriptions")
    parser.add_argument("--expand", action="append", default=[], help="State to show expanded (repeatable)")
    parser.add_argument("--places", action="store_true", help="List places under each city")
    parser.add_argument("--favorite", action="append", default=[], help="Place id to mark as favorite")
    parser.add_argument("--nearby", type=str, default=None, help="List places near this place id")
    parser.add_argument("--seed-only", action="store_true", help="Skip the store and use bundled seed data")
    parser.add_argument("--limit", type=int, default=config.TOP_RATED_LIMIT, help="Top rated places in summary")
    parser.add_argument("--out", type=str, default=None, help="Directory for catalog.json")
    return parser.parse_args(argv)


def run_preflight(url: Optional[str], api_key: Optional[str], online: bool) -> int:
    ok = True

    if url and api_key:
        print("Store credentials: OK")
    else:
        print(f"Store credentials: MISSING ({config.SUPABASE_URL_ENV}, {config.SUPABASE_KEY_ENV})")

    try:
        seed = load_seed_records()
        print(f"Seed data: OK ({len(seed)} records)")
    except (OSError, ValueError) as exc:
        print(f"Seed data: FAIL ({exc})")
        ok = False

    print(
        "Request caps: max_reads={reads}, max_writes={writes}".format(
            reads=config.MAX_READ_REQUESTS_PER_SESSION,
            writes=config.MAX_WRITE_REQUESTS_PER_SESSION,
        )
    )

    if online:
        if not (url and api_key):
            print("Online store call: FAIL (missing credentials)")
            ok = False
        else:
            try:
                store = build_store(url, api_key, max_reads=1, max_writes=0)
                store.fetch_places(limit=1)
                print("Online store call: OK")
            except Exception as exc:
                print(f"Online store call: FAIL ({exc})")
                ok = False

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


async def _load_once(loader: CatalogLoader, selectors: Selectors):
    try:
        return await loader.refresh(selectors)
    finally:
        await loader.close()


def configure_collation() -> bool:
    """Adopt the user's LC_COLLATE so state, city and place names sort locale-aware."""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logging.getLogger(__name__).warning("Collation locale unavailable (%s); using code-point order", exc)
        return False
    return True


def main(argv: Optional[list] = None) -> int:
    load_env()
    config.load_catalog_config()
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    configure_collation()

    url, api_key = config.supabase_credentials()
    if args.preflight or args.preflight_online:
        return run_preflight(url, api_key, online=args.preflight_online)

    metrics = RequestMetrics()
    store = None
    if not args.seed_only:
        if url and api_key:
            store = build_store(url, api_key, metrics=metrics)
        else:
            print("Store credentials missing; using bundled seed data", file=sys.stderr)

    selectors = Selectors.from_dict({"state": args.state, "category": args.category})
    catalog = DestinationCatalog(favorites=FavoriteSet(args.favorite))
    loader = CatalogLoader(catalog, store=store)

    result = asyncio.run(_load_once(loader, selectors))
    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    outcome = result.value
    if outcome.error:
        print(f"Note: {outcome.error}", file=sys.stderr)

    view = catalog.filter(args.query, selectors, expanded=args.expand)
    if not view.ok:
        print(f"Error: {view.error}", file=sys.stderr)
        return 1

    summary = catalog.summary(limit=args.limit)
    for line in render_summary(summary):
        print(line)
    if metrics.network_reads:
        print(f"Store reads: {metrics.network_reads} (retries {metrics.retries})")
    print("")
    for line in render_hierarchy(view.value, show_places=args.places):
        print(line)

    nearby_payload = None
    if args.nearby:
        nearby = catalog.nearby_places(args.nearby)
        if not nearby.ok:
            print(f"Nearby: {nearby.error}", file=sys.stderr)
            return 1
        print("")
        print(f"Within {config.NEARBY_RADIUS_KM:g} km of {args.nearby}:")
        for place, dist in nearby.value:
            print(f"  {place.name} ({place.city}) {dist:.1f} km")
        nearby_payload = [
            {"place": place_to_dict(p, catalog.is_favorite(p.id)), "distance_km": round(d, 2)}
            for p, d in nearby.value
        ]

    if args.out:
        ensure_dir(args.out)
        out_path = os.path.join(args.out, "catalog.json")
        payload = {
            "generated_at": utc_now_iso(),
            "query": args.query,
            "selectors": {"state": selectors.state, "category": selectors.category},
            "summary": summary,
            "hierarchy": hierarchy_to_dict(view.value, favorites=list(catalog.favorites)),
        }
        if nearby_payload is not None:
            payload["nearby"] = nearby_payload
        write_json_object(out_path, payload)
        print(f"Done. Catalog written to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
