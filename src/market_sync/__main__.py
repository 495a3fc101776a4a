from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from typing import Any, List, Optional

from market_sync.adapters import fixture_for
from market_sync.aggregation import AggregationEngine
from market_sync.config import get_settings
from market_sync.coordinator import SyncCoordinator
from market_sync.domains import list_domains
from market_sync.errors import StoreUnavailableError
from market_sync.logs import configure_logging
from market_sync.models import parse_iso
from market_sync.signals import SignalComputer
from market_sync.storage import SQLiteStore


logger = logging.getLogger("msync.cli")


def dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, default=str) + "\n"


def _split(value: Optional[str]) -> List[str]:
    return [p.strip().lower() for p in str(value or "").split(",") if p.strip()]


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=None, help="SQLite DB path (default: MSYNC_DB_PATH or ./market.sqlite)")
    common.add_argument("--now", default=None, help="Override current time (ISO8601)")
    common.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, etc.)")
    common.add_argument("--log-json", action="store_true", help="Emit one JSON object per log line")

    parser = argparse.ArgumentParser(prog="market_sync", description="Market data sync and aggregation")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_sync = sub.add_parser("sync", parents=[common], help="Refresh stale domains, then rebuild derived tables")
    p_sync.add_argument(
        "--fixtures",
        default=None,
        help="Directory of <adapter_key>.json fixtures to use instead of live endpoints",
    )
    p_sync.add_argument(
        "--domains",
        default=None,
        help=f"Comma-separated domains (default: all of {','.join(list_domains())})",
    )
    p_sync.add_argument("--seed", type=int, default=None, help="Seed for estimated field values")

    sub.add_parser("signals", parents=[common], help="Recompute per-property signals")
    sub.add_parser("aggregates", parents=[common], help="Rebuild market aggregates")
    sub.add_parser("status", parents=[common], help="Show row counts, sources and coverage")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_lines=bool(args.log_json))

    settings = get_settings()
    changes: dict = {}
    if args.db:
        changes["db_path"] = str(args.db)
    if getattr(args, "domains", None):
        changes["enabled_domains"] = tuple(_split(args.domains))
    if getattr(args, "seed", None) is not None:
        changes["estimation_seed"] = int(args.seed)
    if changes:
        settings = dataclasses.replace(settings, **changes)

    try:
        now = parse_iso(args.now) if args.now else None
    except ValueError as e:
        logger.error("invalid --now %r: %s", args.now, e)
        print(dumps({"ok": False, "error": f"invalid --now: {args.now}"}), end="")
        return 2

    try:
        store = SQLiteStore(settings.db_path, chunk_size=settings.write_chunk_size)
    except StoreUnavailableError as e:
        logger.error("%s", e)
        print(dumps({"ok": False, "error": str(e)}), end="")
        return 2

    try:
        if args.cmd == "sync":
            kwargs: dict = {"settings": settings, "now": now}
            if args.fixtures:
                fixtures_dir = str(args.fixtures)
                kwargs["adapter_factory"] = lambda key: fixture_for(key, fixtures_dir)
            try:
                report = SyncCoordinator(store, **kwargs).evaluate_and_sync()
            except (KeyError, StoreUnavailableError) as e:
                print(dumps({"ok": False, "error": str(e)}), end="")
                return 2
            out = report.to_dict()
            print(dumps(out), end="")
            return 0 if out.get("ok") else 2

        if args.cmd == "signals":
            written = SignalComputer(store, settings=settings, now=now).refresh()
            print(dumps({"ok": True, "signals_written": written}), end="")
            return 0

        if args.cmd == "aggregates":
            now_iso = now.replace(microsecond=0).isoformat() if now else None
            res = AggregationEngine(store, settings=settings, now_iso=now_iso).refresh_aggregates()
            print(dumps({"ok": res.ok, **res.to_dict()}), end="")
            return 0 if res.ok else 2

        if args.cmd == "status":
            print(
                dumps(
                    {
                        "ok": True,
                        "db": settings.db_path,
                        "counts": store.counts(),
                        "data_sources": [m.to_dict() for m in store.list_data_sources()],
                        "coverage": [c.to_dict() for c in store.list_coverage()],
                    }
                ),
                end="",
            )
            return 0
    finally:
        store.close()

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
