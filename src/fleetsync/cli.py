"""Command-line entry point.

Usage
-----
::

    fleetsync status
    fleetsync sync
    fleetsync fetch vehicles --json

Defaults come from ``FLEETSYNC_*`` environment variables; ``--base-url``
and ``--data-dir`` override them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from fleetsync.config import FleetSyncConfig
from fleetsync.context import FleetSyncContext
from fleetsync.exceptions import FleetSyncConfigError
from fleetsync.models.categories import EntityCategory


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleetsync", description="Offline cache and sync for the fleet API")
    parser.add_argument("--base-url", help="API origin (default: $FLEETSYNC_BASE_URL)")
    parser.add_argument("--data-dir", type=Path, help="Local store directory (default: $FLEETSYNC_DATA_DIR)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Probe the API and count pending registrations")
    sub.add_parser("sync", help="Submit pending registrations to the server")
    fetch = sub.add_parser("fetch", help="Fetch a category (falls back to the local store)")
    fetch.add_argument("category", choices=[c.value for c in EntityCategory])
    fetch.add_argument("--json", action="store_true", help="Print the raw JSON list")
    return parser


def _config_from_args(args: argparse.Namespace) -> FleetSyncConfig:
    overrides: dict[str, Any] = {"auto_sync": False}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    return FleetSyncConfig.from_env(**overrides)


async def _run(args: argparse.Namespace, config: FleetSyncConfig) -> int:
    async with FleetSyncContext(config) as ctx:
        online = await ctx.probe_connectivity()

        if args.command == "status":
            pending = await ctx.registrations.pending_count()
            print(f"API:     {'online' if online else 'offline'} ({config.base_url})")
            print(f"Store:   {config.data_dir}")
            print(f"Pending: {pending}")
            return 0

        if args.command == "sync":
            if not online:
                print("Offline: nothing was sent.", file=sys.stderr)
                return 1
            ok = await ctx.sync_with_server()
            remaining = await ctx.registrations.pending_count()
            print(f"Sync {'complete' if ok else 'incomplete'}: {remaining} pending")
            return 0 if ok else 1

        category = EntityCategory(args.category)
        entities = await ctx.fetcher.fetch_category(category)
        if args.json:
            print(json.dumps(entities, indent=2, ensure_ascii=False))
        else:
            source = "network" if online else "local store"
            print(f"{len(entities)} {category.value} ({source})")
            for entity in entities:
                if not isinstance(entity, dict):
                    print(f"  {entity}")
                    continue
                label = entity.get("name") or entity.get("plate") or entity.get("type") or ""
                print(f"  {entity.get('id')}: {label}")
        return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _config_from_args(args)
    except FleetSyncConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
