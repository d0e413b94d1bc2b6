#!/usr/bin/env python3
# ./src/kvcache/main.py
"""Command-line interface for inspecting and editing a kvcache file.

Run via ``kvcache`` (console script) or ``python -m kvcache.main``.
Inputs: CLI command + positional key/value arguments + optional ``--config`` JSON
path and ``--path`` storage override.
Outputs: JSON/text printed to stdout; exit 1 on a cache miss, 2 on cache errors.
Side effects: reads and (for mutating commands) rewrites the cache file.
Operational notes: VALUE arguments are parsed as JSON and fall back to plain strings.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from typing import Any, Optional

from .cache import KeyValueCache
from .models import CacheError
from .utils.config import load_config


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def build_cache_for_cli(
    config_path: Optional[str], storage_path: Optional[str]
) -> KeyValueCache:
    cfg = load_config(config_path)
    if storage_path:
        cfg.storage_path = storage_path
    return KeyValueCache.from_config(cfg)


def _cli() -> int:
    parser = argparse.ArgumentParser(
        prog="kvcache",
        description="TTL + LRU key/value cache backed by a JSON file",
    )
    parser.add_argument("--config", help="Path to config.json", default=None)
    parser.add_argument("--path", help="Cache file path (overrides config)", default=None)
    subcommands = parser.add_subparsers(dest="cmd", required=True)

    set_parser = subcommands.add_parser("set", help="Store a value")
    set_parser.add_argument("key")
    set_parser.add_argument("value", help="JSON value; non-JSON text is stored as a string")
    set_parser.add_argument("--ttl", type=int, default=None, help="TTL in milliseconds")

    get_parser = subcommands.add_parser("get", help="Print a value as JSON")
    get_parser.add_argument("key")

    has_parser = subcommands.add_parser("has", help="Check whether a key is live")
    has_parser.add_argument("key")

    delete_parser = subcommands.add_parser("delete", help="Remove a key")
    delete_parser.add_argument("key")

    subcommands.add_parser("keys", help="List live keys")
    subcommands.add_parser("clear", help="Remove every entry")
    subcommands.add_parser("stats", help="Show cache statistics")

    args = parser.parse_args()

    try:
        cache = build_cache_for_cli(args.config, args.path)

        if args.cmd == "set":
            cache.set(args.key, _parse_value(args.value), ttl=args.ttl)
            if not cache.auto_persist:
                cache.save()
        elif args.cmd == "get":
            if not cache.has(args.key):
                return 1
            print(_to_json(cache.get(args.key)))
        elif args.cmd == "has":
            print("true" if cache.has(args.key) else "false")
        elif args.cmd == "delete":
            removed = cache.delete(args.key)
            if removed and not cache.auto_persist:
                cache.save()
            print("true" if removed else "false")
        elif args.cmd == "keys":
            print(_to_json(sorted(cache.keys())))
        elif args.cmd == "clear":
            cache.clear()
            if not cache.auto_persist:
                cache.save()
        elif args.cmd == "stats":
            print(_to_json(dataclasses.asdict(cache.stats())))
    except CacheError as err:
        print(f"kvcache: {err}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    raise SystemExit(_cli())
