# ./src/kvcache/utils/config.py
"""Configuration loader and coercion utilities for kvcache.

Used by ``build_cache``/``KeyValueCache.from_config`` and the CLI.
Run path: internal import via ``kvcache.cache`` or direct helper import in tests.
Inputs: optional JSON config path, optional local ``.env``, and ``KVCACHE_*`` variables.
Outputs: populated ``Config`` dataclass with normalized types.
Side effects: may read local files and mutate process env when ``.env`` is present.
Operational notes: malformed overrides are ignored so defaults stay deterministic.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

_LOG_LEVELS = {
    "CRITICAL": 50,
    "ERROR": 40,
    "WARNING": 30,
    "INFO": 20,
    "DEBUG": 10,
    "NOTSET": 0,
}

_NULL_WORDS = {"", "none", "null", "never"}


@dataclass
class Config:
    storage_path: str = ".kvcache/cache.json"
    max_size: int = 100
    default_ttl_ms: Optional[int] = None  # None: entries never expire by default

    auto_persist: bool = True
    persist_on_read: bool = False

    log_level: int = 20
    logger_name: str = "kvcache"


def _to_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _to_int(value: Any, default: int) -> int:
    try:
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip():
            return int(value.strip())
    except ValueError:
        return default
    return default


def _to_positive_int(value: Any, default: int) -> int:
    coerced = _to_int(value, default)
    return coerced if coerced > 0 else default


def _to_optional_ttl(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in _NULL_WORDS:
        return None
    if isinstance(value, (int, float, str)) and not isinstance(value, bool):
        coerced = _to_int(value, 0)
        # A default TTL of 0 would hide every entry, so <= 0 means "no default TTL".
        return coerced if coerced > 0 else None
    return default


def _to_log_level(value: Any, default: int) -> int:
    if isinstance(value, str) and value.strip().upper() in _LOG_LEVELS:
        return _LOG_LEVELS[value.strip().upper()]
    return _to_int(value, default)


def _apply_overrides(cfg: Config, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue

        if key == "storage_path":
            if isinstance(value, str) and value.strip():
                cfg.storage_path = value.strip()
            continue

        if key == "max_size":
            cfg.max_size = _to_positive_int(value, cfg.max_size)
            continue

        if key == "default_ttl_ms":
            cfg.default_ttl_ms = _to_optional_ttl(value, cfg.default_ttl_ms)
            continue

        if key in {"auto_persist", "persist_on_read"}:
            setattr(cfg, key, _to_bool(value, getattr(cfg, key)))
            continue

        if key == "log_level":
            cfg.log_level = _to_log_level(value, cfg.log_level)
            continue

        if key == "logger_name" and isinstance(value, str) and value.strip():
            cfg.logger_name = value.strip()


def _load_json_config(config_path: str) -> dict[str, Any]:
    path = Path(config_path)
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _load_dotenv_if_present() -> None:
    env_path = Path(".env")
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=True)


def _env_overrides() -> dict[str, Any]:
    names = {
        "storage_path": "KVCACHE_STORAGE_PATH",
        "max_size": "KVCACHE_MAX_SIZE",
        "default_ttl_ms": "KVCACHE_DEFAULT_TTL_MS",
        "auto_persist": "KVCACHE_AUTO_PERSIST",
        "persist_on_read": "KVCACHE_PERSIST_ON_READ",
        "log_level": "KVCACHE_LOG_LEVEL",
    }
    return {
        field_name: os.environ[env_name]
        for field_name, env_name in names.items()
        if env_name in os.environ
    }


def load_config(config_path: Optional[str]) -> Config:
    """Load runtime config with precedence: defaults -> JSON -> dotenv -> env."""
    cfg = Config()

    if config_path:
        _apply_overrides(cfg, _load_json_config(config_path))

    _load_dotenv_if_present()
    _apply_overrides(cfg, _env_overrides())
    return cfg
