# ./src/kvcache/utils/policy.py
"""Expiry and eviction rules for cache entries.

Run path: imported by ``kvcache.utils.store`` and ``kvcache.cache``.
Inputs: wall-clock milliseconds, TTLs in milliseconds, entry mappings.
Outputs: absolute expiry timestamps, expiry decisions, LRU victim keys.
Side effects: none beyond reading the system clock.
Operational notes: tests swap ``time.time`` to drive expiry deterministically.
"""

from __future__ import annotations

import time
from typing import Mapping, Optional

from ..models import CacheEntry


def now_ms() -> float:
    return time.time() * 1000.0


def expires_at(now: float, ttl_ms: Optional[int]) -> Optional[float]:
    """Absolute expiry for a TTL; ``None`` means the entry never expires."""
    if ttl_ms is None:
        return None
    return now + ttl_ms


def is_expired(entry: CacheEntry, now: float) -> bool:
    return entry.expires_at is not None and entry.expires_at <= now


def lru_key(entries: Mapping[str, CacheEntry]) -> Optional[str]:
    """Key with the smallest recency stamp, or ``None`` for an empty mapping.

    Recency stamps are unique, so the choice is always deterministic.
    """
    if not entries:
        return None
    return min(entries, key=lambda key: entries[key].recency)
