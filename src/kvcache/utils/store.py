# ./src/kvcache/utils/store.py
"""In-memory entry index with a global recency counter.

Run path: owned by ``kvcache.cache.KeyValueCache``; never shared.
Inputs: keys, already-validated values, absolute expiry timestamps.
Outputs: ``CacheEntry`` records, purge/eviction results, state snapshots.
Side effects: in-memory mutable store only (persistence lives in ``codec``).
Operational notes: not thread-safe on its own; the owning cache holds the lock.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..models import CacheEntry
from .policy import is_expired, lru_key

StoreSnapshot = Tuple[Dict[str, CacheEntry], int]


class EntryStore:
    """Key to ``CacheEntry`` mapping stamped by one monotonic counter."""

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    @property
    def counter(self) -> int:
        return self._counter

    def entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def items(self) -> List[Tuple[str, CacheEntry]]:
        return list(self._entries.items())

    def by_recency(self) -> List[Tuple[str, CacheEntry]]:
        return sorted(self._entries.items(), key=lambda item: item[1].recency)

    def _advance(self) -> int:
        self._counter += 1
        return self._counter

    def put(self, key: str, value: Any, expires_at: Optional[float]) -> CacheEntry:
        entry = CacheEntry(value=value, expires_at=expires_at, recency=self._advance())
        self._entries[key] = entry
        return entry

    def touch(self, key: str) -> CacheEntry:
        """Mark ``key`` as most recently used."""
        entry = replace(self._entries[key], recency=self._advance())
        self._entries[key] = entry
        return entry

    def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self, now: float) -> List[str]:
        expired = [key for key, entry in self._entries.items() if is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return expired

    def evict_lru(self) -> Optional[str]:
        victim = lru_key(self._entries)
        if victim is not None:
            del self._entries[victim]
        return victim

    def reset(self) -> None:
        self._entries.clear()
        self._counter = 0

    def snapshot(self) -> StoreSnapshot:
        # Entries are frozen, so a shallow copy is a full snapshot.
        return dict(self._entries), self._counter

    def restore(self, snapshot: StoreSnapshot) -> None:
        entries, counter = snapshot
        self._entries = dict(entries)
        self._counter = counter
