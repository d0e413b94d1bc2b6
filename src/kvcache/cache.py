# ./src/kvcache/cache.py
"""kvcache core: a TTL + LRU key/value cache mirrored to a JSON file.

Used by both the public Python API and the CLI entrypoint.
Run via imports (``from kvcache import KeyValueCache``) or ``python -m kvcache.main``.
Inputs: string keys, plain-data values, optional TTLs in milliseconds, config via
``Config`` or ``--config`` JSON/env.
Outputs: copies of cached values, key sets, ``CacheStats`` snapshots.
Side effects: creates the storage directory at construction; rewrites the cache
file after mutations when ``auto_persist`` is on.
Operational notes: expiry is lazy (checked on access, no timers). Recency
changes from ``get`` stay in memory unless ``persist_on_read`` is set.
"""

from __future__ import annotations

import logging
import math
import os
import threading
from pathlib import Path
from typing import Any, List, Optional, Set, Union

from .models import CacheError, CacheStats, LoadError
from .utils.codec import (
    copy_value,
    decode_document,
    encode_document,
    ensure_parent_dir,
    prepare_value,
    read_document,
    write_atomic,
)
from .utils.config import Config, load_config
from .utils.logger import build_logger
from .utils.policy import expires_at, is_expired, now_ms
from .utils.store import EntryStore, StoreSnapshot

PathLike = Union[str, "os.PathLike[str]"]
Number = Union[int, float]


def _check_ttl(name: str, value: Optional[Number]) -> Optional[Number]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number of milliseconds or None")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite value >= 0, got {value!r}")
    return value


def _check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"cache keys must be str, got {type(key).__name__}")
    return key


class KeyValueCache:
    """Bounded key/value cache with per-entry expiry and durable persistence.

    At most ``max_size`` entries are kept; inserting a new key into a full
    cache evicts the least recently used one, after expired entries have been
    purged. Every public operation runs under one re-entrant lock.
    """

    def __init__(
        self,
        storage_path: PathLike,
        max_size: int,
        default_ttl: Optional[Number] = None,
        auto_persist: bool = True,
        *,
        persist_on_read: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        if not str(storage_path).strip():
            raise ValueError("storage_path is required")
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size <= 0:
            raise ValueError(f"max_size must be a positive integer, got {max_size!r}")

        self.storage_path = Path(storage_path)
        self.max_size = max_size
        self.default_ttl = _check_ttl("default_ttl", default_ttl)
        self.auto_persist = bool(auto_persist)
        self.persist_on_read = bool(persist_on_read)
        self.log = logger or build_logger("kvcache", logging.INFO)

        self._store = EntryStore()
        self._lock = threading.RLock()

        ensure_parent_dir(self.storage_path)
        self.load()

    @classmethod
    def from_config(cls, cfg: Config) -> "KeyValueCache":
        return cls(
            cfg.storage_path,
            cfg.max_size,
            cfg.default_ttl_ms,
            cfg.auto_persist,
            persist_on_read=cfg.persist_on_read,
            logger=build_logger(cfg.logger_name, cfg.log_level),
        )

    def __repr__(self) -> str:
        return (
            f"KeyValueCache(storage_path={str(self.storage_path)!r}, "
            f"max_size={self.max_size}, default_ttl={self.default_ttl!r})"
        )

    # -- public API --------------------------------------------------------

    def set(self, key: str, value: Any, ttl: Optional[Number] = None) -> None:
        """Store ``value`` under ``key``.

        ``ttl`` (milliseconds) overrides ``default_ttl`` for this entry; a TTL
        of 0 means the entry is expired on arrival, so it is never stored and
        any previous value under ``key`` is dropped. Raises
        ``SerializationError`` before touching the store when ``value`` is not
        plain data.
        """
        _check_key(key)
        effective_ttl = self.default_ttl if ttl is None else _check_ttl("ttl", ttl)
        stored = prepare_value(value, key)

        with self._lock:
            now = now_ms()
            snapshot = self._snapshot_if_persisting()
            self._purge_expired(now)

            if effective_ttl == 0:
                self._store.remove(key)
            else:
                if key not in self._store and len(self._store) >= self.max_size:
                    victim = self._store.evict_lru()
                    self.log.debug("Evicted least recently used key %r", victim)
                self._store.put(key, stored, expires_at(now, effective_ttl))

            if snapshot is not None:
                self._persist_or_rollback(snapshot)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the value for ``key``, or ``default`` when absent or expired.

        A hit counts as use for LRU ordering.
        """
        _check_key(key)
        with self._lock:
            entry = self._store.entry(key)
            if entry is None:
                return default
            if is_expired(entry, now_ms()):
                self._store.remove(key)
                return default

            persist = self.persist_on_read and self.auto_persist
            snapshot = self._store.snapshot() if persist else None
            entry = self._store.touch(key)
            if snapshot is not None:
                self._persist_or_rollback(snapshot)
            return copy_value(entry.value)

    def has(self, key: str) -> bool:
        _check_key(key)
        with self._lock:
            entry = self._store.entry(key)
            if entry is None:
                return False
            if is_expired(entry, now_ms()):
                self._store.remove(key)
                return False
            return True

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def delete(self, key: str) -> bool:
        """Remove ``key``; True only if a live entry was removed."""
        _check_key(key)
        with self._lock:
            snapshot = self._snapshot_if_persisting()
            self._purge_expired(now_ms())
            removed = self._store.remove(key)
            if removed and snapshot is not None:
                self._persist_or_rollback(snapshot)
            return removed

    def clear(self) -> None:
        with self._lock:
            snapshot = self._snapshot_if_persisting()
            self._store.reset()
            if snapshot is not None:
                self._persist_or_rollback(snapshot)

    def keys(self) -> Set[str]:
        with self._lock:
            self._purge_expired(now_ms())
            return set(self._store)

    def values(self) -> List[Any]:
        """Copies of live values, least recently used first."""
        with self._lock:
            self._purge_expired(now_ms())
            return [copy_value(entry.value) for _key, entry in self._store.by_recency()]

    def size(self) -> int:
        with self._lock:
            self._purge_expired(now_ms())
            return len(self._store)

    def __len__(self) -> int:
        return self.size()

    def stats(self) -> CacheStats:
        with self._lock:
            self._purge_expired(now_ms())
            return CacheStats(
                size=len(self._store),
                max_size=self.max_size,
                keys=tuple(sorted(self._store)),
                recency_counter=self._store.counter,
                default_ttl_ms=self.default_ttl,
                auto_persist=self.auto_persist,
            )

    def save(self) -> None:
        """Atomically write the live entries to ``storage_path``.

        Raises ``PersistenceError`` if the file cannot be written, or
        ``SerializationError`` if the state cannot be encoded; the store and the
        previous file are left as they were.
        """
        with self._lock:
            self._write_locked()

    def load(self) -> None:
        """Replace the store with the persisted state.

        A missing file, unreadable file, or malformed document leaves the
        cache empty instead of raising.
        """
        with self._lock:
            self._store.reset()
            try:
                text = read_document(self.storage_path)
                if text is None:
                    self.log.debug("No cache file at %s; starting empty", self.storage_path)
                    return
                entries, counter, dropped = decode_document(text)
            except LoadError as err:
                self.log.warning(
                    "Ignoring unreadable cache file %s: %s", self.storage_path, err
                )
                return

            self._store.restore((entries, counter))
            self._purge_expired(now_ms())
            while len(self._store) > self.max_size:
                victim = self._store.evict_lru()
                self.log.debug("Evicted %r on load to honour max_size", victim)
            if dropped:
                self.log.warning(
                    "Dropped %d malformed entries from %s", dropped, self.storage_path
                )
            self.log.debug(
                "Loaded %d entries from %s", len(self._store), self.storage_path
            )

    # -- internals ---------------------------------------------------------

    def _purge_expired(self, now: float) -> None:
        expired = self._store.purge_expired(now)
        if expired:
            self.log.debug("Purged %d expired entries", len(expired))

    def _write_locked(self) -> None:
        now = now_ms()
        live = [(key, entry) for key, entry in self._store.items() if not is_expired(entry, now)]
        try:
            write_atomic(self.storage_path, encode_document(live, self._store.counter))
        except CacheError as err:
            self.log.error("%s", err)
            raise

    def _snapshot_if_persisting(self) -> Optional[StoreSnapshot]:
        return self._store.snapshot() if self.auto_persist else None

    def _persist_or_rollback(self, snapshot: StoreSnapshot) -> None:
        try:
            self._write_locked()
        except CacheError:
            self._store.restore(snapshot)
            raise


def build_cache(config_path: Optional[str] = None) -> KeyValueCache:
    """Build a cache from defaults, an optional JSON config, ``.env`` and ``KVCACHE_*``."""
    return KeyValueCache.from_config(load_config(config_path))
