# ./src/kvcache/models.py
"""Data records and exception types shared across kvcache.

Run path: imported by ``kvcache.cache``, the utility modules, and tests.
Inputs: none (pure declarations).
Outputs: ``CacheEntry``/``CacheStats`` records and the ``CacheError`` family.
Side effects: none.
Operational notes: entries are frozen; recency updates replace the record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class CacheEntry:
    """One stored value with its absolute expiry and recency stamp."""

    value: Any
    expires_at: Optional[float]
    recency: int


@dataclass
class CacheStats:
    size: int
    max_size: int
    keys: Tuple[str, ...] = field(default_factory=tuple)
    recency_counter: int = 0
    default_ttl_ms: Optional[int] = None
    auto_persist: bool = True


class CacheError(Exception):
    """Base exception for all kvcache errors."""


class SerializationError(CacheError):
    """Raised when a value cannot be durably encoded."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class PersistenceError(CacheError):
    """Raised when the cache file cannot be written."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class LoadError(CacheError):
    """Internal: persisted state could not be decoded. Never leaves ``load``."""
