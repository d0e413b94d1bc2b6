"""kvcache: a TTL + LRU key/value cache with crash-safe file persistence."""

from .cache import KeyValueCache, build_cache
from .models import (
    CacheEntry,
    CacheError,
    CacheStats,
    PersistenceError,
    SerializationError,
)
from .utils.config import Config, load_config

__all__ = [
    "KeyValueCache",
    "build_cache",
    "Config",
    "load_config",
    "CacheEntry",
    "CacheStats",
    "CacheError",
    "SerializationError",
    "PersistenceError",
]

__version__ = "0.1.0"
