# ./src/kvcache/utils/codec.py
"""JSON persistence codec and atomic file I/O for the cache file.

Run path: imported by ``kvcache.cache`` for ``set`` validation, ``save`` and ``load``.
Inputs: cache values, ``CacheEntry`` records, the storage path on disk.
Outputs: detached value copies, the JSON document text, decoded entries.
Side effects: creates the storage directory; writes via temp file + ``os.replace``.
Operational notes: "never expires" is stored as JSON ``null``; unreadable
entries are dropped on decode instead of failing the whole file.
"""

from __future__ import annotations

import copy
import json
import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from ..models import CacheEntry, LoadError, PersistenceError, SerializationError

ENTRIES_FIELD = "entries"
COUNTER_FIELD = "recencyCounter"
VALUE_FIELD = "value"
EXPIRES_FIELD = "expiresAt"
RECENCY_FIELD = "recency"

_SCALARS = (int, bool, type(None))


def _check_text(text: str) -> str:
    # Lone surrogates survive in str but cannot be written as UTF-8.
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as err:
        raise SerializationError(f"text is not valid UTF-8: {err.reason}") from None
    return text


def _clone(value: Any, path_ids: Set[int]) -> Any:
    kind = type(value)
    if kind is str:
        return _check_text(value)
    if kind in _SCALARS:
        return value
    if kind is float:
        if not math.isfinite(value):
            raise SerializationError("non-finite float cannot be encoded")
        return value
    if kind is list or kind is dict:
        marker = id(value)
        if marker in path_ids:
            raise SerializationError("value contains a reference cycle")
        path_ids.add(marker)
        try:
            if kind is list:
                return [_clone(item, path_ids) for item in value]
            cloned: Dict[str, Any] = {}
            for name, item in value.items():
                if type(name) is not str:
                    raise SerializationError(
                        f"mapping key of type {type(name).__name__} cannot be encoded"
                    )
                cloned[_check_text(name)] = _clone(item, path_ids)
            return cloned
        finally:
            path_ids.discard(marker)
    raise SerializationError(f"value of type {kind.__name__} cannot be encoded")


def prepare_value(value: Any, key: Optional[str] = None) -> Any:
    """Validate ``value`` as plain data and return an independent copy.

    Accepted: ``str``, ``int``, finite ``float``, ``bool``, ``None``, and
    ``list``/``dict`` (string keys) nesting of those. Anything that would not
    come back identical from JSON, such as tuples, sets or enums, is rejected,
    as is text (including ``key``) that cannot be encoded as UTF-8.
    """
    try:
        if key is not None:
            _check_text(key)
        return _clone(value, set())
    except SerializationError as err:
        raise SerializationError(f"Cannot cache value for key {key!r}: {err}", key=key) from None
    except RecursionError as err:
        raise SerializationError(
            f"Cannot cache value for key {key!r}: nesting too deep", key=key
        ) from err


def copy_value(value: Any) -> Any:
    return copy.deepcopy(value)


def encode_document(items: List[Tuple[str, CacheEntry]], counter: int) -> str:
    entries = {
        key: {
            VALUE_FIELD: entry.value,
            EXPIRES_FIELD: entry.expires_at,
            RECENCY_FIELD: entry.recency,
        }
        for key, entry in items
    }
    document = {ENTRIES_FIELD: entries, COUNTER_FIELD: counter}
    try:
        return json.dumps(document, allow_nan=False, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as err:
        raise SerializationError(f"Cache state cannot be encoded: {err}") from err


def _is_number(value: Any) -> bool:
    return type(value) in (int, float) and math.isfinite(value)


def _decode_entry(key: str, raw: Any) -> Optional[CacheEntry]:
    if not isinstance(raw, dict) or VALUE_FIELD not in raw:
        return None
    expires = raw.get(EXPIRES_FIELD)
    recency = raw.get(RECENCY_FIELD)
    if expires is not None and not _is_number(expires):
        return None
    if type(recency) is not int or recency < 0:
        return None
    try:
        value = prepare_value(raw[VALUE_FIELD], key)
    except SerializationError:
        return None
    return CacheEntry(
        value=value,
        expires_at=None if expires is None else float(expires),
        recency=recency,
    )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"unsupported JSON constant {name}")


def decode_document(text: str) -> Tuple[Dict[str, CacheEntry], int, int]:
    """Decode the cache file into ``(entries, counter, dropped_count)``.

    Raises ``LoadError`` when the document itself is unusable. Malformed
    entries are dropped and counted. Colliding recency stamps are renumbered
    in ``(recency, key)`` order so stamps stay unique.
    """
    try:
        document = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as err:
        raise LoadError(f"cache file is not valid JSON: {err}") from err

    if not isinstance(document, dict):
        raise LoadError("cache file root is not an object")
    raw_entries = document.get(ENTRIES_FIELD)
    if not isinstance(raw_entries, dict):
        raise LoadError(f"cache file has no {ENTRIES_FIELD!r} object")

    decoded: Dict[str, CacheEntry] = {}
    dropped = 0
    for key, raw in raw_entries.items():
        entry = _decode_entry(key, raw)
        if entry is None:
            dropped += 1
            continue
        decoded[key] = entry

    stamps = [entry.recency for entry in decoded.values()]
    if len(set(stamps)) != len(stamps):
        ordered = sorted(decoded.items(), key=lambda item: (item[1].recency, item[0]))
        decoded = {
            key: CacheEntry(entry.value, entry.expires_at, position)
            for position, (key, entry) in enumerate(ordered, start=1)
        }
        stamps = list(range(1, len(ordered) + 1))

    counter = document.get(COUNTER_FIELD)
    if type(counter) is not int or counter < 0:
        counter = 0
    counter = max([counter, *stamps])
    return decoded, counter, dropped


def ensure_parent_dir(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise PersistenceError(
            f"Cannot create cache directory {path.parent}: {err}", path=str(path)
        ) from err


def read_document(path: Path) -> Optional[str]:
    """Return the cache file text, or ``None`` when no file exists yet."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as err:
        raise LoadError(f"cannot read cache file: {err}") from err


def _file_mode(path: Path) -> int:
    """Mode for a new cache file: keep the existing one, else honour the umask."""
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _fsync_dir(directory: Path) -> None:
    if os.name != "posix":
        return
    fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers see the old or new file, never a mix.

    Raises ``SerializationError`` before touching the disk when ``text`` cannot
    be encoded, and ``PersistenceError`` for any I/O failure.
    """
    try:
        payload = text.encode("utf-8")
    except UnicodeEncodeError as err:
        raise SerializationError(f"Cache state cannot be encoded: {err}") from err

    tmp: Optional[str] = None
    try:
        mode = _file_mode(path)
        fd, tmp = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
        tmp = None
        _fsync_dir(path.parent)
    except OSError as err:
        raise PersistenceError(f"Failed to save cache to {path}: {err}", path=str(path)) from err
    finally:
        if tmp is not None:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
