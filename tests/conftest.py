"""Pytest session fixtures for kvcache tests.

This module ensures local `src/` imports resolve without editable installation,
scrubs stale `__pycache__` folders, and provides a controllable wall clock.

Run path: auto-loaded by `pytest` in this repository.
Inputs: repository filesystem state.
Outputs: import path setup, a `clock` fixture, and a `clean_env` fixture.
Operational notes: the clock patches `time.time` through `kvcache.utils.policy`.
"""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
_CACHE_SCRUB_EXCLUDES = {
    ".git",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".venv",
    "build",
    "dist",
}
_ENV_NAMES = (
    "KVCACHE_STORAGE_PATH",
    "KVCACHE_MAX_SIZE",
    "KVCACHE_DEFAULT_TTL_MS",
    "KVCACHE_AUTO_PERSIST",
    "KVCACHE_PERSIST_ON_READ",
    "KVCACHE_LOG_LEVEL",
)


def _scrub_pycache(root: Path) -> None:
    for dirpath, dirnames, _filenames in os.walk(root, topdown=True):
        dirnames[:] = [
            name
            for name in dirnames
            if name not in _CACHE_SCRUB_EXCLUDES and name != "__pycache__"
        ]
        pycache = Path(dirpath) / "__pycache__"
        if pycache.exists():
            shutil.rmtree(pycache, ignore_errors=True)


if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from kvcache.utils import policy as policy_mod  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _cache_scrub_session() -> None:
    _scrub_pycache(PROJECT_ROOT)
    yield
    _scrub_pycache(PROJECT_ROOT)


class FakeClock:
    """Wall clock in whole seconds so millisecond math stays exact."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def time(self) -> float:
        return self.now

    def advance_ms(self, millis: float) -> None:
        self.now += millis / 1000.0


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(policy_mod.time, "time", fake.time)
    return fake


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
