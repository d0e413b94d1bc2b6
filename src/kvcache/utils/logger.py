# ./src/kvcache/utils/logger.py
"""Logger builder for kvcache.

Run path: imported by ``kvcache.cache``.
Inputs: logger name and level.
Outputs: configured ``logging.Logger`` instance.
Side effects: attaches a stream handler when one is not already present.
Operational notes: cache code logs keys only, never cached values.
"""

from __future__ import annotations

import logging

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s :: %(message)s"


def build_logger(name: str, level: int, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """Create or reuse a configured logger instance."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger
