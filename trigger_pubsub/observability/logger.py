"""Structured logging for multiplexer events (subscribe, unsubscribe, dispatch, publish)."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _default_level() -> int:
    name = (os.environ.get("PUBSUB_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """Return a configured logger; events are logged by name with context in `extra`."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(level if level is not None else _default_level())
    return logger
