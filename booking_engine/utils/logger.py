"""Pipe-delimited logging shared by every layer of the booking engine."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from booking_engine.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request access lines would drown out booking events.
_QUIET_LOGGERS = ("uvicorn.access", "httpx")

_configured_level: Optional[str] = None


def configure_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> str:
    """Install the root handler on first call; later calls may only change the level.

    Returns the level now in effect.
    """
    global _configured_level

    resolved_level = (level or get_settings().log_level).upper()
    if _configured_level is None:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            stream=stream or sys.stdout,
        )
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    elif level is not None and resolved_level != _configured_level:
        logging.getLogger().setLevel(resolved_level)
    else:
        return _configured_level

    _configured_level = resolved_level
    return resolved_level


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
