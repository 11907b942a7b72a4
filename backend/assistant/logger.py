"""Logger factory so every module prints the same way

Usage:
    from .logger import get_logger
    logger = get_logger(__name__)
"""

from __future__ import annotations
import logging
import sys
from typing import Optional

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _default_level() -> int:
    # Imported lazily so a broken .env still lets modules import their logger
    from .config import get_settings
    try:
        return getattr(logging, get_settings().LOG_LEVEL)
    except Exception:
        return logging.INFO


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    # Avoid adding duplicate handlers if the logger already exists
    if not logger.handlers:
        resolved = level if level is not None else _default_level()
        logger.setLevel(resolved)
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(resolved)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
        logger.addHandler(handler)
    return logger
