from __future__ import annotations
"""
Examguard Logger

One stdout handler on the package logger; module loggers propagate to it.
"""

import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "examguard"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _package_logger(format_str: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format_str or DEFAULT_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return root


def get_logger(
    name: str,
    level: Optional[int] = None,
    format_str: Optional[str] = None,
) -> logging.Logger:
    """
    Get a logger in the examguard hierarchy.

    Args:
        name: Logger name (usually __name__)
        level: Level for this logger only; inherits the package level when None
        format_str: Format of the shared handler, applied on first use

    Returns:
        Logger instance
    """
    root = _package_logger(format_str)
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        logger = logging.getLogger(name)
    else:
        logger = root.getChild(name)

    if level is not None:
        logger.setLevel(level)
    return logger


def setup_logging(level: str = "INFO") -> None:
    """
    Set the package log level and quiet noisy libraries.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    _package_logger().setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger("livekit").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
