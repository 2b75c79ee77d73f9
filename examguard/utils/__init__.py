from __future__ import annotations
"""
Examguard Utilities Module

Logging and event taxonomy helpers.
"""

from examguard.utils.logger import get_logger, setup_logging
from examguard.utils.alerts import (
    EventType,
    Severity,
    WarningMessage,
    get_event_title,
    get_warning_message,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "EventType",
    "Severity",
    "WarningMessage",
    "get_event_title",
    "get_warning_message",
]
