"""
Examguard Errors

Exception hierarchy for capture, setup and lifecycle failures.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class CaptureErrorKind(str, Enum):
    """Why a capture could not be started."""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    DEVICE_BUSY = "device_busy"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# Remediation text rendered by the setup screen
REMEDIATION_MESSAGES = {
    CaptureErrorKind.PERMISSION_DENIED: "{device} access was denied. Please allow permissions and try again.",
    CaptureErrorKind.DEVICE_UNAVAILABLE: "No {device_lower} found. Please connect a device and try again.",
    CaptureErrorKind.DEVICE_BUSY: "{device} is already in use by another application.",
    CaptureErrorKind.TIMEOUT: "{device} did not respond in time. Please try again.",
    CaptureErrorKind.UNKNOWN: "Failed to access {device_lower}. Please check your settings.",
}


class ProctoringError(Exception):
    """Base class for all examguard errors."""


class CaptureError(ProctoringError):
    """
    A capture stream could not be started.

    Attributes:
        kind: Distinct failure kind so callers can pick a remediation
        capture: Which capture failed (video, audio, screen)
    """

    def __init__(self, kind: CaptureErrorKind, capture: str, message: Optional[str] = None):
        self.kind = CaptureErrorKind(kind)
        self.capture = capture
        self.message = message or remediation_message(self.kind, capture)
        super().__init__(self.message)


class SetupError(ProctoringError):
    """
    Entering the active phase failed; nothing was left acquired.

    Attributes:
        kind: A CaptureErrorKind value or ``session_create_failed``
    """

    SESSION_CREATE_FAILED = "session_create_failed"

    def __init__(self, kind: str, message: str, capture: Optional[str] = None):
        self.kind = kind.value if isinstance(kind, Enum) else kind
        self.capture = capture
        self.message = message
        super().__init__(message)


class InvalidTransitionError(ProctoringError):
    """A lifecycle transition is not legal from the current phase."""

    def __init__(self, action: str, phase: str):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while {phase}")


class SessionStoreError(ProctoringError):
    """The session store rejected a write."""


_DEVICE_NAMES = {
    "video": "Camera",
    "audio": "Microphone",
    "screen": "Screen sharing",
}


def remediation_message(kind: CaptureErrorKind, capture: str) -> str:
    """Get user-facing remediation text for a capture failure."""
    device = _DEVICE_NAMES.get(capture, capture)
    template = REMEDIATION_MESSAGES.get(kind, REMEDIATION_MESSAGES[CaptureErrorKind.UNKNOWN])
    text = template.format(device=device, device_lower=device.lower())
    return text[0].upper() + text[1:]
