from __future__ import annotations
"""
Event Types and Constants

Defines all proctoring event types, severities, titles and the warning
messages shown to candidates.
"""

from enum import Enum
from dataclasses import dataclass


class EventType(str, Enum):
    """Types of proctoring events."""
    # Visual
    NO_FACE_DETECTED = "no_face_detected"
    MULTIPLE_FACES = "multiple_faces"
    PROHIBITED_OBJECT = "prohibited_object"
    LOOKING_AWAY = "looking_away"

    # Audio
    SUSPICIOUS_AUDIO = "suspicious_audio"

    # Environment
    FULLSCREEN_EXIT = "fullscreen_exit"
    NETWORK_DISCONNECTION = "network_disconnection"
    NETWORK_RECONNECTION = "network_reconnection"

    # Lifecycle
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SYSTEM_INFO = "system_info"


class Severity(str, Enum):
    """Event severity levels."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def expires(self) -> bool:
        """Whether warnings of this severity dismiss themselves."""
        return self in (Severity.LOW, Severity.MEDIUM)


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


EVENT_TITLES = {
    EventType.NO_FACE_DETECTED: "No Face Detected",
    EventType.MULTIPLE_FACES: "Multiple Faces Detected",
    EventType.PROHIBITED_OBJECT: "Unauthorized Object Detected",
    EventType.LOOKING_AWAY: "Student Looking Away",
    EventType.SUSPICIOUS_AUDIO: "Conversation Detected",
    EventType.FULLSCREEN_EXIT: "Fullscreen Exited",
    EventType.NETWORK_DISCONNECTION: "Network Disconnected",
    EventType.NETWORK_RECONNECTION: "Network Reconnected",
    EventType.SESSION_PAUSED: "Exam Paused",
    EventType.SESSION_RESUMED: "Exam Resumed",
    EventType.SYSTEM_INFO: "System Information",
}


def get_event_title(event_type: str) -> str:
    """Get display title for an event type."""
    try:
        return EVENT_TITLES[EventType(event_type)]
    except ValueError:
        return "Proctoring Alert"


@dataclass
class WarningMessage:
    """Warning message for repeated occurrences."""
    gentle: str
    serious: str
    final: str


# Warning messages shown to the candidate
WARNING_MESSAGES = {
    EventType.NO_FACE_DETECTED: WarningMessage(
        gentle="We can't see your face. Please make sure you are in front of the camera.",
        serious="Your face needs to be visible throughout the exam. Please adjust your position.",
        final="Your face must be visible at all times. This is a final warning.",
    ),
    EventType.MULTIPLE_FACES: WarningMessage(
        gentle="Multiple faces are visible. Please make sure you are alone in the room.",
        serious="This exam requires you to be alone. Please ensure no one else is visible.",
        final="Multiple people have been detected several times. This is your final warning.",
    ),
    EventType.PROHIBITED_OBJECT: WarningMessage(
        gentle="An unauthorized object is visible. Please clear your desk.",
        serious="Phones, books and other materials are not permitted during this exam.",
        final="This is a final warning. Further use of unauthorized materials may end your exam.",
    ),
    EventType.LOOKING_AWAY: WarningMessage(
        gentle="Please keep your attention on the screen.",
        serious="Looking away from the screen repeatedly has been noted.",
        final="Consistent looking away has been recorded. Please keep focus on the exam.",
    ),
    EventType.SUSPICIOUS_AUDIO: WarningMessage(
        gentle="We are picking up conversation. Please make sure you are in a quiet space.",
        serious="Talking during the exam is not permitted.",
        final="Conversation has been detected repeatedly. This is your final warning.",
    ),
    EventType.FULLSCREEN_EXIT: WarningMessage(
        gentle="Please return to fullscreen mode.",
        serious="The exam must stay in fullscreen. Please return to fullscreen mode now.",
        final="Leaving fullscreen has been recorded several times. This is your final warning.",
    ),
    EventType.NETWORK_DISCONNECTION: WarningMessage(
        gentle="Your network connection was lost. Please check your connection.",
        serious="Your connection keeps dropping. Please move to a stable network.",
        final="Repeated disconnections have been recorded.",
    ),
}


def get_warning_message(event_type: str, warning_level: int, fallback: str = "") -> str:
    """
    Get appropriate warning message based on type and warning level.

    Args:
        event_type: Type of event
        warning_level: 1=gentle, 2=serious, 3+=final
        fallback: Message used for types without registered messages

    Returns:
        Warning message string
    """
    try:
        messages = WARNING_MESSAGES.get(EventType(event_type))
    except ValueError:
        messages = None

    if not messages:
        return fallback or "Suspicious activity detected"

    if warning_level <= 1:
        return messages.gentle
    elif warning_level == 2:
        return messages.serious
    else:
        return messages.final
