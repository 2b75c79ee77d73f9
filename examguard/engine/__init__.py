from __future__ import annotations
"""
Examguard Engine - value types, errors and scheduling primitives.

- Results: DetectionResult, ExamWarning, Session, Intervention
- Errors: ProctoringError hierarchy
- EventBus: typed topics with subscription handles
- Timers: generation counter, interval and one-shot timers
"""

from examguard.engine.results import (
    DetectionResult,
    ExamWarning,
    Indicators,
    Intervention,
    InterventionType,
    Phase,
    Session,
    SessionStatus,
)
from examguard.engine.errors import (
    CaptureError,
    CaptureErrorKind,
    InvalidTransitionError,
    ProctoringError,
    SessionStoreError,
    SetupError,
)
from examguard.engine.bus import EventBus, Subscription, SubscriptionGroup, Topic
from examguard.engine.timers import GenerationCounter, IntervalTimer, OneShotTimer

__all__ = [
    # Results
    "DetectionResult",
    "ExamWarning",
    "Indicators",
    "Intervention",
    "InterventionType",
    "Phase",
    "Session",
    "SessionStatus",
    # Errors
    "CaptureError",
    "CaptureErrorKind",
    "InvalidTransitionError",
    "ProctoringError",
    "SessionStoreError",
    "SetupError",
    # Bus
    "EventBus",
    "Subscription",
    "SubscriptionGroup",
    "Topic",
    # Timers
    "GenerationCounter",
    "IntervalTimer",
    "OneShotTimer",
]
