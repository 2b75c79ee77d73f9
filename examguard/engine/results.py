"""
Examguard Engine - Result and Record Classes

Value types passed between the capture, detection, aggregation and
lifecycle components.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from examguard.utils.alerts import Severity


def utcnow() -> datetime:
    return datetime.utcnow()


class SessionStatus(str, Enum):
    """Persisted status of a proctoring session."""
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.TERMINATED)


class Phase(str, Enum):
    """Phase of the lifecycle state machine."""
    CONSENT = "consent"
    SETUP = "setup"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.TERMINATED)


@dataclass(frozen=True)
class DetectionResult:
    """
    Normalized output of a detector or the environment monitor.

    Attributes:
        event_type: What was detected
        severity: How serious it is
        confidence: Model confidence 0-1
        description: Human readable description
        requires_alert: Whether a candidate-facing warning should be raised
        occurred_at: When the detection happened
        details: Detector specific extras
        source: Name of the producing detector
    """
    event_type: str
    severity: Severity
    confidence: float
    description: str
    requires_alert: bool = False
    occurred_at: datetime = field(default_factory=utcnow)
    details: dict = field(default_factory=dict)
    source: str = ""

    def __post_init__(self):
        if isinstance(self.event_type, Enum):
            object.__setattr__(self, "event_type", self.event_type.value)
        object.__setattr__(self, "severity", Severity(self.severity))

    @property
    def is_violation(self) -> bool:
        return self.severity != Severity.INFO

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "severity": self.severity.value,
            "confidence": round(self.confidence, 3),
            "description": self.description,
            "requires_alert": self.requires_alert,
            "occurred_at": self.occurred_at.isoformat(),
            "details": self.details,
            "source": self.source,
        }


@dataclass
class ExamWarning:
    """A candidate-facing warning derived from a detection result."""
    type: str
    message: str
    severity: Severity
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def expires(self) -> bool:
        return self.severity.expires

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "severity": self.severity.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Indicators:
    """Status lights shown next to the exam."""
    camera: bool = False
    microphone: bool = False
    screen: bool = False
    ai_monitoring: bool = False
    network: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


class Session:
    """
    A proctored exam attempt.

    Only the lifecycle manager changes a session, and only through
    ``mark``. Once completed or terminated the record is frozen.
    """

    def __init__(
        self,
        student_id: str,
        exam_id: Optional[str] = None,
        quiz_id: Optional[str] = None,
        college_id: Optional[str] = None,
        device_info: Optional[dict] = None,
        consent_given: bool = False,
    ):
        if bool(exam_id) == bool(quiz_id):
            raise ValueError("A session belongs to exactly one of exam_id or quiz_id")

        self.id: Optional[str] = None
        self.student_id = student_id
        self.exam_id = exam_id
        self.quiz_id = quiz_id
        self.college_id = college_id
        self.device_info = dict(device_info or {})
        self.consent_given = consent_given
        self.status = SessionStatus.PENDING
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.end_reason: Optional[str] = None

    def mark(self, status: SessionStatus, reason: Optional[str] = None):
        """Move the record to a new status."""
        if self.status.is_terminal:
            raise ValueError(f"Session {self.id} is {self.status.value} and can no longer change")

        self.status = status
        if status == SessionStatus.ACTIVE and self.started_at is None:
            self.started_at = utcnow()
        if status.is_terminal:
            self.ended_at = utcnow()
            self.end_reason = reason

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.started_at is None:
            return None
        end = self.ended_at or utcnow()
        return int((end - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "quiz_id": self.quiz_id,
            "student_id": self.student_id,
            "college_id": self.college_id,
            "device_info": self.device_info,
            "consent_given": self.consent_given,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "end_reason": self.end_reason,
        }

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, status={self.status.value})"


class InterventionType(str, Enum):
    """Proctor command types."""
    MESSAGE = "message"
    PAUSE = "pause"
    TERMINATE = "terminate"


# Names used by the proctor dashboard
_INTERVENTION_ALIASES = {
    "warning": InterventionType.MESSAGE,
    "pause_exam": InterventionType.PAUSE,
    "terminate_exam": InterventionType.TERMINATE,
}


class Intervention(BaseModel):
    """
    A proctor-issued command delivered out-of-band.

    Accepts both ``type`` and the dashboard's ``intervention_type`` key.
    """

    id: str
    session_id: str
    type: InterventionType = Field(alias="intervention_type")
    message: Optional[str] = None
    issued_at: datetime = Field(default_factory=utcnow)
    issued_by: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("type", mode="before")
    @classmethod
    def _accept_aliases(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _INTERVENTION_ALIASES.get(value, value)
        return value
