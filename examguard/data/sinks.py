"""
Event and Session Sinks

Write-side collaborators of the lifecycle manager. Hosts plug in their own
storage; the in-memory versions here back the API server and tests.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from examguard.engine.errors import SessionStoreError
from examguard.engine.results import Session, SessionStatus, utcnow


@runtime_checkable
class EventRecorder(Protocol):
    """Persists proctoring events and media. Calls are fire-and-forget."""

    async def record_event(
        self,
        session_id: str,
        event_type: str,
        severity: str,
        description: str,
        snapshot_ref: Optional[str] = None,
        confidence: Optional[float] = None,
        details: Optional[dict] = None,
    ) -> None: ...

    async def store_media(self, session_id: str, kind: str, data: bytes) -> str: ...


@runtime_checkable
class SessionStore(Protocol):
    """Durable record of sessions."""

    async def create_session(self, session: Session) -> str: ...

    async def end_session(self, session_id: str, status: SessionStatus, reason: Optional[str] = None) -> None: ...


# ============================================================================
# In-memory implementations
# ============================================================================

@dataclass
class RecordedEvent:
    """An event as stored by InMemoryEventRecorder."""
    session_id: str
    event_type: str
    severity: str
    description: str
    snapshot_ref: Optional[str] = None
    confidence: Optional[float] = None
    details: dict = field(default_factory=dict)
    recorded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "event_type": self.event_type,
            "severity": self.severity,
            "description": self.description,
            "snapshot_ref": self.snapshot_ref,
            "confidence": self.confidence,
            "details": self.details,
            "recorded_at": self.recorded_at.isoformat(),
        }


class InMemoryEventRecorder:
    """Keeps events and media blobs in process memory."""

    def __init__(self):
        self.events: list[RecordedEvent] = []
        self.media: dict[str, tuple[str, bytes]] = {}

    async def record_event(
        self,
        session_id: str,
        event_type: str,
        severity: str,
        description: str,
        snapshot_ref: Optional[str] = None,
        confidence: Optional[float] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.events.append(
            RecordedEvent(
                session_id=session_id,
                event_type=event_type,
                severity=severity,
                description=description,
                snapshot_ref=snapshot_ref,
                confidence=confidence,
                details=dict(details or {}),
            )
        )

    async def store_media(self, session_id: str, kind: str, data: bytes) -> str:
        ref = f"{session_id}/{kind}/{uuid.uuid4().hex}"
        self.media[ref] = (kind, data)
        return ref

    def events_for(self, session_id: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.session_id == session_id]


class InMemorySessionStore:
    """Session records keyed by generated id."""

    def __init__(self):
        self.sessions: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def create_session(self, session: Session) -> str:
        session_id = f"session-{next(self._ids)}"
        record = session.to_dict()
        record["id"] = session_id
        self.sessions[session_id] = record
        return session_id

    async def end_session(self, session_id: str, status: SessionStatus, reason: Optional[str] = None) -> None:
        record = self.sessions.get(session_id)
        if record is None:
            raise SessionStoreError(f"Unknown session {session_id}")

        record["status"] = SessionStatus(status).value
        record["ended_at"] = utcnow().isoformat()
        record["end_reason"] = reason
