"""
Session Runtime

Wires a ProctoringSession to the LiveKit room the candidate is in and keeps
everything that has to be closed with it.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from examguard.cfg import ProctoringConfig, Settings
from examguard.data.capture import MediaCaptureCoordinator
from examguard.data.sinks import EventRecorder, SessionStore
from examguard.detectors import build_detectors
from examguard.engine.bus import Topic
from examguard.engine.results import Phase
from examguard.models import ModelSet
from examguard.pipeline.environment import LocalEnvironmentSource
from examguard.service.session import ProctoringSession
from examguard.utils import get_logger

logger = get_logger(__name__)


@dataclass
class SessionRuntime:
    """A session and the resources it runs on."""
    session: ProctoringSession
    environment: LocalEnvironmentSource
    closers: list[Callable[[], Any]] = field(default_factory=list)

    def __post_init__(self):
        # Resources go as soon as the session ends; the entry stays queryable
        self.session.bus.subscribe(Topic.LIFECYCLE, self._on_lifecycle)

    async def _on_lifecycle(self, event: dict):
        if Phase(event["phase"]).is_terminal:
            await self.session.settle()
            await self.release()

    async def release(self):
        """Release resources in reverse order. Safe to call repeatedly."""
        closers, self.closers = self.closers, []
        for closer in reversed(closers):
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("❌ Error closing session resource")
        if closers:
            logger.info(f"🔌 Released {len(closers)} session resource(s)")

    async def close(self):
        """Dispose the session, then release its resources."""
        try:
            await self.session.dispose()
        finally:
            await self.release()


async def create_livekit_runtime(
    settings: Settings,
    config: ProctoringConfig,
    store: SessionStore,
    recorder: EventRecorder,
    models: ModelSet,
    student_id: str,
    room_name: str,
    participant_identity: str,
    exam_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
    college_id: Optional[str] = None,
) -> SessionRuntime:
    """
    Join the candidate's room and build a session on top of it.

    Args:
        settings: Service settings (LiveKit credentials)
        config: Per-exam proctoring configuration
        store: Session record sink
        recorder: Persisting event recorder; events are also published
            to proctors in the room
        models: Detector models
        student_id: Candidate
        room_name: LiveKit room of the exam attempt
        participant_identity: Identity the candidate joined with
        exam_id: Exam being taken
        quiz_id: Quiz being taken
        college_id: Owning college

    Returns:
        SessionRuntime whose ``close`` leaves the room
    """
    from examguard.data.livekit_backend import LiveKitCaptureBackend, LiveKitRoom
    from examguard.data.publisher import (
        LiveKitEnvironmentSource,
        LiveKitEventRecorder,
        LiveKitInterventionListener,
    )

    room = LiveKitRoom(settings.to_livekit_config())
    await room.connect(room_name)
    lk = room.config

    try:
        backend = LiveKitCaptureBackend(room.room, participant_identity)
        capture = MediaCaptureCoordinator(
            backend,
            open_timeout_seconds=config.capture_open_timeout_seconds,
            snapshot_quality=config.snapshot_quality,
        )
        environment = LiveKitEnvironmentSource(room.room, participant_identity, topic=lk.client_topic)

        detectors = build_detectors(
            config.detection,
            face_model=models.face,
            object_model=models.objects,
            gaze_model=models.gaze,
            audio=config.require_microphone,
        )

        session = ProctoringSession(
            student_id=student_id,
            config=config,
            capture=capture,
            store=store,
            recorder=LiveKitEventRecorder(room.room, recorder, topic=lk.event_topic),
            exam_id=exam_id,
            quiz_id=quiz_id,
            college_id=college_id,
            detectors=detectors,
            environment=environment,
        )
        listener = LiveKitInterventionListener(room.room, session.interventions, topic=lk.intervention_topic)
    except BaseException:
        await room.disconnect()
        raise

    return SessionRuntime(
        session=session,
        environment=environment,
        closers=[room.disconnect, environment.close, listener.close],
    )
