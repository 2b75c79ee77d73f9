from __future__ import annotations
"""
Proctoring Session

Lifecycle manager for one proctored exam attempt. Owns the Session record
and starts/stops capture, detection, environment monitoring and the
violation aggregator as one unit.

    consent -> setup -> active <-> paused -> completed | terminated

Every transition runs under one lock and advances the generation counter,
so timers and listeners from the phase being left turn into no-ops.
"""

import asyncio
from typing import Any, Awaitable, Optional

from examguard.cfg import ProctoringConfig
from examguard.data.capture import CaptureKind, MediaCaptureCoordinator
from examguard.data.sinks import EventRecorder, SessionStore
from examguard.detectors import BaseDetector, build_detectors
from examguard.engine.bus import EventBus, SubscriptionGroup, Topic
from examguard.engine.errors import CaptureError, InvalidTransitionError, SetupError
from examguard.engine.results import (
    DetectionResult,
    ExamWarning,
    Indicators,
    Phase,
    Session,
    SessionStatus,
)
from examguard.engine.timers import GenerationCounter, IntervalTimer
from examguard.pipeline import (
    DetectionPipeline,
    EnvironmentMonitor,
    EnvironmentSource,
    InterventionChannel,
    LocalEnvironmentSource,
    ViolationAggregator,
)
from examguard.utils import get_logger
from examguard.utils.alerts import EventType, Severity, get_event_title

logger = get_logger(__name__)

_INDICATOR_FIELDS = {
    CaptureKind.VIDEO: "camera",
    CaptureKind.AUDIO: "microphone",
    CaptureKind.SCREEN: "screen",
}


class ProctoringSession:
    """
    One exam attempt, from consent to completion.

    Example:
        >>> session = ProctoringSession("student-1", config, capture, store, recorder, exam_id="exam-9")
        >>> await session.grant_consent()
        >>> await session.complete_setup()
        >>> ...
        >>> await session.complete()
    """

    def __init__(
        self,
        student_id: str,
        config: ProctoringConfig,
        capture: MediaCaptureCoordinator,
        store: SessionStore,
        recorder: EventRecorder,
        exam_id: Optional[str] = None,
        quiz_id: Optional[str] = None,
        college_id: Optional[str] = None,
        detectors: Optional[list[BaseDetector]] = None,
        environment: Optional[EnvironmentSource] = None,
        bus: Optional[EventBus] = None,
    ):
        """
        Initialize the session.

        Args:
            student_id: Candidate taking the exam
            config: Per-exam proctoring configuration
            capture: Capture coordinator for the candidate's devices
            store: Session record sink
            recorder: Event and media sink
            exam_id: Exam being taken (exactly one of exam_id/quiz_id)
            quiz_id: Quiz being taken
            college_id: Owning college
            detectors: Detectors to run; built from config when omitted
            environment: Fullscreen/connectivity source
            bus: Event bus shared with UI consumers
        """
        if bool(exam_id) == bool(quiz_id):
            raise ValueError("A session belongs to exactly one of exam_id or quiz_id")

        self.student_id = student_id
        self.exam_id = exam_id
        self.quiz_id = quiz_id
        self.college_id = college_id
        self.config = config

        self.capture = capture
        self.store = store
        self.recorder = recorder
        self.bus = bus or EventBus()

        self.counter = GenerationCounter()
        self._lock = asyncio.Lock()
        self._phase = Phase.CONSENT
        self._session: Optional[Session] = None
        self._consent_given = False
        self._indicators = Indicators()

        if detectors is None:
            detectors = build_detectors(config.detection, audio=config.require_microphone)
        self.detectors = detectors

        self.environment = environment or LocalEnvironmentSource()
        self.pipeline = DetectionPipeline(capture, self.bus, self.counter)
        self.monitor = EnvironmentMonitor(
            self.environment,
            self.bus,
            self.counter,
            require_fullscreen=config.require_fullscreen,
            on_network_change=self._on_network_change,
        )
        self.aggregator = ViolationAggregator(config, self.bus, self)
        self.interventions = InterventionChannel(self, self.bus)

        self._active_subs = SubscriptionGroup(self.bus)
        self._snapshot_timer: Optional[IntervalTimer] = None
        self._transitions: set[asyncio.Task] = set()
        self._background: set[asyncio.Task] = set()

        self._remove_capture_listener = capture.on_state_change(self._on_capture_change)

    # ========================================================================
    # Views
    # ========================================================================

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.id if self._session else None

    @property
    def generation(self) -> int:
        return self.counter.current

    @property
    def consent_given(self) -> bool:
        return self._consent_given

    @property
    def indicators(self) -> Indicators:
        return Indicators(**self._indicators.to_dict())

    @property
    def warnings(self) -> list[ExamWarning]:
        return self.aggregator.warnings

    @property
    def violation_counts(self) -> dict:
        return self.aggregator.summary()

    def status(self) -> dict:
        """Everything a dashboard needs in one dict."""
        return {
            "phase": self._phase.value,
            "generation": self.generation,
            "session": self._session.to_dict() if self._session else None,
            "indicators": self._indicators.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "violations": self.violation_counts,
            "detection": self.pipeline.statistics(),
            "live_captures": self.capture.live_handle_count,
        }

    # ========================================================================
    # Transitions
    # ========================================================================

    async def grant_consent(self):
        """consent -> setup."""
        async with self._lock:
            self._require("grant consent", Phase.CONSENT)
            self._consent_given = True
            self._set_phase(Phase.SETUP)

    async def back_to_consent(self):
        """setup -> consent, releasing any devices opened while testing."""
        async with self._lock:
            self._require("go back to consent", Phase.SETUP)
            await self._release_captures()
            self._set_phase(Phase.CONSENT)

    async def complete_setup(self, device_info: Optional[dict] = None) -> Session:
        """
        setup -> active.

        Acquires the required captures, creates the session record and
        starts monitoring. On any capture or store failure everything
        acquired is released and the phase stays ``setup``.

        Args:
            device_info: Device snapshot for the record; read from the
                coordinator when omitted

        Returns:
            The created Session

        Raises:
            SetupError: A capture could not be started or the store failed
        """
        async with self._lock:
            self._require("complete setup", Phase.SETUP)

            try:
                await self._acquire_captures()
            except CaptureError as e:
                await self._release_captures()
                logger.warning(f"⚠️ Setup failed: {e.kind.value} ({e.capture})")
                raise SetupError(e.kind, e.message, capture=e.capture) from e
            except BaseException:
                await self._release_captures()
                raise

            if device_info is None:
                device_info = await self.capture.device_info()

            session = Session(
                student_id=self.student_id,
                exam_id=self.exam_id,
                quiz_id=self.quiz_id,
                college_id=self.college_id,
                device_info=device_info,
                consent_given=self._consent_given,
            )

            try:
                session.id = await self.store.create_session(session)
            except Exception as e:
                await self._release_captures()
                logger.error(f"❌ Failed to create session: {e}")
                raise SetupError(SetupError.SESSION_CREATE_FAILED, f"Failed to create session: {e}") from e
            except BaseException:
                await self._release_captures()
                raise

            session.mark(SessionStatus.ACTIVE)
            self._session = session
            generation = self._set_phase(Phase.ACTIVE)
            self._start_active(generation)

            if self.config.record_full_session:
                try:
                    self.capture.start_recording()
                except Exception:
                    logger.exception("❌ Could not start recording")

            if self.config.require_fullscreen:
                try:
                    await self.monitor.request_fullscreen()
                except Exception:
                    logger.exception("❌ Could not enter fullscreen")

            logger.info(f"🚀 Session {session.id} started for student {self.student_id}")
            return session

    async def pause(self, reason: Optional[str] = None) -> bool:
        """
        active -> paused. Captures and recording stay live.

        Returns:
            False if already paused
        """
        async with self._lock:
            if self._phase == Phase.PAUSED:
                return False
            self._require("pause", Phase.ACTIVE)

            self._stop_active()
            self._session.mark(SessionStatus.PAUSED)
            self._set_phase(Phase.PAUSED, reason)

        self._record_info(EventType.SESSION_PAUSED, f"Exam paused: {reason or 'no reason given'}")
        return True

    async def resume(self) -> bool:
        """paused -> active under a fresh generation."""
        async with self._lock:
            self._require("resume", Phase.PAUSED)

            self._session.mark(SessionStatus.ACTIVE)
            generation = self._set_phase(Phase.ACTIVE)
            self._start_active(generation)

        self._record_info(EventType.SESSION_RESUMED, "Exam resumed")
        return True

    async def complete(self) -> Optional[str]:
        """
        active|paused -> completed.

        Returns:
            The session id, or None if the session had already ended
        """
        async with self._lock:
            if self._phase.is_terminal:
                return None
            self._require("complete", Phase.ACTIVE, Phase.PAUSED)

            await self._teardown(SessionStatus.COMPLETED, None)
            logger.info(f"✅ Session {self.session_id} completed")
            return self.session_id

    async def terminate(self, reason: Optional[str] = None) -> bool:
        """
        Any non-terminal phase -> terminated.

        Returns:
            False if the session had already ended
        """
        async with self._lock:
            if self._phase.is_terminal:
                return False

            reason = reason or "terminated"
            if self._session is None:
                # Nothing persisted yet
                self._set_phase(Phase.TERMINATED, reason)
                await self._release_captures()
            else:
                await self._teardown(SessionStatus.TERMINATED, reason)

            logger.warning(f"🛑 Session {self.session_id} terminated: {reason}")
            return True

    def request_pause(self, reason: str):
        """Schedule a pause without waiting for it. Never raises."""
        self._schedule(self.pause(reason))

    def request_terminate(self, reason: str):
        """Schedule a termination without waiting for it. Never raises."""
        self._schedule(self.terminate(reason))

    async def drain(self):
        """Wait for requested transitions, recorder writes and bus deliveries."""
        while self._transitions or self._background or self.bus.pending_count:
            await asyncio.gather(*self._transitions, *self._background, return_exceptions=True)
            await self.bus.drain()

    async def settle(self):
        """
        Wait for the transition in progress and pending recorder writes.

        Unlike ``drain`` this does not wait for bus deliveries, so bus
        handlers may call it.
        """
        async with self._lock:
            pass
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def dispose(self):
        """Crash-equivalent exit: end a live session or release setup leftovers."""
        if self._phase in (Phase.ACTIVE, Phase.PAUSED):
            await self.terminate("disposed")
        elif not self._phase.is_terminal:
            async with self._lock:
                await self._release_captures()

        await self.drain()
        self._remove_capture_listener()

    async def __aenter__(self) -> "ProctoringSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.dispose()

    # ========================================================================
    # Internals
    # ========================================================================

    def _require(self, action: str, *phases: Phase):
        if self._phase not in phases:
            raise InvalidTransitionError(action, self._phase.value)

    def _set_phase(self, phase: Phase, reason: Optional[str] = None) -> int:
        previous, self._phase = self._phase, phase
        generation = self.counter.advance()
        logger.info(f"🔄 Phase {previous.value} -> {phase.value} (generation {generation})")
        self.bus.publish_soon(
            Topic.LIFECYCLE,
            {"phase": phase.value, "previous": previous.value, "reason": reason, "generation": generation},
        )
        return generation

    def _schedule(self, coro: Awaitable[Any]):
        async def run():
            try:
                await coro
            except InvalidTransitionError as e:
                logger.debug(f"Requested transition not applicable: {e}")
            except Exception:
                logger.exception("❌ Requested transition failed")

        task = asyncio.get_running_loop().create_task(run())
        self._transitions.add(task)
        task.add_done_callback(self._transitions.discard)

    def _spawn(self, coro: Awaitable[Any]):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _acquire_captures(self):
        if self.config.require_webcam:
            await self.capture.start_video()
        if self.config.require_microphone:
            await self.capture.start_audio()
        if self.config.require_screen_share:
            await self.capture.start_screen()

    async def _release_captures(self):
        try:
            await self.capture.stop_all()
        except Exception:
            logger.exception("❌ Error releasing captures")

    def _start_active(self, generation: int):
        self.aggregator.begin(generation)

        self._active_subs = SubscriptionGroup(self.bus)
        self._active_subs.subscribe(Topic.DETECTION, self.aggregator.consume)
        self._active_subs.subscribe(Topic.DETECTION, self._record_detection)

        if self.config.ai_detection_enabled and self.detectors:
            self.pipeline.start(self.detectors, generation)

        self.monitor.start(generation)

        self._snapshot_timer = IntervalTimer(
            self.config.snapshot_interval_seconds,
            self._on_snapshot_tick,
            self.counter,
            generation,
            name="snapshot",
        )
        self._snapshot_timer.start()

        self._set_indicator("ai_monitoring", self.pipeline.running)

    def _stop_active(self):
        for step in (self.pipeline.stop, self.monitor.stop, self._stop_snapshot_timer, self._active_subs.cancel):
            try:
                step()
            except Exception:
                logger.exception(f"❌ Error stopping {getattr(step, '__qualname__', step)}")

        self._set_indicator("ai_monitoring", False)

    def _stop_snapshot_timer(self):
        if self._snapshot_timer is not None:
            self._snapshot_timer.cancel()
            self._snapshot_timer = None

    async def _teardown(self, status: SessionStatus, reason: Optional[str]):
        """Leave Active/Paused for good. Each step is guarded."""
        session = self._session
        self._set_phase(Phase(status.value), reason)
        self._stop_active()

        try:
            recording = await self.capture.stop_recording()
            if recording:
                await self.recorder.store_media(session.id, "recording", recording)
        except Exception:
            logger.exception("❌ Error finalizing recording")

        await self._release_captures()

        try:
            await self.monitor.exit_fullscreen()
        except Exception:
            logger.exception("❌ Error exiting fullscreen")

        session.mark(status, reason)
        try:
            await self.store.end_session(session.id, status, reason)
        except Exception:
            logger.exception(f"❌ Error persisting end of session {session.id}")

        self.aggregator.clear()

    # ------------------------------------------------------------------
    # Event recording
    # ------------------------------------------------------------------

    def _record_detection(self, result: DetectionResult):
        if self._session is None:
            return
        self._spawn(self._record(self._session.id, result))

    def _record_info(self, event_type: EventType, description: str):
        if self._session is None:
            return
        result = DetectionResult(
            event_type=event_type,
            severity=Severity.INFO,
            confidence=1.0,
            description=description,
            source="lifecycle",
        )
        self._spawn(self._record(self._session.id, result))

    async def _record(self, session_id: str, result: DetectionResult):
        try:
            snapshot_ref = None
            if result.is_violation and self.capture.is_live(CaptureKind.VIDEO):
                snapshot = await self.capture.capture_snapshot()
                if snapshot:
                    snapshot_ref = await self.recorder.store_media(session_id, "snapshot", snapshot)

            await self.recorder.record_event(
                session_id,
                result.event_type,
                result.severity.value,
                result.description,
                snapshot_ref=snapshot_ref,
                confidence=result.confidence,
                details={**result.details, "title": get_event_title(result.event_type), "source": result.source},
            )
        except Exception:
            logger.exception(f"❌ Failed to record {result.event_type} event")

    def _on_snapshot_tick(self):
        if self._session is None:
            return
        self._spawn(self._periodic_snapshot(self._session.id))

    async def _periodic_snapshot(self, session_id: str):
        try:
            snapshot = await self.capture.capture_snapshot()
            if snapshot:
                await self.recorder.store_media(session_id, "snapshot", snapshot)
        except Exception:
            logger.exception("❌ Failed to store periodic snapshot")

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------

    def _on_capture_change(self, kind: CaptureKind, live: bool):
        self._set_indicator(_INDICATOR_FIELDS[kind], live)

    def _on_network_change(self, online: bool):
        self._set_indicator("network", online)

    def _set_indicator(self, name: str, value: bool):
        if getattr(self._indicators, name) == value:
            return
        setattr(self._indicators, name, value)
        self.bus.publish_soon(Topic.INDICATORS, self.indicators)

    def __repr__(self) -> str:
        return f"ProctoringSession(student={self.student_id!r}, phase={self._phase.value}, session={self.session_id!r})"
