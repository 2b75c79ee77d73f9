"""
Pytest Configuration for Examguard Tests

Fakes for the capture backend, detector models and sinks.
"""
import asyncio
from typing import Any, Optional

import numpy as np
import pytest

from examguard.cfg import DetectionConfig, ProctoringConfig
from examguard.data.capture import CaptureBackend, CaptureKind, DeviceList, MediaCaptureCoordinator
from examguard.data.sinks import InMemoryEventRecorder, InMemorySessionStore
from examguard.detectors.base import FaceObservation, GazeObservation
from examguard.engine.errors import SessionStoreError


class FakeStream:
    def __init__(self, kind: CaptureKind, device_id: Optional[str]):
        self.kind = kind
        self.device_id = device_id
        self.closed = False


class FakeBackend(CaptureBackend):
    """Capture backend with scriptable failures."""

    def __init__(self):
        self.failures: dict[CaptureKind, BaseException] = {}
        self.hang: set[CaptureKind] = set()
        self.frame = np.full((48, 64, 3), 127, dtype=np.uint8)
        self.level = 0.0
        self.opened: list[FakeStream] = []
        self.closed: list[FakeStream] = []
        self._ended_callback = None

    async def open(self, kind: CaptureKind, device_id: Optional[str] = None) -> FakeStream:
        if kind in self.hang:
            await asyncio.sleep(3600)
        if kind in self.failures:
            raise self.failures[kind]
        stream = FakeStream(kind, device_id)
        self.opened.append(stream)
        return stream

    async def close(self, stream: FakeStream):
        stream.closed = True
        self.closed.append(stream)

    async def read_frame(self, stream: FakeStream) -> Optional[np.ndarray]:
        return None if stream.closed else self.frame

    async def read_audio_level(self, stream: FakeStream) -> Optional[float]:
        return None if stream.closed else self.level

    async def list_devices(self) -> DeviceList:
        return DeviceList(
            video=[{"device_id": "cam-1", "label": "Integrated Webcam"}],
            audio=[{"device_id": "mic-1", "label": "Built-in Microphone"}],
        )

    def set_stream_ended_callback(self, callback):
        self._ended_callback = callback

    async def end(self, stream: FakeStream):
        """Simulate the device going away."""
        await self._ended_callback(stream)

    @property
    def live(self) -> list[FakeStream]:
        return [s for s in self.opened if not s.closed]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFaceModel:
    def __init__(self, confidences: Optional[list[float]] = None):
        self.confidences = [0.99] if confidences is None else confidences
        self.calls = 0

    def detect_faces(self, frame: np.ndarray) -> FaceObservation:
        self.calls += 1
        return FaceObservation(confidences=list(self.confidences))


class GatedFaceModel:
    """Async face model that blocks until released."""

    def __init__(self, confidences: Optional[list[float]] = None):
        self.confidences = confidences or []
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self.calls = 0

    async def detect_faces(self, frame: np.ndarray) -> FaceObservation:
        self.calls += 1
        self.entered.set()
        await self.gate.wait()
        return FaceObservation(confidences=list(self.confidences))


class FakeGazeModel:
    def __init__(self, on_screen: bool = True, confidence: float = 0.9):
        self.on_screen = on_screen
        self.confidence = confidence

    def estimate_gaze(self, frame: np.ndarray) -> GazeObservation:
        return GazeObservation(on_screen=self.on_screen, confidence=self.confidence, direction=(0.4, 0.0))


class CountingSessionStore(InMemorySessionStore):
    def __init__(self, fail_create: bool = False):
        super().__init__()
        self.fail_create = fail_create
        self.end_calls: list[tuple] = []

    async def create_session(self, session) -> str:
        if self.fail_create:
            raise SessionStoreError("database unavailable")
        return await super().create_session(session)

    async def end_session(self, session_id, status, reason=None):
        self.end_calls.append((session_id, status, reason))
        await super().end_session(session_id, status, reason)


def make_config(**overrides: Any) -> ProctoringConfig:
    """Small, fast config for tests."""
    values = {
        "require_fullscreen": False,
        "record_full_session": False,
        "snapshot_interval_seconds": 60,
        "detection": DetectionConfig(),
    }
    values.update(overrides)
    return ProctoringConfig(**values)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def capture(backend):
    return MediaCaptureCoordinator(backend, open_timeout_seconds=0.5)


@pytest.fixture
def store():
    return CountingSessionStore()


@pytest.fixture
def recorder():
    return InMemoryEventRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory(capture, store, recorder):
    """Build ProctoringSession objects around the shared fakes."""
    from examguard.service.session import ProctoringSession

    def factory(config: Optional[ProctoringConfig] = None, detectors=None, **kwargs):
        return ProctoringSession(
            student_id=kwargs.pop("student_id", "student-7"),
            config=config or make_config(),
            capture=capture,
            store=store,
            recorder=recorder,
            exam_id=kwargs.pop("exam_id", "exam-42"),
            detectors=[] if detectors is None else detectors,
            **kwargs,
        )

    return factory
