"""
Detector Base Classes

Detectors turn one sample (a video frame or an audio level) into at most one
normalized DetectionResult. The actual vision/audio models are pluggable and
only need to satisfy the small protocols below.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import numpy as np

from examguard.cfg import DetectorConfig
from examguard.engine.results import DetectionResult
from examguard.utils.alerts import EventType, Severity

Clock = Callable[[], float]


class Modality(str, Enum):
    """Which capture a detector samples."""
    VIDEO = "video"
    AUDIO = "audio"


# ============================================================================
# Model observations
# ============================================================================

@dataclass
class FaceObservation:
    """Faces found in one frame."""
    confidences: list[float] = field(default_factory=list)

    @property
    def face_count(self) -> int:
        return len(self.confidences)


@dataclass
class ObjectObservation:
    """A labelled object found in one frame."""
    label: str
    confidence: float
    box: Optional[list[float]] = None


@dataclass
class GazeObservation:
    """Where the candidate is looking in one frame."""
    on_screen: bool
    confidence: float
    direction: tuple[float, float] = (0.0, 0.0)


@runtime_checkable
class FaceModel(Protocol):
    def detect_faces(self, frame: np.ndarray) -> FaceObservation: ...


@runtime_checkable
class ObjectModel(Protocol):
    def detect_objects(self, frame: np.ndarray) -> list[ObjectObservation]: ...


@runtime_checkable
class GazeModel(Protocol):
    def estimate_gaze(self, frame: np.ndarray) -> GazeObservation: ...


async def call_model(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Run a model call without blocking the event loop.

    Coroutine functions are awaited directly; plain callables run in a
    worker thread.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


# ============================================================================
# Detector base
# ============================================================================

class BaseDetector(ABC):
    """
    Base class for all detectors.

    Subclasses keep whatever state they need across ticks (e.g. how long a
    face has been missing) and implement ``analyze``.
    """

    name: str = "detector"
    modality: Modality = Modality.VIDEO

    def __init__(self, config: DetectorConfig, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or time.monotonic

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def interval(self) -> float:
        """Tick interval in seconds."""
        return self.config.check_interval_seconds

    @abstractmethod
    async def analyze(self, sample: Any) -> Optional[DetectionResult]:
        """
        Analyze one sample.

        Args:
            sample: Video frame (numpy array) or audio level (0-1)

        Returns:
            A DetectionResult, or None when nothing was detected
        """

    def reset(self):
        """Forget state carried across ticks."""

    def result(
        self,
        event_type: EventType,
        severity: Severity,
        confidence: float,
        description: str,
        requires_alert: bool,
        **details: Any,
    ) -> DetectionResult:
        return DetectionResult(
            event_type=event_type,
            severity=severity,
            confidence=float(confidence),
            description=description,
            requires_alert=requires_alert,
            details=details,
            source=self.name,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(enabled={self.enabled}, interval={self.interval}s)"
