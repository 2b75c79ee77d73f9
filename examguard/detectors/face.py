"""
Face Detector

Reports a missing candidate (escalating with how long the face has been
gone) and additional people in the frame.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from examguard.cfg import FaceDetectorConfig
from examguard.detectors.base import BaseDetector, Clock, FaceModel, call_model
from examguard.engine.results import DetectionResult
from examguard.utils.alerts import EventType, Severity

NO_FACE_CONFIDENCE = 0.95


class FaceDetector(BaseDetector):
    """
    Face presence and count.

    Example:
        >>> detector = FaceDetector(FaceDetectorConfig(), model)
        >>> result = await detector.analyze(frame)
    """

    name = "face"

    def __init__(self, config: FaceDetectorConfig, model: FaceModel, clock: Optional[Clock] = None):
        super().__init__(config, clock)
        self.model = model
        self._absent_since: Optional[float] = None

    def reset(self):
        self._absent_since = None

    async def analyze(self, frame: np.ndarray) -> Optional[DetectionResult]:
        observation = await call_model(self.model.detect_faces, frame)
        faces = [c for c in observation.confidences if c >= self.config.confidence_threshold]
        now = self.clock()

        if not faces:
            if self._absent_since is None:
                self._absent_since = now
            return self._no_face(now - self._absent_since)

        self._absent_since = None

        if len(faces) > 1:
            return self.result(
                EventType.MULTIPLE_FACES,
                Severity.HIGH,
                confidence=max(faces),
                description=f"{len(faces)} faces detected in frame",
                requires_alert=True,
                face_count=len(faces),
            )
        return None

    def _no_face(self, absent: float) -> Optional[DetectionResult]:
        if absent * 1000 < self.config.no_face_threshold_ms:
            return None

        if absent > self.config.critical_after_seconds:
            severity = Severity.CRITICAL
        elif absent > self.config.high_after_seconds:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM

        return self.result(
            EventType.NO_FACE_DETECTED,
            severity,
            confidence=NO_FACE_CONFIDENCE,
            description=f"No face detected for {absent:.1f} seconds",
            requires_alert=severity.rank >= Severity.HIGH.rank,
            duration=round(absent, 2),
        )
