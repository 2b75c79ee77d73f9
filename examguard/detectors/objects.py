"""
Object Detector

Flags prohibited objects (phones, books, ...) visible to the camera.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from examguard.cfg import ObjectDetectorConfig
from examguard.detectors.base import BaseDetector, Clock, ObjectModel, call_model
from examguard.engine.results import DetectionResult
from examguard.utils.alerts import EventType, Severity


class ObjectDetector(BaseDetector):
    """Prohibited-object detection on top of any labelling model."""

    name = "objects"

    def __init__(self, config: ObjectDetectorConfig, model: ObjectModel, clock: Optional[Clock] = None):
        super().__init__(config, clock)
        self.model = model
        self._prohibited = {label.lower() for label in config.prohibited_objects}
        self._high_severity = {label.lower() for label in config.high_severity_objects}

    async def analyze(self, frame: np.ndarray) -> Optional[DetectionResult]:
        objects = await call_model(self.model.detect_objects, frame)

        hits = [
            obj for obj in objects
            if obj.label.lower() in self._prohibited
            and obj.confidence >= self.config.confidence_threshold
        ]
        if not hits:
            return None

        labels = sorted({obj.label.lower() for obj in hits})
        severity = Severity.HIGH if self._high_severity.intersection(labels) else Severity.MEDIUM

        return self.result(
            EventType.PROHIBITED_OBJECT,
            severity,
            confidence=max(obj.confidence for obj in hits),
            description=f"Unauthorized objects detected: {', '.join(labels)}",
            requires_alert=True,
            objects=labels,
        )
