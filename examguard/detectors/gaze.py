"""
Gaze Detector

Reports sustained off-screen gaze.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from examguard.cfg import GazeDetectorConfig
from examguard.detectors.base import BaseDetector, Clock, GazeModel, call_model
from examguard.engine.results import DetectionResult
from examguard.utils.alerts import EventType, Severity


class GazeDetector(BaseDetector):
    """Looking-away detection."""

    name = "gaze"

    def __init__(self, config: GazeDetectorConfig, model: GazeModel, clock: Optional[Clock] = None):
        super().__init__(config, clock)
        self.model = model
        self._away_since: Optional[float] = None

    def reset(self):
        self._away_since = None

    async def analyze(self, frame: np.ndarray) -> Optional[DetectionResult]:
        gaze = await call_model(self.model.estimate_gaze, frame)

        # Low-confidence estimates neither start nor end a look-away
        if gaze.confidence < self.config.confidence_threshold:
            return None

        now = self.clock()
        if gaze.on_screen:
            self._away_since = None
            return None

        if self._away_since is None:
            self._away_since = now
        away = now - self._away_since

        if away <= self.config.max_look_away_seconds:
            return None

        severity = Severity.MEDIUM if away > self.config.medium_after_seconds else Severity.LOW
        return self.result(
            EventType.LOOKING_AWAY,
            severity,
            confidence=gaze.confidence,
            description=f"Looking away from screen for {away:.1f} seconds",
            requires_alert=severity == Severity.MEDIUM,
            duration=round(away, 2),
            direction=list(gaze.direction),
        )
