"""
Audio Detector

Treats microphone level held above a threshold as conversation.
"""

from __future__ import annotations

from typing import Optional

from examguard.cfg import AudioDetectorConfig
from examguard.detectors.base import BaseDetector, Clock, Modality
from examguard.engine.results import DetectionResult
from examguard.utils.alerts import EventType, Severity

CONVERSATION_CONFIDENCE = 0.7


class AudioDetector(BaseDetector):
    """Sustained-volume conversation detection."""

    name = "audio"
    modality = Modality.AUDIO

    def __init__(self, config: AudioDetectorConfig, clock: Optional[Clock] = None):
        super().__init__(config, clock)
        self._loud_since: Optional[float] = None

    def reset(self):
        self._loud_since = None

    async def analyze(self, level: Optional[float]) -> Optional[DetectionResult]:
        if level is None or level <= self.config.volume_threshold:
            self._loud_since = None
            return None

        now = self.clock()
        if self._loud_since is None:
            self._loud_since = now
        sustained = now - self._loud_since

        if sustained < self.config.sustain_seconds:
            return None

        return self.result(
            EventType.SUSPICIOUS_AUDIO,
            Severity.MEDIUM,
            confidence=CONVERSATION_CONFIDENCE,
            description="Sustained conversation-level audio detected",
            requires_alert=True,
            average_volume=round(float(level), 3),
            duration=round(sustained, 2),
        )
