"""
Detector Factory

Builds the enabled detectors for a session from its DetectionConfig and
whichever models the host has plugged in.
"""

from __future__ import annotations

from typing import Optional

from examguard.cfg import DetectionConfig
from examguard.detectors.audio import AudioDetector
from examguard.detectors.base import BaseDetector, Clock, FaceModel, GazeModel, ObjectModel
from examguard.detectors.face import FaceDetector
from examguard.detectors.gaze import GazeDetector
from examguard.detectors.objects import ObjectDetector
from examguard.utils import get_logger

logger = get_logger(__name__)


def build_detectors(
    config: DetectionConfig,
    face_model: Optional[FaceModel] = None,
    object_model: Optional[ObjectModel] = None,
    gaze_model: Optional[GazeModel] = None,
    audio: bool = True,
    clock: Optional[Clock] = None,
) -> list[BaseDetector]:
    """
    Create every enabled detector that has a model to run.

    Args:
        config: Per-detector configuration
        face_model: Model for face presence/count
        object_model: Model for prohibited objects
        gaze_model: Model for gaze estimation
        audio: Whether a microphone will be captured
        clock: Monotonic clock, injectable for tests

    Returns:
        Detectors in a stable order (face, objects, gaze, audio)
    """
    detectors: list[BaseDetector] = []

    if config.face.enabled:
        if face_model is not None:
            detectors.append(FaceDetector(config.face, face_model, clock))
        else:
            logger.warning("⚠️ Face detection enabled but no face model configured")

    if config.objects.enabled:
        if object_model is not None:
            detectors.append(ObjectDetector(config.objects, object_model, clock))
        else:
            logger.warning("⚠️ Object detection enabled but no object model configured")

    if config.gaze.enabled:
        if gaze_model is not None:
            detectors.append(GazeDetector(config.gaze, gaze_model, clock))
        else:
            logger.warning("⚠️ Gaze tracking enabled but no gaze model configured")

    if config.audio.enabled and audio:
        detectors.append(AudioDetector(config.audio, clock))

    return detectors
