from __future__ import annotations
"""
Examguard Detectors

Face, object, gaze and audio detectors plus the model protocols they run on.
"""

from examguard.detectors.base import (
    BaseDetector,
    FaceModel,
    FaceObservation,
    GazeModel,
    GazeObservation,
    Modality,
    ObjectModel,
    ObjectObservation,
    call_model,
)
from examguard.detectors.face import FaceDetector
from examguard.detectors.objects import ObjectDetector
from examguard.detectors.gaze import GazeDetector
from examguard.detectors.audio import AudioDetector
from examguard.detectors.factory import build_detectors

__all__ = [
    # Base
    "BaseDetector",
    "Modality",
    "call_model",
    # Model protocols
    "FaceModel",
    "FaceObservation",
    "ObjectModel",
    "ObjectObservation",
    "GazeModel",
    "GazeObservation",
    # Detectors
    "FaceDetector",
    "ObjectDetector",
    "GazeDetector",
    "AudioDetector",
    "build_detectors",
]
