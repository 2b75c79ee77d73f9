"""
Examguard Configuration Module

Pydantic-based configuration with validation and defaults.
"""

from examguard.cfg.config import (
    BaseConfig,
    DetectorConfig,
    FaceDetectorConfig,
    ObjectDetectorConfig,
    GazeDetectorConfig,
    AudioDetectorConfig,
    DetectionConfig,
    ProctoringConfig,
    LiveKitConfig,
    Settings,
    get_settings,
)

__all__ = [
    "BaseConfig",
    # Detectors
    "DetectorConfig",
    "FaceDetectorConfig",
    "ObjectDetectorConfig",
    "GazeDetectorConfig",
    "AudioDetectorConfig",
    "DetectionConfig",
    # Session
    "ProctoringConfig",
    "LiveKitConfig",
    "Settings",
    "get_settings",
]
