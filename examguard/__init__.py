"""
Examguard - Proctored Exam Session Orchestration

Runs one proctored exam attempt end to end: acquires the candidate's
camera, microphone and screen, runs pluggable detectors, turns detections
into warnings and escalations, applies proctor interventions, and always
releases devices and records the outcome.

Usage:
    from examguard import ProctoringSession, ProctoringConfig

    session = ProctoringSession(
        "student-7", ProctoringConfig(), capture, store, recorder, exam_id="exam-42"
    )
    await session.grant_consent()
    await session.complete_setup()
    ...
    await session.complete()

    # HTTP API
    from examguard.api import start_server
    start_server(port=8001)
"""

__version__ = "0.1.0"
__author__ = "Pendent AI"

from examguard.cfg import ProctoringConfig, DetectionConfig, get_settings
from examguard.engine import DetectionResult, Intervention, Phase, SessionStatus
from examguard.service import ProctoringSession


# Integrations (lazy loaded when accessed)
def __getattr__(name: str):
    """Lazy load optional integrations."""
    if name == "MediaCaptureCoordinator":
        from examguard.data.capture import MediaCaptureCoordinator
        return MediaCaptureCoordinator
    elif name == "LiveKitCaptureBackend":
        from examguard.data.livekit_backend import LiveKitCaptureBackend
        return LiveKitCaptureBackend
    elif name == "YOLOObjectModel":
        from examguard.models.yolo import YOLOObjectModel
        return YOLOObjectModel
    elif name == "MediaPipeFaceModel":
        from examguard.models.mediapipe import MediaPipeFaceModel
        return MediaPipeFaceModel
    elif name == "create_app":
        from examguard.api.server import create_app
        return create_app
    raise AttributeError(f"module 'examguard' has no attribute '{name}'")


# Public API
__all__ = [
    # Core
    "ProctoringSession",
    "ProctoringConfig",
    "DetectionConfig",
    "get_settings",
    "DetectionResult",
    "Intervention",
    "Phase",
    "SessionStatus",
    # Integrations (lazy loaded)
    "MediaCaptureCoordinator",
    "LiveKitCaptureBackend",
    "YOLOObjectModel",
    "MediaPipeFaceModel",
    "create_app",
    # Version
    "__version__",
]
