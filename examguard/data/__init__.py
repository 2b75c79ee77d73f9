"""
Examguard Data Module

Capture streams, event/session sinks and the LiveKit integration.
"""

from examguard.data.capture import (
    CaptureBackend,
    CaptureHandle,
    CaptureKind,
    DeviceList,
    MediaCaptureCoordinator,
    encode_jpeg,
    map_capture_error,
)
from examguard.data.sinks import (
    EventRecorder,
    InMemoryEventRecorder,
    InMemorySessionStore,
    RecordedEvent,
    SessionStore,
)

__all__ = [
    # Capture
    "CaptureBackend",
    "CaptureHandle",
    "CaptureKind",
    "DeviceList",
    "MediaCaptureCoordinator",
    "encode_jpeg",
    "map_capture_error",
    # Sinks
    "EventRecorder",
    "InMemoryEventRecorder",
    "InMemorySessionStore",
    "RecordedEvent",
    "SessionStore",
    # LiveKit (lazy loaded)
    "LiveKitRoom",
    "LiveKitCaptureBackend",
    "LiveKitEventRecorder",
    "LiveKitInterventionListener",
    "LiveKitEnvironmentSource",
]


def __getattr__(name: str):
    """Lazy load the LiveKit integration."""
    if name in ("LiveKitRoom", "LiveKitCaptureBackend"):
        from examguard.data import livekit_backend
        return getattr(livekit_backend, name)
    elif name in ("LiveKitEventRecorder", "LiveKitInterventionListener", "LiveKitEnvironmentSource"):
        from examguard.data import publisher
        return getattr(publisher, name)
    raise AttributeError(f"module 'examguard.data' has no attribute '{name}'")
