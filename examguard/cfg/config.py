from __future__ import annotations
"""
Examguard Configuration Classes

Pydantic-based configuration with validation and defaults.
Single source of truth for all configuration values.
"""

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


# ============================================================================
# Constants - Single source of truth for default values
# ============================================================================

# Face detection
DEFAULT_FACE_CONFIDENCE = 0.7
DEFAULT_FACE_INTERVAL_MS = 5000
DEFAULT_NO_FACE_THRESHOLD_MS = 3000
DEFAULT_NO_FACE_HIGH_AFTER = 10.0
DEFAULT_NO_FACE_CRITICAL_AFTER = 30.0

# Object detection
DEFAULT_OBJECT_CONFIDENCE = 0.6
DEFAULT_OBJECT_INTERVAL_MS = 10000
DEFAULT_PROHIBITED_OBJECTS = [
    "cell phone",
    "mobile phone",
    "tablet",
    "laptop",
    "book",
    "notebook",
    "paper",
]
DEFAULT_HIGH_SEVERITY_OBJECTS = ["cell phone", "mobile phone", "tablet", "laptop"]

# Gaze tracking
DEFAULT_GAZE_CONFIDENCE = 0.6
DEFAULT_GAZE_INTERVAL_MS = 3000
DEFAULT_MAX_LOOK_AWAY = 8.0
DEFAULT_LOOK_AWAY_MEDIUM_AFTER = 15.0

# Audio analysis
DEFAULT_AUDIO_INTERVAL_MS = 2000
DEFAULT_VOLUME_THRESHOLD = 0.3
DEFAULT_AUDIO_SUSTAIN = 4.0

# Violation policy
DEFAULT_THRESHOLD_LOW = 3
DEFAULT_THRESHOLD_MEDIUM = 2
DEFAULT_THRESHOLD_HIGH = 1
DEFAULT_WARNING_TTL = 10.0

# Capture
DEFAULT_SNAPSHOT_INTERVAL = 30
DEFAULT_SNAPSHOT_QUALITY = 80
DEFAULT_OPEN_TIMEOUT = 15.0

# LiveKit defaults
DEFAULT_LIVEKIT_URL = "ws://localhost:7880"
DEFAULT_LIVEKIT_API_KEY = "devkey"
DEFAULT_LIVEKIT_API_SECRET = "secret"


# ============================================================================
# Base Configuration
# ============================================================================

class BaseConfig(BaseModel):
    """Base configuration class for all examguard configs."""

    class Config:
        extra = "forbid"
        frozen = True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.model_dump()})"


# ============================================================================
# Detector Configurations
# ============================================================================

class DetectorConfig(BaseConfig):
    """Settings shared by every detector."""

    enabled: bool = Field(default=True, description="Run this detector")
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum model confidence")
    check_interval_ms: int = Field(default=5000, gt=0, description="Tick interval in milliseconds")

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000.0


class FaceDetectorConfig(DetectorConfig):
    """Face presence and face count."""

    confidence_threshold: float = Field(default=DEFAULT_FACE_CONFIDENCE, ge=0.0, le=1.0)
    check_interval_ms: int = Field(default=DEFAULT_FACE_INTERVAL_MS, gt=0)
    no_face_threshold_ms: int = Field(
        default=DEFAULT_NO_FACE_THRESHOLD_MS, ge=0, description="Absence tolerated before reporting"
    )
    high_after_seconds: float = Field(default=DEFAULT_NO_FACE_HIGH_AFTER, description="Absence that becomes high")
    critical_after_seconds: float = Field(
        default=DEFAULT_NO_FACE_CRITICAL_AFTER, description="Absence that becomes critical"
    )


class ObjectDetectorConfig(DetectorConfig):
    """Prohibited objects in the camera frame."""

    confidence_threshold: float = Field(default=DEFAULT_OBJECT_CONFIDENCE, ge=0.0, le=1.0)
    check_interval_ms: int = Field(default=DEFAULT_OBJECT_INTERVAL_MS, gt=0)
    prohibited_objects: list[str] = Field(default_factory=lambda: list(DEFAULT_PROHIBITED_OBJECTS))
    high_severity_objects: list[str] = Field(default_factory=lambda: list(DEFAULT_HIGH_SEVERITY_OBJECTS))


class GazeDetectorConfig(DetectorConfig):
    """Gaze and attention."""

    confidence_threshold: float = Field(default=DEFAULT_GAZE_CONFIDENCE, ge=0.0, le=1.0)
    check_interval_ms: int = Field(default=DEFAULT_GAZE_INTERVAL_MS, gt=0)
    max_look_away_seconds: float = Field(default=DEFAULT_MAX_LOOK_AWAY, ge=0.0)
    medium_after_seconds: float = Field(default=DEFAULT_LOOK_AWAY_MEDIUM_AFTER, ge=0.0)


class AudioDetectorConfig(DetectorConfig):
    """Conversation detection from microphone level."""

    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    check_interval_ms: int = Field(default=DEFAULT_AUDIO_INTERVAL_MS, gt=0)
    volume_threshold: float = Field(default=DEFAULT_VOLUME_THRESHOLD, ge=0.0, le=1.0)
    sustain_seconds: float = Field(default=DEFAULT_AUDIO_SUSTAIN, ge=0.0)


class DetectionConfig(BaseConfig):
    """All detector configurations for one session."""

    face: FaceDetectorConfig = Field(default_factory=FaceDetectorConfig)
    objects: ObjectDetectorConfig = Field(default_factory=ObjectDetectorConfig)
    gaze: GazeDetectorConfig = Field(default_factory=GazeDetectorConfig)
    audio: AudioDetectorConfig = Field(default_factory=AudioDetectorConfig)


# ============================================================================
# Session Configuration
# ============================================================================

class ProctoringConfig(BaseConfig):
    """
    Per-exam proctoring configuration.

    Supplied once when a session is constructed and never changed while it
    runs.
    """

    # Required modalities
    require_webcam: bool = Field(default=True)
    require_microphone: bool = Field(default=True)
    require_screen_share: bool = Field(default=False)
    require_fullscreen: bool = Field(default=True)

    # Detection
    ai_detection_enabled: bool = Field(default=True)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)

    # Violation policy
    violation_threshold_low: int = Field(default=DEFAULT_THRESHOLD_LOW, ge=0)
    violation_threshold_medium: int = Field(default=DEFAULT_THRESHOLD_MEDIUM, ge=0)
    violation_threshold_high: int = Field(default=DEFAULT_THRESHOLD_HIGH, ge=0)
    auto_terminate_on_critical: bool = Field(default=False)
    auto_pause_on_critical: bool = Field(default=False)
    warning_ttl_seconds: float = Field(default=DEFAULT_WARNING_TTL, gt=0.0)

    # Recording
    record_full_session: bool = Field(default=True)
    snapshot_interval_seconds: float = Field(default=DEFAULT_SNAPSHOT_INTERVAL, gt=0.0)
    snapshot_quality: int = Field(default=DEFAULT_SNAPSHOT_QUALITY, ge=1, le=100)
    capture_open_timeout_seconds: float = Field(default=DEFAULT_OPEN_TIMEOUT, gt=0.0)


class LiveKitConfig(BaseConfig):
    """Configuration for LiveKit integration."""

    url: str = Field(default=DEFAULT_LIVEKIT_URL, description="LiveKit server URL")
    api_key: str = Field(default=DEFAULT_LIVEKIT_API_KEY, description="LiveKit API key")
    api_secret: str = Field(default=DEFAULT_LIVEKIT_API_SECRET, description="LiveKit API secret")
    identity: str = Field(default="examguard-proctor", description="Participant identity of the orchestrator")

    # Data channel topics
    event_topic: str = Field(default="proctoring", description="Topic for recorded events")
    intervention_topic: str = Field(default="proctoring_interventions", description="Proctor commands")
    client_topic: str = Field(default="proctoring_client", description="Client environment reports")


# ============================================================================
# Main Settings (Environment Variable Support)
# ============================================================================

class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Per-exam values here are only defaults; an exam can pass its own
    ProctoringConfig when the session is created.
    """

    # LiveKit
    livekit_url: str = Field(default=DEFAULT_LIVEKIT_URL)
    livekit_api_key: str = Field(default=DEFAULT_LIVEKIT_API_KEY)
    livekit_api_secret: str = Field(default=DEFAULT_LIVEKIT_API_SECRET)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8001)
    log_level: str = Field(default="INFO")

    # Pluggable models: "none", "yolo" / "mediapipe"
    object_model: str = Field(default="none")
    face_model: str = Field(default="none")
    yolo_model_path: str = Field(default="yolo11n.pt")
    use_gpu: bool = Field(default=False)

    # Session defaults
    warning_ttl_seconds: float = Field(default=DEFAULT_WARNING_TTL)
    snapshot_interval_seconds: float = Field(default=DEFAULT_SNAPSHOT_INTERVAL)
    auto_terminate_on_critical: bool = Field(default=False)
    auto_pause_on_critical: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def to_proctoring_config(self, **overrides) -> ProctoringConfig:
        """Convert settings to a ProctoringConfig, applying per-exam overrides."""
        values = {
            "warning_ttl_seconds": self.warning_ttl_seconds,
            "snapshot_interval_seconds": self.snapshot_interval_seconds,
            "auto_terminate_on_critical": self.auto_terminate_on_critical,
            "auto_pause_on_critical": self.auto_pause_on_critical,
        }
        values.update(overrides)
        return ProctoringConfig(**values)

    def to_livekit_config(self, identity: Optional[str] = None) -> LiveKitConfig:
        """Convert settings to LiveKitConfig."""
        config = LiveKitConfig(
            url=self.livekit_url,
            api_key=self.livekit_api_key,
            api_secret=self.livekit_api_secret,
        )
        if identity:
            config = config.model_copy(update={"identity": identity})
        return config


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
