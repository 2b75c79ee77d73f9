from __future__ import annotations
"""
Media Capture Coordinator

Owns the camera, microphone and screen-share streams of one session.

The coordinator talks to a pluggable CaptureBackend (LiveKit tracks in
production, fakes in tests), maps backend failures to CaptureErrorKind,
and produces snapshots and a session recording from the live streams.
"""

import asyncio
import errno
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import cv2
import numpy as np

from examguard.engine.errors import CaptureError, CaptureErrorKind
from examguard.engine.results import utcnow
from examguard.utils import get_logger

logger = get_logger(__name__)


class CaptureKind(str, Enum):
    """Capture stream kinds."""
    VIDEO = "video"
    AUDIO = "audio"
    SCREEN = "screen"


@dataclass
class CaptureHandle:
    """A live capture stream. Opaque to everything but the coordinator."""
    kind: CaptureKind
    stream: Any
    device_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    opened_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "device_id": self.device_id,
            "opened_at": self.opened_at.isoformat(),
        }


@dataclass
class DeviceList:
    """Available input devices, each ``{"device_id": ..., "label": ...}``."""
    video: list[dict] = field(default_factory=list)
    audio: list[dict] = field(default_factory=list)


# ============================================================================
# Backend interface
# ============================================================================

class CaptureBackend(ABC):
    """
    Source of capture streams.

    ``open`` raises builtin exceptions (PermissionError, LookupError,
    OSError, ...) or a CaptureError; the coordinator maps them to a
    CaptureErrorKind.
    """

    @abstractmethod
    async def open(self, kind: CaptureKind, device_id: Optional[str] = None) -> Any:
        """Open a stream and return a backend specific stream object."""

    @abstractmethod
    async def close(self, stream: Any):
        """Close a stream. Must tolerate streams that already ended."""

    @abstractmethod
    async def read_frame(self, stream: Any) -> Optional[np.ndarray]:
        """Latest RGB frame of a video or screen stream."""

    @abstractmethod
    async def read_audio_level(self, stream: Any) -> Optional[float]:
        """Current audio level of an audio stream, 0-1."""

    async def list_devices(self) -> DeviceList:
        return DeviceList()

    def set_stream_ended_callback(self, callback: Callable[[Any], Awaitable[None]]):
        """Register the coordinator's handler for streams that end on their own."""


def map_capture_error(exc: BaseException) -> CaptureErrorKind:
    """Map a backend exception to a CaptureErrorKind."""
    if isinstance(exc, CaptureError):
        return exc.kind
    if isinstance(exc, PermissionError):
        return CaptureErrorKind.PERMISSION_DENIED
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return CaptureErrorKind.TIMEOUT
    if isinstance(exc, (LookupError, FileNotFoundError)):
        return CaptureErrorKind.DEVICE_UNAVAILABLE
    if isinstance(exc, OSError):
        if exc.errno in (errno.ENODEV, errno.ENXIO):
            return CaptureErrorKind.DEVICE_UNAVAILABLE
        return CaptureErrorKind.DEVICE_BUSY
    return CaptureErrorKind.UNKNOWN


# ============================================================================
# Recording
# ============================================================================

class SessionRecording:
    """
    Writes frames of the live camera to an MP4 file.

    Frames are pulled at ``fps`` by a background task; ``stop`` returns the
    encoded bytes and removes the temporary file.
    """

    def __init__(self, read_frame: Callable[[], Awaitable[Optional[np.ndarray]]], fps: int = 5):
        self.read_frame = read_frame
        self.fps = fps
        self.frames_written = 0

        fd, self.path = tempfile.mkstemp(prefix="examguard-", suffix=".mp4")
        os.close(fd)

        self._writer: Optional[cv2.VideoWriter] = None
        self._task: Optional[asyncio.Task] = None

    def start(self):
        self._task = asyncio.get_running_loop().create_task(self._run(), name="examguard-recording")

    async def _run(self):
        while True:
            try:
                frame = await self.read_frame()
                if frame is not None:
                    self._write(frame)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("❌ Error writing recording frame")
            await asyncio.sleep(1.0 / self.fps)

    def _write(self, frame: np.ndarray):
        h, w = frame.shape[:2]
        if self._writer is None:
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            self._writer = cv2.VideoWriter(self.path, fourcc, self.fps, (w, h))
        self._writer.write(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))
        self.frames_written += 1

    async def stop(self) -> Optional[bytes]:
        try:
            if self._task is not None:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("❌ Recording task failed")
                finally:
                    self._task = None

            writer, self._writer = self._writer, None
            if writer is None:
                return None
            writer.release()
            with open(self.path, "rb") as f:
                data = f.read()
            return data or None
        finally:
            if os.path.exists(self.path):
                os.remove(self.path)


# ============================================================================
# Coordinator
# ============================================================================

class MediaCaptureCoordinator:
    """
    Acquires and releases the capture streams of one session.

    Example:
        >>> capture = MediaCaptureCoordinator(backend)
        >>> handle = await capture.start_video()
        >>> jpeg = await capture.capture_snapshot()
        >>> await capture.stop_all()
    """

    def __init__(
        self,
        backend: CaptureBackend,
        open_timeout_seconds: float = 15.0,
        snapshot_quality: int = 80,
        recording_fps: int = 5,
    ):
        """
        Initialize the coordinator.

        Args:
            backend: Stream source
            open_timeout_seconds: Upper bound for opening one stream
            snapshot_quality: JPEG quality 1-100
            recording_fps: Frame rate of the session recording
        """
        self.backend = backend
        self.open_timeout_seconds = open_timeout_seconds
        self.snapshot_quality = snapshot_quality
        self.recording_fps = recording_fps

        self._handles: dict[CaptureKind, CaptureHandle] = {}
        self._listeners: list[Callable[[CaptureKind, bool], None]] = []
        self._monitors: set[asyncio.Task] = set()
        self._recording: Optional[SessionRecording] = None

        self.backend.set_stream_ended_callback(self._on_backend_stream_ended)

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    async def start_video(self, device_id: Optional[str] = None) -> CaptureHandle:
        return await self._start(CaptureKind.VIDEO, device_id)

    async def start_audio(self, device_id: Optional[str] = None) -> CaptureHandle:
        return await self._start(CaptureKind.AUDIO, device_id)

    async def start_screen(self) -> CaptureHandle:
        return await self._start(CaptureKind.SCREEN, None)

    async def _start(self, kind: CaptureKind, device_id: Optional[str]) -> CaptureHandle:
        existing = self._handles.get(kind)
        if existing is not None:
            return existing

        try:
            stream = await asyncio.wait_for(
                self.backend.open(kind, device_id), timeout=self.open_timeout_seconds
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_kind = map_capture_error(e)
            logger.warning(f"⚠️ Could not start {kind.value} capture: {error_kind.value} ({e!r})")
            raise CaptureError(error_kind, kind.value) from e

        handle = CaptureHandle(kind=kind, stream=stream, device_id=device_id)
        self._handles[kind] = handle
        logger.info(f"🎥 {kind.value} capture started ({handle.id[:8]})")
        self._notify(kind, True)
        return handle

    async def stop(self, kind: CaptureKind):
        """Release one capture stream, if live."""
        handle = self._handles.pop(CaptureKind(kind), None)
        if handle is None:
            return

        # Level monitors read from the microphone
        if handle.kind == CaptureKind.AUDIO:
            await self._cancel_monitors()
        try:
            await self.backend.close(handle.stream)
        except Exception:
            logger.exception(f"❌ Error closing {handle.kind.value} capture")
        finally:
            self._notify(handle.kind, False)

    async def stop_all(self):
        """Release everything. Safe to call repeatedly and before any start."""
        if self._recording is not None:
            try:
                await self.stop_recording()
            except Exception:
                logger.exception("❌ Error stopping session recording")
        await self._cancel_monitors()
        for kind in list(self._handles):
            await self.stop(kind)

    async def notify_stream_ended(self, handle_id: str):
        """Called when a stream drops on its own; releases its handle."""
        for kind, handle in list(self._handles.items()):
            if handle.id == handle_id:
                logger.warning(f"⚠️ {kind.value} stream ended unexpectedly")
                await self.stop(kind)
                return

    async def _on_backend_stream_ended(self, stream: Any):
        for handle in list(self._handles.values()):
            if handle.stream is stream:
                await self.notify_stream_ended(handle.id)
                return

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def handle(self, kind: CaptureKind) -> Optional[CaptureHandle]:
        return self._handles.get(CaptureKind(kind))

    def is_live(self, kind: CaptureKind) -> bool:
        return CaptureKind(kind) in self._handles

    @property
    def live_handle_count(self) -> int:
        return len(self._handles)

    @property
    def is_recording(self) -> bool:
        return self._recording is not None

    def on_state_change(self, callback: Callable[[CaptureKind, bool], None]) -> Callable[[], None]:
        """
        Register a listener for capture up/down changes.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _notify(self, kind: CaptureKind, live: bool):
        for callback in list(self._listeners):
            try:
                callback(kind, live)
            except Exception:
                logger.exception("❌ Capture state listener failed")

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    async def read_frame(self) -> Optional[np.ndarray]:
        """Latest camera frame, or None when the camera is down."""
        handle = self._handles.get(CaptureKind.VIDEO)
        if handle is None:
            return None
        return await self.backend.read_frame(handle.stream)

    async def read_audio_level(self) -> Optional[float]:
        """Current microphone level 0-1, or None when the microphone is down."""
        handle = self._handles.get(CaptureKind.AUDIO)
        if handle is None:
            return None
        return await self.backend.read_audio_level(handle.stream)

    async def capture_snapshot(self, handle: Optional[CaptureHandle] = None) -> Optional[bytes]:
        """
        Encode the current frame as JPEG.

        Args:
            handle: Video or screen handle; the camera when omitted

        Returns:
            JPEG bytes, or None when nothing is live or encoding fails
        """
        handle = handle or self._handles.get(CaptureKind.VIDEO)
        if handle is None or self._handles.get(handle.kind) is not handle:
            return None

        try:
            frame = await self.backend.read_frame(handle.stream)
            if frame is None:
                return None
            return encode_jpeg(frame, self.snapshot_quality)
        except Exception:
            logger.exception("❌ Error capturing snapshot")
            return None

    def monitor_audio_level(
        self,
        callback: Callable[[float], None],
        interval_seconds: float = 0.1,
    ) -> Callable[[], None]:
        """
        Poll the microphone level and report it to ``callback``.

        Returns:
            Function that stops the monitor
        """
        if CaptureKind.AUDIO not in self._handles:
            logger.warning("⚠️ No audio stream available for monitoring")
            return lambda: None

        async def run():
            while True:
                level = await self.read_audio_level()
                if level is not None:
                    try:
                        callback(level)
                    except Exception:
                        logger.exception("❌ Audio level callback failed")
                await asyncio.sleep(interval_seconds)

        task = asyncio.get_running_loop().create_task(run(), name="examguard-audio-monitor")
        self._monitors.add(task)
        task.add_done_callback(self._monitors.discard)

        return task.cancel

    async def _cancel_monitors(self):
        tasks = list(self._monitors)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_recording(self) -> bool:
        """Start recording the camera. Returns False when nothing can be recorded."""
        if self._recording is not None:
            logger.warning("⚠️ Recording already in progress")
            return False
        if CaptureKind.VIDEO not in self._handles:
            logger.warning("⚠️ No active video stream to record")
            return False

        self._recording = SessionRecording(self.read_frame, fps=self.recording_fps)
        self._recording.start()
        logger.info("⏺️ Recording started")
        return True

    async def stop_recording(self) -> Optional[bytes]:
        """Stop recording and return the MP4 bytes (None if nothing was written)."""
        recording, self._recording = self._recording, None
        if recording is None:
            return None

        data = await recording.stop()
        logger.info(f"⏹️ Recording stopped ({recording.frames_written} frames)")
        return data

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def list_devices(self) -> DeviceList:
        try:
            return await self.backend.list_devices()
        except Exception:
            logger.exception("❌ Error enumerating devices")
            return DeviceList()

    async def test_devices(self) -> dict:
        """Open and close camera and microphone once, reporting what works."""
        report = {}
        for name, kind in (("camera", CaptureKind.VIDEO), ("microphone", CaptureKind.AUDIO)):
            if kind in self._handles:
                report[name] = {"working": True, "error": None}
                continue
            try:
                stream = await asyncio.wait_for(self.backend.open(kind, None), timeout=self.open_timeout_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = CaptureError(map_capture_error(e), kind.value)
                report[name] = {"working": False, "error": error.message}
                continue
            await self.backend.close(stream)
            report[name] = {"working": True, "error": None}
        return report

    async def device_info(self) -> dict:
        """Snapshot of devices and live captures for the session record."""
        devices = await self.list_devices()
        video = self._handles.get(CaptureKind.VIDEO)
        audio = self._handles.get(CaptureKind.AUDIO)

        return {
            "video_devices": len(devices.video),
            "audio_devices": len(devices.audio),
            "current_video_device": video.device_id if video else None,
            "current_audio_device": audio.device_id if audio else None,
            "video_active": video is not None,
            "audio_active": audio is not None,
            "screen_active": CaptureKind.SCREEN in self._handles,
            "recording": self.is_recording,
        }


def encode_jpeg(frame: np.ndarray, quality: int = 80) -> Optional[bytes]:
    """Encode an RGB frame as JPEG bytes."""
    bgr = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
    ok, buffer = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        return None
    return buffer.tobytes()
