from __future__ import annotations
"""
LiveKit Capture Backend

Capture streams are the candidate's published LiveKit tracks: camera,
microphone and screen share. The orchestrator joins the exam room as a
hidden participant and keeps the latest frame / audio level of each track.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import cv2
import numpy as np

from examguard.cfg import LiveKitConfig
from examguard.data.capture import CaptureBackend, CaptureKind, DeviceList
from examguard.utils import get_logger

try:
    from livekit import api, rtc
    LIVEKIT_AVAILABLE = True
except ImportError:
    LIVEKIT_AVAILABLE = False

logger = get_logger(__name__)

# Level smoothing, matching a browser AnalyserNode default
LEVEL_SMOOTHING = 0.8
# dBFS mapped to level 0
LEVEL_FLOOR_DB = -60.0


class LiveKitRoom:
    """
    Connection to one exam room.

    Example:
        >>> room = LiveKitRoom(settings.to_livekit_config())
        >>> await room.connect("exam-42-student-7")
        >>> await room.disconnect()
    """

    def __init__(self, config: LiveKitConfig):
        if not LIVEKIT_AVAILABLE:
            raise ImportError("livekit package required: pip install livekit livekit-api")

        self.config = config
        self.room = rtc.Room()
        self.connected = False
        self.room_name: Optional[str] = None

    def generate_token(self, room_name: str, name: str = "Exam Proctor") -> str:
        """
        Generate a LiveKit access token.

        Args:
            room_name: Name of the room to join
            name: Display name

        Returns:
            JWT token string
        """
        token = api.AccessToken(self.config.api_key, self.config.api_secret)
        token.with_identity(self.config.identity)
        token.with_name(name)
        token.with_grants(api.VideoGrants(
            room_join=True,
            room=room_name,
            can_subscribe=True,
            can_publish=False,  # We only watch
            can_publish_data=True,  # Events and commands go over the data channel
            hidden=True,
        ))
        return token.to_jwt()

    async def connect(self, room_name: str) -> "rtc.Room":
        token = self.generate_token(room_name)
        await self.room.connect(self.config.url, token)

        self.connected = True
        self.room_name = room_name
        logger.info(f"✅ Connected to room: {room_name}")
        return self.room

    async def disconnect(self):
        if self.connected:
            await self.room.disconnect()
            self.connected = False
            logger.info(f"👋 Disconnected from room: {self.room_name}")


@dataclass
class TrackStream:
    """Reader state for one subscribed track."""
    kind: CaptureKind
    track: Any
    latest_frame: Optional[np.ndarray] = None
    level: Optional[float] = None
    task: Optional[asyncio.Task] = None
    frames: int = field(default=0)


class LiveKitCaptureBackend(CaptureBackend):
    """
    Capture backend reading the candidate's tracks.

    Args:
        room: Connected LiveKit room
        participant_identity: Identity the candidate joined with
        target_width: Frames are resized to this width
        target_height: Frames are resized to this height
    """

    def __init__(
        self,
        room: "rtc.Room",
        participant_identity: str,
        target_width: int = 640,
        target_height: int = 480,
    ):
        if not LIVEKIT_AVAILABLE:
            raise ImportError("livekit package required: pip install livekit")

        self.room = room
        self.participant_identity = participant_identity
        self.target_width = target_width
        self.target_height = target_height

        self._streams: list[TrackStream] = []
        self._ended_callback: Optional[Callable[[Any], Awaitable[None]]] = None

        self._setup_handlers()

    def set_stream_ended_callback(self, callback: Callable[[Any], Awaitable[None]]):
        self._ended_callback = callback

    def _setup_handlers(self):
        """Setup LiveKit event handlers."""

        @self.room.on("track_unsubscribed")
        def on_track_unsubscribed(
            track: rtc.Track,
            publication: rtc.RemoteTrackPublication,
            participant: rtc.RemoteParticipant,
        ):
            if participant.identity != self.participant_identity:
                return
            for stream in list(self._streams):
                if stream.track.sid == track.sid:
                    logger.info(f"📴 {stream.kind.value} track unsubscribed: {participant.identity}")
                    self._ended(stream)

        @self.room.on("participant_disconnected")
        def on_participant_disconnected(participant: rtc.RemoteParticipant):
            if participant.identity != self.participant_identity:
                return
            logger.info(f"👋 Candidate left: {participant.identity}")
            for stream in list(self._streams):
                self._ended(stream)

    def _ended(self, stream: TrackStream):
        if self._ended_callback is not None:
            asyncio.get_running_loop().create_task(self._ended_callback(stream))

    # ------------------------------------------------------------------
    # CaptureBackend
    # ------------------------------------------------------------------

    async def open(self, kind: CaptureKind, device_id: Optional[str] = None) -> TrackStream:
        participant = self._participant()
        publication = self._find_publication(participant, kind, device_id)

        if publication.muted:
            raise PermissionError(f"{kind.value} track is muted by the candidate")

        if not publication.subscribed:
            publication.set_subscribed(True)
        while publication.track is None:
            await asyncio.sleep(0.05)

        stream = TrackStream(kind=kind, track=publication.track)
        reader = self._read_audio if kind == CaptureKind.AUDIO else self._read_video
        stream.task = asyncio.get_running_loop().create_task(reader(stream), name=f"livekit-{kind.value}")
        self._streams.append(stream)
        return stream

    async def close(self, stream: TrackStream):
        if stream in self._streams:
            self._streams.remove(stream)
        if stream.task is not None:
            stream.task.cancel()
            await asyncio.gather(stream.task, return_exceptions=True)
            stream.task = None

    async def read_frame(self, stream: TrackStream) -> Optional[np.ndarray]:
        return stream.latest_frame

    async def read_audio_level(self, stream: TrackStream) -> Optional[float]:
        return stream.level

    async def list_devices(self) -> DeviceList:
        devices = DeviceList()
        participant = self.room.remote_participants.get(self.participant_identity)
        if participant is None:
            return devices

        for publication in participant.track_publications.values():
            entry = {"device_id": publication.sid, "label": publication.name}
            if publication.kind == rtc.TrackKind.KIND_VIDEO and publication.source != rtc.TrackSource.SOURCE_SCREENSHARE:
                devices.video.append(entry)
            elif publication.kind == rtc.TrackKind.KIND_AUDIO:
                devices.audio.append(entry)
        return devices

    # ------------------------------------------------------------------
    # Track lookup
    # ------------------------------------------------------------------

    def _participant(self) -> "rtc.RemoteParticipant":
        participant = self.room.remote_participants.get(self.participant_identity)
        if participant is None:
            raise LookupError(f"Candidate {self.participant_identity} is not in the room")
        return participant

    def _find_publication(
        self,
        participant: "rtc.RemoteParticipant",
        kind: CaptureKind,
        device_id: Optional[str],
    ) -> "rtc.RemoteTrackPublication":
        for publication in participant.track_publications.values():
            if device_id is not None and publication.sid != device_id:
                continue
            if self._publication_kind(publication) == kind:
                return publication
        raise LookupError(f"Candidate is not publishing a {kind.value} track")

    @staticmethod
    def _publication_kind(publication: "rtc.RemoteTrackPublication") -> Optional[CaptureKind]:
        if publication.kind == rtc.TrackKind.KIND_AUDIO:
            return CaptureKind.AUDIO
        if publication.kind == rtc.TrackKind.KIND_VIDEO:
            if publication.source == rtc.TrackSource.SOURCE_SCREENSHARE:
                return CaptureKind.SCREEN
            return CaptureKind.VIDEO
        return None

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def _read_video(self, stream: TrackStream):
        video_stream = rtc.VideoStream(stream.track)
        try:
            async for frame_event in video_stream:
                frame = self._frame_to_numpy(frame_event.frame)
                if frame.shape[1] != self.target_width or frame.shape[0] != self.target_height:
                    frame = cv2.resize(frame, (self.target_width, self.target_height))
                stream.latest_frame = frame
                stream.frames += 1
        finally:
            await video_stream.aclose()

    async def _read_audio(self, stream: TrackStream):
        audio_stream = rtc.AudioStream(stream.track)
        try:
            async for frame_event in audio_stream:
                level = audio_level(frame_event.frame)
                if stream.level is None:
                    stream.level = level
                else:
                    stream.level = LEVEL_SMOOTHING * stream.level + (1 - LEVEL_SMOOTHING) * level
                stream.frames += 1
        finally:
            await audio_stream.aclose()

    def _frame_to_numpy(self, frame: "rtc.VideoFrame") -> np.ndarray:
        """Convert LiveKit VideoFrame to an RGB numpy array."""
        buffer = frame.convert(rtc.VideoBufferType.RGB24)
        arr = np.frombuffer(buffer.data, dtype=np.uint8)
        return arr.reshape((buffer.height, buffer.width, 3))


def audio_level(frame: "rtc.AudioFrame") -> float:
    """RMS level of an int16 audio frame mapped from dBFS to 0-1."""
    data = np.frombuffer(frame.data, dtype=np.int16)
    if data.size == 0:
        return 0.0

    samples = data.astype(np.float32) / 32768.0
    if frame.num_channels > 1:
        samples = samples.reshape(-1, frame.num_channels).mean(axis=1)

    rms = float(np.sqrt(np.mean(samples ** 2)))
    if rms <= 0:
        return 0.0
    db = 20 * np.log10(rms)
    return float(np.clip((db - LEVEL_FLOOR_DB) / -LEVEL_FLOOR_DB, 0.0, 1.0))
