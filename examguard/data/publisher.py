"""
LiveKit Data Channel Integration

- LiveKitEventRecorder: publishes recorded events to proctors in the room
- LiveKitInterventionListener: feeds proctor commands to an InterventionChannel
- LiveKitEnvironmentSource: candidate client reports (fullscreen) and
  presence (online/offline)
"""

import asyncio
import json
from datetime import datetime
from typing import Optional

from examguard.data.sinks import EventRecorder
from examguard.pipeline.environment import EnvironmentSignal, LocalEnvironmentSource
from examguard.pipeline.interventions import InterventionChannel
from examguard.utils import get_logger

try:
    from livekit import rtc
    LIVEKIT_AVAILABLE = True
except ImportError:
    LIVEKIT_AVAILABLE = False

logger = get_logger(__name__)


class LiveKitEventRecorder:
    """
    Event recorder that persists through ``inner`` and also publishes each
    event on the room's data channel.

    Publishing is rate limited per event type; persistence is not.

    Example:
        >>> recorder = LiveKitEventRecorder(room, InMemoryEventRecorder())
        >>> await recorder.record_event(session_id, "no_face_detected", "high", "...")
    """

    def __init__(
        self,
        room: "rtc.Room",
        inner: EventRecorder,
        topic: str = "proctoring",
        cooldown_seconds: float = 5.0,
    ):
        """
        Initialize the recorder.

        Args:
            room: LiveKit room instance
            inner: Recorder that persists events and media
            topic: Data channel topic
            cooldown_seconds: Minimum seconds between same event types
        """
        if not LIVEKIT_AVAILABLE:
            raise ImportError("livekit package required: pip install livekit")

        self.room = room
        self.inner = inner
        self.topic = topic
        self.cooldown_seconds = cooldown_seconds

        # Track last publish times for rate limiting
        self._last_publish_times: dict[str, datetime] = {}

    async def record_event(
        self,
        session_id: str,
        event_type: str,
        severity: str,
        description: str,
        snapshot_ref: Optional[str] = None,
        confidence: Optional[float] = None,
        details: Optional[dict] = None,
    ) -> None:
        await self.inner.record_event(
            session_id,
            event_type,
            severity,
            description,
            snapshot_ref=snapshot_ref,
            confidence=confidence,
            details=details,
        )

        key = f"{session_id}:{event_type}"
        if not self._check_cooldown(key):
            return

        payload = json.dumps({
            "type": "proctoring_event",
            "session_id": session_id,
            "event_type": event_type,
            "severity": severity,
            "description": description,
            "snapshot_ref": snapshot_ref,
            "confidence": confidence,
            "details": details or {},
            "timestamp": datetime.utcnow().isoformat(),
        }, default=str).encode("utf-8")

        await self.room.local_participant.publish_data(
            payload=payload,
            topic=self.topic,
            reliable=True,
        )
        self._last_publish_times[key] = datetime.utcnow()

        logger.info(f"📤 Event published: {event_type} ({severity})")

    async def store_media(self, session_id: str, kind: str, data: bytes) -> str:
        return await self.inner.store_media(session_id, kind, data)

    def _check_cooldown(self, key: str) -> bool:
        """Check if enough time has passed since the last publish."""
        last_time = self._last_publish_times.get(key)
        if last_time is None:
            return True

        elapsed = (datetime.utcnow() - last_time).total_seconds()
        return elapsed >= self.cooldown_seconds


class LiveKitInterventionListener:
    """Reads proctor commands from a data topic."""

    def __init__(self, room: "rtc.Room", channel: InterventionChannel, topic: str = "proctoring_interventions"):
        if not LIVEKIT_AVAILABLE:
            raise ImportError("livekit package required: pip install livekit")

        self.room = room
        self.channel = channel
        self.topic = topic
        self._tasks: set[asyncio.Task] = set()

        self.room.on("data_received", self._on_data)

    def _on_data(self, packet: "rtc.DataPacket"):
        if packet.topic != self.topic:
            return

        task = asyncio.get_running_loop().create_task(self.channel.deliver_raw(packet.data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def close(self):
        self.room.off("data_received", self._on_data)
        for task in self._tasks:
            task.cancel()


class LiveKitEnvironmentSource(LocalEnvironmentSource):
    """
    Environment signals for a candidate in a LiveKit room.

    The client reports ``{"signal": "fullscreen_exit"}`` (or
    ``fullscreen_enter``) on the client topic; the candidate leaving and
    rejoining the room maps to offline / online. Fullscreen requests are
    sent back to the client on the same topic.
    """

    def __init__(self, room: "rtc.Room", participant_identity: str, topic: str = "proctoring_client"):
        if not LIVEKIT_AVAILABLE:
            raise ImportError("livekit package required: pip install livekit")
        super().__init__()

        self.room = room
        self.participant_identity = participant_identity
        self.topic = topic

        self.room.on("data_received", self._on_data)
        self.room.on("participant_connected", self._on_connected)
        self.room.on("participant_disconnected", self._on_disconnected)

    def _on_data(self, packet: "rtc.DataPacket"):
        if packet.topic != self.topic:
            return
        if packet.participant is not None and packet.participant.identity != self.participant_identity:
            return

        try:
            signal = EnvironmentSignal(json.loads(packet.data.decode("utf-8"))["signal"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"⚠️ Ignoring malformed client report: {e}")
            return
        self.emit(signal)

    def _on_connected(self, participant: "rtc.RemoteParticipant"):
        if participant.identity == self.participant_identity:
            self.emit(EnvironmentSignal.ONLINE)

    def _on_disconnected(self, participant: "rtc.RemoteParticipant"):
        if participant.identity == self.participant_identity:
            self.emit(EnvironmentSignal.OFFLINE)

    async def request_fullscreen(self) -> bool:
        await self._send_command("request_fullscreen")
        return True

    async def exit_fullscreen(self) -> None:
        await self._send_command("exit_fullscreen")
        self.fullscreen = False

    async def _send_command(self, command: str):
        payload = json.dumps({"command": command}).encode("utf-8")
        await self.room.local_participant.publish_data(
            payload=payload,
            topic=self.topic,
            reliable=True,
            destination_identities=[self.participant_identity],
        )

    def close(self):
        self.room.off("data_received", self._on_data)
        self.room.off("participant_connected", self._on_connected)
        self.room.off("participant_disconnected", self._on_disconnected)
