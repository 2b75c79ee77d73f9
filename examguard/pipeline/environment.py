"""
Environment Monitor

Turns fullscreen and connectivity signals from the candidate's client into
detection results. Listens only while the session is active.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional, Protocol, Union, runtime_checkable

from examguard.engine.bus import EventBus, Topic
from examguard.engine.results import DetectionResult
from examguard.engine.timers import GenerationCounter
from examguard.utils import get_logger
from examguard.utils.alerts import EventType, Severity

logger = get_logger(__name__)


class EnvironmentSignal(str, Enum):
    """Signals reported by the candidate's client."""
    FULLSCREEN_EXIT = "fullscreen_exit"
    FULLSCREEN_ENTER = "fullscreen_enter"
    OFFLINE = "offline"
    ONLINE = "online"


SignalListener = Callable[[EnvironmentSignal], None]


@runtime_checkable
class EnvironmentSource(Protocol):
    """Where environment signals come from."""

    def subscribe(self, listener: SignalListener) -> Callable[[], None]: ...

    async def request_fullscreen(self) -> bool: ...

    async def exit_fullscreen(self) -> None: ...


class LocalEnvironmentSource:
    """
    In-process source fed by the host application or the HTTP API.

    Example:
        >>> source = LocalEnvironmentSource()
        >>> source.emit("fullscreen_exit")
    """

    def __init__(self):
        self._listeners: list[SignalListener] = []
        self.fullscreen = False
        self.online = True

    def subscribe(self, listener: SignalListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, signal: Union[EnvironmentSignal, str]):
        """Report a signal to every listener."""
        signal = EnvironmentSignal(signal)
        if signal == EnvironmentSignal.FULLSCREEN_EXIT:
            self.fullscreen = False
        elif signal == EnvironmentSignal.FULLSCREEN_ENTER:
            self.fullscreen = True
        elif signal == EnvironmentSignal.OFFLINE:
            self.online = False
        elif signal == EnvironmentSignal.ONLINE:
            self.online = True

        for listener in list(self._listeners):
            listener(signal)

    async def request_fullscreen(self) -> bool:
        self.fullscreen = True
        return True

    async def exit_fullscreen(self) -> None:
        self.fullscreen = False


class EnvironmentMonitor:
    """
    Subscribes to an EnvironmentSource for one Active generation at a time.

    Args:
        source: Signal source
        bus: Bus to publish results on
        counter: Lifecycle generation counter
        require_fullscreen: Whether leaving fullscreen is a violation
        on_network_change: Called with the new connectivity state
    """

    def __init__(
        self,
        source: EnvironmentSource,
        bus: EventBus,
        counter: GenerationCounter,
        require_fullscreen: bool = True,
        on_network_change: Optional[Callable[[bool], None]] = None,
    ):
        self.source = source
        self.bus = bus
        self.counter = counter
        self.require_fullscreen = require_fullscreen
        self.on_network_change = on_network_change

        self.generation: Optional[int] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self, generation: int):
        self.stop()
        self.generation = generation
        self._unsubscribe = self.source.subscribe(lambda signal: self._on_signal(signal, generation))
        logger.debug(f"Environment monitor attached (generation {generation})")

    def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug(f"Environment monitor detached (generation {self.generation})")

    def _on_signal(self, signal: EnvironmentSignal, generation: int):
        if not self.counter.is_current(generation):
            return

        signal = EnvironmentSignal(signal)
        if signal in (EnvironmentSignal.OFFLINE, EnvironmentSignal.ONLINE) and self.on_network_change:
            self.on_network_change(signal == EnvironmentSignal.ONLINE)

        result = self.to_result(signal)
        if result is not None:
            # Re-checked at delivery; a pause and resume can land before the task runs
            self.bus.publish_soon(
                Topic.DETECTION, result, guard=lambda: self.counter.is_current(generation)
            )

    def to_result(self, signal: EnvironmentSignal) -> Optional[DetectionResult]:
        """Map a signal to the detection result it produces, if any."""
        if signal == EnvironmentSignal.FULLSCREEN_EXIT:
            if not self.require_fullscreen:
                return None
            return DetectionResult(
                event_type=EventType.FULLSCREEN_EXIT,
                severity=Severity.HIGH,
                confidence=1.0,
                description="Exited fullscreen mode",
                requires_alert=True,
                source="environment",
            )

        if signal == EnvironmentSignal.OFFLINE:
            return DetectionResult(
                event_type=EventType.NETWORK_DISCONNECTION,
                severity=Severity.HIGH,
                confidence=1.0,
                description="Network connection lost",
                requires_alert=True,
                source="environment",
            )

        if signal == EnvironmentSignal.ONLINE:
            return DetectionResult(
                event_type=EventType.NETWORK_RECONNECTION,
                severity=Severity.INFO,
                confidence=1.0,
                description="Network connection restored",
                source="environment",
            )

        return None

    async def request_fullscreen(self) -> bool:
        return await self.source.request_fullscreen()

    async def exit_fullscreen(self):
        await self.source.exit_fullscreen()
