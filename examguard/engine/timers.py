"""
Examguard Timers

Generation-aware scheduling primitives for the single event loop.

Every periodic task captures the generation that was current when it was
scheduled. Each lifecycle transition advances the counter, which turns all
older ticks into no-ops even if they were already queued on the loop.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from examguard.utils import get_logger

logger = get_logger(__name__)


class GenerationCounter:
    """Monotonically increasing phase generation."""

    def __init__(self):
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def advance(self) -> int:
        """Start a new generation and return its id."""
        self._value += 1
        return self._value

    def is_current(self, generation: int) -> bool:
        return generation == self._value


class IntervalTimer:
    """
    Calls ``callback`` every ``interval`` seconds until cancelled.

    The callback is synchronous: anything slow should be spawned as its own
    task so a slow tick never delays the next one.

    Example:
        >>> timer = IntervalTimer(5.0, on_tick, counter, generation, name="face")
        >>> timer.start()
        >>> timer.cancel()
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        counter: GenerationCounter,
        generation: int,
        name: str = "timer",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.interval = interval
        self.callback = callback
        self.counter = counter
        self.generation = generation
        self.name = name

        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stale(self) -> bool:
        return self._cancelled or not self.counter.is_current(self.generation)

    def start(self):
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"examguard-{self.name}-g{self.generation}"
        )

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            if self.stale:
                return
            try:
                self.callback()
            except Exception:
                logger.exception(f"❌ Timer {self.name} callback failed")

    def cancel(self):
        """Stop the timer. Ticks already queued become no-ops."""
        self._cancelled = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None


class OneShotTimer:
    """Calls ``callback`` once after ``delay`` seconds unless cancelled."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self._handle = asyncio.get_running_loop().call_later(delay, self._fire)
        self._callback = callback
        self.fired = False

    def _fire(self):
        self.fired = True
        try:
            self._callback()
        except Exception:
            logger.exception("❌ One-shot timer callback failed")

    def cancel(self):
        self._handle.cancel()
