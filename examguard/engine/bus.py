"""
Examguard Event Bus

Typed, in-process publish/subscribe with explicit subscription handles.

Handlers are called in subscription order and each handler sees payloads in
publish order. Async handlers are awaited before the next handler runs.
A failing handler is logged and never stops delivery to the others.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Optional

from examguard.utils import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Any]


class Topic(str, Enum):
    """Named bus topics."""
    DETECTION = "detection"        # DetectionResult
    INTERVENTION = "intervention"  # Intervention (message text for the UI)
    LIFECYCLE = "lifecycle"        # dict(phase=..., previous=..., reason=...)
    WARNINGS = "warnings"          # list[ExamWarning]
    INDICATORS = "indicators"      # Indicators


class Subscription:
    """Handle returned by ``EventBus.subscribe``."""

    def __init__(self, bus: "EventBus", topic: Topic, handler: Handler, sub_id: int):
        self.bus = bus
        self.topic = topic
        self.handler = handler
        self.id = sub_id
        self.active = True

    def cancel(self):
        if self.active:
            self.active = False
            self.bus._remove(self)


class SubscriptionGroup:
    """
    Subscriptions that share a lifetime, e.g. one Active generation.

    Example:
        >>> group = SubscriptionGroup(bus)
        >>> group.subscribe(Topic.DETECTION, handler)
        >>> group.cancel()  # detaches every handler in the group
    """

    def __init__(self, bus: "EventBus"):
        self.bus = bus
        self._subs: list[Subscription] = []

    def subscribe(self, topic: Topic, handler: Handler) -> Subscription:
        sub = self.bus.subscribe(topic, handler)
        self._subs.append(sub)
        return sub

    def cancel(self):
        for sub in self._subs:
            sub.cancel()
        self._subs.clear()

    def __len__(self) -> int:
        return len(self._subs)


class EventBus:
    """In-process event bus."""

    def __init__(self):
        self._subs: dict[Topic, list[Subscription]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, topic: Topic, handler: Handler) -> Subscription:
        sub = Subscription(self, Topic(topic), handler, next(self._ids))
        self._subs[sub.topic].append(sub)
        return sub

    def _remove(self, sub: Subscription):
        subs = self._subs.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)

    def subscriber_count(self, topic: Optional[Topic] = None) -> int:
        if topic is not None:
            return len(self._subs.get(Topic(topic), []))
        return sum(len(s) for s in self._subs.values())

    async def publish(self, topic: Topic, payload: Any):
        """Deliver ``payload`` to every current subscriber of ``topic``."""
        topic = Topic(topic)
        for sub in list(self._subs.get(topic, [])):
            if not sub.active:
                continue
            try:
                result = sub.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"❌ Error in {topic.value} handler")

    @property
    def pending_count(self) -> int:
        """Publishes scheduled but not yet delivered."""
        return len(self._pending)

    def publish_soon(
        self,
        topic: Topic,
        payload: Any,
        guard: Optional[Callable[[], bool]] = None,
    ) -> asyncio.Task:
        """
        Schedule a publish from synchronous code.

        Args:
            topic: Topic to publish on
            payload: Payload to deliver
            guard: Checked when the task runs; the publish is skipped if it returns False
        """
        task = asyncio.get_running_loop().create_task(self._publish_guarded(topic, payload, guard))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _publish_guarded(self, topic: Topic, payload: Any, guard: Optional[Callable[[], bool]]):
        if guard is not None and not guard():
            logger.debug(f"Skipping stale {Topic(topic).value} publish")
            return
        await self.publish(topic, payload)

    async def drain(self):
        """Wait for publishes scheduled with ``publish_soon``."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
