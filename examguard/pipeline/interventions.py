"""
Intervention Channel

Applies proctor commands that arrive out-of-band (data channel, HTTP).
Each intervention id is applied at most once; commands for another session
or arriving before a session exists are dropped quietly.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Protocol, Union

from examguard.engine.bus import EventBus, Topic
from examguard.engine.errors import InvalidTransitionError
from examguard.engine.results import Intervention, InterventionType, Session
from examguard.utils import get_logger

logger = get_logger(__name__)


class InterventionTarget(Protocol):
    """The lifecycle manager, as seen by the channel."""

    @property
    def session(self) -> Optional[Session]: ...

    async def pause(self, reason: Optional[str] = None) -> bool: ...

    async def terminate(self, reason: Optional[str] = None) -> bool: ...


class InterventionChannel:
    """
    Example:
        >>> channel = InterventionChannel(lifecycle, bus)
        >>> await channel.deliver(Intervention(id="i1", session_id=sid, type="pause"))
    """

    def __init__(self, target: InterventionTarget, bus: EventBus):
        self.target = target
        self.bus = bus
        self._seen: set[str] = set()

    @property
    def seen_count(self) -> int:
        """Ids consumed, whether or not the command applied."""
        return len(self._seen)

    async def deliver(self, intervention: Intervention) -> bool:
        """
        Apply an intervention.

        Returns:
            True if it was applied, False if it was dropped
        """
        session = self.target.session
        if session is None or session.id is None:
            logger.debug(f"Dropping intervention {intervention.id}: no active session")
            return False

        if intervention.session_id != session.id:
            logger.debug(f"Dropping intervention {intervention.id}: session {intervention.session_id} != {session.id}")
            return False

        # Claimed before the first await so concurrent duplicates see it
        if intervention.id in self._seen:
            logger.debug(f"Dropping duplicate intervention {intervention.id}")
            return False
        self._seen.add(intervention.id)

        issued_by = intervention.issued_by or "proctor"
        logger.info(f"👮 Intervention {intervention.id} ({intervention.type.value}) received from {issued_by}")

        if intervention.type == InterventionType.MESSAGE:
            await self.bus.publish(Topic.INTERVENTION, intervention)
            logger.info(f"✅ Intervention {intervention.id} applied")
            return True

        reason = intervention.message or f"Proctor intervention ({intervention.type.value})"
        try:
            if intervention.type == InterventionType.PAUSE:
                await self.target.pause(reason)
            else:
                await self.target.terminate(reason)
        except InvalidTransitionError as e:
            logger.info(f"⚠️ Intervention {intervention.id} not applicable: {e}")
            return False

        logger.info(f"✅ Intervention {intervention.id} applied")
        return True

    async def deliver_raw(self, payload: Union[bytes, str, dict[str, Any]]) -> bool:
        """Parse and apply a wire payload. Malformed payloads are dropped."""
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            if isinstance(payload, str):
                payload = json.loads(payload)
            intervention = Intervention.model_validate(payload)
        except ValueError as e:
            logger.warning(f"⚠️ Dropping malformed intervention: {e}")
            return False

        return await self.deliver(intervention)
