"""
Violation Aggregator

Consumes detection results in arrival order, keeps violation counts,
raises candidate-facing warnings and decides when a session has to be
paused or terminated.
"""

from __future__ import annotations

from collections import Counter
from typing import Optional, Protocol

from examguard.cfg import ProctoringConfig
from examguard.engine.bus import EventBus, Topic
from examguard.engine.results import DetectionResult, ExamWarning, Phase
from examguard.engine.timers import OneShotTimer
from examguard.utils import get_logger
from examguard.utils.alerts import Severity, get_warning_message

logger = get_logger(__name__)

REPEATED_VIOLATIONS = "repeated_violations"

REPEATED_MESSAGES = {
    Severity.LOW: "Repeated minor violations have been recorded. Please follow the exam rules.",
    Severity.MEDIUM: "Repeated violations have been recorded and flagged for review.",
}


class EscalationTarget(Protocol):
    """The lifecycle manager, as seen by the aggregator."""

    @property
    def phase(self) -> Phase: ...

    def request_pause(self, reason: str) -> None: ...

    def request_terminate(self, reason: str) -> None: ...


class ViolationAggregator:
    """
    Severity/threshold policy for one session.

    Example:
        >>> aggregator = ViolationAggregator(config, bus, lifecycle)
        >>> aggregator.begin(generation)
        >>> aggregator.consume(result)
        >>> aggregator.warnings
    """

    def __init__(self, config: ProctoringConfig, bus: EventBus, target: Optional[EscalationTarget] = None):
        self.config = config
        self.bus = bus
        self.target = target

        self.severity_counts: Counter = Counter()
        self.type_counts: Counter = Counter()
        self.critical_violation = False

        self.generation: Optional[int] = None
        self._escalated = False
        self._repeated_tiers: set[Severity] = set()

        self._warnings: dict[str, ExamWarning] = {}
        self._expiry: dict[str, OneShotTimer] = {}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def warnings(self) -> list[ExamWarning]:
        """Active warnings, oldest first."""
        return list(self._warnings.values())

    @property
    def total_violations(self) -> int:
        return sum(self.severity_counts.values())

    def summary(self) -> dict:
        return {
            "total": self.total_violations,
            "by_severity": {s.value: self.severity_counts.get(s, 0) for s in Severity if s != Severity.INFO},
            "by_type": dict(self.type_counts),
            "critical_violation": self.critical_violation,
        }

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def begin(self, generation: int):
        """Start a new Active generation; escalation may fire once in it."""
        self.generation = generation
        self._escalated = False

    def consume(self, result: DetectionResult):
        """Apply one detection result. Bus handler for the detection topic."""
        if not result.is_violation:
            return

        self.severity_counts[result.severity] += 1
        self.type_counts[result.event_type] += 1

        if result.requires_alert:
            level = self.type_counts[result.event_type]
            message = get_warning_message(result.event_type, level, fallback=result.description)
            self._add_warning(ExamWarning(type=result.event_type, message=message, severity=result.severity))

        self._apply_thresholds(result)

    def _apply_thresholds(self, result: DetectionResult):
        config = self.config

        if result.severity == Severity.CRITICAL and config.auto_terminate_on_critical:
            self.critical_violation = True
            self._escalate(terminate=True, reason=f"Critical violation: {result.description}")
            return

        serious = self.severity_counts[Severity.HIGH] + self.severity_counts[Severity.CRITICAL]
        if serious > config.violation_threshold_high:
            self.critical_violation = True
            reason = f"Exceeded high-severity violation threshold ({serious})"
            if config.auto_terminate_on_critical:
                self._escalate(terminate=True, reason=reason)
            elif config.auto_pause_on_critical:
                self._escalate(terminate=False, reason=reason)
            return

        if self.severity_counts[Severity.LOW] > config.violation_threshold_low:
            self._repeated(Severity.LOW)
        if self.severity_counts[Severity.MEDIUM] > config.violation_threshold_medium:
            self._repeated(Severity.MEDIUM)

    def _repeated(self, tier: Severity):
        if tier in self._repeated_tiers:
            return
        self._repeated_tiers.add(tier)
        logger.warning(f"⚠️ Repeated {tier.value} violations ({self.severity_counts[tier]})")
        self._add_warning(ExamWarning(type=REPEATED_VIOLATIONS, message=REPEATED_MESSAGES[tier], severity=Severity.HIGH))

    def _escalate(self, terminate: bool, reason: str):
        if self.target is None or self._escalated or self.target.phase != Phase.ACTIVE:
            return

        self._escalated = True
        if terminate:
            logger.warning(f"🛑 Escalating to terminate: {reason}")
            self.target.request_terminate(reason)
        else:
            logger.warning(f"⏸️ Escalating to pause: {reason}")
            self.target.request_pause(reason)

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def _add_warning(self, warning: ExamWarning):
        self._warnings[warning.id] = warning
        if warning.expires:
            self._expiry[warning.id] = OneShotTimer(
                self.config.warning_ttl_seconds, lambda: self.dismiss(warning.id)
            )
        self._publish()

    def dismiss(self, warning_id: str) -> bool:
        """Remove one warning. Returns False if it was already gone."""
        timer = self._expiry.pop(warning_id, None)
        if timer is not None:
            timer.cancel()

        if self._warnings.pop(warning_id, None) is None:
            return False
        self._publish()
        return True

    def clear(self):
        """Drop every warning and pending expiry."""
        for timer in self._expiry.values():
            timer.cancel()
        self._expiry.clear()

        if self._warnings:
            self._warnings.clear()
            self._publish()

    def _publish(self):
        self.bus.publish_soon(Topic.WARNINGS, self.warnings)
