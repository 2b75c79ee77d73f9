"""
Tests for the violation aggregator: counts, warnings and escalation.
"""
import asyncio

import pytest

from tests.conftest import make_config


class FakeLifecycle:
    """Escalation target that records requests."""

    def __init__(self, phase="active"):
        from examguard.engine.results import Phase

        self.phase = Phase(phase)
        self.requests = []

    def request_pause(self, reason):
        self.requests.append(("pause", reason))

    def request_terminate(self, reason):
        self.requests.append(("terminate", reason))


def violation(event_type="no_face_detected", severity="high", requires_alert=True, description="No face detected"):
    from examguard.engine.results import DetectionResult

    return DetectionResult(
        event_type=event_type,
        severity=severity,
        confidence=0.9,
        description=description,
        requires_alert=requires_alert,
    )


@pytest.fixture
def bus():
    from examguard.engine.bus import EventBus

    return EventBus()


def make_aggregator(bus, target=None, **config):
    from examguard.pipeline import ViolationAggregator

    aggregator = ViolationAggregator(make_config(**config), bus, target)
    aggregator.begin(1)
    return aggregator


class TestCounting:
    """Tests for violation counts and warnings"""

    @pytest.mark.asyncio
    async def test_info_results_are_ignored(self, bus):
        aggregator = make_aggregator(bus)
        aggregator.consume(violation("network_reconnection", "info", requires_alert=False))

        assert aggregator.total_violations == 0
        assert aggregator.warnings == []

    @pytest.mark.asyncio
    async def test_counts_by_severity_and_type(self, bus):
        aggregator = make_aggregator(bus, violation_threshold_high=10)
        aggregator.consume(violation("looking_away", "low", requires_alert=False))
        aggregator.consume(violation("multiple_faces", "high"))
        aggregator.consume(violation("multiple_faces", "high"))

        summary = aggregator.summary()
        assert summary["total"] == 3
        assert summary["by_severity"] == {"low": 1, "medium": 0, "high": 2, "critical": 0}
        assert summary["by_type"] == {"looking_away": 1, "multiple_faces": 2}
        assert len(aggregator.warnings) == 2

    @pytest.mark.asyncio
    async def test_warning_messages_escalate(self, bus):
        """Repeated types get the gentle, then serious, then final text"""
        from examguard.utils.alerts import WARNING_MESSAGES, EventType

        aggregator = make_aggregator(bus, violation_threshold_medium=10)
        for _ in range(3):
            aggregator.consume(violation("suspicious_audio", "medium"))

        messages = [w.message for w in aggregator.warnings]
        expected = WARNING_MESSAGES[EventType.SUSPICIOUS_AUDIO]
        assert messages == [expected.gentle, expected.serious, expected.final]

    @pytest.mark.asyncio
    async def test_unknown_type_uses_description(self, bus):
        aggregator = make_aggregator(bus, violation_threshold_medium=10)
        aggregator.consume(violation("tab_switch", "medium", description="Switched tabs"))

        assert aggregator.warnings[0].message == "Switched tabs"

    @pytest.mark.asyncio
    async def test_warnings_are_published(self, bus):
        from examguard.engine.bus import Topic

        published = []
        bus.subscribe(Topic.WARNINGS, published.append)
        aggregator = make_aggregator(bus, violation_threshold_high=10)

        aggregator.consume(violation())
        await bus.drain()

        assert len(published) == 1
        assert published[0][0].type == "no_face_detected"


class TestWarningLifetime:
    """Tests for warning expiry and dismissal"""

    @pytest.mark.asyncio
    async def test_low_and_medium_expire(self, bus):
        aggregator = make_aggregator(bus, warning_ttl_seconds=0.02, violation_threshold_high=10)
        aggregator.consume(violation("suspicious_audio", "medium"))
        aggregator.consume(violation("multiple_faces", "high"))
        assert len(aggregator.warnings) == 2

        await asyncio.sleep(0.05)

        assert [w.type for w in aggregator.warnings] == ["multiple_faces"]

    @pytest.mark.asyncio
    async def test_dismiss(self, bus):
        aggregator = make_aggregator(bus, violation_threshold_high=10)
        aggregator.consume(violation())
        warning_id = aggregator.warnings[0].id

        assert aggregator.dismiss(warning_id) is True
        assert aggregator.dismiss(warning_id) is False
        assert aggregator.warnings == []

    @pytest.mark.asyncio
    async def test_clear_cancels_expiry(self, bus):
        aggregator = make_aggregator(bus, warning_ttl_seconds=0.02)
        aggregator.consume(violation("suspicious_audio", "medium"))

        aggregator.clear()
        await asyncio.sleep(0.04)
        assert aggregator.warnings == []


class TestEscalation:
    """Tests for thresholds and escalation"""

    @pytest.mark.asyncio
    async def test_critical_terminates_once(self, bus):
        """Several critical results in a burst request one termination"""
        target = FakeLifecycle()
        aggregator = make_aggregator(bus, target, auto_terminate_on_critical=True)

        for _ in range(4):
            aggregator.consume(violation(severity="critical"))

        assert len(target.requests) == 1
        assert target.requests[0][0] == "terminate"
        assert "Critical violation" in target.requests[0][1]
        assert aggregator.critical_violation is True

    @pytest.mark.asyncio
    async def test_high_threshold_pauses(self, bus):
        target = FakeLifecycle()
        aggregator = make_aggregator(bus, target, violation_threshold_high=1, auto_pause_on_critical=True)

        aggregator.consume(violation())
        assert target.requests == []

        aggregator.consume(violation("multiple_faces"))
        assert target.requests == [("pause", "Exceeded high-severity violation threshold (2)")]

    @pytest.mark.asyncio
    async def test_threshold_without_escalation_flags(self, bus):
        target = FakeLifecycle()
        aggregator = make_aggregator(bus, target, violation_threshold_high=0)

        aggregator.consume(violation(severity="critical"))

        assert aggregator.critical_violation is True
        assert target.requests == []

    @pytest.mark.asyncio
    async def test_no_escalation_outside_active(self, bus):
        target = FakeLifecycle(phase="paused")
        aggregator = make_aggregator(bus, target, auto_terminate_on_critical=True)

        aggregator.consume(violation(severity="critical"))
        assert target.requests == []

    @pytest.mark.asyncio
    async def test_new_generation_can_escalate_again(self, bus):
        target = FakeLifecycle()
        aggregator = make_aggregator(bus, target, violation_threshold_high=0, auto_pause_on_critical=True)

        aggregator.consume(violation())
        aggregator.begin(2)
        aggregator.consume(violation())

        assert [kind for kind, _ in target.requests] == ["pause", "pause"]

    @pytest.mark.asyncio
    async def test_repeated_low_violations_warn_once(self, bus):
        from examguard.pipeline.aggregator import REPEATED_VIOLATIONS
        from examguard.utils.alerts import Severity

        aggregator = make_aggregator(bus, violation_threshold_low=2)
        for _ in range(5):
            aggregator.consume(violation("looking_away", "low", requires_alert=False))

        repeated = [w for w in aggregator.warnings if w.type == REPEATED_VIOLATIONS]
        assert len(repeated) == 1
        assert repeated[0].severity == Severity.HIGH
