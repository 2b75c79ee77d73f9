"""
Tests for the detection pipeline and the environment monitor.
"""
import asyncio

import pytest

from tests.conftest import FakeFaceModel, GatedFaceModel


def fast_face_config(**overrides):
    from examguard.cfg import FaceDetectorConfig

    values = {"check_interval_ms": 10, "no_face_threshold_ms": 0}
    values.update(overrides)
    return FaceDetectorConfig(**values)


async def wait_for(predicate, timeout: float = 1.0):
    """Poll until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def bus():
    from examguard.engine.bus import EventBus

    return EventBus()


@pytest.fixture
def counter():
    from examguard.engine.timers import GenerationCounter

    return GenerationCounter()


class TestDetectionPipeline:
    """Tests for scheduling detectors"""

    @pytest.mark.asyncio
    async def test_results_are_published(self, capture, bus, counter):
        from examguard.detectors import FaceDetector
        from examguard.engine.bus import Topic
        from examguard.pipeline import DetectionPipeline

        await capture.start_video()
        results = []
        bus.subscribe(Topic.DETECTION, results.append)

        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), FakeFaceModel([]))], counter.advance())

        await wait_for(lambda: len(results) >= 2)
        pipeline.stop()

        assert results[0].event_type == "no_face_detected"
        assert pipeline.statistics()["detectors"]["face"]["emitted"] >= 2
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_disabled_detectors_are_not_scheduled(self, capture, bus, counter):
        from examguard.detectors import FaceDetector
        from examguard.pipeline import DetectionPipeline

        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(enabled=False), FakeFaceModel())], counter.advance())

        assert pipeline.detectors == []
        assert not pipeline.running

    @pytest.mark.asyncio
    async def test_no_sample_when_capture_down(self, capture, bus, counter):
        from examguard.detectors import FaceDetector
        from examguard.pipeline import DetectionPipeline

        model = FakeFaceModel([])
        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), model)], counter.advance())

        await wait_for(lambda: pipeline.statistics()["detectors"]["face"]["no_sample"] >= 2)
        pipeline.stop()
        assert model.calls == 0

    @pytest.mark.asyncio
    async def test_ticks_never_overlap(self, capture, bus, counter):
        """A tick firing while the previous one runs is skipped"""
        from examguard.detectors import FaceDetector
        from examguard.pipeline import DetectionPipeline

        await capture.start_video()
        model = GatedFaceModel()
        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), model)], counter.advance())

        await wait_for(lambda: pipeline.statistics()["detectors"]["face"]["skipped"] >= 3)
        assert model.calls == 1

        pipeline.stop()
        model.gate.set()

    @pytest.mark.asyncio
    async def test_detector_error_does_not_stop_schedule(self, capture, bus, counter):
        from examguard.detectors import FaceDetector
        from examguard.pipeline import DetectionPipeline

        class BrokenModel:
            def detect_faces(self, frame):
                raise RuntimeError("model crashed")

        await capture.start_video()
        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), BrokenModel())], counter.advance())

        await wait_for(lambda: pipeline.statistics()["detectors"]["face"]["errors"] >= 3)
        assert pipeline.running
        pipeline.stop()

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(self, capture, bus, counter):
        """A result finishing after the generation moved is dropped"""
        from examguard.detectors import FaceDetector
        from examguard.engine.bus import Topic
        from examguard.pipeline import DetectionPipeline

        await capture.start_video()
        results = []
        bus.subscribe(Topic.DETECTION, results.append)

        model = GatedFaceModel()
        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), model)], counter.advance())

        await asyncio.wait_for(model.entered.wait(), timeout=1.0)
        counter.advance()
        model.gate.set()

        await wait_for(lambda: pipeline.statistics()["detectors"]["face"]["discarded"] == 1)
        assert results == []
        pipeline.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_inflight_analysis(self, capture, bus, counter):
        from examguard.detectors import FaceDetector
        from examguard.engine.bus import Topic
        from examguard.pipeline import DetectionPipeline

        await capture.start_video()
        results = []
        bus.subscribe(Topic.DETECTION, results.append)

        model = GatedFaceModel()
        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([FaceDetector(fast_face_config(), model)], counter.advance())
        await asyncio.wait_for(model.entered.wait(), timeout=1.0)

        pipeline.stop()
        model.gate.set()
        await asyncio.sleep(0.03)

        assert results == []
        assert model.calls == 1

    @pytest.mark.asyncio
    async def test_restart_resets_detector_state(self, capture, bus, counter, clock):
        from examguard.detectors import FaceDetector
        from examguard.pipeline import DetectionPipeline

        detector = FaceDetector(fast_face_config(), FakeFaceModel([]), clock)
        detector._absent_since = clock() - 100

        pipeline = DetectionPipeline(capture, bus, counter)
        pipeline.start([detector], counter.advance())
        pipeline.stop()

        assert detector._absent_since is None


class TestEnvironmentMonitor:
    """Tests for fullscreen and connectivity signals"""

    @pytest.mark.asyncio
    async def test_signals_become_results(self, bus, counter):
        from examguard.engine.bus import Topic
        from examguard.pipeline import EnvironmentMonitor, LocalEnvironmentSource
        from examguard.utils.alerts import Severity

        source = LocalEnvironmentSource()
        results = []
        network = []
        bus.subscribe(Topic.DETECTION, results.append)

        monitor = EnvironmentMonitor(source, bus, counter, on_network_change=network.append)
        monitor.start(counter.advance())

        source.emit("fullscreen_exit")
        source.emit("fullscreen_enter")
        source.emit("offline")
        source.emit("online")
        await bus.drain()

        assert [r.event_type for r in results] == [
            "fullscreen_exit",
            "network_disconnection",
            "network_reconnection",
        ]
        assert results[0].severity == Severity.HIGH
        assert results[2].severity == Severity.INFO
        assert network == [False, True]

    @pytest.mark.asyncio
    async def test_fullscreen_not_required(self, bus, counter):
        from examguard.pipeline import EnvironmentMonitor, LocalEnvironmentSource

        monitor = EnvironmentMonitor(LocalEnvironmentSource(), bus, counter, require_fullscreen=False)
        assert monitor.to_result("fullscreen_exit") is None

    @pytest.mark.asyncio
    async def test_detached_outside_generation(self, bus, counter):
        """Signals after stop or from an old generation are ignored"""
        from examguard.engine.bus import Topic
        from examguard.pipeline import EnvironmentMonitor, LocalEnvironmentSource

        source = LocalEnvironmentSource()
        results = []
        bus.subscribe(Topic.DETECTION, results.append)

        monitor = EnvironmentMonitor(source, bus, counter)
        monitor.start(counter.advance())
        counter.advance()
        source.emit("offline")

        monitor.stop()
        assert source.listener_count == 0
        source.emit("fullscreen_exit")

        await bus.drain()
        assert results == []

    @pytest.mark.asyncio
    async def test_signal_dropped_when_generation_moves_before_delivery(self, bus, counter):
        """A new generation starting before delivery drops the pending result"""
        from examguard.engine.bus import Topic
        from examguard.pipeline import EnvironmentMonitor, LocalEnvironmentSource

        source = LocalEnvironmentSource()
        results = []
        bus.subscribe(Topic.DETECTION, results.append)

        monitor = EnvironmentMonitor(source, bus, counter)
        monitor.start(counter.advance())
        source.emit("fullscreen_exit")

        monitor.start(counter.advance())
        await bus.drain()

        assert results == []
