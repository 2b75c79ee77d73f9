"""
Tests for the face, object, gaze and audio detectors.

Detectors read time from an injected clock so the duration policies can
be checked without sleeping.
"""
import numpy as np
import pytest

from tests.conftest import FakeFaceModel, FakeGazeModel

FRAME = np.zeros((48, 64, 3), dtype=np.uint8)


class TestFaceDetector:
    """Tests for face presence and count"""

    @pytest.mark.asyncio
    async def test_single_face_is_quiet(self, clock):
        from examguard.cfg import FaceDetectorConfig
        from examguard.detectors import FaceDetector

        detector = FaceDetector(FaceDetectorConfig(), FakeFaceModel([0.95]), clock)
        assert await detector.analyze(FRAME) is None

    @pytest.mark.asyncio
    async def test_absence_escalates_with_duration(self, clock):
        """Missing face: nothing, then medium, high and critical"""
        from examguard.cfg import FaceDetectorConfig
        from examguard.detectors import FaceDetector
        from examguard.utils.alerts import Severity

        detector = FaceDetector(FaceDetectorConfig(), FakeFaceModel([]), clock)

        assert await detector.analyze(FRAME) is None

        clock.advance(3)
        result = await detector.analyze(FRAME)
        assert result.event_type == "no_face_detected"
        assert result.severity == Severity.MEDIUM
        assert result.requires_alert is False

        clock.advance(8)
        result = await detector.analyze(FRAME)
        assert result.severity == Severity.HIGH
        assert result.requires_alert is True

        clock.advance(20)
        result = await detector.analyze(FRAME)
        assert result.severity == Severity.CRITICAL
        assert result.details["duration"] == 31.0

    @pytest.mark.asyncio
    async def test_face_returning_resets_absence(self, clock):
        from examguard.cfg import FaceDetectorConfig
        from examguard.detectors import FaceDetector

        model = FakeFaceModel([])
        detector = FaceDetector(FaceDetectorConfig(), model, clock)

        await detector.analyze(FRAME)
        clock.advance(5)
        model.confidences = [0.9]
        assert await detector.analyze(FRAME) is None

        model.confidences = []
        clock.advance(1)
        assert await detector.analyze(FRAME) is None

    @pytest.mark.asyncio
    async def test_low_confidence_faces_do_not_count(self, clock):
        """Faces under the confidence threshold are treated as absent"""
        from examguard.cfg import FaceDetectorConfig
        from examguard.detectors import FaceDetector

        detector = FaceDetector(FaceDetectorConfig(no_face_threshold_ms=0), FakeFaceModel([0.3, 0.2]), clock)
        result = await detector.analyze(FRAME)
        assert result.event_type == "no_face_detected"

    @pytest.mark.asyncio
    async def test_multiple_faces(self, clock):
        from examguard.cfg import FaceDetectorConfig
        from examguard.detectors import FaceDetector
        from examguard.utils.alerts import Severity

        detector = FaceDetector(FaceDetectorConfig(), FakeFaceModel([0.9, 0.8, 0.1]), clock)
        result = await detector.analyze(FRAME)

        assert result.event_type == "multiple_faces"
        assert result.severity == Severity.HIGH
        assert result.details["face_count"] == 2
        assert result.confidence == 0.9
        assert result.source == "face"


class TestObjectDetector:
    """Tests for prohibited objects"""

    class Model:
        def __init__(self, objects):
            self.objects = objects

        def detect_objects(self, frame):
            return self.objects

    @pytest.mark.asyncio
    async def test_phone_is_high(self):
        from examguard.cfg import ObjectDetectorConfig
        from examguard.detectors import ObjectDetector, ObjectObservation
        from examguard.utils.alerts import Severity

        model = self.Model([ObjectObservation("cell phone", 0.88), ObjectObservation("person", 0.99)])
        result = await ObjectDetector(ObjectDetectorConfig(), model).analyze(FRAME)

        assert result.event_type == "prohibited_object"
        assert result.severity == Severity.HIGH
        assert result.details["objects"] == ["cell phone"]
        assert result.requires_alert is True

    @pytest.mark.asyncio
    async def test_book_is_medium(self):
        from examguard.cfg import ObjectDetectorConfig
        from examguard.detectors import ObjectDetector, ObjectObservation
        from examguard.utils.alerts import Severity

        model = self.Model([ObjectObservation("Book", 0.7)])
        result = await ObjectDetector(ObjectDetectorConfig(), model).analyze(FRAME)
        assert result.severity == Severity.MEDIUM

    @pytest.mark.asyncio
    async def test_below_threshold_or_allowed_is_ignored(self):
        from examguard.cfg import ObjectDetectorConfig
        from examguard.detectors import ObjectDetector, ObjectObservation

        model = self.Model([ObjectObservation("cell phone", 0.4), ObjectObservation("cup", 0.99)])
        assert await ObjectDetector(ObjectDetectorConfig(), model).analyze(FRAME) is None


class TestGazeDetector:
    """Tests for looking-away detection"""

    @pytest.mark.asyncio
    async def test_sustained_look_away(self, clock):
        from examguard.cfg import GazeDetectorConfig
        from examguard.detectors import GazeDetector
        from examguard.utils.alerts import Severity

        detector = GazeDetector(GazeDetectorConfig(), FakeGazeModel(on_screen=False), clock)

        assert await detector.analyze(FRAME) is None
        clock.advance(5)
        assert await detector.analyze(FRAME) is None

        clock.advance(4)
        result = await detector.analyze(FRAME)
        assert result.severity == Severity.LOW
        assert result.requires_alert is False

        clock.advance(7)
        result = await detector.analyze(FRAME)
        assert result.severity == Severity.MEDIUM
        assert result.requires_alert is True
        assert result.details["direction"] == [0.4, 0.0]

    @pytest.mark.asyncio
    async def test_low_confidence_keeps_state(self, clock):
        """Low-confidence estimates neither start nor end a look-away"""
        from examguard.cfg import GazeDetectorConfig
        from examguard.detectors import GazeDetector

        model = FakeGazeModel(on_screen=False)
        detector = GazeDetector(GazeDetectorConfig(), model, clock)
        await detector.analyze(FRAME)

        model.on_screen = True
        model.confidence = 0.1
        clock.advance(10)
        assert await detector.analyze(FRAME) is None

        model.on_screen = False
        model.confidence = 0.9
        result = await detector.analyze(FRAME)
        assert result is not None
        assert result.details["duration"] == 10.0

    @pytest.mark.asyncio
    async def test_looking_back_resets(self, clock):
        from examguard.cfg import GazeDetectorConfig
        from examguard.detectors import GazeDetector

        model = FakeGazeModel(on_screen=False)
        detector = GazeDetector(GazeDetectorConfig(), model, clock)
        await detector.analyze(FRAME)
        clock.advance(10)

        model.on_screen = True
        assert await detector.analyze(FRAME) is None

        model.on_screen = False
        clock.advance(1)
        assert await detector.analyze(FRAME) is None


class TestAudioDetector:
    """Tests for sustained-volume conversation detection"""

    @pytest.mark.asyncio
    async def test_sustained_volume(self, clock):
        from examguard.cfg import AudioDetectorConfig
        from examguard.detectors import AudioDetector
        from examguard.utils.alerts import Severity

        detector = AudioDetector(AudioDetectorConfig(), clock)

        assert await detector.analyze(0.6) is None
        clock.advance(4)
        result = await detector.analyze(0.55)

        assert result.event_type == "suspicious_audio"
        assert result.severity == Severity.MEDIUM
        assert result.confidence == 0.7
        assert result.details["average_volume"] == 0.55

    @pytest.mark.asyncio
    async def test_quiet_resets(self, clock):
        from examguard.cfg import AudioDetectorConfig
        from examguard.detectors import AudioDetector

        detector = AudioDetector(AudioDetectorConfig(), clock)
        await detector.analyze(0.8)
        clock.advance(3)
        assert await detector.analyze(0.1) is None
        clock.advance(2)
        assert await detector.analyze(0.8) is None


class TestBuildDetectors:
    """Tests for the detector factory"""

    def test_detectors_without_models_are_skipped(self):
        from examguard.cfg import DetectionConfig
        from examguard.detectors import AudioDetector, build_detectors

        detectors = build_detectors(DetectionConfig())
        assert [type(d) for d in detectors] == [AudioDetector]

        assert build_detectors(DetectionConfig(), audio=False) == []

    def test_stable_order_and_disabled(self):
        from examguard.cfg import DetectionConfig, GazeDetectorConfig
        from examguard.detectors import build_detectors

        config = DetectionConfig(gaze=GazeDetectorConfig(enabled=False))
        detectors = build_detectors(config, face_model=FakeFaceModel(), gaze_model=FakeGazeModel())

        assert [d.name for d in detectors] == ["face", "audio"]
