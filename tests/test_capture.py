"""
Tests for the media capture coordinator.
"""
import asyncio
import errno

import pytest


class TestCaptureErrorMapping:
    """Backend failures map to distinct error kinds"""

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (PermissionError("denied"), "permission_denied"),
            (FileNotFoundError("no camera"), "device_unavailable"),
            (LookupError("no track"), "device_unavailable"),
            (OSError(errno.ENODEV, "no device"), "device_unavailable"),
            (OSError(errno.EBUSY, "busy"), "device_busy"),
            (TimeoutError(), "timeout"),
            (RuntimeError("driver crashed"), "unknown"),
        ],
    )
    def test_map_capture_error(self, exc, expected):
        from examguard.data.capture import map_capture_error

        assert map_capture_error(exc).value == expected

    @pytest.mark.asyncio
    async def test_start_raises_capture_error(self, backend, capture):
        from examguard.data.capture import CaptureKind
        from examguard.engine.errors import CaptureError, CaptureErrorKind

        backend.failures[CaptureKind.VIDEO] = PermissionError("denied")

        with pytest.raises(CaptureError) as exc_info:
            await capture.start_video()

        assert exc_info.value.kind == CaptureErrorKind.PERMISSION_DENIED
        assert exc_info.value.capture == "video"
        assert capture.live_handle_count == 0

    @pytest.mark.asyncio
    async def test_open_timeout(self, backend):
        """A backend that never answers fails with timeout"""
        from examguard.data.capture import CaptureKind, MediaCaptureCoordinator
        from examguard.engine.errors import CaptureError, CaptureErrorKind

        backend.hang.add(CaptureKind.AUDIO)
        capture = MediaCaptureCoordinator(backend, open_timeout_seconds=0.02)

        with pytest.raises(CaptureError) as exc_info:
            await capture.start_audio()
        assert exc_info.value.kind == CaptureErrorKind.TIMEOUT


class TestMediaCaptureCoordinator:
    """Tests for acquisition and release"""

    @pytest.mark.asyncio
    async def test_start_is_idempotent_per_kind(self, backend, capture):
        first = await capture.start_video("cam-1")
        second = await capture.start_video("cam-1")

        assert first is second
        assert first.device_id == "cam-1"
        assert len(backend.opened) == 1
        assert capture.is_live("video")

    @pytest.mark.asyncio
    async def test_stop_all_releases_everything(self, backend, capture):
        await capture.start_video()
        await capture.start_audio()
        await capture.start_screen()
        assert capture.live_handle_count == 3

        await capture.stop_all()
        await capture.stop_all()

        assert capture.live_handle_count == 0
        assert backend.live == []
        assert len(backend.closed) == 3

    @pytest.mark.asyncio
    async def test_stop_all_before_start(self, backend, capture):
        await capture.stop_all()
        assert backend.closed == []

    @pytest.mark.asyncio
    async def test_state_listener(self, capture):
        changes = []
        remove = capture.on_state_change(lambda kind, live: changes.append((kind.value, live)))

        await capture.start_audio()
        await capture.stop("audio")
        remove()
        await capture.start_audio()

        assert changes == [("audio", True), ("audio", False)]

    @pytest.mark.asyncio
    async def test_stream_ended_releases_handle(self, backend, capture):
        """A stream that ends on its own frees its handle"""
        changes = []
        capture.on_state_change(lambda kind, live: changes.append((kind.value, live)))
        await capture.start_video()

        await backend.end(backend.opened[0])

        assert not capture.is_live("video")
        assert changes[-1] == ("video", False)

    @pytest.mark.asyncio
    async def test_close_failure_still_releases(self, backend, capture):
        async def broken_close(stream):
            raise OSError("already gone")

        await capture.start_video()
        backend.close = broken_close
        await capture.stop_all()

        assert capture.live_handle_count == 0


class TestSamples:
    """Tests for frames, snapshots and audio levels"""

    @pytest.mark.asyncio
    async def test_snapshot_is_jpeg(self, capture):
        await capture.start_video()
        data = await capture.capture_snapshot()

        assert data[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_snapshot_without_camera(self, capture):
        assert await capture.capture_snapshot() is None
        assert await capture.read_frame() is None
        assert await capture.read_audio_level() is None

    @pytest.mark.asyncio
    async def test_audio_level_monitor(self, backend, capture):
        backend.level = 0.42
        await capture.start_audio()

        levels = []
        stop_monitor = capture.monitor_audio_level(levels.append, interval_seconds=0.01)
        await asyncio.sleep(0.05)
        stop_monitor()
        count = len(levels)
        await asyncio.sleep(0.03)

        assert count >= 2
        assert set(levels) == {0.42}
        assert len(levels) == count

    @pytest.mark.asyncio
    async def test_monitor_stops_with_microphone(self, capture):
        await capture.start_audio()
        levels = []
        capture.monitor_audio_level(levels.append, interval_seconds=0.01)

        await capture.stop_all()
        count = len(levels)
        await asyncio.sleep(0.03)
        assert len(levels) == count

    def test_monitor_without_microphone(self, capture):
        stop_monitor = capture.monitor_audio_level(lambda level: None)
        stop_monitor()


class TestRecordingAndDevices:
    """Tests for recording control and device reports"""

    @pytest.mark.asyncio
    async def test_recording_needs_camera(self, capture):
        assert capture.start_recording() is False
        assert await capture.stop_recording() is None

    @pytest.mark.asyncio
    async def test_stop_all_stops_recording(self, capture):
        await capture.start_video()
        assert capture.start_recording() is True
        assert capture.start_recording() is False
        assert capture.is_recording

        await asyncio.sleep(0.05)
        await capture.stop_all()
        assert not capture.is_recording

    @pytest.mark.asyncio
    async def test_frame_errors_do_not_leak_devices(self, backend, capture):
        """Frame grabs failing mid-recording still release everything"""
        import os

        await capture.start_video()
        await capture.start_audio()
        assert capture.start_recording() is True
        path = capture._recording.path
        await asyncio.sleep(0.05)

        async def broken_read_frame(stream):
            raise RuntimeError("frame grab failed")

        backend.read_frame = broken_read_frame
        await asyncio.sleep(0.25)

        await capture.stop_all()

        assert capture.live_handle_count == 0
        assert backend.live == []
        assert not capture.is_recording
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_stop_all_releases_when_recording_stop_fails(self, backend, capture):
        from unittest.mock import AsyncMock

        await capture.start_video()
        await capture.start_audio()
        assert capture.start_recording() is True

        recording = capture._recording
        capture.stop_recording = AsyncMock(side_effect=RuntimeError("encoder crashed"))
        await capture.stop_all()

        assert capture.live_handle_count == 0
        assert backend.live == []
        await recording.stop()

    @pytest.mark.asyncio
    async def test_test_devices(self, backend, capture):
        from examguard.data.capture import CaptureKind

        backend.failures[CaptureKind.AUDIO] = PermissionError("denied")
        report = await capture.test_devices()

        assert report["camera"] == {"working": True, "error": None}
        assert report["microphone"]["working"] is False
        assert "denied" in report["microphone"]["error"]
        assert backend.live == []

    @pytest.mark.asyncio
    async def test_device_info(self, capture):
        await capture.start_video("cam-1")
        info = await capture.device_info()

        assert info["video_devices"] == 1
        assert info["audio_devices"] == 1
        assert info["current_video_device"] == "cam-1"
        assert info["video_active"] is True
        assert info["audio_active"] is False
        assert info["recording"] is False
