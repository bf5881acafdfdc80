"""
Tests for recording the composited surface.

Writes real files with OpenCV into tmp_path. NO OpenGL.
"""

import asyncio

import cv2
import numpy as np
import pytest

from face_swap.compositor import Surface
from face_swap.config import FaceSwapConfig
from face_swap.recorder import (
    RecorderSink,
    RecorderState,
    encode_chunk,
    record_filename,
    write_video,
)


@pytest.fixture
def surface():
    surface = Surface()
    surface.pixels = np.full((120, 160, 3), 80, dtype=np.uint8)
    return surface


@pytest.fixture
def config(tmp_path):
    return FaceSwapConfig(output_dir=tmp_path, capture_fps=100.0)


class TestHelpers:
    """Tests for the pure recorder helpers."""

    def test_record_filename(self):
        assert record_filename("avi", 1700000000123) == "record-1700000000123.avi"

    def test_record_filename_uses_clock(self):
        name = record_filename("webm")
        assert name.startswith("record-")
        assert name.endswith(".webm")
        assert name[len("record-"):-len(".webm")].isdigit()

    def test_encode_chunk_is_jpeg(self, surface):
        chunk = encode_chunk(surface.pixels)
        assert isinstance(chunk, bytes)
        assert chunk[:2] == b"\xff\xd8"

    def test_write_video(self, tmp_path, surface):
        chunks = [encode_chunk(surface.pixels) for _ in range(5)]
        path = write_video(chunks, tmp_path / "out.avi", 30.0, "MJPG")

        capture = cv2.VideoCapture(str(path))
        try:
            ok, frame = capture.read()
        finally:
            capture.release()
        assert ok
        assert frame.shape[:2] == (120, 160)

    def test_write_video_resizes_mismatched_chunks(self, tmp_path, surface):
        big = np.zeros((240, 320, 3), dtype=np.uint8)
        chunks = [encode_chunk(surface.pixels), encode_chunk(big)]
        path = write_video(chunks, tmp_path / "mixed.avi", 30.0, "MJPG")
        assert path.stat().st_size > 0


class TestRecorderSink:
    """State machine of RecorderSink."""

    def test_starts_idle(self, config):
        recorder = RecorderSink(config)
        assert recorder.state is RecorderState.IDLE
        assert recorder.output is None

    def test_stop_while_idle_is_noop(self, config, tmp_path):
        recorder = RecorderSink(config)
        assert asyncio.run(recorder.stop()) is None
        assert recorder.state is RecorderState.IDLE
        assert list(tmp_path.iterdir()) == []

    def test_start_stop_exports_one_file(self, config, surface, tmp_path):
        outputs = []
        recorder = RecorderSink(config, on_output=outputs.append)

        async def run():
            await recorder.start(surface)
            assert recorder.recording
            await asyncio.sleep(0.1)
            return await recorder.stop()

        path = asyncio.run(run())

        assert recorder.state is RecorderState.IDLE
        assert path is not None
        assert path.parent == tmp_path
        assert path.name.startswith("record-")
        assert path.suffix == ".avi"
        assert list(tmp_path.glob("record-*.avi")) == [path]
        assert outputs == [path]
        assert recorder.output == path
        assert len(recorder.chunks) > 1

    def test_restart_finalizes_previous(self, config, surface, tmp_path):
        outputs = []
        recorder = RecorderSink(config, on_output=outputs.append)

        async def run():
            await recorder.start(surface)
            await asyncio.sleep(0.05)
            await recorder.start(surface)
            assert recorder.recording
            assert len(outputs) == 1
            assert recorder.output is None
            await asyncio.sleep(0.05)
            await recorder.stop()

        asyncio.run(run())
        assert len(outputs) == 2
        assert len(list(tmp_path.glob("record-*.avi"))) == 2

    def test_start_clears_previous_chunks(self, config, surface):
        recorder = RecorderSink(config)

        async def run():
            await recorder.start(surface)
            await asyncio.sleep(0.05)
            await recorder.stop()
            assert recorder.chunks
            await recorder.start(surface)
            chunks = list(recorder.chunks)
            await recorder.stop()
            return chunks

        assert asyncio.run(run()) == []

    def test_restart_while_stopping(self, config, surface, tmp_path):
        """A start issued during an export waits for it and keeps no stale output."""
        outputs = []
        recorder = RecorderSink(config, on_output=outputs.append)

        async def run():
            await recorder.start(surface)
            await asyncio.sleep(0.05)
            stopping = asyncio.ensure_future(recorder.stop())
            await asyncio.sleep(0)
            await recorder.start(surface)
            first = await stopping

            assert first is not None
            assert outputs == [first]
            assert recorder.recording
            assert recorder.output is None

            await asyncio.sleep(0.05)
            second = await recorder.stop()
            return first, second

        first, second = asyncio.run(run())
        assert second is not None
        assert second != first
        assert outputs == [first, second]
        assert recorder.output == second

    def test_empty_surface_exports_nothing(self, config, tmp_path):
        recorder = RecorderSink(config)

        async def run():
            await recorder.start(Surface())
            await asyncio.sleep(0.03)
            return await recorder.stop()

        assert asyncio.run(run()) is None
        assert list(tmp_path.iterdir()) == []

    def test_capture_once_appends_in_order(self, config, surface):
        recorder = RecorderSink(config)
        recorder._surface = surface

        assert recorder.capture_once()
        surface.pixels = np.full((120, 160, 3), 200, dtype=np.uint8)
        assert recorder.capture_once()

        first = cv2.imdecode(np.frombuffer(recorder.chunks[0], np.uint8), cv2.IMREAD_COLOR)
        second = cv2.imdecode(np.frombuffer(recorder.chunks[1], np.uint8), cv2.IMREAD_COLOR)
        assert abs(int(first[0, 0, 0]) - 80) < 5
        assert abs(int(second[0, 0, 0]) - 200) < 5

    def test_capture_once_without_surface(self, config):
        assert RecorderSink(config).capture_once() is False

    def test_does_not_modify_surface(self, config, surface):
        before = surface.pixels.copy()
        version = surface.version

        async def run():
            recorder = RecorderSink(config)
            await recorder.start(surface)
            await asyncio.sleep(0.03)
            await recorder.stop()

        asyncio.run(run())
        np.testing.assert_array_equal(surface.pixels, before)
        assert surface.version == version
