"""
Recording of the composited surface.

The recorder samples the result surface on its own clock, encodes each sample
into a JPEG chunk as it arrives, and on stop writes the chunks, in capture
order, into one video file named ``record-<unix-millis>.<ext>``.
It only ever reads the surface.
"""

import asyncio
import enum
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

import cv2
import numpy as np

from .compositor import Surface
from .config import FaceSwapConfig

logger = logging.getLogger(__name__)


class RecorderState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"


def record_filename(extension: str, timestamp_ms: Optional[int] = None) -> str:
    """Export file name for a recording finished at ``timestamp_ms``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"record-{timestamp_ms}.{extension}"


def encode_chunk(frame: np.ndarray, quality: int = 90) -> bytes:
    """JPEG-encode one captured frame."""
    ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("Failed to encode frame")
    return buffer.tobytes()


def write_video(chunks: List[bytes], path: Path, fps: float, fourcc: str) -> Path:
    """
    Finalize JPEG chunks into a single video file.

    Chunks whose size differs from the first one are resized to it.
    """
    first = cv2.imdecode(np.frombuffer(chunks[0], dtype=np.uint8), cv2.IMREAD_COLOR)
    if first is None:
        raise ValueError("Failed to decode first chunk")
    height, width = first.shape[:2]

    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*fourcc), fps, (width, height))
    if not writer.isOpened():
        raise IOError(f"Cannot open video writer for {path}")

    try:
        for chunk in chunks:
            frame = cv2.imdecode(np.frombuffer(chunk, dtype=np.uint8), cv2.IMREAD_COLOR)
            if frame is None:
                continue
            if frame.shape[:2] != (height, width):
                frame = cv2.resize(frame, (width, height))
            writer.write(frame)
    finally:
        writer.release()

    return path


class RecorderSink:
    """
    Idle --start--> Recording --stop--> Idle.

    Attributes:
        chunks: Encoded samples of the current recording, in capture order
        output: Path of the last finalized recording, or None
    """

    def __init__(self, config: Optional[FaceSwapConfig] = None,
                 on_output: Optional[Callable[[Path], None]] = None):
        self.config = config or FaceSwapConfig()
        self.on_output = on_output

        self.state = RecorderState.IDLE
        self.chunks: List[bytes] = []
        self.output: Optional[Path] = None

        self._surface: Optional[Surface] = None
        self._capture_task: Optional[asyncio.Task] = None
        # Held for the whole of each start/stop transition
        self._transition = asyncio.Lock()

    @property
    def recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    async def start(self, surface: Surface):
        """
        Begin capturing the surface.

        Starting while already recording stops and finalizes the current
        recording first.
        """
        async with self._transition:
            await self._start(surface)

    async def _start(self, surface: Surface):
        if self.recording:
            logger.info("Recorder restarted; finalizing current recording")
            await self._stop()

        if self.output is not None:
            logger.debug("Releasing previous recording reference %s", self.output)
            self.output = None

        self.chunks = []
        self._surface = surface
        self.state = RecorderState.RECORDING
        self._capture_task = asyncio.ensure_future(self._capture())
        logger.info("Recording started at %.0f captures/s", self.config.capture_fps)

    def capture_once(self) -> bool:
        """
        Sample the surface once.

        Returns:
            True if a chunk was appended
        """
        if self._surface is None:
            return False

        frame = self._surface.snapshot()
        if frame is None:
            return False

        self.chunks.append(encode_chunk(frame, self.config.jpeg_quality))
        return True

    async def _capture(self):
        interval = 1.0 / self.config.capture_fps
        loop = asyncio.get_running_loop()
        next_time = loop.time()

        while self.recording:
            self.capture_once()
            next_time += interval
            await asyncio.sleep(max(0.0, next_time - loop.time()))

    async def stop(self) -> Optional[Path]:
        """
        Stop capturing and export the recording. No-op while idle.

        Returns:
            Path of the exported file, or None if nothing was recorded
        """
        async with self._transition:
            return await self._stop()

    async def _stop(self) -> Optional[Path]:
        if not self.recording:
            return None

        self.state = RecorderState.IDLE
        task = self._capture_task
        self._capture_task = None
        if task is not None:
            task.cancel()
            (result,) = await asyncio.gather(task, return_exceptions=True)
            if isinstance(result, Exception):
                logger.error("Capture ended early: %s", result)
        self._surface = None

        if not self.chunks:
            logger.warning("Recording stopped with no captured frames")
            return None

        output_dir = self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / record_filename(self.config.record_extension)

        loop = asyncio.get_running_loop()
        chunks = list(self.chunks)
        self.output = await loop.run_in_executor(
            None, write_video, chunks, path,
            self.config.capture_fps, self.config.record_fourcc
        )
        logger.info("Recording saved: %s (%d frames)", self.output, len(chunks))

        if self.on_output is not None:
            self.on_output(self.output)
        return self.output
