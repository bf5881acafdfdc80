"""
Frame loop: estimate -> update mesh -> render -> composite, once per tick.

Everything runs on one asyncio event loop. The only suspension point inside
an iteration is the landmark estimate, so mesh writes never interleave with
a render. Iterations never overlap: the next one is armed only after the
previous one finished, so slow inference drops frames instead of queueing
them.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Optional, Protocol, Tuple

import numpy as np

from .camera import calibrate
from .compositor import Compositor
from .face_tracker import LandmarkEstimator
from .mesh import FaceMesh

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> Optional[np.ndarray]:
        ...


class Renderer(Protocol):
    def set_calibration(self, calibration) -> None:
        ...

    def render(self) -> None:
        ...


class FPSCounter:
    """Moving average FPS counter for real performance metrics."""

    def __init__(self, window_size: int = 30):
        self.window_size = window_size
        self.frame_times = deque(maxlen=window_size)
        self.last_time = time.perf_counter()

    def tick(self) -> float:
        """Call once per frame. Returns current FPS."""
        now = time.perf_counter()
        dt = now - self.last_time
        self.last_time = now
        if dt > 0:
            self.frame_times.append(dt)
        return self.get_fps()

    def get_fps(self) -> float:
        """Get moving average FPS."""
        if not self.frame_times:
            return 0.0
        avg_dt = sum(self.frame_times) / len(self.frame_times)
        return 1.0 / avg_dt if avg_dt > 0 else 0.0


class CancellationToken:
    """Flag checked before every resubmission of the loop."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True


class FrameLoop:
    """
    Drives the tracking pipeline.

    Args:
        source: Camera stream handing out the latest frame
        estimator: Landmark estimator
        mesh: Mesh state updated from each prediction
        renderer: Draws the mesh offscreen
        compositor: Layers the render over the raw frame
        present: Optional callback receiving each composited image
        fov: Camera field of view used when (re)calibrating
        near: Camera near plane
        refresh_rate: Display refresh tick in Hz
    """

    def __init__(self,
                 source: FrameSource,
                 estimator: LandmarkEstimator,
                 mesh: FaceMesh,
                 renderer: Renderer,
                 compositor: Compositor,
                 present: Optional[Callable[[np.ndarray], None]] = None,
                 fov: float = 45.0,
                 near: float = 1.0,
                 refresh_rate: float = 60.0):
        self.source = source
        self.estimator = estimator
        self.mesh = mesh
        self.renderer = renderer
        self.compositor = compositor
        self.present = present
        self.fov = fov
        self.near = near
        self.tick_interval = 1.0 / refresh_rate

        self.calibration = None
        self._video_size: Optional[Tuple[int, int]] = None

        self._token: Optional[CancellationToken] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._next_tick = 0.0

        self.error: Optional[BaseException] = None
        self.frames = 0
        self.misses = 0
        self.fps_counter = FPSCounter()

    @property
    def running(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def _recalibrate(self, frame: np.ndarray):
        size = (frame.shape[1], frame.shape[0])
        if size == self._video_size:
            return
        self._video_size = size
        self.calibration = calibrate(size[0], size[1], fov=self.fov, near=self.near)
        self.renderer.set_calibration(self.calibration)

    async def run_once(self, token: Optional[CancellationToken] = None) -> bool:
        """
        Run one full iteration.

        Args:
            token: Cancellation token of the owning session; if it was
                cancelled while the estimate was in flight, the result is
                discarded and nothing is drawn.

        Returns:
            True if a composited image was produced
        """
        frame = self.source.read()
        if frame is None:
            return False

        self._recalibrate(frame)

        prediction = await self.estimator.estimate(frame)
        if token is not None and token.cancelled:
            logger.debug("Discarding estimate after teardown")
            return False

        if prediction is None:
            self.misses += 1
        else:
            self.mesh.update_positions(prediction, frame.shape[1])

        self.renderer.render()
        result = self.compositor.composite(frame, self.mesh.has_texture)
        if result is None:
            return False

        self.frames += 1
        self.fps_counter.tick()
        if self.present is not None:
            self.present(result)
        return True

    def start(self):
        """Arm the first iteration on the running event loop."""
        if self.running:
            return
        self._token = CancellationToken()
        self._next_tick = asyncio.get_running_loop().time()
        self._schedule(self._token)

    def _schedule(self, token: CancellationToken):
        if token.cancelled:
            return
        loop = asyncio.get_running_loop()
        self._next_tick = max(self._next_tick + self.tick_interval, loop.time())
        self._handle = loop.call_at(self._next_tick, self._spawn, token)

    def _spawn(self, token: CancellationToken):
        self._handle = None
        if token.cancelled:
            return
        self._task = asyncio.ensure_future(self._iterate(token))

    async def _iterate(self, token: CancellationToken):
        try:
            await self.run_once(token)
        except Exception as e:
            token.cancel()
            self.error = e
            logger.exception("Frame loop stopped by an error")
        finally:
            if not token.cancelled:
                self._schedule(token)

    def stop(self):
        """Cancel the pending tick. An in-flight estimate is left to finish."""
        if self._token is not None:
            self._token.cancel()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def wait_closed(self):
        """
        Wait for an in-flight iteration to settle after stop().

        Raises:
            The error that stopped the loop, if any
        """
        task = self._task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        if self.error is not None:
            raise self.error
