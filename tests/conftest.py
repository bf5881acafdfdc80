"""Shared fixtures for pytest."""
import asyncio
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the repository root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_swap.face_tracker import Prediction  # noqa: E402
from face_swap.topology import NUM_LANDMARKS  # noqa: E402


def make_prediction(width=640, height=480, confidence=1.0, seed=0, num_landmarks=NUM_LANDMARKS):
    """Deterministic prediction with every landmark inside a width x height image."""
    rng = np.random.default_rng(seed)
    mesh = np.empty((num_landmarks, 3), dtype=np.float32)
    mesh[:, 0] = rng.uniform(0.25 * width, 0.75 * width, num_landmarks)
    mesh[:, 1] = rng.uniform(0.2 * height, 0.8 * height, num_landmarks)
    mesh[:, 2] = rng.uniform(-30.0, 30.0, num_landmarks)
    return Prediction(scaled_mesh=mesh, confidence=confidence)


class FakeEstimator:
    """Scripted estimator: returns queued results, then repeats the last one."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.frames = []

    async def estimate(self, frame):
        self.calls += 1
        self.frames.append(frame)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if len(self.results) > 1:
                return self.results.pop(0)
            return self.results[0] if self.results else None
        finally:
            self.in_flight -= 1


class FakeOverlay:
    """Renderer stand-in that counts reads of its surface."""

    def __init__(self, pixels=None):
        self.pixels = pixels
        self.reads = 0

    def read_pixels(self):
        self.reads += 1
        return self.pixels


class FakeRenderer(FakeOverlay):
    """Records the order of renderer calls."""

    def __init__(self, pixels=None):
        super().__init__(pixels)
        self.calibrations = []
        self.renders = 0

    def set_calibration(self, calibration):
        self.calibrations.append(calibration)

    def render(self):
        self.renders += 1


class FakeSource:
    """Frame source handing out the same frame (or a scripted sequence)."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.reads = 0

    def read(self):
        self.reads += 1
        if len(self.frames) > 1:
            return self.frames.pop(0)
        return self.frames[0] if self.frames else None


@pytest.fixture
def frame_640x480():
    """Gray 640x480 BGR frame."""
    return np.full((480, 640, 3), 100, dtype=np.uint8)


@pytest.fixture
def prediction():
    return make_prediction()


@pytest.fixture
def small_triangulation():
    """Two triangles over four landmarks."""
    return ((0, 1, 2), (0, 2, 3))
