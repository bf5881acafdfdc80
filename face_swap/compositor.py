"""
Compositing of the rendered face over the raw video.

NO OpenGL here - surfaces are numpy images so the result can be shown,
recorded and tested without a graphics context.
"""

import logging
from typing import Optional, Protocol, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class OverlaySource(Protocol):
    """Anything that can hand out a BGRA overlay image (the renderer)."""

    def read_pixels(self) -> Optional[np.ndarray]:
        ...


class Surface:
    """
    The visible result surface.

    Holds the most recently composited BGR image. Readers take snapshots;
    only the compositor writes.
    """

    def __init__(self):
        self.pixels: Optional[np.ndarray] = None
        self.released = False
        self.version = 0

    @property
    def size(self) -> Optional[Tuple[int, int]]:
        if self.pixels is None:
            return None
        return self.pixels.shape[1], self.pixels.shape[0]

    def snapshot(self) -> Optional[np.ndarray]:
        """Copy of the latest composited image, or None."""
        if self.released or self.pixels is None:
            return None
        return self.pixels.copy()

    def release(self):
        self.released = True
        self.pixels = None


def alpha_blend(base: np.ndarray, overlay: np.ndarray) -> np.ndarray:
    """
    Blend a BGRA overlay onto a BGR base image in place.

    Args:
        base: (H, W, 3) uint8 image, modified in place
        overlay: (H, W, 4) uint8 image of the same size

    Returns:
        The base image
    """
    if overlay.shape[:2] != base.shape[:2]:
        raise ValueError(
            f"Overlay size {overlay.shape[:2]} does not match base {base.shape[:2]}"
        )

    alpha = overlay[:, :, 3:4]
    covered = alpha[:, :, 0] > 0
    if not covered.any():
        return base

    a = alpha[covered].astype(np.float32) / 255.0
    src = overlay[covered][:, :3].astype(np.float32)
    dst = base[covered].astype(np.float32)
    base[covered] = np.clip(src * a + dst * (1.0 - a), 0, 255).astype(np.uint8)
    return base


class Compositor:
    """
    Layers the renderer output over the raw video frame.

    The raw frame is always drawn first; the overlay is only read when a
    face texture has been bound.
    """

    def __init__(self, surface: Surface, overlay: OverlaySource):
        self.surface = surface
        self.overlay = overlay

    def composite(self, frame: np.ndarray, has_face_source: bool) -> Optional[np.ndarray]:
        """
        Draw one composited image onto the result surface.

        Args:
            frame: Raw BGR video frame
            has_face_source: Whether a face texture is bound

        Returns:
            The composited image, or None if the surface is gone
        """
        if self.surface.released or frame is None:
            return None

        result = np.array(frame, dtype=np.uint8, copy=True)

        if has_face_source:
            pixels = self.overlay.read_pixels()
            if pixels is not None:
                alpha_blend(result, pixels)

        self.surface.pixels = result
        self.surface.version += 1
        return result
