"""
Binding a source face image onto the mesh.

The UV mapping is baked once from the source image's own landmarks, so it
only accepts a trustworthy (fully in view) estimate.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import numpy as np

from .config import FaceSwapConfig
from .errors import BindingFailure
from .face_tracker import LandmarkEstimator, Prediction
from .mesh import FaceMesh, TextureBinding
from .video_source import load_image

logger = logging.getLogger(__name__)


def compute_uvs(prediction: Prediction, indices: np.ndarray,
                width: int, height: int) -> np.ndarray:
    """
    Normalize source landmarks into per-vertex texture coordinates.

    Args:
        prediction: Landmarks of the source image
        indices: Flattened triangulation (one landmark index per vertex)
        width: Source image width in pixels
        height: Source image height in pixels

    Returns:
        (len(indices), 2) float32 array of UVs in [0, 1]
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid source size {width}x{height}")

    points = np.asarray(prediction.scaled_mesh, dtype=np.float32)[indices]
    uvs = np.empty((len(indices), 2), dtype=np.float32)
    uvs[:, 0] = points[:, 0] / width
    uvs[:, 1] = points[:, 1] / height
    return np.clip(uvs, 0.0, 1.0)


async def estimate_trusted(estimator: LandmarkEstimator,
                           image: np.ndarray,
                           attempts: int = 10,
                           threshold: float = 1.0,
                           interval: float = 0.0) -> Prediction:
    """
    Estimate repeatedly until a prediction is confident enough.

    Args:
        estimator: Landmark estimator
        image: Source image
        attempts: Maximum number of estimates
        threshold: Minimum accepted confidence
        interval: Seconds to wait between attempts

    Returns:
        First prediction with confidence >= threshold

    Raises:
        BindingFailure: If no attempt reaches the threshold
    """
    best: Optional[float] = None

    for attempt in range(1, attempts + 1):
        prediction = await estimator.estimate(image)
        if prediction is not None:
            if prediction.confidence >= threshold:
                logger.debug("Trusted estimate on attempt %d (confidence %.3f)",
                             attempt, prediction.confidence)
                return prediction
            best = prediction.confidence if best is None else max(best, prediction.confidence)

        if attempt < attempts and interval > 0:
            await asyncio.sleep(interval)

    raise BindingFailure(attempts, threshold, best_confidence=best)


class FaceTextureBinder:
    """Replaces the mesh texture with a new source face."""

    def __init__(self, estimator: LandmarkEstimator, mesh: FaceMesh,
                 config: Optional[FaceSwapConfig] = None):
        self.estimator = estimator
        self.mesh = mesh
        self.config = config or FaceSwapConfig()

    async def bind(self, image: np.ndarray) -> TextureBinding:
        """
        Bind a source face image to the mesh.

        The mesh is only touched once a trusted estimate exists, so a failure
        leaves the previous texture and UVs exactly as they were.

        Raises:
            BindingFailure: If no face is found in the image
        """
        prediction = await estimate_trusted(
            self.estimator, image,
            attempts=self.config.bind_attempts,
            threshold=self.config.bind_confidence,
            interval=self.config.bind_retry_interval,
        )

        height, width = image.shape[:2]
        uvs = compute_uvs(prediction, self.mesh.indices, width, height)
        binding = TextureBinding(image=image, uvs=uvs)

        self.mesh.bind_texture(binding)
        logger.info("Source face bound (%dx%d)", width, height)
        return binding

    async def bind_file(self, path: Path) -> TextureBinding:
        """Load an image file and bind it. Load errors propagate."""
        loop = asyncio.get_running_loop()
        image = await loop.run_in_executor(None, load_image, path)
        return await self.bind(image)
