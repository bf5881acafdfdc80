"""
Live face mesh state.

The mesh is flattened (non-indexed): one vertex per triangle corner, so each
triangle carries its own UVs. Buffers are allocated once from the
triangulation and only ever written in place.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .face_tracker import Prediction
from .topology import NUM_LANDMARKS, TRIANGULATION, flat_indices

logger = logging.getLogger(__name__)


def mirror_x(x, cx):
    """
    Mirror an x coordinate around the vertical center line.

    Works on scalars and numpy arrays. mirror_x(mirror_x(x)) == x.
    """
    return cx - (x - cx)


@dataclass(frozen=True)
class TextureBinding:
    """
    A source face image and the per-vertex UVs baked from its landmarks.

    Attributes:
        image: BGR uint8 image
        uvs: (3T, 2) float32 UVs in [0, 1]
    """

    image: np.ndarray
    uvs: np.ndarray

    @property
    def size(self):
        return self.image.shape[1], self.image.shape[0]


class FaceMesh:
    """
    Vertex-position and UV buffers for the tracked face.

    positions: (3T, 3) float32, world position of each triangle corner
    uvs: (3T, 2) float32, texture coordinate of each triangle corner
    """

    def __init__(self, triangulation=TRIANGULATION, num_landmarks: int = NUM_LANDMARKS):
        self.indices = flat_indices(triangulation)
        if len(self.indices) and (self.indices.min() < 0 or self.indices.max() >= num_landmarks):
            raise ValueError("Triangulation index out of landmark range")

        self.num_landmarks = num_landmarks
        self.positions = np.zeros((len(self.indices), 3), dtype=np.float32)
        self.uvs = np.zeros((len(self.indices), 2), dtype=np.float32)
        self.texture: Optional[TextureBinding] = None

        # Bumped on every write so the renderer knows when to re-upload
        self.positions_version = 0
        self.uvs_version = 0

    @property
    def vertex_count(self) -> int:
        return len(self.indices)

    @property
    def has_texture(self) -> bool:
        return self.texture is not None

    def landmark_points(self, prediction: Prediction) -> np.ndarray:
        """Gather one landmark per flattened vertex."""
        mesh = np.asarray(prediction.scaled_mesh, dtype=np.float32)
        if mesh.ndim != 2 or mesh.shape[1] < 3 or len(mesh) < self.num_landmarks:
            raise ValueError(
                f"Prediction has {len(mesh)} landmarks, expected {self.num_landmarks}"
            )
        return mesh[self.indices, :3]

    def update_positions(self, prediction: Prediction, video_width: float):
        """
        Move every vertex to its landmark, mirrored horizontally.

        Args:
            prediction: Landmarks of the live frame
            video_width: Width of the live frame in pixels
        """
        points = self.landmark_points(prediction)
        cx = video_width / 2.0

        self.positions[:, 0] = mirror_x(points[:, 0], cx)
        self.positions[:, 1] = points[:, 1]
        self.positions[:, 2] = points[:, 2]
        self.positions_version += 1

    def bind_texture(self, binding: TextureBinding) -> Optional[TextureBinding]:
        """
        Replace the texture binding and its UVs wholesale.

        Returns:
            The previous binding (to be released), or None
        """
        if binding.uvs.shape != self.uvs.shape:
            raise ValueError(
                f"UV buffer shape {binding.uvs.shape} does not match mesh {self.uvs.shape}"
            )

        previous = self.texture
        self.uvs[:] = binding.uvs
        self.texture = binding
        self.uvs_version += 1
        logger.debug("Texture bound (%dx%d)", *binding.size)
        return previous
