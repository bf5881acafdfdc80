"""
Pure camera math for pixel-accurate overlay.

NO OpenGL imports here - only numpy matrices. The renderer uploads them.

World units are video pixels: the camera sits far enough back that the
z = 0 plane fills the view exactly, so a mesh expressed in raw pixel
coordinates lands 1:1 on the result surface.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

# Mesh positions are mirrored pixel coordinates (x right, y down, z toward
# the subject). This flip maps them into the camera's right-handed frame.
MODEL_FLIP = np.diag([-1.0, -1.0, -1.0, 1.0]).astype(np.float32)


@dataclass(frozen=True)
class CameraCalibration:
    """
    Perspective camera derived from video dimensions.

    Attributes:
        width: Video width in pixels
        height: Video height in pixels
        fov: Vertical field of view in degrees
        aspect: width / height
        near: Near plane distance
        far: Far plane distance (2 * distance)
        distance: Camera distance from the z = 0 plane
        position: Camera position (x, y, z)
    """

    width: int
    height: int
    fov: float
    aspect: float
    near: float
    far: float
    distance: float
    position: Tuple[float, float, float]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


def calibrate(width: int, height: int, fov: float = 45.0, near: float = 1.0) -> CameraCalibration:
    """
    Compute the camera for a video of the given size.

    Args:
        width: Video width in pixels
        height: Video height in pixels
        fov: Vertical field of view in degrees
        near: Near plane distance

    Returns:
        CameraCalibration where one world unit equals one video pixel
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid video size {width}x{height}")
    if not 0.0 < fov < 180.0:
        raise ValueError(f"Invalid field of view {fov}")

    distance = (height / 2.0) / math.tan(fov / 2.0 * math.pi / 180.0)

    return CameraCalibration(
        width=int(width),
        height=int(height),
        fov=float(fov),
        aspect=width / height,
        near=float(near),
        far=2.0 * distance,
        distance=distance,
        position=(-width / 2.0, -height / 2.0, distance),
    )


def perspective_matrix(calibration: CameraCalibration) -> np.ndarray:
    """Create the perspective projection matrix (row-major)."""
    f = 1.0 / math.tan(math.radians(calibration.fov) / 2.0)
    near, far = calibration.near, calibration.far

    proj = np.zeros((4, 4), dtype=np.float32)
    proj[0, 0] = f / calibration.aspect
    proj[1, 1] = f
    proj[2, 2] = (far + near) / (near - far)
    proj[2, 3] = 2.0 * far * near / (near - far)
    proj[3, 2] = -1.0

    return proj


def view_matrix(calibration: CameraCalibration) -> np.ndarray:
    """Create the view matrix: camera at its position looking down -Z."""
    view = np.eye(4, dtype=np.float32)
    view[0, 3] = -calibration.position[0]
    view[1, 3] = -calibration.position[1]
    view[2, 3] = -calibration.position[2]
    return view


def mvp_matrix(calibration: CameraCalibration) -> np.ndarray:
    """Full model-view-projection matrix for the face mesh."""
    return perspective_matrix(calibration) @ view_matrix(calibration) @ MODEL_FLIP


def project_point(calibration: CameraCalibration,
                  point: Tuple[float, float, float]) -> Tuple[float, float]:
    """
    Project a mesh vertex to result surface pixel coordinates.

    Args:
        calibration: Camera calibration
        point: Vertex position as stored in the mesh buffer

    Returns:
        (x, y) pixel position, origin at the top-left corner
    """
    clip = mvp_matrix(calibration) @ np.array([point[0], point[1], point[2], 1.0],
                                              dtype=np.float64)
    ndc_x = clip[0] / clip[3]
    ndc_y = clip[1] / clip[3]

    px = (ndc_x + 1.0) * 0.5 * calibration.width
    py = (1.0 - ndc_y) * 0.5 * calibration.height
    return float(px), float(py)
