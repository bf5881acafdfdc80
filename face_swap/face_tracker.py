"""
Face landmark estimation using MediaPipe Face Landmarker.

This module ONLY handles landmark estimation.
NO rendering, NO OpenGL - just data.
"""

import asyncio
import logging
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

import cv2
import numpy as np
import mediapipe as mp

from .config import MODEL_URL
from .errors import ModelLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    """
    One tracked face.

    Attributes:
        scaled_mesh: (N, 3) landmark coordinates in source pixel space
        confidence: Fraction of landmarks inside the image (1.0 = fully in view)
    """

    scaled_mesh: np.ndarray
    confidence: float

    def __len__(self) -> int:
        return len(self.scaled_mesh)


class LandmarkEstimator(Protocol):
    """Anything that can estimate one face from an image-like array."""

    async def estimate(self, frame: np.ndarray) -> Optional[Prediction]:
        ...


def in_view_confidence(points: np.ndarray, width: int, height: int) -> float:
    """
    Fraction of landmarks that lie inside the image bounds.

    Args:
        points: (N, 2+) pixel coordinates
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        Value in [0, 1]; 1.0 when the whole face is in view
    """
    if len(points) == 0:
        return 0.0

    xs = points[:, 0]
    ys = points[:, 1]
    inside = (xs >= 0) & (xs <= width) & (ys >= 0) & (ys <= height)
    return float(np.count_nonzero(inside)) / len(points)


def landmarks_to_prediction(landmarks: Sequence, width: int, height: int) -> Prediction:
    """
    Convert normalized MediaPipe landmarks to a pixel-space prediction.

    z is scaled by the image width, matching MediaPipe's depth convention.
    """
    mesh = np.array(
        [(lm.x * width, lm.y * height, lm.z * width) for lm in landmarks],
        dtype=np.float32
    )
    return Prediction(scaled_mesh=mesh,
                      confidence=in_view_confidence(mesh, width, height))


def best_prediction(predictions: Sequence[Prediction]) -> Optional[Prediction]:
    """Pick the highest-confidence prediction, or None if there is none."""
    if not predictions:
        return None
    return max(predictions, key=lambda p: p.confidence)


def ensure_model(model_path: Path, model_url: str = MODEL_URL) -> Path:
    """
    Make sure the face landmarker asset exists locally, downloading it once.

    Raises:
        ModelLoadError: If the asset is missing and cannot be downloaded
    """
    model_path = Path(model_path)
    if model_path.exists():
        logger.info("Landmark model found: %s", model_path)
        return model_path

    logger.info("Downloading landmark model to %s", model_path)
    try:
        model_path.parent.mkdir(parents=True, exist_ok=True)
        urllib.request.urlretrieve(model_url, str(model_path))
    except OSError as e:
        raise ModelLoadError(str(model_path), cause=e) from e

    return model_path


class FaceTracker:
    """
    Wrapper for MediaPipe Face Landmarker.

    Estimates a single face from BGR frames; the blocking inference runs on a
    one-worker executor so at most one estimate is in flight per tracker.
    Does NOT render anything - returns raw data only.
    """

    def __init__(self,
                 model_path: Path,
                 max_num_faces: int = 1,
                 min_detection_confidence: float = 0.5,
                 min_presence_confidence: float = 0.5):
        """
        Initialize FaceTracker.

        Args:
            model_path: Path of the ``face_landmarker.task`` asset
            max_num_faces: Maximum number of faces the model reports
            min_detection_confidence: Minimum confidence for detection
            min_presence_confidence: Minimum face presence score
        """
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=mp.tasks.vision.RunningMode.IMAGE,
            num_faces=max_num_faces,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_presence_confidence,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        try:
            self.landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as e:
            raise ModelLoadError(str(model_path), cause=e) from e

        self._executor = ThreadPoolExecutor(max_workers=1,
                                            thread_name_prefix="face-tracker")
        self._closed = False

    def estimate_sync(self, frame: np.ndarray) -> Optional[Prediction]:
        """
        Estimate landmarks on a BGR frame, blocking.

        Args:
            frame: OpenCV BGR image (numpy array)

        Returns:
            Best prediction, or None if no face was found
        """
        if frame is None or self._closed:
            return None

        height, width = frame.shape[:2]
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB,
                         data=np.ascontiguousarray(rgb_frame))

        result = self.landmarker.detect(image)
        if not result.face_landmarks:
            return None

        return best_prediction([
            landmarks_to_prediction(face, width, height)
            for face in result.face_landmarks
        ])

    async def estimate(self, frame: np.ndarray) -> Optional[Prediction]:
        """Estimate landmarks without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.estimate_sync, frame)

    def release(self):
        """Release MediaPipe resources."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        self.landmarker.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.release()
        return False
