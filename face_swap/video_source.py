"""Camera stream handle and still-image loading (OpenCV)."""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .errors import CameraUnavailable, ImageLoadError

logger = logging.getLogger(__name__)


def load_image(path: Union[str, Path]) -> np.ndarray:
    """
    Decode an image file into a BGR array.

    Raises:
        ImageLoadError: If the file is missing or not a decodable image
    """
    path = Path(path)
    if not path.is_file():
        raise ImageLoadError(str(path))

    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise ImageLoadError(str(path))

    return image


class VideoSource:
    """
    Live camera stream.

    Only hands out the latest frame; dimensions are those actually delivered
    by the device, which may differ from the requested ones.
    """

    def __init__(self, camera_index: int = 0,
                 width: int = 640, height: int = 480, fps: int = 30):
        self.camera_index = camera_index
        self.requested_size = (width, height)
        self.requested_fps = fps
        self.cap = None
        self.frame_size: Optional[Tuple[int, int]] = None

    def open(self) -> "VideoSource":
        """
        Open the capture device.

        Raises:
            CameraUnavailable: If the device cannot be opened
        """
        self.cap = cv2.VideoCapture(self.camera_index)
        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            raise CameraUnavailable(self.camera_index)

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.requested_size[0])
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.requested_size[1])
        self.cap.set(cv2.CAP_PROP_FPS, self.requested_fps)
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        logger.info("Camera %d opened", self.camera_index)
        return self

    @property
    def is_open(self) -> bool:
        return self.cap is not None

    def read(self) -> Optional[np.ndarray]:
        """Grab the current frame, or None if the device returned nothing."""
        if self.cap is None:
            return None

        ret, frame = self.cap.read()
        if not ret or frame is None:
            return None

        self.frame_size = (frame.shape[1], frame.shape[0])
        return frame

    def release(self):
        """Release the capture device."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info("Camera %d released", self.camera_index)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
