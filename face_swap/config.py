"""
Configuration for the face-swap pipeline.

Every tunable constant lives here with its default so the pipeline stages
never hard-code them.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path

MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task"
)


@dataclass
class FaceSwapConfig:
    """
    Pipeline settings.

    Attributes:
        camera_index: OpenCV capture device index
        frame_width: Requested capture width in pixels
        frame_height: Requested capture height in pixels
        camera_fps: Requested capture rate
        fov: Vertical field of view of the render camera, in degrees
        near: Near clipping plane distance
        refresh_rate: Display refresh tick used to arm the frame loop (Hz)
        bind_attempts: Estimates tried when binding a new source face
        bind_confidence: Minimum in-view confidence accepted for binding
        bind_retry_interval: Seconds awaited between binding attempts
        capture_fps: Recorder sampling rate of the result surface
        jpeg_quality: Quality of each recorded chunk
        record_fourcc: FourCC of the exported video
        record_extension: File extension of the exported video
        output_dir: Directory receiving ``record-<millis>.<ext>`` files
        model_path: Local path of the MediaPipe face landmarker asset
        model_url: Where to download the asset when it is missing
        min_detection_confidence: Face detector threshold of the model
    """

    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480
    camera_fps: int = 30

    fov: float = 45.0
    near: float = 1.0
    refresh_rate: float = 60.0

    bind_attempts: int = 10
    bind_confidence: float = 1.0
    bind_retry_interval: float = 0.5

    capture_fps: float = 60.0
    jpeg_quality: int = 90
    record_fourcc: str = "MJPG"
    record_extension: str = "avi"
    output_dir: Path = field(default_factory=lambda: Path("."))

    model_path: Path = field(default_factory=lambda: Path("face_landmarker.task"))
    model_url: str = MODEL_URL
    min_detection_confidence: float = 0.5

    def __post_init__(self):
        if self.bind_attempts < 1:
            raise ValueError("bind_attempts must be >= 1")
        if self.capture_fps <= 0 or self.refresh_rate <= 0:
            raise ValueError("capture_fps and refresh_rate must be positive")
        if len(self.record_fourcc) != 4:
            raise ValueError("record_fourcc must have exactly 4 characters")
        self.output_dir = Path(self.output_dir)
        self.model_path = Path(self.model_path)

    @classmethod
    def from_args(cls, args) -> "FaceSwapConfig":
        """Build a config from an argparse namespace, ignoring unset values."""
        names = {f.name for f in fields(cls)}
        values = {
            name: value for name, value in vars(args).items()
            if name in names and value is not None
        }
        return cls(**values)
