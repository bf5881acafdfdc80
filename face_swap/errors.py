"""
Exception hierarchy for the face-swap pipeline.

Only failures that mean an external resource is genuinely unavailable, or
that a texture binding could not be trusted, are raised. A frame without a
face is not an error: estimators return ``None`` for it.
"""

from typing import Any, Dict, Optional


class FaceSwapError(Exception):
    """
    Base exception for all pipeline errors.

    Carries an optional context dict that is appended to the message.
    """

    def __init__(self,
                 message: str,
                 *,
                 context: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None):
        self.context = context or {}
        self.cause = cause

        full_message = message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            full_message = f"{message} [{context_str}]"

        if cause:
            full_message = f"{full_message} (caused by: {cause})"

        super().__init__(full_message)


class AcquisitionFailure(FaceSwapError):
    """An external resource (camera, model, file) could not be acquired."""


class CameraUnavailable(AcquisitionFailure):
    """The capture device could not be opened."""

    def __init__(self, camera_index: int, cause: Optional[BaseException] = None):
        super().__init__(
            "Failed to open camera",
            context={"camera_index": camera_index},
            cause=cause
        )
        self.camera_index = camera_index


class ImageLoadError(AcquisitionFailure):
    """A source image file could not be read or decoded."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(
            "Failed to load image",
            context={"path": path},
            cause=cause
        )
        self.path = path


class ModelLoadError(AcquisitionFailure):
    """The landmark model asset could not be fetched or loaded."""

    def __init__(self, model_path: str, cause: Optional[BaseException] = None):
        super().__init__(
            "Failed to load landmark model",
            context={"model_path": model_path},
            cause=cause
        )
        self.model_path = model_path


class BindingFailure(FaceSwapError):
    """No trustworthy landmark set was found for a new source face."""

    def __init__(self, attempts: int, threshold: float,
                 best_confidence: Optional[float] = None):
        super().__init__(
            "No face found in source image",
            context={
                "attempts": attempts,
                "threshold": threshold,
                "best_confidence": best_confidence,
            }
        )
        self.attempts = attempts
        self.threshold = threshold
        self.best_confidence = best_confidence
