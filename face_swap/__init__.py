"""Live face-swap compositing over a camera stream."""

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "TRIANGULATION",
    "NUM_LANDMARKS",
    "mirror_x",
    "calibrate",
    "compute_uvs",
    "FaceMesh",
    "FaceTracker",
    "FaceSwapApp",
    "run_face_swap",
]


def _load(module: str, name: str) -> Any:
    return getattr(import_module(module, __name__), name)


def __getattr__(name: str) -> Any:
    if name in ("TRIANGULATION", "NUM_LANDMARKS"):
        return _load(".topology", name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def mirror_x(x, cx):
    return _load(".mesh", "mirror_x")(x, cx)


def calibrate(width: int, height: int, fov: float = 45.0, near: float = 1.0):
    return _load(".camera", "calibrate")(width, height, fov=fov, near=near)


def compute_uvs(prediction, indices, width: int, height: int):
    return _load(".binder", "compute_uvs")(prediction, indices, width, height)


class FaceMesh:  # type: ignore[override]
    def __new__(cls, *args, **kwargs):
        mesh_cls = _load(".mesh", "FaceMesh")
        return mesh_cls(*args, **kwargs)


class FaceTracker:  # type: ignore[override]
    def __new__(cls, *args, **kwargs):
        tracker_cls = _load(".face_tracker", "FaceTracker")
        return tracker_cls(*args, **kwargs)


class FaceSwapApp:  # type: ignore[override]
    def __new__(cls, *args, **kwargs):
        app_cls = _load(".gl_app", "FaceSwapApp")
        return app_cls(*args, **kwargs)


def run_face_swap(config=None, face_path=None):
    return _load(".gl_app", "run_face_swap")(config, face_path)
