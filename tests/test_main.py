"""Tests for the command line entry point and logging setup."""

import logging
from pathlib import Path

import cv2
import numpy as np
import pytest

from face_swap.__main__ import build_parser, main
from face_swap.errors import ImageLoadError
from face_swap.logging_utils import ColoredFormatter, setup_logging
from face_swap.video_source import VideoSource, load_image


class TestParser:

    def test_defaults_are_unset(self):
        args = build_parser().parse_args([])
        assert args.camera_index is None
        assert args.face is None
        assert args.log_level == "INFO"

    def test_options(self):
        args = build_parser().parse_args(
            ["-c", "1", "--face", "me.png", "-o", "out", "--capture-fps", "30"]
        )
        assert args.camera_index == 1
        assert args.face == Path("me.png")
        assert args.output_dir == Path("out")
        assert args.capture_fps == 30.0

    def test_invalid_config_exits_2(self):
        assert main(["--capture-fps", "0"]) == 2


class TestLogging:

    def test_setup_returns_package_logger(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        logger = setup_logging("debug", log_file=log_file, color=False)
        assert logger.name == "face_swap"
        assert logging.getLogger().level == logging.DEBUG

        logger.info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text()

    def test_colored_formatter_restores_levelname(self):
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "msg", None, None)
        text = ColoredFormatter("%(levelname)s %(message)s").format(record)
        assert "\033[33m" in text
        assert record.levelname == "WARNING"


class TestLoadImage:

    def test_reads_bgr(self, tmp_path):
        path = tmp_path / "face.png"
        cv2.imwrite(str(path), np.full((20, 30, 3), 7, dtype=np.uint8))
        image = load_image(path)
        assert image.shape == (20, 30, 3)

    def test_missing(self, tmp_path):
        with pytest.raises(ImageLoadError):
            load_image(tmp_path / "nope.png")

    def test_not_an_image(self, tmp_path):
        path = tmp_path / "face.png"
        path.write_text("not an image")
        with pytest.raises(ImageLoadError):
            load_image(path)


class TestVideoSource:

    def test_read_before_open(self):
        source = VideoSource()
        assert source.read() is None
        assert not source.is_open


class TestPackageExports:
    """Lazy exports of the package root."""

    def test_pure_exports(self):
        import face_swap
        from face_swap.mesh import FaceMesh

        assert face_swap.NUM_LANDMARKS == 468
        assert len(face_swap.TRIANGULATION) > 0
        assert face_swap.mirror_x(0.0, 320.0) == 640.0
        assert face_swap.calibrate(640, 480).size == (640, 480)
        assert isinstance(face_swap.FaceMesh(), FaceMesh)

    def test_unknown_attribute(self):
        import face_swap

        with pytest.raises(AttributeError):
            face_swap.not_a_thing
