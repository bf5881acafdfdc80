"""
Tests for camera calibration math.

These tests verify the pure projection functions without OpenGL.
"""

import math

import numpy as np
import pytest

from face_swap.camera import (
    MODEL_FLIP,
    calibrate,
    mvp_matrix,
    perspective_matrix,
    project_point,
    view_matrix,
)
from face_swap.mesh import mirror_x


class TestCalibrate:
    """Tests for calibrate function."""

    def test_distance_formula(self):
        """d = (h/2) / tan(fov/2)."""
        cal = calibrate(640, 480, fov=45.0)
        expected = 240.0 / math.tan(math.radians(22.5))
        assert cal.distance == pytest.approx(expected)

    def test_near_and_far(self):
        cal = calibrate(640, 480)
        assert cal.near == 1.0
        assert cal.far == pytest.approx(2.0 * cal.distance)

    def test_position_offset(self):
        """Camera sits at (-w/2, -h/2, d)."""
        cal = calibrate(640, 480)
        assert cal.position[0] == -320.0
        assert cal.position[1] == -240.0
        assert cal.position[2] == pytest.approx(cal.distance)

    def test_aspect(self):
        cal = calibrate(1280, 720)
        assert cal.aspect == pytest.approx(1280 / 720)
        assert cal.size == (1280, 720)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            calibrate(0, 480)
        with pytest.raises(ValueError):
            calibrate(640, -1)

    def test_invalid_fov(self):
        with pytest.raises(ValueError):
            calibrate(640, 480, fov=0.0)
        with pytest.raises(ValueError):
            calibrate(640, 480, fov=180.0)


class TestMatrices:
    """Tests for projection and view matrices."""

    def test_view_translates_camera_to_origin(self):
        cal = calibrate(640, 480)
        view = view_matrix(cal)
        camera = np.array([*cal.position, 1.0], dtype=np.float32)
        np.testing.assert_allclose(view @ camera, [0.0, 0.0, 0.0, 1.0], atol=1e-3)

    def test_perspective_depth_range(self):
        """Near plane maps to -1 and far plane to +1 in NDC."""
        cal = calibrate(640, 480)
        proj = perspective_matrix(cal)
        for z, expected in ((-cal.near, -1.0), (-cal.far, 1.0)):
            clip = proj @ np.array([0.0, 0.0, z, 1.0])
            assert clip[2] / clip[3] == pytest.approx(expected, abs=1e-4)

    def test_model_flip(self):
        np.testing.assert_array_equal(np.diag(MODEL_FLIP), [-1, -1, -1, 1])

    def test_mvp_dtype(self):
        assert mvp_matrix(calibrate(640, 480)).dtype == np.float32


class TestPixelAlignment:
    """A mirrored landmark must land exactly on its own video pixel."""

    @pytest.mark.parametrize("x,y", [
        (0.0, 0.0),
        (320.0, 240.0),
        (100.0, 400.0),
        (639.0, 1.0),
    ])
    def test_landmark_projects_to_same_pixel(self, x, y):
        cal = calibrate(640, 480)
        vertex = (mirror_x(x, 320.0), y, 0.0)
        px, py = project_point(cal, vertex)
        assert px == pytest.approx(x, abs=1e-2)
        assert py == pytest.approx(y, abs=1e-2)

    def test_other_resolution(self):
        cal = calibrate(1280, 720, fov=60.0)
        px, py = project_point(cal, (mirror_x(200.0, 640.0), 500.0, 0.0))
        assert px == pytest.approx(200.0, abs=1e-2)
        assert py == pytest.approx(500.0, abs=1e-2)

    def test_closer_points_spread_outward(self):
        """Negative z (toward the camera) magnifies around the center."""
        cal = calibrate(640, 480)
        far_px, _ = project_point(cal, (mirror_x(500.0, 320.0), 240.0, 0.0))
        near_px, _ = project_point(cal, (mirror_x(500.0, 320.0), 240.0, -50.0))
        assert near_px > far_px
