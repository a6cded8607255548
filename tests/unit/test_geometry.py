"""
Unit tests for planar geometry helpers.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from roadspeed.calibration.geometry import (
    apply_homography, angle_between_deg, compute_homography, is_self_intersecting,
    orientation, segments_intersect, solve_linear_system, unit_vector
)
from roadspeed.core.exceptions import DegenerateGeometryError

UNIT_SQUARE = [(0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0)]


class TestSegments:
    """Test orientation and intersection tests"""

    def test_orientation_signs(self):
        """Opposite turns give opposite signs, collinear gives zero"""
        assert orientation((0, 0), (10, 0), (10, 10)) == -orientation((0, 0), (10, 0), (10, -10))
        assert orientation((0, 0), (5, 5), (10, 10)) == 0

    def test_crossing_segments(self):
        assert segments_intersect((0, 0), (10, 10), (0, 10), (10, 0))

    def test_parallel_segments(self):
        assert not segments_intersect((0, 0), (10, 0), (0, 5), (10, 5))

    def test_convex_quad_not_self_intersecting(self):
        quad = [(100, 400), (300, 400), (260, 200), (140, 200)]
        assert not is_self_intersecting(quad)

    def test_bowtie_self_intersecting(self):
        """Far corners swapped: near-left/far-right edges cross"""
        quad = [(0, 0), (10, 0), (0, 10), (10, 10)]
        assert is_self_intersecting(quad)


class TestVectors:
    """Test vector helpers"""

    def test_unit_vector_has_unit_length(self):
        ux, uy = unit_vector(3.0, 4.0)
        assert ux == pytest.approx(0.6)
        assert uy == pytest.approx(0.8)

    def test_unit_vector_zero_length(self):
        assert unit_vector(0.0, 0.0) == (0.0, 0.0)

    def test_angle_between(self):
        assert angle_between_deg((1.0, 0.0), (0.0, 1.0)) == pytest.approx(90.0)
        assert angle_between_deg((1.0, 0.0), (1.0, 0.0)) == pytest.approx(0.0)


class TestLinearSolve:
    """Test Gaussian elimination"""

    def test_solves_regular_system(self):
        A = np.array([[2.0, 1.0, -1.0], [-3.0, -1.0, 2.0], [-2.0, 1.0, 2.0]])
        b = np.array([8.0, -11.0, -3.0])

        x = solve_linear_system(A, b)

        np.testing.assert_allclose(x, [2.0, 3.0, -1.0], atol=1e-9)

    def test_does_not_modify_inputs(self):
        A = np.array([[0.0, 1.0], [1.0, 0.0]])
        b = np.array([1.0, 2.0])

        solve_linear_system(A, b)

        np.testing.assert_array_equal(A, [[0.0, 1.0], [1.0, 0.0]])
        np.testing.assert_array_equal(b, [1.0, 2.0])

    def test_singular_system_substitutes_pivot(self):
        """Near-singular systems give a best-effort answer"""
        A = np.array([[1.0, 1.0], [1.0, 1.0]])
        b = np.array([2.0, 2.0])

        x = solve_linear_system(A, b)

        assert np.all(np.isfinite(x))
        assert x[0] + x[1] == pytest.approx(2.0)

    def test_singular_system_strict(self):
        A = np.array([[1.0, 1.0], [1.0, 1.0]])
        b = np.array([2.0, 2.0])

        with pytest.raises(DegenerateGeometryError):
            solve_linear_system(A, b, strict=True)


class TestHomography:
    """Test the four-point DLT solve"""

    def test_maps_source_points_to_targets(self):
        src = [(100.0, 400.0), (300.0, 400.0), (260.0, 200.0), (140.0, 200.0)]

        H = compute_homography(src, UNIT_SQUARE)

        assert H.shape == (3, 3)
        assert H[2, 2] == 1.0
        np.testing.assert_allclose(apply_homography(H, np.array(src)), UNIT_SQUARE, atol=1e-9)

    def test_matches_opencv(self):
        """Agrees with OpenCV's perspective transform solve"""
        cv2 = pytest.importorskip("cv2")
        src = [(120.0, 410.0), (330.0, 395.0), (250.0, 180.0), (150.0, 190.0)]

        H = compute_homography(src, UNIT_SQUARE)
        expected = cv2.getPerspectiveTransform(np.float32(src), np.float32(UNIT_SQUARE))

        np.testing.assert_allclose(H, expected, rtol=1e-3, atol=1e-5)

    def test_rectangle_is_affine_scaling(self):
        src = [(0.0, 100.0), (100.0, 100.0), (100.0, 0.0), (0.0, 0.0)]

        H = compute_homography(src, UNIT_SQUARE)

        np.testing.assert_allclose(H, np.diag([0.01, 0.01, 1.0]), atol=1e-10)

    def test_collinear_points_do_not_raise(self):
        src = [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]

        H = compute_homography(src, UNIT_SQUARE)

        assert H.shape == (3, 3)

    def test_wrong_point_count(self):
        with pytest.raises(ValueError):
            compute_homography([(0, 0), (1, 0), (1, 1)], UNIT_SQUARE[:3])

    def test_apply_empty(self):
        result = apply_homography(np.eye(3), np.array([]).reshape(0, 2))
        assert result.shape == (0, 2)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
