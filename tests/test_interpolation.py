"""Tests for bilinear sampling, the velocity interpolator and fraction_inside."""

import numpy as np
import pytest

from liquidsim.interpolation import (
    fraction_inside,
    fraction_inside_scalar,
    get_velocity,
    interpolate_gradient,
    interpolate_value,
    normalize,
    u_face_positions,
    v_face_positions,
)


class TestFractionInside:
    """Occluded fraction of a segment between two signed distances."""

    def test_both_inside(self):
        assert fraction_inside(-1.0, -0.5) == 1.0

    def test_both_outside(self):
        assert fraction_inside(0.5, 2.0) == 0.0

    def test_crossing(self):
        assert fraction_inside(-1.0, 1.0) == pytest.approx(0.5)
        assert fraction_inside(-1.0, 3.0) == pytest.approx(0.25)
        assert fraction_inside(3.0, -1.0) == pytest.approx(0.25)

    def test_order_independent(self, rng):
        a = rng.uniform(-1, 1, 200)
        b = rng.uniform(-1, 1, 200)
        assert np.allclose(fraction_inside(a, b), fraction_inside(b, a))

    def test_inside_and_outside_fractions_sum_to_one(self, rng):
        """For opposite signs the inside fraction plus the outside fraction is 1."""
        a = -rng.uniform(0.01, 1, 100)
        b = rng.uniform(0.01, 1, 100)
        assert np.allclose(fraction_inside(a, b) + fraction_inside(-a, -b), 1.0)
        assert np.allclose(fraction_inside(b, a) + fraction_inside(-b, -a), 1.0)

    def test_range(self, rng):
        a = rng.uniform(-1, 1, 500)
        b = rng.uniform(-1, 1, 500)
        f = fraction_inside(a, b)
        assert np.all((f >= 0) & (f <= 1))

    def test_scalar_kernel_matches_vectorized(self, rng):
        a = rng.uniform(-1, 1, 50)
        b = rng.uniform(-1, 1, 50)
        scalar = np.array([fraction_inside_scalar(x, y) for x, y in zip(a, b)])
        assert np.allclose(scalar, fraction_inside(a, b))


class TestInterpolateValue:
    """Bilinear sampling in index space."""

    def test_linear_field_is_exact(self):
        i, j = np.meshgrid(np.arange(8), np.arange(6), indexing="ij")
        field = 2.0 * i + 3.0 * j
        coords = np.array([[1.25, 2.5], [3.0, 0.75], [6.5, 4.1]])
        expected = 2.0 * coords[:, 0] + 3.0 * coords[:, 1]
        assert np.allclose(interpolate_value(field, coords), expected)

    def test_outside_is_clamped(self):
        field = np.arange(12, dtype=float).reshape(4, 3)
        assert interpolate_value(field, np.array([-5.0, 0.0])) == pytest.approx(field[0, 0])
        assert interpolate_value(field, np.array([10.0, 10.0])) == pytest.approx(field[-1, -1])

    def test_preserves_leading_shape(self):
        field = np.ones((5, 5))
        coords = np.zeros((3, 4, 2))
        assert interpolate_value(field, coords).shape == (3, 4)


class TestInterpolateGradient:
    def test_linear_field(self):
        i, j = np.meshgrid(np.arange(8), np.arange(8), indexing="ij")
        field = 2.0 * i - 3.0 * j
        coords = np.array([[1.5, 2.5], [0.0, 0.0], [7.0, 7.0], [-2.0, 9.0]])
        grad = interpolate_gradient(field, coords)
        assert np.allclose(grad, [[2.0, -3.0]] * 4)

    def test_normalize_keeps_zero_vectors(self):
        vectors = np.array([[3.0, 4.0], [0.0, 0.0]])
        result = normalize(vectors)
        assert np.allclose(result, [[0.6, 0.8], [0.0, 0.0]])


class TestVelocityInterpolator:
    """Staggered sampling of (u, v)."""

    def test_uniform_velocity(self):
        u = np.full((9, 8), 1.5)
        v = np.full((8, 9), -2.0)
        points = np.array([[0.3, 0.7], [0.51, 0.02]])
        assert np.allclose(get_velocity(u, v, points, 1.0 / 8), [[1.5, -2.0]] * 2)

    def test_single_point_shape(self):
        u = np.zeros((9, 8))
        v = np.zeros((8, 9))
        assert get_velocity(u, v, np.array([0.5, 0.5]), 1.0 / 8).shape == (2,)

    def test_linear_components_sampled_at_their_faces(self):
        """u = x and v = y are reproduced exactly inside the grid."""
        ni = nj = 8
        dx = 1.0 / ni
        u = u_face_positions(ni, nj, dx)[..., 0]
        v = v_face_positions(ni, nj, dx)[..., 1]
        points = np.array([[0.3, 0.4], [0.55, 0.81], [0.2, 0.5]])
        assert np.allclose(get_velocity(u, v, points, dx), points)
