"""Bilinear sampling on the staggered grid.

Coordinates passed to the samplers are in grid-index units of the sampled
array (array[i, j] sits at coordinate (i, j)). Samples outside the array are
clamped to the nearest edge value.

The velocity interpolator converts world positions to the index space of each
staggered component: u is offset by half a cell in y, v by half a cell in x.
"""

import numpy as np
from numba import njit
from scipy.ndimage import map_coordinates


def interpolate_value(field: np.ndarray, coords: np.ndarray) -> np.ndarray:
    """Bilinearly sample ``field`` at index-space ``coords`` of shape (..., 2)."""
    coords = np.asarray(coords, dtype=np.float64)
    leading = coords.shape[:-1]
    flat = coords.reshape(-1, 2).T
    values = map_coordinates(field, flat, order=1, mode="nearest")
    return values.reshape(leading)


def barycentric(x: np.ndarray, n: int):
    """Split coordinates into a cell index in [0, n-2] and a fraction in [0, 1]."""
    s = np.floor(x)
    i = s.astype(np.int64)
    f = x - s
    below = i < 0
    above = i > n - 2
    i = np.where(below, 0, np.where(above, n - 2, i))
    f = np.where(below, 0.0, np.where(above, 1.0, f))
    return i, f


def interpolate_gradient(field: np.ndarray, coords: np.ndarray) -> np.ndarray:
    """Gradient of the bilinear interpolant of ``field``, in index units.

    Returns an array of shape (..., 2). Only the direction is meaningful to
    callers that normalize it.
    """
    coords = np.asarray(coords, dtype=np.float64)
    i, fx = barycentric(coords[..., 0], field.shape[0])
    j, fy = barycentric(coords[..., 1], field.shape[1])

    v00 = field[i, j]
    v10 = field[i + 1, j]
    v01 = field[i, j + 1]
    v11 = field[i + 1, j + 1]

    ddx = (1.0 - fy) * (v10 - v00) + fy * (v11 - v01)
    ddy = (1.0 - fx) * (v01 - v00) + fx * (v11 - v10)
    return np.stack([ddx, ddy], axis=-1)


def normalize(vectors: np.ndarray) -> np.ndarray:
    """Normalize vectors along the last axis; zero vectors stay zero."""
    length = np.linalg.norm(vectors, axis=-1, keepdims=True)
    safe = np.where(length > 0.0, length, 1.0)
    return np.where(length > 0.0, vectors / safe, 0.0)


def solid_normal(nodal_solid_phi: np.ndarray, positions: np.ndarray, dx: float) -> np.ndarray:
    """Unit outward normal of the solid at world ``positions``."""
    return normalize(interpolate_gradient(nodal_solid_phi, np.asarray(positions) / dx))


# =============================================================================
# Occluded fraction
# =============================================================================


@njit
def fraction_inside_scalar(phi_left, phi_right):
    """Fraction of the segment between two signed distances that is inside (phi < 0)."""
    if phi_left < 0 and phi_right < 0:
        return 1.0
    if phi_left < 0 and phi_right >= 0:
        return phi_left / (phi_left - phi_right)
    if phi_left >= 0 and phi_right < 0:
        return phi_right / (phi_right - phi_left)
    return 0.0


def fraction_inside(phi_left, phi_right):
    """Vectorized fraction of a segment lying inside the negative region.

    1 when both endpoints are inside, 0 when both are outside, and the linear
    zero-crossing fraction otherwise. Independent of endpoint order.
    """
    left = np.asarray(phi_left, dtype=np.float64)
    right = np.asarray(phi_right, dtype=np.float64)

    left_in = left < 0
    right_in = right < 0
    crossing = left_in != right_in
    inside_value = np.where(left_in, left, right)
    denom = np.where(crossing, inside_value - np.where(left_in, right, left), 1.0)

    result = np.where(
        left_in & right_in,
        1.0,
        np.where(crossing, inside_value / denom, 0.0),
    )
    if result.ndim == 0:
        return float(result)
    return result


# =============================================================================
# Velocity interpolator
# =============================================================================


def sample_u(u: np.ndarray, positions: np.ndarray, dx: float) -> np.ndarray:
    """Horizontal velocity at world ``positions`` of shape (..., 2)."""
    coords = np.asarray(positions, dtype=np.float64) / dx
    coords = coords - np.array([0.0, 0.5])
    return interpolate_value(u, coords)


def sample_v(v: np.ndarray, positions: np.ndarray, dx: float) -> np.ndarray:
    """Vertical velocity at world ``positions`` of shape (..., 2)."""
    coords = np.asarray(positions, dtype=np.float64) / dx
    coords = coords - np.array([0.5, 0.0])
    return interpolate_value(v, coords)


def get_velocity(u: np.ndarray, v: np.ndarray, positions: np.ndarray, dx: float) -> np.ndarray:
    """Interpolate the full velocity vector from the MAC grid.

    Parameters
    ----------
    u, v : np.ndarray
        Staggered velocity components. Must not be written while sampling.
    positions : np.ndarray
        World positions, shape (2,) or (..., 2)
    dx : float
        Cell size

    Returns
    -------
    np.ndarray
        Velocity vectors with the same shape as ``positions``
    """
    return np.stack([sample_u(u, positions, dx), sample_v(v, positions, dx)], axis=-1)


def u_face_positions(ni: int, nj: int, dx: float) -> np.ndarray:
    """World positions of u samples, shape (ni+1, nj, 2)."""
    i, j = np.meshgrid(np.arange(ni + 1), np.arange(nj), indexing="ij")
    return np.stack([i * dx, (j + 0.5) * dx], axis=-1)


def v_face_positions(ni: int, nj: int, dx: float) -> np.ndarray:
    """World positions of v samples, shape (ni, nj+1, 2)."""
    i, j = np.meshgrid(np.arange(ni), np.arange(nj + 1), indexing="ij")
    return np.stack([(i + 0.5) * dx, j * dx], axis=-1)


def cell_centres(ni: int, nj: int, dx: float) -> np.ndarray:
    """World positions of cell centres, shape (ni, nj, 2)."""
    i, j = np.meshgrid(np.arange(ni), np.arange(nj), indexing="ij")
    return np.stack([(i + 0.5) * dx, (j + 0.5) * dx], axis=-1)


def node_positions(ni: int, nj: int, dx: float) -> np.ndarray:
    """World positions of grid nodes, shape (ni+1, nj+1, 2)."""
    i, j = np.meshgrid(np.arange(ni + 1), np.arange(nj + 1), indexing="ij")
    return np.stack([i * dx, j * dx], axis=-1)
