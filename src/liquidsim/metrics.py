"""Diagnostics computed from the grid state and particles."""

import numpy as np

from .interpolation import interpolate_value


def liquid_divergence(fields, dx):
    """Open-area weighted divergence in interior liquid cells.

    Returns an (ni, nj) array, zero outside interior liquid cells.
    """
    u_flux = fields.u_weights * fields.u
    v_flux = fields.v_weights * fields.v
    divergence = (u_flux[1:, :] - u_flux[:-1, :] + v_flux[:, 1:] - v_flux[:, :-1]) / dx

    mask = np.zeros(fields.shape, dtype=bool)
    mask[1:-1, 1:-1] = fields.liquid_phi[1:-1, 1:-1] < 0
    return np.where(mask, divergence, 0.0)


def kinetic_energy(fields, dx):
    """Kinetic energy of the liquid: E = 0.5 * sum(vol * |u|^2) * dx^2.

    Each face is weighted by its liquid volume fraction from the last
    viscosity step.
    """
    dA = dx * dx
    u, v = fields.u, fields.v
    return 0.5 * float((np.sum(fields.u_vol * u * u) + np.sum(fields.v_vol * v * v)) * dA)


def particle_statistics(positions, nodal_solid_phi, dx):
    """Summary statistics of the marker particles.

    Returns
    -------
    dict
        count, mean_height, min_height, max_height and min_solid_distance
        (NaN entries when there are no particles).
    """
    count = len(positions)
    if count == 0:
        nan = float("nan")
        return {
            "count": 0,
            "mean_height": nan,
            "min_height": nan,
            "max_height": nan,
            "min_solid_distance": nan,
        }

    solid_distance = interpolate_value(nodal_solid_phi, positions / dx)
    heights = positions[:, 1]
    return {
        "count": count,
        "mean_height": float(heights.mean()),
        "min_height": float(heights.min()),
        "max_height": float(heights.max()),
        "min_solid_distance": float(solid_distance.min()),
    }
