"""Variational pressure projection with cut-cell solids and a ghost-fluid free surface.

Unknowns are cell pressures, flat index ``i + ni*j``. Every interior cell with
negative liquid distance gets a five-point equation whose coefficients are
scaled by the open-area weight of each face. Air neighbours contribute only to
the diagonal, divided by the sub-cell distance fraction to the surface (ghost
pressure zero at the interface).
"""

import logging

import numpy as np
from numba import njit

from .interpolation import fraction_inside, fraction_inside_scalar

log = logging.getLogger(__name__)


def compute_pressure_weights(nodal_solid_phi, u_weights, v_weights):
    """Open-area fraction of each face from the nodal solid distance (in place)."""
    u_weights[:] = 1.0 - fraction_inside(nodal_solid_phi[:, 1:], nodal_solid_phi[:, :-1])
    v_weights[:] = 1.0 - fraction_inside(nodal_solid_phi[1:, :], nodal_solid_phi[:-1, :])
    np.clip(u_weights, 0.0, 1.0, out=u_weights)
    np.clip(v_weights, 0.0, 1.0, out=v_weights)


@njit
def _neighbour_terms(centre_phi, neighbour_phi, term, theta_floor):
    """Return (diagonal, off-diagonal) contribution of one neighbour cell."""
    if neighbour_phi < 0:
        return term, -term
    theta = fraction_inside_scalar(centre_phi, neighbour_phi)
    if theta < theta_floor:
        theta = theta_floor
    return term / theta, 0.0


@njit
def assemble_pressure_system(
    liquid_phi, u_weights, v_weights, u, v, dx, dt, theta_floor, rows, cols, vals, rhs
):
    """Write the pressure system as triplets into preallocated storage.

    Returns the number of triplets written. Rows of non-liquid cells and of
    the outer ring of cells are left empty.
    """
    ni, nj = liquid_phi.shape
    scale = dt / (dx * dx)
    k = 0

    for j in range(1, nj - 1):
        for i in range(1, ni - 1):
            centre = liquid_phi[i, j]
            if centre >= 0:
                continue
            index = i + ni * j
            diagonal = 0.0

            # right
            d, off = _neighbour_terms(centre, liquid_phi[i + 1, j], u_weights[i + 1, j] * scale, theta_floor)
            diagonal += d
            if off != 0.0:
                rows[k] = index; cols[k] = index + 1; vals[k] = off; k += 1

            # left
            d, off = _neighbour_terms(centre, liquid_phi[i - 1, j], u_weights[i, j] * scale, theta_floor)
            diagonal += d
            if off != 0.0:
                rows[k] = index; cols[k] = index - 1; vals[k] = off; k += 1

            # top
            d, off = _neighbour_terms(centre, liquid_phi[i, j + 1], v_weights[i, j + 1] * scale, theta_floor)
            diagonal += d
            if off != 0.0:
                rows[k] = index; cols[k] = index + ni; vals[k] = off; k += 1

            # bottom
            d, off = _neighbour_terms(centre, liquid_phi[i, j - 1], v_weights[i, j] * scale, theta_floor)
            diagonal += d
            if off != 0.0:
                rows[k] = index; cols[k] = index - ni; vals[k] = off; k += 1

            rows[k] = index; cols[k] = index; vals[k] = diagonal; k += 1

            rhs[index] = (
                -u_weights[i + 1, j] * u[i + 1, j]
                + u_weights[i, j] * u[i, j]
                - v_weights[i, j + 1] * v[i, j + 1]
                + v_weights[i, j] * v[i, j]
            ) / dx

    return k


def solve_pressure(fields, builder, dx, dt, params):
    """Assemble and solve the pressure system.

    Returns
    -------
    pressure : np.ndarray
        Cell pressures, shape (ni, nj); zero where no equation exists.
    info : SolveInfo
        Residual, iteration count and convergence flag.
    """
    ni, nj = fields.shape
    builder.reset(ni * nj)
    builder.count = assemble_pressure_system(
        fields.liquid_phi,
        fields.u_weights,
        fields.v_weights,
        fields.u,
        fields.v,
        dx,
        dt,
        params.theta_floor,
        builder.rows,
        builder.cols,
        builder.vals,
        builder.rhs,
    )

    info = builder.solve(
        tolerance=params.pressure_tolerance,
        max_iterations=params.max_solver_iterations,
        preconditioner=params.preconditioner,
    )
    if not info.converged:
        log.warning(
            f"Pressure solve did not converge: residual={info.residual:.3e} "
            f"after {info.iterations} iterations ({info.size} unknowns)"
        )

    pressure = builder.solution.reshape((ni, nj), order="F").copy()
    return pressure, info


def apply_pressure_gradient(fields, pressure, dx, dt, theta_floor):
    """Subtract the pressure gradient and tag faces valid or invalid.

    Faces with open area that touch liquid are updated and marked valid. All
    other faces, including the outer domain faces, are zeroed and invalid.
    """
    phi = fields.liquid_phi

    # u faces i = 1..ni-1 lie between cells i-1 and i
    left, right = phi[:-1, :], phi[1:, :]
    active = (fields.u_weights[1:-1, :] > 0) & ((left < 0) | (right < 0))
    theta = np.where((left >= 0) | (right >= 0), fraction_inside(left, right), 1.0)
    theta = np.maximum(theta, theta_floor)
    gradient = (pressure[1:, :] - pressure[:-1, :]) / dx
    fields.u[1:-1, :] = np.where(active, fields.u[1:-1, :] - dt * gradient / theta, 0.0)
    fields.u[0, :] = 0.0
    fields.u[-1, :] = 0.0
    fields.u_valid[:] = False
    fields.u_valid[1:-1, :] = active

    # v faces j = 1..nj-1 lie between cells j-1 and j
    bottom, top = phi[:, :-1], phi[:, 1:]
    active = (fields.v_weights[:, 1:-1] > 0) & ((bottom < 0) | (top < 0))
    theta = np.where((bottom >= 0) | (top >= 0), fraction_inside(bottom, top), 1.0)
    theta = np.maximum(theta, theta_floor)
    gradient = (pressure[:, 1:] - pressure[:, :-1]) / dx
    fields.v[:, 1:-1] = np.where(active, fields.v[:, 1:-1] - dt * gradient / theta, 0.0)
    fields.v[:, 0] = 0.0
    fields.v[:, -1] = 0.0
    fields.v_valid[:] = False
    fields.v_valid[:, 1:-1] = active


def apply_projection(fields, builder, dx, dt, params):
    """Make the velocity field discretely divergence-free in the liquid.

    Returns the solved pressure and the solve info.
    """
    compute_pressure_weights(fields.nodal_solid_phi, fields.u_weights, fields.v_weights)
    pressure, info = solve_pressure(fields, builder, dx, dt, params)
    apply_pressure_gradient(fields, pressure, dx, dt, params.theta_floor)
    return pressure, info
