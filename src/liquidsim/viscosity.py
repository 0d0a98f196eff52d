"""Implicit variable-viscosity solve on the staggered grid.

Unknowns are all FLUID velocity faces in one flat index space: u faces first
(``i + j*(ni+1)``), then v faces (``(ni+1)*nj + i + j*ni``). Each equation
combines a volume-weighted mass term with normal stress terms sampled at cell
centres and shear terms sampled at nodes, each weighted by the liquid volume
fraction at its sample location. Couplings to SOLID faces move to the
right-hand side using the prescribed solid velocity.
"""

import logging

import numpy as np
from numba import njit

from .interpolation import interpolate_value

log = logging.getLogger(__name__)

# Prescribed velocity of static solids
SOLID_U = 0.0
SOLID_V = 0.0


# =============================================================================
# Volume fractions
# =============================================================================


def compute_volume_fractions(levelset, shape, origin, subdivision=2):
    """Fraction of each sample cell lying inside the negative region.

    Each output cell (i, j) covers [origin + (i, j), origin + (i+1, j+1)] in
    the index space of ``levelset`` and is split into ``subdivision``^2
    sub-samples.
    """
    offsets = (np.arange(subdivision) + 0.5) / subdivision
    x = origin[0] + np.arange(shape[0])[:, None] + offsets[None, :]
    y = origin[1] + np.arange(shape[1])[:, None] + offsets[None, :]

    # (n0, n1, s, s, 2)
    X = np.broadcast_to(x[:, None, :, None], (shape[0], shape[1], subdivision, subdivision))
    Y = np.broadcast_to(y[None, :, None, :], (shape[0], shape[1], subdivision, subdivision))
    samples = interpolate_value(levelset, np.stack([X, Y], axis=-1))

    return np.count_nonzero(samples < 0, axis=(2, 3)) / float(subdivision * subdivision)


def compute_viscosity_weights(fields, subdivision=2):
    """Liquid volume fractions at cell centres, nodes, u faces and v faces (in place)."""
    phi = fields.liquid_phi
    fields.c_vol[:] = compute_volume_fractions(phi, fields.c_vol.shape, (-0.5, -0.5), subdivision)
    fields.n_vol[:] = compute_volume_fractions(phi, fields.n_vol.shape, (-1.0, -1.0), subdivision)
    fields.u_vol[:] = compute_volume_fractions(phi, fields.u_vol.shape, (-1.0, -0.5), subdivision)
    fields.v_vol[:] = compute_volume_fractions(phi, fields.v_vol.shape, (-0.5, -1.0), subdivision)


# =============================================================================
# Face classification
# =============================================================================


def classify_faces(nodal_solid_phi):
    """Return boolean FLUID masks for u and v faces.

    A face is SOLID when it lies on the outer ring of faces of the domain or
    when the mean solid distance of its two end nodes is non-positive.
    """
    u_fluid = 0.5 * (nodal_solid_phi[:, 1:] + nodal_solid_phi[:, :-1]) > 0
    u_fluid[0, :] = False
    u_fluid[-1, :] = False
    u_fluid[:, 0] = False
    u_fluid[:, -1] = False

    v_fluid = 0.5 * (nodal_solid_phi[1:, :] + nodal_solid_phi[:-1, :]) > 0
    v_fluid[:, 0] = False
    v_fluid[:, -1] = False
    v_fluid[0, :] = False
    v_fluid[-1, :] = False

    return u_fluid, v_fluid


# =============================================================================
# Assembly
# =============================================================================


@njit
def _couple(row, col, coeff, is_fluid, prescribed, rows, cols, vals, rhs, k):
    """Add a coupling to a FLUID face, or move a SOLID face to the rhs."""
    if is_fluid:
        rows[k] = row
        cols[k] = col
        vals[k] = coeff
        return k + 1
    rhs[row] -= coeff * prescribed
    return k


@njit
def assemble_viscosity_system(
    u, v, u_fluid, v_fluid, viscosity, c_vol, n_vol, u_vol, v_vol, dx, dt,
    rows, cols, vals, rhs,
):
    """Write the viscosity system as triplets into preallocated storage.

    Returns the number of triplets written.
    """
    ni, nj = viscosity.shape
    factor = dt / (dx * dx)
    v_offset = (ni + 1) * nj
    k = 0

    for j in range(nj):
        for i in range(ni + 1):
            if not u_fluid[i, j]:
                continue
            index = i + j * (ni + 1)
            rhs[index] = u_vol[i, j] * u[i, j]
            diagonal = u_vol[i, j]

            # uxx terms, sampled at cell centres
            visc_right = viscosity[i, j]
            visc_left = viscosity[i - 1, j]
            vol_right = c_vol[i, j]
            vol_left = c_vol[i - 1, j]

            c = 2.0 * factor * visc_right * vol_right
            diagonal += c
            k = _couple(index, (i + 1) + j * (ni + 1), -c, u_fluid[i + 1, j], SOLID_U, rows, cols, vals, rhs, k)

            c = 2.0 * factor * visc_left * vol_left
            diagonal += c
            k = _couple(index, (i - 1) + j * (ni + 1), -c, u_fluid[i - 1, j], SOLID_U, rows, cols, vals, rhs, k)

            # uyy terms, sampled at nodes
            visc_top = 0.25 * (viscosity[i - 1, j + 1] + viscosity[i - 1, j] + viscosity[i, j + 1] + viscosity[i, j])
            visc_bottom = 0.25 * (viscosity[i - 1, j] + viscosity[i - 1, j - 1] + viscosity[i, j] + viscosity[i, j - 1])
            top = factor * visc_top * n_vol[i, j + 1]
            bottom = factor * visc_bottom * n_vol[i, j]

            diagonal += top
            k = _couple(index, i + (j + 1) * (ni + 1), -top, u_fluid[i, j + 1], SOLID_U, rows, cols, vals, rhs, k)
            diagonal += bottom
            k = _couple(index, i + (j - 1) * (ni + 1), -bottom, u_fluid[i, j - 1], SOLID_U, rows, cols, vals, rhs, k)

            # vxy terms
            k = _couple(index, v_offset + i + (j + 1) * ni, -top, v_fluid[i, j + 1], SOLID_V, rows, cols, vals, rhs, k)
            k = _couple(index, v_offset + (i - 1) + (j + 1) * ni, top, v_fluid[i - 1, j + 1], SOLID_V, rows, cols, vals, rhs, k)
            k = _couple(index, v_offset + i + j * ni, bottom, v_fluid[i, j], SOLID_V, rows, cols, vals, rhs, k)
            k = _couple(index, v_offset + (i - 1) + j * ni, -bottom, v_fluid[i - 1, j], SOLID_V, rows, cols, vals, rhs, k)

            rows[k] = index
            cols[k] = index
            vals[k] = diagonal
            k += 1

    for j in range(nj + 1):
        for i in range(ni):
            if not v_fluid[i, j]:
                continue
            index = v_offset + i + j * ni
            rhs[index] = v_vol[i, j] * v[i, j]
            diagonal = v_vol[i, j]

            # vyy terms, sampled at cell centres
            visc_top = viscosity[i, j]
            visc_bottom = viscosity[i, j - 1]
            vol_top = c_vol[i, j]
            vol_bottom = c_vol[i, j - 1]

            c = 2.0 * factor * visc_top * vol_top
            diagonal += c
            k = _couple(index, v_offset + i + (j + 1) * ni, -c, v_fluid[i, j + 1], SOLID_V, rows, cols, vals, rhs, k)

            c = 2.0 * factor * visc_bottom * vol_bottom
            diagonal += c
            k = _couple(index, v_offset + i + (j - 1) * ni, -c, v_fluid[i, j - 1], SOLID_V, rows, cols, vals, rhs, k)

            # vxx terms, sampled at nodes
            visc_right = 0.25 * (viscosity[i, j - 1] + viscosity[i + 1, j - 1] + viscosity[i, j] + viscosity[i + 1, j])
            visc_left = 0.25 * (viscosity[i, j - 1] + viscosity[i - 1, j - 1] + viscosity[i, j] + viscosity[i - 1, j])
            right = factor * visc_right * n_vol[i + 1, j]
            left = factor * visc_left * n_vol[i, j]

            diagonal += right
            k = _couple(index, v_offset + (i + 1) + j * ni, -right, v_fluid[i + 1, j], SOLID_V, rows, cols, vals, rhs, k)
            diagonal += left
            k = _couple(index, v_offset + (i - 1) + j * ni, -left, v_fluid[i - 1, j], SOLID_V, rows, cols, vals, rhs, k)

            # uyx terms
            k = _couple(index, (i + 1) + j * (ni + 1), -right, u_fluid[i + 1, j], SOLID_U, rows, cols, vals, rhs, k)
            k = _couple(index, (i + 1) + (j - 1) * (ni + 1), right, u_fluid[i + 1, j - 1], SOLID_U, rows, cols, vals, rhs, k)
            k = _couple(index, i + j * (ni + 1), left, u_fluid[i, j], SOLID_U, rows, cols, vals, rhs, k)
            k = _couple(index, i + (j - 1) * (ni + 1), -left, u_fluid[i, j - 1], SOLID_U, rows, cols, vals, rhs, k)

            rows[k] = index
            cols[k] = index
            vals[k] = diagonal
            k += 1

    return k


def assemble_viscosity_matrix(fields, u_fluid, v_fluid, builder, dx, dt):
    """Assemble the viscosity system into ``builder`` and return its CSR matrix."""
    ni, nj = fields.shape
    builder.reset((ni + 1) * nj + ni * (nj + 1))
    builder.count = assemble_viscosity_system(
        fields.u,
        fields.v,
        u_fluid,
        v_fluid,
        fields.viscosity,
        fields.c_vol,
        fields.n_vol,
        fields.u_vol,
        fields.v_vol,
        dx,
        dt,
        builder.rows,
        builder.cols,
        builder.vals,
        builder.rhs,
    )
    return builder.to_csr()


def apply_viscosity(fields, builder, dx, dt, params):
    """Implicitly diffuse momentum with the cell-centred viscosity field.

    FLUID faces take the solved velocity, SOLID faces the prescribed solid
    velocity. Returns the solve info.
    """
    compute_viscosity_weights(fields, params.volume_subdivision)
    u_fluid, v_fluid = classify_faces(fields.nodal_solid_phi)
    assemble_viscosity_matrix(fields, u_fluid, v_fluid, builder, dx, dt)

    info = builder.solve(
        tolerance=params.viscosity_tolerance,
        max_iterations=params.max_solver_iterations,
        preconditioner=params.preconditioner,
    )
    if not info.converged:
        log.warning(
            f"Viscosity solve did not converge: residual={info.residual:.3e} "
            f"after {info.iterations} iterations ({info.size} unknowns)"
        )

    ni, nj = fields.shape
    n_u = (ni + 1) * nj
    solved_u = builder.solution[:n_u].reshape((ni + 1, nj), order="F")
    solved_v = builder.solution[n_u:].reshape((ni, nj + 1), order="F")
    fields.u[:] = np.where(u_fluid, solved_u, SOLID_U)
    fields.v[:] = np.where(v_fluid, solved_v, SOLID_V)
    return info
