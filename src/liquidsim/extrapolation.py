"""Velocity extrapolation into invalid faces and the free-slip solid constraint."""

import numpy as np

from .interpolation import get_velocity, solid_normal, u_face_positions, v_face_positions


def extrapolate(grid, valid, grid_scratch, valid_scratch, passes=10):
    """Spread valid values into invalid interior entries.

    Each pass reads a snapshot of ``grid``/``valid`` and writes the averaged
    values into the scratch buffers, which are then swapped. An invalid entry
    off the outer ring with at least one valid 4-neighbour takes their mean
    and becomes valid. The reach is therefore ``passes`` cells.

    Returns
    -------
    grid, valid, grid_scratch, valid_scratch : np.ndarray
        Buffers after the final swap; the first two hold the result.
    """
    for _ in range(passes):
        grid_scratch[:] = grid
        valid_scratch[:] = valid

        weight = valid.astype(np.float64)
        weighted = np.where(valid, grid, 0.0)

        total = weighted[2:, 1:-1] + weighted[:-2, 1:-1] + weighted[1:-1, 2:] + weighted[1:-1, :-2]
        count = weight[2:, 1:-1] + weight[:-2, 1:-1] + weight[1:-1, 2:] + weight[1:-1, :-2]

        fill = ~valid[1:-1, 1:-1] & (count > 0)
        interior = grid_scratch[1:-1, 1:-1]
        interior[fill] = total[fill] / count[fill]
        valid_scratch[1:-1, 1:-1] |= fill

        grid, grid_scratch = grid_scratch, grid
        valid, valid_scratch = valid_scratch, valid

    return grid, valid, grid_scratch, valid_scratch


def extrapolate_velocity(fields, passes=10):
    """Extrapolate u and v independently from their valid faces."""
    fields.u, fields.u_valid, fields.temp_u, fields.temp_valid_u = extrapolate(
        fields.u, fields.u_valid, fields.temp_u, fields.temp_valid_u, passes
    )
    fields.v, fields.v_valid, fields.temp_v, fields.temp_valid_v = extrapolate(
        fields.v, fields.v_valid, fields.temp_v, fields.temp_valid_v, passes
    )


def constrain_velocity(fields, dx):
    """Remove the normal velocity component on fully blocked faces.

    Faces with zero open area get the interpolated velocity minus its
    projection on the solid normal (static solids, free slip). Values are
    computed from the unmodified field and swapped in afterwards.
    """
    ni, nj = fields.shape
    fields.temp_u[:] = fields.u
    fields.temp_v[:] = fields.v

    blocked = fields.u_weights == 0
    if np.any(blocked):
        positions = u_face_positions(ni, nj, dx)[blocked]
        fields.temp_u[blocked] = _tangential(fields, positions, dx)[:, 0]

    blocked = fields.v_weights == 0
    if np.any(blocked):
        positions = v_face_positions(ni, nj, dx)[blocked]
        fields.temp_v[blocked] = _tangential(fields, positions, dx)[:, 1]

    fields.u, fields.temp_u = fields.temp_u, fields.u
    fields.v, fields.temp_v = fields.temp_v, fields.v


def _tangential(fields, positions, dx):
    velocity = get_velocity(fields.u, fields.v, positions, dx)
    normal = solid_normal(fields.nodal_solid_phi, positions, dx)
    normal_component = np.sum(velocity * normal, axis=-1, keepdims=True)
    return velocity - normal_component * normal
