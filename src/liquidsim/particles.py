"""Marker particle advection and liquid level-set reconstruction."""

import logging

import numpy as np

from .interpolation import barycentric, get_velocity, interpolate_value, solid_normal

log = logging.getLogger(__name__)


def advect_particles(positions, u, v, nodal_solid_phi, dt, dx, excursion_cells=3.0):
    """Move particles with midpoint RK2 and push them out of solids.

    Parameters
    ----------
    positions : np.ndarray
        Particle positions, shape (n, 2). Not modified.
    u, v : np.ndarray
        Staggered velocity components.
    nodal_solid_phi : np.ndarray
        Solid signed distance on nodes.
    dt : float
        Sub-step size.
    dx : float
        Cell size.
    excursion_cells : float
        Displacements beyond this many cells are reported.

    Returns
    -------
    moved : np.ndarray
        New particle positions, shape (n, 2).
    max_displacement : float
        Largest RK2 displacement of any particle.
    runaway : int
        Number of particles that moved more than ``excursion_cells * dx``.
    """
    if len(positions) == 0:
        return positions.copy(), 0.0, 0

    start_velocity = get_velocity(u, v, positions, dx)
    midpoint = positions + 0.5 * dt * start_velocity
    mid_velocity = get_velocity(u, v, midpoint, dx)
    moved = positions + dt * mid_velocity

    displacement = np.linalg.norm(moved - positions, axis=1)
    max_displacement = float(displacement.max())
    runaway = int(np.count_nonzero(displacement > excursion_cells * dx))
    if runaway:
        worst = int(np.argmax(displacement))
        log.warning(
            f"{runaway} particle(s) moved more than {excursion_cells:g} cells in one substep "
            f"(dt={dt:.3e}): worst {positions[worst]} -> {moved[worst]}, "
            f"start velocity {start_velocity[worst]}, mid velocity {mid_velocity[worst]}"
        )

    # Project penetrating particles back along the solid normal
    phi = interpolate_value(nodal_solid_phi, moved / dx)
    inside = phi < 0
    if np.any(inside):
        normal = solid_normal(nodal_solid_phi, moved[inside], dx)
        moved[inside] -= phi[inside, None] * normal

    return moved, max_displacement, runaway


def compute_liquid_phi(positions, nodal_solid_phi, dx, particle_radius, params):
    """Rebuild the cell-centred liquid signed distance from particles.

    Every cell starts at ``far_field_cells * dx``. Each particle lowers the
    cells in its (2*reach+1)^2 neighbourhood to the distance from the cell
    centre minus the biased particle radius. Cells that are inside or near
    the liquid and whose surrounding nodes are on average inside solid are
    set to ``-0.5 * dx`` so the liquid reaches into the wall.
    """
    ni, nj = nodal_solid_phi.shape[0] - 1, nodal_solid_phi.shape[1] - 1
    liquid_phi = np.full((ni, nj), params.far_field_cells * dx)

    if len(positions):
        i, _ = barycentric(positions[:, 0] / dx - 0.5, ni)
        j, _ = barycentric(positions[:, 1] / dx - 0.5, nj)

        reach = params.level_set_reach
        offsets = np.arange(-reach, reach + 1)
        di, dj = np.meshgrid(offsets, offsets, indexing="ij")

        # (n, k) candidate cells per particle
        ci = i[:, None] + di.ravel()[None, :]
        cj = j[:, None] + dj.ravel()[None, :]
        inside = (ci >= 0) & (ci < ni) & (cj >= 0) & (cj < nj)

        centre_x = (ci + 0.5) * dx
        centre_y = (cj + 0.5) * dx
        distance = np.hypot(centre_x - positions[:, 0:1], centre_y - positions[:, 1:2])
        candidate = distance - params.particle_radius_bias * particle_radius

        np.minimum.at(liquid_phi, (ci[inside], cj[inside]), candidate[inside])

    solid_average = 0.25 * (
        nodal_solid_phi[:-1, :-1] + nodal_solid_phi[1:, :-1] + nodal_solid_phi[:-1, 1:] + nodal_solid_phi[1:, 1:]
    )
    near_wall = (liquid_phi < 0.5 * dx) & (solid_average < 0)
    liquid_phi[near_wall] = -0.5 * dx
    return liquid_phi
