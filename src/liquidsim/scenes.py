"""Scene builders: solid geometry plus an initial body of liquid.

Each builder returns a configured FluidSimulation. Keyword arguments not
consumed by the builder are forwarded to Parameters.
"""

import logging

import numpy as np

from .geometry import Box, Circle, as_signed_distance, create_boundary
from .interpolation import cell_centres
from .simulation import FluidSimulation

log = logging.getLogger(__name__)


# =============================================================================
# Seeding
# =============================================================================


def _jittered_cells(sim, per_cell, rng):
    """``per_cell`` uniformly jittered points in every grid cell, shape (n, 2)."""
    centres = cell_centres(sim.ni, sim.nj, sim.dx).reshape(-1, 2)
    jitter = rng.uniform(-0.5, 0.5, size=(len(centres), per_cell, 2)) * sim.dx
    return (centres[:, None, :] + jitter).reshape(-1, 2)


def _outside_solid(sim, points):
    if sim.boundary is None:
        return np.ones(len(points), dtype=bool)
    return sim.boundary(points) > 0


def seed_region(sim, region, per_cell=4, seed=0):
    """Add jittered particles inside a signed-distance region, avoiding solids.

    Parameters
    ----------
    sim : FluidSimulation
        Simulation receiving the particles.
    region : SignedDistance or callable
        Liquid region (negative inside).
    per_cell : int
        Particles per grid cell.
    seed : int
        Seed of the random generator.

    Returns
    -------
    int
        Number of particles added.
    """
    rng = np.random.default_rng(seed)
    region = as_signed_distance(region)
    points = _jittered_cells(sim, per_cell, rng)
    keep = (region(points) < 0) & _outside_solid(sim, points)
    sim.add_particles(points[keep])
    return int(np.count_nonzero(keep))


def seed_rectangle(sim, lower, upper, per_cell=4, seed=0):
    """Add jittered particles inside the rectangle ``lower``..``upper``."""
    return seed_region(sim, Box(lower, upper), per_cell=per_cell, seed=seed)


# =============================================================================
# Scenes
# =============================================================================


def dam_break(
    ni=32,
    container=((0.1, 0.1), (0.9, 0.9)),
    column=((0.1, 0.1), (0.4, 0.6)),
    per_cell=4,
    seed=0,
    **kwargs,
):
    """Column of liquid released inside a box container."""
    boundary = create_boundary("box_container", lower=container[0], upper=container[1])
    sim = FluidSimulation(boundary=boundary, ni=ni, nj=kwargs.pop("nj", ni), **kwargs)
    count = seed_rectangle(sim, column[0], column[1], per_cell=per_cell, seed=seed)
    log.info(f"Dam break: {count} particles on a {sim.ni}x{sim.nj} grid")
    return sim


def still_pool(
    ni=32,
    container=((0.1, 0.1), (0.9, 0.9)),
    depth=0.3,
    per_cell=4,
    seed=0,
    **kwargs,
):
    """Flat layer of liquid resting on the container floor."""
    boundary = create_boundary("box_container", lower=container[0], upper=container[1])
    sim = FluidSimulation(boundary=boundary, ni=ni, nj=kwargs.pop("nj", ni), **kwargs)
    lower = container[0]
    upper = (container[1][0], container[0][1] + depth)
    count = seed_rectangle(sim, lower, upper, per_cell=per_cell, seed=seed)
    log.info(f"Still pool: {count} particles, depth {depth}")
    return sim


def circle_pour(
    ni=32,
    blob_centre=(0.45, 0.7),
    blob_radius=0.12,
    per_cell=4,
    seed=0,
    **kwargs,
):
    """Blob of liquid falling onto a circular obstacle inside a circular container."""
    boundary = create_boundary("circle_obstacle")
    sim = FluidSimulation(boundary=boundary, ni=ni, nj=kwargs.pop("nj", ni), **kwargs)
    count = seed_region(sim, Circle(blob_centre, blob_radius), per_cell=per_cell, seed=seed)
    log.info(f"Circle pour: {count} particles")
    return sim


SCENES = {
    "dam_break": dam_break,
    "still_pool": still_pool,
    "circle_pour": circle_pour,
}


def create_scene(name: str, **kwargs) -> FluidSimulation:
    """Build a scene by name."""
    if name not in SCENES:
        raise ValueError(f"Unknown scene: {name}. Use one of {sorted(SCENES)}")
    return SCENES[name](**kwargs)
