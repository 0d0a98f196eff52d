"""Free-surface liquid simulation on a 2D staggered grid."""

import logging
import time

import mlflow
import numpy as np

from . import advection, extrapolation, particles, pressure, viscosity
from .datastructures import GridFields, Metrics, Parameters, TimeSeries
from .geometry import as_signed_distance
from .interpolation import get_velocity, node_positions
from .linear_solvers import SparseSystemBuilder
from .metrics import kinetic_energy, liquid_divergence

log = logging.getLogger(__name__)


class FluidSimulation:
    """Particle level-set liquid with variational pressure and viscosity solves.

    Owns the grid buffers, the marker particles and the reusable storage of
    both linear systems.

    Results accumulate in:
    - self.metrics : Metrics dataclass with run totals
    - self.time_series : TimeSeries dataclass with one row per substep
    """

    def __init__(self, params=None, boundary=None, **kwargs):
        """Initialize the simulation.

        Parameters
        ----------
        params : Parameters, optional
            Parameters object. If not provided, kwargs are used to create params.
        boundary : SignedDistance or callable, optional
            Solid geometry. Without one, the domain holds no solid.
        **kwargs
            Configuration parameters passed to Parameters if params is None.
        """
        if params is None:
            params = Parameters(**kwargs)
        elif kwargs:
            raise ValueError(f"Pass either params or keyword parameters, not both: {sorted(kwargs)}")

        self.params = params
        self.ni = params.ni
        self.nj = params.nj
        self.dx = params.dx
        self.particle_radius = params.particle_radius

        self.fields = GridFields.allocate(self.ni, self.nj, params.viscosity)
        self.particles = np.zeros((0, 2))
        self.pressure = np.zeros((self.ni, self.nj))
        self.boundary = None

        self.pressure_system = SparseSystemBuilder(nnz_per_row=5)
        self.viscosity_system = SparseSystemBuilder(nnz_per_row=9)

        self.metrics = Metrics()
        self.time_series = TimeSeries()
        self.time = 0.0

        if boundary is not None:
            self.set_boundary(boundary)

    # =========================================================================
    # Setup
    # =========================================================================

    def set_boundary(self, boundary):
        """Sample a signed-distance provider on every grid node."""
        self.boundary = as_signed_distance(boundary)
        nodes = node_positions(self.ni, self.nj, self.dx)
        self.fields.nodal_solid_phi[:] = self.boundary(nodes)
        log.info(
            f"Boundary {type(self.boundary).__name__}: "
            f"{np.count_nonzero(self.fields.nodal_solid_phi < 0)} solid nodes"
        )

    def add_particle(self, position):
        """Append one marker particle at a world position."""
        position = np.asarray(position, dtype=np.float64)
        if position.shape != (2,):
            raise ValueError(f"Particle position must have shape (2,), got {position.shape}")
        self.particles = np.vstack([self.particles, position[None, :]])

    def add_particles(self, positions):
        """Append marker particles from an array of shape (n, 2)."""
        positions = np.asarray(positions, dtype=np.float64)
        if positions.ndim != 2 or positions.shape[1] != 2:
            raise ValueError(f"Particle positions must have shape (n, 2), got {positions.shape}")
        self.particles = np.vstack([self.particles, positions])

    def set_viscosity(self, value):
        """Set the cell-centred viscosity from a scalar or an (ni, nj) array."""
        value = np.asarray(value, dtype=np.float64)
        if value.ndim != 0 and value.shape != (self.ni, self.nj):
            raise ValueError(
                f"Viscosity must be a scalar or have shape {(self.ni, self.nj)}, got {value.shape}"
            )
        if np.any(value < 0):
            raise ValueError("Viscosity must be non-negative")
        self.fields.viscosity[:] = value

    def set_velocity(self, u=None, v=None):
        """Install velocity components; each must match its staggered shape."""
        if u is not None:
            u = np.asarray(u, dtype=np.float64)
            if u.shape != self.fields.u.shape:
                raise ValueError(f"u must have shape {self.fields.u.shape}, got {u.shape}")
            self.fields.u[:] = u
        if v is not None:
            v = np.asarray(v, dtype=np.float64)
            if v.shape != self.fields.v.shape:
                raise ValueError(f"v must have shape {self.fields.v.shape}, got {v.shape}")
            self.fields.v[:] = v

    # =========================================================================
    # Queries
    # =========================================================================

    def get_velocity(self, position):
        """Interpolated velocity at world position(s) of shape (2,) or (..., 2)."""
        return get_velocity(self.fields.u, self.fields.v, position, self.dx)

    @property
    def u(self):
        return self.fields.u

    @property
    def v(self):
        return self.fields.v

    @property
    def liquid_phi(self):
        return self.fields.liquid_phi

    @property
    def nodal_solid_phi(self):
        return self.fields.nodal_solid_phi

    def cfl(self) -> float:
        """Largest stable substep: dx / max|velocity|, infinite at rest."""
        max_velocity = max(np.max(np.abs(self.fields.u)), np.max(np.abs(self.fields.v)))
        if not np.isfinite(max_velocity):
            raise FloatingPointError("Velocity field contains non-finite values")
        if max_velocity == 0.0:
            return float("inf")
        return self.dx / max_velocity

    # =========================================================================
    # Time stepping
    # =========================================================================

    def advance(self, dt: float):
        """Advance one frame of length ``dt`` in CFL-bounded substeps."""
        if dt < 0:
            raise ValueError(f"Frame duration must be non-negative, got {dt}")

        time_start = time.time()
        substeps_before = self.metrics.substeps

        t = 0.0
        while t < dt:
            remaining = dt - t
            substep = self.cfl()
            if substep >= remaining:
                substep = remaining
            self._substep(substep)
            t = dt if substep == remaining else t + substep

        self.metrics.frames += 1
        self.metrics.simulated_time += dt
        self.metrics.wall_time_seconds += time.time() - time_start

        log.debug(
            f"Frame {self.metrics.frames}: {self.metrics.substeps - substeps_before} substeps, "
            f"t={self.time:.4f}"
        )

        # Live MLflow logging per frame
        if mlflow.active_run() and len(self.time_series):
            mlflow.log_metrics(
                {
                    "frame_substeps": self.metrics.substeps - substeps_before,
                    "kinetic_energy": self.time_series.kinetic_energy[-1],
                    "max_divergence": self.time_series.max_divergence[-1],
                    "mean_particle_height": self.time_series.mean_particle_height[-1],
                },
                step=self.metrics.frames,
            )

    def _substep(self, dt: float):
        """Run the per-substep pipeline in its fixed order."""
        params = self.params
        fields = self.fields
        dx = self.dx

        # Passively advect particles
        self.particles, displacement, runaway = particles.advect_particles(
            self.particles, fields.u, fields.v, fields.nodal_solid_phi, dt, dx, params.excursion_cells
        )
        self.metrics.max_particle_displacement = max(self.metrics.max_particle_displacement, displacement)
        if runaway:
            self.metrics.runaway_particle_events += 1

        # Estimate the liquid signed distance
        fields.liquid_phi[:] = particles.compute_liquid_phi(
            self.particles, fields.nodal_solid_phi, dx, self.particle_radius, params
        )

        # Advance the velocity
        advection.advect_velocity(fields, dt, dx)
        advection.add_force(fields, dt, params.gravity)

        viscosity_info = viscosity.apply_viscosity(fields, self.viscosity_system, dx, dt, params)
        self.pressure, pressure_info = pressure.apply_projection(fields, self.pressure_system, dx, dt, params)
        max_divergence = float(np.max(np.abs(liquid_divergence(fields, dx))))

        # Faces without a pressure update get values from the liquid, then lose their normal component
        extrapolation.extrapolate_velocity(fields, params.extrapolation_passes)
        extrapolation.constrain_velocity(fields, dx)

        self.time += dt
        self.metrics.substeps += 1
        self.metrics.pressure_iterations += pressure_info.iterations
        self.metrics.viscosity_iterations += viscosity_info.iterations
        self.metrics.failed_pressure_solves += int(not pressure_info.converged)
        self.metrics.failed_viscosity_solves += int(not viscosity_info.converged)

        mean_height = float(self.particles[:, 1].mean()) if len(self.particles) else float("nan")
        self.time_series.append(
            time=self.time,
            dt=dt,
            pressure_residual=pressure_info.residual,
            pressure_iterations=pressure_info.iterations,
            viscosity_iterations=viscosity_info.iterations,
            max_divergence=max_divergence,
            kinetic_energy=kinetic_energy(fields, dx),
            mean_particle_height=mean_height,
        )
        log.debug(
            f"Substep dt={dt:.3e}: pressure {pressure_info.iterations} it "
            f"(res={pressure_info.residual:.2e}), viscosity {viscosity_info.iterations} it"
        )
