"""Data structures for simulation configuration, state and results.

This module defines the configuration and result data structures
for the free-surface liquid simulator.

Structure:
- Parameters: Input configuration (logged to MLflow at start)
- Metrics: Output results accumulated over a run
- TimeSeries: Per-substep history
- GridFields: Staggered grid buffers owned by one simulation
- SolveInfo: Outcome of one sparse linear solve
"""

import time
from dataclasses import dataclass, asdict, field
from typing import List

import numpy as np
import pandas as pd
from mlflow.entities import Metric


# ========================================================
# Parameters (Input Configuration)
# ========================================================


@dataclass
class Parameters:
    """Simulation parameters - grid, physics, solver settings and tuning constants."""

    ni: int = 32
    nj: int = 32
    width: float = 1.0
    gravity: float = 9.81
    viscosity: float = 1.0

    # Linear solves
    pressure_tolerance: float = 1e-6
    viscosity_tolerance: float = 1e-6
    max_solver_iterations: int = 1000
    preconditioner: str = "amg"

    # Named constants of the discretization
    extrapolation_passes: int = 10
    particle_radius_bias: float = 1.02
    theta_floor: float = 0.01
    excursion_cells: float = 3.0  # per-substep displacement that is reported
    far_field_cells: float = 3.0  # initial liquid distance, in cells
    level_set_reach: int = 2  # 2 -> 5x5 neighbourhood per particle
    volume_subdivision: int = 2  # 2 -> 2x2 sub-samples per volume fraction

    def __post_init__(self):
        if self.ni < 2 or self.nj < 2:
            raise ValueError(f"Grid must be at least 2x2 cells, got {self.ni}x{self.nj}")
        if self.width <= 0:
            raise ValueError(f"width must be positive, got {self.width}")
        if self.preconditioner not in ("amg", "jacobi", "none"):
            raise ValueError(
                f"Unknown preconditioner: {self.preconditioner}. Use 'amg', 'jacobi' or 'none'"
            )

    @property
    def dx(self) -> float:
        return self.width / self.ni

    @property
    def particle_radius(self) -> float:
        return self.dx / np.sqrt(2.0)

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self) -> dict:
        return asdict(self)


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class Metrics:
    """Run totals - accumulated while advancing frames."""

    frames: int = 0
    substeps: int = 0
    simulated_time: float = 0.0
    pressure_iterations: int = 0
    viscosity_iterations: int = 0
    failed_pressure_solves: int = 0
    failed_viscosity_solves: int = 0
    runaway_particle_events: int = 0
    max_particle_displacement: float = 0.0
    wall_time_seconds: float = 0.0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self) -> dict:
        return {k: float(v) for k, v in asdict(self).items()}


# ========================================================
# Time Series (Substep History)
# ========================================================


@dataclass
class TimeSeries:
    """Substep history (one value per substep)."""

    time: List[float] = field(default_factory=list)
    dt: List[float] = field(default_factory=list)
    pressure_residual: List[float] = field(default_factory=list)
    pressure_iterations: List[int] = field(default_factory=list)
    viscosity_iterations: List[int] = field(default_factory=list)
    max_divergence: List[float] = field(default_factory=list)
    kinetic_energy: List[float] = field(default_factory=list)
    mean_particle_height: List[float] = field(default_factory=list)

    def append(self, **values):
        for name, value in values.items():
            getattr(self, name).append(value)

    def __len__(self):
        return len(self.time)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per substep."""
        return pd.DataFrame(asdict(self))

    def to_mlflow_batch(self) -> List[Metric]:
        """Build MLflow metric entities, one per (quantity, substep)."""
        timestamp = int(time.time() * 1000)
        batch = []
        for name, values in asdict(self).items():
            if name == "time":
                continue
            for step, value in enumerate(values):
                batch.append(Metric(key=name, value=float(value), timestamp=timestamp, step=step))
        return batch


# ========================================================
# Grid State
# ========================================================


@dataclass
class GridFields:
    """Staggered grid buffers - live fields, geometry data and scratch buffers.

    Layout (MAC grid, arrays indexed [i, j]):
    - u on vertical faces, (ni+1) x nj, sample point (i*dx, (j+0.5)*dx)
    - v on horizontal faces, ni x (nj+1), sample point ((i+0.5)*dx, j*dx)
    - nodal_solid_phi on nodes, (ni+1) x (nj+1), negative inside solid
    - liquid_phi on cell centres, ni x nj, negative inside liquid
    """

    # Velocity and double buffers
    u: np.ndarray
    v: np.ndarray
    temp_u: np.ndarray
    temp_v: np.ndarray

    # Geometry
    nodal_solid_phi: np.ndarray
    liquid_phi: np.ndarray

    # Pressure solve and extrapolation
    u_weights: np.ndarray
    v_weights: np.ndarray
    u_valid: np.ndarray
    v_valid: np.ndarray
    temp_valid_u: np.ndarray
    temp_valid_v: np.ndarray

    # Viscosity solve
    u_vol: np.ndarray
    v_vol: np.ndarray
    c_vol: np.ndarray
    n_vol: np.ndarray
    viscosity: np.ndarray

    @classmethod
    def allocate(cls, ni: int, nj: int, viscosity: float = 1.0):
        """Allocate all arrays with proper sizes."""
        return cls(
            u=np.zeros((ni + 1, nj)),
            v=np.zeros((ni, nj + 1)),
            temp_u=np.zeros((ni + 1, nj)),
            temp_v=np.zeros((ni, nj + 1)),
            nodal_solid_phi=np.ones((ni + 1, nj + 1)),
            liquid_phi=np.zeros((ni, nj)),
            u_weights=np.ones((ni + 1, nj)),
            v_weights=np.ones((ni, nj + 1)),
            u_valid=np.zeros((ni + 1, nj), dtype=bool),
            v_valid=np.zeros((ni, nj + 1), dtype=bool),
            temp_valid_u=np.zeros((ni + 1, nj), dtype=bool),
            temp_valid_v=np.zeros((ni, nj + 1), dtype=bool),
            u_vol=np.zeros((ni + 1, nj)),
            v_vol=np.zeros((ni, nj + 1)),
            c_vol=np.zeros((ni, nj)),
            n_vol=np.zeros((ni + 1, nj + 1)),
            viscosity=np.full((ni, nj), float(viscosity)),
        )

    @property
    def shape(self):
        return self.liquid_phi.shape


@dataclass
class SolveInfo:
    """Outcome of one sparse linear solve."""

    residual: float = 0.0
    iterations: int = 0
    converged: bool = True
    size: int = 0
