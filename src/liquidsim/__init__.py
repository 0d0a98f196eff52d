"""2D free-surface liquid simulation with particle level sets."""

from .datastructures import Parameters, Metrics, TimeSeries, GridFields, SolveInfo
from .geometry import (
    SignedDistance,
    Circle,
    Box,
    HalfPlane,
    Union,
    Intersection,
    Complement,
    FunctionDistance,
    create_boundary,
)
from .simulation import FluidSimulation
from .scenes import dam_break, still_pool, circle_pour, create_scene, seed_rectangle, seed_region

__all__ = [
    "Parameters",
    "Metrics",
    "TimeSeries",
    "GridFields",
    "SolveInfo",
    "SignedDistance",
    "Circle",
    "Box",
    "HalfPlane",
    "Union",
    "Intersection",
    "Complement",
    "FunctionDistance",
    "create_boundary",
    "FluidSimulation",
    "dam_break",
    "still_pool",
    "circle_pour",
    "create_scene",
    "seed_rectangle",
    "seed_region",
]
