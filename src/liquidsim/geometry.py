"""Signed-distance providers for static solid geometry.

A provider maps world positions of shape (..., 2) to signed distances of
shape (...). Negative values are inside the solid. Providers are evaluated
once per grid node when a boundary is installed.

Composition follows the usual min/max rules, so results are exact distances
only for the primitives; unions and complements are valid bounds, which is
all the sign-based cut-cell treatment needs.
"""

from abc import ABC, abstractmethod
from typing import Callable, Sequence

import numpy as np


# =============================================================================
# Abstract Base Class
# =============================================================================


class SignedDistance(ABC):
    """Abstract signed-distance provider."""

    @abstractmethod
    def __call__(self, points: np.ndarray) -> np.ndarray:
        """Return signed distances at ``points`` (negative inside)."""
        pass

    def __or__(self, other: "SignedDistance") -> "SignedDistance":
        return Union(self, other)

    def __and__(self, other: "SignedDistance") -> "SignedDistance":
        return Intersection(self, other)

    def __neg__(self) -> "SignedDistance":
        return Complement(self)


# =============================================================================
# Primitives
# =============================================================================


class Circle(SignedDistance):
    """Disc of given centre and radius."""

    def __init__(self, centre: Sequence[float], radius: float):
        self.centre = np.asarray(centre, dtype=np.float64)
        self.radius = float(radius)

    def __call__(self, points):
        points = np.asarray(points, dtype=np.float64)
        return np.linalg.norm(points - self.centre, axis=-1) - self.radius


class Box(SignedDistance):
    """Axis-aligned rectangle spanning ``lower`` to ``upper``."""

    def __init__(self, lower: Sequence[float], upper: Sequence[float]):
        self.lower = np.asarray(lower, dtype=np.float64)
        self.upper = np.asarray(upper, dtype=np.float64)
        if np.any(self.upper <= self.lower):
            raise ValueError(f"Box upper corner {upper} must exceed lower corner {lower}")

    def __call__(self, points):
        points = np.asarray(points, dtype=np.float64)
        centre = 0.5 * (self.lower + self.upper)
        half = 0.5 * (self.upper - self.lower)
        q = np.abs(points - centre) - half
        outside = np.linalg.norm(np.maximum(q, 0.0), axis=-1)
        inside = np.minimum(np.max(q, axis=-1), 0.0)
        return outside + inside


class HalfPlane(SignedDistance):
    """Everything behind the line through ``point`` with outward ``normal``."""

    def __init__(self, point: Sequence[float], normal: Sequence[float]):
        normal = np.asarray(normal, dtype=np.float64)
        length = np.linalg.norm(normal)
        if length == 0:
            raise ValueError("HalfPlane normal must be non-zero")
        self.point = np.asarray(point, dtype=np.float64)
        self.normal = normal / length

    def __call__(self, points):
        points = np.asarray(points, dtype=np.float64)
        return (points - self.point) @ self.normal


# =============================================================================
# Composition
# =============================================================================


class Union(SignedDistance):
    def __init__(self, *shapes: SignedDistance):
        if not shapes:
            raise ValueError("Union needs at least one shape")
        self.shapes = shapes

    def __call__(self, points):
        return np.min([shape(points) for shape in self.shapes], axis=0)


class Intersection(SignedDistance):
    def __init__(self, *shapes: SignedDistance):
        if not shapes:
            raise ValueError("Intersection needs at least one shape")
        self.shapes = shapes

    def __call__(self, points):
        return np.max([shape(points) for shape in self.shapes], axis=0)


class Complement(SignedDistance):
    """Inside and outside swapped, e.g. turns a container into surrounding solid."""

    def __init__(self, shape: SignedDistance):
        self.shape = shape

    def __call__(self, points):
        return -self.shape(points)


class FunctionDistance(SignedDistance):
    """Adapter for a plain callable taking one 2D point and returning a float."""

    def __init__(self, function: Callable[[np.ndarray], float]):
        self.function = function

    def __call__(self, points):
        points = np.asarray(points, dtype=np.float64)
        flat = points.reshape(-1, 2)
        values = np.array([self.function(p) for p in flat], dtype=np.float64)
        return values.reshape(points.shape[:-1])


def as_signed_distance(boundary) -> SignedDistance:
    """Accept a provider or a per-point callable."""
    if isinstance(boundary, SignedDistance):
        return boundary
    if callable(boundary):
        return FunctionDistance(boundary)
    raise TypeError(
        f"Boundary must be a SignedDistance or a callable, got {type(boundary).__name__}"
    )


# =============================================================================
# Factory
# =============================================================================


def create_boundary(kind: str = "box_container", **kwargs) -> SignedDistance:
    """Create a solid boundary from configuration.

    Parameters
    ----------
    kind : str
        "box_container": solid outside the rectangle ``lower``..``upper``
        "circle_container": solid outside the circle ``centre``/``radius``
        "circle_obstacle": circular container with a circular obstacle
        "none": no solid anywhere inside the domain

    Returns
    -------
    SignedDistance
        Configured provider
    """
    kind_lower = kind.lower()

    if kind_lower == "box_container":
        return Complement(Box(kwargs.get("lower", (0.1, 0.1)), kwargs.get("upper", (0.9, 0.9))))
    elif kind_lower == "circle_container":
        return Complement(Circle(kwargs.get("centre", (0.5, 0.5)), kwargs.get("radius", 0.45)))
    elif kind_lower == "circle_obstacle":
        container = Complement(
            Circle(kwargs.get("centre", (0.5, 0.5)), kwargs.get("radius", 0.45))
        )
        obstacle = Circle(
            kwargs.get("obstacle_centre", (0.5, 0.35)), kwargs.get("obstacle_radius", 0.1)
        )
        return Union(container, obstacle)
    elif kind_lower == "none":
        return HalfPlane((-1.0e3, 0.0), (1.0, 0.0))
    else:
        raise ValueError(
            f"Unknown boundary kind: {kind}. "
            f"Use 'box_container', 'circle_container', 'circle_obstacle' or 'none'."
        )
