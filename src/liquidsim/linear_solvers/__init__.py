"""Sparse assembly and linear solvers."""

from .scipy_solver import pcg_solver, build_preconditioner
from .assembly import SparseSystemBuilder

__all__ = ["pcg_solver", "build_preconditioner", "SparseSystemBuilder"]
