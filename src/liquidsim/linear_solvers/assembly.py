"""Coordinate-list system builder shared by the pressure and viscosity solves.

Assembly kernels write (row, col, value) triplets and the right-hand side into
preallocated storage. Storage is reallocated only when the system size changes
and every used entry is reset before each assembly.
"""

import numpy as np
from scipy.sparse import csr_matrix

from ..datastructures import SolveInfo
from .scipy_solver import pcg_solver


class SparseSystemBuilder:
    """Reusable triplet storage for a square system of a given size.

    Parameters
    ----------
    nnz_per_row : int
        Upper bound on the number of triplets emitted per row.
    """

    def __init__(self, nnz_per_row: int):
        self.nnz_per_row = nnz_per_row
        self.size = 0
        self.rows = np.zeros(0, dtype=np.int64)
        self.cols = np.zeros(0, dtype=np.int64)
        self.vals = np.zeros(0, dtype=np.float64)
        self.rhs = np.zeros(0, dtype=np.float64)
        self.solution = np.zeros(0, dtype=np.float64)
        self.count = 0

    def reset(self, size: int):
        """Prepare storage for a system of ``size`` unknowns."""
        if size != self.size:
            capacity = self.nnz_per_row * size
            self.rows = np.zeros(capacity, dtype=np.int64)
            self.cols = np.zeros(capacity, dtype=np.int64)
            self.vals = np.zeros(capacity, dtype=np.float64)
            self.rhs = np.zeros(size, dtype=np.float64)
            self.solution = np.zeros(size, dtype=np.float64)
            self.size = size
        else:
            self.vals[: self.count] = 0.0
            self.rhs[:] = 0.0
            self.solution[:] = 0.0
        self.count = 0

    def to_csr(self) -> csr_matrix:
        """Sum the triplets written so far into a CSR matrix."""
        k = self.count
        return csr_matrix(
            (self.vals[:k], (self.rows[:k], self.cols[:k])),
            shape=(self.size, self.size),
        )

    def solve(self, tolerance=1e-6, max_iterations=1000, preconditioner="amg") -> SolveInfo:
        """Solve the assembled system for its active unknowns.

        Unknowns whose row has no positive diagonal (no equation, or an
        all-zero equation) are removed from the system before the CG solve
        and keep the value 0 in ``self.solution``.
        """
        A = self.to_csr()
        active = np.flatnonzero(A.diagonal() > 0.0)
        self.solution[:] = 0.0

        if active.size == 0:
            return SolveInfo(residual=0.0, iterations=0, converged=True, size=0)

        A_active = A[active][:, active]
        b_active = self.rhs[active]

        x, residual, iterations, converged = pcg_solver(
            A_active,
            b_active,
            tolerance=tolerance,
            max_iterations=max_iterations,
            preconditioner=preconditioner,
        )
        self.solution[active] = x
        return SolveInfo(
            residual=residual, iterations=iterations, converged=converged, size=int(active.size)
        )
