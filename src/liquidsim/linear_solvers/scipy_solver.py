"""Scipy-based linear solver using conjugate gradients with PyAMG preconditioning."""

import numpy as np
import pyamg
from scipy.sparse import csr_matrix, diags
from scipy.sparse.linalg import cg


def build_preconditioner(A_csr: csr_matrix, preconditioner: str = "amg"):
    """Build a symmetric preconditioner for CG.

    Parameters
    ----------
    A_csr : csr_matrix
        Symmetric positive definite matrix.
    preconditioner : str
        "amg" (smoothed aggregation), "jacobi" or "none".

    Returns
    -------
    LinearOperator or sparse matrix or None
    """
    if preconditioner == "amg":
        ml = pyamg.smoothed_aggregation_solver(A_csr, max_coarse=10)
        return ml.aspreconditioner()
    if preconditioner == "jacobi":
        return diags(1.0 / A_csr.diagonal())
    if preconditioner == "none":
        return None
    raise ValueError(f"Unknown preconditioner: {preconditioner}")


def pcg_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    M=None,
    tolerance=1e-6,
    max_iterations=1000,
    preconditioner="amg",
):
    """Solve A x = b using scipy CG.

    Parameters
    ----------
    A_csr : csr_matrix
        Symmetric positive definite sparse matrix in CSR format.
    b_np : np.ndarray
        Right-hand side vector.
    M : LinearOperator, optional
        Preconditioner. If None, one is built from ``preconditioner``.
    tolerance : float, optional
        Relative residual tolerance (default: 1e-6).
    max_iterations : int, optional
        Maximum iterations (default: 1000).
    preconditioner : str, optional
        Preconditioner kind used when M is None (default: "amg").

    Returns
    -------
    x_np : np.ndarray
        Solution vector (last iterate if not converged).
    residual : float
        Relative residual ||b - A x|| / ||b||.
    iterations : int
        Number of CG iterations performed.
    converged : bool
        Whether the tolerance was reached.
    """
    b_norm = np.linalg.norm(b_np)
    if b_norm == 0.0:
        return np.zeros_like(b_np), 0.0, 0, True

    if M is None:
        M = build_preconditioner(A_csr, preconditioner)

    iterations = 0

    def count(xk):
        nonlocal iterations
        iterations += 1

    x, info = cg(A_csr, b_np, M=M, rtol=tolerance, atol=0, maxiter=max_iterations, callback=count)

    if info < 0:
        raise RuntimeError(f"CG failed (info={info})")

    # Did not converge (info > 0) but we can still use the result
    residual = float(np.linalg.norm(b_np - A_csr @ x) / b_norm)
    return x, residual, iterations, info == 0
