"""
Module for the linear solvers used by the pressure assembly and the nonlinear
solver. A linear solver returns the solution together with a report, and never
raises on convergence failure itself: it is up to the caller to decide whether a
failed solve is fatal (see :class:`LinearSolverConvergenceError`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spla

from resflow.utils.logging import time_logger

__all__ = [
    "LinearSolverConvergenceError",
    "LinearSolverReport",
    "LinearSolver",
    "ScipySparseSolver",
    "GmresSolver",
    "linear_solver_from_params",
]

logger = logging.getLogger(__name__)

module_sections = ["numerics"]


class LinearSolverConvergenceError(RuntimeError):
    """Raised when a linear system that must be solved could not be solved."""


@dataclass
class LinearSolverReport:
    """Outcome of a linear solve."""

    converged: bool
    """Whether the solver met its convergence criterion."""
    iterations: int = 0
    """Number of iterations used. Direct solvers report a single iteration."""
    residual_reduction: float = 0.0
    """Relative residual ``|b - Ax| / |b|`` of the returned solution."""


class LinearSolver:
    """Base class for linear solvers.

    Subclasses implement :meth:`solve`.

    """

    def solve(
        self, matrix: sps.spmatrix, rhs: np.ndarray
    ) -> tuple[np.ndarray, LinearSolverReport]:
        """Solve ``matrix @ x = rhs``.

        Parameters:
            matrix: Square sparse matrix.
            rhs: Right-hand side.

        Returns:
            The solution and the convergence report.

        """
        raise NotImplementedError

    def solve_csr(
        self,
        n: int,
        nnz: int,
        indptr: np.ndarray,
        indices: np.ndarray,
        data: np.ndarray,
        rhs: np.ndarray,
    ) -> tuple[np.ndarray, LinearSolverReport]:
        """Solve a system given by the raw arrays of a compressed sparse row matrix.

        Parameters:
            n: Number of rows and columns.
            nnz: Number of stored entries.
            indptr: Row pointers, ``shape=(n + 1,)``.
            indices: Column indices, ``shape=(nnz,)``.
            data: Matrix entries, ``shape=(nnz,)``.
            rhs: Right-hand side.

        """
        assert indptr.size == n + 1
        assert indices.size == nnz and data.size == nnz
        matrix = sps.csr_matrix((data, indices, indptr), shape=(n, n))
        return self.solve(matrix, rhs)

    @staticmethod
    def _residual_reduction(matrix, x, rhs) -> float:
        rhs_norm = np.linalg.norm(rhs)
        res_norm = np.linalg.norm(rhs - matrix @ x)
        if rhs_norm == 0:
            return float(res_norm)
        return float(res_norm / rhs_norm)


class ScipySparseSolver(LinearSolver):
    """Direct solver based on :func:`scipy.sparse.linalg.spsolve`.

    The solve is reported as converged if the solution is finite.

    """

    @time_logger(sections=module_sections)
    def solve(self, matrix, rhs):
        rhs = np.asarray(rhs, dtype=float)
        if rhs.size == 0:
            return np.zeros(0), LinearSolverReport(converged=True)

        x = np.atleast_1d(spla.spsolve(sps.csc_matrix(matrix), rhs))
        converged = bool(np.all(np.isfinite(x)))
        report = LinearSolverReport(
            converged=converged,
            iterations=1,
            residual_reduction=(
                self._residual_reduction(matrix, x, rhs) if converged else np.inf
            ),
        )
        logger.debug(f"Direct solve of {rhs.size} unknowns, converged: {converged}")
        return x, report


class GmresSolver(LinearSolver):
    """Restarted GMRES preconditioned with an incomplete LU factorization.

    Parameters:
        tol: Relative residual tolerance.
        max_iterations: Maximum number of iterations.
        restart: Number of iterations between restarts.

    """

    def __init__(
        self, tol: float = 1e-10, max_iterations: int = 500, restart: int = 50
    ) -> None:
        self.tol = tol
        self.max_iterations = max_iterations
        self.restart = restart

    @time_logger(sections=module_sections)
    def solve(self, matrix, rhs):
        rhs = np.asarray(rhs, dtype=float)
        if rhs.size == 0:
            return np.zeros(0), LinearSolverReport(converged=True)

        matrix = sps.csc_matrix(matrix)
        ilu = spla.spilu(matrix)
        precond = spla.LinearOperator(matrix.shape, ilu.solve)

        iterations = 0

        def _count(_):
            nonlocal iterations
            iterations += 1

        x, info = spla.gmres(
            matrix,
            rhs,
            rtol=self.tol,
            atol=0.0,
            restart=self.restart,
            maxiter=self.max_iterations,
            M=precond,
            callback=_count,
            callback_type="pr_norm",
        )
        report = LinearSolverReport(
            converged=info == 0,
            iterations=iterations,
            residual_reduction=self._residual_reduction(matrix, x, rhs),
        )
        logger.debug(
            f"GMRES used {iterations} iterations, relative residual"
            f" {report.residual_reduction:.2e}"
        )
        return x, report


def linear_solver_from_params(params: Optional[dict] = None) -> LinearSolver:
    """Construct a linear solver from a parameter dictionary.

    Parameters:
        params: Recognized keys are ``linear_solver`` (``"scipy_sparse"`` or
            ``"gmres"``, default ``"scipy_sparse"``), and for GMRES ``tol``,
            ``max_iterations`` and ``restart``.

    Raises:
        ValueError: If the solver name is unknown.

    """
    if params is None:
        params = {}
    solver = str(params.get("linear_solver", "scipy_sparse")).strip().lower()

    if solver == "scipy_sparse":
        return ScipySparseSolver()
    elif solver == "gmres":
        return GmresSolver(
            tol=float(params.get("tol", 1e-10)),
            max_iterations=int(params.get("max_iterations", 500)),
            restart=int(params.get("restart", 50)),
        )
    else:
        raise ValueError(f"Unknown linear solver {solver}")
