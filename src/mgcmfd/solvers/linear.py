"""Iterative linear solvers.

Solver Hierarchy:
-----------------
LinearSolver (abstract base - operators, preconditioner, monitoring)
├── Richardson (damped fixed-point iteration)
│   └── Jacobi (Richardson with a diagonal preconditioner)
└── GMRES (restarted GMRES(m) with Givens rotations)

Every scheme reports its residual norm to a ConvergenceMonitor created
fresh for the solve; ``solve`` mutates the initial guess in place and
returns the LinearSolveResult.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np
from scipy.linalg import solve_triangular

from ..exceptions import InvalidArgumentError, InvalidStateError
from ..linalg.matrix import Matrix
from ..linalg.preconditioners import (
    Preconditioner,
    PreconditionerSide,
    create_preconditioner,
)
from ..linalg.vector import norm
from .monitor import ConvergenceMonitor, LinearSolveResult, Status

log = logging.getLogger(__name__)


def _option(config, key, default):
    """Read ``key`` from a mapping, DictConfig or attribute container."""
    if config is None:
        return default
    if hasattr(config, "get"):
        value = config.get(key, default)
    else:
        value = getattr(config, key, default)
    return default if value is None else value


# =============================================================================
# Abstract Base Class
# =============================================================================


class LinearSolver(ABC):
    """Abstract iterative solver for A x = b.

    Parameters
    ----------
    absolute_tolerance : float
        Absolute residual tolerance (>= 0).
    relative_tolerance : float
        Tolerance relative to the initial residual (>= 0).
    maximum_iterations : int
        Iteration budget (> 0).
    monitor_level : int
        0 silent, 1 summary, 2 per iteration.
    monitor_diverge : bool
        Stop when the residual increases.
    """

    name = "linear_solver"

    def __init__(
        self,
        absolute_tolerance: float = 1e-12,
        relative_tolerance: float = 1e-10,
        maximum_iterations: int = 1000,
        monitor_level: int = 0,
        monitor_diverge: bool = True,
    ):
        self.set_tolerances(absolute_tolerance, relative_tolerance, maximum_iterations)
        self.monitor_level = int(monitor_level)
        self.monitor_diverge = bool(monitor_diverge)
        self.A: Optional[Matrix] = None
        self.P: Optional[Preconditioner] = None
        self.pc_side = PreconditionerSide.NONE

    def set_tolerances(self, absolute_tolerance, relative_tolerance, maximum_iterations):
        if absolute_tolerance < 0.0 or relative_tolerance < 0.0:
            raise InvalidArgumentError("Tolerances must be non-negative")
        if int(maximum_iterations) <= 0:
            raise InvalidArgumentError("maximum_iterations must be positive")
        self.absolute_tolerance = float(absolute_tolerance)
        self.relative_tolerance = float(relative_tolerance)
        self.maximum_iterations = int(maximum_iterations)

    def set_operators(self, A: Matrix, config=None):
        """Set the system matrix and build the configured preconditioner.

        Parameters
        ----------
        A : Matrix
            Square system operator.
        config : mapping, optional
            Recognized keys: ``pc_type`` (none|jacobi|ilu0) and
            ``pc_side`` (left|right).
        """
        if not isinstance(A, Matrix):
            raise InvalidArgumentError(f"Expected a Matrix operator, got {type(A).__name__}")
        if not A.is_square:
            raise InvalidArgumentError(f"{self.name} needs a square operator, got {A.shape}")
        self.A = A

        self.P = create_preconditioner(_option(config, "pc_type", "none"), A)
        if self.P is None:
            self.pc_side = PreconditionerSide.NONE
        else:
            side = str(_option(config, "pc_side", "left")).lower()
            try:
                self.pc_side = PreconditionerSide(side)
            except ValueError:
                raise InvalidArgumentError(f"Unknown pc_side: {side}") from None
            if self.pc_side is PreconditionerSide.NONE:
                self.P = None
        self._setup()

    def _setup(self):
        """Hook for scheme-specific setup after operators are set."""

    def solve(self, b, x) -> LinearSolveResult:
        """Solve A x = b.

        Parameters
        ----------
        b : np.ndarray
            Right-hand side.
        x : np.ndarray
            Initial guess; overwritten with the solution.

        Returns
        -------
        LinearSolveResult
            Status (SUCCESS, DIVERGE or MAX_ITERATION) and residual history.
        """
        if self.A is None:
            raise InvalidStateError(f"{self.name}: solve() called before set_operators()")
        n = self.A.number_rows
        b = np.asarray(b, dtype=np.float64)
        if b.shape != (n,) or np.shape(x) != (n,):
            raise InvalidArgumentError(
                f"{self.name}: expected vectors of length {n}, got b{b.shape} x{np.shape(x)}"
            )
        if not isinstance(x, np.ndarray) or x.dtype != np.float64:
            raise InvalidArgumentError(f"{self.name}: x must be a float64 numpy array (updated in place)")

        monitor = ConvergenceMonitor(
            self.absolute_tolerance,
            self.relative_tolerance,
            self.maximum_iterations,
            monitor_diverge=self.monitor_diverge,
            monitor_level=self.monitor_level,
            name=self.name,
        )
        self._solve_impl(b, x, monitor)
        return monitor.result()

    @abstractmethod
    def _solve_impl(self, b: np.ndarray, x: np.ndarray, monitor: ConvergenceMonitor):
        """Run the scheme, updating ``x`` in place and reporting to ``monitor``."""
        pass

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _residual(self, b, x):
        return b - self.A.apply(x)

    def _precondition(self, r):
        return r if self.P is None else self.P.apply(r)


# =============================================================================
# Richardson / Jacobi
# =============================================================================


class Richardson(LinearSolver):
    """Damped Richardson iteration x <- x + omega P (b - A x)."""

    name = "richardson"

    def __init__(self, omega: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        if omega <= 0.0:
            raise InvalidArgumentError("Richardson relaxation omega must be positive")
        self.omega = float(omega)

    def _solve_impl(self, b, x, monitor):
        r = self._residual(b, x)
        if monitor.init(norm(r)):
            return
        for iteration in range(1, self.maximum_iterations + 1):
            x += self.omega * self._precondition(r)
            r = self._residual(b, x)
            if monitor.check(iteration, norm(r)):
                break


class Jacobi(Richardson):
    """Jacobi iteration, i.e. Richardson with the inverse diagonal of A."""

    name = "jacobi"

    def _setup(self):
        # Jacobi always scales by the diagonal; an explicit pc replaces it.
        if self.P is None:
            self.P = create_preconditioner("jacobi", self.A)
            self.pc_side = PreconditionerSide.LEFT


# =============================================================================
# GMRES
# =============================================================================


class GMRES(LinearSolver):
    """Restarted GMRES(m) with left or right preconditioning.

    The monitored residual is the Arnoldi least-squares residual, i.e. the
    (left-preconditioned) residual norm without an extra matrix product.
    """

    name = "gmres"

    def __init__(self, restart: int = 30, **kwargs):
        super().__init__(**kwargs)
        if int(restart) <= 0:
            raise InvalidArgumentError("GMRES restart must be positive")
        self.restart = int(restart)

    def _operator(self, v):
        """Action of the (preconditioned) operator on a Krylov vector."""
        if self.pc_side is PreconditionerSide.RIGHT:
            return self.A.apply(self.P.apply(v))
        if self.pc_side is PreconditionerSide.LEFT:
            return self.P.apply(self.A.apply(v))
        return self.A.apply(v)

    def _start_residual(self, b, x):
        r = self._residual(b, x)
        if self.pc_side is PreconditionerSide.LEFT:
            r = self.P.apply(r)
        return r

    def _solve_impl(self, b, x, monitor):
        n = b.size
        r = self._start_residual(b, x)
        beta = norm(r)
        if monitor.init(beta):
            return

        iteration = 0
        m = min(self.restart, n)
        while not monitor.done:
            V = np.zeros((n, m + 1))
            H = np.zeros((m + 1, m))
            cs = np.zeros(m)
            sn = np.zeros(m)
            g = np.zeros(m + 1)
            g[0] = beta
            V[:, 0] = r / beta

            k_used = 0
            for k in range(m):
                iteration += 1
                w = self._operator(V[:, k])

                # Modified Gram-Schmidt
                for j in range(k + 1):
                    H[j, k] = np.dot(w, V[:, j])
                    w -= H[j, k] * V[:, j]
                H[k + 1, k] = norm(w)
                breakdown = H[k + 1, k] <= 1e-14 * max(abs(H[k, k]), 1.0)
                if not breakdown:
                    V[:, k + 1] = w / H[k + 1, k]

                # Apply previous rotations, then annihilate H[k+1, k]
                for j in range(k):
                    temp = cs[j] * H[j, k] + sn[j] * H[j + 1, k]
                    H[j + 1, k] = -sn[j] * H[j, k] + cs[j] * H[j + 1, k]
                    H[j, k] = temp
                denom = np.hypot(H[k, k], H[k + 1, k])
                if denom == 0.0:
                    cs[k], sn[k] = 1.0, 0.0
                else:
                    cs[k], sn[k] = H[k, k] / denom, H[k + 1, k] / denom
                H[k, k] = cs[k] * H[k, k] + sn[k] * H[k + 1, k]
                H[k + 1, k] = 0.0
                g[k + 1] = -sn[k] * g[k]
                g[k] = cs[k] * g[k]
                k_used = k + 1

                if monitor.check(iteration, abs(g[k + 1])) or breakdown:
                    break

            finite = np.all(np.isfinite(H[:k_used, :k_used])) and np.all(np.isfinite(g[:k_used]))
            if monitor.status is Status.DIVERGE or not finite:
                log.warning(f"{self.name}: non-finite Krylov basis at iteration {iteration}, stopping")
                monitor.stop(Status.DIVERGE)
                break
            if H[k_used - 1, k_used - 1] == 0.0:
                log.warning(f"{self.name}: singular Hessenberg matrix, stopping")
                monitor.stop(Status.DIVERGE)
                break

            y = solve_triangular(H[:k_used, :k_used], g[:k_used])
            dx = V[:, :k_used] @ y
            if self.pc_side is PreconditionerSide.RIGHT:
                dx = self.P.apply(dx)
            x += dx

            if monitor.done:
                break
            # Restart (or lucky breakdown short of tolerance)
            r = self._start_residual(b, x)
            beta = norm(r)
            if beta == 0.0:
                monitor.check(iteration, 0.0)
                break


# =============================================================================
# Factory Function
# =============================================================================


def create_linear_solver(config=None) -> LinearSolver:
    """Create a linear solver from configuration.

    Recognized keys: ``linear_solver`` (gmres|richardson|jacobi),
    ``linear_absolute_tolerance``, ``linear_relative_tolerance``,
    ``linear_max_iterations``, ``gmres_restart``, ``richardson_omega``,
    ``monitor_level``, ``monitor_diverge``.
    """
    kind = str(_option(config, "linear_solver", "gmres")).lower()
    common = dict(
        absolute_tolerance=float(_option(config, "linear_absolute_tolerance", 1e-12)),
        relative_tolerance=float(_option(config, "linear_relative_tolerance", 1e-10)),
        maximum_iterations=int(_option(config, "linear_max_iterations", 1000)),
        monitor_level=int(_option(config, "monitor_level", 0)),
        monitor_diverge=bool(_option(config, "monitor_diverge", True)),
    )
    if kind == "gmres":
        return GMRES(restart=int(_option(config, "gmres_restart", 30)), **common)
    if kind == "richardson":
        return Richardson(omega=float(_option(config, "richardson_omega", 1.0)), **common)
    if kind == "jacobi":
        return Jacobi(omega=float(_option(config, "richardson_omega", 1.0)), **common)
    raise InvalidArgumentError(f"Unknown linear solver: {kind}")


__all__ = [
    "LinearSolver",
    "Richardson",
    "Jacobi",
    "GMRES",
    "Status",
    "create_linear_solver",
]
