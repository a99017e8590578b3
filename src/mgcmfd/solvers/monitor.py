"""Convergence monitoring for iterative linear solves.

A fresh ConvergenceMonitor is created for every ``solve`` call and its
outcome is returned to the caller as a LinearSolveResult, so no solver keeps
status flags between solves.
"""

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List

import numpy as np
import pandas as pd

from ..exceptions import InvalidStateError

log = logging.getLogger(__name__)


class Status(Enum):
    """Terminal state of an iterative solve."""

    RUNNING = "running"
    SUCCESS = "success"
    DIVERGE = "diverge"
    MAX_ITERATION = "max_iteration"


@dataclass
class LinearSolveResult:
    """Outcome of one linear solve: status plus the residual history."""

    status: Status
    iterations: int
    residuals: List[float] = field(default_factory=list)
    solver: str = ""

    @property
    def converged(self) -> bool:
        return self.status is Status.SUCCESS

    @property
    def final_residual(self) -> float:
        return self.residuals[-1] if self.residuals else float("inf")

    def to_dataframe(self) -> pd.DataFrame:
        """Residual history with one row per iteration."""
        return pd.DataFrame(
            {"iteration": np.arange(len(self.residuals)), "residual": self.residuals}
        )

    def summary(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        d.pop("residuals")
        d["final_residual"] = self.final_residual
        return d


class ConvergenceMonitor:
    """Tracks residual norms and declares success, divergence or max iterations.

    Parameters
    ----------
    absolute_tolerance : float
        Residual below which the solve is converged.
    relative_tolerance : float
        Converged when the residual drops below ``relative_tolerance * r0``.
    maximum_iterations : int
        Iteration budget.
    monitor_diverge : bool
        Declare divergence when the residual grows between two iterations
        (checked from iteration 2 on).
    monitor_level : int
        0 silent, 1 summary, 2 per iteration.
    name : str
        Solver name used in diagnostics.
    """

    def __init__(
        self,
        absolute_tolerance: float,
        relative_tolerance: float,
        maximum_iterations: int,
        monitor_diverge: bool = True,
        monitor_level: int = 0,
        name: str = "solver",
    ):
        self.absolute_tolerance = absolute_tolerance
        self.relative_tolerance = relative_tolerance
        self.maximum_iterations = maximum_iterations
        self.monitor_diverge = monitor_diverge
        self.monitor_level = monitor_level
        self.name = name
        self.residuals: List[float] = []
        self.iterations = 0
        self.status = Status.RUNNING

    @property
    def initial_residual(self) -> float:
        return self.residuals[0] if self.residuals else float("nan")

    @property
    def done(self) -> bool:
        return self.status is not Status.RUNNING

    def init(self, r: float) -> bool:
        """Record the iteration-0 residual. Returns True when already terminal."""
        self.residuals = [float(r)]
        self.iterations = 0
        self.status = Status.RUNNING
        if self.monitor_level > 1:
            log.info(f"{self.name} iteration: {0:5d}    residual: {r:12.8e}")
        if r < self.absolute_tolerance or r == 0.0:
            self._finish(Status.SUCCESS)
            return True
        if not np.isfinite(r):
            self._finish(Status.DIVERGE)
            return True
        return False

    def check(self, iteration: int, r: float) -> bool:
        """Record the residual of ``iteration`` (>= 1). Returns True when terminal."""
        if not self.residuals:
            raise InvalidStateError("ConvergenceMonitor.check() called before init()")
        r = float(r)
        previous = self.residuals[-1]
        self.residuals.append(r)
        self.iterations = iteration
        if self.monitor_level > 1:
            log.info(f"{self.name} iteration: {iteration:5d}    residual: {r:12.8e}")

        if r < max(self.relative_tolerance * self.residuals[0], self.absolute_tolerance):
            self._finish(Status.SUCCESS)
        elif not np.isfinite(r):
            self._finish(Status.DIVERGE)
        elif self.monitor_diverge and iteration > 1 and r > previous:
            self._finish(Status.DIVERGE)
        elif iteration >= self.maximum_iterations:
            self._finish(Status.MAX_ITERATION)
        return self.done

    def stop(self, status: Status):
        """Force a terminal status, e.g. on a numerical breakdown."""
        if not self.done:
            self._finish(status)

    def _finish(self, status: Status):
        self.status = status
        if not self.monitor_level:
            return
        r = self.residuals[-1]
        if status is Status.SUCCESS:
            log.info(
                f"*** {self.name} converged in {self.iterations:5d} iterations "
                f"with a residual of {r:12.8e}"
            )
        elif status is Status.DIVERGE:
            log.warning(f"*** {self.name} diverged at iteration {self.iterations} (residual {r:12.8e})")
        else:
            log.warning(
                f"*** {self.name} reached the maximum of {self.maximum_iterations} iterations "
                f"with a residual of {r:12.8e}"
            )

    def result(self) -> LinearSolveResult:
        """Snapshot of the monitor as a result record."""
        status = self.status
        if status is Status.RUNNING:
            status = Status.MAX_ITERATION
        return LinearSolveResult(
            status=status,
            iterations=self.iterations,
            residuals=list(self.residuals),
            solver=self.name,
        )
