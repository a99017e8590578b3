"""Data structures for solver state and results.

Structure:
- GroupFluxField: multigroup scalar flux being iterated (mutated in place)
- Metrics: output results of an outer solve
- TimeSeries: convergence history (one row per outer iteration)
- OuterSolveResult: status + last flux + metrics + history, always returned
"""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import List, Optional

import numpy as np
import pandas as pd


# ========================================================
# State
# ========================================================


@dataclass
class GroupFluxField:
    """Scalar flux per energy group and fine cell, shape (G, N)."""

    phi: np.ndarray

    @classmethod
    def allocate(cls, number_groups: int, number_cells: int, value: float = 0.0):
        return cls(phi=np.full((number_groups, number_cells), float(value)))

    @property
    def number_groups(self) -> int:
        return self.phi.shape[0]

    @property
    def number_cells(self) -> int:
        return self.phi.shape[1]

    def group(self, g: int) -> np.ndarray:
        """View of the flux of group ``g`` (writes go to the field)."""
        return self.phi[g]

    def copy(self) -> "GroupFluxField":
        return GroupFluxField(phi=self.phi.copy())

    def to_dataframe(self) -> pd.DataFrame:
        """One row per cell, one column per group."""
        return pd.DataFrame({f"phi_g{g}": self.phi[g] for g in range(self.number_groups)})


# ========================================================
# Metrics (Output Results)
# ========================================================


class OuterStatus(Enum):
    """Terminal state of the multigroup outer iteration."""

    CONVERGED = "converged"
    DIVERGED = "diverged"
    MAX_ITERATIONS = "max_iterations_reached"


@dataclass
class Metrics:
    """Outer solver metrics - output results computed during/after solving."""

    iterations: int = 0
    sweeps: int = 0
    converged: bool = False
    status: str = ""
    final_residual: float = float("inf")
    wall_time_seconds: float = 0.0
    cmfd_updates: int = 0
    cmfd_linear_iterations: int = 0
    degenerate_cells: int = 0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])


# ========================================================
# Time Series (Convergence History)
# ========================================================


@dataclass
class TimeSeries:
    """Convergence history (one value per outer iteration)."""

    residual: List[float] = field(default_factory=list)
    group_residuals: List[List[float]] = field(default_factory=list)
    cmfd_status: List[Optional[str]] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per outer iteration."""
        df = pd.DataFrame({"residual": self.residual})
        if self.group_residuals:
            groups = np.asarray(self.group_residuals)
            for g in range(groups.shape[1]):
                df[f"residual_g{g}"] = groups[:, g]
        if self.cmfd_status:
            df["cmfd_status"] = self.cmfd_status
        return df


@dataclass
class OuterSolveResult:
    """Result of a multigroup outer solve; ``flux`` is the last iterate."""

    status: OuterStatus
    flux: GroupFluxField
    metrics: Metrics
    time_series: TimeSeries

    @property
    def converged(self) -> bool:
        return self.status is OuterStatus.CONVERGED
