"""Linear and eigenvalue solvers.

Solver Hierarchy:
-----------------
LinearSolver (abstract base - monitored iterative solve)
├── Richardson
│   └── Jacobi
└── GMRES
DenseEigenSolver (direct QR/QZ, dominant eigenpair)
"""

from .eigen import DenseEigenSolver, EigenDecomposition, EigenResult
from .linear import GMRES, Jacobi, LinearSolver, Richardson, create_linear_solver
from .monitor import ConvergenceMonitor, LinearSolveResult, Status

__all__ = [
    # Monitoring
    "ConvergenceMonitor",
    "LinearSolveResult",
    "Status",
    # Linear solvers
    "LinearSolver",
    "Richardson",
    "Jacobi",
    "GMRES",
    "create_linear_solver",
    # Eigen
    "DenseEigenSolver",
    "EigenDecomposition",
    "EigenResult",
]
