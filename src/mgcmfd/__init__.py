"""Coarse-mesh accelerated multigroup solver stack.

Solver Hierarchy:
-----------------
MultigroupOuterSolver (outer Gauss-Seidel iteration over groups)
├── WithinGroupSolver (one group in place)
│   └── DiffusionWGSolver (1-D slab finite differences)
└── CMFDAccelerator (homogenize, coarse solve, prolongate)
    └── LinearSolver (GMRES, Richardson, Jacobi + preconditioner)
"""

from .boundary import BoundaryType, SlabBoundary
from .cmfd import CMFDAccelerator, CurrentTally, Homogenizer, estimate_keff
from .config import SolverConfig, load_config
from .datastructures import GroupFluxField, Metrics, OuterSolveResult, OuterStatus, TimeSeries
from .diffusion import DiffusionWGSolver, SweepSource, WithinGroupSolver, assemble_multigroup_operator
from .exceptions import DegenerateCellError, InvalidArgumentError, InvalidStateError, SolverError
from .io import load_state, save_state
from .material import Material
from .mesh import CoarseMeshMapping, Mesh1D
from .outer_solver import MultigroupOuterSolver

__all__ = [
    # Problem definition
    "Material",
    "Mesh1D",
    "CoarseMeshMapping",
    "BoundaryType",
    "SlabBoundary",
    # Configuration
    "SolverConfig",
    "load_config",
    # Solvers
    "MultigroupOuterSolver",
    "WithinGroupSolver",
    "DiffusionWGSolver",
    "SweepSource",
    "assemble_multigroup_operator",
    "CMFDAccelerator",
    "CurrentTally",
    "Homogenizer",
    "estimate_keff",
    # Data structures
    "GroupFluxField",
    "Metrics",
    "TimeSeries",
    "OuterSolveResult",
    "OuterStatus",
    # Persistence
    "save_state",
    "load_state",
    # Errors
    "SolverError",
    "InvalidArgumentError",
    "InvalidStateError",
    "DegenerateCellError",
]
