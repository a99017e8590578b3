"""Matrix and vector abstraction.

Matrix Hierarchy:
-----------------
Matrix (abstract base - apply / transpose_apply)
├── MatrixDense (element access)
├── MatrixSparse (insert, assemble to CSR)
└── MatrixShell (matrix-free, caller-supplied action)
"""

from .matrix import Matrix, MatrixDense, MatrixShell, MatrixSparse
from .preconditioners import (
    PCILU0,
    PCJacobi,
    Preconditioner,
    PreconditionerSide,
    PreconditionerType,
    create_preconditioner,
)
from .vector import NormType, as_vector, norm, norm_residual

__all__ = [
    # Matrices
    "Matrix",
    "MatrixDense",
    "MatrixSparse",
    "MatrixShell",
    # Preconditioners
    "Preconditioner",
    "PCJacobi",
    "PCILU0",
    "PreconditionerType",
    "PreconditionerSide",
    "create_preconditioner",
    # Vectors
    "NormType",
    "as_vector",
    "norm",
    "norm_residual",
]
