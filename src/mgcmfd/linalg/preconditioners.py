"""Preconditioners approximating the inverse of a system matrix.

Both preconditioners are built once from an explicitly stored matrix and
then expose ``apply(r) -> z`` with ``z ~ A^{-1} r``:

- PCJacobi: diagonal scaling.
- PCILU0: zero-fill incomplete LU factorization.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import numpy as np
from scipy.sparse import csr_matrix, tril, triu, identity
from scipy.sparse.linalg import spsolve_triangular

from ..exceptions import InvalidArgumentError
from .matrix import Matrix, MatrixShell


class PreconditionerType(Enum):
    """Available preconditioners."""

    NONE = "none"
    JACOBI = "jacobi"
    ILU0 = "ilu0"


class PreconditionerSide(Enum):
    """Where the preconditioner is applied relative to the operator."""

    NONE = "none"
    LEFT = "left"
    RIGHT = "right"


# =============================================================================
# Abstract Base Class
# =============================================================================


class Preconditioner(ABC):
    """Abstract preconditioner with a uniform ``apply`` contract."""

    name = "pc"

    def __init__(self, A: Matrix):
        if isinstance(A, MatrixShell):
            raise InvalidArgumentError(f"{self.name} needs an explicitly stored matrix")
        if not A.is_square:
            raise InvalidArgumentError(f"{self.name} needs a square matrix, got {A.shape}")
        self.size = A.number_rows

    @abstractmethod
    def apply(self, r: np.ndarray) -> np.ndarray:
        """Return z approximating A^{-1} r."""
        pass


# =============================================================================
# Jacobi
# =============================================================================


class PCJacobi(Preconditioner):
    """Diagonal (Jacobi) preconditioner."""

    name = "jacobi"

    def __init__(self, A: Matrix):
        super().__init__(A)
        diag = np.asarray(A.diagonal(), dtype=np.float64)
        zero = np.flatnonzero(diag == 0.0)
        if zero.size:
            raise InvalidArgumentError(f"Jacobi preconditioner: zero diagonal at rows {zero[:10].tolist()}")
        self._inverse_diagonal = 1.0 / diag

    def apply(self, r):
        return self._inverse_diagonal * r


# =============================================================================
# ILU(0)
# =============================================================================


class PCILU0(Preconditioner):
    """Incomplete LU factorization with zero fill-in.

    The factors keep the sparsity pattern of A. L has a unit diagonal and is
    stored without it; U holds the diagonal.
    """

    name = "ilu0"

    def __init__(self, A: Matrix):
        super().__init__(A)
        lu = self._factorize(A.to_csr())
        n = self.size
        self._L = (tril(lu, k=-1) + identity(n, format="csr")).tocsr()
        self._U = triu(lu).tocsr()

    @staticmethod
    def _factorize(a: csr_matrix) -> csr_matrix:
        """IKJ variant of ILU(0) on the CSR pattern of ``a``."""
        a = csr_matrix(a, dtype=np.float64, copy=True)
        a.sum_duplicates()
        a.sort_indices()
        indptr, indices, data = a.indptr, a.indices, a.data
        n = a.shape[0]

        # Position of the diagonal entry of each row
        diag_pos = np.full(n, -1, dtype=np.int64)
        for i in range(n):
            for p in range(indptr[i], indptr[i + 1]):
                if indices[p] == i:
                    diag_pos[i] = p
                    break
        missing = np.flatnonzero(diag_pos < 0)
        if missing.size:
            raise InvalidArgumentError(f"ILU0: structurally zero diagonal at rows {missing[:10].tolist()}")

        for i in range(1, n):
            row = {indices[p]: p for p in range(indptr[i], indptr[i + 1])}
            for p in range(indptr[i], diag_pos[i]):
                k = indices[p]
                pivot = data[diag_pos[k]]
                if pivot == 0.0:
                    raise InvalidArgumentError(f"ILU0: zero pivot at row {k}")
                data[p] /= pivot
                # Update only entries already present in row i
                for q in range(diag_pos[k] + 1, indptr[k + 1]):
                    target = row.get(indices[q])
                    if target is not None:
                        data[target] -= data[p] * data[q]
        if np.any(data[diag_pos] == 0.0):
            raise InvalidArgumentError("ILU0: zero pivot in U")
        return a

    def apply(self, r):
        y = spsolve_triangular(self._L, r, lower=True, unit_diagonal=True)
        return spsolve_triangular(self._U, y, lower=False)


# =============================================================================
# Factory Function
# =============================================================================


def create_preconditioner(pc_type, A: Matrix) -> Optional[Preconditioner]:
    """Create a preconditioner from configuration.

    Parameters
    ----------
    pc_type : str or PreconditionerType
        "none", "jacobi" or "ilu0"
    A : Matrix
        System matrix

    Returns
    -------
    Preconditioner or None
        None when ``pc_type`` is "none".
    """
    try:
        pc_type = PreconditionerType(str(getattr(pc_type, "value", pc_type)).lower())
    except ValueError:
        raise InvalidArgumentError(f"Unknown preconditioner type: {pc_type}") from None

    if pc_type is PreconditionerType.NONE:
        return None
    if pc_type is PreconditionerType.JACOBI:
        return PCJacobi(A)
    return PCILU0(A)
