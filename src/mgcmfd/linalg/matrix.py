"""Matrix operators for the solver stack.

All variants share one contract: ``apply(x)`` returns ``y = M x`` and
``transpose_apply(x)`` returns ``y = M^T x``. Row and column counts are fixed
at construction.

Variants
--------
MatrixDense
    Full storage with element access (``get``/``set``). Required by the
    dense eigensolver.
MatrixSparse
    Triplet insertion followed by ``assemble()`` into scipy CSR storage.
MatrixShell
    Matrix-free operator defined by a caller-supplied closure, e.g. a
    sweep-based transport operator.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix, issparse
from scipy.sparse.linalg import LinearOperator

from ..exceptions import InvalidArgumentError, InvalidStateError
from .vector import as_vector


# =============================================================================
# Abstract Base Class
# =============================================================================


class Matrix(ABC):
    """Abstract linear operator of fixed shape."""

    def __init__(self, number_rows: int, number_columns: int):
        m, n = int(number_rows), int(number_columns)
        if m <= 0 or n <= 0:
            raise InvalidArgumentError(f"Matrix dimensions must be positive, got ({m}, {n})")
        self._shape = (m, n)

    @property
    def shape(self):
        return self._shape

    @property
    def number_rows(self) -> int:
        return self._shape[0]

    @property
    def number_columns(self) -> int:
        return self._shape[1]

    @property
    def is_square(self) -> bool:
        return self._shape[0] == self._shape[1]

    def apply(self, x) -> np.ndarray:
        """Compute y = M x."""
        x = as_vector(x, self.number_columns)
        return self._apply(x)

    def transpose_apply(self, x) -> np.ndarray:
        """Compute y = M^T x."""
        x = as_vector(x, self.number_rows)
        return self._transpose_apply(x)

    def __matmul__(self, x):
        return self.apply(x)

    @abstractmethod
    def _apply(self, x: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def _transpose_apply(self, x: np.ndarray) -> np.ndarray:
        pass

    def diagonal(self) -> np.ndarray:
        """Main diagonal; only available for explicitly stored matrices."""
        raise InvalidArgumentError(f"{type(self).__name__} has no explicit diagonal")

    def to_csr(self) -> csr_matrix:
        """CSR copy of the operator; only available for explicitly stored matrices."""
        raise InvalidArgumentError(f"{type(self).__name__} has no explicit storage")

    def as_linear_operator(self) -> LinearOperator:
        """View as a scipy LinearOperator."""
        return LinearOperator(
            self.shape,
            matvec=self.apply,
            rmatvec=self.transpose_apply,
            dtype=np.float64,
        )

    def __repr__(self):
        return f"{type(self).__name__}({self.number_rows}x{self.number_columns})"


# =============================================================================
# Dense
# =============================================================================


class MatrixDense(Matrix):
    """Dense matrix with direct element access.

    Parameters
    ----------
    data : array_like or tuple
        Either a 2D array (copied) or a ``(rows, columns)`` shape, in which
        case the matrix is filled with ``value``.
    value : float
        Fill value when ``data`` is a shape.
    """

    def __init__(self, data, value: float = 0.0):
        if isinstance(data, tuple) and len(data) == 2 and all(np.isscalar(d) for d in data):
            array = np.full(data, float(value), dtype=np.float64)
        else:
            array = np.array(data, dtype=np.float64)
            if array.ndim != 2:
                raise InvalidArgumentError(f"Dense matrix data must be 2D, got ndim={array.ndim}")
        super().__init__(*array.shape)
        self._array = array

    @classmethod
    def from_matrix(cls, matrix: Matrix) -> "MatrixDense":
        """Materialize any explicitly stored matrix as dense."""
        if isinstance(matrix, MatrixDense):
            return cls(matrix.array)
        return cls(matrix.to_csr().toarray())

    @property
    def array(self) -> np.ndarray:
        """Underlying storage (a view; mutations change the matrix)."""
        return self._array

    def get(self, i: int, j: int) -> float:
        return float(self._array[i, j])

    def set(self, i: int, j: int, value: float):
        self._array[i, j] = value

    def __getitem__(self, index):
        return self._array[index]

    def __setitem__(self, index, value):
        self._array[index] = value

    def _apply(self, x):
        return self._array @ x

    def _transpose_apply(self, x):
        return self._array.T @ x

    def diagonal(self):
        return np.diag(self._array).copy()

    def to_csr(self):
        return csr_matrix(self._array)

    def copy(self) -> "MatrixDense":
        return MatrixDense(self._array)


# =============================================================================
# Sparse
# =============================================================================


class MatrixSparse(Matrix):
    """Sparse matrix assembled from (row, column, value) triplets.

    Entries are collected with ``insert`` (repeated entries are summed) and
    converted to CSR by ``assemble``. A scipy sparse matrix can also be
    wrapped directly.
    """

    def __init__(self, number_rows: int, number_columns: int = None, data=None):
        if number_columns is None:
            number_columns = number_rows
        super().__init__(number_rows, number_columns)
        self._rows = []
        self._cols = []
        self._vals = []
        self._csr: Optional[csr_matrix] = None
        if data is not None:
            if not issparse(data):
                data = csr_matrix(np.asarray(data, dtype=np.float64))
            if data.shape != self.shape:
                raise InvalidArgumentError(f"Sparse data shape {data.shape} != {self.shape}")
            self._csr = csr_matrix(data, dtype=np.float64)
            self._csr.sum_duplicates()
            self._csr.sort_indices()

    @classmethod
    def from_scipy(cls, data) -> "MatrixSparse":
        return cls(data.shape[0], data.shape[1], data=data)

    @property
    def is_assembled(self) -> bool:
        return self._csr is not None

    def insert(self, i: int, j: int, value: float):
        """Add ``value`` to entry (i, j); must be called before ``assemble``."""
        if self._csr is not None:
            raise InvalidStateError("Cannot insert into an assembled sparse matrix")
        m, n = self.shape
        if not (0 <= i < m and 0 <= j < n):
            raise InvalidArgumentError(f"Index ({i}, {j}) out of range for shape {self.shape}")
        self._rows.append(i)
        self._cols.append(j)
        self._vals.append(float(value))

    def assemble(self) -> "MatrixSparse":
        """Convert inserted triplets to CSR storage."""
        if self._csr is None:
            coo = coo_matrix(
                (self._vals, (self._rows, self._cols)), shape=self.shape, dtype=np.float64
            )
            self._csr = coo.tocsr()
            self._csr.sum_duplicates()
            self._csr.sort_indices()
            self._rows, self._cols, self._vals = [], [], []
        return self

    @property
    def csr(self) -> csr_matrix:
        if self._csr is None:
            raise InvalidStateError("Sparse matrix used before assemble()")
        return self._csr

    @property
    def number_nonzeros(self) -> int:
        return self.csr.nnz

    def get(self, i: int, j: int) -> float:
        return float(self.csr[i, j])

    def _apply(self, x):
        return self.csr @ x

    def _transpose_apply(self, x):
        return self.csr.T @ x

    def diagonal(self):
        return self.csr.diagonal()

    def to_csr(self):
        return self.csr.copy()


# =============================================================================
# Shell (matrix-free)
# =============================================================================


class MatrixShell(Matrix):
    """Matrix-free operator backed by a closure.

    Parameters
    ----------
    number_rows, number_columns : int
        Operator shape.
    multiply : callable
        ``multiply(x) -> y`` computing the action of the operator.
    transpose_multiply : callable, optional
        ``transpose_multiply(x) -> y`` computing the transpose action.
    """

    def __init__(
        self,
        number_rows: int,
        number_columns: int,
        multiply: Callable[[np.ndarray], np.ndarray],
        transpose_multiply: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    ):
        super().__init__(number_rows, number_columns)
        if not callable(multiply):
            raise InvalidArgumentError("Shell matrix requires a callable multiply")
        self._multiply = multiply
        self._transpose_multiply = transpose_multiply

    def _apply(self, x):
        y = as_vector(self._multiply(x))
        if y.size != self.number_rows:
            raise InvalidStateError(
                f"Shell multiply returned {y.size} entries, expected {self.number_rows}"
            )
        return y

    def _transpose_apply(self, x):
        if self._transpose_multiply is None:
            raise InvalidStateError("Shell matrix has no transpose action")
        return as_vector(self._transpose_multiply(x), self.number_columns)
