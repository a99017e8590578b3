"""Dense eigenvalue solver for standard and generalized problems.

Computes the complete spectrum with a direct LAPACK reduction (QR for
A x = lambda x, QZ for A x = lambda B x) and selects the eigenpair with the
largest real eigenvalue part. Used for small criticality sub-problems such
as the coarse-mesh k-eigenvalue estimate.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.linalg

from ..exceptions import InvalidArgumentError, InvalidStateError
from ..linalg.matrix import MatrixDense

log = logging.getLogger(__name__)


@dataclass
class EigenDecomposition:
    """Complete spectrum of a (generalized) eigenproblem.

    Column ``i`` of ``vectors_real``/``vectors_imag`` is the eigenvector of
    eigenvalue ``values_real[i] + 1j * values_imag[i]``. For the generalized
    problem ``denominators`` holds the homogeneous scaling (beta) each raw
    eigenvalue was divided by; it is all ones for the standard problem.
    """

    values_real: np.ndarray
    values_imag: np.ndarray
    vectors_real: np.ndarray
    vectors_imag: np.ndarray
    denominators: np.ndarray

    @property
    def values(self) -> np.ndarray:
        return self.values_real + 1j * self.values_imag

    @property
    def size(self) -> int:
        return self.values_real.size


@dataclass
class EigenResult:
    """Dominant eigenpair (maximum real part) of the problem."""

    eigenvalue: float
    eigenvector: np.ndarray
    index: int
    decomposition: EigenDecomposition


class DenseEigenSolver:
    """Direct dense eigensolver.

    Parameters
    ----------
    tolerance : float
        Kept for interface parity with iterative eigensolvers.
    maximum_iterations : int
        Kept for interface parity with iterative eigensolvers.
    """

    name = "dense-eigen"

    def __init__(self, tolerance: float = 1e-10, maximum_iterations: int = 1000):
        self.tolerance = tolerance
        self.maximum_iterations = maximum_iterations
        self.A: Optional[MatrixDense] = None
        self.B: Optional[MatrixDense] = None
        self.eigenvalue: Optional[float] = None

    def set_operators(self, A, B=None):
        """Set A (and optionally B); both must be square dense matrices of equal size."""
        for label, M in (("A", A), ("B", B)):
            if label == "B" and M is None:
                continue
            if not isinstance(M, MatrixDense):
                raise InvalidArgumentError(
                    f"{self.name} needs a dense matrix for {label}, got {type(M).__name__}"
                )
            if not M.is_square:
                raise InvalidArgumentError(f"{self.name}: {label} must be square, got {M.shape}")
        if B is not None and B.shape != A.shape:
            raise InvalidArgumentError(f"{self.name}: A{A.shape} and B{B.shape} differ in size")
        self.A = A
        self.B = B

    @property
    def is_generalized(self) -> bool:
        return self.B is not None

    def solve_complete(self) -> EigenDecomposition:
        """Compute every eigenvalue and eigenvector.

        The operators are copied, so A and B are left untouched.
        """
        if self.A is None:
            raise InvalidStateError(f"{self.name}: solve_complete() called before set_operators()")
        a = self.A.array.copy()
        m = a.shape[0]

        if self.B is None:
            w, vr = scipy.linalg.eig(a, right=True)
            denominators = np.ones(m)
        else:
            b = self.B.array.copy()
            ab, vr = scipy.linalg.eig(a, b, right=True, homogeneous_eigvals=True)
            alpha, beta = ab[0], ab[1]
            denominators = np.real(beta)
            # Zero beta marks an infinite eigenvalue (singular B)
            with np.errstate(divide="ignore", invalid="ignore"):
                w = alpha / beta

        return EigenDecomposition(
            values_real=np.real(w).astype(np.float64),
            values_imag=np.imag(w).astype(np.float64),
            vectors_real=np.real(vr).astype(np.float64),
            vectors_imag=np.imag(vr).astype(np.float64),
            denominators=np.asarray(denominators, dtype=np.float64),
        )

    def solve(self, x: Optional[np.ndarray] = None) -> EigenResult:
        """Dominant eigenpair: maximum real part, first index on ties.

        Parameters
        ----------
        x : np.ndarray, optional
            Overwritten with the unit L2-norm eigenvector when given.
        """
        decomposition = self.solve_complete()
        real = np.where(np.isnan(decomposition.values_real), -np.inf, decomposition.values_real)
        index = int(np.argmax(real))
        eigenvalue = float(decomposition.values_real[index])

        vector = decomposition.vectors_real[:, index].copy()
        length = np.linalg.norm(vector)
        if length > 0.0:
            vector /= length
        else:
            log.warning(f"{self.name}: eigenvector {index} has no real part")
        if x is not None:
            x[:] = vector

        self.eigenvalue = eigenvalue
        return EigenResult(
            eigenvalue=eigenvalue,
            eigenvector=vector,
            index=index,
            decomposition=decomposition,
        )
