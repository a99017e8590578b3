"""Vector norms.

Vectors are plain 1D float64 numpy arrays; this module only adds the norm
vocabulary shared by the linear solvers and the outer iteration.
"""

from enum import Enum

import numpy as np

from ..exceptions import InvalidArgumentError


class NormType(Enum):
    """Available vector norms."""

    L1 = "L1"
    L2 = "L2"
    LINF = "Linf"


def as_vector(values, size: int = None) -> np.ndarray:
    """Return ``values`` as a contiguous float64 vector (no copy if possible)."""
    x = np.ascontiguousarray(values, dtype=np.float64)
    if x.ndim != 1:
        x = x.ravel()
    if size is not None and x.size != size:
        raise InvalidArgumentError(f"Expected vector of length {size}, got {x.size}")
    return x


def norm(x: np.ndarray, kind="L2") -> float:
    """Compute the L1, L2 or L-infinity norm of ``x``."""
    try:
        kind = NormType(kind)
    except ValueError:
        raise InvalidArgumentError(f"Unknown norm type: {kind}") from None
    if x.size == 0:
        return 0.0
    if kind is NormType.L1:
        return float(np.sum(np.abs(x)))
    if kind is NormType.L2:
        return float(np.linalg.norm(x))
    return float(np.max(np.abs(x)))


def norm_residual(x: np.ndarray, y: np.ndarray, kind="L2") -> float:
    """Norm of the difference ``x - y``."""
    return norm(np.asarray(x) - np.asarray(y), kind)
