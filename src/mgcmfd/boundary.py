"""Boundary conditions for slab diffusion operators."""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .exceptions import InvalidArgumentError


class BoundaryType(Enum):
    """Supported slab boundary conditions."""

    REFLECT = "reflect"
    VACUUM = "vacuum"


@dataclass(frozen=True)
class SlabBoundary:
    """Left and right boundary conditions of a slab."""

    left: BoundaryType = BoundaryType.REFLECT
    right: BoundaryType = BoundaryType.REFLECT

    @classmethod
    def create(cls, left="reflect", right="reflect") -> "SlabBoundary":
        try:
            return cls(BoundaryType(str(getattr(left, "value", left)).lower()),
                       BoundaryType(str(getattr(right, "value", right)).lower()))
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown boundary type: {exc}") from None

    def side(self, index: int) -> BoundaryType:
        return self.left if index == 0 else self.right


def interface_coupling(d_left, h_left, d_right, h_right):
    """Finite-difference coupling 2 D_l D_r / (D_l h_r + D_r h_l) across a face."""
    return 2.0 * d_left * d_right / (d_left * h_right + d_right * h_left)


def boundary_coupling(diff_coef, width, kind: BoundaryType):
    """Coupling between a boundary cell and its outer face.

    Outgoing net current is ``coupling * phi_cell``: zero for reflection,
    ``2 D / (h + 4 D)`` for a Marshak vacuum condition.
    """
    if kind is BoundaryType.REFLECT:
        return np.zeros_like(np.asarray(diff_coef, dtype=np.float64))
    return 2.0 * diff_coef / (width + 4.0 * diff_coef)
