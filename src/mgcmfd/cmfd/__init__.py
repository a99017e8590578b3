"""Coarse-mesh finite-difference acceleration.

Pipeline:
---------
CurrentTally (filled by the sweep)
Homogenizer (fine material -> coarse material)
build_loss_operator / estimate_keff (coarse operators)
CMFDAccelerator (update: homogenize, build, solve, prolongate)
"""

from .acceleration import CMFDAccelerator, CMFDUpdateResult, DegeneratePolicy, prolongate
from .homogenize import Homogenizer
from .loss_operator import build_fission_operator, build_loss_operator, estimate_keff
from .tally import CurrentTally

__all__ = [
    "CMFDAccelerator",
    "CMFDUpdateResult",
    "CurrentTally",
    "DegeneratePolicy",
    "Homogenizer",
    "build_fission_operator",
    "build_loss_operator",
    "estimate_keff",
    "prolongate",
]
