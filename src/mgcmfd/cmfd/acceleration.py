"""Coarse-mesh finite-difference (CMFD) acceleration of the outer iteration.

One ``update`` runs Homogenize -> BuildOperator -> Solve -> Prolongate:

1. collapse the fine material with the current flux,
2. build the current-corrected coarse loss operator from the tally,
3. solve it for the coarse flux, starting from the restricted fine flux,
4. rescale every fine flux by the coarse ratio of its (group, coarse cell).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from ..boundary import SlabBoundary
from ..datastructures import GroupFluxField
from ..diffusion import SweepSource
from ..exceptions import DegenerateCellError, InvalidArgumentError
from ..material import Material
from ..mesh import CoarseMeshMapping, Mesh1D
from ..solvers.linear import LinearSolver, create_linear_solver
from ..solvers.monitor import LinearSolveResult, Status
from .homogenize import Homogenizer
from .loss_operator import build_loss_operator
from .tally import CurrentTally

log = logging.getLogger(__name__)


class DegeneratePolicy(Enum):
    """What prolongation does with a zero pre-correction coarse value."""

    SKIP = "skip"
    RAISE = "raise"


@dataclass
class CMFDUpdateResult:
    """Outcome of one CMFD update."""

    applied: bool
    linear: LinearSolveResult
    coarse_before: np.ndarray
    coarse_after: np.ndarray
    degenerate_cells: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def status(self) -> str:
        return self.linear.status.value


def prolongate(
    flux: GroupFluxField,
    mapping: CoarseMeshMapping,
    coarse_before: np.ndarray,
    coarse_after: np.ndarray,
    tolerance: float = 1e-12,
    policy=DegeneratePolicy.SKIP,
) -> List[Tuple[int, int]]:
    """Multiply every fine flux by ``coarse_after / coarse_before`` of its coarse cell.

    A (group, coarse cell) is degenerate when its pre-correction value is
    zero, at most ``tolerance`` times the largest magnitude of the same group,
    or gives a non-finite ratio. Degenerate cells keep their fine flux
    unchanged (``skip``) or abort the prolongation before any flux is touched
    (``raise``).

    Returns
    -------
    list of (group, coarse cell)
        The degenerate cells.
    """
    policy = DegeneratePolicy(getattr(policy, "value", policy))
    before = np.asarray(coarse_before, dtype=np.float64)
    after = np.asarray(coarse_after, dtype=np.float64)
    scale = np.max(np.abs(before), axis=-1, keepdims=True) if before.size else 0.0

    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = after / before
    degenerate = (before == 0.0) | (np.abs(before) <= tolerance * scale) | ~np.isfinite(ratio)
    cells = [(int(g), int(i)) for g, i in zip(*np.nonzero(degenerate))]

    if cells:
        if policy is DegeneratePolicy.RAISE:
            raise DegenerateCellError(cells)
        log.warning(f"CMFD: {len(cells)} degenerate coarse cell(s) left uncorrected: {cells[:10]}")
        ratio[degenerate] = 1.0

    flux.phi *= ratio[:, mapping.fine_to_coarse]
    return cells


class CMFDAccelerator:
    """Coarse-mesh correction of a multigroup flux field.

    Parameters
    ----------
    material : Material
        Fine-mesh material.
    mesh : Mesh1D
        Fine mesh.
    boundary : SlabBoundary
        Slab boundary conditions (shared with the fine sweep).
    mapping : CoarseMeshMapping
        Fine-to-coarse map.
    flux : GroupFluxField
        Flux corrected in place.
    source : SweepSource
        Provides the external source, keff and multiply/adjoint settings.
    tally : CurrentTally
        Filled by the within-group sweep, reset after each update.
    linear_solver : LinearSolver, optional
        Coarse solver; built from ``solver_config`` when omitted.
    solver_config : mapping, optional
        Linear solver and preconditioner options (``pc_type``, ``pc_side``...).
    degenerate_policy : str
        ``skip`` or ``raise``.
    degenerate_tolerance : float
        Relative threshold for a degenerate coarse value.
    """

    def __init__(
        self,
        material: Material,
        mesh: Mesh1D,
        boundary: SlabBoundary,
        mapping: CoarseMeshMapping,
        flux: GroupFluxField,
        source: SweepSource,
        tally: CurrentTally,
        linear_solver: Optional[LinearSolver] = None,
        solver_config=None,
        degenerate_policy="skip",
        degenerate_tolerance: float = 1e-12,
    ):
        if mapping.number_fine_cells != mesh.number_cells:
            raise InvalidArgumentError(
                f"Coarse mapping covers {mapping.number_fine_cells} cells, mesh has {mesh.number_cells}"
            )
        try:
            self.degenerate_policy = DegeneratePolicy(str(degenerate_policy).lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown degenerate cell policy: {degenerate_policy}") from None
        if degenerate_tolerance < 0.0:
            raise InvalidArgumentError("degenerate_tolerance must be non-negative")

        self.mesh = mesh
        self.boundary = boundary
        self.mapping = mapping
        self.flux = flux
        self.source = source
        self.tally = tally
        self.solver_config = solver_config
        self.linear_solver = linear_solver or create_linear_solver(solver_config)
        self.degenerate_tolerance = float(degenerate_tolerance)
        self.homogenizer = Homogenizer(material, mesh, mapping)
        self.number_updates = 0

    def update(self, keff: float = 1.0) -> CMFDUpdateResult:
        """Correct the flux field in place and consume the tally."""
        phi = self.flux.phi
        G, Nc = phi.shape[0], self.mapping.number_coarse_cells

        # Homogenize
        coarse_material = self.homogenizer.homogenize(phi)
        coarse_before = self.homogenizer.coarse_flux(phi)

        # Build operator
        A = build_loss_operator(
            coarse_material,
            self.mapping,
            self.boundary,
            coarse_phi=coarse_before,
            currents=self.tally.currents,
            keff=keff,
            multiply=self.source.multiply,
            adjoint=self.source.adjoint,
        )
        self.tally.reset()

        # Solve
        b = self.mapping.restrict(self.source.external_source).ravel()
        x = coarse_before.ravel().copy()
        self.linear_solver.set_operators(A, self.solver_config)
        linear = self.linear_solver.solve(b, x)
        coarse_after = x.reshape(G, Nc)
        self.number_updates += 1

        if linear.status is Status.DIVERGE:
            log.warning(
                f"CMFD: coarse solve diverged after {linear.iterations} iterations, correction skipped"
            )
            return CMFDUpdateResult(
                applied=False,
                linear=linear,
                coarse_before=coarse_before,
                coarse_after=coarse_after,
            )

        # Prolongate
        cells = prolongate(
            self.flux,
            self.mapping,
            coarse_before,
            coarse_after,
            tolerance=self.degenerate_tolerance,
            policy=self.degenerate_policy,
        )
        return CMFDUpdateResult(
            applied=True,
            linear=linear,
            coarse_before=coarse_before,
            coarse_after=coarse_after,
            degenerate_cells=cells,
        )
