"""Within-group solvers for the multigroup outer iteration.

Solver Hierarchy:
-----------------
WithinGroupSolver (abstract base - solve one group in place)
└── DiffusionWGSolver (1-D slab, cell-centred finite differences)

SweepSource assembles the right-hand side of a group solve: the external
source plus the in-scatter and fission contributions of the other groups,
evaluated with the current multigroup flux (Gauss-Seidel in energy).
"""

import logging
from abc import ABC, abstractmethod

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import splu

from .boundary import SlabBoundary, boundary_coupling, interface_coupling
from .datastructures import GroupFluxField
from .exceptions import InvalidArgumentError
from .material import Material
from .mesh import Mesh1D

log = logging.getLogger(__name__)


# =============================================================================
# Sweep source
# =============================================================================


class SweepSource:
    """Per-group source builder, all terms per unit volume.

    Parameters
    ----------
    material : Material
        Cross sections, indexed through ``mesh.material_map``.
    mesh : Mesh1D
        Fine mesh.
    flux : GroupFluxField
        Current multigroup flux (read, never written).
    external_source : np.ndarray, optional
        Fixed source of shape (G, N); zero if omitted.
    keff : float
        Eigenvalue dividing the fission source.
    multiply : bool
        Include the fission source.
    adjoint : bool
        Use the transposed energy coupling.
    """

    def __init__(
        self,
        material: Material,
        mesh: Mesh1D,
        flux: GroupFluxField,
        external_source=None,
        keff: float = 1.0,
        multiply: bool = False,
        adjoint: bool = False,
    ):
        G, N = material.number_groups, mesh.number_cells
        if np.max(mesh.material_map) >= material.number_materials:
            raise InvalidArgumentError(
                f"Mesh references material {np.max(mesh.material_map)}, "
                f"only {material.number_materials} defined"
            )
        if flux.phi.shape != (G, N):
            raise InvalidArgumentError(f"Flux shape {flux.phi.shape} does not match {(G, N)}")
        if external_source is None:
            external_source = np.zeros((G, N))
        external_source = np.asarray(external_source, dtype=np.float64)
        if external_source.shape != (G, N):
            raise InvalidArgumentError(
                f"External source must have shape {(G, N)}, got {external_source.shape}"
            )
        self.material = material
        self.mesh = mesh
        self.flux = flux
        self.external_source = external_source
        self.multiply = bool(multiply)
        self.adjoint = bool(adjoint)
        self.set_keff(keff)

        # Cell-wise cross sections, (G, N) and (G, G, N)
        mat = mesh.material_map
        self._scatter = np.moveaxis(material.sigma_s[mat], 0, -1)
        self._nu_sigma_f = material.nu_sigma_f[mat].T
        self._chi = material.chi[mat].T
        if self.adjoint:
            self._scatter = np.swapaxes(self._scatter, 0, 1)
            self._nu_sigma_f, self._chi = self._chi, self._nu_sigma_f

    def set_keff(self, keff: float):
        if keff <= 0.0:
            raise InvalidArgumentError(f"keff must be positive, got {keff}")
        self.keff = float(keff)

    @property
    def number_groups(self) -> int:
        return self.material.number_groups

    def build_fixed(self, g: int) -> np.ndarray:
        """External source of group ``g``."""
        return self.external_source[g].copy()

    def build_in_scatter(self, g: int) -> np.ndarray:
        """Scattering into ``g`` from every other group."""
        coupling = self._scatter[g] * self.flux.phi
        return coupling.sum(axis=0) - coupling[g]

    def build_fission(self, g: int) -> np.ndarray:
        """Fission source of group ``g`` divided by keff (zero unless multiplying)."""
        if not self.multiply:
            return np.zeros(self.mesh.number_cells)
        production = np.sum(self._nu_sigma_f * self.flux.phi, axis=0)
        return self._chi[g] * production / self.keff

    def build_fixed_with_scatter(self, g: int) -> np.ndarray:
        """Complete right-hand side (per unit volume) of the group-``g`` solve."""
        return self.build_fixed(g) + self.build_in_scatter(g) + self.build_fission(g)


# =============================================================================
# Within-group solvers
# =============================================================================


class WithinGroupSolver(ABC):
    """Solves a single energy group with the cross-group sources held fixed."""

    def __init__(self, flux: GroupFluxField, source: SweepSource):
        self.flux = flux
        self.source = source
        self.number_sweeps = 0
        self.tally = None

    @abstractmethod
    def solve(self, g: int):
        """Update ``flux.group(g)`` in place."""
        pass

    def get_sweep_source(self) -> SweepSource:
        return self.source

    def set_tally(self, tally):
        """Attach a coarse-face current tally; ignored by solvers without currents."""
        self.tally = tally


class DiffusionWGSolver(WithinGroupSolver):
    """Finite-difference diffusion solve of one group on a 1-D slab.

    Each cell balance reads (volume integrated)

        (Dt_l + Dt_r + sigma_r h) phi_i - Dt_l phi_{i-1} - Dt_r phi_{i+1} = Q_i h

    with harmonic face couplings ``Dt`` and Marshak or reflective boundaries.
    The per-group matrices are LU factorized once at construction.

    Parameters
    ----------
    mesh : Mesh1D
    material : Material
    boundary : SlabBoundary
    flux : GroupFluxField
    source : SweepSource
    tally : CurrentTally, optional
        Receives the net current on every coarse face after each group solve.
    """

    def __init__(
        self,
        mesh: Mesh1D,
        material: Material,
        boundary: SlabBoundary,
        flux: GroupFluxField,
        source: SweepSource,
        tally=None,
    ):
        super().__init__(flux, source)
        if mesh.number_cells != flux.number_cells:
            raise InvalidArgumentError(
                f"Flux has {flux.number_cells} cells, mesh has {mesh.number_cells}"
            )
        self.mesh = mesh
        self.material = material
        self.boundary = boundary
        self.tally = tally

        G = material.number_groups
        self.couplings = [face_couplings(mesh, material, boundary, g) for g in range(G)]
        self._lu = [splu(self._group_matrix(g).tocsc()) for g in range(G)]

    def _group_matrix(self, g: int) -> sp.csr_matrix:
        h = self.mesh.widths
        sigma_r = self.material.sigma_r[self.mesh.material_map, g]
        return within_group_matrix(self.couplings[g], sigma_r * h)

    def solve(self, g: int):
        q = self.source.build_fixed_with_scatter(g)
        phi = self._lu[g].solve(q * self.mesh.widths)
        self.flux.phi[g, :] = phi
        self.number_sweeps += 1
        if self.tally is not None:
            self.tally.reset(g)
            self.tally.accumulate_fine_faces(g, self.face_currents(g))

    def face_currents(self, g: int) -> np.ndarray:
        """Net current (towards +x) on every fine face of group ``g``."""
        return net_currents(self.couplings[g], self.flux.phi[g])


# =============================================================================
# Finite-difference helpers
# =============================================================================


def face_couplings(mesh: Mesh1D, material: Material, boundary: SlabBoundary, g: int) -> np.ndarray:
    """Coupling coefficient of every fine face, length N + 1 (boundaries included)."""
    h = mesh.widths
    D = material.diff_coef[mesh.material_map, g]
    dt = np.empty(mesh.number_cells + 1)
    dt[1:-1] = interface_coupling(D[:-1], h[:-1], D[1:], h[1:])
    dt[0] = boundary_coupling(D[0], h[0], boundary.left)
    dt[-1] = boundary_coupling(D[-1], h[-1], boundary.right)
    return dt


def within_group_matrix(dt: np.ndarray, removal: np.ndarray) -> sp.csr_matrix:
    """Tridiagonal loss matrix from face couplings and volume-integrated removal."""
    diagonal = dt[:-1] + dt[1:] + removal
    off = -dt[1:-1]
    n = diagonal.size
    return sp.diags([off, diagonal, off], [-1, 0, 1], shape=(n, n), format="csr")


def net_currents(dt: np.ndarray, phi: np.ndarray) -> np.ndarray:
    J = np.empty(dt.size)
    J[1:-1] = -dt[1:-1] * np.diff(phi)
    J[0] = -dt[0] * phi[0]
    J[-1] = dt[-1] * phi[-1]
    return J


def assemble_multigroup_operator(
    mesh: Mesh1D,
    material: Material,
    boundary: SlabBoundary,
    keff: float = 1.0,
    multiply: bool = False,
    adjoint: bool = False,
) -> sp.csr_matrix:
    """Full fine-mesh multigroup loss operator, rows ``g * N + i``, per unit volume.

    Used for reference (direct) solves of the system the outer iteration
    converges to.
    """
    G, N = material.number_groups, mesh.number_cells
    h = mesh.widths
    mat = mesh.material_map
    scatter = material.sigma_s[mat]
    nu_sigma_f = material.nu_sigma_f[mat]
    chi = material.chi[mat]

    blocks = [[None] * G for _ in range(G)]
    for g in range(G):
        dt = face_couplings(mesh, material, boundary, g)
        diagonal = within_group_matrix(dt, material.sigma_r[mat, g] * h)
        blocks[g][g] = sp.diags(1.0 / h) @ diagonal
    for g in range(G):
        for gp in range(G):
            src_g, dst_g = (gp, g) if not adjoint else (g, gp)
            coupling = np.zeros(N)
            if g != gp:
                coupling -= scatter[:, dst_g, src_g]
            if multiply:
                coupling -= chi[:, dst_g] * nu_sigma_f[:, src_g] / keff
            if np.any(coupling):
                block = sp.diags(coupling)
                blocks[g][gp] = block if blocks[g][gp] is None else blocks[g][gp] + block
    return sp.bmat(blocks, format="csr")
