"""Coarse-mesh multigroup diffusion operators.

Unknowns are ordered group-major, ``row = g * Nc + I``, and every row is a
balance per unit coarse volume:

    leakage / H_I + sigma_r Phi_g - sum_g' sigma_s(g <- g') Phi_g'
        - chi_g / k sum_g' nu sigma_f_g' Phi_g' = q_g

The net current on a coarse face is the diffusion term plus the current
correction ``Dh``, chosen so that the coarse operator reproduces the
currents tallied by the fine-mesh sweep:

    J = -Dt (Phi_R - Phi_L) + Dh (Phi_R + Phi_L)
"""

import logging

import numpy as np

from ..boundary import SlabBoundary, boundary_coupling, interface_coupling
from ..linalg.matrix import MatrixDense, MatrixSparse
from ..material import Material
from ..mesh import CoarseMeshMapping
from ..solvers.eigen import DenseEigenSolver, EigenResult

log = logging.getLogger(__name__)


def coarse_couplings(material: Material, mapping: CoarseMeshMapping, boundary: SlabBoundary, g: int):
    """Diffusion coupling ``Dt`` of every coarse face (boundaries included)."""
    H = mapping.coarse_volumes
    D = material.diff_coef[:, g]
    dt = np.empty(mapping.number_coarse_faces)
    dt[1:-1] = interface_coupling(D[:-1], H[:-1], D[1:], H[1:])
    dt[0] = boundary_coupling(D[0], H[0], boundary.left)
    dt[-1] = boundary_coupling(D[-1], H[-1], boundary.right)
    return dt


def current_corrections(dt: np.ndarray, phi: np.ndarray, current: np.ndarray) -> np.ndarray:
    """Correction coefficient ``Dh`` on every coarse face of one group.

    Faces whose neighbouring coarse fluxes vanish get no correction.
    """
    dh = np.zeros(dt.size)
    with np.errstate(divide="ignore", invalid="ignore"):
        total = phi[1:] + phi[:-1]
        interior = (current[1:-1] + dt[1:-1] * (phi[1:] - phi[:-1])) / total
        dh[1:-1] = np.where(total != 0.0, interior, 0.0)
        if phi[0] != 0.0:
            dh[0] = (current[0] + dt[0] * phi[0]) / phi[0]
        if phi[-1] != 0.0:
            dh[-1] = (current[-1] - dt[-1] * phi[-1]) / phi[-1]
    return dh


def _energy_coupling(material: Material, adjoint: bool):
    """Scatter (Nc, g, g') and fission spectrum/production pair for the direction."""
    scatter = material.sigma_s
    chi, production = material.chi, material.nu_sigma_f
    if adjoint:
        scatter = np.swapaxes(scatter, 1, 2)
        chi, production = production, chi
    return scatter, chi, production


def _loss_entries(
    material: Material,
    mapping: CoarseMeshMapping,
    boundary: SlabBoundary,
    coarse_phi=None,
    currents=None,
    keff: float = 1.0,
    multiply: bool = False,
    adjoint: bool = False,
):
    G, Nc = material.number_groups, mapping.number_coarse_cells
    H = mapping.coarse_volumes
    scatter, chi, production = _energy_coupling(material, adjoint)
    sigma_r = material.sigma_r

    for g in range(G):
        dt = coarse_couplings(material, mapping, boundary, g)
        if currents is None or coarse_phi is None:
            dh = np.zeros(dt.size)
        else:
            dh = current_corrections(dt, coarse_phi[g], currents[g])

        for I in range(Nc):
            row = g * Nc + I
            left, right = I, I + 1
            yield row, row, sigma_r[I, g] + (dt[left] - dh[left] + dt[right] + dh[right]) / H[I]
            if I > 0:
                yield row, row - 1, (-dt[left] - dh[left]) / H[I]
            if I < Nc - 1:
                yield row, row + 1, (-dt[right] + dh[right]) / H[I]

            for gp in range(G):
                value = 0.0
                if gp != g:
                    value -= scatter[I, g, gp]
                if multiply:
                    value -= chi[I, g] * production[I, gp] / keff
                if value != 0.0:
                    yield row, gp * Nc + I, value


def build_loss_operator(
    material: Material,
    mapping: CoarseMeshMapping,
    boundary: SlabBoundary,
    coarse_phi=None,
    currents=None,
    keff: float = 1.0,
    multiply: bool = False,
    adjoint: bool = False,
    dense: bool = False,
):
    """Assemble the coarse loss operator of size (G Nc)^2.

    Parameters
    ----------
    material : Material
        Homogenized material, one entry per coarse cell.
    mapping : CoarseMeshMapping
        Coarse mesh geometry.
    boundary : SlabBoundary
        Slab boundary conditions.
    coarse_phi : np.ndarray, optional
        Coarse flux (G, Nc) the current corrections are evaluated with.
    currents : np.ndarray, optional
        Tallied net currents (G, coarse faces). Without them (or without
        ``coarse_phi``) the operator is plain coarse-mesh diffusion.
    keff : float
        Eigenvalue dividing the fission term.
    multiply : bool
        Include the fission term.
    adjoint : bool
        Transpose the energy coupling.
    dense : bool
        Return a MatrixDense instead of an assembled MatrixSparse.
    """
    n = material.number_groups * mapping.number_coarse_cells
    entries = _loss_entries(material, mapping, boundary, coarse_phi, currents, keff, multiply, adjoint)
    if dense:
        A = MatrixDense((n, n))
        for i, j, value in entries:
            A[i, j] += value
        return A
    A = MatrixSparse(n, n)
    for i, j, value in entries:
        A.insert(i, j, value)
    return A.assemble()


def build_fission_operator(material: Material, mapping: CoarseMeshMapping, adjoint: bool = False) -> MatrixDense:
    """Dense coarse fission operator ``chi_g nu sigma_f_g'`` (per unit volume)."""
    G, Nc = material.number_groups, mapping.number_coarse_cells
    _, chi, production = _energy_coupling(material, adjoint)
    F = MatrixDense((G * Nc, G * Nc))
    for g in range(G):
        for gp in range(G):
            for I in range(Nc):
                F[g * Nc + I, gp * Nc + I] = chi[I, g] * production[I, gp]
    return F


def estimate_keff(
    material: Material,
    mapping: CoarseMeshMapping,
    boundary: SlabBoundary,
    coarse_phi=None,
    currents=None,
    adjoint: bool = False,
) -> EigenResult:
    """Coarse-mesh criticality estimate from ``F x = k M x``.

    The returned eigenvalue is k and the eigenvector the coarse fundamental
    mode (group-major, unit L2 norm).
    """
    M = build_loss_operator(
        material, mapping, boundary, coarse_phi, currents, multiply=False, adjoint=adjoint, dense=True
    )
    F = build_fission_operator(material, mapping, adjoint=adjoint)
    solver = DenseEigenSolver()
    solver.set_operators(F, M)
    result = solver.solve()
    log.debug(f"Coarse-mesh keff estimate: {result.eigenvalue:.8f}")
    return result
