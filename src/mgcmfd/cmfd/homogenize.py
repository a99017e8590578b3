"""Flux-weighted homogenization of fine-mesh cross sections onto the coarse mesh."""

import logging

import numpy as np

from ..material import Material
from ..mesh import CoarseMeshMapping, Mesh1D

log = logging.getLogger(__name__)


class Homogenizer:
    """Collapse a fine-mesh material onto a CoarseMeshMapping.

    The coarse material has one entry per coarse cell, so coarse cell ``I``
    uses material ``I``. Weights are the fine flux times volume:

    - sigma_t, sigma_a, sigma_f and D use the flux of their own group,
    - sigma_s(g <- g') and nu sigma_f use the flux of the source group g',
    - chi uses the fission production of the fine cells,

    so the reaction rates of every coarse cell are preserved. A coarse cell
    carrying no flux (or no production, for chi) is volume weighted.
    """

    def __init__(self, material: Material, mesh: Mesh1D, mapping: CoarseMeshMapping):
        self.material = material
        self.mesh = mesh
        self.mapping = mapping

    def _sum(self, values: np.ndarray) -> np.ndarray:
        """Sum over the fine cells of each coarse cell, along the last axis."""
        values = np.asarray(values)
        nc = self.mapping.number_coarse_cells
        flat = values.reshape(-1, values.shape[-1])
        out = np.stack(
            [np.bincount(self.mapping.fine_to_coarse, weights=row, minlength=nc) for row in flat]
        )
        return out.reshape(values.shape[:-1] + (nc,))

    def _weights(self, phi: np.ndarray) -> np.ndarray:
        """Flux-volume weights (G, N) with volume weighting in empty coarse cells."""
        h = self.mesh.volumes
        weights = phi * h
        empty = self._sum(weights) == 0.0
        fallback = empty[:, self.mapping.fine_to_coarse]
        if np.any(fallback):
            weights = np.where(fallback, h, weights)
        return weights

    def _average(self, values: np.ndarray, weights: np.ndarray) -> np.ndarray:
        return self._sum(values * weights) / self._sum(weights)

    def homogenize(self, phi: np.ndarray) -> Material:
        """Coarse material for the fine flux ``phi`` of shape (G, N)."""
        phi = np.asarray(phi, dtype=np.float64)
        mat = self.mesh.material_map
        m = self.material
        w = self._weights(phi)

        sigma_t = self._average(m.sigma_t[mat].T, w).T
        sigma_a = self._average(m.sigma_a[mat].T, w).T
        sigma_f = self._average(m.sigma_f[mat].T, w).T
        diff_coef = self._average(m.diff_coef[mat].T, w).T

        # (g, g', N) weighted by the g' flux
        scatter = np.moveaxis(m.sigma_s[mat], 0, -1)
        sigma_s = self._average(scatter, w[np.newaxis])
        sigma_s = np.moveaxis(sigma_s, -1, 0)

        nu_sigma_f = self._average(m.nu_sigma_f[mat].T, w).T
        with np.errstate(divide="ignore", invalid="ignore"):
            nu = np.where(sigma_f > 0.0, nu_sigma_f / sigma_f, 0.0)

        production = np.sum(m.nu_sigma_f[mat].T * phi, axis=0) * self.mesh.volumes
        coarse_production = self._sum(production)
        production = np.where(
            (coarse_production == 0.0)[self.mapping.fine_to_coarse], self.mesh.volumes, production
        )
        chi = self._average(m.chi[mat].T, production[np.newaxis]).T

        return Material(
            sigma_t=sigma_t,
            sigma_s=sigma_s,
            sigma_f=sigma_f,
            nu=nu,
            chi=chi,
            sigma_a=sigma_a,
            diff_coef=diff_coef,
        )

    def coarse_flux(self, phi: np.ndarray) -> np.ndarray:
        """Volume-averaged coarse flux, shape (G, Nc)."""
        return self.mapping.restrict(phi)
