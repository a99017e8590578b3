"""Multigroup cross-section library.

Arrays are indexed ``[material, group]`` and scattering ``[material, g, gp]``
for scattering from group ``gp`` into group ``g``. The accessor methods form
the read-only material-provider interface consumed by the sweep and CMFD
layers; a Material is never mutated during a solve.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .exceptions import InvalidArgumentError


@dataclass
class Material:
    """Macroscopic multigroup cross sections for a set of materials.

    Parameters
    ----------
    sigma_t : np.ndarray
        Total cross section, shape (M, G).
    sigma_s : np.ndarray
        Scattering matrix, shape (M, G, G), ``sigma_s[m, g, gp]`` is gp -> g.
    sigma_f, nu, chi : np.ndarray, optional
        Fission cross section, yield and spectrum, shape (M, G). Zero if omitted.
    sigma_a : np.ndarray, optional
        Absorption, defaults to ``sigma_t`` minus total out-scatter.
    diff_coef : np.ndarray, optional
        Diffusion coefficient, defaults to ``1 / (3 sigma_t)``.
    """

    sigma_t: np.ndarray
    sigma_s: np.ndarray
    sigma_f: Optional[np.ndarray] = None
    nu: Optional[np.ndarray] = None
    chi: Optional[np.ndarray] = None
    sigma_a: Optional[np.ndarray] = None
    diff_coef: Optional[np.ndarray] = None

    def __post_init__(self):
        self.sigma_t = np.atleast_2d(np.asarray(self.sigma_t, dtype=np.float64))
        shape = self.sigma_t.shape
        M, G = shape

        sigma_s = np.asarray(self.sigma_s, dtype=np.float64)
        if sigma_s.ndim == 2 and M == 1:
            sigma_s = sigma_s[np.newaxis]
        if sigma_s.shape != (M, G, G):
            raise InvalidArgumentError(f"sigma_s must have shape {(M, G, G)}, got {sigma_s.shape}")
        self.sigma_s = sigma_s

        self.sigma_f = self._group_array(self.sigma_f, "sigma_f", shape)
        self.nu = self._group_array(self.nu, "nu", shape)
        self.chi = self._group_array(self.chi, "chi", shape)
        if self.sigma_a is None:
            self.sigma_a = self.sigma_t - self.sigma_s.sum(axis=1)
        else:
            self.sigma_a = self._group_array(self.sigma_a, "sigma_a", shape)
        if self.diff_coef is None:
            if np.any(self.sigma_t <= 0.0):
                raise InvalidArgumentError("diff_coef defaults to 1/(3 sigma_t); sigma_t must be positive")
            self.diff_coef = 1.0 / (3.0 * self.sigma_t)
        else:
            self.diff_coef = self._group_array(self.diff_coef, "diff_coef", shape)
        if np.any(self.diff_coef <= 0.0):
            raise InvalidArgumentError("Diffusion coefficients must be positive")

    @staticmethod
    def _group_array(values, name, shape):
        if values is None:
            return np.zeros(shape)
        values = np.atleast_2d(np.asarray(values, dtype=np.float64))
        if values.shape != shape:
            raise InvalidArgumentError(f"{name} must have shape {shape}, got {values.shape}")
        return values

    # ------------------------------------------------------------------
    # Sizes
    # ------------------------------------------------------------------

    @property
    def number_materials(self) -> int:
        return self.sigma_t.shape[0]

    @property
    def number_groups(self) -> int:
        return self.sigma_t.shape[1]

    # ------------------------------------------------------------------
    # Material-provider accessors
    # ------------------------------------------------------------------

    def get_sigma_t(self, m: int, g: int) -> float:
        return float(self.sigma_t[m, g])

    def get_sigma_a(self, m: int, g: int) -> float:
        return float(self.sigma_a[m, g])

    def get_sigma_f(self, m: int, g: int) -> float:
        return float(self.sigma_f[m, g])

    def get_sigma_s(self, m: int, g: int, gp: int) -> float:
        return float(self.sigma_s[m, g, gp])

    def get_nu(self, m: int, g: int) -> float:
        return float(self.nu[m, g])

    def get_chi(self, m: int, g: int) -> float:
        return float(self.chi[m, g])

    def get_diff_coef(self, m: int, g: int) -> float:
        return float(self.diff_coef[m, g])

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    @property
    def nu_sigma_f(self) -> np.ndarray:
        return self.nu * self.sigma_f

    @property
    def sigma_r(self) -> np.ndarray:
        """Removal cross section sigma_t - sigma_s(g -> g), shape (M, G)."""
        return self.sigma_t - np.einsum("mgg->mg", self.sigma_s)

    @property
    def is_fissile(self) -> bool:
        return bool(np.any(self.nu_sigma_f > 0.0))

    def to_dict(self) -> dict:
        return {
            "sigma_t": self.sigma_t,
            "sigma_s": self.sigma_s,
            "sigma_f": self.sigma_f,
            "nu": self.nu,
            "chi": self.chi,
            "sigma_a": self.sigma_a,
            "diff_coef": self.diff_coef,
        }
