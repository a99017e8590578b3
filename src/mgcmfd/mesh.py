"""Slab meshes and the fine-to-coarse cell mapping used by CMFD."""

from dataclasses import dataclass

import numpy as np

from .exceptions import InvalidArgumentError


def _frozen(array, dtype):
    array = np.array(array, dtype=dtype)
    array.flags.writeable = False
    return array


class Mesh1D:
    """One-dimensional slab mesh of cells with a material assignment.

    Parameters
    ----------
    widths : array_like
        Cell widths (the cell "volumes" in slab geometry).
    material_map : array_like, optional
        Material index of every cell, defaults to material 0 everywhere.
    """

    def __init__(self, widths, material_map=None):
        widths = np.asarray(widths, dtype=np.float64).ravel()
        if widths.size == 0 or np.any(widths <= 0.0):
            raise InvalidArgumentError("Mesh cell widths must be positive and non-empty")
        if material_map is None:
            material_map = np.zeros(widths.size, dtype=np.int64)
        material_map = np.asarray(material_map, dtype=np.int64).ravel()
        if material_map.size != widths.size:
            raise InvalidArgumentError(
                f"material_map has {material_map.size} entries for {widths.size} cells"
            )
        if np.any(material_map < 0):
            raise InvalidArgumentError("Material indices must be non-negative")
        self.widths = _frozen(widths, np.float64)
        self.material_map = _frozen(material_map, np.int64)
        self.edges = _frozen(np.concatenate(([0.0], np.cumsum(widths))), np.float64)

    @classmethod
    def uniform(cls, number_cells: int, length: float, material_map=None) -> "Mesh1D":
        return cls(np.full(int(number_cells), float(length) / int(number_cells)), material_map)

    @classmethod
    def from_regions(cls, region_widths, cells_per_region, region_materials) -> "Mesh1D":
        """Build a mesh from coarse regions subdivided uniformly."""
        widths, materials = [], []
        for width, n, m in zip(region_widths, cells_per_region, region_materials):
            widths.extend([width / n] * n)
            materials.extend([m] * n)
        return cls(widths, materials)

    @property
    def number_cells(self) -> int:
        return self.widths.size

    @property
    def volumes(self) -> np.ndarray:
        return self.widths

    def volume(self, i: int) -> float:
        return float(self.widths[i])

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    @property
    def length(self) -> float:
        return float(self.edges[-1])


@dataclass(frozen=True, eq=False)
class CoarseMeshMapping:
    """Surjective map from fine cells to coarse cells.

    Attributes
    ----------
    level : int
        Number of fine cells merged into each coarse cell.
    fine_to_coarse : np.ndarray
        Coarse index of every fine cell.
    coarse_volumes : np.ndarray
        Sum of the constituent fine volumes per coarse cell.
    fine_volumes : np.ndarray
        Fine cell volumes.
    coarse_faces : np.ndarray
        Fine face index of every coarse face (left boundary first).
    """

    level: int
    fine_to_coarse: np.ndarray
    coarse_volumes: np.ndarray
    fine_volumes: np.ndarray
    coarse_faces: np.ndarray

    @classmethod
    def from_mesh(cls, mesh: Mesh1D, level: int = 2) -> "CoarseMeshMapping":
        """Group ``level`` consecutive fine cells per coarse cell.

        The last coarse cell takes the remainder when ``level`` does not
        divide the number of fine cells.
        """
        level = int(level)
        if level <= 0:
            raise InvalidArgumentError(f"Coarse mesh level must be positive, got {level}")
        n_fine = mesh.number_cells
        fine_to_coarse = np.arange(n_fine) // level
        n_coarse = int(fine_to_coarse[-1]) + 1
        coarse_volumes = np.bincount(fine_to_coarse, weights=mesh.volumes, minlength=n_coarse)
        coarse_faces = np.append(np.arange(n_coarse) * level, n_fine)
        return cls(
            level=level,
            fine_to_coarse=_frozen(fine_to_coarse, np.int64),
            coarse_volumes=_frozen(coarse_volumes, np.float64),
            fine_volumes=_frozen(mesh.volumes, np.float64),
            coarse_faces=_frozen(coarse_faces, np.int64),
        )

    @property
    def number_fine_cells(self) -> int:
        return self.fine_to_coarse.size

    @property
    def number_coarse_cells(self) -> int:
        return self.coarse_volumes.size

    @property
    def number_coarse_faces(self) -> int:
        return self.coarse_faces.size

    @property
    def volume_ratios(self) -> np.ndarray:
        """Fine volume over its coarse volume, per fine cell."""
        return self.fine_volumes / self.coarse_volumes[self.fine_to_coarse]

    def restrict(self, fine_values: np.ndarray) -> np.ndarray:
        """Volume-average fine values onto the coarse mesh.

        Accepts a single field of shape (n_fine,) or a stack (G, n_fine).
        """
        fine_values = np.asarray(fine_values, dtype=np.float64)
        weighted = fine_values * self.volume_ratios
        if weighted.ndim == 1:
            return np.bincount(self.fine_to_coarse, weights=weighted, minlength=self.number_coarse_cells)
        return np.stack(
            [
                np.bincount(self.fine_to_coarse, weights=row, minlength=self.number_coarse_cells)
                for row in weighted
            ]
        )

