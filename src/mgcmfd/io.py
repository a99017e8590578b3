"""Save and load solver state as a zarr group.

Layout::

    flux                      (G, N) scalar flux
    material/<name>           cross-section arrays
    mesh/widths, mesh/material_map
    attrs: keff, status, iterations (when known)
"""

from pathlib import Path

import numpy as np
import zarr

from .datastructures import GroupFluxField
from .material import Material
from .mesh import Mesh1D


def save_state(filepath, flux: GroupFluxField, material: Material = None, mesh: Mesh1D = None, **attrs):
    """Write the flux (and optionally material and mesh) to the store ``filepath``.

    Extra keyword arguments are stored as group attributes.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    root = zarr.open_group(str(filepath), mode="w")
    root["flux"] = flux.phi
    if material is not None:
        group = root.create_group("material")
        for name, values in material.to_dict().items():
            group[name] = np.asarray(values)
    if mesh is not None:
        group = root.create_group("mesh")
        group["widths"] = mesh.widths
        group["material_map"] = mesh.material_map
    root.attrs.update({key: (value.item() if isinstance(value, np.generic) else value)
                       for key, value in attrs.items()})


def load_state(filepath) -> dict:
    """Read a store written by :func:`save_state`.

    Returns
    -------
    dict
        ``flux`` (GroupFluxField), ``material`` and ``mesh`` (or None) and
        ``attrs`` (dict of group attributes).
    """
    root = zarr.open_group(str(filepath), mode="r")
    flux = GroupFluxField(phi=np.asarray(root["flux"][:]))
    material = None
    if "material" in root:
        material = Material(**{name: np.asarray(array[:]) for name, array in root["material"].arrays()})
    mesh = None
    if "mesh" in root:
        mesh = Mesh1D(np.asarray(root["mesh/widths"][:]), np.asarray(root["mesh/material_map"][:]))
    return {"flux": flux, "material": material, "mesh": mesh, "attrs": dict(root.attrs)}
