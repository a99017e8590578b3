"""Net current tally on coarse-mesh faces."""

import numpy as np

from ..mesh import CoarseMeshMapping


class CurrentTally:
    """Net currents (positive towards +x) crossing every coarse face.

    Written by the within-group sweep, consumed and reset once per outer
    iteration by the CMFD update. Contributions are summed, so the result
    does not depend on the order in which angles or groups report them.
    """

    def __init__(self, mapping: CoarseMeshMapping, number_groups: int):
        self.mapping = mapping
        self.number_groups = int(number_groups)
        self._current = np.zeros((self.number_groups, mapping.number_coarse_faces))

    @property
    def currents(self) -> np.ndarray:
        """Read-only view, shape (G, coarse faces)."""
        view = self._current.view()
        view.flags.writeable = False
        return view

    def current(self, g: int, face: int) -> float:
        return float(self._current[g, face])

    def accumulate(self, g: int, face: int, value: float):
        self._current[g, face] += value

    def accumulate_fine_faces(self, g: int, fine_face_currents: np.ndarray):
        """Add currents given on every fine face (length n_fine + 1)."""
        self._current[g] += np.asarray(fine_face_currents)[self.mapping.coarse_faces]

    def reset(self, g: int = None):
        """Zero the tally for one group, or all groups."""
        if g is None:
            self._current[:] = 0.0
        else:
            self._current[g] = 0.0
