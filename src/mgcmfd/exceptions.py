"""Error taxonomy for the solver stack.

Malformed input and misuse are raised as exceptions. Numerical outcomes
(divergence, exhausted iteration budgets) are returned as statuses instead,
see ``solvers.monitor.Status`` and ``outer_solver.OuterStatus``.
"""


class SolverError(Exception):
    """Base class for all solver-stack errors."""


class InvalidArgumentError(SolverError, ValueError):
    """Malformed operator or option (non-square, wrong matrix type, bad key)."""


class InvalidStateError(SolverError, RuntimeError):
    """An operation was requested before its prerequisites were set."""


class DegenerateCellError(SolverError, ArithmeticError):
    """Coarse cell with a (numerically) zero pre-correction value."""

    def __init__(self, cells):
        self.cells = list(cells)
        super().__init__(
            f"{len(self.cells)} degenerate coarse cell(s) (group, cell): {self.cells[:10]}"
        )
