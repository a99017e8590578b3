"""Multigroup outer iteration with optional CMFD acceleration.

Each outer iteration sweeps every energy group once (Gauss-Seidel in
energy), measures the change of the flux, and, unless converged, corrects
the flux with a coarse-mesh update before the next sweep.
"""

import logging
import time

import mlflow
import numpy as np

from .boundary import SlabBoundary
from .cmfd.acceleration import CMFDAccelerator
from .cmfd.tally import CurrentTally
from .config import load_config
from .datastructures import GroupFluxField, Metrics, OuterSolveResult, OuterStatus, TimeSeries
from .diffusion import DiffusionWGSolver, SweepSource, WithinGroupSolver
from .exceptions import InvalidArgumentError
from .linalg.vector import norm_residual
from .material import Material
from .mesh import CoarseMeshMapping, Mesh1D

log = logging.getLogger(__name__)


class MultigroupOuterSolver:
    """Outer fixed-point iteration over energy groups.

    Handles:
    - Group traversal (forward, or reversed for the adjoint problem)
    - Per-group and total L-infinity residuals against the previous iterate
    - CMFD correction between iterations
    - Metrics, convergence history and MLflow live logging

    Parameters
    ----------
    wg_solver : WithinGroupSolver
        Solves one group in place.
    flux : GroupFluxField
        The iterated flux, shared with ``wg_solver``.
    tolerance : float
        Converged when the L-infinity flux change drops below this.
    max_iterations : int
        Number of accelerated outer iterations allowed.
    adjoint : bool
        Sweep the groups from the last to the first.
    accelerator : CMFDAccelerator, optional
        Coarse-mesh correction; the plain Gauss-Seidel iteration without it.
    print_level : int
        0 silent, 1 diagnostics every ``print_interval`` iterations.
    print_interval : int
        Iterations between diagnostics.
    """

    def __init__(
        self,
        wg_solver: WithinGroupSolver,
        flux: GroupFluxField,
        tolerance: float = 1e-6,
        max_iterations: int = 100,
        adjoint: bool = False,
        accelerator: CMFDAccelerator = None,
        print_level: int = 1,
        print_interval: int = 1,
    ):
        if tolerance <= 0.0:
            raise InvalidArgumentError(f"Outer tolerance must be positive, got {tolerance}")
        if int(max_iterations) <= 0:
            raise InvalidArgumentError(f"max_iterations must be positive, got {max_iterations}")
        self.wg_solver = wg_solver
        self.flux = flux
        self.tolerance = float(tolerance)
        self.max_iterations = int(max_iterations)
        self.adjoint = bool(adjoint)
        self.accelerator = accelerator
        self.print_level = int(print_level)
        self.print_interval = int(print_interval)
        self.number_sweeps = 0

        G = flux.number_groups
        # Group bounds: forward 0 .. G-1, adjoint G-1 .. 0
        if self.adjoint:
            self.lower, self.upper, self.step = G - 1, -1, -1
        else:
            self.lower, self.upper, self.step = 0, G, 1

        self.metrics = Metrics()
        self.time_series = TimeSeries()

    @classmethod
    def from_config(
        cls,
        config,
        material: Material,
        mesh: Mesh1D,
        boundary: SlabBoundary,
        external_source=None,
        flux: GroupFluxField = None,
    ) -> "MultigroupOuterSolver":
        """Wire the diffusion sweep, the tally and the accelerator from a configuration."""
        cfg = load_config(config)
        if flux is None:
            flux = GroupFluxField.allocate(material.number_groups, mesh.number_cells)
        source = SweepSource(
            material, mesh, flux, external_source, multiply=cfg.multiply, adjoint=cfg.adjoint
        )
        wg_solver = DiffusionWGSolver(mesh, material, boundary, flux, source)

        accelerator = None
        if cfg.cmfd_enabled:
            mapping = CoarseMeshMapping.from_mesh(mesh, cfg.cmfd_coarse_mesh_level)
            tally = CurrentTally(mapping, material.number_groups)
            wg_solver.set_tally(tally)
            accelerator = CMFDAccelerator(
                material,
                mesh,
                boundary,
                mapping,
                flux,
                source,
                tally,
                solver_config=cfg,
                degenerate_policy=cfg.cmfd_degenerate_policy,
                degenerate_tolerance=cfg.cmfd_degenerate_tolerance,
            )

        return cls(
            wg_solver,
            flux,
            tolerance=cfg.outer_tolerance,
            max_iterations=cfg.max_outer_iterations,
            adjoint=cfg.adjoint,
            accelerator=accelerator,
            print_level=cfg.print_level,
            print_interval=cfg.print_interval,
        )

    @property
    def group_order(self):
        return range(self.lower, self.upper, self.step)

    def _sweep(self):
        for g in self.group_order:
            self.wg_solver.solve(g)
            self.number_sweeps += 1

    def solve(self, keff: float = 1.0) -> OuterSolveResult:
        """Iterate to convergence or until the iteration budget is spent.

        Parameters
        ----------
        keff : float
            Criticality eigenvalue dividing the fission source.

        Returns
        -------
        OuterSolveResult
            Terminal status, the (last) flux and the convergence history. The
            flux is returned even when the iteration did not converge.
        """
        self.wg_solver.get_sweep_source().set_keff(keff)
        self.number_sweeps = 0
        self.time_series = TimeSeries()
        G = self.flux.number_groups

        status = OuterStatus.MAX_ITERATIONS
        residual = float("inf")
        cmfd_updates = 0
        cmfd_linear_iterations = 0
        degenerate_cells = 0

        time_start = time.time()
        mlflow_time = 0.0
        iteration = 0

        for iteration in range(self.max_iterations + 1):
            previous = self.flux.phi.copy()
            self._sweep()

            group_residuals = [
                norm_residual(self.flux.phi[g], previous[g], "Linf") for g in range(G)
            ]
            residual = max(group_residuals)
            self.time_series.residual.append(residual)
            self.time_series.group_residuals.append(group_residuals)

            if self.print_level > 0 and self.print_interval > 0 and iteration % self.print_interval == 0:
                log.info(f"Outer iteration: {iteration:5d}    error: {residual:12.9e}")

            if mlflow.active_run():
                t_log_start = time.time()
                mlflow.log_metrics({"outer_residual": residual}, step=iteration)
                mlflow_time += time.time() - t_log_start

            if residual < self.tolerance:
                status = OuterStatus.CONVERGED
                self.time_series.cmfd_status.append(None)
                break
            if not np.isfinite(residual):
                status = OuterStatus.DIVERGED
                self.time_series.cmfd_status.append(None)
                log.error(f"Outer iteration diverged at iteration {iteration}")
                break
            if iteration == self.max_iterations or self.accelerator is None:
                self.time_series.cmfd_status.append(None)
                continue

            update = self.accelerator.update(keff)
            cmfd_updates += 1
            cmfd_linear_iterations += update.linear.iterations
            degenerate_cells += len(update.degenerate_cells)
            self.time_series.cmfd_status.append(update.status)

        wall_time = time.time() - time_start - mlflow_time

        if status is OuterStatus.MAX_ITERATIONS:
            log.warning(
                f"Outer iteration reached the maximum of {self.max_iterations} iterations "
                f"(error {residual:12.9e})"
            )
        elif status is OuterStatus.CONVERGED and self.print_level > 0:
            log.info(f"Outer iteration converged in {iteration} iterations ({self.number_sweeps} sweeps)")

        self.metrics = Metrics(
            iterations=iteration,
            sweeps=self.number_sweeps,
            converged=status is OuterStatus.CONVERGED,
            status=status.value,
            final_residual=residual,
            wall_time_seconds=wall_time,
            cmfd_updates=cmfd_updates,
            cmfd_linear_iterations=cmfd_linear_iterations,
            degenerate_cells=degenerate_cells,
        )
        return OuterSolveResult(
            status=status, flux=self.flux, metrics=self.metrics, time_series=self.time_series
        )


__all__ = ["MultigroupOuterSolver", "OuterStatus"]
