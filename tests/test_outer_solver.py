"""Tests for the multigroup outer iteration.

Tests:
- Analytic infinite-medium flux with and without CMFD
- Idempotence on a converged state
- Multigroup CMFD and Gauss-Seidel against a direct reference solve
- Forward and adjoint group traversal
- MaxIterationsReached and Diverged terminal states
"""

import numpy as np
import pytest
from scipy.sparse.linalg import spsolve

from mgcmfd import (
    GroupFluxField,
    Material,
    Mesh1D,
    MultigroupOuterSolver,
    OuterStatus,
    SlabBoundary,
    SweepSource,
    WithinGroupSolver,
    assemble_multigroup_operator,
)
from mgcmfd.exceptions import InvalidArgumentError


class RecordingSolver(WithinGroupSolver):
    """Within-group stub that records the order of the group solves."""

    def __init__(self, flux, source, value=1.0):
        super().__init__(flux, source)
        self.order = []
        self.value = value

    def solve(self, g):
        self.order.append(g)
        self.flux.phi[g, :] = self.value


def reference_flux(material, mesh, boundary, q, **kwargs):
    A = assemble_multigroup_operator(mesh, material, boundary, **kwargs)
    return spsolve(A.tocsc(), q.ravel()).reshape(material.number_groups, -1)


@pytest.fixture
def fast_source(slab_mesh):
    q = np.zeros((2, slab_mesh.number_cells))
    q[0] = 1.0
    return q


class TestInfiniteMedium:
    """One group, two cells, uniform source, reflective boundaries."""

    @pytest.fixture
    def setup(self, one_group_material):
        mesh = Mesh1D.uniform(2, 2.0)
        q = np.full((1, 2), 2.0)
        return one_group_material, mesh, SlabBoundary(), q

    @pytest.mark.parametrize("cmfd_enabled", [True, False])
    def test_analytic_flux(self, setup, cmfd_enabled):
        material, mesh, boundary, q = setup
        options = {"cmfd_enabled": cmfd_enabled, "cmfd_coarse_mesh_level": 1, "print_level": 0}
        solver = MultigroupOuterSolver.from_config(options, material, mesh, boundary, q)

        result = solver.solve()

        assert result.status is OuterStatus.CONVERGED
        assert result.metrics.iterations < 20
        assert np.allclose(result.flux.phi, 2.0 / 0.5, rtol=1e-6)

    def test_cmfd_matches_plain_iteration(self, setup):
        material, mesh, boundary, q = setup
        results = [
            MultigroupOuterSolver.from_config(
                {"cmfd_enabled": enabled, "cmfd_coarse_mesh_level": 1, "print_level": 0},
                material, mesh, boundary, q,
            ).solve()
            for enabled in (True, False)
        ]
        assert np.allclose(results[0].flux.phi, results[1].flux.phi, rtol=1e-10)

    def test_second_solve_is_immediate(self, setup):
        material, mesh, boundary, q = setup
        solver = MultigroupOuterSolver.from_config(
            {"cmfd_coarse_mesh_level": 1, "print_level": 0}, material, mesh, boundary, q
        )
        solver.solve()
        flux = solver.flux.phi.copy()

        result = solver.solve()

        assert result.status is OuterStatus.CONVERGED
        assert result.metrics.iterations == 0
        assert result.metrics.cmfd_updates == 0
        assert np.allclose(result.flux.phi, flux)


class TestMultigroup:
    """Two-group slab against the direct fine-mesh solve."""

    @pytest.mark.parametrize("level", [1, 2, 5])
    def test_cmfd_matches_reference(self, two_group_material, slab_mesh, fast_source, solver_options, level):
        boundary = SlabBoundary.create("vacuum", "vacuum")
        options = dict(solver_options, cmfd_coarse_mesh_level=level)
        solver = MultigroupOuterSolver.from_config(options, two_group_material, slab_mesh, boundary, fast_source)

        result = solver.solve()

        reference = reference_flux(two_group_material, slab_mesh, boundary, fast_source)
        assert result.converged
        assert np.allclose(result.flux.phi, reference, rtol=1e-7)
        assert result.metrics.cmfd_updates == result.metrics.iterations

    def test_cmfd_and_gauss_seidel_agree(self, two_group_material, slab_mesh, fast_source, solver_options):
        boundary = SlabBoundary.create("reflect", "vacuum")
        accelerated = MultigroupOuterSolver.from_config(
            solver_options, two_group_material, slab_mesh, boundary, fast_source
        ).solve()
        plain = MultigroupOuterSolver.from_config(
            dict(solver_options, cmfd_enabled=False), two_group_material, slab_mesh, boundary, fast_source
        ).solve()

        assert accelerated.converged and plain.converged
        assert np.allclose(accelerated.flux.phi, plain.flux.phi, rtol=1e-7)
        assert plain.metrics.cmfd_updates == 0

    def test_subcritical_multiplying_slab(self, fissile_material, slab_mesh, fast_source, solver_options):
        boundary = SlabBoundary.create("vacuum", "vacuum")
        options = dict(solver_options, multiply=True)
        result = MultigroupOuterSolver.from_config(
            options, fissile_material, slab_mesh, boundary, fast_source
        ).solve()

        reference = reference_flux(fissile_material, slab_mesh, boundary, fast_source, multiply=True)
        assert result.converged
        assert np.allclose(result.flux.phi, reference, rtol=1e-7)

    def test_adjoint_solution(self, two_group_material, slab_mesh, solver_options):
        boundary = SlabBoundary.create("vacuum", "vacuum")
        q = np.zeros((2, slab_mesh.number_cells))
        q[1] = 1.0
        options = dict(solver_options, adjoint=True)
        result = MultigroupOuterSolver.from_config(options, two_group_material, slab_mesh, boundary, q).solve()

        reference = reference_flux(two_group_material, slab_mesh, boundary, q, adjoint=True)
        assert result.converged
        assert np.allclose(result.flux.phi, reference, rtol=1e-7)

    def test_history(self, two_group_material, slab_mesh, fast_source, solver_options):
        boundary = SlabBoundary.create("vacuum", "vacuum")
        result = MultigroupOuterSolver.from_config(
            solver_options, two_group_material, slab_mesh, boundary, fast_source
        ).solve()

        df = result.time_series.to_dataframe()
        assert len(df) == result.metrics.iterations + 1
        assert list(df.columns[:3]) == ["residual", "residual_g0", "residual_g1"]
        assert df["residual"].iloc[-1] < solver_options["outer_tolerance"]
        assert result.metrics.sweeps == 2 * (result.metrics.iterations + 1)
        assert result.metrics.to_dataframe()["status"].iloc[0] == "converged"


class TestTraversalAndStates:
    """Group order and terminal states with a stub within-group solver."""

    @pytest.fixture
    def stub(self):
        material = Material(sigma_t=np.ones((1, 3)), sigma_s=np.zeros((1, 3, 3)))
        mesh = Mesh1D.uniform(2, 1.0)
        flux = GroupFluxField.allocate(3, 2)
        source = SweepSource(material, mesh, flux)
        return flux, source

    @pytest.mark.parametrize("adjoint,order", [(False, [0, 1, 2]), (True, [2, 1, 0])])
    def test_group_order(self, stub, adjoint, order):
        flux, source = stub
        wg = RecordingSolver(flux, source)
        solver = MultigroupOuterSolver(wg, flux, adjoint=adjoint, print_level=0)

        result = solver.solve()

        assert list(solver.group_order) == order
        assert wg.order[:3] == order
        assert result.status is OuterStatus.CONVERGED
        assert result.metrics.iterations == 1

    def test_max_iterations_returns_last_flux(self, stub):
        flux, source = stub

        class Growing(RecordingSolver):
            def solve(self, g):
                self.flux.phi[g, :] += 1.0

        solver = MultigroupOuterSolver(Growing(flux, source), flux, max_iterations=3, print_level=0)
        result = solver.solve()

        assert result.status is OuterStatus.MAX_ITERATIONS
        assert not result.converged
        assert result.metrics.iterations == 3
        assert np.allclose(result.flux.phi, 4.0)
        assert len(result.time_series.residual) == 4

    def test_non_finite_flux_diverges(self, stub):
        flux, source = stub
        solver = MultigroupOuterSolver(RecordingSolver(flux, source, value=np.nan), flux, print_level=0)

        result = solver.solve()

        assert result.status is OuterStatus.DIVERGED
        assert result.metrics.iterations == 0

    def test_keff_reaches_sweep_source(self, stub):
        flux, source = stub
        MultigroupOuterSolver(RecordingSolver(flux, source), flux, print_level=0).solve(keff=1.25)
        assert source.keff == 1.25

    @pytest.mark.parametrize("kwargs", [{"tolerance": 0.0}, {"max_iterations": 0}])
    def test_invalid_settings(self, stub, kwargs):
        flux, source = stub
        with pytest.raises(InvalidArgumentError):
            MultigroupOuterSolver(RecordingSolver(flux, source), flux, **kwargs)

    def test_diagnostics_logged(self, stub, caplog):
        flux, source = stub
        solver = MultigroupOuterSolver(RecordingSolver(flux, source), flux, print_level=1)
        with caplog.at_level("INFO", logger="mgcmfd.outer_solver"):
            solver.solve()
        assert "Outer iteration" in caplog.text
