"""Tests for CMFD acceleration.

Tests:
- Current tally bookkeeping
- Shape-preserving prolongation and the degenerate-cell guard
- Coarse operator against the fine operator and the fixed point
- Coarse criticality estimate against the infinite-medium value
"""

import numpy as np
import pytest
from scipy.sparse.linalg import spsolve

from mgcmfd import (
    CMFDAccelerator,
    CoarseMeshMapping,
    CurrentTally,
    DiffusionWGSolver,
    GroupFluxField,
    Homogenizer,
    Mesh1D,
    SlabBoundary,
    SweepSource,
    assemble_multigroup_operator,
    estimate_keff,
)
from mgcmfd.cmfd import build_loss_operator, prolongate
from mgcmfd.exceptions import DegenerateCellError, InvalidArgumentError
from mgcmfd.solvers import Richardson


@pytest.fixture
def problem(two_group_material, slab_mesh):
    """Two-group vacuum slab with a fast source, wired for CMFD at level 2."""
    boundary = SlabBoundary.create("vacuum", "vacuum")
    mapping = CoarseMeshMapping.from_mesh(slab_mesh, level=2)
    flux = GroupFluxField.allocate(2, slab_mesh.number_cells)
    q = np.zeros((2, slab_mesh.number_cells))
    q[0] = 1.0
    source = SweepSource(two_group_material, slab_mesh, flux, q)
    tally = CurrentTally(mapping, 2)
    sweeper = DiffusionWGSolver(slab_mesh, two_group_material, boundary, flux, source, tally=tally)
    return {
        "material": two_group_material,
        "mesh": slab_mesh,
        "boundary": boundary,
        "mapping": mapping,
        "flux": flux,
        "q": q,
        "source": source,
        "tally": tally,
        "sweeper": sweeper,
    }


def make_accelerator(p, **kwargs):
    return CMFDAccelerator(
        p["material"], p["mesh"], p["boundary"], p["mapping"], p["flux"], p["source"], p["tally"], **kwargs
    )


class TestCurrentTally:
    """Tests for the coarse face tally."""

    def test_accumulate_and_reset(self):
        mapping = CoarseMeshMapping.from_mesh(Mesh1D.uniform(4, 4.0), level=2)
        tally = CurrentTally(mapping, 2)
        tally.accumulate(0, 1, 0.5)
        tally.accumulate(0, 1, 0.25)
        tally.accumulate(1, 2, 1.0)
        assert tally.current(0, 1) == 0.75

        tally.reset(0)
        assert tally.current(0, 1) == 0.0
        assert tally.current(1, 2) == 1.0
        tally.reset()
        assert not np.any(tally.currents)

    def test_currents_view_is_read_only(self):
        tally = CurrentTally(CoarseMeshMapping.from_mesh(Mesh1D.uniform(2, 1.0), level=1), 1)
        with pytest.raises(ValueError):
            tally.currents[0, 0] = 1.0


class TestProlongation:
    """Tests for the multiplicative fine-mesh correction."""

    @pytest.fixture
    def mapping(self):
        return CoarseMeshMapping.from_mesh(Mesh1D.uniform(4, 4.0), level=2)

    def test_equal_values_leave_flux_unchanged(self, mapping):
        flux = GroupFluxField(phi=np.array([[0.1, 0.7, 1.3, 2.9]]))
        original = flux.phi.copy()
        coarse = mapping.restrict(flux.phi)

        cells = prolongate(flux, mapping, coarse, coarse.copy())

        assert cells == []
        assert np.array_equal(flux.phi, original)

    def test_ratio_scales_its_coarse_cell(self, mapping):
        flux = GroupFluxField(phi=np.array([[1.0, 3.0, 2.0, 2.0]]))
        before = np.array([[2.0, 2.0]])
        after = np.array([[4.0, 2.0]])

        prolongate(flux, mapping, before, after)

        assert np.allclose(flux.phi, [[2.0, 6.0, 2.0, 2.0]])

    def test_zero_coarse_value_skipped(self, mapping, caplog):
        flux = GroupFluxField(phi=np.array([[0.0, 0.0, 2.0, 2.0]]))
        before = np.array([[0.0, 2.0]])
        after = np.array([[1.0, 3.0]])

        with caplog.at_level("WARNING"):
            cells = prolongate(flux, mapping, before, after)

        assert cells == [(0, 0)]
        assert np.all(np.isfinite(flux.phi))
        assert np.allclose(flux.phi, [[0.0, 0.0, 3.0, 3.0]])
        assert "degenerate" in caplog.text

    def test_relative_tolerance(self, mapping):
        flux = GroupFluxField(phi=np.array([[1e-20, 1e-20, 1.0, 1.0]]))
        cells = prolongate(flux, mapping, np.array([[1e-20, 1.0]]), np.array([[1.0, 1.0]]))
        assert cells == [(0, 0)]
        assert flux.phi[0, 0] == 1e-20

    def test_relative_tolerance_is_per_group(self, mapping):
        flux = GroupFluxField(phi=np.array([[1e-14, 1e-14, 2e-14, 2e-14], [1.0, 1.0, 1.0, 1.0]]))
        before = np.array([[1e-14, 2e-14], [1.0, 1.0]])
        after = np.array([[2e-14, 2e-14], [1.0, 1.0]])

        cells = prolongate(flux, mapping, before, after)

        assert cells == []
        assert np.allclose(flux.phi[0], [2e-14, 2e-14, 2e-14, 2e-14], rtol=1e-12, atol=0.0)

    def test_raise_policy_leaves_flux_untouched(self, mapping):
        flux = GroupFluxField(phi=np.array([[0.0, 0.0, 2.0, 2.0]]))
        with pytest.raises(DegenerateCellError) as info:
            prolongate(flux, mapping, np.array([[0.0, 2.0]]), np.array([[1.0, 4.0]]), policy="raise")
        assert info.value.cells == [(0, 0)]
        assert np.allclose(flux.phi, [[0.0, 0.0, 2.0, 2.0]])


class TestLossOperator:
    """Tests for the coarse loss operator."""

    @pytest.mark.parametrize("adjoint", [False, True])
    @pytest.mark.parametrize("multiply", [False, True])
    def test_level_one_without_currents_is_fine_operator(self, fissile_material, slab_mesh, adjoint, multiply):
        boundary = SlabBoundary.create("reflect", "vacuum")
        mapping = CoarseMeshMapping.from_mesh(slab_mesh, level=1)
        coarse = Homogenizer(fissile_material, slab_mesh, mapping).homogenize(np.ones((2, 20)))

        A = build_loss_operator(coarse, mapping, boundary, keff=1.1, multiply=multiply, adjoint=adjoint)
        fine = assemble_multigroup_operator(
            slab_mesh, fissile_material, boundary, keff=1.1, multiply=multiply, adjoint=adjoint
        )

        assert np.allclose(A.to_csr().toarray(), fine.toarray(), rtol=1e-12, atol=1e-14)

    def test_dense_and_sparse_agree(self, problem):
        coarse = Homogenizer(problem["material"], problem["mesh"], problem["mapping"]).homogenize(
            np.ones((2, 20))
        )
        sparse = build_loss_operator(coarse, problem["mapping"], problem["boundary"])
        dense = build_loss_operator(coarse, problem["mapping"], problem["boundary"], dense=True)
        assert np.allclose(sparse.to_csr().toarray(), dense.array)


class TestCMFDAccelerator:
    """Tests for the update state machine."""

    def test_fixed_point_is_a_no_op(self, problem):
        p = problem
        A = assemble_multigroup_operator(p["mesh"], p["material"], p["boundary"])
        reference = spsolve(A.tocsc(), p["q"].ravel()).reshape(2, -1)
        p["flux"].phi[:] = reference
        for g in range(2):
            p["sweeper"].solve(g)

        update = make_accelerator(p).update()

        assert update.applied
        assert np.allclose(update.coarse_after, update.coarse_before, rtol=1e-8)
        assert np.allclose(p["flux"].phi, reference, rtol=1e-8)

    def test_update_consumes_tally(self, problem):
        p = problem
        for g in range(2):
            p["sweeper"].solve(g)
        assert np.any(p["tally"].currents)

        update = make_accelerator(p).update()

        assert not np.any(p["tally"].currents)
        assert update.linear.converged
        assert np.all(np.isfinite(p["flux"].phi))

    def test_update_moves_towards_solution(self, problem):
        p = problem
        A = assemble_multigroup_operator(p["mesh"], p["material"], p["boundary"])
        reference = spsolve(A.tocsc(), p["q"].ravel()).reshape(2, -1)
        for g in range(2):
            p["sweeper"].solve(g)
        error_before = np.max(np.abs(p["flux"].phi - reference))

        make_accelerator(p).update()

        assert np.max(np.abs(p["flux"].phi - reference)) < error_before

    def test_diverged_coarse_solve_skips_correction(self, problem):
        p = problem
        for g in range(2):
            p["sweeper"].solve(g)
        before = p["flux"].phi.copy()
        solver = Richardson(omega=1e3, absolute_tolerance=1e-14, relative_tolerance=0.0)

        update = make_accelerator(p, linear_solver=solver, solver_config={"pc_type": "none"}).update()

        assert not update.applied
        assert update.status == "diverge"
        assert np.array_equal(p["flux"].phi, before)

    def test_invalid_policy(self, problem):
        with pytest.raises(InvalidArgumentError):
            make_accelerator(problem, degenerate_policy="clamp")

    def test_mapping_must_cover_mesh(self, problem):
        problem["mapping"] = CoarseMeshMapping.from_mesh(Mesh1D.uniform(4, 1.0), level=2)
        with pytest.raises(InvalidArgumentError):
            make_accelerator(problem)


class TestKeffEstimate:
    """Tests for the coarse-mesh criticality estimate."""

    def test_infinite_medium(self, fissile_material):
        mesh = Mesh1D.uniform(6, 30.0)
        mapping = CoarseMeshMapping.from_mesh(mesh, level=2)
        coarse = Homogenizer(fissile_material, mesh, mapping).homogenize(np.ones((2, 6)))

        result = estimate_keff(coarse, mapping, SlabBoundary())

        removal_1 = 0.2263 - 0.2006
        removal_2 = 1.0119 - 0.9355
        k_inf = 0.00725 / removal_1 + 0.145 * 0.0161 / (removal_1 * removal_2)
        assert result.eigenvalue == pytest.approx(k_inf, rel=1e-10)
        assert np.linalg.norm(result.eigenvector) == pytest.approx(1.0)

    def test_adjoint_has_same_eigenvalue(self, fissile_material):
        mesh = Mesh1D.uniform(6, 30.0)
        mapping = CoarseMeshMapping.from_mesh(mesh, level=3)
        coarse = Homogenizer(fissile_material, mesh, mapping).homogenize(np.ones((2, 6)))
        boundary = SlabBoundary.create("vacuum", "vacuum")

        forward = estimate_keff(coarse, mapping, boundary).eigenvalue
        adjoint = estimate_keff(coarse, mapping, boundary, adjoint=True).eigenvalue

        assert adjoint == pytest.approx(forward, rel=1e-10)

    def test_leakage_lowers_k(self, fissile_material):
        mesh = Mesh1D.uniform(6, 30.0)
        mapping = CoarseMeshMapping.from_mesh(mesh, level=2)
        coarse = Homogenizer(fissile_material, mesh, mapping).homogenize(np.ones((2, 6)))

        reflected = estimate_keff(coarse, mapping, SlabBoundary()).eigenvalue
        bare = estimate_keff(coarse, mapping, SlabBoundary.create("vacuum", "vacuum")).eigenvalue

        assert bare < reflected
