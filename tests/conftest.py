"""Pytest configuration and fixtures for the multigroup solver tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def spd_matrix():
    """Well-conditioned symmetric positive-definite tridiagonal matrix (cond < 10)."""
    n = 8
    A = 4.0 * np.eye(n) - np.eye(n, k=1) - np.eye(n, k=-1)
    return A


@pytest.fixture
def one_group_material():
    """Pure absorber with self-scatter, sigma_a = 0.5."""
    from mgcmfd import Material

    return Material(sigma_t=[[1.0]], sigma_s=[[[0.5]]])


@pytest.fixture
def two_group_material():
    """Two groups with down- and up-scatter, no fission."""
    from mgcmfd import Material

    return Material(
        sigma_t=[[0.25, 1.0]],
        sigma_s=[[[0.20, 0.01], [0.03, 0.90]]],
    )


@pytest.fixture
def fissile_material():
    """Two-group fissile material (chi entirely in the fast group)."""
    from mgcmfd import Material

    return Material(
        sigma_t=[[0.2263, 1.0119]],
        sigma_s=[[[0.2006, 0.0], [0.0161, 0.9355]]],
        sigma_f=[[0.0029, 0.0580]],
        nu=[[2.5, 2.5]],
        chi=[[1.0, 0.0]],
    )


@pytest.fixture
def slab_mesh():
    """20-cell, 10 cm slab of a single material."""
    from mgcmfd import Mesh1D

    return Mesh1D.uniform(20, 10.0)


@pytest.fixture
def solver_options():
    """Quiet solver configuration used by the end-to-end tests."""
    return {
        "outer_tolerance": 1e-10,
        "max_outer_iterations": 500,
        "print_level": 0,
        "cmfd_coarse_mesh_level": 2,
    }
