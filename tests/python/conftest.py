"""
Pytest configuration and shared fixtures for KLA tests.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

import scipy.sparse as sp

import kla.matrix as km
from kla.matrix import Layout


ALL_LAYOUTS = [
    Layout.DENSE,
    Layout.DENSE_COLUMN,
    Layout.DENSE_LARGE,
    Layout.SPARSE,
    Layout.SPARSE_RC,
    Layout.SPARSE_CC,
    Layout.SPARSE_RCM,
    Layout.SPARSE_CCM,
]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def dense_matrix_small():
    """Small dense numpy matrix (3x4) used as the reference for every layout.

    Matrix:
    [[1, 0, 2, 0],
     [0, 3, 0, 4],
     [5, 0, 0, 6]]
    """
    return np.array([
        [1, 0, 2, 0],
        [0, 3, 0, 4],
        [5, 0, 0, 6]
    ], dtype=np.float64)


@pytest.fixture(params=ALL_LAYOUTS, ids=lambda l: l.value)
def layout(request):
    """Every general-purpose layout (diagonal is tested on its own)."""
    return request.param


@pytest.fixture
def small_matrix(layout, dense_matrix_small):
    """The small reference matrix in the parametrized layout."""
    kwargs = {'block_rows': 2} if layout is Layout.DENSE_LARGE else {}
    return km.from_dense(dense_matrix_small, layout=layout, **kwargs)


@pytest.fixture
def scipy_csr_matrix(dense_matrix_small):
    """scipy CSR copy of the reference matrix."""
    return sp.csr_matrix(dense_matrix_small)


@pytest.fixture
def random_dense():
    """Random well-conditioned 30x30 system matrix (diagonally dominant)."""
    rng = np.random.default_rng(42)
    a = rng.standard_normal((30, 30))
    a += np.diag(np.abs(a).sum(axis=1) + 1.0)
    return a


@pytest.fixture
def random_sparse():
    """Random 200x150 sparse matrix with ~5% density."""
    return sp.random(200, 150, density=0.05, format='csr', random_state=7)


# =============================================================================
# Helper Functions
# =============================================================================

def assert_array_equal(a1, a2, rtol=1e-5, atol=1e-8):
    """Assert two arrays (or KLA matrices/vectors) are approximately equal."""
    if hasattr(a1, 'to_numpy'):
        a1 = a1.to_numpy()
    if hasattr(a2, 'to_numpy'):
        a2 = a2.to_numpy()

    np.testing.assert_allclose(a1, a2, rtol=rtol, atol=atol)
