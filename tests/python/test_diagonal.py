"""
Tests for diagonal storage and the factory functions.
"""

import pytest
import numpy as np
import scipy.sparse as sp

import kla.matrix as km
from kla.core import InvalidInputError
from kla.math import multiply
from kla.matrix import (
    Layout,
    DenseMatrix1D,
    DiagonalMatrix2D,
    SparseMatrix1D,
    SparseMatrix2D,
    diagonal_length,
)
from kla.matrix import functions as F

from conftest import assert_array_equal


# =============================================================================
# Diagonal Storage
# =============================================================================

class TestDiagonalLength:
    """Geometric length of a diagonal inside the rectangle."""

    def test_superdiagonal(self):
        """Offset 3 in a 5x5 matrix stores (0, 3) and (1, 4)."""
        assert diagonal_length(5, 5, 3) == 2
        assert DiagonalMatrix2D(5, 5, offset=3).diagonal_length() == 2

    @pytest.mark.parametrize("rows,cols,offset,expected", [
        (4, 4, 0, 4),
        (3, 5, 0, 3),
        (5, 3, 1, 2),
        (4, 6, -2, 2),
        (4, 4, -4, 0),
        (4, 4, 7, 0),
        (0, 3, 0, 0),
    ])
    def test_shapes(self, rows, cols, offset, expected):
        assert diagonal_length(rows, cols, offset) == expected


class TestDiagonalAccess:
    """Reads and writes on and off the stored diagonal."""

    def test_off_diagonal_reads_zero(self):
        d = DiagonalMatrix2D(5, 5, offset=3)
        d[0, 3] = 1.5
        d[1, 4] = 2.5
        for i in range(5):
            for j in range(5):
                if j - i != 3:
                    assert d[i, j] == 0.0
        assert d[1, 4] == 2.5
        np.testing.assert_array_equal(d.elements, [1.5, 2.5])

    def test_off_diagonal_write_rejected(self):
        d = DiagonalMatrix2D(4, 4)
        with pytest.raises(InvalidInputError):
            d[0, 1] = 1.0
        # zero is fine anywhere
        d[0, 1] = 0.0

    def test_negative_offset(self):
        d = DiagonalMatrix2D.from_values([1.0, 2.0], offset=-2)
        assert d.shape == (4, 4)
        assert d[2, 0] == 1.0
        assert d[3, 1] == 2.0
        np.testing.assert_array_equal(d.to_numpy(), np.diag([1.0, 2.0], k=-2))

    def test_from_values_shape(self):
        d = DiagonalMatrix2D.from_values([1.0, 2.0, 3.0], offset=1, rows=3, columns=4)
        np.testing.assert_array_equal(d.to_numpy(), np.eye(3, 4, k=1) * [0, 1, 2, 3])

    def test_from_values_mismatch(self):
        with pytest.raises(ValueError):
            DiagonalMatrix2D.from_values([1.0, 2.0], rows=3, columns=3)

    def test_from_dense_off_diagonal(self):
        with pytest.raises(InvalidInputError):
            km.from_dense([[1.0, 2.0], [0.0, 3.0]], layout='diagonal')

    def test_scatter_off_diagonal(self):
        d = DiagonalMatrix2D(3, 3)
        with pytest.raises(InvalidInputError):
            d._scatter(np.array([0, 1]), np.array([0, 2]), np.array([1.0, 1.0]))

    def test_info_offset(self):
        info = DiagonalMatrix2D(5, 5, offset=-1).info()
        assert info.layout is Layout.DIAGONAL
        assert info.offset == -1
        assert info.nnz == 4


class TestDiagonalAssign:
    """assign acts on the stored diagonal only."""

    def test_fill(self):
        d = DiagonalMatrix2D(3, 3, offset=1)
        d.assign(2.0)
        np.testing.assert_array_equal(d.to_numpy(), np.eye(3, k=1) * 2.0)

    def test_unary(self):
        d = DiagonalMatrix2D.from_values([1.0, -2.0, 3.0])
        d.assign(F.plus(1.0))
        np.testing.assert_array_equal(d.to_numpy(), np.diag([2.0, -1.0, 4.0]))

    def test_binary(self):
        d = DiagonalMatrix2D.from_values([1.0, 2.0])
        e = DiagonalMatrix2D.from_values([3.0, 4.0])
        d.assign(e, F.mult2)
        np.testing.assert_array_equal(d.elements, [3.0, 8.0])

    def test_cardinality(self):
        d = DiagonalMatrix2D.from_values([1.0, 0.0, 3.0])
        assert d.cardinality() == 2

    def test_like_keeps_offset(self):
        d = DiagonalMatrix2D(4, 4, offset=2)
        assert d.like().offset == 2


class TestDiagonalProduct:
    """Products with a single diagonal."""

    @pytest.mark.parametrize("offset", [-2, -1, 0, 1, 3])
    @pytest.mark.parametrize("transpose", [False, True])
    def test_multiply(self, offset, transpose):
        rng = np.random.default_rng(offset + 10)
        d = DiagonalMatrix2D(5, 6, offset=offset)
        d.elements[...] = rng.standard_normal(d.diagonal_length())
        dense = d.to_numpy()
        n = 5 if transpose else 6
        x = km.vector(rng.standard_normal(n))
        expected = (dense.T if transpose else dense) @ x.to_numpy()
        np.testing.assert_allclose(
            multiply(d, x, transpose=transpose).to_numpy(), expected
        )


# =============================================================================
# Factories
# =============================================================================

class TestFactories:
    """zeros / identity / vector / from_dense / from_scipy."""

    @pytest.mark.parametrize("layout", list(Layout), ids=lambda l: l.value)
    def test_identity(self, layout):
        eye = km.identity(4, layout=layout)
        assert eye.layout is layout
        assert eye.dtype == 'float64'
        np.testing.assert_array_equal(eye.to_numpy(), np.eye(4))

    @pytest.mark.parametrize("layout", list(Layout), ids=lambda l: l.value)
    def test_zeros(self, layout):
        z = km.zeros(3, 2, layout=layout.value)
        assert z.layout is layout
        assert z.shape == (3, 2)
        assert z.cardinality() == 0

    def test_zeros_layout_options(self):
        assert km.zeros(5, 5, layout='diagonal', offset=2).offset == 2
        assert km.zeros(5, 5, layout='sparse_rc', capacity=7).capacity == 7
        assert km.zeros(5, 5, layout='dense_large', block_rows=2).num_blocks == 3

    def test_unknown_layout(self):
        with pytest.raises(InvalidInputError, match="unknown layout"):
            km.zeros(2, 2, layout='banded')

    def test_vector(self):
        z = km.vector(3)
        assert isinstance(z, DenseMatrix1D)
        assert z.size == 3
        assert z.dtype == 'float64'

        v = km.vector([1, 2, 3])
        assert v.dtype == 'int64'
        np.testing.assert_array_equal(v.to_numpy(), [1, 2, 3])

        s = km.vector([0.0, 2.0], sparse=True)
        assert isinstance(s, SparseMatrix1D)
        assert s.cardinality() == 1

        assert isinstance(km.vector(5, sparse=True), SparseMatrix1D)

    def test_vector_rejects_2d(self):
        with pytest.raises(InvalidInputError):
            km.vector([[1.0, 2.0]])

    def test_from_dense_dtype(self):
        assert km.from_dense([[1, 2]]).dtype == 'int64'
        assert km.from_dense([[1, 2]], dtype='float32').dtype == 'float32'
        with pytest.raises(InvalidInputError):
            km.from_dense([1.0, 2.0])

    def test_from_scipy_default_layout(self, scipy_csr_matrix):
        assert km.from_scipy(scipy_csr_matrix).layout is Layout.SPARSE_RC
        assert km.from_scipy(scipy_csr_matrix.tocsc()).layout is Layout.SPARSE_CC
        assert km.from_scipy(scipy_csr_matrix.tocoo()).layout is Layout.SPARSE_RC

    def test_from_scipy_layout(self, scipy_csr_matrix, dense_matrix_small):
        m = km.from_scipy(scipy_csr_matrix, layout='sparse')
        assert isinstance(m, SparseMatrix2D)
        assert_array_equal(m, dense_matrix_small)

    def test_from_scipy_rejects_dense(self, dense_matrix_small):
        with pytest.raises(InvalidInputError):
            km.from_scipy(dense_matrix_small)

    def test_to_scipy_dense(self, dense_matrix_small):
        out = km.to_scipy(km.from_dense(dense_matrix_small))
        assert sp.issparse(out) and out.format == 'csr'
        np.testing.assert_array_equal(out.toarray(), dense_matrix_small)

    def test_ascontiguous(self):
        v = km.vector([1.0, 2.0, 3.0])
        assert km.ascontiguous(v) is v
        flipped = km.ascontiguous(v.view_flip())
        assert isinstance(flipped, DenseMatrix1D)
        np.testing.assert_array_equal(flipped.to_numpy(), [3.0, 2.0, 1.0])
