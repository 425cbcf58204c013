"""
Tests for zero-copy views.

Covers:
- Aliasing: writes through a view reach the backing storage and back
- Composition: views of views collapse onto the backing storage
- Materialization: copy() of a view owns its values
- Products through views for every layout
"""

import pytest
import numpy as np
import scipy.sparse as sp

import kla.matrix as km
from kla.core import IndexOutOfBoundsError, InvalidInputError
from kla.math import multiply
from kla.matrix import (
    Layout,
    Ownership,
    DenseMatrix1D,
    DenseMatrix2D,
    DiagonalMatrix2D,
    MatrixView1D,
    MatrixView2D,
    SparseRCMatrix2D,
)

from conftest import ALL_LAYOUTS, assert_array_equal


@pytest.fixture
def grid():
    """4x5 matrix holding 0..19 row by row."""
    return np.arange(20, dtype=np.float64).reshape(4, 5)


@pytest.fixture
def grid_matrix(grid, layout):
    # zero would vanish from sparse layouts, shift by one
    return km.from_dense(grid + 1.0, layout=layout)


# =============================================================================
# Transpose
# =============================================================================

class TestTranspose:
    """Transposed views."""

    def test_write_through(self):
        """A write through the view is visible in the base and vice versa."""
        m = DenseMatrix2D.from_list([[1.0, 2.0], [3.0, 4.0]])
        t = m.view_transpose()
        t[0, 1] = 30.0
        assert m[1, 0] == 30.0
        m[0, 1] = 20.0
        assert t[1, 0] == 20.0

    def test_values(self, grid_matrix, grid):
        t = grid_matrix.view_transpose()
        assert t.shape == (5, 4)
        assert_array_equal(t, (grid + 1.0).T)

    def test_double_transpose(self, grid_matrix, grid):
        """Transposing twice gives the identity mapping on the same base."""
        tt = grid_matrix.view_transpose().view_transpose()
        assert isinstance(tt, MatrixView2D)
        assert tt.base is grid_matrix
        assert not tt.is_transposed
        assert tt.equals(grid_matrix)

    def test_info(self, grid_matrix, layout):
        info = grid_matrix.view_transpose().info()
        assert info.ownership is Ownership.VIEW
        assert info.layout is layout
        assert info.is_transposed
        assert info.shape == (5, 4)


# =============================================================================
# Part / Strides / Lines
# =============================================================================

class TestPart:
    """Sub-box views."""

    def test_values(self, grid_matrix, grid):
        p = grid_matrix.view_part(1, 2, 2, 3)
        assert p.shape == (2, 3)
        assert_array_equal(p, grid[1:3, 2:5] + 1.0)

    def test_write_through(self, grid_matrix):
        p = grid_matrix.view_part(1, 1, 2, 2)
        p[1, 1] = -7.0
        assert grid_matrix[2, 2] == -7.0

    def test_nested_part(self, grid_matrix, grid):
        """A part of a part addresses the base directly."""
        inner = grid_matrix.view_part(1, 1, 3, 4).view_part(1, 1, 2, 2)
        assert inner.base is grid_matrix
        assert_array_equal(inner, grid[2:4, 2:4] + 1.0)

    def test_out_of_range(self):
        m = km.zeros(3, 3)
        with pytest.raises(IndexOutOfBoundsError):
            m.view_part(2, 0, 2, 1)
        with pytest.raises(IndexOutOfBoundsError):
            m.view_part(0, -1, 1, 1)
        with pytest.raises(InvalidInputError):
            m.view_part(0, 0, -1, 1)

    def test_empty_part(self):
        p = km.zeros(3, 3).view_part(1, 1, 0, 2)
        assert p.shape == (0, 2)
        assert p.to_numpy().shape == (0, 2)


class TestStrides:
    """Strided views."""

    def test_values(self, grid_matrix, grid):
        s = grid_matrix.view_strides(2, 2)
        assert s.shape == (2, 3)
        assert_array_equal(s, grid[::2, ::2] + 1.0)

    def test_stride_of_transpose(self, grid_matrix, grid):
        s = grid_matrix.view_transpose().view_strides(2, 3)
        assert_array_equal(s, (grid + 1.0).T[::2, ::3])

    def test_invalid_stride(self):
        with pytest.raises(InvalidInputError):
            km.zeros(2, 2).view_strides(0, 1)


class TestLines:
    """Row and column views."""

    def test_row(self, grid_matrix, grid):
        r = grid_matrix.view_row(2)
        assert isinstance(r, MatrixView1D)
        assert r.size == 5
        assert_array_equal(r, grid[2] + 1.0)

    def test_column(self, grid_matrix, grid):
        c = grid_matrix.view_column(3)
        assert c.size == 4
        assert_array_equal(c, grid[:, 3] + 1.0)

    def test_row_of_transpose_is_column(self, grid_matrix, grid):
        r = grid_matrix.view_transpose().view_row(1)
        assert_array_equal(r, grid[:, 1] + 1.0)

    def test_row_write_through(self, grid_matrix):
        r = grid_matrix.view_row(0)
        r.assign(0.0)
        assert grid_matrix.view_row(0).to_numpy().sum() == 0.0
        assert grid_matrix[1, 0] == 6.0

    def test_row_out_of_range(self):
        with pytest.raises(IndexOutOfBoundsError):
            km.zeros(2, 3).view_row(2)
        with pytest.raises(IndexOutOfBoundsError):
            km.zeros(2, 3).view_column(3)

    def test_line_like(self, grid_matrix, layout):
        vec = grid_matrix.view_row(0).like()
        assert vec.size == 5
        assert not vec.is_view
        assert layout.is_sparse == (vec.layout is Layout.SPARSE)


class TestVectorViews:
    """Views of vectors."""

    def test_part(self):
        v = DenseMatrix1D.from_list([0.0, 1.0, 2.0, 3.0, 4.0])
        p = v.view_part(1, 3)
        np.testing.assert_array_equal(p.to_numpy(), [1.0, 2.0, 3.0])
        p[0] = 10.0
        assert v[1] == 10.0

    def test_strides_and_flip(self):
        v = DenseMatrix1D.from_list([0.0, 1.0, 2.0, 3.0, 4.0])
        np.testing.assert_array_equal(v.view_strides(2).to_numpy(), [0.0, 2.0, 4.0])
        np.testing.assert_array_equal(v.view_flip().to_numpy(), [4.0, 3.0, 2.0, 1.0, 0.0])
        np.testing.assert_array_equal(
            v.view_flip().view_strides(2).to_numpy(), [4.0, 2.0, 0.0]
        )

    def test_flip_of_flip(self):
        v = km.vector([1.0, 2.0, 3.0], sparse=True)
        ff = v.view_flip().view_flip()
        assert ff.base is v
        assert ff.equals(v)

    def test_part_out_of_range(self):
        with pytest.raises(IndexOutOfBoundsError):
            DenseMatrix1D(3).view_part(2, 2)

    def test_view_of_row(self, grid):
        m = km.from_dense(grid)
        tail = m.view_row(1).view_part(2, 3)
        assert tail.base is m
        np.testing.assert_array_equal(tail.to_numpy(), grid[1, 2:])


# =============================================================================
# Materialization
# =============================================================================

class TestViewCopy:
    """copy() of a view."""

    def test_copy_owns(self, grid_matrix, grid):
        t = grid_matrix.view_transpose()
        c = t.copy()
        assert not c.is_view
        assert c.info().ownership is Ownership.OWNED
        assert type(c) is type(grid_matrix)
        c[0, 0] = 99.0
        assert grid_matrix[0, 0] == 1.0
        assert_array_equal(c.view_part(1, 0, 4, 4), (grid + 1.0).T[1:, :])

    def test_vector_view_copy(self):
        v = DenseMatrix1D.from_list([1.0, 2.0, 3.0])
        c = v.view_flip().copy()
        assert isinstance(c, DenseMatrix1D)
        c[0] = 0.0
        assert v[2] == 3.0

    def test_diagonal_transpose_copy(self):
        """Unit views of a diagonal materialize as a diagonal."""
        d = DiagonalMatrix2D.from_values([1.0, 2.0, 3.0], offset=1)
        c = d.view_transpose().copy()
        assert isinstance(c, DiagonalMatrix2D)
        assert c.offset == -1
        assert_array_equal(c, d.to_numpy().T)

    def test_diagonal_part_copy(self):
        d = DiagonalMatrix2D.from_values([1.0, 2.0, 3.0, 4.0])
        c = d.view_part(1, 0, 3, 3).copy()
        assert isinstance(c, DiagonalMatrix2D)
        assert c.offset == 1
        assert_array_equal(c, d.to_numpy()[1:4, 0:3])

    def test_diagonal_strided_copy(self):
        d = DiagonalMatrix2D.from_values([1.0, 2.0, 3.0, 4.0])
        c = d.view_strides(2, 1).copy()
        assert not isinstance(c, DiagonalMatrix2D)
        assert_array_equal(c, d.to_numpy()[::2, :])


# =============================================================================
# Products Through Views
# =============================================================================

class TestViewProduct:
    """multiply() on views uses the backing layout's kernel."""

    @pytest.mark.parametrize("layout", ALL_LAYOUTS + [Layout.DIAGONAL], ids=lambda l: l.value)
    def test_transpose_product(self, layout):
        rng = np.random.default_rng(0)
        values = rng.standard_normal((6, 4)) if layout is not Layout.DIAGONAL \
            else np.diag(rng.standard_normal(4))
        m = km.from_dense(values, layout=layout)
        t = m.view_transpose()
        x = km.vector(rng.standard_normal(t.columns))
        np.testing.assert_allclose(multiply(t, x).to_numpy(), values.T @ x.to_numpy())

        z = km.vector(rng.standard_normal(t.rows))
        np.testing.assert_allclose(
            multiply(t, z, transpose=True).to_numpy(), values @ z.to_numpy()
        )

    def test_part_product(self, grid_matrix, grid):
        p = grid_matrix.view_part(1, 1, 3, 3)
        x = km.vector([1.0, -1.0, 2.0])
        expected = (grid + 1.0)[1:4, 1:4] @ x.to_numpy()
        np.testing.assert_allclose(multiply(p, x).to_numpy(), expected)
        np.testing.assert_allclose(
            multiply(p, x, transpose=True).to_numpy(),
            (grid + 1.0)[1:4, 1:4].T @ x.to_numpy(),
        )

    def test_strided_transpose_product(self, grid_matrix, grid):
        s = grid_matrix.view_strides(2, 2).view_transpose()
        x = km.vector([1.0, 2.0])
        expected = (grid + 1.0)[::2, ::2].T @ x.to_numpy()
        np.testing.assert_allclose(multiply(s, x).to_numpy(), expected)

    def test_vector_views_as_operands(self, grid):
        """Rows of one matrix can feed products with another."""
        m = km.from_dense(grid, layout='sparse_rc')
        x = m.view_row(3).view_part(1, 4)
        y = km.zeros(4, 4).view_column(2)
        a = SparseRCMatrix2D.from_scipy(sp.eye(4, format='csr'))
        multiply(a, x, y)
        np.testing.assert_allclose(y.to_numpy(), grid[3, 1:])
