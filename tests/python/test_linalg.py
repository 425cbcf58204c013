"""
Tests for the algebra kernel (kla.math.linalg).
"""

import pytest
import numpy as np

import kla.matrix as km
from kla.core import InvalidInputError, KernelConfig, ShapeMismatchError
from kla.math import dot, multiply, norm1, norm2, norm_inf, transpose
from kla.matrix import Layout, DenseMatrix1D, SparseRCMatrix2D

from conftest import ALL_LAYOUTS, assert_array_equal


PARALLEL = KernelConfig(num_threads=4, parallel_threshold=1)


# =============================================================================
# Norms
# =============================================================================

class TestNorm2:
    """Euclidean norm."""

    def test_basic(self):
        assert norm2(km.vector([3.0, 4.0])) == pytest.approx(5.0)

    def test_no_overflow(self):
        """Huge entries are scaled before squaring."""
        assert norm2(km.vector([3e200, 4e200])) == pytest.approx(5e200, rel=1e-12)

    def test_no_underflow(self):
        assert norm2(km.vector([3e-200, 4e-200])) == pytest.approx(5e-200, rel=1e-12)

    def test_empty_and_zero(self):
        assert norm2(km.vector(0)) == 0.0
        assert norm2(km.vector(5)) == 0.0

    def test_non_finite(self):
        assert np.isnan(norm2(km.vector([1.0, np.nan])))
        assert norm2(km.vector([1.0, -np.inf])) == np.inf

    def test_integer_vector(self):
        assert norm2(km.vector([3, 4])) == pytest.approx(5.0)

    def test_sparse_and_view(self):
        v = km.vector([0.0, 3.0, 0.0, 4.0], sparse=True)
        assert norm2(v) == pytest.approx(5.0)
        assert norm2(v.view_strides(2)) == 0.0

    def test_matrix_frobenius(self, small_matrix, dense_matrix_small):
        assert norm2(small_matrix) == pytest.approx(np.linalg.norm(dense_matrix_small))

    @pytest.mark.parametrize("k", [-3.0, 0.5, 1e150, -1e-150, 7e-300])
    @pytest.mark.parametrize("kind", ["dense", "sparse", "view"])
    def test_scale_invariance(self, k, kind):
        """norm2(k v) == |k| norm2(v) for any operand kind."""
        rng = np.random.default_rng(17)
        values = rng.standard_normal(40)
        values[::3] = 0.0

        def make(arr):
            if kind == "dense":
                return km.vector(arr)
            if kind == "sparse":
                return km.vector(arr, sparse=True)
            padded = np.zeros(2 * arr.size)
            padded[::2] = arr
            return km.vector(padded).view_strides(2)

        base = norm2(make(values))
        assert norm2(make(k * values)) == pytest.approx(abs(k) * base, rel=1e-12)

    def test_parallel_merge(self):
        """Partial (scale, ssq) pairs merge to the serial result."""
        rng = np.random.default_rng(3)
        values = rng.standard_normal(1001) * np.logspace(-100, 100, 1001)
        v = km.vector(values)
        assert norm2(v, PARALLEL) == pytest.approx(norm2(v), rel=1e-12)
        assert norm2(v) == pytest.approx(np.linalg.norm(values / 1e100) * 1e100, rel=1e-10)


class TestOtherNorms:
    """1-norm and infinity norm."""

    def test_norm1(self):
        v = km.vector([1.0, -2.0, 3.0])
        assert norm1(v) == pytest.approx(6.0)
        assert norm1(v, PARALLEL) == pytest.approx(6.0)

    def test_norm_inf(self):
        assert norm_inf(km.vector([1.0, -7.0, 3.0])) == 7.0
        assert norm_inf(km.vector(0)) == 0.0


# =============================================================================
# Inner Product
# =============================================================================

class TestDot:
    """Inner product."""

    def test_basic(self):
        u = km.vector([1.0, 2.0, 3.0])
        v = km.vector([4.0, -5.0, 6.0])
        assert dot(u, v) == pytest.approx(12.0)

    def test_mixed_layouts(self):
        u = km.vector([1.0, 0.0, 3.0], sparse=True)
        v = km.vector([2.0, 5.0, 1.0])
        assert dot(u, v) == pytest.approx(5.0)
        assert dot(u.view_flip(), v) == pytest.approx(3.0 * 2.0 + 1.0)

    def test_size_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            dot(km.vector(3), km.vector(4))

    def test_empty(self):
        assert dot(km.vector(0), km.vector(0)) == 0.0

    def test_parallel(self):
        rng = np.random.default_rng(5)
        a, b = rng.standard_normal(500), rng.standard_normal(500)
        assert dot(km.vector(a), km.vector(b), PARALLEL) == pytest.approx(a @ b)

    def test_zdot(self):
        u = km.vector([1.0, 2.0])
        assert u.zdot(km.vector([3.0, 4.0])) == pytest.approx(11.0)


# =============================================================================
# Matrix-Vector Product
# =============================================================================

class TestMultiply:
    """y := alpha op(A) x + beta y."""

    @pytest.mark.parametrize("transpose_a", [False, True])
    def test_every_layout(self, small_matrix, dense_matrix_small, transpose_a):
        n = 3 if transpose_a else 4
        x = km.vector(np.arange(1.0, n + 1.0))
        y = multiply(small_matrix, x, transpose=transpose_a)
        op = dense_matrix_small.T if transpose_a else dense_matrix_small
        assert isinstance(y, DenseMatrix1D)
        assert_array_equal(y, op @ x.to_numpy())

    @pytest.mark.parametrize("layout", ALL_LAYOUTS, ids=lambda l: l.value)
    @pytest.mark.parametrize("transpose_a", [False, True])
    def test_parallel_matches_serial(self, random_sparse, layout, transpose_a):
        """The worker pool gives the same result as the serial kernel."""
        m = km.from_scipy(random_sparse, layout=layout)
        rng = np.random.default_rng(11)
        n = m.rows if transpose_a else m.columns
        x = km.vector(rng.standard_normal(n))
        serial = multiply(m, x, transpose=transpose_a, config=KernelConfig(num_threads=1))
        parallel = multiply(m, x, transpose=transpose_a, config=PARALLEL)
        dense = random_sparse.toarray()
        expected = (dense.T if transpose_a else dense) @ x.to_numpy()
        np.testing.assert_allclose(serial.to_numpy(), expected, atol=1e-12)
        np.testing.assert_allclose(parallel.to_numpy(), expected, atol=1e-12)

    @pytest.mark.parametrize("layout", ALL_LAYOUTS, ids=lambda l: l.value)
    @pytest.mark.parametrize("transpose_a", [False, True])
    def test_int64_exact_beyond_float_mantissa(self, layout, transpose_a):
        """int64 products accumulate in int64, not through float64."""
        big = 2 ** 53 + 1
        values = [[big, 1, 0], [3, big, big]]
        a = km.from_dense(np.array(values, dtype=np.int64), layout=layout)
        n = 2 if transpose_a else 3
        y = multiply(a, km.vector(np.ones(n, dtype=np.int64)), transpose=transpose_a)
        assert y.dtype == 'int64'
        if transpose_a:
            expected = [sum(row[j] for row in values) for j in range(3)]
        else:
            expected = [sum(row) for row in values]
        assert [int(v) for v in y.to_numpy()] == expected

    def test_alpha_beta(self):
        a = km.from_dense([[1.0, 2.0], [3.0, 4.0]], layout='sparse_rc')
        x = km.vector([1.0, 1.0])
        y = km.vector([1.0, -1.0])
        out = multiply(a, x, y, alpha=2.0, beta=3.0)
        assert out is y
        np.testing.assert_allclose(y.to_numpy(), [2.0 * 3.0 + 3.0, 2.0 * 7.0 - 3.0])

    def test_beta_zero_ignores_y(self):
        """Old y is never read when beta is zero."""
        a = km.identity(2)
        y = km.vector([np.nan, np.inf])
        multiply(a, km.vector([1.0, 2.0]), y)
        np.testing.assert_array_equal(y.to_numpy(), [1.0, 2.0])

    def test_aliasing(self):
        """x and y may be the same vector."""
        a = km.from_dense([[0.0, 1.0], [1.0, 0.0]], layout='sparse_cc')
        x = km.vector([1.0, 2.0])
        multiply(a, x, x)
        np.testing.assert_array_equal(x.to_numpy(), [2.0, 1.0])

    def test_output_dtype(self):
        a = km.from_dense([[1, 2], [3, 4]])
        assert multiply(a, km.vector([1, 1])).dtype == 'int64'
        assert multiply(a, km.vector([0.5, 0.5])).dtype == 'float64'

    def test_output_into_view(self):
        a = km.identity(3, layout='diagonal')
        target = km.zeros(2, 3)
        multiply(a, km.vector([1.0, 2.0, 3.0]), target.view_row(1))
        np.testing.assert_array_equal(target.to_numpy(), [[0, 0, 0], [1, 2, 3]])

    def test_shape_errors(self):
        a = km.zeros(2, 3)
        with pytest.raises(ShapeMismatchError):
            multiply(a, km.vector(2))
        with pytest.raises(ShapeMismatchError):
            multiply(a, km.vector(3), km.vector(3))
        with pytest.raises(ShapeMismatchError):
            multiply(a, km.vector(3), transpose=True)

    def test_rejects_non_matrix(self):
        with pytest.raises(InvalidInputError):
            multiply(np.eye(2), km.vector(2))

    def test_zmult(self):
        a = km.from_dense([[1.0, 2.0], [3.0, 4.0]], layout='dense_column')
        np.testing.assert_array_equal(a.zmult(km.vector([1.0, 1.0])).to_numpy(), [3.0, 7.0])
        np.testing.assert_array_equal(
            a.zmult(km.vector([1.0, 1.0]), transpose=True).to_numpy(), [4.0, 6.0]
        )

    def test_empty(self):
        a = km.zeros(0, 3, layout='sparse_rc')
        assert multiply(a, km.vector(3)).size == 0
        assert multiply(a, km.vector(0), transpose=True).to_numpy().tolist() == [0.0, 0.0, 0.0]


class TestTranspose:
    """Materialized transpose."""

    def test_layout_kept(self, dense_matrix_small):
        a = km.from_dense(dense_matrix_small, layout='sparse_rc')
        t = transpose(a)
        assert isinstance(t, SparseRCMatrix2D)
        assert not t.is_view
        assert_array_equal(t, dense_matrix_small.T)

    def test_independent(self, dense_matrix_small):
        a = km.from_dense(dense_matrix_small)
        t = transpose(a)
        t[0, 0] = -1.0
        assert a[0, 0] == 1.0

    def test_diagonal(self):
        d = km.zeros(4, 4, layout=Layout.DIAGONAL, offset=2)
        d.assign(1.0)
        t = transpose(d)
        assert t.layout is Layout.DIAGONAL
        assert t.offset == -2
