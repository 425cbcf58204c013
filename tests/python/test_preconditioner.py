"""
Tests for preconditioners (identity, ILUT).
"""

import logging

import pytest
import numpy as np
import scipy.sparse as sp

import kla.matrix as km
from kla.core import KLAError, InvalidInputError, ShapeMismatchError
from kla.math import multiply
from kla.matrix import DenseMatrix1D, SparseRCMMatrix2D
from kla.solver import ILUT, IdentityPreconditioner, Preconditioner


def tridiagonal(n):
    """1-D Laplacian with a shifted diagonal."""
    return sp.diags([-1.0, 4.0, -1.0], [-1, 0, 1], shape=(n, n), format='csr')


def lu_product(factor):
    """Multiply back the combined L + U factor."""
    f = factor.to_numpy()
    lower = np.tril(f, -1) + np.eye(f.shape[0])
    upper = np.triu(f)
    return lower @ upper


class TestIdentity:
    """IdentityPreconditioner."""

    def test_apply_copies(self):
        m = IdentityPreconditioner()
        m.set_matrix(km.identity(3))
        b = km.vector([1.0, 2.0, 3.0])
        x = m.apply(b)
        assert x is not b
        np.testing.assert_array_equal(x.to_numpy(), b.to_numpy())
        x[0] = 10.0
        assert b[0] == 1.0

    def test_into_output(self):
        m = IdentityPreconditioner()
        b = km.vector([1.0, 2.0])
        out = km.vector(2)
        assert m.trans_apply(b, out) is out
        np.testing.assert_array_equal(out.to_numpy(), [1.0, 2.0])

    def test_output_shape(self):
        with pytest.raises(ShapeMismatchError):
            IdentityPreconditioner().apply(km.vector(2), km.vector(3))

    def test_integer_input_gets_float_output(self):
        x = IdentityPreconditioner().apply(km.vector([1, 2]))
        assert isinstance(x, DenseMatrix1D)
        assert x.dtype == 'float64'

    def test_is_preconditioner(self):
        assert isinstance(IdentityPreconditioner(), Preconditioner)


class TestILUTFactor:
    """ILUT factorization."""

    def test_exact_on_tridiagonal(self):
        """No fill-in is dropped for a tridiagonal matrix: L U == A."""
        a = km.from_scipy(tridiagonal(8))
        m = ILUT(tau=0.0, p=100)
        m.set_matrix(a)
        assert isinstance(m.factor, SparseRCMMatrix2D)
        assert m.factor.is_canonical
        assert m.size == 8
        np.testing.assert_allclose(lu_product(m.factor), a.to_numpy(), atol=1e-12)

    def test_exact_on_dense(self, random_dense):
        a = km.from_dense(random_dense, layout='dense')
        m = ILUT(tau=0.0, p=1000)
        m.set_matrix(a)
        np.testing.assert_allclose(lu_product(m.factor), random_dense, atol=1e-10)

    def test_no_fill_keeps_diagonal(self, random_dense):
        """With p = 0 only the pivots remain and M = diag(A)."""
        m = ILUT(tau=0.0, p=0)
        m.set_matrix(km.from_dense(random_dense))
        np.testing.assert_allclose(m.factor.to_numpy(), np.diag(np.diag(random_dense)))

    def test_fill_limit(self, random_dense):
        m = ILUT(tau=0.0, p=3)
        m.set_matrix(km.from_dense(random_dense))
        f = m.factor
        for i in range(f.rows):
            idx, _ = f.line(i)
            assert (idx < i).sum() <= 3
            assert (idx > i).sum() <= 3
            assert i in idx

    def test_drop_tolerance(self, random_dense):
        """A larger tau keeps fewer entries."""
        loose = ILUT(tau=0.5, p=1000)
        tight = ILUT(tau=1e-8, p=1000)
        a = km.from_dense(random_dense)
        loose.set_matrix(a)
        tight.set_matrix(a)
        assert loose.factor.cardinality() < tight.factor.cardinality()

    def test_any_layout(self, random_dense):
        for layout in ('sparse', 'sparse_cc', 'dense_large', 'sparse_ccm'):
            m = ILUT(tau=0.0, p=1000)
            m.set_matrix(km.from_dense(random_dense, layout=layout))
            np.testing.assert_allclose(lu_product(m.factor), random_dense, atol=1e-10)

    def test_source_not_modified(self):
        a = km.from_scipy(tridiagonal(5))
        before = a.to_numpy()
        ILUT().set_matrix(a)
        np.testing.assert_array_equal(a.to_numpy(), before)

    def test_non_square(self):
        with pytest.raises(ShapeMismatchError):
            ILUT().set_matrix(km.zeros(3, 4))

    def test_zero_pivot(self):
        a = km.from_dense([[0.0, 1.0], [1.0, 0.0]], layout='sparse_rc')
        with pytest.raises(KLAError) as exc_info:
            ILUT().set_matrix(a)
        assert exc_info.value.code == KLAError.ERROR_DIVISION_BY_ZERO

    def test_invalid_parameters(self):
        with pytest.raises(InvalidInputError):
            ILUT(tau=-1.0)
        with pytest.raises(InvalidInputError):
            ILUT(p=-1)

    def test_logs_factor_size(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="kla.solver"):
            ILUT(tau=1e-3, p=5).set_matrix(km.from_scipy(tridiagonal(4)))
        assert "ILUT(tau=0.001, p=5)" in caplog.text


class TestILUTApply:
    """Forward/backward substitution."""

    def test_apply_inverts_exact_factor(self):
        n = 10
        a = km.from_scipy(tridiagonal(n))
        m = ILUT(tau=0.0, p=100)
        m.set_matrix(a)
        x = km.vector(np.linspace(-1.0, 1.0, n))
        ax = multiply(a, x)
        np.testing.assert_allclose(m.apply(ax).to_numpy(), x.to_numpy(), atol=1e-12)

    def test_trans_apply(self, random_dense):
        a = km.from_dense(random_dense, layout='sparse_rc')
        m = ILUT(tau=0.0, p=1000)
        m.set_matrix(a)
        x = km.vector(np.arange(30, dtype=np.float64))
        atx = multiply(a, x, transpose=True)
        np.testing.assert_allclose(m.trans_apply(atx).to_numpy(), x.to_numpy(), atol=1e-9)

    def test_diagonal_scaling(self, random_dense):
        m = ILUT(tau=0.0, p=0)
        m.set_matrix(km.from_dense(random_dense))
        b = km.vector(np.ones(30))
        np.testing.assert_allclose(m.apply(b).to_numpy(), 1.0 / np.diag(random_dense))
        np.testing.assert_allclose(m.trans_apply(b).to_numpy(), 1.0 / np.diag(random_dense))

    def test_output_vector(self):
        m = ILUT(tau=0.0, p=100)
        m.set_matrix(km.from_scipy(tridiagonal(4)))
        b = km.vector([4.0, 4.0, 4.0, 4.0])
        out = km.vector(4, sparse=True)
        assert m.apply(b, out) is out

    def test_apply_before_set_matrix(self):
        with pytest.raises(InvalidInputError):
            ILUT().apply(km.vector(3))

    def test_size_mismatch(self):
        m = ILUT()
        m.set_matrix(km.from_scipy(tridiagonal(4)))
        with pytest.raises(ShapeMismatchError):
            m.apply(km.vector(5))
        with pytest.raises(ShapeMismatchError):
            m.trans_apply(km.vector(3))
