"""
Linear Algebra Kernel.

This module provides the vector reductions and the matrix-vector product
that the iterative solvers are built on. Every operation accepts any
storage layout (and any view); the product dispatches to the layout's own
kernel, so no operand is densified unless its layout has nothing better.

Implemented Operations:
    - Vector norms (1, 2 with overflow-safe scaling, infinity)
    - Inner product
    - General matrix-vector product y := alpha op(A) x + beta y
    - Materialized transpose

Parallelism:
    Reductions and products over large operands are split into contiguous
    ranges and run on a thread pool sized by :class:`KernelConfig`. Each
    call blocks until every range is joined; partial results are combined
    in range order.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Tuple, Union

import numpy as np

from kla.core.config import KernelConfig
from kla.core.error import InvalidInputError, ShapeMismatchError
from kla.core.parallel import map_ranges
from kla.matrix._base import Matrix1D, Matrix2D
from kla.matrix._dense import DenseMatrix1D
from kla.matrix._dtypes import from_numpy_dtype

__all__ = [
    "norm1",
    "norm2",
    "norm_inf",
    "dot",
    "multiply",
    "transpose",
]

VectorLike = Union[Matrix1D, np.ndarray]


def _values(v: Any) -> np.ndarray:
    """Raw numpy values of a vector or matrix (zero-copy for owned dense storage)."""
    if isinstance(v, DenseMatrix1D):
        return v.elements
    if isinstance(v, (Matrix1D, Matrix2D)):
        return v.to_numpy()
    return np.asarray(v)


def _as_float(a: np.ndarray) -> np.ndarray:
    if a.dtype.kind == 'f':
        return a
    return a.astype(np.float64)


# =============================================================================
# Norms
# =============================================================================

def _scaled_ssq(a: np.ndarray) -> Tuple[float, float]:
    """(scale, ssq) with sum(a**2) == scale**2 * ssq."""
    if a.size == 0:
        return 0.0, 1.0
    mags = np.abs(a)
    scale = float(mags.max())
    if scale == 0.0 or not math.isfinite(scale):
        return scale, 1.0
    return scale, float(np.sum(np.square(mags / scale)))


def norm2(v: Union[VectorLike, Matrix2D], config: Optional[KernelConfig] = None) -> float:
    """Euclidean norm (Frobenius norm for matrices).

    Mathematical Definition:
        ||v||_2 = sqrt(sum(v[i] ** 2))

    Algorithm:
        The values are divided by their largest magnitude before squaring,
        so that the sum neither overflows for huge entries nor underflows
        for tiny ones:

            scale = max |v[i]|
            ||v||_2 = scale * sqrt(sum((v[i] / scale) ** 2))

        Split across workers, every range produces its own (scale, ssq)
        pair; pairs are merged by rescaling to the largest scale.

    Args:
        v: Vector, matrix or numpy array.
        config: Kernel configuration (process default if None).

    Returns:
        The norm as a Python float. inf if any entry is infinite, nan if
        any entry is nan.

    Examples:
        >>> norm2(vector([3.0, 4.0]))
        5.0
        >>> norm2(vector([3e200, 4e200]))   # no overflow
        5e+200
    """
    a = _as_float(_values(v)).ravel()
    if a.size and not np.all(np.isfinite(a)):
        return float(np.nan) if np.isnan(a).any() else float(np.inf)

    parts = map_ranges(a.size, lambda s, e: _scaled_ssq(a[s:e]), a.size, config)
    if not parts:
        return 0.0
    scale = max(p[0] for p in parts)
    if scale == 0.0:
        return 0.0
    ssq = sum(q * (s / scale) ** 2 for s, q in parts if s > 0.0)
    return float(scale * math.sqrt(ssq))


def norm1(v: Union[VectorLike, Matrix2D], config: Optional[KernelConfig] = None) -> float:
    """Sum of absolute values."""
    a = _as_float(_values(v)).ravel()
    parts = map_ranges(a.size, lambda s, e: float(np.abs(a[s:e]).sum()), a.size, config)
    return float(sum(parts))


def norm_inf(v: Union[VectorLike, Matrix2D]) -> float:
    """Largest absolute value (0 for empty input)."""
    a = _values(v).ravel()
    if a.size == 0:
        return 0.0
    return float(np.abs(a).max())


# =============================================================================
# Inner Product
# =============================================================================

def dot(u: VectorLike, v: VectorLike, config: Optional[KernelConfig] = None) -> float:
    """Inner product of two vectors.

    Mathematical Definition:
        u . v = sum(u[i] * v[i])

    Args:
        u: First vector.
        v: Second vector, same size as u.
        config: Kernel configuration (process default if None).

    Returns:
        The inner product as a Python scalar.

    Raises:
        ShapeMismatchError: If the sizes differ.
    """
    a, b = _values(u).ravel(), _values(v).ravel()
    if a.shape != b.shape:
        raise ShapeMismatchError(f"dot: sizes differ ({a.shape[0]} vs {b.shape[0]})")
    parts = map_ranges(a.size, lambda s, e: np.dot(a[s:e], b[s:e]), a.size, config)
    if not parts:
        return 0.0
    return np.sum(parts).item()


# =============================================================================
# Matrix-Vector Product
# =============================================================================

def multiply(
    A: Matrix2D,
    x: Matrix1D,
    y: Optional[Matrix1D] = None,
    alpha: float = 1.0,
    beta: float = 0.0,
    transpose: bool = False,
    config: Optional[KernelConfig] = None,
) -> Matrix1D:
    """General matrix-vector product.

    Computes y := alpha * op(A) x + beta * y, where op(A) is A or A^T.

    Mathematical Definition:
        y[i] = alpha * sum(op(A)[i, j] * x[j] for j) + beta * y[i]

    Algorithm:
        The product is delegated to the layout of A (or, for views, to the
        layout of the backing storage): dense layouts use BLAS row ranges,
        compressed layouts walk their pointer arrays, diagonal storage
        multiplies a single band. The result is scaled and combined with
        the old y afterwards, so x and y may be the same object.

        With beta == 0 the old content of y is never read (NaN in y does
        not propagate).

    Args:
        A: Matrix of shape (m, n).
        x: Vector of size n (m if transpose).
        y: Output vector of size m (n if transpose); a new dense vector
            is allocated if None.
        alpha: Scale of the product.
        beta: Scale of the old y.
        transpose: Use A^T instead of A.
        config: Kernel configuration (process default if None).

    Returns:
        y

    Raises:
        ShapeMismatchError: If x or y does not match op(A).

    Examples:
        >>> a = from_dense([[1.0, 2.0], [3.0, 4.0]], layout='sparse_rc')
        >>> multiply(a, vector([1.0, 1.0])).to_numpy()
        array([3., 7.])
        >>> multiply(a, vector([1.0, 1.0]), transpose=True).to_numpy()
        array([4., 6.])
    """
    if not isinstance(A, Matrix2D):
        raise InvalidInputError(f"multiply expects a Matrix2D, got {type(A).__name__}")
    n_in, n_out = (A.rows, A.columns) if transpose else (A.columns, A.rows)
    op = "A^T" if transpose else "A"
    if x.size != n_in:
        raise ShapeMismatchError(f"{op} is {n_out}x{n_in} but x has size {x.size}")
    if y is None:
        dtype = from_numpy_dtype(np.result_type(A.np_dtype, x.np_dtype))
        y = DenseMatrix1D(n_out, dtype=dtype)
        beta = 0.0
    elif y.size != n_out:
        raise ShapeMismatchError(f"{op} has {n_out} rows but y has size {y.size}")

    result = A._matvec(_values(x), transpose, config)
    if alpha != 1.0:
        result = alpha * result
    if beta != 0.0:
        result = result + beta * _values(y)
    y._assign_array(result)
    y._touch()
    return y


def transpose(A: Matrix2D) -> Matrix2D:
    """Materialized transpose: a new storage holding A^T."""
    return A.view_transpose().copy()
