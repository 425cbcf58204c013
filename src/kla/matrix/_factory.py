"""
Factory Functions

Layout-agnostic constructors. Each takes a :class:`Layout` tag (or its
string value) and returns a storage of the matching class, so code that
does not care about the physical layout never imports concrete classes.

Example:
    >>> import kla.matrix as km
    >>> a = km.zeros(100, 100, layout='sparse_rc')
    >>> i = km.identity(4, layout=km.Layout.DIAGONAL)
    >>> d = km.from_dense([[1, 0], [0, 2]], layout='sparse')
"""

from typing import Any, Optional, Sequence, Union

import numpy as np
import scipy.sparse as sp

from ..core.error import InvalidInputError
from ._base import Matrix1D, Matrix2D
from ._compressed import SparseCCMatrix2D, SparseRCMatrix2D
from ._dense import DenseColumnMatrix2D, DenseLargeMatrix2D, DenseMatrix1D, DenseMatrix2D
from ._diagonal import DiagonalMatrix2D
from ._dtypes import from_numpy_dtype, resolve_dtype
from ._layout import Layout
from ._multivalue import SparseCCMMatrix2D, SparseRCMMatrix2D
from ._sparse import SparseMatrix1D, SparseMatrix2D

__all__ = [
    'zeros',
    'identity',
    'vector',
    'from_dense',
    'from_scipy',
    'to_scipy',
    'ascontiguous',
    'LAYOUT_CLASSES',
]

LAYOUT_CLASSES = {
    Layout.DENSE: DenseMatrix2D,
    Layout.DENSE_COLUMN: DenseColumnMatrix2D,
    Layout.DENSE_LARGE: DenseLargeMatrix2D,
    Layout.DIAGONAL: DiagonalMatrix2D,
    Layout.SPARSE: SparseMatrix2D,
    Layout.SPARSE_RC: SparseRCMatrix2D,
    Layout.SPARSE_CC: SparseCCMatrix2D,
    Layout.SPARSE_RCM: SparseRCMMatrix2D,
    Layout.SPARSE_CCM: SparseCCMMatrix2D,
}


def _layout(layout: Union[str, Layout]) -> Layout:
    if isinstance(layout, Layout):
        return layout
    try:
        return Layout(layout)
    except ValueError:
        valid = sorted(l.value for l in Layout)
        raise InvalidInputError(f"unknown layout {layout!r}. Valid: {valid}") from None


def zeros(
    rows: int,
    columns: int,
    layout: Union[str, Layout] = Layout.DENSE,
    dtype=None,
    **kwargs: Any,
) -> Matrix2D:
    """
    Create an all-zero matrix.

    Args:
        rows: Number of rows
        columns: Number of columns
        layout: Storage layout
        dtype: Element type (configured default if None)
        **kwargs: Layout-specific options: ``offset`` (diagonal),
            ``capacity`` (compressed), ``block_rows`` (dense_large)
    """
    cls = LAYOUT_CLASSES[_layout(layout)]
    return cls(rows, columns, dtype=dtype, **kwargs)


def identity(n: int, layout: Union[str, Layout] = Layout.DENSE, dtype=None) -> Matrix2D:
    """n x n identity matrix."""
    layout = _layout(layout)
    dtype = resolve_dtype(dtype)
    if layout is Layout.DIAGONAL:
        out = DiagonalMatrix2D(n, n, offset=0, dtype=dtype)
        out.assign(1)
        return out
    if layout in (Layout.SPARSE_RC, Layout.SPARSE_CC):
        idx = np.arange(n, dtype=np.int64)
        return LAYOUT_CLASSES[layout].from_arrays(
            np.ones(n), idx, np.arange(n + 1, dtype=np.int64), (n, n),
            dtype=dtype,
        )
    out = zeros(n, n, layout=layout, dtype=dtype)
    out._scatter(np.arange(n), np.arange(n), np.ones(n))
    return out


def vector(
    values: Union[int, Sequence, np.ndarray],
    sparse: bool = False,
    dtype=None,
) -> Matrix1D:
    """
    Create a vector.

    Args:
        values: Either a size (all-zero vector) or initial values
        sparse: Return a SparseMatrix1D instead of a DenseMatrix1D
        dtype: Element type (inferred from values, else configured default)
    """
    if isinstance(values, (int, np.integer)):
        cls = SparseMatrix1D if sparse else DenseMatrix1D
        return cls(int(values), dtype=dtype)
    arr = np.asarray(values)
    if arr.ndim != 1:
        raise InvalidInputError(f"expected 1-D values, got shape {arr.shape}")
    dtype = from_numpy_dtype(arr.dtype) if dtype is None else dtype
    if sparse:
        out = SparseMatrix1D(arr.shape[0], dtype=dtype)
        out.assign(arr)
        return out
    return DenseMatrix1D.from_numpy(arr, dtype=dtype)


def from_dense(
    values: Any,
    layout: Union[str, Layout] = Layout.DENSE,
    dtype=None,
    **kwargs: Any,
) -> Matrix2D:
    """
    Copy a 2-D array-like into a new matrix of the given layout.

    Raises:
        InvalidInputError: If values are not 2-D, or (diagonal layout) hold
            non-zeros off the requested diagonal
    """
    arr = np.asarray(values)
    if arr.ndim != 2:
        raise InvalidInputError(f"expected 2-D values, got shape {arr.shape}")
    dtype = from_numpy_dtype(arr.dtype) if dtype is None else dtype
    out = zeros(arr.shape[0], arr.shape[1], layout=layout, dtype=dtype, **kwargs)
    out._assign_array(arr)
    return out


def from_scipy(mat: Any, layout: Optional[Union[str, Layout]] = None, dtype=None) -> Matrix2D:
    """
    Convert a scipy.sparse matrix/array.

    Without a layout, CSC input maps to SPARSE_CC and everything else to
    SPARSE_RC.
    """
    if not sp.issparse(mat):
        raise InvalidInputError(f"expected a scipy.sparse matrix, got {type(mat).__name__}")
    if layout is None:
        layout = Layout.SPARSE_CC if mat.format == 'csc' else Layout.SPARSE_RC
    cls = LAYOUT_CLASSES[_layout(layout)]
    if hasattr(cls, 'from_scipy'):
        return cls.from_scipy(mat, dtype=dtype)
    return from_dense(mat.toarray(), layout=layout, dtype=dtype)


def to_scipy(matrix: Matrix2D):
    """
    Export any matrix as scipy.sparse. Sparse layouts export their own
    entries; other layouts are converted through a dense copy to CSR.
    """
    if hasattr(matrix, 'to_scipy'):
        return matrix.to_scipy()
    return sp.csr_matrix(matrix.to_numpy())


def ascontiguous(v: Matrix1D) -> DenseMatrix1D:
    """Return `v` if it is an owned dense vector, else a dense copy."""
    if isinstance(v, DenseMatrix1D):
        return v
    return DenseMatrix1D.from_numpy(v.to_numpy(), dtype=v.dtype)
