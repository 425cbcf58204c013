"""
Hash-Based Sparse Storage

SparseMatrix1D and SparseMatrix2D keep only non-zero cells in a dict.
Setting a cell to zero removes its entry, so the dict never holds explicit
zeros and ``cardinality()`` is its length.

The 2-D layout keys entries by the linear index ``row * columns + column``;
it is the natural target for incremental, random-order construction and
for triplet input with duplicates (see :meth:`SparseMatrix2D.from_triplets`).

Example:
    >>> m = SparseMatrix2D.from_triplets(3, 3, [0, 0, 2], [1, 1, 2], [1.0, 2.0, 5.0])
    >>> m[0, 1]
    3.0
    >>> m.cardinality()
    2
"""

from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
import scipy.sparse as sp

from ..core.error import IndexOutOfBoundsError, ShapeMismatchError, check_shape
from ._base import Matrix1D, Matrix2D, _accumulate, _check_dims, _init_dtype
from ._dtypes import from_numpy_dtype
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig

__all__ = ['SparseMatrix1D', 'SparseMatrix2D']


# =============================================================================
# Vector
# =============================================================================

class SparseMatrix1D(Matrix1D):
    """
    Sparse vector holding index -> value for non-zero cells only.
    """

    def __init__(self, size: int, dtype=None):
        _check_dims(size)
        self._dtype = _init_dtype(dtype)
        self._size = size
        self._elements: Dict[int, Any] = {}

    @property
    def size(self) -> int:
        return self._size

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE

    def _get(self, index: int) -> Any:
        return self._cast(self._elements.get(index, 0)).item()

    def _set(self, index: int, value: Any) -> None:
        value = self._cast(value)
        if value == 0:
            self._elements.pop(index, None)
        else:
            self._elements[index] = value

    def entries(self) -> Tuple[np.ndarray, np.ndarray]:
        """Stored (indices, values), sorted by index."""
        if not self._elements:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=self.np_dtype)
        idx = np.fromiter(self._elements.keys(), dtype=np.int64, count=len(self._elements))
        val = np.fromiter(self._elements.values(), dtype=self.np_dtype, count=len(self._elements))
        order = np.argsort(idx, kind='stable')
        return idx[order], val[order]

    def to_numpy(self) -> np.ndarray:
        out = np.zeros(self._size, dtype=self.np_dtype)
        idx, val = self.entries()
        out[idx] = val
        return out

    def _assign_array(self, values: np.ndarray) -> None:
        values = self._cast_array(values)
        check_shape(self.shape, values.shape, "assign")
        nz = np.flatnonzero(values)
        self._elements = dict(zip(nz.tolist(), values[nz]))

    def _fill(self, value: Any) -> None:
        if self._cast(value) == 0:
            self._elements.clear()
        else:
            super()._fill(value)

    def _apply_unary(self, fn: Callable) -> None:
        if not self._zero_preserving(fn):
            super()._apply_unary(fn)
            return
        idx, val = self.entries()
        val = self._cast_array(fn(val))
        keep = val != 0
        self._elements = dict(zip(idx[keep].tolist(), val[keep]))

    def cardinality(self) -> int:
        return len(self._elements)

    def _stored_entries(self) -> int:
        return len(self._elements)

    def like(self, size: Optional[int] = None) -> 'SparseMatrix1D':
        return SparseMatrix1D(self._size if size is None else size, dtype=self._dtype)


# =============================================================================
# Matrix
# =============================================================================

class SparseMatrix2D(Matrix2D):
    """
    Hash-based sparse matrix.

    Entries are keyed by ``row * columns + column``; only non-zero values
    are stored.

    Example:
        >>> m = SparseMatrix2D(1000, 1000)
        >>> m[3, 7] = 2.5
        >>> m.cardinality()
        1
    """

    def __init__(self, rows: int, columns: int, dtype=None):
        _check_dims(rows, columns)
        self._dtype = _init_dtype(dtype)
        self._rows = rows
        self._columns = columns
        self._elements: Dict[int, Any] = {}

    @classmethod
    def from_triplets(
        cls,
        rows: int,
        columns: int,
        row_indices: Sequence[int],
        column_indices: Sequence[int],
        values: Sequence,
        dtype=None,
    ) -> 'SparseMatrix2D':
        """
        Build from (row, column, value) triplets. Duplicate coordinates are
        summed; entries that sum to zero are dropped.

        Raises:
            ShapeMismatchError: If the three sequences differ in length
            IndexOutOfBoundsError: If a coordinate is outside the shape
        """
        ri = np.asarray(row_indices, dtype=np.int64)
        ci = np.asarray(column_indices, dtype=np.int64)
        vals = np.asarray(values)
        if not (ri.shape == ci.shape == vals.shape):
            raise ShapeMismatchError(
                f"triplet lengths differ: {ri.shape[0]}, {ci.shape[0]}, {vals.shape[0]}"
            )
        dtype = from_numpy_dtype(vals.dtype) if dtype is None else dtype
        out = cls(rows, columns, dtype=dtype)
        if ri.size:
            _check_coords(ri, ci, rows, columns)
            keys = ri * columns + ci
            uniq, inverse = np.unique(keys, return_inverse=True)
            sums = np.zeros(uniq.shape[0], dtype=out.np_dtype)
            np.add.at(sums, inverse, vals.astype(out.np_dtype))
            keep = sums != 0
            out._elements = dict(zip(uniq[keep].tolist(), sums[keep]))
        return out

    @classmethod
    def from_scipy(cls, mat: Any, dtype=None) -> 'SparseMatrix2D':
        """Build from any scipy.sparse matrix/array."""
        coo = sp.coo_matrix(mat)
        return cls.from_triplets(
            coo.shape[0], coo.shape[1], coo.row, coo.col, coo.data, dtype=dtype
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        return self._cast(self._elements.get(row * self._columns + column, 0)).item()

    def _set(self, row: int, column: int, value: Any) -> None:
        key = row * self._columns + column
        value = self._cast(value)
        if value == 0:
            self._elements.pop(key, None)
        else:
            self._elements[key] = value

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        keys = np.asarray(rows) * self._columns + np.asarray(cols)
        get = self._elements.get
        return np.fromiter(
            (get(k, 0) for k in keys.ravel().tolist()),
            dtype=self.np_dtype,
            count=keys.size,
        ).reshape(keys.shape)

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Stored (rows, columns, values) in row-major order."""
        n = len(self._elements)
        if n == 0:
            empty = np.zeros(0, dtype=np.int64)
            return empty, empty.copy(), np.zeros(0, dtype=self.np_dtype)
        keys = np.fromiter(self._elements.keys(), dtype=np.int64, count=n)
        vals = np.fromiter(self._elements.values(), dtype=self.np_dtype, count=n)
        order = np.argsort(keys, kind='stable')
        keys, vals = keys[order], vals[order]
        return keys // self._columns, keys % self._columns, vals

    def to_numpy(self) -> np.ndarray:
        out = np.zeros((self._rows, self._columns), dtype=self.np_dtype)
        r, c, v = self.triplets()
        out[r, c] = v
        return out

    def to_scipy(self) -> sp.coo_matrix:
        """Export as scipy.sparse.coo_matrix (values copied)."""
        r, c, v = self.triplets()
        return sp.coo_matrix((v, (r, c)), shape=self.shape)

    def _assign_array(self, values: np.ndarray) -> None:
        values = self._cast_array(values)
        check_shape(self.shape, values.shape, "assign")
        nz = np.flatnonzero(values)
        self._elements = dict(zip(nz.tolist(), values.ravel()[nz]))

    def _fill(self, value: Any) -> None:
        if self._cast(value) == 0:
            self._elements.clear()
        else:
            super()._fill(value)

    def _apply_unary(self, fn: Callable) -> None:
        if not self._zero_preserving(fn):
            super()._apply_unary(fn)
            return
        n = len(self._elements)
        keys = np.fromiter(self._elements.keys(), dtype=np.int64, count=n)
        vals = np.fromiter(self._elements.values(), dtype=self.np_dtype, count=n)
        vals = self._cast_array(fn(vals))
        keep = vals != 0
        self._elements = dict(zip(keys[keep].tolist(), vals[keep]))

    def cardinality(self) -> int:
        return len(self._elements)

    def _stored_entries(self) -> int:
        return len(self._elements)

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> 'SparseMatrix2D':
        return SparseMatrix2D(
            self._rows if rows is None else rows,
            self._columns if columns is None else columns,
            dtype=self._dtype,
        )

    # =========================================================================
    # Algebra
    # =========================================================================

    def _matvec(
        self,
        x: np.ndarray,
        transpose: bool = False,
        config: Optional['KernelConfig'] = None,
    ) -> np.ndarray:
        dtype = np.result_type(self.np_dtype, x.dtype)
        r, c, v = self.triplets()
        if transpose:
            r, c = c, r
        out_len = self._columns if transpose else self._rows
        if v.size == 0:
            return np.zeros(out_len, dtype=dtype)
        return _accumulate(r, v * x[c], out_len, dtype)


def _check_coords(rows: np.ndarray, cols: np.ndarray, n_rows: int, n_cols: int) -> None:
    if rows.min() < 0 or rows.max() >= n_rows:
        raise IndexOutOfBoundsError(f"row index out of range [0, {n_rows})")
    if cols.min() < 0 or cols.max() >= n_cols:
        raise IndexOutOfBoundsError(f"column index out of range [0, {n_cols})")

