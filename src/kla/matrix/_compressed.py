"""
Compressed Sparse Storage (RC / CC)

SparseRCMatrix2D (compressed row) and SparseCCMatrix2D (compressed column)
share one implementation written in terms of a *major* axis (rows for RC,
columns for CC) and a *minor* axis.

Memory Layout:
    indptr   (n_major + 1)  entries of major line k are
                            [indptr[k], indptr[k + 1])
    indices  (capacity)     minor index of each entry
    data     (capacity)     value of each entry

Only the first ``nnz = indptr[-1]`` slots of indices/data are live; the
remainder is spare capacity so that insertion through ``set`` does not
reallocate on every call.

Invariants (canonical form):
    - minor indices strictly increasing within each major line
    - no duplicate coordinates
    - no explicit zeros

Arrays handed to :meth:`from_arrays` may violate these; ``canonicalize()``
(called by default) restores them by sorting, summing duplicates and
dropping zeros.

Example:
    >>> m = SparseRCMatrix2D.from_scipy(scipy.sparse.random(100, 50, 0.1))
    >>> m.nnz
    500
    >>> m.row_indices(3)
    array([...])
"""

import logging
from typing import Any, Callable, Optional, Tuple, TYPE_CHECKING

import numpy as np
import scipy.sparse as sp

from ..core.error import InvalidInputError, ShapeMismatchError, check_index, check_shape
from ..core.parallel import map_ranges
from ._base import Matrix2D, _accumulate, _check_dims, _init_dtype
from ._dtypes import from_numpy_dtype
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig

__all__ = ['SparseRCMatrix2D', 'SparseCCMatrix2D']

logger = logging.getLogger("kla.matrix")


class _CompressedMatrix2D(Matrix2D):
    """Shared compressed storage; subclasses fix the major axis."""

    _row_major: bool = True

    def __init__(self, rows: int, columns: int, dtype=None, capacity: int = 0):
        _check_dims(rows, columns, capacity)
        self._dtype = _init_dtype(dtype)
        self._rows = rows
        self._columns = columns
        n_major = rows if self._row_major else columns
        self._indptr = np.zeros(n_major + 1, dtype=np.int64)
        self._indices = np.zeros(capacity, dtype=np.int64)
        self._data = np.zeros(capacity, dtype=self.np_dtype)

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_arrays(
        cls,
        data: Any,
        indices: Any,
        indptr: Any,
        shape: Tuple[int, int],
        dtype=None,
        canonicalize: bool = True,
    ):
        """
        Build from raw compressed arrays (copied).

        Args:
            data: Values, one per entry
            indices: Minor index per entry
            indptr: Offsets of each major line, length n_major + 1
            shape: (rows, columns)
            dtype: Element type (inferred from data if None)
            canonicalize: Sort lines, sum duplicates and drop zeros

        Raises:
            ShapeMismatchError: If the arrays are inconsistent with shape
        """
        data = np.asarray(data)
        indices = np.asarray(indices, dtype=np.int64)
        indptr = np.asarray(indptr, dtype=np.int64)
        dtype = from_numpy_dtype(data.dtype) if dtype is None else dtype
        out = cls(shape[0], shape[1], dtype=dtype)
        n_major = out._n_major
        if indptr.shape != (n_major + 1,):
            raise ShapeMismatchError(
                f"indptr length {indptr.shape[0]} does not match {n_major + 1}"
            )
        nnz = int(indptr[-1])
        if indptr[0] != 0 or np.any(np.diff(indptr) < 0) or nnz > min(len(data), len(indices)):
            raise ShapeMismatchError("indptr is not a valid offset array")
        if nnz and (indices[:nnz].min() < 0 or indices[:nnz].max() >= out._n_minor):
            raise InvalidInputError(f"minor index out of range [0, {out._n_minor})")
        out._indptr = indptr.copy()
        out._indices = indices[:nnz].copy()
        out._data = data[:nnz].astype(out.np_dtype)
        if canonicalize:
            out.canonicalize()
        return out

    @classmethod
    def from_scipy(cls, mat: Any, dtype=None):
        """Build from any scipy.sparse matrix/array (converted to CSR/CSC)."""
        converted = sp.csr_matrix(mat) if cls._row_major else sp.csc_matrix(mat)
        return cls.from_arrays(
            converted.data, converted.indices, converted.indptr,
            converted.shape, dtype=dtype,
        )

    def to_scipy(self):
        """Export as scipy.sparse.csr_matrix / csc_matrix (values copied)."""
        nnz = self.nnz
        fmt = sp.csr_matrix if self._row_major else sp.csc_matrix
        return fmt(
            (self._data[:nnz].copy(), self._indices[:nnz].copy(), self._indptr.copy()),
            shape=self.shape,
        )

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None):
        return type(self)(
            self._rows if rows is None else rows,
            self._columns if columns is None else columns,
            dtype=self._dtype,
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
    def _n_major(self) -> int:
        return self._rows if self._row_major else self._columns

    @property
    def _n_minor(self) -> int:
        return self._columns if self._row_major else self._rows

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return int(self._indptr[-1])

    @property
    def capacity(self) -> int:
        """Allocated entry slots."""
        return int(self._indices.shape[0])

    @property
    def indptr(self) -> np.ndarray:
        return self._indptr

    @property
    def indices(self) -> np.ndarray:
        return self._indices[:self.nnz]

    @property
    def data(self) -> np.ndarray:
        return self._data[:self.nnz]

    def _line(self, major: int) -> Tuple[np.ndarray, np.ndarray]:
        start, end = self._indptr[major], self._indptr[major + 1]
        return self._indices[start:end], self._data[start:end]

    def _to_major(self, row: int, column: int) -> Tuple[int, int]:
        return (row, column) if self._row_major else (column, row)

    # =========================================================================
    # Element Access
    # =========================================================================

    def _find(self, major: int, minor: int) -> Tuple[int, bool]:
        start, end = int(self._indptr[major]), int(self._indptr[major + 1])
        pos = start + int(np.searchsorted(self._indices[start:end], minor))
        return pos, pos < end and self._indices[pos] == minor

    def _get(self, row: int, column: int) -> Any:
        pos, found = self._find(*self._to_major(row, column))
        return self._data[pos].item() if found else self._cast(0).item()

    def _set(self, row: int, column: int, value: Any) -> None:
        major, minor = self._to_major(row, column)
        value = self._cast(value)
        pos, found = self._find(major, minor)
        if found:
            if value == 0:
                self._remove(major, pos)
            else:
                self._data[pos] = value
        elif value != 0:
            self._insert(major, pos, minor, value)

    def _insert(self, major: int, pos: int, minor: int, value: Any) -> None:
        nnz = self.nnz
        if nnz == self.capacity:
            self.reserve(max(2 * self.capacity, nnz + 1))
        self._indices[pos + 1:nnz + 1] = self._indices[pos:nnz]
        self._data[pos + 1:nnz + 1] = self._data[pos:nnz]
        self._indices[pos] = minor
        self._data[pos] = value
        self._indptr[major + 1:] += 1

    def _remove(self, major: int, pos: int) -> None:
        nnz = self.nnz
        self._indices[pos:nnz - 1] = self._indices[pos + 1:nnz]
        self._data[pos:nnz - 1] = self._data[pos + 1:nnz]
        self._indptr[major + 1:] -= 1

    def reserve(self, capacity: int) -> None:
        """Grow the entry arrays to hold at least `capacity` entries."""
        if capacity <= self.capacity:
            return
        nnz = self.nnz
        indices = np.zeros(capacity, dtype=np.int64)
        data = np.zeros(capacity, dtype=self.np_dtype)
        indices[:nnz] = self._indices[:nnz]
        data[:nnz] = self._data[:nnz]
        self._indices, self._data = indices, data

    def trim_to_size(self) -> None:
        """Release spare capacity."""
        nnz = self.nnz
        self._indices = self._indices[:nnz].copy()
        self._data = self._data[:nnz].copy()

    def _major_ids(self) -> np.ndarray:
        return np.repeat(np.arange(self._n_major, dtype=np.int64), np.diff(self._indptr))

    def to_numpy(self) -> np.ndarray:
        out = np.zeros((self._rows, self._columns), dtype=self.np_dtype)
        nnz = self.nnz
        major, minor = self._major_ids(), self._indices[:nnz]
        if self._row_major:
            np.add.at(out, (major, minor), self._data[:nnz])
        else:
            np.add.at(out, (minor, major), self._data[:nnz])
        return out

    def _assign_array(self, values: np.ndarray) -> None:
        values = self._cast_array(values)
        check_shape(self.shape, values.shape, "assign")
        lines = values if self._row_major else values.T
        major, minor = np.nonzero(lines)
        self._indptr = np.concatenate(
            ([0], np.cumsum(np.bincount(major, minlength=self._n_major)))
        ).astype(np.int64)
        self._indices = minor.astype(np.int64)
        self._data = lines[major, minor].copy()

    def _fill(self, value: Any) -> None:
        if self._cast(value) == 0:
            self._indptr[:] = 0
        else:
            super()._fill(value)

    def _apply_unary(self, fn: Callable) -> None:
        if not self._zero_preserving(fn):
            super()._apply_unary(fn)
            return
        nnz = self.nnz
        self._data[:nnz] = self._cast_array(fn(self._data[:nnz]))
        self._prune()

    def _prune(self) -> None:
        """Drop explicit zeros in place."""
        nnz = self.nnz
        keep = self._data[:nnz] != 0
        if keep.all():
            return
        major = self._major_ids()[keep]
        self._indices = self._indices[:nnz][keep]
        self._data = self._data[:nnz][keep]
        self._indptr = np.concatenate(
            ([0], np.cumsum(np.bincount(major, minlength=self._n_major)))
        ).astype(np.int64)

    def canonicalize(self) -> None:
        """
        Sort every line by minor index, sum duplicates and drop zeros.
        """
        nnz = self.nnz
        if nnz == 0:
            return
        major = self._major_ids()
        minor = self._indices[:nnz]
        data = self._data[:nnz]
        order = np.lexsort((minor, major))
        major, minor, data = major[order], minor[order], data[order]
        new_run = np.ones(nnz, dtype=bool)
        new_run[1:] = (major[1:] != major[:-1]) | (minor[1:] != minor[:-1])
        starts = np.flatnonzero(new_run)
        merged = np.add.reduceat(data, starts).astype(self.np_dtype)
        major, minor = major[starts], minor[starts]
        keep = merged != 0
        if len(starts) != nnz:
            logger.debug("canonicalize merged %d duplicate entries", nnz - len(starts))
        self._indices = minor[keep]
        self._data = merged[keep]
        self._indptr = np.concatenate(
            ([0], np.cumsum(np.bincount(major[keep], minlength=self._n_major)))
        ).astype(np.int64)

    def cardinality(self) -> int:
        return int(np.count_nonzero(self._data[:self.nnz]))

    def _stored_entries(self) -> int:
        return self.nnz

    # =========================================================================
    # Algebra
    # =========================================================================

    def _major_product(self, x: np.ndarray, dtype, config: Optional['KernelConfig']) -> np.ndarray:
        # y[major] = sum over the line of data * x[minor]
        indptr, indices, data = self._indptr, self._indices, self._data
        n_major = self._n_major

        def part(s, e):
            lo, hi = indptr[s], indptr[e]
            ids = np.repeat(np.arange(e - s), np.diff(indptr[s:e + 1]))
            return _accumulate(ids, data[lo:hi] * x[indices[lo:hi]], e - s, dtype)

        parts = map_ranges(n_major, part, self.nnz, config)
        return np.concatenate(parts) if parts else np.zeros(0, dtype=dtype)

    def _minor_product(self, x: np.ndarray, dtype, config: Optional['KernelConfig']) -> np.ndarray:
        # y[minor] += data * x[major]
        indptr, indices, data = self._indptr, self._indices, self._data
        n_minor = self._n_minor

        def part(s, e):
            lo, hi = indptr[s], indptr[e]
            xs = np.repeat(x[s:e], np.diff(indptr[s:e + 1]))
            return _accumulate(indices[lo:hi], data[lo:hi] * xs, n_minor, dtype)

        parts = map_ranges(self._n_major, part, self.nnz, config)
        return np.sum(parts, axis=0) if parts else np.zeros(n_minor, dtype=dtype)

    def _matvec(
        self,
        x: np.ndarray,
        transpose: bool = False,
        config: Optional['KernelConfig'] = None,
    ) -> np.ndarray:
        dtype = np.result_type(self.np_dtype, x.dtype)
        # RC: A x runs along rows; CC: A^T x runs along columns
        if transpose != self._row_major:
            y = self._major_product(x, dtype, config)
        else:
            y = self._minor_product(x, dtype, config)
        return y.astype(dtype, copy=False)


class SparseRCMatrix2D(_CompressedMatrix2D):
    """
    Compressed sparse row matrix.

    Args:
        rows: Number of rows
        columns: Number of columns
        dtype: Element type
        capacity: Initial entry slots reserved for insertion
    """

    _row_major = True

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE_RC

    def row_indices(self, row: int) -> np.ndarray:
        """Column indices of stored entries in `row` (zero-copy)."""
        check_index(row, self._rows, "row")
        return self._line(row)[0]

    def row_values(self, row: int) -> np.ndarray:
        """Values of stored entries in `row` (zero-copy)."""
        check_index(row, self._rows, "row")
        return self._line(row)[1]


class SparseCCMatrix2D(_CompressedMatrix2D):
    """
    Compressed sparse column matrix.

    Args:
        rows: Number of rows
        columns: Number of columns
        dtype: Element type
        capacity: Initial entry slots reserved for insertion
    """

    _row_major = False

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE_CC

    def col_indices(self, column: int) -> np.ndarray:
        """Row indices of stored entries in `column` (zero-copy)."""
        check_index(column, self._columns, "column")
        return self._line(column)[0]

    def col_values(self, column: int) -> np.ndarray:
        """Values of stored entries in `column` (zero-copy)."""
        check_index(column, self._columns, "column")
        return self._line(column)[1]
