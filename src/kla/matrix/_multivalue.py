"""
Multi-Value Sparse Storage (RCM / CCM)

SparseRCMMatrix2D and SparseCCMMatrix2D keep one growable entry list per
row (RCM) or per column (CCM). A list may hold several entries for the
same coordinate: :meth:`add` appends without merging, which makes these
layouts cheap to assemble from unordered contributions (finite-element
style accumulation, factorization workspaces).

Semantics:
    get(i, j)       sum of all entries stored for (i, j)
    set(i, j, v)    replaces every entry for (i, j) by a single one
    add(i, j, v)    appends an entry for (i, j)
    canonicalize()  sorts each line, merges duplicates, drops zeros

Example:
    >>> m = SparseRCMMatrix2D(3, 3)
    >>> m.add(0, 1, 1.0)
    >>> m.add(0, 1, 2.0)
    >>> m[0, 1]
    3.0
    >>> m.line_size(0)
    2
"""

from typing import Any, Callable, List, Optional, Tuple, TYPE_CHECKING

import numpy as np
import scipy.sparse as sp

from ..core.error import check_index, check_shape
from ._base import Matrix2D, _accumulate, _check_dims, _init_dtype
from ._dtypes import from_numpy_dtype
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig

__all__ = ['SparseRCMMatrix2D', 'SparseCCMMatrix2D']


class _MultiValueMatrix2D(Matrix2D):
    """Per-line entry lists; subclasses fix the major axis."""

    _row_major: bool = True

    def __init__(self, rows: int, columns: int, dtype=None):
        _check_dims(rows, columns)
        self._dtype = _init_dtype(dtype)
        self._rows = rows
        self._columns = columns
        n_major = rows if self._row_major else columns
        self._line_indices: List[List[int]] = [[] for _ in range(n_major)]
        self._line_values: List[List[Any]] = [[] for _ in range(n_major)]
        self._canonical = True

    @classmethod
    def from_scipy(cls, mat: Any, dtype=None):
        """Build from any scipy.sparse matrix/array (duplicates summed)."""
        converted = sp.csr_matrix(mat) if cls._row_major else sp.csc_matrix(mat)
        converted.sum_duplicates()
        dtype = from_numpy_dtype(converted.dtype) if dtype is None else dtype
        out = cls(converted.shape[0], converted.shape[1], dtype=dtype)
        indptr = converted.indptr
        for k in range(out._n_major):
            lo, hi = indptr[k], indptr[k + 1]
            out._line_indices[k] = converted.indices[lo:hi].tolist()
            out._line_values[k] = converted.data[lo:hi].astype(out.np_dtype).tolist()
        out._prune_all()
        return out

    @classmethod
    def from_matrix(cls, matrix: Matrix2D, dtype=None):
        """
        Copy any matrix into this layout without densifying compressed or
        hash sparse sources.
        """
        if hasattr(matrix, 'to_scipy'):
            return cls.from_scipy(matrix.to_scipy(), dtype=dtype or matrix.dtype)
        out = cls(matrix.rows, matrix.columns, dtype=dtype or matrix.dtype)
        out._assign_array(matrix.to_numpy())
        return out

    def to_scipy(self):
        """Export as scipy.sparse.coo_matrix; duplicates are kept as entries."""
        r, c, v = self._triplets()
        return sp.coo_matrix((v, (r, c)), shape=self.shape)

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
    def is_canonical(self) -> bool:
        """True when no line holds duplicate coordinates and lines are sorted."""
        return self._canonical

    def _to_major(self, row: int, column: int) -> Tuple[int, int]:
        return (row, column) if self._row_major else (column, row)

    def line_size(self, major: int) -> int:
        """Number of entries (duplicates included) stored in one line."""
        check_index(major, self._n_major, "line")
        return len(self._line_indices[major])

    def line(self, major: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Merged (indices, values) of one line, sorted by index, as new arrays.
        """
        check_index(major, self._n_major, "line")
        idx = np.asarray(self._line_indices[major], dtype=np.int64)
        val = np.asarray(self._line_values[major], dtype=self.np_dtype)
        if idx.size == 0:
            return idx, val
        uniq, inverse = np.unique(idx, return_inverse=True)
        sums = np.zeros(uniq.shape[0], dtype=self.np_dtype)
        np.add.at(sums, inverse, val)
        keep = sums != 0
        return uniq[keep], sums[keep]

    def set_line(self, major: int, indices: Any, values: Any) -> None:
        """Replace one line with the given entries."""
        check_index(major, self._n_major, "line")
        indices = np.asarray(indices, dtype=np.int64)
        values = self._cast_array(values)
        check_shape(indices.shape, values.shape, "set_line")
        self._line_indices[major] = indices.tolist()
        self._line_values[major] = values.tolist()
        self._canonical = False
        self._touch()

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        major, minor = self._to_major(row, column)
        total = self._cast(0)
        for k, v in zip(self._line_indices[major], self._line_values[major]):
            if k == minor:
                total = total + v
        return self._cast(total).item()

    def _set(self, row: int, column: int, value: Any) -> None:
        major, minor = self._to_major(row, column)
        value = self._cast(value)
        idx, vals = self._line_indices[major], self._line_values[major]
        keep = [p for p, k in enumerate(idx) if k != minor]
        if len(keep) != len(idx):
            self._line_indices[major] = [idx[p] for p in keep]
            self._line_values[major] = [vals[p] for p in keep]
        if value != 0:
            self._line_indices[major].append(minor)
            self._line_values[major].append(value.item())
            self._canonical = False

    def add(self, row: int, column: int, value: Any) -> None:
        """
        Append an entry for (row, column); existing entries are kept.

        Raises:
            IndexOutOfBoundsError: If either index is out of range
        """
        self._check(row, column)
        major, minor = self._to_major(row, column)
        self._line_indices[major].append(minor)
        self._line_values[major].append(self._cast(value).item())
        self._canonical = False
        self._touch()

    def _triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        sizes = [len(line) for line in self._line_indices]
        major = np.repeat(np.arange(self._n_major, dtype=np.int64), sizes)
        minor = np.fromiter(
            (k for line in self._line_indices for k in line),
            dtype=np.int64, count=int(sum(sizes)),
        )
        values = np.fromiter(
            (v for line in self._line_values for v in line),
            dtype=self.np_dtype, count=int(sum(sizes)),
        )
        if self._row_major:
            return major, minor, values
        return minor, major, values

    def to_numpy(self) -> np.ndarray:
        out = np.zeros((self._rows, self._columns), dtype=self.np_dtype)
        r, c, v = self._triplets()
        np.add.at(out, (r, c), v)
        return out

    def _assign_array(self, values: np.ndarray) -> None:
        values = self._cast_array(values)
        check_shape(self.shape, values.shape, "assign")
        lines = values if self._row_major else values.T
        for k in range(self._n_major):
            nz = np.flatnonzero(lines[k])
            self._line_indices[k] = nz.tolist()
            self._line_values[k] = lines[k][nz].tolist()
        self._canonical = True

    def _fill(self, value: Any) -> None:
        if self._cast(value) == 0:
            for k in range(self._n_major):
                self._line_indices[k] = []
                self._line_values[k] = []
            self._canonical = True
        else:
            super()._fill(value)

    def _apply_unary(self, fn: Callable) -> None:
        if not self._zero_preserving(fn):
            super()._apply_unary(fn)
            return
        # fn applies to the summed cell value, not to each duplicate
        self.canonicalize()
        for k in range(self._n_major):
            if self._line_values[k]:
                vals = self._cast_array(fn(np.asarray(self._line_values[k], dtype=self.np_dtype)))
                self._line_values[k] = vals.tolist()
        self._prune_all()

    def _prune_all(self) -> None:
        for k in range(self._n_major):
            vals = self._line_values[k]
            if any(v == 0 for v in vals):
                idx = self._line_indices[k]
                pairs = [(i, v) for i, v in zip(idx, vals) if v != 0]
                self._line_indices[k] = [i for i, _ in pairs]
                self._line_values[k] = [v for _, v in pairs]

    def canonicalize(self) -> None:
        """Sort every line, merge duplicate coordinates and drop zeros."""
        if self._canonical:
            return
        for k in range(self._n_major):
            idx, vals = self.line(k)
            self._line_indices[k] = idx.tolist()
            self._line_values[k] = vals.tolist()
        self._canonical = True

    def cardinality(self) -> int:
        return int(np.count_nonzero(self.to_numpy()))

    def _stored_entries(self) -> int:
        return sum(len(line) for line in self._line_indices)

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
        r, c, v = self._triplets()
        if transpose:
            r, c = c, r
        out_len = self._columns if transpose else self._rows
        if v.size == 0:
            return np.zeros(out_len, dtype=dtype)
        return _accumulate(r, v * x[c], out_len, dtype)


class SparseRCMMatrix2D(_MultiValueMatrix2D):
    """Row-wise multi-value sparse matrix."""

    _row_major = True

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE_RCM


class SparseCCMMatrix2D(_MultiValueMatrix2D):
    """Column-wise multi-value sparse matrix."""

    _row_major = False

    @property
    def layout(self) -> Layout:
        return Layout.SPARSE_CCM
