"""
Dense Storage

Contiguous numpy-backed layouts:

    DenseMatrix1D        vector
    DenseMatrix2D        row-major (C order) matrix
    DenseColumnMatrix2D  column-major (Fortran order) matrix
    DenseLargeMatrix2D   matrix held as a list of row blocks, for shapes
                         whose element count should not live in a single
                         allocation

The products split their work over the kernel worker pool
(:func:`kla.core.parallel.map_ranges`) once the operand is large enough.

Example:
    >>> m = DenseMatrix2D.from_list([[1.0, 2.0], [3.0, 4.0]])
    >>> v = DenseMatrix1D.from_list([1.0, 1.0])
    >>> m.zmult(v).to_numpy()
    array([3., 7.])
"""

from typing import Any, List, Optional, Sequence, TYPE_CHECKING

import numpy as np

from ..core.error import InvalidInputError, check_shape
from ..core.parallel import map_ranges
from ._base import Matrix1D, Matrix2D, _check_dims, _init_dtype
from ._dtypes import from_numpy_dtype
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig

__all__ = [
    'DenseMatrix1D',
    'DenseMatrix2D',
    'DenseColumnMatrix2D',
    'DenseLargeMatrix2D',
]


def _result_dtype(matrix_dtype, x: np.ndarray):
    return np.result_type(matrix_dtype, x.dtype)


# =============================================================================
# Vector
# =============================================================================

class DenseMatrix1D(Matrix1D):
    """
    Dense vector backed by a contiguous numpy array.

    Attributes:
        elements: The backing numpy array (zero-copy, writes are visible)

    Example:
        >>> v = DenseMatrix1D(4)
        >>> v[2] = 5.0
        >>> v.to_numpy()
        array([0., 0., 5., 0.])
    """

    def __init__(self, size: int, dtype=None):
        _check_dims(size)
        self._dtype = _init_dtype(dtype)
        self._elements = np.zeros(size, dtype=self.np_dtype)

    @classmethod
    def from_numpy(cls, values: Any, dtype=None, copy: bool = True) -> 'DenseMatrix1D':
        """
        Wrap or copy a 1-D array.

        Args:
            values: 1-D array-like
            dtype: Element type (inferred from values if None)
            copy: If False and no conversion is needed, share the buffer
        """
        arr = np.asarray(values)
        if arr.ndim != 1:
            raise InvalidInputError(f"expected a 1-D array, got shape {arr.shape}")
        dtype = from_numpy_dtype(arr.dtype) if dtype is None else dtype
        out = cls(0, dtype=dtype)
        out._elements = np.array(arr, dtype=out.np_dtype) if copy \
            else np.asarray(arr, dtype=out.np_dtype)
        return out

    @classmethod
    def from_list(cls, data: Sequence, dtype=None) -> 'DenseMatrix1D':
        """Create from a Python sequence."""
        return cls.from_numpy(np.asarray(data), dtype=dtype)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def size(self) -> int:
        return int(self._elements.shape[0])

    @property
    def elements(self) -> np.ndarray:
        return self._elements

    @property
    def layout(self) -> Layout:
        return Layout.DENSE

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, index: int) -> Any:
        return self._elements[index].item()

    def _set(self, index: int, value: Any) -> None:
        self._elements[index] = value

    def _gather(self, index: np.ndarray) -> np.ndarray:
        return self._elements[index]

    def _scatter(self, index: np.ndarray, values: np.ndarray) -> None:
        self._elements[index] = values

    def to_numpy(self) -> np.ndarray:
        return self._elements.copy()

    def _assign_array(self, values: np.ndarray) -> None:
        values = np.asarray(values)
        check_shape(self.shape, values.shape, "assign")
        self._elements[...] = values

    def _fill(self, value: Any) -> None:
        self._elements.fill(value)

    def _stored_entries(self) -> int:
        return self.size

    def like(self, size: Optional[int] = None) -> 'DenseMatrix1D':
        return DenseMatrix1D(self.size if size is None else size, dtype=self._dtype)


# =============================================================================
# Row-major / Column-major Matrices
# =============================================================================

class DenseMatrix2D(Matrix2D):
    """
    Dense matrix stored in a single row-major numpy array.

    Example:
        >>> m = DenseMatrix2D(2, 3)
        >>> m[1, 2] = 7
        >>> m.info().layout
        <Layout.DENSE: 'dense'>
    """

    _order = 'C'
    _layout = Layout.DENSE

    def __init__(self, rows: int, columns: int, dtype=None):
        _check_dims(rows, columns)
        self._dtype = _init_dtype(dtype)
        self._elements = np.zeros((rows, columns), dtype=self.np_dtype, order=self._order)

    @classmethod
    def from_numpy(cls, values: Any, dtype=None) -> 'DenseMatrix2D':
        """Copy a 2-D array into a new matrix of this layout."""
        arr = np.asarray(values)
        if arr.ndim != 2:
            raise InvalidInputError(f"expected a 2-D array, got shape {arr.shape}")
        dtype = from_numpy_dtype(arr.dtype) if dtype is None else dtype
        out = cls(arr.shape[0], arr.shape[1], dtype=dtype)
        out._assign_array(arr)
        return out

    @classmethod
    def from_list(cls, data: Sequence[Sequence], dtype=None) -> 'DenseMatrix2D':
        """Create from nested Python lists (one list per row)."""
        return cls.from_numpy(np.asarray(data), dtype=dtype)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def rows(self) -> int:
        return int(self._elements.shape[0])

    @property
    def columns(self) -> int:
        return int(self._elements.shape[1])

    @property
    def elements(self) -> np.ndarray:
        return self._elements

    @property
    def layout(self) -> Layout:
        return self._layout

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        return self._elements[row, column].item()

    def _set(self, row: int, column: int, value: Any) -> None:
        self._elements[row, column] = value

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        return self._elements[rows, cols]

    def _scatter(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        self._elements[rows, cols] = values

    def to_numpy(self) -> np.ndarray:
        return np.array(self._elements, order=self._order)

    def _assign_array(self, values: np.ndarray) -> None:
        values = np.asarray(values)
        check_shape(self.shape, values.shape, "assign")
        self._elements[...] = values

    def _fill(self, value: Any) -> None:
        self._elements.fill(value)

    def _stored_entries(self) -> int:
        return self.size

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> 'DenseMatrix2D':
        return type(self)(
            self.rows if rows is None else rows,
            self.columns if columns is None else columns,
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
        a = self._elements.T if transpose else self._elements
        out_len = a.shape[0]
        dtype = _result_dtype(a.dtype, x)
        if out_len == 0:
            return np.zeros(0, dtype=dtype)
        parts = map_ranges(out_len, lambda s, e: a[s:e] @ x, self.size, config)
        return np.concatenate(parts).astype(dtype, copy=False)


class DenseColumnMatrix2D(DenseMatrix2D):
    """
    Dense matrix stored in a single column-major numpy array.

    Same behavior as :class:`DenseMatrix2D`; only the memory order (and
    therefore the cost of row versus column traversal) differs.
    """

    _order = 'F'
    _layout = Layout.DENSE_COLUMN


# =============================================================================
# Blocked Matrix
# =============================================================================

# Default number of elements per row block
_BLOCK_ELEMENTS = 1 << 20


class DenseLargeMatrix2D(Matrix2D):
    """
    Dense matrix held as a list of row blocks.

    Each block is a row-major array of at most `block_rows` rows. Cell
    (i, j) lives in block ``i // block_rows`` at row ``i % block_rows``.

    Args:
        rows: Number of rows
        columns: Number of columns
        dtype: Element type
        block_rows: Rows per block (default sized to ~1M elements per block)
    """

    def __init__(self, rows: int, columns: int, dtype=None, block_rows: Optional[int] = None):
        _check_dims(rows, columns)
        if block_rows is None:
            block_rows = max(1, _BLOCK_ELEMENTS // max(columns, 1))
        if block_rows < 1:
            raise InvalidInputError(f"block_rows must be >= 1, got {block_rows}")
        self._dtype = _init_dtype(dtype)
        self._rows = rows
        self._columns = columns
        self._block_rows = block_rows
        self._blocks: List[np.ndarray] = [
            np.zeros((min(block_rows, rows - start), columns), dtype=self.np_dtype)
            for start in range(0, rows, block_rows)
        ]

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def columns(self) -> int:
        return self._columns

    @property
    def block_rows(self) -> int:
        return self._block_rows

    @property
    def num_blocks(self) -> int:
        return len(self._blocks)

    @property
    def layout(self) -> Layout:
        return Layout.DENSE_LARGE

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        b, r = divmod(row, self._block_rows)
        return self._blocks[b][r, column].item()

    def _set(self, row: int, column: int, value: Any) -> None:
        b, r = divmod(row, self._block_rows)
        self._blocks[b][r, column] = value

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        rows, cols = np.asarray(rows), np.asarray(cols)
        out = np.empty(rows.shape, dtype=self.np_dtype)
        block_of, row_in = np.divmod(rows, self._block_rows)
        for b in np.unique(block_of):
            mask = block_of == b
            out[mask] = self._blocks[b][row_in[mask], cols[mask]]
        return out

    def _scatter(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        rows, cols = np.asarray(rows), np.asarray(cols)
        values = np.broadcast_to(self._cast_array(values), rows.shape)
        block_of, row_in = np.divmod(rows, self._block_rows)
        for b in np.unique(block_of):
            mask = block_of == b
            self._blocks[b][row_in[mask], cols[mask]] = values[mask]

    def to_numpy(self) -> np.ndarray:
        if not self._blocks:
            return np.zeros((self._rows, self._columns), dtype=self.np_dtype)
        return np.vstack(self._blocks)

    def _assign_array(self, values: np.ndarray) -> None:
        values = np.asarray(values)
        check_shape(self.shape, values.shape, "assign")
        for b, block in enumerate(self._blocks):
            start = b * self._block_rows
            block[...] = values[start:start + block.shape[0]]

    def _fill(self, value: Any) -> None:
        for block in self._blocks:
            block.fill(value)

    def _stored_entries(self) -> int:
        return self.size

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> 'DenseLargeMatrix2D':
        rows = self._rows if rows is None else rows
        columns = self._columns if columns is None else columns
        block_rows = self._block_rows if columns == self._columns else None
        return DenseLargeMatrix2D(rows, columns, dtype=self._dtype, block_rows=block_rows)

    # =========================================================================
    # Algebra
    # =========================================================================

    def _matvec(
        self,
        x: np.ndarray,
        transpose: bool = False,
        config: Optional['KernelConfig'] = None,
    ) -> np.ndarray:
        dtype = _result_dtype(self.np_dtype, x)
        blocks = self._blocks
        if not blocks:
            return np.zeros(self._columns if transpose else 0, dtype=dtype)

        if not transpose:
            def rows_part(s, e):
                return np.concatenate([blk @ x for blk in blocks[s:e]])
            parts = map_ranges(len(blocks), rows_part, self.size, config)
            return np.concatenate(parts).astype(dtype, copy=False)

        step = self._block_rows

        def cols_part(s, e):
            acc = np.zeros(self._columns, dtype=dtype)
            for b in range(s, e):
                acc += blocks[b].T @ x[b * step:b * step + blocks[b].shape[0]]
            return acc
        parts = map_ranges(len(blocks), cols_part, self.size, config)
        return np.sum(parts, axis=0).astype(dtype, copy=False)
