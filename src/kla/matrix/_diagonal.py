"""
Diagonal Storage

DiagonalMatrix2D stores exactly one diagonal, at a fixed offset k:

    k = 0   main diagonal, cells (i, i)
    k > 0   k-th super-diagonal, cells (i, i + k)
    k < 0   |k|-th sub-diagonal, cells (i - k, i)

Every other cell reads as zero and may only be *set* to zero; writing a
non-zero value off the stored diagonal raises InvalidInputError. Unary
``assign`` and scalar fill act on the stored diagonal only.

Diagonal Length:
    The number of stored cells is the geometric length of the diagonal
    inside the rectangle:

        k >= 0:  max(0, min(rows, columns - k))
        k <  0:  max(0, min(rows + k, columns))

    e.g. offset 3 in a 5x5 matrix stores 2 cells: (0, 3) and (1, 4).
"""

from typing import Any, Callable, Optional, TYPE_CHECKING

import numpy as np

from ..core.error import InvalidInputError, check_shape
from ._base import Matrix2D, _check_dims, _init_dtype
from ._dtypes import from_numpy_dtype
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig
    from ._view import MatrixView2D

__all__ = ['DiagonalMatrix2D', 'diagonal_length']


def diagonal_length(rows: int, columns: int, offset: int) -> int:
    """Number of cells on diagonal `offset` of a rows x columns matrix."""
    if offset >= 0:
        return max(0, min(rows, columns - offset))
    return max(0, min(rows + offset, columns))


class DiagonalMatrix2D(Matrix2D):
    """
    Single-diagonal matrix.

    Args:
        rows: Number of rows
        columns: Number of columns
        offset: Diagonal offset k (column - row of the stored cells)
        dtype: Element type

    Example:
        >>> d = DiagonalMatrix2D(5, 5, offset=3)
        >>> d.diagonal_length()
        2
        >>> d[0, 3] = 1.5
        >>> d[0, 0] = 2.0
        Traceback (most recent call last):
        ...
        InvalidInputError: ...
    """

    def __init__(self, rows: int, columns: int, offset: int = 0, dtype=None):
        _check_dims(rows, columns)
        self._dtype = _init_dtype(dtype)
        self._rows = rows
        self._columns = columns
        self._offset = int(offset)
        self._elements = np.zeros(diagonal_length(rows, columns, self._offset), dtype=self.np_dtype)

    @classmethod
    def from_values(cls, values: Any, offset: int = 0, rows: Optional[int] = None,
                    columns: Optional[int] = None, dtype=None) -> 'DiagonalMatrix2D':
        """
        Build a matrix whose stored diagonal holds `values`.

        Without an explicit shape the smallest square matrix is used.
        """
        values = np.asarray(values)
        n = values.shape[0] + abs(int(offset))
        rows = n if rows is None else rows
        columns = n if columns is None else columns
        if dtype is None:
            dtype = from_numpy_dtype(values.dtype)
        out = cls(rows, columns, offset=offset, dtype=dtype)
        check_shape(out._elements.shape, values.shape, "diagonal values")
        out._elements[...] = values
        return out

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
    def offset(self) -> int:
        """Diagonal offset k."""
        return self._offset

    @property
    def elements(self) -> np.ndarray:
        """Stored diagonal (zero-copy)."""
        return self._elements

    @property
    def layout(self) -> Layout:
        return Layout.DIAGONAL

    def diagonal_length(self) -> int:
        """Number of stored cells."""
        return int(self._elements.shape[0])

    def _position(self, rows, cols):
        # index along the diagonal of an on-diagonal cell
        return rows if self._offset >= 0 else cols

    def _diagonal_coords(self):
        pos = np.arange(self.diagonal_length(), dtype=np.int64)
        if self._offset >= 0:
            return pos, pos + self._offset
        return pos - self._offset, pos

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        if column - row == self._offset:
            return self._elements[self._position(row, column)].item()
        return self._cast(0).item()

    def _set(self, row: int, column: int, value: Any) -> None:
        if column - row == self._offset:
            self._elements[self._position(row, column)] = value
        elif self._cast(value) != 0:
            raise InvalidInputError(
                f"cannot store {value} at ({row}, {column}): "
                f"only diagonal {self._offset} is stored"
            )

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        rows, cols = np.asarray(rows), np.asarray(cols)
        out = np.zeros(rows.shape, dtype=self.np_dtype)
        on = (cols - rows) == self._offset
        out[on] = self._elements[self._position(rows[on], cols[on])]
        return out

    def _scatter(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        rows, cols = np.asarray(rows), np.asarray(cols)
        values = np.broadcast_to(self._cast_array(values), rows.shape)
        on = (cols - rows) == self._offset
        if np.any(values[~on] != 0):
            raise InvalidInputError(
                f"cannot store non-zero values off diagonal {self._offset}"
            )
        self._elements[self._position(rows[on], cols[on])] = values[on]

    def to_numpy(self) -> np.ndarray:
        out = np.zeros((self._rows, self._columns), dtype=self.np_dtype)
        r, c = self._diagonal_coords()
        out[r, c] = self._elements
        return out

    def _assign_array(self, values: np.ndarray) -> None:
        values = self._cast_array(values)
        check_shape(self.shape, values.shape, "assign")
        r, c = self._diagonal_coords()
        diag = values[r, c].copy()
        off = values.copy()
        off[r, c] = 0
        if np.any(off != 0):
            raise InvalidInputError(
                f"cannot store non-zero values off diagonal {self._offset}"
            )
        self._elements[...] = diag

    def _fill(self, value: Any) -> None:
        self._elements.fill(value)

    def _apply_unary(self, fn: Callable) -> None:
        self._elements[...] = self._cast_array(fn(self._elements.copy()))

    def cardinality(self) -> int:
        return int(np.count_nonzero(self._elements))

    def _stored_entries(self) -> int:
        return self.diagonal_length()

    def info(self):
        info = super().info()
        info.offset = self._offset
        return info

    # =========================================================================
    # Construction
    # =========================================================================

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> 'DiagonalMatrix2D':
        return DiagonalMatrix2D(
            self._rows if rows is None else rows,
            self._columns if columns is None else columns,
            offset=self._offset,
            dtype=self._dtype,
        )

    def _view_like(self, view: 'MatrixView2D', rows: int, columns: int) -> Matrix2D:
        # Unit-step views of a single diagonal still cover a single diagonal.
        (r0, c0), ((a, b), (c, d)) = view._origin, view._transform
        if (a, b, c, d) == (1, 0, 0, 1):
            return DiagonalMatrix2D(rows, columns, offset=self._offset - c0 + r0, dtype=self._dtype)
        if (a, b, c, d) == (0, 1, 1, 0):
            return DiagonalMatrix2D(rows, columns, offset=c0 - r0 - self._offset, dtype=self._dtype)
        from ._sparse import SparseMatrix2D
        return SparseMatrix2D(rows, columns, dtype=self._dtype)

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
        r, c = self._diagonal_coords()
        if transpose:
            y = np.zeros(self._columns, dtype=dtype)
            y[c] = self._elements * x[r]
        else:
            y = np.zeros(self._rows, dtype=dtype)
            y[r] = self._elements * x[c]
        return y
