"""
Matrix Views (Zero-Copy)

MatrixView1D/MatrixView2D are zero-copy aliases of a backing storage.
They are produced by the ``view_*`` methods of any matrix or vector and
are not meant to be constructed directly.

Index Mapping:
    A 2-D view stores an origin (r0, c0) and an integer 2x2 transform T;
    the logical cell (i, j) lives at ``(r0, c0) + T @ (i, j)`` in the
    backing storage. Transpose, part and stride views only change origin
    and T, so a view of a view is again a single view of the same backing
    storage (constant-time composition, no chains).

    A 1-D view stores an origin and a step with one component per axis of
    its backing storage, so row/column views of matrices and part/stride
    views of vectors share one class.

Ownership:
    A view keeps a strong reference to its backing storage; the storage
    therefore always outlives the view. Writes through a view land in the
    backing buffer and are visible through every other alias.

Example:
    >>> m = DenseMatrix2D.from_list([[1, 2], [3, 4]])
    >>> t = m.view_transpose()
    >>> t[0, 1] = 30
    >>> m[1, 0]
    30.0
"""

from typing import Any, Optional, Tuple, TYPE_CHECKING

import numpy as np

from ..core.error import check_shape
from ._base import Matrix1D, Matrix2D
from ._layout import Layout

if TYPE_CHECKING:
    from ..core.config import KernelConfig

__all__ = ['MatrixView1D', 'MatrixView2D']


class MatrixView1D(Matrix1D):
    """
    Zero-copy vector view of a vector or of a line through a matrix.

    Attributes:
        base: Backing storage (Matrix1D or Matrix2D, never a view)
        origin: Base coordinates of logical cell 0
        step: Base coordinate increment per logical cell
    """

    def __init__(self, base: Any, origin: Tuple[int, ...], step: Tuple[int, ...], size: int):
        self._base = base
        self._origin = tuple(int(o) for o in origin)
        self._step = tuple(int(s) for s in step)
        self._size = int(size)
        self._dtype = base.dtype

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def size(self) -> int:
        return self._size

    @property
    def base(self) -> Any:
        """Backing storage."""
        return self._base

    @property
    def is_view(self) -> bool:
        return True

    @property
    def layout(self) -> Layout:
        return self._base.layout

    @property
    def version(self) -> int:
        return self._base.version

    def _touch(self) -> None:
        self._base._touch()

    def _view_base(self):
        return self._base, self._origin, self._step

    def _coords(self, index):
        return tuple(o + index * s for o, s in zip(self._origin, self._step))

    def _all_coords(self) -> Tuple[np.ndarray, ...]:
        return self._coords(np.arange(self._size, dtype=np.int64))

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, index: int) -> Any:
        return self._base._get(*self._coords(index))

    def _set(self, index: int, value: Any) -> None:
        self._base._set(*self._coords(index), value)

    def _gather(self, index: np.ndarray) -> np.ndarray:
        return self._base._gather(*self._coords(np.asarray(index, dtype=np.int64)))

    def _scatter(self, index: np.ndarray, values: np.ndarray) -> None:
        self._base._scatter(*self._coords(np.asarray(index, dtype=np.int64)), values)

    def to_numpy(self) -> np.ndarray:
        return self._base._gather(*self._all_coords())

    def _assign_array(self, values: np.ndarray) -> None:
        values = np.asarray(values)
        check_shape(self.shape, values.shape, "assign")
        self._base._scatter(*self._all_coords(), values)

    def _stored_entries(self) -> int:
        return self._base._stored_entries()

    # =========================================================================
    # Construction
    # =========================================================================

    def like(self, size: Optional[int] = None) -> Matrix1D:
        size = self._size if size is None else size
        if isinstance(self._base, Matrix2D):
            return self._base.like_vector(size)
        return self._base.like(size)

    def __repr__(self) -> str:
        return (
            f"MatrixView1D(size={self._size}, base={type(self._base).__name__}, "
            f"origin={self._origin}, step={self._step})"
        )


class MatrixView2D(Matrix2D):
    """
    Zero-copy matrix view (transpose, part, strides) of a 2-D storage.

    Attributes:
        base: Backing storage (never a view)
        origin: Base coordinates of logical cell (0, 0)
        transform: 2x2 integer matrix mapping logical to base offsets
    """

    def __init__(
        self,
        base: Matrix2D,
        origin: Tuple[int, int],
        transform: Tuple[Tuple[int, int], Tuple[int, int]],
        rows: int,
        columns: int,
    ):
        self._base = base
        self._origin = (int(origin[0]), int(origin[1]))
        (a, b), (c, d) = transform
        self._transform = ((int(a), int(b)), (int(c), int(d)))
        self._rows = int(rows)
        self._columns = int(columns)
        self._dtype = base.dtype

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
    def base(self) -> Matrix2D:
        """Backing storage."""
        return self._base

    @property
    def is_view(self) -> bool:
        return True

    @property
    def is_transposed(self) -> bool:
        """Whether logical rows run along base columns."""
        (a, _), (_, d) = self._transform
        return a == 0 and d == 0

    @property
    def layout(self) -> Layout:
        return self._base.layout

    @property
    def version(self) -> int:
        return self._base.version

    def _touch(self) -> None:
        self._base._touch()

    def _view_base(self):
        return self._base, self._origin, self._transform

    def _coords(self, i, j):
        (r0, c0), ((a, b), (c, d)) = self._origin, self._transform
        return r0 + a * i + b * j, c0 + c * i + d * j

    def _grid(self) -> Tuple[np.ndarray, np.ndarray]:
        i, j = np.meshgrid(
            np.arange(self._rows, dtype=np.int64),
            np.arange(self._columns, dtype=np.int64),
            indexing='ij',
        )
        br, bc = self._coords(i, j)
        return br.ravel(), bc.ravel()

    # =========================================================================
    # Element Access
    # =========================================================================

    def _get(self, row: int, column: int) -> Any:
        return self._base._get(*self._coords(row, column))

    def _set(self, row: int, column: int, value: Any) -> None:
        self._base._set(*self._coords(row, column), value)

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        return self._base._gather(*self._coords(np.asarray(rows), np.asarray(cols)))

    def _scatter(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        self._base._scatter(*self._coords(np.asarray(rows), np.asarray(cols)), values)

    def to_numpy(self) -> np.ndarray:
        br, bc = self._grid()
        return self._base._gather(br, bc).reshape(self._rows, self._columns)

    def _assign_array(self, values: np.ndarray) -> None:
        values = np.asarray(values)
        check_shape(self.shape, values.shape, "assign")
        br, bc = self._grid()
        self._base._scatter(br, bc, values.ravel())

    def _stored_entries(self) -> int:
        return self._base._stored_entries()

    def info(self):
        info = super().info()
        info.is_transposed = self.is_transposed
        return info

    # =========================================================================
    # Construction
    # =========================================================================

    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> Matrix2D:
        rows = self._rows if rows is None else rows
        columns = self._columns if columns is None else columns
        return self._base._view_like(self, rows, columns)

    def like_vector(self, size: int) -> Matrix1D:
        return self._base.like_vector(size)

    # =========================================================================
    # Algebra
    # =========================================================================

    def _matvec(
        self,
        x: np.ndarray,
        transpose: bool = False,
        config: Optional['KernelConfig'] = None,
    ) -> np.ndarray:
        """
        Product through the backing layout's own kernel.

        The view's rows and columns are a regular subset of the base's rows
        and columns (swapped for transposed views), so x is embedded into a
        zero vector of base length, the base kernel runs, and the result is
        sampled at the view's indices.
        """
        base = self._base
        (r0, c0), ((a, b), (c, d)) = self._origin, self._transform
        transposed = self.is_transposed
        if transposed:
            # logical row i -> base column c0 + c*i, logical column j -> base row r0 + b*j
            in_base = r0 + b * np.arange(self._columns)
            out_base = c0 + c * np.arange(self._rows)
            base_transpose = True
        else:
            in_base = c0 + d * np.arange(self._columns)
            out_base = r0 + a * np.arange(self._rows)
            base_transpose = False

        if transpose:
            in_base, out_base = out_base, in_base
            base_transpose = not base_transpose

        in_len = base.rows if base_transpose else base.columns
        if len(in_base) == in_len and (in_len == 0 or (in_base[0] == 0 and np.all(np.diff(in_base) == 1))):
            bx = x
        else:
            bx = np.zeros(in_len, dtype=np.result_type(x.dtype, base.np_dtype))
            bx[in_base] = x
        y = base._matvec(bx, base_transpose, config)
        return y[out_base]

    def __repr__(self) -> str:
        return (
            f"MatrixView2D(shape={self.shape}, base={type(self._base).__name__}, "
            f"origin={self._origin}, transform={self._transform})"
        )
