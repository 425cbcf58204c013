"""
Matrix Base Classes

This module defines the abstract base classes for the KLA storage type
system. Every physical layout (dense, diagonal, hash, compressed,
multi-value) implements the same small capability set, and everything
above the storage layer (views, the algebra kernel, the solvers) is written
against that capability set only.

Type Hierarchy:

    Matrix1D (ABC)
    ├── DenseMatrix1D
    ├── SparseMatrix1D
    └── MatrixView1D            (row/column/stride views, zero-copy)
    Matrix2D (ABC)
    ├── DenseMatrix2D, DenseColumnMatrix2D, DenseLargeMatrix2D
    ├── DiagonalMatrix2D
    ├── SparseMatrix2D
    ├── SparseRCMatrix2D, SparseCCMatrix2D
    ├── SparseRCMMatrix2D, SparseCCMMatrix2D
    └── MatrixView2D            (transpose/part/stride views, zero-copy)

Capability set (what a layout must provide):

    _get / _set           unchecked element access
    like                  empty storage of the same layout
    _matvec               y = op(A) x on raw numpy vectors (2-D only)

Everything else (bounds checking, assign, copy, views, gather/scatter)
has a generic implementation that layouts override when they can do
better.

Example:

    for mat in [dense, diagonal, csr, csc]:
        y = mat.zmult(x)              # same call, layout-specific kernel
        t = mat.view_transpose()      # zero-copy view for every layout
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple, Union, TYPE_CHECKING

import numpy as np

from ..core.error import (
    IndexOutOfBoundsError,
    InvalidInputError,
    check_index,
    check_shape,
)
from ._dtypes import resolve_dtype, to_numpy_dtype
from ._layout import Layout, Ownership, StorageInfo

if TYPE_CHECKING:
    from ..core.config import KernelConfig
    from ._view import MatrixView1D, MatrixView2D

__all__ = [
    'Matrix1D',
    'Matrix2D',
]


def _is_scalar(value: Any) -> bool:
    return np.isscalar(value) or (isinstance(value, np.ndarray) and value.ndim == 0)


class _StorageMixin(ABC):
    """Element type handling and assign dispatch shared by 1-D and 2-D."""

    _dtype: str
    _version = 0

    # =========================================================================
    # Element Type
    # =========================================================================

    @property
    def dtype(self) -> str:
        """Element type string ('float32', 'float64', 'int32', 'int64')."""
        return self._dtype

    @property
    def np_dtype(self) -> type:
        """numpy scalar type of the elements."""
        return to_numpy_dtype(self._dtype)

    def _cast(self, value: Any) -> Any:
        return self.np_dtype(value)

    def _cast_array(self, values: Any) -> np.ndarray:
        return np.asarray(values).astype(self.np_dtype, copy=False)

    @property
    def is_view(self) -> bool:
        """Whether this object aliases another storage."""
        return False

    @property
    @abstractmethod
    def layout(self) -> Layout:
        """Physical layout of the backing storage."""

    @property
    def version(self) -> int:
        """
        Modification counter of the backing storage.

        Bumped by set(), assign() and the layout-specific mutators; writes
        made directly into exposed numpy buffers (``elements``, ``data``)
        are not tracked.
        """
        return self._version

    def _touch(self) -> None:
        self._version += 1

    # =========================================================================
    # Assign
    # =========================================================================

    def assign(self, value: Any, func: Optional[Callable] = None):
        """
        Overwrite the values of this object in place.

        Forms:
            assign(scalar)             every cell := scalar
            assign(unary_fn)           every cell := fn(cell)
            assign(other)              every cell := other cell
            assign(other, binary_fn)   every cell := fn(cell, other cell)
            assign(ndarray)            every cell := array cell

        Functions are applied to numpy arrays of values; the factories in
        :mod:`kla.matrix.functions` build suitable callables.

        Returns:
            self, so calls can be chained

        Raises:
            ShapeMismatchError: If `other` does not have the same shape
        """
        if isinstance(value, (Matrix1D, Matrix2D)):
            check_shape(self.shape, value.shape, "assign")
            other = value.to_numpy()
            if func is None:
                self._assign_array(other)
            else:
                self._assign_array(func(self.to_numpy(), other))
            self._touch()
            return self

        if callable(value):
            if func is not None:
                raise InvalidInputError("assign(fn) takes no second function")
            self._apply_unary(value)
            self._touch()
            return self

        if _is_scalar(value):
            if func is not None:
                raise InvalidInputError("assign(scalar) takes no function")
            self._fill(value)
            self._touch()
            return self

        values = np.asarray(value)
        check_shape(self.shape, values.shape, "assign")
        if func is None:
            self._assign_array(values)
        else:
            self._assign_array(func(self.to_numpy(), values))
        self._touch()
        return self

    def _fill(self, value: Any) -> None:
        self._assign_array(np.full(self.shape, value))

    def _apply_unary(self, fn: Callable) -> None:
        self._assign_array(fn(self.to_numpy()))

    def _zero_preserving(self, fn: Callable) -> bool:
        """True when fn maps 0 to 0, so implicit zeros can be skipped."""
        with np.errstate(all='ignore'):
            image = np.asarray(fn(np.zeros(1, dtype=self.np_dtype)))
        return bool(image.size == 1 and image.reshape(-1)[0] == 0)

    @abstractmethod
    def _assign_array(self, values: np.ndarray) -> None:
        """Overwrite every logical cell from a dense array of this shape."""

    @abstractmethod
    def to_numpy(self) -> np.ndarray:
        """Dense numpy copy of the logical values."""

    # =========================================================================
    # Comparison / Introspection
    # =========================================================================

    def cardinality(self) -> int:
        """Number of non-zero cells."""
        return int(np.count_nonzero(self.to_numpy()))

    def equals(self, other: Any, tol: float = 0.0) -> bool:
        """
        Element-wise comparison with another matrix/vector or array.

        Args:
            other: Object of the same shape
            tol: Absolute tolerance (0 means exact)
        """
        other_values = other.to_numpy() if isinstance(other, (Matrix1D, Matrix2D)) \
            else np.asarray(other)
        if tuple(other_values.shape) != tuple(self.shape):
            return False
        mine = self.to_numpy()
        if tol == 0:
            return bool(np.array_equal(mine, other_values))
        return bool(np.allclose(mine, other_values, rtol=0.0, atol=tol))

    def info(self) -> StorageInfo:
        """Storage metadata."""
        return StorageInfo(
            layout=self.layout,
            ownership=Ownership.VIEW if self.is_view else Ownership.OWNED,
            dtype=self._dtype,
            shape=tuple(self.shape),
            nnz=self._stored_entries(),
        )

    def _stored_entries(self) -> int:
        return self.cardinality()


# =============================================================================
# 1-D
# =============================================================================

class Matrix1D(_StorageMixin, ABC):
    """
    Abstract base class for vectors.

    Required Methods (subclasses must implement):
        size, _get(i), _set(i, v), like(size), to_numpy(), _assign_array(v)
    """

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of cells."""
        ...

    @property
    def shape(self) -> Tuple[int]:
        return (self.size,)

    def __len__(self) -> int:
        return self.size

    # =========================================================================
    # Element Access
    # =========================================================================

    @abstractmethod
    def _get(self, index: int) -> Any:
        ...

    @abstractmethod
    def _set(self, index: int, value: Any) -> None:
        ...

    def get(self, index: int) -> Any:
        """
        Return the value at `index`.

        Raises:
            IndexOutOfBoundsError: If index is not in [0, size)
        """
        check_index(index, self.size)
        return self._get(index)

    def set(self, index: int, value: Any) -> None:
        """
        Set the value at `index`.

        Raises:
            IndexOutOfBoundsError: If index is not in [0, size)
        """
        check_index(index, self.size)
        self._set(index, value)
        self._touch()

    def __getitem__(self, index: int) -> Any:
        return self.get(index)

    def __setitem__(self, index: int, value: Any) -> None:
        self.set(index, value)

    # Vectorized access by raw index arrays (no bounds check).
    def _gather(self, index: np.ndarray) -> np.ndarray:
        return np.array([self._get(int(i)) for i in np.asarray(index)], dtype=self.np_dtype)

    def _scatter(self, index: np.ndarray, values: np.ndarray) -> None:
        index = np.asarray(index)
        values = np.broadcast_to(self._cast_array(values), index.shape)
        for i, v in zip(index, values):
            self._set(int(i), v)

    # =========================================================================
    # Construction
    # =========================================================================

    @abstractmethod
    def like(self, size: Optional[int] = None) -> 'Matrix1D':
        """Empty (all zero) vector of the same layout and dtype."""

    def copy(self) -> 'Matrix1D':
        """
        Deep copy of the logical values into a new, independent vector.
        """
        out = self.like(self.size)
        out._assign_array(self.to_numpy())
        return out

    # =========================================================================
    # Views
    # =========================================================================

    def _view_base(self) -> Tuple[Any, Tuple[int, ...], Tuple[int, ...]]:
        """(backing storage, origin, step) of this vector."""
        return self, (0,), (1,)

    def _make_view(self, origin, step, size) -> 'MatrixView1D':
        from ._view import MatrixView1D
        base, _, _ = self._view_base()
        return MatrixView1D(base, tuple(origin), tuple(step), size)

    def view_part(self, index: int, width: int) -> 'MatrixView1D':
        """
        Zero-copy view of cells [index, index + width).

        Raises:
            IndexOutOfBoundsError: If the range exceeds the vector
        """
        if width < 0 or index < 0 or index + width > self.size:
            raise IndexOutOfBoundsError(
                f"part [{index}, {index + width}) out of range [0, {self.size})"
            )
        _, origin, step = self._view_base()
        origin = tuple(o + index * s for o, s in zip(origin, step))
        return self._make_view(origin, step, width)

    def view_strides(self, stride: int) -> 'MatrixView1D':
        """Zero-copy view of every `stride`-th cell."""
        if stride <= 0:
            raise InvalidInputError(f"stride must be positive, got {stride}")
        _, origin, step = self._view_base()
        size = (self.size + stride - 1) // stride if self.size else 0
        return self._make_view(origin, tuple(s * stride for s in step), size)

    def view_flip(self) -> 'MatrixView1D':
        """Zero-copy view with reversed cell order."""
        _, origin, step = self._view_base()
        last = max(self.size - 1, 0)
        origin = tuple(o + last * s for o, s in zip(origin, step))
        return self._make_view(origin, tuple(-s for s in step), self.size)

    # =========================================================================
    # Algebra
    # =========================================================================

    def zdot(self, other: 'Matrix1D') -> float:
        """Inner product with another vector of the same size."""
        from ..math.linalg import dot
        return dot(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size}, dtype={self._dtype})"


# =============================================================================
# 2-D
# =============================================================================

class Matrix2D(_StorageMixin, ABC):
    """
    Abstract base class for matrices.

    Required Methods (subclasses must implement):
        rows, columns, _get(i, j), _set(i, j, v), like(rows, cols),
        to_numpy(), _assign_array(v)

    Optional Overrides:
        _matvec: layout-specific product (default goes through to_numpy())
        like_vector: vector layout matching this matrix layout
    """

    @property
    @abstractmethod
    def rows(self) -> int:
        """Number of rows."""
        ...

    @property
    @abstractmethod
    def columns(self) -> int:
        """Number of columns."""
        ...

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix dimensions (rows, columns)."""
        return (self.rows, self.columns)

    @property
    def size(self) -> int:
        """Total number of cells (rows * columns)."""
        return self.rows * self.columns

    # =========================================================================
    # Element Access
    # =========================================================================

    @abstractmethod
    def _get(self, row: int, column: int) -> Any:
        ...

    @abstractmethod
    def _set(self, row: int, column: int, value: Any) -> None:
        ...

    def _check(self, row: int, column: int) -> None:
        check_index(row, self.rows, "row")
        check_index(column, self.columns, "column")

    def get(self, row: int, column: int) -> Any:
        """
        Return the value at (row, column).

        Raises:
            IndexOutOfBoundsError: If either index is out of range
        """
        self._check(row, column)
        return self._get(row, column)

    def set(self, row: int, column: int, value: Any) -> None:
        """
        Set the value at (row, column).

        Raises:
            IndexOutOfBoundsError: If either index is out of range
        """
        self._check(row, column)
        self._set(row, column, value)
        self._touch()

    def __getitem__(self, key: Tuple[int, int]) -> Any:
        row, column = key
        return self.get(row, column)

    def __setitem__(self, key: Tuple[int, int], value: Any) -> None:
        row, column = key
        self.set(row, column, value)

    def _gather(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        rows, cols = np.asarray(rows), np.asarray(cols)
        if rows.size and 4 * rows.size >= self.size:
            return self.to_numpy()[rows, cols]
        return np.array(
            [self._get(int(i), int(j)) for i, j in zip(rows.ravel(), cols.ravel())],
            dtype=self.np_dtype,
        ).reshape(rows.shape)

    def _scatter(self, rows: np.ndarray, cols: np.ndarray, values: np.ndarray) -> None:
        rows, cols = np.asarray(rows), np.asarray(cols)
        values = np.broadcast_to(self._cast_array(values), rows.shape)
        if rows.size and 4 * rows.size >= self.size:
            dense = self.to_numpy()
            dense[rows, cols] = values
            self._assign_array(dense)
            return
        for i, j, v in zip(rows.ravel(), cols.ravel(), values.ravel()):
            self._set(int(i), int(j), v)

    # =========================================================================
    # Construction
    # =========================================================================

    @abstractmethod
    def like(self, rows: Optional[int] = None, columns: Optional[int] = None) -> 'Matrix2D':
        """Empty (all zero) matrix of the same layout and dtype."""

    def like_vector(self, size: int) -> Matrix1D:
        """Empty vector whose layout matches this matrix (dense or sparse)."""
        if self.layout.is_sparse:
            from ._sparse import SparseMatrix1D
            return SparseMatrix1D(size, dtype=self._dtype)
        from ._dense import DenseMatrix1D
        return DenseMatrix1D(size, dtype=self._dtype)

    def copy(self) -> 'Matrix2D':
        """
        Deep copy of the logical values into a new, independent matrix.
        """
        out = self.like(self.rows, self.columns)
        out._assign_array(self.to_numpy())
        return out

    # =========================================================================
    # Views
    # =========================================================================

    def _view_base(self) -> Tuple['Matrix2D', Tuple[int, int], Tuple[Tuple[int, int], Tuple[int, int]]]:
        """(backing storage, origin, transform) of this matrix.

        A logical cell (i, j) lives at ``origin + transform @ (i, j)`` in
        the backing storage.
        """
        return self, (0, 0), ((1, 0), (0, 1))

    def _make_view(self, origin, transform, rows, columns) -> 'MatrixView2D':
        from ._view import MatrixView2D
        base, _, _ = self._view_base()
        return MatrixView2D(base, origin, transform, rows, columns)

    def view_transpose(self) -> 'MatrixView2D':
        """Zero-copy transposed view."""
        _, origin, ((a, b), (c, d)) = self._view_base()
        return self._make_view(origin, ((b, a), (d, c)), self.columns, self.rows)

    def view_part(self, row: int, column: int, height: int, width: int) -> 'MatrixView2D':
        """
        Zero-copy view of the box [row, row + height) x [column, column + width).

        Raises:
            IndexOutOfBoundsError: If the box exceeds the matrix
        """
        if height < 0 or width < 0:
            raise InvalidInputError(f"negative part size {height}x{width}")
        if row < 0 or row + height > self.rows or column < 0 or column + width > self.columns:
            raise IndexOutOfBoundsError(
                f"part {height}x{width} at ({row}, {column}) exceeds shape {self.shape}"
            )
        _, (r0, c0), ((a, b), (c, d)) = self._view_base()
        origin = (r0 + a * row + b * column, c0 + c * row + d * column)
        return self._make_view(origin, ((a, b), (c, d)), height, width)

    def view_strides(self, row_stride: int, column_stride: int) -> 'MatrixView2D':
        """Zero-copy view of every `row_stride`-th row and `column_stride`-th column."""
        if row_stride <= 0 or column_stride <= 0:
            raise InvalidInputError(
                f"strides must be positive, got ({row_stride}, {column_stride})"
            )
        _, origin, ((a, b), (c, d)) = self._view_base()
        rows = (self.rows + row_stride - 1) // row_stride if self.rows else 0
        cols = (self.columns + column_stride - 1) // column_stride if self.columns else 0
        transform = ((a * row_stride, b * column_stride), (c * row_stride, d * column_stride))
        return self._make_view(origin, transform, rows, cols)

    def view_row(self, row: int) -> 'MatrixView1D':
        """Zero-copy view of one row."""
        from ._view import MatrixView1D
        check_index(row, self.rows, "row")
        base, (r0, c0), ((a, b), (c, d)) = self._view_base()
        return MatrixView1D(base, (r0 + a * row, c0 + c * row), (b, d), self.columns)

    def view_column(self, column: int) -> 'MatrixView1D':
        """Zero-copy view of one column."""
        from ._view import MatrixView1D
        check_index(column, self.columns, "column")
        base, (r0, c0), ((a, b), (c, d)) = self._view_base()
        return MatrixView1D(base, (r0 + b * column, c0 + d * column), (a, c), self.rows)

    def _view_like(self, view: 'MatrixView2D', rows: int, columns: int) -> 'Matrix2D':
        """Storage used to materialize a view of this matrix."""
        return self.like(rows, columns)

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
        Compute op(A) @ x on a raw numpy vector.

        Layouts override this with their own kernel; the default densifies.
        """
        dense = self.to_numpy()
        return (dense.T if transpose else dense) @ x

    def zmult(
        self,
        x: Matrix1D,
        y: Optional[Matrix1D] = None,
        alpha: float = 1.0,
        beta: float = 0.0,
        transpose: bool = False,
    ) -> Matrix1D:
        """y := alpha * op(A) x + beta * y, see :func:`kla.math.linalg.multiply`."""
        from ..math.linalg import multiply
        return multiply(self, x, y, alpha=alpha, beta=beta, transpose=transpose)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(shape={self.shape}, dtype={self._dtype})"
        )


def _check_dims(*dims: int) -> None:
    for d in dims:
        if d < 0:
            raise InvalidInputError(f"dimensions must be non-negative, got {dims}")


def _init_dtype(dtype) -> str:
    return resolve_dtype(dtype)


def _accumulate(ids: np.ndarray, weights: np.ndarray, length: int, dtype) -> np.ndarray:
    """
    out[k] = sum(weights[ids == k]) in `dtype`.

    Floating results use np.bincount; integer results are summed with
    np.add.at so int64 products stay exact beyond 2**53.
    """
    dtype = np.dtype(dtype)
    if dtype.kind == 'f':
        return np.bincount(ids, weights=weights, minlength=length).astype(dtype, copy=False)
    out = np.zeros(length, dtype=dtype)
    np.add.at(out, ids, weights.astype(dtype, copy=False))
    return out
