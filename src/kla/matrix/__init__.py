"""KLA Matrix Module.

Multi-layout matrix and vector storage with a uniform capability set and
zero-copy views.

Type Hierarchy:

    Matrix1D (ABC)
    ├── DenseMatrix1D                 # Contiguous numpy buffer
    ├── SparseMatrix1D                # index -> value hash
    └── MatrixView1D                  # Rows, columns, parts, strides (internal)
    Matrix2D (ABC)
    ├── DenseMatrix2D                 # Row-major buffer
    ├── DenseColumnMatrix2D           # Column-major buffer
    ├── DenseLargeMatrix2D            # Row blocks
    ├── DiagonalMatrix2D              # Single diagonal at offset k
    ├── SparseMatrix2D                # (row, col) -> value hash
    ├── SparseRCMatrix2D              # Compressed row
    ├── SparseCCMatrix2D              # Compressed column
    ├── SparseRCMMatrix2D             # Per-row lists, duplicates allowed
    ├── SparseCCMMatrix2D             # Per-column lists, duplicates allowed
    └── MatrixView2D                  # Transpose, parts, strides (internal)

Quick Start:
    >>> import kla.matrix as km
    >>>
    >>> a = km.from_dense([[4, 1], [1, 3]], layout='sparse_rc')
    >>> t = a.view_transpose()        # zero-copy, any layout
    >>> x = km.vector([1.0, 2.0])
    >>> a.zmult(x).to_numpy()
    array([6., 7.])

Ownership:
    - Constructors, copy() and like() produce OWNED storage
    - view_* methods produce VIEW objects that alias their storage
      (writes through a view are visible everywhere)

Key Functions:
    - zeros, identity, vector, from_dense: construction by layout tag
    - from_scipy, to_scipy: scipy interop
"""

# =============================================================================
# Element Types
# =============================================================================
from ._dtypes import (
    DType,
    float32,
    float64,
    int32,
    int64,
    normalize_dtype,
    validate_dtype,
    is_float_dtype,
    is_int_dtype,
    dtype_itemsize,
    to_numpy_dtype,
    from_numpy_dtype,
    machine_epsilon,
)

# =============================================================================
# Layout / Ownership
# =============================================================================
from ._layout import Layout, Ownership, StorageInfo

# =============================================================================
# Storage Classes
# =============================================================================
from ._base import Matrix1D, Matrix2D
from ._dense import DenseMatrix1D, DenseMatrix2D, DenseColumnMatrix2D, DenseLargeMatrix2D
from ._diagonal import DiagonalMatrix2D, diagonal_length
from ._sparse import SparseMatrix1D, SparseMatrix2D
from ._compressed import SparseRCMatrix2D, SparseCCMatrix2D
from ._multivalue import SparseRCMMatrix2D, SparseCCMMatrix2D
from ._view import MatrixView1D, MatrixView2D

# =============================================================================
# Factories
# =============================================================================
from ._factory import (
    zeros,
    identity,
    vector,
    from_dense,
    from_scipy,
    to_scipy,
    ascontiguous,
    LAYOUT_CLASSES,
)

from . import functions

__all__ = [
    # Element types
    'DType', 'float32', 'float64', 'int32', 'int64',
    'normalize_dtype', 'validate_dtype', 'is_float_dtype', 'is_int_dtype',
    'dtype_itemsize', 'to_numpy_dtype', 'from_numpy_dtype', 'machine_epsilon',
    # Layout
    'Layout', 'Ownership', 'StorageInfo',
    # Storage
    'Matrix1D', 'Matrix2D',
    'DenseMatrix1D', 'DenseMatrix2D', 'DenseColumnMatrix2D', 'DenseLargeMatrix2D',
    'DiagonalMatrix2D', 'diagonal_length',
    'SparseMatrix1D', 'SparseMatrix2D',
    'SparseRCMatrix2D', 'SparseCCMatrix2D',
    'SparseRCMMatrix2D', 'SparseCCMMatrix2D',
    'MatrixView1D', 'MatrixView2D',
    # Factories
    'zeros', 'identity', 'vector', 'from_dense', 'from_scipy', 'to_scipy',
    'ascontiguous', 'LAYOUT_CLASSES',
    'functions',
]
