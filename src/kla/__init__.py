"""
KLA - Krylov Linear Algebra

Linear-algebra substrate for iterative solvers:
- Multi-layout matrix storage (dense, diagonal, hash, compressed, multi-value)
- Zero-copy views (transpose, parts, strides, rows, columns) for every layout
- Layout-dispatched algebra kernel with an optional thread pool
- Iteration monitors, preconditioners (identity, ILUT) and the GLSQR solver

Modules:
- core: errors, configuration, worker pool
- matrix: storage layouts, views, factories
- math: norms, inner products, matrix-vector products
- solver: monitors, preconditioners, GLSQR

Architecture:
    ┌──────────────────────────────────────────────┐
    │     GLSQR  ──  IterationMonitor  ──  ILUT    │
    ├──────────────────────────────────────────────┤
    │     kla.math.linalg (norm2, dot, multiply)   │
    ├──────────────────────────────────────────────┤
    │  Matrix2D / Matrix1D  +  MatrixView1D/2D     │
    │  Layout: DENSE | DIAGONAL | SPARSE_RC | ...  │
    └──────────────────────────────────────────────┘

Example:
    >>> import kla
    >>> import kla.matrix as km
    >>>
    >>> A = km.from_dense([[4.0, 1.0], [1.0, 3.0]], layout='sparse_rc')
    >>> b = km.vector([1.0, 2.0])
    >>> x = km.vector([1.0, 1.0])
    >>> kla.GLSQR().solve(A, b, x)
    >>> x.to_numpy()
    array([0.09090909, 0.63636364])
"""

__version__ = '0.1.0'

# Import main modules
from . import core
from . import matrix
from . import math
from . import solver

# Re-export common types
from .core import (
    KLAError,
    ShapeMismatchError,
    IndexOutOfBoundsError,
    InvalidInputError,
    NotConvergedError,
    NotConvergedReason,
    KernelConfig,
    get_config,
    set_num_threads,
    set_default_dtype,
)

from .matrix import (
    # Element types
    DType,
    float32,
    float64,
    int32,
    int64,
    # Layout / ownership
    Layout,
    Ownership,
    # Base classes
    Matrix1D,
    Matrix2D,
    # Factories
    zeros,
    identity,
    vector,
    from_dense,
    from_scipy,
    to_scipy,
)

from .math import norm2, dot, multiply

from .solver import (
    GLSQR,
    ILUT,
    IdentityPreconditioner,
    DefaultIterationMonitor,
    SolverConfig,
)

__all__ = [
    # Version
    '__version__',

    # Modules
    'core',
    'matrix',
    'math',
    'solver',

    # Errors
    'KLAError',
    'ShapeMismatchError',
    'IndexOutOfBoundsError',
    'InvalidInputError',
    'NotConvergedError',
    'NotConvergedReason',

    # Configuration
    'KernelConfig',
    'get_config',
    'set_num_threads',
    'set_default_dtype',

    # Element types
    'DType',
    'float32',
    'float64',
    'int32',
    'int64',

    # Layout
    'Layout',
    'Ownership',
    'Matrix1D',
    'Matrix2D',

    # Factories
    'zeros',
    'identity',
    'vector',
    'from_dense',
    'from_scipy',
    'to_scipy',

    # Kernel
    'norm2',
    'dot',
    'multiply',

    # Solvers
    'GLSQR',
    'ILUT',
    'IdentityPreconditioner',
    'DefaultIterationMonitor',
    'SolverConfig',
]
