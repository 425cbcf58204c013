"""
KLA Math Module.

This module provides the algebra kernel shared by every storage layout:

    - Vector norms and inner products
    - General matrix-vector product (y := alpha op(A) x + beta y)
    - Materialized transpose

Example:
    >>> import kla.math as kmath
    >>> import kla.matrix as km
    >>>
    >>> a = km.from_dense([[2.0, 0.0], [0.0, 3.0]], layout='diagonal')
    >>> y = kmath.multiply(a, km.vector([1.0, 1.0]))
    >>> kmath.norm2(y)
    3.605551275463989
"""

from kla.math.linalg import (
    norm1,
    norm2,
    norm_inf,
    dot,
    multiply,
    transpose,
)

__all__ = [
    "norm1",
    "norm2",
    "norm_inf",
    "dot",
    "multiply",
    "transpose",
]
