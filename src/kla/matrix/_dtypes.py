"""
Data Type Definitions

Provides type-safe element type constants, validation and the mapping onto
numpy dtypes used by every storage layout.
"""

from typing import Union
from enum import Enum

import numpy as np

__all__ = [
    'DType', 'float32', 'float64', 'int32', 'int64',
    'normalize_dtype', 'validate_dtype', 'is_float_dtype', 'is_int_dtype',
    'dtype_itemsize', 'to_numpy_dtype', 'from_numpy_dtype', 'machine_epsilon',
    'resolve_dtype',
]


class DType(Enum):
    """
    KLA element type enumeration.

    Example:
        >>> from kla.matrix import DType, DenseMatrix2D
        >>> m = DenseMatrix2D(3, 3, dtype=DType.float32)
        >>>
        >>> # Or use module-level constants
        >>> import kla.matrix as km
        >>> m = DenseMatrix2D(3, 3, dtype=km.float32)
    """

    float32 = 'float32'
    float64 = 'float64'
    int32 = 'int32'
    int64 = 'int64'

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"DType.{self.name}"


# =============================================================================
# Module-Level Constants (For Clean Syntax)
# =============================================================================

float32 = DType.float32
float64 = DType.float64
int32 = DType.int32
int64 = DType.int64


_NUMPY_MAP = {
    'float32': np.float32,
    'float64': np.float64,
    'int32': np.int32,
    'int64': np.int64,
}


# =============================================================================
# Type Utilities
# =============================================================================

def normalize_dtype(dtype: Union[str, DType]) -> str:
    """
    Normalize dtype to string.

    Args:
        dtype: String, DType enum or numpy dtype

    Returns:
        String dtype

    Example:
        >>> normalize_dtype(DType.float32)
        'float32'
        >>> normalize_dtype('float64')
        'float64'
    """
    if isinstance(dtype, DType):
        return dtype.value
    elif isinstance(dtype, str):
        return dtype
    elif isinstance(dtype, (np.dtype, type)):
        return from_numpy_dtype(dtype)
    else:
        raise TypeError(f"dtype must be str or DType, got {type(dtype)}")


def validate_dtype(dtype: str) -> None:
    """
    Validate dtype string.

    Raises:
        ValueError: If dtype is not supported
    """
    valid = {e.value for e in DType}
    if dtype not in valid:
        raise ValueError(f"Invalid dtype: {dtype}. Valid: {sorted(valid)}")


def resolve_dtype(dtype) -> str:
    """Normalize and validate; None selects the configured default."""
    if dtype is None:
        from ..core.config import get_config
        return get_config().default_dtype
    dtype = normalize_dtype(dtype)
    validate_dtype(dtype)
    return dtype


def is_float_dtype(dtype: Union[str, DType]) -> bool:
    """Check if dtype is floating point."""
    return normalize_dtype(dtype) in ('float32', 'float64')


def is_int_dtype(dtype: Union[str, DType]) -> bool:
    """Check if dtype is integer."""
    return normalize_dtype(dtype) in ('int32', 'int64')


def dtype_itemsize(dtype: Union[str, DType]) -> int:
    """Get size in bytes for dtype."""
    return np.dtype(to_numpy_dtype(dtype)).itemsize


def to_numpy_dtype(dtype: Union[str, DType]) -> type:
    """Map an element type onto the numpy scalar type."""
    dtype_str = normalize_dtype(dtype)
    validate_dtype(dtype_str)
    return _NUMPY_MAP[dtype_str]


def from_numpy_dtype(np_dtype) -> str:
    """
    Map a numpy dtype onto the closest supported element type.

    Unsupported floats widen to float64 and unsupported integers to int64;
    booleans become int32.
    """
    kind = np.dtype(np_dtype)
    if kind == np.float32:
        return 'float32'
    if kind.kind == 'f':
        return 'float64'
    if kind == np.int32:
        return 'int32'
    if kind.kind == 'b':
        return 'int32'
    if kind.kind in 'iu':
        return 'int64'
    raise ValueError(f"Unsupported numpy dtype: {kind}")


def machine_epsilon(dtype: Union[str, DType]) -> float:
    """
    Unit roundoff gap above 1.0 for floating types (integer types use the
    float64 value, since their arithmetic is carried out in float64).
    """
    dtype_str = normalize_dtype(dtype)
    if dtype_str == 'float32':
        return float(np.finfo(np.float32).eps)
    return float(np.finfo(np.float64).eps)
