"""
KLA Core - errors, configuration and kernel worker pool.

Usage:
    >>> from kla.core import get_config, set_num_threads, KLAError
    >>> set_num_threads(4)
    >>> get_config().kernel.num_threads
    4
"""

from .error import (
    KLAError,
    ShapeMismatchError,
    IndexOutOfBoundsError,
    InvalidInputError,
    NotConvergedError,
    NotConvergedReason,
    check_index,
    check_shape,
    # Error codes
    KLA_OK,
    KLA_ERROR_UNKNOWN,
    KLA_ERROR_INTERNAL,
    KLA_ERROR_INVALID_ARGUMENT,
    KLA_ERROR_DIMENSION_MISMATCH,
    KLA_ERROR_INDEX_OUT_OF_BOUNDS,
    KLA_ERROR_NUMERICAL_ERROR,
    KLA_ERROR_DIVISION_BY_ZERO,
    KLA_ERROR_CONVERGENCE_ERROR,
)

from .config import (
    KernelConfig,
    get_config,
    get_kernel_config,
    set_num_threads,
    set_default_dtype,
)

from .parallel import split_range, map_ranges

__all__ = [
    # Error handling
    "KLAError",
    "ShapeMismatchError",
    "IndexOutOfBoundsError",
    "InvalidInputError",
    "NotConvergedError",
    "NotConvergedReason",
    "check_index",
    "check_shape",
    "KLA_OK",
    "KLA_ERROR_UNKNOWN",
    "KLA_ERROR_INTERNAL",
    "KLA_ERROR_INVALID_ARGUMENT",
    "KLA_ERROR_DIMENSION_MISMATCH",
    "KLA_ERROR_INDEX_OUT_OF_BOUNDS",
    "KLA_ERROR_NUMERICAL_ERROR",
    "KLA_ERROR_DIVISION_BY_ZERO",
    "KLA_ERROR_CONVERGENCE_ERROR",
    # Configuration
    "KernelConfig",
    "get_config",
    "get_kernel_config",
    "set_num_threads",
    "set_default_dtype",
    # Worker pool
    "split_range",
    "map_ranges",
]
