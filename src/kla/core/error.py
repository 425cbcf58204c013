"""
Error handling for KLA.

Every failure raised by the storage layer, the algebra kernel and the
iterative solvers is a :class:`KLAError` carrying an integer error code.
The concrete subclasses also derive from the matching builtin exception so
callers can keep writing ``except IndexError`` / ``except ValueError``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

# Success
KLA_OK = 0

# General errors (1-9)
KLA_ERROR_UNKNOWN = 1
KLA_ERROR_INTERNAL = 2

# Argument errors (10-19)
KLA_ERROR_INVALID_ARGUMENT = 10
KLA_ERROR_DIMENSION_MISMATCH = 11
KLA_ERROR_INDEX_OUT_OF_BOUNDS = 14

# Type errors (20-29)
KLA_ERROR_TYPE_ERROR = 20
KLA_ERROR_TYPE_MISMATCH = 21

# Numerical errors (50-59)
KLA_ERROR_NUMERICAL_ERROR = 50
KLA_ERROR_DIVISION_BY_ZERO = 51
KLA_ERROR_CONVERGENCE_ERROR = 54


_ERROR_MESSAGES = {
    KLA_OK: "Success",
    KLA_ERROR_UNKNOWN: "Unknown error",
    KLA_ERROR_INTERNAL: "Internal error",
    KLA_ERROR_INVALID_ARGUMENT: "Invalid argument",
    KLA_ERROR_DIMENSION_MISMATCH: "Dimension mismatch",
    KLA_ERROR_INDEX_OUT_OF_BOUNDS: "Index out of bounds",
    KLA_ERROR_TYPE_ERROR: "Type error",
    KLA_ERROR_TYPE_MISMATCH: "Type mismatch",
    KLA_ERROR_NUMERICAL_ERROR: "Numerical error",
    KLA_ERROR_DIVISION_BY_ZERO: "Division by zero",
    KLA_ERROR_CONVERGENCE_ERROR: "Convergence error",
}


# =============================================================================
# Exception Classes
# =============================================================================

class KLAError(Exception):
    """
    Base exception for all KLA errors.
    """

    # Re-export error codes as class attributes for convenience
    OK = KLA_OK
    ERROR_UNKNOWN = KLA_ERROR_UNKNOWN
    ERROR_INTERNAL = KLA_ERROR_INTERNAL
    ERROR_INVALID_ARGUMENT = KLA_ERROR_INVALID_ARGUMENT
    ERROR_DIMENSION_MISMATCH = KLA_ERROR_DIMENSION_MISMATCH
    ERROR_INDEX_OUT_OF_BOUNDS = KLA_ERROR_INDEX_OUT_OF_BOUNDS
    ERROR_TYPE_ERROR = KLA_ERROR_TYPE_ERROR
    ERROR_TYPE_MISMATCH = KLA_ERROR_TYPE_MISMATCH
    ERROR_NUMERICAL_ERROR = KLA_ERROR_NUMERICAL_ERROR
    ERROR_DIVISION_BY_ZERO = KLA_ERROR_DIVISION_BY_ZERO
    ERROR_CONVERGENCE_ERROR = KLA_ERROR_CONVERGENCE_ERROR

    def __init__(self, code: int, message: Optional[str] = None):
        """
        Create KLA exception.

        Args:
            code: Error code (one of the KLA_ERROR_* constants)
            message: Optional detailed message (default text taken from code)
        """
        self.code = code
        if message is None:
            message = _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")
        self.message = message
        super().__init__(f"KLA Error {code}: {message}")

    @classmethod
    def from_code(cls, code: int, context: str = "") -> "KLAError":
        """Create exception from error code with optional context."""
        base_msg = _ERROR_MESSAGES.get(code, "Unknown error")
        msg = f"{context}: {base_msg}" if context else base_msg
        return cls(code, msg)


class ShapeMismatchError(KLAError, ValueError):
    """Operand dimensions disagree."""

    def __init__(self, message: Optional[str] = None):
        KLAError.__init__(self, KLA_ERROR_DIMENSION_MISMATCH, message)


class IndexOutOfBoundsError(KLAError, IndexError):
    """Indexed access beyond the declared shape."""

    def __init__(self, message: Optional[str] = None):
        KLAError.__init__(self, KLA_ERROR_INDEX_OUT_OF_BOUNDS, message)


class InvalidInputError(KLAError, ValueError):
    """Input rejected at entry (non-finite values, bad parameters)."""

    def __init__(self, message: Optional[str] = None):
        KLAError.__init__(self, KLA_ERROR_INVALID_ARGUMENT, message)


class NotConvergedReason(Enum):
    """Why an iterative solver gave up."""
    ITERATIONS = 'iterations'
    DIVERGENCE = 'divergence'
    BREAKDOWN = 'breakdown'


class NotConvergedError(KLAError):
    """
    Raised by an iteration monitor when the solver loop must stop without
    meeting its tolerance.

    Attributes:
        reason: :class:`NotConvergedReason`
        iterations: Iteration count at the time of failure
        residual: Last residual norm reported to the monitor
    """

    def __init__(
        self,
        reason: NotConvergedReason,
        iterations: int,
        residual: float,
        message: Optional[str] = None,
    ):
        self.reason = reason
        self.iterations = iterations
        self.residual = residual
        if message is None:
            message = (
                f"not converged ({reason.value}) after {iterations} "
                f"iterations, residual={residual:g}"
            )
        KLAError.__init__(self, KLA_ERROR_CONVERGENCE_ERROR, message)


# =============================================================================
# Checking Helpers
# =============================================================================

def check_index(index: int, size: int, axis: str = "index") -> int:
    """
    Validate a single index against an axis length.

    Negative indices are rejected rather than wrapped.

    Raises:
        IndexOutOfBoundsError: If index is not in [0, size)
    """
    if index < 0 or index >= size:
        raise IndexOutOfBoundsError(f"{axis} {index} out of range [0, {size})")
    return index


def check_shape(expected, actual, context: str = "") -> None:
    """
    Raise ShapeMismatchError unless the two shapes are identical.
    """
    if tuple(expected) != tuple(actual):
        msg = f"shape {tuple(actual)} does not match {tuple(expected)}"
        raise ShapeMismatchError(f"{context}: {msg}" if context else msg)
