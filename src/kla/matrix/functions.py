"""
Elementwise Function Factories

Callables for :meth:`assign`. Every function operates on numpy arrays of
cell values, so one call covers a whole storage.

Unary (``m.assign(fn)``):
    identity, abs, square, sqrt, neg, mult(c), div(c), plus(c), minus(c)

Binary (``m.assign(other, fn)``, first argument is the cell of ``m``):
    plus2, minus2, mult2, div2, second,
    plus_mult_second(c)  a + c * b
    plus_mult_first(c)   c * a + b
    minus_mult(c)        a - c * b

Example:
    >>> from kla.matrix import functions as F
    >>> v.assign(F.div(v.zdot(v) ** 0.5))     # normalize in place
    >>> y.assign(x, F.plus_mult_second(2.0))  # y += 2 x
"""

from typing import Callable

import numpy as np

__all__ = [
    'identity', 'abs', 'square', 'sqrt', 'neg',
    'mult', 'div', 'plus', 'minus',
    'plus2', 'minus2', 'mult2', 'div2', 'second',
    'plus_mult_second', 'plus_mult_first', 'minus_mult',
]

Unary = Callable[[np.ndarray], np.ndarray]
Binary = Callable[[np.ndarray, np.ndarray], np.ndarray]


# =============================================================================
# Unary
# =============================================================================

def identity(a: np.ndarray) -> np.ndarray:
    return a


def abs(a: np.ndarray) -> np.ndarray:  # noqa: A001
    return np.abs(a)


def square(a: np.ndarray) -> np.ndarray:
    return a * a


def sqrt(a: np.ndarray) -> np.ndarray:
    return np.sqrt(a)


def neg(a: np.ndarray) -> np.ndarray:
    return -a


def mult(c: float) -> Unary:
    """a -> a * c"""
    return lambda a: a * c


def div(c: float) -> Unary:
    """a -> a / c"""
    return lambda a: a / c


def plus(c: float) -> Unary:
    """a -> a + c"""
    return lambda a: a + c


def minus(c: float) -> Unary:
    """a -> a - c"""
    return lambda a: a - c


# =============================================================================
# Binary
# =============================================================================

def plus2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a + b


def minus2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a - b


def mult2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a * b


def div2(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a / b


def second(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return b


def plus_mult_second(c: float) -> Binary:
    """(a, b) -> a + c * b"""
    return lambda a, b: a + c * b


def plus_mult_first(c: float) -> Binary:
    """(a, b) -> c * a + b"""
    return lambda a, b: c * a + b


def minus_mult(c: float) -> Binary:
    """(a, b) -> a - c * b"""
    return lambda a, b: a - c * b
