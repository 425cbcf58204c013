"""
Preconditioners.

A preconditioner M approximates A. Solvers use it through three calls:

    set_matrix(A)          prepare (factorize) for a given matrix
    apply(b, x)            x := M^{-1} b
    trans_apply(b, x)      x := M^{-T} b

Any object with these three methods is accepted by the solvers; the ABC
below only documents the contract.

Implementations:
    IdentityPreconditioner   M = I
    ILUT                     dual-threshold incomplete LU (Saad's ILUT)
"""

from __future__ import annotations

import heapq
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from kla.core.error import KLAError, InvalidInputError, ShapeMismatchError, check_shape
from kla.matrix._base import Matrix1D, Matrix2D
from kla.matrix._dense import DenseMatrix1D
from kla.matrix._multivalue import SparseRCMMatrix2D

__all__ = [
    "Preconditioner",
    "IdentityPreconditioner",
    "ILUT",
]

logger = logging.getLogger("kla.solver")


def _output(b: Matrix1D, x: Optional[Matrix1D]) -> Matrix1D:
    if x is None:
        return DenseMatrix1D(b.size, dtype=b.dtype if b.dtype.startswith('float') else 'float64')
    check_shape(b.shape, x.shape, "preconditioner")
    return x


class Preconditioner(ABC):
    """Abstract base class for preconditioners."""

    @abstractmethod
    def set_matrix(self, A: Matrix2D) -> None:
        """Prepare the preconditioner for `A`."""

    @abstractmethod
    def apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        """
        Solve M x = b.

        Args:
            b: Right-hand side (not modified)
            x: Output vector; allocated if None

        Returns:
            x
        """

    @abstractmethod
    def trans_apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        """Solve M^T x = b."""


class IdentityPreconditioner(Preconditioner):
    """M = I: apply and trans_apply copy b into x."""

    def set_matrix(self, A: Matrix2D) -> None:
        pass

    def apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        return _output(b, x).assign(b)

    def trans_apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        return _output(b, x).assign(b)


class ILUT(Preconditioner):
    """
    Dual-threshold incomplete LU factorization.

    The factor M = L U (L unit lower, U upper) is computed row by row on a
    row-wise multi-value copy of A. For row i:

    1. Scatter the row into a dense work row w; taui = tau * ||row_i||_2.
    2. For every k < i with w[k] != 0, in increasing k (fill-in included):
       w[k] /= U[k, k]; if |w[k]| <= taui drop it, else
       w[k+1:] -= w[k] * U[k, k+1:].
    3. Drop entries with |w[j]| <= taui, then keep the p largest of the
       L part (j < i) and the p largest of the U part (j > i). The
       diagonal is always kept.

    Args:
        tau: Relative drop tolerance (default 1e-6)
        p: Maximum fill per row and triangle (default 25)

    Raises:
        ShapeMismatchError: If A is not square (in set_matrix)
        KLAError: ERROR_DIVISION_BY_ZERO on a zero pivot (in set_matrix)

    Example:
        >>> m = ILUT(tau=1e-4, p=10)
        >>> m.set_matrix(A)
        >>> z = m.apply(r)          # z ~= A^{-1} r
    """

    def __init__(self, tau: float = 1e-6, p: int = 25):
        if tau < 0:
            raise InvalidInputError(f"tau must be >= 0, got {tau}")
        if p < 0:
            raise InvalidInputError(f"p must be >= 0, got {p}")
        self.tau = tau
        self.p = p
        self._lu: Optional[SparseRCMMatrix2D] = None
        self._lower: List[Tuple[np.ndarray, np.ndarray]] = []
        self._upper: List[Tuple[np.ndarray, np.ndarray]] = []
        self._diag = np.zeros(0)

    @property
    def factor(self) -> Optional[SparseRCMMatrix2D]:
        """Combined L (strict lower) + U factor, or None before set_matrix."""
        return self._lu

    @property
    def size(self) -> int:
        return int(self._diag.shape[0])

    def set_matrix(self, A: Matrix2D) -> None:
        if A.rows != A.columns:
            raise ShapeMismatchError(f"ILUT requires a square matrix, got {A.shape}")
        lu = SparseRCMMatrix2D.from_matrix(A, dtype='float64')
        self._factor(lu)
        self._lu = lu
        logger.debug(
            "ILUT(tau=%g, p=%d): n=%d, nnz(A)=%d, nnz(LU)=%d",
            self.tau, self.p, A.rows, A.cardinality(), lu._stored_entries(),
        )

    def _largest(self, cols: np.ndarray, vals: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if len(cols) > self.p:
            keep = np.sort(np.argsort(-np.abs(vals), kind='stable')[:self.p])
            cols, vals = cols[keep], vals[keep]
        return cols, vals

    def _factor(self, lu: SparseRCMMatrix2D) -> None:
        n = lu.rows
        w = np.zeros(n)
        lower: List[Tuple[np.ndarray, np.ndarray]] = []
        upper: List[Tuple[np.ndarray, np.ndarray]] = []
        diag = np.zeros(n)

        for i in range(n):
            cols, vals = lu.line(i)
            taui = self.tau * float(np.linalg.norm(vals))
            w[cols] = vals
            touched = set(cols.tolist())

            pending = [k for k in touched if k < i]
            heapq.heapify(pending)
            queued = set(pending)
            while pending:
                k = heapq.heappop(pending)
                if w[k] == 0:
                    continue
                lik = w[k] / diag[k]
                if abs(lik) <= taui:
                    w[k] = 0.0
                    continue
                w[k] = lik
                ucols, uvals = upper[k]
                w[ucols] -= lik * uvals
                touched.update(ucols.tolist())
                for j in ucols[ucols < i].tolist():
                    if j not in queued:
                        queued.add(j)
                        heapq.heappush(pending, j)

            idx = np.fromiter(sorted(touched), dtype=np.int64, count=len(touched))
            row = w[idx]
            w[idx] = 0.0

            pivot_at = np.searchsorted(idx, i)
            pivot = row[pivot_at] if pivot_at < len(idx) and idx[pivot_at] == i else 0.0
            if pivot == 0.0:
                raise KLAError.from_code(
                    KLAError.ERROR_DIVISION_BY_ZERO, f"ILUT: zero pivot in row {i}"
                )

            big = np.abs(row) > taui
            lo = (idx < i) & big
            hi = (idx > i) & big
            lcols, lvals = self._largest(idx[lo], row[lo])
            ucols, uvals = self._largest(idx[hi], row[hi])

            lower.append((lcols, lvals))
            upper.append((ucols, uvals))
            diag[i] = pivot
            lu.set_line(
                i,
                np.concatenate((lcols, [i], ucols)),
                np.concatenate((lvals, [pivot], uvals)),
            )

        lu.canonicalize()
        self._lower, self._upper, self._diag = lower, upper, diag

    def _check_ready(self, b: Matrix1D) -> None:
        if self._lu is None:
            raise InvalidInputError("ILUT: set_matrix() must be called before apply()")
        if b.size != self.size:
            raise ShapeMismatchError(f"ILUT: factor is {self.size}x{self.size}, b has size {b.size}")

    def apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        """Solve L U x = b: unit-lower forward, then upper backward substitution."""
        self._check_ready(b)
        y = np.asarray(b.to_numpy(), dtype=np.float64)
        for i in range(self.size):
            cols, vals = self._lower[i]
            if len(cols):
                y[i] -= vals @ y[cols]
        for i in range(self.size - 1, -1, -1):
            cols, vals = self._upper[i]
            if len(cols):
                y[i] -= vals @ y[cols]
            y[i] /= self._diag[i]
        out = _output(b, x)
        out._assign_array(y)
        return out

    def trans_apply(self, b: Matrix1D, x: Optional[Matrix1D] = None) -> Matrix1D:
        """Solve U^T L^T x = b: U^T forward, then L^T backward substitution."""
        self._check_ready(b)
        y = np.asarray(b.to_numpy(), dtype=np.float64)
        for i in range(self.size):
            y[i] /= self._diag[i]
            cols, vals = self._upper[i]
            if len(cols):
                y[cols] -= vals * y[i]
        for i in range(self.size - 1, -1, -1):
            cols, vals = self._lower[i]
            if len(cols):
                y[cols] -= vals * y[i]
        out = _output(b, x)
        out._assign_array(y)
        return out
