"""
Iterative Solver Base.

:class:`SolverConfig` bundles the knobs every Krylov solver shares
(tolerances, iteration cap, preconditioner, reporter);
:class:`IterativeSolver` holds the resulting monitor and preconditioner and
implements the checks common to all ``solve(A, b, x)`` entry points.
"""

from __future__ import annotations

import logging
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from kla.core.error import InvalidInputError, ShapeMismatchError
from kla.matrix._base import Matrix1D, Matrix2D
from kla.solver.monitor import DefaultIterationMonitor, IterationMonitor, IterationReporter
from kla.solver.preconditioner import IdentityPreconditioner

__all__ = ["SolverConfig", "IterativeSolver"]

logger = logging.getLogger("kla.solver")


@dataclass
class SolverConfig:
    """
    Solver configuration.

    Attributes:
        relative_tolerance: Relative residual reduction; negative selects
            the solver's automatic tolerance
        absolute_tolerance: Absolute residual floor
        divergence_tolerance: Residual growth factor treated as divergence
        max_iterations: Iteration cap
        preconditioner: Object with set_matrix/apply/trans_apply
            (identity if None)
        reporter: Optional :class:`IterationReporter`
    """
    relative_tolerance: float = -1.0
    absolute_tolerance: float = 1e-50
    divergence_tolerance: float = 1e5
    max_iterations: int = 100000
    preconditioner: Optional[Any] = None
    reporter: Optional[IterationReporter] = None

    def make_monitor(self) -> DefaultIterationMonitor:
        """Build the default monitor described by this configuration."""
        return DefaultIterationMonitor(
            max_iterations=self.max_iterations,
            relative_tolerance=self.relative_tolerance,
            absolute_tolerance=self.absolute_tolerance,
            divergence_tolerance=self.divergence_tolerance,
            reporter=self.reporter,
        )


def _is_preconditioner(obj: Any) -> bool:
    return all(callable(getattr(obj, name, None)) for name in ("set_matrix", "apply", "trans_apply"))


class IterativeSolver(ABC):
    """
    Base class for iterative solvers of A x = b.

    The preconditioner is prepared (``set_matrix``) lazily on the first
    solve with a given matrix object and reused for further solves with
    the same object, until its :attr:`~kla.matrix.Matrix2D.version` changes.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        config = config if config is not None else SolverConfig()
        self._config = config
        self._monitor: IterationMonitor = config.make_monitor()
        self.preconditioner = (
            config.preconditioner if config.preconditioner is not None
            else IdentityPreconditioner()
        )

    @property
    def config(self) -> SolverConfig:
        return self._config

    @property
    def iteration_monitor(self) -> IterationMonitor:
        return self._monitor

    @iteration_monitor.setter
    def iteration_monitor(self, monitor: IterationMonitor) -> None:
        if not isinstance(monitor, IterationMonitor):
            raise InvalidInputError(
                f"expected an IterationMonitor, got {type(monitor).__name__}"
            )
        self._monitor = monitor

    @property
    def preconditioner(self) -> Any:
        return self._preconditioner

    @preconditioner.setter
    def preconditioner(self, value: Any) -> None:
        if not _is_preconditioner(value):
            raise InvalidInputError(
                f"{type(value).__name__} lacks set_matrix/apply/trans_apply"
            )
        self._preconditioner = value
        self._prepared_for = None
        self._prepared_version = -1

    def _prepare_preconditioner(self, A: Matrix2D) -> None:
        # keyed on the matrix object and its modification counter
        prepared = self._prepared_for() if self._prepared_for is not None else None
        if prepared is A and self._prepared_version == A.version:
            return
        self._preconditioner.set_matrix(A)
        self._prepared_for = weakref.ref(A)
        self._prepared_version = A.version

    @staticmethod
    def _check_sizes(A: Matrix2D, b: Matrix1D, x: Matrix1D) -> None:
        """
        Raises:
            ShapeMismatchError: If x does not match the columns of A or b
                does not match its rows
        """
        if A.columns != x.size:
            raise ShapeMismatchError(f"A.columns != x.size ({A.columns} != {x.size})")
        if b.size != A.rows:
            raise ShapeMismatchError(f"b.size != A.rows ({b.size} != {A.rows})")

    @abstractmethod
    def solve(self, A: Matrix2D, b: Matrix1D, x: Matrix1D) -> Matrix1D:
        """
        Solve A x = b.

        Args:
            A: System matrix, any layout
            b: Right-hand side
            x: Initial guess / starting direction; overwritten with the
                solution

        Returns:
            x
        """
