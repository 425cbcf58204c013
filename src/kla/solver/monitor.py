"""
Iteration Monitors.

An iteration monitor owns the stopping decision of an iterative solver.
The solver drives it through a small state machine:

    UNINITIALIZED --set_first()--> ITERATING
    ITERATING --converged(r) true--> CONVERGED
    ITERATING --converged(r) raises--> DIVERGED | MAX_ITERATIONS_EXCEEDED
    any state --set_first()--> ITERATING (restart)

The canonical loop is::

    monitor.set_first()
    while not monitor.converged(residual):
        ...one iteration...
        monitor.next()

Failure is reported by raising :class:`NotConvergedError`; the loop body
never has to inspect counters itself.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from kla.core.error import InvalidInputError, NotConvergedError, NotConvergedReason
from kla.matrix._dtypes import machine_epsilon

__all__ = [
    "MonitorState",
    "IterationReporter",
    "LoggingIterationReporter",
    "IterationMonitor",
    "DefaultIterationMonitor",
]

logger = logging.getLogger("kla.solver")


class MonitorState(Enum):
    """Lifecycle of an iteration monitor."""
    UNINITIALIZED = 'uninitialized'
    ITERATING = 'iterating'
    CONVERGED = 'converged'
    DIVERGED = 'diverged'
    MAX_ITERATIONS_EXCEEDED = 'max_iterations_exceeded'


# =============================================================================
# Reporters
# =============================================================================

class IterationReporter(ABC):
    """Observer called with every residual a monitor sees."""

    @abstractmethod
    def monitor(self, residual: float, iteration: int, x: Any = None) -> None:
        ...


class LoggingIterationReporter(IterationReporter):
    """Write each residual to the ``kla.solver`` logger."""

    def __init__(self, level: int = logging.DEBUG, log: Optional[logging.Logger] = None):
        self.level = level
        self.log = log if log is not None else logger

    def monitor(self, residual: float, iteration: int, x: Any = None) -> None:
        self.log.log(self.level, "iteration %d: residual %.6e", iteration, residual)


# =============================================================================
# Monitors
# =============================================================================

class IterationMonitor(ABC):
    """
    Base class holding the iteration counter, the last residual and the
    state. Subclasses implement the actual test in :meth:`_converged`.

    Attributes:
        max_iterations: Iteration cap
        reporter: Optional :class:`IterationReporter`
    """

    def __init__(self, max_iterations: int = 100000, reporter: Optional[IterationReporter] = None):
        if max_iterations < 0:
            raise InvalidInputError(f"max_iterations must be >= 0, got {max_iterations}")
        self.max_iterations = max_iterations
        self.reporter = reporter
        self._iter = 0
        self._residual = math.nan
        self._state = MonitorState.UNINITIALIZED

    # =========================================================================
    # Loop Control
    # =========================================================================

    def set_first(self) -> None:
        """Start (or restart) monitoring."""
        self._iter = 0
        self._residual = math.nan
        self._state = MonitorState.ITERATING

    def is_first(self) -> bool:
        """True before the first call to :meth:`next`."""
        return self._iter == 0

    def next(self) -> None:
        """Advance the iteration counter."""
        self._iter += 1

    def converged(self, residual: float, x: Any = None) -> bool:
        """
        Report a residual norm and test for convergence.

        Args:
            residual: Current residual norm
            x: Current iterate (forwarded to the reporter)

        Returns:
            True if the iteration has converged

        Raises:
            NotConvergedError: On divergence or when the iteration cap is hit
        """
        if self._state is MonitorState.UNINITIALIZED:
            self.set_first()
        residual = float(residual)
        self._residual = residual
        if self.reporter is not None:
            self.reporter.monitor(residual, self._iter, x)
        return self._converged(residual, x)

    @abstractmethod
    def _converged(self, residual: float, x: Any = None) -> bool:
        ...

    def _fail(self, reason: NotConvergedReason) -> None:
        self._state = (
            MonitorState.MAX_ITERATIONS_EXCEEDED
            if reason is NotConvergedReason.ITERATIONS
            else MonitorState.DIVERGED
        )
        logger.debug("monitor stopped: %s at iteration %d", reason.value, self._iter)
        raise NotConvergedError(reason, self._iter, self._residual)

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def iterations(self) -> int:
        """Number of completed iterations."""
        return self._iter

    @property
    def residual(self) -> float:
        """Last reported residual norm (nan before the first report)."""
        return self._residual

    @property
    def state(self) -> MonitorState:
        return self._state

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(state={self._state.value}, "
            f"iterations={self._iter}, residual={self._residual:g})"
        )


class DefaultIterationMonitor(IterationMonitor):
    """
    Relative/absolute/divergence tolerance test.

    Converged when::

        r <= max(rtol * r0, atol)

    where r0 is the first residual reported after :meth:`set_first`.
    Divergence is declared for non-finite r or ``r > dtol * r0``.

    A negative relative tolerance is a sentinel: a solver may resolve it
    for the current run with :meth:`resolve_relative_tolerance`, otherwise
    ``sqrt(eps)`` is used.

    Args:
        max_iterations: Iteration cap (default 100000)
        relative_tolerance: rtol (default 1e-5; negative = auto)
        absolute_tolerance: atol (default 1e-50)
        divergence_tolerance: dtol (default 1e5)
        reporter: Optional residual observer
    """

    def __init__(
        self,
        max_iterations: int = 100000,
        relative_tolerance: float = 1e-5,
        absolute_tolerance: float = 1e-50,
        divergence_tolerance: float = 1e5,
        reporter: Optional[IterationReporter] = None,
    ):
        super().__init__(max_iterations, reporter)
        if absolute_tolerance < 0:
            raise InvalidInputError(f"absolute_tolerance must be >= 0, got {absolute_tolerance}")
        if divergence_tolerance <= 0:
            raise InvalidInputError(
                f"divergence_tolerance must be > 0, got {divergence_tolerance}"
            )
        self.relative_tolerance = relative_tolerance
        self.absolute_tolerance = absolute_tolerance
        self.divergence_tolerance = divergence_tolerance
        self._effective_rtol = relative_tolerance
        self._initial_residual = math.nan

    @property
    def is_auto_relative(self) -> bool:
        """True when the relative tolerance is the auto sentinel."""
        return self.relative_tolerance < 0

    @property
    def effective_relative_tolerance(self) -> float:
        """Relative tolerance used by the current run."""
        return self._effective_rtol

    @property
    def initial_residual(self) -> float:
        return self._initial_residual

    def set_first(self) -> None:
        super().set_first()
        self._effective_rtol = self.relative_tolerance
        self._initial_residual = math.nan

    def resolve_relative_tolerance(self, value: float) -> None:
        """Fix the tolerance of this run if it was configured as auto."""
        if self._effective_rtol < 0:
            self._effective_rtol = float(value)

    def _converged(self, residual: float, x: Any = None) -> bool:
        if math.isnan(self._initial_residual):
            self._initial_residual = residual
            if self._effective_rtol < 0:
                self._effective_rtol = math.sqrt(machine_epsilon('float64'))

        if not math.isfinite(residual):
            self._fail(NotConvergedReason.DIVERGENCE)

        r0 = self._initial_residual
        if residual <= max(self._effective_rtol * r0, self.absolute_tolerance):
            self._state = MonitorState.CONVERGED
            return True

        if residual > self.divergence_tolerance * r0:
            self._fail(NotConvergedReason.DIVERGENCE)

        if self._iter >= self.max_iterations:
            self._fail(NotConvergedReason.ITERATIONS)

        return False
