"""
KLA Solver Module.

Iterative solvers for A x = b over any storage layout.

Components:
    - Iteration monitors: stopping decisions and residual reporting
    - Preconditioners: identity and dual-threshold ILU (ILUT)
    - GLSQR: generalized LSQR for general rectangular systems

Example:
    >>> from kla.solver import GLSQR, SolverConfig, ILUT
    >>>
    >>> solver = GLSQR(SolverConfig(preconditioner=ILUT(tau=1e-4)))
    >>> solver.solve(A, b, x)
    >>> solver.iteration_monitor.iterations
    12
"""

from kla.solver.monitor import (
    MonitorState,
    IterationMonitor,
    DefaultIterationMonitor,
    IterationReporter,
    LoggingIterationReporter,
)

from kla.solver.preconditioner import (
    Preconditioner,
    IdentityPreconditioner,
    ILUT,
)

from kla.solver._base import SolverConfig, IterativeSolver
from kla.solver.glsqr import GLSQR, LanczosState

__all__ = [
    # Monitors
    "MonitorState",
    "IterationMonitor",
    "DefaultIterationMonitor",
    "IterationReporter",
    "LoggingIterationReporter",
    # Preconditioners
    "Preconditioner",
    "IdentityPreconditioner",
    "ILUT",
    # Solvers
    "SolverConfig",
    "IterativeSolver",
    "GLSQR",
    "LanczosState",
]
