"""
GLSQR: Generalized LSQR.

Krylov solver for general (rectangular, possibly singular) systems
A x = b, based on the generalized Lanczos bidiagonalization of Saunders,
Simon and Yip ("Two conjugate-gradient-type methods for unsymmetric linear
equations", SIAM J. Numer. Anal. 25, 1988).

Two orthonormal bases are built in lock-step:

    u (length rows):     u_{k+1} tau_{k+1} = A v_k - tau_k u_k - tau_{k-1} u_{k-1}
    v (length columns):  v_{k+1} sigma_{k+1} = A^T u_k - sigma_k v_k - sigma_{k-1} v_{k-1}

The resulting tridiagonal projection is reduced by a running plane
rotation (c, s); phi_hat, the rotated right-hand side, is the norm of the
current residual and drives the iteration monitor. The solution is
accumulated through search directions w:

    w_k = v_k - (psi / rho_{k-1}) w_{k-1} - (gamma / rho_{k-2}) w_{k-2}
    x_k = x_{k-1} + (phi / rho_k) w_k

Breakdown:
    When the new v direction vanishes the v side switches to a degenerate
    mode (:attr:`LanczosState.BREAKDOWN_PENDING`) in which v is renormalized
    once more; a second vanishing direction, or a vanishing u direction,
    ends the iteration with the current iterate. Breakdown is not an error:
    for consistent systems it means the Krylov space is exhausted.

Preconditioning:
    A preconditioner M is applied on the right: the recurrence runs on
    A M^{-1} (and M^{-T} A^T) and the result is mapped back with
    x = M^{-1} y. With the identity preconditioner the method is unchanged.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from enum import Enum
from typing import Optional

import numpy as np

from kla.core.error import InvalidInputError
from kla.math.linalg import dot, multiply, norm2
from kla.matrix import functions as F
from kla.matrix._base import Matrix1D, Matrix2D
from kla.matrix._dense import DenseMatrix1D
from kla.matrix._dtypes import is_float_dtype, machine_epsilon
from kla.solver._base import IterativeSolver, SolverConfig
from kla.solver.monitor import DefaultIterationMonitor
from kla.solver.preconditioner import IdentityPreconditioner

__all__ = ["GLSQR", "LanczosState"]

logger = logging.getLogger("kla.solver")


class LanczosState(Enum):
    """Mode of the v-side Lanczos recurrence."""
    SEMI_ORTHOGONAL = 'semi_orthogonal'
    BREAKDOWN_PENDING = 'breakdown_pending'


class GLSQR(IterativeSolver):
    """
    Generalized LSQR solver.

    ``solve(A, b, x)`` uses x as the starting direction of the v
    recurrence (it is normalized first) and overwrites it with the
    solution.

    Args:
        config: Solver configuration (defaults if None)
        relative_tolerance: Shortcut overriding ``config.relative_tolerance``.
            The default -1 resolves per solve to ``sqrt(eps) * ||A^T b||``.

    Example:
        >>> solver = GLSQR()
        >>> x = km.vector(A.columns)
        >>> x.assign(1.0)
        >>> solver.solve(A, b, x)
        >>> solver.get_residual_norm()
    """

    def __init__(self, config: Optional[SolverConfig] = None,
                 relative_tolerance: Optional[float] = None):
        config = config if config is not None else SolverConfig()
        if relative_tolerance is not None:
            config = replace(config, relative_tolerance=relative_tolerance)
        super().__init__(config)
        self._phi_hat = math.nan
        self._state = LanczosState.SEMI_ORTHOGONAL

    @property
    def residual_norm(self) -> float:
        """Residual norm of the last iterate (|phi_hat|); nan before any solve."""
        return abs(self._phi_hat)

    def get_residual_norm(self) -> float:
        return self.residual_norm

    @property
    def lanczos_state(self) -> LanczosState:
        """Mode of the v recurrence at the end of the last solve."""
        return self._state

    def solve(self, A: Matrix2D, b: Matrix1D, x: Matrix1D) -> Matrix1D:
        """
        Solve A x = b.

        Args:
            A: System matrix (rows x columns), any layout
            b: Right-hand side of size rows
            x: Starting direction of size columns; receives the solution

        Returns:
            x

        Raises:
            InvalidInputError: If x contains NaN or infinite values or has
                an integer element type
            ShapeMismatchError: If the sizes of x or b do not match A
            NotConvergedError: From the iteration monitor (iteration cap,
                divergence); x is left unchanged in that case
        """
        start = x.to_numpy()
        if not np.all(np.isfinite(start)):
            raise InvalidInputError("GLSQR: initial vector contains NaN or infinite values")
        if not is_float_dtype(x.dtype):
            raise InvalidInputError(
                f"GLSQR: solution vector must be float32 or float64, got {x.dtype}"
            )
        self._check_sizes(A, b, x)
        self._prepare_preconditioner(A)
        M = self._preconditioner
        preconditioned = not isinstance(M, IdentityPreconditioner)

        m, n = A.rows, A.columns
        dtype = 'float32' if A.dtype == 'float32' else 'float64'
        eps = machine_epsilon(dtype)

        def vec(size: int) -> DenseMatrix1D:
            return DenseMatrix1D(size, dtype=dtype)

        # Starting directions
        v1 = vec(n).assign(start)
        rho0 = norm2(v1)
        if rho0 != 0.0:
            v1.assign(F.div(rho0))
        elif n > 0:
            logger.warning("GLSQR: zero starting vector, using the normalized ones vector")
            v1.assign(1.0)
            v1.assign(F.div(norm2(v1)))

        phi_hat = norm2(b)
        u1 = vec(m).assign(b)
        if phi_hat != 0.0:
            u1.assign(F.div(phi_hat))

        # Rolling windows: suffix _1 / _2 are one / two steps older
        u0, u_1 = vec(m), vec(m)
        v0, v_1 = vec(n), vec(n)
        w0, w_1, w_2 = vec(n), vec(n), vec(n)
        x0, x_1 = vec(n), vec(n)
        z, z1, t = vec(n), vec(m), vec(n)

        rho0 = rho_1 = 1.0
        c0 = c_1 = -1.0
        s0 = s_1 = 0.0
        state = LanczosState.SEMI_ORTHOGONAL

        monitor = self._monitor
        monitor.set_first()
        if isinstance(monitor, DefaultIterationMonitor) and monitor.is_auto_relative:
            monitor.resolve_relative_tolerance(
                math.sqrt(eps) * norm2(multiply(A, b, transpose=True))
            )

        self._phi_hat = phi_hat
        while not monitor.converged(abs(phi_hat), x0):
            u_1.assign(u0)
            u0.assign(u1)
            v_1.assign(v0)
            v0.assign(v1)
            c_2, c_1 = c_1, c0
            s_2, s_1 = s_1, s0
            x_1.assign(x0)
            w_2.assign(w_1)
            w_1.assign(w0)
            rho_2, rho_1 = rho_1, rho0

            # v side: z = (A M^-1)^T u0 orthogonalized against v_1 (and v0)
            if preconditioned:
                multiply(A, u0, t, transpose=True)
                M.trans_apply(t, z)
            else:
                multiply(A, u0, z, transpose=True)
            sigma_1 = dot(v_1, z)
            z.assign(v_1, F.minus_mult(sigma_1))

            if state is LanczosState.SEMI_ORTHOGONAL:
                sigma0 = dot(v0, z)
                z.assign(v0, F.minus_mult(sigma0))
                sigma1 = norm2(z)
                if sigma1 > eps:
                    v1.assign(z).assign(F.div(sigma1))
                else:
                    state = LanczosState.BREAKDOWN_PENDING
            else:
                sigma0 = norm2(z)
                if sigma0 > eps:
                    v0.assign(z).assign(F.div(sigma0))
                else:
                    break

            # u side: z1 = A M^-1 v0 orthogonalized against u_1 and u0
            if preconditioned:
                M.apply(v0, t)
                multiply(A, t, z1)
            else:
                multiply(A, v0, z1)
            tau_1 = dot(u_1, z1)
            z1.assign(u_1, F.minus_mult(tau_1))
            tau0 = dot(u0, z1)
            z1.assign(u0, F.minus_mult(tau0))
            tau1 = norm2(z1)
            if tau1 > eps:
                u1.assign(z1).assign(F.div(tau1))

            # plane rotation
            gamma = s_2 * tau_1
            psi = -c_1 * c_2 * tau_1 + s_1 * tau0
            rho_hat = -s_1 * c_2 * tau_1 - c_1 * tau0
            rho0 = math.hypot(rho_hat, tau1)
            if rho0 == 0.0:
                break
            c0 = rho_hat / rho0
            s0 = tau1 / rho0
            phi = c0 * phi_hat
            phi_hat = s0 * phi_hat
            self._phi_hat = phi_hat

            # search direction and iterate
            w0.assign(v0)
            w0.assign(w_1, F.minus_mult(psi / rho_1))
            w0.assign(w_2, F.minus_mult(gamma / rho_2))
            x0.assign(x_1)
            x0.assign(w0, F.plus_mult_second(phi / rho0))

            if tau1 <= eps:
                break
            monitor.next()

        self._state = state
        logger.debug(
            "GLSQR finished: %d iterations, residual %.6e, %s",
            monitor.iterations, abs(phi_hat), state.value,
        )

        if preconditioned:
            M.apply(x0, t)
            x.assign(t)
        else:
            x.assign(x0)
        return x
