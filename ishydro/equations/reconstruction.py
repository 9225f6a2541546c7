"""
Conserved-to-primitive inversion.

Given q = τ (T^{00}, T^{0x}, T^{0y}, T^{0η}, J^0) and the proper time, the
reconstructor recovers (e, n, u^μ) for an arbitrary equation of state by a
Newton iteration on the flow speed v = |T^{0i}| / (T^{00} + P):

    e = T^{00} - M v,   n = J^0 sqrt(1 - v^2),   M = |T^{0i}|.

The iteration is vectorized over all cells; non-converging cells are
reported as RECONSTRUCTION_FAILURE faults.
"""

import numpy as np

from ..core.constants import (
    ENERGY_DENSITY_MIN,
    RECONSTRUCTION_MAX_ITERATIONS,
    RECONSTRUCTION_TOLERANCE,
    SMALL_EPS,
    VELOCITY_MAX,
)
from ..core.eos import EquationOfState
from ..core.faults import FaultKind, NumericalFaultError, faults_from_mask
from ..utils.logging_config import get_logger, physics_logger

logger = get_logger("equations.reconstruction")

# Momentum is clamped to this fraction of T^00 before the solve
MOMENTUM_CLAMP = 1.0 - 1e-10


class Reconstructor:
    """
    Vectorized inversion of the conserved vector.

    Args:
        eos: Equation of state
        max_iterations: Newton iteration cap
        tolerance: Relative convergence threshold on v
    """

    def __init__(
        self,
        eos: EquationOfState,
        max_iterations: int = RECONSTRUCTION_MAX_ITERATIONS,
        tolerance: float = RECONSTRUCTION_TOLERANCE,
    ):
        self.eos = eos
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def invert(self, q: np.ndarray, tau: float, guess_u: np.ndarray | None = None):
        """
        Recover primitive variables.

        Args:
            q: Conserved vector, shape (..., 5), scaled by ``tau``
            tau: Proper-time factor the vector is scaled by (1 in Cartesian)
            guess_u: Four-velocity used to seed the iteration, shape (..., 4)

        Returns:
            Tuple (e, rhob, u) with shapes (...), (...), (..., 4)

        Raises:
            NumericalFaultError: RECONSTRUCTION_FAILURE for NaN input or
                cells where the iteration does not converge
        """
        q = np.asarray(q, dtype=float)
        if tau <= 0:
            raise ValueError(f"tau must be positive, got {tau}")

        t00 = q[..., 0] / tau
        t0i = q[..., 1:4] / tau
        j0 = q[..., 4] / tau

        bad_input = ~np.all(np.isfinite(q), axis=-1)
        if np.any(bad_input):
            self._fail(bad_input, "non-finite conserved vector", t00)

        vacuum = t00 <= ENERGY_DENSITY_MIN
        m = np.sqrt(np.sum(t0i**2, axis=-1))

        # Keep the state physical when momentum exceeds the energy
        too_fast = (m >= t00 * MOMENTUM_CLAMP) & ~vacuum
        if np.any(too_fast):
            scale = np.where(too_fast, t00 * MOMENTUM_CLAMP / np.maximum(m, SMALL_EPS), 1.0)
            t0i = t0i * scale[..., None]
            m = np.where(too_fast, t00 * MOMENTUM_CLAMP, m)
            logger.debug(f"Clamped momentum in {int(np.sum(too_fast))} cells")

        v = self._solve_speed(t00, m, j0, guess_u, ~vacuum & (m > 0))

        e = np.where(vacuum, ENERGY_DENSITY_MIN, t00 - m * v)
        e = np.maximum(e, ENERGY_DENSITY_MIN)
        rhob = np.where(vacuum, 0.0, j0 * np.sqrt(1.0 - v**2))
        p = self.eos.pressure(e, rhob)

        u0 = 1.0 / np.sqrt(1.0 - v**2)
        u = np.zeros((*t00.shape, 4))
        moving = ~vacuum & (m > 0)
        denom = np.where(moving, (e + p) * u0, 1.0)
        u[..., 1:] = np.where(moving[..., None], t0i / denom[..., None], 0.0)
        u[..., 0] = np.sqrt(1.0 + np.sum(u[..., 1:] ** 2, axis=-1))
        return e, rhob, u

    def _solve_speed(self, t00, m, j0, guess_u, active):
        v = np.zeros_like(t00)
        if not np.any(active):
            return v

        v_max = np.minimum(m / np.maximum(t00, SMALL_EPS), VELOCITY_MAX)
        if guess_u is not None:
            guess_u = np.asarray(guess_u, dtype=float)
            v_guess = np.sqrt(np.sum(guess_u[..., 1:] ** 2, axis=-1)) / guess_u[..., 0]
            v = np.clip(np.broadcast_to(v_guess, t00.shape), 0.0, v_max)
        else:
            v = 0.5 * v_max
        v = np.where(active, v, 0.0)

        converged = ~active
        for _ in range(self.max_iterations):
            todo = ~converged
            if not np.any(todo):
                break
            gamma_inv = np.sqrt(1.0 - v**2)
            e = np.maximum(t00 - m * v, ENERGY_DENSITY_MIN)
            n = j0 * gamma_inv
            p = self.eos.pressure(e, n)
            enthalpy = np.maximum(t00 + p, SMALL_EPS)
            f = v - m / enthalpy
            dpdv = -m * self.eos.dpde(e, n) - j0 * v / np.maximum(gamma_inv, SMALL_EPS) * self.eos.dpdrhob(e, n)
            df = 1.0 + m / enthalpy**2 * dpdv
            df = np.where(np.abs(df) > SMALL_EPS, df, 1.0)
            v_new = np.clip(v - f / df, 0.0, v_max)
            step = np.abs(v_new - v)
            v = np.where(todo, v_new, v)
            converged |= step <= self.tolerance * np.maximum(v, 1.0e-3)

        failed = ~converged | ~np.isfinite(v)
        if np.any(failed):
            self._fail(failed, "velocity iteration did not converge", t00)
        return v

    def _fail(self, mask, message, t00):
        faults = faults_from_mask(
            FaultKind.RECONSTRUCTION_FAILURE, mask, message, {"T00": t00}
        )
        physics_logger.log_fault(FaultKind.RECONSTRUCTION_FAILURE.value, int(np.sum(mask)), message)
        raise NumericalFaultError(faults)
