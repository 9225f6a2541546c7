"""
Kinematic gradients of the flow velocity.

Velocity derivatives are taken in the local orthonormal frame of the
coordinate system. In Milne coordinates (τ, x, y, η) the longitudinal
derivative is (1/τ)∂_η and the frame connection adds

    ∇_η̂ u^τ = (1/τ)∂_η u^τ + ũ^η/τ,    ∇_η̂ u^η̂ = (1/τ)∂_η ũ^η + u^τ/τ,

so that θ = ∂_τu^τ + ∂_x u^x + ∂_y u^y + (1/τ)∂_η ũ^η + u^τ/τ.
Time derivatives are backward differences between the previous and the
current snapshot.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from ..core.config import HydroConfig
from ..core.constants import METRIC_DIAG, TEMPERATURE_MIN
from ..core.eos import EquationOfState
from ..core.fields import FluidGrid
from ..core.stencil import central_difference


@dataclass(frozen=True)
class KinematicGradients:
    """
    Velocity-gradient quantities at every cell.

    Attributes:
        theta: Expansion rate ∇_μ u^μ, shape (...)
        a: Acceleration u^ν ∇_ν u^μ, shape (..., 4)
        sigma: Shear tensor σ^{μν}, shape (..., 4, 4)
        omega: Vorticity ω^{μν}, shape (..., 4, 4)
        dmu_over_t: Projected gradient ∇^⟨μ⟩(μ/T), shape (..., 4)
        grad_u: ∇_a u^b with the derivative index first, shape (..., 4, 4)
    """

    theta: np.ndarray
    a: np.ndarray
    sigma: np.ndarray
    omega: np.ndarray
    dmu_over_t: np.ndarray
    grad_u: np.ndarray


def mixed_projector(u: np.ndarray) -> np.ndarray:
    """Δ^μ_ν = δ^μ_ν + u^μ u_ν, shape (..., 4, 4)."""
    u_lower = u * METRIC_DIAG
    return np.eye(4) + u[..., :, None] * u_lower[..., None, :]


class KinematicGradientProvider(ABC):
    """Interface for the velocity-gradient stage of the dissipative update."""

    @abstractmethod
    def compute(
        self, tau: float, previous: FluidGrid, current: FluidGrid, config: HydroConfig
    ) -> KinematicGradients:
        """
        Evaluate gradients on the current snapshot.

        Args:
            tau: Proper time of the current snapshot
            previous: Snapshot one time step earlier
            current: Snapshot the gradients are evaluated on
            config: Grid spacings, coordinates and boundary treatment
        """
        pass


class FiniteDifferenceKinematics(KinematicGradientProvider):
    """
    Central differences in space, backward difference in time.

    Args:
        eos: Equation of state used for μ/T
    """

    def __init__(self, eos: EquationOfState):
        self.eos = eos

    def _derivatives(
        self, tau: float, prev_field, cur_field, config: HydroConfig
    ) -> np.ndarray:
        """
        Frame partial derivatives, derivative index inserted before the
        component axes: result[..., a, ...] = ∂_a field.
        """
        d_tau = (cur_field - prev_field) / config.delta_tau
        derivs = [d_tau]
        for axis, spacing in enumerate(config.spacings):
            d = central_difference(cur_field, axis, spacing, config.boundary)
            if axis == 2 and config.is_milne:
                d = d / tau
            derivs.append(d)
        return np.stack(derivs, axis=3)

    def compute(
        self, tau: float, previous: FluidGrid, current: FluidGrid, config: HydroConfig
    ) -> KinematicGradients:
        u = current.u
        grad_u = self._derivatives(tau, previous.u, u, config)
        if config.boost_invariant:
            grad_u[..., 3, :] = 0.0
        if config.is_milne:
            grad_u[..., 3, 0] += u[..., 3] / tau
            grad_u[..., 3, 3] += u[..., 0] / tau

        theta = np.einsum("...aa->...", grad_u)
        a = np.einsum("...a,...ab->...b", u, grad_u)

        # ∇^a u^b, then projection on both indices
        grad_up = METRIC_DIAG[:, None] * grad_u
        delta_mixed = mixed_projector(u)
        projected = np.einsum("...ma,...ab,...nb->...mn", delta_mixed, grad_up, delta_mixed)
        delta_upper = np.diag(METRIC_DIAG) + u[..., :, None] * u[..., None, :]
        theta_perp = np.einsum("...aa->...", projected * METRIC_DIAG[None, :])

        sigma = 0.5 * (projected + np.swapaxes(projected, -1, -2))
        sigma -= delta_upper * (theta_perp / 3.0)[..., None, None]
        omega = 0.5 * (projected - np.swapaxes(projected, -1, -2))

        dmu_over_t = self._chemical_gradient(tau, previous, current, config, delta_mixed)

        return KinematicGradients(
            theta=theta,
            a=a,
            sigma=sigma,
            omega=omega,
            dmu_over_t=dmu_over_t,
            grad_u=grad_u,
        )

    def _chemical_gradient(self, tau, previous, current, config, delta_mixed):
        alpha_cur = self._mu_over_t(current)
        if not np.any(alpha_cur) and not np.any(self._mu_over_t(previous)):
            return np.zeros(current.u.shape)
        alpha_prev = self._mu_over_t(previous)
        d_alpha = self._derivatives(tau, alpha_prev, alpha_cur, config)
        if config.boost_invariant:
            d_alpha[..., 3] = 0.0
        grad_up = METRIC_DIAG * d_alpha
        return np.einsum("...mn,...n->...m", delta_mixed, grad_up)

    def _mu_over_t(self, grid: FluidGrid) -> np.ndarray:
        temperature = np.maximum(self.eos.temperature(grid.epsilon, grid.rhob), TEMPERATURE_MIN)
        return self.eos.chemical_potential(grid.epsilon, grid.rhob) / temperature
