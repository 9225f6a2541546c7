"""
Second-order relaxation equations for the dissipative currents.

The shear stress π^{μν}, bulk pressure Π and charge diffusion q^μ obey
(14-moment, in units of the relaxation times, metric (-, +, +, +))

    Dπ = -(π + 2ησ)/τ_π - δ_ππ πθ - τ_ππ π^⟨μ_α σ^ν⟩α
         - φ7/(P τ_π) π^⟨μ_α π^ν⟩α - λ_πΠ Πσ + 2 π^⟨μ_α ω^ν⟩α
    DΠ = -(Π + ζθ)/τ_Π - δ_ΠΠ Πθ - λ_Ππ (1/3 - c_s^2) π:σ
    Dq = -(q + κ∇^⟨μ⟩(μ/T))/τ_q - δ_qq qθ - λ_qq q_ν σ^μν - q_ν ω^νμ
         + λ_qπ π^μν ∇_ν(μ/T)

and are advanced in conservative form ∂_τ(u^τ X) + ∂_i(u^i X) = S. This
module provides the pieces of that update and of the dissipative-flux
divergence ∂_a W^{aμ} that enters the ideal step.
"""

import numpy as np

from ..core.config import HydroConfig
from ..core.constants import METRIC_DIAG, SHEAR_MATRIX_INDEX, SMALL_EPS
from ..core.eos import EquationOfState
from ..core.fields import FluidGrid
from ..core.stencil import central_difference, minmod_dx, neighbours
from ..utils.logging_config import HydroLoggerMixin
from .coefficients import TransportCoefficientProvider
from .conservation import viscous_tensor
from .kinematics import KinematicGradients, mixed_projector


# E[0, 3] = E[3, 0] = 1 couples the τ and η̂ indices through the frame connection
_MILNE_CONNECTION = np.zeros((4, 4))
_MILNE_CONNECTION[0, 3] = _MILNE_CONNECTION[3, 0] = 1.0


def traceless_projection(tensor: np.ndarray, u: np.ndarray) -> np.ndarray:
    """
    A^⟨μν⟩: symmetric, transverse to u and traceless part of A^{μν}.
    """
    delta_mixed = mixed_projector(u)
    projected = np.einsum("...ma,...ab,...nb->...mn", delta_mixed, tensor, delta_mixed)
    symmetric = 0.5 * (projected + np.swapaxes(projected, -1, -2))
    trace = np.einsum("...aa->...", symmetric * METRIC_DIAG[None, :])
    delta_upper = np.diag(METRIC_DIAG) + u[..., :, None] * u[..., None, :]
    return symmetric - delta_upper * (trace / 3.0)[..., None, None]


def contract_middle(first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """first^μ_α second^{να}."""
    return np.einsum("...ma,a,...na->...mn", first, METRIC_DIAG, second)


def restore_constraints(Wmunu: np.ndarray, u: np.ndarray, diffusion_on: bool) -> None:
    """
    Rebuild the non-evolved components in place.

    W^{33} from tracelessness, W^{i0} and W^{00} from u_μ W^{μν} = 0, and
    q^0 from u_μ q^μ = 0 (zero when diffusion is off).
    """
    u0, u1, u2, u3 = (u[..., k] for k in range(4))
    u0sq = u0 * u0
    Wmunu[..., 9] = (
        2.0 * (u1 * u2 * Wmunu[..., 5] + u1 * u3 * Wmunu[..., 6] + u2 * u3 * Wmunu[..., 8])
        - (u0sq - u1 * u1) * Wmunu[..., 4]
        - (u0sq - u2 * u2) * Wmunu[..., 7]
    ) / (u0sq - u3 * u3)

    for mu in range(1, 4):
        total = np.zeros_like(u0)
        for nu in range(1, 4):
            total = total + Wmunu[..., SHEAR_MATRIX_INDEX[mu, nu]] * u[..., nu]
        Wmunu[..., mu] = total / u0

    total = np.zeros_like(u0)
    for nu in range(1, 4):
        total = total + Wmunu[..., nu] * u[..., nu]
    Wmunu[..., 0] = total / u0

    total = np.zeros_like(u0)
    for nu in range(1, 4):
        total = total + Wmunu[..., 10 + nu] * u[..., nu]
    Wmunu[..., 10] = float(diffusion_on) * total / u0


def shear_eigenvalues(Wmunu: np.ndarray) -> np.ndarray:
    """
    Eigenvalues of W^μ_ν with the time column sign-flipped.

    Cells holding a non-finite component get zero eigenvalues; their shear
    is cleared by quest-revert afterwards.

    Returns:
        Array (..., 3) holding (min, -min-max, max) of the real parts
    """
    matrix = Wmunu[..., SHEAR_MATRIX_INDEX].copy()
    matrix[~np.all(np.isfinite(matrix), axis=(-2, -1))] = 0.0
    matrix[..., :, 0] *= -1.0
    values = np.linalg.eigvals(matrix).real
    lo = values.min(axis=-1)
    hi = values.max(axis=-1)
    return np.stack([lo, -lo - hi, hi], axis=-1)


class DissipativeTerms(HydroLoggerMixin):
    """
    Sources, advective fluxes and divergence of the dissipative currents.

    Args:
        config: Run configuration
        eos: Equation of state
        transport: Transport coefficient provider
    """

    def __init__(
        self,
        config: HydroConfig,
        eos: EquationOfState,
        transport: TransportCoefficientProvider,
    ):
        self.config = config
        self.eos = eos
        self.transport = transport

    # ------------------------------------------------------------------
    # ∂_a W^{aμ} for the conservation laws
    # ------------------------------------------------------------------

    def flux_divergence(self, tau_rk: float, previous: FluidGrid, current: FluidGrid) -> np.ndarray:
        """
        Divergence of the dissipative part of (τT^{aμ}, τJ^a), shape (..., 5).

        The time derivative is a backward difference between ``previous``
        (at tau_rk - Δτ) and ``current`` (at tau_rk).
        """
        cfg = self.config
        dtau = cfg.delta_tau
        w_cur = viscous_tensor(current.Wmunu, current.pi_b, current.u)
        w_prev = viscous_tensor(previous.Wmunu, previous.pi_b, previous.u)

        if cfg.is_milne:
            tau_prev, tau_space, tau_eta = tau_rk - dtau, tau_rk, 1.0
        else:
            tau_rk, tau_prev, tau_space, tau_eta = 1.0, 1.0, 1.0, 1.0

        dwmn = (tau_rk * w_cur[..., :, 0] - tau_prev * w_prev[..., :, 0]) / dtau
        factors = (tau_space, tau_space, tau_eta)
        for axis, (spacing, factor) in enumerate(zip(cfg.spacings, factors, strict=True)):
            if axis == 2 and cfg.boost_invariant:
                continue
            dwmn += factor * central_difference(w_cur[..., :, axis + 1], axis, spacing, cfg.boundary)

        if cfg.is_milne:
            dwmn[..., 0] += w_cur[..., 3, 3]
            dwmn[..., 3] += w_cur[..., 3, 0]
        return dwmn

    # ------------------------------------------------------------------
    # Advective flux ∂_i(u^i X) for the relaxation equations
    # ------------------------------------------------------------------

    def advective_rhs(self, tau: float, current: FluidGrid, quantities: np.ndarray) -> np.ndarray:
        """
        -Σ_i ∂_i(u^i X) Δτ with a Kurganov-Tadmor flux.

        Args:
            tau: Proper time of ``current``
            current: Snapshot supplying the velocity
            quantities: X at every cell, shape (..., K)

        Returns:
            Array (..., K)
        """
        cfg = self.config
        u = current.u
        u0 = u[..., 0]
        g = u0[..., None] * quantities
        rhs = np.zeros_like(quantities)

        for axis, spacing in enumerate(cfg.spacings):
            if axis == 2 and cfg.boost_invariant:
                continue
            velocity = u[..., axis + 1] / u0
            if axis == 2 and cfg.is_milne:
                velocity = velocity / tau
            f = velocity[..., None] * g
            speed = np.abs(velocity)

            g_nb = neighbours(g, axis, cfg.boundary)
            f_nb = neighbours(f, axis, cfg.boundary)
            a_nb = neighbours(speed, axis, cfg.boundary)
            theta = cfg.minmod_theta

            gph_l, gph_r = _face_states(g_nb, 0, theta)
            fph_l, fph_r = _face_states(f_nb, 0, theta)
            gmh_l, gmh_r = _face_states(g_nb, -1, theta)
            fmh_l, fmh_r = _face_states(f_nb, -1, theta)

            a_ph = np.maximum(a_nb[0], a_nb[1])[..., None]
            a_mh = np.maximum(a_nb[0], a_nb[-1])[..., None]

            h_ph = 0.5 * (fph_l + fph_r) - 0.5 * a_ph * (gph_r - gph_l)
            h_mh = 0.5 * (fmh_l + fmh_r) - 0.5 * a_mh * (gmh_r - gmh_l)
            rhs += (h_mh - h_ph) / spacing * cfg.delta_tau

        return rhs

    # ------------------------------------------------------------------
    # Sources of the u^τ X equations
    # ------------------------------------------------------------------

    def _expansion_weight(self, tau: float, u: np.ndarray, kin: KinematicGradients) -> np.ndarray:
        """θ - u^τ/τ in Milne, θ in Cartesian."""
        if self.config.is_milne:
            return kin.theta - u[..., 0] / tau
        return kin.theta

    def shear_source(self, tau: float, cell: FluidGrid, kin: KinematicGradients) -> np.ndarray:
        """Source of ∂_τ(u^τ π^{μν}), shape (..., 4, 4)."""
        cfg = self.config
        coeffs = self.transport.coefficient_set()
        e, rhob, u = cell.epsilon, cell.rhob, cell.u
        pi = cell.Wmunu[..., SHEAR_MATRIX_INDEX]
        bulk = cell.pi_b

        eta = self.transport.shear_viscosity(e, rhob, self.eos)
        tau_pi = self.transport.shear_relaxation_time(e, rhob, self.eos, cfg.delta_tau)
        pressure = np.maximum(self.eos.pressure(e, rhob), SMALL_EPS)

        expand = lambda x: np.asarray(x)[..., None, None]  # noqa: E731

        rhs = -(pi + 2.0 * expand(eta) * kin.sigma) / expand(tau_pi)
        rhs -= coeffs.delta_pipi * pi * expand(kin.theta)
        rhs -= coeffs.tau_pipi * traceless_projection(contract_middle(pi, kin.sigma), u)
        rhs -= expand(coeffs.phi7 / (pressure * tau_pi)) * traceless_projection(
            contract_middle(pi, pi), u
        )
        if cfg.turn_on_bulk:
            rhs -= coeffs.lambda_piPi * expand(bulk) * kin.sigma
        rhs += 2.0 * traceless_projection(contract_middle(pi, kin.omega), u)

        # keeps u_μ π^{μν} = 0 along the flow
        pi_a = np.einsum("...na,a,...a->...n", pi, METRIC_DIAG, kin.a)
        rhs += u[..., :, None] * pi_a[..., None, :] + pi_a[..., :, None] * u[..., None, :]

        source = rhs + pi * expand(self._expansion_weight(tau, u, kin))
        if cfg.is_milne:
            connection = _MILNE_CONNECTION @ pi + pi @ _MILNE_CONNECTION
            source -= expand(u[..., 3] / tau) * connection
        return source

    def bulk_source(self, tau: float, cell: FluidGrid, kin: KinematicGradients) -> np.ndarray:
        """Source of ∂_τ(u^τ Π), shape (...)."""
        cfg = self.config
        coeffs = self.transport.coefficient_set()
        e, rhob, u = cell.epsilon, cell.rhob, cell.u
        bulk = cell.pi_b

        zeta = self.transport.bulk_viscosity(e, rhob, self.eos)
        tau_b = self.transport.bulk_relaxation_time(e, rhob, self.eos, cfg.delta_tau)
        cs2 = self.eos.cs2(e, rhob)

        rhs = -(bulk + zeta * kin.theta) / tau_b
        rhs -= coeffs.delta_PiPi * bulk * kin.theta
        if cfg.turn_on_shear:
            pi = cell.Wmunu[..., SHEAR_MATRIX_INDEX]
            pi_sigma = np.einsum("...ab,a,b,...ab->...", pi, METRIC_DIAG, METRIC_DIAG, kin.sigma)
            rhs -= coeffs.lambda_Pipi * (1.0 / 3.0 - cs2) * pi_sigma

        return rhs + bulk * self._expansion_weight(tau, u, kin)

    def diffusion_source(self, tau: float, cell: FluidGrid, kin: KinematicGradients) -> np.ndarray:
        """Source of ∂_τ(u^τ q^μ), shape (..., 4)."""
        cfg = self.config
        coeffs = self.transport.coefficient_set()
        e, rhob, u = cell.epsilon, cell.rhob, cell.u
        q = cell.Wmunu[..., 10:14]

        kappa = self.transport.charge_conductivity(e, rhob, self.eos)
        tau_q = self.transport.diffusion_relaxation_time(e, rhob, self.eos, cfg.delta_tau)
        q_lower = q * METRIC_DIAG

        rhs = -(q + kappa[..., None] * kin.dmu_over_t) / tau_q[..., None]
        rhs -= coeffs.delta_qq * q * kin.theta[..., None]
        rhs -= coeffs.lambda_qq * np.einsum("...n,...mn->...m", q_lower, kin.sigma)
        rhs -= np.einsum("...n,...nm->...m", q_lower, kin.omega)
        if cfg.turn_on_shear and coeffs.lambda_qpi != 0.0:
            pi = cell.Wmunu[..., SHEAR_MATRIX_INDEX]
            rhs += coeffs.lambda_qpi * np.einsum(
                "...mn,n,...n->...m", pi, METRIC_DIAG, kin.dmu_over_t
            )

        # keeps u_μ q^μ = 0 along the flow
        q_a = np.einsum("...a,...a->...", q_lower, kin.a)
        rhs += u * q_a[..., None]

        source = rhs + q * self._expansion_weight(tau, u, kin)[..., None]
        if cfg.is_milne:
            source -= (u[..., 3] / tau)[..., None] * (q @ _MILNE_CONNECTION)
        return source


def _face_states(values: dict, left: int, theta: float):
    """Left and right states at the face between cells i + left and i + left + 1."""
    c, p1 = values[left], values[left + 1]
    m1, p2 = values[left - 1], values[left + 2]
    state_l = c + 0.5 * minmod_dx(p1, c, m1, theta)
    state_r = p1 - 0.5 * minmod_dx(p2, p1, c, theta)
    return state_l, state_r
