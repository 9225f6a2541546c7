"""
Kurganov-Tadmor central scheme for the ideal conservation laws.

For each grid direction the conserved vector q = τ T^{α0} is reconstructed
to the cell faces with a generalized minmod limiter, the face states are
inverted to primitive variables, and the numerical flux

    H_{i+1/2} = [F(q^R) + F(q^L)]/2 - a_{i+1/2} [q^R - q^L]/2

is formed with the largest local signal speed a. In Milne coordinates the
η-direction energy and longitudinal momentum fluxes are combined with
cosh/sinh weights that carry the geometric source terms of the frame.
"""

import numpy as np

from ..core.config import HydroConfig
from ..core.constants import DPDE_FALLBACK_THRESHOLD, SIGNAL_SPEED_TOLERANCE, SMALL_EPS
from ..core.eos import EquationOfState
from ..core.faults import FaultKind, NumericalFaultError, faults_from_mask
from ..core.fields import FluidGrid
from ..core.stencil import minmod_dx, neighbours
from ..equations.conservation import ideal_tj
from ..equations.reconstruction import Reconstructor
from ..utils.logging_config import HydroLoggerMixin, physics_logger


def max_signal_speed(
    e: np.ndarray,
    rhob: np.ndarray,
    u: np.ndarray,
    direction: int,
    eos: EquationOfState,
    speed_factor: float = 1.0,
) -> np.ndarray:
    """
    Largest characteristic speed along one grid direction.

    Solves the dispersion relation of sound waves boosted with the flow.
    When the discriminant is negative and dP/de is small a closed form for
    soft equations of state is used instead.

    Args:
        e, rhob: Energy and net-charge density, shape (...)
        u: Four-velocity, shape (..., 4)
        direction: Spatial direction 1, 2 or 3
        eos: Equation of state
        speed_factor: Multiplies the result (1/τ along η in Milne)

    Returns:
        Signal speed, shape (...)

    Raises:
        NumericalFaultError: IMAGINARY_SIGNAL_SPEED, NEGATIVE_SIGNAL_SPEED,
            SIGNAL_SPEED_BELOW_FLOW or SUPERLUMINAL_SIGNAL_SPEED
    """
    utau = u[..., 0]
    utau2 = utau * utau
    ux = np.abs(u[..., direction])
    ut2mux2 = utau2 - ux * ux

    vs2 = eos.cs2(e, rhob)
    discriminant = (ut2mux2 - (ut2mux2 - 1.0) * vs2) * vs2

    faults = []
    with np.errstate(invalid="ignore"):
        num = utau * ux * (1.0 - vs2) + np.sqrt(discriminant)
        negative = discriminant < 0.0
        if np.any(negative):
            dpde = eos.dpde(e, rhob)
            p = eos.pressure(e, rhob)
            h = p + e
            soft_num = np.sqrt(-(h * dpde * h * (dpde * (-1.0 + ut2mux2) - ut2mux2))) - h * (
                -1.0 + dpde
            ) * utau * ux
            num = np.where(negative, soft_num, num)
            imaginary = negative & ~(dpde < DPDE_FALLBACK_THRESHOLD)
            if np.any(negative & ~imaginary):
                physics_logger.log_physics_fallback(
                    "max_signal_speed", "negative discriminant", "soft equation of state form"
                )
            if np.any(imaginary):
                diagnostics = {
                    "e": e,
                    "p": p,
                    "h": h,
                    "rhob": rhob,
                    "utau": utau,
                    "uk": ux,
                    "cs2": vs2,
                    "dpde": dpde,
                    "dpdrhob": eos.dpdrhob(e, rhob),
                    "discriminant": discriminant,
                }
                faults += faults_from_mask(
                    FaultKind.IMAGINARY_SIGNAL_SPEED,
                    imaginary,
                    "negative expression under the square root of the signal speed",
                    diagnostics,
                )

    den = utau2 * (1.0 - vs2) + vs2
    f = num / np.maximum(den, SMALL_EPS)
    v_flow = ux / utau

    diagnostics = {"speed": f, "v": v_flow, "num": num, "den": den, "cs2": vs2}
    negative_speed = f < 0.0
    below = ~negative_speed & (f < v_flow) & (num != 0.0)
    snap = below & (np.abs(f - v_flow) < SIGNAL_SPEED_TOLERANCE)
    below_fatal = below & ~snap
    superluminal = ~negative_speed & ~(f < v_flow) & (f > 1.0)

    for kind, mask, message in (
        (FaultKind.NEGATIVE_SIGNAL_SPEED, negative_speed, "signal speed is negative"),
        (FaultKind.SIGNAL_SPEED_BELOW_FLOW, below_fatal, "signal speed is smaller than the flow velocity"),
        (FaultKind.SUPERLUMINAL_SIGNAL_SPEED, superluminal, "signal speed is bigger than 1"),
    ):
        if np.any(mask):
            faults += faults_from_mask(kind, mask, message, diagnostics)

    if faults:
        for kind in {fault.kind for fault in faults}:
            count = sum(1 for fault in faults if fault.kind is kind)
            physics_logger.log_fault(kind.value, count, "max_signal_speed")
        raise NumericalFaultError(faults)

    f = np.where(snap, v_flow, f)
    return f * speed_factor


def geometric_weights(delta_eta: float, boost_invariant: bool) -> tuple[float, float]:
    """
    cosh and sinh weights of the η-direction fluxes.

    Returns:
        (cosh(Δη/2)/Δη, max(1/2, sinh(Δη/2)/Δη)); (0, 1/2) when boost invariant
    """
    if boost_invariant:
        return 0.0, 0.5
    cosh_deta = np.cosh(delta_eta / 2.0) / max(delta_eta, SMALL_EPS)
    sinh_deta = np.sinh(delta_eta / 2.0) / max(delta_eta, SMALL_EPS)
    return float(cosh_deta), float(max(0.5, sinh_deta))


class KTFluxEngine(HydroLoggerMixin):
    """
    Ideal flux divergence of the conservation laws.

    Args:
        config: Run configuration
        eos: Equation of state
        reconstructor: Inverts face states to primitives
    """

    def __init__(self, config: HydroConfig, eos: EquationOfState, reconstructor: Reconstructor):
        self.config = config
        self.eos = eos
        self.reconstructor = reconstructor

    def conserved(self, tau: float, grid: FluidGrid) -> np.ndarray:
        """τ T^{α0} of every cell, shape (..., 5)."""
        p = self.eos.pressure(grid.epsilon, grid.rhob)
        return self._tau_factor(tau) * ideal_tj(grid.epsilon, p, grid.rhob, grid.u)[..., :, 0]

    def _tau_factor(self, tau: float) -> float:
        return tau if self.config.is_milne else 1.0

    def face_states(self, q: np.ndarray, axis: int) -> dict[str, np.ndarray]:
        """
        Limited reconstruction of q at the i+1/2 and i-1/2 faces.

        Returns:
            Mapping with keys "phL", "phR", "mhL", "mhR"
        """
        nb = neighbours(q, axis, self.config.boundary)
        theta = self.config.minmod_theta
        fph_l = 0.5 * minmod_dx(nb[1], nb[0], nb[-1], theta)
        fph_r = -0.5 * minmod_dx(nb[2], nb[1], nb[0], theta)
        fmh_l = 0.5 * minmod_dx(nb[0], nb[-1], nb[-2], theta)
        fmh_r = -fph_l
        return {
            "phL": nb[0] + fph_l,
            "phR": nb[1] + fph_r,
            "mhL": nb[-1] + fmh_l,
            "mhR": nb[0] + fmh_r,
        }

    def _face_flux(self, tau, face_q, guess_u, direction):
        cfg = self.config
        tau_factor = self._tau_factor(tau)
        e, rhob, u = self.reconstructor.invert(face_q, tau_factor, guess_u=guess_u)
        speed_factor = 1.0 / tau if (direction == 3 and cfg.is_milne) else 1.0
        speed = max_signal_speed(e, rhob, u, direction, self.eos, speed_factor)
        flux_factor = tau if (cfg.is_milne and direction != 3) else 1.0
        p = self.eos.pressure(e, rhob)
        flux = ideal_tj(e, p, rhob, u)[..., :, direction] * flux_factor
        return flux, speed

    def flux_divergence(self, tau: float, current: FluidGrid) -> tuple[np.ndarray, np.ndarray]:
        """
        Conserved vector and its ideal flux update over one time step.

        Args:
            tau: Proper time the fluxes are evaluated at
            current: Snapshot supplying the cell states

        Returns:
            Tuple (q, rhs) of shape (..., 5) each; rhs already includes Δτ
        """
        cfg = self.config
        q = self.conserved(tau, current)
        rhs = np.zeros_like(q)
        t_eta_m = t_eta_p = None

        for axis, spacing in enumerate(cfg.spacings):
            direction = axis + 1
            faces = self.face_states(q, axis)
            fluxes = {}
            speeds = {}
            for key, face_q in faces.items():
                fluxes[key], speeds[key] = self._face_flux(tau, face_q, current.u, direction)

            a_ph = np.maximum(speeds["phL"], speeds["phR"])[..., None]
            a_mh = np.maximum(speeds["mhL"], speeds["mhR"])[..., None]
            h_ph = 0.5 * ((fluxes["phL"] + fluxes["phR"]) - a_ph * (faces["phR"] - faces["phL"]))
            h_mh = 0.5 * ((fluxes["mhL"] + fluxes["mhR"]) - a_mh * (faces["mhR"] - faces["mhL"]))

            divergence = (h_mh - h_ph) / spacing * cfg.delta_tau
            if direction == 3 and cfg.is_milne:
                t_eta_m, t_eta_p = h_mh, h_ph
                divergence[..., 0] = 0.0
                divergence[..., 3] = 0.0
            rhs += divergence

        if t_eta_m is not None:
            cosh_deta, sinh_deta = geometric_weights(cfg.delta_eta, cfg.boost_invariant)
            rhs[..., 0] += (
                (t_eta_m[..., 0] - t_eta_p[..., 0]) * cosh_deta
                - (t_eta_m[..., 3] + t_eta_p[..., 3]) * sinh_deta
            ) * cfg.delta_tau
            rhs[..., 3] += (
                (t_eta_m[..., 3] - t_eta_p[..., 3]) * cosh_deta
                - (t_eta_m[..., 0] + t_eta_p[..., 0]) * sinh_deta
            ) * cfg.delta_tau

        return q, rhs
