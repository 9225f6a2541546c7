"""
Energy-momentum tensor and conserved variables.

This module builds the ideal-fluid parts of the conservation laws
    ∂_μ T^μν = -∂_μ W^μν,   ∂_μ J^μ = -∂_μ q^μ
in the local orthonormal frame, with the metric diag(-1, 1, 1, 1):
    T^μν = (e + P) u^μ u^ν + P g^μν,   J^μ = n u^μ.
Index 4 of the combined ``TJ`` array holds the charge current.
"""

import numpy as np

from ..core.constants import METRIC_DIAG, SHEAR_MATRIX_INDEX
from ..core.eos import EquationOfState


def ideal_tj(e, p, rhob, u) -> np.ndarray:
    """
    Ideal energy-momentum tensor and charge current.

    Args:
        e: Energy density, shape (...)
        p: Pressure, shape (...)
        rhob: Net-charge density, shape (...)
        u: Four-velocity, shape (..., 4)

    Returns:
        Array of shape (..., 5, 4): ``[..., mu, nu]`` is T^{mu nu} for
        mu < 4 and J^nu for mu = 4
    """
    e = np.asarray(e, dtype=float)
    p = np.asarray(p, dtype=float)
    u = np.asarray(u, dtype=float)
    enthalpy = (e + p)[..., None, None]

    tj = np.empty((*e.shape, 5, 4))
    tj[..., :4, :] = enthalpy * u[..., :, None] * u[..., None, :]
    tj[..., :4, :] += p[..., None, None] * np.diag(METRIC_DIAG)
    # T^00 = e + (e + P)|u|^2 is exact for a fluid at rest
    tj[..., 0, 0] = e + (e + p) * np.sum(u[..., 1:] ** 2, axis=-1)
    tj[..., 4, :] = np.asarray(rhob, dtype=float)[..., None] * u
    return tj


def conserved_vector(e, p, rhob, u, tau_factor: float = 1.0) -> np.ndarray:
    """
    τ (T^{00}, T^{0x}, T^{0y}, T^{0η}, J^0), shape (..., 5).
    """
    tj = ideal_tj(e, p, rhob, u)
    return tau_factor * tj[..., :, 0]


def state_conserved_vector(e, rhob, u, eos: EquationOfState, tau_factor: float = 1.0) -> np.ndarray:
    """Conserved vector evaluated with the pressure from ``eos``."""
    return conserved_vector(e, eos.pressure(e, rhob), rhob, u, tau_factor)


def spatial_projector(u) -> np.ndarray:
    """Δ^{μν} = g^{μν} + u^μ u^ν, shape (..., 4, 4)."""
    u = np.asarray(u, dtype=float)
    return np.diag(METRIC_DIAG) + u[..., :, None] * u[..., None, :]


def viscous_tensor(Wmunu, pi_b, u) -> np.ndarray:
    """
    Dissipative part of T^{μν} plus the diffusion current.

    Returns:
        Array of shape (..., 5, 4) laid out like ``ideal_tj``:
        π^{μν} + Π Δ^{μν} for mu < 4 and q^ν for mu = 4
    """
    Wmunu = np.asarray(Wmunu, dtype=float)
    out = np.empty((*Wmunu.shape[:-1], 5, 4))
    out[..., :4, :] = Wmunu[..., SHEAR_MATRIX_INDEX]
    out[..., :4, :] += np.asarray(pi_b, dtype=float)[..., None, None] * spatial_projector(u)
    out[..., 4, :] = Wmunu[..., 10:14]
    return out
