"""
Transport coefficients for second-order viscous hydrodynamics.

First-order coefficients (eta/s, zeta/s, charge conductivity) depend on the
local temperature; second-order coefficients are the dimensionless ratios
of the 14-moment approximation and are collected in an immutable
``TransportCoefficientSet`` that the solvers read during a sub-step.
"""

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields

import numpy as np

from ..core.constants import HBARC, SMALL_EPS, TEMPERATURE_MIN, validate_transport_coefficient
from ..core.eos import EquationOfState


@dataclass(frozen=True)
class TransportCoefficientSet:
    """
    Dimensionless second-order transport coefficients.

    Relaxation times follow from the factors as
    tau_pi = shear_relax_time_factor * eta / (e + P) and
    tau_Pi = zeta / (bulk_relax_time_factor^-1 (1/3 - c_s^2)^2 (e + P)).
    The remaining entries multiply the corresponding terms in the
    relaxation equations in units of the relaxation time.
    """

    shear_relax_time_factor: float = 5.0
    bulk_relax_time_factor: float = 1.0 / 14.55

    # shear
    tau_pipi: float = 10.0 / 7.0
    delta_pipi: float = 4.0 / 3.0
    phi7: float = 9.0 / 70.0
    lambda_piPi: float = 6.0 / 5.0

    # bulk
    lambda_Pipi: float = 8.0 / 5.0
    delta_PiPi: float = 2.0 / 3.0

    # net charge diffusion
    delta_qq: float = 1.0
    lambda_qq: float = 3.0 / 5.0
    lambda_qpi: float = 0.0

    def __post_init__(self) -> None:
        for name in ("shear_relax_time_factor", "bulk_relax_time_factor"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be positive and finite, got {value}")
        for f in fields(self):
            if not np.isfinite(getattr(self, f.name)):
                raise ValueError(f"{f.name} must be finite")

    @property
    def inverse_shear_factor(self) -> float:
        return 1.0 / self.shear_relax_time_factor

    def bulk_relaxation_weight(self, cs2):
        """(1/bulk_relax_time_factor) (1/3 - c_s^2)^2."""
        return (1.0 / self.bulk_relax_time_factor) * (1.0 / 3.0 - np.asarray(cs2)) ** 2


class TransportCoefficientProvider(ABC):
    """
    Source of first-order transport coefficients and relaxation times.

    Subclasses provide eta/s and zeta/s as functions of temperature (in GeV)
    and net-charge chemical potential; everything else is derived here.
    All methods are vectorized over numpy arrays.
    """

    def __init__(
        self,
        coefficients: TransportCoefficientSet | None = None,
        kappa_coefficient: float = 0.4,
    ):
        self.coefficients = coefficients or TransportCoefficientSet()
        validate_transport_coefficient(kappa_coefficient, "kappa_coefficient")
        self.kappa_coefficient = kappa_coefficient

    @abstractmethod
    def eta_over_s(self, temperature_gev, mu_gev):
        """Specific shear viscosity."""
        pass

    @abstractmethod
    def zeta_over_s(self, temperature_gev):
        """Specific bulk viscosity."""
        pass

    def coefficient_set(self) -> TransportCoefficientSet:
        return self.coefficients

    def _thermodynamics(self, e, rhob, eos: EquationOfState):
        temperature = np.maximum(eos.temperature(e, rhob), TEMPERATURE_MIN)
        mu = eos.chemical_potential(e, rhob)
        return temperature, mu, eos.entropy_density(e, rhob)

    def shear_viscosity(self, e, rhob, eos: EquationOfState):
        """eta = (eta/s) s in fm^-3."""
        temperature, mu, s = self._thermodynamics(e, rhob, eos)
        return self.eta_over_s(temperature * HBARC, mu * HBARC) * s

    def bulk_viscosity(self, e, rhob, eos: EquationOfState):
        """zeta = (zeta/s) s in fm^-3."""
        temperature, _, s = self._thermodynamics(e, rhob, eos)
        return self.zeta_over_s(temperature * HBARC) * s

    def charge_conductivity(self, e, rhob, eos: EquationOfState):
        """kappa = C_B n / (3 T)."""
        temperature = np.maximum(eos.temperature(e, rhob), TEMPERATURE_MIN)
        return self.kappa_coefficient * np.asarray(rhob) / (3.0 * temperature)

    def shear_relaxation_time(self, e, rhob, eos: EquationOfState, delta_tau: float):
        """tau_pi, never shorter than three time steps."""
        enthalpy = np.maximum(np.asarray(e) + eos.pressure(e, rhob), SMALL_EPS)
        tau_pi = (
            self.coefficients.shear_relax_time_factor
            * self.shear_viscosity(e, rhob, eos)
            / enthalpy
        )
        return np.maximum(tau_pi, 3.0 * delta_tau)

    def bulk_relaxation_time(self, e, rhob, eos: EquationOfState, delta_tau: float):
        """tau_Pi, never shorter than three time steps."""
        enthalpy = np.maximum(np.asarray(e) + eos.pressure(e, rhob), SMALL_EPS)
        weight = self.coefficients.bulk_relaxation_weight(eos.cs2(e, rhob)) * enthalpy
        zeta = self.bulk_viscosity(e, rhob, eos)
        with np.errstate(divide="ignore", invalid="ignore"):
            tau_b = np.where(zeta > 0, zeta / np.maximum(weight, SMALL_EPS), 0.0)
        return np.maximum(tau_b, 3.0 * delta_tau)

    def diffusion_relaxation_time(self, e, rhob, eos: EquationOfState, delta_tau: float):
        """tau_q = C_B / T, never shorter than three time steps."""
        temperature = np.maximum(eos.temperature(e, rhob), TEMPERATURE_MIN)
        return np.maximum(self.kappa_coefficient / temperature, 3.0 * delta_tau)


class ConstantTransport(TransportCoefficientProvider):
    """Temperature-independent eta/s and zeta/s."""

    def __init__(
        self,
        eta_over_s: float = 0.08,
        zeta_over_s: float = 0.0,
        coefficients: TransportCoefficientSet | None = None,
        kappa_coefficient: float = 0.4,
    ):
        super().__init__(coefficients, kappa_coefficient)
        validate_transport_coefficient(eta_over_s, "eta_over_s")
        validate_transport_coefficient(zeta_over_s, "zeta_over_s")
        if eta_over_s < 1.0 / (4.0 * np.pi) * 0.99:
            warnings.warn(
                f"eta/s = {eta_over_s} is below the KSS bound 1/(4 pi)", stacklevel=2
            )
        self._eta_over_s = eta_over_s
        self._zeta_over_s = zeta_over_s

    def eta_over_s(self, temperature_gev, mu_gev):
        return np.full(np.shape(temperature_gev), self._eta_over_s)

    def zeta_over_s(self, temperature_gev):
        return np.full(np.shape(temperature_gev), self._zeta_over_s)


class TemperatureDependentTransport(TransportCoefficientProvider):
    """
    Piecewise-linear eta/s(T) with an asymmetric Gaussian zeta/s(T).

    eta/s has its minimum at ``t_kink`` and rises linearly on both sides
    with separate slopes (GeV^-1). zeta/s peaks at ``zeta_peak_temperature``
    with different widths below and above the peak.
    """

    def __init__(
        self,
        eta_over_s_min: float = 0.08,
        t_kink: float = 0.154,
        slope_low: float = 0.0,
        slope_high: float = 1.0,
        eta_over_s_max: float = 1.0,
        zeta_over_s_norm: float = 0.13,
        zeta_peak_temperature: float = 0.165,
        zeta_width_low: float = 0.01,
        zeta_width_high: float = 0.12,
        coefficients: TransportCoefficientSet | None = None,
        kappa_coefficient: float = 0.4,
    ):
        super().__init__(coefficients, kappa_coefficient)
        for name, value in (
            ("eta_over_s_min", eta_over_s_min),
            ("t_kink", t_kink),
            ("slope_low", slope_low),
            ("slope_high", slope_high),
            ("eta_over_s_max", eta_over_s_max),
            ("zeta_over_s_norm", zeta_over_s_norm),
            ("zeta_peak_temperature", zeta_peak_temperature),
        ):
            validate_transport_coefficient(value, name)
        if zeta_width_low <= 0 or zeta_width_high <= 0:
            raise ValueError("zeta/s widths must be positive")
        if eta_over_s_max < eta_over_s_min:
            raise ValueError("eta_over_s_max must not be below eta_over_s_min")

        self.eta_over_s_min = eta_over_s_min
        self.t_kink = t_kink
        self.slope_low = slope_low
        self.slope_high = slope_high
        self.eta_over_s_max = eta_over_s_max
        self.zeta_over_s_norm = zeta_over_s_norm
        self.zeta_peak_temperature = zeta_peak_temperature
        self.zeta_width_low = zeta_width_low
        self.zeta_width_high = zeta_width_high

    def eta_over_s(self, temperature_gev, mu_gev):
        t = np.asarray(temperature_gev, dtype=float)
        slope = np.where(t < self.t_kink, self.slope_low, self.slope_high)
        value = self.eta_over_s_min + slope * np.abs(t - self.t_kink)
        return np.clip(value, self.eta_over_s_min, self.eta_over_s_max)

    def zeta_over_s(self, temperature_gev):
        t = np.asarray(temperature_gev, dtype=float)
        width = np.where(t < self.zeta_peak_temperature, self.zeta_width_low, self.zeta_width_high)
        return self.zeta_over_s_norm * np.exp(-(((t - self.zeta_peak_temperature) / width) ** 2))
