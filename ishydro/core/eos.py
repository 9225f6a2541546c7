"""
Equations of state.

The engine only talks to ``EquationOfState``; every method is vectorized
over numpy arrays of energy density and net-charge density in fm^-4 and
fm^-3. Two implementations are provided: an ideal gas with constant speed
of sound and a tabulated EOS interpolated with cubic splines.
"""

from abc import ABC, abstractmethod

import numpy as np
from scipy.interpolate import CubicSpline

from .constants import ENERGY_DENSITY_MIN, TEMPERATURE_MIN


class EquationOfState(ABC):
    """
    Abstract equation of state P(e, n) and its derivatives.

    All inputs may be scalars or arrays of matching shape; outputs follow
    numpy broadcasting.
    """

    @abstractmethod
    def pressure(self, e, rhob):
        """Pressure P(e, n)."""
        pass

    @abstractmethod
    def dpde(self, e, rhob):
        """(dP/de) at fixed n."""
        pass

    @abstractmethod
    def dpdrhob(self, e, rhob):
        """(dP/dn) at fixed e."""
        pass

    @abstractmethod
    def temperature(self, e, rhob):
        """Temperature in fm^-1."""
        pass

    def cs2(self, e, rhob):
        """
        Speed of sound squared at fixed entropy per charge.

        c_s^2 = dP/de + n/(e + P) dP/dn
        """
        e = np.asarray(e, dtype=float)
        rhob = np.asarray(rhob, dtype=float)
        enthalpy = np.maximum(e + self.pressure(e, rhob), ENERGY_DENSITY_MIN)
        return self.dpde(e, rhob) + rhob / enthalpy * self.dpdrhob(e, rhob)

    def chemical_potential(self, e, rhob):
        """Net-charge chemical potential in fm^-1; zero unless overridden."""
        return np.zeros(np.broadcast(np.asarray(e), np.asarray(rhob)).shape)

    def entropy_density(self, e, rhob):
        """s = (e + P - mu n) / T."""
        e = np.asarray(e, dtype=float)
        rhob = np.asarray(rhob, dtype=float)
        temperature = np.maximum(self.temperature(e, rhob), TEMPERATURE_MIN)
        mu = self.chemical_potential(e, rhob)
        return (e + self.pressure(e, rhob) - mu * rhob) / temperature


class IdealGasEOS(EquationOfState):
    """
    P = c_s^2 e with constant speed of sound.

    The temperature follows from thermodynamic consistency at zero chemical
    potential: e = a T^((1 + c_s^2)/c_s^2) with a = g pi^2 / 30 for the
    conformal case.
    """

    def __init__(self, cs2: float = 1.0 / 3.0, degeneracy: float = 47.5):
        if not 0.0 < cs2 <= 1.0:
            raise ValueError(f"Speed of sound squared must lie in (0, 1], got {cs2}")
        if degeneracy <= 0:
            raise ValueError(f"Degeneracy must be positive, got {degeneracy}")
        self._cs2 = float(cs2)
        self.degeneracy = float(degeneracy)
        self._a = self.degeneracy * np.pi**2 / 30.0
        self._power = (1.0 + self._cs2) / self._cs2

    def pressure(self, e, rhob):
        return self._cs2 * np.asarray(e, dtype=float)

    def dpde(self, e, rhob):
        return np.full(np.broadcast(np.asarray(e), np.asarray(rhob)).shape, self._cs2)

    def dpdrhob(self, e, rhob):
        return np.zeros(np.broadcast(np.asarray(e), np.asarray(rhob)).shape)

    def cs2(self, e, rhob):
        return self.dpde(e, rhob)

    def temperature(self, e, rhob):
        e = np.maximum(np.asarray(e, dtype=float), 0.0)
        return (e / self._a) ** (1.0 / self._power)

    def __repr__(self) -> str:
        return f"IdealGasEOS(cs2={self._cs2:.6g}, degeneracy={self.degeneracy:g})"


class TabulatedEOS(EquationOfState):
    """
    EOS interpolated from a table of P(e) and T(e) at zero net charge.

    Cubic splines are used inside the table. Below the first entry the
    pressure is continued linearly through the origin, above the last entry
    with the boundary slope; derivatives are clamped to the table range.
    """

    def __init__(self, energy_density, pressure, temperature):
        e = np.asarray(energy_density, dtype=float)
        p = np.asarray(pressure, dtype=float)
        t = np.asarray(temperature, dtype=float)
        if e.ndim != 1 or e.shape != p.shape or e.shape != t.shape:
            raise ValueError("EOS table columns must be one dimensional and of equal length")
        if e.size < 4:
            raise ValueError("EOS table needs at least four entries")
        if np.any(np.diff(e) <= 0):
            raise ValueError("EOS table energy density must be strictly increasing")
        if e[0] <= 0:
            raise ValueError("EOS table must start at positive energy density")

        self._e = e
        self._p_spline = CubicSpline(e, p)
        self._dp_spline = self._p_spline.derivative()
        self._t_spline = CubicSpline(e, t)
        self._e_lo, self._e_hi = float(e[0]), float(e[-1])
        self._p_lo, self._p_hi = float(p[0]), float(p[-1])
        self._slope_hi = float(self._dp_spline(self._e_hi))

        cs2_table = self._dp_spline(e)
        if np.any(cs2_table <= 0) or np.any(cs2_table > 1):
            raise ValueError("Tabulated EOS has a speed of sound outside (0, 1]")

    @classmethod
    def from_function(cls, pressure_fn, temperature_fn, e_min: float, e_max: float, n: int = 400):
        """Tabulate callables on a logarithmic energy-density grid."""
        e = np.geomspace(e_min, e_max, n)
        return cls(e, pressure_fn(e), temperature_fn(e))

    def pressure(self, e, rhob):
        e = np.asarray(e, dtype=float)
        inside = self._p_spline(np.clip(e, self._e_lo, self._e_hi))
        below = self._p_lo * e / self._e_lo
        above = self._p_hi + self._slope_hi * (e - self._e_hi)
        return np.where(e < self._e_lo, below, np.where(e > self._e_hi, above, inside))

    def dpde(self, e, rhob):
        e = np.asarray(e, dtype=float)
        inside = self._dp_spline(np.clip(e, self._e_lo, self._e_hi))
        return np.where(e < self._e_lo, self._p_lo / self._e_lo, inside)

    def dpdrhob(self, e, rhob):
        return np.zeros(np.broadcast(np.asarray(e), np.asarray(rhob)).shape)

    def temperature(self, e, rhob):
        e = np.asarray(e, dtype=float)
        return np.maximum(self._t_spline(np.clip(e, self._e_lo, self._e_hi)), TEMPERATURE_MIN)

    def __repr__(self) -> str:
        return f"TabulatedEOS(entries={self._e.size}, e_range=({self._e_lo:.3g}, {self._e_hi:.3g}))"
