"""
External energy-momentum and charge sources.

Source providers return densities J^ν (energy-momentum deposited per unit
volume and time) and a charge density source at the cell positions. The
engine multiplies them by τ and Δτ.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

import numpy as np


class HydroSourceProvider(ABC):
    """Interface for external sources coupled to the conservation laws."""

    @property
    def active(self) -> bool:
        """False when the provider contributes nothing and can be skipped."""
        return True

    @abstractmethod
    def energy_momentum_source(self, tau: float, x, y, eta, u) -> np.ndarray:
        """
        Energy-momentum source J^ν.

        Args:
            tau: Proper time
            x, y, eta: Cell coordinates, broadcastable to the grid shape
            u: Four-velocity, shape (..., 4)

        Returns:
            Array of shape (..., 4)
        """
        pass

    @abstractmethod
    def charge_source(self, tau: float, x, y, eta, u) -> np.ndarray:
        """Net-charge source, shape (...)."""
        pass


class NullSource(HydroSourceProvider):
    """No external sources."""

    @property
    def active(self) -> bool:
        return False

    def energy_momentum_source(self, tau, x, y, eta, u):
        return np.zeros(np.shape(u))

    def charge_source(self, tau, x, y, eta, u):
        return np.zeros(np.shape(u)[:-1])


class CallableSource(HydroSourceProvider):
    """
    Sources given as plain functions.

    Args:
        energy_momentum: f(tau, x, y, eta, u) -> (..., 4)
        charge: Optional g(tau, x, y, eta, u) -> (...); zero when omitted
    """

    def __init__(
        self,
        energy_momentum: Callable[..., np.ndarray],
        charge: Callable[..., np.ndarray] | None = None,
    ):
        self._energy_momentum = energy_momentum
        self._charge = charge

    def energy_momentum_source(self, tau, x, y, eta, u):
        source = np.asarray(self._energy_momentum(tau, x, y, eta, u), dtype=float)
        return np.broadcast_to(source, np.shape(u))

    def charge_source(self, tau, x, y, eta, u):
        if self._charge is None:
            return np.zeros(np.shape(u)[:-1])
        source = np.asarray(self._charge(tau, x, y, eta, u), dtype=float)
        return np.broadcast_to(source, np.shape(u)[:-1])
