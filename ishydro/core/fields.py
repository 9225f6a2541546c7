"""
Cell state storage for the time-advance engine.

This module defines ``FluidGrid``, the structure-of-arrays container holding
the primitive variables and dissipative currents of every cell on a
``(nx, ny, neta)`` grid. The engine keeps three of them (previous, current,
future) and only ever writes to the future one.
"""

from dataclasses import dataclass

import numpy as np

from .constants import ENERGY_DENSITY_MIN, METRIC_DIAG, N_DISSIPATIVE, SHEAR_MATRIX_INDEX


class FieldValidationError(ValueError):
    """Exception for field validation errors."""
    pass


class SnapshotAliasingError(ValueError):
    """Raised when the future snapshot shares memory with an input snapshot."""
    pass


@dataclass(frozen=True)
class CellView:
    """Copy of the state of a single cell, for diagnostics and fault reports."""

    index: tuple[int, int, int]
    epsilon: float
    rhob: float
    u: tuple[float, float, float, float]
    Wmunu: tuple[float, ...]
    pi_b: float
    lambdas: tuple[float, float, float]


class FluidGrid:
    """
    Primitive and dissipative fields on a structured grid.

    Attributes:
        epsilon: Energy density, shape (nx, ny, neta)
        rhob: Net-charge density, shape (nx, ny, neta)
        u: Contravariant four-velocity (u^tau, u^x, u^y, u^eta) in the local
            orthonormal frame, shape (nx, ny, neta, 4)
        Wmunu: Ten shear components followed by the diffusion current q^mu,
            shape (nx, ny, neta, 14)
        pi_b: Bulk viscous pressure, shape (nx, ny, neta)
        lambdas: Cached shear eigenvalues (min, -min-max, max),
            shape (nx, ny, neta, 3)
    """

    FIELD_NAMES = ("epsilon", "rhob", "u", "Wmunu", "pi_b", "lambdas")

    def __init__(
        self,
        epsilon: np.ndarray,
        rhob: np.ndarray,
        u: np.ndarray,
        Wmunu: np.ndarray,
        pi_b: np.ndarray,
        lambdas: np.ndarray,
    ):
        self.epsilon = epsilon
        self.rhob = rhob
        self.u = u
        self.Wmunu = Wmunu
        self.pi_b = pi_b
        self.lambdas = lambdas
        self._validate_shapes()

    def _validate_shapes(self) -> None:
        shape = np.shape(self.epsilon)
        if len(shape) != 3:
            raise FieldValidationError(f"Grid must be three dimensional, got shape {shape}")
        expected = {
            "rhob": shape,
            "u": (*shape, 4),
            "Wmunu": (*shape, N_DISSIPATIVE),
            "pi_b": shape,
            "lambdas": (*shape, 3),
        }
        for name, target in expected.items():
            actual = np.shape(getattr(self, name))
            if actual != target:
                raise FieldValidationError(f"{name} has shape {actual}, expected {target}")

    @classmethod
    def zeros(cls, shape: tuple[int, int, int]) -> "FluidGrid":
        """Empty grid with the fluid at rest (u = (1, 0, 0, 0))."""
        shape = tuple(int(s) for s in shape)
        if len(shape) != 3 or min(shape) < 1:
            raise FieldValidationError(f"Invalid grid shape {shape}")
        u = np.zeros((*shape, 4))
        u[..., 0] = 1.0
        return cls(
            epsilon=np.zeros(shape),
            rhob=np.zeros(shape),
            u=u,
            Wmunu=np.zeros((*shape, N_DISSIPATIVE)),
            pi_b=np.zeros(shape),
            lambdas=np.zeros((*shape, 3)),
        )

    @classmethod
    def static(
        cls, shape: tuple[int, int, int], epsilon: float, rhob: float = 0.0
    ) -> "FluidGrid":
        """Uniform fluid at rest with the given energy and charge density."""
        if epsilon < 0:
            raise FieldValidationError(f"Energy density must be non-negative, got {epsilon}")
        grid = cls.zeros(shape)
        grid.epsilon[...] = epsilon
        grid.rhob[...] = rhob
        return grid

    @property
    def shape(self) -> tuple[int, int, int]:
        return tuple(np.shape(self.epsilon))

    def arrays(self) -> dict[str, np.ndarray]:
        return {name: getattr(self, name) for name in self.FIELD_NAMES}

    def copy(self) -> "FluidGrid":
        """Create deep copy of the grid."""
        return FluidGrid(**{name: np.array(arr, copy=True) for name, arr in self.arrays().items()})

    def copy_from(self, other: "FluidGrid") -> None:
        """Overwrite every field in place with the contents of ``other``."""
        if other.shape != self.shape:
            raise FieldValidationError(f"Shape mismatch: {other.shape} vs {self.shape}")
        for name, arr in other.arrays().items():
            getattr(self, name)[...] = arr

    def read_only(self) -> "FluidGrid":
        """Non-writeable views over the same memory."""
        views = {}
        for name, arr in self.arrays().items():
            view = arr.view()
            view.flags.writeable = False
            views[name] = view
        return FluidGrid(**views)

    def shares_memory_with(self, other: "FluidGrid") -> bool:
        """True if any array of this grid overlaps any array of ``other``."""
        return any(
            np.shares_memory(mine, theirs)
            for mine in self.arrays().values()
            for theirs in other.arrays().values()
        )

    def cell(self, ix: int, iy: int, ieta: int) -> CellView:
        index = (ix, iy, ieta)
        return CellView(
            index=index,
            epsilon=float(self.epsilon[index]),
            rhob=float(self.rhob[index]),
            u=tuple(float(v) for v in self.u[index]),
            Wmunu=tuple(float(v) for v in self.Wmunu[index]),
            pi_b=float(self.pi_b[index]),
            lambdas=tuple(float(v) for v in self.lambdas[index]),
        )

    def velocity_norm(self) -> np.ndarray:
        """u^mu u_mu, equal to -1 for a normalized velocity."""
        return -self.u[..., 0] ** 2 + np.sum(self.u[..., 1:] ** 2, axis=-1)

    def shear_tensor(self) -> np.ndarray:
        """Full symmetric W^{mu nu}, shape (..., 4, 4)."""
        return self.Wmunu[..., SHEAR_MATRIX_INDEX]

    def diffusion_current(self) -> np.ndarray:
        return self.Wmunu[..., 10:14]

    def validate_field_configuration(self, tolerance: float = 1e-8) -> dict[str, bool]:
        """
        Check the physical constraints of the stored state.

        Returns:
            Dictionary of validation results
        """
        validation = {}
        validation["four_velocity_normalized"] = bool(
            np.allclose(self.velocity_norm(), -1.0, atol=tolerance)
        )

        pi = self.shear_tensor()
        trace = -pi[..., 0, 0] + pi[..., 1, 1] + pi[..., 2, 2] + pi[..., 3, 3]
        validation["shear_tensor_traceless"] = bool(np.allclose(trace, 0.0, atol=tolerance))

        u_lower = self.u * METRIC_DIAG
        pi_u = np.einsum("...ij,...i->...j", pi, u_lower)
        validation["shear_orthogonal_to_velocity"] = bool(np.allclose(pi_u, 0.0, atol=tolerance))

        validation["energy_density_positive"] = bool(np.all(self.epsilon >= ENERGY_DENSITY_MIN))
        validation["overall_valid"] = all(validation.values())
        return validation

    def __repr__(self) -> str:
        return f"FluidGrid(shape={self.shape})"
