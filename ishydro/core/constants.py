"""
Physical constants, numerical floors and index maps for viscous hydrodynamics.

This module provides the unit system, the tolerances used throughout the
time-advance engine, and the layout of the stored dissipative components.
"""

import numpy as np

# ħc in GeV·fm, converts between fm^-1 and GeV
HBARC = 0.19733

# Numerical floors
SMALL_EPS = 1e-16
ENERGY_DENSITY_MIN = 1e-15
TEMPERATURE_MIN = 1e-10

# Maximum signal speed checks
SIGNAL_SPEED_TOLERANCE = 1e-4
DPDE_FALLBACK_THRESHOLD = 0.001

# Regularization (quest-revert) in fm^-4
QUEST_REVERT_EPS_SCALE = 0.1
QUEST_REVERT_XI = 0.05
QUEST_REVERT_CEILING = 0.1

# Cells with energy density above this value report their causality factor
CAUSALITY_LOG_THRESHOLD = 0.01
BISECTION_TOLERANCE = 1e-4

# Generalized minmod slope parameter
MINMOD_THETA_DEFAULT = 1.8

# Reconstruction controls
RECONSTRUCTION_MAX_ITERATIONS = 100
RECONSTRUCTION_TOLERANCE = 1e-12
VELOCITY_MAX = 1.0 - 1e-15

# Storage layout of the 14 dissipative components Wmunu[..., k]
N_DISSIPATIVE = 14
SHEAR_INDEX: dict[tuple[int, int], int] = {
    (0, 0): 0,
    (0, 1): 1,
    (0, 2): 2,
    (0, 3): 3,
    (1, 1): 4,
    (1, 2): 5,
    (1, 3): 6,
    (2, 2): 7,
    (2, 3): 8,
    (3, 3): 9,
}
# Symmetric completion of the map
for (_mu, _nu), _k in list(SHEAR_INDEX.items()):
    SHEAR_INDEX[(_nu, _mu)] = _k
del _mu, _nu, _k

# Diagonal of the mostly-plus Minkowski metric in the local orthonormal frame
METRIC_DIAG = np.array([-1.0, 1.0, 1.0, 1.0])

# Supported frames: Milne (tau, x, y, eta) and Cartesian (t, x, y, z)
COORDINATE_SYSTEMS = ("milne", "cartesian")


def shear_matrix_index() -> np.ndarray:
    """
    Return a (4, 4) integer array mapping (mu, nu) to storage index.

    Returns:
        Array ``idx`` such that ``Wmunu[..., idx[mu, nu]]`` is W^{mu nu}
    """
    idx = np.zeros((4, 4), dtype=int)
    for (mu, nu), k in SHEAR_INDEX.items():
        idx[mu, nu] = k
    return idx


SHEAR_MATRIX_INDEX = shear_matrix_index()


def validate_transport_coefficient(coefficient: float, name: str) -> bool:
    """
    Validate transport coefficient (viscosity, relaxation factor, etc.).

    Args:
        coefficient: Coefficient value
        name: Coefficient name for error messages

    Returns:
        True if valid

    Raises:
        ValueError: If coefficient is invalid
    """
    if not np.isfinite(coefficient):
        raise ValueError(f"{name} must be finite, got {coefficient}")
    if coefficient < 0.0:
        raise ValueError(f"{name} must be non-negative, got {coefficient}")
    return True
