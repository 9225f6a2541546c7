"""
ishydro: explicit time advance for second-order viscous relativistic
hydrodynamics.

A Kurganov-Tadmor finite-volume scheme for the ideal conservation laws,
relaxation-type evolution of shear, bulk and diffusion currents, and a
causality-preserving regularization stage, all vectorized over a
structured (x, y, η) grid.
"""

# Initialize logging system early
from .utils.logging_config import setup_from_environment

setup_from_environment()

__version__ = "0.1.0"
__author__ = "Relativistic Hydrodynamics Team"

from . import (
    core,
    equations,
    solvers,
    utils,
)

__all__ = [
    "core",
    "equations",
    "solvers",
    "utils",
]
