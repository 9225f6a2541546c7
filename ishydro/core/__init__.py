"""
Core module for the ishydro package.

This module provides the constants, run configuration, cell state storage,
equations of state, fault taxonomy, stencil helpers and performance
monitoring shared by the solvers.
"""

from .config import ConfigurationError, HydroConfig
from .constants import (
    HBARC,
    N_DISSIPATIVE,
    SHEAR_INDEX,
    SHEAR_MATRIX_INDEX,
    SMALL_EPS,
)
from .eos import EquationOfState, IdealGasEOS, TabulatedEOS
from .faults import CellFault, FaultKind, NumericalFaultError, SubStepFailed
from .fields import CellView, FieldValidationError, FluidGrid, SnapshotAliasingError
from .performance import monitor_performance, performance_report, profile_operation, reset_performance_stats
from .stencil import apply_boundary_conditions, central_difference, minmod_dx, neighbours

__all__ = [
    # Configuration
    "ConfigurationError",
    "HydroConfig",
    # Constants
    "HBARC",
    "N_DISSIPATIVE",
    "SHEAR_INDEX",
    "SHEAR_MATRIX_INDEX",
    "SMALL_EPS",
    # Equations of state
    "EquationOfState",
    "IdealGasEOS",
    "TabulatedEOS",
    # Faults
    "CellFault",
    "FaultKind",
    "NumericalFaultError",
    "SubStepFailed",
    # Fields
    "CellView",
    "FieldValidationError",
    "FluidGrid",
    "SnapshotAliasingError",
    # Performance
    "monitor_performance",
    "performance_report",
    "profile_operation",
    "reset_performance_stats",
    # Stencils
    "apply_boundary_conditions",
    "central_difference",
    "minmod_dx",
    "neighbours",
]
