"""
Physics equations for viscous relativistic hydrodynamics.

This module contains the physics entering one advance step:
- Conservation laws (energy-momentum tensor and conserved variables)
- Conserved-to-primitive reconstruction
- Relaxation equations for shear, bulk and diffusion currents
- Transport coefficients and relaxation times
- Velocity-gradient kinematics and external sources
"""

from .coefficients import (
    ConstantTransport,
    TemperatureDependentTransport,
    TransportCoefficientProvider,
    TransportCoefficientSet,
)
from .conservation import conserved_vector, ideal_tj, state_conserved_vector, viscous_tensor
from .kinematics import FiniteDifferenceKinematics, KinematicGradientProvider, KinematicGradients
from .reconstruction import Reconstructor
from .relaxation import DissipativeTerms, restore_constraints, shear_eigenvalues
from .sources import CallableSource, HydroSourceProvider, NullSource

__all__ = [
    'CallableSource',
    'ConstantTransport',
    'DissipativeTerms',
    'FiniteDifferenceKinematics',
    'HydroSourceProvider',
    'KinematicGradientProvider',
    'KinematicGradients',
    'NullSource',
    'Reconstructor',
    'TemperatureDependentTransport',
    'TransportCoefficientProvider',
    'TransportCoefficientSet',
    'conserved_vector',
    'ideal_tj',
    'restore_constraints',
    'shear_eigenvalues',
    'state_conserved_vector',
    'viscous_tensor',
]
