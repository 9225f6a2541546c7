"""
Utilities module for the ishydro package.

This module provides logging setup, the physics and performance loggers, and
the reduction-factor diagnostics sinks used by the causality regularization.
"""

from .diagnostics import (
    FileReductionFactorSink,
    InMemoryReductionFactorSink,
    NullReductionFactorSink,
    ReductionFactorSink,
    ReductionRecord,
)
from .logging_config import (
    HydroLoggerMixin,
    PerformanceLogger,
    PhysicsLogger,
    configure_logging,
    get_logger,
    performance_logger,
    physics_logger,
    setup_from_environment,
)

__all__ = [
    "FileReductionFactorSink",
    "HydroLoggerMixin",
    "InMemoryReductionFactorSink",
    "NullReductionFactorSink",
    "PerformanceLogger",
    "PhysicsLogger",
    "ReductionFactorSink",
    "ReductionRecord",
    "configure_logging",
    "get_logger",
    "performance_logger",
    "physics_logger",
    "setup_from_environment",
]
