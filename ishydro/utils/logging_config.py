"""
Centralized logging configuration for the viscous hydro time-advance engine.

This module provides structured logging setup for development and production
runs, including solver and physics-validation channels and timing output.
"""

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Any

import structlog


class HydroLoggerMixin:
    """Mixin class to add logger to any class."""

    @property
    def logger(self) -> logging.Logger:
        """Get logger for this class."""
        return get_logger(self.__class__.__name__)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically module or class name)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(f"ishydro.{name}")


def configure_logging(
    level: str = "INFO",
    format_type: str = "console",
    log_file: Path | None = None,
    enable_performance: bool = False,
    enable_solver_logging: bool = False,
    enable_physics_validation: bool = False,
    enable_debug_mode: bool = False,
) -> None:
    """
    Configure logging for the ishydro package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Format type ("console", "json", "structured")
        log_file: Optional file path for file logging
        enable_performance: Enable sub-step timing logging
        enable_solver_logging: Enable detailed solver operation logging
        enable_physics_validation: Enable regularization and fault logging
        enable_debug_mode: Enable comprehensive debug logging
    """
    level = level.upper()

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "format": "%(asctime)s | %(name)-24s | %(levelname)-8s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s | %(name)-24s | %(levelname)-8s | "
                    "%(filename)s:%(lineno)d | %(funcName)s | %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "format": "%(message)s",
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter"
                if "pythonjsonlogger" in sys.modules
                else "logging.Formatter",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "console" if format_type == "console" else "detailed",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "ishydro": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            "numba": {"level": "WARNING"},
            "scipy": {"level": "WARNING"},
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "detailed",
            "filename": str(log_file),
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
        }
        config["loggers"]["ishydro"]["handlers"].append("file")

    if enable_performance:
        config["loggers"]["ishydro.performance"] = {
            "level": "DEBUG",
            "handlers": config["loggers"]["ishydro"]["handlers"].copy(),
            "propagate": False,
        }

    if enable_solver_logging:
        solver_loggers = [
            "ishydro.solvers",
            "ishydro.solvers.advance",
            "ishydro.solvers.kurganov_tadmor",
            "ishydro.solvers.causality",
        ]
        for solver_logger in solver_loggers:
            config["loggers"][solver_logger] = {
                "level": "DEBUG" if enable_debug_mode else "INFO",
                "handlers": config["loggers"]["ishydro"]["handlers"].copy(),
                "propagate": False,
            }

    if enable_physics_validation:
        physics_loggers = [
            "ishydro.physics",
            "ishydro.equations",
            "ishydro.equations.reconstruction",
            "ishydro.equations.relaxation",
        ]
        for physics_logger in physics_loggers:
            config["loggers"][physics_logger] = {
                "level": "DEBUG" if enable_debug_mode else "INFO",
                "handlers": config["loggers"]["ishydro"]["handlers"].copy(),
                "propagate": False,
            }

    if enable_debug_mode:
        config["loggers"]["ishydro"]["level"] = "DEBUG"
        for subsystem in ["core", "equations", "solvers"]:
            config["loggers"][f"ishydro.{subsystem}"] = {
                "level": "DEBUG",
                "handlers": config["loggers"]["ishydro"]["handlers"].copy(),
                "propagate": False,
            }

    logging.config.dictConfig(config)

    if format_type == "structured":
        _configure_structlog(level)


def _configure_structlog(level: str) -> None:
    """Configure structlog for structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
            if level == "DEBUG"
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        logger_factory=structlog.PrintLoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def setup_from_environment() -> None:
    """
    Setup logging configuration from environment variables.

    Environment Variables:
        ISHYDRO_LOG_LEVEL: Log level (default: INFO)
        ISHYDRO_LOG_FORMAT: Format type (default: console)
        ISHYDRO_LOG_FILE: Optional log file path
        ISHYDRO_LOG_PERFORMANCE: Enable timing logging (default: False)
        ISHYDRO_LOG_SOLVERS: Enable solver logging (default: False)
        ISHYDRO_LOG_PHYSICS: Enable physics validation logging (default: False)
        ISHYDRO_LOG_DEBUG: Enable comprehensive debug mode (default: False)
    """
    level = os.getenv("ISHYDRO_LOG_LEVEL", "INFO")
    format_type = os.getenv("ISHYDRO_LOG_FORMAT", "console")
    log_file_str = os.getenv("ISHYDRO_LOG_FILE")
    enable_performance = os.getenv("ISHYDRO_LOG_PERFORMANCE", "false").lower() == "true"
    enable_solver_logging = os.getenv("ISHYDRO_LOG_SOLVERS", "false").lower() == "true"
    enable_physics_validation = os.getenv("ISHYDRO_LOG_PHYSICS", "false").lower() == "true"
    enable_debug_mode = os.getenv("ISHYDRO_LOG_DEBUG", "false").lower() == "true"

    log_file = Path(log_file_str) if log_file_str else None

    configure_logging(
        level=level,
        format_type=format_type,
        log_file=log_file,
        enable_performance=enable_performance,
        enable_solver_logging=enable_solver_logging,
        enable_physics_validation=enable_physics_validation,
        enable_debug_mode=enable_debug_mode,
    )


class PerformanceLogger:
    """Logger for sub-step timings."""

    def __init__(self, name: str = "performance"):
        self.logger = get_logger(name)

    def log_operation(self, operation: str, duration: float, **kwargs: Any) -> None:
        """Log a completed operation with timing."""
        self.logger.info(
            f"Operation completed: {operation} ({duration:.4f} s)",
            extra={
                "operation": operation,
                "duration_seconds": duration,
                "performance_data": kwargs,
            },
        )


class PhysicsLogger:
    """Logger for regularization activity and numerical faults."""

    def __init__(self, name: str = "physics"):
        self.logger = get_logger(name)

    def log_regularization(
        self, method: str, n_cells: int, min_factor: float, tau: float
    ) -> None:
        """Log how many cells a regularization pass rescaled."""
        if n_cells == 0:
            return
        self.logger.debug(
            f"Regularization {method}: {n_cells} cells damped, min factor {min_factor:.4e}",
            extra={
                "method": method,
                "n_cells": n_cells,
                "min_factor": min_factor,
                "tau": tau,
            },
        )

    def log_fault(self, kind: str, n_cells: int, message: str) -> None:
        """Log a numerical fault before it is handed to the caller."""
        self.logger.error(
            f"Numerical fault {kind} in {n_cells} cell(s): {message}",
            extra={"fault_kind": kind, "n_cells": n_cells},
        )

    def log_physics_fallback(self, operation: str, reason: str, fallback: str) -> None:
        """Log when a computation falls back to a simpler branch."""
        self.logger.warning(
            f"Physics fallback: {operation}",
            extra={
                "operation": operation,
                "reason": reason,
                "fallback_method": fallback,
            },
        )


def set_log_level(level: str) -> None:
    """Adjust log level at runtime for all ishydro loggers."""
    level = level.upper()
    package_logger = logging.getLogger("ishydro")
    package_logger.setLevel(getattr(logging, level))

    for name in logging.getLogger().manager.loggerDict:
        if name.startswith("ishydro."):
            logger = logging.getLogger(name)
            if logger.handlers:
                logger.setLevel(getattr(logging, level))


def enable_performance_logging(enabled: bool = True) -> None:
    """Enable or disable performance logging at runtime."""
    perf_logger = logging.getLogger("ishydro.performance")
    if enabled:
        if not perf_logger.handlers:
            perf_logger.setLevel(logging.DEBUG)
            main_logger = logging.getLogger("ishydro")
            for handler in main_logger.handlers:
                perf_logger.addHandler(handler)
            perf_logger.propagate = False
        perf_logger.disabled = False
    else:
        perf_logger.disabled = True


def get_logging_status() -> dict[str, Any]:
    """Get current logging configuration status."""
    package_logger = logging.getLogger("ishydro")
    perf_logger = logging.getLogger("ishydro.performance")

    return {
        "main_level": logging.getLevelName(package_logger.level),
        "performance_enabled": not perf_logger.disabled and bool(perf_logger.handlers),
        "handlers_count": len(package_logger.handlers),
        "active_loggers": [
            name
            for name in logging.getLogger().manager.loggerDict
            if name.startswith("ishydro.")
            and logging.getLogger(name).handlers
            and not logging.getLogger(name).disabled
        ],
    }


performance_logger = PerformanceLogger()
physics_logger = PhysicsLogger()
