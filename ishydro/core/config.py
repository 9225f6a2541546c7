"""
Run configuration for the time-advance engine.

``HydroConfig`` collects the grid spacings and the physics switches that the
engine consults on every sub-step. It is immutable: derive variants with
``with_updates``.
"""

import json
import warnings
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from .constants import COORDINATE_SYSTEMS, MINMOD_THETA_DEFAULT


class ConfigurationError(ValueError):
    """Raised for invalid run configuration."""
    pass


_FAULT_POLICIES = ("raise", "report")
_BOUNDARIES = ("outflow", "periodic")
_CAUSALITY_METHODS = (0, 1, 2)


@dataclass(frozen=True)
class HydroConfig:
    """
    Grid spacings and physics switches for one hydro run.

    Attributes:
        delta_tau: Time step (fm)
        delta_x, delta_y: Transverse cell sizes (fm)
        delta_eta: Longitudinal cell size (rapidity units in Milne, fm in Cartesian)
        coordinate_system: "milne" (tau, x, y, eta) or "cartesian" (t, x, y, z)
        boost_invariant: Drop the eta-direction flux and use the boost-invariant
            geometric weights
        viscosity_flag: Master switch for the dissipative update
        turn_on_shear, turn_on_bulk, turn_on_diff, turn_on_rhob: Per-current switches
        initial_profile: Initial-condition mode; 0 and 1 are ideal test modes
            that skip regularization
        causality_method: 0 off, 1 necessary conditions, 2 sufficient conditions
        quest_revert_strength: Overall strength of the quest-revert gate
        minmod_theta: Generalized minmod slope parameter
        boundary: Ghost-cell fill, "outflow" or "periodic"
        echo_level: Verbosity of physics warnings
        fault_policy: "raise" aborts the sub-step on a numerical fault,
            "report" collects faults in the step report
    """

    delta_tau: float = 0.02
    delta_x: float = 0.1
    delta_y: float = 0.1
    delta_eta: float = 0.1
    coordinate_system: str = "milne"
    boost_invariant: bool = False
    viscosity_flag: bool = True
    turn_on_shear: bool = True
    turn_on_bulk: bool = False
    turn_on_diff: bool = False
    turn_on_rhob: bool = False
    initial_profile: int = 2
    causality_method: int = 0
    quest_revert_strength: float = 10.0
    minmod_theta: float = MINMOD_THETA_DEFAULT
    boundary: str = "outflow"
    echo_level: int = 1
    fault_policy: str = "raise"

    def __post_init__(self) -> None:
        for name in ("delta_tau", "delta_x", "delta_y", "delta_eta"):
            value = getattr(self, name)
            if not value > 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.coordinate_system not in COORDINATE_SYSTEMS:
            raise ConfigurationError(f"Unknown coordinate system: {self.coordinate_system}")
        if self.causality_method not in _CAUSALITY_METHODS:
            raise ConfigurationError(
                f"causality_method must be one of {_CAUSALITY_METHODS}, got {self.causality_method}"
            )
        if self.boundary not in _BOUNDARIES:
            raise ConfigurationError(f"boundary must be one of {_BOUNDARIES}, got {self.boundary}")
        if self.fault_policy not in _FAULT_POLICIES:
            raise ConfigurationError(
                f"fault_policy must be one of {_FAULT_POLICIES}, got {self.fault_policy}"
            )
        if not 1.0 <= self.minmod_theta <= 2.0:
            raise ConfigurationError(f"minmod_theta must lie in [1, 2], got {self.minmod_theta}")
        if self.quest_revert_strength < 0:
            raise ConfigurationError("quest_revert_strength must be non-negative")

    @property
    def is_milne(self) -> bool:
        return self.coordinate_system == "milne"

    @property
    def dissipative_enabled(self) -> bool:
        return self.viscosity_flag and (self.turn_on_shear or self.turn_on_bulk or self.turn_on_diff)

    @property
    def regularize(self) -> bool:
        """Whether quest-revert and causality enforcement run after the update."""
        return self.initial_profile not in (0, 1)

    @property
    def spacings(self) -> tuple[float, float, float]:
        return (self.delta_x, self.delta_y, self.delta_eta)

    def with_updates(self, **changes: Any) -> "HydroConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HydroConfig":
        """
        Build a configuration from a mapping.

        Unknown keys are ignored with a warning so parameter files shared with
        other tools load cleanly.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            warnings.warn(f"Ignoring unknown configuration keys: {unknown}", stacklevel=2)
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_json(cls, path: str | Path) -> "HydroConfig":
        with Path(path).open(encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a JSON object")
        return cls.from_dict(data)
