"""
Tests for run configuration loading and validation.
"""

import json

import pytest

from ishydro.core.config import ConfigurationError, HydroConfig
from ishydro.core.constants import COORDINATE_SYSTEMS


class TestHydroConfig:
    """Test HydroConfig defaults, validation and serialization."""

    def test_defaults(self):
        config = HydroConfig()
        assert config.is_milne
        assert config.viscosity_flag
        assert config.regularize
        assert config.causality_method == 0
        assert config.fault_policy == "raise"
        assert config.spacings == (0.1, 0.1, 0.1)

    @pytest.mark.parametrize(
        "changes",
        [
            {"delta_tau": 0.0},
            {"delta_x": -0.1},
            {"coordinate_system": "spherical"},
            {"causality_method": 3},
            {"boundary": "reflecting"},
            {"fault_policy": "ignore"},
            {"minmod_theta": 2.5},
            {"quest_revert_strength": -1.0},
        ],
    )
    def test_invalid_values_rejected(self, changes):
        with pytest.raises(ConfigurationError):
            HydroConfig(**changes)

    @pytest.mark.parametrize("system", COORDINATE_SYSTEMS)
    def test_supported_coordinate_systems(self, system):
        assert HydroConfig(coordinate_system=system).is_milne == (system == "milne")

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            HydroConfig(delta_tau=-1.0)

    def test_ideal_profiles_skip_regularization(self):
        assert not HydroConfig(initial_profile=0).regularize
        assert not HydroConfig(initial_profile=1).regularize
        assert HydroConfig(initial_profile=9).regularize

    def test_dissipative_enabled(self):
        assert HydroConfig().dissipative_enabled
        assert not HydroConfig(viscosity_flag=False).dissipative_enabled
        assert not HydroConfig(turn_on_shear=False).dissipative_enabled
        assert HydroConfig(turn_on_shear=False, turn_on_bulk=True).dissipative_enabled

    def test_with_updates_returns_new_instance(self):
        config = HydroConfig()
        updated = config.with_updates(delta_tau=0.005, causality_method=2)
        assert updated.delta_tau == 0.005
        assert updated.causality_method == 2
        assert config.delta_tau == 0.02

    def test_with_updates_validates(self):
        with pytest.raises(ConfigurationError):
            HydroConfig().with_updates(boundary="mirror")

    def test_dict_round_trip(self):
        config = HydroConfig(coordinate_system="cartesian", turn_on_bulk=True)
        assert HydroConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_warn(self):
        with pytest.warns(UserWarning, match="freeze_out_temperature"):
            config = HydroConfig.from_dict({"delta_tau": 0.01, "freeze_out_temperature": 0.15})
        assert config.delta_tau == 0.01

    def test_from_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"delta_eta": 0.2, "causality_method": 1}))
        config = HydroConfig.from_json(path)
        assert config.delta_eta == 0.2
        assert config.causality_method == 1

    def test_from_json_requires_object(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ConfigurationError):
            HydroConfig.from_json(path)
