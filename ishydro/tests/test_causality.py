"""
Tests for quest-revert and causality enforcement.
"""

import numpy as np
import pytest

from ishydro.core.config import HydroConfig
from ishydro.core.constants import QUEST_REVERT_CEILING, SHEAR_INDEX
from ishydro.core.eos import IdealGasEOS
from ishydro.core.faults import FaultKind
from ishydro.core.fields import FluidGrid
from ishydro.equations.coefficients import ConstantTransport, TransportCoefficientSet
from ishydro.solvers.causality import (
    CONTEXT_FIELDS,
    NecessaryCausality,
    SufficientCausality,
    _smallest_factor,
    bisect_reduction,
    create_causality_enforcer,
    quest_revert,
    quest_revert_factor,
    quest_revert_qmu,
    shear_size,
    sufficiency_functions,
)
from ishydro.utils.diagnostics import InMemoryReductionFactorSink


def _sheared_grid(epsilon, pi_xx, shape=(1, 1, 1)):
    grid = FluidGrid.static(shape, epsilon=epsilon)
    grid.Wmunu[..., SHEAR_INDEX[(1, 1)]] = pi_xx
    grid.Wmunu[..., SHEAR_INDEX[(2, 2)]] = -pi_xx
    return grid


class TestQuestRevert:
    """Test the size-based damping of the dissipative currents."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.config = HydroConfig()

    def test_gate_values(self):
        assert float(quest_revert_factor(0.0, 10.0)) == pytest.approx(0.0, abs=1e-12)
        assert float(quest_revert_factor(0.1, 0.1)) == pytest.approx(0.381, abs=1e-3)
        assert float(quest_revert_factor(5.0, 1.0)) == pytest.approx(10.0 * (1.0 - 1.0 / (np.exp(2.0) + 1.0)))

    def test_shear_size_of_diagonal_tensor(self):
        grid = _sheared_grid(1.0, 0.3)
        np.testing.assert_allclose(shear_size(grid.Wmunu), 0.18)

    def test_large_shear_is_damped_to_ceiling(self):
        grid = _sheared_grid(0.5, 25.0)
        n_changed = quest_revert(grid, self.eos, self.config, tau=0.6)
        assert n_changed == 1

        e = grid.epsilon
        p = self.eos.pressure(e, grid.rhob)
        factor = quest_revert_factor(e, self.config.quest_revert_strength)
        rho = np.sqrt(shear_size(grid.Wmunu) / (e * e + 3.0 * p * p)) / factor
        assert float(rho[0, 0, 0]) <= QUEST_REVERT_CEILING * (1.0 + 1e-12)
        assert float(rho[0, 0, 0]) == pytest.approx(QUEST_REVERT_CEILING)

    def test_regularization_pass_logs_one_line(self):
        grid = _sheared_grid(0.5, 25.0)
        sink = InMemoryReductionFactorSink()
        quest_revert(grid, self.eos, self.config, tau=0.6)
        NecessaryCausality(self.eos, ConstantTransport(), sink).enforce(grid, tau=0.6)

        e = grid.epsilon
        p = self.eos.pressure(e, grid.rhob)
        factor = quest_revert_factor(e, self.config.quest_revert_strength)
        rho = np.sqrt(shear_size(grid.Wmunu) / (e * e + 3.0 * p * p)) / factor
        assert float(rho[0, 0, 0]) <= QUEST_REVERT_CEILING * (1.0 + 1e-12)
        assert len(sink) == 1

    def test_small_shear_is_untouched(self):
        grid = _sheared_grid(2.0, 0.01)
        before = grid.Wmunu.copy()
        assert quest_revert(grid, self.eos, self.config, tau=0.6) == 0
        np.testing.assert_array_equal(grid.Wmunu, before)

    def test_large_bulk_is_damped(self):
        grid = FluidGrid.static((1, 1, 2), epsilon=1.0)
        grid.pi_b[0, 0, 0] = -50.0
        grid.pi_b[0, 0, 1] = -0.01
        assert quest_revert(grid, self.eos, self.config, tau=0.6) == 1
        assert -50.0 < grid.pi_b[0, 0, 0] < 0.0
        assert grid.pi_b[0, 0, 1] == -0.01

    def test_primitives_never_change(self):
        grid = _sheared_grid(0.5, 25.0, shape=(2, 1, 1))
        grid.rhob[...] = 0.2
        epsilon, rhob, u = grid.epsilon.copy(), grid.rhob.copy(), grid.u.copy()
        quest_revert(grid, self.eos, self.config, tau=0.6)
        np.testing.assert_array_equal(grid.epsilon, epsilon)
        np.testing.assert_array_equal(grid.rhob, rhob)
        np.testing.assert_array_equal(grid.u, u)

    def test_spacelike_diffusion_violation_resets(self):
        grid = FluidGrid.static((1, 1, 1), epsilon=1.0, rhob=0.5)
        grid.Wmunu[..., 10:14] = [0.1, 0.01, 0.0, 0.0]
        assert quest_revert_qmu(grid, self.config, tau=0.6) == 1
        np.testing.assert_array_equal(grid.Wmunu[..., 10:14], 0.0)

    def test_large_diffusion_is_damped(self):
        grid = FluidGrid.static((1, 1, 1), epsilon=1.0, rhob=0.01)
        grid.Wmunu[..., 11] = 10.0
        assert quest_revert_qmu(grid, self.config, tau=0.6) == 1
        assert 0.0 < grid.Wmunu[0, 0, 0, 11] < 10.0


class TestBisectReduction:
    def test_finds_largest_admissible_factor(self):
        root = bisect_reduction(lambda beta: 0.5 - beta, 1.0, tolerance=1e-4)
        assert 0.5 - 2e-4 <= root <= 0.5

    def test_negative_upper_bound(self):
        assert bisect_reduction(lambda beta: -1.0, -0.1) is None

    def test_tiny_upper_bound(self):
        assert bisect_reduction(lambda beta: -1.0, 1e-5, tolerance=1e-4) == 0.0

    def test_no_sign_change(self):
        assert bisect_reduction(lambda beta: -1.0 - beta, 1.0) is None

    def test_non_finite_endpoint(self):
        assert bisect_reduction(lambda beta: np.nan, 1.0) is None


class TestSmallestFactor:
    def test_negative_candidate_gives_zero(self):
        factors = _smallest_factor([np.array([0.5, -0.2, 2.0]), np.array([0.7, 0.3, 1.0])])
        np.testing.assert_allclose(factors, [0.5, 0.0, 1.0])


class TestNecessaryCausality:
    """Test the closed-form necessary conditions."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.transport = ConstantTransport(coefficients=TransportCoefficientSet(tau_pipi=10.0))
        self.sink = InMemoryReductionFactorSink()
        self.enforcer = NecessaryCausality(self.eos, self.transport, self.sink)

    def _grid(self, lambdas_over_enthalpy):
        grid = FluidGrid.static((1, 1, 1), epsilon=3.0)
        enthalpy = 4.0
        grid.lambdas[...] = np.asarray(lambdas_over_enthalpy) * enthalpy
        grid.Wmunu[..., SHEAR_INDEX[(1, 1)]] = 0.4
        grid.Wmunu[..., SHEAR_INDEX[(3, 3)]] = -0.4
        return grid

    def test_n1_violation_damps_by_expected_factor(self):
        grid = self._grid([-0.1, 0.05, 0.05])
        epsilon, u = grid.epsilon.copy(), grid.u.copy()
        result = self.enforcer.enforce(grid, tau=0.6)

        assert float(result.factors[0, 0, 0]) == pytest.approx(0.8)
        assert result.n_damped == 1
        assert grid.Wmunu[0, 0, 0, 4] == pytest.approx(0.32)
        np.testing.assert_allclose(grid.lambdas[0, 0, 0], [-0.32, 0.16, 0.16])
        np.testing.assert_array_equal(grid.epsilon, epsilon)
        np.testing.assert_array_equal(grid.u, u)

    def test_reports_factor_to_sink(self):
        grid = self._grid([-0.1, 0.05, 0.05])
        self.enforcer.enforce(grid, tau=0.6)
        assert len(self.sink) == 1
        record = self.sink.records[0]
        assert record.method == "necessary"
        assert record.factor == pytest.approx(0.8)
        assert record.energy_density == 3.0
        assert record.tau == 0.6

    def test_causal_state_untouched_but_logged(self):
        grid = self._grid([-0.01, 0.005, 0.005])
        before = grid.Wmunu.copy()
        result = self.enforcer.enforce(grid, tau=0.6)
        assert result.n_damped == 0
        np.testing.assert_array_equal(grid.Wmunu, before)
        assert len(self.sink) == 1
        assert self.sink.records[0].factor == 1.0

    def test_dilute_cells_not_logged(self):
        grid = self._grid([-0.1, 0.05, 0.05])
        grid.epsilon[...] = 0.005
        self.enforcer.enforce(grid, tau=0.6)
        assert len(self.sink) == 0

    def test_idempotent(self):
        grid = self._grid([-0.1, 0.05, 0.05])
        self.enforcer.enforce(grid, tau=0.6)
        second = self.enforcer.factors(grid)
        np.testing.assert_allclose(second.factors, 1.0, rtol=1e-12)

    def test_all_conditions_hold_after_enforcement(self):
        grid = self._grid([-0.1, 0.05, 0.05])
        self.enforcer.enforce(grid, tau=0.6)
        ctx = self.enforcer.context(grid)
        for base, viscous in self.enforcer.conditions(ctx).values():
            assert np.all(base + viscous >= -1e-12)


class TestSufficientCausality:
    """Test closed-form and bisection-based sufficient conditions."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.sink = InMemoryReductionFactorSink()

    def _grid(self, lambdas_over_enthalpy, epsilon=3.0, eos=None):
        eos = eos or self.eos
        grid = FluidGrid.static((1, 1, 1), epsilon=epsilon)
        enthalpy = epsilon + float(eos.pressure(epsilon, 0.0))
        grid.lambdas[...] = np.asarray(lambdas_over_enthalpy) * enthalpy
        return grid

    def test_ideal_state_is_causal(self):
        enforcer = SufficientCausality(self.eos, ConstantTransport(), self.sink)
        result = enforcer.enforce(self._grid([0.0, 0.0, 0.0]), tau=0.6)
        np.testing.assert_array_equal(result.factors, 1.0)
        assert result.faults == []
        assert self.sink.records[0].method == "sufficient"

    def test_strong_shear_is_damped_until_all_conditions_hold(self):
        transport = ConstantTransport(coefficients=TransportCoefficientSet(tau_pipi=10.0))
        enforcer = SufficientCausality(self.eos, transport, self.sink)
        grid = self._grid([-0.1, 0.05, 0.05])
        result = enforcer.enforce(grid, tau=0.6)

        beta = float(result.factors[0, 0, 0])
        # closed-form s2 alone would give 0.4; Suff7 and Suff8 need more damping
        assert 0.0 < beta < 0.4
        assert result.faults == []

        ctx = enforcer.context(self._grid([-0.1, 0.05, 0.05]))
        args = [np.broadcast_to(np.asarray(ctx[name], dtype=float), grid.shape) for name in CONTEXT_FIELDS]
        for name, func in sufficiency_functions().items():
            assert float(func(beta, *args)[0, 0, 0]) >= -1e-12, name

    def test_bisection_failure_is_reported(self):
        transport = ConstantTransport(coefficients=TransportCoefficientSet(shear_relax_time_factor=1.5))
        enforcer = SufficientCausality(self.eos, transport, self.sink)
        grid = self._grid([0.0, 0.0, 0.0])
        grid.Wmunu[..., SHEAR_INDEX[(1, 1)]] = 0.1
        result = enforcer.enforce(grid, tau=0.6)

        assert float(result.factors[0, 0, 0]) == 0.0
        assert len(result.faults) == 1
        assert result.faults[0].kind is FaultKind.BISECTION_FAILURE
        assert "suff5" in result.faults[0].message
        np.testing.assert_array_equal(grid.Wmunu, 0.0)

    def test_soft_eos_suff5_failure_is_silent(self):
        eos = IdealGasEOS(cs2=0.1)
        transport = ConstantTransport(coefficients=TransportCoefficientSet(shear_relax_time_factor=1.5))
        enforcer = SufficientCausality(eos, transport, self.sink)
        result = enforcer.enforce(self._grid([0.0, 0.0, 0.0], eos=eos), tau=0.6)
        assert float(result.factors[0, 0, 0]) == 0.0
        assert result.faults == []


class TestEnforcerFactory:
    @pytest.mark.parametrize(
        "method, expected",
        [(0, type(None)), (1, NecessaryCausality), (2, SufficientCausality)],
    )
    def test_method_selection(self, method, expected):
        enforcer = create_causality_enforcer(method, IdealGasEOS(), ConstantTransport())
        assert isinstance(enforcer, expected)

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            create_causality_enforcer(5, IdealGasEOS(), ConstantTransport())
