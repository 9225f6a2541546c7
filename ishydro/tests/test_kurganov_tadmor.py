"""
Tests for signal speeds, geometric weights and the Kurganov-Tadmor fluxes.
"""

import numpy as np
import pytest

from ishydro.core.config import HydroConfig
from ishydro.core.eos import EquationOfState, IdealGasEOS
from ishydro.core.faults import FaultKind, NumericalFaultError
from ishydro.core.fields import FluidGrid
from ishydro.equations.reconstruction import Reconstructor
from ishydro.solvers.kurganov_tadmor import KTFluxEngine, geometric_weights, max_signal_speed


class ConstantSlopeEOS(EquationOfState):
    """P = dpde * e with a freely chosen (possibly unphysical) c_s^2."""

    def __init__(self, dpde, cs2=None):
        self._dpde = dpde
        self._cs2 = dpde if cs2 is None else cs2

    def pressure(self, e, rhob):
        return self._dpde * np.asarray(e, dtype=float)

    def dpde(self, e, rhob):
        return np.full(np.shape(e), self._dpde)

    def dpdrhob(self, e, rhob):
        return np.zeros(np.shape(e))

    def cs2(self, e, rhob):
        return np.full(np.shape(e), self._cs2)

    def temperature(self, e, rhob):
        return np.asarray(e, dtype=float) ** 0.25


def _velocity(vx, vy=0.0, vz=0.0):
    gamma = 1.0 / np.sqrt(1.0 - vx**2 - vy**2 - vz**2)
    return np.array([[gamma, gamma * vx, gamma * vy, gamma * vz]])


class TestMaxSignalSpeed:
    """Test the characteristic speed and its fault checks."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.e = np.array([1.0])
        self.n = np.zeros(1)

    def test_sound_speed_at_rest(self):
        speed = max_signal_speed(self.e, self.n, _velocity(0.0), 1, self.eos)
        np.testing.assert_allclose(speed, np.sqrt(1.0 / 3.0))

    @pytest.mark.parametrize("v", [0.2, 0.6, 0.95])
    def test_relativistic_velocity_addition(self, v):
        cs = np.sqrt(1.0 / 3.0)
        speed = max_signal_speed(self.e, self.n, _velocity(v), 1, self.eos)
        np.testing.assert_allclose(speed, (v + cs) / (1.0 + v * cs), rtol=1e-12)

    def test_direction_and_speed_factor(self):
        u = _velocity(0.0, 0.0, 0.5)
        along = max_signal_speed(self.e, self.n, u, 3, self.eos)
        scaled = max_signal_speed(self.e, self.n, u, 3, self.eos, speed_factor=0.5)
        np.testing.assert_allclose(scaled, 0.5 * along)
        assert along[0] > max_signal_speed(self.e, self.n, u, 1, self.eos)[0]

    def test_superluminal_speed_is_fatal(self):
        eos = ConstantSlopeEOS(dpde=0.9, cs2=1.5)
        with pytest.raises(NumericalFaultError) as excinfo:
            max_signal_speed(self.e, self.n, _velocity(0.0), 1, eos)
        assert excinfo.value.kinds == {FaultKind.SUPERLUMINAL_SIGNAL_SPEED}

    def test_imaginary_speed_is_fatal(self):
        eos = ConstantSlopeEOS(dpde=0.3, cs2=-0.2)
        with pytest.raises(NumericalFaultError) as excinfo:
            max_signal_speed(self.e, self.n, _velocity(0.1), 1, eos)
        assert FaultKind.IMAGINARY_SIGNAL_SPEED in excinfo.value.kinds
        assert "discriminant" in excinfo.value.faults[0].diagnostics

    def test_soft_eos_fallback(self):
        eos = ConstantSlopeEOS(dpde=0.0005, cs2=-0.01)
        speed = max_signal_speed(self.e, self.n, _velocity(0.0), 1, eos)
        enthalpy = 1.0 + 0.0005
        np.testing.assert_allclose(speed, enthalpy * np.sqrt(0.0005))


    @pytest.mark.parametrize("deficit, fatal", [(5e-5, False), (1e-3, True)])
    def test_speed_below_flow_velocity(self, deficit, fatal):
        dpde, cs2, v = 0.0005, -0.01, 0.5
        u = _velocity(v)
        gamma2 = u[0, 0] ** 2
        den = gamma2 * (1.0 - cs2) + cs2
        # the soft form is linear in the enthalpy; place the speed just under v
        speed_per_enthalpy = (np.sqrt(dpde) + (1.0 - dpde) * gamma2 * v) / den
        e = np.array([(v - deficit) / speed_per_enthalpy / (1.0 + dpde)])
        eos = ConstantSlopeEOS(dpde=dpde, cs2=cs2)

        if fatal:
            with pytest.raises(NumericalFaultError) as excinfo:
                max_signal_speed(e, self.n, u, 1, eos)
            assert excinfo.value.kinds == {FaultKind.SIGNAL_SPEED_BELOW_FLOW}
            fault = excinfo.value.faults[0]
            assert fault.cell == (0,)
            assert fault.diagnostics["v"] - fault.diagnostics["speed"] == pytest.approx(deficit, rel=1e-6)
        else:
            speed = max_signal_speed(e, self.n, u, 1, eos)
            assert speed[0] == u[0, 1] / u[0, 0]


class TestGeometricWeights:
    def test_boost_invariant_limits(self):
        assert geometric_weights(0.1, boost_invariant=True) == (0.0, 0.5)

    def test_finite_spacing(self):
        cosh_w, sinh_w = geometric_weights(0.2, boost_invariant=False)
        assert cosh_w == pytest.approx(np.cosh(0.1) / 0.2)
        assert sinh_w == pytest.approx(np.sinh(0.1) / 0.2)
        assert sinh_w >= 0.5


class TestKTFluxEngine:
    """Test face reconstruction and the flux divergence."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.cartesian = HydroConfig(coordinate_system="cartesian", delta_tau=0.01)

    def _engine(self, config):
        return KTFluxEngine(config, self.eos, Reconstructor(self.eos))

    def test_face_states_of_linear_profile(self):
        engine = self._engine(self.cartesian)
        q = np.broadcast_to(np.arange(8.0)[:, None, None, None], (8, 1, 1, 5)).copy()
        faces = engine.face_states(q, axis=0)
        interior = slice(2, 6)
        np.testing.assert_allclose(faces["phL"][interior], faces["phR"][interior])
        np.testing.assert_allclose(faces["phL"][interior, 0, 0, 0], np.arange(2, 6) + 0.5)
        np.testing.assert_allclose(faces["mhR"][interior, 0, 0, 0], np.arange(2, 6) - 0.5)
        np.testing.assert_allclose(faces["mhL"][interior], faces["mhR"][interior])

    def test_face_states_flat_at_extremum(self):
        engine = self._engine(self.cartesian)
        q = np.zeros((5, 1, 1, 5))
        q[2] = 1.0
        faces = engine.face_states(q, axis=0)
        np.testing.assert_array_equal(faces["phL"][2], 1.0)
        np.testing.assert_array_equal(faces["mhR"][2], 1.0)

    def test_uniform_state_has_no_flux(self):
        engine = self._engine(self.cartesian)
        grid = FluidGrid.static((4, 3, 2), epsilon=2.0)
        grid.u[..., 0] = 1.25
        grid.u[..., 1] = 0.75
        q, rhs = engine.flux_divergence(0.5, grid)
        np.testing.assert_allclose(rhs, 0.0, atol=1e-14)
        np.testing.assert_allclose(q[..., 0], 2.0 + (2.0 + 2.0 / 3.0) * 0.75**2)

    def test_bjorken_work_term(self):
        config = HydroConfig(boost_invariant=True, delta_tau=0.01)
        engine = self._engine(config)
        tau = 0.6
        grid = FluidGrid.static((3, 3, 1), epsilon=3.0)
        q, rhs = engine.flux_divergence(tau, grid)
        np.testing.assert_allclose(q[..., 0], tau * 3.0)
        # d(tau T^tautau)/dtau = -P for a boost-invariant fluid at rest
        np.testing.assert_allclose(rhs[..., 0], -1.0 * config.delta_tau, rtol=1e-12)
        np.testing.assert_allclose(rhs[..., 1:], 0.0, atol=1e-14)

    def test_pressure_gradient_accelerates_fluid(self):
        engine = self._engine(self.cartesian)
        grid = FluidGrid.static((6, 1, 1), epsilon=1.0)
        grid.epsilon[:3] = 2.0
        _, rhs = engine.flux_divergence(0.5, grid)
        # momentum flows towards the low-pressure side across the jump
        assert rhs[2, 0, 0, 1] > 0.0
        assert rhs[3, 0, 0, 1] > 0.0
        assert rhs[2, 0, 0, 0] < 0.0 < rhs[3, 0, 0, 0]
