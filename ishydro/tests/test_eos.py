"""
Tests for the equation-of-state implementations.
"""

import numpy as np
import pytest

from ishydro.core.eos import IdealGasEOS, TabulatedEOS


class TestIdealGasEOS:
    """Test the constant speed of sound EOS."""

    def setup_method(self):
        self.eos = IdealGasEOS()
        self.e = np.array([0.01, 0.5, 3.0, 40.0])
        self.n = np.zeros_like(self.e)

    def test_pressure_and_derivatives(self):
        np.testing.assert_allclose(self.eos.pressure(self.e, self.n), self.e / 3.0)
        np.testing.assert_allclose(self.eos.dpde(self.e, self.n), 1.0 / 3.0)
        np.testing.assert_allclose(self.eos.dpdrhob(self.e, self.n), 0.0)
        np.testing.assert_allclose(self.eos.cs2(self.e, self.n), 1.0 / 3.0)

    def test_conformal_temperature_scaling(self):
        # e ∝ T^4 for c_s^2 = 1/3
        t = self.eos.temperature(self.e, self.n)
        ratio = self.e / t**4
        np.testing.assert_allclose(ratio, ratio[0], rtol=1e-12)

    def test_thermodynamic_consistency(self):
        # s = (e + P)/T = dP/dT at mu = 0
        e = np.array([2.0, 2.0 * (1 + 1e-6)])
        t = self.eos.temperature(e, 0.0)
        p = self.eos.pressure(e, 0.0)
        dp_dt = (p[1] - p[0]) / (t[1] - t[0])
        s = self.eos.entropy_density(e[0], 0.0)
        assert s == pytest.approx(dp_dt, rel=1e-4)

    def test_chemical_potential_vanishes(self):
        np.testing.assert_array_equal(self.eos.chemical_potential(self.e, self.n), 0.0)

    @pytest.mark.parametrize("cs2", [0.0, -0.1, 1.5])
    def test_invalid_speed_of_sound(self, cs2):
        with pytest.raises(ValueError):
            IdealGasEOS(cs2=cs2)

    def test_stiffer_gas(self):
        eos = IdealGasEOS(cs2=0.2)
        assert float(eos.pressure(5.0, 0.0)) == pytest.approx(1.0)
        assert "0.2" in repr(eos)


class TestTabulatedEOS:
    """Test the spline-interpolated EOS."""

    def setup_method(self):
        self.reference = IdealGasEOS(cs2=0.25)
        self.eos = TabulatedEOS.from_function(
            lambda e: self.reference.pressure(e, 0.0),
            lambda e: self.reference.temperature(e, 0.0),
            e_min=1e-3,
            e_max=1e3,
            n=600,
        )

    def test_matches_reference_inside_table(self):
        e = np.geomspace(2e-3, 5e2, 50)
        np.testing.assert_allclose(self.eos.pressure(e, 0.0), 0.25 * e, rtol=1e-8)
        np.testing.assert_allclose(self.eos.dpde(e, 0.0), 0.25, rtol=1e-6)
        np.testing.assert_allclose(
            self.eos.temperature(e, 0.0), self.reference.temperature(e, 0.0), rtol=1e-5
        )

    def test_extrapolation_is_continuous(self):
        lo, hi = 1e-3, 1e3
        below = self.eos.pressure(np.array([lo * (1 - 1e-9), lo * 0.5]), 0.0)
        above = self.eos.pressure(np.array([hi * (1 + 1e-9), hi * 2.0]), 0.0)
        assert below[0] == pytest.approx(0.25 * lo, rel=1e-6)
        assert below[1] == pytest.approx(0.25 * lo * 0.5, rel=1e-6)
        assert above[0] == pytest.approx(0.25 * hi, rel=1e-6)
        assert above[1] == pytest.approx(0.25 * hi * 2.0, rel=1e-5)

    def test_cs2_from_table(self):
        np.testing.assert_allclose(self.eos.cs2(np.array([0.1, 10.0]), 0.0), 0.25, rtol=1e-6)

    def test_rejects_bad_tables(self):
        e = np.array([1.0, 2.0, 3.0, 4.0])
        with pytest.raises(ValueError):
            TabulatedEOS(e[::-1], e / 3, e)
        with pytest.raises(ValueError):
            TabulatedEOS(e[:3], e[:3] / 3, e[:3])
        with pytest.raises(ValueError):
            TabulatedEOS(e, 2.0 * e, e)
