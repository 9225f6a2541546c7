"""
Cross-checks of the symbolic sufficient causality conditions.
"""

import numpy as np
import pytest
import sympy as sp

from ishydro.solvers.causality import (
    CONTEXT_FIELDS,
    sufficiency_expressions,
    sufficiency_functions,
)


def _suff7_by_hand(beta, ctx):
    coupling = (
        (ctx["del_pipi"] - ctx["tau_pipi"] / 12.0)
        * (ctx["lam_Pipi"] + ctx["cs2"] - ctx["tau_pipi"] / 12.0)
        * (ctx["L3"] + abs(ctx["L1"])) ** 2
    )
    shear_term = ctx["s_relax"] + beta * (
        0.5 * ctx["lam_piPi"] * ctx["Pi"] - 0.5 * ctx["tau_pipi"] * abs(ctx["L1"])
    )
    return shear_term**2 - beta**2 * coupling


class TestSufficiencyExpressions:
    """Test the sympy form of Suff5, Suff7 and Suff8."""

    def setup_method(self):
        self.ctx = {
            "cs2": 0.3,
            "L1": -0.07,
            "L2": 0.02,
            "L3": 0.05,
            "Pi": -0.03,
            "s_relax": 0.2,
            "b_relax": 0.01,
            "lam_piPi": 1.2,
            "tau_pipi": 10.0 / 7.0,
            "del_PiPi": 2.0 / 3.0,
            "del_pipi": 4.0 / 3.0,
            "lam_Pipi": 1.6,
        }
        self.args = [self.ctx[name] for name in CONTEXT_FIELDS]

    def test_expressions_depend_on_context_only(self):
        allowed = set(CONTEXT_FIELDS) | {"beta"}
        for name, expr in sufficiency_expressions().items():
            assert {s.name for s in expr.free_symbols} <= allowed, name

    @pytest.mark.parametrize("beta", [0.0, 0.3, 1.0])
    def test_suff7_matches_closed_form(self, beta):
        value = sufficiency_functions()["suff7"](beta, *self.args)
        assert float(value) == pytest.approx(_suff7_by_hand(beta, self.ctx), rel=1e-12)

    def test_ideal_limits(self):
        # with beta = 0 the conditions reduce to statements about the coefficients
        s, b, cs2 = self.ctx["s_relax"], self.ctx["b_relax"], self.ctx["cs2"]
        functions = sufficiency_functions()
        assert float(functions["suff5"](0.0, *self.args)) == pytest.approx(1.0 - cs2 - 4.0 / 3.0 * s - b)
        assert float(functions["suff7"](0.0, *self.args)) == pytest.approx(s**2)
        assert float(functions["suff8"](0.0, *self.args)) == pytest.approx(
            4.0 / 3.0 * s + b + cs2 - (1.0 + 2.0 * s) / 3.0
        )

    def test_suff7_slope_at_zero(self):
        expr = sufficiency_expressions()["suff7"]
        beta = next(s for s in expr.free_symbols if s.name == "beta")
        slope = sp.diff(expr, beta).subs(beta, 0)
        substitutions = {s: self.ctx[s.name] for s in slope.free_symbols}
        expected = 2.0 * self.ctx["s_relax"] * (
            0.5 * self.ctx["lam_piPi"] * self.ctx["Pi"] - 0.5 * self.ctx["tau_pipi"] * abs(self.ctx["L1"])
        )
        assert float(slope.subs(substitutions)) == pytest.approx(expected)

    def test_functions_vectorize(self):
        beta = np.array([0.0, 0.5, 1.0])
        args = [np.full(3, value) for value in self.args]
        values = sufficiency_functions()["suff8"](beta, *args)
        assert values.shape == (3,)
        assert float(values[0]) == pytest.approx(float(sufficiency_functions()["suff8"](0.0, *self.args)))
