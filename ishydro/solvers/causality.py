"""
Regularization of the dissipative currents.

Two mechanisms keep the viscous corrections under control after each
update:

- quest-revert damps π^{μν}, Π and q^μ whenever their size relative to the
  ideal energy-momentum tensor exceeds a ceiling, with a gate that switches
  the damping on in dilute regions;
- causality enforcement rescales all dissipative quantities by a common
  factor so that the nonlinear causality conditions of second-order
  hydrodynamics (Bemfica, Disconzi, Noronha, Hegade K R et al.) hold. The
  necessary conditions have closed-form solutions; three of the sufficient
  conditions are solved by bisection.

Regularization never alters e, n or u.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache, partial

import numpy as np
import sympy as sp
from scipy.optimize import bisect

from ..core.config import HydroConfig
from ..core.constants import (
    BISECTION_TOLERANCE,
    CAUSALITY_LOG_THRESHOLD,
    HBARC,
    QUEST_REVERT_CEILING,
    QUEST_REVERT_EPS_SCALE,
    QUEST_REVERT_XI,
)
from ..core.eos import EquationOfState
from ..core.faults import CellFault, FaultKind, faults_from_mask
from ..core.fields import FluidGrid
from ..equations.coefficients import TransportCoefficientProvider
from ..utils.diagnostics import NullReductionFactorSink, ReductionFactorSink
from ..utils.logging_config import HydroLoggerMixin, get_logger, physics_logger

logger = get_logger("solvers.causality")

# Below this speed of sound a failed Suff5 bisection falls back to zero silently
SUFF5_SOFT_CS2 = 0.15

# Argument order of the sufficiency functions after beta
CONTEXT_FIELDS = (
    "cs2",
    "L1",
    "L2",
    "L3",
    "Pi",
    "s_relax",
    "b_relax",
    "lam_piPi",
    "tau_pipi",
    "del_PiPi",
    "del_pipi",
    "lam_Pipi",
)


# ----------------------------------------------------------------------
# Quest-revert
# ----------------------------------------------------------------------


def quest_revert_factor(e, strength: float):
    """
    Damping gate, vanishing at e = 0 and rising as a logistic around
    e = 0.1 fm^-4 with width 0.05 fm^-4.
    """
    e = np.asarray(e, dtype=float)
    return (
        10.0
        * strength
        * (
            1.0 / (np.exp(-(e - QUEST_REVERT_EPS_SCALE) / QUEST_REVERT_XI) + 1.0)
            - 1.0 / (np.exp(QUEST_REVERT_EPS_SCALE / QUEST_REVERT_XI) + 1.0)
        )
    )


def shear_size(Wmunu: np.ndarray) -> np.ndarray:
    """π^{μν}π_{μν} from the stored components."""
    w = Wmunu
    return (
        w[..., 0] ** 2
        + w[..., 4] ** 2
        + w[..., 7] ** 2
        + w[..., 9] ** 2
        - 2.0 * (w[..., 1] ** 2 + w[..., 2] ** 2 + w[..., 3] ** 2)
        + 2.0 * (w[..., 5] ** 2 + w[..., 6] ** 2 + w[..., 8] ** 2)
    )


def quest_revert(grid: FluidGrid, eos: EquationOfState, config: HydroConfig, tau: float) -> int:
    """
    Damp shear stress and bulk pressure in place.

    Returns:
        Number of cells whose shear or bulk part was changed
    """
    e = grid.epsilon
    factor = quest_revert_factor(e, config.quest_revert_strength)
    p = eos.pressure(e, grid.rhob)
    eq_size = e * e + 3.0 * p * p

    with np.errstate(divide="ignore", invalid="ignore"):
        rho_shear = np.sqrt(shear_size(grid.Wmunu) / eq_size) / factor
        rho_bulk = np.sqrt(3.0 * grid.pi_b**2 / eq_size) / factor

    nan_shear = np.isnan(rho_shear)
    big_shear = ~nan_shear & (rho_shear > QUEST_REVERT_CEILING)
    big_bulk = rho_bulk > QUEST_REVERT_CEILING

    if config.echo_level > 5:
        _warn_dense(grid, big_shear, rho_shear, "shear |pi/(epsilon+3*P)|")
        _warn_dense(grid, big_bulk, rho_bulk, "bulk |Pi/(epsilon+3*P)|")

    grid.Wmunu[..., :10][nan_shear] = 0.0
    min_scale = 1.0
    if np.any(big_shear):
        scale = QUEST_REVERT_CEILING / rho_shear[big_shear]
        grid.Wmunu[..., :10][big_shear] *= scale[:, None]
        min_scale = float(scale.min())
    if np.any(big_bulk):
        scale = QUEST_REVERT_CEILING / rho_bulk[big_bulk]
        grid.pi_b[big_bulk] *= scale
        min_scale = min(min_scale, float(scale.min()))

    n_changed = int(np.sum(nan_shear | big_shear | big_bulk))
    if n_changed:
        physics_logger.log_regularization("quest_revert", n_changed, min_scale, tau)
    return n_changed


def quest_revert_qmu(grid: FluidGrid, config: HydroConfig, tau: float) -> int:
    """
    Damp the charge diffusion current in place.

    A space-like violation q·q < 0 resets q to zero. The size is measured
    against the local net-charge density with the same gate as quest_revert.

    Returns:
        Number of cells whose diffusion current was changed
    """
    factor = quest_revert_factor(grid.epsilon, config.quest_revert_strength)
    q = grid.Wmunu[..., 10:14].copy()
    q_size = -q[..., 0] ** 2 + np.sum(q[..., 1:] ** 2, axis=-1)

    negative = q_size < 0.0
    if np.any(negative):
        logger.warning(f"q^mu q_mu < 0 in {int(np.sum(negative))} cell(s), reset to zero")
        grid.Wmunu[..., 10:14][negative] = 0.0

    with np.errstate(divide="ignore", invalid="ignore"):
        rho_q = np.sqrt(q_size / (grid.rhob * grid.rhob)) / factor
    big = rho_q > QUEST_REVERT_CEILING

    if config.echo_level > 5:
        _warn_dense(grid, big, rho_q, "diffusion |q/rhob|")

    min_scale = 1.0
    if np.any(big):
        scale = QUEST_REVERT_CEILING / rho_q[big]
        grid.Wmunu[..., 10:14][big] = scale[:, None] * q[big]
        min_scale = float(scale.min())
    if np.any(negative):
        min_scale = 0.0

    n_changed = int(np.sum(negative | big))
    if n_changed:
        physics_logger.log_regularization("quest_revert_qmu", n_changed, min_scale, tau)
    return n_changed


def _warn_dense(grid: FluidGrid, mask: np.ndarray, ratio: np.ndarray, label: str) -> None:
    dense = mask & (grid.epsilon > QUEST_REVERT_EPS_SCALE)
    for index in np.argwhere(dense)[:20]:
        cell = tuple(int(i) for i in index)
        logger.warning(
            f"cell {cell}, energy density = {grid.epsilon[cell] * HBARC:.6g} GeV/fm^3, "
            f"{label} = {ratio[cell]:.6g}"
        )


# ----------------------------------------------------------------------
# Sufficient conditions in symbolic form
# ----------------------------------------------------------------------


@lru_cache(maxsize=1)
def sufficiency_expressions() -> dict[str, sp.Expr]:
    """
    Sufficient causality conditions 5, 7 and 8 as functions of the damping
    factor beta applied to (Π, Λ_i).

    All three must be non-negative for a causal state.
    """
    beta = sp.Symbol("beta", real=True)
    cs2, L1, L2, L3, Pi = sp.symbols("cs2 L1 L2 L3 Pi", real=True)
    s_relax = sp.Symbol("s_relax", positive=True)
    b_relax = sp.Symbol("b_relax", nonnegative=True)
    lam_piPi, tau_pipi, del_PiPi, del_pipi, lam_Pipi = sp.symbols(
        "lam_piPi tau_pipi del_PiPi del_pipi lam_Pipi", real=True
    )
    third = sp.Rational(1, 3)
    half = sp.Rational(1, 2)
    twelfth = sp.Rational(1, 12)
    abs_L1 = sp.Abs(L1)

    coupling = (del_pipi - twelfth * tau_pipi) * (lam_Pipi + cs2 - twelfth * tau_pipi) * (L3 + abs_L1) ** 2

    suff5 = (
        1
        - cs2
        - 4 * third * s_relax
        - b_relax
        - beta * ((cs2 - 1 + 2 * third * lam_piPi + del_PiPi) * Pi + (del_pipi + third * tau_pipi + lam_Pipi + cs2) * L3 + abs_L1)
        - beta**2 * coupling / (1 - s_relax + beta * ((1 - half * lam_piPi) * Pi - abs_L1 - half * tau_pipi * L3))
    )
    suff7 = (s_relax + beta * (half * lam_piPi * Pi - half * tau_pipi * abs_L1)) ** 2 - beta**2 * coupling
    suff8 = (
        4 * third * s_relax
        + b_relax
        + cs2
        + beta * ((2 * third * lam_piPi + del_PiPi + cs2) * Pi - (del_pipi + third * tau_pipi - lam_Pipi + cs2) * abs_L1)
        - (1 + beta * (Pi + L2))
        * (1 + beta * (Pi + L3))
        / 3
        / (1 + beta * (Pi - abs_L1)) ** 2
        * (1 + 2 * s_relax + beta * ((1 + lam_piPi) * Pi - sp.Abs(Pi) + tau_pipi * L3))
    )
    return {"suff5": suff5, "suff7": suff7, "suff8": suff8}


@lru_cache(maxsize=1)
def sufficiency_functions() -> dict:
    """Numpy callables f(beta, *CONTEXT_FIELDS) of the symbolic conditions."""
    expressions = sufficiency_expressions()
    beta = sp.Symbol("beta", real=True)
    symbols = {s.name: s for expr in expressions.values() for s in expr.free_symbols}
    args = [beta] + [symbols[name] for name in CONTEXT_FIELDS]
    return {name: sp.lambdify(args, expr, modules="numpy") for name, expr in expressions.items()}


def _condition_value(name: str, context: tuple, beta: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(sufficiency_functions()[name](beta, *context))


def bisect_reduction(func, upper: float, tolerance: float = BISECTION_TOLERANCE) -> float | None:
    """
    Largest damping factor in [0, upper] at which ``func`` is non-negative.

    Returns:
        The factor, or None when [0, upper] does not bracket a sign change
    """
    if upper < 0.0:
        return None
    if upper <= tolerance:
        return 0.0
    f_low, f_high = func(0.0), func(upper)
    if not (np.isfinite(f_low) and np.isfinite(f_high)) or f_low * f_high > 0.0:
        return None
    root = bisect(func, 0.0, upper, xtol=tolerance)
    if func(root) < 0.0:
        root = max(root - tolerance, 0.0)
    return root


# ----------------------------------------------------------------------
# Enforcement
# ----------------------------------------------------------------------


@dataclass
class CausalityResult:
    """
    Outcome of one causality pass.

    Attributes:
        factors: Damping factor applied to every cell
        faults: Non-fatal BISECTION_FAILURE records
    """

    factors: np.ndarray
    faults: list[CellFault] = field(default_factory=list)

    @property
    def n_damped(self) -> int:
        return int(np.sum(self.factors < 1.0))


def _smallest_factor(candidates: list[np.ndarray]) -> np.ndarray:
    """Smallest positive candidate capped at 1; any negative candidate gives 0."""
    stacked = np.stack(candidates, axis=0)
    any_negative = np.any(stacked < 0.0, axis=0)
    positive = np.where(stacked > 0.0, stacked, 1.0)
    return np.where(any_negative, 0.0, np.minimum(1.0, positive.min(axis=0)))


class CausalityEnforcer(HydroLoggerMixin, ABC):
    """
    Base class for the causality passes.

    Args:
        eos: Equation of state
        transport: Source of the second-order coefficients
        sink: Receiver of the applied factors
    """

    method = ""

    def __init__(
        self,
        eos: EquationOfState,
        transport: TransportCoefficientProvider,
        sink: ReductionFactorSink | None = None,
    ):
        self.eos = eos
        self.transport = transport
        self.sink = sink if sink is not None else NullReductionFactorSink()

    def context(self, grid: FluidGrid) -> dict[str, np.ndarray]:
        """Dimensionless inputs of the conditions at every cell."""
        coeffs = self.transport.coefficient_set()
        e, rhob = grid.epsilon, grid.rhob
        cs2 = self.eos.cs2(e, rhob)
        enthalpy = e + self.eos.pressure(e, rhob)
        with np.errstate(divide="ignore", invalid="ignore"):
            lambdas = grid.lambdas / enthalpy[..., None]
            pi = grid.pi_b / enthalpy
        return {
            "cs2": cs2,
            "L1": lambdas[..., 0],
            "L2": lambdas[..., 1],
            "L3": lambdas[..., 2],
            "Pi": pi,
            "s_relax": coeffs.inverse_shear_factor,
            "b_relax": coeffs.bulk_relaxation_weight(cs2),
            "lam_piPi": coeffs.lambda_piPi,
            "tau_pipi": coeffs.tau_pipi,
            "del_PiPi": coeffs.delta_PiPi,
            "del_pipi": coeffs.delta_pipi,
            "lam_Pipi": coeffs.lambda_Pipi,
        }

    @abstractmethod
    def factors(self, grid: FluidGrid) -> CausalityResult:
        """Damping factor of every cell."""
        pass

    def enforce(self, grid: FluidGrid, tau: float) -> CausalityResult:
        """
        Rescale Π, all 14 W components and the eigenvalues in place.

        Every cell above the logging threshold reports its factor to the
        sink, damped or not.
        """
        result = self.factors(grid)
        factor = result.factors
        grid.pi_b *= factor
        grid.Wmunu *= factor[..., None]
        grid.lambdas *= factor[..., None]

        dense = grid.epsilon > CAUSALITY_LOG_THRESHOLD
        if np.any(dense):
            self.sink.record_many(self.method, factor[dense], grid.epsilon[dense], tau)

        if result.n_damped:
            physics_logger.log_regularization(
                f"{self.method}_causality", result.n_damped, float(factor.min()), tau
            )
        return result


class NecessaryCausality(CausalityEnforcer):
    """Closed-form solution of the necessary conditions n1, n3, n5, n6."""

    method = "necessary"

    def conditions(self, ctx: dict) -> dict[str, tuple[np.ndarray, np.ndarray]]:
        """
        Each condition split into its constant part and the part linear in
        the dissipative quantities, cond = base + viscous.
        """
        cs2, pi, L1, L3 = ctx["cs2"], ctx["Pi"], ctx["L1"], ctx["L3"]
        transport_13 = 2.0 * ctx["s_relax"]
        viscous1_13 = ctx["lam_piPi"]
        viscous2_13 = -0.5 * ctx["tau_pipi"]
        transport_56 = cs2 + 4.0 / 3.0 * ctx["s_relax"] + ctx["b_relax"]
        viscous1_56 = 2.0 / 3.0 * ctx["lam_piPi"] + ctx["del_PiPi"] + cs2
        viscous2_56 = (
            ctx["del_pipi"] + ctx["tau_pipi"] / 3.0 + ctx["lam_Pipi"] * (1.0 / 3.0 - cs2) + cs2
        )
        return {
            "n1": (transport_13, viscous1_13 * pi + viscous2_13 * np.abs(L1)),
            "n3": (transport_13, viscous1_13 * pi + viscous2_13 * L3),
            "n5": (transport_56, viscous1_56 * pi + viscous2_56 * L1),
            "n6": (1.0 - transport_56, (1.0 - viscous1_56) * pi + (1.0 - viscous2_56) * L3),
        }

    def factors(self, grid: FluidGrid) -> CausalityResult:
        ctx = self.context(grid)
        candidates = []
        with np.errstate(divide="ignore", invalid="ignore"):
            for base, viscous in self.conditions(ctx).values():
                base = np.broadcast_to(base, grid.shape)
                violated = base + viscous < 0.0
                candidates.append(np.where(violated, -base / viscous, 1.0))
        return CausalityResult(_smallest_factor(candidates))


class SufficientCausality(CausalityEnforcer):
    """
    Closed-form sufficient conditions s1, s2, s6 followed by bisection on
    the conditions Suff5, Suff7 and Suff8.
    """

    method = "sufficient"

    def closed_form_factors(self, ctx: dict, shape) -> np.ndarray:
        cs2, pi, L1, L3 = ctx["cs2"], ctx["Pi"], ctx["L1"], ctx["L3"]
        s_relax, b_relax = ctx["s_relax"], ctx["b_relax"]
        lam_piPi, tau_pipi = ctx["lam_piPi"], ctx["tau_pipi"]
        abs_L1 = np.abs(L1)

        s1 = 1.0 - s_relax - L1 + (1.0 - 0.5 * lam_piPi) * pi - 0.5 * tau_pipi * L3
        s2 = 2.0 * s_relax + lam_piPi * pi - tau_pipi * abs_L1
        s6_viscous = (lam_piPi / 6.0 + ctx["del_PiPi"] + cs2) * pi + (
            tau_pipi / 6.0 - ctx["del_pipi"] + ctx["lam_Pipi"] - cs2
        ) * abs_L1
        s6_base = s_relax / 3.0 + b_relax + cs2
        s6 = s6_base + s6_viscous

        with np.errstate(divide="ignore", invalid="ignore"):
            candidates = [
                np.where(
                    s1 < 0.0,
                    (s_relax - 1.0) / (-abs_L1 + (1.0 - 0.5 * lam_piPi) * pi - 0.5 * tau_pipi * L3),
                    1.0,
                ),
                np.where(s2 < 0.0, (-2.0 * s_relax) / (lam_piPi * pi - tau_pipi * abs_L1), 1.0),
                np.where(s6 < 0.0, -s6_base / s6_viscous, 1.0),
            ]
        return _smallest_factor([np.broadcast_to(c, shape) for c in candidates])

    def factors(self, grid: FluidGrid) -> CausalityResult:
        ctx = self.context(grid)
        shape = grid.shape
        beta = np.array(self.closed_form_factors(ctx, shape), copy=True)
        arrays = [np.broadcast_to(np.asarray(ctx[name], dtype=float), shape) for name in CONTEXT_FIELDS]
        functions = sufficiency_functions()
        failed = {}

        for name in ("suff5", "suff7", "suff8"):
            with np.errstate(divide="ignore", invalid="ignore"):
                values = functions[name](beta, *arrays)
            for index in np.argwhere(values < 0.0):
                cell = tuple(int(i) for i in index)
                cell_context = tuple(float(a[cell]) for a in arrays)
                target = partial(_condition_value, name, cell_context)
                root = bisect_reduction(target, float(beta[cell]))
                if root is not None:
                    beta[cell] = root
                    continue
                beta[cell] = 0.0
                if name == "suff5" and cell_context[0] < SUFF5_SOFT_CS2:
                    continue
                failed.setdefault(name, np.zeros(shape, dtype=bool))[cell] = True

        faults = []
        for name, mask in failed.items():
            message = f"{name} bisection did not bracket a root, damping factor set to 0"
            faults += faults_from_mask(FaultKind.BISECTION_FAILURE, mask, message, {"e": grid.epsilon})
            physics_logger.log_fault(FaultKind.BISECTION_FAILURE.value, int(np.sum(mask)), message)
        return CausalityResult(beta, faults)


def create_causality_enforcer(
    method: int,
    eos: EquationOfState,
    transport: TransportCoefficientProvider,
    sink: ReductionFactorSink | None = None,
) -> CausalityEnforcer | None:
    """
    Enforcer for a ``causality_method`` value: 0 none, 1 necessary, 2 sufficient.
    """
    if method == 0:
        return None
    if method == 1:
        return NecessaryCausality(eos, transport, sink)
    if method == 2:
        return SufficientCausality(eos, transport, sink)
    raise ValueError(f"Unknown causality method: {method}")
