"""
Explicit Runge-Kutta advance of viscous relativistic hydrodynamics.

One call to ``AdvanceEngine.advance`` performs one sub-step of Heun's
two-stage rule. With rk_flag = 0 the future snapshot receives the Euler
update from the current state; with rk_flag = 1 the current snapshot holds
the first-stage result and the future snapshot receives the average of the
initial state (kept in the previous snapshot) and a second Euler update.

Each sub-step consists of
    1. the ideal update of (τT^{τμ}, τJ^τ) with Kurganov-Tadmor fluxes,
       external sources and the divergence of the dissipative fluxes,
    2. reconstruction of (e, n, u^μ) at τ + Δτ,
    3. the relaxation-equation update of π^{μν}, Π and q^μ,
    4. constraint restoration, eigenvalues of π^μ_ν and regularization.
"""

import time
from dataclasses import dataclass, field

import numpy as np

from ..core.config import HydroConfig
from ..core.eos import EquationOfState
from ..core.faults import CellFault, FaultKind, NumericalFaultError, SubStepFailed, faults_from_mask
from ..core.fields import FieldValidationError, FluidGrid, SnapshotAliasingError
from ..core.performance import monitor_performance, profile_operation
from ..equations.coefficients import TransportCoefficientProvider
from ..equations.kinematics import FiniteDifferenceKinematics, KinematicGradientProvider
from ..equations.reconstruction import Reconstructor
from ..equations.relaxation import DissipativeTerms, restore_constraints, shear_eigenvalues
from ..equations.sources import HydroSourceProvider, NullSource
from ..utils.diagnostics import ReductionFactorSink
from ..utils.logging_config import HydroLoggerMixin, physics_logger
from .causality import create_causality_enforcer, quest_revert, quest_revert_qmu
from .kurganov_tadmor import KTFluxEngine

# Faults that leave the sub-step result usable
NON_FATAL_FAULTS = frozenset({FaultKind.BISECTION_FAILURE})

# Evolved shear components and their (mu, nu) positions
_EVOLVED_SHEAR_PAIRS = ((1, 1), (1, 2), (1, 3), (2, 2), (2, 3))


@dataclass
class StepReport:
    """
    Summary of one sub-step.

    Attributes:
        tau: Proper time at the start of the full step
        rk_flag: Sub-step index (0 or 1)
        faults: Every fault detected, fatal or not
        n_quest_revert: Cells damped by quest-revert
        n_causality_damped: Cells rescaled by causality enforcement
        timings: Wall time of each stage in seconds
    """

    tau: float
    rk_flag: int
    faults: list[CellFault] = field(default_factory=list)
    n_quest_revert: int = 0
    n_causality_damped: int = 0
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def fatal_faults(self) -> list[CellFault]:
        return [f for f in self.faults if f.kind not in NON_FATAL_FAULTS]

    @property
    def ok(self) -> bool:
        """True when the future snapshot holds a valid result."""
        return not self.fatal_faults


class AdvanceEngine(HydroLoggerMixin):
    """
    Time-advance engine for one RK sub-step over the whole grid.

    Args:
        config: Run configuration
        eos: Equation of state
        transport: Transport coefficient provider
        sink: Receiver of causality reduction factors
        sources: External energy-momentum and charge sources
        kinematics: Velocity-gradient provider
        reconstructor: Conserved-to-primitive inversion
    """

    def __init__(
        self,
        config: HydroConfig,
        eos: EquationOfState,
        transport: TransportCoefficientProvider,
        sink: ReductionFactorSink | None = None,
        sources: HydroSourceProvider | None = None,
        kinematics: KinematicGradientProvider | None = None,
        reconstructor: Reconstructor | None = None,
    ):
        self.config = config
        self.eos = eos
        self.transport = transport
        self.sources = sources if sources is not None else NullSource()
        self.kinematics = kinematics if kinematics is not None else FiniteDifferenceKinematics(eos)
        self.reconstructor = reconstructor if reconstructor is not None else Reconstructor(eos)

        self.flux = KTFluxEngine(config, eos, self.reconstructor)
        self.dissipative = DissipativeTerms(config, eos, transport)
        self.causality = create_causality_enforcer(config.causality_method, eos, transport, sink)

        self.logger.debug(
            f"AdvanceEngine ready: {config.coordinate_system} coordinates, "
            f"viscosity={config.viscosity_flag}, causality_method={config.causality_method}"
        )

    def _tau_factor(self, tau: float) -> float:
        return tau if self.config.is_milne else 1.0

    def cell_coordinates(self, shape: tuple[int, int, int]):
        """
        Cell-centre coordinates (x, y, η) of a grid centred on the origin,
        each broadcastable to ``shape``.
        """
        coords = []
        for axis, (n, spacing) in enumerate(zip(shape, self.config.spacings, strict=True)):
            values = -(n - 1) * spacing / 2.0 + np.arange(n) * spacing
            broadcast_shape = [1, 1, 1]
            broadcast_shape[axis] = n
            coords.append(values.reshape(broadcast_shape))
        return tuple(coords)

    def _check_snapshots(self, previous: FluidGrid, current: FluidGrid, future: FluidGrid) -> None:
        if not (previous.shape == current.shape == future.shape):
            raise FieldValidationError(
                f"Snapshot shapes differ: {previous.shape}, {current.shape}, {future.shape}"
            )
        if future.shares_memory_with(previous) or future.shares_memory_with(current):
            raise SnapshotAliasingError("The future snapshot shares memory with an input snapshot")

    @monitor_performance("advance")
    def advance(
        self,
        tau: float,
        previous: FluidGrid,
        current: FluidGrid,
        future: FluidGrid,
        rk_flag: int,
    ) -> StepReport:
        """
        Advance every cell by one RK sub-step.

        Args:
            tau: Proper time at the start of the full step
            previous: State at tau - Δτ for rk_flag = 0, state at tau for rk_flag = 1
            current: State at tau + rk_flag Δτ
            future: Receives the result; must not share memory with the inputs
            rk_flag: 0 for the first stage, 1 for the second

        Returns:
            StepReport with faults, regularization counts and timings

        Raises:
            SnapshotAliasingError: If ``future`` aliases ``previous`` or ``current``
            SubStepFailed: On a fatal numerical fault under fault_policy="raise"
        """
        if rk_flag not in (0, 1):
            raise ValueError(f"rk_flag must be 0 or 1, got {rk_flag}")
        if tau <= 0 and self.config.is_milne:
            raise ValueError(f"Proper time must be positive, got {tau}")
        self._check_snapshots(previous, current, future)

        previous = previous.read_only()
        current = current.read_only()
        report = StepReport(tau=tau, rk_flag=rk_flag)

        try:
            start = time.perf_counter()
            with profile_operation("ideal_update", {"shape": current.shape, "rk_flag": rk_flag}):
                self.ideal_update(tau, previous, current, future, rk_flag)
            report.timings["ideal_update"] = time.perf_counter() - start

            start = time.perf_counter()
            if self.config.viscosity_flag:
                with profile_operation("dissipative_update"):
                    self.dissipative_update(tau, previous, current, future, rk_flag, report)
            else:
                future.Wmunu[...] = 0.0
                future.pi_b[...] = 0.0
                future.lambdas[...] = 0.0
            report.timings["dissipative_update"] = time.perf_counter() - start
        except NumericalFaultError as err:
            report.faults.extend(err.faults)
            if self.config.fault_policy == "raise":
                raise SubStepFailed(err.faults) from err
            self.logger.error(f"Sub-step at tau={tau} rk_flag={rk_flag} failed: {err}")

        return report

    def ideal_update(
        self,
        tau: float,
        previous: FluidGrid,
        current: FluidGrid,
        future: FluidGrid,
        rk_flag: int,
    ) -> None:
        """Update (e, n, u) of the future snapshot from the conservation laws."""
        cfg = self.config
        dtau = cfg.delta_tau
        tau_rk = tau + rk_flag * dtau

        q, rhs = self.flux.flux_divergence(tau_rk, current)
        qi = q + rhs

        if self.sources.active:
            qi += self._source_term(tau_rk, current) * dtau

        dwmn = self.dissipative.flux_divergence(tau_rk, previous, current)
        qi -= dwmn * dtau

        if rk_flag:
            qi += self.flux.conserved(tau, previous)
        qi *= 1.0 / (1.0 + rk_flag)

        tau_next = tau + dtau
        e, rhob, u = self.reconstructor.invert(qi, self._tau_factor(tau_next), guess_u=current.u)
        future.epsilon[...] = e
        future.rhob[...] = rhob
        future.u[...] = u

    def _source_term(self, tau_rk: float, current: FluidGrid) -> np.ndarray:
        x, y, eta = self.cell_coordinates(current.shape)
        source = np.zeros((*current.shape, 5))
        tau_factor = self._tau_factor(tau_rk)
        source[..., :4] = tau_factor * self.sources.energy_momentum_source(tau_rk, x, y, eta, current.u)
        if self.config.turn_on_rhob:
            source[..., 4] = tau_factor * self.sources.charge_source(tau_rk, x, y, eta, current.u)

        bad = np.any(np.isnan(source), axis=-1)
        if np.any(bad):
            message = "external source term is NaN"
            physics_logger.log_fault(FaultKind.NAN_SOURCE.value, int(np.sum(bad)), message)
            raise NumericalFaultError(faults_from_mask(FaultKind.NAN_SOURCE, bad, message))
        return source

    def dissipative_update(
        self,
        tau: float,
        previous: FluidGrid,
        current: FluidGrid,
        future: FluidGrid,
        rk_flag: int,
        report: StepReport,
    ) -> None:
        """Evolve π^{μν}, Π and q^μ and regularize the result."""
        cfg = self.config
        dtau = cfg.delta_tau
        tau_now = tau + rk_flag * dtau
        w = float(rk_flag)

        kin = self.kinematics.compute(tau_now, previous, current, cfg)
        u0_c = current.u[..., 0]
        u0_p = previous.u[..., 0]
        u0_f = future.u[..., 0]

        def relax(x_cur, x_prev, source, advective):
            if x_cur.ndim > u0_c.ndim:
                c, p, f = u0_c[..., None], u0_p[..., None], u0_f[..., None]
            else:
                c, p, f = u0_c, u0_p, u0_f
            tempf = (1.0 - w) * x_cur * c + w * x_prev * p
            tempf = tempf + source * dtau + advective
            tempf = tempf + w * x_cur * c
            return tempf / (1.0 + w) / f

        if cfg.turn_on_shear:
            source = self.dissipative.shear_source(tau_now, current, kin)
            evolved = np.stack([source[..., mu, nu] for mu, nu in _EVOLVED_SHEAR_PAIRS], axis=-1)
            advective = self.dissipative.advective_rhs(tau_now, current, current.Wmunu[..., 4:9])
            future.Wmunu[..., 4:9] = relax(
                current.Wmunu[..., 4:9], previous.Wmunu[..., 4:9], evolved, advective
            )
        else:
            future.Wmunu[..., 4:9] = 0.0

        if cfg.turn_on_bulk:
            source = self.dissipative.bulk_source(tau_now, current, kin)
            advective = self.dissipative.advective_rhs(tau_now, current, current.pi_b[..., None])
            future.pi_b[...] = relax(current.pi_b, previous.pi_b, source, advective[..., 0])
        else:
            future.pi_b[...] = 0.0

        if cfg.turn_on_diff:
            source = self.dissipative.diffusion_source(tau_now, current, kin)[..., 1:4]
            advective = self.dissipative.advective_rhs(tau_now, current, current.Wmunu[..., 11:14])
            future.Wmunu[..., 11:14] = relax(
                current.Wmunu[..., 11:14], previous.Wmunu[..., 11:14], source, advective
            )
        else:
            future.Wmunu[..., 10:14] = 0.0

        restore_constraints(future.Wmunu, future.u, cfg.turn_on_diff)
        future.lambdas[...] = shear_eigenvalues(future.Wmunu)

        if not cfg.regularize:
            return
        with profile_operation("regularization"):
            report.n_quest_revert = quest_revert(future, self.eos, cfg, tau)
            if self.causality is not None:
                result = self.causality.enforce(future, tau)
                report.n_causality_damped = result.n_damped
                report.faults.extend(result.faults)
            if cfg.turn_on_diff:
                report.n_quest_revert += quest_revert_qmu(future, cfg, tau)
