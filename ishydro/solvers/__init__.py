"""
Numerical solvers for viscous relativistic hydrodynamics.

This module provides the pieces of one explicit Runge-Kutta sub-step:

- **Kurganov-Tadmor fluxes**: minmod-limited face reconstruction, maximum
  signal speeds and the central numerical flux of the ideal conservation laws
- **Regularization**: quest-revert damping of dilute cells and enforcement of
  the necessary or sufficient causality conditions
- **Time advance**: ``AdvanceEngine`` combining the ideal and dissipative
  updates over three grid snapshots

## Quick Start

```python
from ishydro.core import FluidGrid, HydroConfig, IdealGasEOS
from ishydro.equations import ConstantTransport
from ishydro.solvers import AdvanceEngine

config = HydroConfig(delta_tau=0.01, boost_invariant=True)
eos = IdealGasEOS()
engine = AdvanceEngine(config, eos, ConstantTransport(eta_over_s=0.08))

previous = FluidGrid.static((8, 8, 1), epsilon=10.0)
current = previous.copy()
stage = previous.copy()
future = previous.copy()

tau = 0.6
engine.advance(tau, previous, current, stage, rk_flag=0)
engine.advance(tau, current, stage, future, rk_flag=1)
```
"""

from .advance import AdvanceEngine, StepReport
from .causality import (
    CausalityEnforcer,
    CausalityResult,
    NecessaryCausality,
    SufficientCausality,
    bisect_reduction,
    create_causality_enforcer,
    quest_revert,
    quest_revert_factor,
    quest_revert_qmu,
    sufficiency_expressions,
)
from .kurganov_tadmor import KTFluxEngine, geometric_weights, max_signal_speed

__all__ = [
    "AdvanceEngine",
    "CausalityEnforcer",
    "CausalityResult",
    "KTFluxEngine",
    "NecessaryCausality",
    "StepReport",
    "SufficientCausality",
    "bisect_reduction",
    "create_causality_enforcer",
    "geometric_weights",
    "max_signal_speed",
    "quest_revert",
    "quest_revert_factor",
    "quest_revert_qmu",
    "sufficiency_expressions",
]
