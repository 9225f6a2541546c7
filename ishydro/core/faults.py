"""
Numerical fault taxonomy.

Fatal numerical conditions detected inside a sub-step are collected as
``CellFault`` records and handed to the caller through
``NumericalFaultError``. The process is never terminated from inside the
library.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class FaultKind(Enum):
    """Kinds of numerical fault the engine can report."""

    NAN_SOURCE = "nan_source"
    IMAGINARY_SIGNAL_SPEED = "imaginary_signal_speed"
    NEGATIVE_SIGNAL_SPEED = "negative_signal_speed"
    SIGNAL_SPEED_BELOW_FLOW = "signal_speed_below_flow"
    SUPERLUMINAL_SIGNAL_SPEED = "superluminal_signal_speed"
    RECONSTRUCTION_FAILURE = "reconstruction_failure"
    BISECTION_FAILURE = "bisection_failure"


@dataclass(frozen=True)
class CellFault:
    """
    One fault at one cell.

    Attributes:
        kind: Fault kind
        cell: Grid index (ix, iy, ieta), or None when the fault is not tied to
            a stored cell (for example a reconstructed face value)
        message: Human-readable description
        diagnostics: Local values useful for post-mortem analysis
    """

    kind: FaultKind
    cell: tuple[int, ...] | None
    message: str
    diagnostics: Mapping[str, float] = field(default_factory=dict)

    def __str__(self) -> str:
        where = f" at cell {self.cell}" if self.cell is not None else ""
        return f"{self.kind.value}{where}: {self.message}"


class NumericalFaultError(RuntimeError):
    """Raised when one or more cells hit a fatal numerical condition."""

    def __init__(self, faults: Iterable[CellFault], message: str | None = None):
        self.faults: list[CellFault] = list(faults)
        if message is None:
            if self.faults:
                first = self.faults[0]
                extra = len(self.faults) - 1
                message = str(first) + (f" (+{extra} more)" if extra else "")
            else:
                message = "numerical fault"
        super().__init__(message)

    @property
    def kinds(self) -> set[FaultKind]:
        return {f.kind for f in self.faults}


class SubStepFailed(NumericalFaultError):
    """Raised by the engine when a sub-step aborts under fault_policy='raise'."""
    pass


def faults_from_mask(
    kind: FaultKind,
    mask: np.ndarray,
    message: str,
    diagnostics: Mapping[str, np.ndarray] | None = None,
    limit: int = 20,
) -> list[CellFault]:
    """
    Build fault records for the flagged cells of a boolean mask.

    Args:
        kind: Fault kind for every record
        mask: Boolean array over the grid
        message: Shared description
        diagnostics: Arrays of the same shape as ``mask`` to sample per cell
        limit: Maximum number of records to build

    Returns:
        List of CellFault, at most ``limit`` long
    """
    mask = np.asarray(mask, dtype=bool)
    faults = []
    for index in np.argwhere(mask)[:limit]:
        cell = tuple(int(i) for i in index)
        values = {}
        if diagnostics:
            values = {name: float(np.asarray(arr)[cell]) for name, arr in diagnostics.items()}
        faults.append(CellFault(kind, cell if cell else None, message, values))
    return faults
