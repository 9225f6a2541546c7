"""
Reduction-factor diagnostics for the causality regularization.

The causality module reports every damping factor it applies in a dense cell
through a sink object handed to it at construction time. Two sinks are
provided: an in-memory recorder and the append-only text files the production
runs are analysed from.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

NECESSARY_LOG_NAME = "necessary_causality_reduction_factor_wtau.dat"
SUFFICIENT_LOG_NAME = "sufficient_causality_reduction_factor_wtau.dat"

_FILE_NAMES = {
    "necessary": NECESSARY_LOG_NAME,
    "sufficient": SUFFICIENT_LOG_NAME,
}


@dataclass(frozen=True)
class ReductionRecord:
    """One damping factor applied to one cell."""

    method: str
    factor: float
    energy_density: float
    tau: float


def format_record(record: ReductionRecord) -> str:
    """Render a record as one line of the reduction-factor log."""
    return f"{record.factor:18.8e}   {record.energy_density:.8e}   {record.tau:.8e}"


class ReductionFactorSink(ABC):
    """Receiver for causality reduction factors."""

    @abstractmethod
    def record(self, method: str, factor: float, energy_density: float, tau: float) -> None:
        """
        Record one damping factor.

        Args:
            method: "necessary" or "sufficient"
            factor: Damping factor applied to the dissipative currents
            energy_density: Local energy density of the cell
            tau: Proper time of the sub-step
        """

    def record_many(self, method: str, factors, energy_densities, tau: float) -> None:
        """Record a batch of cells sharing the same proper time."""
        for factor, energy_density in zip(factors, energy_densities, strict=True):
            self.record(method, float(factor), float(energy_density), tau)


class NullReductionFactorSink(ReductionFactorSink):
    """Sink that drops every record."""

    def record(self, method: str, factor: float, energy_density: float, tau: float) -> None:
        return None


class InMemoryReductionFactorSink(ReductionFactorSink):
    """Sink that keeps records in a list, mainly for tests and notebooks."""

    def __init__(self) -> None:
        self.records: list[ReductionRecord] = []
        self._lock = threading.Lock()

    def record(self, method: str, factor: float, energy_density: float, tau: float) -> None:
        with self._lock:
            self.records.append(ReductionRecord(method, factor, energy_density, tau))

    def lines(self, method: str | None = None) -> list[str]:
        """Formatted log lines, optionally restricted to one method."""
        return [format_record(r) for r in self.records if method is None or r.method == method]

    def clear(self) -> None:
        with self._lock:
            self.records.clear()

    def __len__(self) -> int:
        return len(self.records)


class FileReductionFactorSink(ReductionFactorSink):
    """
    Append-only text files, one per causality method.

    Files are opened in append mode for every batch, so several runs in the
    same directory accumulate into the same logs.
    """

    def __init__(self, directory: str | Path = ".") -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, method: str) -> Path:
        try:
            return self.directory / _FILE_NAMES[method]
        except KeyError:
            raise ValueError(f"Unknown causality method for reduction log: {method}") from None

    def record(self, method: str, factor: float, energy_density: float, tau: float) -> None:
        self.record_many(method, [factor], [energy_density], tau)

    def record_many(self, method: str, factors, energy_densities, tau: float) -> None:
        lines = [
            format_record(ReductionRecord(method, float(f), float(e), tau))
            for f, e in zip(factors, energy_densities, strict=True)
        ]
        if not lines:
            return
        path = self.path_for(method)
        with self._lock, path.open("a", encoding="ascii") as handle:
            handle.write("\n".join(lines) + "\n")
