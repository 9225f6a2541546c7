"""
Performance monitoring utilities for the time-advance engine.

This module provides wall-time tracking of the solver stages with
hierarchical (parent/child) breakdowns and optional memory sampling.
"""

import functools
import time
import tracemalloc
from collections import defaultdict
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

import numpy as np

from ..utils.logging_config import performance_logger


class DetailedProfiler:
    """
    Profiler with hierarchical timing and optional memory tracking.

    Nested ``profile_operation`` blocks are recorded as children of the
    enclosing block, so a report shows how an RK sub-step splits between
    the ideal update, the dissipative update and regularization.
    """

    def __init__(self, track_memory: bool = False) -> None:
        self.track_memory = track_memory

        # Hierarchical timing data
        self.call_stack: list[str] = []
        self.nested_timings: dict[str, dict[str, list[float]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self.call_hierarchy: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))

        # (current, peak) in MB
        self.memory_snapshots: dict[str, list[tuple[float, float]]] = defaultdict(list)

        self.operation_metadata: dict[str, dict[str, Any]] = defaultdict(dict)
        self.operation_times: dict[str, list[float]] = defaultdict(list)
        self.operation_counts: dict[str, int] = defaultdict(int)

    @contextmanager
    def profile_operation(
        self, operation_name: str, metadata: dict[str, Any] | None = None
    ) -> Generator[None, None, None]:
        """
        Context manager for profiling operations with hierarchical tracking.

        Args:
            operation_name: Name of the operation to profile
            metadata: Optional metadata about the operation (grid shape, rk_flag, ...)
        """
        start_time = time.perf_counter()

        memory_started_here = False
        if self.track_memory and not tracemalloc.is_tracing():
            tracemalloc.start()
            memory_started_here = True

        parent_operation = self.call_stack[-1] if self.call_stack else "root"
        self.call_stack.append(operation_name)
        self.call_hierarchy[parent_operation][operation_name] += 1

        if metadata:
            self.operation_metadata[operation_name].update(metadata)

        try:
            yield
        finally:
            elapsed = time.perf_counter() - start_time

            self.operation_times[operation_name].append(elapsed)
            self.operation_counts[operation_name] += 1

            if parent_operation != "root":
                self.nested_timings[parent_operation][operation_name].append(elapsed)

            if self.track_memory and tracemalloc.is_tracing():
                current, peak = tracemalloc.get_traced_memory()
                self.memory_snapshots[operation_name].append(
                    (current / (1024 * 1024), peak / (1024 * 1024))
                )

            self.call_stack.pop()
            if memory_started_here:
                tracemalloc.stop()

            performance_logger.log_operation(operation_name, elapsed)

    def get_hierarchical_report(self) -> dict[str, Any]:
        """
        Generate hierarchical performance report.

        Returns:
            Summary, per-parent breakdown and memory usage
        """
        return {
            "summary": self._generate_summary(),
            "hierarchical_timing": self._analyze_hierarchical_timing(),
            "memory_analysis": self._analyze_memory_usage(),
        }

    def _generate_summary(self) -> dict[str, Any]:
        total_operations = sum(self.operation_counts.values())
        total_time = sum(sum(times) for times in self.operation_times.values())

        slowest_ops = sorted(
            [(op, sum(times)) for op, times in self.operation_times.items()],
            key=lambda x: x[1],
            reverse=True,
        )[:5]

        return {
            "total_operations": total_operations,
            "total_time": total_time,
            "unique_operations": len(self.operation_times),
            "slowest_operations": slowest_ops,
        }

    def _analyze_hierarchical_timing(self) -> dict[str, Any]:
        hierarchy_analysis = {}

        for parent, children in self.nested_timings.items():
            parent_total_time = sum(self.operation_times.get(parent, [0]))

            child_breakdown = {}
            for child, times in children.items():
                child_total_time = sum(times)
                child_breakdown[child] = {
                    "total_time": child_total_time,
                    "percentage": (
                        child_total_time / parent_total_time * 100 if parent_total_time > 0 else 0
                    ),
                    "call_count": len(times),
                    "avg_time": float(np.mean(times)) if times else 0.0,
                }

            hierarchy_analysis[parent] = {
                "parent_total_time": parent_total_time,
                "children": dict(
                    sorted(child_breakdown.items(), key=lambda x: x[1]["total_time"], reverse=True)
                ),
                "call_count": self.operation_counts.get(parent, 0),
            }

        return hierarchy_analysis

    def _analyze_memory_usage(self) -> dict[str, Any]:
        hotspots = {}
        for operation, snapshots in self.memory_snapshots.items():
            if snapshots:
                peaks = [s[1] for s in snapshots]
                hotspots[operation] = {
                    "avg_peak_mb": float(np.mean(peaks)),
                    "max_peak_mb": float(np.max(peaks)),
                    "sample_count": len(snapshots),
                }
        return {"memory_hotspots": hotspots}

    def reset_stats(self) -> None:
        """Reset all profiling statistics."""
        self.call_stack.clear()
        self.nested_timings.clear()
        self.call_hierarchy.clear()
        self.memory_snapshots.clear()
        self.operation_metadata.clear()
        self.operation_times.clear()
        self.operation_counts.clear()


# Global detailed profiler instance
_detailed_profiler = DetailedProfiler()


def get_detailed_profiler() -> DetailedProfiler:
    """Get the global detailed profiler instance."""
    return _detailed_profiler


def monitor_performance(operation_name: str) -> Callable[[Callable], Callable]:
    """
    Decorator for monitoring performance of solver stages.

    Args:
        operation_name: Name to use for tracking this operation

    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with _detailed_profiler.profile_operation(operation_name):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def profile_operation(operation_name: str, metadata: dict[str, Any] | None = None):
    """
    Context manager for detailed profiling with hierarchical tracking.

    Args:
        operation_name: Name of the operation to profile
        metadata: Optional metadata about the operation

    Returns:
        Context manager for profiling
    """
    return _detailed_profiler.profile_operation(operation_name, metadata)


def performance_report() -> dict[str, Any]:
    """Get current performance report."""
    return _detailed_profiler.get_hierarchical_report()


def reset_performance_stats() -> None:
    """Reset all performance monitoring statistics."""
    _detailed_profiler.reset_stats()
