"""
Pytest configuration with hard memory limits for the grid-based tests.

Vectorized sub-steps allocate several full-grid temporaries per stencil
direction; a runaway grid size in a test would otherwise take the machine
down with it.
"""

import os
import signal
import threading
import time

import psutil
import pytest


class MemoryMonitor:
    """Monitor memory usage and terminate pytest if limit exceeded."""

    def __init__(self, max_memory_gb=4.0, check_interval=1.0):
        self.max_memory_bytes = max_memory_gb * 1024**3
        self.check_interval = check_interval
        self.monitoring = False
        self.monitor_thread = None

    def start_monitoring(self):
        """Start memory monitoring in background thread."""
        if self.monitoring:
            return

        self.monitoring = True
        self.monitor_thread = threading.Thread(target=self._monitor_loop, daemon=True)
        self.monitor_thread.start()

    def stop_monitoring(self):
        """Stop memory monitoring."""
        self.monitoring = False
        if self.monitor_thread:
            self.monitor_thread.join(timeout=2.0)

    def _total_rss(self, process):
        total_memory = process.memory_info().rss
        for child in process.children(recursive=True):
            try:
                total_memory += child.memory_info().rss
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return total_memory

    def _monitor_loop(self):
        """Main monitoring loop - runs in background thread."""
        process = psutil.Process()

        while self.monitoring:
            try:
                total_memory = self._total_rss(process)
            except psutil.Error as e:
                print(f"Memory monitoring error: {e}")
                time.sleep(self.check_interval)
                continue

            memory_gb = total_memory / (1024**3)
            if total_memory > self.max_memory_bytes:
                print(
                    f"\n!!! MEMORY LIMIT EXCEEDED: {memory_gb:.2f} GB > {self.max_memory_bytes/(1024**3):.1f} GB !!!"
                )
                print("!!! TERMINATING PYTEST !!!")
                try:
                    os.killpg(os.getpgid(os.getpid()), signal.SIGKILL)
                except OSError:
                    os.kill(os.getpid(), signal.SIGKILL)
            elif total_memory > 0.75 * self.max_memory_bytes:
                print(f"\nWARNING: High memory usage: {memory_gb:.2f} GB")

            time.sleep(self.check_interval)


# Global memory monitor instance
memory_monitor = MemoryMonitor(max_memory_gb=4.0, check_interval=0.5)


@pytest.fixture(scope="session", autouse=True)
def memory_protection():
    """Automatically enable memory protection for all tests."""
    memory_monitor.start_monitoring()

    yield

    memory_monitor.stop_monitoring()


@pytest.fixture(autouse=True)
def memory_check_per_test():
    """Warn about tests that grow the process by more than 500 MB."""
    process = psutil.Process()
    initial_memory = process.memory_info().rss / (1024**2)  # MB

    yield

    final_memory = process.memory_info().rss / (1024**2)  # MB
    memory_increase = final_memory - initial_memory

    if memory_increase > 500:
        print(f"\nWARNING: Test increased memory by {memory_increase:.0f} MB")
