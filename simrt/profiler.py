"""Timing of the simulation phases."""

from __future__ import annotations

import sys
import threading
import time
from typing import TextIO


class Timer:
    """Accumulates the time spent between start and stop calls."""

    def __init__(self) -> None:
        self._total_ns = 0
        self._started_at: int | None = None

    def start(self) -> None:
        self._started_at = time.perf_counter_ns()

    def stop(self) -> None:
        if self._started_at is None:
            raise RuntimeError("timer was not started")
        self._total_ns += time.perf_counter_ns() - self._started_at
        self._started_at = None

    def reset(self) -> None:
        self._total_ns = 0
        self._started_at = None

    def total_elapsed_ms(self) -> float:
        """Total accumulated time in milliseconds."""
        return self._total_ns / 1_000_000

    def __enter__(self) -> Timer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class SimulationProfiler:
    """Timers for the phases of a simulation run."""

    def __init__(self) -> None:
        self.name = "Simulation"
        self.initialization = Timer()
        self.initial_model = Timer()
        self.dynamic_model = Timer()
        self.printing = Timer()
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            for timer in (self.initialization, self.initial_model, self.dynamic_model, self.printing):
                timer.reset()

    def report(self, stream: TextIO | None = None) -> None:
        """Write the collected statistics to ``stream`` (stderr by default)."""
        out = stream if stream is not None else sys.stderr
        entries = (
            ("Time spent on initialization", self.initialization),
            ("Time spent solving the initial model", self.initial_model),
            ("Time spent solving the dynamic model", self.dynamic_model),
            ("Time spent on values printing", self.printing),
        )

        with self._lock:
            for label, timer in entries:
                out.write(f"{label}: {timer.total_elapsed_ms():g} ms\n")


_SIMULATION_PROFILER: SimulationProfiler | None = None
_PROFILER_LOCK = threading.Lock()


def simulation_profiler() -> SimulationProfiler:
    """Return the process-wide simulation profiler."""
    global _SIMULATION_PROFILER
    with _PROFILER_LOCK:
        if _SIMULATION_PROFILER is None:
            _SIMULATION_PROFILER = SimulationProfiler()
        return _SIMULATION_PROFILER