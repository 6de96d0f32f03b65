"""Run-time options shared by the simulation components."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class SchedulerPolicy(enum.Enum):
    """Execution policy a scheduler can be forced to adopt."""

    SEQUENTIAL = "sequential"
    MULTITHREADED = "multithreaded"


@dataclass
class Options:
    """Settings that control how a simulation is run."""

    debug: bool = False
    profiling: bool = False
    start_time: float = 0.0
    end_time: float = 10.0
    equations_partitioning_factor: int = 10
    scheduler_calibration_runs: int = 10
    scheduler_policy: SchedulerPolicy | None = None


_OPTIONS = Options()


def get_options() -> Options:
    """Return the process-wide options instance."""
    return _OPTIONS