"""Execution of equations, either sequentially or on a shared thread pool."""

from __future__ import annotations

import contextlib
import itertools
import math
import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import ContextManager, Iterable, TextIO

from simrt.options import Options, SchedulerPolicy, get_options
from simrt.partitioning import (
    Equation,
    EquationFunction,
    EquationPartition,
    Range,
    flat_size,
    indices_exist,
    is_scheduled_exactly_once,
    multithreaded_schedule,
    partition_flat_size,
    sequential_schedule,
)
from simrt.profiler import Timer

_identifiers = itertools.count()
_identifiers_lock = threading.Lock()

_pool: ThreadPoolExecutor | None = None
_pool_lock = threading.Lock()


def _next_identifier() -> int:
    with _identifiers_lock:
        return next(_identifiers)


def _shared_pool() -> ThreadPoolExecutor:
    """The thread pool shared by all the schedulers."""
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = ThreadPoolExecutor(max_workers=os.cpu_count() or 1)
        return _pool


def _default_num_threads() -> int:
    return os.cpu_count() or 1


def _format_ranges(ranges: Iterable[Range]) -> str:
    return "".join(f"[{r.begin}, {r.end})" for r in ranges)


class SchedulerProfiler:
    """Timers and counters collected by one scheduler."""

    def __init__(self, scheduler_id: int, num_threads: int) -> None:
        self.name = f"Scheduler {scheduler_id}"
        self.add_equation = Timer()
        self.initialization = Timer()
        self.run = Timer()
        self.sequential_runs = 0
        self.multithreaded_runs = 0
        self.partitions_groups = [Timer() for _ in range(num_threads)]
        self.partitions_groups_counters = [0] * num_threads
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self.add_equation.reset()
            self.initialization.reset()
            self.run.reset()
            self.sequential_runs = 0
            self.multithreaded_runs = 0

            for timer in self.partitions_groups:
                timer.reset()

    def report(self, stream: TextIO | None = None) -> None:
        """Write the collected statistics to ``stream`` (stderr by default)."""
        out = stream if stream is not None else sys.stderr

        with self._lock:
            out.write(f"Time spent on adding the equations: {self.add_equation.total_elapsed_ms():g} ms\n")
            out.write(f"Time spent on initialization: {self.initialization.total_elapsed_ms():g} ms\n")
            out.write(f"Time spent on 'run' method: {self.run.total_elapsed_ms():g} ms\n")
            out.write(f"Number of sequential executions: {self.sequential_runs}\n")
            out.write(f"Number of multithreaded executions: {self.multithreaded_runs}\n")

            for thread, (timer, counter) in enumerate(
                zip(self.partitions_groups, self.partitions_groups_counters)
            ):
                total_ms = timer.total_elapsed_ms()
                average_ns = total_ms * 1_000_000 / counter if counter else math.nan

                out.write("\n")
                out.write(f"Time (total) spent by thread #{thread} in processing equations: {total_ms:g} ms\n")
                out.write(f"Time (average) spent by thread #{thread} in processing equations: {average_ns:g} ns\n")
                out.write(f"Number of partitions groups processed: {counter}\n")


class Scheduler:
    """Runs a set of equations, choosing between sequential and parallel execution."""

    def __init__(self, options: Options | None = None, num_threads: int | None = None) -> None:
        self.identifier = _next_identifier()
        self._options = options
        self.num_threads = num_threads if num_threads is not None else _default_num_threads()

        if self.num_threads <= 0:
            raise ValueError("the number of threads must be positive")

        self.equations: list[Equation] = []
        self.sequential_schedule: list[EquationPartition] = []
        self.multithreaded_schedule: list[list[EquationPartition]] = []
        self.initialized = False
        self.policy: SchedulerPolicy | None = None
        self.runs_counter = 0
        self.sequential_runs_min_time = 0
        self.multithreaded_runs_min_time = 0

        self.profiler: SchedulerProfiler | None = None
        if self.options.profiling:
            self.profiler = SchedulerProfiler(self.identifier, self.num_threads)

    @property
    def options(self) -> Options:
        return self._options if self._options is not None else get_options()

    def _debug(self, message: str) -> None:
        if self.options.debug:
            sys.stderr.write(message + "\n")

    def _timed(self, name: str) -> ContextManager[object]:
        if self.profiler is None:
            return contextlib.nullcontext()
        return getattr(self.profiler, name)

    def add_equation(
        self,
        function: EquationFunction,
        ranges: Iterable[Range | tuple[int, int]] = (),
        independent_indices: bool = False,
    ) -> Equation:
        """Register an equation iterating over ``ranges``."""
        with self._timed("add_equation"):
            equation = Equation(function, tuple(ranges), independent_indices)

            if self.options.debug:
                lines = [
                    f"[Scheduler {self.identifier}] New equation added",
                    f"  - Rank: {equation.rank}",
                ]
                if equation.rank != 0:
                    lines.append(f"  - Ranges: {_format_ranges(equation.indices)}")
                self._debug("\n".join(lines))

            self.equations.append(equation)
            return equation

    def initialize(self) -> None:
        """Compute the schedules; may be called only once."""
        with self._timed("initialization"):
            if self.initialized:
                raise RuntimeError("Scheduler already initialized")

            forced = self.options.scheduler_policy

            if forced is None or forced is SchedulerPolicy.SEQUENTIAL:
                self.sequential_schedule = sequential_schedule(self.equations)

                assert all(
                    is_scheduled_exactly_once(eq, [self.sequential_schedule])
                    for eq in self.equations
                ), "Not all the equations are scheduled exactly once in the sequential schedule"
                assert all(
                    indices_exist(p) for p in self.sequential_schedule
                ), "Some nonexistent equation indices have been scheduled in the sequential schedule"

            if forced is None or forced is SchedulerPolicy.MULTITHREADED:
                factor = self.options.equations_partitioning_factor
                num_partitions = self.num_threads * factor
                scalar_count = sum(flat_size(eq.indices) for eq in self.equations)

                self._debug(
                    f"[Scheduler {self.identifier}] Initializing\n"
                    f"  - Number of equations: {scalar_count}\n"
                    f"  - Number of threads: {self.num_threads}\n"
                    f"  - Partitioning factor: {factor}\n"
                    f"  - Number of partitions: {num_partitions}\n"
                    f"  - Max flat size of each partitions group: "
                    f"{-(-scalar_count // num_partitions) if num_partitions > 0 else 0}"
                )

                self.multithreaded_schedule = multithreaded_schedule(self.equations, num_partitions)

                if self.options.debug:
                    for group in self.multithreaded_schedule:
                        sizes = [partition_flat_size(p) for p in group]
                        self._debug(
                            f"[Scheduler {self.identifier}] Equation partitions group\n"
                            f"  - Number of partitions: {len(group)}\n"
                            f"  - Equation partition flat sizes: [{', '.join(map(str, sizes))}]\n"
                            f"  - Total size: {sum(sizes)}"
                        )

                assert all(
                    is_scheduled_exactly_once(eq, self.multithreaded_schedule)
                    for eq in self.equations
                ), "Not all the equations are scheduled exactly once in the multithreaded schedule"
                assert all(
                    indices_exist(p) for group in self.multithreaded_schedule for p in group
                ), "Some nonexistent equation indices have been scheduled in the multithreaded schedule"

            if forced is not None:
                self.policy = forced

            self.initialized = True

            if self.options.debug:
                lines = [f"[Scheduler {self.identifier}] Initialized"]
                if forced is None or forced is SchedulerPolicy.SEQUENTIAL:
                    lines.append(f"  - Sequential schedule size: {len(self.sequential_schedule)}")
                if forced is None or forced is SchedulerPolicy.MULTITHREADED:
                    lines.append(f"  - Multithreaded schedule size: {len(self.multithreaded_schedule)}")
                self._debug("\n".join(lines))

    def run(self) -> None:
        """Execute all the equations once."""
        with self._timed("run"):
            if not self.initialized:
                self.initialize()

            if self.policy is SchedulerPolicy.SEQUENTIAL:
                self.run_sequential()
            elif self.policy is SchedulerPolicy.MULTITHREADED:
                self.run_multithreaded()
            else:
                calibration_runs = self.options.scheduler_calibration_runs

                if self.runs_counter < calibration_runs:
                    self._run_sequential_with_calibration()
                else:
                    self._run_multithreaded_with_calibration()

                    if self.runs_counter == calibration_runs * 2 - 1:
                        self.policy = (
                            SchedulerPolicy.SEQUENTIAL
                            if self.sequential_runs_min_time < self.multithreaded_runs_min_time
                            else SchedulerPolicy.MULTITHREADED
                        )
                        self._debug(
                            f"[Scheduler {self.identifier}] Execution policy: {self.policy.value}"
                        )

            self.runs_counter += 1

    def run_sequential(self) -> None:
        """Execute the sequential schedule on the calling thread."""
        profiler = self.profiler
        if profiler is not None:
            profiler.sequential_runs += 1
            profiler.partitions_groups_counters[0] += 1
            profiler.partitions_groups[0].start()

        try:
            for partition in self.sequential_schedule:
                partition.equation.function(partition.bounds)
        finally:
            if profiler is not None:
                profiler.partitions_groups[0].stop()

    def run_multithreaded(self) -> None:
        """Execute the partition groups on the shared thread pool."""
        profiler = self.profiler
        if profiler is not None:
            profiler.multithreaded_runs += 1

        schedule = self.multithreaded_schedule
        next_group = itertools.count()
        lock = threading.Lock()

        def worker(thread: int) -> None:
            while True:
                with lock:
                    assigned = next(next_group)
                if assigned >= len(schedule):
                    return

                if profiler is not None:
                    profiler.partitions_groups[thread].start()
                    profiler.partitions_groups_counters[thread] += 1

                try:
                    for partition in schedule[assigned]:
                        partition.equation.function(partition.bounds)
                finally:
                    if profiler is not None:
                        profiler.partitions_groups[thread].stop()

        pool = _shared_pool()
        futures = [pool.submit(worker, thread) for thread in range(self.num_threads)]

        for future in futures:
            future.result()

    def _run_sequential_with_calibration(self) -> None:
        start = time.perf_counter_ns()
        self.run_sequential()
        elapsed = time.perf_counter_ns() - start

        if self.sequential_runs_min_time == 0 or elapsed < self.sequential_runs_min_time:
            self.sequential_runs_min_time = elapsed

    def _run_multithreaded_with_calibration(self) -> None:
        start = time.perf_counter_ns()
        self.run_multithreaded()
        elapsed = time.perf_counter_ns() - start

        if self.multithreaded_runs_min_time == 0 or elapsed < self.multithreaded_runs_min_time:
            self.multithreaded_runs_min_time = elapsed