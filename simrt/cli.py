"""Command-line options of the simulation category "General"."""

from __future__ import annotations

import sys
from typing import Callable, Iterable, TextIO, TypeVar

from simrt.options import Options, SchedulerPolicy, get_options

_T = TypeVar("_T")


def _looks_like_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def _split_arguments(argv: Iterable[str]) -> tuple[set[str], dict[str, str]]:
    """Separate ``--flag`` arguments from ``--name=value`` parameters."""
    flags: set[str] = set()
    params: dict[str, str] = {}

    for argument in argv:
        if not argument.startswith("-") or _looks_like_number(argument):
            continue

        name = argument.lstrip("-")

        if not name:
            continue

        key, separator, value = name.partition("=")

        if separator:
            params[key] = value
        else:
            flags.add(key)

    return flags, params


def _read(params: dict[str, str], key: str, convert: Callable[[str], _T], current: _T) -> _T:
    """Convert a parameter, keeping the current value if absent or malformed."""
    if key not in params:
        return current

    try:
        return convert(params[key])
    except ValueError:
        return current


class CommandLineOptions:
    """The general simulation options understood on the command line."""

    title = "General"

    def __init__(self, options: Options | None = None) -> None:
        self._options = options

    @property
    def options(self) -> Options:
        return self._options if self._options is not None else get_options()

    def print_options(self, stream: TextIO | None = None) -> None:
        """Write the description of each option to ``stream``."""
        out = stream if stream is not None else sys.stdout
        options = self.options

        lines = [
            "  --debug                          Enable the debug messages.",
            "  --profile                        Enable the profilers.",
            "  --start-time=<value>             Set the start time (in seconds). "
            f"Defaults to {options.start_time:g}.",
            "  --end-time=<value>               Set the end time (in seconds). "
            f"Defaults to {options.end_time:g}.",
            "  --equations-partitioning-factor  Set the amount of equation partitions "
            "each thread would process in an ideal scenario where all the equations "
            "are independent from each other and have equal computational cost. "
            f"Defaults to {options.equations_partitioning_factor}.",
            "  --scheduler-calibration-runs     Set the amount of sequential and "
            "multithreaded executions used to decide the execution policy. "
            f"Defaults to {options.scheduler_calibration_runs}.",
            "  --scheduler-policy               Force the schedulers to adopt a "
            "certain execution policy (sequential / multithreaded).",
        ]

        for line in lines:
            out.write(line + "\n")

    def parse(self, argv: Iterable[str]) -> Options:
        """Apply the recognised arguments to the options and return them."""
        flags, params = _split_arguments(argv)
        options = self.options

        options.debug = "debug" in flags
        options.profiling = "profile" in flags

        options.start_time = _read(params, "start-time", float, options.start_time)
        options.end_time = _read(params, "end-time", float, options.end_time)

        options.equations_partitioning_factor = _read(
            params,
            "equations-partitioning-factor",
            int,
            options.equations_partitioning_factor,
        )

        options.scheduler_calibration_runs = _read(
            params,
            "scheduler-calibration-runs",
            int,
            options.scheduler_calibration_runs,
        )

        policy_name = params.get("scheduler-policy", "")

        if policy_name in {policy.value for policy in SchedulerPolicy}:
            options.scheduler_policy = SchedulerPolicy(policy_name)

        return options


def get_cli_options() -> CommandLineOptions:
    """Return the option category bound to the global options."""
    return CommandLineOptions()