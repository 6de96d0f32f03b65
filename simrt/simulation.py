"""Set-up and main loop of a compiled model simulation."""

from __future__ import annotations

import contextlib
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Iterable, Protocol, Sequence, TextIO

from simrt.cli import get_cli_options
from simrt.options import get_options
from simrt.partitioning import Range, flat_size
from simrt.profiler import simulation_profiler


class _Model(Protocol):
    """What a compiled model exposes to the runtime."""

    name: str

    def num_variables(self) -> int: ...
    def variable_name(self, variable: int) -> str: ...
    def variable_rank(self, variable: int) -> int: ...
    def is_printable(self, variable: int) -> bool: ...
    def printable_ranges(self, variable: int) -> Iterable[Iterable[Range | tuple[int, int]]]: ...
    def derivative(self, variable: int) -> int | None: ...
    def init(self) -> None: ...
    def set_time(self, time: float) -> None: ...
    def ic_model_begin(self) -> None: ...
    def solve_ic_model(self) -> None: ...
    def ic_model_end(self) -> None: ...
    def dynamic_model_begin(self) -> None: ...
    def dynamic_model_end(self) -> None: ...
    def deinit(self) -> None: ...


@dataclass
class Simulation:
    """Pre-fetched information about the variables of a model."""

    variable_names: list[str] = field(default_factory=list)
    variable_ranks: list[int] = field(default_factory=list)
    printable_variables: list[bool] = field(default_factory=list)
    printable_indices: list[list[tuple[Range, ...]]] = field(default_factory=list)
    print_order: list[int] = field(default_factory=list)
    derivatives_map: list[int | None] = field(default_factory=list)
    der_orders: list[int] = field(default_factory=list)
    _printer: Any = field(default=None, init=False, repr=False)

    @property
    def printer(self) -> Any:
        """The printer attached to the simulation."""
        if self._printer is None:
            raise RuntimeError("no printer has been set")
        return self._printer

    @printer.setter
    def printer(self, value: Any) -> None:
        if value is None:
            raise ValueError("the printer cannot be None")
        self._printer = value

    def printable_scalar_count(self) -> int:
        """Number of scalar values printed at each step."""
        return sum(self.variable_printable_scalar_count(v) for v in self.print_order)

    def variable_printable_scalar_count(self, variable: int) -> int:
        """Number of printed scalar values of one variable."""
        if not self.printable_variables[variable]:
            return 0

        if self.variable_ranks[variable] == 0:
            return 1

        return sum(flat_size(box) for box in self.printable_indices[variable])


def _as_box(ranges: Iterable[Range | tuple[int, int]], rank: int) -> tuple[Range, ...]:
    box = tuple(r if isinstance(r, Range) else Range(*r) for r in ranges)

    if len(box) != rank:
        raise ValueError(f"printable range of rank {len(box)} for a variable of rank {rank}")

    return box


def _derivative_order(variable: int, derivatives_map: Sequence[int | None]) -> int:
    order = 0
    seen = {variable}
    current = derivatives_map[variable]

    while current is not None:
        if current in seen:
            raise ValueError(f"cyclic derivative chain involving variable {variable}")
        seen.add(current)
        order += 1
        current = derivatives_map[current]

    return order


def build_simulation(model: _Model) -> Simulation:
    """Collect the variables' information and compute their print order."""
    count = model.num_variables()
    variables = range(count)

    names = [model.variable_name(v) for v in variables]
    ranks = [model.variable_rank(v) for v in variables]
    printable = [bool(model.is_printable(v)) for v in variables]
    indices = [[_as_box(box, ranks[v]) for box in model.printable_ranges(v)] for v in variables]

    derivatives_map: list[int | None] = [None] * count

    for variable in variables:
        derivative = model.derivative(variable)

        if derivative is not None and derivative != -1:
            derivatives_map[derivative] = variable

    der_orders = [_derivative_order(v, derivatives_map) for v in variables]

    def base_variable(variable: int) -> int:
        for _ in range(der_orders[variable]):
            variable = derivatives_map[variable]  # type: ignore[assignment]
        return variable

    print_order = sorted(variables, key=lambda v: (der_orders[v], names[base_variable(v)]))

    return Simulation(
        variable_names=names,
        variable_ranks=ranks,
        printable_variables=printable,
        printable_indices=indices,
        print_order=print_order,
        derivatives_map=derivatives_map,
        der_orders=der_orders,
    )


def print_help(model_name: str, categories: Iterable[Any] = (), stream: TextIO | None = None) -> None:
    """Write the usage text, including every option category."""
    out = stream if stream is not None else sys.stdout

    out.write("Modelica simulation.\n")
    out.write(f"Model: {model_name}\n")
    out.write("Generated with the model compiler.\n\n")
    out.write("OPTIONS:\n")
    out.write("  --help    Display the available options.\n\n")

    for category in categories:
        out.write(f"{category.title}\n")
        category.print_options(out)
        out.write("\n")


def _wants_help(argv: Iterable[str]) -> bool:
    return any(arg.startswith("-") and arg.lstrip("-") == "help" for arg in argv)


def _cli_category(component: Any) -> Any:
    provider = getattr(component, "cli_options", None)
    return provider() if callable(provider) else None


def run_simulation(
    model: _Model,
    driver: Callable[[Simulation], Any],
    printer: Callable[[Simulation], Any],
    argv: Sequence[str] | None = None,
) -> int:
    """Run the whole simulation and return the driver's result.

    ``driver`` and ``printer`` are factories receiving the simulation.
    """
    arguments = list(sys.argv[1:] if argv is None else argv)

    simulation = build_simulation(model)
    driver_instance = driver(simulation)
    printer_instance = printer(simulation)
    simulation.printer = printer_instance

    categories = [get_cli_options()]
    categories.extend(
        category
        for category in (_cli_category(driver_instance), _cli_category(printer_instance))
        if category is not None
    )

    if _wants_help(arguments):
        print_help(model.name, categories)
        return 0

    for category in categories:
        category.parse(arguments)

    options = get_options()
    profiler = simulation_profiler() if options.profiling else None

    def timed(name: str) -> ContextManager[object]:
        if profiler is None:
            return contextlib.nullcontext()
        return getattr(profiler, name)

    with timed("initialization"):
        model.init()

    model.set_time(options.start_time)
    simulation.printer.simulation_begin()

    with timed("initial_model"):
        model.ic_model_begin()
        model.solve_ic_model()
        model.ic_model_end()

    simulation.printer.print_values()

    with timed("dynamic_model"):
        model.dynamic_model_begin()
        result = driver_instance.run()
        model.dynamic_model_end()

    simulation.printer.simulation_end()
    model.deinit()

    if profiler is not None:
        profiler.report()

    return result