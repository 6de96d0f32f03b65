# simrt

A small runtime for simulations whose equations iterate over multidimensional
index ranges. It holds the simulation settings, parses them from command-line
arguments, splits equations into balanced partitions, runs them sequentially
or on a thread pool, times the phases of a run and drives the simulation loop
of a model object that you supply.

## Modules

- `simrt.options`: the `Options` dataclass and the `SchedulerPolicy` enum
  (`SEQUENTIAL`, `MULTITHREADED`). `get_options()` returns the process-wide
  instance. Defaults: `start_time=0.0`, `end_time=10.0`,
  `equations_partitioning_factor=10`, `scheduler_calibration_runs=10`,
  `debug=False`, `profiling=False`, `scheduler_policy=None`.
- `simrt.cli`: `CommandLineOptions` (title `"General"`).
  `print_options(stream)` writes the option help; `parse(argv)` applies
  `--debug`, `--profile`, `--start-time=<value>`, `--end-time=<value>`,
  `--equations-partitioning-factor=<value>`,
  `--scheduler-calibration-runs=<value>` and
  `--scheduler-policy=sequential|multithreaded` to the options and returns
  them. `debug` and `profiling` are set to whether their flag is present;
  missing or malformed values leave the current value unchanged, and an unknown
  policy name is ignored. `get_cli_options()` returns a category bound to the
  global options.
- `simrt.partitioning`: `Range` (half-open `[begin, end)`), `Equation` and
  `EquationPartition`; `flat_size`, `flat_index`, `indices_from_flat_index`
  and `partition_flat_size`; `sequential_schedule(equations)`,
  `multithreaded_schedule(equations, num_partitions)`, and the checks
  `is_scheduled_exactly_once` and `indices_exist`. Equations with
  `independent_indices=True` may be split across several partition groups;
  the others are always kept whole.
- `simrt.scheduler`: `Scheduler` collects equations with
  `add_equation(function, ranges, independent_indices)`, builds its schedules
  on the first `run()` (or an explicit `initialize()`, which may be called only
  once) and executes them. With a forced policy it always uses that policy;
  otherwise it runs `scheduler_calibration_runs` sequential runs, then as many
  multithreaded ones, and keeps whichever had the lower minimum time.
  Multithreaded runs use a thread pool shared by all schedulers.
  `SchedulerProfiler` collects its timers and counters when profiling is on.
- `simrt.profiler`: `Timer` (also usable as a context manager),
  `SimulationProfiler` and `simulation_profiler()`; reports are written in
  milliseconds to stderr by default.
- `simrt.simulation`: `Simulation`, `build_simulation(model)`,
  `print_help(model_name, categories, stream)` and
  `run_simulation(model, driver, printer, argv)`.

## Scheduling equations

```python
from simrt.partitioning import Range
from simrt.scheduler import Scheduler

seen = []

def equation(bounds):
    # bounds is a tuple: begin0, end0, begin1, end1, ...
    seen.append(bounds)

scheduler = Scheduler(num_threads=4)
scheduler.add_equation(equation, [Range(0, 4), Range(0, 3)], True)
scheduler.run()
```

Every scalar index of every equation is visited exactly once per run,
whichever policy is used. With `debug` enabled the scheduler writes its
decisions to stderr.

## Running a simulation

`build_simulation(model)` reads each variable's name, rank, printability,
printable ranges and derivative, and orders variables for printing by
derivative order, then by the name of the variable they derive from.

`run_simulation(model, driver, printer, argv)` expects:

- `model` with `name` and the methods `num_variables`, `variable_name`,
  `variable_rank`, `is_printable`, `printable_ranges`, `derivative`, `init`,
  `set_time`, `ic_model_begin`, `solve_ic_model`, `ic_model_end`,
  `dynamic_model_begin`, `dynamic_model_end` and `deinit`;
- `driver` and `printer`: factories called with the `Simulation`. The driver
  must provide `run()`; the printer `simulation_begin()`, `print_values()` and
  `simulation_end()`. Either may offer `cli_options()` returning an extra
  option category with `title`, `print_options(stream)` and `parse(argv)`.

With `--help` among the arguments it prints the help and returns `0`.
Otherwise it parses the options, initialises the model, sets the start time,
solves and prints the initial conditions, runs the driver and returns the
driver's result. With `--profile`, the phase timings are reported to stderr.

## What it does not do

The package contains no integration drivers, no output printers and no
console command: you supply the model, the driver and the printer, and call
`run_simulation` yourself.

## Tests

```
pip install -e ".[test]"
pytest
```