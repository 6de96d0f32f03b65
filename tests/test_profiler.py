import io
from unittest import mock

import pytest

from simrt.profiler import SimulationProfiler, Timer, simulation_profiler


def test_timer_accumulates_elapsed_time():
    timer = Timer()
    with mock.patch("simrt.profiler.time.perf_counter_ns", side_effect=[0, 2_000_000, 10_000_000, 11_000_000]):
        timer.start()
        timer.stop()
        timer.start()
        timer.stop()
    assert timer.total_elapsed_ms() == pytest.approx(3.0)


def test_timer_starts_at_zero():
    assert Timer().total_elapsed_ms() == 0


def test_timer_reset_clears_total():
    timer = Timer()
    with mock.patch("simrt.profiler.time.perf_counter_ns", side_effect=[0, 5_000_000]):
        timer.start()
        timer.stop()
    timer.reset()
    assert timer.total_elapsed_ms() == 0


def test_timer_stop_without_start_raises():
    with pytest.raises(RuntimeError):
        Timer().stop()


def test_timer_as_context_manager():
    timer = Timer()
    with mock.patch("simrt.profiler.time.perf_counter_ns", side_effect=[1_000_000, 4_000_000]):
        with timer:
            pass
    assert timer.total_elapsed_ms() == pytest.approx(3.0)


def test_simulation_profiler_is_singleton():
    first = simulation_profiler()
    first.reset()
    try:
        with mock.patch("simrt.profiler.time.perf_counter_ns", side_effect=[0, 2_000_000]):
            with first.initialization:
                pass
        second = simulation_profiler()
        assert second.initialization.total_elapsed_ms() == pytest.approx(2.0)
        assert second.name == "Simulation"
    finally:
        first.reset()


def test_simulation_profiler_name():
    assert SimulationProfiler().name == "Simulation"


def test_report_lists_every_phase():
    profiler = SimulationProfiler()
    stream = io.StringIO()
    profiler.report(stream)
    lines = stream.getvalue().splitlines()
    assert lines == [
        "Time spent on initialization: 0 ms",
        "Time spent solving the initial model: 0 ms",
        "Time spent solving the dynamic model: 0 ms",
        "Time spent on values printing: 0 ms",
    ]


def test_reset_clears_all_timers():
    profiler = SimulationProfiler()
    with mock.patch("simrt.profiler.time.perf_counter_ns", side_effect=[0, 1_000_000, 0, 1_000_000]):
        with profiler.dynamic_model:
            pass
        with profiler.printing:
            pass
    assert profiler.dynamic_model.total_elapsed_ms() > 0
    profiler.reset()
    assert profiler.dynamic_model.total_elapsed_ms() == 0
    assert profiler.printing.total_elapsed_ms() == 0