import itertools

import pytest

from simrt.partitioning import (
    Equation,
    EquationPartition,
    Range,
    flat_index,
    flat_size,
    indices_exist,
    indices_from_flat_index,
    is_scheduled_exactly_once,
    multithreaded_schedule,
    partition_flat_size,
    sequential_schedule,
)

SHAPES = [
    (Range(0, 10),),
    (Range(0, 3), Range(0, 4)),
    (Range(0, 2), Range(0, 3), Range(0, 4)),
    (Range(1, 4), Range(2, 5)),
    (Range(0, 3), Range(2, 6), Range(1, 3)),
    (),
]


def make_function():
    def body(bounds):
        return bounds

    return body


def make_equations(independent):
    return [Equation(make_function(), shape, independent(i)) for i, shape in enumerate(SHAPES)]


@pytest.mark.parametrize("shape", SHAPES)
def test_flat_index_round_trip(shape):
    for position in range(flat_size(shape)):
        assert flat_index(indices_from_flat_index(position, shape), shape) == position


@pytest.mark.parametrize("shape", SHAPES)
def test_flat_order_is_row_major(shape):
    expected = list(itertools.product(*(range(r.begin, r.end) for r in shape)))
    produced = [indices_from_flat_index(i, shape) for i in range(flat_size(shape))]
    assert produced == expected


def test_flat_size_of_empty_rank_is_one():
    assert flat_size(()) == 1


def test_flat_index_out_of_range():
    shape = (Range(0, 3), Range(0, 4))
    with pytest.raises(IndexError):
        indices_from_flat_index(flat_size(shape), shape)
    with pytest.raises(IndexError):
        flat_index((3, 0), shape)


def test_flat_index_rank_mismatch():
    with pytest.raises(ValueError):
        flat_index((0,), (Range(0, 3), Range(0, 4)))


def test_partition_bounds_are_flattened():
    partition = EquationPartition(Equation(make_function(), ((1, 3), (0, 2))), ((1, 3), (0, 2)))
    assert partition.bounds == (1, 3, 0, 2)
    assert partition.ranges == (Range(1, 3), Range(0, 2))


def test_sequential_schedule_covers_whole_equations():
    equations = make_equations(lambda i: i % 2 == 0)
    schedule = sequential_schedule(equations)
    assert [p.ranges for p in schedule] == [e.indices for e in equations]
    assert all(is_scheduled_exactly_once(e, [schedule]) for e in equations)


@pytest.mark.parametrize("num_partitions", [1, 2, 3, 5, 7, 16])
@pytest.mark.parametrize(
    "independent",
    [lambda i: True, lambda i: False, lambda i: i % 2 == 0, lambda i: i % 2 == 1],
)
def test_multithreaded_schedule_covers_each_index_once(num_partitions, independent):
    equations = make_equations(independent)
    schedule = multithreaded_schedule(equations, num_partitions)

    assert all(is_scheduled_exactly_once(e, schedule) for e in equations)

    partitions = [p for group in schedule for p in group]
    assert all(group for group in schedule)
    assert all(indices_exist(p) for p in partitions)
    assert all(partition_flat_size(p) > 0 for p in partitions)
    assert sum(partition_flat_size(p) for p in partitions) == sum(
        flat_size(e.indices) for e in equations
    )


@pytest.mark.parametrize("num_partitions", [1, 2, 3, 5, 7, 16])
def test_independent_equations_fit_in_requested_partitions(num_partitions):
    equations = make_equations(lambda i: True)
    schedule = multithreaded_schedule(equations, num_partitions)
    assert len(schedule) <= num_partitions


@pytest.mark.parametrize("num_partitions", [1, 3, 7])
def test_dependent_equations_are_never_split(num_partitions):
    equations = make_equations(lambda i: False)
    schedule = multithreaded_schedule(equations, num_partitions)
    for equation in equations:
        owned = [p for group in schedule for p in group if p.equation.function == equation.function]
        assert [p.ranges for p in owned] == [equation.indices]


def test_single_independent_equation_split_in_halves():
    equation = Equation(make_function(), (Range(0, 10),), True)
    schedule = multithreaded_schedule([equation], 2)
    assert [[p.ranges for p in group] for group in schedule] == [
        [(Range(0, 5),)],
        [(Range(5, 10),)],
    ]


def test_multithreaded_schedule_rejects_non_positive_partitions():
    with pytest.raises(ValueError):
        multithreaded_schedule(make_equations(lambda i: True), 0)


def test_duplicate_partition_is_detected():
    equation = Equation(make_function(), (Range(0, 4),))
    partition = EquationPartition(equation, equation.indices)
    assert is_scheduled_exactly_once(equation, [[partition]]) is True
    assert is_scheduled_exactly_once(equation, [[partition], [partition]]) is False


def test_missing_indices_are_detected():
    equation = Equation(make_function(), (Range(0, 4),))
    partial = EquationPartition(equation, (Range(0, 3),))
    assert is_scheduled_exactly_once(equation, [[partial]]) is False


def test_partitions_of_other_functions_are_ignored():
    equation = Equation(make_function(), (Range(0, 4),))
    other = Equation(make_function(), (Range(0, 4),))
    assert is_scheduled_exactly_once(equation, [[EquationPartition(other, other.indices)]]) is False


def test_indices_exist_checks_bounds():
    equation = Equation(make_function(), (Range(0, 10),))
    assert indices_exist(EquationPartition(equation, (Range(2, 5),))) is True
    assert indices_exist(EquationPartition(equation, (Range(0, 11),))) is False
    assert indices_exist(EquationPartition(equation, (Range(-1, 3),))) is False