"""Splitting of equations into schedulable partitions."""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

EquationFunction = Callable[[tuple[int, ...]], object]


@dataclass(frozen=True)
class Range:
    """Half-open interval of indices ``[begin, end)``."""

    begin: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.begin

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.begin <= value < self.end


def _as_ranges(ranges: Iterable[Range | tuple[int, int]]) -> tuple[Range, ...]:
    return tuple(r if isinstance(r, Range) else Range(*r) for r in ranges)


@dataclass(frozen=True)
class Equation:
    """An equation body together with the indices it iterates over."""

    function: EquationFunction
    indices: tuple[Range, ...] = ()
    independent_indices: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "indices", _as_ranges(self.indices))

    @property
    def rank(self) -> int:
        return len(self.indices)


@dataclass(frozen=True)
class EquationPartition:
    """A box of an equation's indices assigned to one execution."""

    equation: Equation
    ranges: tuple[Range, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ranges", _as_ranges(self.ranges))

    @property
    def bounds(self) -> tuple[int, ...]:
        """The ranges flattened as ``(begin0, end0, begin1, end1, ...)``."""
        return tuple(itertools.chain.from_iterable((r.begin, r.end) for r in self.ranges))

    def _contains(self, point: Sequence[int]) -> bool:
        return all(value in r for value, r in zip(point, self.ranges))


def flat_size(ranges: Iterable[Range]) -> int:
    """Number of points in the multidimensional range."""
    return math.prod(r.size for r in ranges)


def indices_from_flat_index(flat_index: int, ranges: Sequence[Range]) -> tuple[int, ...]:
    """Row-major point of ``ranges`` at position ``flat_index``."""
    ranges = tuple(ranges)

    if not 0 <= flat_index < flat_size(ranges):
        raise IndexError(f"flat index {flat_index} out of range")

    indices = []

    for r in reversed(ranges):
        flat_index, offset = divmod(flat_index, r.size)
        indices.append(r.begin + offset)

    return tuple(reversed(indices))


def flat_index(indices: Sequence[int], ranges: Sequence[Range]) -> int:
    """Row-major position of the point ``indices`` within ``ranges``."""
    if len(indices) != len(ranges):
        raise ValueError("indices and ranges have different ranks")

    result = 0

    for value, r in zip(indices, ranges):
        if value not in r:
            raise IndexError(f"index {value} outside [{r.begin}, {r.end})")
        result = result * r.size + (value - r.begin)

    return result


def partition_flat_size(partition: EquationPartition) -> int:
    """Number of points covered by a partition."""
    return flat_size(partition.ranges)


def sequential_schedule(equations: Iterable[Equation]) -> list[EquationPartition]:
    """One partition per equation, covering all of its indices."""
    return [EquationPartition(equation, equation.indices) for equation in equations]


def _unwrap(
    begin: Sequence[int], end: Sequence[int], ranges: Sequence[Range]
) -> list[tuple[list[int], list[int]]]:
    """Split the inclusive row-major span ``begin..end`` into boxes."""
    rank = len(ranges)
    increasing = next((dim for dim in range(rank - 1) if end[dim] > begin[dim]), None)

    if increasing is None:
        return [(list(begin), list(end))]

    d = increasing
    boxes: list[tuple[list[int], list[int]]] = []

    current_begin = list(begin)
    current_end = list(begin)
    current_end[-1] = ranges[-1].end - 1
    boxes.append((current_begin.copy(), current_end.copy()))

    # Tail of the first partial block, from the innermost dimension outwards.
    for dim in range(rank - 2, d, -1):
        current_begin[dim + 1] = ranges[dim + 1].begin
        current_end[dim] = ranges[dim].end - 1

        if current_begin[dim] + 1 != ranges[dim].end:
            current_begin[dim] += 1
            boxes.append((current_begin.copy(), current_end.copy()))

    current_begin[d + 1] = ranges[d + 1].begin

    # Full blocks along the increasing dimension.
    if end[d] - begin[d] > 1:
        current_begin[d] += 1
        current_end[d] = end[d] - 1
        boxes.append((current_begin.copy(), current_end.copy()))

    # Head of the last partial block, from the increasing dimension inwards.
    for dim in range(d, rank - 1):
        current_begin[dim] = end[dim]
        current_end[dim] = end[dim]
        current_end[dim + 1] = end[dim + 1]

        if current_end[dim + 1] != ranges[dim + 1].begin:
            current_end[dim + 1] -= 1
            boxes.append((current_begin.copy(), current_end.copy()))

    current_begin[-1] = end[-1]
    current_end[-1] = end[-1]
    boxes.append((current_begin.copy(), current_end.copy()))
    return boxes


def multithreaded_schedule(
    equations: Iterable[Equation], num_partitions: int
) -> list[list[EquationPartition]]:
    """Group the equations into partition groups of roughly equal flat size."""
    if num_partitions <= 0:
        raise ValueError("the number of partitions must be positive")

    equations = list(equations)
    total = sum(flat_size(equation.indices) for equation in equations)
    max_group_size = -(-total // num_partitions)

    logger.debug(
        "partitioning %d scalar equations into %d partitions (max group size %d)",
        total,
        num_partitions,
        max_group_size,
    )

    schedule: list[list[EquationPartition]] = []
    group: list[EquationPartition] = []
    group_size = 0

    def push_group() -> None:
        nonlocal group, group_size
        logger.debug("adding partitions group of %d partitions", len(group))
        schedule.append(group)
        group = []
        group_size = 0

    for equation in equations:
        ranges = equation.indices
        size = flat_size(ranges)
        remaining = max_group_size - group_size

        if equation.independent_indices:
            position = 0

            while position < size:
                first = position
                last = min(first + remaining, size) - 1

                boxes = _unwrap(
                    indices_from_flat_index(first, ranges),
                    indices_from_flat_index(last, ranges),
                    ranges,
                )

                for box_begin, box_end in boxes:
                    box = tuple(Range(lo, hi + 1) for lo, hi in zip(box_begin, box_end))
                    group.append(EquationPartition(equation, box))

                position = flat_index(boxes[-1][1], ranges) + 1
                group_size += position - first

                if group_size >= max_group_size:
                    push_group()

        elif size <= remaining:
            group.append(EquationPartition(equation, ranges))
            group_size += size

            if group_size >= max_group_size:
                push_group()

        elif size >= max_group_size:
            logger.debug("equation independently exceeds the maximum size for a group")
            schedule.append([EquationPartition(equation, ranges)])

        else:
            push_group()
            group.append(EquationPartition(equation, ranges))
            group_size += size

            if group_size >= max_group_size:
                push_group()

    if group_size != 0:
        push_group()

    return schedule


def is_scheduled_exactly_once(
    equation: Equation, schedule: Iterable[Iterable[EquationPartition]]
) -> bool:
    """Whether every index of ``equation`` belongs to exactly one partition."""
    partitions = [
        partition
        for group in schedule
        for partition in group
        if partition.equation.function == equation.function
    ]

    points = itertools.product(*(range(r.begin, r.end) for r in equation.indices))

    return all(
        sum(1 for partition in partitions if partition._contains(point)) == 1
        for point in points
    )


def indices_exist(partition: EquationPartition) -> bool:
    """Whether the partition stays within its equation's indices."""
    return all(
        box.begin >= own.begin and box.end <= own.end
        for box, own in zip(partition.ranges, partition.equation.indices)
    )