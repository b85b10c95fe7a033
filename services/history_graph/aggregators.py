"""Reductions applied to the points of a single bucket."""
from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence

from .models import AggregateFunc, Point

Aggregator = Callable[[Sequence[Point]], Optional[float]]


def aggregate_sum(items: Sequence[Point]) -> float:
    """Running total where a ``None`` repeats the last non-null value seen."""

    total = 0.0
    last_value: Optional[float] = None
    for _, value in items:
        if value is None:
            total += last_value or 0
        else:
            total += value
            last_value = value
    return total


def aggregate_average(items: Sequence[Point]) -> Optional[float]:
    if all(value is None for _, value in items):
        return None
    return aggregate_sum(items) / len(items)


def aggregate_minimum(items: Sequence[Point]) -> Optional[float]:
    values = [value for _, value in items if value is not None]
    return min(values) if values else None


def aggregate_maximum(items: Sequence[Point]) -> Optional[float]:
    values = [value for _, value in items if value is not None]
    return max(values) if values else None


def aggregate_first(items: Sequence[Point]) -> Optional[float]:
    if not items:
        return None
    return items[0][1]


def aggregate_last(items: Sequence[Point]) -> Optional[float]:
    if not items:
        return None
    return items[-1][1]


def aggregate_median(items: Sequence[Point]) -> Optional[float]:
    values = sorted(value for _, value in items if value is not None)
    if not values:
        return None
    mid = (len(values) - 1) // 2
    if len(values) % 2 == 1:
        return values[mid]
    return (values[mid] + values[mid + 1]) / 2


def aggregate_delta(items: Sequence[Point]) -> Optional[float]:
    maximum = aggregate_maximum(items)
    minimum = aggregate_minimum(items)
    if maximum is None or minimum is None:
        return None
    return maximum - minimum


AGGREGATORS: Dict[AggregateFunc, Aggregator] = {
    AggregateFunc.AVG: aggregate_average,
    AggregateFunc.MAX: aggregate_maximum,
    AggregateFunc.MIN: aggregate_minimum,
    AggregateFunc.FIRST: aggregate_first,
    AggregateFunc.LAST: aggregate_last,
    AggregateFunc.SUM: aggregate_sum,
    AggregateFunc.MEDIAN: aggregate_median,
    AggregateFunc.DELTA: aggregate_delta,
}


def resolve_aggregator(func: AggregateFunc | str) -> Optional[Aggregator]:
    """Return the reduction for *func*; ``None`` for raw mode.

    Raises ``ValueError`` for names that are not a known aggregation.
    """

    kind = AggregateFunc(func)
    if kind == AggregateFunc.RAW:
        return None
    return AGGREGATORS[kind]


__all__ = [
    "AGGREGATORS",
    "Aggregator",
    "aggregate_average",
    "aggregate_delta",
    "aggregate_first",
    "aggregate_last",
    "aggregate_maximum",
    "aggregate_median",
    "aggregate_minimum",
    "aggregate_sum",
    "resolve_aggregator",
]
