"""Split a series into fixed-width buckets aligned to the end of a window."""
from __future__ import annotations

from bisect import bisect_right
from typing import Iterable, List, Optional

from .aggregators import Aggregator
from .models import Bucket, FillPolicy, Point, Series


def generate_boundaries(start: int, end: int, step: int) -> List[int]:
    """Return ascending bucket starts, walking back from *end* while ``>= start``.

    The last element is always *end* itself and only bounds the final bucket.
    """

    if step <= 0:
        raise ValueError("Bucket duration must be positive.")
    boundaries: List[int] = []
    cursor = end
    while cursor >= start:
        boundaries.append(cursor)
        cursor -= step
    boundaries.reverse()
    return boundaries


def fill_null_values(series: Iterable[Point], fill: Optional[FillPolicy]) -> Series:
    filled: Series = []
    last_value: Optional[float] = None
    for timestamp, value in series:
        if value is None:
            if fill == FillPolicy.LAST:
                value = last_value
            elif fill == FillPolicy.ZERO:
                value = 0
        else:
            last_value = value
        filled.append((timestamp, value))
    return filled


def bucket_series(
    series: Iterable[Point],
    start: int,
    end: int,
    step: int,
    fill: Optional[FillPolicy] = None,
) -> List[Bucket]:
    """Assign *series* to the buckets of ``[start, end)`` and fill the gaps.

    A point lands in the last bucket whose start is ``<=`` its timestamp.
    Points before the first boundary or at/after *end* are dropped.
    """

    boundaries = generate_boundaries(start, end, step)
    buckets = [Bucket(timestamp=boundary) for boundary in boundaries]

    for timestamp, value in fill_null_values(series, fill):
        index = bisect_right(boundaries, timestamp) - 1
        if 0 <= index < len(buckets) - 1:
            buckets[index].data.append((timestamp, value))

    last_bucket_value: Optional[float] = None
    for bucket in buckets:
        if bucket.data:
            tail = bucket.data[-1][1]
            if tail is not None:
                last_bucket_value = tail
            continue
        if fill == FillPolicy.LAST:
            bucket.data.append((bucket.timestamp, last_bucket_value))
        elif fill == FillPolicy.ZERO:
            bucket.data.append((bucket.timestamp, 0))
        elif fill == FillPolicy.NULL:
            bucket.data.append((bucket.timestamp, None))

    if buckets:
        buckets.pop()
    return buckets


def aggregate_buckets(buckets: Iterable[Bucket], func: Aggregator) -> Series:
    return [(bucket.timestamp, func(bucket.data)) for bucket in buckets]


__all__ = [
    "aggregate_buckets",
    "bucket_series",
    "fill_null_values",
    "generate_boundaries",
]
