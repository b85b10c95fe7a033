from __future__ import annotations

from datetime import datetime, timezone

import pytest

from services.history_graph.aggregators import aggregate_average, aggregate_sum
from services.history_graph.bucketer import (
    aggregate_buckets,
    bucket_series,
    fill_null_values,
    generate_boundaries,
)
from services.history_graph.models import FillPolicy, to_millis

HOUR = 60 * 60 * 1000
MINUTE = 60 * 1000
BASE = to_millis(datetime(2025, 1, 1, tzinfo=timezone.utc))


def test_boundaries_are_aligned_to_the_end() -> None:
    assert generate_boundaries(BASE, BASE + 3 * HOUR, HOUR) == [
        BASE,
        BASE + HOUR,
        BASE + 2 * HOUR,
        BASE + 3 * HOUR,
    ]
    # start that is not a multiple of the step away from end
    assert generate_boundaries(BASE + 30 * MINUTE, BASE + 3 * HOUR, HOUR) == [
        BASE + HOUR,
        BASE + 2 * HOUR,
        BASE + 3 * HOUR,
    ]


def test_boundaries_reject_non_positive_step() -> None:
    with pytest.raises(ValueError):
        generate_boundaries(BASE, BASE + HOUR, 0)


def test_output_has_one_bucket_less_than_boundaries() -> None:
    for start in (BASE, BASE + 30 * MINUTE, BASE + 59 * MINUTE):
        boundaries = generate_boundaries(start, BASE + 6 * HOUR, HOUR)
        buckets = bucket_series([], start, BASE + 6 * HOUR, HOUR, FillPolicy.NULL)
        assert len(buckets) == len(boundaries) - 1
        assert [bucket.timestamp for bucket in buckets] == boundaries[:-1]


def test_point_on_boundary_goes_to_bucket_starting_there() -> None:
    series = [(BASE + HOUR, 4.0)]
    buckets = bucket_series(series, BASE, BASE + 3 * HOUR, HOUR)
    assert buckets[0].data == []
    assert buckets[1].data == [(BASE + HOUR, 4.0)]
    assert buckets[2].data == []


def test_points_outside_window_are_dropped() -> None:
    series = [
        (BASE - 1, 1.0),
        (BASE + 10 * MINUTE, 2.0),
        (BASE + 2 * HOUR - 1, 3.0),
        (BASE + 2 * HOUR, 99.0),
    ]
    buckets = bucket_series(series, BASE, BASE + 2 * HOUR, HOUR)
    assert len(buckets) == 2
    assert buckets[0].data == [(BASE + 10 * MINUTE, 2.0)]
    assert buckets[1].data == [(BASE + 2 * HOUR - 1, 3.0)]


@pytest.mark.parametrize(
    ("fill", "expected"),
    [
        (FillPolicy.LAST, [(BASE + HOUR, 5.0)]),
        (FillPolicy.ZERO, [(BASE + HOUR, 0)]),
        (FillPolicy.NULL, [(BASE + HOUR, None)]),
        (None, []),
    ],
)
def test_empty_bucket_fill(fill, expected) -> None:
    series = [(BASE + 10 * MINUTE, 5.0), (BASE + 2 * HOUR + 10 * MINUTE, 7.0)]
    buckets = bucket_series(series, BASE, BASE + 3 * HOUR, HOUR, fill)
    assert buckets[1].data == expected
    assert buckets[2].data == [(BASE + 2 * HOUR + 10 * MINUTE, 7.0)]


def test_last_fill_before_any_value_is_null() -> None:
    series = [(BASE + HOUR + MINUTE, 3.0)]
    buckets = bucket_series(series, BASE, BASE + 2 * HOUR, HOUR, FillPolicy.LAST)
    assert buckets[0].data == [(BASE, None)]


def test_null_values_filled_with_running_last_value() -> None:
    series = [(BASE, 5.0), (BASE + HOUR, None), (BASE + 2 * HOUR, None)]
    assert fill_null_values(series, FillPolicy.LAST) == [
        (BASE, 5.0),
        (BASE + HOUR, 5.0),
        (BASE + 2 * HOUR, 5.0),
    ]
    assert fill_null_values(series, FillPolicy.ZERO)[1:] == [
        (BASE + HOUR, 0),
        (BASE + 2 * HOUR, 0),
    ]
    assert fill_null_values(series, FillPolicy.NULL) == series

    buckets = bucket_series(series, BASE, BASE + 3 * HOUR, 3 * HOUR, FillPolicy.LAST)
    assert aggregate_buckets(buckets, aggregate_sum) == [(BASE, 15.0)]


def test_fill_cursor_spans_bucket_boundaries() -> None:
    series = [(BASE + 10 * MINUTE, 8.0), (BASE + HOUR + 10 * MINUTE, None)]
    buckets = bucket_series(series, BASE, BASE + 2 * HOUR, HOUR, FillPolicy.LAST)
    assert buckets[1].data == [(BASE + HOUR + 10 * MINUTE, 8.0)]


def test_bucketing_is_idempotent() -> None:
    series = [
        (BASE + 5 * MINUTE, 1.0),
        (BASE + 65 * MINUTE, None),
        (BASE + 70 * MINUTE, 4.0),
        (BASE + 200 * MINUTE, 2.0),
    ]
    snapshot = list(series)
    first = aggregate_buckets(
        bucket_series(series, BASE, BASE + 4 * HOUR, HOUR, FillPolicy.LAST),
        aggregate_average,
    )
    second = aggregate_buckets(
        bucket_series(series, BASE, BASE + 4 * HOUR, HOUR, FillPolicy.LAST),
        aggregate_average,
    )
    assert first == second
    assert series == snapshot
    assert first == [
        (BASE, 1.0),
        (BASE + HOUR, 2.5),
        (BASE + 2 * HOUR, 4.0),
        (BASE + 3 * HOUR, 2.0),
    ]
