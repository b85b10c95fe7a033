from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from services.history_graph.models import (
    AggregateFunc,
    FillPolicy,
    GroupByConfig,
    HistoryObservation,
    from_millis,
    parse_duration,
    parse_state_value,
    to_millis,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("1h", 3_600_000),
        ("30min", 1_800_000),
        ("15m", 900_000),
        ("1h30m", 5_400_000),
        ("2 days", 172_800_000),
        ("1w", 604_800_000),
        ("500ms", 500),
        ("1.5s", 1_500),
        ("250", 250),
        ("1mo", 2_629_800_000),
        ("2 months", 5_259_600_000),
        ("1y", 31_557_600_000),
    ],
)
def test_parse_duration(value, expected) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "soon", "5x", "0h", "h", "1h later", "-1h"])
def test_parse_duration_rejects_invalid(value) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_group_by_defaults_and_validation() -> None:
    config = GroupByConfig()
    assert config.func == AggregateFunc.RAW
    assert config.fill == FillPolicy.LAST
    assert config.duration_ms == 3_600_000

    assert GroupByConfig(func="median", duration="5min", fill="zero").duration_ms == 300_000
    with pytest.raises(ValidationError):
        GroupByConfig(duration="eventually")
    with pytest.raises(ValidationError):
        GroupByConfig(func="mode")


def test_parse_state_value() -> None:
    assert parse_state_value("21.5") == 21.5
    assert parse_state_value("-3") == -3.0
    assert parse_state_value("unknown") is None
    assert parse_state_value("12 W") == 12.0
    assert parse_state_value(" 21.5°C") == 21.5
    assert parse_state_value("1e3 lx") == 1000.0
    assert parse_state_value(".5") == 0.5
    assert parse_state_value("-Infinity") == float("-inf")
    assert parse_state_value("W 12") is None
    assert parse_state_value("nan") is None
    assert parse_state_value(None) is None


def test_observation_to_point() -> None:
    observation = HistoryObservation.model_validate(
        {"state": "on", "last_changed": "2025-01-01T00:00:01.500000+00:00"}
    )
    timestamp, value = observation.to_point()
    assert value is None
    assert timestamp == to_millis(datetime(2025, 1, 1, tzinfo=timezone.utc)) + 1500


def test_millis_conversion() -> None:
    moment = datetime(2025, 1, 1, 12, 30, tzinfo=timezone.utc)
    assert from_millis(to_millis(moment)) == moment
    assert to_millis(datetime(2025, 1, 1, 12, 30)) == to_millis(moment)
