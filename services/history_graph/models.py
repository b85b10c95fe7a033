"""Data types shared by the history_graph service."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

Point = Tuple[int, Optional[float]]
Series = List[Point]


class AggregateFunc(str, Enum):
    RAW = "raw"
    AVG = "avg"
    MAX = "max"
    MIN = "min"
    FIRST = "first"
    LAST = "last"
    SUM = "sum"
    MEDIAN = "median"
    DELTA = "delta"


class FillPolicy(str, Enum):
    LAST = "last"
    ZERO = "zero"
    NULL = "null"


_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS
# Julian year; a month is a twelfth of it.
_YEAR_MS = 365.25 * _DAY_MS
_MONTH_MS = _YEAR_MS / 12

_UNIT_MS = {
    "ms": 1,
    "s": _SECOND_MS,
    "sec": _SECOND_MS,
    "second": _SECOND_MS,
    "m": _MINUTE_MS,
    "min": _MINUTE_MS,
    "minute": _MINUTE_MS,
    "h": _HOUR_MS,
    "hr": _HOUR_MS,
    "hour": _HOUR_MS,
    "d": _DAY_MS,
    "day": _DAY_MS,
    "w": 7 * _DAY_MS,
    "week": 7 * _DAY_MS,
    "mo": _MONTH_MS,
    "month": _MONTH_MS,
    "y": _YEAR_MS,
    "year": _YEAR_MS,
}

_numeric_prefix = re.compile(r"\s*[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_duration_part = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def parse_duration(value: str) -> int:
    """Return the number of milliseconds described by *value*.

    Accepts compound strings such as ``"1h30min"`` or ``"2 days"``; a bare
    number is read as milliseconds.
    """

    text = value.strip().lower()
    if not text:
        raise ValueError("Duration cannot be empty.")
    try:
        total = float(text)
    except ValueError:
        total = 0.0
        position = 0
        for match in _duration_part.finditer(text):
            if text[position : match.start()].strip(" ,"):
                raise ValueError(f"Invalid duration: {value!r}")
            unit = match.group(2)
            if unit not in _UNIT_MS and unit.endswith("s"):
                unit = unit[:-1]
            if unit not in _UNIT_MS:
                raise ValueError(f"Unknown duration unit {match.group(2)!r} in {value!r}")
            total += float(match.group(1)) * _UNIT_MS[unit]
            position = match.end()
        if position == 0 or text[position:].strip():
            raise ValueError(f"Invalid duration: {value!r}")
    if not math.isfinite(total) or round(total) <= 0:
        raise ValueError(f"Duration must be a positive interval: {value!r}")
    return int(round(total))


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MILLISECOND


def from_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def parse_state_value(state: Optional[str]) -> Optional[float]:
    """Convert a Home Assistant state string into a number, ``None`` if it is not one.

    Only the leading number counts, so ``"12 W"`` reads as 12.
    """

    if state is None:
        return None
    match = _numeric_prefix.match(state)
    if match is None:
        return None
    return float(match.group(0))


class GroupByConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    func: AggregateFunc = AggregateFunc.RAW
    duration: str = Field(default="1h", min_length=1)
    fill: Optional[FillPolicy] = FillPolicy.LAST

    @field_validator("duration")
    @classmethod
    def _validate_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def duration_ms(self) -> int:
        return parse_duration(self.duration)


class SeriesConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: str = Field(..., min_length=1)
    group_by: GroupByConfig = Field(default_factory=GroupByConfig)


class HistoryObservation(BaseModel):
    """Single entry of a minimal ``/api/history/period`` response."""

    model_config = ConfigDict(extra="allow")

    state: Optional[str] = None
    last_changed: datetime

    @field_validator("last_changed")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_point(self) -> Point:
        return to_millis(self.last_changed), parse_state_value(self.state)


class CacheEntry(BaseModel):
    hours_to_show: float
    last_fetched: datetime
    data: List[Tuple[int, Optional[float]]] = Field(default_factory=list)


class SeriesPoint(BaseModel):
    timestamp: int
    value: Optional[float] = None


class SeriesResponse(BaseModel):
    entity_id: str
    index: int
    start: datetime
    end: datetime
    points: List[SeriesPoint]


@dataclass
class Bucket:
    timestamp: int
    data: Series = field(default_factory=list)


__all__ = [
    "AggregateFunc",
    "Bucket",
    "CacheEntry",
    "FillPolicy",
    "GroupByConfig",
    "HistoryObservation",
    "Point",
    "Series",
    "SeriesConfig",
    "SeriesPoint",
    "SeriesResponse",
    "from_millis",
    "parse_duration",
    "parse_state_value",
    "to_millis",
]
