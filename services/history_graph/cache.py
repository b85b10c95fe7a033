"""Reconcile the persisted series of an entity with freshly fetched history."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from .const import CACHE_KEY_TEMPLATE, LEAD_IN_POINTS
from .models import AggregateFunc, CacheEntry, Point

_LOGGER = logging.getLogger("history_graph.cache")


@dataclass
class FetchPlan:
    history_start: int
    fetch_start: int
    skip_initial_state: bool
    cached: Optional[CacheEntry]


def cache_key_for(entity_id: str, hours_to_show: float) -> str:
    """Build the store key of a series; whole hours print without a fraction."""

    hours = float(hours_to_show)
    text = str(int(hours)) if hours.is_integer() else repr(hours)
    return CACHE_KEY_TEMPLATE.format(entity_id=entity_id, hours_to_show=text)


def history_start_for(start: int, end: int, func: AggregateFunc, step: int) -> int:
    """Widen *start* so the window holds a whole number of buckets ending at *end*."""

    if func == AggregateFunc.RAW:
        return start
    buckets = math.ceil((end - start) / step)
    return end - buckets * step


def plan_fetch(
    start: int,
    end: int,
    cached: Optional[CacheEntry],
    *,
    hours_to_show: float,
    func: AggregateFunc,
    step: int,
) -> FetchPlan:
    history_start = history_start_for(start, end, func, step)
    skip_initial_state = False

    if cached is not None and cached.hours_to_show != hours_to_show:
        _LOGGER.debug(
            "Discarding cache built for %s hours (configured %s)",
            cached.hours_to_show,
            hours_to_show,
        )
        cached = None

    if cached is not None:
        index = next(
            (position for position, point in enumerate(cached.data) if point[0] > start),
            None,
        )
        if index is None:
            retained = []
        else:
            skip_initial_state = True
            retained = list(cached.data[max(0, index - LEAD_IN_POINTS) :])
        cached = cached.model_copy(update={"data": retained})

    if cached is not None and cached.data:
        fetch_start = cached.data[-1][0] + 1
    else:
        fetch_start = history_start

    return FetchPlan(
        history_start=history_start,
        fetch_start=fetch_start,
        skip_initial_state=skip_initial_state,
        cached=cached,
    )


def merge_history(
    cached: Optional[CacheEntry],
    new_points: Sequence[Point],
    *,
    hours_to_show: float,
    fetched_at: Optional[datetime] = None,
) -> Optional[CacheEntry]:
    """Append *new_points* after the retained cache data.

    Returns the retained entry untouched when nothing new arrived.
    """

    if not new_points:
        return cached
    fetched_at = fetched_at or datetime.now(timezone.utc)
    data = list(cached.data) if cached is not None else []
    data.extend(new_points)
    return CacheEntry(hours_to_show=hours_to_show, last_fetched=fetched_at, data=data)


__all__ = ["FetchPlan", "cache_key_for", "history_start_for", "merge_history", "plan_fetch"]
