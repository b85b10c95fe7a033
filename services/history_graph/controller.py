"""Per-series controller: fetch, cache and bucket the history of one entity."""
from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional, Set

from .aggregators import resolve_aggregator
from .bucketer import aggregate_buckets, bucket_series
from .cache import cache_key_for, merge_history, plan_fetch
from .hass_client import HistorySource, HomeAssistantError
from .models import (
    CacheEntry,
    Series,
    SeriesConfig,
    from_millis,
    to_millis,
)
from .storage import CacheStoreError, HistoryCacheStore

_LOGGER = logging.getLogger("history_graph.series")


class SeriesController:
    """Keeps the cached and computed history of a single chart series."""

    def __init__(
        self,
        config: SeriesConfig,
        source: HistorySource,
        *,
        index: int,
        hours_to_show: float,
        store: Optional[HistoryCacheStore] = None,
        cache: bool = True,
        use_compress: bool = False,
    ) -> None:
        self._config = config
        self._entity_id = config.entity
        self._source = source
        self._store = store
        self._cache = cache and store is not None
        self._use_compress = use_compress
        self._index = index
        self._hours_to_show = hours_to_show
        self._func = config.group_by.func
        # resolved up front so unknown names and bad durations fail here
        self._aggregator = resolve_aggregator(self._func)
        self._duration_ms = config.group_by.duration_ms
        self._history: Optional[CacheEntry] = None
        self._computed_history: Optional[Series] = None
        self._entity_state: Optional[Dict[str, Any]] = None
        self._updating = False
        now = datetime.now(timezone.utc)
        self._real_start = now
        self._real_end = now
        self._pending_writes: Set[asyncio.Task[None]] = set()

    @property
    def entity_id(self) -> str:
        return self._entity_id

    @property
    def entity_state(self) -> Optional[Dict[str, Any]]:
        return self._entity_state

    @entity_state.setter
    def entity_state(self, state: Optional[Dict[str, Any]]) -> None:
        self._entity_state = state

    def update_states(self, states: Mapping[str, Dict[str, Any]]) -> None:
        self._entity_state = states.get(self._entity_id)

    @property
    def history(self) -> Series:
        if self._computed_history is not None:
            return self._computed_history
        if self._history is not None:
            return self._history.data
        return []

    @property
    def index(self) -> int:
        return self._index

    @property
    def start(self) -> datetime:
        return self._real_start

    @property
    def end(self) -> datetime:
        return self._real_end

    @property
    def updating(self) -> bool:
        return self._updating

    @property
    def cache_key(self) -> str:
        return cache_key_for(self._entity_id, self._hours_to_show)

    @contextmanager
    def _refresh_guard(self) -> Iterator[None]:
        self._updating = True
        try:
            yield
        finally:
            self._updating = False

    async def async_refresh(self, start: datetime, end: datetime) -> bool:
        """Bring the series up to date for ``[start, end)``.

        Returns ``False`` when there is nothing to show; never raises.
        """

        if not self._entity_state or self._updating:
            return False
        with self._refresh_guard():
            return await self._async_refresh(to_millis(start), to_millis(end))

    async def _async_refresh(self, start: int, end: int) -> bool:
        cached = await self._async_load_cache() if self._cache else None
        plan = plan_fetch(
            start,
            end,
            cached,
            hours_to_show=self._hours_to_show,
            func=self._func,
            step=self._duration_ms,
        )
        _LOGGER.debug(
            "Fetching history for %s from %s (skip_initial_state=%s)",
            self._entity_id,
            from_millis(plan.fetch_start).isoformat(),
            plan.skip_initial_state,
        )
        try:
            observations = await self._source.async_fetch_history(
                self._entity_id,
                from_millis(plan.fetch_start),
                from_millis(end),
                skip_initial_state=plan.skip_initial_state,
            )
        except HomeAssistantError as exc:
            _LOGGER.warning("Unable to load history for %s: %s", self._entity_id, exc)
            return False

        new_points = [observation.to_point() for observation in observations or []]
        history = merge_history(plan.cached, new_points, hours_to_show=self._hours_to_show)
        if new_points and history is not None and self._cache:
            self._schedule_persist(history)

        if history is None or not history.data:
            _LOGGER.debug("No history available for %s", self._entity_id)
            return False

        self._history = history
        self._real_start = from_millis(start)
        self._real_end = from_millis(end)
        if self._aggregator is not None:
            buckets = bucket_series(
                history.data,
                plan.history_start,
                end,
                self._duration_ms,
                self._config.group_by.fill,
            )
            self._computed_history = aggregate_buckets(buckets, self._aggregator)
        return True

    async def _async_load_cache(self) -> Optional[CacheEntry]:
        assert self._store is not None
        try:
            return await self._store.async_get(self.cache_key, compressed=self._use_compress)
        except CacheStoreError as exc:
            _LOGGER.warning("Unable to read history cache for %s: %s", self._entity_id, exc)
            return None

    def _schedule_persist(self, history: CacheEntry) -> None:
        task = asyncio.create_task(self._async_persist(self.cache_key, history))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _async_persist(self, key: str, history: CacheEntry) -> None:
        assert self._store is not None
        try:
            await self._store.async_set(key, history, compressed=self._use_compress)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Failed to persist history cache for %s", self._entity_id)
            try:
                await self._store.async_clear()
            except CacheStoreError:
                _LOGGER.exception("Failed to clear history cache")

    async def async_flush(self) -> None:
        """Wait for background cache writes to finish."""

        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))


__all__ = ["SeriesController"]
