"""FastAPI application serving bucketed entity history to chart frontends."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Query, status
from pydantic import ValidationError

from .const import DEFAULT_HOURS_TO_SHOW
from .controller import SeriesController
from .hass_client import HomeAssistantClient, HomeAssistantError
from .logging_config import setup_logging
from .models import (
    AggregateFunc,
    FillPolicy,
    GroupByConfig,
    SeriesConfig,
    SeriesPoint,
    SeriesResponse,
)
from .settings import HistoryGraphSettings, load_env_files, load_settings
from .storage import HistoryCacheStore

ControllerKey = Tuple[str, float, GroupByConfig, int]


class SeriesRegistry:
    """Owns the Home Assistant client, the cache store and one controller per series."""

    def __init__(
        self,
        settings: HistoryGraphSettings,
        client: Optional[HomeAssistantClient] = None,
        store: Optional[HistoryCacheStore] = None,
    ) -> None:
        self.settings = settings
        self.client = client or HomeAssistantClient(settings.hass)
        if store is None and settings.cache_enabled:
            store = HistoryCacheStore(settings.cache_path)
        self.store = store
        self._controllers: Dict[ControllerKey, SeriesController] = {}

    def controller_for(
        self,
        entity_id: str,
        hours_to_show: float,
        group_by: GroupByConfig,
        index: int,
    ) -> SeriesController:
        key = (entity_id, hours_to_show, group_by, index)
        controller = self._controllers.get(key)
        if controller is None:
            controller = SeriesController(
                SeriesConfig(entity=entity_id, group_by=group_by),
                self.client,
                index=index,
                hours_to_show=hours_to_show,
                store=self.store,
                cache=self.settings.cache_enabled,
                use_compress=self.settings.cache_compress,
            )
            self._controllers[key] = controller
        return controller

    async def close(self) -> None:
        for controller in self._controllers.values():
            await controller.async_flush()
        await self.client.close()


load_env_files()
settings = load_settings()
setup_logging(settings.log_level, http_level=settings.http_log_level)
logger = logging.getLogger("history_graph.app")

registry = SeriesRegistry(settings)

app = FastAPI(title="History Graph", version="1.0.0")


def ensure_hass_configured() -> None:
    if not registry.client.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Home Assistant credentials are not configured. Set HASS_BASE_URL and HASS_ACCESS_TOKEN.",
        )


def translate_error(exc: HomeAssistantError) -> HTTPException:
    status_code = status.HTTP_502_BAD_GATEWAY
    if exc.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}:
        status_code = exc.status_code
    return HTTPException(status_code=status_code, detail=str(exc))


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await registry.close()


@app.get("/api/series/{entity_id}", response_model=SeriesResponse)
async def get_series(
    entity_id: str,
    hours_to_show: float = Query(DEFAULT_HOURS_TO_SHOW, gt=0),
    func: AggregateFunc = AggregateFunc.RAW,
    duration: str = "1h",
    fill: Optional[FillPolicy] = FillPolicy.LAST,
    index: int = Query(0, ge=0),
) -> SeriesResponse:
    ensure_hass_configured()
    try:
        group_by = GroupByConfig(func=func, duration=duration, fill=fill)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid group_by configuration: {exc.errors()[0]['msg']}",
        ) from exc

    try:
        state = await registry.client.async_get_state(entity_id)
    except HomeAssistantError as exc:
        raise translate_error(exc) from exc

    controller = registry.controller_for(entity_id, hours_to_show, group_by, index)
    controller.entity_state = state
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=hours_to_show)
    if not await controller.async_refresh(start, end):
        logger.info(
            "series_unavailable",
            extra={"entity_id": entity_id, "hours_to_show": hours_to_show},
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No history available for {entity_id}",
        )

    return SeriesResponse(
        entity_id=entity_id,
        index=controller.index,
        start=controller.start,
        end=controller.end,
        points=[
            SeriesPoint(timestamp=timestamp, value=value)
            for timestamp, value in controller.history
        ],
    )
