"""Async client for the Home Assistant history API."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .const import DEFAULT_TIMEOUT, HISTORY_PERIOD_PATH, STATE_PATH
from .models import HistoryObservation


class HomeAssistantError(RuntimeError):
    """Raised when communication with Home Assistant fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HistorySource(Protocol):
    async def async_fetch_history(
        self,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        skip_initial_state: bool = False,
    ) -> Optional[List[HistoryObservation]]:
        ...


@dataclass
class HomeAssistantSettings:
    base_url: str
    access_token: str
    timeout: float = DEFAULT_TIMEOUT


class HomeAssistantClient:
    """Wrapper around the Home Assistant REST history and state endpoints."""

    def __init__(
        self,
        settings: HomeAssistantSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("history_graph.http")

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.base_url) and bool(self._settings.access_token)

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.is_configured:
            raise HomeAssistantError(
                "Home Assistant base URL or access token is not configured."
            )
        async with self._lock:
            if self._client is None:
                headers = {
                    "Authorization": f"Bearer {self._settings.access_token}",
                    "Content-Type": "application/json",
                }
                self._client = httpx.AsyncClient(
                    base_url=self._settings.base_url.rstrip("/"),
                    headers=headers,
                    timeout=self._settings.timeout,
                    transport=self._transport,
                )
        assert self._client is not None
        return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        client = await self._get_client()
        start = time.perf_counter()
        try:
            response = await client.request(method, path, **kwargs)
            duration_ms = (time.perf_counter() - start) * 1000
            self._logger.debug(
                "home_assistant_http_call",
                extra={
                    "method": method,
                    "path": path,
                    "url": str(response.request.url),
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 3),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            self._logger.debug(
                "home_assistant_http_call",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": exc.response.status_code,
                    "reason": exc.response.reason_phrase,
                    "duration_ms": round(duration_ms, 3),
                    "error": True,
                },
            )
            raise HomeAssistantError(
                f"Home Assistant request failed: {exc.response.status_code} {exc.response.reason_phrase}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            self._logger.debug(
                "home_assistant_http_call",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": round(duration_ms, 3),
                    "error": True,
                    "exception": exc.__class__.__name__,
                },
            )
            raise HomeAssistantError("Error communicating with Home Assistant") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            self._logger.debug(
                "home_assistant_invalid_json",
                extra={
                    "method": method,
                    "path": path,
                    "content_type": response.headers.get("content-type"),
                },
            )
            raise HomeAssistantError(
                "Invalid JSON from Home Assistant", status_code=response.status_code
            ) from exc

    async def async_get_state(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """Return the current state object of *entity_id*, ``None`` if unknown."""

        try:
            data = await self._request("GET", STATE_PATH.format(entity_id=entity_id))
        except HomeAssistantError as exc:
            if exc.status_code == 404:
                return None
            raise
        return data if isinstance(data, dict) else None

    async def async_fetch_history(
        self,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        skip_initial_state: bool = False,
    ) -> Optional[List[HistoryObservation]]:
        """Return the state changes of *entity_id* between *start* and *end*.

        Without *start* Home Assistant answers from its default look-back,
        without *end* up to now.
        """

        path = HISTORY_PERIOD_PATH
        if start is not None:
            path += "/" + quote(start.isoformat(), safe="")
        params: Dict[str, str] = {"filter_entity_id": entity_id}
        if end is not None:
            params["end_time"] = end.isoformat()
        if skip_initial_state:
            params["skip_initial_state"] = ""
        params["minimal_response"] = ""

        data = await self._request("GET", path, params=params)
        if not isinstance(data, list) or not data or not isinstance(data[0], list):
            return None
        try:
            return [HistoryObservation.model_validate(item) for item in data[0]]
        except ValidationError as exc:
            raise HomeAssistantError(
                f"Unexpected history payload for {entity_id}"
            ) from exc


__all__ = [
    "HistorySource",
    "HomeAssistantClient",
    "HomeAssistantError",
    "HomeAssistantSettings",
]
