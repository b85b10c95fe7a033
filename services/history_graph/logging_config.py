"""Structured logging for the history_graph service."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

HANDLER_NAME = "history_graph_json"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_FIELDS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def _serialise(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(key): _serialise(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialise(item) for item in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object, ``extra`` fields included."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_FIELDS:
                payload[key] = _serialise(value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        return json.dumps(payload, separators=(",", ":"))


def setup_logging(level: int | str = logging.INFO, *, http_level: int | str = logging.WARNING) -> None:
    """Attach the JSON handler to ``history_graph`` once and set levels.

    ``history_graph.http`` gets its own level so per-request call logs can be
    enabled without the rest of the service going to DEBUG.
    """

    logger = logging.getLogger("history_graph")
    if not any(handler.get_name() == HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    logging.getLogger("history_graph.http").setLevel(http_level)


__all__ = ["HANDLER_NAME", "JsonFormatter", "setup_logging"]
