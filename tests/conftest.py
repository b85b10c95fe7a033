import asyncio
import inspect
import sys
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.history_graph.models import HistoryObservation, from_millis, to_millis  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:  # pragma: no cover - test helper
    config.addinivalue_line(
        "markers",
        "asyncio: run the marked test inside an asyncio event loop",
    )


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:  # pragma: no cover
    for item in items:
        marker = item.get_closest_marker("asyncio")
        if marker is None:
            continue
        obj = item.obj
        if inspect.iscoroutinefunction(obj):
            @wraps(obj)
            def _wrapper(*args: Any, __obj=obj, **kwargs: Any):
                return asyncio.run(__obj(*args, **kwargs))

            item.obj = _wrapper


HOUR_MS = 60 * 60 * 1000
BASE_MS = to_millis(datetime(2025, 1, 1, tzinfo=timezone.utc))


class FakeHistorySource:
    """In-memory stand-in for the Home Assistant history endpoint."""

    def __init__(self, points: Optional[List[tuple]] = None) -> None:
        self.points: List[tuple] = list(points or [])
        self.calls: List[Dict[str, Any]] = []

    async def async_fetch_history(
        self,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        skip_initial_state: bool = False,
    ) -> Optional[List[HistoryObservation]]:
        self.calls.append(
            {
                "entity_id": entity_id,
                "start": start,
                "end": end,
                "skip_initial_state": skip_initial_state,
            }
        )
        start_ms = to_millis(start) if start else None
        end_ms = to_millis(end) if end else None
        selected = [
            (timestamp, state)
            for timestamp, state in self.points
            if (start_ms is None or timestamp >= start_ms)
            and (end_ms is None or timestamp <= end_ms)
        ]
        if not selected:
            return None
        return [
            HistoryObservation(state=state, last_changed=from_millis(timestamp))
            for timestamp, state in selected
        ]


@pytest.fixture
def history_source() -> FakeHistorySource:
    return FakeHistorySource()
