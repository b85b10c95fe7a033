"""Environment driven settings for the history_graph service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .const import DEFAULT_TIMEOUT
from .hass_client import HomeAssistantSettings

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"

_TRUE_VALUES = {"1", "true", "on", "yes"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class HistoryGraphSettings:
    hass: HomeAssistantSettings
    cache_path: Path
    cache_enabled: bool = True
    cache_compress: bool = False
    log_level: str = "INFO"
    http_log_level: str = "WARNING"


def load_env_files(base_dir: Optional[Path] = None) -> None:
    base_dir = base_dir or BASE_DIR
    for env_path in (
        base_dir / ".env",
        base_dir.parent / ".env",
        Path.cwd() / ".env",
    ):
        load_dotenv(dotenv_path=env_path, override=False)


def load_settings() -> HistoryGraphSettings:
    try:
        timeout = float(os.getenv("HASS_TIMEOUT", str(DEFAULT_TIMEOUT)))
    except ValueError:
        timeout = DEFAULT_TIMEOUT
    return HistoryGraphSettings(
        hass=HomeAssistantSettings(
            base_url=os.getenv("HASS_BASE_URL", "http://homeassistant.local:8123"),
            access_token=os.getenv("HASS_ACCESS_TOKEN", ""),
            timeout=timeout,
        ),
        cache_path=Path(
            os.getenv("HISTORY_CACHE_PATH", str(DATA_DIR / "history_cache.sqlite3"))
        ),
        cache_enabled=_env_flag("HISTORY_CACHE_ENABLED", True),
        cache_compress=_env_flag("HISTORY_CACHE_COMPRESS", False),
        log_level=os.getenv("HISTORY_LOG_LEVEL", "INFO").upper(),
        http_log_level=os.getenv("HISTORY_HTTP_LOG_LEVEL", "WARNING").upper(),
    )


__all__ = ["HistoryGraphSettings", "load_env_files", "load_settings"]
