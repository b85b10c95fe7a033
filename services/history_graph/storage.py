"""Persistent cache for entity history, backed by SQLite."""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import zlib
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Iterator, Optional

from pydantic import ValidationError

from .const import RAW_CACHE_KEY_SUFFIX
from .models import CacheEntry

_LOGGER = logging.getLogger("history_graph.storage")


class CacheStoreError(RuntimeError):
    """Raised when the backing database cannot be read or written."""


def compress_entry(entry: CacheEntry) -> bytes:
    return zlib.compress(entry.model_dump_json().encode("utf-8"))


def decompress_entry(payload: bytes) -> CacheEntry:
    return CacheEntry.model_validate_json(zlib.decompress(payload))


def storage_key(key: str, compressed: bool) -> str:
    return key if compressed else f"{key}{RAW_CACHE_KEY_SUFFIX}"


class HistoryCacheStore:
    """Key/value store holding one ``CacheEntry`` per entity window.

    Compressed entries live under the plain key, uncompressed ones under
    ``key + "-raw"``.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise CacheStoreError(f"Unable to open history cache at {self._db_path}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            raise CacheStoreError(f"History cache operation failed: {exc}") from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS history_cache (
                    key TEXT PRIMARY KEY,
                    payload BLOB NOT NULL,
                    compressed INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str, *, compressed: bool = False) -> Optional[CacheEntry]:
        with self._lock:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT payload, compressed FROM history_cache WHERE key = ?",
                    (storage_key(key, compressed),),
                ).fetchone()
        if row is None:
            return None
        payload = row["payload"]
        try:
            if row["compressed"]:
                return decompress_entry(payload)
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            return CacheEntry.model_validate_json(payload)
        except (zlib.error, UnicodeDecodeError, ValidationError) as exc:
            _LOGGER.warning(
                "Ignoring unreadable history cache entry",
                extra={"key": key, "compressed": compressed, "error": str(exc)},
            )
            return None

    def set(self, key: str, entry: CacheEntry, *, compressed: bool = False) -> None:
        payload: bytes | str = compress_entry(entry) if compressed else entry.model_dump_json()
        now_iso = datetime.now(timezone.utc).isoformat()
        with self._lock:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO history_cache (key, payload, compressed, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        payload = excluded.payload,
                        compressed = excluded.compressed,
                        updated_at = excluded.updated_at
                    """,
                    (storage_key(key, compressed), payload, int(compressed), now_iso),
                )
        _LOGGER.debug(
            "Stored history cache entry",
            extra={"key": key, "compressed": compressed, "points": len(entry.data)},
        )

    def clear(self) -> None:
        with self._lock:
            with self._connection() as conn:
                conn.execute("DELETE FROM history_cache")
        _LOGGER.info("Cleared history cache")

    async def async_get(self, key: str, *, compressed: bool = False) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self.get, key, compressed=compressed)

    async def async_set(self, key: str, entry: CacheEntry, *, compressed: bool = False) -> None:
        await asyncio.to_thread(self.set, key, entry, compressed=compressed)

    async def async_clear(self) -> None:
        await asyncio.to_thread(self.clear)


__all__ = [
    "CacheStoreError",
    "HistoryCacheStore",
    "compress_entry",
    "decompress_entry",
    "storage_key",
]
