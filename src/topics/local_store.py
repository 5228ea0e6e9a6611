"""
Durable key-value stores backing the topic cache.

Provides:
- LocalStore protocol (async get/set/remove by string key)
- SQLiteLocalStore for on-device persistence (~/.memoria/topics_cache.db)
- MemoryLocalStore for tests and ephemeral runs

Each set() is a single statement, so a value is either fully written or
not written at all.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Protocol

from loguru import logger

from src.topics.errors import LocalStoreError


class LocalStore(Protocol):
    """String key-value persistence with no transactions."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, keys: Iterable[str]) -> None: ...


# =============================================================================
# SQLite Store
# =============================================================================


class SQLiteLocalStore:
    """
    SQLite-backed key-value store.

    Blocking sqlite3 calls run in a worker thread via asyncio.to_thread;
    a lock keeps the shared connection single-writer.
    """

    DEFAULT_DB_PATH = Path.home() / ".memoria" / "topics_cache.db"

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the store.

        Args:
            db_path: Custom database path (defaults to ~/.memoria/topics_cache.db)
        """
        self.db_path = Path(db_path or self.DEFAULT_DB_PATH)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise LocalStoreError(f"Cannot open local store at {self.db_path}: {exc}") from exc

        logger.debug("SQLiteLocalStore initialized at {}", self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        return self._conn

    def _init_schema(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()

    # =========================================================================
    # Blocking operations
    # =========================================================================

    def _get(self, key: str) -> str | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, value),
            )
            self.conn.commit()

    def _remove(self, keys: list[str]) -> None:
        with self._lock:
            self.conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])
            self.conn.commit()

    # =========================================================================
    # Async API
    # =========================================================================

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Read failed for {key}: {exc}") from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set, key, value)
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Write failed for {key}: {exc}") from exc

    async def remove(self, keys: Iterable[str]) -> None:
        key_list = list(keys)
        if not key_list:
            return
        try:
            await asyncio.to_thread(self._remove, key_list)
        except sqlite3.Error as exc:
            raise LocalStoreError(f"Remove failed for {key_list}: {exc}") from exc

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None


# =============================================================================
# In-memory Store
# =============================================================================


class MemoryLocalStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.data.pop(key, None)

    def close(self) -> None:
        pass
