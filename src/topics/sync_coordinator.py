"""
Sync coordinator for the topic cache.

Decides when a cached family is refreshed from the remote catalog and
reconciles local history with remote history:

- ensure_fresh: serve fresh cache, refresh stale/empty cache, fall back to
  whatever is cached when the remote is down (stale-while-error)
- push_history_entry: local append first, remote mirror queued afterwards
- pull_history: full replace of local history with the remote's newest N

The remote is authoritative once reachable, so pull_history replaces
rather than merges.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from src.topics.cache_store import CacheStore
from src.topics.catalog_client import RemoteCatalogSource
from src.topics.config import HISTORY_SYNC_LIMIT
from src.topics.errors import LocalStoreError, TransientRemoteError
from src.topics.mirror_queue import INSERT, UPDATE, MirrorJob, MirrorQueue
from src.topics.models import (
    RECORD_TYPES,
    CacheFamily,
    TopicCategory,
    TopicHistoryEntry,
)


def _parse_rows(family: CacheFamily, rows: list[dict[str, Any]]) -> list[Any]:
    """Parse remote rows, skipping any that are malformed."""
    record_type = RECORD_TYPES[family]
    records = []
    for row in rows:
        try:
            records.append(record_type.from_dict(row))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed {} row {}: {}", family.value, row, exc)
    if family is CacheFamily.CATEGORIES:
        records.sort(key=lambda category: category.sort_order)
    elif family is CacheFamily.HISTORY:
        records.sort(key=lambda entry: entry.shown_at, reverse=True)
    return records


class SyncCoordinator:
    """Refreshes cached families and reconciles history with the remote."""

    def __init__(
        self,
        cache: CacheStore,
        remote: RemoteCatalogSource,
        mirror: MirrorQueue,
        history_limit: int = HISTORY_SYNC_LIMIT,
    ):
        self.cache = cache
        self.remote = remote
        self.mirror = mirror
        self.history_limit = history_limit
        # Guards every read-modify-write of local history
        self._history_lock = asyncio.Lock()

    @property
    def user_id(self) -> str | None:
        return self.cache.user_id

    # =========================================================================
    # Catalog refresh
    # =========================================================================

    def _fetcher(self, family: CacheFamily) -> Callable[[], Awaitable[list[dict[str, Any]]]]:
        if family is CacheFamily.CATEGORIES:
            return self.remote.fetch_categories
        if family is CacheFamily.TOPICS:
            return self.remote.fetch_topics

        async def fetch_history() -> list[dict[str, Any]]:
            return await self.remote.fetch_history(self.user_id, self.history_limit)

        return fetch_history

    async def ensure_fresh(self, family: CacheFamily, force: bool = False) -> list[Any]:
        """
        Return the records of a family, refreshing from the remote if stale.

        Args:
            family: Record family
            force: Refresh even if the cache is fresh

        Returns:
            Fresh remote records, or the local snapshot (possibly stale or
            empty) when the remote could not be reached. Never raises.
        """
        snapshot = await self.cache.get(family)
        if snapshot.is_fresh and not force:
            return snapshot.records

        if family is CacheFamily.HISTORY and self.user_id is None:
            return []

        logger.debug(
            "Refreshing {} from remote (cache {}, force={})",
            family.value,
            snapshot.freshness.value,
            force,
        )
        try:
            rows = await self._fetcher(family)()
        except TransientRemoteError as exc:
            logger.warning(
                "Remote fetch of {} failed, serving {} cache: {}",
                family.value,
                snapshot.freshness.value,
                exc,
            )
            return snapshot.records
        except Exception:
            logger.exception("Unexpected error refreshing {}", family.value)
            return snapshot.records

        records = _parse_rows(family, rows)
        await self.cache.put(family, records)
        logger.info("Refreshed {}: {} records", family.value, len(records))
        return records

    async def categories(self, force: bool = False) -> list[TopicCategory]:
        return await self.ensure_fresh(CacheFamily.CATEGORIES, force=force)

    async def topics(self, force: bool = False) -> list[Any]:
        return await self.ensure_fresh(CacheFamily.TOPICS, force=force)

    # =========================================================================
    # History push
    # =========================================================================

    async def local_history(self) -> list[TopicHistoryEntry]:
        """Current local history, newest first."""
        return (await self.cache.get(CacheFamily.HISTORY)).records

    async def edit_history(self, edit: Callable[[list[TopicHistoryEntry]], bool]) -> bool:
        """
        Apply an in-place edit to local history and persist it.

        The read, the edit and the write happen under the history lock so
        concurrent edits and appends never overwrite each other.

        Args:
            edit: Mutates the history list; returns True if it changed it

        Returns:
            The edit's result

        Raises:
            LocalStoreError: Local history could not be read; nothing written
        """
        async with self._history_lock:
            snapshot = await self.cache.get(CacheFamily.HISTORY, strict=True)
            changed = edit(snapshot.records)
            if changed and not await self.cache.put_records(
                CacheFamily.HISTORY, snapshot.records, base=snapshot
            ):
                logger.warning("Local history edit could not be saved")
            return changed

    async def push_history_entry(self, entry: TopicHistoryEntry) -> bool:
        """
        Append an entry to local history, then queue its remote mirror.

        Local history that cannot be read is left alone rather than replaced
        by the single new entry; the mirror is queued either way.

        Returns:
            True if the local append was persisted
        """
        if self.user_id is None:
            logger.debug("No user signed in - not recording topic {}", entry.topic_id)
            return False

        async with self._history_lock:
            try:
                snapshot = await self.cache.get(CacheFamily.HISTORY, strict=True)
            except LocalStoreError:
                saved = False
            else:
                saved = await self.cache.put_records(
                    CacheFamily.HISTORY, [entry, *snapshot.records], base=snapshot
                )
        if not saved:
            logger.warning("Topic {} shown but local history could not be saved", entry.topic_id)

        self.mirror.enqueue(MirrorJob(INSERT, self.user_id, entry.topic_id, entry.to_dict()))
        return saved

    async def save_history(self, history: list[TopicHistoryEntry]) -> bool:
        """Rewrite local history in place (keeps the last sync stamp)."""
        async with self._history_lock:
            return await self.cache.put_records(CacheFamily.HISTORY, history)

    def push_history_update(self, topic_id: str, memory_id: str) -> None:
        """Queue the remote "mark used" update for a topic's unclaimed rows."""
        if self.user_id is None:
            return
        patch = {"was_used": True, "memory_id": memory_id}
        self.mirror.enqueue(MirrorJob(UPDATE, self.user_id, topic_id, patch))

    # =========================================================================
    # History pull
    # =========================================================================

    async def pull_history(self, limit: int | None = None) -> list[TopicHistoryEntry] | None:
        """
        Replace local history with the remote's most recent entries.

        Local-only entries whose mirror never landed are superseded.

        Args:
            limit: Number of entries to pull (default: history_limit)

        Returns:
            The new local history, or None if nothing was replaced
        """
        if self.user_id is None:
            return None

        limit = self.history_limit if limit is None else limit
        try:
            rows = await self.remote.fetch_history(self.user_id, limit)
        except TransientRemoteError as exc:
            logger.warning("History pull failed, keeping local history: {}", exc)
            return None
        except Exception:
            logger.exception("Unexpected error pulling history")
            return None

        entries = _parse_rows(CacheFamily.HISTORY, rows)
        async with self._history_lock:
            saved = await self.cache.put(CacheFamily.HISTORY, entries)
        if not saved:
            logger.error("Pulled {} history entries but could not replace local history", len(entries))
            return None
        logger.info("Pulled {} history entries from remote", len(entries))
        return entries

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def flush(self) -> None:
        """Wait for queued mirror writes."""
        await self.mirror.flush()

    async def close(self) -> None:
        await self.flush()
        await self.remote.close()
