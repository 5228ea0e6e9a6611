"""
Topics service: the application-facing API of the topic cache.

Wires CacheStore, SyncCoordinator, HistoryTracker and SelectionEngine
around an injected local store and remote catalog. No public method
raises; each returns a best-effort result and logs what went wrong.

Usage:
    async with TopicsService.from_settings() as service:
        topic = await service.get_next_topic()
        ...
        await service.mark_topic_as_used(topic.id, memory_id)
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from loguru import logger

from config import Settings, get_settings
from src.topics.cache_store import CacheStore
from src.topics.catalog_client import RemoteCatalogSource, SupabaseCatalogClient
from src.topics.config import CACHE_TTL, HISTORY_SYNC_LIMIT, TOPIC_REPEAT_WINDOW_DAYS
from src.topics.history_tracker import HistoryTracker
from src.topics.local_store import LocalStore, SQLiteLocalStore
from src.topics.mirror_queue import MirrorQueue
from src.topics.models import (
    CacheFamily,
    RecordingTopic,
    TopicCategory,
    TopicHistoryEntry,
    utc_now,
)
from src.topics.selection import SelectionEngine
from src.topics.sync_coordinator import SyncCoordinator


class TopicsService:
    """Serves next-topic suggestions backed by a cache and a remote catalog."""

    def __init__(
        self,
        local_store: LocalStore,
        remote: RemoteCatalogSource,
        user_id: str | None = None,
        *,
        ttl: timedelta = CACHE_TTL,
        window_days: int = TOPIC_REPEAT_WINDOW_DAYS,
        history_limit: int = HISTORY_SYNC_LIMIT,
        mirror_max_attempts: int = 3,
        mirror_backoff_seconds: float = 0.5,
        serialize_selection: bool = False,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the service.

        Args:
            local_store: Durable key-value store
            remote: Remote catalog source
            user_id: Signed-in user (history is disabled when None)
            ttl: Cache freshness window
            window_days: Repeat-avoidance window
            history_limit: Entries pulled on history resync
            mirror_max_attempts: Attempts per mirror write
            mirror_backoff_seconds: Base backoff between mirror attempts
            serialize_selection: Serialize next-topic selection per user
            clock: Returns the current aware UTC time
            rng: Random source for selection
            sleep: Awaitable sleep used by mirror retries
        """
        self.local_store = local_store
        self.remote = remote
        self.cache = CacheStore(local_store, ttl=ttl, clock=clock, user_id=user_id)
        self.mirror = MirrorQueue(
            remote,
            max_attempts=mirror_max_attempts,
            backoff_seconds=mirror_backoff_seconds,
            sleep=sleep,
        )
        self.sync = SyncCoordinator(self.cache, remote, self.mirror, history_limit=history_limit)
        self.tracker = HistoryTracker(self.sync, window_days=window_days, clock=clock)
        self.engine = SelectionEngine(rng)
        self.serialize_selection = serialize_selection
        self._selection_locks: dict[str | None, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TopicsService:
        """Build the production wiring: SQLite cache + Supabase catalog."""
        settings = settings or get_settings()
        if not settings.has_remote_configured():
            logger.warning("Supabase is not configured - serving cached topics only")

        remote = SupabaseCatalogClient(
            base_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            access_token=settings.supabase_access_token,
            timeout_seconds=settings.remote_timeout_seconds,
            retry_attempts=settings.remote_retry_attempts,
        )
        return cls(
            SQLiteLocalStore(settings.topics_cache_path),
            remote,
            user_id=settings.topics_user_id,
            ttl=timedelta(hours=settings.topics_cache_ttl_hours),
            window_days=settings.topics_repeat_window_days,
            history_limit=settings.topics_history_sync_limit,
            mirror_max_attempts=settings.mirror_max_attempts,
            mirror_backoff_seconds=settings.mirror_backoff_seconds,
            serialize_selection=settings.serialize_selection,
        )

    # ----------------------------------------
    # Identity
    # ----------------------------------------

    @property
    def user_id(self) -> str | None:
        return self.cache.user_id

    def set_user(self, user_id: str | None) -> None:
        """Switch the signed-in user; history reads and writes follow."""
        self.cache.user_id = user_id

    # ----------------------------------------
    # Categories & Topics
    # ----------------------------------------

    async def get_categories(self, force_refresh: bool = False) -> list[TopicCategory]:
        try:
            return await self.sync.ensure_fresh(CacheFamily.CATEGORIES, force=force_refresh)
        except Exception:
            logger.exception("Error fetching categories")
            return []

    async def get_all_topics(self, force_refresh: bool = False) -> list[RecordingTopic]:
        try:
            return await self.sync.ensure_fresh(CacheFamily.TOPICS, force=force_refresh)
        except Exception:
            logger.exception("Error fetching topics")
            return []

    async def get_topics_by_category(self, category_id: str) -> list[RecordingTopic]:
        topics = await self.get_all_topics()
        return [topic for topic in topics if topic.category_id == category_id]

    async def _candidates(self, category_id: str | None) -> list[RecordingTopic]:
        if category_id:
            return await self.get_topics_by_category(category_id)
        return await self.get_all_topics()

    # ----------------------------------------
    # Smart Selection
    # ----------------------------------------

    def _selection_guard(self) -> contextlib.AbstractAsyncContextManager:
        if not self.serialize_selection:
            return contextlib.nullcontext()
        return self._selection_locks.setdefault(self.user_id, asyncio.Lock())

    async def get_next_topic(self, category_id: str | None = None) -> RecordingTopic | None:
        """Pick one topic not shown in the repeat window (repeats once exhausted)."""
        topics = await self.get_next_topics(1, category_id)
        return topics[0] if topics else None

    async def get_next_topics(
        self, count: int, category_id: str | None = None
    ) -> list[RecordingTopic]:
        """
        Pick up to `count` distinct topics and record them as shown.

        Args:
            count: Number of topics wanted
            category_id: Restrict candidates to one category

        Returns:
            Selected topics (empty when there are no candidates)
        """
        try:
            async with self._selection_guard():
                candidates = await self._candidates(category_id)
                if not candidates:
                    logger.debug("No candidate topics (category={})", category_id)
                    return []
                recently_shown = await self.tracker.recently_shown()
                return await self.engine.choose(candidates, recently_shown, count, self.tracker)
        except Exception:
            logger.exception("Error getting next topics")
            return []

    # ----------------------------------------
    # History
    # ----------------------------------------

    async def mark_topic_as_used(self, topic_id: str, memory_id: str) -> bool:
        """Claim the latest unmarked showing of a topic for a recorded memory."""
        try:
            return await self.tracker.mark_used(topic_id, memory_id)
        except Exception:
            logger.exception("Error marking topic {} as used", topic_id)
            return False

    async def get_topic_history(self) -> list[TopicHistoryEntry]:
        try:
            return await self.tracker.history()
        except Exception:
            logger.exception("Error reading topic history")
            return []

    async def sync_history_from_remote(self) -> list[TopicHistoryEntry] | None:
        """Replace local history with the remote's latest entries."""
        try:
            return await self.sync.pull_history()
        except Exception:
            logger.exception("Error syncing history from remote")
            return None

    # ----------------------------------------
    # Maintenance
    # ----------------------------------------

    async def refresh_all_data(self) -> dict[str, int | None]:
        """
        Force-refresh categories and topics and resync history.

        Returns:
            Record counts per family (history is None if the pull failed)
        """
        categories, topics, history = await asyncio.gather(
            self.get_categories(force_refresh=True),
            self.get_all_topics(force_refresh=True),
            self.sync_history_from_remote(),
        )
        stats = {
            "categories": len(categories),
            "topics": len(topics),
            "history": len(history) if history is not None else None,
        }
        logger.info(
            "Refresh complete: categories={}, topics={}, history={}",
            stats["categories"],
            stats["topics"],
            stats["history"],
        )
        return stats

    async def clear_cache(self) -> None:
        """Drop cached categories and topics; per-user history is kept."""
        try:
            await self.cache.invalidate([CacheFamily.CATEGORIES, CacheFamily.TOPICS])
        except Exception:
            logger.exception("Error clearing cache")

    async def cache_status(self) -> dict[str, Any]:
        """Freshness per family plus mirror delivery counters."""
        status: dict[str, Any] = {}
        for family in CacheFamily:
            snapshot = await self.cache.get(family)
            status[family.value] = {
                "freshness": snapshot.freshness.value,
                "records": len(snapshot.records),
                "last_sync": snapshot.last_sync,
            }
        status["mirror"] = self.mirror.status
        status["mirror_pending"] = self.mirror.pending
        return status

    # ----------------------------------------
    # Lifecycle
    # ----------------------------------------

    async def flush(self) -> None:
        """Wait for pending mirror writes."""
        await self.sync.flush()

    async def close(self) -> None:
        """Flush mirror writes and release the remote and local stores."""
        try:
            await self.sync.close()
        except Exception:
            logger.exception("Error closing topics service")
        close_store = getattr(self.local_store, "close", None)
        if close_store is not None:
            close_store()

    async def __aenter__(self) -> TopicsService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
