"""
Topic history tracking for repeat avoidance.

Records "shown" events, claims them when the user actually records a
memory, and computes which topics were shown inside the repeat window.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from src.topics.config import TOPIC_REPEAT_WINDOW_DAYS
from src.topics.errors import LocalStoreError
from src.topics.models import TopicHistoryEntry, utc_now
from src.topics.sync_coordinator import SyncCoordinator


class HistoryTracker:
    """
    Owner of the per-user history list.

    The only writer of the was_used / memory_id transition.
    """

    def __init__(
        self,
        sync: SyncCoordinator,
        window_days: int = TOPIC_REPEAT_WINDOW_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sync = sync
        self.window_days = window_days
        self.clock = clock

    async def history(self) -> list[TopicHistoryEntry]:
        """Local history, newest first (empty when no user is signed in)."""
        return await self.sync.local_history()

    async def recently_shown(self, window_days: int | None = None) -> set[str]:
        """
        Topic ids shown within the repeat-avoidance window.

        Args:
            window_days: Lookback in days (default: 30)

        Returns:
            Set of topic ids with shown_at > now - window_days
        """
        days = self.window_days if window_days is None else window_days
        cutoff = self.clock() - timedelta(days=days)
        history = await self.history()
        return {entry.topic_id for entry in history if entry.shown_at > cutoff}

    async def record_shown(self, topic_id: str) -> TopicHistoryEntry | None:
        """
        Record that a topic was offered to the user.

        Returns:
            The new entry, or None when there is no signed-in user
        """
        if self.sync.user_id is None:
            return None

        entry = TopicHistoryEntry(topic_id=topic_id, shown_at=self.clock())
        await self.sync.push_history_entry(entry)
        return entry

    async def mark_used(self, topic_id: str, memory_id: str) -> bool:
        """
        Claim the most recent unmarked entry for a topic.

        No entry is created when none matches; that would fabricate a
        "shown" event.

        Returns:
            True if an entry was updated, False for a no-op
        """
        if self.sync.user_id is None:
            return False

        def claim(history: list[TopicHistoryEntry]) -> bool:
            # History is newest first
            target = next(
                (e for e in history if e.topic_id == topic_id and e.is_unmarked),
                None,
            )
            if target is None:
                return False
            target.mark_used(memory_id)
            return True

        try:
            claimed = await self.sync.edit_history(claim)
        except LocalStoreError:
            # The remote update only touches unclaimed rows
            logger.warning("Local history unreadable - marking topic {} remotely only", topic_id)
            self.sync.push_history_update(topic_id, memory_id)
            return False

        if not claimed:
            logger.debug("No unmarked history entry for topic {} - nothing to mark", topic_id)
            return False

        self.sync.push_history_update(topic_id, memory_id)
        logger.info("Marked topic {} as used by memory {}", topic_id, memory_id)
        return True
