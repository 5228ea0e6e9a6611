"""
Topic selection with repeat avoidance and exhaustion fallback.

The engine holds no state of its own: callers pass in the candidates and
the recently-shown set, and choose() reports every pick to the history
tracker before returning it.
"""

from __future__ import annotations

import random
from typing import Iterable, Protocol, Sequence

from src.topics.models import RecordingTopic


class ShownRecorder(Protocol):
    async def record_shown(self, topic_id: str): ...


class SelectionEngine:
    """Uniform random selection over topics not shown recently."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def available(
        self,
        candidates: Sequence[RecordingTopic],
        recently_shown: Iterable[str],
        count: int = 1,
    ) -> list[RecordingTopic]:
        """
        Candidates eligible for selection.

        Falls back to every candidate when fewer than `count` topics are
        outside the repeat window, so the window never blocks selection.
        """
        excluded = set(recently_shown)
        fresh = [topic for topic in candidates if topic.id not in excluded]
        if len(fresh) < count:
            return list(candidates)
        return fresh

    def select_next(
        self,
        candidates: Sequence[RecordingTopic],
        recently_shown: Iterable[str],
        count: int = 1,
    ) -> list[RecordingTopic]:
        """
        Pick up to `count` distinct topics.

        Args:
            candidates: Topics to choose from
            recently_shown: Topic ids inside the repeat window
            count: Number of topics wanted

        Returns:
            min(count, len(candidates)) topics drawn uniformly without replacement
        """
        if count <= 0 or not candidates:
            return []
        pool = self.available(candidates, recently_shown, count)
        return self.rng.sample(pool, min(count, len(pool)))

    async def choose(
        self,
        candidates: Sequence[RecordingTopic],
        recently_shown: Iterable[str],
        count: int,
        tracker: ShownRecorder,
    ) -> list[RecordingTopic]:
        """Select topics and record each one as shown before returning."""
        selected = self.select_next(candidates, recently_shown, count)
        for topic in selected:
            await tracker.record_shown(topic.id)
        return selected
