"""
Unit tests for the selection engine.

Tests repeat avoidance, the exhaustion fallback and draw sizes WITHOUT
touching any store.
"""

import random
from collections import Counter

import pytest

from src.topics.models import RecordingTopic
from src.topics.selection import SelectionEngine


def _topics(*ids):
    return [RecordingTopic(id=topic_id, prompt=f"Prompt {topic_id}") for topic_id in ids]


@pytest.fixture
def engine():
    return SelectionEngine(random.Random(1234))


class TestSelectNext:
    """Tests for SelectionEngine.select_next."""

    def test_single_available_is_deterministic(self, engine):
        candidates = _topics("A", "B", "C")
        for _ in range(20):
            assert [t.id for t in engine.select_next(candidates, {"A", "B"})] == ["C"]

    def test_exhaustion_falls_back_to_all(self, engine):
        candidates = _topics("A", "B")
        selected = engine.select_next(candidates, {"A", "B"})

        assert len(selected) == 1
        assert selected[0].id in {"A", "B"}

    def test_partial_exhaustion_for_many(self, engine):
        candidates = _topics("A", "B", "C")
        # Only C is fresh but two are wanted: repeats allowed
        selected = engine.select_next(candidates, {"A", "B"}, count=2)

        assert len(selected) == 2
        assert len({t.id for t in selected}) == 2

    def test_excludes_recent_when_enough_remain(self, engine):
        candidates = _topics("A", "B", "C", "D", "E")
        for _ in range(20):
            selected = engine.select_next(candidates, {"A", "B"}, count=3)
            assert {t.id for t in selected} == {"C", "D", "E"}

    @pytest.mark.parametrize("count,expected", [(1, 1), (2, 2), (3, 3), (10, 3)])
    def test_returns_min_of_count_and_candidates(self, engine, count, expected):
        selected = engine.select_next(_topics("A", "B", "C"), set(), count=count)

        assert len(selected) == expected
        assert len({t.id for t in selected}) == expected

    def test_empty_candidates(self, engine):
        assert engine.select_next([], {"A"}, count=3) == []

    def test_non_positive_count(self, engine):
        assert engine.select_next(_topics("A"), set(), count=0) == []

    def test_ignores_unknown_recent_ids(self, engine):
        selected = engine.select_next(_topics("A"), {"Z"})
        assert [t.id for t in selected] == ["A"]

    def test_draw_is_roughly_uniform(self):
        engine = SelectionEngine(random.Random(7))
        candidates = _topics("A", "B", "C", "D")

        counts = Counter(engine.select_next(candidates, set())[0].id for _ in range(4000))

        assert set(counts) == {"A", "B", "C", "D"}
        for hits in counts.values():
            assert 850 < hits < 1150


class RecordingTracker:
    def __init__(self):
        self.recorded = []

    async def record_shown(self, topic_id):
        self.recorded.append(topic_id)


class TestChoose:
    """Tests for SelectionEngine.choose."""

    @pytest.mark.asyncio
    async def test_every_pick_is_recorded(self, engine):
        tracker = RecordingTracker()
        selected = await engine.choose(_topics("A", "B", "C"), set(), 2, tracker)

        assert tracker.recorded == [t.id for t in selected]

    @pytest.mark.asyncio
    async def test_nothing_recorded_without_candidates(self, engine):
        tracker = RecordingTracker()
        assert await engine.choose([], set(), 1, tracker) == []
        assert tracker.recorded == []
