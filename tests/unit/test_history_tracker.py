"""
Unit tests for the history tracker.
"""

import asyncio

import pytest

from src.topics.models import TopicHistoryEntry


@pytest.fixture
def tracker(service):
    return service.tracker


class TestRecentlyShown:
    """Tests for the 30 day repeat window."""

    @pytest.mark.asyncio
    async def test_empty_history(self, tracker):
        assert await tracker.recently_shown() == set()

    @pytest.mark.asyncio
    async def test_window_boundary(self, tracker, clock):
        await tracker.record_shown("old")
        clock.advance(days=29, hours=23)
        await tracker.record_shown("recent")

        assert await tracker.recently_shown() == {"old", "recent"}

        clock.advance(hours=2)
        assert await tracker.recently_shown() == {"recent"}

    @pytest.mark.asyncio
    async def test_custom_window(self, tracker, clock):
        await tracker.record_shown("t1")
        clock.advance(days=8)

        assert await tracker.recently_shown(window_days=7) == set()
        assert await tracker.recently_shown(window_days=10) == {"t1"}


class TestRecordShown:
    """Tests for recording shown events."""

    @pytest.mark.asyncio
    async def test_entry_prepended_and_mirrored(self, tracker, service, catalog, clock):
        first = await tracker.record_shown("t1")
        clock.advance(minutes=1)
        second = await tracker.record_shown("t2")
        await service.flush()

        history = await tracker.history()
        assert [e.topic_id for e in history] == ["t2", "t1"]
        assert first.shown_at == history[1].shown_at
        assert second.was_used is False
        assert [row["topic_id"] for row in catalog.history] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_recorded_while_offline(self, tracker, service, catalog):
        catalog.offline = True

        entry = await tracker.record_shown("t1")
        await service.flush()

        assert entry is not None
        assert [e.topic_id for e in await tracker.history()] == ["t1"]
        assert catalog.history == []
        assert service.mirror.status.failed == 1

    @pytest.mark.asyncio
    async def test_no_user_no_history(self, tracker, service, catalog):
        service.set_user(None)

        assert await tracker.record_shown("t1") is None
        assert await tracker.history() == []
        assert catalog.calls == []


class TestMarkUsed:
    """Tests for the was_used transition."""

    @pytest.mark.asyncio
    async def test_marks_most_recent_unmarked_entry(self, tracker, clock):
        await tracker.record_shown("t1")
        clock.advance(days=1)
        await tracker.record_shown("t1")

        assert await tracker.mark_used("t1", "m1") is True

        newest, oldest = await tracker.history()
        assert (newest.was_used, newest.memory_id) == (True, "m1")
        assert (oldest.was_used, oldest.memory_id) == (False, None)

    @pytest.mark.asyncio
    async def test_second_call_is_noop(self, tracker, service, catalog):
        await tracker.record_shown("t1")

        assert await tracker.mark_used("t1", "m1") is True
        assert await tracker.mark_used("t1", "m1") is False
        await service.flush()

        history = await tracker.history()
        assert len(history) == 1
        assert history[0].memory_id == "m1"
        assert catalog.calls.count("update_history") == 1

    @pytest.mark.asyncio
    async def test_unknown_topic_creates_nothing(self, tracker, service, catalog):
        await tracker.record_shown("t1")

        assert await tracker.mark_used("t2", "m1") is False
        await service.flush()

        assert [e.topic_id for e in await tracker.history()] == ["t1"]
        assert "update_history" not in catalog.calls

    @pytest.mark.asyncio
    async def test_remote_row_updated(self, tracker, service, catalog):
        await tracker.record_shown("t1")
        await tracker.mark_used("t1", "m1")
        await service.flush()

        assert catalog.history[0]["was_used"] is True
        assert catalog.history[0]["memory_id"] == "m1"

    @pytest.mark.asyncio
    async def test_skips_entries_with_memory_id(self, tracker, service, clock):
        claimed = TopicHistoryEntry(topic_id="t1", shown_at=clock(), was_used=False, memory_id="m0")
        await service.sync.save_history([claimed])

        assert await tracker.mark_used("t1", "m1") is False


class TestUnreadableHistory:
    """A failed local read must never be mistaken for an empty history."""

    @pytest.fixture
    def local_store(self, flaky_store):
        return flaky_store

    @pytest.mark.asyncio
    async def test_record_keeps_existing_entries(self, tracker, service, catalog, local_store, clock):
        for topic_id in ("a", "b", "c"):
            await tracker.record_shown(topic_id)
            clock.advance(minutes=1)
        local_store.failing_reads = 1

        entry = await tracker.record_shown("d")
        await service.flush()

        assert entry is not None
        assert [e.topic_id for e in await tracker.history()] == ["c", "b", "a"]
        assert [row["topic_id"] for row in catalog.history] == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_later_records_append_normally(self, tracker, local_store, clock):
        await tracker.record_shown("a")
        local_store.failing_reads = 1
        await tracker.record_shown("b")
        clock.advance(minutes=1)

        await tracker.record_shown("c")

        assert [e.topic_id for e in await tracker.history()] == ["c", "a"]

    @pytest.mark.asyncio
    async def test_mark_used_updates_remote_only(self, tracker, service, catalog, local_store):
        await tracker.record_shown("t1")
        local_store.failing_reads = 1

        assert await tracker.mark_used("t1", "m1") is False
        await service.flush()

        assert (await tracker.history())[0].is_unmarked
        assert catalog.history[0]["memory_id"] == "m1"


class TestConcurrentHistoryWrites:
    """Overlapping appends and claims must all land in local history."""

    @pytest.fixture
    def local_store(self, yielding_store):
        return yielding_store

    @pytest.mark.asyncio
    async def test_concurrent_records_all_kept(self, tracker):
        await asyncio.gather(
            tracker.record_shown("x"),
            tracker.record_shown("y"),
            tracker.record_shown("z"),
        )

        history = await tracker.history()
        assert sorted(e.topic_id for e in history) == ["x", "y", "z"]

    @pytest.mark.asyncio
    async def test_mark_used_overlapping_record(self, tracker):
        await tracker.record_shown("t1")

        claimed, _ = await asyncio.gather(
            tracker.mark_used("t1", "m1"),
            tracker.record_shown("t2"),
        )

        history = {e.topic_id: e for e in await tracker.history()}
        assert claimed is True
        assert set(history) == {"t1", "t2"}
        assert history["t1"].memory_id == "m1"
