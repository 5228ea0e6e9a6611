"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
an in-memory remote catalog, a controllable clock and a wired service.
"""
import asyncio
import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.topics.errors import LocalStoreError, TransientRemoteError  # noqa: E402
from src.topics.local_store import MemoryLocalStore  # noqa: E402
from src.topics.service import TopicsService  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCatalog:
    """In-memory RemoteCatalogSource with switchable failures."""

    def __init__(self, categories=None, topics=None, history=None):
        self.categories = list(categories or [])
        self.topics = list(topics or [])
        self.history = list(history or [])
        self.offline = False
        self.fail_next = 0
        self.calls: list[str] = []
        self.closed = False

    def _check(self, call: str) -> None:
        self.calls.append(call)
        if self.offline:
            raise TransientRemoteError(f"{call}: network down")
        if self.fail_next > 0:
            self.fail_next -= 1
            raise TransientRemoteError(f"{call}: flaky", status_code=503)

    async def fetch_categories(self):
        self._check("fetch_categories")
        return sorted(self.categories, key=lambda c: c["sort_order"])

    async def fetch_topics(self):
        self._check("fetch_topics")
        return list(self.topics)

    async def fetch_history(self, user_id, limit):
        self._check("fetch_history")
        rows = [row for row in self.history if row["user_id"] == user_id]
        rows.sort(key=lambda row: row["shown_at"], reverse=True)
        return rows[:limit]

    async def insert_history(self, user_id, entry):
        self._check("insert_history")
        self.history.append({"user_id": user_id, **entry})

    async def update_history(self, user_id, topic_id, patch):
        self._check("update_history")
        for row in self.history:
            if row["user_id"] == user_id and row["topic_id"] == topic_id and row.get("memory_id") is None:
                row.update(patch)

    async def close(self):
        self.closed = True


class FlakyStore(MemoryLocalStore):
    """
    In-memory store with injectable failures.

    Set failing_reads / failing_writes to fail that many upcoming calls.
    With yielding=True every call suspends once, as the SQLite store does
    when it hops to a worker thread.
    """

    def __init__(self, yielding: bool = False):
        super().__init__()
        self.yielding = yielding
        self.failing_reads = 0
        self.failing_writes = 0

    async def _pause(self) -> None:
        if self.yielding:
            await asyncio.sleep(0)

    async def get(self, key):
        await self._pause()
        if self.failing_reads > 0:
            self.failing_reads -= 1
            raise LocalStoreError("disk busy")
        return await super().get(key)

    async def set(self, key, value):
        await self._pause()
        if self.failing_writes > 0:
            self.failing_writes -= 1
            raise LocalStoreError("disk full")
        await super().set(key, value)


async def no_sleep(_seconds):
    return None


# =============================================================================
# Sample Data
# =============================================================================

SAMPLE_CATEGORIES = [
    {
        "id": "cat-family",
        "name": "family",
        "display_name": "Family",
        "description": "Parents, siblings, relatives",
        "icon": "👪",
        "sort_order": 2,
    },
    {
        "id": "cat-childhood",
        "name": "childhood",
        "display_name": "Childhood",
        "description": "Early life memories and family",
        "icon": "👶",
        "sort_order": 1,
    },
]


def make_topic(topic_id: str, category_id: str = "cat-childhood", prompt: str | None = None):
    return {
        "id": topic_id,
        "category_id": category_id,
        "prompt": prompt or f"Tell me about {topic_id}",
        "difficulty_level": "easy",
        "tags": ["childhood"],
        "is_active": True,
        "category": [next(c for c in SAMPLE_CATEGORIES if c["id"] == category_id)],
    }


SAMPLE_TOPICS = [
    make_topic("topic-a", prompt="What is your earliest childhood memory?"),
    make_topic("topic-b", prompt="Tell me about your favorite childhood toy or game."),
    make_topic("topic-c", category_id="cat-family", prompt="How did your parents meet?"),
]

USER_ID = "user-1"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    """Clock frozen at a known instant."""
    return FakeClock(datetime(2025, 12, 2, 9, 0, tzinfo=UTC))


@pytest.fixture
def catalog():
    """Remote catalog populated with sample categories and topics."""
    return FakeCatalog(categories=SAMPLE_CATEGORIES, topics=SAMPLE_TOPICS)


@pytest.fixture
def local_store():
    return MemoryLocalStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def yielding_store():
    return FlakyStore(yielding=True)


@pytest_asyncio.fixture
async def service(local_store, catalog, clock):
    """Service signed in as USER_ID with deterministic randomness."""
    service = TopicsService(
        local_store,
        catalog,
        user_id=USER_ID,
        clock=clock,
        rng=random.Random(42),
        sleep=no_sleep,
    )
    yield service
    await service.flush()
