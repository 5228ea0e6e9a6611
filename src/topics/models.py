"""
Data classes for topic categories, recording topics and topic history.

Records arrive from PostgREST as plain dicts and are persisted locally as
JSON, so every class round-trips through from_dict/to_dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.topics.config import DEFAULT_DIFFICULTY, DIFFICULTY_LEVELS

# =============================================================================
# Timestamps
# =============================================================================


def parse_timestamp(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. A trailing "Z" is accepted.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as ISO-8601 in UTC."""
    return parse_timestamp(value).isoformat()


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


# =============================================================================
# Catalog Records
# =============================================================================


@dataclass(frozen=True)
class TopicCategory:
    """A category of recording topics (Childhood, Career, ...)."""

    id: str
    name: str
    display_name: str
    description: str | None = None
    icon: str | None = None
    sort_order: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopicCategory:
        """Parse a category row."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            display_name=data.get("display_name") or data.get("name", ""),
            description=data.get("description"),
            icon=data.get("icon"),
            sort_order=int(data.get("sort_order") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "sort_order": self.sort_order,
        }


@dataclass(frozen=True)
class RecordingTopic:
    """
    A prompt the user can record a memory about.

    `category` is a denormalized copy joined at fetch time; `category_id`
    is the relationship of record.
    """

    id: str
    prompt: str
    category_id: str | None = None
    difficulty_level: str = DEFAULT_DIFFICULTY
    tags: frozenset[str] = field(default_factory=frozenset)
    category: TopicCategory | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordingTopic:
        """
        Parse a topic row, unwrapping an embedded category.

        PostgREST returns embedded relations either as an object or as a
        one-element list depending on the foreign key shape.
        """
        raw_category = data.get("category")
        if isinstance(raw_category, list):
            raw_category = raw_category[0] if raw_category else None
        # The embedded copy is informational; a broken one is dropped, not the topic
        if not isinstance(raw_category, dict) or raw_category.get("id") is None:
            raw_category = None

        difficulty = data.get("difficulty_level") or DEFAULT_DIFFICULTY
        if difficulty not in DIFFICULTY_LEVELS:
            difficulty = DEFAULT_DIFFICULTY

        category_id = data.get("category_id")
        return cls(
            id=str(data["id"]),
            prompt=data.get("prompt", ""),
            category_id=str(category_id) if category_id is not None else None,
            difficulty_level=difficulty,
            tags=frozenset(data.get("tags") or ()),
            category=TopicCategory.from_dict(raw_category) if raw_category else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "prompt": self.prompt,
            "difficulty_level": self.difficulty_level,
            "tags": sorted(self.tags),
            "category": self.category.to_dict() if self.category else None,
        }


# =============================================================================
# History
# =============================================================================


@dataclass
class TopicHistoryEntry:
    """
    One "this topic was offered to the user" event.

    Mutable only through mark_used: was_used goes False -> True once,
    together with memory_id.
    """

    topic_id: str
    shown_at: datetime
    was_used: bool = False
    memory_id: str | None = None

    @property
    def is_unmarked(self) -> bool:
        """True while the entry can still be claimed by a recording."""
        return not self.was_used and not self.memory_id

    def mark_used(self, memory_id: str) -> None:
        self.was_used = True
        self.memory_id = memory_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopicHistoryEntry:
        memory_id = data.get("memory_id")
        return cls(
            topic_id=str(data["topic_id"]),
            shown_at=parse_timestamp(data["shown_at"]),
            was_used=bool(data.get("was_used", False)),
            memory_id=str(memory_id) if memory_id else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "shown_at": format_timestamp(self.shown_at),
            "was_used": self.was_used,
            "memory_id": self.memory_id,
        }


# =============================================================================
# Cache Envelope
# =============================================================================


class CacheFamily(str, Enum):
    """Record families persisted by the cache store."""

    CATEGORIES = "categories"
    TOPICS = "topics"
    HISTORY = "history"


class Freshness(str, Enum):
    """Freshness of a cached family relative to the TTL."""

    FRESH = "fresh"
    STALE = "stale"
    EMPTY = "empty"


@dataclass
class CacheSnapshot:
    """Records of one family plus the time they were last synced."""

    family: CacheFamily
    records: list[Any] = field(default_factory=list)
    freshness: Freshness = Freshness.EMPTY
    last_sync: datetime | None = None

    @property
    def is_fresh(self) -> bool:
        return self.freshness is Freshness.FRESH

    @property
    def is_empty(self) -> bool:
        return self.freshness is Freshness.EMPTY


RECORD_TYPES: dict[CacheFamily, type] = {
    CacheFamily.CATEGORIES: TopicCategory,
    CacheFamily.TOPICS: RecordingTopic,
    CacheFamily.HISTORY: TopicHistoryEntry,
}
