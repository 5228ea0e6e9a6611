"""Topic recommendation cache with offline fallback and history sync."""

from src.topics.cache_store import CacheStore
from src.topics.catalog_client import RemoteCatalogSource, SupabaseCatalogClient
from src.topics.errors import LocalStoreError, TopicsError, TransientRemoteError
from src.topics.history_tracker import HistoryTracker
from src.topics.local_store import LocalStore, MemoryLocalStore, SQLiteLocalStore
from src.topics.mirror_queue import MirrorJob, MirrorQueue, MirrorStatus
from src.topics.models import (
    CacheFamily,
    CacheSnapshot,
    Freshness,
    RecordingTopic,
    TopicCategory,
    TopicHistoryEntry,
)
from src.topics.selection import SelectionEngine
from src.topics.service import TopicsService
from src.topics.sync_coordinator import SyncCoordinator

__all__ = [
    "TopicsService",
    # Components
    "CacheStore",
    "HistoryTracker",
    "MirrorQueue",
    "SelectionEngine",
    "SyncCoordinator",
    # Collaborators
    "LocalStore",
    "MemoryLocalStore",
    "RemoteCatalogSource",
    "SQLiteLocalStore",
    "SupabaseCatalogClient",
    # Models
    "CacheFamily",
    "CacheSnapshot",
    "Freshness",
    "MirrorJob",
    "MirrorStatus",
    "RecordingTopic",
    "TopicCategory",
    "TopicHistoryEntry",
    # Errors
    "LocalStoreError",
    "TopicsError",
    "TransientRemoteError",
]
