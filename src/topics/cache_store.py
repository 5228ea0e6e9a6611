"""
TTL-aware cache over the local key-value store.

Each family (categories, topics, history) is stored as ONE JSON envelope
{"last_sync": ..., "records": [...]} under one key, so records and their
timestamp are always written together and families never share a
timestamp.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from loguru import logger

from src.topics.config import CACHE_TTL, CATEGORIES_KEY, TOPICS_KEY, history_key
from src.topics.errors import LocalStoreError
from src.topics.local_store import LocalStore
from src.topics.models import (
    RECORD_TYPES,
    CacheFamily,
    CacheSnapshot,
    Freshness,
    format_timestamp,
    parse_timestamp,
    utc_now,
)


class CacheStore:
    """
    Snapshot persistence for the three record families.

    Local store failures only escape from strict reads: plain reads degrade
    to an EMPTY snapshot and writes report False.
    """

    def __init__(
        self,
        store: LocalStore,
        ttl: timedelta = CACHE_TTL,
        clock: Callable[[], datetime] = utc_now,
        user_id: str | None = None,
    ):
        """
        Initialize the cache store.

        Args:
            store: Durable key-value store
            ttl: Freshness window
            clock: Returns the current aware UTC time
            user_id: Scopes the history family; history is not cached without it
        """
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self.user_id = user_id

    def key_for(self, family: CacheFamily) -> str | None:
        """Storage key for a family, or None for history without a user."""
        if family is CacheFamily.CATEGORIES:
            return CATEGORIES_KEY
        if family is CacheFamily.TOPICS:
            return TOPICS_KEY
        if self.user_id is None:
            return None
        return history_key(self.user_id)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, family: CacheFamily, strict: bool = False) -> CacheSnapshot:
        """
        Return the last persisted snapshot of a family.

        Args:
            family: Record family to read
            strict: Raise instead of reporting EMPTY when the store fails.
                Callers that rewrite a family from what they read need this,
                since an unreadable family is not an empty one.

        Returns:
            CacheSnapshot with freshness FRESH, STALE or EMPTY

        Raises:
            LocalStoreError: The store could not be read (strict only)
        """
        key = self.key_for(family)
        if key is None:
            return CacheSnapshot(family=family)

        try:
            raw = await self.store.get(key)
        except Exception as exc:
            logger.error("Local store read failed for {}: {}", family.value, exc)
            if strict:
                raise LocalStoreError(f"Cannot read {family.value}: {exc}") from exc
            return CacheSnapshot(family=family)

        if raw is None:
            logger.debug("Cache miss: {}", family.value)
            return CacheSnapshot(family=family)

        try:
            envelope = json.loads(raw)
            last_sync = parse_timestamp(envelope["last_sync"]) if envelope.get("last_sync") else None
            record_type = RECORD_TYPES[family]
            records = [record_type.from_dict(item) for item in envelope.get("records", [])]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("Discarding corrupt cache envelope for {}: {}", family.value, exc)
            return CacheSnapshot(family=family)

        freshness = self._freshness_of(last_sync)
        logger.debug(
            "Cache hit: {} ({} records, {})", family.value, len(records), freshness.value
        )
        return CacheSnapshot(
            family=family, records=records, freshness=freshness, last_sync=last_sync
        )

    async def freshness(self, family: CacheFamily) -> Freshness:
        return (await self.get(family)).freshness

    def _freshness_of(self, last_sync: datetime | None) -> Freshness:
        # A snapshot without a sync stamp was only ever written locally
        if last_sync is None:
            return Freshness.STALE
        if self.clock() - last_sync < self.ttl:
            return Freshness.FRESH
        return Freshness.STALE

    # =========================================================================
    # Writes
    # =========================================================================

    async def put(self, family: CacheFamily, records: Iterable[Any]) -> bool:
        """
        Overwrite a family and stamp last_sync = now.

        Returns:
            True if the snapshot was persisted
        """
        return await self._write(family, list(records), self.clock())

    async def put_records(
        self,
        family: CacheFamily,
        records: Iterable[Any],
        base: CacheSnapshot | None = None,
    ) -> bool:
        """
        Overwrite a family's records but keep its existing last_sync.

        Used for local history edits, which are not remote syncs.

        Args:
            family: Record family to write
            records: Replacement records
            base: Snapshot the records were derived from (read if omitted)

        Returns:
            True if persisted; False (nothing written) if the current
            snapshot could not be read
        """
        if base is None:
            try:
                base = await self.get(family, strict=True)
            except LocalStoreError:
                logger.warning("Not rewriting {}: current snapshot unreadable", family.value)
                return False
        return await self._write(family, list(records), base.last_sync)

    async def _write(
        self, family: CacheFamily, records: list[Any], last_sync: datetime | None
    ) -> bool:
        key = self.key_for(family)
        if key is None:
            logger.debug("No user signed in - not caching {}", family.value)
            return False

        envelope = {
            "last_sync": format_timestamp(last_sync) if last_sync else None,
            "records": [record.to_dict() for record in records],
        }
        try:
            await self.store.set(key, json.dumps(envelope))
        except Exception as exc:
            logger.error("Local store write failed for {}: {}", family.value, exc)
            return False
        return True

    async def invalidate(self, families: Iterable[CacheFamily]) -> None:
        """Remove stored values so the next get() reports EMPTY."""
        keys = [key for key in (self.key_for(f) for f in families) if key is not None]
        if not keys:
            return
        try:
            await self.store.remove(keys)
        except Exception as exc:
            logger.error("Local store remove failed for {}: {}", keys, exc)
            return
        logger.debug("Invalidated cache keys: {}", keys)
