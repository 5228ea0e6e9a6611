"""
Best-effort mirroring of local history writes to the remote catalog.

Local history is always written first; the matching remote insert or
update is queued here and delivered by a short-lived asyncio task with
bounded retries and exponential backoff. Jobs are delivered in FIFO
order, so an insert always reaches the remote before a later
"mark used" update of the same entry.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from loguru import logger

from src.topics.catalog_client import RemoteCatalogSource
from src.topics.errors import TransientRemoteError
from src.topics.models import utc_now

INSERT = "insert"
UPDATE = "update"


@dataclass
class MirrorJob:
    """One pending remote write."""

    action: str  # "insert" or "update"
    user_id: str
    topic_id: str
    payload: dict[str, Any]
    attempts: int = 0


@dataclass
class MirrorStatus:
    """Counters for observability of mirror writes."""

    delivered: int = 0
    retried: int = 0
    failed: int = 0
    last_error: str | None = None
    last_failure_at: datetime | None = None
    recent_failures: list[MirrorJob] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.failed == 0


class MirrorQueue:
    """
    FIFO queue of remote history writes.

    Usage:
        queue = MirrorQueue(remote)
        queue.enqueue(MirrorJob(INSERT, user_id, topic_id, entry.to_dict()))
        await queue.flush()
    """

    MAX_RECENT_FAILURES = 20

    def __init__(
        self,
        remote: RemoteCatalogSource,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the queue.

        Args:
            remote: Remote catalog receiving the writes
            max_attempts: Delivery attempts per job before it is dropped
            backoff_seconds: Attempt n waits backoff_seconds * 2**(n-1)
            sleep: Awaitable sleep (swapped out in tests)
        """
        self.remote = remote
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._queue: asyncio.Queue[MirrorJob] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._status = MirrorStatus()

    @property
    def status(self) -> MirrorStatus:
        return self._status

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, job: MirrorJob) -> None:
        """Queue a job and make sure a delivery task is running."""
        self._queue.put_nowait(job)
        logger.debug("Queued mirror {} for topic {}", job.action, job.topic_id)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._drain(), name="topics-mirror"
            )

    async def flush(self) -> None:
        """Wait until every queued job was delivered or dropped."""
        await self._queue.join()

    async def _drain(self) -> None:
        while not self._queue.empty():
            job = self._queue.get_nowait()
            try:
                await self._deliver(job)
            finally:
                self._queue.task_done()

    async def _deliver(self, job: MirrorJob) -> None:
        while job.attempts < self.max_attempts:
            job.attempts += 1
            try:
                await self._send(job)
            except TransientRemoteError as exc:
                self._status.last_error = str(exc)
                if job.attempts >= self.max_attempts:
                    break
                self._status.retried += 1
                delay = self.backoff_seconds * (2 ** (job.attempts - 1))
                logger.debug(
                    "Mirror {} for topic {} failed (attempt {}/{}), retrying in {}s",
                    job.action,
                    job.topic_id,
                    job.attempts,
                    self.max_attempts,
                    delay,
                )
                await self._sleep(delay)
            except Exception as exc:
                # Unexpected errors are not retried
                logger.exception("Mirror {} for topic {} crashed", job.action, job.topic_id)
                self._status.last_error = str(exc)
                break
            else:
                self._status.delivered += 1
                return

        self._record_failure(job)

    async def _send(self, job: MirrorJob) -> None:
        if job.action == INSERT:
            await self.remote.insert_history(job.user_id, job.payload)
        elif job.action == UPDATE:
            await self.remote.update_history(job.user_id, job.topic_id, job.payload)
        else:
            raise ValueError(f"Unknown mirror action: {job.action}")

    def _record_failure(self, job: MirrorJob) -> None:
        self._status.failed += 1
        self._status.last_failure_at = utc_now()
        self._status.recent_failures.append(job)
        del self._status.recent_failures[: -self.MAX_RECENT_FAILURES]
        logger.warning(
            "Giving up mirroring {} for topic {} after {} attempts: {}",
            job.action,
            job.topic_id,
            job.attempts,
            self._status.last_error,
        )
