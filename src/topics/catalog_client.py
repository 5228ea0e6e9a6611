"""
Remote catalog client for topic categories, topics and user history.

Talks to Supabase's PostgREST endpoint (/rest/v1/<table>) over httpx.
Every failure surfaces as TransientRemoteError so callers can fall back
to the local cache uniformly.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx
from loguru import logger

from src.topics.config import CATEGORIES_TABLE, HISTORY_TABLE, TOPICS_TABLE
from src.topics.errors import TransientRemoteError


class RemoteCatalogSource(Protocol):
    """Canonical store for categories, topics and per-user history."""

    async def fetch_categories(self) -> list[dict[str, Any]]: ...

    async def fetch_topics(self) -> list[dict[str, Any]]: ...

    async def fetch_history(self, user_id: str, limit: int) -> list[dict[str, Any]]: ...

    async def insert_history(self, user_id: str, entry: dict[str, Any]) -> None: ...

    async def update_history(
        self, user_id: str, topic_id: str, patch: dict[str, Any]
    ) -> None: ...

    async def close(self) -> None: ...


class SupabaseCatalogClient:
    """HTTP client for the topics tables exposed through PostgREST."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 2,
        backoff_factor: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the catalog client.

        Args:
            base_url: Supabase project URL
            api_key: Project anon key (apikey header)
            access_token: User JWT for row-level security (defaults to api_key)
            timeout_seconds: Request timeout
            retry_attempts: Attempts per request on timeouts and 5xx errors
            backoff_factor: Base delay; attempt n waits backoff_factor * 2**n
            client: Pre-built httpx client (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.rest_url = f"{self.base_url}/rest/v1"
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_factor = backoff_factor
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # ========================================
    # Core request
    # ========================================

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """
        Issue a PostgREST request with retry on transient failures.

        Raises:
            TransientRemoteError: When the request cannot be completed
        """
        url = f"{self.rest_url}/{table}"
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        last_error: Exception | None = None
        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.request(
                    method, url, params=params, json=json, headers=headers
                )
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status < 500:
                    logger.error("Remote catalog rejected {} {}: {}", method, table, status)
                    raise TransientRemoteError(
                        f"{method} {table} failed with {status}", status_code=status
                    ) from exc
                last_error = exc
                logger.warning(
                    "Remote catalog server error {} on attempt {}/{}",
                    status,
                    attempt + 1,
                    self.retry_attempts,
                )

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_error = exc
                logger.warning(
                    "Remote catalog unreachable on attempt {}/{}: {}",
                    attempt + 1,
                    self.retry_attempts,
                    exc,
                )

            except ValueError as exc:
                raise TransientRemoteError(f"Invalid JSON from {table}: {exc}") from exc

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self.backoff_factor * (2 ** attempt))

        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise TransientRemoteError(
            f"{method} {table} failed after {self.retry_attempts} attempts: {last_error}",
            status_code=status_code,
        ) from last_error

    # ========================================
    # Catalog reads
    # ========================================

    async def fetch_categories(self) -> list[dict[str, Any]]:
        """Fetch active categories ordered by sort_order."""
        data = await self._request(
            "GET",
            CATEGORIES_TABLE,
            params={"select": "*", "is_active": "eq.true", "order": "sort_order.asc"},
        )
        return data or []

    async def fetch_topics(self) -> list[dict[str, Any]]:
        """Fetch active topics with their category embedded."""
        data = await self._request(
            "GET",
            TOPICS_TABLE,
            params={"select": f"*,category:{CATEGORIES_TABLE}(*)", "is_active": "eq.true"},
        )
        return data or []

    # ========================================
    # History
    # ========================================

    async def fetch_history(self, user_id: str, limit: int) -> list[dict[str, Any]]:
        """Fetch the user's most recent history entries, newest first."""
        data = await self._request(
            "GET",
            HISTORY_TABLE,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "order": "shown_at.desc",
                "limit": str(limit),
            },
        )
        return data or []

    async def insert_history(self, user_id: str, entry: dict[str, Any]) -> None:
        """Insert one history row for the user."""
        await self._request(
            "POST",
            HISTORY_TABLE,
            json={"user_id": user_id, **entry},
            prefer="return=minimal",
        )

    async def update_history(
        self, user_id: str, topic_id: str, patch: dict[str, Any]
    ) -> None:
        """Patch the user's unclaimed (memory_id IS NULL) rows for a topic."""
        await self._request(
            "PATCH",
            HISTORY_TABLE,
            params={
                "user_id": f"eq.{user_id}",
                "topic_id": f"eq.{topic_id}",
                "memory_id": "is.null",
            },
            json=patch,
            prefer="return=minimal",
        )
