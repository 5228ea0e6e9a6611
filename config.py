"""
Configuration settings for the memoria-topics service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Remote Catalog (Supabase / PostgREST)
    # ========================================
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (PostgREST lives under /rest/v1)",
    )
    supabase_anon_key: str = Field(
        default="",
        description="Supabase anon key, sent as the apikey header",
    )
    supabase_access_token: str | None = Field(
        default=None,
        description="Authenticated user JWT (falls back to the anon key)",
    )
    remote_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for remote catalog requests",
    )
    remote_retry_attempts: int = Field(
        default=2,
        description="Attempts per remote request on timeouts and 5xx errors",
    )

    # ========================================
    # Identity
    # ========================================
    topics_user_id: str | None = Field(
        default=None,
        description="Authenticated user id (topic history is disabled when unset)",
    )

    # ========================================
    # Topic Cache
    # ========================================
    topics_cache_path: Path = Field(
        default=Path.home() / ".memoria" / "topics_cache.db",
        description="SQLite file backing the local key-value store",
    )
    topics_cache_ttl_hours: int = Field(
        default=24,
        description="Hours before a cached family is considered stale",
    )
    topics_repeat_window_days: int = Field(
        default=30,
        description="Days a shown topic is excluded from selection",
    )
    topics_history_sync_limit: int = Field(
        default=100,
        description="Number of remote history entries pulled on resync",
    )
    serialize_selection: bool = Field(
        default=False,
        description="Serialize next-topic selection per user (single flight)",
    )

    # ========================================
    # Mirror Writes
    # ========================================
    mirror_max_attempts: int = Field(
        default=3,
        description="Attempts per history mirror write before giving up",
    )
    mirror_backoff_seconds: float = Field(
        default=0.5,
        description="Base delay for exponential backoff between mirror attempts",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def has_remote_configured(self) -> bool:
        """Check if the remote catalog can be reached at all."""
        return bool(self.supabase_url and self.supabase_anon_key)

    def get_cache_config(self) -> dict[str, int]:
        """Get cache policy configuration as a dictionary."""
        return {
            "ttl_hours": self.topics_cache_ttl_hours,
            "repeat_window_days": self.topics_repeat_window_days,
            "history_sync_limit": self.topics_history_sync_limit,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
