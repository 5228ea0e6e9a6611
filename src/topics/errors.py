"""Exceptions raised inside the topic cache layers."""

from __future__ import annotations


class TopicsError(Exception):
    """Base class for topic cache failures."""


class TransientRemoteError(TopicsError):
    """
    Remote catalog could not be reached or answered with an error.

    Always recoverable: callers fall back to the local cache or defer
    the mirror write.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LocalStoreError(TopicsError):
    """Local persistence is corrupt or unavailable."""
