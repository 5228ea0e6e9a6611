"""
Topic cache constants.

Centralizes storage keys, table names and policy defaults so the cache,
history and sync layers agree on them.
"""

from __future__ import annotations

from datetime import timedelta

# =============================================================================
# Local Store Keys
# =============================================================================
CATEGORIES_KEY = "@memoria_topic_categories"
TOPICS_KEY = "@memoria_recording_topics"
# History is per user: the user id is appended as "<key>_<user_id>"
HISTORY_KEY_PREFIX = "@memoria_topic_history"

# =============================================================================
# Policy
# =============================================================================
CACHE_TTL = timedelta(hours=24)
TOPIC_REPEAT_WINDOW_DAYS = 30
HISTORY_SYNC_LIMIT = 100

# =============================================================================
# Remote Tables (PostgREST)
# =============================================================================
CATEGORIES_TABLE = "topic_categories"
TOPICS_TABLE = "recording_topics"
HISTORY_TABLE = "user_topic_history"

DIFFICULTY_LEVELS = ("easy", "medium", "deep")
DEFAULT_DIFFICULTY = "medium"


def history_key(user_id: str) -> str:
    """
    Get the local store key for a user's topic history.

    Args:
        user_id: Authenticated user id

    Returns:
        Key like "@memoria_topic_history_<user_id>"
    """
    return f"{HISTORY_KEY_PREFIX}_{user_id}"
