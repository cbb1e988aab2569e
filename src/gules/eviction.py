"""
Eviction: keeps the number of cached sessions within CacheConfig.max_sessions.

Victims are the least-recently-synced sessions (by the last_synced_at recorded
in the index, never filesystem timestamps). Only runs after a write that added
a new session.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from gules.models.cache import CacheIndex, IndexEntry
from gules.store import CacheStore

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


class EvictionPolicy:
    def __init__(self, max_sessions: int):
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be at least 1, got {max_sessions}")
        self.max_sessions = max_sessions

    def select_victims(self, index: CacheIndex, protect: Optional[str] = None) -> list[str]:
        """Session ids to drop, oldest sync first. `protect` is never selected."""
        excess = len(index.sessions) - self.max_sessions
        if excess <= 0:
            return []
        # sorted() is stable, so index order (oldest write first) breaks ties
        candidates = sorted(
            (e for e in index.sessions if e.session_id != protect),
            key=_sync_time,
        )
        return [e.session_id for e in candidates[:excess]]

    def enforce(self, store: CacheStore, protect: Optional[str] = None) -> list[str]:
        """Evict until the store is within bound. Returns the evicted ids."""
        victims = self.select_victims(store.index, protect=protect)
        for session_id in victims:
            store.delete(session_id)
            logger.info(f"Evicted cached activities for session {session_id}")
        return victims


def _sync_time(entry: IndexEntry) -> datetime:
    return entry.last_synced_at or _NEVER
