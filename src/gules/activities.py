"""
ActivityCache: the cache/filter interface used by the CLI and SDK client.

    cache = ActivityCache(CacheConfig(root=tmp), fetch_page=sessions.fetch_activities_page)
    result = await cache.ensure_synced("123")
    recent_bash = cache.filter("123", PredicateSpec.build(has_artifact=["bash"], last=5))

`filter` only reads the local store; call `ensure_synced` first when freshness matters.
"""

from typing import Optional

from gules.config import CacheConfig
from gules.eviction import EvictionPolicy
from gules.filters import PredicateSpec, apply_filter
from gules.models.activity import ActivityRecord
from gules.models.cache import CacheStats, IndexEntry, SyncResult
from gules.store import CacheStore
from gules.sync import FetchPage, SyncEngine


class ActivityCache:
    def __init__(self, config: CacheConfig, fetch_page: Optional[FetchPage] = None):
        self.config = config
        self.store = CacheStore(config)
        self.eviction = EvictionPolicy(config.max_sessions)
        self._fetch_page = fetch_page

    def _engine(self) -> SyncEngine:
        if self._fetch_page is None:
            raise RuntimeError("ActivityCache was created without a fetch_page function; cannot sync")
        return SyncEngine(
            self.store,
            self._fetch_page,
            page_size=self.config.page_size,
            max_pages=self.config.max_pages,
            eviction=self.eviction,
        )

    async def ensure_synced(self, session_id: str, force_full: bool = False,
                            max_pages: Optional[int] = None) -> SyncResult:
        return await self._engine().sync(session_id, force_full=force_full, max_pages=max_pages)

    def records(self, session_id: str) -> list[ActivityRecord]:
        cache = self.store.load(session_id)
        return list(cache.records) if cache else []

    def filter(self, session_id: str, predicate: Optional[PredicateSpec] = None) -> list[ActivityRecord]:
        """Matching cached records in ascending time order. Empty if the session is not cached."""
        return apply_filter(self.records(session_id), predicate or PredicateSpec())

    def cache_stats(self) -> CacheStats:
        return self.store.stats()

    def sessions(self) -> list[IndexEntry]:
        return self.store.list_sessions()

    def evict(self, session_id: str) -> bool:
        return self.store.delete(session_id)

    def clear_all(self) -> CacheStats:
        return self.store.clear_all()
