"""
AsyncGules / Gules: SDK clients combining the Jules REST API with the local activity cache.
"""

import asyncio
from typing import Any, Optional

import httpx

from gules.activities import ActivityCache
from gules.config import CacheConfig
from gules.filters import PredicateSpec, apply_filter
from gules.models.activity import ActivityRecord, decode_activity
from gules.models.cache import CacheStats, SyncResult
from gules.sessions import SessionsAPI
from gules.sync import merge_records
from gules.transport.http import DEFAULT_BASE_URL, HttpClient

MAX_UNCACHED_ACTIVITIES = 100


class AsyncGules:
    """Async client (primary)."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        cache_config: Optional[CacheConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.http = HttpClient(api_key=api_key, base_url=base_url, transport=transport)
        self.sessions = SessionsAPI(self.http)
        self.cache_config = cache_config or CacheConfig()
        self.activities = ActivityCache(self.cache_config, fetch_page=self.sessions.fetch_activities_page)

    async def ensure_synced(self, session_id: str, force_full: bool = False,
                            max_pages: Optional[int] = None) -> SyncResult:
        """Fetch new activities for a session into the local cache."""
        return await self.activities.ensure_synced(session_id, force_full=force_full, max_pages=max_pages)

    def filter(self, session_id: str, predicate: Optional[PredicateSpec] = None) -> list[ActivityRecord]:
        """Filter cached activities. Does not touch the network."""
        return self.activities.filter(session_id, predicate)

    async def fetch_activities(
        self, session_id: str, max_activities: int = MAX_UNCACHED_ACTIVITIES,
    ) -> list[ActivityRecord]:
        """Fetch activities straight from the API, bypassing the cache. De-duplicated by id, ascending by created_at."""
        records: list[ActivityRecord] = []
        token: Optional[str] = None
        while len(records) < max_activities:
            page = await self.sessions.fetch_activities_page(session_id, token, self.cache_config.page_size)
            records = merge_records(records, (decode_activity(raw, session_id) for raw in page.activities)).records
            if not page.next_page_token or page.next_page_token == token:
                break
            token = page.next_page_token
        return records[:max_activities]

    async def query(
        self,
        session_id: str,
        predicate: Optional[PredicateSpec] = None,
        use_cache: Optional[bool] = None,
        force_full: bool = False,
    ) -> tuple[list[ActivityRecord], Optional[SyncResult]]:
        """Sync (or fetch uncached) and filter in one step.

        Returns the matching records and the SyncResult (None when the cache was bypassed).
        """
        predicate = predicate or PredicateSpec()
        if use_cache is None:
            use_cache = self.cache_config.enabled
        if not use_cache:
            return apply_filter(await self.fetch_activities(session_id), predicate), None
        result = await self.ensure_synced(session_id, force_full=force_full)
        return self.filter(session_id, predicate), result

    def cache_stats(self) -> CacheStats:
        return self.activities.cache_stats()

    def evict(self, session_id: str) -> bool:
        return self.activities.evict(session_id)

    def clear_cache(self) -> CacheStats:
        return self.activities.clear_all()

    async def close(self) -> None:
        await self.http.close()


class Gules:
    """Sync wrapper around AsyncGules. Runs the event loop internally."""

    def __init__(self, **kwargs: Any):
        self._async = AsyncGules(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def sessions(self) -> SessionsAPI:
        return self._async.sessions

    @property
    def activities(self) -> ActivityCache:
        return self._async.activities

    def list_sessions(self, **kwargs: Any) -> dict[str, Any]:
        return self._run(self._async.sessions.list(**kwargs))

    def get_session(self, session_id: str) -> dict[str, Any]:
        return self._run(self._async.sessions.get(session_id))

    def ensure_synced(self, session_id: str, force_full: bool = False,
                      max_pages: Optional[int] = None) -> SyncResult:
        return self._run(self._async.ensure_synced(session_id, force_full=force_full, max_pages=max_pages))

    def filter(self, session_id: str, predicate: Optional[PredicateSpec] = None) -> list[ActivityRecord]:
        return self._async.filter(session_id, predicate)

    def query(self, session_id: str, predicate: Optional[PredicateSpec] = None, **kwargs: Any):
        return self._run(self._async.query(session_id, predicate, **kwargs))

    def cache_stats(self) -> CacheStats:
        return self._async.cache_stats()

    def evict(self, session_id: str) -> bool:
        return self._async.evict(session_id)

    def clear_cache(self) -> CacheStats:
        return self._async.clear_cache()

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()
