"""
Sync engine: incremental, idempotent merge of remote activity pages into the cache.

Flow per call:
  1. load the session cache (or start empty)
  2. resume from the stored cursor, or from the beginning on first sync / force_full
  3. fetch pages until the remote stops returning a next token or the page budget runs out
  4. merge each page by activity id; the stored copy of an id always wins
  5. keep records ascending by created_at, ties in arrival order
  6. persist after every page, so a failure on page N keeps pages before N
"""

import logging
from collections.abc import Awaitable, Iterable, Sequence
from typing import Any, Callable, NamedTuple, Optional

from gules.errors import TransientFetchError
from gules.eviction import EvictionPolicy
from gules.models.activity import ActivityRecord, decode_activity
from gules.models.cache import ActivityPage, SessionCache, SyncResult, utcnow
from gules.store import CacheStore

logger = logging.getLogger(__name__)

# fetch_page(session_id, page_token, page_size) -> ActivityPage | (activities, next_page_token)
FetchPage = Callable[[str, Optional[str], int], Awaitable[Any]]


class MergeOutcome(NamedTuple):
    records: list[ActivityRecord]
    added: int
    divergent_ids: list[str]


def sort_records(records: Iterable[ActivityRecord]) -> list[ActivityRecord]:
    """Ascending by created_at; stable, so equal timestamps keep arrival order.

    Records without a parseable timestamp go after all timestamped ones.
    """
    return sorted(records, key=_order_key)


def _order_key(record: ActivityRecord) -> tuple:
    ns = record.timestamp_ns
    return (ns is None, ns or 0)


def merge_records(existing: Sequence[ActivityRecord], incoming: Iterable[ActivityRecord]) -> MergeOutcome:
    """Merge incoming records into an already-ordered list. Pure; inputs are not modified."""
    by_key = {r.key: r for r in existing}
    merged = list(existing)
    added = 0
    divergent: list[str] = []
    for record in incoming:
        stored = by_key.get(record.key)
        if stored is None:
            by_key[record.key] = record
            merged.append(record)
            added += 1
        elif stored.to_payload() != record.to_payload() and record.key not in divergent:
            divergent.append(record.key)
    return MergeOutcome(sort_records(merged), added, divergent)


class SyncEngine:
    def __init__(
        self,
        store: CacheStore,
        fetch_page: FetchPage,
        *,
        page_size: int = 50,
        max_pages: Optional[int] = None,
        eviction: Optional[EvictionPolicy] = None,
    ):
        self.store = store
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.max_pages = max_pages
        self.eviction = eviction

    async def sync(self, session_id: str, force_full: bool = False, max_pages: Optional[int] = None) -> SyncResult:
        """Bring the cached copy of a session up to date.

        Never raises for fetch failures: they are reported in SyncResult.error
        alongside the number of records merged before the failure. Store write
        failures (CacheIOError) do propagate.
        """
        budget = max_pages if max_pages is not None else self.max_pages
        cache = self.store.load(session_id)
        if cache is None:
            cache = SessionCache(session_id=session_id)
        cursor = None if force_full else cache.next_page_cursor

        result = SyncResult(session_id=session_id, total_records=len(cache.records))
        while budget is None or result.pages_fetched < budget:
            try:
                page = _as_page(await self.fetch_page(session_id, cursor, self.page_size))
            except Exception as e:
                logger.warning(
                    f"Fetching activities for {session_id} failed after {result.pages_fetched} page(s): {e}"
                )
                result.error = TransientFetchError(f"Failed to fetch activities page: {e}", session_id, cursor)
                result.error.__cause__ = e
                break

            outcome = merge_records(cache.records, (decode_activity(raw, session_id) for raw in page.activities))
            for key in outcome.divergent_ids:
                if key not in cache.divergent_ids:
                    logger.warning(f"Activity {key} in session {session_id} changed remotely; keeping cached copy")
                    cache.divergent_ids.append(key)
                if key not in result.divergent_ids:
                    result.divergent_ids.append(key)

            next_cursor = page.next_page_token or None
            cache.records = outcome.records
            cache.next_page_cursor = next_cursor
            cache.last_synced_at = utcnow()
            if self.store.save(cache):
                result.created = True
            result.pages_fetched += 1
            result.records_added += outcome.added
            result.total_records = len(cache.records)
            result.next_page_cursor = next_cursor

            if next_cursor is None:
                break
            if next_cursor == cursor:
                logger.warning(f"Remote returned the same page token twice for {session_id}; stopping")
                break
            cursor = next_cursor

        if result.created and self.eviction is not None:
            result.evicted = self.eviction.enforce(self.store, protect=session_id)
        logger.debug(
            f"Synced {session_id}: +{result.records_added} records, "
            f"{result.total_records} total, {result.pages_fetched} page(s)"
        )
        return result


def _as_page(response: Any) -> ActivityPage:
    if isinstance(response, ActivityPage):
        return response
    activities, next_page_token = response
    return ActivityPage(list(activities or []), next_page_token)
