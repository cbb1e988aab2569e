"""
Cache models: per-session cache, the persisted index, and sync results.
"""

from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from gules.errors import GulesError
from gules.models.activity import ActivityRecord

SESSION_SCHEMA = "gules.session/1"
INDEX_SCHEMA = "gules.index/1"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityPage(NamedTuple):
    """One page from GET /sessions/{id}/activities."""
    activities: list[Any]
    next_page_token: Optional[str] = None


class SessionCache(BaseModel):
    """In-memory state of one cached session. Records are ascending by created_at."""

    session_id: str
    records: list[ActivityRecord] = Field(default_factory=list)
    next_page_cursor: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    divergent_ids: list[str] = Field(default_factory=list)

    @property
    def record_keys(self) -> set[str]:
        return {r.key for r in self.records}


class SessionFile(BaseModel):
    """On-disk form of SessionCache. Activities are stored as wire payloads."""

    schema_tag: str = Field(SESSION_SCHEMA, alias="schema")
    session_id: str
    activities: list[Any] = Field(default_factory=list)
    next_page_cursor: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    divergent_ids: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class IndexEntry(BaseModel):
    session_id: str
    file: str
    next_page_cursor: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    activity_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class CacheIndex(BaseModel):
    """Registry of cached sessions, oldest write first."""

    schema_tag: str = Field(INDEX_SCHEMA, alias="schema")
    sessions: list[IndexEntry] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def get(self, session_id: str) -> Optional[IndexEntry]:
        for entry in self.sessions:
            if entry.session_id == session_id:
                return entry
        return None

    def upsert(self, entry: IndexEntry) -> bool:
        """Insert or replace, moving the entry to the most-recent end. True if new."""
        existed = self.remove(entry.session_id)
        self.sessions.append(entry)
        return not existed

    def remove(self, session_id: str) -> bool:
        before = len(self.sessions)
        self.sessions = [e for e in self.sessions if e.session_id != session_id]
        return len(self.sessions) != before

    def session_ids(self) -> list[str]:
        return [e.session_id for e in self.sessions]


class CacheStats(BaseModel):
    session_count: int = 0
    total_activities: int = 0
    total_bytes: int = 0
    max_sessions: int = 0
    enabled: bool = True
    cache_dir: str = ""


class SyncResult(BaseModel):
    """Outcome of one sync call. `error` is set when a page fetch failed part-way."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    records_added: int = 0
    total_records: int = 0
    pages_fetched: int = 0
    created: bool = False
    next_page_cursor: Optional[str] = None
    divergent_ids: list[str] = Field(default_factory=list)
    evicted: list[str] = Field(default_factory=list)
    error: Optional[GulesError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
