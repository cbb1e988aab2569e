"""
Cache store: one JSON file per session plus an index, under CacheConfig.root.

Layout:
    <root>/index.json               CacheIndex (recency order, cursors)
    <root>/sessions/<session>.json  SessionFile

Every write goes to a temp file in the target directory and is renamed into
place, so an interrupted process leaves the previous version intact. The store
assumes a single owning process; there is no file locking.
"""

import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from gules.config import CacheConfig
from gules.errors import CacheIOError, CorruptCacheFile
from gules.models.activity import decode_activity
from gules.models.cache import (
    INDEX_SCHEMA,
    SESSION_SCHEMA,
    CacheIndex,
    CacheStats,
    IndexEntry,
    SessionCache,
    SessionFile,
)

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
SESSIONS_DIR = "sessions"

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]{0,127}$")


def session_filename(session_id: str) -> str:
    """Deterministic file name for a session id. Unsafe ids get a sanitized name plus a hash.

    Hashed names join with "~", which a safe id cannot contain, so the two forms never collide.
    """
    if _SAFE_ID.match(session_id):
        return f"{session_id}.json"
    sanitized = re.sub(r"[^A-Za-z0-9]+", "_", session_id)[:40].strip("_") or "session"
    digest = hashlib.sha256(session_id.encode()).hexdigest()[:16]
    return f"{sanitized}~{digest}.json"


def atomic_write_text(path: Path, text: str) -> None:
    """Write text to path via temp file + rename."""
    fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=f"{path.stem}_", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class CacheStore:
    """Durable per-session activity storage."""

    def __init__(self, config: CacheConfig):
        self.config = config
        self.root = Path(config.root)
        self.sessions_dir = self.root / SESSIONS_DIR
        self.index_path = self.root / INDEX_FILE
        self._index: Optional[CacheIndex] = None

    # --- index ---

    @property
    def index(self) -> CacheIndex:
        if self._index is None:
            self._index = self._load_index()
        return self._index

    def _load_index(self) -> CacheIndex:
        if not self.index_path.exists():
            if self.sessions_dir.is_dir() and any(self.sessions_dir.glob("*.json")):
                logger.warning(f"Cache index {self.index_path} missing; rebuilding from session files")
                return self._rebuild_index()
            return CacheIndex()
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or data.get("schema") != INDEX_SCHEMA:
                raise CorruptCacheFile("unexpected schema", str(self.index_path))
            return CacheIndex.model_validate(data)
        except (OSError, ValueError, ValidationError, CorruptCacheFile) as e:
            logger.warning(f"Cache index {self.index_path} unreadable ({e}); rebuilding from session files")
            return self._rebuild_index()

    def _rebuild_index(self) -> CacheIndex:
        """Recreate the index from whatever session files are readable."""
        index = CacheIndex()
        if not self.sessions_dir.is_dir():
            return index
        caches = []
        for path in sorted(self.sessions_dir.glob("*.json")):
            session_file = self._read_session_file(path)
            if session_file is not None:
                caches.append((session_file, path.name))
        caches.sort(key=lambda item: item[0].last_synced_at or item[0].created_at)
        for session_file, filename in caches:
            index.upsert(IndexEntry(
                session_id=session_file.session_id,
                file=filename,
                next_page_cursor=session_file.next_page_cursor,
                last_synced_at=session_file.last_synced_at,
                activity_count=len(session_file.activities),
                created_at=session_file.created_at,
            ))
        return index

    def _persist_index(self) -> None:
        self._ensure_dirs()
        try:
            atomic_write_text(self.index_path, self.index.model_dump_json(by_alias=True, indent=2))
        except OSError as e:
            raise CacheIOError(f"Failed to write cache index: {e}", str(self.index_path)) from e

    def _ensure_dirs(self) -> None:
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Failed to create cache directory: {e}", str(self.sessions_dir)) from e

    def path_for(self, session_id: str) -> Path:
        return self.sessions_dir / session_filename(session_id)

    # --- session files ---

    def _read_session_file(self, path: Path) -> Optional[SessionFile]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or data.get("schema") != SESSION_SCHEMA:
                raise CorruptCacheFile("unexpected schema", str(path))
            return SessionFile.model_validate(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, ValidationError, CorruptCacheFile) as e:
            logger.warning(f"Ignoring corrupt cache file {path}: {e}")
            return None

    def load(self, session_id: str) -> Optional[SessionCache]:
        """Cached state for a session, or None if absent or unreadable."""
        session_file = self._read_session_file(self.path_for(session_id))
        if session_file is None:
            return None
        if session_file.session_id != session_id:
            logger.warning(f"Cache file for {session_id} belongs to {session_file.session_id}; ignoring")
            return None
        return SessionCache(
            session_id=session_id,
            records=[decode_activity(raw, session_id) for raw in session_file.activities],
            next_page_cursor=session_file.next_page_cursor,
            last_synced_at=session_file.last_synced_at,
            created_at=session_file.created_at,
            divergent_ids=session_file.divergent_ids,
        )

    def save(self, cache: SessionCache) -> bool:
        """Persist a session cache and move it to the recent end of the index.

        Returns True when the session was not tracked before.
        """
        self._ensure_dirs()
        path = self.path_for(cache.session_id)
        session_file = SessionFile(
            session_id=cache.session_id,
            activities=[r.to_payload() for r in cache.records],
            next_page_cursor=cache.next_page_cursor,
            last_synced_at=cache.last_synced_at,
            created_at=cache.created_at,
            divergent_ids=cache.divergent_ids,
        )
        try:
            atomic_write_text(path, session_file.model_dump_json(by_alias=True, indent=2))
        except OSError as e:
            raise CacheIOError(f"Failed to write cache for session {cache.session_id}: {e}", str(path)) from e

        created = self.index.upsert(IndexEntry(
            session_id=cache.session_id,
            file=path.name,
            next_page_cursor=cache.next_page_cursor,
            last_synced_at=cache.last_synced_at,
            activity_count=len(cache.records),
            created_at=cache.created_at,
        ))
        self._persist_index()
        return created

    def delete(self, session_id: str) -> bool:
        """Drop a session. The index entry goes first so it never points at a missing file."""
        tracked = self.index.remove(session_id)
        if tracked:
            self._persist_index()
        path = self.path_for(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return tracked
        except OSError as e:
            raise CacheIOError(f"Failed to delete cache for session {session_id}: {e}", str(path)) from e
        return True

    def clear_all(self) -> CacheStats:
        """Remove every cached session. Returns the stats from before the clear."""
        before = self.stats()
        self._index = CacheIndex()
        if self.root.exists():
            self._persist_index()
            try:
                shutil.rmtree(self.sessions_dir, ignore_errors=False)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise CacheIOError(f"Failed to clear cache directory: {e}", str(self.sessions_dir)) from e
        return before

    def list_sessions(self) -> list[IndexEntry]:
        """Tracked sessions, least recently written first."""
        return list(self.index.sessions)

    def stats(self) -> CacheStats:
        total_bytes = 0
        for entry in self.index.sessions:
            try:
                total_bytes += (self.sessions_dir / entry.file).stat().st_size
            except OSError:
                continue
        return CacheStats(
            session_count=len(self.index.sessions),
            total_activities=sum(e.activity_count for e in self.index.sessions),
            total_bytes=total_bytes,
            max_sessions=self.config.max_sessions,
            enabled=self.config.enabled,
            cache_dir=str(self.root),
        )
