"""
Cache configuration. Passed explicitly to the store and sync engine, never read from globals.
"""

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

DEFAULT_MAX_SESSIONS = 50
DEFAULT_PAGE_SIZE = 50


def default_cache_dir() -> Path:
    """$GULES_CACHE_DIR, else $XDG_CACHE_HOME/gules/activities, else ~/.cache/gules/activities."""
    override = os.environ.get("GULES_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".cache"
    return base / "gules" / "activities"


class CacheConfig(BaseModel):
    root: Path = Field(default_factory=default_cache_dir)
    enabled: bool = True
    max_sessions: int = Field(DEFAULT_MAX_SESSIONS, ge=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=100)
    max_pages: Optional[int] = Field(None, ge=1)

    @classmethod
    def from_mapping(cls, data: Optional[dict[str, Any]]) -> "CacheConfig":
        """Build from the `cache` section of ~/.gules/config.json. `dir` is accepted for `root`."""
        data = dict(data or {})
        if "dir" in data and "root" not in data:
            data["root"] = data.pop("dir")
        return cls.model_validate({k: v for k, v in data.items() if v is not None})
