"""
gules error types.
"""

from typing import Any, Optional


class GulesError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class AuthError(GulesError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class ApiError(GulesError):
    """Non-2xx response from the Jules API."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict[str, Any]] = None):
        super().__init__("api_error", message, details)
        self.status_code = status_code


class TransientFetchError(GulesError):
    """A page fetch failed during sync. Records merged before it are kept."""

    def __init__(self, message: str, session_id: str, page_token: Optional[str] = None):
        super().__init__("transient_fetch_error", message, {"session_id": session_id, "page_token": page_token})
        self.session_id = session_id
        self.page_token = page_token


class InvalidPredicate(GulesError):
    def __init__(self, message: str):
        super().__init__("invalid_predicate", message)


class CacheIOError(GulesError):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__("cache_io_error", message, {"path": path} if path else None)
        self.path = path


class CorruptCacheFile(GulesError):
    """Unreadable cache file. Logged and treated as empty, never raised to callers."""

    def __init__(self, message: str, path: str):
        super().__init__("corrupt_cache_file", message, {"path": path})
        self.path = path
