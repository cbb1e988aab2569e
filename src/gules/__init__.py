"""
gules: Jules activity cache for Python.

Local, incrementally-synced copy of Jules session activities with
client-side filtering. REST client for the Jules v1alpha API.
"""

from gules.activities import ActivityCache
from gules.client import AsyncGules, Gules
from gules.config import CacheConfig
from gules.errors import (
    ApiError,
    AuthError,
    CacheIOError,
    GulesError,
    InvalidPredicate,
    TransientFetchError,
)
from gules.filters import PredicateSpec, apply_filter
from gules.models.activity import MISSING, ActivityRecord, ArtifactType, decode_activity
from gules.models.cache import ActivityPage, CacheStats, SyncResult
from gules.sessions import SessionsAPI

__version__ = "0.1.0"
__all__ = [
    "AsyncGules",
    "Gules",
    "ActivityCache",
    "CacheConfig",
    "SessionsAPI",
    "PredicateSpec",
    "apply_filter",
    "ActivityRecord",
    "ArtifactType",
    "decode_activity",
    "MISSING",
    "ActivityPage",
    "CacheStats",
    "SyncResult",
    "GulesError",
    "ApiError",
    "AuthError",
    "CacheIOError",
    "InvalidPredicate",
    "TransientFetchError",
]
