from __future__ import annotations

from ._store import CacheStore
from .cache import QUEUE, RESPONSES
from .types import CACHE_HIT_HEADER, CachedResponse, CacheKey, PendingAction, SyncAttempt
from .utils import cache_key, normalize_url

__all__ = [
    "CACHE_HIT_HEADER",
    "QUEUE",
    "RESPONSES",
    "CacheKey",
    "CacheStore",
    "CachedResponse",
    "PendingAction",
    "SyncAttempt",
    "cache_key",
    "normalize_url",
]
