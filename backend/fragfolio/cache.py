"""
Fragfolio Backend — Smart-Input Result Cache
==============================================

What:  In-process TTL cache for AI results, keyed by an MD5 of the request
       parameters.
Why:   Smart input fires on keystrokes; identical (query, type, provider,
       language) tuples within a few minutes must not pay for a second
       provider call.
How:   Dict of {key: (expires_at, value)}. Expired entries are dropped on
       read; when the dict grows past max_size the oldest written entry
       is evicted, whatever its TTL.

Design Decision:
    Values are deep-copied on the way in and out. Services decorate cached
    results (the `cached` flag, metadata timestamps) and must never mutate
    the stored copy.
"""

import copy
import hashlib
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Tuple

from fragfolio.config import settings

logger = logging.getLogger(__name__)

_MISSING = object()


def make_key(prefix: str, *parts: Any) -> str:
    """
    Build a cache key as prefix + md5(":".join(parts)).

    None parts are rendered as empty strings.

    >>> make_key("ai:completion:", "chan", "brand", "openai", "ja")  # doctest: +ELLIPSIS
    'ai:completion:...'
    """
    raw = ":".join("" if p is None else str(p) for p in parts)
    return prefix + hashlib.md5(raw.encode("utf-8")).hexdigest()


class TTLCache:
    """Process-local cache with per-entry TTL."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return _MISSING
        return value

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        if value is _MISSING:
            return default
        return copy.deepcopy(value)

    def has(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def set(self, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            return
        # re-insert so dict order stays write order
        self._entries.pop(key, None)
        self._entries[key] = (time.monotonic() + ttl, copy.deepcopy(value))
        if len(self._entries) > self.max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug("Evicted cache key %s...", oldest_key[:24])

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def remember(
        self,
        key: str,
        ttl: int,
        loader: Callable[[], Awaitable[Any]],
    ) -> Tuple[Any, bool]:
        """
        Return the cached value for key, or await loader() and store it.

        Returns:
            (value, hit) where hit is True when served from cache.

        Raises:
            Whatever loader raises; nothing is stored in that case.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            logger.debug("Cache hit for %s...", key[:24])
            return copy.deepcopy(value), True

        value = await loader()
        self.set(key, value, ttl)
        return copy.deepcopy(value), False


# Shared by all smart-input services and the cost alert de-duplication
ai_cache = TTLCache(max_size=settings.cache_max_size)
