"""In-memory request cache with per-entry TTL."""

import threading
import time
from typing import Any, Callable, Iterable, Optional

from microclimate_hub.cache.base import CacheEntry, RequestCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/in_memory_request_cache")


class InMemoryRequestCache(RequestCache):
    """Thread-safe, TTL-aware in-memory cache.

    Expiry is checked lazily on read; expired entries stay in place until they
    are overwritten, invalidated, or dropped by `prune_expired`.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the cache with a wall-clock source (seconds)."""
        logger.debug("Initializing InMemoryRequestCache")
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value while it is still valid."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_valid(self._clock()):
                return None
            return entry.data

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value, overwriting any previous entry for the key."""
        with self._lock:
            self._entries[key] = CacheEntry(data=value, written_at=self._clock(), ttl=ttl)

    def invalidate(self, prefix: Optional[str] = None) -> None:
        """Drop every key containing `prefix` as a substring, or all keys."""
        with self._lock:
            if prefix is None:
                self._entries.clear()
                return
            doomed = [key for key in self._entries if prefix in key]
            for key in doomed:
                del self._entries[key]
            logger.debug(f"Invalidated {len(doomed)} cache entries matching '{prefix}'")

    def prune_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def snapshot(self) -> dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)

    def restore(self, entries: Iterable[tuple[str, CacheEntry]]) -> None:
        with self._lock:
            for key, entry in entries:
                self._entries[key] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
