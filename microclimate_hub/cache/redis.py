"""Redis-backed request cache with per-entry TTL."""

import json
import math
import time
from typing import Any, Callable, Iterable, Optional

from microclimate_hub.cache.base import CacheEntry, RequestCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/redis_request_cache")


class RedisRequestCache(RequestCache):
    """Redis-backed cache storing JSON entries under a key prefix.

    Validity is decided from the stored write time, exactly like the in-memory
    backend. Redis additionally expires keys `retention_seconds` after their TTL
    so abandoned entries do not accumulate.
    """

    def __init__(
        self,
        client,
        prefix: str = "cache:",
        retention_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize with a Redis client, key prefix and post-expiry retention."""
        logger.debug("Initializing RedisRequestCache")
        self.client = client
        self.prefix = prefix
        self.retention = retention_seconds
        self._clock = clock

    def _key(self, key: str) -> str:
        """Return the Redis key for a cache key."""
        return f"{self.prefix}{key}"

    def _logical_key(self, raw_key) -> str:
        """Strip the prefix from a Redis key (bytes or str)."""
        if isinstance(raw_key, bytes):
            raw_key = raw_key.decode("utf-8")
        return raw_key[len(self.prefix):]

    def _load(self, raw) -> Optional[CacheEntry]:
        """Deserialize JSON bytes into a cache entry."""
        if not raw:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Failed to deserialize cache entry: %s", exc)
            return None

    def _write(self, key: str, entry: CacheEntry) -> None:
        payload = json.dumps(entry.to_dict(), default=str).encode("utf-8")
        remaining = entry.written_at + entry.ttl - self._clock()
        expire = max(1, math.ceil(remaining) + self.retention)
        self.client.setex(self._key(key), expire, payload)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value while it is still valid."""
        entry = self._load(self.client.get(self._key(key)))
        if entry is None or not entry.is_valid(self._clock()):
            return None
        return entry.data

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value, overwriting any previous entry for the key."""
        self._write(key, CacheEntry(data=value, written_at=self._clock(), ttl=ttl))

    def invalidate(self, prefix: Optional[str] = None) -> None:
        """Drop every key containing `prefix` as a substring, or all keys under this cache."""
        removed = 0
        for raw_key in list(self.client.scan_iter(f"{self.prefix}*")):
            if prefix is None or prefix in self._logical_key(raw_key):
                self.client.delete(raw_key)
                removed += 1
        logger.debug(f"Invalidated {removed} cache entries matching '{prefix}'")

    def snapshot(self) -> dict[str, CacheEntry]:
        out: dict[str, CacheEntry] = {}
        for raw_key in list(self.client.scan_iter(f"{self.prefix}*")):
            entry = self._load(self.client.get(raw_key))
            if entry is not None:
                out[self._logical_key(raw_key)] = entry
        return out

    def restore(self, entries: Iterable[tuple[str, CacheEntry]]) -> None:
        for key, entry in entries:
            self._write(key, entry)
