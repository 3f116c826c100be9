"""Shared protocol and types for request cache backends."""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol


@dataclass
class CacheEntry:
    """Cached response payload with the time it was written and its lifetime (seconds)."""
    data: Any
    written_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        """An entry is valid iff now < written_at + ttl."""
        return now < self.written_at + self.ttl

    def to_dict(self) -> dict:
        return {"data": self.data, "written_at": self.written_at, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, raw: dict) -> "CacheEntry":
        return cls(data=raw.get("data"), written_at=float(raw["written_at"]), ttl=float(raw["ttl"]))


class RequestCache(Protocol):
    """Protocol for key -> value caches with per-entry TTL."""

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value stamped with the current time, replacing any prior entry."""

    def invalidate(self, prefix: Optional[str] = None) -> None:
        """Remove keys containing `prefix`, or everything when omitted."""

    def snapshot(self) -> dict[str, CacheEntry]:
        """Return a copy of every stored entry, expired ones included."""

    def restore(self, entries: Iterable[tuple[str, CacheEntry]]) -> None:
        """Load entries as-is, keeping their original write times."""
