"""Request cache backends."""

from .base import CacheEntry, RequestCache
from .factory import build_request_cache
from .memory import InMemoryRequestCache
from .redis import RedisRequestCache

__all__ = [
    "CacheEntry",
    "RequestCache",
    "InMemoryRequestCache",
    "RedisRequestCache",
    "build_request_cache",
]
