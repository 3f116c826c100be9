"""Factory helpers for choosing a request cache backend at startup."""

from __future__ import annotations

import redis

from microclimate_hub import config
from microclimate_hub.cache.base import RequestCache
from microclimate_hub.cache.memory import InMemoryRequestCache
from microclimate_hub.cache.redis import RedisRequestCache
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="cache/factory")


def build_request_cache(settings: config.Settings | None = None) -> RequestCache:
    """Use Redis when configured and reachable, else an in-memory cache."""
    settings = settings or config.settings
    if settings.cache_redis_url:
        try:
            client = redis.Redis.from_url(settings.cache_redis_url)
            client.ping()
            logger.info("Using RedisRequestCache", extra={"redis_url": mask_db_url(settings.cache_redis_url)})
            return RedisRequestCache(client)
        except redis.RedisError as exc:
            logger.warning("Falling back to InMemoryRequestCache (Redis unavailable)", extra={"error": str(exc)})
    return InMemoryRequestCache()
