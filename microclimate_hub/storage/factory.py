"""Factory helpers for choosing a state storage backend at startup."""

from __future__ import annotations

import redis

from microclimate_hub import config
from microclimate_hub.storage.base import StateStorage
from microclimate_hub.storage.file import FileStateStorage
from microclimate_hub.storage.memory import InMemoryStateStorage
from microclimate_hub.storage.redis import RedisStateStorage
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="storage/factory")


def build_state_storage(settings: config.Settings | None = None) -> StateStorage:
    """Instantiate the configured state storage backend."""
    settings = settings or config.settings
    backend = (settings.state_storage or "file").lower()

    if backend == "memory":
        logger.info("Using in-memory state storage")
        return InMemoryStateStorage()

    if backend == "file":
        logger.info("Using file state storage", extra={"path": settings.state_file_path})
        return FileStateStorage(settings.state_file_path)

    if backend == "redis":
        if not settings.state_redis_url:
            raise ValueError("state_redis_url must be set for Redis state storage")
        logger.info("Using Redis state storage", extra={"redis_url": mask_db_url(settings.state_redis_url)})
        return RedisStateStorage(redis.Redis.from_url(settings.state_redis_url))

    raise ValueError(f"Unknown state storage '{backend}'")
