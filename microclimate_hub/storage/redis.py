"""Redis-backed state storage, one JSON document per namespace."""

import json
from typing import Any, Optional

from microclimate_hub.storage.base import StateStorage
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="storage/redis_state_storage")


class RedisStateStorage(StateStorage):
    """Stores each namespace under `<prefix><namespace>` without expiry."""

    def __init__(self, client, prefix: str = "state:") -> None:
        logger.debug("Initializing RedisStateStorage")
        self.client = client
        self.prefix = prefix

    def _key(self, namespace: str) -> str:
        return f"{self.prefix}{namespace}"

    def load(self, namespace: str) -> Optional[dict[str, Any]]:
        raw = self.client.get(self._key(namespace))
        if not raw:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            data = json.loads(raw)
        except ValueError as exc:
            logger.error("Failed to deserialize persisted state: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    def save(self, namespace: str, document: dict[str, Any]) -> None:
        self.client.set(self._key(namespace), json.dumps(document, default=str).encode("utf-8"))

    def clear(self, namespace: str) -> None:
        self.client.delete(self._key(namespace))
