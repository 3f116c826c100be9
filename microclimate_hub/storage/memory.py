"""In-memory state storage, intended for tests and ephemeral sessions."""

import copy
import threading
from typing import Any, Optional

from microclimate_hub.storage.base import StateStorage


class InMemoryStateStorage(StateStorage):
    """Keeps deep copies so callers cannot mutate what was saved."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, namespace: str) -> Optional[dict[str, Any]]:
        with self._lock:
            doc = self._documents.get(namespace)
            return copy.deepcopy(doc) if doc is not None else None

    def save(self, namespace: str, document: dict[str, Any]) -> None:
        with self._lock:
            self._documents[namespace] = copy.deepcopy(document)

    def clear(self, namespace: str) -> None:
        with self._lock:
            self._documents.pop(namespace, None)
