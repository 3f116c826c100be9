"""JSON-file state storage: the local-device equivalent of browser storage."""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from microclimate_hub.storage.base import StateStorage
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="storage/file_state_storage")


class FileStateStorage(StateStorage):
    """All namespaces live in one JSON object on disk; writes are atomic renames."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable state file", extra={"path": str(self.path), "error": str(exc)})
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, default=str)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def load(self, namespace: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._read_all().get(namespace)

    def save(self, namespace: str, document: dict[str, Any]) -> None:
        with self._lock:
            data = self._read_all()
            data[namespace] = document
            self._write_all(data)

    def clear(self, namespace: str) -> None:
        with self._lock:
            data = self._read_all()
            if data.pop(namespace, None) is not None:
                self._write_all(data)
