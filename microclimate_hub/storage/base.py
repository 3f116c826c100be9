"""Shared protocol for persisted client-state backends."""

from typing import Any, Optional, Protocol


class StateStorage(Protocol):
    """Protocol for namespaced JSON-document storage."""

    def load(self, namespace: str) -> Optional[dict[str, Any]]:
        """Return the stored document, or None if nothing was saved."""

    def save(self, namespace: str, document: dict[str, Any]) -> None:
        """Replace the stored document for the namespace."""

    def clear(self, namespace: str) -> None:
        """Delete the document without raising if it is absent."""
