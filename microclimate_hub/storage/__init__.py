"""Persisted client-state backends."""

from .base import StateStorage
from .factory import build_state_storage
from .file import FileStateStorage
from .memory import InMemoryStateStorage
from .redis import RedisStateStorage

__all__ = [
    "StateStorage",
    "InMemoryStateStorage",
    "FileStateStorage",
    "RedisStateStorage",
    "build_state_storage",
]
