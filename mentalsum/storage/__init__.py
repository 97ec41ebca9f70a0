"""Persistence: backends and the StorageManager."""

from mentalsum.storage.backends import FileBackend, MemoryBackend, StorageBackend, build_backend
from mentalsum.storage.manager import StorageManager, deserialize, serialize

__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "build_backend",
    "StorageManager",
    "serialize",
    "deserialize",
]
