"""
Persistence backends for the StorageManager.

A backend holds exactly one serialized document:
- read()  -> the raw document text, or None if nothing is stored
- write() -> replace the whole document; raises QuotaExceededError on
             size failures and leaves the previous document untouched
- clear() -> remove the document
- size()  -> bytes currently stored, 0 when nothing is stored

MemoryBackend is used by tests and can simulate a quota.
FileBackend stores the document as ~/.mentalsum/<storage_key>.json.
"""

from __future__ import annotations

import errno
import os
from pathlib import Path
from typing import Protocol

from loguru import logger

from mentalsum.config import Settings, get_settings
from mentalsum.core.exceptions import CorruptedDataError, QuotaExceededError

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageBackend(Protocol):
    """Key-value persistence for a single document."""

    def read(self) -> str | None: ...

    def write(self, payload: str) -> None: ...

    def clear(self) -> None: ...

    def size(self) -> int: ...


def _check_quota(payload: str, quota_bytes: int | None) -> bytes:
    encoded = payload.encode("utf-8")
    if quota_bytes is not None and len(encoded) > quota_bytes:
        raise QuotaExceededError(len(encoded), quota_bytes)
    return encoded


class MemoryBackend:
    """In-process backend, optionally with a simulated quota."""

    def __init__(self, initial: str | None = None, quota_bytes: int | None = None):
        self._document = initial
        self.quota_bytes = quota_bytes
        self.write_count = 0

    def read(self) -> str | None:
        return self._document

    def write(self, payload: str) -> None:
        _check_quota(payload, self.quota_bytes)
        self._document = payload
        self.write_count += 1

    def clear(self) -> None:
        self._document = None

    def size(self) -> int:
        return len(self._document.encode("utf-8")) if self._document else 0


class FileBackend:
    """
    JSON file backend.

    Writes go to a sibling temp file which is then swapped into place with
    os.replace, so a reader only ever sees the old or the new document.
    """

    def __init__(self, path: Path, quota_bytes: int | None = None):
        self.path = path
        self.quota_bytes = quota_bytes

    @property
    def _tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptedDataError(f"{self.path} is not valid UTF-8: {e}") from e

    def write(self, payload: str) -> None:
        encoded = _check_quota(payload, self.quota_bytes)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp = self._tmp_path
        try:
            with open(tmp, "wb") as f:
                f.write(encoded)
            os.replace(tmp, self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            if e.errno in _QUOTA_ERRNOS:
                raise QuotaExceededError(len(encoded)) from e
            raise

        logger.debug(f"Wrote {len(encoded)} bytes to {self.path}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def size(self) -> int:
        """Bytes on disk, whether or not the content decodes."""
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0


def build_backend(settings: Settings | None = None) -> FileBackend:
    """File backend configured from settings."""
    settings = settings or get_settings()
    return FileBackend(settings.storage_path, settings.storage_quota_bytes)
