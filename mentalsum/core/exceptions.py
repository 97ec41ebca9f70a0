"""
Error taxonomy for Mental Sum.

- CorruptedDataError: persisted document unparsable or shape-invalid.
  Only ever raised by the decoder; StorageManager.initialize() recovers it.
- QuotaExceededError: a backend refused a write because of size limits.
- NotFoundError: a referenced user or session does not exist.
- ValidationError: caller input fails a precondition.

Everything except CorruptedDataError propagates to the caller.
"""

from __future__ import annotations


class MentalSumError(Exception):
    """Base class for all Mental Sum errors."""
    pass


class CorruptedDataError(MentalSumError):
    """Raised when the persisted document cannot be decoded."""
    pass


class QuotaExceededError(MentalSumError):
    """Raised when a write exceeds the storage capacity."""

    def __init__(self, size_bytes: int, quota_bytes: int | None = None):
        self.size_bytes = size_bytes
        self.quota_bytes = quota_bytes
        if quota_bytes is None:
            message = f"Storage full: could not write {size_bytes} bytes"
        else:
            message = f"Storage quota exceeded: {size_bytes} bytes > {quota_bytes} bytes"
        super().__init__(message)


class NotFoundError(MentalSumError):
    """Raised when a user or session id does not resolve."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class ValidationError(MentalSumError):
    """Raised when caller-supplied input fails validation."""
    pass
