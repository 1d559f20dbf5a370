from __future__ import annotations


class MoaError(Exception):
    """Base class for failures the assistant knows how to recover from."""


class ParseFailure(MoaError):
    """An uploaded file is unsupported, empty, too large or corrupt."""


class StorageFailure(MoaError):
    """The key-value storage rejected a read or write."""


class StorageQuotaExceeded(StorageFailure):
    def __init__(self, key: str, required_bytes: int, quota_bytes: int):
        super().__init__(
            f"Writing {key!r} needs {required_bytes:,} bytes but the storage quota is {quota_bytes:,} bytes"
        )
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes


class NetworkFailure(MoaError):
    """The AI or media backend was unreachable or returned an error."""


class ValidationFailure(MoaError):
    """User input failed a form check (auth fields, phone number, empty goal)."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field
