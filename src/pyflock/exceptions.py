"""Custom exception hierarchy for pyflock."""

from __future__ import annotations


class FlockError(Exception):
    """Base exception for all pyflock errors."""


class FlockConfigError(FlockError):
    """Invalid or missing configuration."""


class StorageError(FlockError):
    """Backing store failure."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StorageWriteError(StorageError):
    """Backing store rejected a write."""


class StorageQuotaExceededError(StorageWriteError):
    """Write would exceed the backing store's quota.

    Raised by backends that enforce a size limit.  :class:`DurableStore`
    reports it as a failed write instead of propagating it.
    """


class RelayError(FlockError):
    """Cross-context relay failure (bootstrap, connect, bad payload)."""
