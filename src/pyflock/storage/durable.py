"""Durable Store: the failure-reporting facade over a backing store."""

from __future__ import annotations

import logging

from pyflock.exceptions import StorageError
from pyflock.storage.backends import Storage

_logger = logging.getLogger(__name__)


class DurableStore:
    """Synchronous get/set/remove of raw text by key.

    Backend errors never escape: writes report ``False`` and the failure is
    logged.  Byte validity is the caller's concern.
    """

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    @property
    def storage(self) -> Storage:
        return self._storage

    def get(self, key: str) -> str | None:
        try:
            return self._storage.get_item(key)
        except (StorageError, OSError):
            _logger.error("Durable read failed for key=%s", key, exc_info=True)
            return None

    def set(self, key: str, raw: str) -> bool:
        try:
            self._storage.set_item(key, raw)
        except (StorageError, OSError):
            _logger.error("Durable write failed for key=%s size=%d", key, len(raw), exc_info=True)
            return False
        return True

    def remove(self, key: str) -> bool:
        try:
            self._storage.remove_item(key)
        except (StorageError, OSError):
            _logger.error("Durable remove failed for key=%s", key, exc_info=True)
            return False
        return True

    def keys(self) -> list[str]:
        try:
            return self._storage.keys()
        except (StorageError, OSError):
            _logger.error("Durable key listing failed", exc_info=True)
            return []
