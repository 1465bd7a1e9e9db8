"""Durable Store layer.

Backing stores hold raw text per key; :class:`DurableStore` is the only
thing the rest of the package talks to.
"""

from pyflock.storage.backends import (
    FileStorage,
    MemoryStorage,
    Storage,
    StorageArea,
    StorageListener,
    StorageSignal,
)
from pyflock.storage.durable import DurableStore

__all__ = [
    "DurableStore",
    "FileStorage",
    "MemoryStorage",
    "Storage",
    "StorageArea",
    "StorageListener",
    "StorageSignal",
]
