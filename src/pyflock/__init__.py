"""pyflock - Persistent, self-synchronizing state for farm records."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyflock")
except PackageNotFoundError:
    __version__ = "0+local"

from pyflock._constants import StorageKey
from pyflock.accrual import AccrualChange, AccrualResult, AccrualScheduler, accrue
from pyflock.audit import stamp
from pyflock.config import FlockConfig
from pyflock.context import StateContext
from pyflock.exceptions import (
    FlockConfigError,
    FlockError,
    RelayError,
    StorageError,
    StorageQuotaExceededError,
    StorageWriteError,
)
from pyflock.models import (
    AuditedRecord,
    AuditStamp,
    Bird,
    BirdStage,
    BirdStatus,
    InventoryItem,
    active_population,
    low_stock_items,
)
from pyflock.state import ChangeBus, ChangeEvent, ChangeOrigin, ReactiveCell, bind
from pyflock.storage import DurableStore, FileStorage, MemoryStorage, StorageArea

__all__ = [
    "__version__",
    "AccrualChange",
    "AccrualResult",
    "AccrualScheduler",
    "AuditStamp",
    "AuditedRecord",
    "Bird",
    "BirdStage",
    "BirdStatus",
    "ChangeBus",
    "ChangeEvent",
    "ChangeOrigin",
    "DurableStore",
    "FileStorage",
    "FlockConfig",
    "FlockConfigError",
    "FlockError",
    "InventoryItem",
    "MemoryStorage",
    "ReactiveCell",
    "RelayError",
    "StateContext",
    "StorageArea",
    "StorageError",
    "StorageKey",
    "StorageQuotaExceededError",
    "StorageWriteError",
    "accrue",
    "active_population",
    "bind",
    "low_stock_items",
    "stamp",
]
