"""One running state context: store, bus, cells and the accrual pass."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from typing import Any, TypeVar

import paho.mqtt.client as mqtt

from pyflock._constants import DATA_COLLECTION_KEYS, StorageKey
from pyflock._mqtt import MqttChangeRelay
from pyflock.accrual import AccrualResult, AccrualScheduler
from pyflock.audit import stamp
from pyflock.config import FlockConfig
from pyflock.models._base import AuditedRecord
from pyflock.models.flock import Bird, active_population
from pyflock.models.inventory import InventoryItem
from pyflock.state.bus import ChangeBus, RemoteChannel, StorageAreaChannel
from pyflock.state.cell import ReactiveCell, bind
from pyflock.storage.backends import FileStorage, MemoryStorage, Storage, StorageArea
from pyflock.storage.durable import DurableStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=AuditedRecord)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateContext:
    """State layer for one context (a process, a window, a test).

    Usage::

        async with StateContext(FlockConfig.from_env()) as ctx:
            inventory = ctx.inventory()
            inventory.set(lambda items: [*items, new_item])

    Entering schedules one accrual pass after ``config.settle_delay`` and
    starts the MQTT relay when enabled.  Leaving cancels a pass that has not
    run yet, closes every cell the context handed out and stops the relay.
    Stored values are never deleted on exit.
    """

    def __init__(
        self,
        config: FlockConfig | None = None,
        *,
        storage: Storage | None = None,
        channels: Iterable[RemoteChannel] = (),
        clock: Callable[[], datetime] = _utcnow,
        relay_client_factory: Callable[[str], mqtt.Client] | None = None,
    ) -> None:
        self._config = config or FlockConfig()
        self._clock = clock
        self._relay_client_factory = relay_client_factory
        self._owned_area: StorageArea | None = None

        if storage is None:
            if self._config.storage_dir is not None:
                storage = FileStorage(self._config.storage_dir)
            else:
                storage = self._owned_area = MemoryStorage().open_area()

        remote = list(channels)
        if isinstance(storage, StorageArea):
            remote.append(StorageAreaChannel(storage))

        self._store = DurableStore(storage)
        self._bus = ChangeBus(remote)
        self._cells: list[ReactiveCell[Any]] = []
        self._flock: ReactiveCell[list[Bird]] | None = None
        self._inventory: ReactiveCell[list[InventoryItem]] | None = None
        self._scheduler: AccrualScheduler | None = None
        self._relay: MqttChangeRelay | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> StateContext:
        self.activate(asyncio.get_running_loop())
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    def activate(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the relay (if configured) and schedule the accrual pass."""
        if self._config.mqtt_enabled and self._relay is None:
            relay = MqttChangeRelay.from_config(
                self._config,
                loop=loop,
                client_factory=self._relay_client_factory,
            )
            relay.start()
            self._bus.attach(relay)
            self._relay = relay
        if self._config.accrual_enabled:
            self.scheduler.schedule()

    def close(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel()
            self._scheduler = None
        for cell in self._cells:
            cell.close()
        self._cells.clear()
        self._flock = None
        self._inventory = None
        if self._relay is not None:
            self._relay.stop()
            self._relay = None
        self._bus.close()
        if self._owned_area is not None:
            self._owned_area.close()
            self._owned_area = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> FlockConfig:
        return self._config

    @property
    def store(self) -> DurableStore:
        return self._store

    @property
    def bus(self) -> ChangeBus:
        return self._bus

    @property
    def scheduler(self) -> AccrualScheduler:
        if self._scheduler is None:
            self._scheduler = AccrualScheduler(
                self.inventory(),
                self.flock(),
                self._store,
                settle_delay=self._config.settle_delay,
                clock=self._clock,
            )
        return self._scheduler

    def bind(self, key: str, default: T, *, model: Any = None) -> ReactiveCell[T]:
        """Bind a cell owned by this context."""
        cell: ReactiveCell[T] = bind(self._store, self._bus, key, default, model=model)
        self._cells.append(cell)
        return cell

    def flock(self) -> ReactiveCell[list[Bird]]:
        if self._flock is None or self._flock.closed:
            self._flock = self.bind(StorageKey.BIRDS, [], model=list[Bird])
        return self._flock

    def inventory(self) -> ReactiveCell[list[InventoryItem]]:
        if self._inventory is None or self._inventory.closed:
            self._inventory = self.bind(StorageKey.INVENTORY, [], model=list[InventoryItem])
        return self._inventory

    def population(self) -> int:
        """Active birds right now."""
        return active_population(self.flock().value)

    def stamp(self, record: R) -> R:
        return stamp(record, self._store, clock=self._clock)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def run_accrual(self, today: date | None = None) -> AccrualResult:
        """Run an accrual pass immediately, outside the activation schedule."""
        return self.scheduler.run_pass(today)

    def clear_collections(self) -> None:
        """Empty every record collection.  Settings and identity are kept."""
        for key in DATA_COLLECTION_KEYS:
            written = self._store.set(key, "[]")
            self._bus.publish(key, [], raw="[]" if written else None)
        _logger.info("Cleared %d record collections", len(DATA_COLLECTION_KEYS))

    def restore_defaults(self) -> None:
        """Remove every record collection so bound cells fall back to defaults."""
        for key in DATA_COLLECTION_KEYS:
            removed = self._store.remove(key)
            self._bus.publish_removal(key, announce=removed)
        _logger.info("Reset %d record collections to defaults", len(DATA_COLLECTION_KEYS))
