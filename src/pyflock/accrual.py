"""Accrual Scheduler: daily draw-down of consumables by the active flock.

Once per activation, every inventory item with auto-accrual enabled and a
positive per-bird daily rate loses ``elapsed_days * rate * population``
where ``elapsed_days`` counts whole UTC calendar days since the item's
``last_accrual_date``.  The population is the one measured when the pass
runs; no history of it is kept, so a multi-day gap is charged at today's
head count.

A pass is idempotent within a calendar day: the first pass moves
``last_accrual_date`` to today and every later one sees zero elapsed days.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from pyflock._constants import DEFAULT_SETTLE_DELAY
from pyflock.audit import as_utc, stamp
from pyflock.models.flock import Bird, active_population
from pyflock.models.inventory import InventoryItem
from pyflock.state.cell import ReactiveCell
from pyflock.storage.durable import DurableStore

_logger = logging.getLogger(__name__)

ItemStamper = Callable[[InventoryItem], InventoryItem]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def utc_today(clock: Callable[[], datetime] = _utcnow) -> date:
    """Current calendar date in UTC."""
    return as_utc(clock()).date()


def elapsed_days(last: date, today: date) -> int:
    """Whole calendar days from ``last`` to ``today``.  Negative on clock skew."""
    return (today - last).days


@dataclass(frozen=True)
class AccrualChange:
    """What one pass did to one item."""

    item_id: str
    name: str
    elapsed_days: int
    population: int
    consumption: float
    quantity_before: float
    quantity_after: float
    initialized: bool = False


@dataclass(frozen=True)
class AccrualResult:
    items: list[InventoryItem] = field(default_factory=list)
    changes: list[AccrualChange] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    @property
    def total_consumption(self) -> float:
        return round(sum(change.consumption for change in self.changes), 2)


def _accrue_item(item: InventoryItem, today: date, population: int) -> tuple[InventoryItem, AccrualChange] | None:
    if item.last_accrual_date is None:
        change = AccrualChange(
            item_id=item.id,
            name=item.name,
            elapsed_days=0,
            population=population,
            consumption=0.0,
            quantity_before=item.quantity,
            quantity_after=item.quantity,
            initialized=True,
        )
        return item.model_copy(update={"last_accrual_date": today}), change

    days = elapsed_days(item.last_accrual_date, today)
    if days <= 0:
        return None

    rate = item.daily_rate_per_consumer or 0.0
    consumption = 0.0
    new_quantity = item.quantity
    if population > 0:
        consumption = round(days * rate * population, 2)
        new_quantity = round(max(0.0, item.quantity - consumption), 2)

    change = AccrualChange(
        item_id=item.id,
        name=item.name,
        elapsed_days=days,
        population=population,
        consumption=consumption,
        quantity_before=item.quantity,
        quantity_after=new_quantity,
    )
    updated = item.model_copy(
        update={
            "quantity": new_quantity,
            "last_accrual_date": today,
            "last_updated": today.isoformat(),
        }
    )
    return updated, change


def accrue(
    items: Sequence[InventoryItem] | None,
    birds: Sequence[Bird] | None,
    today: date,
    *,
    stamper: ItemStamper | None = None,
) -> AccrualResult:
    """Run one accrual pass over ``items`` without touching storage.

    ``None`` inputs mean "not loaded yet" and produce an empty result.
    """
    if items is None or birds is None:
        return AccrualResult()

    population = active_population(birds)
    out: list[InventoryItem] = []
    changes: list[AccrualChange] = []
    for item in items:
        if not item.tracks_accrual:
            out.append(item)
            continue
        outcome = _accrue_item(item, today, population)
        if outcome is None:
            out.append(item)
            continue
        updated, change = outcome
        if stamper is not None:
            updated = stamper(updated)
        out.append(updated)
        changes.append(change)
        if change.consumption > 0:
            _logger.info(
                "Accrual %s: %d days * %d birds * %s rate = %s consumed (%s -> %s %s)",
                item.name or item.id,
                change.elapsed_days,
                population,
                item.daily_rate_per_consumer,
                change.consumption,
                change.quantity_before,
                change.quantity_after,
                item.unit,
            )
    return AccrualResult(items=out, changes=changes)


class AccrualScheduler:
    """Runs one accrual pass per activation, after a settle delay.

    The delay lets the flock and inventory cells finish loading.  The pending
    pass is an :class:`asyncio.Task`; :meth:`cancel` drops it, so a context
    that shuts down before the delay elapses never accrues.
    """

    def __init__(
        self,
        inventory: ReactiveCell[list[InventoryItem]],
        flock: ReactiveCell[list[Bird]],
        store: DurableStore,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._inventory = inventory
        self._flock = flock
        self._store = store
        self._settle_delay = settle_delay
        self._clock = clock
        self._task: asyncio.Task[AccrualResult | None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_pass(self, today: date | None = None) -> AccrualResult:
        """Accrue now and write changed items back through the inventory cell."""
        items = self._inventory.value
        birds = self._flock.value
        if not isinstance(items, list) or not isinstance(birds, list):
            _logger.debug("Accrual inputs not loaded; nothing to accrue")
            return AccrualResult()

        result = accrue(
            items,
            birds,
            today or utc_today(self._clock),
            stamper=lambda item: stamp(item, self._store, clock=self._clock),
        )
        if result.changed:
            self._inventory.set(result.items)
            _logger.debug("Accrual pass updated %d item(s)", len(result.changes))
        return result

    def schedule(self) -> asyncio.Task[AccrualResult | None]:
        """Start the one-shot pass.  Must be called from a running loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run_after_settle())
        return self._task

    def cancel(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            _logger.debug("Cancelling pending accrual pass")
            task.cancel()

    async def _run_after_settle(self) -> AccrualResult | None:
        await asyncio.sleep(self._settle_delay)
        try:
            return self.run_pass()
        except Exception:
            _logger.exception("Accrual pass failed")
            return None
