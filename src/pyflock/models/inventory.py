"""Inventory item records (feed, medicine, supplies, product)."""

from __future__ import annotations

from datetime import date
from typing import ClassVar

from pydantic import Field, field_validator

from pyflock.models._base import AuditedRecord


class InventoryItem(AuditedRecord):
    """A consumable resource.

    Items with ``auto_accrual_enabled`` and a positive
    ``daily_rate_per_consumer`` are drawn down once per elapsed calendar day
    by the accrual scheduler.  ``last_accrual_date`` records the last day
    that was accounted for.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "isAutoFeed": "autoAccrualEnabled",
        "dailyRatePerBird": "dailyRatePerConsumer",
        "lastAutoDeductDate": "lastAccrualDate",
    }

    id: str
    name: str = ""
    category: str = "Feed"
    quantity: float = 0.0
    unit: str = ""
    restock_threshold: float = 0.0
    daily_rate_per_consumer: float | None = Field(default=None, ge=0)
    auto_accrual_enabled: bool = False
    last_accrual_date: date | None = None
    last_updated: str | None = None
    notes: str | None = None

    @field_validator("quantity")
    @classmethod
    def _never_negative(cls, value: float) -> float:
        return max(0.0, value)

    @property
    def tracks_accrual(self) -> bool:
        return self.auto_accrual_enabled and bool(self.daily_rate_per_consumer and self.daily_rate_per_consumer > 0)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.restock_threshold


def low_stock_items(items: list[InventoryItem] | None) -> list[InventoryItem]:
    """Items at or below their restock threshold."""
    if not items:
        return []
    return [item for item in items if item.is_low_stock]
