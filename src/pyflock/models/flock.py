"""Flock member records."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from pyflock._constants import ACTIVE_STATUS
from pyflock.models._base import AuditedRecord


class BirdStatus(StrEnum):
    ACTIVE = ACTIVE_STATUS
    SOLD = "Sold"
    DECEASED = "Deceased"


class BirdStage(StrEnum):
    CHICK = "Chick"
    PULLET = "Pullet"
    HEN = "Hen"
    ROOSTER = "Rooster"


class Bird(AuditedRecord):
    """One flock entry: a single bird or a batch of ``count`` birds.

    Parameters
    ----------
    id : str
        Record identifier.
    tag_number : str
        Leg band / batch tag, e.g. ``"RIR-001"``.
    count : int
        Birds covered by this entry.
    status : str
        ``"Active"``, ``"Sold"`` or ``"Deceased"``.  Only active entries
        count towards the population.
    """

    id: str
    tag_number: str = ""
    name: str | None = None
    count: int = 1
    breed: str | None = None
    stage: str | None = None
    hatch_date: str | None = None
    status: str = ACTIVE_STATUS
    notes: str | None = None
    feed_inventory_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == BirdStatus.ACTIVE


def active_population(birds: Iterable[Bird] | None) -> int:
    """Sum of ``count`` over active entries.  ``None`` (not loaded) is 0."""
    if birds is None:
        return 0
    return sum(max(0, bird.count) for bird in birds if bird.is_active)
