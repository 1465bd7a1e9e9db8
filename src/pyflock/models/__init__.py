"""Record models for the collections the state layer reads and writes."""

from pyflock.models._base import AuditedRecord, AuditStamp, FlockBaseModel
from pyflock.models.flock import Bird, BirdStage, BirdStatus, active_population
from pyflock.models.inventory import InventoryItem, low_stock_items

__all__ = [
    "AuditStamp",
    "AuditedRecord",
    "Bird",
    "BirdStage",
    "BirdStatus",
    "FlockBaseModel",
    "InventoryItem",
    "active_population",
    "low_stock_items",
]
