"""Storage keys and shared defaults."""

from __future__ import annotations

from enum import StrEnum


class StorageKey(StrEnum):
    """Keys into the durable store.  Each key holds one fixed JSON shape."""

    BIRDS = "poultry_birds"
    INVENTORY = "poultry_inventory"
    CURRENT_USER = "poultry_current_user"
    DEVICE_NAME = "poultry_device_name"

    # Consumed only by the record screens.
    EGGS = "poultry_eggs"
    FINANCE = "poultry_finance"
    HEALTH = "poultry_health"
    INCUBATION = "poultry_incubation"
    TASKS = "poultry_tasks"
    LOGIN_LOGS = "poultry_login_logs"
    AUDIT_LOGS = "poultry_audit_logs"
    FARM_NAME = "poultry_farm_name"
    CURRENCY = "poultry_currency"


#: Record collections wiped by "start fresh" / "restore defaults".
#: Settings, identity and log keys are deliberately absent.
DATA_COLLECTION_KEYS: tuple[StorageKey, ...] = (
    StorageKey.BIRDS,
    StorageKey.EGGS,
    StorageKey.HEALTH,
    StorageKey.INVENTORY,
    StorageKey.INCUBATION,
    StorageKey.FINANCE,
)

DEFAULT_ACTOR = "Admin"
DEFAULT_DEVICE = "Unknown Device"

#: Seconds to wait after activation before the accrual pass runs.
DEFAULT_SETTLE_DELAY: float = 2.0

ACTIVE_STATUS = "Active"
