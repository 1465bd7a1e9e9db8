from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from pyflock.models import InventoryItem
from pyflock.state import ChangeBus, StorageAreaChannel, bind
from pyflock.storage import DurableStore, FileStorage, MemoryStorage, StorageArea


class _Context:
    """Minimal stand-in for one running context."""

    def __init__(self, area: StorageArea) -> None:
        self.area = area
        self.store = DurableStore(area)
        self.bus = ChangeBus([StorageAreaChannel(area)])


@pytest.fixture
def origin() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def ctx(origin: MemoryStorage) -> _Context:
    return _Context(origin.open_area())


def test_absent_key_uses_default_without_writing(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", ["default"])

    assert cell.value == ["default"]
    assert ctx.store.get("k") is None


def test_corrupt_value_falls_back_and_is_not_overwritten(ctx: _Context) -> None:
    ctx.store.set("k", "{not json")

    cell = bind(ctx.store, ctx.bus, "k", [])

    assert cell.value == []
    assert ctx.store.get("k") == "{not json"


def test_value_of_wrong_shape_falls_back(ctx: _Context) -> None:
    ctx.store.set("inv", json.dumps({"id": "inv-1"}))

    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    assert cell.value == []
    assert cell.rejected == []


def test_read_your_writes(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", 0)

    cell.set(2)

    assert cell.value == 2
    assert ctx.store.get("k") == "2"


def test_updater_uses_cached_value(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", [1])

    cell.set(lambda prev: [*prev, 2])
    cell.set(lambda prev: [*prev, 3])

    assert cell.value == [1, 2, 3]
    assert json.loads(ctx.store.get("k") or "null") == [1, 2, 3]


def test_binding_pair(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", "a")
    value, set_value = cell.binding()

    set_value("b")

    assert value == "a"
    assert cell.value == "b"


def test_same_context_cells_converge(ctx: _Context) -> None:
    first = bind(ctx.store, ctx.bus, "k", 0)
    second = bind(ctx.store, ctx.bus, "k", 0)

    first.set(5)
    assert second.value == 5

    second.set(lambda prev: prev + 1)
    assert first.value == 6


def test_cross_context_convergence(origin: MemoryStorage, ctx: _Context) -> None:
    other = _Context(origin.open_area())
    cell_a = bind(ctx.store, ctx.bus, "k", "v0")
    cell_b = bind(other.store, other.bus, "k", "v0")
    seen_b: list[Any] = []
    cell_b.subscribe(seen_b.append)

    cell_a.set("v1")

    assert cell_b.value == "v1"
    assert seen_b == ["v1"]


def test_remote_values_validated_against_model(origin: MemoryStorage, ctx: _Context) -> None:
    other = _Context(origin.open_area())
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    other.store.set("inv", json.dumps([{"id": "inv-1", "name": "Layer Pellets", "quantity": 50}]))
    assert cell.value[0].name == "Layer Pellets"

    other.store.set("inv", json.dumps({"quantity": "lots"}))
    assert cell.value[0].name == "Layer Pellets"


def test_write_failure_still_updates_cache(caplog: pytest.LogCaptureFixture) -> None:
    origin = MemoryStorage(quota_bytes=20)
    ctx = _Context(origin.open_area())
    other = _Context(origin.open_area())
    cell = bind(ctx.store, ctx.bus, "k", "")
    sibling = bind(ctx.store, ctx.bus, "k", "")
    remote = bind(other.store, other.bus, "k", "")

    cell.set("x" * 100)

    assert cell.value == "x" * 100
    assert sibling.value == "x" * 100
    assert ctx.store.get("k") is None
    assert remote.value == ""
    assert "Durable write failed" in caplog.text


def test_unserializable_value_is_a_write_failure(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", None)
    marker = object()

    cell.set(marker)

    assert cell.value is marker
    assert ctx.store.get("k") is None


def test_subscribers_notified_only_on_change(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", 0)
    seen: list[int] = []
    unsubscribe = cell.subscribe(seen.append)

    cell.set(1)
    cell.set(1)
    ctx.bus.publish("k", 1)
    unsubscribe()
    cell.set(2)

    assert seen == [1]


def test_removal_reverts_to_default(origin: MemoryStorage, ctx: _Context) -> None:
    other = _Context(origin.open_area())
    cell = bind(ctx.store, ctx.bus, "k", "default")
    cell.set("value")

    other.store.remove("k")

    assert cell.value == "default"


def test_close_keeps_stored_value(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", 0)
    cell.set(3)
    cell.close()

    ctx.bus.publish("k", 4)

    assert cell.closed
    assert cell.value == 3
    assert ctx.store.get("k") == "3"
    assert ctx.bus.subscriber_count("k") == 0


def test_reload_picks_up_bypassing_writer(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "k", 0)

    ctx.store.set("k", "9")
    assert cell.value == 0

    assert cell.reload() == 9
    assert cell.value == 9


def test_model_values_dump_camel_case(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    cell.set([InventoryItem(id="inv-1", daily_rate_per_consumer=0.12, auto_accrual_enabled=True)])

    stored = json.loads(ctx.store.get("inv") or "[]")
    assert stored[0]["dailyRatePerConsumer"] == 0.12
    assert stored[0]["autoAccrualEnabled"] is True
    assert "lastAccrualDate" not in stored[0]


def test_undecodable_file_falls_back_to_default(tmp_path: Path) -> None:
    (tmp_path / "poultry_inventory.json").write_bytes(b"\xff\xfe[1,2]")
    store = DurableStore(FileStorage(tmp_path))

    cell = bind(store, ChangeBus(), "poultry_inventory", [], model=list[InventoryItem])

    assert cell.value == []


# ------------------------------------------------------------------
# Per-record validation of list models
# ------------------------------------------------------------------

_MIXED = [
    {"id": "a", "name": "Layer feed", "quantity": 50},
    {"id": "b", "quantity": "lots"},
]


def test_invalid_record_does_not_hide_siblings(ctx: _Context, caplog: pytest.LogCaptureFixture) -> None:
    ctx.store.set("inv", json.dumps(_MIXED))

    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    assert [item.id for item in cell.value] == ["a"]
    assert cell.rejected == [{"id": "b", "quantity": "lots"}]
    assert "Skipping invalid record 1" in caplog.text


def test_updater_keeps_invalid_records_in_storage(ctx: _Context) -> None:
    ctx.store.set("inv", json.dumps(_MIXED))
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    cell.set(lambda items: [*items, InventoryItem(id="c", quantity=1)])

    stored = json.loads(ctx.store.get("inv") or "[]")
    assert [record["id"] for record in stored] == ["a", "c", "b"]
    assert stored[0]["name"] == "Layer feed"
    assert stored[2]["quantity"] == "lots"


def test_remote_list_with_invalid_record(origin: MemoryStorage, ctx: _Context) -> None:
    other = _Context(origin.open_area())
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    other.store.set("inv", json.dumps(_MIXED))

    assert [item.id for item in cell.value] == ["a"]
    assert cell.rejected == [{"id": "b", "quantity": "lots"}]


def test_local_clear_drops_invalid_records(ctx: _Context) -> None:
    ctx.store.set("inv", json.dumps(_MIXED))
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    ctx.store.set("inv", "[]")
    ctx.bus.publish("inv", [], raw="[]")
    cell.set(lambda items: [*items, InventoryItem(id="c")])

    assert cell.rejected == []
    assert [record["id"] for record in json.loads(ctx.store.get("inv") or "[]")] == ["c"]


def test_plain_dicts_validated_before_caching(ctx: _Context) -> None:
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])
    seen: list[list[InventoryItem]] = []
    cell.subscribe(seen.append)

    cell.set([{"id": "inv-1", "quantity": 2}])  # type: ignore[list-item]

    assert isinstance(cell.value[0], InventoryItem)
    assert len(seen) == 1
    assert isinstance(seen[0][0], InventoryItem)


def test_invalid_set_is_dropped(ctx: _Context, caplog: pytest.LogCaptureFixture) -> None:
    cell = bind(ctx.store, ctx.bus, "inv", [], model=list[InventoryItem])

    cell.set([{"quantity": 1}])  # type: ignore[list-item]

    assert cell.value == []
    assert ctx.store.get("inv") is None
    assert "Rejected invalid value" in caplog.text
