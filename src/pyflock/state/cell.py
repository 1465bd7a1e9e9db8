"""Reactive Binding: a cached, self-synchronizing view of one storage key."""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar, cast, get_args, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from pyflock.state.bus import ChangeBus
from pyflock.state.events import ChangeEvent, ChangeOrigin
from pyflock.storage.durable import DurableStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@functools.lru_cache(maxsize=64)
def _adapter_for(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


def _element_model(model: Any) -> Any:
    if get_origin(model) is not list:
        return None
    args = get_args(model)
    return args[0] if args else None


class ReactiveCell(Generic[T]):
    """In-memory value of ``key`` kept in sync with storage and the bus.

    Reading never writes.  Absent or unparsable stored text yields
    ``default``.  ``model`` is any type pydantic can validate
    (e.g. ``list[InventoryItem]``); without it values are plain JSON.

    For ``list[...]`` models each stored record is validated on its own.
    Records that fail are left out of :attr:`value` but kept, as stored, at
    the end of the list written by :meth:`set`.
    """

    def __init__(
        self,
        store: DurableStore,
        bus: ChangeBus,
        key: str,
        default: T,
        *,
        model: Any = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._key = key
        self._default = default
        self._adapter = _adapter_for(model if model is not None else Any)
        element = _element_model(model)
        self._element_adapter = _adapter_for(element) if element is not None else None
        self._rejected: list[Any] = []
        self._subscribers: list[Callable[[T], None]] = []
        self._closed = False
        self._value: T = self._load()
        self._unsubscribe_bus = bus.subscribe(key, self._on_change)

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> T:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def rejected(self) -> list[Any]:
        """Stored records that failed validation, as plain JSON."""
        return list(self._rejected)

    def binding(self) -> tuple[T, Callable[[T | Callable[[T], T]], None]]:
        """``(current_value, set_value)`` pair."""
        return self._value, self.set

    def set(self, next_value: T | Callable[[T], T]) -> None:
        """Store a new value, or apply an updater to the cached one.

        The value is validated first; an invalid value is logged and dropped.
        The cached value changes even when the durable write fails.
        """
        if callable(next_value):
            value = cast(Callable[[T], T], next_value)(self._value)
        else:
            value = next_value
        try:
            value = cast(T, self._adapter.validate_python(value))
        except ValidationError:
            _logger.error("Rejected invalid value for key=%s", self._key, exc_info=True)
            return

        raw = self._serialize(value)
        written = raw is not None and self._store.set(self._key, raw)
        self._apply(value)
        self._bus.publish(self._key, value, raw=raw if written else None)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Call ``callback(value)`` whenever the cached value changes."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def reload(self) -> T:
        """Re-read durable storage, e.g. after a writer bypassed the bus."""
        self._apply(self._load())
        return self._value

    def close(self) -> None:
        """Stop tracking changes.  The stored value is left untouched."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_bus()
        self._subscribers.clear()

    def _validate(self, data: Any) -> tuple[T, list[Any]]:
        if self._element_adapter is None or not isinstance(data, list):
            return cast(T, self._adapter.validate_python(data)), []
        valid: list[Any] = []
        rejected: list[Any] = []
        for index, element in enumerate(data):
            try:
                valid.append(self._element_adapter.validate_python(element))
            except ValidationError:
                _logger.warning("Skipping invalid record %d for key=%s", index, self._key)
                rejected.append(element)
        return cast(T, valid), rejected

    def _read_stored(self) -> tuple[T, list[Any]]:
        raw = self._store.get(self._key)
        if raw is None:
            return self._default, []
        try:
            return self._validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            _logger.warning("Stored value for key=%s is corrupt; using default", self._key)
            return self._default, []

    def _load(self) -> T:
        value, self._rejected = self._read_stored()
        return value

    def _serialize(self, value: T) -> str | None:
        try:
            if self._rejected and isinstance(value, list):
                data = self._adapter.dump_python(value, mode="json", by_alias=True, exclude_none=True)
                return json.dumps([*data, *self._rejected])
            return self._adapter.dump_json(value, by_alias=True, exclude_none=True).decode("utf-8")
        except (PydanticSerializationError, ValueError, TypeError):
            _logger.error("Value for key=%s is not serializable", self._key, exc_info=True)
            return None

    def _on_change(self, event: ChangeEvent) -> None:
        if event.removed:
            self._rejected = []
            self._apply(self._default)
            return
        if event.origin is ChangeOrigin.LOCAL and event.new_value is self._value:
            return
        try:
            value, rejected = self._validate(event.new_value)
        except ValidationError:
            _logger.warning("Ignoring invalid %s value for key=%s", event.origin, self._key)
            return
        if event.origin is ChangeOrigin.REMOTE:
            self._rejected = rejected
        elif self._element_adapter is not None:
            # Local publishes carry only valid records; storage has the rest.
            self._rejected = self._read_stored()[1]
        self._apply(value)

    def _apply(self, value: T) -> None:
        if self._closed:
            self._value = value
            return
        if value == self._value:
            self._value = value
            return
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                _logger.exception("Cell subscriber failed for key=%s", self._key)


def bind(
    store: DurableStore,
    bus: ChangeBus,
    key: str,
    default: T,
    *,
    model: Any = None,
) -> ReactiveCell[T]:
    """Create a :class:`ReactiveCell` for ``key``."""
    return ReactiveCell(store, bus, key, default, model=model)
