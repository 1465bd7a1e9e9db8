"""Change Bus: keyed publish/subscribe with local and remote delivery.

Local publishes are delivered synchronously, in subscription order.  Remote
channels surface writes made by *other* contexts; the bus decodes their JSON
payloads and delivers them through the same subscriber lists, so callers
never branch on where a change came from.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pyflock.state.events import ChangeEvent, ChangeOrigin
from pyflock.storage.backends import StorageArea, StorageListener, StorageSignal

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class RemoteChannel(Protocol):
    """Cross-context delivery path."""

    def listen(self, callback: StorageListener) -> Callable[[], None]:
        """Register for signals about other contexts' writes."""
        ...

    def announce(self, key: str, raw: str | None) -> None:
        """Tell other contexts this context wrote ``raw`` (``None``: removed)."""
        ...


class StorageAreaChannel:
    """Remote path backed by a :class:`StorageArea`'s storage-changed signal.

    The origin fires the signal itself whenever a write lands, so there is
    nothing to announce.
    """

    def __init__(self, area: StorageArea) -> None:
        self._area = area

    def listen(self, callback: StorageListener) -> Callable[[], None]:
        return self._area.add_storage_listener(callback)

    def announce(self, key: str, raw: str | None) -> None:
        return None


class _Subscription:
    __slots__ = ("callback",)

    def __init__(self, callback: ChangeCallback) -> None:
        self.callback = callback


class ChangeBus:
    """Keyed pub/sub for one context."""

    def __init__(self, channels: Iterable[RemoteChannel] = ()) -> None:
        self._subscribers: dict[str, list[_Subscription]] = {}
        self._channels: list[RemoteChannel] = []
        self._detach: list[Callable[[], None]] = []
        for channel in channels:
            self.attach(channel)

    def attach(self, channel: RemoteChannel) -> None:
        """Start hearing (and announcing to) another remote channel."""
        self._channels.append(channel)
        self._detach.append(channel.listen(self._on_remote))

    def close(self) -> None:
        """Detach every remote channel and drop all subscribers."""
        for detach in self._detach:
            detach()
        self._detach.clear()
        self._channels.clear()
        self._subscribers.clear()

    def subscribe(self, key: str, callback: ChangeCallback) -> Callable[[], None]:
        sub = _Subscription(callback)
        self._subscribers.setdefault(key, []).append(sub)

        def _unsubscribe() -> None:
            subs = self._subscribers.get(key)
            if subs is None:
                return
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(key, None)

        return _unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, ()))

    def publish(self, key: str, value: Any, *, raw: str | None = None) -> None:
        """Deliver ``value`` to this context's subscribers.

        ``raw`` is the text that landed in durable storage; when given it is
        announced on every remote channel.
        """
        _logger.debug("Publish key=%s announce=%s", key, raw is not None)
        self._dispatch(ChangeEvent(key=key, new_value=value))
        if raw is not None:
            self._announce(key, raw)

    def publish_removal(self, key: str, *, announce: bool = True) -> None:
        _logger.debug("Publish removal key=%s", key)
        self._dispatch(ChangeEvent(key=key, removed=True))
        if announce:
            self._announce(key, None)

    def _announce(self, key: str, raw: str | None) -> None:
        for channel in self._channels:
            try:
                channel.announce(key, raw)
            except Exception:
                _logger.warning("Remote announce failed for key=%s", key, exc_info=True)

    def _on_remote(self, signal: StorageSignal) -> None:
        if signal.new_value is None:
            _logger.debug("Remote removal key=%s", signal.key)
            self._dispatch(ChangeEvent(key=signal.key, origin=ChangeOrigin.REMOTE, removed=True))
            return
        try:
            value = json.loads(signal.new_value)
        except json.JSONDecodeError:
            _logger.warning("Dropping undecodable remote value for key=%s", signal.key)
            return
        _logger.debug("Remote change key=%s", signal.key)
        self._dispatch(ChangeEvent(key=signal.key, new_value=value, origin=ChangeOrigin.REMOTE))

    def _dispatch(self, event: ChangeEvent) -> None:
        for sub in list(self._subscribers.get(event.key, ())):
            try:
                sub.callback(event)
            except Exception:
                _logger.exception("Change subscriber failed for key=%s", event.key)
