"""MQTT relay carrying change notifications between processes.

Contexts in different processes sharing a :class:`~pyflock.storage.FileStorage`
get no storage-changed signal from the filesystem.  The relay fills that
gap: after a successful write each context announces ``{origin, key,
newValue}`` on a topic, and every other context turns the message into a
:class:`~pyflock.storage.StorageSignal` on its own event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pyflock.config import FlockConfig
from pyflock.exceptions import RelayError
from pyflock.storage.backends import StorageListener, StorageSignal


@dataclass(frozen=True)
class RelayMessage:
    """One change notification on the wire.

    ``new_value`` is the stored JSON text, or ``None`` when the key was
    removed.
    """

    origin: str
    key: str
    new_value: str | None


def encode_relay_message(message: RelayMessage) -> bytes:
    body: dict[str, Any] = {"origin": message.origin, "key": message.key}
    if message.new_value is None:
        body["removed"] = True
        body["newValue"] = None
    else:
        body["newValue"] = json.loads(message.new_value)
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def decode_relay_message(payload: bytes) -> RelayMessage:
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RelayError("Relay payload is not JSON") from exc
    if not isinstance(parsed, dict):
        raise RelayError("Relay payload is not an object")

    origin = parsed.get("origin")
    key = parsed.get("key")
    if not isinstance(origin, str) or not origin:
        raise RelayError("Relay payload missing origin")
    if not isinstance(key, str) or not key:
        raise RelayError("Relay payload missing key")

    if parsed.get("removed"):
        return RelayMessage(origin=origin, key=key, new_value=None)
    if "newValue" not in parsed:
        raise RelayError("Relay payload missing newValue")
    return RelayMessage(origin=origin, key=key, new_value=json.dumps(parsed["newValue"]))


class MqttChangeRelay:
    """Threaded paho-mqtt relay that emits storage signals onto an asyncio loop.

    Implements :class:`~pyflock.state.bus.RemoteChannel`.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        context_id: str,
        host: str,
        port: int = 1883,
        topic: str = "pyflock/changes",
        keepalive: int = 60,
        username: str | None = None,
        password: str | None = None,
        client_factory: Callable[[str], mqtt.Client] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._context_id = context_id
        self._host = host
        self._port = port
        self._topic = topic
        self._keepalive = keepalive
        self._username = username
        self._password = password
        self._client_factory = client_factory or _default_client
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._listeners: list[StorageListener] = []

    @classmethod
    def from_config(
        cls,
        config: FlockConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        client_factory: Callable[[str], mqtt.Client] | None = None,
    ) -> MqttChangeRelay:
        if not config.mqtt_host:
            raise RelayError("MQTT relay requires mqtt_host")
        return cls(
            loop=loop,
            context_id=config.context_id,
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic=config.mqtt_topic,
            keepalive=config.mqtt_keepalive,
            username=config.mqtt_username,
            password=config.mqtt_password,
            client_factory=client_factory,
        )

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def listen(self, callback: StorageListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def announce(self, key: str, raw: str | None) -> None:
        client = self._client
        if client is None or not self._running:
            self._logger.debug("MQTT relay not running; not announcing key=%s", key)
            return
        payload = encode_relay_message(RelayMessage(origin=self._context_id, key=key, new_value=raw))
        client.publish(self._topic, payload, qos=1)
        self._logger.debug("MQTT relay announced key=%s topic=%s", key, self._topic)

    def start(self) -> None:
        """Connect and subscribe to the change topic."""
        self.stop()
        self._logger.debug(
            "MQTT relay start requested host=%s port=%s topic=%s context=%s",
            self._host,
            self._port,
            self._topic,
            self._context_id,
        )

        client = self._client_factory(f"pyflock_{self._context_id}")
        client.enable_logger(self._logger)
        if self._username:
            client.username_pw_set(self._username, self._password)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT relay connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT relay connected, subscribing topic=%s", self._topic)
            c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_payload(msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT relay disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except OSError as exc:
            raise RelayError(f"MQTT relay could not connect to {self._host}:{self._port}") from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT relay network loop started")

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT relay disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT relay network loop stopped")

    def handle_payload(self, payload: bytes) -> None:
        """Decode a received payload and hand it to the loop.  Thread-safe."""
        try:
            message = decode_relay_message(payload)
        except RelayError:
            self._logger.debug("MQTT relay dropped malformed payload", exc_info=True)
            return
        if message.origin == self._context_id:
            return
        signal = StorageSignal(key=message.key, old_value=None, new_value=message.new_value)
        self._loop.call_soon_threadsafe(self._deliver, signal)

    def _deliver(self, signal: StorageSignal) -> None:
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception:
                self._logger.exception("MQTT relay listener failed for key=%s", signal.key)


def _default_client(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv5,
    )
