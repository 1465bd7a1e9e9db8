from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest


@dataclass
class FakeReasonCode:
    value: int = 0


@dataclass
class FakeMessage:
    topic: str
    payload: bytes


@dataclass
class FakeMqttClient:
    """Records what the relay does with a paho client."""

    client_id: str
    connected_to: tuple[str, int, int] | None = None
    credentials: tuple[str, str | None] | None = None
    subscriptions: list[str] = field(default_factory=list)
    published: list[tuple[str, bytes, int]] = field(default_factory=list)
    loop_running: bool = False
    disconnected: bool = False
    on_connect: Callable[..., None] | None = None
    on_message: Callable[..., None] | None = None
    on_disconnect: Callable[..., None] | None = None

    def enable_logger(self, _logger: Any) -> None:
        return None

    def username_pw_set(self, username: str, password: str | None = None) -> None:
        self.credentials = (username, password)

    def connect(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connected_to = (host, port, keepalive)

    def loop_start(self) -> None:
        self.loop_running = True
        if self.on_connect is not None:
            self.on_connect(self, None, None, FakeReasonCode(0), None)

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnected = True

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append(topic)

    def publish(self, topic: str, payload: bytes, qos: int = 0) -> None:
        self.published.append((topic, payload, qos))

    def deliver(self, topic: str, payload: bytes) -> None:
        assert self.on_message is not None
        self.on_message(self, None, FakeMessage(topic=topic, payload=payload))


@pytest.fixture
def mqtt_clients() -> list[FakeMqttClient]:
    return []


@pytest.fixture
def mqtt_client_factory(mqtt_clients: list[FakeMqttClient]) -> Callable[[str], FakeMqttClient]:
    def _factory(client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id=client_id)
        mqtt_clients.append(client)
        return client

    return _factory
