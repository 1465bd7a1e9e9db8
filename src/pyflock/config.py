"""Context configuration for pyflock."""

from __future__ import annotations

import dataclasses
import os
import secrets
from pathlib import Path
from typing import Any

from pyflock._constants import DEFAULT_SETTLE_DELAY
from pyflock.exceptions import FlockConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _new_context_id() -> str:
    return secrets.token_hex(8)


@dataclasses.dataclass(frozen=True)
class FlockConfig:
    """Configuration for one running state context.

    Parameters
    ----------
    storage_dir : Path or None
        Directory backing a :class:`~pyflock.storage.FileStorage`.  ``None``
        keeps state in memory (tests, throwaway sessions).
    context_id : str
        Identifier of this context.  Used to drop our own echoes on the
        MQTT relay.  Random by default.
    settle_delay : float
        Seconds between activation and the accrual pass.
    accrual_enabled : bool
        Schedule an accrual pass on activation.
    mqtt_enabled : bool
        Relay change notifications over MQTT to contexts in other
        processes sharing the same storage directory.
    mqtt_host : str or None
        Broker host.  Required when ``mqtt_enabled`` is set.
    mqtt_port : int
        Broker port.
    mqtt_topic : str
        Topic change notifications are published to and read from.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_username : str or None
        Broker username, if the broker requires one.
    mqtt_password : str or None
        Broker password.
    """

    storage_dir: Path | None = None
    context_id: str = dataclasses.field(default_factory=_new_context_id)
    settle_delay: float = DEFAULT_SETTLE_DELAY
    accrual_enabled: bool = True
    mqtt_enabled: bool = False
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_topic: str = "pyflock/changes"
    mqtt_keepalive: int = 60
    mqtt_username: str | None = None
    mqtt_password: str | None = None

    def __post_init__(self) -> None:
        if self.settle_delay < 0:
            raise FlockConfigError(f"settle_delay must be >= 0, got {self.settle_delay}")
        if self.mqtt_enabled and not self.mqtt_host:
            raise FlockConfigError("mqtt_host is required when mqtt_enabled is set")
        if not self.context_id:
            raise FlockConfigError("context_id must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> FlockConfig:
        """Create configuration from ``PYFLOCK_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        storage_env = env.get("PYFLOCK_STORAGE_DIR")
        if storage_env:
            config_kwargs["storage_dir"] = Path(storage_env).expanduser()

        _ENV_CONFIG_MAP = {
            "PYFLOCK_CONTEXT_ID": "context_id",
            "PYFLOCK_MQTT_HOST": "mqtt_host",
            "PYFLOCK_MQTT_TOPIC": "mqtt_topic",
            "PYFLOCK_MQTT_USERNAME": "mqtt_username",
            "PYFLOCK_MQTT_PASSWORD": "mqtt_password",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        delay_env = env.get("PYFLOCK_SETTLE_DELAY")
        if delay_env is not None and "settle_delay" not in overrides:
            config_kwargs["settle_delay"] = float(delay_env)

        port_env = env.get("PYFLOCK_MQTT_PORT")
        if port_env is not None and "mqtt_port" not in overrides:
            config_kwargs["mqtt_port"] = int(port_env)

        keepalive_env = env.get("PYFLOCK_MQTT_KEEPALIVE")
        if keepalive_env is not None and "mqtt_keepalive" not in overrides:
            config_kwargs["mqtt_keepalive"] = int(keepalive_env)

        if "accrual_enabled" not in overrides:
            config_kwargs["accrual_enabled"] = _env_bool(env.get("PYFLOCK_ACCRUAL_ENABLED"), True)
        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("PYFLOCK_MQTT_ENABLED"), False)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
