from __future__ import annotations

from pathlib import Path

import pytest

from pyflock.config import FlockConfig
from pyflock.exceptions import FlockConfigError


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "PYFLOCK_STORAGE_DIR",
        "PYFLOCK_CONTEXT_ID",
        "PYFLOCK_SETTLE_DELAY",
        "PYFLOCK_ACCRUAL_ENABLED",
        "PYFLOCK_MQTT_ENABLED",
        "PYFLOCK_MQTT_HOST",
        "PYFLOCK_MQTT_PORT",
        "PYFLOCK_MQTT_TOPIC",
        "PYFLOCK_MQTT_KEEPALIVE",
        "PYFLOCK_MQTT_USERNAME",
        "PYFLOCK_MQTT_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    config = FlockConfig.from_env()

    assert config.storage_dir is None
    assert config.settle_delay == 2.0
    assert config.accrual_enabled is True
    assert config.mqtt_enabled is False
    assert len(config.context_id) == 16


def test_context_ids_differ_per_instance() -> None:
    assert FlockConfig().context_id != FlockConfig().context_id


def test_from_env_reads_variables(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("PYFLOCK_STORAGE_DIR", str(tmp_path))
    clean_env.setenv("PYFLOCK_CONTEXT_ID", "barn-tablet")
    clean_env.setenv("PYFLOCK_SETTLE_DELAY", "0.5")
    clean_env.setenv("PYFLOCK_ACCRUAL_ENABLED", "off")
    clean_env.setenv("PYFLOCK_MQTT_ENABLED", "yes")
    clean_env.setenv("PYFLOCK_MQTT_HOST", "broker.local")
    clean_env.setenv("PYFLOCK_MQTT_PORT", "8883")

    config = FlockConfig.from_env()

    assert config.storage_dir == tmp_path
    assert config.context_id == "barn-tablet"
    assert config.settle_delay == 0.5
    assert config.accrual_enabled is False
    assert config.mqtt_enabled is True
    assert config.mqtt_host == "broker.local"
    assert config.mqtt_port == 8883


def test_unknown_bool_falls_back_to_default(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("PYFLOCK_ACCRUAL_ENABLED", "maybe")

    assert FlockConfig.from_env().accrual_enabled is True


def test_overrides_win_over_env(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("PYFLOCK_SETTLE_DELAY", "5")

    assert FlockConfig.from_env(settle_delay=0.0).settle_delay == 0.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"settle_delay": -1.0},
        {"mqtt_enabled": True},
        {"context_id": ""},
    ],
)
def test_invalid_configuration_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(FlockConfigError):
        FlockConfig(**kwargs)  # type: ignore[arg-type]
