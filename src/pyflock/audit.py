"""Audit Stamper: attach "who / which device / when" to a record."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar, overload

from pyflock._constants import DEFAULT_ACTOR, DEFAULT_DEVICE, StorageKey
from pyflock.models._base import AuditedRecord, AuditStamp
from pyflock.storage.durable import DurableStore

R = TypeVar("R", bound=AuditedRecord)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _read_identity(store: DurableStore, key: str, default: str) -> str:
    # Identity keys are written both as plain text and as JSON strings.
    raw = store.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return raw.strip()
    if isinstance(decoded, str):
        return decoded.strip() or default
    return raw.strip()


def as_utc(value: datetime) -> datetime:
    """Convert to UTC.  Naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def current_stamp(store: DurableStore, *, clock: Callable[[], datetime] = _utcnow) -> AuditStamp:
    """Build the stamp a write made right now would carry."""
    return AuditStamp(
        actor=_read_identity(store, StorageKey.CURRENT_USER, DEFAULT_ACTOR),
        device=_read_identity(store, StorageKey.DEVICE_NAME, DEFAULT_DEVICE),
        at=as_utc(clock()),
    )


@overload
def stamp(record: R, store: DurableStore, *, clock: Callable[[], datetime] = ...) -> R: ...


@overload
def stamp(
    record: Mapping[str, Any], store: DurableStore, *, clock: Callable[[], datetime] = ...
) -> dict[str, Any]: ...


def stamp(
    record: AuditedRecord | Mapping[str, Any],
    store: DurableStore,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> AuditedRecord | dict[str, Any]:
    """Return a copy of ``record`` carrying the current audit stamp.

    Models get their ``last_modified_*`` fields replaced; plain dicts get
    ``lastModifiedBy`` / ``lastModifiedDevice`` / ``lastModifiedAt`` keys.
    The input is never mutated, and re-stamping simply overwrites.
    """
    audit = current_stamp(store, clock=clock)
    if isinstance(record, AuditedRecord):
        return record.model_copy(
            update={
                "last_modified_by": audit.actor,
                "last_modified_device": audit.device,
                "last_modified_at": audit.at,
            }
        )
    return {
        **record,
        "lastModifiedBy": audit.actor,
        "lastModifiedDevice": audit.device,
        "lastModifiedAt": format_timestamp(audit.at),
    }
