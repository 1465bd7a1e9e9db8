"""Base model for stored farm records.

Every record model inherits from :class:`FlockBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase keys the record screens
  write map to snake_case fields, and dumps go back out as camelCase.
* ``extra="allow"`` so fields this package does not model survive a
  read/modify/write cycle untouched.
* A ``model_validator(mode="before")`` that drops empty form values
  (``None``, ``""``) so the field default is used, and renames legacy keys
  listed in ``_KEY_ALIASES``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class AuditStamp(BaseModel):
    """Who changed a record, from which device, and when."""

    model_config = ConfigDict(frozen=True)

    actor: str
    device: str
    at: datetime


class FlockBaseModel(BaseModel):
    """Base for records stored in the durable store."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = {}
    """``{"legacyKey": "currentKey"}`` renames applied before validation."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _clean_stored_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        working = dict(values)
        aliases: dict[str, str] = getattr(cls, "_KEY_ALIASES", {})
        for old_key, new_key in aliases.items():
            if old_key in working:
                legacy = working.pop(old_key)
                working.setdefault(new_key, legacy)
        return {key: value for key, value in working.items() if value is not None and value != ""}


class AuditedRecord(FlockBaseModel):
    """Record carrying the last audit stamp applied to it."""

    last_modified_by: str | None = None
    last_modified_device: str | None = None
    last_modified_at: datetime | None = None

    @property
    def audit_stamp(self) -> AuditStamp | None:
        if self.last_modified_by is None or self.last_modified_at is None:
            return None
        return AuditStamp(
            actor=self.last_modified_by,
            device=self.last_modified_device or "",
            at=self.last_modified_at,
        )
