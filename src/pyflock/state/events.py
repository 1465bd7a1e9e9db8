"""Change events delivered by the change bus.

Both delivery paths (same-context publishes and remote storage signals)
are normalized into :class:`ChangeEvent` before reaching subscribers.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeOrigin(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class ChangeEvent(BaseModel):
    """A new value for one storage key.  Ephemeral, never persisted."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str = Field(..., description="Storage key")
    new_value: Any = None
    origin: ChangeOrigin = ChangeOrigin.LOCAL
    removed: bool = Field(default=False, description="Key was removed; new_value is meaningless")

    @field_validator("key")
    @classmethod
    def _require_key(cls, value: str) -> str:
        if not value:
            raise ValueError("key must be non-empty")
        return value
