from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# Remote "value in set" filters accept at most this many values.
MAX_CHUNK_SIZE = 100


class SyncConfig(BaseModel):
    """Pull/push behaviour of the sync coordinators."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cooldown_seconds: float = Field(default=8.0, validation_alias="SYNC_COOLDOWN_SECONDS")
    page_size: int = Field(default=100, validation_alias="SYNC_PAGE_SIZE")
    chunk_size: int = Field(default=MAX_CHUNK_SIZE, validation_alias="SYNC_CHUNK_SIZE")
    max_concurrency: int = Field(default=8, validation_alias="SYNC_MAX_CONCURRENCY")
    bootstrap_enabled: bool = Field(default=True, validation_alias="SYNC_BOOTSTRAP_ENABLED")

    @field_validator("cooldown_seconds", mode="before")
    @classmethod
    def _validate_cooldown(cls, value: Any) -> float:
        try:
            parsed = float(str(value if value not in (None, "") else 8.0))
        except ValueError as exc:
            msg = "Sync cooldown must be a number of seconds"
            raise ValueError(msg) from exc
        if parsed < 0:
            msg = "Sync cooldown cannot be negative"
            raise ValueError(msg)
        return parsed

    @field_validator("page_size", "chunk_size", "max_concurrency", mode="before")
    @classmethod
    def _validate_limits(cls, value: Any, info: ValidationInfo) -> int:
        bounds = {
            "page_size": (1, 400),
            "chunk_size": (1, MAX_CHUNK_SIZE),
            "max_concurrency": (1, 64),
        }
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        low, high = bounds[info.field_name]
        if parsed < low or parsed > high:
            msg = f"Sync {info.field_name.replace('_', ' ')} must be between {low} and {high}"
            raise ValueError(msg)
        return parsed
