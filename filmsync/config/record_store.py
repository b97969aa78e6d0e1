from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class RecordStoreConfig(BaseModel):
    """Remote record store connection settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(
        default="http://localhost:8080/api/v1",
        validation_alias="RECORD_STORE_URL",
        description="Base URL of the record store HTTP API",
    )
    api_key: str = Field(default="", validation_alias="RECORD_STORE_API_KEY")
    timeout_sec: int = Field(
        default=60,
        validation_alias="RECORD_STORE_TIMEOUT_SEC",
        description="Fixed request timeout applied to every remote call",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="RECORD_STORE_MAX_RETRIES",
        description="HTTP-level retries for transient failures",
    )

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "").strip()
        if not url:
            return "http://localhost:8080/api/v1"
        if not url.startswith(("http://", "https://")):
            msg = "Record store URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("api_key", mode="before")
    @classmethod
    def _strip_api_key(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("timeout_sec", "max_retries", mode="before")
    @classmethod
    def _validate_bounded_int(cls, value: Any, info: ValidationInfo) -> int:
        bounds = {"timeout_sec": (1, 600), "max_retries": (0, 10)}
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        low, high = bounds[info.field_name]
        if parsed < low or parsed > high:
            msg = f"{info.field_name.replace('_', ' ')} must be between {low} and {high}"
            raise ValueError(msg)
        return parsed
