"""Movie domain model.

Movies are identified by a UUID assigned on the device that created them.
The whole model travels as an opaque JSON payload inside the remote record;
only the backlog flag, group id and timestamps are lifted into indexed fields.
"""

from __future__ import annotations

import uuid
from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field, field_validator

_FNV_OFFSET_BASIS = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3
_INT32_MAX = 2**31 - 1


def legacy_person_id(name: str) -> int:
    """Stable negative person id for cast entries stored as plain names.

    FNV-1a over the trimmed, lowercased name, folded into the 32-bit range.
    Negative ids never collide with real catalogue ids, which are positive.
    """
    value = _FNV_OFFSET_BASIS
    for byte in name.strip().lower().encode("utf-8"):
        value ^= byte
        value = (value * _FNV_PRIME) % 2**64
    return -max(1, value % _INT32_MAX)


class CastMember(BaseModel):
    person_id: int = Field(alias="personId")
    name: str

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}


class Movie(BaseModel):
    """A movie in a group's collection, either watched or on the backlog."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    year: str = ""
    tmdb_rating: float | None = Field(default=None, alias="tmdbRating")
    poster_path: str | None = Field(default=None, alias="posterPath")
    watched_date: datetime | None = Field(default=None, alias="watchedDate")
    watched_location: str | None = Field(default=None, alias="watchedLocation")
    tmdb_id: int | None = Field(default=None, alias="tmdbId")
    genres: list[str] | None = None
    genre_ids: list[int] | None = Field(default=None, alias="genreIds")
    keywords: list[str] | None = None
    keyword_ids: list[int] | None = Field(default=None, alias="keywordIds")
    suggested_by: str | None = Field(default=None, alias="suggestedBy")
    cast: list[CastMember] | None = None
    directors: list[CastMember] | None = None
    group_id: str | None = Field(default=None, alias="groupId")
    group_name: str | None = Field(default=None, alias="groupName")
    is_backlog: bool = Field(default=False, alias="isBacklog")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(str(value)))

    @field_validator("cast", mode="before")
    @classmethod
    def _migrate_legacy_cast(cls, value: Any) -> Any:
        # Older payloads stored the cast as a list of plain names.
        if isinstance(value, list) and value and all(isinstance(item, str) for item in value):
            names = [item.strip() for item in value if item.strip()]
            if not names:
                return None
            return [{"personId": legacy_person_id(name), "name": name} for name in names]
        return value

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_payload(cls, payload: str | bytes) -> Movie:
        return cls.model_validate_json(payload)
