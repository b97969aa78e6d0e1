"""Rating domain model and the reviewer-based merge rule."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterable

MAX_STARS = 3


class RatingCriterion(str, Enum):
    ACTION = "action"
    SUSPENSE = "suspense"
    MUSIC = "music"
    AMBITION = "ambition"
    EROTIC = "erotic"


def canonical_reviewer(name: str) -> str:
    return name.strip().lower()


class Rating(BaseModel):
    """One reviewer's star scores for one movie."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    movie_id: str = Field(alias="movieId")
    reviewer_name: str = Field(alias="reviewerName")
    scores: dict[RatingCriterion, int] = Field(default_factory=dict)
    comment: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("scores")
    @classmethod
    def _clamp_scores(cls, value: dict[RatingCriterion, int]) -> dict[RatingCriterion, int]:
        return {criterion: max(0, min(MAX_STARS, stars)) for criterion, stars in value.items()}

    @property
    def reviewer_key(self) -> str:
        return canonical_reviewer(self.reviewer_name)

    @property
    def average_stars(self) -> float:
        if not self.scores:
            return 0.0
        return sum(self.scores.values()) / len(self.scores)

    @property
    def average_score_normalized_to_10(self) -> float:
        return self.average_stars / MAX_STARS * 10.0

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_payload(cls, payload: str | bytes) -> Rating:
        return cls.model_validate_json(payload)


def merge_ratings(*sources: Iterable[Rating]) -> list[Rating]:
    """Combine rating collections, keeping one rating per (movie, reviewer).

    Reviewer names compare case-insensitively. When a reviewer appears more
    than once for a movie, the rating seen last wins; the result keeps the
    position of the first occurrence.
    """
    merged: dict[tuple[str, str], Rating] = {}
    for source in sources:
        for rating in source:
            merged[(rating.movie_id, rating.reviewer_key)] = rating
    return list(merged.values())
