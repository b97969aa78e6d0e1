"""Viewing goals: annual targets and custom goals.

Custom goals are stored as a versioned envelope. Three shapes exist in the
wild:

- v1: a bare JSON list of decade goals
- v2: ``{"version": 2, "decadeGoals": [...], "actorGoals": [...]}``
- v3: ``{"version": 3, "goals": [...]}`` with one tagged rule per goal

``upgrade_custom_goals_payload`` turns any of them into v3 once, at load
time. Only v3 is ever written.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CURRENT_PAYLOAD_VERSION = 3

# Legacy payloads encode dates as seconds since 2001-01-01T00:00:00Z.
_REFERENCE_EPOCH = datetime(2001, 1, 1, tzinfo=UTC)


def _coerce_timestamp(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _REFERENCE_EPOCH + timedelta(seconds=float(value))
    return value


def _now() -> datetime:
    return datetime.now(UTC)


class CustomGoalType(str, Enum):
    DECADE = "decade"
    PERSON = "person"
    DIRECTOR = "director"
    GENRE = "genre"
    KEYWORD = "keyword"


class _Rule(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}


class ReleaseDecadeRule(_Rule):
    kind: Literal["releaseDecade"] = "releaseDecade"
    decade_start: int = Field(alias="decadeStart")

    @property
    def unique_key(self) -> str | None:
        return f"decade:{self.decade_start}"

    @property
    def title(self) -> str:
        suffix = self.decade_start if self.decade_start >= 2000 else self.decade_start % 100
        return f"Movies from the {suffix}s"


class PersonRule(_Rule):
    kind: Literal["person"] = "person"
    person_id: int = Field(alias="personId")
    person_name: str = Field(alias="personName")
    profile_path: str | None = Field(default=None, alias="profilePath")

    @property
    def unique_key(self) -> str | None:
        return f"person:{self.person_id}" if self.person_id > 0 else None

    @property
    def title(self) -> str:
        return f"Movies with {self.person_name}"


class DirectorRule(_Rule):
    kind: Literal["director"] = "director"
    person_id: int = Field(alias="personId")
    person_name: str = Field(alias="personName")
    profile_path: str | None = Field(default=None, alias="profilePath")

    @property
    def unique_key(self) -> str | None:
        return f"director:{self.person_id}" if self.person_id > 0 else None

    @property
    def title(self) -> str:
        return f"Movies by {self.person_name}"


class GenreRule(_Rule):
    kind: Literal["genre"] = "genre"
    genre_id: int = Field(alias="genreId")
    genre_name: str = Field(alias="genreName")

    @property
    def unique_key(self) -> str | None:
        return f"genre:{self.genre_id}" if self.genre_id > 0 else None

    @property
    def title(self) -> str:
        return f"Genre: {self.genre_name}"


class KeywordRule(_Rule):
    kind: Literal["keyword"] = "keyword"
    keyword_id: int = Field(alias="keywordId")
    keyword_name: str = Field(alias="keywordName")

    @property
    def unique_key(self) -> str | None:
        return f"keyword:{self.keyword_id}" if self.keyword_id > 0 else None

    @property
    def title(self) -> str:
        return f"Keyword: {self.keyword_name}"


GoalRule = Annotated[
    ReleaseDecadeRule | PersonRule | DirectorRule | GenreRule | KeywordRule,
    Field(discriminator="kind"),
]


class CustomGoal(BaseModel):
    """A goal of "watch ``target`` movies matching ``rule``"."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: CustomGoalType
    rule: GoalRule
    target: int
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return _coerce_timestamp(value)

    @property
    def unique_key(self) -> str | None:
        return self.rule.unique_key

    @property
    def title(self) -> str:
        return self.rule.title


class DecadeGoal(BaseModel):
    """v1/v2 decade goal shape."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    decade_start: int = Field(alias="decadeStart")
    target: int
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return _coerce_timestamp(value)

    def to_custom_goal(self) -> CustomGoal:
        return CustomGoal(
            id=self.id,
            type=CustomGoalType.DECADE,
            rule=ReleaseDecadeRule(decade_start=self.decade_start),
            target=self.target,
            created_at=self.created_at,
        )


class ActorGoal(BaseModel):
    """v2 actor goal shape."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    person_id: int = Field(alias="personId")
    person_name: str = Field(alias="personName")
    profile_path: str | None = Field(default=None, alias="profilePath")
    target: int
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return _coerce_timestamp(value)

    def to_custom_goal(self) -> CustomGoal:
        return CustomGoal(
            id=self.id,
            type=CustomGoalType.PERSON,
            rule=PersonRule(
                person_id=self.person_id,
                person_name=self.person_name,
                profile_path=self.profile_path,
            ),
            target=self.target,
            created_at=self.created_at,
        )


class CustomGoalsPayload(BaseModel):
    """The v3 envelope, the only shape written."""

    version: int = CURRENT_PAYLOAD_VERSION
    goals: list[CustomGoal] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class CustomGoalsPayloadV2(BaseModel):
    version: int = 2
    decade_goals: list[DecadeGoal] = Field(default_factory=list, alias="decadeGoals")
    actor_goals: list[ActorGoal] = Field(default_factory=list, alias="actorGoals")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_v3(self) -> CustomGoalsPayload:
        goals = [goal.to_custom_goal() for goal in self.decade_goals]
        goals.extend(goal.to_custom_goal() for goal in self.actor_goals)
        return CustomGoalsPayload(goals=goals)


def upgrade_custom_goals_payload(raw: Any) -> CustomGoalsPayload:
    """Decode a stored custom-goals envelope of any version into v3.

    Accepts the already-parsed JSON value or its ``str``/``bytes`` encoding.
    Anything that cannot be decoded yields an empty v3 payload.
    """
    if raw is None:
        return CustomGoalsPayload()
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("custom_goals_payload_unreadable")
            return CustomGoalsPayload()

    try:
        if isinstance(raw, dict) and "goals" in raw:
            return CustomGoalsPayload.model_validate(raw)
        if isinstance(raw, dict) and ("decadeGoals" in raw or "actorGoals" in raw):
            upgraded = CustomGoalsPayloadV2.model_validate(raw).to_v3()
            logger.debug("custom_goals_payload_upgraded", extra={"from_version": 2})
            return upgraded
        if isinstance(raw, list):
            goals = [DecadeGoal.model_validate(item).to_custom_goal() for item in raw]
            logger.debug("custom_goals_payload_upgraded", extra={"from_version": 1})
            return CustomGoalsPayload(goals=goals)
    except ValidationError as exc:
        logger.warning("custom_goals_payload_invalid", extra={"error": str(exc)})
        return CustomGoalsPayload()

    logger.warning("custom_goals_payload_unknown_shape")
    return CustomGoalsPayload()


class GoalBook(BaseModel):
    """All goals of one group: annual targets by year plus custom goals."""

    annual: dict[int, int] = Field(default_factory=dict)
    custom: list[CustomGoal] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.annual and not self.custom

    def to_storage(self) -> dict[str, Any]:
        return {
            "annual": {str(year): target for year, target in self.annual.items()},
            "custom": CustomGoalsPayload(goals=self.custom).model_dump(
                mode="json", by_alias=True, exclude_none=True
            ),
        }

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> GoalBook:
        annual = {int(year): int(target) for year, target in (data.get("annual") or {}).items()}
        return cls(annual=annual, custom=upgrade_custom_goals_payload(data.get("custom")).goals)
