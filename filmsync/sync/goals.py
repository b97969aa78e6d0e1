"""Annual and custom viewing goal sync."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from filmsync.adapters.records.errors import RecordDecodeError
from filmsync.core.time_utils import monotonic, utc_now
from filmsync.domain.goal import CustomGoalsPayload, GoalBook, upgrade_custom_goals_payload
from filmsync.sync.constants import (
    CUSTOM_GOALS_NATURAL_KEY,
    FAMILY_GOALS,
    FIELD_GROUP_ID,
    FIELD_PAYLOAD,
    FIELD_TARGET,
    FIELD_UPDATED_AT,
    FIELD_YEAR,
    RECORD_TYPE_ANNUAL_GOAL,
    RECORD_TYPE_CUSTOM_GOALS,
)
from filmsync.sync.coordinator import SyncCoordinator
from filmsync.sync.keys import compose_natural_key, derive_identity
from filmsync.sync.models import RemoteEntry
from filmsync.sync.record_store import RecordStore
from filmsync.sync.snapshot import LocalSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from filmsync.adapters.records.models import Record
    from filmsync.adapters.records.protocols import RemoteRecordStore
    from filmsync.config.sync import SyncConfig
    from filmsync.domain.goal import CustomGoal
    from filmsync.persistence.blob_store import BlobStore
    from filmsync.sync.group_context import GroupContext

logger = logging.getLogger(__name__)


def goal_snapshot(blobs: BlobStore) -> LocalSnapshot[GoalBook]:
    return LocalSnapshot(
        FAMILY_GOALS,
        blobs,
        dump=lambda book: json.dumps(book.to_storage()).encode("utf-8"),
        load=lambda data: GoalBook.from_storage(json.loads(data)),
        empty=GoalBook,
    )


def annual_goal_identity(scope: str | None, year: int) -> str:
    return derive_identity(scope, compose_natural_key("annual", str(year)))


def custom_goals_identity(scope: str | None) -> str:
    return derive_identity(scope, CUSTOM_GOALS_NATURAL_KEY)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


class GoalSync(SyncCoordinator[GoalBook]):
    """Goals of the active group.

    Annual goals are one ``ViewingGoal`` record per year. All custom goals of
    a group share one ``ViewingCustomGoals`` record whose ``payload`` holds
    the v3 envelope; older envelopes are upgraded when decoded.
    """

    family = FAMILY_GOALS

    def __init__(
        self,
        snapshot: LocalSnapshot[GoalBook],
        group: GroupContext,
        remote: RemoteRecordStore,
        *,
        config: SyncConfig,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.annual_store = RecordStore(
            remote,
            RECORD_TYPE_ANNUAL_GOAL,
            page_size=config.page_size,
            chunk_size=config.chunk_size,
        )
        self.custom_store = RecordStore(
            remote,
            RECORD_TYPE_CUSTOM_GOALS,
            page_size=config.page_size,
            chunk_size=config.chunk_size,
        )
        super().__init__(
            snapshot, group, [self.annual_store, self.custom_store], config=config, clock=clock
        )

    # ---------------------------------------------------------- mutations

    def set_annual_goal(self, year: int, target: int) -> bool:
        if target <= 0:
            return False
        book = self.value
        return self.set_local(book.model_copy(update={"annual": {**book.annual, year: target}}))

    def remove_annual_goal(self, year: int) -> bool:
        book = self.value
        if year not in book.annual:
            return False
        annual = {key: value for key, value in book.annual.items() if key != year}
        return self.set_local(book.model_copy(update={"annual": annual}))

    def add_custom_goal(self, goal: CustomGoal) -> bool:
        """Add a custom goal unless one with the same ``unique_key`` exists."""
        if goal.target <= 0:
            return False
        book = self.value
        key = goal.unique_key
        if key is not None and any(existing.unique_key == key for existing in book.custom):
            return False
        if any(existing.id == goal.id for existing in book.custom):
            return False
        return self.set_local(book.model_copy(update={"custom": [*book.custom, goal]}))

    def remove_custom_goal(self, goal_id: str) -> bool:
        book = self.value
        custom = [goal for goal in book.custom if goal.id != goal_id]
        if len(custom) == len(book.custom):
            return False
        return self.set_local(book.model_copy(update={"custom": custom}))

    # ---------------------------------------------------------- sync hooks

    def is_empty(self, collection: GoalBook) -> bool:
        return collection.is_empty()

    async def fetch_remote(self, scope: str | None) -> list[Record]:
        annual = await self.annual_store.fetch_all(scope)
        custom = await self.custom_store.fetch_all(scope)
        return [*annual, *custom]

    def decode(self, record: Record) -> tuple[str, Any]:
        if record.record_type == RECORD_TYPE_CUSTOM_GOALS:
            return "custom", upgrade_custom_goals_payload(record.get(FIELD_PAYLOAD))

        year = _as_int(record.get(FIELD_YEAR))
        target = _as_int(record.get(FIELD_TARGET))
        if year is None or target is None:
            raise RecordDecodeError(record.record_name, "annual goal without year or target")
        return "annual", (year, target)

    def merge(
        self, entities: list[tuple[str, Any]], local: GoalBook, scope: str | None
    ) -> GoalBook:
        annual: dict[int, int] = {}
        custom: CustomGoalsPayload | None = None
        for kind, value in entities:
            if kind == "annual":
                year, target = value
                annual[year] = target
            else:
                custom = value
        return GoalBook(annual=annual, custom=custom.goals if custom else [])

    def encode(self, collection: GoalBook, scope: str | None) -> dict[str, RemoteEntry]:
        updated_at = utc_now().isoformat()
        entries = {
            annual_goal_identity(scope, year): RemoteEntry(
                RECORD_TYPE_ANNUAL_GOAL,
                {
                    FIELD_GROUP_ID: scope,
                    FIELD_YEAR: year,
                    FIELD_TARGET: target,
                    FIELD_UPDATED_AT: updated_at,
                },
            )
            for year, target in collection.annual.items()
        }
        if collection.custom:
            entries[custom_goals_identity(scope)] = RemoteEntry(
                RECORD_TYPE_CUSTOM_GOALS,
                {
                    FIELD_GROUP_ID: scope,
                    FIELD_PAYLOAD: CustomGoalsPayload(goals=collection.custom).to_json(),
                    FIELD_UPDATED_AT: updated_at,
                },
            )
        return entries
