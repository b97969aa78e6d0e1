"""Rating collection sync."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from filmsync.adapters.records.errors import RecordDecodeError
from filmsync.adapters.records.models import SortKey
from filmsync.core.time_utils import monotonic, utc_now
from filmsync.domain.rating import Rating, canonical_reviewer, merge_ratings
from filmsync.sync.constants import (
    FAMILY_RATINGS,
    FIELD_GROUP_ID,
    FIELD_MOVIE_ID,
    FIELD_PAYLOAD,
    FIELD_REVIEWER_NAME,
    FIELD_UPDATED_AT,
    RECORD_TYPE_RATING,
)
from filmsync.sync.coordinator import SyncCoordinator
from filmsync.sync.keys import compose_natural_key, derive_identity
from filmsync.sync.models import RemoteEntry
from filmsync.sync.record_store import RecordStore
from filmsync.sync.snapshot import LocalSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from filmsync.adapters.records.models import Record
    from filmsync.adapters.records.protocols import RemoteRecordStore
    from filmsync.config.sync import SyncConfig
    from filmsync.persistence.blob_store import BlobStore
    from filmsync.sync.group_context import GroupContext

logger = logging.getLogger(__name__)

_ratings_adapter = TypeAdapter(list[Rating])


def rating_snapshot(blobs: BlobStore) -> LocalSnapshot[list[Rating]]:
    return LocalSnapshot(
        FAMILY_RATINGS,
        blobs,
        dump=lambda ratings: _ratings_adapter.dump_json(
            ratings, by_alias=True, exclude_none=True
        ),
        load=_ratings_adapter.validate_json,
        empty=list,
    )


def rating_identity(scope: str | None, movie_id: str, reviewer_name: str) -> str:
    return derive_identity(scope, compose_natural_key(movie_id, reviewer_name))


class RatingSync(SyncCoordinator[list[Rating]]):
    """Per-reviewer ratings of the active group's movies.

    One record per (group, movie, reviewer), so a second rating by the same
    reviewer, in any letter case, overwrites the first instead of adding
    another. When ``movie_ids`` yields ids, the pull only fetches ratings for
    those movies using chunked ``movieId IN (...)`` queries.
    """

    family = FAMILY_RATINGS

    def __init__(
        self,
        snapshot: LocalSnapshot[list[Rating]],
        group: GroupContext,
        remote: RemoteRecordStore,
        *,
        config: SyncConfig,
        movie_ids: Callable[[], Iterable[str]] | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.store = RecordStore(
            remote,
            RECORD_TYPE_RATING,
            sort_keys=(SortKey(FIELD_UPDATED_AT),),
            page_size=config.page_size,
            chunk_size=config.chunk_size,
        )
        self._movie_ids = movie_ids
        super().__init__(snapshot, group, [self.store], config=config, clock=clock)

    # -------------------------------------------------------------- views

    def ratings_for(self, movie_id: str) -> list[Rating]:
        return [rating for rating in self.value if rating.movie_id == movie_id]

    # ---------------------------------------------------------- mutations

    def set_rating(self, rating: Rating) -> bool:
        """Add a rating, replacing the same reviewer's rating for that movie."""
        reviewer_name = rating.reviewer_name.strip()
        if not reviewer_name:
            return False
        if reviewer_name != rating.reviewer_name:
            rating = rating.model_copy(update={"reviewer_name": reviewer_name})
        key = (rating.movie_id, rating.reviewer_key)
        ratings: list[Rating] = []
        replaced = False
        for existing in self.value:
            if (existing.movie_id, existing.reviewer_key) == key:
                if not replaced:
                    ratings.append(rating)
                    replaced = True
                continue
            ratings.append(existing)
        if not replaced:
            ratings.append(rating)
        return self.set_local(ratings)

    def remove_rating(self, movie_id: str, reviewer_name: str) -> bool:
        reviewer = canonical_reviewer(reviewer_name)
        ratings = [
            rating
            for rating in self.value
            if not (rating.movie_id == movie_id and rating.reviewer_key == reviewer)
        ]
        if len(ratings) == len(self.value):
            return False
        return self.set_local(ratings)

    # ---------------------------------------------------------- sync hooks

    async def fetch_remote(self, scope: str | None) -> list[Record]:
        movie_ids = list(self._movie_ids()) if self._movie_ids else []
        if movie_ids:
            return await self.store.fetch_matching(scope, FIELD_MOVIE_ID, movie_ids)
        return await self.store.fetch_all(scope)

    def decode(self, record: Record) -> Rating:
        payload = record.get(FIELD_PAYLOAD)
        if not payload:
            raise RecordDecodeError(record.record_name, "missing payload")
        try:
            rating = Rating.from_payload(payload)
        except (ValidationError, ValueError) as exc:
            raise RecordDecodeError(record.record_name, str(exc)) from exc

        movie_id = record.get(FIELD_MOVIE_ID)
        reviewer_name = record.get(FIELD_REVIEWER_NAME)
        if movie_id and movie_id != rating.movie_id:
            rating = rating.model_copy(update={"movie_id": movie_id})
        if reviewer_name and reviewer_name != rating.reviewer_name:
            rating = rating.model_copy(update={"reviewer_name": reviewer_name})
        return rating

    def merge(self, entities: list[Rating], local: list[Rating], scope: str | None) -> list[Rating]:
        return merge_ratings(entities)

    def encode(self, collection: list[Rating], scope: str | None) -> dict[str, RemoteEntry]:
        updated_at = utc_now().isoformat()
        return {
            rating_identity(scope, rating.movie_id, rating.reviewer_name): RemoteEntry(
                RECORD_TYPE_RATING,
                {
                    FIELD_PAYLOAD: rating.to_payload(),
                    FIELD_MOVIE_ID: rating.movie_id,
                    FIELD_REVIEWER_NAME: rating.reviewer_name,
                    FIELD_GROUP_ID: scope,
                    FIELD_UPDATED_AT: updated_at,
                },
            )
            for rating in collection
        }
