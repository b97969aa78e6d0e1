"""Movie collection sync."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from filmsync.adapters.records.errors import RecordDecodeError
from filmsync.adapters.records.models import SortKey
from filmsync.core.time_utils import monotonic, utc_now
from filmsync.domain.movie import Movie
from filmsync.sync.constants import (
    FAMILY_MOVIES,
    FIELD_GROUP_ID,
    FIELD_GROUP_NAME,
    FIELD_IS_BACKLOG,
    FIELD_PAYLOAD,
    FIELD_UPDATED_AT,
    RECORD_TYPE_MOVIE,
)
from filmsync.sync.coordinator import SyncCoordinator
from filmsync.sync.models import RemoteEntry
from filmsync.sync.record_store import RecordStore
from filmsync.sync.snapshot import LocalSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from filmsync.adapters.records.models import Record
    from filmsync.adapters.records.protocols import RemoteRecordStore
    from filmsync.config.sync import SyncConfig
    from filmsync.persistence.blob_store import BlobStore
    from filmsync.sync.group_context import GroupContext

logger = logging.getLogger(__name__)

_movies_adapter = TypeAdapter(list[Movie])


def movie_snapshot(blobs: BlobStore) -> LocalSnapshot[list[Movie]]:
    return LocalSnapshot(
        FAMILY_MOVIES,
        blobs,
        dump=lambda movies: _movies_adapter.dump_json(movies, by_alias=True, exclude_none=True),
        load=_movies_adapter.validate_json,
        empty=list,
    )


class MovieSync(SyncCoordinator[list[Movie]]):
    """Watched and backlog movies of the active group.

    One record per movie, named by the movie's UUID. The movie itself is the
    JSON ``payload``; ``isBacklog`` and ``groupId`` are indexed copies, and
    the record's values win over the payload's when both are present.
    """

    family = FAMILY_MOVIES

    def __init__(
        self,
        snapshot: LocalSnapshot[list[Movie]],
        group: GroupContext,
        remote: RemoteRecordStore,
        *,
        config: SyncConfig,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.store = RecordStore(
            remote,
            RECORD_TYPE_MOVIE,
            sort_keys=(SortKey(FIELD_UPDATED_AT),),
            page_size=config.page_size,
            chunk_size=config.chunk_size,
        )
        super().__init__(snapshot, group, [self.store], config=config, clock=clock)

    # -------------------------------------------------------------- views

    @property
    def watched(self) -> list[Movie]:
        return [movie for movie in self.value if not movie.is_backlog]

    @property
    def backlog(self) -> list[Movie]:
        return [movie for movie in self.value if movie.is_backlog]

    def get(self, movie_id: str) -> Movie | None:
        return next((movie for movie in self.value if movie.id == movie_id), None)

    def movie_ids(self) -> list[str]:
        return [movie.id for movie in self.value]

    # ---------------------------------------------------------- mutations

    def add_movie(self, movie: Movie, backlog: bool = False) -> Movie:
        """Add (or replace by id) a movie in the active group."""
        stored = movie.model_copy(
            update={
                "is_backlog": backlog,
                "group_id": self.group.scope,
                "group_name": self.group.name,
            }
        )
        movies = [existing for existing in self.value if existing.id != stored.id]
        movies.append(stored)
        self.set_local(movies)
        return stored

    def remove_movie(self, movie_id: str) -> bool:
        movies = [movie for movie in self.value if movie.id != movie_id]
        if len(movies) == len(self.value):
            return False
        return self.set_local(movies)

    def mark_watched(self, movie_id: str, watched_date: datetime | None = None) -> bool:
        return self._update(
            movie_id, {"is_backlog": False, "watched_date": watched_date or utc_now()}
        )

    def move_to_backlog(self, movie_id: str) -> bool:
        return self._update(movie_id, {"is_backlog": True})

    def _update(self, movie_id: str, changes: dict[str, Any]) -> bool:
        if self.get(movie_id) is None:
            return False
        movies = [
            movie.model_copy(update=changes) if movie.id == movie_id else movie
            for movie in self.value
        ]
        return self.set_local(movies)

    # ---------------------------------------------------------- sync hooks

    async def fetch_remote(self, scope: str | None) -> list[Record]:
        return await self.store.fetch_all(scope)

    def decode(self, record: Record) -> tuple[Movie, str]:
        payload = record.get(FIELD_PAYLOAD)
        if not payload:
            raise RecordDecodeError(record.record_name, "missing payload")
        try:
            movie = Movie.from_payload(payload)
        except (ValidationError, ValueError) as exc:
            raise RecordDecodeError(record.record_name, str(exc)) from exc

        overrides: dict[str, Any] = {}
        if record.get(FIELD_GROUP_ID):
            overrides["group_id"] = record.get(FIELD_GROUP_ID)
        if record.get(FIELD_GROUP_NAME):
            overrides["group_name"] = record.get(FIELD_GROUP_NAME)
        if isinstance(record.get(FIELD_IS_BACKLOG), bool):
            overrides["is_backlog"] = record.get(FIELD_IS_BACKLOG)
        if overrides:
            movie = movie.model_copy(update=overrides)
        return movie, str(record.get(FIELD_UPDATED_AT) or "")

    def merge(
        self, entities: list[tuple[Movie, str]], local: list[Movie], scope: str | None
    ) -> list[Movie]:
        latest: dict[str, tuple[Movie, str]] = {}
        for movie, updated_at in entities:
            current = latest.get(movie.id)
            if current is None or updated_at >= current[1]:
                latest[movie.id] = (movie, updated_at)
        return [movie for movie, _ in latest.values()]

    def after_apply(self, collection: list[Movie], scope: str | None) -> None:
        names = [movie.group_name for movie in collection if movie.group_name]
        if names:
            self.group.adopt_display_name(names[-1], scope)

    def encode(self, collection: list[Movie], scope: str | None) -> dict[str, RemoteEntry]:
        updated_at = utc_now().isoformat()
        group_name = self.group.name if scope and scope == self.group.scope else None
        entries: dict[str, RemoteEntry] = {}
        for movie in collection:
            stored = movie.model_copy(
                update={"group_id": scope, "group_name": group_name or movie.group_name}
            )
            entries[movie.id] = RemoteEntry(
                RECORD_TYPE_MOVIE,
                {
                    FIELD_PAYLOAD: stored.to_payload(),
                    FIELD_IS_BACKLOG: stored.is_backlog,
                    FIELD_UPDATED_AT: updated_at,
                    FIELD_GROUP_ID: scope,
                    FIELD_GROUP_NAME: stored.group_name if scope else None,
                },
            )
        return entries
