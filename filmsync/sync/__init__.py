"""Group-scoped pull/push synchronization."""

from filmsync.sync.coordinator import SyncCoordinator
from filmsync.sync.goals import GoalSync
from filmsync.sync.group_context import GroupContext
from filmsync.sync.keys import derive_identity
from filmsync.sync.members import MemberSync
from filmsync.sync.models import (
    MergeConflict,
    Origin,
    PullPhase,
    PushPhase,
    RemoteEntry,
    SyncResult,
    record_error,
)
from filmsync.sync.movies import MovieSync
from filmsync.sync.paging import PagedQuery, chunked_query
from filmsync.sync.ratings import RatingSync
from filmsync.sync.record_store import RecordStore, group_predicate
from filmsync.sync.snapshot import LocalSnapshot

__all__ = [
    "GoalSync",
    "GroupContext",
    "LocalSnapshot",
    "MemberSync",
    "MergeConflict",
    "MovieSync",
    "Origin",
    "PagedQuery",
    "PullPhase",
    "PushPhase",
    "RatingSync",
    "RecordStore",
    "RemoteEntry",
    "SyncCoordinator",
    "SyncResult",
    "chunked_query",
    "derive_identity",
    "group_predicate",
    "record_error",
]
