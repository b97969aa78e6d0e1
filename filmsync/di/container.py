"""Explicitly constructed sync context.

``SyncContext`` owns the group context, one coordinator (and thereby one
local snapshot and record store set) per family, the remote record store and
the local blob store. Nothing here is a module-level singleton; callers build
a context with ``build_sync_context`` and pass it around.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any

from filmsync.adapters.records.client import HttpRecordStoreClient
from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.config import AppConfig, SyncConfig, load_config
from filmsync.core.time_utils import monotonic
from filmsync.persistence.sqlite import SqliteBlobStore
from filmsync.sync.constants import FAMILY_GOALS, FAMILY_MEMBERS, FAMILY_MOVIES, FAMILY_RATINGS
from filmsync.sync.goals import GoalSync, goal_snapshot
from filmsync.sync.group_context import GroupContext
from filmsync.sync.members import MemberSync, member_snapshot
from filmsync.sync.models import Origin
from filmsync.sync.movies import MovieSync, movie_snapshot
from filmsync.sync.ratings import RatingSync, rating_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Self

    from filmsync.adapters.records.protocols import RemoteRecordStore
    from filmsync.persistence.blob_store import BlobStore
    from filmsync.sync.coordinator import SyncCoordinator
    from filmsync.sync.models import SyncResult

logger = logging.getLogger(__name__)


class SyncContext:
    def __init__(
        self,
        remote: RemoteRecordStore,
        blobs: BlobStore,
        *,
        sync_config: SyncConfig | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        config = sync_config or SyncConfig()
        self.remote = remote
        self.blobs = blobs
        self.config = config
        self.group = GroupContext(blobs)

        self.movies = MovieSync(movie_snapshot(blobs), self.group, remote, config=config, clock=clock)
        self.ratings = RatingSync(
            rating_snapshot(blobs),
            self.group,
            remote,
            config=config,
            movie_ids=self.movies.movie_ids,
            clock=clock,
        )
        self.members = MemberSync(
            member_snapshot(blobs), self.group, remote, blobs, config=config, clock=clock
        )
        self.goals = GoalSync(goal_snapshot(blobs), self.group, remote, config=config, clock=clock)

        self._coordinators: dict[str, SyncCoordinator[Any]] = {
            FAMILY_MOVIES: self.movies,
            FAMILY_RATINGS: self.ratings,
            FAMILY_MEMBERS: self.members,
            FAMILY_GOALS: self.goals,
        }
        self._background: set[asyncio.Task[Any]] = set()
        self._exit_stack = AsyncExitStack()
        self._remove_group_listener = self.group.add_listener(self._on_scope_change)

    async def __aenter__(self) -> Self:
        if hasattr(self.remote, "__aenter__"):
            await self._exit_stack.enter_async_context(self.remote)  # type: ignore[arg-type]
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.drain()
        self._remove_group_listener()
        for coordinator in self._coordinators.values():
            coordinator.close()
        await self._exit_stack.aclose()
        self.blobs.close()

    # ------------------------------------------------------------ families

    @property
    def families(self) -> tuple[str, ...]:
        return tuple(self._coordinators)

    def coordinator(self, family: str) -> SyncCoordinator[Any]:
        try:
            return self._coordinators[family]
        except KeyError:
            raise KeyError(f"unknown sync family: {family!r}") from None

    def current_group_scope(self) -> str | None:
        return self.group.scope

    def entities(self, family: str) -> Any:
        return self.coordinator(family).value

    def set_entities(self, family: str, collection: Any, origin: Origin = Origin.LOCAL) -> bool:
        """Replace a family's local collection; only ``Origin.LOCAL`` triggers a push."""
        return self.coordinator(family).snapshot.set(collection, origin)

    def apply_remote_snapshot(self, family: str, collection: Any) -> bool:
        return self.set_entities(family, collection, Origin.REMOTE)

    def on_local_mutation(self, family: str) -> asyncio.Task[SyncResult] | None:
        return self.coordinator(family).on_local_mutation()

    def observe(self, family: str, callback: Callable[[Any, Origin], None]) -> Callable[[], None]:
        """Call ``callback(collection, origin)`` after every change of a family."""
        return self.coordinator(family).snapshot.subscribe(
            lambda _previous, current, origin: callback(current, origin)
        )

    async def refresh(self, family: str, force: bool = False) -> SyncResult | None:
        return await self.coordinator(family).refresh(force=force)

    async def refresh_all(self, force: bool = False) -> dict[str, SyncResult | None]:
        """Pull every family. Movies go first so ratings see the current movie ids."""
        results: dict[str, SyncResult | None] = {
            FAMILY_MOVIES: await self.movies.refresh(force=force)
        }
        others = [family for family in self._coordinators if family != FAMILY_MOVIES]
        outcomes = await asyncio.gather(
            *(self._coordinators[family].refresh(force=force) for family in others)
        )
        results.update(zip(others, outcomes, strict=True))
        return results

    async def drain(self) -> None:
        """Wait for scheduled pushes and scope-change refreshes to finish."""
        while self._background or any(c.pending_pushes for c in self._coordinators.values()):
            if self._background:
                await asyncio.gather(*list(self._background), return_exceptions=True)
            for coordinator in self._coordinators.values():
                await coordinator.drain()

    # -------------------------------------------------------------- groups

    def create_group(self, name: str | None = None) -> str:
        return self.group.create_new_group(name)

    def join_group(self, code: str) -> bool:
        return self.group.join_group(code)

    def switch_group(self, code: str | None) -> bool:
        return self.group.switch_group(code)

    def leave_group(self) -> bool:
        return self.group.leave_current_group()

    def _on_scope_change(self, scope: str | None) -> None:
        for coordinator in self._coordinators.values():
            coordinator.restore(scope)
        logger.info("sync_scope_changed", extra={"scope": scope})

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("sync_scope_refresh_deferred", extra={"scope": scope})
            return
        task = loop.create_task(self.refresh_all(force=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)


def build_sync_context(
    cfg: AppConfig | None = None,
    *,
    remote: RemoteRecordStore | None = None,
    blobs: BlobStore | None = None,
    clock: Callable[[], float] = monotonic,
) -> SyncContext:
    """Construct a SyncContext from configuration.

    Args:
        cfg: Application configuration. If None, loads from environment.
        remote: Record store. If None, uses the HTTP client, or the in-memory
            store when ``OFFLINE_MODE`` is set.
        blobs: Local blob store. If None, opens the SQLite store at
            ``LOCAL_DB_PATH``.
        clock: Monotonic clock used for pull throttling.

    Returns:
        A SyncContext; use it as an async context manager to open and close
        the remote client.
    """
    cfg = cfg or load_config()

    if remote is None:
        if cfg.runtime.offline_mode:
            remote = InMemoryRecordStore()
        else:
            remote = HttpRecordStoreClient.from_config(cfg.record_store)

    if blobs is None:
        blobs = SqliteBlobStore(cfg.runtime.local_db_path)

    logger.info(
        "sync_context_built",
        extra={
            "remote": type(remote).__name__,
            "offline_mode": cfg.runtime.offline_mode,
        },
    )
    return SyncContext(remote, blobs, sync_config=cfg.sync, clock=clock)
