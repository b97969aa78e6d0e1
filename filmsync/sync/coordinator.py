"""Pull/push orchestration shared by all entity families.

A coordinator owns one family's ``LocalSnapshot`` and the ``RecordStore``
instances for its record types. Subclasses only describe how records map to
the family's collection (``fetch_remote``, ``decode``, ``merge``, ``encode``);
the cycle mechanics live here:

- pull: fetch everything for the active scope, decode (skipping bad
  records), merge, and apply with ``Origin.REMOTE`` so no push is triggered
- push: diff the previous and current collection by identity, delete what
  vanished and upsert everything present, with bounded concurrency
- single-flight per scope, an 8 second cooldown for non-forced pulls, and a
  one-time seed of an empty remote from local data
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from filmsync.adapters.records.errors import RecordDecodeError
from filmsync.core.logging_utils import generate_correlation_id
from filmsync.core.time_utils import monotonic
from filmsync.sync.models import (
    MergeConflict,
    Origin,
    PullPhase,
    PushPhase,
    SyncResult,
    record_error,
)
from filmsync.utils.retry_utils import is_transient_error

if TYPE_CHECKING:
    from collections.abc import Callable

    from filmsync.adapters.records.models import Record
    from filmsync.config.sync import SyncConfig
    from filmsync.sync.group_context import GroupContext
    from filmsync.sync.models import RemoteEntry
    from filmsync.sync.record_store import RecordStore
    from filmsync.sync.snapshot import LocalSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncCoordinator(Generic[T]):
    family: str = ""

    def __init__(
        self,
        snapshot: LocalSnapshot[T],
        group: GroupContext,
        stores: list[RecordStore],
        *,
        config: SyncConfig,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.snapshot = snapshot
        self.group = group
        self.config = config
        self._clock = clock
        self._stores = {store.record_type: store for store in stores}
        for store in stores:
            store.on_conflict = self._record_conflict

        self.pull_state = PullPhase.IDLE
        self.push_state = PushPhase.IDLE
        self.last_pull: SyncResult | None = None
        self.last_push: SyncResult | None = None
        self.conflicts: list[MergeConflict] = []

        self._pulls_in_flight: set[str | None] = set()
        self._last_pull_at: float | None = None
        self._push_lock = asyncio.Lock()
        self._push_tasks: set[asyncio.Task[SyncResult]] = set()
        self._unsubscribe = snapshot.subscribe(self._on_snapshot_change)
        self.restore(group.scope)

    # ------------------------------------------------------------ family hooks

    async def fetch_remote(self, scope: str | None) -> list[Record]:
        raise NotImplementedError

    def decode(self, record: Record) -> Any:
        """Turn one record into a domain value or raise ``RecordDecodeError``."""
        raise NotImplementedError

    def merge(self, entities: list[Any], local: T, scope: str | None) -> T:
        raise NotImplementedError

    def encode(self, collection: T, scope: str | None) -> dict[str, RemoteEntry]:
        """Map a collection to ``{identity: RemoteEntry}``."""
        raise NotImplementedError

    def is_empty(self, collection: T) -> bool:
        return not collection

    def after_apply(self, collection: T, scope: str | None) -> None:
        """Called after a pulled collection was applied to the snapshot."""

    def on_restored(self, scope: str | None) -> None:
        """Called after the snapshot was reloaded for a new scope."""

    # ------------------------------------------------------------ public API

    @property
    def value(self) -> T:
        return self.snapshot.value

    @property
    def pending_pushes(self) -> int:
        return len(self._push_tasks)

    def restore(self, scope: str | None) -> None:
        self.snapshot.restore(scope)
        self.on_restored(scope)

    def set_local(self, collection: T) -> bool:
        return self.snapshot.set(collection, Origin.LOCAL)

    def apply_remote(self, collection: T) -> bool:
        return self.snapshot.set(collection, Origin.REMOTE)

    def on_local_mutation(self) -> asyncio.Task[SyncResult] | None:
        """Push the whole current collection again."""
        current = self.snapshot.value
        return self.schedule_push(current, current)

    async def refresh(self, force: bool = False) -> SyncResult | None:
        """Pull the active scope. Returns None when skipped by a guard."""
        scope = self.group.scope
        extra = {"family": self.family, "scope": scope}
        if scope in self._pulls_in_flight:
            logger.debug("sync_pull_skipped_in_flight", extra=extra)
            return None

        now = self._clock()
        if (
            not force
            and self._last_pull_at is not None
            and now - self._last_pull_at < self.config.cooldown_seconds
        ):
            logger.debug("sync_pull_throttled", extra=extra)
            return None

        self._pulls_in_flight.add(scope)
        self._last_pull_at = now
        try:
            return await self._pull(scope)
        finally:
            self._pulls_in_flight.discard(scope)

    def schedule_push(
        self, previous: T, current: T, scope: str | None = None
    ) -> asyncio.Task[SyncResult] | None:
        target_scope = self.snapshot.scope if scope is None else scope
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "sync_push_no_event_loop", extra={"family": self.family, "scope": target_scope}
            )
            return None
        task = loop.create_task(self.push(previous, current, target_scope))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until every scheduled push has finished."""
        while self._push_tasks:
            await asyncio.gather(*list(self._push_tasks), return_exceptions=True)

    def close(self) -> None:
        self._unsubscribe()

    # ------------------------------------------------------------------ pull

    async def _pull(self, scope: str | None) -> SyncResult:
        started = time.perf_counter()
        result = SyncResult(
            family=self.family,
            direction="pull",
            scope=scope,
            correlation_id=generate_correlation_id(),
        )

        local_before = self.snapshot.value
        records = await self._fetch_for(scope, result)
        if records is None:
            return self._finish(result, started)

        if (
            not records
            and self.config.bootstrap_enabled
            and not self.is_empty(self.snapshot.value)
        ):
            await self._seed_remote(scope, result)
            records = await self._fetch_for(scope, result)
            if records is None:
                return self._finish(result, started)
            if not records:
                logger.warning("sync_bootstrap_unconfirmed", extra=self._log_extra(result))
                self.pull_state = PullPhase.APPLIED
                return self._finish(result, started)

        self.pull_state = PullPhase.MERGING
        entities = self._decode_all(records, result)
        local = self.snapshot.value
        merged = self.merge(entities, local, scope)
        # A local edit made while the fetch was in flight loses to the remote set.
        if local != local_before and merged != local:
            logger.warning("sync_pull_overrode_local_change", extra=self._log_extra(result))
        self.snapshot.set(merged, Origin.REMOTE)
        self.after_apply(merged, scope)
        result.items_synced = len(entities)
        self.pull_state = PullPhase.APPLIED
        return self._finish(result, started)

    async def _fetch_for(self, scope: str | None, result: SyncResult) -> list[Record] | None:
        """Fetch the scope's records; None when the fetch failed or went stale."""
        self.pull_state = PullPhase.PULLING
        # Let in-flight pushes land first so the pull sees them.
        async with self._push_lock:
            pass

        try:
            records = await self.fetch_remote(scope)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.pull_state = PullPhase.FAILED
            record_error(result, f"pull failed: {exc}", is_transient_error(exc))
            logger.exception("sync_pull_failed", extra=self._log_extra(result))
            return None

        if self.group.scope != scope or self.snapshot.scope != scope:
            result.discarded = True
            if not self._pulls_in_flight - {scope}:
                self.pull_state = PullPhase.IDLE
            logger.info(
                "sync_pull_discarded_stale",
                extra={**self._log_extra(result), "active_scope": self.group.scope},
            )
            return None
        return records

    def _decode_all(self, records: list[Record], result: SyncResult) -> list[Any]:
        entities: list[Any] = []
        for record in records:
            try:
                entities.append(self.decode(record))
            except RecordDecodeError as exc:
                result.items_skipped += 1
                logger.warning(
                    "sync_record_decode_failed",
                    extra={
                        **self._log_extra(result),
                        "identity": record.record_name,
                        "record_type": record.record_type,
                        "error": exc.reason,
                    },
                )
        return entities

    async def _seed_remote(self, scope: str | None, result: SyncResult) -> None:
        logger.info("sync_bootstrap_seeding", extra=self._log_extra(result))
        seed_result = await self.push(self.snapshot.empty_factory(), self.snapshot.value, scope)
        result.bootstrapped = True
        result.conflicts += seed_result.conflicts
        for message in seed_result.errors:
            record_error(result, message, message in seed_result.retryable_errors)

    # ------------------------------------------------------------------ push

    def _on_snapshot_change(self, previous: T, current: T, origin: Origin) -> None:
        if origin is not Origin.LOCAL:
            logger.debug(
                "sync_push_suppressed",
                extra={"family": self.family, "scope": self.snapshot.scope, "origin": origin},
            )
            return
        self.schedule_push(previous, current)

    async def push(self, previous: T, current: T, scope: str | None) -> SyncResult:
        """Mirror the change from ``previous`` to ``current`` to the remote store.

        Never raises for record failures; they are collected in the result.
        """
        async with self._push_lock:
            return await self._push_locked(previous, current, scope)

    async def _push_locked(self, previous: T, current: T, scope: str | None) -> SyncResult:
        started = time.perf_counter()
        result = SyncResult(
            family=self.family,
            direction="push",
            scope=scope,
            correlation_id=generate_correlation_id(),
        )

        self.push_state = PushPhase.DIFFING
        before = self.encode(previous, scope)
        after = self.encode(current, scope)
        operations: list[tuple[str, str, RemoteEntry]] = [
            ("delete", identity, before[identity]) for identity in before.keys() - after.keys()
        ]
        operations.extend(("upsert", identity, entry) for identity, entry in after.items())

        self.push_state = PushPhase.PUSHING
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        conflicts_before = len(self.conflicts)

        async def _run(operation: str, identity: str, entry: RemoteEntry) -> None:
            async with semaphore:
                store = self._stores[entry.record_type]
                if operation == "delete":
                    await store.delete(identity)
                else:
                    await store.upsert(identity, entry.fields)

        outcomes = await asyncio.gather(
            *(_run(*operation) for operation in operations), return_exceptions=True
        )

        for (operation, identity, entry), outcome in zip(operations, outcomes, strict=True):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                result.items_failed += 1
                record_error(
                    result,
                    f"{operation} {entry.record_type}/{identity} failed: {outcome}",
                    is_transient_error(outcome),
                )
                logger.warning(
                    "sync_push_record_failed",
                    extra={
                        **self._log_extra(result),
                        "operation": operation,
                        "record_type": entry.record_type,
                        "identity": identity,
                        "error": str(outcome),
                    },
                )
            elif operation == "delete":
                result.items_deleted += 1
            else:
                result.items_synced += 1

        result.conflicts = len(self.conflicts) - conflicts_before
        self.push_state = PushPhase.DONE
        return self._finish(result, started)

    def _record_conflict(self, event: MergeConflict) -> None:
        self.conflicts.append(event)

    # --------------------------------------------------------------- helpers

    def _log_extra(self, result: SyncResult) -> dict[str, Any]:
        return {
            "family": self.family,
            "scope": result.scope,
            "direction": result.direction,
            "correlation_id": result.correlation_id,
        }

    def _finish(self, result: SyncResult, started: float) -> SyncResult:
        result.duration_seconds = round(time.perf_counter() - started, 3)
        if result.direction == "pull":
            self.last_pull = result
        else:
            self.last_push = result
        logger.info(
            f"sync_{result.direction}_completed",
            extra={
                **self._log_extra(result),
                "synced": result.items_synced,
                "deleted": result.items_deleted,
                "skipped": result.items_skipped,
                "failed": result.items_failed,
                "conflicts": result.conflicts,
                "errors": len(result.errors),
                "discarded": result.discarded,
                "duration_seconds": result.duration_seconds,
            },
        )
        return result
