"""Unit tests for the shared pull/push cycle.

The movie family is used as the concrete coordinator throughout.

Covers:
- Pull application without echo pushes
- Local mutations pushed as upserts and deletes
- Cooldown throttling, forced pulls and single-flight per scope
- Stale pulls discarded after a scope switch
- Local edits overridden by an in-flight pull are logged
- Pull failures, undecodable records and partial push failures
- Seeding an empty remote from local data
- Conflicts that keep the server state
"""

import asyncio
import unittest

from filmsync.adapters.records.errors import RecordStoreError
from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.domain.movie import Movie
from filmsync.persistence.blob_store import MemoryBlobStore
from filmsync.sync.constants import RECORD_TYPE_MOVIE
from filmsync.sync.group_context import GroupContext
from filmsync.sync.models import PullPhase, PushPhase
from filmsync.sync.movies import MovieSync, movie_snapshot
from sync_helpers import GatedRecordStore, ManualClock, fast_config, seed_movie


class ReadThenWaitRecordStore(InMemoryRecordStore):
    """Store whose first page is read immediately but delivered only once ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.read_done = False

    async def query(self, *args, **kwargs):
        page = await super().query(*args, **kwargs)
        self.read_done = True
        await self.gate.wait()
        return page


def _movie_sync(
    remote: InMemoryRecordStore,
    *,
    scope: str | None = "G1",
    clock: ManualClock | None = None,
    **config,
) -> MovieSync:
    blobs = MemoryBlobStore()
    group = GroupContext(blobs)
    if scope:
        group.join_group(scope)
    return MovieSync(
        movie_snapshot(blobs),
        group,
        remote,
        config=fast_config(**config),
        clock=clock or ManualClock(),
    )


# ---------------------------------------------------------------------------
# Pull
# ---------------------------------------------------------------------------


class TestPull(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.remote = InMemoryRecordStore()
        self.sync = _movie_sync(self.remote)

    async def test_pull_applies_remote_without_pushing(self):
        """Pulled data is applied with REMOTE origin and never echoed back."""
        movie = Movie(title="Alien")
        seed_movie(self.remote, movie, scope="G1")

        result = await self.sync.refresh()

        assert result is not None
        assert result.ok
        assert result.items_synced == 1
        assert [m.id for m in self.sync.value] == [movie.id]
        assert self.sync.pull_state is PullPhase.APPLIED
        assert self.sync.pending_pushes == 0
        assert not any(call[0] == "save_record" for call in self.remote.calls)

    async def test_pull_only_sees_active_group(self):
        seed_movie(self.remote, Movie(title="Mine"), scope="G1")
        seed_movie(self.remote, Movie(title="Theirs"), scope="G2")
        seed_movie(self.remote, Movie(title="Ungrouped"), scope=None)

        await self.sync.refresh()

        assert [m.title for m in self.sync.value] == ["Mine"]

    async def test_pull_failure_leaves_local_data(self):
        """A failed fetch reports the error and keeps the snapshot untouched."""
        local = [Movie(title="Local")]
        self.sync.apply_remote(local)
        self.remote.inject_failure("query", RecordStoreError("service unavailable", 503))

        result = await self.sync.refresh()

        assert not result.ok
        assert len(result.retryable_errors) == 1
        assert self.sync.pull_state is PullPhase.FAILED
        assert self.sync.value == local

    async def test_failure_on_a_later_page_applies_nothing(self):
        for index in range(3):
            seed_movie(self.remote, Movie(title=f"M{index}"), scope="G1")
        sync = _movie_sync(self.remote, page_size=2)
        self.remote.inject_failure("continue_query", RecordStoreError("boom", 400))

        result = await sync.refresh()

        assert result.permanent_errors
        assert sync.value == []

    async def test_undecodable_records_are_skipped(self):
        seed_movie(self.remote, Movie(title="Good"), scope="G1")
        self.remote.put(RECORD_TYPE_MOVIE, "bad", {"payload": "{", "groupId": "G1"})
        self.remote.put(RECORD_TYPE_MOVIE, "empty", {"groupId": "G1"})

        result = await self.sync.refresh()

        assert result.items_synced == 1
        assert result.items_skipped == 2
        assert result.ok
        assert [m.title for m in self.sync.value] == ["Good"]


# ---------------------------------------------------------------------------
# Pull guards
# ---------------------------------------------------------------------------


class TestPullGuards(unittest.IsolatedAsyncioTestCase):
    async def test_cooldown_throttles_unforced_pulls(self):
        clock = ManualClock()
        sync = _movie_sync(InMemoryRecordStore(), clock=clock)

        assert await sync.refresh() is not None
        assert await sync.refresh() is None
        clock.advance(7.9)
        assert await sync.refresh() is None
        assert await sync.refresh(force=True) is not None
        clock.advance(8.1)
        assert await sync.refresh() is not None

    async def test_second_pull_for_same_scope_is_skipped(self):
        remote = GatedRecordStore()
        sync = _movie_sync(remote)

        first = asyncio.create_task(sync.refresh(force=True))
        while remote.queries_started == 0:
            await asyncio.sleep(0)

        assert await sync.refresh(force=True) is None

        remote.gate.set()
        result = await first
        assert result is not None
        assert remote.queries_started == 1

    async def test_stale_pull_is_discarded_after_scope_switch(self):
        """Data fetched for a scope that is no longer active is never applied."""
        remote = GatedRecordStore()
        seed_movie(remote, Movie(title="Old group"), scope="G1")
        sync = _movie_sync(remote)

        stale = asyncio.create_task(sync.refresh(force=True))
        while remote.queries_started == 0:
            await asyncio.sleep(0)
        sync.group.join_group("G2")
        sync.restore("G2")

        fresh = asyncio.create_task(sync.refresh(force=True))
        remote.gate.set()
        stale_result = await stale
        fresh_result = await fresh

        assert stale_result.discarded
        assert not fresh_result.discarded
        assert sync.snapshot.scope == "G2"
        assert sync.value == []

    async def test_local_change_during_fetch_is_reported_when_overridden(self):
        remote = ReadThenWaitRecordStore()
        seed_movie(remote, Movie(title="Remote"), scope="G1")
        sync = _movie_sync(remote)

        pull = asyncio.create_task(sync.refresh(force=True))
        while not remote.read_done:
            await asyncio.sleep(0)
        sync.add_movie(Movie(title="Local"))

        with self.assertLogs("filmsync.sync.coordinator", level="WARNING") as logs:
            remote.gate.set()
            await pull

        assert any("sync_pull_overrode_local_change" in line for line in logs.output)
        assert [m.title for m in sync.value] == ["Remote"]
        await sync.drain()

    async def test_pull_without_concurrent_change_logs_no_override(self):
        remote = InMemoryRecordStore()
        seed_movie(remote, Movie(title="Remote"), scope="G1")
        sync = _movie_sync(remote)
        sync.add_movie(Movie(title="Also local"))
        await sync.drain()

        with self.assertNoLogs("filmsync.sync.coordinator", level="WARNING"):
            await sync.refresh(force=True)


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class TestPush(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.remote = InMemoryRecordStore()
        self.sync = _movie_sync(self.remote)

    async def test_local_change_is_pushed(self):
        movie = self.sync.add_movie(Movie(title="Alien"))
        assert self.sync.pending_pushes == 1

        await self.sync.drain()

        record = self.remote.get(RECORD_TYPE_MOVIE, movie.id)
        assert record is not None
        assert record.get("groupId") == "G1"
        assert record.get("isBacklog") is False
        assert self.sync.last_push.items_synced == 1
        assert self.sync.push_state is PushPhase.DONE

    async def test_removed_entities_are_deleted(self):
        keep = Movie(title="Keep")
        drop = Movie(title="Drop")
        self.sync.set_local([keep, drop])
        await self.sync.drain()

        self.sync.remove_movie(drop.id)
        await self.sync.drain()

        assert self.remote.get(RECORD_TYPE_MOVIE, drop.id) is None
        assert self.remote.get(RECORD_TYPE_MOVIE, keep.id) is not None
        assert self.sync.last_push.items_deleted == 1

    async def test_remote_application_is_not_pushed(self):
        self.sync.apply_remote([Movie(title="From elsewhere")])
        assert self.sync.pending_pushes == 0

    async def test_one_failing_record_does_not_stop_the_others(self):
        self.sync.set_local([Movie(title="A"), Movie(title="B")])
        self.remote.inject_failure("save_record", RecordStoreError("service unavailable", 503))

        await self.sync.drain()

        result = self.sync.last_push
        assert result.items_failed == 1
        assert result.items_synced == 1
        assert len(result.retryable_errors) == 1
        assert self.remote.count(RECORD_TYPE_MOVIE) == 1

    async def test_on_local_mutation_pushes_everything_again(self):
        movie = self.sync.add_movie(Movie(title="Alien"))
        await self.sync.drain()
        await self.remote.delete_record(RECORD_TYPE_MOVIE, movie.id)

        self.sync.on_local_mutation()
        await self.sync.drain()

        assert self.remote.get(RECORD_TYPE_MOVIE, movie.id) is not None

    async def test_double_conflict_keeps_server_state(self):
        """A record another writer keeps changing is left as the server has it."""
        remote = self.remote

        def rival(record):
            remote.put(record.record_type, record.record_name, {**record.values, "rival": True})

        remote.before_save = rival
        movie = self.sync.add_movie(Movie(title="Contested"))
        await self.sync.drain()

        assert self.sync.last_push.conflicts == 1
        assert self.sync.last_push.items_failed == 0
        assert [event.identity for event in self.sync.conflicts] == [movie.id]
        assert remote.get(RECORD_TYPE_MOVIE, movie.id).get("rival") is True


class TestPushWithoutEventLoop(unittest.TestCase):
    def test_mutation_outside_a_loop_only_updates_local_state(self):
        sync = _movie_sync(InMemoryRecordStore())

        sync.add_movie(Movie(title="Offline"))

        assert [m.title for m in sync.value] == ["Offline"]
        assert sync.pending_pushes == 0


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


class TestBootstrap(unittest.IsolatedAsyncioTestCase):
    async def test_empty_remote_is_seeded_from_local_data(self):
        remote = InMemoryRecordStore()
        sync = _movie_sync(remote)
        local = [Movie(title="A"), Movie(title="B")]
        sync.apply_remote(local)

        result = await sync.refresh()

        assert result.bootstrapped
        assert result.items_synced == 2
        assert remote.count(RECORD_TYPE_MOVIE) == 2
        assert {m.id for m in sync.value} == {m.id for m in local}

    async def test_unconfirmed_seed_keeps_local_data(self):
        """If the seeded records cannot be read back, local data is not wiped."""
        remote = InMemoryRecordStore()
        sync = _movie_sync(remote)
        local = [Movie(title="A"), Movie(title="B")]
        sync.apply_remote(local)
        remote.inject_failure("save_record", RecordStoreError("service unavailable", 503), times=2)

        result = await sync.refresh()

        assert result.bootstrapped
        assert len(result.errors) == 2
        assert sync.value == local
        assert sync.pull_state is PullPhase.APPLIED

    async def test_disabled_bootstrap_treats_remote_as_authoritative(self):
        remote = InMemoryRecordStore()
        sync = _movie_sync(remote, bootstrap_enabled=False)
        sync.apply_remote([Movie(title="A")])

        result = await sync.refresh()

        assert not result.bootstrapped
        assert remote.count(RECORD_TYPE_MOVIE) == 0
        assert sync.value == []
