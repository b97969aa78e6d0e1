"""Unit tests for RecordStore upsert/delete/fetch semantics.

Covers:
- Upsert creating and updating records, idempotence
- Conflict retry on top of the server's version (unrelated fields survive)
- Second conflict keeps the server state and reports a MergeConflict
- Delete of missing records, group-scoped fetching
"""

import unittest
from unittest.mock import AsyncMock

import pytest

from filmsync.adapters.records.errors import (
    ConflictError,
    RecordNotFoundError,
    RecordStoreError,
)
from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.adapters.records.models import Equals, IsMissing, Record
from filmsync.sync.models import MergeConflict
from filmsync.sync.record_store import RecordStore, group_predicate


class TestGroupPredicate(unittest.TestCase):
    def test_group_scope_uses_equality(self):
        assert group_predicate("G1") == Equals("groupId", "G1")

    def test_no_group_uses_absence(self):
        assert group_predicate(None) == IsMissing("groupId")
        assert group_predicate("") == IsMissing("groupId")


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


class TestUpsert(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.remote = InMemoryRecordStore()
        self.events: list[MergeConflict] = []
        self.store = RecordStore(self.remote, "GroupMember", on_conflict=self.events.append)

    async def test_creates_missing_record(self):
        """Upserting an unknown identity creates the record."""
        saved = await self.store.upsert("id-1", {"name": "Alice", "groupId": "G1"})

        assert saved.change_tag is not None
        stored = self.remote.get("GroupMember", "id-1")
        assert stored is not None
        assert stored.values == {"name": "Alice", "groupId": "G1"}

    async def test_repeated_upsert_is_idempotent(self):
        """Upserting the same fields twice leaves one record with those fields."""
        await self.store.upsert("id-1", {"name": "Alice"})
        await self.store.upsert("id-1", {"name": "Alice"})

        assert self.remote.count("GroupMember") == 1
        assert self.remote.get("GroupMember", "id-1").values == {"name": "Alice"}
        assert self.events == []

    async def test_keeps_fields_it_does_not_mention(self):
        self.remote.put("GroupMember", "id-1", {"name": "Alice", "avatar": "a.png"})

        await self.store.upsert("id-1", {"name": "Alicia"})

        assert self.remote.get("GroupMember", "id-1").values == {
            "name": "Alicia",
            "avatar": "a.png",
        }

    async def test_none_removes_a_field(self):
        self.remote.put("GroupMember", "id-1", {"name": "Alice", "groupId": "G1"})

        await self.store.upsert("id-1", {"groupId": None})

        assert self.remote.get("GroupMember", "id-1").values == {"name": "Alice"}

    async def test_conflict_is_retried_on_server_version(self):
        """A concurrent write between read and save is merged, not lost."""
        self.remote.put("GroupMember", "id-1", {"name": "Alice"})
        writes = {"count": 0}

        def concurrent_writer(record: Record) -> None:
            if writes["count"] == 0:
                writes["count"] += 1
                current = self.remote.get("GroupMember", "id-1")
                self.remote.put("GroupMember", "id-1", {**current.values, "note": "remote"})

        self.remote.before_save = concurrent_writer

        await self.store.upsert("id-1", {"name": "Alicia"})

        assert self.remote.get("GroupMember", "id-1").values == {
            "name": "Alicia",
            "note": "remote",
        }
        assert self.events == []

    async def test_second_conflict_keeps_server_state(self):
        """Two lost saves in a row return the server record and emit MergeConflict."""
        self.remote.put("GroupMember", "id-1", {"name": "Alice"})

        def always_write(record: Record) -> None:
            current = self.remote.get("GroupMember", "id-1")
            self.remote.put("GroupMember", "id-1", {**current.values, "note": "remote"})

        self.remote.before_save = always_write

        result = await self.store.upsert("id-1", {"name": "Alicia"})

        assert result.values == {"name": "Alice", "note": "remote"}
        assert len(self.events) == 1
        event = self.events[0]
        assert event.identity == "id-1"
        assert event.record_type == "GroupMember"
        assert event.desired_fields == {"name": "Alicia"}
        assert event.server_record.values["name"] == "Alice"

    async def test_conflict_without_server_record_rereads(self):
        """When the store does not report its version, the record is read again."""
        remote = AsyncMock()
        remote.read_record.side_effect = [
            RecordNotFoundError("GroupMember", "id-1"),
            Record(
                record_type="GroupMember",
                record_name="id-1",
                values={"name": "Al"},
                change_tag="t9",
            ),
        ]
        saved = Record(record_type="GroupMember", record_name="id-1", change_tag="t10")
        remote.save_record.side_effect = [ConflictError("GroupMember", "id-1", None), saved]
        store = RecordStore(remote, "GroupMember")

        result = await store.upsert("id-1", {"name": "Alice"})

        assert result is saved
        assert remote.read_record.await_count == 2
        retried = remote.save_record.await_args_list[1].args[0]
        assert retried.change_tag == "t9"
        assert retried.values == {"name": "Alice"}

    async def test_other_errors_propagate(self):
        self.remote.inject_failure("save_record", RecordStoreError("denied", status_code=403))

        with pytest.raises(RecordStoreError):
            await self.store.upsert("id-1", {"name": "Alice"})


# ---------------------------------------------------------------------------
# Delete and fetch
# ---------------------------------------------------------------------------


class TestDeleteAndFetch(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.remote = InMemoryRecordStore()
        self.store = RecordStore(self.remote, "GroupMember", page_size=2)

    async def test_delete_is_idempotent(self):
        """Deleting a missing record is not an error."""
        self.remote.put("GroupMember", "id-1", {"name": "Alice"})

        await self.store.delete("id-1")
        await self.store.delete("id-1")

        assert self.remote.count("GroupMember") == 0

    async def test_delete_propagates_other_errors(self):
        self.remote.inject_failure("delete_record", RecordStoreError("down", status_code=503))

        with pytest.raises(RecordStoreError):
            await self.store.delete("id-1")

    async def test_fetch_all_is_scoped_to_one_group(self):
        self.remote.put("GroupMember", "a", {"name": "A", "groupId": "G1"})
        self.remote.put("GroupMember", "b", {"name": "B", "groupId": "G1"})
        self.remote.put("GroupMember", "c", {"name": "C", "groupId": "G1"})
        self.remote.put("GroupMember", "d", {"name": "D", "groupId": "G2"})
        self.remote.put("GroupMember", "e", {"name": "E"})

        in_group = await self.store.fetch_all("G1")
        ungrouped = await self.store.fetch_all(None)

        assert sorted(record.record_name for record in in_group) == ["a", "b", "c"]
        assert [record.record_name for record in ungrouped] == ["e"]

    async def test_fetch_matching_filters_by_field(self):
        self.remote.put("GroupMember", "a", {"name": "A", "groupId": "G1"})
        self.remote.put("GroupMember", "b", {"name": "B", "groupId": "G1"})
        self.remote.put("GroupMember", "c", {"name": "A", "groupId": "G2"})

        records = await self.store.fetch_matching("G1", "name", ["A"])

        assert [record.record_name for record in records] == ["a"]
