"""Tests for LocalSnapshot persistence and change notification."""

import json
import unittest

from filmsync.persistence.blob_store import MemoryBlobStore
from filmsync.sync.models import Origin
from filmsync.sync.snapshot import LocalSnapshot


def _snapshot(blobs: MemoryBlobStore) -> LocalSnapshot[list[str]]:
    return LocalSnapshot(
        "members",
        blobs,
        dump=lambda value: json.dumps(value).encode("utf-8"),
        load=lambda data: list(json.loads(data)),
        empty=list,
    )


class TestLocalSnapshot(unittest.TestCase):
    def setUp(self):
        self.blobs = MemoryBlobStore()
        self.snapshot = _snapshot(self.blobs)
        self.changes: list[tuple[list[str], list[str], Origin]] = []
        self.snapshot.subscribe(lambda prev, cur, origin: self.changes.append((prev, cur, origin)))

    def test_storage_key_per_scope(self):
        assert self.snapshot.storage_key == "Members_Default"
        self.snapshot.restore("G1")
        assert self.snapshot.storage_key == "Members_G1"

    def test_set_notifies_with_origin_and_persists(self):
        changed = self.snapshot.set(["alice"], Origin.LOCAL)

        assert changed is True
        assert self.changes == [([], ["alice"], Origin.LOCAL)]
        assert json.loads(self.blobs.load("Members_Default")) == ["alice"]

    def test_setting_an_equal_value_is_a_no_op(self):
        self.snapshot.set(["alice"])
        self.changes.clear()

        assert self.snapshot.set(["alice"], Origin.REMOTE) is False
        assert self.changes == []

    def test_remote_changes_are_persisted(self):
        self.snapshot.set(["bob"], Origin.REMOTE)

        assert json.loads(self.blobs.load("Members_Default")) == ["bob"]
        assert self.changes[-1][2] is Origin.REMOTE

    def test_restore_loads_each_scope_separately(self):
        self.blobs.save("Members_G1", b'["g1-member"]')
        self.blobs.save("Members_G2", b'["g2-member"]')

        self.snapshot.restore("G1")
        assert self.snapshot.value == ["g1-member"]
        self.snapshot.restore("G2")
        assert self.snapshot.value == ["g2-member"]
        self.snapshot.restore(None)
        assert self.snapshot.value == []

        assert all(origin is Origin.RESTORE for _, _, origin in self.changes)

    def test_restore_does_not_rewrite_storage(self):
        self.snapshot.restore("G1")
        assert self.blobs.load("Members_G1") is None

    def test_unreadable_storage_restores_empty(self):
        self.blobs.save("Members_G1", b"{not json")

        self.snapshot.restore("G1")

        assert self.snapshot.value == []
        assert self.snapshot.scope == "G1"

    def test_unsubscribe(self):
        seen: list[Origin] = []
        unsubscribe = self.snapshot.subscribe(lambda prev, cur, origin: seen.append(origin))

        unsubscribe()
        unsubscribe()
        self.snapshot.set(["alice"])

        assert seen == []

    def test_custom_storage_name(self):
        snapshot = LocalSnapshot(
            "members",
            self.blobs,
            dump=lambda value: b"[]",
            load=lambda data: [],
            empty=list,
            storage_name="SelectedMember",
        )
        assert snapshot.storage_key == "SelectedMember_Default"
