"""Group member sync and the selected-member preference."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import TypeAdapter

from filmsync.adapters.records.errors import RecordDecodeError
from filmsync.adapters.records.models import SortKey
from filmsync.core.time_utils import monotonic, utc_now
from filmsync.domain.member import Member, canonical_name, sort_members
from filmsync.persistence.blob_store import family_scope_key
from filmsync.sync.constants import (
    FAMILY_MEMBERS,
    FIELD_GROUP_ID,
    FIELD_NAME,
    FIELD_UPDATED_AT,
    RECORD_TYPE_MEMBER,
)
from filmsync.sync.coordinator import SyncCoordinator
from filmsync.sync.keys import derive_identity
from filmsync.sync.models import RemoteEntry
from filmsync.sync.record_store import RecordStore
from filmsync.sync.snapshot import LocalSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from filmsync.adapters.records.models import Record
    from filmsync.adapters.records.protocols import RemoteRecordStore
    from filmsync.config.sync import SyncConfig
    from filmsync.persistence.blob_store import BlobStore
    from filmsync.sync.group_context import GroupContext

logger = logging.getLogger(__name__)

SELECTED_MEMBER_STORAGE_NAME = "SelectedMember"

_members_adapter = TypeAdapter(list[Member])


def member_snapshot(blobs: BlobStore) -> LocalSnapshot[list[Member]]:
    return LocalSnapshot(
        FAMILY_MEMBERS,
        blobs,
        dump=_members_adapter.dump_json,
        load=_members_adapter.validate_json,
        empty=list,
    )


class MemberSync(SyncCoordinator[list[Member]]):
    family = FAMILY_MEMBERS

    def __init__(
        self,
        snapshot: LocalSnapshot[list[Member]],
        group: GroupContext,
        remote: RemoteRecordStore,
        blobs: BlobStore,
        *,
        config: SyncConfig,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.store = RecordStore(
            remote,
            RECORD_TYPE_MEMBER,
            sort_keys=(SortKey(FIELD_NAME),),
            page_size=config.page_size,
            chunk_size=config.chunk_size,
        )
        self._blobs = blobs
        self._selected: str | None = None
        super().__init__(snapshot, group, [self.store], config=config, clock=clock)

    # ---------------------------------------------------------- selection

    @property
    def selected(self) -> Member | None:
        if self._selected is None:
            return None
        key = canonical_name(self._selected)
        return next((member for member in self.value if member.key == key), None)

    def select_member(self, name: str | None) -> bool:
        if name is None:
            self._store_selection(None)
            return True
        key = canonical_name(name)
        member = next((member for member in self.value if member.key == key), None)
        if member is None:
            return False
        self._store_selection(member.name)
        return True

    def _reconcile_selection(self) -> None:
        """Keep the selected name if it still exists, else fall back to the first member."""
        if self.selected is not None:
            return
        members = self.value
        self._store_selection(members[0].name if members else None)

    def _selection_key(self) -> str:
        return family_scope_key(SELECTED_MEMBER_STORAGE_NAME, self.snapshot.scope)

    def _store_selection(self, name: str | None) -> None:
        self._selected = name
        if name is None:
            self._blobs.delete(self._selection_key())
        else:
            self._blobs.save(self._selection_key(), name.encode("utf-8"))

    # ---------------------------------------------------------- mutations

    def add_member(self, name: str) -> bool:
        """Add a member by name; empty names and case-insensitive duplicates are ignored."""
        cleaned = name.strip()
        if not cleaned:
            return False
        key = canonical_name(cleaned)
        if any(member.key == key for member in self.value):
            return False
        self.set_local(sort_members([*self.value, Member(name=cleaned)]))
        if self.selected is None:
            self._store_selection(cleaned)
        return True

    def remove_member(self, name: str) -> bool:
        key = canonical_name(name)
        members = [member for member in self.value if member.key != key]
        if len(members) == len(self.value):
            return False
        self.set_local(members)
        self._reconcile_selection()
        return True

    # ---------------------------------------------------------- sync hooks

    def on_restored(self, scope: str | None) -> None:
        data = self._blobs.load(self._selection_key())
        self._selected = data.decode("utf-8") if data else None
        self._reconcile_selection()

    async def fetch_remote(self, scope: str | None) -> list[Record]:
        return await self.store.fetch_all(scope)

    def decode(self, record: Record) -> Member:
        name = record.get(FIELD_NAME)
        if not isinstance(name, str) or not name.strip():
            raise RecordDecodeError(record.record_name, "missing member name")
        return Member(name=name.strip())

    def merge(self, entities: list[Member], local: list[Member], scope: str | None) -> list[Member]:
        return sort_members(entities)

    def after_apply(self, collection: list[Member], scope: str | None) -> None:
        self._reconcile_selection()

    def encode(self, collection: list[Member], scope: str | None) -> dict[str, RemoteEntry]:
        updated_at = utc_now().isoformat()
        return {
            derive_identity(scope, member.name): RemoteEntry(
                RECORD_TYPE_MEMBER,
                {
                    FIELD_NAME: member.name,
                    FIELD_GROUP_ID: scope,
                    FIELD_UPDATED_AT: updated_at,
                },
            )
            for member in collection
        }
