"""Generic remote CRUD over one record type, with conflict retry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from filmsync.adapters.records.errors import ConflictError, RecordNotFoundError
from filmsync.adapters.records.models import Equals, IsMissing, Record
from filmsync.sync.constants import DEFAULT_PAGE_SIZE, FIELD_GROUP_ID
from filmsync.sync.models import MergeConflict
from filmsync.sync.paging import PagedQuery, chunked_query

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from filmsync.adapters.records.models import Predicate, SortKey
    from filmsync.adapters.records.protocols import RemoteRecordStore

logger = logging.getLogger(__name__)


def group_predicate(scope: str | None, field: str = FIELD_GROUP_ID) -> Predicate:
    """Records of exactly one group: equality for an invite code, absence for no group."""
    if scope:
        return Equals(field, scope)
    return IsMissing(field)


class RecordStore:
    """Remote access for one record type.

    ``upsert`` reads the current record, applies the desired fields on top of
    it (unrelated remote fields survive) and saves. A conflicting save is
    retried once on top of the server's version; a second conflict keeps the
    server's state and is reported through ``on_conflict`` instead of raising.
    """

    def __init__(
        self,
        remote: RemoteRecordStore,
        record_type: str,
        *,
        sort_keys: Sequence[SortKey] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
        chunk_size: int = 100,
        on_conflict: Callable[[MergeConflict], None] | None = None,
    ) -> None:
        self.remote = remote
        self.record_type = record_type
        self.sort_keys = tuple(sort_keys)
        self.page_size = page_size
        self.chunk_size = chunk_size
        self.on_conflict = on_conflict

    async def fetch_all(self, scope: str | None) -> list[Record]:
        query = PagedQuery(
            self.remote,
            self.record_type,
            group_predicate(scope),
            sort_keys=self.sort_keys,
            page_size=self.page_size,
        )
        return await query.collect()

    async def fetch_matching(
        self, scope: str | None, field: str, candidates: Iterable[Any]
    ) -> list[Record]:
        return await chunked_query(
            self.remote,
            self.record_type,
            group_predicate(scope),
            field,
            candidates,
            chunk_size=self.chunk_size,
            sort_keys=self.sort_keys,
            page_size=self.page_size,
        )

    async def _read_or_new(self, identity: str) -> Record:
        try:
            return await self.remote.read_record(self.record_type, identity)
        except RecordNotFoundError:
            return Record.new(self.record_type, identity)

    async def upsert(self, identity: str, fields: dict[str, Any]) -> Record:
        base = await self._read_or_new(identity)
        try:
            return await self.remote.save_record(base.with_fields(fields))
        except ConflictError as exc:
            logger.debug(
                "record_upsert_conflict_retry",
                extra={"record_type": self.record_type, "identity": identity},
            )
            server = exc.server_record or await self._read_or_new(identity)

        try:
            return await self.remote.save_record(server.with_fields(fields))
        except ConflictError as exc:
            final = exc.server_record or await self._read_or_new(identity)

        logger.warning(
            "record_upsert_server_wins",
            extra={"record_type": self.record_type, "identity": identity},
        )
        if self.on_conflict is not None:
            self.on_conflict(
                MergeConflict(
                    record_type=self.record_type,
                    identity=identity,
                    desired_fields=dict(fields),
                    server_record=final,
                )
            )
        return final

    async def delete(self, identity: str) -> None:
        try:
            await self.remote.delete_record(self.record_type, identity)
        except RecordNotFoundError:
            logger.debug(
                "record_delete_missing",
                extra={"record_type": self.record_type, "identity": identity},
            )
