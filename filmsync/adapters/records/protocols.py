"""Protocol definition (port) for the remote record store.

The sync layer only talks to this protocol, so the HTTP client and the
in-memory store are interchangeable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from filmsync.adapters.records.models import Predicate, Record, RecordPage, SortKey


class RemoteRecordStore(Protocol):
    async def query(
        self,
        record_type: str,
        predicate: Predicate,
        *,
        sort_keys: Sequence[SortKey] = (),
        limit: int = 100,
    ) -> RecordPage: ...

    async def continue_query(self, cursor: str, *, limit: int = 100) -> RecordPage: ...

    async def read_record(self, record_type: str, record_name: str) -> Record:
        """Return the record or raise ``RecordNotFoundError``."""
        ...

    async def save_record(self, record: Record) -> Record:
        """Save with the record's change tag as precondition or raise ``ConflictError``."""
        ...

    async def delete_record(self, record_type: str, record_name: str) -> None:
        """Delete the record or raise ``RecordNotFoundError``."""
        ...
