"""In-memory record store used in offline mode and by the test suite."""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from filmsync.adapters.records.errors import ConflictError, RecordNotFoundError, RecordStoreError
from filmsync.adapters.records.models import Record, RecordPage
from filmsync.core.time_utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from filmsync.adapters.records.models import Predicate, SortKey

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Dict-backed implementation of ``RemoteRecordStore``.

    Behaves like the remote service where the sync layer can observe it:
    saves are guarded by change tags, queries are paged through opaque
    cursors, and missing records raise ``RecordNotFoundError``.

    ``before_save`` runs right before every save is checked, which lets tests
    simulate another device writing between a read and a save.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], Record] = {}
        self._cursors: dict[str, list[Record]] = {}
        self._tags = itertools.count(1)
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self.before_save: Callable[[Record], Awaitable[None] | None] | None = None
        self.calls: list[tuple[str, str]] = []

    # ------------------------------------------------------------------ helpers

    def inject_failure(self, operation: str, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        self._failures[operation].extend([error] * times)

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _next_tag(self) -> str:
        return f"t{next(self._tags)}"

    def put(self, record_type: str, record_name: str, values: dict[str, Any]) -> Record:
        """Seed or overwrite a record directly, bumping its change tag."""
        stored = Record(
            record_type=record_type,
            record_name=record_name,
            values=dict(values),
            change_tag=self._next_tag(),
            modified_at=utc_now(),
        )
        self._records[(record_type, record_name)] = stored
        return stored.model_copy(deep=True)

    def get(self, record_type: str, record_name: str) -> Record | None:
        stored = self._records.get((record_type, record_name))
        return stored.model_copy(deep=True) if stored else None

    def all_records(self, record_type: str) -> list[Record]:
        return [
            record.model_copy(deep=True)
            for (kind, _), record in self._records.items()
            if kind == record_type
        ]

    @property
    def open_cursors(self) -> int:
        return len(self._cursors)

    def count(self, record_type: str) -> int:
        return sum(1 for kind, _ in self._records if kind == record_type)

    # --------------------------------------------------------------- protocol

    async def query(
        self,
        record_type: str,
        predicate: Predicate,
        *,
        sort_keys: Sequence[SortKey] = (),
        limit: int = 100,
    ) -> RecordPage:
        self.calls.append(("query", record_type))
        await asyncio.sleep(0)
        self._maybe_fail("query")

        matches = [
            record.model_copy(deep=True)
            for (kind, _), record in self._records.items()
            if kind == record_type and predicate.matches(record.values)
        ]
        for key in reversed(list(sort_keys)):
            matches.sort(
                key=lambda record, field=key.field: (
                    record.values.get(field) is not None,
                    record.values.get(field),
                ),
                reverse=not key.ascending,
            )
        return self._page(matches, limit)

    async def continue_query(self, cursor: str, *, limit: int = 100) -> RecordPage:
        self.calls.append(("continue_query", cursor))
        await asyncio.sleep(0)
        remaining = self._cursors.pop(cursor, None)
        self._maybe_fail("continue_query")
        if remaining is None:
            raise RecordStoreError(f"unknown or expired cursor {cursor!r}", status_code=400)
        return self._page(remaining, limit)

    def _page(self, records: list[Record], limit: int) -> RecordPage:
        batch, rest = records[:limit], records[limit:]
        cursor = None
        if rest:
            cursor = uuid.uuid4().hex
            self._cursors[cursor] = rest
        return RecordPage(records=batch, cursor=cursor)

    async def read_record(self, record_type: str, record_name: str) -> Record:
        self.calls.append(("read_record", record_name))
        await asyncio.sleep(0)
        self._maybe_fail("read_record")

        stored = self._records.get((record_type, record_name))
        if stored is None:
            raise RecordNotFoundError(record_type, record_name)
        return stored.model_copy(deep=True)

    async def save_record(self, record: Record) -> Record:
        self.calls.append(("save_record", record.record_name))
        if self.before_save is not None:
            outcome = self.before_save(record)
            if outcome is not None:
                await outcome
        await asyncio.sleep(0)
        self._maybe_fail("save_record")

        key = (record.record_type, record.record_name)
        current = self._records.get(key)
        if current is not None and current.change_tag != record.change_tag:
            logger.debug(
                "memory_store_conflict",
                extra={"record_type": record.record_type, "identity": record.record_name},
            )
            raise ConflictError(
                record.record_type, record.record_name, current.model_copy(deep=True)
            )

        stored = record.model_copy(
            update={"change_tag": self._next_tag(), "modified_at": utc_now()}, deep=True
        )
        self._records[key] = stored
        return stored.model_copy(deep=True)

    async def delete_record(self, record_type: str, record_name: str) -> None:
        self.calls.append(("delete_record", record_name))
        await asyncio.sleep(0)
        self._maybe_fail("delete_record")

        if self._records.pop((record_type, record_name), None) is None:
            raise RecordNotFoundError(record_type, record_name)
