"""Cursor-driven paged queries and chunked "value in set" queries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from filmsync.adapters.records.models import And, In
from filmsync.config.sync import MAX_CHUNK_SIZE
from filmsync.sync.constants import DEFAULT_PAGE_SIZE

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Sequence

    from filmsync.adapters.records.models import Predicate, Record, SortKey
    from filmsync.adapters.records.protocols import RemoteRecordStore

logger = logging.getLogger(__name__)


class PagedQuery:
    """A lazy sequence of result pages for one predicate.

    Each call to ``pages()`` starts a fresh query from the first page; an
    iteration cannot be resumed mid-stream. Any page failure propagates, so a
    caller never sees a silently truncated result.
    """

    def __init__(
        self,
        remote: RemoteRecordStore,
        record_type: str,
        predicate: Predicate,
        *,
        sort_keys: Sequence[SortKey] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.remote = remote
        self.record_type = record_type
        self.predicate = predicate
        self.sort_keys = tuple(sort_keys)
        self.page_size = page_size

    async def pages(self) -> AsyncIterator[list[Record]]:
        page = await self.remote.query(
            self.record_type, self.predicate, sort_keys=self.sort_keys, limit=self.page_size
        )
        page_count = 1
        yield page.records

        while page.cursor:
            page = await self.remote.continue_query(page.cursor, limit=self.page_size)
            page_count += 1
            yield page.records

        logger.debug(
            "paged_query_completed",
            extra={"record_type": self.record_type, "pages": page_count},
        )

    async def collect(self) -> list[Record]:
        records: list[Record] = []
        async for batch in self.pages():
            records.extend(batch)
        return records


def chunked(values: Iterable[Any], size: int) -> list[tuple[Any, ...]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    items = list(dict.fromkeys(values))
    return [tuple(items[i : i + size]) for i in range(0, len(items), size)]


async def chunked_query(
    remote: RemoteRecordStore,
    record_type: str,
    base_predicate: Predicate,
    field: str,
    candidates: Iterable[Any],
    *,
    chunk_size: int = MAX_CHUNK_SIZE,
    sort_keys: Sequence[SortKey] = (),
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[Record]:
    """Fetch records whose ``field`` is one of ``candidates``.

    The candidate set is split into chunks of at most ``chunk_size`` values
    (never more than the remote "value in set" limit), each chunk is drained
    with its own ``PagedQuery`` conjoined with ``base_predicate``, and the
    results are concatenated in chunk order.
    """
    size = min(chunk_size, MAX_CHUNK_SIZE)
    records: list[Record] = []
    chunks = chunked(candidates, size)
    for chunk in chunks:
        query = PagedQuery(
            remote,
            record_type,
            And((base_predicate, In(field, chunk))),
            sort_keys=sort_keys,
            page_size=page_size,
        )
        records.extend(await query.collect())

    logger.debug(
        "chunked_query_completed",
        extra={"record_type": record_type, "chunks": len(chunks), "count": len(records)},
    )
    return records
