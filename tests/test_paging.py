"""Tests for cursor paging and chunked "value in set" queries."""

import unittest

import pytest

from filmsync.adapters.records.errors import RecordStoreError
from filmsync.adapters.records.memory import InMemoryRecordStore
from filmsync.adapters.records.models import And, Equals, In, MatchAll, SortKey
from filmsync.sync.paging import PagedQuery, chunked, chunked_query


def _seed(store: InMemoryRecordStore, count: int, group: str = "G1") -> None:
    for index in range(count):
        store.put("Rating", f"r{index:04d}", {"movieId": f"m{index:04d}", "groupId": group})


class TestChunked(unittest.TestCase):
    def test_splits_into_bounded_chunks(self):
        chunks = chunked(range(250), 100)
        assert [len(chunk) for chunk in chunks] == [100, 100, 50]

    def test_drops_duplicates_keeping_order(self):
        assert chunked(["b", "a", "b", "c"], 2) == [("b", "a"), ("c",)]

    def test_empty_input(self):
        assert chunked([], 10) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            chunked([1, 2], 0)


class TestPagedQuery(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = InMemoryRecordStore()

    async def test_pages_follow_the_cursor(self):
        """250 matches with a page size of 100 arrive as three pages."""
        _seed(self.store, 250)
        query = PagedQuery(self.store, "Rating", Equals("groupId", "G1"), page_size=100)

        sizes = [len(page) async for page in query.pages()]

        assert sizes == [100, 100, 50]
        assert [call[0] for call in self.store.calls] == [
            "query",
            "continue_query",
            "continue_query",
        ]

    async def test_collect_respects_sort_order(self):
        self.store.put("Movie", "b", {"updatedAt": "2025-02-01"})
        self.store.put("Movie", "a", {"updatedAt": "2025-01-01"})
        self.store.put("Movie", "c", {"updatedAt": "2025-03-01"})

        records = await PagedQuery(
            self.store, "Movie", MatchAll(), sort_keys=(SortKey("updatedAt"),), page_size=2
        ).collect()

        assert [record.record_name for record in records] == ["a", "b", "c"]

    async def test_empty_result_is_one_empty_page(self):
        pages = [page async for page in PagedQuery(self.store, "Movie", MatchAll()).pages()]
        assert pages == [[]]

    async def test_mid_stream_failure_propagates(self):
        """A failing page never yields a silently truncated result."""
        _seed(self.store, 150)
        self.store.inject_failure("continue_query", RecordStoreError("boom", status_code=503))

        with pytest.raises(RecordStoreError):
            await PagedQuery(self.store, "Rating", MatchAll(), page_size=100).collect()

        assert self.store.open_cursors == 0

    async def test_each_iteration_restarts_from_the_first_page(self):
        _seed(self.store, 3)
        query = PagedQuery(self.store, "Rating", MatchAll(), page_size=2)

        first = await query.collect()
        second = await query.collect()

        assert len(first) == len(second) == 3


class TestChunkedQuery(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = InMemoryRecordStore()

    async def test_matches_single_query_result(self):
        """Chunked fetching returns exactly what one unbounded query would."""
        _seed(self.store, 260, group="G1")
        for name in (f"x{index}" for index in range(5)):
            self.store.put("Rating", name, {"movieId": "m0001", "groupId": "G2"})
        candidates = [f"m{index:04d}" for index in range(260)] + ["missing"]

        chunked_records = await chunked_query(
            self.store, "Rating", Equals("groupId", "G1"), "movieId", candidates, chunk_size=100
        )
        expected = [
            record
            for record in self.store.all_records("Rating")
            if record.values["groupId"] == "G1"
        ]

        assert sorted(r.record_name for r in chunked_records) == sorted(
            r.record_name for r in expected
        )

    async def test_no_query_exceeds_the_set_limit(self):
        _seed(self.store, 5)
        seen_sizes: list[int] = []
        original_query = self.store.query

        async def spy(record_type, predicate, **kwargs):
            assert isinstance(predicate, And)
            in_clause = predicate.clauses[1]
            assert isinstance(in_clause, In)
            seen_sizes.append(len(in_clause.options))
            return await original_query(record_type, predicate, **kwargs)

        self.store.query = spy  # type: ignore[method-assign]
        await chunked_query(
            self.store,
            "Rating",
            Equals("groupId", "G1"),
            "movieId",
            [f"m{index}" for index in range(345)],
            chunk_size=500,
        )

        assert seen_sizes == [100, 100, 100, 45]

    async def test_empty_candidates_issue_no_queries(self):
        records = await chunked_query(self.store, "Rating", MatchAll(), "movieId", [])
        assert records == []
        assert self.store.calls == []
