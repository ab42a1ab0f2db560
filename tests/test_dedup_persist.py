from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Sequence

from fosync.jobs.dedup import collapse_duplicates, filter_unseen
from fosync.jobs.persist import expire_postings, expiry_cutoff, write_postings
from fosync.schemas.postings import CanonicalPosting
from fosync.services.repository import RepositoryUnavailableError
from fosync.services.store import InMemoryPostingStore

NOW = datetime(2026, 10, 19, 12, tzinfo=timezone.utc)


def _posting(source_id: str, *, title: str = "Rates Trader", posted_at: datetime = NOW) -> CanonicalPosting:
    return CanonicalPosting(source_id=source_id, title=title, firm="Acme Capital", source="Test", posted_at=posted_at)


class FlakyStore(InMemoryPostingStore):
    def __init__(self, *, fail_batches: set[int] = frozenset(), fail_delete: bool = False) -> None:
        super().__init__()
        self.fail_batches = fail_batches
        self.fail_delete = fail_delete
        self.batches: list[int] = []

    async def insert_postings(self, postings: Sequence[CanonicalPosting]) -> int:
        batch_number = len(self.batches)
        self.batches.append(len(postings))
        if batch_number in self.fail_batches:
            raise RepositoryUnavailableError("connection reset")
        return await super().insert_postings(postings)

    async def delete_expired(self, cutoff: datetime) -> int:
        if self.fail_delete:
            raise RepositoryUnavailableError("connection reset")
        return await super().delete_expired(cutoff)


def test_collapse_duplicates_keeps_last_occurrence() -> None:
    postings = [_posting("a", title="Old"), _posting("b"), _posting("a", title="New")]

    collapsed = collapse_duplicates(postings)

    assert [posting.source_id for posting in collapsed] == ["a", "b"]
    assert collapsed[0].title == "New"


def test_filter_unseen_chunks_lookups() -> None:
    store = InMemoryPostingStore()
    asyncio.run(store.insert_postings([_posting("id-0"), _posting("id-700")]))
    postings = [_posting(f"id-{index}") for index in range(1200)]

    unseen = asyncio.run(filter_unseen(store, postings, chunk_size=500))

    assert [len(lookup) for lookup in store.lookups] == [500, 500, 200]
    assert len(unseen) == 1198
    assert {"id-0", "id-700"}.isdisjoint(posting.source_id for posting in unseen)


def test_filter_unseen_skips_lookup_for_empty_input() -> None:
    store = InMemoryPostingStore()

    assert asyncio.run(filter_unseen(store, [])) == []
    assert store.lookups == []


def test_write_postings_isolates_failed_batches() -> None:
    store = FlakyStore(fail_batches={1})
    postings = [_posting(f"id-{index}") for index in range(250)]

    result = asyncio.run(write_postings(store, postings, batch_size=100))

    assert store.batches == [100, 100, 50]
    assert result.inserted == 150
    assert result.failed == 100
    assert result.ignored == 0
    assert "id-150" not in store.rows
    assert "id-249" in store.rows


def test_write_postings_counts_existing_rows_as_ignored() -> None:
    store = InMemoryPostingStore()
    asyncio.run(store.insert_postings([_posting("id-1")]))

    result = asyncio.run(write_postings(store, [_posting("id-1"), _posting("id-2")]))

    assert (result.inserted, result.ignored, result.failed) == (1, 1, 0)


def test_expiry_cutoff_is_sixty_days_back() -> None:
    assert expiry_cutoff(NOW) == NOW - timedelta(days=60)
    assert expiry_cutoff(NOW, retention_days=7) == NOW - timedelta(days=7)


def test_expire_postings_removes_old_unfeatured_rows_inclusive() -> None:
    store = InMemoryPostingStore()
    cutoff = NOW - timedelta(days=60)
    asyncio.run(
        store.insert_postings(
            [
                _posting("at-cutoff", posted_at=cutoff),
                _posting("older", posted_at=cutoff - timedelta(days=3)),
                _posting("newer", posted_at=cutoff + timedelta(seconds=1)),
                _posting("featured", posted_at=cutoff - timedelta(days=30)),
            ]
        )
    )
    store.rows["featured"]["is_featured"] = True

    removed = asyncio.run(expire_postings(store, now=NOW))

    assert removed == 2
    assert sorted(store.rows) == ["featured", "newer"]


def test_expire_postings_reports_zero_when_store_fails() -> None:
    store = FlakyStore(fail_delete=True)
    asyncio.run(store.insert_postings([_posting("old", posted_at=NOW - timedelta(days=90))]))

    assert asyncio.run(expire_postings(store, now=NOW)) == 0
    assert "old" in store.rows
