from __future__ import annotations

from typing import Sequence

from fosync.schemas.postings import CanonicalPosting
from fosync.services.store import PostingStore

# Upper bound on ids sent in a single existence lookup.
DEFAULT_CHUNK_SIZE = 500


def collapse_duplicates(postings: Sequence[CanonicalPosting]) -> list[CanonicalPosting]:
    """Keep one posting per source_id; the last occurrence wins, in first-seen order."""
    by_id: dict[str, CanonicalPosting] = {}
    for posting in postings:
        by_id[posting.source_id] = posting
    return list(by_id.values())


async def filter_unseen(
    store: PostingStore,
    postings: Sequence[CanonicalPosting],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[CanonicalPosting]:
    unique = collapse_duplicates(postings)
    source_ids = [posting.source_id for posting in unique]
    chunk_size = max(1, chunk_size)

    known: set[str] = set()
    for start in range(0, len(source_ids), chunk_size):
        known |= await store.fetch_existing_source_ids(source_ids[start : start + chunk_size])
    return [posting for posting in unique if posting.source_id not in known]
