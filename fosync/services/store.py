from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from fosync.schemas.postings import CanonicalPosting


class PostingStore(Protocol):
    async def ping(self) -> None: ...

    async def fetch_existing_source_ids(self, source_ids: Sequence[str]) -> set[str]: ...

    async def insert_postings(self, postings: Sequence[CanonicalPosting]) -> int: ...

    async def delete_expired(self, cutoff: datetime) -> int: ...

    async def close(self) -> None: ...


class InMemoryPostingStore:
    """Process-local store used for dry runs; nothing survives the process."""

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}
        self.lookups: list[list[str]] = []

    async def ping(self) -> None:
        return None

    async def fetch_existing_source_ids(self, source_ids: Sequence[str]) -> set[str]:
        self.lookups.append(list(source_ids))
        return {source_id for source_id in source_ids if source_id in self.rows}

    async def insert_postings(self, postings: Sequence[CanonicalPosting]) -> int:
        inserted = 0
        for posting in postings:
            if posting.source_id in self.rows:
                continue
            self.rows[posting.source_id] = {**posting.model_dump(), "is_featured": False}
            inserted += 1
        return inserted

    async def delete_expired(self, cutoff: datetime) -> int:
        expired = [
            source_id
            for source_id, row in self.rows.items()
            if row["posted_at"] <= cutoff and not row.get("is_featured", False)
        ]
        for source_id in expired:
            del self.rows[source_id]
        return len(expired)

    async def close(self) -> None:
        return None
