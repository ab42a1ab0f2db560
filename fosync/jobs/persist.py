from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Sequence

from fosync.schemas.postings import CanonicalPosting
from fosync.services.repository import RepositoryError
from fosync.services.store import PostingStore

logger = logging.getLogger(__name__)

DEFAULT_WRITE_BATCH_SIZE = 100
RETENTION_DAYS = 60


@dataclass(slots=True)
class WriteResult:
    inserted: int = 0
    ignored: int = 0
    failed: int = 0


async def write_postings(
    store: PostingStore,
    postings: Sequence[CanonicalPosting],
    *,
    batch_size: int = DEFAULT_WRITE_BATCH_SIZE,
) -> WriteResult:
    result = WriteResult()
    batch_size = max(1, batch_size)
    for start in range(0, len(postings), batch_size):
        batch = postings[start : start + batch_size]
        try:
            inserted = await store.insert_postings(batch)
        except RepositoryError as exc:
            logger.error("write batch failed rows=%s error=%s", len(batch), exc)
            result.failed += len(batch)
            continue
        result.inserted += inserted
        # Rows another run inserted between dedup and write are ignored, not errors.
        result.ignored += len(batch) - inserted
    return result


def expiry_cutoff(now: datetime | None = None, *, retention_days: int = RETENTION_DAYS) -> datetime:
    current = now or datetime.now(timezone.utc)
    return current - timedelta(days=retention_days)


async def expire_postings(
    store: PostingStore,
    *,
    retention_days: int = RETENTION_DAYS,
    now: datetime | None = None,
) -> int:
    cutoff = expiry_cutoff(now, retention_days=retention_days)
    try:
        removed = await store.delete_expired(cutoff)
    except RepositoryError as exc:
        logger.error("expiry failed cutoff=%s error=%s", cutoff.isoformat(), exc)
        return 0
    logger.info("cleanup removed=%s expired listings cutoff=%s", removed, cutoff.isoformat())
    return removed
