from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Sequence

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from fosync.core.config import ENV_PREFIX
from fosync.schemas.postings import CanonicalPosting

logger = logging.getLogger(__name__)

# is_featured is left to the column default.
INSERT_COLUMNS = (
    "source_id",
    "title",
    "firm",
    "location",
    '"function"',
    '"level"',
    "description",
    "apply_url",
    "source",
    "posted_at",
    "is_front_office",
    "is_approved",
)
INSERT_COLUMN_TYPES = (
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "text[]",
    "timestamptz[]",
    "boolean[]",
    "boolean[]",
)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write collides with a row inserted concurrently."""


class RepositoryValidationError(RepositoryError):
    """Raised when rows are rejected by the database before persistence."""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        *,
        password: str | None = None,
        table: str = "jobs",
        min_pool_size: int = 1,
        max_pool_size: int = 2,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.password = password
        self.table = table
        self.min_pool_size = min_pool_size
        self.max_pool_size = max(min_pool_size, max_pool_size)
        self.command_timeout_seconds = command_timeout_seconds
        self.supports_on_conflict = True
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.fetchval("select 1")
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def fetch_existing_source_ids(self, source_ids: Sequence[str]) -> set[str]:
        if not source_ids:
            return set()
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"select source_id from {self.table} where source_id = any($1::text[])",
                list(source_ids),
            )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError(f"source_id lookup failed: {exc}") from exc
        return {row["source_id"] for row in rows}

    async def insert_postings(self, postings: Sequence[CanonicalPosting]) -> int:
        """Insert rows, ignoring ids that already exist. Returns the number of new rows."""
        if not postings:
            return 0
        if self.supports_on_conflict:
            try:
                return await self._insert_on_conflict_do_nothing(postings)
            except pg_exc.InvalidColumnReferenceError:
                # No unique constraint on source_id, so ON CONFLICT cannot be used.
                logger.warning("table=%s lacks a unique source_id constraint; using check-then-insert", self.table)
                self.supports_on_conflict = False
        return await self._insert_missing_only(postings)

    async def delete_expired(self, cutoff: datetime) -> int:
        pool = await self._get_pool()
        try:
            status = await pool.execute(
                f"delete from {self.table} where posted_at <= $1 and coalesce(is_featured, false) = false",
                cutoff,
            )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError(f"expiry delete failed: {exc}") from exc
        return _affected_rows(status)

    async def _insert_on_conflict_do_nothing(self, postings: Sequence[CanonicalPosting]) -> int:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"{self._insert_sql()} on conflict (source_id) do nothing returning source_id",
                *self._column_arrays(postings),
            )
        except pg_exc.InvalidColumnReferenceError:
            raise
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(str(exc)) from exc
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError(f"insert failed: {exc}") from exc
        return len(rows)

    async def _insert_missing_only(self, postings: Sequence[CanonicalPosting]) -> int:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetch(
                        f"select source_id from {self.table} where source_id = any($1::text[])",
                        [posting.source_id for posting in postings],
                    )
                    known = {row["source_id"] for row in existing}
                    missing = [posting for posting in postings if posting.source_id not in known]
                    if not missing:
                        return 0
                    rows = await conn.fetch(
                        f"{self._insert_sql()} returning source_id",
                        *self._column_arrays(missing),
                    )
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError(f"source_id inserted concurrently: {exc}") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(str(exc)) from exc
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise RepositoryUnavailableError(f"insert failed: {exc}") from exc
        return len(rows)

    def _insert_sql(self) -> str:
        columns = ", ".join(INSERT_COLUMNS)
        arrays = ", ".join(f"${index}::{kind}" for index, kind in enumerate(INSERT_COLUMN_TYPES, start=1))
        return f"insert into {self.table} ({columns}) select * from unnest({arrays})"

    @staticmethod
    def _column_arrays(postings: Sequence[CanonicalPosting]) -> list[list[Any]]:
        return [
            [posting.source_id for posting in postings],
            [posting.title for posting in postings],
            [posting.firm for posting in postings],
            [posting.location for posting in postings],
            [posting.function for posting in postings],
            [posting.level for posting in postings],
            [posting.description for posting in postings],
            [posting.apply_url for posting in postings],
            [posting.source for posting in postings],
            [posting.posted_at for posting in postings],
            [posting.is_front_office for posting in postings],
            [posting.is_approved for posting in postings],
        ]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError(f"{ENV_PREFIX}DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                password=self.password,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
                timeout=self.command_timeout_seconds,
                # Supabase's transaction pooler does not support prepared statement caching.
                statement_cache_size=0,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc


def _affected_rows(status: str) -> int:
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except (AttributeError, ValueError):
        return 0
