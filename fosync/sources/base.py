from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
from typing import Any, ClassVar

import httpx
from pydantic import ValidationError

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceConfig, SourceTarget

logger = logging.getLogger(__name__)

# Failures that mean "this endpoint produced nothing" rather than a broken run.
ENDPOINT_ERRORS = (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError)


@dataclass(slots=True)
class Page:
    postings: list[CanonicalPosting] = field(default_factory=list)
    next_cursor: Any | None = None


class SourceAdapter(ABC):
    """One upstream system. Subclasses map a single page of raw data to postings."""

    kind: ClassVar[str]
    # ATS boards belong to a single employer, so the configured display name wins.
    uses_target_firm: ClassVar[bool] = True

    def __init__(self, config: SourceConfig, http: httpx.AsyncClient, *, page_delay_seconds: float = 0.0) -> None:
        self.config = config
        self.http = http
        self.page_delay_seconds = page_delay_seconds

    @abstractmethod
    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        """Fetch one page for ``alias``; ``cursor`` is None for the first page."""

    async def fetch_target(self, target: SourceTarget) -> list[CanonicalPosting]:
        for alias in target.aliases:
            postings = await self._fetch_alias(target, alias)
            if postings:
                if self.uses_target_firm:
                    postings = [posting.model_copy(update={"firm": target.name}) for posting in postings]
                logger.info(
                    "target fetched source=%s target=%r alias=%s postings=%s",
                    self.config.name,
                    target.name,
                    alias,
                    len(postings),
                )
                return postings
            logger.info("alias returned nothing source=%s target=%r alias=%s", self.config.name, target.name, alias)
        return []

    async def _fetch_alias(self, target: SourceTarget, alias: str) -> list[CanonicalPosting]:
        collected: list[CanonicalPosting] = []
        cursor: Any | None = None
        for page_number in range(self.config.max_pages):
            if page_number > 0:
                await asyncio.sleep(self.page_delay_seconds)
            try:
                page = await self.fetch_page(target, alias, cursor)
            except ValidationError as exc:
                logger.warning(
                    "unexpected payload source=%s alias=%s page=%s errors=%s",
                    self.config.name,
                    alias,
                    page_number,
                    exc.error_count(),
                )
                break
            except ENDPOINT_ERRORS as exc:
                logger.warning(
                    "endpoint failed source=%s alias=%s page=%s error=%s",
                    self.config.name,
                    alias,
                    page_number,
                    _describe_error(exc),
                )
                break
            collected.extend(page.postings)
            if page.next_cursor is None or not page.postings:
                break
            cursor = page.next_cursor
        return collected

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.http.get(url, **kwargs)
        response.raise_for_status()
        return response.json()


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    return f"{type(exc).__name__}: {exc}"
