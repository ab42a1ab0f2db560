"""Search aggregators: results span many employers, so firm names come from upstream."""

from __future__ import annotations

from typing import Any

import httpx

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceConfig, SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import clean_description, parse_timestamp, utcnow

ADZUNA_SEARCH_URL = "https://api.adzuna.com/v1/api/jobs/{country}/search/{page}"
THE_MUSE_JOBS_URL = "https://www.themuse.com/api/public/jobs"
TITLE_MAX_LENGTH = 300


class AdzunaAdapter(SourceAdapter):
    kind = "adzuna"
    uses_target_firm = False

    def __init__(
        self,
        config: SourceConfig,
        http: httpx.AsyncClient,
        *,
        app_id: str,
        app_key: str,
        page_delay_seconds: float = 0.0,
    ) -> None:
        super().__init__(config, http, page_delay_seconds=page_delay_seconds)
        self.app_id = app_id
        self.app_key = app_key

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        page = int(cursor or 1)
        country = target.options.get("country") or self.config.options.get("country", "us")
        params: dict[str, Any] = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "what": alias,
            "results_per_page": self.config.page_size,
            "sort_by": "date",
        }
        if target.location:
            params["where"] = target.location
        data = await self.get_json(
            ADZUNA_SEARCH_URL.format(country=country, page=page),
            params=params,
            headers={"Accept": "application/json"},
        )
        results = data.get("results") or []
        postings = [posting for raw in results if isinstance(raw, dict) and (posting := self._to_posting(target, raw))]
        next_cursor = page + 1 if len(results) >= self.config.page_size else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _to_posting(self, target: SourceTarget, raw: dict[str, Any]) -> CanonicalPosting | None:
        job_id = raw.get("id")
        # Adzuna wraps matched keywords in <strong> tags.
        title = clean_description(raw.get("title"), limit=TITLE_MAX_LENGTH)
        if not job_id or not title:
            return None
        company = (raw.get("company") or {}).get("display_name") or ""
        location = (raw.get("location") or {}).get("display_name") or target.location
        return CanonicalPosting(
            source_id=f"adzuna-{job_id}",
            title=title,
            firm=company.strip() or target.options.get("firm") or "Unknown",
            location=location,
            description=clean_description(raw.get("description")),
            apply_url=raw.get("redirect_url") or "",
            source=self.config.label,
            posted_at=parse_timestamp(raw.get("created")) or utcnow(),
        )


class TheMuseAdapter(SourceAdapter):
    """The Muse public jobs API; each alias is a Muse category such as "Finance"."""

    kind = "themuse"
    uses_target_firm = False

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        page = int(cursor or 0)
        params: dict[str, Any] = {"category": alias, "page": page}
        if target.location:
            params["location"] = target.location
        if target.options.get("level"):
            params["level"] = target.options["level"]
        data = await self.get_json(THE_MUSE_JOBS_URL, params=params)

        results = data.get("results") or []
        postings = [posting for raw in results if isinstance(raw, dict) and (posting := self._to_posting(target, raw))]
        page_count = int(data.get("page_count") or 0)
        next_cursor = page + 1 if results and page + 1 < page_count else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _to_posting(self, target: SourceTarget, raw: dict[str, Any]) -> CanonicalPosting | None:
        job_id = raw.get("id")
        title = (raw.get("name") or "").strip()
        if job_id is None or not title:
            return None
        locations = [loc.get("name") for loc in raw.get("locations") or [] if isinstance(loc, dict) and loc.get("name")]
        company = (raw.get("company") or {}).get("name") or ""
        return CanonicalPosting(
            source_id=f"themuse-{job_id}",
            title=title,
            firm=company.strip() or "Unknown",
            location="; ".join(locations) or target.location,
            description=clean_description(raw.get("contents")),
            apply_url=(raw.get("refs") or {}).get("landing_page") or "",
            source=self.config.label,
            posted_at=parse_timestamp(raw.get("publication_date")) or utcnow(),
        )
