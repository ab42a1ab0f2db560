from __future__ import annotations

from typing import Any

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import clean_description, parse_timestamp, utcnow

GREENHOUSE_BOARDS_URL = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseAdapter(SourceAdapter):
    kind = "greenhouse"

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        # The boards API returns every open role in one response.
        data = await self.get_json(f"{GREENHOUSE_BOARDS_URL}/{alias}/jobs", params={"content": "true"})
        postings = [posting for job in data.get("jobs") or [] if (posting := self._to_posting(target, job))]
        return Page(postings=postings)

    def _to_posting(self, target: SourceTarget, job: dict[str, Any]) -> CanonicalPosting | None:
        job_id = job.get("id")
        title = (job.get("title") or "").strip()
        if job_id is None or not title:
            return None
        location = (job.get("location") or {}).get("name") or None
        return CanonicalPosting(
            source_id=f"greenhouse-{job_id}",
            title=title,
            firm=target.name,
            location=location,
            description=clean_description(job.get("content")),
            apply_url=job.get("absolute_url") or "",
            source=self.config.label,
            posted_at=parse_timestamp(job.get("updated_at")) or utcnow(),
        )
