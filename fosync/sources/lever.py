from __future__ import annotations

from typing import Any

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import clean_description, parse_timestamp, utcnow

LEVER_POSTINGS_URLS = {
    "global": "https://api.lever.co/v0/postings",
    "eu": "https://api.eu.lever.co/v0/postings",
}


class LeverAdapter(SourceAdapter):
    kind = "lever"

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        skip = int(cursor or 0)
        limit = self.config.page_size
        region = target.options.get("region") or self.config.options.get("region", "global")
        base_url = LEVER_POSTINGS_URLS.get(region, LEVER_POSTINGS_URLS["global"])
        data = await self.get_json(
            f"{base_url}/{alias}",
            params={"mode": "json", "skip": skip, "limit": limit},
        )
        if not isinstance(data, list):
            raise ValueError(f"expected a list of postings, got {type(data).__name__}")

        postings = [posting for job in data if isinstance(job, dict) and (posting := self._to_posting(target, job))]
        next_cursor = skip + len(data) if len(data) >= limit else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _to_posting(self, target: SourceTarget, job: dict[str, Any]) -> CanonicalPosting | None:
        job_id = job.get("id")
        title = (job.get("text") or "").strip()
        if not job_id or not title:
            return None
        categories = job.get("categories") if isinstance(job.get("categories"), dict) else {}
        return CanonicalPosting(
            source_id=f"lever-{job_id}",
            title=title,
            firm=target.name,
            location=categories.get("location") or None,
            description=clean_description(job.get("descriptionPlain") or job.get("description")),
            apply_url=job.get("hostedUrl") or job.get("applyUrl") or "",
            source=self.config.label,
            posted_at=parse_timestamp(job.get("createdAt")) or utcnow(),
        )
