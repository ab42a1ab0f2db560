from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any
from urllib.parse import urlparse

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import parse_timestamp, utcnow

WORKDAY_MAX_PAGE_SIZE = 20
_LOCALE_SEGMENT_RE = re.compile(r"^[a-z]{2}-[A-Z]{2}$")


@dataclass(frozen=True, slots=True)
class WorkdaySite:
    scheme: str
    host: str
    tenant: str
    site: str

    @property
    def jobs_url(self) -> str:
        return f"{self.scheme}://{self.host}/wday/cxs/{self.tenant}/{self.site}/jobs"

    def posting_url(self, external_path: str) -> str:
        return f"{self.scheme}://{self.host}/{self.site}{external_path}"


def parse_workday_site(career_url: str) -> WorkdaySite:
    """Split a career-site URL like https://jpmc.wd5.myworkdayjobs.com/en-US/External into its parts."""
    parsed = urlparse(career_url if "://" in career_url else f"https://{career_url}")
    segments = [segment for segment in parsed.path.split("/") if segment and not _LOCALE_SEGMENT_RE.match(segment)]
    host = parsed.netloc.lower()
    if not host or not segments:
        raise ValueError(f"not a Workday career site URL: {career_url!r}")
    return WorkdaySite(scheme=parsed.scheme or "https", host=host, tenant=host.split(".")[0], site=segments[-1])


class WorkdayAdapter(SourceAdapter):
    kind = "workday"

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        site = parse_workday_site(alias)
        offset, known_total = cursor if cursor is not None else (0, None)
        limit = min(self.config.page_size, WORKDAY_MAX_PAGE_SIZE)
        response = await self.http.post(
            site.jobs_url,
            json={
                "appliedFacets": {},
                "limit": limit,
                "offset": offset,
                "searchText": target.options.get("search", ""),
            },
        )
        response.raise_for_status()
        data = response.json()

        raw_postings = data.get("jobPostings") or []
        # Later pages report total=0; only the first page carries the real count.
        total = known_total if known_total is not None else int(data.get("total") or 0)
        postings = [
            posting
            for raw in raw_postings
            if isinstance(raw, dict) and (posting := self._to_posting(site, target, raw))
        ]
        next_offset = offset + len(raw_postings)
        next_cursor = (next_offset, total) if raw_postings and next_offset < total else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _to_posting(self, site: WorkdaySite, target: SourceTarget, raw: dict[str, Any]) -> CanonicalPosting | None:
        title = (raw.get("title") or "").strip()
        external_path = raw.get("externalPath") or ""
        if not title or not external_path:
            return None
        bullet_fields = raw.get("bulletFields") or []
        requisition = bullet_fields[0] if bullet_fields and isinstance(bullet_fields[0], str) else None
        upstream_id = requisition or external_path.rstrip("/").rsplit("/", maxsplit=1)[-1]
        return CanonicalPosting(
            source_id=f"workday-{site.tenant}-{upstream_id}",
            title=title,
            firm=target.name,
            location=raw.get("locationsText") or target.location,
            apply_url=site.posting_url(external_path),
            source=self.config.label,
            posted_at=parse_timestamp(raw.get("postedOn")) or utcnow(),
        )
