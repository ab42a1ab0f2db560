from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any
from urllib.parse import urlparse

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import parse_timestamp, utcnow


@dataclass(frozen=True, slots=True)
class TaleoSection:
    scheme: str
    host: str
    tenant: str
    section: str

    @property
    def search_url(self) -> str:
        return f"{self.scheme}://{self.host}/careersection/rest/jobboard/searchjobs"

    def posting_url(self, job_number: str) -> str:
        return f"{self.scheme}://{self.host}/careersection/{self.section}/jobdetail.ftl?job={job_number}"


def parse_taleo_section(career_url: str) -> TaleoSection:
    """Split https://acme.taleo.net/careersection/2/jobsearch.ftl into its parts."""
    parsed = urlparse(career_url if "://" in career_url else f"https://{career_url}")
    segments = [segment for segment in parsed.path.split("/") if segment]
    host = parsed.netloc.lower()
    if not host or len(segments) < 2 or segments[0] != "careersection":
        raise ValueError(f"not a Taleo career section URL: {career_url!r}")
    return TaleoSection(scheme=parsed.scheme or "https", host=host, tenant=host.split(".")[0], section=segments[1])


def _search_body(keyword: str, page_number: int) -> dict[str, Any]:
    return {
        "multilineEnabled": False,
        "sortingSelection": {"sortBySelectionParam": "3", "ascendingSortingOrder": "false"},
        "fieldData": {"fields": {"KEYWORD": keyword, "LOCATION": ""}, "valid": True},
        "filterSelectionParam": {"searchFilterSelections": []},
        "advancedSearchFiltersSelectionParam": {"searchFilterSelections": []},
        "pageNo": page_number,
    }


def _column_text(value: Any) -> str | None:
    # Location columns arrive as a JSON-encoded list of strings.
    if isinstance(value, str) and value.startswith("["):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value.strip() or None
        if isinstance(decoded, list):
            return "; ".join(str(item).strip() for item in decoded if str(item).strip()) or None
    if isinstance(value, str):
        return value.strip() or None
    return None


class TaleoAdapter(SourceAdapter):
    """Oracle Taleo career sections, via the job-board search endpoint their UI calls.

    Each alias is a career section URL; ``options.portal`` carries the portal id.
    """

    kind = "taleo"

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        section = parse_taleo_section(alias)
        page_number = int(cursor or 1)
        portal = target.options.get("portal")
        if not portal:
            raise ValueError(f"taleo target {target.name!r} has no portal option")
        response = await self.http.post(
            section.search_url,
            params={"lang": target.options.get("lang", "en"), "portal": portal},
            json=_search_body(target.options.get("search", ""), page_number),
        )
        response.raise_for_status()
        data = response.json()

        requisitions = data.get("requisitionList") or []
        postings = [
            posting
            for raw in requisitions
            if isinstance(raw, dict) and (posting := self._to_posting(section, target, raw))
        ]
        paging = data.get("pagingData") or {}
        page_size = int(paging.get("pageSize") or len(requisitions) or 1)
        total = int(paging.get("totalCount") or 0)
        next_cursor = page_number + 1 if requisitions and page_number * page_size < total else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _to_posting(self, section: TaleoSection, target: SourceTarget, raw: dict[str, Any]) -> CanonicalPosting | None:
        job_id = raw.get("jobId")
        columns = raw.get("column") or []
        title = _column_text(columns[0]) if columns else None
        if not job_id or not title:
            return None
        location = _column_text(columns[1]) if len(columns) > 1 else None
        posted = columns[2] if len(columns) > 2 else None
        return CanonicalPosting(
            source_id=f"taleo-{section.tenant}-{job_id}",
            title=title,
            firm=target.name,
            location=location or target.location,
            apply_url=section.posting_url(str(raw.get("contestNo") or job_id)),
            source=self.config.label,
            posted_at=parse_timestamp(posted) or utcnow(),
        )
