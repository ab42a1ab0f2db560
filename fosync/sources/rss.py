from __future__ import annotations

import re
from typing import Any

from fosync.core.urls import stable_source_id
from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import clean_description, parse_rss, parse_timestamp, utcnow

# Indeed appends "- City, ST" to titles.
_TITLE_LOCATION_RE = re.compile(r"^(?P<title>.+?)\s*[-–]\s*(?P<location>[A-Za-z .'-]+,\s*[A-Z]{2})$")


def split_title_location(title: str) -> tuple[str, str | None]:
    match = _TITLE_LOCATION_RE.match(title.strip())
    if match is None:
        return title.strip(), None
    return match.group("title").strip(), match.group("location").strip()


class RSSFeedAdapter(SourceAdapter):
    """Job-board RSS feeds (Indeed, eFinancialCareers); each alias is a feed URL."""

    kind = "rss"
    uses_target_firm = False

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        response = await self.http.get(alias, headers={"Accept": "application/rss+xml, application/xml;q=0.9"})
        response.raise_for_status()
        items = parse_rss(response.text)
        postings = [posting for item in items if (posting := self._to_posting(target, item))]
        return Page(postings=postings)

    def _to_posting(self, target: SourceTarget, item: dict[str, str]) -> CanonicalPosting | None:
        if not item["title"] or not item["link"]:
            return None
        title, location = split_title_location(item["title"])
        firm = item["source"] or target.options.get("firm") or "Unknown"
        return CanonicalPosting(
            source_id=stable_source_id(self.config.options.get("id_prefix", self.config.name), item["link"]),
            title=title,
            firm=firm,
            location=location or target.location,
            description=clean_description(item["description"]),
            apply_url=item["link"],
            source=self.config.label,
            posted_at=parse_timestamp(item["published"]) or utcnow(),
        )
