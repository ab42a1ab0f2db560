from __future__ import annotations

import re
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceTarget
from fosync.sources.base import Page, SourceAdapter
from fosync.sources.parsers import utcnow

_JOB_PATH_RE = re.compile(r"/jobs/(\d+)/")
_MIN_TITLE_LENGTH = 4


def icims_tenant(search_url: str) -> str:
    """careers-acme.icims.com -> acme"""
    host = urlparse(search_url).netloc.lower().split(":")[0]
    label = host.split(".")[0]
    for prefix in ("careers-", "jobs-"):
        if label.startswith(prefix):
            return label[len(prefix) :]
    return label


class ICIMSAdapter(SourceAdapter):
    """iCIMS career portals. There is no JSON feed, so the search results page is scraped.

    Each alias is a portal search URL such as https://careers-acme.icims.com/jobs/search.
    """

    kind = "icims"

    async def fetch_page(self, target: SourceTarget, alias: str, cursor: Any | None) -> Page:
        page = int(cursor or 0)
        params: dict[str, Any] = {"pr": page, "in_iframe": 1}
        if target.options.get("search"):
            params["searchKeyword"] = target.options["search"]
        response = await self.http.get(alias, params=params)
        response.raise_for_status()

        postings = self._parse_listing(target, alias, response.text)
        next_cursor = page + 1 if postings else None
        return Page(postings=postings, next_cursor=next_cursor)

    def _parse_listing(self, target: SourceTarget, alias: str, html_text: str) -> list[CanonicalPosting]:
        soup = BeautifulSoup(html_text, "html.parser")
        tenant = icims_tenant(alias)
        seen: dict[str, CanonicalPosting] = {}
        for anchor in soup.find_all("a", href=True):
            href = urljoin(alias, anchor["href"])
            match = _JOB_PATH_RE.search(urlparse(href).path)
            if match is None or match.group(1) in seen:
                continue
            title = " ".join(anchor.get_text(" ").split())
            if len(title) < _MIN_TITLE_LENGTH:
                continue
            job_id = match.group(1)
            seen[job_id] = CanonicalPosting(
                source_id=f"icims-{tenant}-{job_id}",
                title=title,
                firm=target.name,
                location=target.location,
                apply_url=href.split("?", maxsplit=1)[0],
                source=self.config.label,
                posted_at=utcnow(),
            )
        return list(seen.values())
