from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
from typing import Any, Awaitable, Callable

import httpx
import pytest

from fosync.core.urls import stable_source_id
from fosync.schemas.postings import CanonicalPosting
from fosync.schemas.sources import SourceConfig, SourceTarget
from fosync.sources.aggregators import AdzunaAdapter, TheMuseAdapter
from fosync.sources.base import SourceAdapter
from fosync.sources.greenhouse import GreenhouseAdapter
from fosync.sources.icims import ICIMSAdapter, icims_tenant
from fosync.sources.lever import LeverAdapter
from fosync.sources.rss import RSSFeedAdapter, split_title_location
from fosync.sources.taleo import TaleoAdapter, parse_taleo_section
from fosync.sources.workday import WorkdayAdapter, parse_workday_site

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


def _config(kind: str, label: str, **overrides: Any) -> SourceConfig:
    return SourceConfig.model_validate({"name": kind, "kind": kind, "label": label, **overrides})


def _greenhouse_job(job_id: int, title: str = "Rates Trader") -> dict[str, Any]:
    return {
        "id": job_id,
        "title": title,
        "location": {"name": "New York"},
        "content": "&lt;p&gt;Trade &lt;strong&gt;rates&lt;/strong&gt;&lt;/p&gt;",
        "absolute_url": f"https://boards.greenhouse.io/acme/jobs/{job_id}",
        "updated_at": "2026-10-01T12:00:00-04:00",
    }


def _fetch(
    adapter_type: type[SourceAdapter],
    config: SourceConfig,
    target: SourceTarget,
    handler: Handler,
    **adapter_kwargs: Any,
) -> list[CanonicalPosting]:
    async def run() -> list[CanonicalPosting]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = adapter_type(config, client, **adapter_kwargs)
            return await adapter.fetch_target(target)

    return asyncio.run(run())


def test_greenhouse_stops_at_first_alias_with_postings_and_uses_display_name() -> None:
    requested: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path == "/v1/boards/acme-old/jobs":
            return httpx.Response(200, json={"jobs": []}, request=request)
        if request.url.path == "/v1/boards/acme/jobs":
            return httpx.Response(200, json={"jobs": [_greenhouse_job(100 + i) for i in range(5)]}, request=request)
        return httpx.Response(200, json={"jobs": [_greenhouse_job(900)]}, request=request)

    postings = _fetch(
        GreenhouseAdapter,
        _config("greenhouse", "Greenhouse"),
        SourceTarget(name="Acme Capital", aliases=["acme-old", "acme", "acme-extra"]),
        handler,
    )

    assert requested == ["/v1/boards/acme-old/jobs", "/v1/boards/acme/jobs"]
    assert [posting.source_id for posting in postings] == [f"greenhouse-{100 + i}" for i in range(5)]
    assert {posting.firm for posting in postings} == {"Acme Capital"}
    first = postings[0]
    assert first.description == "Trade rates"
    assert first.location == "New York"
    assert first.source == "Greenhouse"
    assert first.posted_at == datetime(2026, 10, 1, 16, tzinfo=timezone.utc)
    assert first.function is None and first.is_front_office is False


def test_greenhouse_does_not_query_second_alias_when_first_succeeds() -> None:
    requested: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        return httpx.Response(200, json={"jobs": [_greenhouse_job(1), _greenhouse_job(2)]}, request=request)

    postings = _fetch(
        GreenhouseAdapter,
        _config("greenhouse", "Greenhouse"),
        SourceTarget(name="Acme Capital", aliases=["acme", "acme-mirror"]),
        handler,
    )

    assert requested == ["/v1/boards/acme/jobs"]
    assert len(postings) == 2


def test_endpoint_failures_yield_no_postings() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        slug = request.url.path.split("/")[3]
        if slug == "missing":
            return httpx.Response(404, request=request)
        if slug == "slow":
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, text="<html>not json</html>", request=request)

    postings = _fetch(
        GreenhouseAdapter,
        _config("greenhouse", "Greenhouse"),
        SourceTarget(name="Acme Capital", aliases=["missing", "slow", "garbled"]),
        handler,
    )

    assert postings == []


def test_greenhouse_skips_items_without_id_or_title() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        jobs = [_greenhouse_job(1), {"title": "No id"}, {"id": 3, "title": "  "}]
        return httpx.Response(200, json={"jobs": jobs}, request=request)

    postings = _fetch(
        GreenhouseAdapter,
        _config("greenhouse", "Greenhouse"),
        SourceTarget(name="Acme Capital", aliases=["acme"]),
        handler,
    )

    assert [posting.source_id for posting in postings] == ["greenhouse-1"]


def test_lever_paginates_until_short_page() -> None:
    skips: list[str] = []

    def job(job_id: str) -> dict[str, Any]:
        return {
            "id": job_id,
            "text": "Equity Research Associate",
            "categories": {"location": "London"},
            "descriptionPlain": "Cover European banks.",
            "hostedUrl": f"https://jobs.lever.co/acme/{job_id}",
            "createdAt": 1727740800000,
        }

    async def handler(request: httpx.Request) -> httpx.Response:
        skip = request.url.params["skip"]
        skips.append(skip)
        payload = [job("a"), job("b")] if skip == "0" else [job("c")]
        return httpx.Response(200, json=payload, request=request)

    postings = _fetch(
        LeverAdapter,
        _config("lever", "Lever", page_size=2),
        SourceTarget(name="Acme Capital", aliases=["acme"]),
        handler,
    )

    assert skips == ["0", "2"]
    assert [posting.source_id for posting in postings] == ["lever-a", "lever-b", "lever-c"]
    assert postings[0].location == "London"
    assert postings[0].posted_at == datetime(2024, 10, 1, tzinfo=timezone.utc)


def test_parse_workday_site_drops_locale_segment() -> None:
    site = parse_workday_site("https://jpmc.wd5.myworkdayjobs.com/en-US/External_Career_Site")
    assert site.tenant == "jpmc"
    assert site.site == "External_Career_Site"
    assert site.jobs_url == "https://jpmc.wd5.myworkdayjobs.com/wday/cxs/jpmc/External_Career_Site/jobs"

    with pytest.raises(ValueError):
        parse_workday_site("https://jpmc.wd5.myworkdayjobs.com/")


def test_workday_pages_by_offset_using_first_page_total() -> None:
    bodies: list[dict[str, Any]] = []

    def posting(req: str) -> dict[str, Any]:
        return {
            "title": "Investment Banking Analyst",
            "externalPath": f"/job/New-York/Investment-Banking-Analyst_{req}",
            "locationsText": "New York, NY",
            "postedOn": "Posted Today",
            "bulletFields": [req],
        }

    async def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if body["offset"] == 0:
            return httpx.Response(200, json={"total": 3, "jobPostings": [posting("R1"), posting("R2")]}, request=request)
        return httpx.Response(200, json={"total": 0, "jobPostings": [posting("R3")]}, request=request)

    postings = _fetch(
        WorkdayAdapter,
        _config("workday", "Workday", page_size=2),
        SourceTarget(
            name="J.P. Morgan",
            aliases=["https://jpmc.wd5.myworkdayjobs.com/en-US/External_Career_Site"],
            options={"search": "investment banking"},
        ),
        handler,
    )

    assert [body["offset"] for body in bodies] == [0, 2]
    assert bodies[0]["searchText"] == "investment banking"
    assert bodies[0]["limit"] == 2
    assert [posting.source_id for posting in postings] == ["workday-jpmc-R1", "workday-jpmc-R2", "workday-jpmc-R3"]
    assert postings[0].apply_url == (
        "https://jpmc.wd5.myworkdayjobs.com/External_Career_Site/job/New-York/Investment-Banking-Analyst_R1"
    )
    assert postings[0].firm == "J.P. Morgan"


def test_split_title_location() -> None:
    assert split_title_location("Credit Trader - New York, NY") == ("Credit Trader", "New York, NY")
    assert split_title_location("Head of FX Sales") == ("Head of FX Sales", None)


def test_rss_feed_derives_stable_ids_and_upstream_firm() -> None:
    feed = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Indeed</title>
<item>
  <title><![CDATA[Credit Trader - New York, NY]]></title>
  <link>https://www.indeed.com/viewjob?jk=abc123</link>
  <source url="https://acme.example">Acme Capital</source>
  <pubDate>Tue, 01 Oct 2024 12:00:00 GMT</pubDate>
  <description><![CDATA[<p>Make markets in <b>IG credit</b>.</p>]]></description>
</item>
<item>
  <title><![CDATA[Portfolio Manager]]></title>
  <link>https://www.indeed.com/viewjob?jk=def456</link>
</item>
<item><title>Missing link</title></item>
</channel></rss>"""

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=feed, headers={"content-type": "application/rss+xml"}, request=request)

    config = _config("rss", "Indeed", options={"id_prefix": "indeed"})
    target = SourceTarget(name="credit trading", location="New York", aliases=["https://rss.indeed.com/rss?q=credit"])

    postings = _fetch(RSSFeedAdapter, config, target, handler)
    again = _fetch(RSSFeedAdapter, config, target, handler)

    assert len(postings) == 2
    first, second = postings
    assert first.source_id == stable_source_id("indeed", "https://www.indeed.com/viewjob?jk=abc123")
    assert first.title == "Credit Trader"
    assert first.location == "New York, NY"
    assert first.firm == "Acme Capital"
    assert first.description == "Make markets in IG credit ."
    assert first.posted_at == datetime(2024, 10, 1, 12, tzinfo=timezone.utc)
    assert second.firm == "Unknown"
    assert second.location == "New York"
    assert [posting.source_id for posting in again] == [posting.source_id for posting in postings]


def test_the_muse_follows_page_count_and_keeps_upstream_company() -> None:
    pages: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params["page"]
        pages.append(page)
        job = {
            "id": 500 + int(page),
            "name": "Private Equity Associate",
            "company": {"name": "Summit Partners"},
            "locations": [{"name": "Boston, MA"}, {"name": "New York, NY"}],
            "contents": "<p>Source deals</p>",
            "refs": {"landing_page": f"https://www.themuse.com/jobs/summit/{page}"},
            "publication_date": "2026-10-10T00:00:00Z",
        }
        return httpx.Response(200, json={"page": int(page), "page_count": 2, "results": [job]}, request=request)

    postings = _fetch(
        TheMuseAdapter,
        _config("themuse", "The Muse"),
        SourceTarget(name="finance", aliases=["Finance"]),
        handler,
    )

    assert pages == ["0", "1"]
    assert [posting.source_id for posting in postings] == ["themuse-500", "themuse-501"]
    assert postings[0].firm == "Summit Partners"
    assert postings[0].location == "Boston, MA; New York, NY"
    assert postings[0].description == "Source deals"


def test_adzuna_sends_credentials_and_cleans_highlighted_titles() -> None:
    captured: list[httpx.URL] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request.url)
        result = {
            "id": "4242",
            "title": "<strong>Equity</strong> Sales Trader",
            "company": {"display_name": "Acme Securities"},
            "location": {"display_name": "Manhattan, New York"},
            "description": "Cover hedge fund clients",
            "redirect_url": "https://www.adzuna.com/land/ad/4242",
            "created": "2026-10-15T08:00:00Z",
        }
        return httpx.Response(200, json={"results": [result]}, request=request)

    postings = _fetch(
        AdzunaAdapter,
        _config("adzuna", "Adzuna", page_size=50, options={"country": "us"}),
        SourceTarget(name="equity sales", aliases=["equity sales trader"], location="New York"),
        handler,
        app_id="id-1",
        app_key="key-1",
    )

    assert len(captured) == 1
    assert captured[0].path == "/v1/api/jobs/us/search/1"
    assert captured[0].params["app_id"] == "id-1"
    assert captured[0].params["app_key"] == "key-1"
    assert captured[0].params["what"] == "equity sales trader"
    assert captured[0].params["where"] == "New York"
    assert postings[0].source_id == "adzuna-4242"
    assert postings[0].title == "Equity Sales Trader"
    assert postings[0].firm == "Acme Securities"


def test_parse_taleo_section() -> None:
    section = parse_taleo_section("https://acme.taleo.net/careersection/2/jobsearch.ftl")

    assert section.tenant == "acme"
    assert section.search_url == "https://acme.taleo.net/careersection/rest/jobboard/searchjobs"
    assert section.posting_url("0042") == "https://acme.taleo.net/careersection/2/jobdetail.ftl?job=0042"
    with pytest.raises(ValueError):
        parse_taleo_section("https://acme.taleo.net/jobs")


def test_taleo_pages_until_total_is_reached() -> None:
    requests_seen: list[tuple[str, int]] = []

    def requisition(job_id: str) -> dict[str, Any]:
        return {
            "jobId": job_id,
            "contestNo": f"REQ{job_id}",
            "column": ["Equity Research Associate", '["New York-NY-United States"]', "Oct 1, 2026"],
        }

    async def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests_seen.append((request.url.params["portal"], body["pageNo"]))
        assert body["fieldData"]["fields"]["KEYWORD"] == "research"
        ids = ["1", "2"] if body["pageNo"] == 1 else ["3"]
        payload = {
            "requisitionList": [requisition(job_id) for job_id in ids],
            "pagingData": {"currentPageNo": body["pageNo"], "pageSize": 2, "totalCount": 3},
        }
        return httpx.Response(200, json=payload, request=request)

    postings = _fetch(
        TaleoAdapter,
        _config("taleo", "Taleo"),
        SourceTarget(
            name="Acme Capital",
            aliases=["https://acme.taleo.net/careersection/2/jobsearch.ftl"],
            options={"portal": "101", "search": "research"},
        ),
        handler,
    )

    assert requests_seen == [("101", 1), ("101", 2)]
    assert [posting.source_id for posting in postings] == ["taleo-acme-1", "taleo-acme-2", "taleo-acme-3"]
    assert postings[0].location == "New York-NY-United States"
    assert postings[0].apply_url == "https://acme.taleo.net/careersection/2/jobdetail.ftl?job=REQ1"
    assert postings[0].posted_at == datetime(2026, 10, 1, tzinfo=timezone.utc)


def test_taleo_target_without_portal_yields_nothing() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    postings = _fetch(
        TaleoAdapter,
        _config("taleo", "Taleo"),
        SourceTarget(name="Acme Capital", aliases=["https://acme.taleo.net/careersection/2/jobsearch.ftl"]),
        handler,
    )

    assert postings == []


def test_icims_scrapes_job_links_until_empty_page() -> None:
    pages: list[str] = []
    listing = """
    <div class="iCIMS_JobsTable">
      <div class="iCIMS_JobsTable_Job">
        <a class="iCIMS_Anchor" href="/jobs/1234/credit-trader/job?in_iframe=1"><h3>Credit Trader</h3></a>
        <a href="/jobs/1234/credit-trader/job?in_iframe=1">View</a>
      </div>
      <div class="iCIMS_JobsTable_Job">
        <a class="iCIMS_Anchor" href="https://careers-acme.icims.com/jobs/5678/fx-sales/job"><h3>FX Sales VP</h3></a>
      </div>
      <a href="/jobs/intro">Join us</a>
    </div>
    """

    async def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params["pr"]
        pages.append(page)
        return httpx.Response(200, text=listing if page == "0" else "<div>No jobs</div>", request=request)

    postings = _fetch(
        ICIMSAdapter,
        _config("icims", "iCIMS"),
        SourceTarget(name="Acme Capital", location="New York", aliases=["https://careers-acme.icims.com/jobs/search"]),
        handler,
    )

    assert pages == ["0", "1"]
    assert [posting.source_id for posting in postings] == ["icims-acme-1234", "icims-acme-5678"]
    assert postings[0].title == "Credit Trader"
    assert postings[0].apply_url == "https://careers-acme.icims.com/jobs/1234/credit-trader/job"
    assert postings[1].location == "New York"
    assert icims_tenant("https://jobs-acme.icims.com/jobs/search") == "acme"
