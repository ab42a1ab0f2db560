"""Per-format parsers turning raw upstream payloads into plain field maps.

Every parser defaults individual fields instead of failing the whole item, so a
markup change upstream degrades one field rather than dropping the feed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
import html
import re
from typing import Any

import feedparser
from bs4 import BeautifulSoup

from fosync.schemas.postings import DESCRIPTION_MAX_LENGTH

_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_ESCAPED_MARKUP_RE = re.compile(r"&lt;/?[a-zA-Z]")
_RELATIVE_POSTED_RE = re.compile(r"posted\s+(today|yesterday|(\d+)\+?\s+days?\s+ago)", re.IGNORECASE)
# Career-site display dates (Taleo, iCIMS).
_DISPLAY_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%m/%d/%Y", "%d-%b-%Y")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_rss(raw: str | bytes) -> list[dict[str, str]]:
    feed = feedparser.parse(raw)
    items: list[dict[str, str]] = []
    for entry in feed.entries:
        items.append(
            {
                "title": _as_text(entry.get("title")) or "",
                "link": _as_text(entry.get("link")) or "",
                "description": _as_text(entry.get("summary")) or _as_text(entry.get("description")) or "",
                "published": _as_text(entry.get("published")) or _as_text(entry.get("updated")) or "",
                "source": _entry_source(entry),
            }
        )
    return items


def clean_description(raw: str | None, *, limit: int = DESCRIPTION_MAX_LENGTH) -> str:
    if not raw:
        return ""
    text = html.unescape(raw) if _ESCAPED_MARKUP_RE.search(raw) else raw
    text = BeautifulSoup(text, "html.parser").get_text(" ")
    # get_text decodes entities, so doubly escaped markup shows up as tags again
    text = _TAG_RE.sub(" ", text)
    text = " ".join(text.split())
    return text[:limit].rstrip()


def parse_timestamp(value: Any, *, now: datetime | None = None) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 100_000_000_000 else float(value)
        try:
            dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        parsed = _parse_text_timestamp(raw, now=now)
        if parsed is None:
            return None
        dt = parsed
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_text_timestamp(raw: str, *, now: datetime | None) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        pass
    for display_format in _DISPLAY_DATE_FORMATS:
        try:
            return datetime.strptime(raw, display_format)
        except ValueError:
            continue

    match = _RELATIVE_POSTED_RE.search(raw)
    if match is None:
        return None
    current = now or datetime.now(timezone.utc)
    phrase = match.group(1).lower()
    if phrase == "today":
        return current
    if phrase == "yesterday":
        return current - timedelta(days=1)
    return current - timedelta(days=int(match.group(2)))


def _entry_source(entry: Any) -> str:
    source = entry.get("source")
    if isinstance(source, dict):
        title = _as_text(source.get("title"))
        if title:
            return title
    return _as_text(entry.get("author")) or ""


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
