"""Generic RSS/Atom job feed adapter."""

import calendar
import logging
from datetime import UTC, datetime
from typing import Any

import feedparser
import httpx

from jobstream.core.config import Settings, SourceConfig
from jobstream.core.schemas import Record
from jobstream.sources.base import (
    SourceAdapter,
    extract_first_email,
    extract_locations,
    extract_salary,
    http_client,
    id_from_content,
    strip_html,
)

logger = logging.getLogger(__name__)

COMMON_FEEDS = {
    "crypto-jobs": "https://crypto.jobs/feed",
    "nodesk": "https://nodesk.co/remote-jobs/rss/",
    "golang-cafe": "https://golang.cafe/Ede/rss.xml",
    "rustjobs": "https://rustjobs.dev/feed.xml",
    "functional-works": "https://functional.works-hub.com/feed",
}


class RSSSource(SourceAdapter):
    """One feed URL. Items carry no native id, so ids hash link and title."""

    def __init__(
        self,
        name: str,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not url:
            msg = f"RSS source '{name}' needs a url"
            raise ValueError(msg)
        self._name = name
        self._url = url
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_config(cls, source: SourceConfig, settings: Settings) -> "RSSSource":
        """Use options.url, or the well-known feed registered under the source name."""
        url = source.options.get("url") or COMMON_FEEDS.get(source.name, "")
        return cls(source.name, url, timeout=settings.aggregator.source_timeout)

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    async def fetch(self) -> list[Record]:
        async with http_client(self._client, self._timeout) as client:
            response = await client.get(self._url)
            response.raise_for_status()

        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            msg = f"unparseable feed {self._url}: {feed.get('bozo_exception')}"
            raise ValueError(msg)

        records = [r for r in (self._parse(entry) for entry in feed.entries) if r is not None]
        logger.debug("RSS '%s': %d items", self._name, len(records))
        return records

    def _parse(self, entry: Any) -> Record | None:
        title = str(entry.get("title") or "").strip()
        if not title:
            return None
        link = str(entry.get("link") or "")
        description = strip_html(str(entry.get("description") or entry.get("summary") or ""))
        return Record(
            id=id_from_content(self._name, link + title),
            title=title,
            source=self._name,
            company=company_from_title(title),
            location=", ".join(extract_locations(description)),
            description=description,
            url=link,
            posted_at=_published(entry),
            salary=extract_salary(description),
            email=extract_first_email(description),
        )


def company_from_title(title: str) -> str:
    """Company from 'Role at Company' or 'Company - Role' titles, else ''."""
    idx = title.find(" at ")
    if idx > 0:
        return title[idx + 4:].strip()
    head, sep, _ = title.partition(" - ")
    if sep:
        return head.strip()
    return ""


def _published(entry: Any) -> datetime:
    # feedparser normalises dates to UTC struct_time; undated items count as fetched now
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=UTC)
    return datetime.now(UTC)
