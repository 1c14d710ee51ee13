"""RemoteOK public JSON API adapter."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from jobstream.core.config import Settings, SourceConfig
from jobstream.core.schemas import Record
from jobstream.sources.base import (
    SourceAdapter,
    extract_first_email,
    http_client,
    make_record_id,
    strip_html,
)

logger = logging.getLogger(__name__)

API_URL = "https://remoteok.com/api"
JOB_URL = "https://remoteok.com/remote-jobs/{slug}"


class RemoteOKSource(SourceAdapter):
    """Fetches the RemoteOK feed. Element [0] of the response is metadata."""

    def __init__(
        self,
        name: str = "remoteok",
        *,
        url: str = API_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._name = name
        self._url = url
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_config(cls, source: SourceConfig, settings: Settings) -> "RemoteOKSource":
        return cls(
            source.name,
            url=source.options.get("url", API_URL),
            timeout=settings.aggregator.source_timeout,
        )

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self) -> list[Record]:
        async with http_client(self._client, self._timeout) as client:
            response = await client.get(self._url)
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, list):
            msg = f"unexpected RemoteOK payload: {type(payload).__name__}"
            raise ValueError(msg)

        records: list[Record] = []
        for entry in payload[1:]:
            record = self._parse(entry)
            if record is not None:
                records.append(record)
        logger.debug("RemoteOK: %d entries, %d parsed", len(payload) - 1, len(records))
        return records

    def _parse(self, entry: Any) -> Record | None:
        if not isinstance(entry, dict) or not entry.get("id"):
            return None
        title = str(entry.get("position") or "").strip()
        if not title:
            return None

        description = strip_html(str(entry.get("description") or ""))
        slug = entry.get("slug") or entry["id"]
        return Record(
            id=make_record_id(self._name, entry["id"]),
            title=title,
            source=self._name,
            company=str(entry.get("company") or ""),
            location=_join(entry.get("location")),
            description=description,
            url=str(entry.get("url") or JOB_URL.format(slug=slug)),
            posted_at=_from_epoch(entry.get("epoch")),
            salary=format_salary(entry.get("salary_min"), entry.get("salary_max")),
            job_type=_join(entry.get("tags")),
            email=extract_first_email(description),
        )


def format_salary(low: Any, high: Any) -> str:
    """Render a salary range in thousands, e.g. '$120k - $150k'."""
    low, high = _as_int(low), _as_int(high)
    if low > 0 and high > 0:
        return f"${low // 1000}k - ${high // 1000}k"
    if low > 0:
        return f"${low // 1000}k+"
    if high > 0:
        return f"up to ${high // 1000}k"
    return ""


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _join(value: Any) -> str:
    # location and tags arrive either as a string or a list of strings
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v)
    return str(value or "")


def _from_epoch(value: Any) -> datetime | None:
    epoch = _as_int(value)
    if epoch <= 0:
        return None
    return datetime.fromtimestamp(epoch, tz=UTC)
