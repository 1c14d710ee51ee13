"""Greenhouse job-board API adapter.

One request per board. A board that fails is logged and skipped; the source
only fails when every board did.
"""

import html
import logging
from datetime import datetime
from typing import Any

import httpx

from jobstream.browser.actions import random_sleep
from jobstream.core.config import Settings, SourceConfig
from jobstream.core.schemas import Record
from jobstream.sources.base import (
    SourceAdapter,
    extract_first_email,
    extract_salary,
    http_client,
    make_record_id,
    strip_html,
)

logger = logging.getLogger(__name__)

BOARD_URL = "https://boards-api.greenhouse.io/v1/boards/{board}/jobs?content=true"

DEFAULT_BOARDS = (
    "flyio",
    "cloudflare",
    "cockroachlabs",
    "figma",
    "notion",
    "vercel",
    "planetscale",
    "linear",
)


class GreenhouseSource(SourceAdapter):
    """Fetches open positions from a list of Greenhouse boards."""

    def __init__(
        self,
        name: str = "greenhouse",
        *,
        boards: list[str] | tuple[str, ...] = DEFAULT_BOARDS,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        board_delay: float = 0.3,
    ) -> None:
        if not boards:
            msg = "at least one Greenhouse board is required"
            raise ValueError(msg)
        self._name = name
        self._boards = list(boards)
        self._client = client
        self._timeout = timeout
        self._board_delay = board_delay

    @classmethod
    def from_config(cls, source: SourceConfig, settings: Settings) -> "GreenhouseSource":
        return cls(
            source.name,
            boards=tuple(source.options.get("boards") or DEFAULT_BOARDS),
            timeout=settings.aggregator.source_timeout,
            board_delay=float(source.options.get("board_delay", 0.3)),
        )

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self) -> list[Record]:
        records: list[Record] = []
        failed: list[str] = []
        async with http_client(self._client, self._timeout) as client:
            for i, board in enumerate(self._boards):
                if i > 0 and self._board_delay > 0:
                    await random_sleep(self._board_delay, self._board_delay * 2)
                try:
                    records.extend(await self._fetch_board(client, board))
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Greenhouse board '%s' failed: %s", board, e)
                    failed.append(board)

        if len(failed) == len(self._boards):
            msg = f"all Greenhouse boards failed: {', '.join(failed)}"
            raise RuntimeError(msg)
        return records

    async def _fetch_board(self, client: httpx.AsyncClient, board: str) -> list[Record]:
        response = await client.get(BOARD_URL.format(board=board))
        response.raise_for_status()
        jobs = response.json().get("jobs", [])
        records = [r for r in (self._parse(board, job) for job in jobs) if r is not None]
        logger.debug("Greenhouse board '%s': %d jobs", board, len(records))
        return records

    def _parse(self, board: str, job: dict[str, Any]) -> Record | None:
        title = str(job.get("title") or "").strip()
        if not job.get("id") or not title:
            return None
        description = strip_html(html.unescape(str(job.get("content") or "")))
        location = job.get("location") or {}
        return Record(
            id=make_record_id(self._name, f"{board}-{job['id']}"),
            title=title,
            source=self._name,
            company=board,
            location=str(location.get("name") or "") if isinstance(location, dict) else "",
            description=description,
            url=str(job.get("absolute_url") or ""),
            posted_at=_parse_timestamp(job.get("updated_at")),
            salary=extract_salary(description),
            email=extract_first_email(description),
        )


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
