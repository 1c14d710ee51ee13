"""Abstract base class for source adapters, plus helpers shared by adapters."""

import hashlib
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import httpx
from bs4 import BeautifulSoup

from jobstream.core.schemas import Record

_WS_RE = re.compile(r"[ \t\r\f\v]+")


class SourceAdapter(ABC):
    """Base class that every source adapter must implement.

    fetch() takes no arguments: everything an adapter needs is injected via
    its constructor. Aggregators cancel fetch() on timeout or Stop, so every
    blocking step must be an await that honours asyncio cancellation.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique source name, used as the record id prefix."""

    @abstractmethod
    async def fetch(self) -> list[Record]:
        """Fetch and normalize records. Raise on failure."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionSource(SourceAdapter):
    """Adapter wrapping a zero-argument coroutine function."""

    def __init__(self, name: str, fn: Callable[[], Awaitable[list[Record]]]) -> None:
        self._name = name
        self._fn = fn

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self) -> list[Record]:
        return await self._fn()


def make_record_id(source: str, native_id: str | int) -> str:
    """Prefix a source-native id with the source name."""
    return f"{source}-{native_id}"


def id_from_content(source: str, content: str) -> str:
    """Deterministic id for items with no native id."""
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return f"{source}-{digest[:16]}"


def strip_html(text: str) -> str:
    """Text content of an HTML fragment, one line per source line, spaces collapsed."""
    text = BeautifulSoup(text or "", "html.parser").get_text(" ")
    lines = (_WS_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")
SALARY_RE = re.compile(
    r"(\$[\d,]+(?:\.\d+)?k?(?:\s*(?:-|–|to)\s*\$?[\d,]+(?:\.\d+)?k?)?"
    r"(?:\s*(?:per\s+|/)(?:year|yr|annum|hour|hr|month|mo))?"
    r"|[\d,]+k?\s*(?:-|–|to)\s*[\d,]+k?\s*(?:USD|EUR|GBP|BRL)(?:\s*(?:annually|per\s+year))?)",
    re.IGNORECASE,
)


def extract_first_email(text: str) -> str:
    match = EMAIL_RE.search(text or "")
    return match.group(0) if match else ""


def extract_salary(text: str) -> str:
    match = SALARY_RE.search(text or "")
    return match.group(0).strip() if match else ""


USER_AGENT = "Mozilla/5.0 (compatible; jobstream/0.1)"


@asynccontextmanager
async def http_client(
    client: httpx.AsyncClient | None,
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as owned:
        yield owned


LOCATION_RE = re.compile(
    r"(?i:\bremote\b|\bon-?site\b|\bhybrid\b)|\b[A-Z][a-z]+(?: [A-Z][a-z]+)*, ?[A-Z]{2,}\b"
)


def extract_locations(text: str) -> list[str]:
    """Work-mode words and 'City, CC' pairs, de-duplicated case-insensitively."""
    seen: set[str] = set()
    found: list[str] = []
    for match in LOCATION_RE.finditer(text or ""):
        value = match.group(0).strip()
        if value.lower() not in seen:
            seen.add(value.lower())
            found.append(value)
    return found
