"""Browser-scraped listing adapter.

Loads one listing page in a patchright session, scrolls until the card count
settles, then reads each card through fallback selector tuples. Selector
sets are plain config, so new boards need no code.

Missing optional fields (company, location, link) come back as "" rather
than failing the card.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote_plus, urljoin

from pydantic import BaseModel, ConfigDict, field_validator

from jobstream.browser.actions import random_sleep, scroll_until_stable
from jobstream.browser.session import BrowserSession
from jobstream.core.config import BrowserConfig, Settings, SourceConfig
from jobstream.core.schemas import Record
from jobstream.sources.base import (
    SourceAdapter,
    extract_first_email,
    extract_salary,
    id_from_content,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ElementLike(Protocol):
    """Minimal element interface so tests can use AsyncMock instead of patchright."""

    async def query_selector(self, selector: str) -> "ElementLike | None": ...
    async def get_attribute(self, name: str) -> str | None: ...
    async def text_content(self) -> str | None: ...


class CardSelectors(BaseModel):
    """CSS selectors for one listing layout. Each field is tried in order."""

    model_config = ConfigDict(frozen=True)

    card: tuple[str, ...]
    title: tuple[str, ...]
    company: tuple[str, ...] = ()
    location: tuple[str, ...] = ()
    link: tuple[str, ...] = ("a",)

    @field_validator("card", "title", "company", "location", "link", mode="before")
    @classmethod
    def as_tuple(cls, v: Any) -> Any:
        if isinstance(v, str):
            return (v,)
        return v

    @field_validator("card", "title")
    @classmethod
    def not_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            msg = "card and title selectors are required"
            raise ValueError(msg)
        return v


# Public (logged-out) LinkedIn job search.
LINKEDIN_PUBLIC = CardSelectors(
    card=(".base-card", "li div.job-search-card"),
    title=(".base-search-card__title",),
    company=(".base-search-card__subtitle",),
    location=(".job-search-card__location",),
    link=("a.base-card__full-link", "a"),
)

LINKEDIN_SEARCH_URL = "https://www.linkedin.com/jobs/search/?keywords={keywords}&location={location}&f_WT=2"


def linkedin_search_url(keywords: list[str], location: str = "") -> str:
    return LINKEDIN_SEARCH_URL.format(
        keywords=quote_plus(" ".join(keywords)),
        location=quote_plus(location),
    )


class CardParser:
    """Turns listing card elements into Records for one source."""

    def __init__(self, source: str, selectors: CardSelectors, base_url: str) -> None:
        self._source = source
        self._selectors = selectors
        self._base_url = base_url

    async def parse_cards(self, cards: list[ElementLike]) -> list[Record]:
        """Parse every card, skipping any that fail."""
        results: list[Record] = []
        for card in cards:
            try:
                record = await self.parse_card(card)
            except Exception:
                logger.debug("Failed to parse card, skipping", exc_info=True)
                continue
            if record is not None:
                results.append(record)
        return results

    async def parse_card(self, card: ElementLike) -> Record | None:
        """Parse one card. Returns None when the card has no title."""
        title = await self._text(card, self._selectors.title)
        if not title:
            return None
        company = await self._text(card, self._selectors.company)
        location = await self._text(card, self._selectors.location)
        url = await self._href(card)
        body = (await card.text_content() or "").strip()

        return Record(
            id=id_from_content(self._source, title + company + url),
            title=title,
            source=self._source,
            company=company,
            location=location,
            description=body,
            url=url,
            posted_at=datetime.now(UTC),
            salary=extract_salary(body),
            email=extract_first_email(body),
        )

    async def _text(self, card: ElementLike, selectors: tuple[str, ...]) -> str:
        el = await find_first(card, selectors)
        if el is None:
            return ""
        text = await el.text_content()
        # first line only: nested markup often duplicates the text
        return text.strip().split("\n")[0].strip() if text else ""

    async def _href(self, card: ElementLike) -> str:
        el = await find_first(card, self._selectors.link)
        if el is None:
            return ""
        href = await el.get_attribute("href")
        if not href:
            return ""
        return urljoin(self._base_url, href.strip())


async def find_first(parent: ElementLike, selectors: tuple[str, ...]) -> ElementLike | None:
    """Return the first element matching any selector in order."""
    for selector in selectors:
        try:
            el = await parent.query_selector(selector)
        except Exception:
            logger.debug("Selector '%s' raised, trying next", selector, exc_info=True)
            continue
        if el is not None:
            return el
    return None


class BrowserListingSource(SourceAdapter):
    """Scrapes a single listing page in a headless browser."""

    def __init__(
        self,
        name: str,
        url: str,
        selectors: CardSelectors,
        *,
        config: BrowserConfig | None = None,
        session_factory: Callable[[BrowserConfig], Any] = BrowserSession,
        settle_delay: float = 2.0,
    ) -> None:
        if not url:
            msg = f"browser source '{name}' needs a url"
            raise ValueError(msg)
        self._name = name
        self._url = url
        self._selectors = selectors
        self._config = config or BrowserConfig()
        self._session_factory = session_factory
        self._settle_delay = settle_delay

    @classmethod
    def from_config(cls, source: SourceConfig, settings: Settings) -> "BrowserListingSource":
        """Build from options.

        Either ``preset: linkedin`` (with ``keywords`` and ``location``) or an
        explicit ``url`` plus a ``selectors`` mapping.
        """
        options = source.options
        preset = str(options.get("preset", "")).lower()
        if preset == "linkedin":
            url = options.get("url") or linkedin_search_url(
                list(options.get("keywords") or []), str(options.get("location") or ""),
            )
            selectors = LINKEDIN_PUBLIC
        elif preset:
            msg = f"unknown browser preset '{preset}' for source '{source.name}'"
            raise ValueError(msg)
        else:
            url = str(options.get("url") or "")
            selectors = CardSelectors.model_validate(options.get("selectors") or {})
        return cls(
            source.name,
            url,
            selectors,
            config=settings.browser,
            settle_delay=float(options.get("settle_delay", 2.0)),
        )

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self) -> list[Record]:
        async with self._session_factory(self._config) as session:
            page = session.page
            logger.info("Navigating to %s", self._url)
            await page.goto(self._url)
            if self._settle_delay > 0:
                await random_sleep(self._settle_delay, self._settle_delay * 1.5)
            await scroll_until_stable(page, card_selectors=self._selectors.card)
            cards = await self._find_cards(page)
            records = await CardParser(self._name, self._selectors, self._url).parse_cards(cards)

        logger.info("Browser '%s': %d cards, %d parsed", self._name, len(cards), len(records))
        return records

    async def _find_cards(self, page: Any) -> list[Any]:
        for selector in self._selectors.card:
            cards = await page.query_selector_all(selector)
            if cards:
                return list(cards)
        return []
