"""Browser session management using patchright.

  - One browser, one context, one page per session
  - Headless by default; BrowserConfig.headless=False for debugging
  - Cookies are optional: public listing pages need none
"""

import json
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from types import TracebackType
from typing import Any

from patchright.async_api import Page, async_playwright

from jobstream.core.config import BrowserConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Async context manager that owns one patchright browser + context + page.

    Teardown runs in reverse order of setup, including when setup fails
    halfway.

    Usage::

        async with BrowserSession(config) as session:
            await session.page.goto("https://...")
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._stack: AsyncExitStack | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        """The single page for this session. Raises if not entered."""
        if self._page is None:
            msg = "BrowserSession not entered, use 'async with'"
            raise RuntimeError(msg)
        return self._page

    async def __aenter__(self) -> "BrowserSession":
        stack = AsyncExitStack()
        try:
            playwright = await async_playwright().start()
            stack.push_async_callback(playwright.stop)

            browser = await playwright.chromium.launch(headless=self._config.headless)
            stack.push_async_callback(browser.close)

            context = await browser.new_context(**self._context_options())
            stack.push_async_callback(context.close)

            cookies = load_cookies(self._config.cookies_path) if self._config.cookies_path else []
            if cookies:
                await context.add_cookies(cookies)
                logger.info("Loaded %d cookies from %s", len(cookies), self._config.cookies_path)

            context.set_default_timeout(self._config.timeout_ms)
            self._page = await context.new_page()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._page = None
        if self._stack is not None:
            stack, self._stack = self._stack, None
            await stack.aclose()

    def _context_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self._config.user_agent:
            options["user_agent"] = self._config.user_agent
        return options


def load_cookies(path: str) -> list[Any]:
    """Load cookies exported as a JSON array. Returns [] on any failure."""
    cookie_path = Path(path)
    if not cookie_path.exists():
        logger.warning("Cookie file not found: %s", path)
        return []
    try:
        data = json.loads(cookie_path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load cookies from %s: %s", path, e)
        return []
    if not isinstance(data, list):
        logger.warning("Cookie file is not a JSON array: %s", path)
        return []
    return data
