"""Reusable page actions: randomised sleeps and scroll-until-stable.

Every delay goes through random_sleep() so it stays cancellable and jittered.
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 5
SCROLL_DELAY_FLOOR = 0.5


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Negative bounds are clamped to zero and max_s is raised to min_s if
    needed. Returns the actual duration.
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def count_matches(page: Any, selectors: tuple[str, ...]) -> int:
    """Count elements using the first selector that matches anything."""
    for selector in selectors:
        found = await page.query_selector_all(selector)
        if found:
            return len(found)
    return 0


async def scroll_until_stable(
    page: Any,
    *,
    card_selectors: tuple[str, ...],
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    scroll_delay_min: float = 1.0,
    scroll_delay_max: float = 2.0,
) -> int:
    """Scroll to the bottom until the card count stops growing.

    Lazy-loading listings only render more cards after a scroll, so a single
    jump is not enough. Returns the final card count.
    """
    scroll_delay_min = max(scroll_delay_min, SCROLL_DELAY_FLOOR)
    scroll_delay_max = max(scroll_delay_max, scroll_delay_min)

    previous = 0
    for attempt in range(max_attempts):
        current = await count_matches(page, card_selectors)
        logger.debug(
            "Scroll attempt %d/%d: %d cards (prev: %d)",
            attempt + 1, max_attempts, current, previous,
        )
        if current == previous and attempt > 0:
            break
        previous = current
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await random_sleep(scroll_delay_min, scroll_delay_max)

    return previous
