"""Playwright stealth helpers for the bot-protected marketplace.

The marketplace sits behind an interstitial bot check ("Pardon Our
Interruption").  ``playwright-stealth`` patches the fingerprinting
vectors that check looks at (``navigator.webdriver``, missing plugins,
WebGL renderer strings, …) so that a headless Chromium usually passes it
after a short wait.

Pass :func:`apply_stealth` as the ``playwright_page_init_callback`` in
request meta, and use :func:`is_bot_challenge` on the response to detect
the cases where the challenge page was returned anyway.
"""

from __future__ import annotations

from playwright_stealth import Stealth
from scrapy.http import HtmlResponse

_stealth = Stealth()

# Title fragments of the interstitial challenge page.
BOT_CHALLENGE_MARKERS = ("Pardon", "Interruption")


async def apply_stealth(page, request):
    """scrapy-playwright page-init callback that applies stealth patches."""
    await _stealth.apply_stealth_async(page)


def is_bot_challenge(response: HtmlResponse) -> bool:
    """Return ``True`` if *response* is the bot-check page rather than content."""
    title = response.css("title::text").get("")
    return any(marker in title for marker in BOT_CHALLENGE_MARKERS)
