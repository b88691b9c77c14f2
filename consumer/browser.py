"""Browser session used by the scrape pipeline."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Page, async_playwright

from shared.config import Settings, settings

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
]


@asynccontextmanager
async def open_browser_page(config: Settings = None) -> AsyncIterator[Page]:
    """Launch Chromium and yield a fresh page. The browser is always closed."""
    config = config or settings

    async with async_playwright() as playwright:
        logger.debug(f"Launching Chromium (headless={config.headless_browser})")
        browser = await playwright.chromium.launch(
            headless=config.headless_browser,
            args=LAUNCH_ARGS
        )
        try:
            context = await browser.new_context(
                viewport={"width": 1280, "height": 800},
                user_agent=USER_AGENT,
                locale=config.browser_locale
            )
            page = await context.new_page()
            page.set_default_timeout(config.selector_timeout * 1000)
            page.set_default_navigation_timeout(config.page_load_timeout * 1000)
            yield page
        finally:
            await browser.close()
