"""Email lookup on a business website.

Records carry an ``email`` field that the maps panel never shows. The
pipeline asks an ``EmailFinder`` for it; the default finder returns an
empty string, and ``WebsiteEmailFinder`` (enabled with ``fetch_emails``)
fetches the website's landing page and looks for an address there.
"""
import asyncio
import logging
import re
from typing import Optional, Protocol

import aiohttp
from bs4 import BeautifulSoup

from shared.config import Settings, settings

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

# Matches that are really asset names or placeholders
IGNORED_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")
IGNORED_DOMAINS = ("example.com", "sentry.io", "wixpress.com")


class EmailFinder(Protocol):
    async def find(self, website: str) -> str:
        ...


class NullEmailFinder:
    """Never looks anything up."""

    async def find(self, website: str) -> str:
        return ""


class WebsiteEmailFinder:
    """Finds a contact email on a business website's landing page."""

    def __init__(self, timeout: int = None, config: Settings = None):
        config = config or settings
        self.timeout = timeout or config.email_fetch_timeout
        self.headers = {
            "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    async def find(self, website: str) -> str:
        """Return the first plausible email on the page, or an empty string."""
        if not website or not website.startswith(("http://", "https://")):
            return ""

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.headers
            ) as session:
                async with session.get(website, ssl=False) as response:
                    if response.status >= 400:
                        logger.debug(f"Email lookup got HTTP {response.status} from {website}")
                        return ""
                    # Pages often lie about or omit their charset
                    html = await response.text(errors="replace")
        except asyncio.TimeoutError:
            logger.debug(f"Email lookup timed out after {self.timeout}s: {website}")
            return ""
        except aiohttp.ClientError as e:
            logger.debug(f"Email lookup network error for {website}: {e}")
            return ""

        return self._parse_html(html) or ""

    def _parse_html(self, html: str) -> Optional[str]:
        """Extract an email, preferring mailto links over free text."""
        soup = BeautifulSoup(html, "html.parser")

        # Strategy 1: mailto links
        for link in soup.select('a[href^="mailto:"]'):
            address = link["href"][len("mailto:"):].split("?")[0].strip()
            if self._is_plausible(address):
                return address.lower()

        # Strategy 2: visible text
        for element in soup.find_all(["script", "style", "noscript"]):
            element.decompose()
        for match in EMAIL_PATTERN.findall(soup.get_text(separator=" ")):
            if self._is_plausible(match):
                return match.lower()

        return None

    def _is_plausible(self, address: str) -> bool:
        lowered = address.lower()
        if not EMAIL_PATTERN.fullmatch(lowered):
            return False
        if lowered.endswith(IGNORED_SUFFIXES):
            return False
        return not any(lowered.endswith("@" + domain) for domain in IGNORED_DOMAINS)


def build_email_finder(config: Settings = None) -> EmailFinder:
    """Pick the email finder according to configuration."""
    config = config or settings
    if config.fetch_emails:
        return WebsiteEmailFinder(config=config)
    return NullEmailFinder()
