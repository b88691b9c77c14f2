"""Fallback-chain field resolution over a Playwright page or element.

A field is described by an ordered list of strategies. The resolver tries
them in order and the first one that locates something *and* yields a
non-empty value wins. Missing data is normal: nothing here raises because
a selector did not match.

The first strategy gets the full wait budget, later ones only a short
one, since the first is expected to match on a healthy page.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from playwright.async_api import Error as PlaywrightError

from shared.config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByText:
    """Read the trimmed text content of the first element matching selector."""
    selector: str


@dataclass(frozen=True)
class ByAttribute:
    """Read an attribute of the first element matching selector.

    ``strip_prefix`` removes a leading label such as ``"Phone:"`` from the value.
    """
    selector: str
    attribute: str
    strip_prefix: Optional[str] = None


@dataclass(frozen=True)
class ByList:
    """Collect every element matching selector."""
    selector: str


ValueStrategy = Union[ByText, ByAttribute]
Selectors = Union[str, Sequence[str]]


def _as_list(selectors: Selectors) -> List[str]:
    if isinstance(selectors, str):
        return [selectors]
    return list(selectors)


class FieldResolver:
    """Resolves elements and values by trying strategies in order."""

    def __init__(
        self,
        first_timeout: Optional[float] = None,
        fallback_timeout: Optional[float] = None,
        config: Settings = None
    ):
        config = config or settings
        self.first_timeout = config.selector_timeout if first_timeout is None else first_timeout
        self.fallback_timeout = (
            config.fallback_selector_timeout if fallback_timeout is None else fallback_timeout
        )

    async def _first_success(
        self,
        strategies: Sequence[Any],
        attempt: Callable[[Any, float], Awaitable[Any]],
        description: str,
        first_timeout: Optional[float],
        required: bool = False
    ) -> Any:
        """Core fallback chain. Returns the first truthy attempt result or None."""
        if not strategies:
            raise ValueError(f"No strategies given for {description}")

        head_timeout = self.first_timeout if first_timeout is None else first_timeout

        for position, strategy in enumerate(strategies):
            timeout = head_timeout if position == 0 else min(self.fallback_timeout, head_timeout)
            result = await attempt(strategy, timeout)
            if result:
                if position > 0:
                    logger.debug(
                        f"Found {description} using fallback #{position + 1}: {strategy.selector}"
                    )
                return result

        message = f"Could not resolve {description} with any of {len(strategies)} strategies"
        if required:
            logger.warning(message)
        else:
            logger.debug(message)
        return None

    async def _probe(self, source, selector: str, timeout: float):
        """Locate one element. A timeout of 0 queries without waiting."""
        try:
            if timeout <= 0:
                return await source.query_selector(selector)
            return await source.wait_for_selector(
                selector, timeout=timeout * 1000, state="attached"
            )
        except PlaywrightError as e:
            logger.debug(f"Selector {selector!r} not found: {e}")
            return None

    async def _read(self, handle, strategy: ValueStrategy) -> str:
        try:
            if isinstance(strategy, ByAttribute):
                value = (await handle.get_attribute(strategy.attribute) or "").strip()
                prefix = strategy.strip_prefix
                if prefix and value.lower().startswith(prefix.lower()):
                    value = value[len(prefix):].strip(" : ")
                return value
            return (await handle.text_content() or "").strip()
        except PlaywrightError as e:
            logger.debug(f"Failed to read {strategy.selector!r}: {e}")
            return ""

    async def read_text(self, handle) -> str:
        """Whitespace-normalized text of an element already in hand."""
        text = await self._read(handle, ByText(":scope"))
        return " ".join(text.split())

    async def resolve(
        self,
        source,
        strategies: Sequence[ValueStrategy],
        default: str = "",
        description: str = "field",
        required: bool = False,
        first_timeout: Optional[float] = None
    ) -> str:
        """Return the first non-empty value produced by the strategies, else default."""
        async def attempt(strategy: ValueStrategy, timeout: float) -> Optional[str]:
            handle = await self._probe(source, strategy.selector, timeout)
            if handle is None:
                return None
            return await self._read(handle, strategy)

        value = await self._first_success(strategies, attempt, description, first_timeout, required)
        return value if value else default

    async def find_element(
        self,
        source,
        selectors: Selectors,
        description: str = "element",
        first_timeout: Optional[float] = None
    ):
        """Return the first element matched by any selector, or None."""
        async def attempt(strategy: ByText, timeout: float):
            return await self._probe(source, strategy.selector, timeout)

        strategies = [ByText(selector) for selector in _as_list(selectors)]
        return await self._first_success(strategies, attempt, description, first_timeout)

    async def find_elements(
        self,
        source,
        selectors: Selectors,
        description: str = "elements"
    ) -> list:
        """Return all elements of the first selector that matches anything."""
        async def attempt(strategy: ByList, timeout: float) -> list:
            try:
                return await source.query_selector_all(strategy.selector)
            except PlaywrightError as e:
                logger.debug(f"Selector {strategy.selector!r} failed: {e}")
                return []

        strategies = [ByList(selector) for selector in _as_list(selectors)]
        return await self._first_success(strategies, attempt, description, 0) or []

    async def extract_text(
        self,
        source,
        selectors: Selectors,
        default: str = "",
        description: str = "text",
        required: bool = False,
        first_timeout: Optional[float] = None
    ) -> str:
        """Text content of the first matching selector."""
        strategies = [ByText(selector) for selector in _as_list(selectors)]
        return await self.resolve(source, strategies, default, description, required, first_timeout)

    async def extract_attribute(
        self,
        source,
        selectors: Selectors,
        attribute: str,
        default: str = "",
        description: str = "attribute",
        required: bool = False,
        first_timeout: Optional[float] = None
    ) -> str:
        """Attribute value of the first matching selector."""
        strategies = [ByAttribute(selector, attribute) for selector in _as_list(selectors)]
        return await self.resolve(source, strategies, default, description, required, first_timeout)
