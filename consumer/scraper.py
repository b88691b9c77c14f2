"""Scrape pipeline: search results list to filtered place records."""
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, List, Optional
from urllib.parse import parse_qs, urlparse

from playwright.async_api import Error as PlaywrightError

from api.models.checkpoint import Checkpoint
from api.models.place import MAX_REVIEWS, PlaceRecord, Review
from consumer import selectors
from consumer.browser import open_browser_page
from consumer.debug import DebugArtifactSink
from consumer.email_finder import EmailFinder, build_email_finder
from consumer.events import CheckpointEvent, EventSink, LogEvent, ProgressEvent, discard_event
from consumer.filtering import FilterPolicy, filter_results
from consumer.resolver import ByAttribute, ByText, FieldResolver
from consumer.retry import RetryOptions, retry_with_backoff
from shared.config import Settings, settings
from shared.errors import ScraperError
from shared.utils import build_search_url, parse_count, parse_first_float

logger = logging.getLogger(__name__)

SCROLL_FEED_JS = """(selector) => {
    const feed = document.querySelector(selector);
    if (feed) feed.scrollTo(0, feed.scrollHeight);
}"""

LOG_EVERY = 5


@dataclass(frozen=True)
class ScrapeRequest:
    """What to scrape and how to filter it."""
    job_id: str
    keyword: str
    max_results: int = 50
    policy: FilterPolicy = field(default_factory=FilterPolicy)


@dataclass(frozen=True)
class CandidateResult:
    """Outcome of one candidate: a record, or the reason it failed."""
    index: int
    record: Optional[PlaceRecord] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass
class ScrapeOutcome:
    """Filtered records and counters of a finished run."""
    results: List[PlaceRecord] = field(default_factory=list)
    duplicates_skipped: int = 0
    without_phone_skipped: int = 0
    without_website_skipped: int = 0
    failed_places: int = 0
    visited: int = 0
    last_processed_index: int = -1
    stopped: bool = False

    @property
    def total_results(self) -> int:
        return len(self.results)


def parse_external_id(url: str) -> str:
    """Pull a place identifier out of a maps URL."""
    if not url:
        return ""
    place_ids = parse_qs(urlparse(url).query).get("place_id")
    if place_ids:
        return place_ids[0]
    match = re.search(r"!19s(ChIJ[\w-]+)", url)
    if match:
        return match.group(1)
    match = re.search(r"!1s(0x[0-9a-f]+:0x[0-9a-f]+)", url)
    return match.group(1) if match else ""


def parse_is_open(label: str) -> bool:
    """Interpret the hours button label ('Open ⋅ Closes 10 PM', 'Closed ⋅ Opens 9 AM')."""
    lowered = (label or "").strip().lower()
    if not lowered or "closed" in lowered.split("⋅")[0]:
        return False
    return "open" in lowered


def clamp_rating(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return max(0.0, min(5.0, value))


class PlaceScraper:
    """Drives a browser through search, list loading and per-place extraction."""

    def __init__(
        self,
        config: Settings = None,
        resolver: FieldResolver = None,
        debug_sink: DebugArtifactSink = None,
        email_finder: EmailFinder = None,
        session_factory: Callable = None
    ):
        self.config = config or settings
        self.resolver = resolver or FieldResolver(config=self.config)
        self.debug_sink = debug_sink or DebugArtifactSink(self.config)
        self.email_finder = email_finder or build_email_finder(self.config)
        self.session_factory = session_factory or (lambda: open_browser_page(self.config))
        self.retry_options = RetryOptions.from_settings(self.config)

    async def run(
        self,
        request: ScrapeRequest,
        emit: EventSink = None,
        checkpoint: Optional[Checkpoint] = None,
        should_stop: Optional[Callable[[], Awaitable[bool]]] = None
    ) -> ScrapeOutcome:
        """
        Scrape one keyword end to end.

        Single-place failures are counted and skipped. Navigation or list
        loading failures (after retries) raise ScraperError.
        """
        emit = emit or discard_event
        logger.info(f"Starting scraping for keyword: {request.keyword}")
        emit(LogEvent(f"Starting extraction for: {request.keyword}"))

        try:
            emit(LogEvent("Launching browser..."))
            async with self.session_factory() as page:
                await self._open_search(page, request.keyword, emit)

                emit(LogEvent("Loading more results..."))
                candidates = await self._load_candidates(page, request.max_results)

                outcome = await self._process_candidates(
                    page, candidates, request, emit, checkpoint, should_stop
                )
        except ScraperError:
            raise
        except Exception as e:
            logger.error(f"Scraping error: {e}", exc_info=True)
            raise ScraperError(f"Failed to scrape Google Maps: {e}") from e

        emit(LogEvent(f"Extraction completed! Found {outcome.total_results} results"))
        logger.info(f"Scraping completed. Found {outcome.total_results} results")
        return outcome

    async def _open_search(self, page, keyword: str, emit: EventSink):
        """Navigate to the search results and wait for the feed, both retried."""
        def on_retry(attempt: int, error: BaseException):
            emit(LogEvent(f"Attempt {attempt} failed: {error}. Retrying..."))

        options = replace(self.retry_options, on_retry=on_retry)
        url = build_search_url(keyword)

        emit(LogEvent("Navigating to Google Maps..."))
        await retry_with_backoff(
            lambda: page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.page_load_timeout * 1000
            ),
            options
        )

        await self._dismiss_consent(page)

        emit(LogEvent("Waiting for results to load..."))
        await retry_with_backoff(
            lambda: page.wait_for_selector(
                selectors.FEED,
                timeout=self.config.selector_timeout * 1000
            ),
            options
        )

    async def _dismiss_consent(self, page) -> bool:
        """Click through a consent interstitial if one is showing."""
        button = await self.resolver.find_element(
            page,
            selectors.CONSENT_BUTTONS,
            description="consent button",
            first_timeout=self.config.fallback_selector_timeout
        )
        if button is None:
            return False

        try:
            await button.click(timeout=self.config.element_click_timeout * 1000)
            await page.wait_for_load_state("domcontentloaded")
            logger.debug("Dismissed consent screen")
            return True
        except PlaywrightError as e:
            logger.debug(f"Could not dismiss consent screen: {e}")
            return False

    async def _count_candidates(self, page) -> int:
        return len(await page.query_selector_all(selectors.PLACE_ARTICLE))

    async def _load_candidates(self, page, max_results: int) -> list:
        """
        Scroll the results feed until enough candidates are loaded.

        Stops at max_results, when the count has not grown for
        scroll_plateau_limit rounds, or after scroll_max_attempts rounds.
        """
        previous_count = -1
        stalled = 0

        for _ in range(self.config.scroll_max_attempts):
            count = await self._count_candidates(page)
            if count >= max_results:
                break

            if count == previous_count:
                stalled += 1
                if stalled >= self.config.scroll_plateau_limit:
                    logger.debug(f"Results list stopped growing at {count} candidates")
                    break
            else:
                stalled = 0
            previous_count = count

            await page.evaluate(SCROLL_FEED_JS, selectors.FEED)
            await page.wait_for_timeout(self.config.scroll_wait * 1000)

        return await self.resolver.find_elements(page, selectors.PLACE_ARTICLE, "place cards")

    async def _stop_requested(self, should_stop, job_id: str) -> bool:
        if should_stop is None:
            return False
        try:
            return await should_stop()
        except Exception as e:
            logger.warning(f"Stop check failed for job {job_id}, continuing: {e}")
            return False

    async def _process_candidates(
        self,
        page,
        candidates: list,
        request: ScrapeRequest,
        emit: EventSink,
        checkpoint: Optional[Checkpoint] = None,
        should_stop: Optional[Callable[[], Awaitable[bool]]] = None
    ) -> ScrapeOutcome:
        """Extract every candidate in range, checkpointing as it goes."""
        limit = min(len(candidates), request.max_results)
        records: List[PlaceRecord] = []
        failed = 0
        start = 0

        if checkpoint is not None and checkpoint.keyword == request.keyword:
            records = list(checkpoint.records)
            failed = checkpoint.failed_places
            start = checkpoint.last_processed_index + 1
            emit(LogEvent(
                f"Resuming from checkpoint: {checkpoint.total_processed} places already processed"
            ))
        elif checkpoint is not None:
            logger.warning(f"Ignoring checkpoint for job {request.job_id}: keyword changed")

        emit(LogEvent(f"Found {len(candidates)} places, extracting {limit} results..."))

        last_index = start - 1
        stopped = False
        interval = self.config.checkpoint_interval

        for index in range(start, limit):
            if await self._stop_requested(should_stop, request.job_id):
                emit(LogEvent(f"Stopping at place {index + 1}/{limit}"))
                stopped = True
                break

            result = await self._process_candidate(page, candidates[index], index, request)
            if result.ok:
                records.append(result.record)
            else:
                failed += 1
                emit(LogEvent(f"Failed to extract place {index + 1}: {result.error}"))
            last_index = index

            processed = index + 1
            if processed % LOG_EVERY == 0 or processed == limit:
                emit(LogEvent(f"Extracted {processed}/{limit} places..."))

            if interval > 0 and processed % interval == 0:
                emit(CheckpointEvent(self._build_checkpoint(request, index, records, failed)))
                emit(ProgressEvent(
                    current_index=processed,
                    total=limit,
                    extracted=len(records),
                    failed=failed
                ))

        emit(LogEvent("Filtering results..."))
        filtered = filter_results(records, request.policy)

        return ScrapeOutcome(
            results=filtered.results,
            duplicates_skipped=filtered.duplicates_skipped,
            without_phone_skipped=filtered.without_phone_skipped,
            without_website_skipped=filtered.without_website_skipped,
            failed_places=failed,
            visited=len(records) + failed,
            last_processed_index=last_index,
            stopped=stopped
        )

    def _build_checkpoint(
        self,
        request: ScrapeRequest,
        index: int,
        records: List[PlaceRecord],
        failed: int
    ) -> Checkpoint:
        preview = filter_results(records, request.policy)
        return Checkpoint(
            job_id=request.job_id,
            keyword=request.keyword,
            last_processed_index=index,
            total_processed=len(records) + failed,
            records=list(records),
            failed_places=failed,
            duplicates_skipped=preview.duplicates_skipped,
            without_phone_skipped=preview.without_phone_skipped,
            without_website_skipped=preview.without_website_skipped
        )

    async def _process_candidate(self, page, candidate, index: int, request: ScrapeRequest) -> CandidateResult:
        """Extract one candidate. Never raises for extraction problems."""
        card_name = ""
        try:
            card_name = await self._card_name(candidate)
            await self._open_details(page, candidate)
            record = await self._extract_place(page, card_name)
            logger.debug(f"Extracted place {index + 1}: {record.name}")
            return CandidateResult(index=index, record=record)
        except Exception as e:
            logger.warning(f"Failed to extract place {index + 1}: {e}")
            await self.debug_sink.save_debug_artifacts(
                page,
                request.job_id,
                e,
                operation="extract_place",
                index=index,
                place_name=card_name or None,
                additional_info={"keyword": request.keyword}
            )
            return CandidateResult(index=index, error=str(e))

    async def _card_name(self, candidate) -> str:
        """Cheap name from the list card, used when the panel heading is missing."""
        strategies = [ByText(selector) for selector in selectors.CARD_NAME]
        strategies.append(ByAttribute("a[aria-label]", "aria-label"))
        return await self.resolver.resolve(
            candidate, strategies, description="card name", first_timeout=0
        )

    async def _open_details(self, page, candidate):
        await retry_with_backoff(
            lambda: candidate.click(timeout=self.config.element_click_timeout * 1000),
            self.retry_options
        )
        await page.wait_for_timeout(self.config.place_details_wait * 1000)

    async def _extract_place(self, page, fallback_name: str = "") -> PlaceRecord:
        """Read every field of the open detail panel."""
        resolver = self.resolver
        wait = self.config.field_timeout

        name = await resolver.extract_text(
            page, selectors.BUSINESS_NAME, description="business name", required=True, first_timeout=wait
        )
        if name in selectors.IGNORED_NAMES:
            name = ""
        name = name or fallback_name

        category = await resolver.extract_text(
            page, selectors.CATEGORY, description="category", first_timeout=wait
        )

        address = await resolver.resolve(
            page,
            [ByAttribute(s, "aria-label", strip_prefix="Address") for s in selectors.ADDRESS_BUTTON]
            + [ByText(s) for s in selectors.ADDRESS_TEXT],
            description="address",
            first_timeout=wait
        )

        phone = await resolver.resolve(
            page,
            [ByAttribute(s, "aria-label", strip_prefix="Phone") for s in selectors.PHONE_BUTTON]
            + [ByText(s) for s in selectors.PHONE_TEXT],
            description="phone",
            first_timeout=wait
        )

        website = await resolver.extract_attribute(
            page, selectors.WEBSITE, "href", description="website", first_timeout=wait
        )

        rating_label = await resolver.extract_attribute(
            page, selectors.RATING, "aria-label", description="rating", first_timeout=wait
        )

        reviews_label = await resolver.resolve(
            page,
            [ByAttribute(s, "aria-label") for s in selectors.REVIEWS_COUNT]
            + [ByText(s) for s in selectors.REVIEWS_COUNT],
            description="reviews count",
            first_timeout=wait
        )

        hours_label = await resolver.extract_attribute(
            page, selectors.OPENING_HOURS, "aria-label", description="opening hours", first_timeout=wait
        )

        email = await self.email_finder.find(website) if website else ""

        return PlaceRecord(
            category=category,
            name=name,
            address=address,
            phone=phone,
            email=email,
            website=website,
            rating=clamp_rating(parse_first_float(rating_label)),
            reviews_count=parse_count(reviews_label),
            reviews=await self._extract_reviews(page),
            opening_hours=await self._extract_hours(page),
            is_open=parse_is_open(hours_label),
            external_id=parse_external_id(page.url)
        )

    async def _extract_reviews(self, page) -> List[Review]:
        resolver = self.resolver
        reviews = []
        elements = await resolver.find_elements(page, selectors.REVIEWS, "reviews")

        for element in elements[:MAX_REVIEWS]:
            author = await resolver.resolve(
                element,
                [ByAttribute(selectors.REVIEW_AUTHOR[0], "aria-label", strip_prefix="Photo of")]
                + [ByText(s) for s in selectors.REVIEW_AUTHOR[1:]],
                default="Anonymous",
                description="review author",
                first_timeout=0
            )
            rating_label = await resolver.extract_attribute(
                element, selectors.REVIEW_RATING, "aria-label", first_timeout=0
            )
            text = await resolver.extract_text(element, selectors.REVIEW_TEXT, first_timeout=0)
            date = await resolver.extract_text(element, selectors.REVIEW_DATE, first_timeout=0)

            reviews.append(Review(
                author=author.strip('"'),
                rating=int(clamp_rating(parse_first_float(rating_label))),
                text=text,
                date=date
            ))

        return reviews

    async def _extract_hours(self, page) -> List[str]:
        rows = await self.resolver.find_elements(page, selectors.HOURS_ROWS, "hours rows")
        hours = []
        for row in rows:
            text = await self.resolver.read_text(row)
            if text:
                hours.append(text)

        if not hours:
            summary = await self.resolver.extract_text(page, selectors.OPENING_HOURS_TEXT, first_timeout=0)
            if summary:
                hours.append(summary)
        return hours
