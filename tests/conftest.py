"""Pytest configuration and fixtures."""
import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from api.models.place import PlaceRecord
from consumer import selectors
from database.repositories.job_repo import JobStatus
from shared.config import Settings
from shared.utils import generate_job_id, get_utc_now, timestamped


# ----------------------------------------------------------------------
# Browser fakes
# ----------------------------------------------------------------------

class FakeElement:
    """Minimal stand-in for a Playwright ElementHandle.

    ``children`` maps a selector string to the elements it matches.
    Waiting for a selector that matches nothing raises a Playwright timeout.
    """

    def __init__(
        self,
        text: str = "",
        attributes: Optional[Dict[str, str]] = None,
        children: Optional[Dict[str, List["FakeElement"]]] = None,
        on_click=None,
        click_error: Optional[Exception] = None
    ):
        self.text = text
        self.attributes = attributes or {}
        self.children = children or {}
        self.on_click = on_click
        self.click_error = click_error
        self.clicks = 0
        self.queried: List[str] = []

    def _matches(self, selector: str) -> List["FakeElement"]:
        return list(self.children.get(selector, []))

    async def query_selector(self, selector: str):
        self.queried.append(selector)
        matches = self._matches(selector)
        return matches[0] if matches else None

    async def query_selector_all(self, selector: str):
        self.queried.append(selector)
        return self._matches(selector)

    async def wait_for_selector(self, selector: str, timeout: float = None, state: str = None):
        element = await self.query_selector(selector)
        if element is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return element

    async def text_content(self):
        return self.text

    async def get_attribute(self, name: str):
        return self.attributes.get(name)

    async def click(self, timeout: float = None):
        self.clicks += 1
        if self.click_error is not None:
            raise self.click_error
        if self.on_click is not None:
            self.on_click()


class FakePage(FakeElement):
    """A results page: a feed of cards that grows as it is scrolled.

    Clicking a card shows its detail panel; panel selectors shadow the
    page's own.
    """

    def __init__(self, cards: List[FakeElement] = None, initially_loaded: int = None, batch: int = None):
        super().__init__(children={selectors.FEED: [FakeElement()]})
        self.cards = cards or []
        self.loaded = len(self.cards) if initially_loaded is None else initially_loaded
        self.batch = batch or len(self.cards) or 1
        self.panel: Optional[FakeElement] = None
        self.url = "https://www.google.com/maps/search/test"
        self.goto_error: Optional[Exception] = None
        self.visited: List[str] = []
        self.scrolls = 0

    def _matches(self, selector: str) -> List[FakeElement]:
        if selector == selectors.PLACE_ARTICLE:
            return self.cards[:self.loaded]
        if self.panel is not None and selector in self.panel.children:
            return self.panel._matches(selector)
        return super()._matches(selector)

    def show(self, panel: FakeElement, url: str = None):
        self.panel = panel
        if url:
            self.url = url

    async def goto(self, url: str, wait_until: str = None, timeout: float = None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error

    async def evaluate(self, script: str, arg=None):
        self.scrolls += 1
        self.loaded = min(len(self.cards), self.loaded + self.batch)

    async def wait_for_timeout(self, timeout: float):
        return None

    async def wait_for_load_state(self, state: str = None):
        return None

    async def screenshot(self, path: str = None, full_page: bool = False):
        return b""

    async def content(self):
        return "<html></html>"


def make_place_card(
    page: FakePage,
    name: str,
    phone: str = "+1 555 0100",
    website: str = "https://example.org",
    address: str = "1 Main St",
    rating: str = "4.5 stars",
    reviews: str = "120 reviews",
    place_id: str = ""
) -> FakeElement:
    """A list card whose click opens a detail panel for the given place."""
    panel_children = {
        "h1.DUwDvf": [FakeElement(text=name)],
        'button[jsaction*="category"]': [FakeElement(text="Restaurant")],
        'button[data-item-id="address"]': [FakeElement(attributes={"aria-label": f"Address: {address}"})],
        'div[role="img"][aria-label*="stars"]': [FakeElement(attributes={"aria-label": rating})],
        'button[aria-label*="reviews"]': [FakeElement(attributes={"aria-label": reviews})],
    }
    if phone:
        panel_children['button[data-item-id*="phone"]'] = [
            FakeElement(attributes={"aria-label": f"Phone: {phone}"})
        ]
    if website:
        panel_children['a[data-item-id="authority"]'] = [FakeElement(attributes={"href": website})]

    panel = FakeElement(children=panel_children)
    url = f"https://www.google.com/maps/place/?q=x&place_id={place_id}" if place_id else None
    return FakeElement(
        children={"div.qBF1Pd": [FakeElement(text=name)]},
        on_click=lambda: page.show(panel, url)
    )


def session_for(page: FakePage):
    """Session factory yielding an already-open fake page."""
    @asynccontextmanager
    async def session():
        yield page
    return session


# ----------------------------------------------------------------------
# Storage fakes
# ----------------------------------------------------------------------

class InMemoryJobRepository:
    """Dict-backed JobRepository with the same status guards."""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.checkpoints_recorded: List[int] = []

    async def create_job(
        self,
        user_id: str,
        keyword: str,
        skip_duplicates: bool = True,
        skip_without_phone: bool = True,
        skip_without_website: bool = False,
        max_results: int = 50
    ) -> Dict[str, Any]:
        now = get_utc_now()
        job = {
            "_id": generate_job_id(),
            "user_id": user_id,
            "keyword": keyword,
            "status": JobStatus.PROCESSING,
            "skip_duplicates": skip_duplicates,
            "skip_without_phone": skip_without_phone,
            "skip_without_website": skip_without_website,
            "max_results": max_results,
            "results": [],
            "total_results": 0,
            "duplicates_skipped": 0,
            "without_phone_skipped": 0,
            "without_website_skipped": 0,
            "failed_places": 0,
            "logs": [],
            "error_message": "",
            "last_checkpoint_index": -1,
            "checkpoint_saved_at": None,
            "debug_artifacts_path": "",
            "started_at": now,
            "completed_at": None,
            "created_at": now,
            "updated_at": now
        }
        self.jobs[job["_id"]] = job
        return copy.deepcopy(job)

    def _processing(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self.jobs.get(job_id)
        if job is None or job["status"] != JobStatus.PROCESSING:
            return None
        return job

    async def get_job(self, job_id: str):
        job = self.jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def get_user_job(self, job_id: str, user_id: str):
        job = self.jobs.get(job_id)
        if job is None or job["user_id"] != user_id:
            return None
        return copy.deepcopy(job)

    async def get_status(self, job_id: str):
        job = self.jobs.get(job_id)
        return job["status"] if job else None

    async def append_log(self, job_id: str, message: str) -> bool:
        job = self._processing(job_id)
        if job is None:
            return False
        job["logs"].append(timestamped(message))
        return True

    async def record_checkpoint(self, job_id: str, index: int, saved_at) -> bool:
        job = self.jobs.get(job_id)
        if job is None:
            return False
        job["last_checkpoint_index"] = index
        job["checkpoint_saved_at"] = saved_at
        self.checkpoints_recorded.append(index)
        return True

    async def complete_job(
        self,
        job_id: str,
        results,
        duplicates_skipped: int,
        without_phone_skipped: int,
        without_website_skipped: int,
        failed_places: int,
        message: str,
        debug_artifacts_path: str = ""
    ) -> bool:
        job = self._processing(job_id)
        if job is None:
            return False
        job.update(
            status=JobStatus.COMPLETED,
            results=results,
            total_results=len(results),
            duplicates_skipped=duplicates_skipped,
            without_phone_skipped=without_phone_skipped,
            without_website_skipped=without_website_skipped,
            failed_places=failed_places,
            debug_artifacts_path=debug_artifacts_path,
            completed_at=get_utc_now()
        )
        job["logs"].append(timestamped(message))
        return True

    async def fail_job(self, job_id: str, error_message: str) -> bool:
        job = self._processing(job_id)
        if job is None:
            return False
        job.update(status=JobStatus.FAILED, error_message=error_message, completed_at=get_utc_now())
        job["logs"].append(timestamped(f"ERROR - {error_message}"))
        return True

    async def cancel_job(self, job_id: str, user_id: str) -> bool:
        job = self._processing(job_id)
        if job is None or job["user_id"] != user_id:
            return False
        job.update(status=JobStatus.CANCELLED, completed_at=get_utc_now())
        job["logs"].append(timestamped("Extraction cancelled by user"))
        return True

    async def delete_job(self, job_id: str, user_id: str) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job["user_id"] != user_id:
            return False
        del self.jobs[job_id]
        return True

    async def list_user_jobs(self, user_id: str, limit: int = 20):
        jobs = [job for job in self.jobs.values() if job["user_id"] == user_id]
        jobs.sort(key=lambda job: job["created_at"], reverse=True)
        return [
            {k: copy.deepcopy(v) for k, v in job.items() if k != "results"}
            for job in jobs[:limit]
        ]

    async def list_jobs_by_status(self, status: str, limit: int = 100):
        return [copy.deepcopy(job) for job in self.jobs.values() if job["status"] == status][:limit]


class InMemoryQuota:
    """Quota service with a fixed daily allowance."""

    def __init__(self, daily_quota: int = 10):
        self.daily_quota = daily_quota
        self.used: Dict[str, int] = {}

    async def has_quota_remaining(self, user_id: str) -> bool:
        return self.used.get(user_id, 0) < self.daily_quota

    async def update_quota(self, user_id: str):
        self.used[user_id] = self.used.get(user_id, 0) + 1

    async def refund_quota(self, user_id: str) -> bool:
        if self.used.get(user_id, 0) <= 0:
            return False
        self.used[user_id] -= 1
        return True

    async def get_quota_summary(self, user_id: str) -> Dict[str, Any]:
        used = self.used.get(user_id, 0)
        return {
            "daily_quota": self.daily_quota,
            "used_today": used,
            "remaining": max(0, self.daily_quota - used),
            "reset_date": None
        }


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing every directory into tmp_path, with no waiting."""
    return Settings(
        checkpoint_dir=str(tmp_path / "checkpoints"),
        debug_base_path=str(tmp_path / "debug"),
        checkpoint_interval=2,
        retry_base_delay=0.0,
        scroll_plateau_limit=2,
        scroll_max_attempts=10,
        fetch_emails=False
    )


@pytest.fixture
def job_repo():
    return InMemoryJobRepository()


@pytest.fixture
def quota():
    return InMemoryQuota(daily_quota=3)


@pytest.fixture
def mock_publisher():
    """Publisher whose emit methods are AsyncMocks."""
    publisher = MagicMock()
    publisher.emit_progress = AsyncMock(return_value=True)
    publisher.emit_complete = AsyncMock(return_value=True)
    publisher.emit_error = AsyncMock(return_value=True)
    return publisher


@pytest.fixture
def mock_debug_sink(tmp_path):
    sink = MagicMock()
    sink.save_debug_artifacts = AsyncMock(return_value={})
    sink.get_debug_path = MagicMock(return_value=tmp_path / "debug" / "job")
    return sink


@pytest.fixture
def mock_mongo_db():
    """Create mock MongoDB database."""
    db = MagicMock()

    db.extractions = MagicMock()
    db.extractions.find_one = AsyncMock()
    db.extractions.insert_one = AsyncMock()
    db.extractions.update_one = AsyncMock()
    db.extractions.delete_one = AsyncMock()
    db.extractions.find = MagicMock()

    db.users = MagicMock()
    db.users.find_one_and_update = AsyncMock()
    db.users.update_one = AsyncMock()

    return db


@pytest.fixture
def mock_redis_client():
    """Create mock Redis client."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


def place(name: str, phone: str = "+1 555 0100", website: str = "https://example.org") -> PlaceRecord:
    return PlaceRecord(name=name, phone=phone, website=website, category="Cafe")


@pytest.fixture
def sample_records():
    """A, a duplicate of A, B without phone, C without website."""
    return [
        place("A"),
        place("A"),
        place("B", phone=""),
        place("C", website=""),
    ]
