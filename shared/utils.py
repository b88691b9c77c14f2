"""Shared utility functions."""
import re
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote


def generate_job_id() -> str:
    """Generate a unique job ID."""
    return f"job_{uuid.uuid4().hex[:12]}"


def get_utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def timestamped(message: str) -> str:
    """Prefix a job log line with the current UTC timestamp."""
    return f"{get_utc_now().isoformat()}: {message}"


def build_search_url(keyword: str) -> str:
    """Build the maps search URL for a keyword."""
    return f"https://www.google.com/maps/search/{quote(keyword.strip())}"


def calculate_exponential_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    multiplier: float = 2.0
) -> float:
    """Calculate exponential backoff delay for a zero-based attempt."""
    delay = base_delay * (multiplier ** attempt)
    return min(delay, max_delay)


def parse_first_float(text: str) -> Optional[float]:
    """Return the first decimal number in text (accepts comma decimals)."""
    match = re.search(r"(\d+(?:[.,]\d+)?)", text or "")
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def parse_count(text: str) -> int:
    """Parse a count like '1,234' or '(87)' from text. Returns 0 if none."""
    match = re.search(r"(\d[\d,.\s]*)", text or "")
    if not match:
        return 0
    digits = re.sub(r"\D", "", match.group(1))
    return int(digits) if digits else 0


def slugify(text: str) -> str:
    """Make a filename-safe slug."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", text or "").strip("-").lower()
    return slug or "extraction"
