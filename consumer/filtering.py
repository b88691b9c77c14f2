"""Inclusion-policy filtering and name deduplication of extracted places."""
from dataclasses import dataclass, field
from typing import List, Sequence

from api.models.place import PlaceRecord


@dataclass(frozen=True)
class FilterPolicy:
    """Which records to drop."""
    skip_duplicates: bool = True
    skip_without_phone: bool = True
    skip_without_website: bool = False


@dataclass
class FilterResult:
    """Kept records plus per-reason skip counters."""
    results: List[PlaceRecord] = field(default_factory=list)
    duplicates_skipped: int = 0
    without_phone_skipped: int = 0
    without_website_skipped: int = 0

    @property
    def skipped(self) -> int:
        return self.duplicates_skipped + self.without_phone_skipped + self.without_website_skipped


def normalize_name(name: str) -> str:
    """Key used for duplicate detection."""
    return (name or "").strip().lower()


def filter_results(records: Sequence[PlaceRecord], policy: FilterPolicy) -> FilterResult:
    """
    Filter records in a single stable pass.

    Checks run in a fixed order per record: missing phone, then missing
    website, then duplicate name. Only the first record with a given
    name is kept.
    """
    outcome = FilterResult()
    seen_names = set()

    for record in records:
        if policy.skip_without_phone and not record.phone:
            outcome.without_phone_skipped += 1
            continue

        if policy.skip_without_website and not record.website:
            outcome.without_website_skipped += 1
            continue

        if policy.skip_duplicates:
            key = normalize_name(record.name)
            if key in seen_names:
                outcome.duplicates_skipped += 1
                continue
            seen_names.add(key)

        outcome.results.append(record)

    return outcome
