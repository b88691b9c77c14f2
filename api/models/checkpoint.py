"""Checkpoint model definitions."""
from typing import List
from datetime import datetime
from pydantic import BaseModel, Field

from api.models.place import PlaceRecord
from shared.utils import get_utc_now


class Checkpoint(BaseModel):
    """Resumable snapshot of one in-flight extraction."""
    job_id: str
    keyword: str
    last_processed_index: int = Field(default=-1, ge=-1)
    total_processed: int = Field(default=0, ge=0)
    records: List[PlaceRecord] = Field(default_factory=list)
    failed_places: int = 0
    duplicates_skipped: int = 0
    without_phone_skipped: int = 0
    without_website_skipped: int = 0
    timestamp: datetime = Field(default_factory=get_utc_now)
