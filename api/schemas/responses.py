"""Response schemas for API endpoints."""
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from api.models.place import PlaceRecord


class StartExtractionResponse(BaseModel):
    """Response schema for extraction submission."""
    id: str = Field(..., description="Unique extraction identifier")
    keyword: str = Field(..., description="Search keyword")
    status: str = Field(..., description="Current extraction status")
    message: str = Field(default="Extraction started. Check status using the extraction ID.")


class ExtractionSummary(BaseModel):
    """One entry of the extraction history (results omitted)."""
    id: str = Field(..., description="Unique extraction identifier")
    keyword: str
    status: str
    total_results: int = 0
    duplicates_skipped: int = 0
    without_phone_skipped: int = 0
    without_website_skipped: int = 0
    failed_places: int = 0
    error_message: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ExtractionDetail(ExtractionSummary):
    """Full extraction record."""
    skip_duplicates: bool = True
    skip_without_phone: bool = True
    skip_without_website: bool = False
    max_results: int = 50
    results: List[PlaceRecord] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)
    last_checkpoint_index: int = -1
    checkpoint_saved_at: Optional[datetime] = None
    debug_artifacts_path: str = ""


class QuotaResponse(BaseModel):
    """Daily quota state of the caller."""
    daily_quota: int
    used_today: int
    remaining: int
    reset_date: Optional[datetime] = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    message: str


class ErrorResponse(BaseModel):
    """Schema for error responses."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
