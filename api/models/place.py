"""Extracted place record definitions."""
from typing import List
from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_REVIEWS = 5


class Review(BaseModel):
    """A single review shown on a place's detail panel."""
    model_config = ConfigDict(frozen=True)

    author: str = "Anonymous"
    rating: int = Field(default=0, ge=0, le=5)
    text: str = ""
    date: str = ""


class PlaceRecord(BaseModel):
    """One extracted business entity."""
    model_config = ConfigDict(frozen=True)

    category: str = ""
    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    reviews_count: int = Field(default=0, ge=0)
    reviews: List[Review] = Field(default_factory=list)
    opening_hours: List[str] = Field(default_factory=list)
    is_open: bool = False
    external_id: str = ""

    @field_validator("reviews")
    @classmethod
    def cap_reviews(cls, v: List[Review]) -> List[Review]:
        """Keep only the first few reviews."""
        return v[:MAX_REVIEWS]
