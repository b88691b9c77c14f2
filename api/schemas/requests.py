"""Request schemas for API endpoints."""
from pydantic import BaseModel, Field, field_validator
from bs4 import BeautifulSoup


class StartExtractionRequest(BaseModel):
    """Request schema for starting an extraction."""
    keyword: str = Field(..., min_length=1, max_length=200, description="Search keyword, e.g. 'dentists in Lyon'")
    skip_duplicates: bool = Field(default=True, description="Drop places whose name was already seen")
    skip_without_phone: bool = Field(default=True, description="Drop places without a phone number")
    skip_without_website: bool = Field(default=False, description="Drop places without a website")
    max_results: int = Field(default=50, ge=1, le=100, description="Maximum number of places to visit")

    @field_validator('keyword')
    @classmethod
    def sanitize_keyword(cls, v: str) -> str:
        """Strip markup and surrounding whitespace."""
        text = BeautifulSoup(v, "html.parser").get_text()
        text = " ".join(text.split())
        if not text:
            raise ValueError('Keyword must not be empty')
        return text
