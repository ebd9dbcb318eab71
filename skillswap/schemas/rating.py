from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime

from .base import CamelModel

MIN_RATING = 1
MAX_RATING = 5

class RatingCreate(CamelModel):
    swap_id: str = Field(..., min_length=1)
    ratee: str = Field(..., min_length=1)
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    feedback: Optional[str] = Field(None, max_length=1000)

    @field_validator("feedback")
    @classmethod
    def strip_feedback(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

class RatingResponse(CamelModel):
    id: str
    swap: str
    rater: str
    ratee: str
    rating: int
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
