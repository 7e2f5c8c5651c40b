"""Review schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...utils.sanitization import sanitize_text


class ReviewCreate(BaseModel):
    booking_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    locale: str = Field("en", pattern="^(en|es)$")

    @field_validator("comment")
    @classmethod
    def clean_comment(cls, v):
        return sanitize_text(v, max_length=5000)


class ReviewModerate(BaseModel):
    approve: bool
    reason: Optional[str] = Field(None, max_length=1000)


class ReviewResponse(BaseModel):
    id: str
    booking_id: str
    customer_id: str
    professional_id: str
    rating: int
    comment: Optional[str] = None
    status: str
    sentiment: Optional[str] = None
    severity: Optional[str] = None
    flags: Optional[list] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
