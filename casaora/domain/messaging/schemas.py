"""Messaging schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...utils.sanitization import sanitize_text


class ConversationCreate(BaseModel):
    professional_id: str
    booking_id: Optional[str] = None


class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1)

    @field_validator("body")
    @classmethod
    def clean_body(cls, v):
        cleaned = sanitize_text(v, max_length=5000)
        if not cleaned:
            raise ValueError("Message cannot be empty")
        return cleaned


class MessageResponse(BaseModel):
    id: int
    conversation_id: str
    sender_id: str
    body: str
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationResponse(BaseModel):
    id: str
    customer_id: str
    professional_id: str
    booking_id: Optional[str] = None
    customer_unread_count: int
    professional_unread_count: int
    last_message_at: Optional[datetime] = None

    class Config:
        from_attributes = True
