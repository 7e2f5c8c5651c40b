"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...utils.sanitization import sanitize_dict, sanitize_text


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    professional_id: str
    scheduled_start: datetime
    duration_minutes: int = Field(..., ge=30, le=720)
    amount: Optional[int] = Field(None, gt=0)
    service_name: Optional[str] = Field(None, max_length=255)
    service_category: Optional[str] = Field(None, max_length=100)
    special_instructions: Optional[str] = None
    address: Optional[dict] = None
    is_recurring: bool = False
    currency: str = Field("COP", min_length=3, max_length=3)

    @field_validator("special_instructions")
    @classmethod
    def clean_instructions(cls, v):
        return sanitize_text(v, max_length=2000)

    @field_validator("address")
    @classmethod
    def clean_address(cls, v):
        return sanitize_dict(v) if v else v


class GPSLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CheckOutRequest(GPSLocation):
    completion_notes: Optional[str] = None

    @field_validator("completion_notes")
    @classmethod
    def clean_notes(cls, v):
        return sanitize_text(v, max_length=2000)


class ExtendTimeRequest(BaseModel):
    additional_minutes: int = Field(..., ge=15, le=240)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingCreatedResponse(BaseModel):
    booking_id: str
    client_secret: Optional[str]
    payment_intent_id: str
    amount: int
    currency: str


class BookingResponse(BaseModel):
    id: str
    customer_id: str
    professional_id: str
    status: str
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    amount_estimated: int
    amount_authorized: Optional[int] = None
    amount_captured: Optional[int] = None
    amount_refunded: Optional[int] = None
    time_extension_minutes: int = 0
    time_extension_amount: int = 0
    currency: str
    service_name: Optional[str] = None
    address: Optional[dict] = None
    special_instructions: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    actual_duration_minutes: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
