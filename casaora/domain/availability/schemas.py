"""Availability schemas"""

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TimeRange(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v):
        if not _TIME_RE.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class AvailabilitySettings(BaseModel):
    working_hours: dict[str, list[TimeRange]] = Field(default_factory=dict)
    buffer_time_minutes: int = Field(0, ge=0, le=240)
    max_bookings_per_day: int = Field(5, ge=1, le=20)
    advance_booking_days: Optional[int] = Field(None, ge=1, le=365)

    @field_validator("working_hours")
    @classmethod
    def validate_days(cls, v):
        valid = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
        unknown = set(v) - valid
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        return v


class InstantBookingSettings(BaseModel):
    min_notice_hours: int = Field(24, ge=0)
    max_booking_duration_hours: int = Field(8, ge=1, le=24)
    auto_accept_recurring: bool = False
    only_verified_customers: bool = False


class AvailabilityUpdate(BaseModel):
    availability_settings: Optional[AvailabilitySettings] = None
    blocked_dates: Optional[list[date]] = None
    instant_booking_settings: Optional[InstantBookingSettings] = None
