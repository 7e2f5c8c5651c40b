"""Availability service - loads a professional's schedule and computes open slots"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile
from ...shared.validators import utcnow
from .calculator import (
    can_instant_book,
    get_availability_for_range,
    get_next_available_date,
    is_slot_available,
)

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = ("pending_payment", "confirmed", "in_progress")
MAX_RANGE_DAYS = 90


class AvailabilityService:
    """Service layer for professional availability"""

    def __init__(self, db: Session):
        self.db = db

    def _get_professional(self, professional_id: str) -> ProfessionalProfile:
        pro = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        if not pro:
            raise HTTPException(status_code=404, detail="Professional not found")
        return pro

    def _active_bookings(self, professional_id: str, start: date, end: date) -> list[Booking]:
        range_start = datetime(start.year, start.month, start.day)
        range_end = datetime(end.year, end.month, end.day) + timedelta(days=1)
        return (
            self.db.query(Booking)
            .filter(
                Booking.professional_id == professional_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.scheduled_start >= range_start,
                Booking.scheduled_start < range_end,
            )
            .all()
        )

    def get_professional_availability(
        self, professional_id: str, start_date: date, end_date: Optional[date] = None
    ) -> dict:
        """Availability calendar for a date range (defaults to one week)"""
        end_date = end_date or start_date + timedelta(days=6)
        if end_date < start_date:
            raise HTTPException(status_code=400, detail="end_date must be on or after start_date")
        if (end_date - start_date).days > MAX_RANGE_DAYS:
            raise HTTPException(status_code=400, detail=f"Range cannot exceed {MAX_RANGE_DAYS} days")

        pro = self._get_professional(professional_id)
        settings = pro.availability_settings or {}
        blocked_dates = pro.blocked_dates or []
        bookings = self._active_bookings(professional_id, start_date, end_date)

        days = get_availability_for_range(start_date, end_date, settings, bookings, blocked_dates)

        # Next-available lookahead needs bookings beyond the requested window
        today = utcnow().date()
        lookahead = self._active_bookings(professional_id, today, today + timedelta(days=31))
        next_available = get_next_available_date(settings, lookahead, blocked_dates, today=today)

        return {
            "professional_id": professional_id,
            "days": [d.to_dict() for d in days],
            "next_available_date": next_available.isoformat() if next_available else None,
        }

    def check_slot(
        self,
        professional_id: str,
        scheduled_start: datetime,
        duration_minutes: int,
        is_recurring: bool = False,
    ) -> dict:
        """Whether a slot is free and whether it can skip professional approval"""
        pro = self._get_professional(professional_id)
        day = scheduled_start.date()
        bookings = self._active_bookings(professional_id, day, day)

        available = is_slot_available(
            day,
            scheduled_start.strftime("%H:%M"),
            duration_minutes,
            pro.availability_settings or {},
            bookings,
            pro.blocked_dates or [],
        )

        instant = None
        if available and pro.instant_booking_settings:
            decision = can_instant_book(
                scheduled_start, duration_minutes / 60, pro.instant_booking_settings, is_recurring
            )
            instant = {"allowed": decision.allowed, "reason": decision.reason}

        return {"available": available, "instant_booking": instant}

    def update_settings(
        self,
        pro: ProfessionalProfile,
        availability_settings: Optional[dict] = None,
        blocked_dates: Optional[list[str]] = None,
        instant_booking_settings: Optional[dict] = None,
    ) -> ProfessionalProfile:
        if availability_settings is not None:
            pro.availability_settings = availability_settings
        if blocked_dates is not None:
            pro.blocked_dates = sorted(set(blocked_dates))
        if instant_booking_settings is not None:
            pro.instant_booking_settings = instant_booking_settings
        self.db.commit()
        self.db.refresh(pro)
        logger.info(f"✅ Availability updated for professional {pro.profile_id}")
        return pro
