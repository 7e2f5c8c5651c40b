"""Availability router"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_role
from ...database import get_db
from ...models import Profile
from .schemas import AvailabilityUpdate
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.get("/{professional_id}")
async def get_availability(
    professional_id: str,
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Public availability calendar for a professional"""
    return service.get_professional_availability(professional_id, start_date, end_date)


@router.get("/{professional_id}/check")
async def check_slot(
    professional_id: str,
    scheduled_start: datetime = Query(...),
    duration_minutes: int = Query(60, ge=30, le=720),
    is_recurring: bool = Query(False),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.check_slot(professional_id, scheduled_start, duration_minutes, is_recurring)


@router.put("/me")
async def update_my_availability(
    data: AvailabilityUpdate,
    user: Profile = Depends(require_role("professional")),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Update working hours, blocked dates and instant booking rules"""
    pro = user.professional_profile
    if not pro:
        raise HTTPException(status_code=404, detail="Professional profile not found")

    pro = service.update_settings(
        pro,
        availability_settings=(
            data.availability_settings.model_dump() if data.availability_settings else None
        ),
        blocked_dates=(
            [d.isoformat() for d in data.blocked_dates] if data.blocked_dates is not None else None
        ),
        instant_booking_settings=(
            data.instant_booking_settings.model_dump() if data.instant_booking_settings else None
        ),
    )
    return {
        "availability_settings": pro.availability_settings,
        "blocked_dates": pro.blocked_dates,
        "instant_booking_settings": pro.instant_booking_settings,
    }
