"""Bookings router"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_role
from ...database import get_db
from ...models import Profile
from .schemas import (
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    CancelRequest,
    CheckOutRequest,
    DeclineRequest,
    ExtendTimeRequest,
    GPSLocation,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


# ============================================================================
# CUSTOMER ENDPOINTS
# ============================================================================


@router.post("", response_model=BookingCreatedResponse)
async def create_booking(
    data: BookingCreate,
    user: Profile = Depends(require_role("customer")),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking and authorize payment. Returns the client secret for confirmation."""
    return service.create_booking(user, data)


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: str,
    data: CancelRequest,
    user: Profile = Depends(require_role("customer")),
    service: BookingService = Depends(get_booking_service),
):
    result = service.cancel_booking(user, booking_id, data.reason)
    return {
        "booking": BookingResponse.model_validate(result["booking"]),
        "policy": result["policy"],
        "refund_amount": result["refund_amount"],
        "stripe_status": result["stripe_status"],
    }


# ============================================================================
# SHARED ENDPOINTS
# ============================================================================


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(user, status, limit, offset)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user: Profile = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, user)


# ============================================================================
# PROFESSIONAL ENDPOINTS
# ============================================================================


@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: str,
    user: Profile = Depends(require_role("professional")),
    service: BookingService = Depends(get_booking_service),
):
    return service.accept_booking(user, booking_id)


@router.post("/{booking_id}/decline", response_model=BookingResponse)
async def decline_booking(
    booking_id: str,
    data: DeclineRequest,
    user: Profile = Depends(require_role("professional")),
    service: BookingService = Depends(get_booking_service),
):
    return service.decline_booking(user, booking_id, data.reason)


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in(
    booking_id: str,
    location: GPSLocation,
    user: Profile = Depends(require_role("professional")),
    service: BookingService = Depends(get_booking_service),
):
    return service.check_in(user, booking_id, location)


@router.post("/{booking_id}/extend-time", response_model=BookingResponse)
async def extend_time(
    booking_id: str,
    data: ExtendTimeRequest,
    user: Profile = Depends(require_role("professional")),
    service: BookingService = Depends(get_booking_service),
):
    return service.extend_time(user, booking_id, data.additional_minutes)


@router.post("/{booking_id}/check-out", response_model=BookingResponse)
async def check_out(
    booking_id: str,
    data: CheckOutRequest,
    user: Profile = Depends(require_role("professional")),
    service: BookingService = Depends(get_booking_service),
):
    """Finish the service and capture payment"""
    return service.check_out(user, booking_id, data)
