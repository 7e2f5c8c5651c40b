"""Booking math - amounts, durations, GPS verification and experiment bucketing"""

import hashlib
import logging
import math
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, TypeVar

from ...shared.money import round_half_up
from ...shared.validators import parse_datetime, validate_coordinates

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINIMUM_BOOKING_AMOUNT = 20_000
CHECK_IN_RADIUS_METERS = 150
EARTH_RADIUS_METERS = 6_371_000
REBOOK_NUDGE_VARIANTS = ("24h", "72h")
REBOOK_NUDGE_DELAYS = {"24h": timedelta(hours=24), "72h": timedelta(hours=72)}


def calculate_scheduled_end(scheduled_start: Any, duration_minutes: Optional[int]) -> Optional[datetime]:
    """End time from start + duration, or None when either is missing or invalid"""
    start = parse_datetime(scheduled_start)
    if start is None or not duration_minutes or duration_minutes <= 0:
        return None
    return start + timedelta(minutes=duration_minutes)


def calculate_booking_amount(
    amount: Optional[int], hourly_rate: Optional[int], duration_minutes: Optional[int]
) -> int:
    """
    Use the explicit amount when given, else hourly rate x duration with a
    20,000 floor. Falls back to the floor when nothing can be computed.
    """
    if amount and amount > 0:
        return amount
    if hourly_rate and duration_minutes:
        return max(MINIMUM_BOOKING_AMOUNT, round_half_up(hourly_rate * duration_minutes / 60))
    return MINIMUM_BOOKING_AMOUNT


def calculate_extension_amount(hourly_rate: Optional[int], minutes: int) -> int:
    if not hourly_rate:
        return 0
    return round_half_up(hourly_rate * minutes / 60)


def calculate_actual_duration(checked_in_at: datetime, checked_out_at: datetime) -> int:
    """Minutes on site, rounded half up"""
    return round_half_up((checked_out_at - checked_in_at).total_seconds() / 60)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _address_coordinates(address: Any) -> tuple[Optional[float], Optional[float]]:
    if not isinstance(address, dict):
        return None, None
    lat = address.get("latitude", address.get("lat"))
    lng = address.get("longitude", address.get("lng"))
    try:
        return (float(lat), float(lng)) if lat is not None and lng is not None else (None, None)
    except (TypeError, ValueError):
        return None, None


def verify_booking_location(
    latitude: float, longitude: float, address: Any, max_distance: int = CHECK_IN_RADIUS_METERS
) -> dict:
    """
    Compare the professional's GPS fix with the booking address.

    Returns verified / distance (meters, rounded) / max_distance / reason.
    Distance is 0 when the address has no coordinates.
    """
    if not validate_coordinates(latitude, longitude):
        return {
            "verified": False,
            "distance": 0,
            "max_distance": max_distance,
            "reason": "Invalid GPS coordinates",
        }

    addr_lat, addr_lng = _address_coordinates(address)
    if addr_lat is None:
        return {
            "verified": False,
            "distance": 0,
            "max_distance": max_distance,
            "reason": "Booking address has no coordinates",
        }

    distance = round_half_up(haversine_distance(latitude, longitude, addr_lat, addr_lng))
    verified = distance <= max_distance
    return {
        "verified": verified,
        "distance": distance,
        "max_distance": max_distance,
        "reason": None if verified else f"{distance}m from booking address",
    }


def get_rebook_nudge_variant(customer_id: str) -> str:
    """Stable 50/50 bucket so a customer always sees the same variant"""
    digest = hashlib.sha256(customer_id.encode("utf-8")).digest()
    return REBOOK_NUDGE_VARIANTS[digest[0] % 2]


def retry_with_backoff(
    operation: Callable[[], T],
    max_retries: int = 3,
    base_delay_ms: int = 100,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `operation`, retrying with 100ms, 200ms, 400ms... delays. Re-raises the last error."""
    last_error: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return operation()
        except Exception as e:
            last_error = e
            if attempt < max_retries - 1:
                delay_ms = base_delay_ms * 2**attempt
                logger.warning(f"⚠️ Attempt {attempt + 1} failed, retrying in {delay_ms}ms: {e}")
                sleep(delay_ms / 1000)
    raise last_error
