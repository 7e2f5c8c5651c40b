"""
Availability calculation utilities

Handles professional availability based on weekly working hours, blocked dates
(vacations, holidays), existing bookings with buffer time, and instant booking
eligibility. Everything here is pure; the service layer loads the inputs.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional, Union

from ...shared.validators import parse_datetime, utcnow

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SLOT_STEP_MINUTES = 30
DEFAULT_MAX_BOOKINGS_PER_DAY = 5
LIMITED_BOOKING_RATIO = 0.7

DateLike = Union[date, datetime, str]


@dataclass
class DayAvailability:
    date: str  # YYYY-MM-DD
    status: str  # available, limited, booked, blocked
    available_slots: list[str]  # HH:MM start times
    booking_count: int
    max_bookings: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class InstantBookDecision:
    allowed: bool
    reason: Optional[str] = None


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _booking_window(booking: Any) -> tuple[Optional[datetime], Optional[datetime]]:
    """Accept ORM bookings or dicts with scheduled_start / scheduled_end"""
    if isinstance(booking, dict):
        start, end = booking.get("scheduled_start"), booking.get("scheduled_end")
    else:
        start, end = booking.scheduled_start, booking.scheduled_end
    return parse_datetime(start), parse_datetime(end)


def _busy_ranges(day: date, bookings: Iterable[Any], buffer_minutes: int) -> list[tuple[int, int]]:
    """Same-day bookings as minute ranges, widened by the buffer on both sides"""
    day_start = datetime(day.year, day.month, day.day)
    ranges = []
    for booking in bookings:
        start, end = _booking_window(booking)
        if start is None or start.date() != day:
            continue
        if end is None:
            end = start
        start_mins = int((start - day_start).total_seconds() // 60)
        end_mins = int((end - day_start).total_seconds() // 60)
        ranges.append((start_mins - buffer_minutes, end_mins + buffer_minutes))
    return ranges


def _overlaps(slot_start: int, slot_end: int, busy: list[tuple[int, int]]) -> bool:
    return any(not (slot_end <= buf_start or slot_start >= buf_end) for buf_start, buf_end in busy)


def is_date_blocked(day: DateLike, blocked_dates: Iterable[str]) -> bool:
    return _as_date(day).isoformat() in set(blocked_dates or [])


def get_working_hours_for_date(day: DateLike, settings: Optional[dict]) -> list[dict]:
    working_hours = (settings or {}).get("working_hours") or {}
    return working_hours.get(WEEKDAYS[_as_date(day).weekday()]) or []


def generate_time_slots(
    day: DateLike,
    settings: Optional[dict],
    existing_bookings: Iterable[Any],
    blocked_dates: Iterable[str],
    slot_duration_minutes: int = 60,
) -> list[str]:
    """Start times (HH:MM, every 30 minutes) that fit a slot of the given length"""
    day = _as_date(day)
    if is_date_blocked(day, blocked_dates):
        return []

    working_hours = get_working_hours_for_date(day, settings)
    if not working_hours:
        return []

    buffer_minutes = (settings or {}).get("buffer_time_minutes") or 0
    busy = _busy_ranges(day, existing_bookings, buffer_minutes)

    slots = []
    for period in working_hours:
        period_start = time_to_minutes(period["start"])
        period_end = time_to_minutes(period["end"])

        time = period_start
        while time + slot_duration_minutes <= period_end:
            if not _overlaps(time, time + slot_duration_minutes, busy):
                slots.append(minutes_to_time(time))
            time += SLOT_STEP_MINUTES

    return slots


def is_slot_available(
    day: DateLike,
    start_time: str,
    duration_minutes: int,
    settings: Optional[dict],
    existing_bookings: Iterable[Any],
    blocked_dates: Iterable[str],
) -> bool:
    day = _as_date(day)
    if is_date_blocked(day, blocked_dates):
        return False

    working_hours = get_working_hours_for_date(day, settings)
    if not working_hours:
        return False

    start_mins = time_to_minutes(start_time)
    end_mins = start_mins + duration_minutes

    within_hours = any(
        start_mins >= time_to_minutes(p["start"]) and end_mins <= time_to_minutes(p["end"])
        for p in working_hours
    )
    if not within_hours:
        return False

    buffer_minutes = (settings or {}).get("buffer_time_minutes") or 0
    return not _overlaps(start_mins, end_mins, _busy_ranges(day, existing_bookings, buffer_minutes))


def can_instant_book(
    scheduled_start: datetime,
    duration_hours: float,
    settings: dict,
    is_recurring: bool = False,
    now: Optional[datetime] = None,
) -> InstantBookDecision:
    now = now or utcnow()
    hours_until = (scheduled_start - now).total_seconds() / 3600

    min_notice = settings.get("min_notice_hours", 0)
    if hours_until < min_notice:
        return InstantBookDecision(False, f"Requires {min_notice} hours notice")

    max_duration = settings.get("max_booking_duration_hours")
    if max_duration is not None and duration_hours > max_duration:
        return InstantBookDecision(False, f"Maximum duration is {max_duration} hours")

    if is_recurring and not settings.get("auto_accept_recurring"):
        return InstantBookDecision(False, "Recurring bookings require approval")

    return InstantBookDecision(True)


def calculate_day_status(
    day: DateLike,
    available_slots: list[str],
    booking_count: int,
    max_bookings: int,
    blocked_dates: Iterable[str],
) -> str:
    if is_date_blocked(day, blocked_dates):
        return "blocked"
    if booking_count >= max_bookings or not available_slots:
        return "booked"
    if len(available_slots) <= 2 or booking_count >= max_bookings * LIMITED_BOOKING_RATIO:
        return "limited"
    return "available"


def get_availability_for_range(
    start_date: DateLike,
    end_date: DateLike,
    settings: Optional[dict],
    existing_bookings: list[Any],
    blocked_dates: list[str],
) -> list[DayAvailability]:
    """Day-by-day availability, both ends inclusive"""
    max_bookings = (settings or {}).get("max_bookings_per_day") or DEFAULT_MAX_BOOKINGS_PER_DAY
    current, last = _as_date(start_date), _as_date(end_date)

    availability = []
    while current <= last:
        booking_count = sum(
            1 for b in existing_bookings if (_booking_window(b)[0] or datetime.min).date() == current
        )
        slots = generate_time_slots(current, settings, existing_bookings, blocked_dates)
        availability.append(
            DayAvailability(
                date=current.isoformat(),
                status=calculate_day_status(
                    current, slots, booking_count, max_bookings, blocked_dates
                ),
                available_slots=slots,
                booking_count=booking_count,
                max_bookings=max_bookings,
            )
        )
        current += timedelta(days=1)

    return availability


def get_next_available_date(
    settings: Optional[dict],
    existing_bookings: list[Any],
    blocked_dates: list[str],
    max_days_ahead: int = 30,
    today: Optional[date] = None,
) -> Optional[date]:
    """First day from tomorrow on with at least one open slot"""
    today = today or utcnow().date()
    for offset in range(1, max_days_ahead + 1):
        check_date = today + timedelta(days=offset)
        if generate_time_slots(check_date, settings, existing_bookings, blocked_dates):
            return check_date
    return None
