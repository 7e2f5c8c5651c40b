"""Time-based cancellation and refund policy"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Optional, Union

from ...shared.money import percent_of
from ...shared.validators import parse_datetime, utcnow

# (minimum hours of notice, refund percent, reason)
REFUND_TIERS = (
    (24, 100, "Full refund (cancelled 24+ hours before the service)"),
    (12, 50, "50% refund (cancelled 12-24 hours before the service)"),
    (4, 25, "25% refund (cancelled 4-12 hours before the service)"),
)
NO_REFUND_REASON = "No refund (cancelled less than 4 hours before the service)"


@dataclass
class CancellationPolicy:
    can_cancel: bool
    refund_percentage: int
    reason: str
    hours_until_service: float

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_cancellation_policy(
    scheduled_start: Union[datetime, date, str],
    status: str,
    now: Optional[datetime] = None,
) -> CancellationPolicy:
    """Work out whether a booking can be cancelled and how much is refunded"""
    if status == "completed":
        return CancellationPolicy(False, 0, "Cannot cancel completed services", 0)
    if status == "in_progress":
        return CancellationPolicy(False, 0, "Cannot cancel services that are in progress", 0)

    start = parse_datetime(scheduled_start)
    if start is None:
        raise ValueError(f"Invalid scheduled start: {scheduled_start!r}")

    now = now or utcnow()
    hours_until_service = (start - now).total_seconds() / 3600

    if hours_until_service < 0:
        return CancellationPolicy(False, 0, "Cannot cancel past services", hours_until_service)

    for min_hours, refund_percentage, reason in REFUND_TIERS:
        if hours_until_service >= min_hours:
            return CancellationPolicy(True, refund_percentage, reason, hours_until_service)

    return CancellationPolicy(True, 0, NO_REFUND_REASON, hours_until_service)


def calculate_refund_amount(authorized_amount: int, refund_percentage: int) -> int:
    return percent_of(authorized_amount, refund_percentage)


def get_cancellation_policy_description() -> str:
    return """
Cancellation Policy:

• 24 hours or more before service: 100% refund
• 12-24 hours before service: 50% refund
• 4-12 hours before service: 25% refund
• Less than 4 hours before service: No refund

Note: Bookings cannot be cancelled once the service has started.
""".strip()
