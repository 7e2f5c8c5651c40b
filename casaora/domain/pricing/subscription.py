"""Recurring booking discounts"""

from dataclasses import asdict, dataclass
from typing import Optional

from ...shared.money import percent_of

SUBSCRIPTION_TIERS = ("none", "monthly", "biweekly", "weekly")

TIER_DISCOUNTS = {"none": 0, "monthly": 5, "biweekly": 10, "weekly": 15}

BOOKINGS_PER_MONTH = {"none": 0, "monthly": 1, "biweekly": 2, "weekly": 4}

TIER_DESCRIPTIONS = {
    "none": "One-time booking",
    "monthly": "Monthly recurring",
    "biweekly": "Every 2 weeks",
    "weekly": "Weekly recurring",
}

TIER_BENEFITS = {
    "none": [],
    "monthly": ["5% discount", "Guaranteed time slot", "Easy cancellation"],
    "biweekly": [
        "10% discount",
        "Guaranteed time slot",
        "Same professional every visit",
        "Easy cancellation",
    ],
    "weekly": [
        "15% discount",
        "Guaranteed time slot",
        "Same professional every visit",
        "Priority rescheduling",
        "Premium support",
        "Easy cancellation",
    ],
}

# Weekly savings over three months must beat this to be worth suggesting
RECOMMENDATION_SAVINGS_THRESHOLD = 20_000
HIGH_VALUE_BOOKING_THRESHOLD = 150_000
DEFAULT_ESTIMATE_MONTHS = 3


@dataclass
class SubscriptionPricing:
    base_price: int
    discount_percent: int
    discount_amount: int
    final_price: int
    tier: str
    savings_per_booking: int
    total_savings_estimate: int

    def to_dict(self) -> dict:
        return asdict(self)


def _check_tier(tier: str) -> None:
    if tier not in TIER_DISCOUNTS:
        raise ValueError(f"Unknown subscription tier: {tier}")


def calculate_subscription_pricing(
    base_price: int, tier: str, months: int = DEFAULT_ESTIMATE_MONTHS
) -> SubscriptionPricing:
    """Price one booking under a tier and estimate savings over `months`"""
    if base_price < 0:
        raise ValueError("Base price cannot be negative")
    _check_tier(tier)

    discount_percent = TIER_DISCOUNTS[tier]
    discount_amount = percent_of(base_price, discount_percent)
    savings_per_booking = discount_amount

    return SubscriptionPricing(
        base_price=base_price,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        final_price=base_price - discount_amount,
        tier=tier,
        savings_per_booking=savings_per_booking,
        total_savings_estimate=savings_per_booking * BOOKINGS_PER_MONTH[tier] * months,
    )


def estimate_bookings_count(tier: str, months: int) -> int:
    _check_tier(tier)
    if tier == "none":
        return 1
    return BOOKINGS_PER_MONTH[tier] * months


def get_tier_description(tier: str) -> str:
    _check_tier(tier)
    return TIER_DESCRIPTIONS[tier]


def get_tier_discount_label(tier: str) -> Optional[str]:
    _check_tier(tier)
    discount = TIER_DISCOUNTS[tier]
    return f"{discount}% off" if discount else None


def get_tier_benefits(tier: str) -> list[str]:
    _check_tier(tier)
    return list(TIER_BENEFITS[tier])


def should_recommend_subscription(base_price: int) -> bool:
    weekly = calculate_subscription_pricing(base_price, "weekly")
    return weekly.total_savings_estimate > RECOMMENDATION_SAVINGS_THRESHOLD


def get_recommended_tier(base_price: int, previous_bookings: Optional[int] = None) -> Optional[str]:
    """
    Suggest a tier. Booking history wins over price; with no history only
    high-value bookings get a (weekly) suggestion.
    """
    if previous_bookings:
        if previous_bookings >= 8:
            return "weekly"
        if previous_bookings >= 5:
            return "biweekly"
        if previous_bookings >= 3:
            return "monthly"
        return None

    if base_price > HIGH_VALUE_BOOKING_THRESHOLD:
        return "weekly"
    return None
