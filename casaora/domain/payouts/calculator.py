"""
Payout and commission calculation.

Payouts run twice weekly, Tuesday and Friday at 10:00:
- Tuesday covers bookings completed Friday through Monday
- Friday covers bookings completed Tuesday through Thursday
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models_payouts import PricingRule
from ...shared.money import apply_rate
from ...shared.validators import utcnow
from ..pricing.countries import CURRENCY_COUNTRY, get_pricing_config

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = 0.15
PAYOUT_HOUR = 10

# Python weekday(): Monday=0 ... Sunday=6
TUESDAY = 1
FRIDAY = 4


def calculate_commission(
    gross_amount: int, country: Optional[str] = None, rate: Optional[float] = None
) -> dict:
    """Commission and net payout for a gross amount"""
    if rate is None:
        rate = (
            get_pricing_config(country).commission.marketplace_rate
            if country
            else DEFAULT_COMMISSION_RATE
        )
    commission = apply_rate(gross_amount, rate)
    return {"commission_amount": commission, "net_amount": gross_amount - commission, "rate": rate}


def _booking_country(booking: Any) -> str:
    country = getattr(booking, "country", None)
    if country:
        return country
    return CURRENCY_COUNTRY.get(getattr(booking, "currency", None) or "COP", "CO")


def _empty_payout() -> dict:
    return {
        "gross_amount": 0,
        "commission_amount": 0,
        "net_amount": 0,
        "currency": "COP",
        "booking_ids": [],
        "booking_count": 0,
        "applied_commission_rate": DEFAULT_COMMISSION_RATE,
    }


def calculate_payout_from_bookings(bookings: list) -> dict:
    """Totals for a set of bookings at the country rate of the first booking"""
    if not bookings:
        return _empty_payout()

    country = _booking_country(bookings[0])
    gross = sum(b.amount_captured or 0 for b in bookings)
    commission = calculate_commission(gross, country)

    return {
        "gross_amount": gross,
        "commission_amount": commission["commission_amount"],
        "net_amount": commission["net_amount"],
        "currency": bookings[0].currency or "COP",
        "booking_ids": [b.id for b in bookings],
        "booking_count": len(bookings),
        "applied_commission_rate": commission["rate"],
    }


def _booking_city(booking: Any) -> Optional[str]:
    address = getattr(booking, "address", None)
    if isinstance(address, dict):
        return address.get("city")
    return None


def get_pricing_rule(
    db: Session,
    service_category: Optional[str],
    city: Optional[str],
    effective_date: Optional[date] = None,
) -> Optional[PricingRule]:
    """
    Most specific commission rule in effect on `effective_date`.

    A rule with a null category or city matches any value. Category+city beats
    category-only, which beats city-only, which beats the catch-all. Ties go to
    the latest effective_from.
    """
    effective_date = effective_date or utcnow().date()
    rules = (
        db.query(PricingRule)
        .filter(
            PricingRule.effective_from <= effective_date,
            or_(PricingRule.effective_until.is_(None), PricingRule.effective_until >= effective_date),
            or_(PricingRule.service_category.is_(None), PricingRule.service_category == service_category),
            or_(PricingRule.city.is_(None), PricingRule.city == city),
        )
        .all()
    )
    if not rules:
        return None

    def specificity(rule: PricingRule):
        return (rule.service_category is not None, rule.city is not None, rule.effective_from)

    return max(rules, key=specificity)


def calculate_payout_with_rules(db: Session, bookings: list) -> dict:
    """Totals with a per-booking commission from pricing rules, country rate as fallback"""
    if not bookings:
        result = _empty_payout()
        result["applied_commission_rate"] = None
        return result

    gross = 0
    total_commission = 0
    for booking in bookings:
        amount = booking.amount_captured or 0
        completed = booking.completed_at.date() if booking.completed_at else None
        rule = get_pricing_rule(db, booking.service_category, _booking_city(booking), completed)
        rate = rule.commission_rate if rule else None
        commission = calculate_commission(amount, _booking_country(booking), rate)
        gross += amount
        total_commission += commission["commission_amount"]

    return {
        "gross_amount": gross,
        "commission_amount": total_commission,
        "net_amount": gross - total_commission,
        "currency": bookings[0].currency or "COP",
        "booking_ids": [b.id for b in bookings],
        "booking_count": len(bookings),
        "applied_commission_rate": None,
    }


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _days_since(now: datetime, weekday: int) -> int:
    return (now.weekday() - weekday) % 7


def _days_until(now: datetime, weekday: int) -> int:
    return (weekday - now.weekday()) % 7


def get_current_payout_period(now: Optional[datetime] = None) -> dict:
    """
    Window of the next payout.

    Sunday to Tuesday: last Friday 00:00 until Tuesday 00:00, paid Tuesday 10:00.
    Wednesday to Saturday: last Tuesday 00:00 until Friday 00:00, paid Friday 10:00.
    """
    now = now or utcnow()
    today = _start_of_day(now)

    if now.weekday() in (6, 0, TUESDAY):
        period_start = today - timedelta(days=_days_since(now, FRIDAY))
        period_end = today + timedelta(days=_days_until(now, TUESDAY))
    else:
        period_start = today - timedelta(days=_days_since(now, TUESDAY))
        period_end = today + timedelta(days=_days_until(now, FRIDAY))

    return {
        "period_start": period_start,
        "period_end": period_end,
        "next_payout_date": period_end.replace(hour=PAYOUT_HOUR),
    }


def is_booking_in_payout_period(booking: Any, period_start: datetime, period_end: datetime) -> bool:
    completed_at = getattr(booking, "checked_out_at", None) or getattr(booking, "completed_at", None)
    if not completed_at:
        return False
    return period_start <= completed_at < period_end


def get_payout_schedule_description(commission_rate: Optional[float] = None) -> str:
    rate_display = (
        f"{commission_rate * 100:.1f}%" if commission_rate else "15-20% (varies by service and location)"
    )
    return (
        "Payouts are processed twice weekly:\n"
        "• Tuesday at 10 AM - covers bookings completed Friday through Monday\n"
        "• Friday at 10 AM - covers bookings completed Tuesday through Thursday\n"
        "\n"
        f"The platform commission is {rate_display}.\n"
        "Funds typically arrive in your bank account within 2-3 business days."
    )
