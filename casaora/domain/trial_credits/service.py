"""
Trial credit accounting.

Every completed booking with a professional earns the customer 50% of the
amount paid as credit toward hiring that professional directly. Credit per
pair is capped at half of the direct hire fee.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DIRECT_HIRE_FEE_COP
from ...models import Booking, Profile
from ...models_payouts import TrialCredit
from ...shared.money import percent_of, round_half_up
from ...shared.validators import utcnow

logger = logging.getLogger(__name__)

CREDIT_ACCRUAL_PERCENT = 50
COP_PER_USD = 4000


def max_trial_credit() -> int:
    return round_half_up(DIRECT_HIRE_FEE_COP * 0.5)


def cop_cents_to_usd(cop_cents: int) -> int:
    """Whole USD at a fixed 4,000 COP/USD (display only)"""
    return round_half_up(cop_cents / COP_PER_USD)


def _empty_info(professional_id: str) -> dict:
    return {
        "professional_id": professional_id,
        "has_credit": False,
        "credit_available_cop": 0,
        "credit_available_usd": 0,
        "credit_earned_cop": 0,
        "credit_used_cop": 0,
        "max_credit_cop": max_trial_credit(),
        "max_credit_usd": cop_cents_to_usd(max_trial_credit()),
        "bookings_count": 0,
        "total_bookings_value_cop": 0,
        "percentage_earned": 0,
        "last_booking_at": None,
    }


def _to_info(record: TrialCredit) -> dict:
    cap = max_trial_credit()
    percentage = round_half_up(record.credit_earned_cop / cap * 100) if cap else 0
    return {
        "professional_id": record.professional_id,
        "has_credit": record.credit_remaining_cop > 0,
        "credit_available_cop": record.credit_remaining_cop,
        "credit_available_usd": cop_cents_to_usd(record.credit_remaining_cop),
        "credit_earned_cop": record.credit_earned_cop,
        "credit_used_cop": record.credit_used_cop,
        "max_credit_cop": cap,
        "max_credit_usd": cop_cents_to_usd(cap),
        "bookings_count": record.total_bookings_count,
        "total_bookings_value_cop": record.total_bookings_value_cop,
        "percentage_earned": min(percentage, 100),
        "last_booking_at": record.last_booking_at,
    }


def _get_record(db: Session, customer_id: str, professional_id: str) -> Optional[TrialCredit]:
    return (
        db.query(TrialCredit)
        .filter(
            TrialCredit.customer_id == customer_id,
            TrialCredit.professional_id == professional_id,
        )
        .first()
    )


def get_trial_credit_info(db: Session, customer_id: str, professional_id: str) -> dict:
    record = _get_record(db, customer_id, professional_id)
    if not record:
        return _empty_info(professional_id)
    return _to_info(record)


def get_customer_trial_credits(db: Session, customer_id: str) -> list[dict]:
    """All professionals this customer has credit with, most recent booking first"""
    records = (
        db.query(TrialCredit)
        .filter(TrialCredit.customer_id == customer_id)
        .order_by(TrialCredit.last_booking_at.desc())
        .all()
    )
    return [_to_info(r) for r in records]


def record_completed_booking(db: Session, booking: Booking, now: Optional[datetime] = None) -> TrialCredit:
    """Accrue credit for a completed booking"""
    amount = booking.amount_captured or booking.amount_authorized or 0
    record = _get_record(db, booking.customer_id, booking.professional_id)
    if not record:
        record = TrialCredit(
            customer_id=booking.customer_id,
            professional_id=booking.professional_id,
            total_bookings_count=0,
            total_bookings_value_cop=0,
            credit_earned_cop=0,
            credit_used_cop=0,
            credit_remaining_cop=0,
        )
        db.add(record)

    cap = max_trial_credit()
    earned = min(record.credit_earned_cop + percent_of(amount, CREDIT_ACCRUAL_PERCENT), cap)
    newly_earned = earned - record.credit_earned_cop

    record.total_bookings_count += 1
    record.total_bookings_value_cop += amount
    record.credit_earned_cop = earned
    record.credit_remaining_cop += newly_earned
    record.last_booking_at = now or booking.completed_at or utcnow()
    db.commit()

    logger.info(
        f"🎁 Trial credit +{newly_earned} for {booking.customer_id} with {booking.professional_id} "
        f"(earned {earned}/{cap})"
    )
    return record


def apply_trial_credit(direct_hire_fee: int, credit_available: int) -> dict:
    discount = min(credit_available, direct_hire_fee)
    return {
        "original_fee": direct_hire_fee,
        "discount": discount,
        "final_fee": max(direct_hire_fee - discount, 0),
        "credit_remaining": credit_available - discount,
    }


def mark_trial_credit_used(
    db: Session, customer_id: str, professional_id: str, booking_id: str, credit_used: int
) -> TrialCredit:
    """Consume the pair's credit against a direct hire. Remaining credit is forfeited."""
    record = _get_record(db, customer_id, professional_id)
    if not record:
        raise ValueError(f"No trial credit found for customer {customer_id} and professional {professional_id}")

    record.credit_used_cop += credit_used
    record.credit_remaining_cop = 0
    record.credit_applied_to_booking_id = booking_id
    db.commit()
    logger.info(f"✅ Trial credit {credit_used} applied to booking {booking_id}")
    return record


def get_direct_hire_quote(db: Session, customer: Profile, professional_id: str) -> dict:
    """Direct hire fee after this customer's trial credit"""
    info = get_trial_credit_info(db, customer.id, professional_id)
    quote = apply_trial_credit(DIRECT_HIRE_FEE_COP, info["credit_available_cop"])
    quote["credit"] = info
    return quote
