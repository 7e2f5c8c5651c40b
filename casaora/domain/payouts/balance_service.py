"""
Professional balance operations for instant payouts.

- Pending balance: earnings from bookings completed less than 24 hours ago
- Available balance: earnings that cleared the 24-hour hold
- Professionals keep 100% of their rate; the customer pays the service fee
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ProfessionalProfile
from ...models_payouts import BalanceClearance, PayoutRateLimit, PlatformSetting
from ...shared.money import percent_of, round_half_up
from ...shared.validators import utcnow

logger = logging.getLogger(__name__)

PLATFORM_FEE_PERCENTAGE = 0
CLEARANCE_PERIOD_HOURS = 24
DEFAULT_INSTANT_PAYOUT_FEE = 1.5
DEFAULT_MINIMUM_PAYOUT = 50_000
DEFAULT_DAILY_LIMIT = 3
AVERAGE_BOOKING_VALUE = 200_000


class BalanceError(Exception):
    pass


class BalanceService:
    def __init__(self, db: Session):
        self.db = db

    def _get_profile(self, professional_id: str) -> ProfessionalProfile:
        profile = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        if not profile:
            raise BalanceError(f"Professional profile not found: {professional_id}")
        return profile

    def _get_setting(self, key: str, default: float) -> float:
        setting = self.db.query(PlatformSetting).filter(PlatformSetting.setting_key == key).first()
        if setting is None:
            return default
        try:
            return float(setting.setting_value)
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Invalid platform setting {key}={setting.setting_value!r}, using {default}")
            return default

    def get_instant_payout_fee_percentage(self) -> float:
        return self._get_setting("instant_payout_fee_percentage", DEFAULT_INSTANT_PAYOUT_FEE)

    def get_minimum_payout_amount(self) -> int:
        return int(self._get_setting("minimum_instant_payout_cop", DEFAULT_MINIMUM_PAYOUT))

    @staticmethod
    def calculate_professional_earnings(booking_amount: int) -> int:
        return round_half_up(booking_amount * (1 - PLATFORM_FEE_PERCENTAGE))

    # ------------------------------------------------------------------
    # Balance queries
    # ------------------------------------------------------------------

    def get_balance_breakdown(self, professional_id: str, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        profile = self._get_profile(professional_id)
        clearances = (
            self.db.query(BalanceClearance)
            .filter(
                BalanceClearance.professional_id == professional_id,
                BalanceClearance.status == "pending",
            )
            .order_by(BalanceClearance.clearance_at.asc())
            .all()
        )

        available = profile.available_balance_cents or 0
        pending = profile.pending_balance_cents or 0
        return {
            "professional_id": professional_id,
            "available_balance": available,
            "pending_balance": pending,
            "total_balance": available + pending,
            "currency_code": "COP",
            "last_update": profile.last_balance_update,
            "pending_clearances": [
                {
                    "booking_id": c.booking_id,
                    "amount": c.amount_cop,
                    "completed_at": c.completed_at,
                    "clearance_at": c.clearance_at,
                    "hours_remaining": max(
                        0, math.ceil((c.clearance_at - now).total_seconds() / 3600)
                    ),
                }
                for c in clearances
            ],
        }

    # ------------------------------------------------------------------
    # Balance mutations
    # ------------------------------------------------------------------

    def add_to_pending_balance(
        self, professional_id: str, booking_id: str, booking_amount: int, now: Optional[datetime] = None
    ) -> Optional[BalanceClearance]:
        """
        Queue a completed booking's earnings for clearance.

        Returns None when the booking is already queued, so replayed payment
        events never double count.
        """
        now = now or utcnow()
        existing = (
            self.db.query(BalanceClearance).filter(BalanceClearance.booking_id == booking_id).first()
        )
        if existing:
            logger.info(f"ℹ️ Booking {booking_id} already in clearance queue")
            return None

        earnings = self.calculate_professional_earnings(booking_amount)
        profile = self._get_profile(professional_id)
        profile.pending_balance_cents = (profile.pending_balance_cents or 0) + earnings
        profile.last_balance_update = now

        clearance = BalanceClearance(
            booking_id=booking_id,
            professional_id=professional_id,
            amount_cop=earnings,
            completed_at=now,
            clearance_at=now + timedelta(hours=CLEARANCE_PERIOD_HOURS),
            status="pending",
        )
        self.db.add(clearance)
        self.db.commit()
        logger.info(f"💰 Added {earnings} COP to pending balance of {professional_id} (clears in 24h)")
        return clearance

    def clear_pending_balance(self, booking_id: str, now: Optional[datetime] = None) -> BalanceClearance:
        now = now or utcnow()
        clearance = (
            self.db.query(BalanceClearance).filter(BalanceClearance.booking_id == booking_id).first()
        )
        if not clearance:
            raise BalanceError(f"Clearance record not found for booking {booking_id}")
        if clearance.status != "pending":
            raise BalanceError(f"Booking {booking_id} already processed (status: {clearance.status})")

        profile = self._get_profile(clearance.professional_id)
        profile.pending_balance_cents = max(0, (profile.pending_balance_cents or 0) - clearance.amount_cop)
        profile.available_balance_cents = (profile.available_balance_cents or 0) + clearance.amount_cop
        profile.last_balance_update = now
        clearance.status = "cleared"
        clearance.cleared_at = now
        self.db.commit()
        return clearance

    def process_batch_clearances(self, now: Optional[datetime] = None) -> dict:
        """Move every clearance past its hold into the available balance"""
        now = now or utcnow()
        due = (
            self.db.query(BalanceClearance)
            .filter(BalanceClearance.status == "pending", BalanceClearance.clearance_at < now)
            .order_by(BalanceClearance.clearance_at.asc())
            .all()
        )

        processed = 0
        errors = []
        for clearance in due:
            try:
                self.clear_pending_balance(clearance.booking_id, now)
                processed += 1
            except Exception as e:
                self.db.rollback()
                errors.append(f"Booking {clearance.booking_id}: {e}")

        if due:
            logger.info(f"✅ Cleared {processed}/{len(due)} pending balances")
        return {"processed": processed, "failed": len(errors), "errors": errors}

    def deduct_for_instant_payout(self, professional_id: str, amount: int) -> int:
        """Returns the new available balance"""
        profile = self._get_profile(professional_id)
        available = profile.available_balance_cents or 0
        if amount > available:
            raise BalanceError(f"Insufficient balance: {available} available, {amount} requested")
        profile.available_balance_cents = available - amount
        profile.last_balance_update = utcnow()
        self.db.commit()
        return profile.available_balance_cents

    def refund_failed_payout(self, professional_id: str, amount: int) -> int:
        profile = self._get_profile(professional_id)
        profile.available_balance_cents = (profile.available_balance_cents or 0) + amount
        profile.last_balance_update = utcnow()
        self.db.commit()
        logger.info(f"↩️ Refunded {amount} COP to {professional_id} after failed payout")
        return profile.available_balance_cents

    # ------------------------------------------------------------------
    # Instant payout validation
    # ------------------------------------------------------------------

    def _todays_payout_count(self, professional_id: str, today) -> int:
        row = (
            self.db.query(PayoutRateLimit)
            .filter(
                PayoutRateLimit.professional_id == professional_id,
                PayoutRateLimit.payout_date == today,
            )
            .first()
        )
        return row.instant_payout_count if row else 0

    def validate_instant_payout(
        self, professional_id: str, requested_amount: int, now: Optional[datetime] = None
    ) -> dict:
        now = now or utcnow()
        errors: list[str] = []
        warnings: list[str] = []

        try:
            profile = self._get_profile(professional_id)
        except BalanceError:
            return {
                "is_valid": False,
                "available_balance": 0,
                "requested_amount": requested_amount,
                "fee_amount": 0,
                "net_amount": 0,
                "currency_code": "COP",
                "errors": ["Professional profile not found"],
                "warnings": [],
            }

        available = profile.available_balance_cents or 0

        if not profile.instant_payout_enabled:
            errors.append("Instant payouts are disabled for your account. Please contact support.")

        if not profile.stripe_connect_account_id:
            errors.append("Please complete your payout setup before requesting an instant payout.")
        elif profile.stripe_connect_onboarding_status != "complete":
            errors.append("Your payout account setup is incomplete. Please finish setup first.")

        minimum = self.get_minimum_payout_amount()
        if requested_amount < minimum:
            errors.append(
                f"Minimum instant payout is {minimum:,} COP (~${round_half_up(minimum / 4000)} USD)"
            )

        if requested_amount > available:
            errors.append(
                f"Insufficient balance. You have {available:,} COP available, "
                f"but requested {requested_amount:,} COP."
            )

        fee_amount = percent_of(requested_amount, self.get_instant_payout_fee_percentage())

        count = self._todays_payout_count(professional_id, now.date())
        if count >= DEFAULT_DAILY_LIMIT:
            errors.append(
                f"Daily limit reached. You can request up to {DEFAULT_DAILY_LIMIT} instant payouts "
                "per day. Please try again tomorrow."
            )
        elif count >= DEFAULT_DAILY_LIMIT - 1:
            warnings.append(
                f"This will be your last instant payout for today ({count + 1}/{DEFAULT_DAILY_LIMIT})."
            )

        if requested_amount > AVERAGE_BOOKING_VALUE * 5:
            warnings.append(
                "This payout amount is unusually high. It may require manual approval "
                "and take longer to process."
            )

        return {
            "is_valid": not errors,
            "available_balance": available,
            "requested_amount": requested_amount,
            "fee_amount": fee_amount,
            "net_amount": requested_amount - fee_amount,
            "currency_code": "COP",
            "errors": errors,
            "warnings": warnings,
        }

    def check_and_increment_rate_limit(self, professional_id: str, now: Optional[datetime] = None) -> bool:
        """Count one instant payout for today. False once the daily limit is reached."""
        today = (now or utcnow()).date()
        row = (
            self.db.query(PayoutRateLimit)
            .filter(
                PayoutRateLimit.professional_id == professional_id,
                PayoutRateLimit.payout_date == today,
            )
            .with_for_update()
            .first()
        )
        if row is None:
            row = PayoutRateLimit(professional_id=professional_id, payout_date=today, instant_payout_count=0)
            self.db.add(row)
        if row.instant_payout_count >= DEFAULT_DAILY_LIMIT:
            return False
        row.instant_payout_count += 1
        self.db.commit()
        return True
