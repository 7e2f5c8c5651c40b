"""Payout service - twice-weekly batch transfers and on-demand instant payouts"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile
from ...models_payouts import PayoutTransfer
from ...services.notification_service import notify_all_admins, notify_user
from ...shared.validators import utcnow
from ..payments.stripe_service import PaymentProviderError, stripe_service
from .balance_service import BalanceError, BalanceService
from .calculator import calculate_payout_with_rules, get_current_payout_period

logger = logging.getLogger(__name__)


class PayoutBatchService:
    """Pays professionals for completed bookings in the current payout window"""

    def __init__(self, db: Session, stripe_client=None):
        self.db = db
        self.stripe = stripe_client or stripe_service

    def _unpaid_bookings(self, period_end: datetime) -> dict[str, list[Booking]]:
        """Every captured booking completed before the window closes and not yet paid.

        Bookings left unlinked by a failed transfer are picked up by the next batch.
        """
        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.status == "completed",
                Booking.amount_captured.isnot(None),
                Booking.payout_transfer_id.is_(None),
                Booking.completed_at < period_end,
            )
            .order_by(Booking.completed_at.asc())
            .all()
        )
        grouped: dict[str, list[Booking]] = {}
        for booking in bookings:
            grouped.setdefault(booking.professional_id, []).append(booking)
        return grouped

    def _pay_professional(
        self, professional_id: str, bookings: list[Booking], period: dict, batch_id: str
    ) -> PayoutTransfer:
        payout = calculate_payout_with_rules(self.db, bookings)
        transfer = PayoutTransfer(
            professional_id=professional_id,
            payout_type="batch",
            gross_amount=payout["gross_amount"],
            commission_amount=payout["commission_amount"],
            fee_amount=0,
            net_amount=payout["net_amount"],
            currency=payout["currency"],
            status="pending",
            booking_ids=payout["booking_ids"],
            period_start=period["period_start"],
            period_end=period["period_end"],
        )
        self.db.add(transfer)
        self.db.commit()

        profile = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        if not profile or not profile.stripe_connect_account_id:
            transfer.status = "failed"
            transfer.failure_reason = "No Stripe Connect account"
            self.db.commit()
            return transfer

        try:
            stripe_transfer = self.stripe.create_transfer(
                amount=payout["net_amount"],
                currency=payout["currency"],
                destination=profile.stripe_connect_account_id,
                metadata={
                    "payout_transfer_id": transfer.id,
                    "professional_id": professional_id,
                    "batch_id": batch_id,
                    "booking_count": str(payout["booking_count"]),
                },
                idempotency_key=f"{batch_id}-{professional_id}",
            )
        except PaymentProviderError as e:
            transfer.status = "failed"
            transfer.failure_reason = str(e)
            self.db.commit()
            return transfer

        transfer.status = "processing"
        transfer.stripe_transfer_id = stripe_transfer.id
        for booking in bookings:
            booking.payout_transfer_id = transfer.id
        self.db.commit()

        notify_user(
            self.db,
            professional_id,
            "payout_sent",
            "Payout on its way",
            f"We sent your payout for {payout['booking_count']} bookings.",
            data={"payout_transfer_id": transfer.id, "amount": payout["net_amount"]},
        )
        return transfer

    def run_batch(self, now: Optional[datetime] = None) -> dict:
        """
        Process one payout batch.

        Each professional is paid independently. A failure is recorded on that
        professional's transfer and the batch moves on.
        """
        now = now or utcnow()
        started = utcnow()
        period = get_current_payout_period(now)
        batch_id = f"payout-{now.strftime('%Y-%m-%d')}-{now.strftime('%a').lower()}"
        logger.info(
            f"🏦 Payout batch {batch_id}: {period['period_start']} -> {period['period_end']}"
        )

        grouped = self._unpaid_bookings(period["period_end"])
        successful = 0
        total_amount = 0
        errors = []

        for professional_id, bookings in grouped.items():
            try:
                transfer = self._pay_professional(professional_id, bookings, period, batch_id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Payout for {professional_id} crashed: {e}")
                errors.append({"professional_id": professional_id, "error": str(e)})
                continue

            if transfer.status == "failed":
                logger.warning(f"⚠️ Payout for {professional_id} failed: {transfer.failure_reason}")
                errors.append({"professional_id": professional_id, "error": transfer.failure_reason})
            else:
                successful += 1
                total_amount += transfer.net_amount

        status = "completed" if not errors else ("failed" if successful == 0 else "completed_with_errors")
        if errors:
            notify_all_admins(
                self.db,
                "admin_payout_batch_errors",
                "Payout batch had failures",
                f"Batch {batch_id}: {len(errors)} of {len(grouped)} transfers failed.",
                data={"batch_id": batch_id, "errors": errors},
            )

        duration = (utcnow() - started).total_seconds()
        logger.info(
            f"✅ Payout batch {batch_id} {status}: {successful}/{len(grouped)} paid, "
            f"{total_amount} total in {duration:.1f}s"
        )
        return {
            "batch_id": batch_id,
            "status": status,
            "total_amount": total_amount,
            "total_transfers": len(grouped),
            "successful_transfers": successful,
            "failed_transfers": len(errors),
            "errors": errors,
        }


class InstantPayoutService:
    """Pays out a professional's available balance on request, for a fee"""

    def __init__(self, db: Session, stripe_client=None):
        self.db = db
        self.stripe = stripe_client or stripe_service
        self.balance = BalanceService(db)

    def request_instant_payout(self, professional_id: str, amount: int, now: Optional[datetime] = None) -> dict:
        validation = self.balance.validate_instant_payout(professional_id, amount, now)
        if not validation["is_valid"]:
            raise HTTPException(
                status_code=400,
                detail={"message": "Instant payout not allowed", "errors": validation["errors"]},
            )

        if not self.balance.check_and_increment_rate_limit(professional_id, now):
            raise HTTPException(status_code=429, detail="Daily instant payout limit reached")

        try:
            self.balance.deduct_for_instant_payout(professional_id, amount)
        except BalanceError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        profile = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        transfer = PayoutTransfer(
            professional_id=professional_id,
            payout_type="instant",
            gross_amount=amount,
            commission_amount=0,
            fee_amount=validation["fee_amount"],
            net_amount=validation["net_amount"],
            currency="COP",
            status="pending",
            booking_ids=[],
        )
        self.db.add(transfer)
        self.db.commit()

        try:
            stripe_transfer = self.stripe.create_transfer(
                amount=validation["net_amount"],
                currency="COP",
                destination=profile.stripe_connect_account_id,
                metadata={
                    "payout_transfer_id": transfer.id,
                    "professional_id": professional_id,
                    "payout_type": "instant",
                },
                idempotency_key=f"instant-payout-{transfer.id}",
            )
        except PaymentProviderError as e:
            transfer.status = "failed"
            transfer.failure_reason = str(e)
            self.db.commit()
            self.balance.refund_failed_payout(professional_id, amount)
            raise HTTPException(status_code=502, detail="Payout transfer failed, balance restored") from e

        transfer.status = "processing"
        transfer.stripe_transfer_id = stripe_transfer.id
        self.db.commit()

        logger.info(f"⚡ Instant payout {transfer.id}: {validation['net_amount']} to {professional_id}")
        return {
            "payout_transfer_id": transfer.id,
            "status": transfer.status,
            "amount": amount,
            "fee_amount": validation["fee_amount"],
            "net_amount": validation["net_amount"],
            "warnings": validation["warnings"],
        }
