"""Booking service - Business logic for the booking lifecycle

pending_payment -> confirmed -> in_progress -> completed
        |              |
        +-> declined   +-> customer_cancelled
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import REBOOK_NUDGE_ENABLED
from ...models import Booking, Profile, RebookNudgeExperiment
from ...services.notification_service import (
    notify_all_admins,
    notify_customer_booking_completed,
    notify_customer_booking_status,
    notify_professional_new_booking,
    notify_rebook_nudge,
    notify_user,
)
from ...shared.validators import parse_datetime, utcnow
from ..payments.stripe_service import PaymentProviderError, stripe_service
from ..pricing.cancellation import calculate_cancellation_policy, calculate_refund_amount
from ..trial_credits.service import record_completed_booking
from .calculator import (
    REBOOK_NUDGE_DELAYS,
    calculate_actual_duration,
    calculate_booking_amount,
    calculate_extension_amount,
    calculate_scheduled_end,
    get_rebook_nudge_variant,
    retry_with_backoff,
    verify_booking_location,
)
from .repository import BookingRepository
from .schemas import BookingCreate, CheckOutRequest, GPSLocation

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("pending_payment", "confirmed")


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session, stripe_client=None):
        self.db = db
        self.repo = BookingRepository()
        self.stripe = stripe_client or stripe_service

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str, user: Profile) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if user.role != "admin" and user.id not in (booking.customer_id, booking.professional_id):
            raise HTTPException(status_code=403, detail="Not authorized to view this booking")
        return booking

    def list_bookings(
        self, user: Profile, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[Booking]:
        return self.repo.list_for_user(self.db, user.id, user.role, status, limit, offset)

    def _get_for_professional(self, booking_id: str, professional: Profile) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.professional_id != professional.id:
            raise HTTPException(status_code=403, detail="Not authorized to manage this booking")
        return booking

    def _get_for_customer(self, booking_id: str, customer: Profile) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.customer_id != customer.id:
            raise HTTPException(status_code=403, detail="Not authorized to manage this booking")
        return booking

    # ------------------------------------------------------------------
    # Creation + payment authorization
    # ------------------------------------------------------------------

    def create_booking(self, customer: Profile, data: BookingCreate, now: Optional[datetime] = None) -> dict:
        """
        Create a booking and authorize its payment.

        The booking row is inserted before the payment intent so the intent can
        carry the booking id; if authorization fails the row is removed again.
        """
        now = now or utcnow()
        logger.info(f"📥 Creating booking for customer {customer.id} with {data.professional_id}")

        if data.professional_id == customer.id:
            raise HTTPException(status_code=400, detail="You cannot book yourself")

        pro = self.repo.get_active_professional(self.db, data.professional_id)
        if not pro:
            raise HTTPException(status_code=404, detail="Professional not found or inactive")

        scheduled_start = parse_datetime(data.scheduled_start)
        scheduled_end = calculate_scheduled_end(scheduled_start, data.duration_minutes)
        if scheduled_start is None or scheduled_end is None:
            raise HTTPException(status_code=400, detail="Invalid scheduled start or duration")
        if scheduled_start <= now:
            raise HTTPException(status_code=400, detail="Scheduled start must be in the future")

        amount = calculate_booking_amount(data.amount, pro.hourly_rate_cop, data.duration_minutes)

        if not self.stripe.is_available():
            raise HTTPException(status_code=503, detail="Payment service temporarily unavailable")

        try:
            stripe_customer_id = self.stripe.ensure_customer(
                customer.email, customer.full_name, customer.id, customer.stripe_customer_id
            )
        except PaymentProviderError as e:
            raise HTTPException(status_code=502, detail="Failed to set up payment customer") from e
        if customer.stripe_customer_id != stripe_customer_id:
            customer.stripe_customer_id = stripe_customer_id
            self.db.commit()

        booking = self.repo.create_booking(
            self.db,
            customer_id=customer.id,
            professional_id=pro.profile_id,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            duration_minutes=data.duration_minutes,
            status="pending_payment",
            amount_estimated=amount,
            currency=data.currency.upper(),
            country=customer.country or "CO",
            special_instructions=data.special_instructions,
            address=data.address,
            service_name=data.service_name,
            service_category=data.service_category or pro.service_category,
            service_hourly_rate=pro.hourly_rate_cop,
            is_recurring=data.is_recurring,
        )

        try:
            intent = self.stripe.create_payment_intent(
                amount=amount,
                currency=booking.currency,
                customer_id=stripe_customer_id,
                metadata={
                    "booking_id": booking.id,
                    "customer_id": customer.id,
                    "professional_id": pro.profile_id,
                },
                description=f"Casaora booking: {data.service_name or 'service'}",
                idempotency_key=f"booking-{booking.id}-authorize",
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Payment authorization failed for booking {booking.id}, rolling back")
            self.repo.delete_booking(self.db, booking)
            raise HTTPException(status_code=502, detail="Failed to authorize payment") from e

        booking = self.repo.update_booking(
            self.db,
            booking,
            stripe_payment_intent_id=intent.id,
            stripe_payment_status=getattr(intent, "status", None),
            amount_authorized=amount,
        )

        try:
            if self.repo.mark_rebooked(self.db, customer.id, pro.profile_id):
                self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Failed to record rebook conversion: {e}")

        notify_professional_new_booking(self.db, booking)

        logger.info(f"✅ Booking {booking.id} created, intent {intent.id} for {amount}")
        return {
            "booking_id": booking.id,
            "client_secret": getattr(intent, "client_secret", None),
            "payment_intent_id": intent.id,
            "amount": amount,
            "currency": booking.currency,
        }

    # ------------------------------------------------------------------
    # Professional responses
    # ------------------------------------------------------------------

    def accept_booking(self, professional: Profile, booking_id: str) -> Booking:
        booking = self._get_for_professional(booking_id, professional)
        if booking.status != "pending_payment":
            raise HTTPException(
                status_code=400, detail=f"Cannot accept booking with status: {booking.status}"
            )
        booking = self.repo.update_booking(self.db, booking, status="confirmed")
        notify_customer_booking_status(self.db, booking, "confirmed")
        logger.info(f"✅ Booking {booking.id} accepted by {professional.id}")
        return booking

    def decline_booking(self, professional: Profile, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Decline a request and release the customer's authorization"""
        booking = self._get_for_professional(booking_id, professional)
        if booking.status != "pending_payment":
            raise HTTPException(
                status_code=400, detail=f"Cannot decline booking with status: {booking.status}"
            )

        if booking.stripe_payment_intent_id:
            try:
                self.stripe.cancel_payment_intent(booking.stripe_payment_intent_id)
            except PaymentProviderError as e:
                raise HTTPException(status_code=502, detail="Failed to release payment") from e

        booking = self.repo.update_booking(
            self.db,
            booking,
            status="declined",
            stripe_payment_status="canceled",
            cancellation_reason=reason or "Declined by professional",
            cancelled_at=utcnow(),
        )
        notify_customer_booking_status(self.db, booking, "declined")
        logger.info(f"✅ Booking {booking.id} declined by {professional.id}")
        return booking

    # ------------------------------------------------------------------
    # Customer cancellation
    # ------------------------------------------------------------------

    def _process_cancellation_payment(self, booking: Booking, refund_percentage: int) -> tuple[str, int]:
        """
        Settle the payment side of a cancellation.

        Returns (stripe_status, refunded_amount).
        """
        if not booking.stripe_payment_intent_id:
            return "no_payment_required", 0

        paid = booking.amount_captured or booking.amount_authorized or booking.amount_estimated
        refund_amount = calculate_refund_amount(paid, refund_percentage)

        if booking.amount_captured:
            if refund_amount <= 0:
                return "no_refund_needed", 0
            self.stripe.create_refund(
                booking.stripe_payment_intent_id,
                amount=refund_amount,
                idempotency_key=f"booking-{booking.id}-cancellation-refund",
            )
            return "refunded", refund_amount

        retained = paid - refund_amount
        if retained <= 0:
            self.stripe.cancel_payment_intent(booking.stripe_payment_intent_id)
            return "canceled", refund_amount

        # Only the cancellation fee is captured; the rest of the hold is released
        self.stripe.capture_payment_intent(
            booking.stripe_payment_intent_id,
            amount_to_capture=retained,
            idempotency_key=f"booking-{booking.id}-cancellation-capture",
        )
        booking.amount_captured = retained
        return "partially_captured", refund_amount

    def cancel_booking(
        self,
        customer: Profile,
        booking_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        booking = self._get_for_customer(booking_id, customer)

        if booking.status not in CANCELLABLE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Cannot cancel booking with status: {booking.status}"
            )
        if not booking.scheduled_start:
            raise HTTPException(
                status_code=400,
                detail="Cannot calculate cancellation policy without scheduled start time",
            )

        policy = calculate_cancellation_policy(booking.scheduled_start, booking.status, now)
        if not policy.can_cancel:
            raise HTTPException(status_code=400, detail=policy.reason)

        try:
            stripe_status, refund_amount = self._process_cancellation_payment(
                booking, policy.refund_percentage
            )
        except PaymentProviderError as e:
            raise HTTPException(status_code=502, detail="Failed to process refund") from e

        booking = self.repo.update_booking(
            self.db,
            booking,
            status="customer_cancelled",
            cancelled_at=now or utcnow(),
            cancellation_reason=reason or "Customer canceled",
            amount_refunded=refund_amount,
            stripe_payment_status=stripe_status,
        )

        notify_user(
            self.db,
            booking.professional_id,
            "booking_cancelled",
            "Booking cancelled",
            f"The customer cancelled {booking.service_name or 'a booking'}. Reason: {booking.cancellation_reason}",
            data={"booking_id": booking.id},
        )

        logger.info(
            f"✅ Booking {booking.id} cancelled ({policy.refund_percentage}% refund, {stripe_status})"
        )
        return {
            "booking": booking,
            "policy": policy.to_dict(),
            "refund_amount": refund_amount,
            "stripe_status": stripe_status,
        }

    # ------------------------------------------------------------------
    # Service execution
    # ------------------------------------------------------------------

    def _log_location(self, booking: Booking, professional_id: str, location: GPSLocation, stage: str) -> dict:
        gps = verify_booking_location(location.latitude, location.longitude, booking.address)
        logger.info(
            f"📍 GPS verification at {stage} for booking {booking.id}: "
            f"verified={gps['verified']} distance={gps['distance']}m"
        )
        if not gps["verified"] and gps["distance"] > 0:
            logger.warning(
                f"⚠️ Professional {professional_id} at {stage} {gps['distance']}m from booking "
                f"{booking.id} (max {gps['max_distance']}m) - review for potential fraud"
            )
        return gps

    def check_in(
        self, professional: Profile, booking_id: str, location: GPSLocation, now: Optional[datetime] = None
    ) -> Booking:
        booking = self._get_for_professional(booking_id, professional)
        if booking.status != "confirmed":
            raise HTTPException(
                status_code=400, detail=f"Cannot check in to booking with status: {booking.status}"
            )

        self._log_location(booking, professional.id, location, "check-in")

        booking = self.repo.update_booking(
            self.db,
            booking,
            status="in_progress",
            checked_in_at=now or utcnow(),
            check_in_latitude=location.latitude,
            check_in_longitude=location.longitude,
        )
        notify_customer_booking_status(self.db, booking, "in_progress")
        return booking

    def extend_time(self, professional: Profile, booking_id: str, additional_minutes: int) -> Booking:
        booking = self._get_for_professional(booking_id, professional)
        if booking.status != "in_progress":
            raise HTTPException(status_code=400, detail="Can only extend time on an in-progress booking")

        rate = booking.service_hourly_rate
        if not rate and professional.professional_profile:
            rate = professional.professional_profile.hourly_rate_cop
        extension_amount = calculate_extension_amount(rate, additional_minutes)

        booking = self.repo.update_booking(
            self.db,
            booking,
            time_extension_minutes=(booking.time_extension_minutes or 0) + additional_minutes,
            time_extension_amount=(booking.time_extension_amount or 0) + extension_amount,
        )
        logger.info(f"⏱️ Booking {booking.id} extended {additional_minutes}min (+{extension_amount})")
        return booking

    def check_out(
        self,
        professional: Profile,
        booking_id: str,
        data: CheckOutRequest,
        now: Optional[datetime] = None,
        sleep=None,
    ) -> Booking:
        """
        Finish a service: capture payment, then mark the booking completed.

        A failed capture leaves the booking in progress. A capture that
        succeeds while the database update keeps failing is escalated to admins.
        """
        booking = self._get_for_professional(booking_id, professional)

        if booking.status != "in_progress":
            raise HTTPException(
                status_code=400, detail=f"Cannot check out of booking with status: {booking.status}"
            )
        if not booking.checked_in_at:
            raise HTTPException(status_code=400, detail="Cannot check out without checking in first")
        if not booking.stripe_payment_intent_id:
            raise HTTPException(status_code=400, detail="No payment intent found for this booking")

        self._log_location(booking, professional.id, data, "check-out")

        checked_out_at = now or utcnow()
        actual_duration = calculate_actual_duration(booking.checked_in_at, checked_out_at)
        amount_to_capture = (booking.amount_authorized or 0) + (booking.time_extension_amount or 0)

        logger.info(f"💳 Capturing {amount_to_capture} for booking {booking.id}")
        try:
            intent = self.stripe.capture_payment_intent(
                booking.stripe_payment_intent_id,
                amount_to_capture=amount_to_capture,
                idempotency_key=f"booking-{booking.id}-checkout-capture",
            )
        except PaymentProviderError as e:
            notify_all_admins(
                self.db,
                "admin_payment_failure",
                "Payment capture failed",
                f"Capture of {amount_to_capture} failed for booking {booking.id}: {e}",
                data={"booking_id": booking.id, "amount": amount_to_capture},
            )
            raise HTTPException(status_code=502, detail="Failed to capture payment") from e

        captured_amount = getattr(intent, "amount_received", None) or amount_to_capture

        def _complete() -> Booking:
            try:
                return self.repo.update_booking(
                    self.db,
                    booking,
                    status="completed",
                    checked_out_at=checked_out_at,
                    completed_at=checked_out_at,
                    check_out_latitude=data.latitude,
                    check_out_longitude=data.longitude,
                    actual_duration_minutes=actual_duration,
                    amount_captured=captured_amount,
                    stripe_payment_status="succeeded",
                    completion_notes=data.completion_notes,
                )
            except Exception:
                self.db.rollback()
                raise

        try:
            retry_kwargs = {"sleep": sleep} if sleep else {}
            booking = retry_with_backoff(_complete, max_retries=4, base_delay_ms=100, **retry_kwargs)
        except Exception as e:
            logger.critical(
                f"🚨 CRITICAL: Payment captured but booking update failed for {booking_id} "
                f"(intent {booking.stripe_payment_intent_id}, captured {captured_amount}): {e}"
            )
            notify_all_admins(
                self.db,
                "admin_payment_captured_db_failed",
                "URGENT: Payment captured but booking not updated",
                f"Booking {booking_id} was charged {captured_amount} but could not be marked "
                "complete. Manual database update required.",
                data={
                    "booking_id": booking_id,
                    "amount_captured": captured_amount,
                    "payment_intent_id": booking.stripe_payment_intent_id,
                },
            )
            raise HTTPException(
                status_code=500, detail="Payment captured but booking update failed"
            ) from e

        self._initialize_rebook_nudge(booking)

        try:
            record_completed_booking(self.db, booking)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to accrue trial credit for booking {booking.id}: {e}")

        notify_customer_booking_completed(self.db, booking)
        notify_user(
            self.db,
            booking.professional_id,
            "payment_received",
            "Payment received",
            f"Payment for {booking.service_name or 'your service'} was captured.",
            data={"booking_id": booking.id, "amount": captured_amount},
        )

        logger.info(f"✅ Booking {booking.id} completed, captured {captured_amount}")
        return booking

    def _initialize_rebook_nudge(self, booking: Booking) -> None:
        if not REBOOK_NUDGE_ENABLED:
            return
        try:
            variant = get_rebook_nudge_variant(booking.customer_id)
            booking.rebook_nudge_variant = variant
            self.repo.create_nudge_experiment(self.db, booking.id, booking.customer_id, variant)
            logger.info(f"🧪 Rebook nudge experiment initialized for {booking.id} ({variant})")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to initialize rebook nudge experiment for {booking.id}: {e}")


def send_rebook_nudges(db: Session, now: Optional[datetime] = None) -> int:
    """Send due rebook nudges. Returns how many were sent."""
    if not REBOOK_NUDGE_ENABLED:
        logger.info("ℹ️ Rebook nudges disabled")
        return 0

    now = now or utcnow()
    repo = BookingRepository()
    sent = 0

    for variant, delay in REBOOK_NUDGE_DELAYS.items():
        for booking in repo.get_due_rebook_nudges(db, now - delay, variant):
            notify_rebook_nudge(db, booking)
            booking.rebook_nudge_sent = True
            booking.rebook_nudge_sent_at = now
            experiment = (
                db.query(RebookNudgeExperiment)
                .filter(RebookNudgeExperiment.booking_id == booking.id)
                .first()
            )
            if experiment:
                experiment.nudge_sent_at = now
            db.commit()
            sent += 1

    logger.info(f"📨 Sent {sent} rebook nudges")
    return sent
