"""
Stripe Webhook Handler
Keeps bookings, balances and payout transfers in sync with Stripe
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Booking, ProfessionalProfile, StripeWebhookEvent
from ...models_payouts import PayoutTransfer
from ...services.notification_service import notify_user
from ...shared.validators import utcnow
from ..payouts.balance_service import BalanceError, BalanceService
from .stripe_service import stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CLOSED_BOOKING_STATUSES = ("completed", "customer_cancelled", "declined", "cancelled")


def _as_dict(obj: Any) -> dict:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _find_booking(db: Session, intent: dict) -> Optional[Booking]:
    booking = (
        db.query(Booking).filter(Booking.stripe_payment_intent_id == intent.get("id")).first()
    )
    if booking:
        return booking
    booking_id = (intent.get("metadata") or {}).get("booking_id")
    if booking_id:
        return db.query(Booking).filter(Booking.id == booking_id).first()
    return None


def _find_transfer(db: Session, payout: dict) -> Optional[PayoutTransfer]:
    transfer_id = (payout.get("metadata") or {}).get("payout_transfer_id")
    if transfer_id:
        transfer = db.query(PayoutTransfer).filter(PayoutTransfer.id == transfer_id).first()
        if transfer:
            return transfer
    return (
        db.query(PayoutTransfer).filter(PayoutTransfer.stripe_transfer_id == payout.get("id")).first()
    )


def handle_payment_succeeded(db: Session, intent: dict) -> None:
    """
    Funds were captured.

    A completed service credits the professional's pending balance and career
    stats. A partial capture on cancellation credits only the balance.
    """
    booking = _find_booking(db, intent)
    if not booking:
        logger.warning(f"⚠️ No booking for payment intent {intent.get('id')}")
        return

    amount = intent.get("amount_received") or booking.amount_captured or 0
    booking.amount_captured = amount
    booking.stripe_payment_status = "succeeded"

    completed_service = booking.status in ("in_progress", "completed")
    if completed_service:
        booking.status = "completed"
        booking.completed_at = booking.completed_at or utcnow()
    db.commit()

    try:
        clearance = BalanceService(db).add_to_pending_balance(booking.professional_id, booking.id, amount)
    except BalanceError as e:
        # capture is already committed
        db.rollback()
        logger.error(f"❌ Balance tracking failed for booking {booking.id}: {e}")
        clearance = None
    if clearance and completed_service:
        pro = (
            db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == booking.professional_id)
            .first()
        )
        if pro:
            pro.total_completed_bookings = (pro.total_completed_bookings or 0) + 1
            pro.total_earnings_cop = (pro.total_earnings_cop or 0) + clearance.amount_cop
            db.commit()

    logger.info(f"💰 Payment succeeded for booking {booking.id}: {amount}")


def handle_payment_canceled(db: Session, intent: dict) -> None:
    booking = _find_booking(db, intent)
    if not booking:
        return
    booking.stripe_payment_status = "canceled"
    if booking.status not in CLOSED_BOOKING_STATUSES:
        booking.status = "cancelled"
        booking.cancelled_at = utcnow()
    db.commit()
    logger.info(f"🚫 Payment canceled for booking {booking.id}")


def handle_payment_failed(db: Session, intent: dict) -> None:
    booking = _find_booking(db, intent)
    if not booking:
        return
    error = (intent.get("last_payment_error") or {}).get("message") or "Payment failed"
    booking.stripe_payment_status = "failed"
    db.commit()
    logger.warning(f"⚠️ Payment failed for booking {booking.id}: {error}")

    notify_user(
        db,
        booking.customer_id,
        "payment_failed",
        "Payment failed",
        f"We could not process the payment for your booking: {error}",
        data={"booking_id": booking.id},
        cta_path=f"/bookings/{booking.id}",
    )


def handle_charge_refunded(db: Session, charge: dict) -> None:
    intent_id = charge.get("payment_intent")
    booking = (
        db.query(Booking).filter(Booking.stripe_payment_intent_id == intent_id).first()
        if intent_id
        else None
    )
    if not booking:
        return
    booking.amount_refunded = charge.get("amount_refunded") or 0
    booking.stripe_payment_status = "refunded"
    db.commit()
    logger.info(f"↩️ Refund recorded for booking {booking.id}: {booking.amount_refunded}")


def handle_payout_paid(db: Session, payout: dict) -> None:
    transfer = _find_transfer(db, payout)
    if not transfer:
        logger.warning(f"⚠️ No payout transfer for Stripe payout {payout.get('id')}")
        return
    transfer.status = "paid"
    db.commit()
    logger.info(f"✅ Payout {transfer.id} paid")


def handle_payout_failed(db: Session, payout: dict) -> None:
    """Mark the transfer failed and give the money back to the professional"""
    transfer = _find_transfer(db, payout)
    if not transfer:
        logger.warning(f"⚠️ No payout transfer for Stripe payout {payout.get('id')}")
        return
    if transfer.status == "failed":
        return

    transfer.status = "failed"
    transfer.failure_reason = payout.get("failure_message") or payout.get("failure_code") or "Payout failed"

    if transfer.payout_type == "instant":
        db.commit()
        BalanceService(db).refund_failed_payout(transfer.professional_id, transfer.gross_amount)
    else:
        # Release the bookings so the next batch picks them up again
        db.query(Booking).filter(Booking.payout_transfer_id == transfer.id).update(
            {Booking.payout_transfer_id: None}, synchronize_session=False
        )
        db.commit()

    notify_user(
        db,
        transfer.professional_id,
        "payout_failed",
        "Payout failed",
        f"Your payout could not be delivered: {transfer.failure_reason}",
        data={"payout_transfer_id": transfer.id},
    )
    logger.warning(f"⚠️ Payout {transfer.id} failed: {transfer.failure_reason}")


EVENT_HANDLERS = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment_intent.canceled": handle_payment_canceled,
    "payment_intent.payment_failed": handle_payment_failed,
    "charge.refunded": handle_charge_refunded,
    "payout.paid": handle_payout_paid,
    "payout.failed": handle_payout_failed,
}


def process_stripe_event(db: Session, event: Any) -> dict:
    """Dispatch a verified event. Events already processed are skipped."""
    event = _as_dict(event)
    event_id = event.get("id")
    event_type = event.get("type")

    if db.query(StripeWebhookEvent).filter(StripeWebhookEvent.event_id == event_id).first():
        logger.info(f"ℹ️ Stripe event {event_id} already processed")
        return {"status": "duplicate", "event_type": event_type}

    handler = EVENT_HANDLERS.get(event_type)
    if handler:
        obj = _as_dict((event.get("data") or {}).get("object") or {})
        handler(db, obj)
    else:
        logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")

    db.add(StripeWebhookEvent(event_id=event_id, event_type=event_type))
    db.commit()
    return {"status": "success", "event_type": event_type}


@router.post("/stripe")
async def handle_stripe_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = stripe_service.construct_event(body, signature)
    except ValueError as e:
        logger.error(f"❌ Invalid Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    logger.info(f"📥 Received Stripe webhook: {event['type']}")

    try:
        return process_stripe_event(db, event)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Stripe webhook processing error: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e
