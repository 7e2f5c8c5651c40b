"""
In-app notifications with best-effort email delivery
Every workflow event creates a Notification row; email is attempted after the
row is stored and never blocks or fails the caller.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..email_service import EmailNotConfiguredError, send_notification_email
from ..models import Booking, Notification, Profile
from ..shared.money import round_half_up

logger = logging.getLogger(__name__)


def _format_cop(amount_cents: Optional[int]) -> str:
    pesos = round_half_up((amount_cents or 0) / 100)
    return f"${pesos:,}".replace(",", ".") + " COP"


def notify_user(
    db: Session,
    user_id: str,
    notification_type: str,
    title: str,
    body: str,
    data: Optional[dict] = None,
    email: bool = True,
    cta_path: Optional[str] = None,
) -> Optional[Notification]:
    """
    Store a notification for a user and email it.

    Never raises: failures are logged and None is returned.
    """
    try:
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            body=body,
            data=data or {},
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to store {notification_type} notification for {user_id}: {e}")
        return None

    if email:
        try:
            profile = db.query(Profile).filter(Profile.id == user_id).first()
            if profile and profile.email:
                send_notification_email(
                    profile.email, title, body, cta_label="Open Casaora", cta_path=cta_path
                )
        except EmailNotConfiguredError:
            logger.debug(f"ℹ️ Email skipped for {notification_type}: Resend not configured")
        except Exception as e:
            logger.warning(f"⚠️ {notification_type} email to {user_id} failed: {e}")

    return notification


def notify_all_admins(
    db: Session, notification_type: str, title: str, body: str, data: Optional[dict] = None
) -> int:
    """Notify every admin. Returns how many notifications were stored."""
    try:
        admins = db.query(Profile).filter(Profile.role == "admin").all()
    except Exception as e:
        logger.error(f"❌ Failed to load admins for {notification_type}: {e}")
        return 0

    sent = 0
    for admin in admins:
        if notify_user(db, admin.id, notification_type, title, body, data=data):
            sent += 1
    return sent


def notify_professional_new_booking(db: Session, booking: Booking) -> Optional[Notification]:
    when = booking.scheduled_start.strftime("%Y-%m-%d %H:%M") if booking.scheduled_start else "TBD"
    return notify_user(
        db,
        booking.professional_id,
        "booking_request",
        "New booking request",
        f"You have a new booking request for {booking.service_name or 'a service'} on {when}.\n"
        f"Estimated amount: {_format_cop(booking.amount_estimated)}",
        data={"booking_id": booking.id},
        cta_path=f"/dashboard/pro/bookings/{booking.id}",
    )


def notify_customer_booking_status(db: Session, booking: Booking, status: str) -> Optional[Notification]:
    titles = {
        "confirmed": "Your booking was accepted",
        "declined": "Your booking was declined",
        "in_progress": "Your professional has arrived",
    }
    return notify_user(
        db,
        booking.customer_id,
        f"booking_{status}",
        titles.get(status, "Booking update"),
        f"Booking for {booking.service_name or 'your service'} is now {status.replace('_', ' ')}.",
        data={"booking_id": booking.id, "status": status},
        cta_path=f"/dashboard/customer/bookings/{booking.id}",
    )


def notify_customer_booking_completed(db: Session, booking: Booking) -> Optional[Notification]:
    return notify_user(
        db,
        booking.customer_id,
        "booking_completed",
        "Service completed",
        f"Your {booking.service_name or 'service'} is complete. "
        f"Total charged: {_format_cop(booking.amount_captured)}.\n"
        "Let us know how it went by leaving a review.",
        data={"booking_id": booking.id, "amount_captured": booking.amount_captured},
        cta_path=f"/dashboard/customer/bookings/{booking.id}/review",
    )


def notify_rebook_nudge(db: Session, booking: Booking) -> Optional[Notification]:
    return notify_user(
        db,
        booking.customer_id,
        "rebook_nudge",
        "Book your professional again",
        f"Enjoyed your {booking.service_name or 'service'}? "
        "Book the same professional again in a couple of taps.",
        data={
            "booking_id": booking.id,
            "professional_id": booking.professional_id,
            "variant": booking.rebook_nudge_variant,
        },
        cta_path=f"/professionals/{booking.professional_id}?rebook={booking.id}",
    )
