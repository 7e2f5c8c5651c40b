from datetime import timedelta

import pytest
from fastapi import HTTPException

from casaora.domain.bookings.calculator import (
    calculate_booking_amount,
    get_rebook_nudge_variant,
    retry_with_backoff,
    verify_booking_location,
)
from casaora.domain.bookings.schemas import BookingCreate, CheckOutRequest, GPSLocation
from casaora.domain.bookings.service import BookingService, send_rebook_nudges
from casaora.models import Booking, Notification, RebookNudgeExperiment
from casaora.models_payouts import TrialCredit
from tests.conftest import NOW, FakeStripe

BOGOTA = {"latitude": 4.6486, "longitude": -74.0628, "city": "Bogotá"}


def booking_request(pro, **kwargs):
    kwargs.setdefault("scheduled_start", NOW + timedelta(days=2))
    kwargs.setdefault("duration_minutes", 120)
    return BookingCreate(professional_id=pro.id, address=BOGOTA, service_name="Deep clean", **kwargs)


# ============================================================================
# Calculator
# ============================================================================


def test_booking_amount_uses_rate_with_floor():
    assert calculate_booking_amount(None, 40_000, 120) == 80_000
    assert calculate_booking_amount(None, 5_000, 60) == 20_000
    assert calculate_booking_amount(55_000, 40_000, 120) == 55_000
    assert calculate_booking_amount(None, None, None) == 20_000


def test_location_verification():
    near = verify_booking_location(4.6487, -74.0629, BOGOTA)
    assert near["verified"] is True

    far = verify_booking_location(4.7, -74.0628, BOGOTA)
    assert far["verified"] is False
    assert far["distance"] > 150

    no_coords = verify_booking_location(4.6, -74.0, {"city": "Bogotá"})
    assert no_coords == {
        "verified": False,
        "distance": 0,
        "max_distance": 150,
        "reason": "Booking address has no coordinates",
    }


def test_rebook_variant_is_stable():
    variant = get_rebook_nudge_variant("customer-abc")
    assert variant in ("24h", "72h")
    assert all(get_rebook_nudge_variant("customer-abc") == variant for _ in range(5))


def test_retry_with_backoff_delays_double():
    delays = []
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise RuntimeError("db busy")
        return "ok"

    assert retry_with_backoff(flaky, max_retries=4, base_delay_ms=100, sleep=delays.append) == "ok"
    assert delays == [0.1, 0.2]


def test_retry_with_backoff_reraises_last_error():
    delays = []

    def broken():
        raise RuntimeError("still down")

    with pytest.raises(RuntimeError, match="still down"):
        retry_with_backoff(broken, max_retries=4, sleep=delays.append)
    assert delays == [0.1, 0.2, 0.4]


# ============================================================================
# Creation
# ============================================================================


def test_create_booking_authorizes_payment(db, make_profile, make_professional, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional(hourly_rate_cop=40_000)

    result = BookingService(db, fake_stripe).create_booking(customer, booking_request(pro), now=NOW)

    assert result["amount"] == 80_000
    assert result["client_secret"] == "pi_test_123_secret"

    booking = db.query(Booking).filter(Booking.id == result["booking_id"]).one()
    assert booking.status == "pending_payment"
    assert booking.stripe_payment_intent_id == "pi_test_123"
    assert booking.amount_authorized == 80_000
    assert booking.scheduled_end == booking.scheduled_start + timedelta(minutes=120)

    intent_call = fake_stripe.calls_named("create_payment_intent")[0]
    assert intent_call["idempotency_key"] == f"booking-{booking.id}-authorize"
    assert intent_call["metadata"]["booking_id"] == booking.id

    assert customer.stripe_customer_id == f"cus_{customer.id[:8]}"
    assert db.query(Notification).filter(Notification.user_id == pro.id).count() == 1


def test_create_booking_rejects_self_booking(db, make_professional, fake_stripe):
    pro = make_professional()
    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).create_booking(pro, booking_request(pro), now=NOW)
    assert exc.value.status_code == 400


def test_create_booking_requires_active_professional(db, make_profile, make_professional, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional(is_active=False)
    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).create_booking(customer, booking_request(pro), now=NOW)
    assert exc.value.status_code == 404


def test_create_booking_rejects_past_start(db, make_profile, make_professional, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    request = booking_request(pro, scheduled_start=NOW - timedelta(hours=1))
    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).create_booking(customer, request, now=NOW)
    assert exc.value.status_code == 400


def test_create_booking_without_stripe_is_unavailable(db, make_profile, make_professional):
    customer = make_profile("customer")
    pro = make_professional()
    stripe = FakeStripe()
    stripe.available = False
    with pytest.raises(HTTPException) as exc:
        BookingService(db, stripe).create_booking(customer, booking_request(pro), now=NOW)
    assert exc.value.status_code == 503
    assert db.query(Booking).count() == 0


def test_failed_authorization_removes_booking(db, make_profile, make_professional):
    customer = make_profile("customer")
    pro = make_professional()
    stripe = FakeStripe(fail_on={"create_payment_intent"})

    with pytest.raises(HTTPException) as exc:
        BookingService(db, stripe).create_booking(customer, booking_request(pro), now=NOW)

    assert exc.value.status_code == 502
    assert db.query(Booking).count() == 0


# ============================================================================
# Professional responses
# ============================================================================


def test_accept_and_decline(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    first = make_booking(customer, pro, status="pending_payment")
    second = make_booking(customer, pro, status="pending_payment")
    service = BookingService(db, fake_stripe)

    assert service.accept_booking(pro, first.id).status == "confirmed"

    declined = service.decline_booking(pro, second.id, "Fully booked")
    assert declined.status == "declined"
    assert declined.cancellation_reason == "Fully booked"
    assert fake_stripe.calls_named("cancel_payment_intent")[0]["payment_intent_id"] == second.stripe_payment_intent_id

    with pytest.raises(HTTPException) as exc:
        service.accept_booking(pro, second.id)
    assert exc.value.status_code == 400


def test_other_professional_cannot_manage_booking(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    other = make_professional()
    booking = make_booking(customer, pro, status="pending_payment")

    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).accept_booking(other, booking.id)
    assert exc.value.status_code == 403


# ============================================================================
# Cancellation
# ============================================================================


def test_cancel_with_full_refund_releases_authorization(
    db, make_profile, make_professional, make_booking, fake_stripe
):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro, scheduled_start=NOW + timedelta(hours=30))

    result = BookingService(db, fake_stripe).cancel_booking(customer, booking.id, "Plans changed", now=NOW)

    assert result["stripe_status"] == "canceled"
    assert result["refund_amount"] == 80_000
    assert result["policy"]["refund_percentage"] == 100
    assert result["booking"].status == "customer_cancelled"
    assert not fake_stripe.calls_named("capture_payment_intent")


def test_late_cancel_captures_only_the_fee(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro, scheduled_start=NOW + timedelta(hours=6))

    result = BookingService(db, fake_stripe).cancel_booking(customer, booking.id, now=NOW)

    assert result["stripe_status"] == "partially_captured"
    assert result["refund_amount"] == 20_000
    capture = fake_stripe.calls_named("capture_payment_intent")[0]
    assert capture["amount_to_capture"] == 60_000
    assert capture["idempotency_key"] == f"booking-{booking.id}-cancellation-capture"
    assert result["booking"].amount_captured == 60_000


def test_cancel_without_payment_intent(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro, stripe_payment_intent_id=None)

    result = BookingService(db, fake_stripe).cancel_booking(customer, booking.id, now=NOW)
    assert result["stripe_status"] == "no_payment_required"
    assert result["refund_amount"] == 0


def test_cannot_cancel_in_progress_booking(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro, status="in_progress")

    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).cancel_booking(customer, booking.id, now=NOW)
    assert exc.value.status_code == 400


def test_only_owner_can_cancel(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    stranger = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro)

    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).cancel_booking(stranger, booking.id, now=NOW)
    assert exc.value.status_code == 403


# ============================================================================
# Service execution
# ============================================================================


def test_check_in_then_extend(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional(hourly_rate_cop=40_000)
    booking = make_booking(customer, pro, address=BOGOTA, service_hourly_rate=40_000)
    service = BookingService(db, fake_stripe)

    checked_in = service.check_in(pro, booking.id, GPSLocation(latitude=4.6486, longitude=-74.0628), now=NOW)
    assert checked_in.status == "in_progress"
    assert checked_in.checked_in_at == NOW

    extended = service.extend_time(pro, booking.id, 30)
    assert extended.time_extension_minutes == 30
    assert extended.time_extension_amount == 20_000


def test_extend_requires_in_progress(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro)
    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).extend_time(pro, booking.id, 30)
    assert exc.value.status_code == 400


def in_progress_booking(make_booking, customer, pro, **kwargs):
    return make_booking(
        customer,
        pro,
        status="in_progress",
        checked_in_at=NOW,
        address=BOGOTA,
        time_extension_amount=10_000,
        **kwargs,
    )


def test_check_out_captures_and_completes(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = in_progress_booking(make_booking, customer, pro)
    checkout = CheckOutRequest(latitude=4.6486, longitude=-74.0628, completion_notes="All rooms done")

    completed = BookingService(db, fake_stripe).check_out(
        pro, booking.id, checkout, now=NOW + timedelta(minutes=135)
    )

    capture = fake_stripe.calls_named("capture_payment_intent")[0]
    assert capture["amount_to_capture"] == 90_000
    assert capture["idempotency_key"] == f"booking-{booking.id}-checkout-capture"

    assert completed.status == "completed"
    assert completed.amount_captured == 90_000
    assert completed.actual_duration_minutes == 135
    assert completed.completion_notes == "All rooms done"

    credit = db.query(TrialCredit).filter(TrialCredit.customer_id == customer.id).one()
    assert credit.credit_earned_cop == 45_000
    assert credit.total_bookings_count == 1

    experiment = db.query(RebookNudgeExperiment).filter(RebookNudgeExperiment.booking_id == booking.id).one()
    assert experiment.variant == completed.rebook_nudge_variant


def test_check_out_capture_failure_keeps_booking_open(
    db, make_profile, make_professional, make_booking
):
    customer = make_profile("customer")
    admin = make_profile("admin")
    pro = make_professional()
    booking = in_progress_booking(make_booking, customer, pro)
    stripe = FakeStripe(fail_on={"capture_payment_intent"})

    with pytest.raises(HTTPException) as exc:
        BookingService(db, stripe).check_out(
            pro, booking.id, CheckOutRequest(latitude=4.6486, longitude=-74.0628), now=NOW
        )

    assert exc.value.status_code == 502
    db.refresh(booking)
    assert booking.status == "in_progress"
    alert = db.query(Notification).filter(Notification.user_id == admin.id).one()
    assert alert.notification_type == "admin_payment_failure"


def test_check_out_escalates_when_update_keeps_failing(
    db, make_profile, make_professional, make_booking, fake_stripe
):
    customer = make_profile("customer")
    admin = make_profile("admin")
    pro = make_professional()
    booking = in_progress_booking(make_booking, customer, pro)
    service = BookingService(db, fake_stripe)

    def broken_update(*args, **kwargs):
        raise RuntimeError("database unavailable")

    service.repo.update_booking = broken_update
    delays = []

    with pytest.raises(HTTPException) as exc:
        service.check_out(
            pro,
            booking.id,
            CheckOutRequest(latitude=4.6486, longitude=-74.0628),
            now=NOW,
            sleep=delays.append,
        )

    assert exc.value.status_code == 500
    assert delays == [0.1, 0.2, 0.4]
    assert len(fake_stripe.calls_named("capture_payment_intent")) == 1
    alert = db.query(Notification).filter(Notification.user_id == admin.id).one()
    assert alert.notification_type == "admin_payment_captured_db_failed"


def test_check_out_requires_check_in(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile("customer")
    pro = make_professional()
    booking = make_booking(customer, pro, status="in_progress", checked_in_at=None)

    with pytest.raises(HTTPException) as exc:
        BookingService(db, fake_stripe).check_out(
            pro, booking.id, CheckOutRequest(latitude=4.6, longitude=-74.0), now=NOW
        )
    assert exc.value.detail == "Cannot check out without checking in first"


# ============================================================================
# Rebook nudges
# ============================================================================


def test_send_rebook_nudges_respects_variant_delay(db, make_profile, make_professional, make_booking):
    customer = make_profile("customer")
    pro = make_professional()
    due = make_booking(
        customer, pro, status="completed", completed_at=NOW - timedelta(hours=80), rebook_nudge_variant="72h"
    )
    not_yet = make_booking(
        customer, pro, status="completed", completed_at=NOW - timedelta(hours=30), rebook_nudge_variant="72h"
    )

    assert send_rebook_nudges(db, now=NOW) == 1

    db.refresh(due)
    db.refresh(not_yet)
    assert due.rebook_nudge_sent is True
    assert due.rebook_nudge_sent_at == NOW
    assert not_yet.rebook_nudge_sent is False


def test_new_booking_marks_nudged_customer_as_rebooked(
    db, make_profile, make_professional, make_booking, fake_stripe
):
    customer = make_profile("customer")
    pro = make_professional()
    previous = make_booking(customer, pro, status="completed", completed_at=NOW - timedelta(days=3))
    experiment = RebookNudgeExperiment(
        booking_id=previous.id, customer_id=customer.id, variant="24h", nudge_sent_at=NOW - timedelta(days=1)
    )
    db.add(experiment)
    db.commit()

    BookingService(db, fake_stripe).create_booking(customer, booking_request(pro), now=NOW)

    db.refresh(experiment)
    assert experiment.rebooked is True


def test_booking_address_is_sanitized():
    data = BookingCreate(
        professional_id="pro-1",
        scheduled_start=NOW + timedelta(days=1),
        duration_minutes=60,
        address={
            "formatted": "<script>x</script>Calle 93 #11-20",
            "details": {"apartment": "<b>402</b>"},
            "latitude": 4.67,
        },
    )
    assert data.address == {
        "formatted": "xCalle 93 #11-20",
        "details": {"apartment": "402"},
        "latitude": 4.67,
    }
