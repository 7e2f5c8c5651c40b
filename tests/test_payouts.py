from datetime import date, datetime, timedelta

import pytest
from fastapi import HTTPException

from casaora.domain.payments.webhooks import process_stripe_event
from casaora.domain.payouts.balance_service import BalanceError, BalanceService
from casaora.domain.payouts.calculator import (
    calculate_commission,
    calculate_payout_from_bookings,
    calculate_payout_with_rules,
    get_current_payout_period,
    get_pricing_rule,
    is_booking_in_payout_period,
)
from casaora.domain.payouts.service import InstantPayoutService, PayoutBatchService
from casaora.models import Notification
from casaora.models_payouts import PayoutTransfer, PlatformSetting, PricingRule
from tests.conftest import NOW, FakeStripe


# ============================================================================
# Payout periods and commission
# ============================================================================


@pytest.mark.parametrize(
    "now,start,end",
    [
        (datetime(2026, 3, 1, 15), datetime(2026, 2, 27), datetime(2026, 3, 3)),  # Sunday
        (datetime(2026, 3, 2, 9), datetime(2026, 2, 27), datetime(2026, 3, 3)),  # Monday
        (datetime(2026, 3, 3, 10), datetime(2026, 2, 27), datetime(2026, 3, 3)),  # Tuesday
        (datetime(2026, 3, 4, 8), datetime(2026, 3, 3), datetime(2026, 3, 6)),  # Wednesday
        (datetime(2026, 3, 6, 10), datetime(2026, 3, 3), datetime(2026, 3, 6)),  # Friday
    ],
)
def test_payout_period(now, start, end):
    period = get_current_payout_period(now)
    assert period["period_start"] == start
    assert period["period_end"] == end
    assert period["next_payout_date"] == end.replace(hour=10)


def test_booking_in_period_prefers_check_out_time():
    class Done:
        checked_out_at = datetime(2026, 3, 2, 18)
        completed_at = datetime(2026, 3, 4, 18)

    assert is_booking_in_payout_period(Done(), datetime(2026, 2, 27), datetime(2026, 3, 3)) is True
    assert is_booking_in_payout_period(object(), datetime(2026, 2, 27), datetime(2026, 3, 3)) is False


def test_commission_by_country_and_override():
    assert calculate_commission(100_000, "CO") == {
        "commission_amount": 15_000,
        "net_amount": 85_000,
        "rate": 0.15,
    }
    assert calculate_commission(100_000, rate=0.1)["net_amount"] == 90_000


def test_payout_from_bookings_totals(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()
    bookings = [
        make_booking(customer, pro, status="completed", amount_captured=80_000),
        make_booking(customer, pro, status="completed", amount_captured=40_000),
    ]

    payout = calculate_payout_from_bookings(bookings)
    assert payout["gross_amount"] == 120_000
    assert payout["commission_amount"] == 18_000
    assert payout["net_amount"] == 102_000
    assert payout["booking_count"] == 2

    assert calculate_payout_from_bookings([])["gross_amount"] == 0


def test_most_specific_pricing_rule_wins(db):
    db.add_all(
        [
            PricingRule(commission_rate=0.2, effective_from=date(2026, 1, 1)),
            PricingRule(service_category="cleaning", commission_rate=0.12, effective_from=date(2026, 1, 1)),
            PricingRule(city="Medellín", commission_rate=0.18, effective_from=date(2026, 1, 1)),
            PricingRule(
                service_category="cleaning",
                city="Medellín",
                commission_rate=0.1,
                effective_from=date(2026, 1, 1),
                effective_until=date(2026, 2, 1),
            ),
        ]
    )
    db.commit()

    march = date(2026, 3, 2)
    assert get_pricing_rule(db, "cleaning", "Medellín", march).commission_rate == 0.12
    assert get_pricing_rule(db, "cleaning", "Medellín", date(2026, 1, 15)).commission_rate == 0.1
    assert get_pricing_rule(db, "cooking", "Medellín", march).commission_rate == 0.18
    assert get_pricing_rule(db, "cooking", "Cali", march).commission_rate == 0.2
    assert get_pricing_rule(db, "cooking", "Cali", date(2025, 6, 1)) is None


def test_payout_with_rules_applies_per_booking_rate(db, make_profile, make_professional, make_booking):
    db.add(PricingRule(service_category="cooking", commission_rate=0.1, effective_from=date(2026, 1, 1)))
    db.commit()
    customer = make_profile()
    pro = make_professional()
    bookings = [
        make_booking(
            customer, pro, status="completed", amount_captured=100_000,
            service_category="cooking", completed_at=NOW,
        ),
        make_booking(
            customer, pro, status="completed", amount_captured=100_000,
            service_category="cleaning", completed_at=NOW,
        ),
    ]

    payout = calculate_payout_with_rules(db, bookings)
    assert payout["commission_amount"] == 10_000 + 15_000
    assert payout["net_amount"] == 175_000


# ============================================================================
# Balances
# ============================================================================


def test_pending_balance_clears_after_24_hours(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()
    booking = make_booking(customer, pro, status="completed", amount_captured=80_000)
    service = BalanceService(db)

    clearance = service.add_to_pending_balance(pro.id, booking.id, 80_000, now=NOW)
    assert clearance.clearance_at == NOW + timedelta(hours=24)
    assert service.add_to_pending_balance(pro.id, booking.id, 80_000, now=NOW) is None

    breakdown = service.get_balance_breakdown(pro.id, now=NOW + timedelta(hours=2))
    assert breakdown["pending_balance"] == 80_000
    assert breakdown["available_balance"] == 0
    assert breakdown["pending_clearances"][0]["hours_remaining"] == 22

    assert service.process_batch_clearances(now=NOW + timedelta(hours=12))["processed"] == 0
    result = service.process_batch_clearances(now=NOW + timedelta(hours=25))
    assert result == {"processed": 1, "failed": 0, "errors": []}

    breakdown = service.get_balance_breakdown(pro.id, now=NOW + timedelta(hours=25))
    assert breakdown["available_balance"] == 80_000
    assert breakdown["pending_balance"] == 0

    with pytest.raises(BalanceError):
        service.clear_pending_balance(booking.id)


def test_deduct_rejects_overdraw(db, make_professional):
    pro = make_professional(available_balance_cents=60_000)
    service = BalanceService(db)
    with pytest.raises(BalanceError):
        service.deduct_for_instant_payout(pro.id, 70_000)
    assert service.deduct_for_instant_payout(pro.id, 60_000) == 0
    assert service.refund_failed_payout(pro.id, 60_000) == 60_000


def test_instant_payout_validation(db, make_professional):
    pro = make_professional(available_balance_cents=200_000)
    service = BalanceService(db)

    ok = service.validate_instant_payout(pro.id, 100_000, now=NOW)
    assert ok["is_valid"] is True
    assert ok["fee_amount"] == 1_500
    assert ok["net_amount"] == 98_500

    too_small = service.validate_instant_payout(pro.id, 10_000, now=NOW)
    assert too_small["is_valid"] is False
    assert too_small["errors"][0].startswith("Minimum instant payout is 50,000 COP")

    too_big = service.validate_instant_payout(pro.id, 300_000, now=NOW)
    assert any("Insufficient balance" in e for e in too_big["errors"])

    assert service.validate_instant_payout("missing", 100_000)["errors"] == ["Professional profile not found"]


def test_instant_payout_settings_come_from_platform_settings(db, make_professional):
    db.add_all(
        [
            PlatformSetting(setting_key="instant_payout_fee_percentage", setting_value=2),
            PlatformSetting(setting_key="minimum_instant_payout_cop", setting_value=20_000),
        ]
    )
    db.commit()
    pro = make_professional(available_balance_cents=200_000)

    result = BalanceService(db).validate_instant_payout(pro.id, 30_000, now=NOW)
    assert result["is_valid"] is True
    assert result["fee_amount"] == 600


def test_instant_payout_requires_connected_account(db, make_professional):
    pro = make_professional(available_balance_cents=200_000, stripe_connect_onboarding_status="pending")
    result = BalanceService(db).validate_instant_payout(pro.id, 100_000, now=NOW)
    assert result["errors"] == ["Your payout account setup is incomplete. Please finish setup first."]


def test_daily_rate_limit(db, make_professional):
    pro = make_professional()
    service = BalanceService(db)
    assert [service.check_and_increment_rate_limit(pro.id, NOW) for _ in range(4)] == [True, True, True, False]
    assert service.check_and_increment_rate_limit(pro.id, NOW + timedelta(days=1)) is True


# ============================================================================
# Instant payouts
# ============================================================================


def test_request_instant_payout(db, make_professional, fake_stripe):
    pro = make_professional(available_balance_cents=200_000)

    result = InstantPayoutService(db, fake_stripe).request_instant_payout(pro.id, 100_000, now=NOW)

    assert result["net_amount"] == 98_500
    assert result["status"] == "processing"
    transfer_call = fake_stripe.calls_named("create_transfer")[0]
    assert transfer_call["amount"] == 98_500
    assert transfer_call["destination"] == "acct_test"
    assert transfer_call["idempotency_key"] == f"instant-payout-{result['payout_transfer_id']}"

    db.refresh(pro.professional_profile)
    assert pro.professional_profile.available_balance_cents == 100_000


def test_failed_instant_transfer_restores_balance(db, make_professional):
    pro = make_professional(available_balance_cents=200_000)
    stripe = FakeStripe(fail_on={"create_transfer"})

    with pytest.raises(HTTPException) as exc:
        InstantPayoutService(db, stripe).request_instant_payout(pro.id, 100_000, now=NOW)

    assert exc.value.status_code == 502
    db.refresh(pro.professional_profile)
    assert pro.professional_profile.available_balance_cents == 200_000
    assert db.query(PayoutTransfer).one().status == "failed"


def test_invalid_instant_payout_is_rejected(db, make_professional, fake_stripe):
    pro = make_professional(available_balance_cents=20_000)
    with pytest.raises(HTTPException) as exc:
        InstantPayoutService(db, fake_stripe).request_instant_payout(pro.id, 100_000, now=NOW)
    assert exc.value.status_code == 400
    assert not fake_stripe.calls


# ============================================================================
# Batch payouts
# ============================================================================


def test_batch_pays_each_professional_once(db, make_profile, make_professional, make_booking, fake_stripe):
    customer = make_profile()
    first = make_professional()
    second = make_professional(stripe_connect_account_id=None)
    in_window = NOW - timedelta(days=1)
    paid = [
        make_booking(customer, first, status="completed", amount_captured=100_000, completed_at=in_window),
        make_booking(customer, first, status="completed", amount_captured=60_000, completed_at=in_window),
    ]
    unpaid = make_booking(customer, second, status="completed", amount_captured=50_000, completed_at=in_window)
    outside = make_booking(
        customer, first, status="completed", amount_captured=70_000, completed_at=datetime(2026, 3, 3, 12)
    )
    admin = make_profile("admin")

    result = PayoutBatchService(db, fake_stripe).run_batch(now=NOW)

    assert result["batch_id"] == "payout-2026-03-02-mon"
    assert result["status"] == "completed_with_errors"
    assert result["successful_transfers"] == 1
    assert result["failed_transfers"] == 1
    assert result["total_amount"] == 136_000
    assert result["errors"] == [{"professional_id": second.id, "error": "No Stripe Connect account"}]

    transfer_call = fake_stripe.calls_named("create_transfer")[0]
    assert transfer_call["amount"] == 136_000
    assert transfer_call["idempotency_key"] == f"payout-2026-03-02-mon-{first.id}"

    for booking in paid:
        db.refresh(booking)
        assert booking.payout_transfer_id is not None
    db.refresh(unpaid)
    db.refresh(outside)
    assert unpaid.payout_transfer_id is None
    assert outside.payout_transfer_id is None

    assert db.query(Notification).filter(Notification.user_id == admin.id).count() == 1

    # A second run in the same window finds nothing new to pay for the first professional
    again = PayoutBatchService(db, fake_stripe).run_batch(now=NOW)
    assert again["total_transfers"] == 1
    assert len(fake_stripe.calls_named("create_transfer")) == 1


def test_empty_batch_completes(db, fake_stripe):
    result = PayoutBatchService(db, fake_stripe).run_batch(now=NOW)
    assert result["status"] == "completed"
    assert result["total_transfers"] == 0


def test_batch_transfer_failure_is_recorded(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()
    booking = make_booking(
        customer, pro, status="completed", amount_captured=100_000, completed_at=NOW - timedelta(days=1)
    )
    stripe = FakeStripe(fail_on={"create_transfer"})

    result = PayoutBatchService(db, stripe).run_batch(now=NOW)

    assert result["status"] == "failed"
    transfer = db.query(PayoutTransfer).one()
    assert transfer.status == "failed"
    db.refresh(booking)
    assert booking.payout_transfer_id is None


def test_failed_batch_is_paid_by_a_later_window(db, make_profile, make_professional, make_booking):
    pro = make_professional()
    booking = make_booking(
        make_profile(), pro, status="completed", amount_captured=100_000, completed_at=datetime(2026, 2, 28, 15)
    )

    tuesday = PayoutBatchService(db, FakeStripe(fail_on={"create_transfer"})).run_batch(now=datetime(2026, 3, 3, 10))
    assert tuesday["status"] == "failed"

    stripe = FakeStripe()
    friday = PayoutBatchService(db, stripe).run_batch(now=datetime(2026, 3, 6, 10))

    assert friday["status"] == "completed"
    assert friday["successful_transfers"] == 1
    assert stripe.calls_named("create_transfer")[0]["amount"] == 85_000
    db.refresh(booking)
    paid = db.query(PayoutTransfer).filter(PayoutTransfer.id == booking.payout_transfer_id).one()
    assert paid.status == "processing"


def test_bookings_released_by_failed_payout_are_paid_again(db, make_profile, make_professional, make_booking):
    pro = make_professional()
    booking = make_booking(
        make_profile(), pro, status="completed", amount_captured=100_000, completed_at=datetime(2026, 2, 28, 15)
    )
    stripe = FakeStripe()
    PayoutBatchService(db, stripe).run_batch(now=datetime(2026, 3, 3, 10))
    db.refresh(booking)
    first_transfer_id = booking.payout_transfer_id

    process_stripe_event(
        db,
        {
            "id": "evt_payout_failed",
            "type": "payout.failed",
            "data": {"object": {"id": "po_1", "metadata": {"payout_transfer_id": first_transfer_id}}},
        },
    )
    db.refresh(booking)
    assert booking.payout_transfer_id is None

    PayoutBatchService(db, stripe).run_batch(now=datetime(2026, 3, 6, 10))

    db.refresh(booking)
    assert booking.payout_transfer_id not in (None, first_transfer_id)
    assert len(stripe.calls_named("create_transfer")) == 2
