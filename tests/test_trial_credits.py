import pytest

from casaora.domain.trial_credits.service import (
    apply_trial_credit,
    get_customer_trial_credits,
    get_direct_hire_quote,
    get_trial_credit_info,
    mark_trial_credit_used,
    max_trial_credit,
    record_completed_booking,
)
from tests.conftest import NOW


def test_cap_is_half_the_direct_hire_fee():
    assert max_trial_credit() == 598_000


def test_no_record_means_no_credit(db, make_profile, make_professional):
    info = get_trial_credit_info(db, make_profile().id, make_professional().id)
    assert info["has_credit"] is False
    assert info["credit_available_cop"] == 0
    assert info["max_credit_cop"] == 598_000


def test_each_booking_earns_half_its_amount(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()

    for _ in range(2):
        booking = make_booking(customer, pro, status="completed", amount_captured=100_000, completed_at=NOW)
        record_completed_booking(db, booking)

    info = get_trial_credit_info(db, customer.id, pro.id)
    assert info["credit_earned_cop"] == 100_000
    assert info["credit_available_cop"] == 100_000
    assert info["bookings_count"] == 2
    assert info["total_bookings_value_cop"] == 200_000
    assert info["percentage_earned"] == 17
    assert info["last_booking_at"] == NOW


def test_credit_stops_at_cap(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()

    for _ in range(3):
        booking = make_booking(customer, pro, status="completed", amount_captured=500_000)
        record_completed_booking(db, booking, now=NOW)

    info = get_trial_credit_info(db, customer.id, pro.id)
    assert info["credit_earned_cop"] == 598_000
    assert info["credit_available_cop"] == 598_000
    assert info["percentage_earned"] == 100
    assert info["bookings_count"] == 3


def test_apply_credit_never_goes_negative():
    assert apply_trial_credit(1_196_000, 100_000) == {
        "original_fee": 1_196_000,
        "discount": 100_000,
        "final_fee": 1_096_000,
        "credit_remaining": 0,
    }
    assert apply_trial_credit(50_000, 80_000)["final_fee"] == 0
    assert apply_trial_credit(50_000, 80_000)["credit_remaining"] == 30_000


def test_using_credit_forfeits_the_rest(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()
    booking = make_booking(customer, pro, status="completed", amount_captured=200_000)
    record_completed_booking(db, booking, now=NOW)

    record = mark_trial_credit_used(db, customer.id, pro.id, "hire-1", 60_000)
    assert record.credit_used_cop == 60_000
    assert record.credit_remaining_cop == 0
    assert record.credit_applied_to_booking_id == "hire-1"

    with pytest.raises(ValueError):
        mark_trial_credit_used(db, customer.id, "someone-else", "hire-2", 10_000)


def test_direct_hire_quote_and_listing(db, make_profile, make_professional, make_booking):
    customer = make_profile()
    pro = make_professional()
    other = make_professional()
    record_completed_booking(
        db, make_booking(customer, pro, status="completed", amount_captured=80_000), now=NOW
    )

    quote = get_direct_hire_quote(db, customer, pro.id)
    assert quote["discount"] == 40_000
    assert quote["final_fee"] == 1_156_000
    assert quote["credit"]["has_credit"] is True

    assert get_direct_hire_quote(db, customer, other.id)["discount"] == 0
    assert [c["professional_id"] for c in get_customer_trial_credits(db, customer.id)] == [pro.id]
