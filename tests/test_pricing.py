from datetime import datetime, timedelta

import pytest

from casaora.domain.pricing.cancellation import (
    calculate_cancellation_policy,
    calculate_refund_amount,
    get_cancellation_policy_description,
)
from casaora.domain.pricing.countries import (
    calculate_commission,
    format_currency,
    get_currency_for_country,
    get_pricing_config,
    get_primary_payment_processor,
    is_payment_processor_supported,
    is_valid_price,
)
from casaora.domain.pricing.subscription import (
    calculate_subscription_pricing,
    estimate_bookings_count,
    get_recommended_tier,
    get_tier_discount_label,
    should_recommend_subscription,
)
from casaora.shared.money import percent_of, round_half_up

NOW = datetime(2026, 3, 2, 9, 0)


# ============================================================================
# Money
# ============================================================================


def test_round_half_up_matches_client_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(2.4999) == 2
    assert percent_of(80_001, 50) == 40_001


# ============================================================================
# Subscriptions
# ============================================================================


def test_weekly_subscription_pricing():
    pricing = calculate_subscription_pricing(100_000, "weekly")

    assert pricing.discount_percent == 15
    assert pricing.discount_amount == 15_000
    assert pricing.final_price == 85_000
    # 4 bookings a month for the default 3 months
    assert pricing.total_savings_estimate == 15_000 * 4 * 3


def test_no_subscription_has_no_discount():
    pricing = calculate_subscription_pricing(100_000, "none")
    assert pricing.final_price == 100_000
    assert pricing.total_savings_estimate == 0
    assert get_tier_discount_label("none") is None
    assert get_tier_discount_label("biweekly") == "10% off"


def test_subscription_rejects_bad_input():
    with pytest.raises(ValueError):
        calculate_subscription_pricing(-1, "weekly")
    with pytest.raises(ValueError):
        calculate_subscription_pricing(100_000, "daily")


def test_estimate_bookings_count():
    assert estimate_bookings_count("none", 6) == 1
    assert estimate_bookings_count("biweekly", 6) == 12


@pytest.mark.parametrize(
    "base_price, previous, expected",
    [
        (50_000, 9, "weekly"),
        (50_000, 5, "biweekly"),
        (50_000, 3, "monthly"),
        (50_000, 2, None),
        (200_000, None, "weekly"),
        (150_000, None, None),
    ],
)
def test_recommended_tier(base_price, previous, expected):
    assert get_recommended_tier(base_price, previous) == expected


def test_should_recommend_subscription_threshold():
    # 15% x 4 x 3 = 1.8 x price must exceed 20,000
    assert should_recommend_subscription(20_000) is True
    assert should_recommend_subscription(10_000) is False


# ============================================================================
# Countries
# ============================================================================


def test_country_config_and_commission():
    assert get_currency_for_country("CO") == "COP"
    assert get_pricing_config("CO").commission.marketplace_rate == 0.15
    assert calculate_commission(100_000, "CO") == 15_000
    assert calculate_commission(100_000, "CO", is_direct_hire=True) == 20_000


def test_unknown_country_raises():
    with pytest.raises(ValueError):
        get_pricing_config("ZZ")


@pytest.mark.parametrize(
    "price, valid",
    [(1_999_999, False), (2_000_000, True), (200_000_000, True), (200_000_001, False)],
)
def test_valid_price_range_colombia(price, valid):
    assert is_valid_price(price, "CO") is valid


def test_payment_processors_by_country():
    assert get_primary_payment_processor("CO") == "stripe"
    assert is_payment_processor_supported("paypal", "CO")
    assert get_primary_payment_processor("PY") == "paypal"
    assert not is_payment_processor_supported("stripe", "PY")


def test_format_currency_cop():
    assert format_currency(15_000_000, "COP") == "$150.000 COP"


# ============================================================================
# Cancellation
# ============================================================================


@pytest.mark.parametrize(
    "hours, refund",
    [(48, 100), (24, 100), (23.5, 50), (12, 50), (6, 25), (4, 25), (3, 0), (0.1, 0)],
)
def test_refund_tiers(hours, refund):
    policy = calculate_cancellation_policy(NOW + timedelta(hours=hours), "confirmed", NOW)
    assert policy.can_cancel is True
    assert policy.refund_percentage == refund


def test_cannot_cancel_started_or_finished_services():
    assert calculate_cancellation_policy(NOW, "in_progress", NOW).can_cancel is False
    assert calculate_cancellation_policy(NOW, "completed", NOW).can_cancel is False
    past = calculate_cancellation_policy(NOW - timedelta(minutes=5), "confirmed", NOW)
    assert past.can_cancel is False
    assert past.reason == "Cannot cancel past services"


def test_cancellation_accepts_iso_strings():
    policy = calculate_cancellation_policy("2026-03-04T09:00:00", "confirmed", NOW)
    assert policy.refund_percentage == 100


def test_cancellation_rejects_garbage_dates():
    with pytest.raises(ValueError):
        calculate_cancellation_policy("not-a-date", "confirmed", NOW)


def test_refund_amount_rounds_half_up():
    assert calculate_refund_amount(80_001, 25) == 20_000
    assert calculate_refund_amount(80_002, 25) == 20_001
    assert "24 hours" in get_cancellation_policy_description()
