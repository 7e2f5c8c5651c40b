"""Pricing router - public pricing calculators"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from .cancellation import calculate_cancellation_policy, get_cancellation_policy_description
from .countries import format_currency, get_approximate_usd, get_pricing_config
from .subscription import (
    SUBSCRIPTION_TIERS,
    calculate_subscription_pricing,
    get_recommended_tier,
    get_tier_benefits,
    get_tier_description,
    get_tier_discount_label,
    should_recommend_subscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.get("/countries/{country_code}")
async def get_country_pricing(country_code: str):
    """Pricing rules for a country"""
    try:
        config = get_pricing_config(country_code)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    return {
        "country": country_code.upper(),
        "currency": config.currency,
        "commission": {
            "marketplace_rate": config.commission.marketplace_rate,
            "direct_hire_rate": config.commission.direct_hire_rate,
        },
        "constraints": {
            "min_price": config.constraints.min_price,
            "max_price": config.constraints.max_price,
            "background_check_fee": config.constraints.background_check_fee,
            "min_price_formatted": format_currency(config.constraints.min_price, config.currency),
            "max_price_usd": round(get_approximate_usd(config.constraints.max_price, config.currency), 2),
        },
        "payment_processors": {
            "primary": config.payment_processors.primary,
            "fallback": config.payment_processors.fallback,
            "supported": list(config.payment_processors.supported),
        },
    }


@router.get("/subscriptions")
async def get_subscription_options(
    base_price: int = Query(..., ge=0),
    months: int = Query(3, ge=1, le=24),
    previous_bookings: Optional[int] = Query(None, ge=0),
):
    """Every subscription tier priced for a booking, plus a recommendation"""
    tiers = []
    for tier in SUBSCRIPTION_TIERS:
        pricing = calculate_subscription_pricing(base_price, tier, months).to_dict()
        pricing["description"] = get_tier_description(tier)
        pricing["discount_label"] = get_tier_discount_label(tier)
        pricing["benefits"] = get_tier_benefits(tier)
        tiers.append(pricing)

    return {
        "tiers": tiers,
        "recommended_tier": get_recommended_tier(base_price, previous_bookings),
        "should_recommend": should_recommend_subscription(base_price),
    }


@router.get("/cancellation-policy")
async def get_cancellation_policy(
    scheduled_start: Optional[str] = Query(None),
    status: str = Query("confirmed"),
):
    """Policy text, and the refund that would apply to a booking when one is given"""
    response = {"description": get_cancellation_policy_description()}
    if scheduled_start:
        try:
            response["policy"] = calculate_cancellation_policy(scheduled_start, status).to_dict()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    return response
