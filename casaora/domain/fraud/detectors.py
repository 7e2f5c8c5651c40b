"""
Fraud detection heuristics.

Each detector returns a FraudDetectionResult; calculate_risk_score combines
them with account age into a 0-100 score and a moderation recommendation.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile, Profile, Review
from ...shared.money import round_half_up
from ...shared.validators import utcnow

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = {"critical": 40, "high": 30, "medium": 20, "low": 10}
CANCELLED_STATUSES = ("cancelled", "customer_cancelled")


@dataclass
class FraudDetectionResult:
    detected: bool
    severity: str = "low"
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)


@dataclass
class RiskFactor:
    type: str
    weight: int
    description: str


@dataclass
class RiskScoreResult:
    score: int
    factors: list[RiskFactor]
    recommendation: str  # monitor, review, suspend, ban

    def to_dict(self) -> dict:
        return asdict(self)


NOT_DETECTED = FraudDetectionResult(detected=False)


def detect_suspicious_booking_pattern(
    db: Session, user_id: str, now: Optional[datetime] = None
) -> FraudDetectionResult:
    """Rapid book-and-cancel, booking floods with one pro, high cancellation rate"""
    now = now or utcnow()
    bookings = (
        db.query(Booking)
        .filter(or_(Booking.customer_id == user_id, Booking.professional_id == user_id))
        .order_by(Booking.created_at.desc())
        .limit(100)
        .all()
    )
    if not bookings:
        return NOT_DETECTED

    recent = [b for b in bookings if b.created_at and b.created_at > now - timedelta(hours=24)]
    if len(recent) >= 5 and all(b.status in CANCELLED_STATUSES for b in recent):
        return FraudDetectionResult(
            detected=True,
            severity="high",
            reason="Rapid booking and cancellation pattern detected",
            details={"bookings_in_24h": len(recent), "all_cancelled": True},
        )

    week = [b for b in bookings if b.created_at and b.created_at > now - timedelta(days=7)]
    if len(week) >= 10:
        max_with_same_pro = max(Counter(b.professional_id for b in week).values())
        if max_with_same_pro >= 10:
            return FraudDetectionResult(
                detected=True,
                severity="medium",
                reason="Excessive bookings with same professional in 1 week",
                details={"bookings_in_week": len(week), "max_with_same_pro": max_with_same_pro},
            )

    total = len(bookings)
    cancelled = sum(1 for b in bookings if b.status in CANCELLED_STATUSES)
    cancellation_rate = cancelled / total
    if total >= 5 and cancellation_rate > 0.5:
        return FraudDetectionResult(
            detected=True,
            severity="medium",
            reason="High cancellation rate (>50%)",
            details={
                "total_bookings": total,
                "cancelled_bookings": cancelled,
                "cancellation_rate": round_half_up(cancellation_rate * 100),
            },
        )

    return NOT_DETECTED


def detect_review_manipulation(db: Session, user_id: str, role: str) -> FraudDetectionResult:
    if role == "professional":
        ratings = [
            r.rating
            for r in db.query(Review)
            .filter(Review.professional_id == user_id, Review.status == "approved")
            .limit(100)
            .all()
        ]
        if len(ratings) < 10:
            return NOT_DETECTED

        five_star = ratings.count(5)
        five_star_rate = five_star / len(ratings)
        if five_star_rate > 0.8:
            return FraudDetectionResult(
                detected=True,
                severity="medium",
                reason="Suspiciously high 5-star review rate (>80%)",
                details={
                    "total_reviews": len(ratings),
                    "five_star_reviews": five_star,
                    "five_star_rate": round_half_up(five_star_rate * 100),
                },
            )
        return NOT_DETECTED

    ratings = [r.rating for r in db.query(Review).filter(Review.customer_id == user_id).limit(100).all()]
    if len(ratings) < 10:
        return NOT_DETECTED

    extreme = sum(1 for rating in ratings if rating in (1, 5))
    extreme_rate = extreme / len(ratings)
    if extreme_rate > 0.9:
        return FraudDetectionResult(
            detected=True,
            severity="low",
            reason="Customer only leaves extreme ratings (1 or 5 stars)",
            details={
                "total_reviews": len(ratings),
                "extreme_ratings": extreme,
                "extreme_rate": round_half_up(extreme_rate * 100),
            },
        )
    return NOT_DETECTED


def detect_account_anomaly(db: Session, user_id: str) -> FraudDetectionResult:
    """Shared phone numbers, and professionals pricing far below their city"""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        return NOT_DETECTED

    if profile.phone_number:
        duplicates = (
            db.query(Profile)
            .filter(Profile.phone_number == profile.phone_number, Profile.id != user_id)
            .limit(5)
            .all()
        )
        if duplicates:
            return FraudDetectionResult(
                detected=True,
                severity="high",
                reason="Multiple accounts detected with same phone number",
                details={"duplicate_count": len(duplicates), "phone_number": profile.phone_number},
            )

    pro = profile.professional_profile
    if profile.role == "professional" and pro and pro.hourly_rate_cop:
        rates = [
            rate
            for (rate,) in db.query(ProfessionalProfile.hourly_rate_cop)
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(
                Profile.role == "professional",
                Profile.city == profile.city,
                ProfessionalProfile.hourly_rate_cop.isnot(None),
            )
            .limit(100)
            .all()
            if rate and rate > 0
        ]
        if len(rates) >= 5:
            market_rate = sum(rates) / len(rates)
            percent_below = (market_rate - pro.hourly_rate_cop) / market_rate * 100
            if percent_below > 50:
                return FraudDetectionResult(
                    detected=True,
                    severity="low",
                    reason="Professional offers services 50%+ below market rate",
                    details={
                        "user_rate": pro.hourly_rate_cop,
                        "market_rate": round_half_up(market_rate),
                        "percent_below": round_half_up(percent_below),
                    },
                )

    return NOT_DETECTED


def get_recommendation(score: int) -> str:
    if score >= 70:
        return "ban"
    if score >= 50:
        return "suspend"
    if score >= 30:
        return "review"
    return "monitor"


def calculate_risk_score(db: Session, user_id: str, now: Optional[datetime] = None) -> RiskScoreResult:
    now = now or utcnow()
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        return RiskScoreResult(score=0, factors=[], recommendation="monitor")

    checks = (
        ("booking_pattern", detect_suspicious_booking_pattern(db, user_id, now), "Suspicious booking activity"),
        ("review_manipulation", detect_review_manipulation(db, user_id, profile.role), "Suspicious review activity"),
        ("account_anomaly", detect_account_anomaly(db, user_id), "Account anomaly detected"),
    )

    factors = []
    for factor_type, result, fallback in checks:
        if result.detected:
            factors.append(
                RiskFactor(factor_type, SEVERITY_WEIGHTS[result.severity], result.reason or fallback)
            )

    if profile.created_at:
        account_age_days = (now - profile.created_at).days
        if account_age_days < 7:
            factors.append(RiskFactor("new_account", 15, "Account created less than 7 days ago"))
        elif account_age_days < 30:
            factors.append(RiskFactor("recent_account", 5, "Account created less than 30 days ago"))

    total = sum(f.weight for f in factors)
    if factors:
        logger.info(f"🔎 Risk score for {user_id}: {total} ({[f.type for f in factors]})")

    return RiskScoreResult(
        score=min(total, 100),
        factors=factors,
        recommendation=get_recommendation(total),
    )
