"""Review service - submission, analysis routing and moderation"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile, Profile, Review
from ...services.notification_service import notify_all_admins, notify_user
from ..amara.llm import StructuredLLM
from .analysis import analyze_review, get_recommended_action, should_auto_publish, should_notify_admin
from .schemas import ReviewCreate

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, db: Session, llm: Optional[StructuredLLM] = None):
        self.db = db
        self.llm = llm

    def submit_review(self, customer: Profile, data: ReviewCreate) -> Review:
        booking = self.db.query(Booking).filter(Booking.id == data.booking_id).first()
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if booking.customer_id != customer.id:
            raise HTTPException(status_code=403, detail="Only the customer can review this booking")
        if booking.status != "completed":
            raise HTTPException(status_code=400, detail="Only completed bookings can be reviewed")
        if self.db.query(Review).filter(Review.booking_id == booking.id).first():
            raise HTTPException(status_code=409, detail="This booking has already been reviewed")

        review = Review(
            booking_id=booking.id,
            customer_id=customer.id,
            professional_id=booking.professional_id,
            rating=data.rating,
            comment=data.comment,
            status="pending",
            flags=[],
        )

        analysis = None
        if data.comment:
            try:
                analysis = analyze_review(data.comment, data.rating, data.locale, llm=self.llm)
            except Exception as e:
                logger.warning(f"⚠️ Review analysis unavailable, holding for moderation: {e}")

        if analysis:
            auto_publish, reason = should_auto_publish(analysis)
            review.status = "approved" if auto_publish else "pending"
            review.sentiment = analysis.sentiment
            review.severity = analysis.severity
            review.flags = list(analysis.flags)
            review.analysis = analysis.model_dump()
            review.moderation_reason = reason
        else:
            review.moderation_reason = "Analysis unavailable - manual review"

        self.db.add(review)
        self.db.commit()
        self.db.refresh(review)

        if review.status == "approved":
            self.recompute_professional_rating(review.professional_id)

        if analysis and should_notify_admin(analysis):
            action = get_recommended_action(analysis)
            notify_all_admins(
                self.db,
                "admin_review_flagged",
                f"Review needs attention ({analysis.severity})",
                f"{action['action']}: review {review.id} on booking {booking.id} "
                f"flagged {', '.join(analysis.flags) or 'none'}.",
                data={"review_id": review.id, "priority": action["priority"], "steps": action["steps"]},
            )

        logger.info(f"✅ Review {review.id} submitted with status {review.status}")
        return review

    def list_pending(self, limit: int = 50) -> list[Review]:
        return (
            self.db.query(Review)
            .filter(Review.status == "pending")
            .order_by(Review.created_at.asc())
            .limit(limit)
            .all()
        )

    def list_for_professional(self, professional_id: str, limit: int = 50) -> list[Review]:
        return (
            self.db.query(Review)
            .filter(Review.professional_id == professional_id, Review.status == "approved")
            .order_by(Review.created_at.desc())
            .limit(limit)
            .all()
        )

    def moderate_review(self, review_id: str, approve: bool, reason: Optional[str] = None) -> Review:
        review = self.db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise HTTPException(status_code=404, detail="Review not found")

        review.status = "approved" if approve else "rejected"
        if reason:
            review.moderation_reason = reason
        self.db.commit()
        self.db.refresh(review)
        self.recompute_professional_rating(review.professional_id)

        if approve:
            notify_user(
                self.db,
                review.professional_id,
                "review_published",
                "New review published",
                f"A customer left you a {review.rating}-star review.",
                data={"review_id": review.id},
            )
        return review

    def recompute_professional_rating(self, professional_id: str) -> None:
        average, count = (
            self.db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.professional_id == professional_id, Review.status == "approved")
            .one()
        )
        pro = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        if not pro:
            return
        pro.rating = round(float(average), 2) if average is not None else 0.0
        pro.review_count = count
        self.db.commit()
