"""
Admin service

User moderation writes an audit row for every action. Suspensions are
temporary (7 days unless the admin picks a duration); bans are permanent.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, ModerationAction, ProfessionalProfile, Profile, Review
from ...services.notification_service import notify_user
from ...shared.validators import utcnow
from ..fraud.detectors import calculate_risk_score
from ..payouts.calculator import calculate_commission

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("suspend", "unsuspend", "ban", "warn")
DEFAULT_SUSPENSION_DAYS = 7

MODERATION_MESSAGES = {
    "suspend": ("Account suspended", "Your account has been suspended until {until}. Reason: {reason}"),
    "unsuspend": ("Account restored", "Your account suspension has been lifted."),
    "ban": ("Account banned", "Your account has been permanently banned. Reason: {reason}"),
    "warn": ("Account warning", "You received a warning from the Casaora team: {reason}"),
}


class AdminService:
    def __init__(self, db: Session):
        self.db = db

    def moderate_user(
        self,
        admin: Profile,
        user_id: str,
        action: str,
        reason: Optional[str] = None,
        duration_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or utcnow()
        if action not in MODERATION_ACTIONS:
            raise HTTPException(status_code=400, detail="Invalid action")
        if action in ("suspend", "ban", "warn") and not reason:
            raise HTTPException(status_code=400, detail=f"reason is required for {action}")

        user = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if user.id == admin.id:
            raise HTTPException(status_code=400, detail="Cannot moderate your own account")
        if user.role == "admin":
            raise HTTPException(status_code=403, detail="Cannot moderate other admins")

        if action == "suspend":
            if user.account_status in ("suspended", "banned"):
                raise HTTPException(status_code=400, detail=f"User is already {user.account_status}")
            days = duration_days or DEFAULT_SUSPENSION_DAYS
            user.account_status = "suspended"
            user.suspended_until = now + timedelta(days=days)
        elif action == "ban":
            if user.account_status == "banned":
                raise HTTPException(status_code=400, detail="User is already banned")
            user.account_status = "banned"
            user.suspended_until = None
        elif action == "unsuspend":
            if user.account_status == "active":
                raise HTTPException(status_code=404, detail="No active suspension found for this user")
            user.account_status = "active"
            user.suspended_until = None

        risk = calculate_risk_score(self.db, user.id, now)
        record = ModerationAction(
            admin_id=admin.id,
            user_id=user.id,
            action=action,
            reason=reason,
            risk_score=risk.score,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"🛡️ Admin {admin.id} applied {action} to {user.id} (risk {risk.score})")

        title, template = MODERATION_MESSAGES[action]
        until = user.suspended_until.strftime("%Y-%m-%d") if user.suspended_until else ""
        notify_user(
            self.db,
            user.id,
            f"account_{action}",
            title,
            template.format(until=until, reason=reason or ""),
            data={"moderation_action_id": record.id},
        )

        return {
            "user_id": user.id,
            "action": action,
            "account_status": user.account_status,
            "suspended_until": user.suspended_until,
            "moderation_action_id": record.id,
            "risk_score": risk.score,
        }

    def get_user_risk(self, user_id: str, now: Optional[datetime] = None) -> dict:
        user = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        result = calculate_risk_score(self.db, user_id, now)
        return {"user_id": user_id, **result.to_dict()}

    def get_dashboard_stats(self) -> dict:
        rows = self.db.query(Booking.status, func.count(Booking.id)).group_by(Booking.status).all()
        bookings_by_status = {status: count for status, count in rows}

        gmv = (
            self.db.query(func.coalesce(func.sum(Booking.amount_captured), 0))
            .filter(Booking.amount_captured.isnot(None))
            .scalar()
        ) or 0

        active_professionals = (
            self.db.query(func.count(ProfessionalProfile.profile_id))
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(ProfessionalProfile.is_active.is_(True), Profile.account_status == "active")
            .scalar()
        )
        pending_reviews = (
            self.db.query(func.count(Review.id)).filter(Review.status == "pending").scalar()
        )

        return {
            "bookings_by_status": bookings_by_status,
            "total_bookings": sum(bookings_by_status.values()),
            "gmv_captured": int(gmv),
            "commission_estimate": calculate_commission(int(gmv))["commission_amount"],
            "active_professionals": active_professionals,
            "pending_reviews": pending_reviews,
        }
