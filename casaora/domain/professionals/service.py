"""Professional directory, profile management and dashboard stats"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, ProfessionalProfile, Profile
from ...shared.validators import utcnow
from ..payouts.balance_service import BalanceService
from .schemas import ProfessionalProfileUpdate

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "phone_number", "city")
UPCOMING_STATUSES = ("pending_payment", "confirmed")


def to_summary(pro: ProfessionalProfile, profile: Profile) -> dict:
    return {
        "id": pro.profile_id,
        "full_name": profile.full_name,
        "city": profile.city,
        "bio": pro.bio,
        "service_category": pro.service_category,
        "primary_services": pro.primary_services or [],
        "languages": pro.languages or [],
        "experience_years": pro.experience_years or 0,
        "hourly_rate_cop": pro.hourly_rate_cop,
        "rating": pro.rating or 0.0,
        "review_count": pro.review_count or 0,
        "total_completed_bookings": pro.total_completed_bookings or 0,
        "verification_level": pro.verification_level,
        "background_check_passed": pro.background_check_passed,
    }


def to_detail(pro: ProfessionalProfile, profile: Profile) -> dict:
    return {
        **to_summary(pro, profile),
        "skills": pro.skills or [],
        "pet_friendly": pro.pet_friendly,
        "eco_friendly": pro.eco_friendly,
        "has_insurance": pro.has_insurance,
        "on_time_rate": pro.on_time_rate,
        "availability_flags": pro.availability_flags or {},
    }


class ProfessionalService:
    def __init__(self, db: Session):
        self.db = db

    def _active_query(self):
        return (
            self.db.query(ProfessionalProfile, Profile)
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(
                ProfessionalProfile.is_active.is_(True),
                Profile.role == "professional",
                Profile.account_status == "active",
            )
        )

    def search_directory(
        self,
        service: Optional[str] = None,
        city: Optional[str] = None,
        min_rating: Optional[float] = None,
        max_rate: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        """Active professionals, best rated first"""
        query = self._active_query()
        if service:
            query = query.filter(ProfessionalProfile.service_category.ilike(f"%{service}%"))
        if city:
            query = query.filter(Profile.city.ilike(city))
        if min_rating is not None:
            query = query.filter(ProfessionalProfile.rating >= min_rating)
        if max_rate is not None:
            query = query.filter(ProfessionalProfile.hourly_rate_cop <= max_rate)

        total = query.count()
        rows = (
            query.order_by(
                ProfessionalProfile.rating.desc(),
                ProfessionalProfile.review_count.desc(),
                ProfessionalProfile.profile_id.asc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "professionals": [to_summary(pro, profile) for pro, profile in rows],
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    def get_professional(self, professional_id: str) -> dict:
        row = self._active_query().filter(ProfessionalProfile.profile_id == professional_id).first()
        if not row:
            raise HTTPException(status_code=404, detail="Professional not found")
        return to_detail(*row)

    def update_own_profile(self, user: Profile, data: ProfessionalProfileUpdate) -> dict:
        pro = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == user.id)
            .first()
        )
        if not pro:
            pro = ProfessionalProfile(profile_id=user.id)
            self.db.add(pro)

        updates = data.model_dump(exclude_unset=True)
        for key, value in updates.items():
            target = user if key in PROFILE_FIELDS else pro
            setattr(target, key, value)

        self.db.commit()
        self.db.refresh(pro)
        logger.info(f"✅ Professional {user.id} updated profile fields: {sorted(updates)}")
        return to_detail(pro, user)

    def get_dashboard_stats(self, professional: Profile, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        pro = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional.id)
            .first()
        )
        if not pro:
            raise HTTPException(status_code=404, detail="Professional profile not found")

        upcoming = (
            self.db.query(Booking)
            .filter(
                Booking.professional_id == professional.id,
                Booking.status.in_(UPCOMING_STATUSES),
                Booking.scheduled_start >= now,
            )
            .order_by(Booking.scheduled_start.asc())
            .all()
        )

        month_start = datetime(now.year, now.month, 1)
        month_earnings = (
            self.db.query(func.coalesce(func.sum(Booking.amount_captured), 0))
            .filter(
                Booking.professional_id == professional.id,
                Booking.status == "completed",
                Booking.completed_at >= month_start,
            )
            .scalar()
        ) or 0

        return {
            "upcoming_bookings_count": len(upcoming),
            "upcoming_bookings": [
                {
                    "id": b.id,
                    "status": b.status,
                    "scheduled_start": b.scheduled_start,
                    "service_name": b.service_name,
                    "amount_estimated": b.amount_estimated,
                }
                for b in upcoming[:5]
            ],
            "total_completed_bookings": pro.total_completed_bookings or 0,
            "total_earnings": pro.total_earnings_cop or 0,
            "earnings_this_month": int(month_earnings),
            "rating": pro.rating or 0.0,
            "review_count": pro.review_count or 0,
            "balance": BalanceService(self.db).get_balance_breakdown(professional.id, now),
        }
