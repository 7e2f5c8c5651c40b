"""Smart matching service"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import ProfessionalProfile, Profile
from ..amara.llm import AmaraUnavailableError, StructuredLLM
from ..amara.schemas import MatchingCriteria
from .scoring import calculate_match_score, criteria_to_filters, parse_matching_criteria

logger = logging.getLogger(__name__)

TIE_BREAKERS = {
    "rating": lambda m: -m["rating"],
    "price_low": lambda m: m["hourly_rate_cop"] or 0,
    "price_high": lambda m: -(m["hourly_rate_cop"] or 0),
    "experience": lambda m: -m["experience_years"],
    "reviews_count": lambda m: -m["review_count"],
}


def professional_to_match_input(pro: ProfessionalProfile) -> dict:
    return {
        "skills": list(pro.skills or []) + list(pro.primary_services or []),
        "languages": pro.languages or [],
        "experience_years": pro.experience_years or 0,
        "rating": pro.rating or 0,
        "hourly_rate_cop": pro.hourly_rate_cop or 0,
        "verification_level": pro.verification_level,
        "availability": pro.availability_flags,
        "special_capabilities": {
            "pet_friendly": pro.pet_friendly,
            "background_check": pro.background_check_passed,
            "insurance": pro.has_insurance,
            "eco_friendly": pro.eco_friendly,
        },
    }


class SmartMatchingService:
    def __init__(self, db: Session, llm: Optional[StructuredLLM] = None):
        self.db = db
        self.llm = llm

    def _candidates(self, filters: dict, city: Optional[str]) -> list[ProfessionalProfile]:
        query = (
            self.db.query(ProfessionalProfile)
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(
                ProfessionalProfile.is_active.is_(True),
                Profile.role == "professional",
                Profile.account_status == "active",
            )
        )
        if city:
            query = query.filter(Profile.city == city)
        if "max_hourly_rate" in filters:
            query = query.filter(ProfessionalProfile.hourly_rate_cop <= filters["max_hourly_rate"])
        if "min_rating" in filters:
            query = query.filter(ProfessionalProfile.rating >= filters["min_rating"])
        if "verification_level" in filters:
            query = query.filter(ProfessionalProfile.verification_level == filters["verification_level"])
        if filters.get("has_background_check"):
            query = query.filter(ProfessionalProfile.background_check_passed.is_(True))
        return query.all()

    def find_matches(
        self,
        query: Optional[str] = None,
        criteria: Optional[MatchingCriteria] = None,
        locale: str = "en",
        city: Optional[str] = None,
        limit: int = 10,
    ) -> dict:
        if criteria is None:
            if not query:
                raise HTTPException(status_code=400, detail="Provide a query or matching criteria")
            try:
                criteria = parse_matching_criteria(query, locale, llm=self.llm)
            except AmaraUnavailableError as e:
                raise HTTPException(status_code=503, detail="Matching assistant unavailable") from e
            except Exception as e:
                raise HTTPException(status_code=502, detail="Could not understand the request") from e

        filters = criteria_to_filters(criteria)
        matches = []
        for pro in self._candidates(filters, city):
            result = calculate_match_score(criteria, professional_to_match_input(pro))
            matches.append(
                {
                    "professional_id": pro.profile_id,
                    "full_name": pro.profile.full_name if pro.profile else None,
                    "hourly_rate_cop": pro.hourly_rate_cop,
                    "rating": pro.rating or 0,
                    "review_count": pro.review_count or 0,
                    "experience_years": pro.experience_years or 0,
                    "score": result["score"],
                    "breakdown": result["breakdown"],
                }
            )

        tie_breaker = TIE_BREAKERS.get(criteria.sort_preference, TIE_BREAKERS["rating"])
        matches.sort(key=lambda m: (-m["score"], tie_breaker(m)))

        logger.info(f"🎯 {len(matches)} professionals matched, returning {min(limit, len(matches))}")
        return {
            "criteria": criteria.model_dump(),
            "filters": filters,
            "matches": matches[:limit],
            "total": len(matches),
        }
