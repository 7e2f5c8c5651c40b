"""Tools Amara can call during a conversation"""

import logging
from datetime import timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import ProfessionalProfile, Profile
from ...shared.validators import parse_datetime
from ..availability.service import AvailabilityService
from ..bookings.calculator import calculate_booking_amount, calculate_scheduled_end

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 3

TOOL_DEFINITIONS = [
    {
        "name": "search_professionals",
        "description": "Search active Casaora professionals. Returns the top 3 by rating.",
        "input_schema": {
            "type": "object",
            "properties": {
                "service_type": {
                    "type": "string",
                    "description": 'Type of service needed (e.g., "deep cleaning", "cooking")',
                },
                "city": {"type": "string", "description": 'City (e.g., "Medellín", "Bogotá")'},
                "max_budget_cop": {
                    "type": "integer",
                    "description": "Maximum hourly budget in COP cents",
                },
                "min_rating": {"type": "number", "minimum": 0, "maximum": 5},
                "languages": {"type": "array", "items": {"type": "string"}},
            },
        },
    },
    {
        "name": "check_availability",
        "description": "Availability calendar for a professional. end_date defaults to 7 days after start_date.",
        "input_schema": {
            "type": "object",
            "properties": {
                "professional_id": {"type": "string"},
                "start_date": {"type": "string", "description": "YYYY-MM-DD"},
                "end_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
            "required": ["professional_id", "start_date"],
        },
    },
    {
        "name": "create_booking_draft",
        "description": "Price a booking for the customer to review. Nothing is booked or charged.",
        "input_schema": {
            "type": "object",
            "properties": {
                "professional_id": {"type": "string"},
                "service_name": {"type": "string"},
                "scheduled_start": {"type": "string", "description": "ISO 8601 start time"},
                "duration_hours": {"type": "number", "minimum": 1, "maximum": 8},
                "address": {"type": "string"},
                "special_instructions": {"type": "string"},
            },
            "required": ["professional_id", "service_name", "scheduled_start", "duration_hours"],
        },
    },
]


class AmaraTools:
    def __init__(self, db: Session):
        self.db = db

    def search_professionals(
        self,
        service_type: Optional[str] = None,
        city: Optional[str] = None,
        max_budget_cop: Optional[int] = None,
        min_rating: Optional[float] = None,
        languages: Optional[list[str]] = None,
    ) -> dict:
        rows = (
            self.db.query(ProfessionalProfile, Profile)
            .join(Profile, Profile.id == ProfessionalProfile.profile_id)
            .filter(
                ProfessionalProfile.is_active.is_(True),
                Profile.role == "professional",
                Profile.account_status == "active",
            )
            .all()
        )

        results = []
        for pro, profile in rows:
            services = [s.lower() for s in (pro.primary_services or [])]
            if pro.service_category:
                services.append(pro.service_category.lower())
            pro_languages = [lang.lower() for lang in (pro.languages or [])]

            if city and city.lower() not in (profile.city or "").lower():
                continue
            if service_type and not any(service_type.lower() in s for s in services):
                continue
            if max_budget_cop and pro.hourly_rate_cop and pro.hourly_rate_cop > max_budget_cop:
                continue
            if min_rating and (pro.rating or 0) < min_rating:
                continue
            if languages and not any(
                lang.lower() in p for lang in languages for p in pro_languages
            ):
                continue

            results.append(
                {
                    "id": pro.profile_id,
                    "name": profile.full_name or "Casaora Professional",
                    "service": (pro.primary_services or [pro.service_category])[0],
                    "experience_years": pro.experience_years or 0,
                    "hourly_rate_cop": pro.hourly_rate_cop,
                    "languages": pro.languages or [],
                    "city": profile.city,
                    "bio": pro.bio,
                    "rating": pro.rating or 0,
                    "review_count": pro.review_count or 0,
                    "on_time_rate": pro.on_time_rate,
                    "total_completed_bookings": pro.total_completed_bookings or 0,
                    "verification_level": pro.verification_level,
                }
            )

        results.sort(key=lambda p: (p["rating"], p["review_count"]), reverse=True)
        return {
            "success": True,
            "professionals": results[:MAX_SEARCH_RESULTS],
            "total_found": len(results),
        }

    def check_availability(
        self, professional_id: str, start_date: str, end_date: Optional[str] = None
    ) -> dict:
        start = parse_datetime(start_date)
        if start is None:
            return {"success": False, "error": "Invalid start_date"}
        end = parse_datetime(end_date) if end_date else start + timedelta(days=7)
        if end is None:
            return {"success": False, "error": "Invalid end_date"}

        try:
            calendar = AvailabilityService(self.db).get_professional_availability(
                professional_id, start.date(), end.date()
            )
        except HTTPException as e:
            return {"success": False, "error": e.detail}

        return {
            "success": True,
            "professional_id": professional_id,
            "start_date": start.date().isoformat(),
            "end_date": end.date().isoformat(),
            "availability": calendar["days"],
            "next_available_date": calendar["next_available_date"],
        }

    def create_booking_draft(
        self,
        professional_id: str,
        service_name: str,
        scheduled_start: str,
        duration_hours: float,
        address: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> dict:
        """Priced booking proposal; the customer confirms it through the bookings API"""
        pro = (
            self.db.query(ProfessionalProfile)
            .filter(ProfessionalProfile.profile_id == professional_id)
            .first()
        )
        if not pro:
            return {"success": False, "is_draft": False, "error": "Professional not found"}

        duration_minutes = int(duration_hours * 60)
        scheduled_end = calculate_scheduled_end(scheduled_start, duration_minutes)
        if scheduled_end is None:
            return {"success": False, "is_draft": False, "error": "Invalid scheduled_start"}

        return {
            "success": True,
            "is_draft": True,
            "booking_draft": {
                "professional_id": professional_id,
                "professional_name": pro.profile.full_name if pro.profile else None,
                "service_name": service_name,
                "scheduled_start": parse_datetime(scheduled_start).isoformat(),
                "scheduled_end": scheduled_end.isoformat(),
                "duration_hours": duration_hours,
                "duration_minutes": duration_minutes,
                "hourly_rate_cop": pro.hourly_rate_cop,
                "estimated_cost_cop": calculate_booking_amount(None, pro.hourly_rate_cop, duration_minutes),
                "address": address or "To be provided",
                "special_instructions": special_instructions or "None",
            },
        }

    def execute(self, name: str, arguments: dict[str, Any]) -> dict:
        handler = {
            "search_professionals": self.search_professionals,
            "check_availability": self.check_availability,
            "create_booking_draft": self.create_booking_draft,
        }.get(name)
        if handler is None:
            return {"success": False, "error": f"Unknown tool: {name}"}
        try:
            return handler(**arguments)
        except TypeError as e:
            logger.warning(f"⚠️ Bad arguments for tool {name}: {e}")
            return {"success": False, "error": f"Invalid arguments for {name}"}
