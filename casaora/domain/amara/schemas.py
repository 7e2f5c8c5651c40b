"""
Structured output schemas for Claude.

Each model is sent to the LLM as a JSON schema and the reply is validated
against it, so field descriptions double as instructions to the model.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

Language = Literal["english", "spanish", "french", "portuguese"]


# ============================================================================
# BOOKING INTENT
# ============================================================================


class IntentLocation(BaseModel):
    city: Optional[str] = Field(None, description="City name (e.g., 'Bogotá', 'Medellín')")
    neighborhood: Optional[str] = Field(None, description="Specific neighborhood if mentioned")


class IntentSchedule(BaseModel):
    date: Optional[str] = Field(None, description="Preferred date in YYYY-MM-DD format")
    time_preference: Optional[Literal["morning", "afternoon", "evening", "flexible"]] = None
    recurring: Optional[bool] = None
    frequency: Optional[Literal["daily", "weekly", "biweekly", "monthly"]] = None
    weekdays: Optional[bool] = None
    weekends: Optional[bool] = None


class IntentRequirements(BaseModel):
    languages: Optional[list[Language]] = None
    experience_years: Optional[float] = Field(None, ge=0, description="Minimum years of experience")
    special_skills: Optional[list[str]] = None
    pet_friendly: Optional[bool] = None
    background_check: Optional[bool] = None


class IntentBudget(BaseModel):
    max_hourly_rate_cop: Optional[int] = Field(None, description="Maximum hourly rate in COP")
    estimated_hours: Optional[float] = None


class BookingIntent(BaseModel):
    """What a customer is asking for, extracted from free text"""

    service_type: Literal["cleaning", "cooking", "childcare", "elder_care", "laundry", "general"]
    location: Optional[IntentLocation] = None
    schedule: Optional[IntentSchedule] = None
    requirements: Optional[IntentRequirements] = None
    budget: Optional[IntentBudget] = None
    urgency: Optional[Literal["immediate", "within_week", "flexible", "planning_ahead"]] = None
    additional_notes: Optional[str] = None


# ============================================================================
# REVIEW ANALYSIS
# ============================================================================

ReviewCategory = Literal[
    "quality",
    "punctuality",
    "professionalism",
    "communication",
    "pricing",
    "cleanliness",
    "safety",
    "reliability",
]

ReviewFlag = Literal[
    "potential_safety_issue",
    "harassment_claim",
    "payment_dispute",
    "no_show",
    "property_damage",
    "theft_allegation",
    "fraudulent_activity",
    "exceptional_service",
    "none",
]


class ReviewKeyPoint(BaseModel):
    category: str = Field(..., description="What aspect this point relates to")
    sentiment: Literal["positive", "negative", "neutral"]
    quote: str = Field(..., description="Relevant quote from review")


class ProfessionalImpact(BaseModel):
    affects_rating: bool = Field(..., description="Should impact professional's rating")
    suggested_action: Literal[
        "publish_immediately",
        "hold_for_review",
        "request_clarification",
        "escalate_to_manager",
        "contact_both_parties",
        "no_action",
    ]
    risk_level: Literal["none", "low", "medium", "high"] = Field(
        ..., description="Risk level to Casaora reputation"
    )


class ReviewAnalysis(BaseModel):
    sentiment: Literal["positive", "neutral", "negative", "mixed"]
    rating: float = Field(..., ge=1, le=5, description="Inferred star rating if not explicitly stated")
    categories: list[ReviewCategory] = Field(default_factory=list)
    key_points: list[ReviewKeyPoint] = Field(default_factory=list)
    action_required: bool = Field(..., description="Whether admin review/action is needed")
    severity: Literal["low", "medium", "high", "critical"]
    flags: list[ReviewFlag] = Field(default_factory=list)
    professional_impact: ProfessionalImpact
    suggested_response: Optional[str] = Field(
        None, description="Suggested response for customer support"
    )
    language: Literal["en", "es", "mixed"]


# ============================================================================
# PROFESSIONAL MATCHING
# ============================================================================


class AvailabilityNeeds(BaseModel):
    weekdays: bool = Field(False, description="Available Monday-Friday")
    weekends: bool = Field(False, description="Available Saturday-Sunday")
    evenings: bool = Field(False, description="Available after 6pm")
    mornings: bool = Field(False, description="Available before 12pm")
    flexible: bool = Field(False, description="Has flexible schedule")


class PriceRange(BaseModel):
    min_hourly_rate_cop: Optional[int] = None
    max_hourly_rate_cop: Optional[int] = None


class SpecialRequirements(BaseModel):
    pet_friendly: Optional[bool] = None
    own_supplies: Optional[bool] = None
    eco_friendly: Optional[bool] = None
    background_check: Optional[bool] = None
    insurance: Optional[bool] = None


class MatchingCriteria(BaseModel):
    skills: list[str] = Field(
        default_factory=list,
        description="Required skills (e.g., 'deep cleaning', 'pet care', 'eco-friendly products')",
    )
    languages: list[Language] = Field(default_factory=list)
    availability: AvailabilityNeeds = Field(default_factory=AvailabilityNeeds)
    experience_years: float = Field(0, ge=0, description="Minimum years of experience")
    verification_level: Optional[Literal["basic", "verified", "premium", "any"]] = None
    max_distance: Optional[float] = Field(None, description="Maximum distance in kilometers")
    price_range: Optional[PriceRange] = None
    special_requirements: Optional[SpecialRequirements] = None
    preferred_gender: Optional[Literal["male", "female", "any", "no_preference"]] = None
    minimum_rating: Optional[float] = Field(None, ge=0, le=5)
    sort_preference: Optional[
        Literal["rating", "price_low", "price_high", "experience", "distance", "reviews_count"]
    ] = None


# ============================================================================
# CHAT
# ============================================================================


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    conversation_id: Optional[str] = None
    locale: Optional[Literal["en", "es"]] = None
