"""Professional profile schemas"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import normalize_phone, validate_coordinates
from ...utils.sanitization import sanitize_text


class ProfessionalSummary(BaseModel):
    id: str
    full_name: Optional[str] = None
    city: Optional[str] = None
    bio: Optional[str] = None
    service_category: Optional[str] = None
    primary_services: list[str] = []
    languages: list[str] = []
    experience_years: int = 0
    hourly_rate_cop: Optional[int] = None
    rating: float = 0.0
    review_count: int = 0
    total_completed_bookings: int = 0
    verification_level: str = "basic"
    background_check_passed: bool = False


class ProfessionalDetail(ProfessionalSummary):
    skills: list[str] = []
    pet_friendly: bool = False
    eco_friendly: bool = False
    has_insurance: bool = False
    on_time_rate: float = 1.0
    availability_flags: dict = {}


class DirectoryPage(BaseModel):
    professionals: list[ProfessionalSummary]
    total: int
    page: int
    page_size: int


class ProfessionalProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = None
    city: Optional[str] = Field(None, max_length=120)
    bio: Optional[str] = None
    service_category: Optional[str] = Field(None, max_length=100)
    primary_services: Optional[list[str]] = None
    skills: Optional[list[str]] = None
    languages: Optional[list[str]] = None
    experience_years: Optional[int] = Field(None, ge=0, le=70)
    hourly_rate_cop: Optional[int] = Field(None, gt=0)
    pet_friendly: Optional[bool] = None
    eco_friendly: Optional[bool] = None
    has_insurance: Optional[bool] = None
    availability_flags: Optional[dict[str, bool]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("bio")
    @classmethod
    def clean_bio(cls, v):
        return sanitize_text(v, max_length=2000)

    @field_validator("full_name", "city", "service_category")
    @classmethod
    def clean_short_text(cls, v):
        return sanitize_text(v)

    @field_validator("phone_number")
    @classmethod
    def clean_phone(cls, v):
        return normalize_phone(v)

    @model_validator(mode="after")
    def check_coordinates(self):
        if self.latitude is None and self.longitude is None:
            return self
        if not validate_coordinates(self.latitude, self.longitude):
            raise ValueError("latitude and longitude must be provided together and be in range")
        return self
