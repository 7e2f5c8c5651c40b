"""Professional directory, profile and dashboard routers"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_role
from ...database import get_db
from ...models import Profile
from .schemas import DirectoryPage, ProfessionalDetail, ProfessionalProfileUpdate
from .service import ProfessionalService

directory_router = APIRouter(prefix="/directory", tags=["Directory"])
router = APIRouter(prefix="/professionals", tags=["Professionals"])
dashboard_router = APIRouter(prefix="/pro", tags=["Professional Dashboard"])


def get_professional_service(db: Session = Depends(get_db)) -> ProfessionalService:
    return ProfessionalService(db)


@directory_router.get("/professionals", response_model=DirectoryPage)
async def search_directory(
    service: Optional[str] = None,
    city: Optional[str] = None,
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    max_rate: Optional[int] = Query(None, gt=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service_: ProfessionalService = Depends(get_professional_service),
):
    """Public directory of active professionals, sorted by rating"""
    return service_.search_directory(service, city, min_rating, max_rate, page, page_size)


@router.patch("/me", response_model=ProfessionalDetail)
async def update_my_profile(
    data: ProfessionalProfileUpdate,
    user: Profile = Depends(require_role("professional")),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.update_own_profile(user, data)


@router.get("/{professional_id}", response_model=ProfessionalDetail)
async def get_professional(
    professional_id: str,
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_professional(professional_id)


@dashboard_router.get("/dashboard/stats")
async def get_dashboard_stats(
    user: Profile = Depends(require_role("professional")),
    service: ProfessionalService = Depends(get_professional_service),
):
    return service.get_dashboard_stats(user)
