"""Reviews router"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_role
from ...database import get_db
from ...models import Profile
from .schemas import ReviewCreate, ReviewResponse
from .service import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


@router.post("", response_model=ReviewResponse)
async def submit_review(
    data: ReviewCreate,
    user: Profile = Depends(require_role("customer")),
    service: ReviewService = Depends(get_review_service),
):
    """Review a completed booking. Clean reviews publish immediately, others go to moderation."""
    return service.submit_review(user, data)


@router.get("/professional/{professional_id}", response_model=list[ReviewResponse])
async def list_professional_reviews(
    professional_id: str,
    limit: int = Query(50, ge=1, le=100),
    service: ReviewService = Depends(get_review_service),
):
    return service.list_for_professional(professional_id, limit)
