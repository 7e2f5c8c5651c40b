from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import require_role
from ..database import get_db
from ..domain.admin.service import AdminService
from ..domain.reviews.schemas import ReviewModerate, ReviewResponse
from ..domain.reviews.service import ReviewService
from ..models import Profile

router = APIRouter(prefix="/admin", tags=["Admin"])


class ModerateUserRequest(BaseModel):
    action: Literal["suspend", "unsuspend", "ban", "warn"]
    reason: Optional[str] = Field(None, max_length=1000)
    duration_days: Optional[int] = Field(None, ge=1, le=365)


@router.post("/users/{user_id}/moderate")
async def moderate_user(
    user_id: str,
    data: ModerateUserRequest,
    admin: Profile = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Suspend, unsuspend, ban or warn a user"""
    return AdminService(db).moderate_user(admin, user_id, data.action, data.reason, data.duration_days)


@router.get("/users/{user_id}/risk")
async def get_user_risk(
    user_id: str,
    admin: Profile = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return AdminService(db).get_user_risk(user_id)


@router.get("/dashboard/stats")
async def get_dashboard_stats(
    admin: Profile = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return AdminService(db).get_dashboard_stats()


@router.get("/reviews/pending", response_model=list[ReviewResponse])
async def list_pending_reviews(
    limit: int = Query(50, ge=1, le=100),
    admin: Profile = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return ReviewService(db).list_pending(limit)


@router.post("/reviews/{review_id}/moderate", response_model=ReviewResponse)
async def moderate_review(
    review_id: str,
    data: ReviewModerate,
    admin: Profile = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return ReviewService(db).moderate_review(review_id, data.approve, data.reason)
