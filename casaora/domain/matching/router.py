"""Matching router"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ..amara.schemas import MatchingCriteria
from .service import SmartMatchingService

router = APIRouter(prefix="/matching", tags=["Matching"])

matching_limit = create_rate_limiter(30, 60, key_prefix="smart_matching")


class MatchRequest(BaseModel):
    query: Optional[str] = Field(None, max_length=2000)
    criteria: Optional[MatchingCriteria] = None
    locale: Literal["en", "es"] = "en"
    city: Optional[str] = None
    limit: int = Field(10, ge=1, le=50)


@router.post("/professionals")
async def match_professionals(
    data: MatchRequest,
    _: None = Depends(matching_limit),
    db: Session = Depends(get_db),
):
    """Rank professionals for a natural language request or explicit criteria"""
    return SmartMatchingService(db).find_matches(
        query=data.query,
        criteria=data.criteria,
        locale=data.locale,
        city=data.city,
        limit=data.limit,
    )
