"""Trial credits router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_role
from ...database import get_db
from ...models import Profile
from .service import get_customer_trial_credits, get_direct_hire_quote, get_trial_credit_info

router = APIRouter(prefix="/trial-credits", tags=["Trial Credits"])


@router.get("")
async def list_my_trial_credits(
    user: Profile = Depends(require_role("customer")),
    db: Session = Depends(get_db),
):
    return {"credits": get_customer_trial_credits(db, user.id)}


@router.get("/{professional_id}")
async def get_trial_credit(
    professional_id: str,
    user: Profile = Depends(require_role("customer")),
    db: Session = Depends(get_db),
):
    return get_trial_credit_info(db, user.id, professional_id)


@router.get("/{professional_id}/direct-hire-quote")
async def direct_hire_quote(
    professional_id: str,
    user: Profile = Depends(require_role("customer")),
    db: Session = Depends(get_db),
):
    """Direct hire fee with the customer's trial credit applied"""
    return get_direct_hire_quote(db, user, professional_id)
