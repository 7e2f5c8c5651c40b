"""Payouts router - professional balance and instant payouts"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ...auth import require_role
from ...config import CRON_SECRET
from ...database import get_db
from ...models import Profile
from ...models_payouts import PayoutTransfer
from ...rate_limiter import create_rate_limiter
from .balance_service import BalanceError, BalanceService
from .calculator import get_current_payout_period, get_payout_schedule_description
from .schemas import InstantPayoutRequest, InstantPayoutValidateRequest
from .service import InstantPayoutService, PayoutBatchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["Payouts"])

instant_payout_limit = create_rate_limiter(10, 3600, key_prefix="instant_payout")


def get_balance_service(db: Session = Depends(get_db)) -> BalanceService:
    return BalanceService(db)


def verify_cron_secret(authorization: str = Header(None)):
    if not CRON_SECRET or authorization != f"Bearer {CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")


# ============================================================================
# PROFESSIONAL ENDPOINTS
# ============================================================================


@router.get("/balance")
async def get_balance(
    user: Profile = Depends(require_role("professional")),
    service: BalanceService = Depends(get_balance_service),
):
    try:
        return service.get_balance_breakdown(user.id)
    except BalanceError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/schedule")
async def get_schedule(user: Profile = Depends(require_role("professional"))):
    return {
        **get_current_payout_period(),
        "description": get_payout_schedule_description(),
    }


@router.get("/history")
async def get_payout_history(
    user: Profile = Depends(require_role("professional")),
    db: Session = Depends(get_db),
):
    transfers = (
        db.query(PayoutTransfer)
        .filter(PayoutTransfer.professional_id == user.id)
        .order_by(PayoutTransfer.created_at.desc())
        .limit(50)
        .all()
    )
    return [
        {
            "id": t.id,
            "payout_type": t.payout_type,
            "gross_amount": t.gross_amount,
            "commission_amount": t.commission_amount,
            "fee_amount": t.fee_amount,
            "net_amount": t.net_amount,
            "currency": t.currency,
            "status": t.status,
            "created_at": t.created_at,
        }
        for t in transfers
    ]


@router.post("/instant/validate")
async def validate_instant_payout(
    data: InstantPayoutValidateRequest,
    user: Profile = Depends(require_role("professional")),
    service: BalanceService = Depends(get_balance_service),
):
    """Dry run: fee, net amount, errors and warnings for a requested payout"""
    return service.validate_instant_payout(user.id, data.amount)


@router.post("/instant")
async def request_instant_payout(
    data: InstantPayoutRequest,
    _: None = Depends(instant_payout_limit),
    user: Profile = Depends(require_role("professional")),
    db: Session = Depends(get_db),
):
    return InstantPayoutService(db).request_instant_payout(user.id, data.amount)


# ============================================================================
# CRON ENDPOINTS
# ============================================================================


@router.post("/cron/clear-balances", dependencies=[Depends(verify_cron_secret)])
async def cron_clear_balances(service: BalanceService = Depends(get_balance_service)):
    return service.process_batch_clearances()


@router.post("/cron/run-batch", dependencies=[Depends(verify_cron_secret)])
async def cron_run_batch(db: Session = Depends(get_db)):
    return PayoutBatchService(db).run_batch()
