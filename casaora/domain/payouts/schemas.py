"""Payout schemas"""

from pydantic import BaseModel, Field


class InstantPayoutRequest(BaseModel):
    amount: int = Field(..., gt=0)


class InstantPayoutValidateRequest(BaseModel):
    amount: int = Field(..., gt=0)
