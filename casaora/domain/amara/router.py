"""Amara concierge router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Profile
from ...rate_limiter import enforce_rate_limit
from .concierge import AmaraConcierge
from .schemas import ChatRequest

router = APIRouter(prefix="/amara", tags=["Amara"])

CHAT_LIMIT = 20
CHAT_WINDOW_SECONDS = 60


@router.post("/chat")
async def chat(
    data: ChatRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enforce_rate_limit(f"amara_chat:{user.id}", CHAT_LIMIT, CHAT_WINDOW_SECONDS)
    return AmaraConcierge(db).chat(user, data.message, data.conversation_id, data.locale)


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return AmaraConcierge(db).get_conversation(user, conversation_id)
