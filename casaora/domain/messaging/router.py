"""Messaging router"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_role
from ...database import get_db
from ...models import Profile
from .schemas import ConversationCreate, ConversationResponse, MessageCreate, MessageResponse
from .service import MessagingService

router = APIRouter(prefix="/messages", tags=["Messaging"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    return MessagingService(db)


@router.post("/conversations", response_model=ConversationResponse)
async def start_conversation(
    data: ConversationCreate,
    user: Profile = Depends(require_role("customer")),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.get_or_create_conversation(user.id, data.professional_id, data.booking_id)


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.list_conversations(user.id, limit, offset)


@router.get("/conversations/{conversation_id}", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.list_messages(conversation_id, user.id, limit, offset)


@router.post("/conversations/{conversation_id}", response_model=MessageResponse)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.send_message(conversation_id, user.id, data.body)


@router.post("/conversations/{conversation_id}/read")
async def mark_read(
    conversation_id: str,
    user: Profile = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return {"marked_read": service.mark_read(conversation_id, user.id)}
