"""Messaging service - one conversation per customer/professional pair"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Conversation, Message, Profile
from ...services.notification_service import notify_user
from ...shared.validators import utcnow
from ...utils.sanitization import sanitize_text

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


class MessagingService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create_conversation(
        self, customer_id: str, professional_id: str, booking_id: Optional[str] = None
    ) -> Conversation:
        if customer_id == professional_id:
            raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")

        conversation = (
            self.db.query(Conversation)
            .filter(
                Conversation.customer_id == customer_id,
                Conversation.professional_id == professional_id,
            )
            .first()
        )
        if conversation:
            if booking_id and not conversation.booking_id:
                conversation.booking_id = booking_id
                self.db.commit()
            return conversation

        professional = (
            self.db.query(Profile)
            .filter(Profile.id == professional_id, Profile.role == "professional")
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")

        conversation = Conversation(
            customer_id=customer_id,
            professional_id=professional_id,
            booking_id=booking_id,
            customer_unread_count=0,
            professional_unread_count=0,
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def _get_for_participant(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self.db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if not conversation:
            raise HTTPException(status_code=404, detail="Conversation not found")
        if user_id not in (conversation.customer_id, conversation.professional_id):
            raise HTTPException(status_code=403, detail="Not a participant in this conversation")
        return conversation

    def send_message(self, conversation_id: str, sender_id: str, body: str) -> Message:
        conversation = self._get_for_participant(conversation_id, sender_id)

        try:
            body = sanitize_text(body, max_length=MAX_MESSAGE_LENGTH)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if not body:
            raise HTTPException(status_code=400, detail="Message cannot be empty")

        now = utcnow()
        message = Message(conversation_id=conversation.id, sender_id=sender_id, body=body, created_at=now)
        self.db.add(message)

        conversation.last_message_at = now
        if sender_id == conversation.customer_id:
            conversation.professional_unread_count += 1
            recipient_id = conversation.professional_id
        else:
            conversation.customer_unread_count += 1
            recipient_id = conversation.customer_id
        self.db.commit()
        self.db.refresh(message)

        notify_user(
            self.db,
            recipient_id,
            "new_message",
            "New message",
            body[:140],
            data={"conversation_id": conversation.id},
            email=False,
        )
        return message

    def list_conversations(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(or_(Conversation.customer_id == user_id, Conversation.professional_id == user_id))
            .order_by(Conversation.last_message_at.desc().nullslast())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_messages(
        self, conversation_id: str, user_id: str, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        """Oldest first"""
        self._get_for_participant(conversation_id, user_id)
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Mark the other party's messages read and reset this user's unread count"""
        conversation = self._get_for_participant(conversation_id, user_id)
        now = utcnow()
        updated = (
            self.db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id != user_id,
                Message.read_at.is_(None),
            )
            .update({Message.read_at: now}, synchronize_session=False)
        )
        if user_id == conversation.customer_id:
            conversation.customer_unread_count = 0
        else:
            conversation.professional_unread_count = 0
        self.db.commit()
        return updated
