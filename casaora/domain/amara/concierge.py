"""
Amara concierge.

A Claude tool-use loop over the marketplace: Amara can search professionals,
read availability and price booking drafts. Conversations are persisted so
the customer can pick them up again.
"""

import json
import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import AMARA_MAX_TOOL_ROUNDS
from ...models import AmaraConversation, AmaraMessage, Profile
from .llm import AmaraUnavailableError, StructuredLLM
from .tools import TOOL_DEFINITIONS, AmaraTools

logger = logging.getLogger(__name__)

SYSTEM_PROMPTS = {
    "en": (
        "You are Amara, Casaora's concierge. You help customers in Latin America find "
        "trusted household professionals (cleaning, cooking, childcare, elder care, laundry). "
        "Use the tools to search professionals, check availability and prepare booking drafts. "
        "Never claim a booking is confirmed: drafts must be confirmed by the customer. "
        "Prices are in Colombian pesos. Be warm, concise and practical."
    ),
    "es": (
        "Eres Amara, la concierge de Casaora. Ayudas a clientes en Latinoamérica a encontrar "
        "profesionales del hogar de confianza (limpieza, cocina, cuidado de niños, adultos mayores, "
        "lavandería). Usa las herramientas para buscar profesionales, revisar disponibilidad y "
        "preparar borradores de reserva. Nunca digas que una reserva está confirmada: el cliente "
        "debe confirmar el borrador. Los precios están en pesos colombianos. Sé cálida, concisa y práctica."
    ),
}

FALLBACK_REPLIES = {
    "en": "Sorry, I could not put an answer together. Could you rephrase that?",
    "es": "Lo siento, no pude armar una respuesta. ¿Puedes decirlo de otra forma?",
}


def _block_to_dict(block) -> dict:
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return {"type": "text", "text": block.text}


def _text_of(content) -> str:
    return "".join(block.text for block in content if block.type == "text").strip()


class AmaraConcierge:
    def __init__(self, db: Session, llm: Optional[StructuredLLM] = None, max_tool_rounds: int = AMARA_MAX_TOOL_ROUNDS):
        self.db = db
        self.llm = llm or StructuredLLM()
        self.tools = AmaraTools(db)
        self.max_tool_rounds = max_tool_rounds

    def _get_or_create_conversation(
        self, user: Profile, conversation_id: Optional[str], locale: str
    ) -> AmaraConversation:
        if conversation_id:
            conversation = (
                self.db.query(AmaraConversation)
                .filter(AmaraConversation.id == conversation_id, AmaraConversation.user_id == user.id)
                .first()
            )
            if not conversation:
                raise HTTPException(status_code=404, detail="Conversation not found")
            return conversation

        conversation = AmaraConversation(user_id=user.id, locale=locale)
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def _call(self, messages: list[dict], system: str, allow_tools: bool = True):
        kwargs = {
            "model": self.llm.model,
            "max_tokens": 1024,
            "system": system,
            "tools": TOOL_DEFINITIONS,
            "messages": messages,
        }
        if not allow_tools:
            kwargs["tool_choice"] = {"type": "none"}
        return self.llm.client.messages.create(**kwargs)

    def chat(
        self,
        user: Profile,
        message: str,
        conversation_id: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> dict:
        if not self.llm.is_available():
            raise HTTPException(status_code=503, detail="Amara is not available right now")

        locale = locale or (user.locale if user.locale in SYSTEM_PROMPTS else "en")
        conversation = self._get_or_create_conversation(user, conversation_id, locale)
        system = SYSTEM_PROMPTS.get(conversation.locale, SYSTEM_PROMPTS["en"])

        history = [{"role": m.role, "content": m.content} for m in conversation.messages]
        messages = history + [{"role": "user", "content": message}]
        self.db.add(AmaraMessage(conversation_id=conversation.id, role="user", content=message))
        self.db.commit()

        tool_results = []
        try:
            response = self._call(messages, system)
            rounds = 0
            while response.stop_reason == "tool_use":
                rounds += 1
                messages.append(
                    {"role": "assistant", "content": [_block_to_dict(b) for b in response.content]}
                )
                results_content = []
                for block in response.content:
                    if block.type != "tool_use":
                        continue
                    result = self.tools.execute(block.name, dict(block.input or {}))
                    tool_results.append({"tool": block.name, "input": block.input, "result": result})
                    results_content.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": block.id,
                            "content": json.dumps(result, default=str),
                        }
                    )
                messages.append({"role": "user", "content": results_content})
                response = self._call(messages, system, allow_tools=rounds < self.max_tool_rounds)
        except AmaraUnavailableError as e:
            raise HTTPException(status_code=503, detail="Amara is not available right now") from e
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"❌ Amara chat failed for conversation {conversation.id}: {e}")
            raise HTTPException(status_code=502, detail="Amara could not answer right now") from e

        reply = _text_of(response.content)
        if not reply:
            # stored turns are replayed and must not be empty
            logger.warning(f"⚠️ Amara returned no text in {conversation.id}")
            reply = FALLBACK_REPLIES.get(conversation.locale, FALLBACK_REPLIES["en"])
        self.db.add(
            AmaraMessage(
                conversation_id=conversation.id,
                role="assistant",
                content=reply,
                tool_results=json.loads(json.dumps(tool_results, default=str)) or None,
            )
        )
        self.db.commit()

        logger.info(f"💬 Amara replied in {conversation.id} after {len(tool_results)} tool calls")
        return {"conversation_id": conversation.id, "reply": reply, "tool_results": tool_results}

    def get_conversation(self, user: Profile, conversation_id: str) -> dict:
        conversation = self._get_or_create_conversation(user, conversation_id, user.locale)
        return {
            "conversation_id": conversation.id,
            "locale": conversation.locale,
            "messages": [
                {
                    "role": m.role,
                    "content": m.content,
                    "tool_results": m.tool_results,
                    "created_at": m.created_at,
                }
                for m in conversation.messages
            ],
        }
