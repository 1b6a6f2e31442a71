"""
Library assistant: knowledge-base retrieval, per-language system prompts and
a chat call whose failures degrade into a fallback reply.
"""
import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from sqlmodel import Session

from bnrm.ai.knowledge import KnowledgeBase, get_knowledge_base
from bnrm.ai.llm_client import LLMClient
from bnrm.ai.prompts.chatbot import (
    AMAZIGH_BASE_PROMPT,
    ARABIC_BASE_PROMPT,
    ENGLISH_BASE_PROMPT,
    FALLBACK_ERRORS,
    FALLBACK_REPLIES,
    FRENCH_BASE_PROMPT,
    FRENCH_DEFAULT_INSTRUCTION,
    FRENCH_REQUEST_INSTRUCTIONS,
    KNOWLEDGE_HEADERS,
    PROFILE_LINES,
)
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError
from bnrm.models import ChatbotInteraction, Language, User, get_datetime_utc

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 2000
KNOWLEDGE_RESULTS = 3

RequestType = Literal["works", "authors", "publishers", "download", "services"]


class ChatHistoryItem(BaseModel):
    sender: str
    content: str


class ChatbotRequest(BaseModel):
    message: str
    language: Language = Language.fr
    request_type: RequestType | None = None
    conversation_history: list[ChatHistoryItem] = Field(default_factory=list)


class ChatbotReply(BaseModel):
    reply: str
    language: Language
    request_type: str | None = None
    has_knowledge: bool = False
    timestamp: datetime
    error: str | None = None


def build_system_prompt(
    language: Language, request_type: str | None, knowledge: list[str], role: str | None
) -> str:
    knowledge_block = ""
    if knowledge:
        knowledge_block = f"{KNOWLEDGE_HEADERS[language.value]}\n" + "\n\n".join(knowledge) + "\n"

    if language == Language.ber:
        return AMAZIGH_BASE_PROMPT.format(knowledge=knowledge_block)

    with_role, anonymous = PROFILE_LINES[language.value]
    profile = with_role.format(role=role) if role else anonymous

    if language == Language.ar:
        return ARABIC_BASE_PROMPT.format(knowledge=knowledge_block, profile=profile)
    if language == Language.en:
        return ENGLISH_BASE_PROMPT.format(knowledge=knowledge_block, profile=profile)

    base = FRENCH_BASE_PROMPT.format(knowledge=knowledge_block, profile=profile)
    instruction = FRENCH_REQUEST_INSTRUCTIONS.get(request_type or "", FRENCH_DEFAULT_INSTRUCTION)
    return f"{base}\n\n{instruction}"


def _history_messages(history: list[ChatHistoryItem]) -> list[dict[str, str]]:
    return [
        {"role": "user" if item.sender == "user" else "assistant", "content": item.content}
        for item in history
    ]


def _fallback(request: ChatbotRequest, error: GatewayError) -> ChatbotReply:
    if error.code == "RATE_LIMIT":
        key = "rate_limit"
    elif error.code == "PAYMENT_REQUIRED":
        key = "payment_required"
    else:
        key = "default"
    return ChatbotReply(
        reply=FALLBACK_REPLIES[key],
        error=FALLBACK_ERRORS.get(key, error.message),
        language=request.language,
        request_type=request.request_type,
        timestamp=get_datetime_utc(),
    )


async def answer(
    *,
    session: Session,
    request: ChatbotRequest,
    user: User | None = None,
    llm: LLMClient | None = None,
    knowledge_base: KnowledgeBase | None = None,
) -> ChatbotReply:
    logger.info(
        "Processing chatbot request (language=%s, type=%s, user=%s)",
        request.language.value,
        request.request_type,
        user.id if user else "anonymous",
    )
    knowledge_base = knowledge_base or get_knowledge_base()
    knowledge = knowledge_base.search(request.message, request.language.value, KNOWLEDGE_RESULTS)

    system_prompt = build_system_prompt(
        request.language,
        request.request_type,
        knowledge,
        user.role.value if user else None,
    )
    messages = [
        {"role": "system", "content": system_prompt},
        *_history_messages(request.conversation_history),
        {"role": "user", "content": request.message},
    ]

    llm = llm or LLMClient(model_name=settings.MODEL_CHATBOT)
    try:
        reply = await llm.chat(messages, temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS)
    except GatewayError as e:
        logger.error("Chatbot gateway call failed (%s): %s", e.code, e.message)
        return _fallback(request, e)

    if user is not None:
        session.add(
            ChatbotInteraction(
                user_id=user.id,
                query_text=request.message,
                response_text=reply,
                interaction_type=request.request_type or "general",
                language=request.language,
                details={"has_knowledge": bool(knowledge), "user_role": user.role.value},
            )
        )
        session.commit()

    return ChatbotReply(
        reply=reply,
        language=request.language,
        request_type=request.request_type,
        has_knowledge=bool(knowledge),
        timestamp=get_datetime_utc(),
    )
