import logging
import uuid
from typing import Any

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from sqlmodel import col, select

from bnrm.ai import chatbot
from bnrm.ai.chatbot import ChatbotReply, ChatbotRequest
from bnrm.ai.knowledge import get_knowledge_base
from bnrm.ai.transcription import transcribe_audio
from bnrm.ai.translation import BatchTranslationResult, batch_translate_all_content
from bnrm.api.deps import OptionalUser, SessionDep, StaffUser
from bnrm.core.errors import GatewayError
from bnrm.models import (
    ChatbotKnowledge,
    ChatbotKnowledgeCreate,
    ChatbotKnowledgePublic,
    ChatbotKnowledgeUpdate,
    Message,
)

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger(__name__)


def _gateway_http_error(e: GatewayError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"error": e.message, "code": e.code})


@router.post("/chatbot", response_model=ChatbotReply, response_model_exclude_none=True)
async def chat(session: SessionDep, current_user: OptionalUser, request: ChatbotRequest) -> Any:
    """
    Library assistant. Gateway failures still answer 200 with an `error`
    field and a localized fallback reply.
    """
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message requis")
    return await chatbot.answer(session=session, request=request, user=current_user)


@router.post("/transcribe")
async def transcribe(
    audio: UploadFile | None = File(None),
    language: str = Form("ar"),
) -> Any:
    if audio is None:
        raise HTTPException(status_code=400, detail={"error": "Aucun fichier audio fourni", "code": "NO_AUDIO"})
    audio_bytes = await audio.read()
    try:
        result = await transcribe_audio(audio_bytes, audio.filename or "audio.webm", language)
    except GatewayError as e:
        raise _gateway_http_error(e)
    return {"text": result.text, "segments": result.segments, "method": result.method}


@router.post("/batch-translate", response_model=BatchTranslationResult)
async def batch_translate(session: SessionDep, current_user: StaffUser, force: bool = False) -> Any:
    """
    Translate every published content item into the other portal languages.
    """
    try:
        return await batch_translate_all_content(session=session, force=force)
    except GatewayError as e:
        raise _gateway_http_error(e)


@router.get("/knowledge", response_model=list[ChatbotKnowledgePublic])
def read_knowledge(session: SessionDep, current_user: StaffUser, category: str | None = None) -> Any:
    statement = select(ChatbotKnowledge)
    if category:
        statement = statement.where(ChatbotKnowledge.category == category)
    return session.exec(
        statement.order_by(col(ChatbotKnowledge.priority).desc(), col(ChatbotKnowledge.title))
    ).all()


@router.post("/knowledge", response_model=ChatbotKnowledgePublic)
def create_knowledge(
    *, session: SessionDep, current_user: StaffUser, entry_in: ChatbotKnowledgeCreate
) -> Any:
    entry = ChatbotKnowledge.model_validate(entry_in)
    session.add(entry)
    session.commit()
    session.refresh(entry)
    get_knowledge_base().index_entry(entry)
    return entry


@router.patch("/knowledge/{entry_id}", response_model=ChatbotKnowledgePublic)
def update_knowledge(
    *,
    session: SessionDep,
    current_user: StaffUser,
    entry_id: uuid.UUID,
    entry_in: ChatbotKnowledgeUpdate,
) -> Any:
    entry = session.get(ChatbotKnowledge, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Knowledge entry not found")
    entry.sqlmodel_update(entry_in.model_dump(exclude_unset=True))
    session.add(entry)
    session.commit()
    session.refresh(entry)
    get_knowledge_base().index_entry(entry)
    return entry


@router.delete("/knowledge/{entry_id}", response_model=Message)
def delete_knowledge(session: SessionDep, current_user: StaffUser, entry_id: uuid.UUID) -> Any:
    entry = session.get(ChatbotKnowledge, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Knowledge entry not found")
    session.delete(entry)
    session.commit()
    get_knowledge_base().delete_entry(str(entry_id))
    return Message(message="Knowledge entry deleted successfully")
