import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from sqlmodel import Session
from sse_starlette.sse import EventSourceResponse

from bnrm import crud
from bnrm.api.deps import CurrentUser, SessionDep
from bnrm.core.config import settings
from bnrm.core.db import engine
from bnrm.models import (
    ChatMessageCreate,
    ChatMessagePublic,
    Conversation,
    ConversationCreate,
    ConversationPublic,
    UnreadCount,
    User,
    get_datetime_utc,
)

router = APIRouter(prefix="/messages", tags=["messages"])
logger = logging.getLogger(__name__)


def _to_public(conversation: Conversation) -> ConversationPublic:
    return ConversationPublic(
        id=conversation.id,
        title=conversation.title,
        conversation_type=conversation.conversation_type,
        created_by=conversation.created_by,
        created_at=conversation.created_at,
        last_message_at=conversation.last_message_at,
        participant_ids=[p.user_id for p in conversation.participants],
    )


def _get_conversation(session: Session, conversation_id: uuid.UUID, user: User) -> Conversation:
    conversation = session.get(Conversation, conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not crud.is_participant(session=session, conversation_id=conversation_id, user_id=user.id):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    return conversation


@router.post("/conversations", response_model=ConversationPublic)
def create_conversation(
    *, session: SessionDep, current_user: CurrentUser, conversation_in: ConversationCreate
) -> Any:
    for user_id in conversation_in.participant_ids:
        if not session.get(User, user_id):
            raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    conversation = crud.create_conversation(
        session=session,
        creator_id=current_user.id,
        participant_ids=conversation_in.participant_ids,
        title=conversation_in.title,
        conversation_type=conversation_in.conversation_type,
    )
    return _to_public(conversation)


@router.get("/conversations", response_model=list[ConversationPublic])
def read_conversations(session: SessionDep, current_user: CurrentUser) -> Any:
    conversations = crud.get_user_conversations(session=session, user_id=current_user.id)
    return [_to_public(c) for c in conversations]


@router.get("/conversations/{conversation_id}/messages", response_model=list[ChatMessagePublic])
def read_messages(
    session: SessionDep,
    current_user: CurrentUser,
    conversation_id: uuid.UUID,
    after: datetime | None = None,
    limit: int = 100,
) -> Any:
    _get_conversation(session, conversation_id, current_user)
    return crud.get_messages(session=session, conversation_id=conversation_id, after=after, limit=limit)


@router.post("/conversations/{conversation_id}/messages", response_model=ChatMessagePublic)
def send_message(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    conversation_id: uuid.UUID,
    message_in: ChatMessageCreate,
) -> Any:
    conversation = _get_conversation(session, conversation_id, current_user)
    message = crud.send_message(
        session=session, conversation=conversation, sender_id=current_user.id, content=message_in.content
    )
    for participant in conversation.participants:
        if participant.user_id == current_user.id:
            continue
        crud.create_notification(
            session=session,
            user_id=participant.user_id,
            type="message",
            title=f"Nouveau message de {current_user.full_name or current_user.email}",
            message=message.content[:200],
            link=f"/messages/{conversation.id}",
            commit=False,
        )
    session.commit()
    session.refresh(message)
    return message


@router.post("/conversations/{conversation_id}/read", response_model=UnreadCount)
def mark_conversation_read(session: SessionDep, current_user: CurrentUser, conversation_id: uuid.UUID) -> Any:
    """
    Mark the other participants' messages as read; returns how many changed.
    """
    _get_conversation(session, conversation_id, current_user)
    count = crud.mark_messages_as_read(session=session, conversation_id=conversation_id, user_id=current_user.id)
    return UnreadCount(count=count)


@router.get("/unread-count", response_model=UnreadCount)
def read_unread_count(session: SessionDep, current_user: CurrentUser) -> Any:
    return UnreadCount(count=crud.get_unread_count(session=session, user_id=current_user.id))


async def message_stream(
    request: Request, conversation_id: uuid.UUID, since: datetime
) -> AsyncGenerator[dict[str, str], None]:
    """Poll the conversation and push every message created after `since`."""
    last_seen = since
    while True:
        if await request.is_disconnected():
            logger.debug("Message stream for %s closed by client", conversation_id)
            break
        with Session(engine) as session:
            messages = crud.get_messages(session=session, conversation_id=conversation_id, after=last_seen)
            payloads = [ChatMessagePublic.model_validate(m) for m in messages]
        for payload in payloads:
            yield {"event": "message", "data": payload.model_dump_json()}
            last_seen = payload.created_at or last_seen
        await asyncio.sleep(settings.REALTIME_POLL_SECONDS)


@router.get("/conversations/{conversation_id}/stream")
async def stream_messages(
    request: Request, session: SessionDep, current_user: CurrentUser, conversation_id: uuid.UUID
):
    """
    Server-Sent Events feed of new messages in a conversation.
    """
    _get_conversation(session, conversation_id, current_user)
    return EventSourceResponse(message_stream(request, conversation_id, get_datetime_utc()))
