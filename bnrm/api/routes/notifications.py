import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from sqlmodel import Session, col, select
from sse_starlette.sse import EventSourceResponse

from bnrm import crud
from bnrm.api.deps import CurrentUser, SessionDep
from bnrm.core.config import settings
from bnrm.core.db import engine
from bnrm.models import (
    Message,
    Notification,
    NotificationPublic,
    UnreadCount,
    get_datetime_utc,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=list[NotificationPublic])
def read_notifications(
    session: SessionDep,
    current_user: CurrentUser,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 50,
) -> Any:
    statement = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        statement = statement.where(Notification.is_read == False)  # noqa: E712
    statement = statement.order_by(col(Notification.created_at).desc()).offset(skip).limit(limit)
    return session.exec(statement).all()


@router.get("/unread-count", response_model=UnreadCount)
def read_unread_count(session: SessionDep, current_user: CurrentUser) -> Any:
    return UnreadCount(
        count=crud.get_unread_notification_count(session=session, user_id=current_user.id)
    )


@router.post("/{notification_id}/read", response_model=NotificationPublic)
def mark_notification_read(
    session: SessionDep, current_user: CurrentUser, notification_id: uuid.UUID
) -> Any:
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification.is_read = True
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


@router.post("/read-all", response_model=Message)
def mark_all_notifications_read(session: SessionDep, current_user: CurrentUser) -> Any:
    notifications = session.exec(
        select(Notification).where(
            Notification.user_id == current_user.id,
            Notification.is_read == False,  # noqa: E712
        )
    ).all()
    for notification in notifications:
        notification.is_read = True
        session.add(notification)
    session.commit()
    return Message(message=f"{len(notifications)} notifications marked as read")


async def notification_stream(
    request: Request, user_id: uuid.UUID, since: datetime
) -> AsyncGenerator[dict[str, str], None]:
    last_seen = since
    while True:
        if await request.is_disconnected():
            break
        with Session(engine) as session:
            notifications = session.exec(
                select(Notification)
                .where(Notification.user_id == user_id, Notification.created_at > last_seen)
                .order_by(col(Notification.created_at))
            ).all()
            payloads = [NotificationPublic.model_validate(n) for n in notifications]
        for payload in payloads:
            yield {"event": "notification", "data": payload.model_dump_json()}
            last_seen = payload.created_at or last_seen
        await asyncio.sleep(settings.REALTIME_POLL_SECONDS)


@router.get("/stream")
async def stream_notifications(request: Request, current_user: CurrentUser):
    """
    Server-Sent Events feed of the current user's new notifications.
    """
    return EventSourceResponse(notification_stream(request, current_user.id, get_datetime_utc()))
