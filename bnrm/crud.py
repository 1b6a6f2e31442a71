import uuid
from datetime import date, datetime
from typing import Any

from sqlmodel import Session, col, func, select

from bnrm.core.security import get_password_hash, verify_password
from bnrm.models import (
    ActivityLog,
    ChatMessage,
    Conversation,
    ConversationParticipant,
    DailyPassUsage,
    Notification,
    User,
    UserCreate,
    UserUpdate,
    get_datetime_utc,
)


def create_user(*, session: Session, user_create: UserCreate) -> User:
    db_obj = User.model_validate(
        user_create, update={"hashed_password": get_password_hash(user_create.password)}
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def update_user(*, session: Session, db_user: User, user_in: UserUpdate) -> Any:
    user_data = user_in.model_dump(exclude_unset=True)
    extra_data = {}
    if "password" in user_data:
        password = user_data["password"]
        hashed_password = get_password_hash(password)
        extra_data["hashed_password"] = hashed_password
    db_user.sqlmodel_update(user_data, update=extra_data)
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email)
    session_user = session.exec(statement).first()
    return session_user


# Dummy hash to use for timing attack prevention when user is not found
# This is an Argon2 hash of a random password, used to ensure constant-time comparison
DUMMY_HASH = "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    db_user = get_user_by_email(session=session, email=email)
    if not db_user:
        # Keep response time similar whether or not the email exists
        verify_password(password, DUMMY_HASH)
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


def insert_activity_log(
    *,
    session: Session,
    action: str,
    resource_type: str,
    resource_id: Any = None,
    details: dict[str, Any] | None = None,
    user_id: uuid.UUID | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> ActivityLog:
    entry = ActivityLog(
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details or {},
        user_id=user_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(entry)
    if commit:
        session.commit()
        session.refresh(entry)
    return entry


def create_notification(
    *,
    session: Session,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
    priority: int = 3,
    category: str | None = None,
    commit: bool = True,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        priority=priority,
        category=category or type,
    )
    session.add(notification)
    if commit:
        session.commit()
        session.refresh(notification)
    return notification


def get_unread_notification_count(*, session: Session, user_id: uuid.UUID) -> int:
    statement = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
    )
    return session.exec(statement).one()


# Messaging

def create_conversation(
    *,
    session: Session,
    creator_id: uuid.UUID,
    participant_ids: list[uuid.UUID],
    title: str | None = None,
    conversation_type: str = "direct",
) -> Conversation:
    conversation = Conversation(
        title=title, conversation_type=conversation_type, created_by=creator_id
    )
    session.add(conversation)
    session.flush()
    for user_id in dict.fromkeys([creator_id, *participant_ids]):
        session.add(ConversationParticipant(conversation_id=conversation.id, user_id=user_id))
    session.commit()
    session.refresh(conversation)
    return conversation


def is_participant(*, session: Session, conversation_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    statement = select(ConversationParticipant).where(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user_id,
    )
    return session.exec(statement).first() is not None


def get_user_conversations(*, session: Session, user_id: uuid.UUID) -> list[Conversation]:
    statement = (
        select(Conversation)
        .join(ConversationParticipant)
        .where(ConversationParticipant.user_id == user_id)
        .order_by(col(Conversation.last_message_at).desc(), col(Conversation.created_at).desc())
    )
    return list(session.exec(statement).all())


def send_message(
    *, session: Session, conversation: Conversation, sender_id: uuid.UUID, content: str
) -> ChatMessage:
    message = ChatMessage(conversation_id=conversation.id, sender_id=sender_id, content=content)
    conversation.last_message_at = get_datetime_utc()
    session.add(message)
    session.add(conversation)
    session.commit()
    session.refresh(message)
    return message


def get_messages(
    *,
    session: Session,
    conversation_id: uuid.UUID,
    after: datetime | None = None,
    limit: int = 100,
) -> list[ChatMessage]:
    statement = select(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
    if after is not None:
        statement = statement.where(ChatMessage.created_at > after)
    statement = statement.order_by(col(ChatMessage.created_at)).limit(limit)
    return list(session.exec(statement).all())


def get_unread_count(*, session: Session, user_id: uuid.UUID) -> int:
    """Unread messages sent by others in every conversation the user takes part in."""
    participant_conversations = select(ConversationParticipant.conversation_id).where(
        ConversationParticipant.user_id == user_id
    )
    statement = (
        select(func.count())
        .select_from(ChatMessage)
        .where(
            col(ChatMessage.conversation_id).in_(participant_conversations),
            ChatMessage.sender_id != user_id,
            ChatMessage.is_read == False,  # noqa: E712
        )
    )
    return session.exec(statement).one()


def mark_messages_as_read(
    *, session: Session, conversation_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    statement = select(ChatMessage).where(
        ChatMessage.conversation_id == conversation_id,
        ChatMessage.sender_id != user_id,
        ChatMessage.is_read == False,  # noqa: E712
    )
    messages = session.exec(statement).all()
    for message in messages:
        message.is_read = True
        session.add(message)
    session.commit()
    return len(messages)


# Daily pass

def record_daily_pass_usage(
    *,
    session: Session,
    user_id: uuid.UUID,
    service_id: uuid.UUID,
    today: date | None = None,
) -> DailyPassUsage:
    """Free daily access is granted once per calendar year for a given service."""
    today = today or get_datetime_utc().date()
    year_start = date(today.year, 1, 1)
    year_end = date(today.year, 12, 31)
    existing = session.exec(
        select(DailyPassUsage).where(
            DailyPassUsage.user_id == user_id,
            DailyPassUsage.service_id == service_id,
            DailyPassUsage.used_on >= year_start,
            DailyPassUsage.used_on <= year_end,
        )
    ).first()
    if existing:
        raise ValueError(
            f"Daily pass already used on {existing.used_on.isoformat()} for this year"
        )
    usage = DailyPassUsage(user_id=user_id, service_id=service_id, used_on=today)
    session.add(usage)
    session.commit()
    session.refresh(usage)
    return usage
