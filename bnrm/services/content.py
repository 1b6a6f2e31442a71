import logging
import re
import unicodedata
import uuid

from sqlmodel import Session, select

from bnrm import crud
from bnrm.library.search import detect_language, generate_keywords
from bnrm.models import (
    Content,
    ContentCreate,
    ContentStatus,
    ContentType,
    ContentUpdate,
    as_utc,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

DATED_CONTENT_TYPES = {ContentType.event, ContentType.exhibition}

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_SLUG.sub("-", normalized.lower()).strip("-")
    return slug or "contenu"


def unique_slug(session: Session, base: str, exclude_id: uuid.UUID | None = None) -> str:
    candidate = base
    suffix = 2
    while True:
        existing = session.exec(select(Content).where(Content.slug == candidate)).first()
        if existing is None or existing.id == exclude_id:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


def validate_dates(content_type: ContentType, start_date, end_date) -> None:
    if content_type not in DATED_CONTENT_TYPES:
        return
    if start_date and end_date and as_utc(end_date) < as_utc(start_date):
        raise ValueError("End date cannot be before start date")


def create_content(*, session: Session, content_in: ContentCreate, author_id: uuid.UUID) -> Content:
    validate_dates(content_in.content_type, content_in.start_date, content_in.end_date)
    slug = unique_slug(session, slugify(content_in.slug or content_in.title))
    content = Content.model_validate(content_in, update={"slug": slug, "author_id": author_id})
    if not content.seo_keywords:
        content.seo_keywords = generate_keywords(content.title, content.content_body, content.excerpt)
    if "language" not in content_in.model_fields_set:
        content.language = detect_language(f"{content.title} {content.content_body}")
    session.add(content)
    crud.insert_activity_log(
        session=session,
        action="content_created",
        resource_type="content",
        resource_id=content.id,
        details={"title": content.title, "type": content.content_type.value},
        user_id=author_id,
        commit=False,
    )
    session.commit()
    session.refresh(content)
    return content


def update_content(
    *, session: Session, content: Content, content_in: ContentUpdate, user_id: uuid.UUID
) -> Content:
    update_data = content_in.model_dump(exclude_unset=True)
    content.sqlmodel_update(update_data)
    validate_dates(content.content_type, content.start_date, content.end_date)
    content.updated_at = get_datetime_utc()
    session.add(content)
    crud.insert_activity_log(
        session=session,
        action="content_updated",
        resource_type="content",
        resource_id=content.id,
        details={"fields": sorted(update_data)},
        user_id=user_id,
        commit=False,
    )
    session.commit()
    session.refresh(content)
    return content


def set_status(
    *, session: Session, content: Content, status: ContentStatus, user_id: uuid.UUID
) -> Content:
    """Publishing stamps `published_at` the first time only."""
    content.status = status
    if status == ContentStatus.published and content.published_at is None:
        content.published_at = get_datetime_utc()
    content.updated_at = get_datetime_utc()
    session.add(content)
    crud.insert_activity_log(
        session=session,
        action=f"content_{status.value}",
        resource_type="content",
        resource_id=content.id,
        user_id=user_id,
        commit=False,
    )
    session.commit()
    session.refresh(content)
    logger.info("Content %s is now %s", content.id, status.value)
    return content
