import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import col, select

from bnrm import crud
from bnrm.api.deps import SessionDep, StaffUser
from bnrm.models import (
    Content,
    ContentCreate,
    ContentPublic,
    ContentsPublic,
    ContentStatus,
    ContentTranslation,
    ContentTranslationPublic,
    ContentType,
    ContentUpdate,
    Language,
    Message,
)
from bnrm.services import content as content_service

router = APIRouter(prefix="/content", tags=["content"])


def _get_content(session: SessionDep, content_id: uuid.UUID) -> Content:
    content = session.get(Content, content_id)
    if not content:
        raise HTTPException(status_code=404, detail="Content not found")
    return content


@router.get("/", response_model=ContentsPublic)
def read_published_content(
    session: SessionDep,
    content_type: ContentType | None = None,
    featured: bool | None = None,
    tag: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> Any:
    """
    Published content, newest first.
    """
    statement = select(Content).where(Content.status == ContentStatus.published)
    if content_type:
        statement = statement.where(Content.content_type == content_type)
    if featured is not None:
        statement = statement.where(Content.is_featured == featured)
    contents = session.exec(statement.order_by(col(Content.published_at).desc())).all()
    if tag:
        contents = [c for c in contents if tag in (c.tags or [])]
    return ContentsPublic(data=contents[skip : skip + limit], count=len(contents))


@router.get("/manage/", response_model=ContentsPublic)
def read_all_content(
    session: SessionDep,
    current_user: StaffUser,
    status: ContentStatus | None = None,
    skip: int = 0,
    limit: int = 50,
) -> Any:
    statement = select(Content)
    if status:
        statement = statement.where(Content.status == status)
    contents = session.exec(statement.order_by(col(Content.created_at).desc())).all()
    return ContentsPublic(data=contents[skip : skip + limit], count=len(contents))


@router.get("/{slug}", response_model=ContentPublic)
def read_content(session: SessionDep, slug: str, lang: Language | None = None) -> Any:
    """
    Read a published item by slug; `lang` overlays the stored translation when one exists.
    """
    content = session.exec(
        select(Content).where(Content.slug == slug, Content.status == ContentStatus.published)
    ).first()
    if not content:
        raise HTTPException(status_code=404, detail="Content not found")

    content.view_count += 1
    session.add(content)
    session.commit()
    session.refresh(content)

    public = ContentPublic.model_validate(content)
    if lang and lang != content.language:
        translation = session.exec(
            select(ContentTranslation).where(
                ContentTranslation.content_id == content.id, ContentTranslation.language == lang
            )
        ).first()
        if translation:
            public.title = translation.title
            public.excerpt = translation.excerpt
            public.content_body = translation.content_body
            public.language = lang
    return public


@router.get("/{content_id}/translations", response_model=list[ContentTranslationPublic])
def read_content_translations(
    session: SessionDep, current_user: StaffUser, content_id: uuid.UUID
) -> Any:
    return _get_content(session, content_id).translations


@router.post("/", response_model=ContentPublic)
def create_content(*, session: SessionDep, current_user: StaffUser, content_in: ContentCreate) -> Any:
    try:
        return content_service.create_content(
            session=session, content_in=content_in, author_id=current_user.id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{content_id}", response_model=ContentPublic)
def update_content(
    *,
    session: SessionDep,
    current_user: StaffUser,
    content_id: uuid.UUID,
    content_in: ContentUpdate,
) -> Any:
    content = _get_content(session, content_id)
    try:
        return content_service.update_content(
            session=session, content=content, content_in=content_in, user_id=current_user.id
        )
    except ValueError as e:
        session.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{content_id}/publish", response_model=ContentPublic)
def publish_content(session: SessionDep, current_user: StaffUser, content_id: uuid.UUID) -> Any:
    content = _get_content(session, content_id)
    return content_service.set_status(
        session=session, content=content, status=ContentStatus.published, user_id=current_user.id
    )


@router.post("/{content_id}/archive", response_model=ContentPublic)
def archive_content(session: SessionDep, current_user: StaffUser, content_id: uuid.UUID) -> Any:
    content = _get_content(session, content_id)
    return content_service.set_status(
        session=session, content=content, status=ContentStatus.archived, user_id=current_user.id
    )


@router.delete("/{content_id}")
def delete_content(session: SessionDep, current_user: StaffUser, content_id: uuid.UUID) -> Message:
    content = _get_content(session, content_id)
    session.delete(content)
    crud.insert_activity_log(
        session=session,
        action="content_deleted",
        resource_type="content",
        resource_id=content_id,
        details={"title": content.title},
        user_id=current_user.id,
        commit=False,
    )
    session.commit()
    return Message(message="Content deleted successfully")
