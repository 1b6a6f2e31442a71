import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from sqlmodel import col, select

from bnrm import crud
from bnrm.api.deps import OptionalUser, SessionDep, StaffUser
from bnrm.library.search import ManuscriptPageMatches, generate_keywords, search_manuscript_pages
from bnrm.models import (
    AccessLevel,
    Manuscript,
    ManuscriptCreate,
    ManuscriptPage,
    ManuscriptPageUpsert,
    ManuscriptPublic,
    ManuscriptsPublic,
    ManuscriptUpdate,
    Message,
    User,
)

router = APIRouter(prefix="/manuscripts", tags=["manuscripts"])


def _can_read(manuscript: Manuscript, user: User | None) -> bool:
    if user is not None and user.is_staff:
        return True
    if not manuscript.is_visible:
        return False
    if user is None:
        return manuscript.access_level == AccessLevel.public
    return manuscript.access_level != AccessLevel.confidential


def _get_readable(session: SessionDep, manuscript_id: uuid.UUID, user: User | None) -> Manuscript:
    manuscript = session.get(Manuscript, manuscript_id)
    if not manuscript or not _can_read(manuscript, user):
        raise HTTPException(status_code=404, detail="Manuscript not found")
    return manuscript


@router.get("/", response_model=ManuscriptsPublic)
def read_manuscripts(
    session: SessionDep,
    current_user: OptionalUser,
    q: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> Any:
    """
    Catalogue listing. Anonymous visitors only see public, visible manuscripts.
    """
    statement = select(Manuscript)
    if current_user is None or not current_user.is_staff:
        statement = statement.where(Manuscript.is_visible == True)  # noqa: E712
        if current_user is None:
            statement = statement.where(Manuscript.access_level == AccessLevel.public)
        else:
            statement = statement.where(Manuscript.access_level != AccessLevel.confidential)
    if q:
        pattern = f"%{q.strip()}%"
        statement = statement.where(
            col(Manuscript.title).ilike(pattern) | col(Manuscript.author).ilike(pattern)
        )
    manuscripts = session.exec(statement.order_by(col(Manuscript.title))).all()
    return ManuscriptsPublic(data=manuscripts[skip : skip + limit], count=len(manuscripts))


@router.get("/{manuscript_id}", response_model=ManuscriptPublic)
def read_manuscript(session: SessionDep, current_user: OptionalUser, manuscript_id: uuid.UUID) -> Any:
    return _get_readable(session, manuscript_id, current_user)


@router.get("/{manuscript_id}/search", response_model=list[ManuscriptPageMatches])
def search_manuscript(
    session: SessionDep,
    current_user: OptionalUser,
    manuscript_id: uuid.UUID,
    q: str = Query(..., description="Text to look for in the page transcriptions"),
    context_words: int = Query(10, ge=0, le=50),
) -> Any:
    _get_readable(session, manuscript_id, current_user)
    return search_manuscript_pages(session, manuscript_id, q, context_words)


@router.post("/", response_model=ManuscriptPublic)
def create_manuscript(
    *, session: SessionDep, current_user: StaffUser, manuscript_in: ManuscriptCreate
) -> Any:
    manuscript = Manuscript.model_validate(
        manuscript_in,
        update={
            "created_by": current_user.id,
            "search_keywords": generate_keywords(manuscript_in.title, manuscript_in.description, manuscript_in.author),
        },
    )
    session.add(manuscript)
    crud.insert_activity_log(
        session=session,
        action="manuscript_created",
        resource_type="manuscript",
        resource_id=manuscript.id,
        details={"title": manuscript.title},
        user_id=current_user.id,
        commit=False,
    )
    session.commit()
    session.refresh(manuscript)
    return manuscript


@router.patch("/{manuscript_id}", response_model=ManuscriptPublic)
def update_manuscript(
    *,
    session: SessionDep,
    current_user: StaffUser,
    manuscript_id: uuid.UUID,
    manuscript_in: ManuscriptUpdate,
) -> Any:
    manuscript = session.get(Manuscript, manuscript_id)
    if not manuscript:
        raise HTTPException(status_code=404, detail="Manuscript not found")
    update_data = manuscript_in.model_dump(exclude_unset=True)
    manuscript.sqlmodel_update(update_data)
    manuscript.search_keywords = generate_keywords(manuscript.title, manuscript.description, manuscript.author)
    session.add(manuscript)
    crud.insert_activity_log(
        session=session,
        action="manuscript_updated",
        resource_type="manuscript",
        resource_id=manuscript.id,
        details={"fields": sorted(update_data)},
        user_id=current_user.id,
        commit=False,
    )
    session.commit()
    session.refresh(manuscript)
    return manuscript


@router.put("/{manuscript_id}/pages/{page_number}", response_model=ManuscriptPublic)
def upsert_manuscript_page(
    *,
    session: SessionDep,
    current_user: StaffUser,
    manuscript_id: uuid.UUID,
    page_number: int,
    page_in: ManuscriptPageUpsert,
) -> Any:
    """
    Create or replace the transcription of one page.
    """
    if page_number < 1:
        raise HTTPException(status_code=400, detail="Page numbers start at 1")
    manuscript = session.get(Manuscript, manuscript_id)
    if not manuscript:
        raise HTTPException(status_code=404, detail="Manuscript not found")

    page = session.exec(
        select(ManuscriptPage).where(
            ManuscriptPage.manuscript_id == manuscript_id, ManuscriptPage.page_number == page_number
        )
    ).first()
    if page is None:
        page = ManuscriptPage(manuscript_id=manuscript_id, page_number=page_number)
    page.sqlmodel_update(page_in.model_dump(exclude_unset=True))
    session.add(page)
    session.flush()

    texts = session.exec(
        select(ManuscriptPage.ocr_text).where(ManuscriptPage.manuscript_id == manuscript_id)
    ).all()
    manuscript.has_ocr = any(text and text.strip() for text in texts)
    manuscript.page_count = max(manuscript.page_count, page_number)
    session.add(manuscript)
    session.commit()
    session.refresh(manuscript)
    return manuscript


@router.delete("/{manuscript_id}")
def delete_manuscript(session: SessionDep, current_user: StaffUser, manuscript_id: uuid.UUID) -> Message:
    manuscript = session.get(Manuscript, manuscript_id)
    if not manuscript:
        raise HTTPException(status_code=404, detail="Manuscript not found")
    session.delete(manuscript)
    crud.insert_activity_log(
        session=session,
        action="manuscript_deleted",
        resource_type="manuscript",
        resource_id=manuscript_id,
        details={"title": manuscript.title},
        user_id=current_user.id,
        commit=False,
    )
    session.commit()
    return Message(message="Manuscript deleted successfully")
