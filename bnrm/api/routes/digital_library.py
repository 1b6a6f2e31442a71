import uuid
from typing import Any

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel
from sqlmodel import col, select

from bnrm import crud
from bnrm.api.deps import SessionDep, StaffUser
from bnrm.core.errors import GatewayError
from bnrm.library.ingestion import ingest_pdf
from bnrm.library.ocr_detection import (
    DocumentOcrQuality,
    DocumentOcrStatus,
    OcrStatusMessage,
    analyze_document_ocr_quality,
    check_document_ocr_status,
    get_ocr_status_message,
)
from bnrm.library.ocr_indexing import BatchOcrRequest, BatchOcrResult, run_batch_ocr
from bnrm.library.search import (
    PageSearchResult,
    get_context_snippet,
    highlight_query,
    search_digital_library_pages,
)
from bnrm.models import DigitalLibraryDocument, DigitalLibraryDocumentPublic, Message, get_datetime_utc

router = APIRouter(prefix="/digital-library", tags=["digital-library"])


class DocumentUploadResult(BaseModel):
    document: DigitalLibraryDocumentPublic
    likely_ocr_pages: int


class OcrStatusResponse(BaseModel):
    ocr: DocumentOcrStatus
    message: OcrStatusMessage


def _get_document(session: SessionDep, document_id: uuid.UUID) -> DigitalLibraryDocument:
    document = session.get(DigitalLibraryDocument, document_id)
    if not document or document.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@router.get("/", response_model=list[DigitalLibraryDocumentPublic])
def read_documents(session: SessionDep, skip: int = 0, limit: int = 50) -> Any:
    statement = (
        select(DigitalLibraryDocument)
        .where(col(DigitalLibraryDocument.deleted_at).is_(None))
        .order_by(col(DigitalLibraryDocument.created_at).desc())
        .offset(skip)
        .limit(limit)
    )
    return session.exec(statement).all()


@router.get("/{document_id}", response_model=DigitalLibraryDocumentPublic)
def read_document(session: SessionDep, document_id: uuid.UUID) -> Any:
    return _get_document(session, document_id)


@router.post("/", response_model=DocumentUploadResult)
async def upload_document(
    *,
    session: SessionDep,
    current_user: StaffUser,
    title: str = Form(...),
    author: str | None = Form(None),
    language: str | None = Form(None),
    file: UploadFile = File(...),
) -> Any:
    """
    Upload a PDF, store the native text of each page and score it for OCR noise.
    """
    if file.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {file.content_type}")
    content = await file.read()
    try:
        document, likely_ocr = ingest_pdf(
            session=session, title=title, content=content, author=author, language=language
        )
    except ValueError as e:
        session.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    crud.insert_activity_log(
        session=session,
        action="digital_document_uploaded",
        resource_type="digital_library_document",
        resource_id=document.id,
        details={"filename": file.filename, "pages": document.pages_count},
        user_id=current_user.id,
    )
    return DocumentUploadResult(
        document=DigitalLibraryDocumentPublic.model_validate(document), likely_ocr_pages=likely_ocr
    )


@router.get("/{document_id}/search", response_model=list[PageSearchResult])
def search_document(
    session: SessionDep,
    document_id: uuid.UUID,
    q: str = Query(..., description="Text to look for in the page OCR"),
    context_words: int = Query(10, ge=0, le=50),
) -> Any:
    """
    Search inside one document. Each result carries a highlighted snippet.
    """
    _get_document(session, document_id)
    status = check_document_ocr_status(session, document_id)
    if not status.has_ocr_pages:
        raise HTTPException(
            status_code=409,
            detail="This document has not been OCR-processed yet, in-document search is unavailable.",
        )

    q = q.strip()
    results = search_digital_library_pages(session, document_id, q, context_words)
    for result in results:
        result.highlighted_snippet = highlight_query(get_context_snippet(result.ocr_text, q), q)
    return results


@router.get("/{document_id}/ocr-status", response_model=OcrStatusResponse)
def read_ocr_status(session: SessionDep, document_id: uuid.UUID) -> Any:
    document = _get_document(session, document_id)
    status = check_document_ocr_status(session, document_id)
    return OcrStatusResponse(
        ocr=status,
        message=get_ocr_status_message(document.ocr_processed, status.ocr_pages_count, status.total_pages),
    )


@router.get("/{document_id}/ocr-quality", response_model=DocumentOcrQuality)
def read_ocr_quality(session: SessionDep, current_user: StaffUser, document_id: uuid.UUID) -> Any:
    _get_document(session, document_id)
    return analyze_document_ocr_quality(session, document_id)


@router.post("/batch-ocr", response_model=BatchOcrResult)
async def batch_ocr(session: SessionDep, current_user: StaffUser, request: BatchOcrRequest) -> Any:
    """
    Run the vision OCR model over pages that have no text yet.
    """
    try:
        result = await run_batch_ocr(session=session, request=request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    crud.insert_activity_log(
        session=session,
        action="batch_ocr_indexing",
        resource_type="digital_library_document",
        details={"pages_processed": result.total_pages_processed, "documents": len(result.documents)},
        user_id=current_user.id,
    )
    return result


@router.delete("/{document_id}")
def delete_document(session: SessionDep, current_user: StaffUser, document_id: uuid.UUID) -> Message:
    document = _get_document(session, document_id)
    document.deleted_at = get_datetime_utc()
    session.add(document)
    crud.insert_activity_log(
        session=session,
        action="digital_document_deleted",
        resource_type="digital_library_document",
        resource_id=document.id,
        user_id=current_user.id,
        commit=False,
    )
    session.commit()
    return Message(message="Document deleted successfully")
