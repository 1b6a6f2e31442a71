"""
Batch OCR indexing: finds the pages of digital library documents that have no
OCR text yet, fetches their page images and runs them through the vision model.
"""
import asyncio
import logging
import uuid

import httpx
from pydantic import BaseModel, Field
from sqlmodel import Session, col, func, select

from bnrm.ai.llm_client import LLMClient
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError
from bnrm.models import DigitalLibraryDocument, DigitalLibraryPage

logger = logging.getLogger(__name__)

IMAGE_NAME_PATTERNS = (
    "page_{n}.jpg",
    "page_{n}.png",
    "img_p{n}_1.jpg",
    "img_p{n}_1.png",
)


class BatchOcrRequest(BaseModel):
    document_ids: list[uuid.UUID] = Field(default_factory=list)
    language: str = "ar"
    base_url: str | None = None


class DocumentOcrSummary(BaseModel):
    document_id: uuid.UUID
    title: str
    status: str = "processed"
    pages_processed: int = 0
    pages_skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class BatchOcrResult(BaseModel):
    message: str
    total_pages_processed: int = 0
    max_pages_per_run: int
    documents: list[DocumentOcrSummary] = Field(default_factory=list)


def candidate_image_urls(base_url: str, document_id: uuid.UUID, page_number: int) -> list[str]:
    root = f"{base_url.rstrip('/')}/digital-library-pages/{document_id}"
    return [f"{root}/{pattern.format(n=page_number)}" for pattern in IMAGE_NAME_PATTERNS]


async def find_page_image(client: httpx.AsyncClient, urls: list[str]) -> str | None:
    for url in urls:
        try:
            response = await client.head(url)
        except httpx.HTTPError:
            continue
        if response.is_success:
            return url
    return None


def missing_page_numbers(session: Session, document: DigitalLibraryDocument) -> list[int]:
    existing = set(
        session.exec(
            select(DigitalLibraryPage.page_number).where(DigitalLibraryPage.document_id == document.id)
        ).all()
    )
    return [n for n in range(1, document.pages_count + 1) if n not in existing]


def _documents_to_process(session: Session, document_ids: list[uuid.UUID]) -> list[DigitalLibraryDocument]:
    statement = select(DigitalLibraryDocument).where(
        col(DigitalLibraryDocument.deleted_at).is_(None),
        DigitalLibraryDocument.pages_count > 0,
    )
    if document_ids:
        statement = statement.where(col(DigitalLibraryDocument.id).in_(document_ids))
    return list(session.exec(statement.order_by(col(DigitalLibraryDocument.created_at))).all())


async def run_batch_ocr(
    *,
    session: Session,
    request: BatchOcrRequest,
    llm: LLMClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> BatchOcrResult:
    base_url = request.base_url or settings.PAGE_IMAGES_BASE_URL
    if not base_url:
        raise ValueError("baseUrl is required to locate page images")

    max_pages = settings.OCR_MAX_PAGES_PER_RUN
    documents = _documents_to_process(session, request.document_ids)
    if not documents:
        return BatchOcrResult(message="No documents to process", max_pages_per_run=max_pages)

    llm = llm or LLMClient(model_name=settings.MODEL_OCR)
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)

    result = BatchOcrResult(message="Batch OCR indexing completed", max_pages_per_run=max_pages)
    try:
        for document in documents:
            if result.total_pages_processed >= max_pages:
                logger.info("Reached max pages limit (%s), stopping", max_pages)
                break

            missing = missing_page_numbers(session, document)
            summary = DocumentOcrSummary(document_id=document.id, title=document.title)
            if not missing:
                summary.status = "already_indexed"
                result.documents.append(summary)
                continue

            logger.info("Document %s: %s page(s) to process", document.id, len(missing))
            for page_number in missing:
                if result.total_pages_processed >= max_pages:
                    break

                image_url = await find_page_image(
                    client, candidate_image_urls(base_url, document.id, page_number)
                )
                if not image_url:
                    logger.info("Document %s page %s: no image found", document.id, page_number)
                    summary.pages_skipped += 1
                    continue

                try:
                    image = await client.get(image_url)
                    image.raise_for_status()
                    text = await llm.extract_text_from_image(
                        image.content,
                        image.headers.get("content-type", "image/jpeg"),
                        request.language,
                    )
                except (httpx.HTTPError, GatewayError) as e:
                    logger.warning("Document %s page %s: OCR failed: %s", document.id, page_number, e)
                    summary.errors.append(f"Page {page_number}: {e}")
                    continue

                if text.strip():
                    session.add(
                        DigitalLibraryPage(
                            document_id=document.id, page_number=page_number, ocr_text=text.strip()
                        )
                    )
                    session.commit()
                    summary.pages_processed += 1
                    result.total_pages_processed += 1
                else:
                    summary.pages_skipped += 1

                await asyncio.sleep(settings.OCR_DELAY_BETWEEN_PAGES)

            indexed = session.exec(
                select(func.count())
                .select_from(DigitalLibraryPage)
                .where(DigitalLibraryPage.document_id == document.id)
            ).one()
            if indexed >= document.pages_count:
                document.ocr_processed = True
                session.add(document)
                session.commit()
                logger.info("Document %s: OCR processing complete", document.id)
            result.documents.append(summary)
    finally:
        if owns_client:
            await client.aclose()

    logger.info(
        "Batch OCR finished: %s page(s) over %s document(s)",
        result.total_pages_processed,
        len(result.documents),
    )
    return result
