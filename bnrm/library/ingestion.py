import io
import logging

import pypdf
from pypdf.errors import PdfReadError
from sqlmodel import Session

from bnrm.library.ocr_detection import detect_ocr_text
from bnrm.models import DigitalLibraryDocument, DigitalLibraryPage

logger = logging.getLogger(__name__)


def extract_pdf_pages(content: bytes) -> list[str]:
    """Native text of every page of a PDF, empty strings for image-only pages."""
    try:
        reader = pypdf.PdfReader(io.BytesIO(content))
        return [(page.extract_text() or "").strip() for page in reader.pages]
    except PdfReadError as e:
        raise ValueError(f"Failed to parse PDF: {e}") from e


def ingest_pdf(
    *,
    session: Session,
    title: str,
    content: bytes,
    author: str | None = None,
    language: str | None = None,
    file_url: str | None = None,
) -> tuple[DigitalLibraryDocument, int]:
    """
    Store a PDF as a digital library document with one row per page that has text.
    Returns the document and the number of pages whose text looks like raw OCR.
    """
    pages = extract_pdf_pages(content)
    if not pages:
        raise ValueError("The PDF has no pages")

    document = DigitalLibraryDocument(
        title=title,
        author=author,
        language=language,
        file_url=file_url,
        pages_count=len(pages),
    )
    session.add(document)
    session.flush()

    likely_ocr = 0
    with_text = 0
    for page_number, text in enumerate(pages, start=1):
        if not text:
            continue
        with_text += 1
        if detect_ocr_text(text).is_likely_ocr:
            likely_ocr += 1
        session.add(DigitalLibraryPage(document_id=document.id, page_number=page_number, ocr_text=text))

    document.ocr_processed = with_text == len(pages)
    session.add(document)
    session.commit()
    session.refresh(document)
    logger.info(
        "Ingested document %s: %s page(s), %s with text, %s likely OCR",
        document.id,
        len(pages),
        with_text,
        likely_ocr,
    )
    return document, likely_ocr
