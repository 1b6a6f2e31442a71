import io
import uuid
from unittest.mock import patch

import pypdf
from fastapi.testclient import TestClient
from sqlmodel import Session

from bnrm.core.config import settings
from bnrm.models import DigitalLibraryPage

URL = f"{settings.API_V1_STR}/digital-library"


def _blank_pdf(pages: int) -> bytes:
    writer = pypdf.PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _upload(client: TestClient, headers: dict[str, str], content: bytes, content_type: str = "application/pdf"):
    return client.post(
        f"{URL}/",
        headers=headers,
        data={"title": "Bulletin officiel 1956", "language": "fr"},
        files={"file": ("bulletin.pdf", content, content_type)},
    )


def test_upload_requires_pdf(client: TestClient, librarian_token_headers: dict[str, str]) -> None:
    r = _upload(client, librarian_token_headers, b"plain text", "text/plain")
    assert r.status_code == 400
    r = _upload(client, librarian_token_headers, b"not a pdf at all")
    assert r.status_code == 400


def test_scanned_document_lifecycle(
    client: TestClient, librarian_token_headers: dict[str, str], db: Session
) -> None:
    r = _upload(client, librarian_token_headers, _blank_pdf(2))
    assert r.status_code == 200
    document = r.json()["document"]
    assert document["pages_count"] == 2
    assert document["ocr_processed"] is False

    r = client.get(f"{URL}/{document['id']}/search", params={"q": "dahir"})
    assert r.status_code == 409

    db.add(
        DigitalLibraryPage(
            document_id=uuid.UUID(document["id"]),
            page_number=1,
            ocr_text="Le dahir du 15 novembre 1958 réglemente les associations.",
        )
    )
    db.commit()

    r = client.get(f"{URL}/{document['id']}/ocr-status")
    assert r.status_code == 200
    assert r.json()["ocr"]["ocr_pages_count"] == 1

    r = client.get(f"{URL}/{document['id']}/search", params={"q": "dahir"})
    assert r.status_code == 200
    results = r.json()
    assert results[0]["match_count"] == 1
    assert "<mark>dahir</mark>" in results[0]["highlighted_snippet"]

    r = client.get(f"{URL}/{document['id']}/search", params={"q": "  dahir "})
    assert r.status_code == 200
    assert r.json()[0]["highlighted_snippet"] == results[0]["highlighted_snippet"]

    r = client.delete(f"{URL}/{document['id']}", headers=librarian_token_headers)
    assert r.status_code == 200
    assert client.get(f"{URL}/{document['id']}").status_code == 404
    assert document["id"] not in [d["id"] for d in client.get(f"{URL}/").json()]


def test_batch_ocr_without_base_url(client: TestClient, librarian_token_headers: dict[str, str]) -> None:
    with patch("bnrm.library.ocr_indexing.settings.PAGE_IMAGES_BASE_URL", None):
        r = client.post(f"{URL}/batch-ocr", headers=librarian_token_headers, json={})
    assert r.status_code == 400
