import uuid

from sqlmodel import Session

from bnrm.library.search import (
    detect_language,
    generate_keywords,
    get_context_snippet,
    highlight_query,
    search_digital_library_pages,
    search_manuscript_pages,
)
from bnrm.models import DigitalLibraryDocument, DigitalLibraryPage, Manuscript, ManuscriptPage


def test_highlight_query_is_case_insensitive_and_escapes():
    text = "Le <Coran> et le coran"
    assert highlight_query(text, "coran") == (
        "Le &lt;<mark>Coran</mark>&gt; et le <mark>coran</mark>"
    )


def test_highlight_query_without_query_or_text():
    assert highlight_query("a < b", "") == "a &lt; b"
    assert highlight_query("", "x") == ""
    assert highlight_query(None, "x") == ""


def test_highlight_query_escapes_regex_characters():
    assert highlight_query("prix (2024)", "(2024)") == "prix <mark>(2024)</mark>"


def test_context_snippet_around_match():
    text = "x" * 100 + "manuscrit" + "y" * 100
    snippet = get_context_snippet(text, "MANUSCRIT")
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "manuscrit" in snippet
    assert len(snippet) == 60 + len("manuscrit") + 60 + 6


def test_context_snippet_without_match():
    assert get_context_snippet("abc" * 100, "zzz", max_length=10) == "abcabcabca..."
    assert get_context_snippet("", "zzz") == ""


def test_generate_keywords_filters_stop_words_and_short_tokens():
    keywords = generate_keywords("Les manuscrits de Fès", "Les manuscrits andalous", "et le")
    assert keywords[0] == "manuscrits"
    assert keywords.count("manuscrits") == 1
    assert "les" not in keywords
    assert "de" not in keywords
    assert "andalous" in keywords


def test_generate_keywords_caps_at_twenty():
    text = " ".join(f"mot{i:03d}" for i in range(50))
    assert len(generate_keywords(text)) == 20


def test_detect_language():
    assert detect_language("المكتبة الوطنية") == "ar"
    assert detect_language("ⴰⵎⴰⵣⵉⵖ") == "ber"
    assert detect_language("Bibliothèque nationale") == "fr"
    assert detect_language("") == "fr"


def test_search_digital_library_pages(db: Session):
    document = DigitalLibraryDocument(title="Gazette", pages_count=3)
    db.add(document)
    db.commit()
    db.add(DigitalLibraryPage(document_id=document.id, page_number=2, ocr_text="Le Sultan et le sultanat"))
    db.add(DigitalLibraryPage(document_id=document.id, page_number=1, ocr_text="Chronique du sultan Moulay"))
    db.add(DigitalLibraryPage(document_id=document.id, page_number=3, ocr_text="Aucune mention ici"))
    db.commit()

    results = search_digital_library_pages(db, document.id, "sultan", context_words=1)
    assert [r.page_number for r in results] == [1, 2]
    assert results[0].match_count == 1
    assert results[0].snippets == ["du sultan Moulay"]
    assert results[1].match_count == 2


def test_search_ignores_short_queries(db: Session):
    assert search_digital_library_pages(db, uuid.uuid4(), "a") == []
    assert search_digital_library_pages(db, uuid.uuid4(), "  ") == []


def test_search_manuscript_pages(db: Session):
    manuscript = Manuscript(title="Kitab")
    db.add(manuscript)
    db.commit()
    db.add(ManuscriptPage(manuscript_id=manuscript.id, page_number=1, ocr_text="Traité de grammaire"))
    db.add(ManuscriptPage(manuscript_id=manuscript.id, page_number=2, ocr_text="Traité de logique"))
    db.commit()

    results = search_manuscript_pages(db, manuscript.id, "LOGIQUE", context_words=2)
    assert len(results) == 1
    assert results[0].page_number == 2
    assert results[0].matches[0].snippet == "Traité de logique"
    assert results[0].matches[0].position == len("Traité de ")
