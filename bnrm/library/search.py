"""
In-document full-text search over OCR pages, snippet highlighting and the
keyword/language helpers used to tag catalogue records.
"""
import html
import re
import uuid

from pydantic import BaseModel, Field
from sqlmodel import Session, col, func, select

from bnrm.models import DigitalLibraryPage, ManuscriptPage

MIN_QUERY_LENGTH = 2
MAX_SNIPPETS_PER_PAGE = 5
SNIPPET_RADIUS = 60
MAX_KEYWORDS = 20

_STOP_WORDS = frozenset(
    {
        # French
        "le", "la", "les", "un", "une", "des", "du", "de", "et", "ou", "mais", "donc",
        "car", "ni", "or", "dans", "sur", "avec", "sans", "pour", "par", "vers", "chez",
        "sous", "entre", "pendant", "ce", "cette", "ces", "celui", "celle", "ceux",
        "celles", "qui", "que", "quoi", "dont", "où", "son", "sa", "ses", "mon", "ma",
        "mes", "ton", "ta", "tes", "notre", "nos", "votre", "vos", "leur", "leurs",
        "je", "tu", "il", "elle", "nous", "vous", "ils", "elles", "me", "te", "se",
        "être", "avoir", "faire", "dire", "aller", "voir", "savoir", "pouvoir",
        "falloir", "vouloir", "tout", "tous", "toute", "toutes", "autre", "autres",
        "même", "mêmes", "tel", "telle", "tels", "telles", "grand", "grande", "grands",
        "grandes", "petit", "petite", "petits", "petites", "bon", "bonne", "bons",
        "bonnes", "mauvais", "mauvaise", "mauvaises", "premier", "première",
        "premiers", "premières", "dernier", "dernière", "derniers", "dernières",
        "nouveau", "nouvelle", "nouveaux", "nouvelles", "ancien", "ancienne",
        "anciens", "anciennes",
        # English
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "up", "about", "into", "through", "during", "before",
        "after", "above", "below", "between", "is", "are", "was", "were", "be", "been",
        "being", "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "can", "shall", "this", "that", "these",
        "those", "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us",
        "them", "my", "your", "his", "its", "our", "their",
        # Arabic
        "في", "من", "إلى", "على", "عن", "مع", "بعد", "قبل", "تحت", "فوق", "بين", "خلال",
        "هذا", "هذه", "ذلك", "تلك", "التي", "الذي", "اللذان", "اللتان", "اللذين",
        "اللتين", "أن", "إن", "كان", "كانت", "ليس", "ليست", "لا", "ما", "لم", "لن",
        "قد", "لقد", "أنا", "أنت", "هو", "هي", "نحن", "أنتم", "هم", "هن",
    }
)

_KEYWORD_TOKEN = re.compile(r"[\w\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\u0590-\u05FF]{3,}")
_ARABIC_SCRIPT = re.compile(r"[\u0600-\u06FF]")
_TIFINAGH_SCRIPT = re.compile(r"[\u2D30-\u2D7F]")


class SnippetMatch(BaseModel):
    snippet: str
    position: int


class PageSearchResult(BaseModel):
    page_id: uuid.UUID
    page_number: int
    ocr_text: str
    match_count: int
    snippets: list[str] = Field(default_factory=list)
    highlighted_snippet: str | None = None


class ManuscriptPageMatches(BaseModel):
    page_id: uuid.UUID
    page_number: int
    matches: list[SnippetMatch] = Field(default_factory=list)


def _normalize_query(query: str | None) -> str:
    query = (query or "").strip()
    return query if len(query) >= MIN_QUERY_LENGTH else ""


def _word_context_snippets(text: str, query: str, context_words: int) -> list[SnippetMatch]:
    """Collect the matches of `query` with `context_words` words on each side."""
    snippets: list[SnippetMatch] = []
    for match in re.finditer(re.escape(query), text, re.IGNORECASE):
        before = text[: match.start()].split()[-context_words:] if context_words else []
        after = text[match.end():].split()[:context_words] if context_words else []
        snippet = " ".join([*before, match.group(0), *after])
        snippets.append(SnippetMatch(snippet=snippet, position=match.start()))
        if len(snippets) >= MAX_SNIPPETS_PER_PAGE:
            break
    return snippets


def _ocr_text_contains(column, query: str):
    return func.lower(column).contains(query.lower(), autoescape=True)


def search_digital_library_pages(
    session: Session,
    document_id: uuid.UUID,
    query: str | None,
    context_words: int = 10,
) -> list[PageSearchResult]:
    """
    Case-insensitive search over the OCR text of a document's pages.
    Queries shorter than two characters return nothing.
    """
    query = _normalize_query(query)
    if not query:
        return []

    statement = (
        select(DigitalLibraryPage)
        .where(
            DigitalLibraryPage.document_id == document_id,
            col(DigitalLibraryPage.ocr_text).is_not(None),
            _ocr_text_contains(col(DigitalLibraryPage.ocr_text), query),
        )
        .order_by(col(DigitalLibraryPage.page_number))
    )
    results: list[PageSearchResult] = []
    for page in session.exec(statement).all():
        text = page.ocr_text or ""
        match_count = len(re.findall(re.escape(query), text, re.IGNORECASE))
        if not match_count:
            continue
        results.append(
            PageSearchResult(
                page_id=page.id,
                page_number=page.page_number,
                ocr_text=text,
                match_count=match_count,
                snippets=[s.snippet for s in _word_context_snippets(text, query, context_words)],
            )
        )
    return results


def search_manuscript_pages(
    session: Session,
    manuscript_id: uuid.UUID,
    query: str | None,
    context_words: int = 10,
) -> list[ManuscriptPageMatches]:
    query = _normalize_query(query)
    if not query:
        return []

    statement = (
        select(ManuscriptPage)
        .where(
            ManuscriptPage.manuscript_id == manuscript_id,
            col(ManuscriptPage.ocr_text).is_not(None),
            _ocr_text_contains(col(ManuscriptPage.ocr_text), query),
        )
        .order_by(col(ManuscriptPage.page_number))
    )
    results: list[ManuscriptPageMatches] = []
    for page in session.exec(statement).all():
        matches = _word_context_snippets(page.ocr_text or "", query, context_words)
        if matches:
            results.append(
                ManuscriptPageMatches(page_id=page.id, page_number=page.page_number, matches=matches)
            )
    return results


def highlight_query(text: str | None, query: str | None) -> str:
    """Wrap every case-insensitive occurrence of `query` in <mark>, escaping the rest."""
    if not text:
        return ""
    if not query:
        return html.escape(text)

    parts = re.split(f"({re.escape(query)})", text, flags=re.IGNORECASE)
    highlighted: list[str] = []
    for index, part in enumerate(parts):
        # re.split puts the captured matches at odd indexes
        if index % 2:
            highlighted.append(f"<mark>{html.escape(part)}</mark>")
        else:
            highlighted.append(html.escape(part))
    return "".join(highlighted)


def get_context_snippet(text: str | None, query: str | None, max_length: int = 150) -> str:
    if not text:
        return ""

    index = text.lower().find((query or "").lower()) if query else -1
    if index == -1:
        return text[:max_length] + "..."

    start = max(0, index - SNIPPET_RADIUS)
    end = min(len(text), index + len(query) + SNIPPET_RADIUS)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def generate_keywords(title: str | None = "", content: str | None = "", excerpt: str | None = "") -> list[str]:
    text = f"{title or ''} {content or ''} {excerpt or ''}".lower()
    words = [w for w in _KEYWORD_TOKEN.findall(text) if w not in _STOP_WORDS]
    return list(dict.fromkeys(words))[:MAX_KEYWORDS]


def detect_language(text: str | None) -> str:
    if not text:
        return "fr"
    if _ARABIC_SCRIPT.search(text):
        return "ar"
    if _TIFINAGH_SCRIPT.search(text):
        return "ber"
    # Accented Latin and plain Latin both fall back to French
    return "fr"
