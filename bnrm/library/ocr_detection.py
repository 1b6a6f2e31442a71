"""
Heuristics telling OCR output apart from native text, plus OCR coverage
reporting for digital library documents.
"""
import re
import uuid
from typing import Literal

from pydantic import BaseModel, Field
from sqlmodel import Session, col, func, select

from bnrm.models import DigitalLibraryDocument, DigitalLibraryPage

OCR_CONFIDENCE_THRESHOLD = 30
QUALITY_SAMPLE_PAGES = 10

_SPECIAL_CHARS = re.compile(r"""[^A-Za-z0-9_\s\u0600-\u06FF\u0750-\u077F.,;:!?'"()\-]""")
_REPEATED_CHARS = re.compile(r"(.)\1{3,}")
_DIGITS = re.compile(r"[0-9]")
_UPPERCASE = re.compile(r"[A-Z\u0621-\u064A]")
_LOWERCASE = re.compile(r"[a-z]")
_ALLOWED_SINGLE_LETTERS = re.compile(r"^[aA\u00e0\u00c01-9\u064A\u0648]$")

# Character confusions typical of OCR engines
_OCR_PATTERNS = (
    re.compile(r"[l1|I][l1|I]{2,}"),  # l / 1 / I
    re.compile(r"[0O][0O]{2,}"),  # 0 / O
    re.compile(r"[rn]m|m[rn]"),  # rn / m
    re.compile(r"\b[A-Z]{1,2}\d+[A-Z]{1,2}\b", re.ASCII),  # mixed codes
    re.compile(r"[.,;:]{3,}"),  # repeated punctuation
    re.compile(r"\s{3,}"),  # runs of spaces
)


class OcrQualityStats(BaseModel):
    total_chars: int = 0
    suspicious_patterns: int = 0
    word_count: int = 0
    avg_word_length: float = 0
    special_chars_ratio: float = 0
    numeric_ratio: float = 0
    uppercase_ratio: float = 0
    repeated_chars_ratio: float = 0


class OcrQualityResult(BaseModel):
    is_likely_ocr: bool
    confidence: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    stats: OcrQualityStats = Field(default_factory=OcrQualityStats)


class OcrStatusMessage(BaseModel):
    status: str
    description: str
    can_skip: bool


class DocumentOcrStatus(BaseModel):
    has_ocr_pages: bool
    ocr_pages_count: int
    total_pages: int
    coverage: float


class PageQuality(BaseModel):
    page_number: int
    quality: OcrQualityResult


class DocumentOcrQuality(BaseModel):
    overall_quality: Literal["good", "medium", "poor", "none"]
    average_confidence: float
    page_results: list[PageQuality] = Field(default_factory=list)


def detect_ocr_text(text: str | None) -> OcrQualityResult:
    """
    Score how likely a text is raw OCR output rather than native text.
    Each failed check adds to a suspicion score; 30 or more flags the text.
    """
    if not text or not text.strip():
        return OcrQualityResult(is_likely_ocr=False, confidence=0, issues=["Texte vide"])

    issues: list[str] = []
    score = 0

    total_chars = len(text)
    words = text.split()
    word_count = len(words)
    avg_word_length = sum(len(w) for w in words) / word_count if word_count else 0

    special_chars_ratio = len(_SPECIAL_CHARS.findall(text)) / total_chars
    if special_chars_ratio > 0.05:
        issues.append(f"Ratio élevé de caractères spéciaux: {special_chars_ratio * 100:.1f}%")
        score += 15

    repeated_runs = sum(1 for _ in _REPEATED_CHARS.finditer(text))
    repeated_chars_ratio = repeated_runs / max(1, word_count)
    if repeated_chars_ratio > 0.02:
        issues.append("Séquences de caractères répétés détectées")
        score += 20

    long_words = [w for w in words if len(w) > 25]
    if len(long_words) > word_count * 0.01:
        issues.append(f"Mots anormalement longs détectés: {len(long_words)}")
        score += 15

    numeric_ratio = len(_DIGITS.findall(text)) / total_chars
    if 0.15 < numeric_ratio < 0.8:
        issues.append(f"Ratio de chiffres suspect: {numeric_ratio * 100:.1f}%")
        score += 10

    uppercase = len(_UPPERCASE.findall(text))
    lowercase = len(_LOWERCASE.findall(text))
    uppercase_ratio = uppercase / (uppercase + lowercase) if lowercase else 0
    if 0.4 < uppercase_ratio < 0.95:
        issues.append(f"Ratio de majuscules inhabituel: {uppercase_ratio * 100:.1f}%")
        score += 10

    pattern_matches = sum(len(pattern.findall(text)) for pattern in _OCR_PATTERNS)
    if pattern_matches > 5:
        issues.append(f"Patterns OCR détectés: {pattern_matches}")
        score += min(25, pattern_matches * 2)

    lines = [line for line in text.split("\n") if line.strip()]
    short_lines = [line for line in lines if len(line) < 10]
    if len(lines) > 5 and len(short_lines) / len(lines) > 0.3:
        issues.append("Nombreuses lignes fragmentées")
        score += 15

    single_letter_words = [
        w for w in words if len(w) == 1 and not _ALLOWED_SINGLE_LETTERS.match(w)
    ]
    if len(single_letter_words) / word_count > 0.1:
        issues.append("Excès de mots d'une seule lettre")
        score += 15

    confidence = min(100, max(0, score))
    return OcrQualityResult(
        is_likely_ocr=confidence >= OCR_CONFIDENCE_THRESHOLD,
        confidence=confidence,
        issues=issues,
        stats=OcrQualityStats(
            total_chars=total_chars,
            suspicious_patterns=pattern_matches,
            word_count=word_count,
            avg_word_length=avg_word_length,
            special_chars_ratio=special_chars_ratio,
            numeric_ratio=numeric_ratio,
            uppercase_ratio=uppercase_ratio,
            repeated_chars_ratio=repeated_chars_ratio,
        ),
    )


def get_ocr_status_message(
    ocr_processed: bool, ocr_pages_count: int, total_pages: int
) -> OcrStatusMessage:
    if not ocr_processed or ocr_pages_count == 0:
        return OcrStatusMessage(
            status="Non traité",
            description="Ce document n'a pas encore été OCRisé.",
            can_skip=False,
        )

    coverage = (ocr_pages_count / total_pages) * 100 if total_pages > 0 else 0

    if coverage >= 100:
        return OcrStatusMessage(
            status="Complet",
            description=f"Toutes les {total_pages} pages ont été OCRisées.",
            can_skip=True,
        )
    if coverage >= 80:
        return OcrStatusMessage(
            status="Quasi-complet",
            description=f"{ocr_pages_count}/{total_pages} pages OCRisées ({coverage:.0f}%).",
            can_skip=True,
        )
    return OcrStatusMessage(
        status="Partiel",
        description=f"Seulement {ocr_pages_count}/{total_pages} pages OCRisées ({coverage:.0f}%).",
        can_skip=False,
    )


def count_ocr_pages(session: Session, document_id: uuid.UUID) -> int:
    statement = (
        select(func.count())
        .select_from(DigitalLibraryPage)
        .where(
            DigitalLibraryPage.document_id == document_id,
            col(DigitalLibraryPage.ocr_text).is_not(None),
            DigitalLibraryPage.ocr_text != "",
        )
    )
    return session.exec(statement).one()


def check_document_ocr_status(session: Session, document_id: uuid.UUID) -> DocumentOcrStatus:
    document = session.get(DigitalLibraryDocument, document_id)
    total_pages = document.pages_count if document else 0
    ocr_pages_count = count_ocr_pages(session, document_id)
    coverage = (ocr_pages_count / total_pages) * 100 if total_pages > 0 else 0
    return DocumentOcrStatus(
        has_ocr_pages=ocr_pages_count > 0,
        ocr_pages_count=ocr_pages_count,
        total_pages=total_pages,
        coverage=coverage,
    )


def analyze_document_ocr_quality(session: Session, document_id: uuid.UUID) -> DocumentOcrQuality:
    """Score the first pages of a document and grade the OCR it holds."""
    statement = (
        select(DigitalLibraryPage)
        .where(DigitalLibraryPage.document_id == document_id)
        .order_by(col(DigitalLibraryPage.page_number))
        .limit(QUALITY_SAMPLE_PAGES)
    )
    pages = session.exec(statement).all()
    if not pages:
        return DocumentOcrQuality(overall_quality="none", average_confidence=0)

    page_results = [
        PageQuality(page_number=page.page_number, quality=detect_ocr_text(page.ocr_text or ""))
        for page in pages
    ]
    confidences = [p.quality.confidence for p in page_results if p.quality.is_likely_ocr]
    average_confidence = sum(confidences) / len(confidences) if confidences else 0

    if average_confidence < 20:
        overall_quality = "good"
    elif average_confidence < 50:
        overall_quality = "medium"
    else:
        overall_quality = "poor"

    return DocumentOcrQuality(
        overall_quality=overall_quality,
        average_confidence=average_confidence,
        page_results=page_results,
    )
