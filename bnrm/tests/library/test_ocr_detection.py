import uuid

from sqlmodel import Session

from bnrm.library.ocr_detection import (
    analyze_document_ocr_quality,
    check_document_ocr_status,
    detect_ocr_text,
    get_ocr_status_message,
)
from bnrm.models import DigitalLibraryDocument, DigitalLibraryPage


def test_empty_text_is_not_ocr():
    for text in ("", "   \n\t", None):
        result = detect_ocr_text(text)
        assert result.is_likely_ocr is False
        assert result.confidence == 0
        assert result.issues == ["Texte vide"]


def test_clean_sentence_has_low_confidence():
    text = (
        "La Bibliothèque nationale du Royaume du Maroc conserve des manuscrits "
        "anciens et des ouvrages imprimés consultables par les chercheurs."
    )
    result = detect_ocr_text(text)
    assert result.confidence < 30
    assert result.is_likely_ocr is False
    assert result.stats.word_count == len(text.split())


def test_repeated_runs_raise_confidence():
    clean = "Le lecteur consulte un ouvrage rare dans la salle de lecture principale."
    noisy = clean + " aaaaaa bbbbbb cccccc"
    assert detect_ocr_text(noisy).confidence > detect_ocr_text(clean).confidence
    assert "Séquences de caractères répétés détectées" in detect_ocr_text(noisy).issues


def test_garbled_text_is_flagged_as_ocr():
    text = "\n".join(["ll1|I ~~ #@ aaaa", "0OO0 rn m", "x y z", "§§ ¤¤", "q w e", "IIll11", "r t"])
    result = detect_ocr_text(text)
    assert result.confidence >= 30
    assert result.is_likely_ocr is True


def test_accented_letters_count_as_special_characters():
    text = "Été à Montréal : l'élève préféré reçut un prix décerné à Québec."
    result = detect_ocr_text(text)
    assert result.stats.special_chars_ratio == 14 / len(text)
    assert any(issue.startswith("Ratio élevé de caractères spéciaux") for issue in result.issues)


def test_arabic_indic_digits_are_not_counted_as_digits():
    result = detect_ocr_text("صدر الظهير الشريف رقم ١٫٥٨٫٣٧٦ في سنة ١٩٥٨")
    assert result.stats.numeric_ratio == 0
    assert result.stats.special_chars_ratio == 0


def test_status_message_can_skip_from_80_percent():
    assert get_ocr_status_message(True, 10, 10).can_skip is True
    assert get_ocr_status_message(True, 10, 10).status == "Complet"
    assert get_ocr_status_message(True, 8, 10).can_skip is True
    assert get_ocr_status_message(True, 8, 10).status == "Quasi-complet"
    assert get_ocr_status_message(True, 7, 10).can_skip is False
    assert get_ocr_status_message(True, 7, 10).status == "Partiel"


def test_status_message_unprocessed():
    assert get_ocr_status_message(False, 5, 10).status == "Non traité"
    assert get_ocr_status_message(True, 0, 10).can_skip is False


def test_document_status_and_quality(db: Session):
    document = DigitalLibraryDocument(title=f"Registre {uuid.uuid4()}", pages_count=4)
    db.add(document)
    db.commit()
    db.add(DigitalLibraryPage(document_id=document.id, page_number=1, ocr_text="Texte propre de la page."))
    db.add(DigitalLibraryPage(document_id=document.id, page_number=2, ocr_text=""))
    db.add(DigitalLibraryPage(document_id=document.id, page_number=3, ocr_text="Une autre page lisible."))
    db.commit()

    status = check_document_ocr_status(db, document.id)
    assert status.has_ocr_pages is True
    assert status.ocr_pages_count == 2
    assert status.total_pages == 4
    assert status.coverage == 50

    quality = analyze_document_ocr_quality(db, document.id)
    assert quality.overall_quality == "good"
    assert [p.page_number for p in quality.page_results] == [1, 2, 3]


def test_quality_without_pages(db: Session):
    quality = analyze_document_ocr_quality(db, uuid.uuid4())
    assert quality.overall_quality == "none"
    assert quality.average_confidence == 0
