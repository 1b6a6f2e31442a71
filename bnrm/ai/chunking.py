"""Split knowledge-base prose into overlapping chunks for the vector index."""

# Paragraph breaks first, then sentence ends (Latin and Arabic), then any space
_BREAK_PREFERENCE = ("\n\n", "\n", ". ", "! ", "? ", "؟ ", "۔ ", "، ", " ")
# How far back from the hard limit a break may be searched for
_LOOKBACK = 200


def _find_break(text: str, start: int, end: int) -> int:
    floor = max(start + 1, end - _LOOKBACK)
    for separator in _BREAK_PREFERENCE:
        index = text.rfind(separator, floor, end)
        if index != -1:
            return index + len(separator)
    return end


def chunk_text(text: str | None, chunk_size: int = 1200, overlap: int = 120) -> list[str]:
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    text = (text or "").strip()
    if not text:
        return []

    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            end = _find_break(text, start, end)
        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)
    return chunks
