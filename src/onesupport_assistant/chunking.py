"""
Text chunking for document indexing.

Splits extracted document text into overlapping character windows that are
embedded individually for retrieval.
"""

import re

_WHITESPACE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_BOUNDARIES = (". ", "? ", "! ", "\n")


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace, keeping single line breaks."""
    text = _WHITESPACE.sub(" ", text or "")
    text = _BLANK_LINES.sub("\n", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def _find_break(text: str, start: int, end: int) -> int:
    """Move a window end back to a sentence or word boundary in its last 20%."""
    floor = start + int((end - start) * 0.8)
    window = text[floor:end]

    best = -1
    for boundary in _BOUNDARIES:
        pos = window.rfind(boundary)
        if pos != -1:
            best = max(best, pos + len(boundary))
    if best > 0:
        return floor + best

    pos = window.rfind(" ")
    if pos > 0:
        return floor + pos + 1
    return end


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    overlap: int = 200,
    min_len: int = 80,
) -> list[str]:
    """
    Split text into overlapping chunks.

    Args:
        text: Raw text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared between consecutive chunks
        min_len: Chunks shorter than this are dropped, unless the text
            yields a single chunk

    Returns:
        List of chunk strings
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be between 0 and chunk_size")

    text = normalize_text(text)
    if not text:
        return []

    if len(text) <= chunk_size:
        return [text]

    chunks = []
    start = 0
    length = len(text)

    while start < length:
        end = min(start + chunk_size, length)
        if end < length:
            end = _find_break(text, start, end)

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= length:
            break
        # Always make progress even when the boundary search moved end back
        start = max(end - overlap, start + 1)

    kept = [c for c in chunks if len(c) >= min_len]
    if not kept and chunks:
        return [max(chunks, key=len)]
    return kept
