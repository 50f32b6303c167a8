"""
Splits page text into overlapping segments for embedding.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import CHUNK_CHARS, CHUNK_OVERLAP_CHARS

_WHITESPACE = (" ", "\n", "\t", "\r")


@dataclass(frozen=True)
class TextChunk:
    text: str
    page_number: Optional[int]
    # Window offsets in the page text, before trimming
    start: int
    end: int


def _last_whitespace(text: str, lo: int, end: int) -> int:
    """Index of the last whitespace in text[lo:end], or -1."""
    return max(text.rfind(ch, lo, end) for ch in _WHITESPACE)


def chunk_text(
    text: str,
    page_number: Optional[int],
    chunk_chars: int = CHUNK_CHARS,
    overlap_chars: int = CHUNK_OVERLAP_CHARS,
) -> List[TextChunk]:
    """
    Split text into windows of at most chunk_chars characters.

    A window that does not reach the end of the text is cut just after its
    last whitespace, so words are not split. Whitespace inside the overlap
    region is ignored, since cutting there would not get past the previous
    window; without other whitespace the window is hard-cut at chunk_chars.
    Consecutive windows overlap by exactly overlap_chars. Windows that are
    empty after trimming are dropped.
    """
    if chunk_chars <= 0:
        raise ValueError("chunk_chars must be positive")
    if not 0 <= overlap_chars < chunk_chars:
        raise ValueError("overlap_chars must be in [0, chunk_chars)")

    chunks: List[TextChunk] = []
    n = len(text)
    start = 0
    while start < n:
        end = min(start + chunk_chars, n)
        if end < n:
            k = _last_whitespace(text, start + max(overlap_chars, 1), end)
            if k >= 0:
                end = k + 1

        piece = text[start:end].strip()
        if piece:
            chunks.append(TextChunk(text=piece, page_number=page_number, start=start, end=end))

        if end >= n:
            break
        # end > start + overlap_chars, so this always moves forward
        start = end - overlap_chars

    return chunks


def chunk_pages(pages: Iterable, chunk_chars: int = CHUNK_CHARS,
                overlap_chars: int = CHUNK_OVERLAP_CHARS) -> List[TextChunk]:
    """Chunk every page in order; pages are objects with page_number and text."""
    chunks: List[TextChunk] = []
    for page in pages:
        chunks.extend(chunk_text(page.text, page.page_number, chunk_chars, overlap_chars))
    return chunks
