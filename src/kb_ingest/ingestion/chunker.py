"""Paragraph-aware text chunking with overlap.

Text is packed greedily at the coarsest unit that fits: paragraphs first,
sentences for paragraphs longer than ``chunk_size``, and fixed-width
character windows for sentences that still do not fit.  Whenever a chunk
is flushed, the next one starts with the last ``overlap`` characters of the
flushed chunk so retrieval keeps some context across boundaries.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Callable

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_PARAGRAPH_BREAK = re.compile(r"\n[^\S\n]*\n\s*")
_SENTENCE = re.compile(r"[^。！？；.!?;]+[。！？；.!?;]*|[。！？；.!?;]+")
_CJK_TERMINALS = "。！？；"


def _clean(text: str) -> str:
    """Unicode NFC, ``\\n`` line endings, no control chars."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _CONTROL_CHARS.sub("", text)


def _flatten(text: str) -> str:
    return " ".join(text.split())


def normalize_text(text: str) -> str:
    """Return *text* as a chunk would hold it: every whitespace run is one space."""
    return _flatten(_clean(text))


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines; each paragraph is whitespace-flattened."""
    paragraphs = (_flatten(p) for p in _PARAGRAPH_BREAK.split(_clean(text)))
    return [p for p in paragraphs if p]


def split_sentences(paragraph: str) -> list[str]:
    """Split at Chinese / English terminal punctuation, keeping the terminator."""
    sentences = (s.strip() for s in _SENTENCE.findall(paragraph))
    return [s for s in sentences if s]


def _join(left: str, right: str) -> str:
    if not left:
        return right
    # CJK text does not separate sentences with spaces.
    if left[-1] in _CJK_TERMINALS:
        return left + right
    return f"{left} {right}"


def _tail(chunk: str, overlap: int) -> str:
    return chunk[-overlap:].lstrip() if overlap > 0 else ""


def _slice(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Fixed-width windows; consecutive windows share ``overlap`` characters."""
    step = chunk_size - overlap
    windows: list[str] = []
    for start in range(0, len(text), step):
        window = text[start : start + chunk_size]
        if window.strip():
            windows.append(window)
        if start + chunk_size >= len(text):
            break
    return windows


def _pack(
    units: list[str],
    chunk_size: int,
    overlap: int,
    split_oversized: Callable[[str], list[str]],
) -> list[str]:
    """Greedily accumulate *units* into chunks of at most *chunk_size* chars."""
    chunks: list[str] = []
    current = ""
    # True once ``current`` holds more than the overlap carried from the last flush.
    dirty = False

    for unit in units:
        if len(unit) > chunk_size:
            if dirty:
                chunks.append(current)
            chunks.extend(split_oversized(unit))
            current, dirty = (_tail(chunks[-1], overlap) if chunks else ""), False
            continue

        candidate = _join(current, unit)
        if len(candidate) <= chunk_size:
            current, dirty = candidate, True
            continue

        if dirty:
            chunks.append(current)
            seeded = _join(_tail(current, overlap), unit)
            current = seeded if len(seeded) <= chunk_size else unit
        else:
            current = unit
        dirty = True

    if dirty:
        chunks.append(current)
    return chunks


def split_into_chunks(text: str, chunk_size: int = 500, overlap: int = 100) -> list[str]:
    """Split *text* into ordered, overlapping chunks.

    Parameters
    ----------
    text:
        Raw extracted text.
    chunk_size:
        Maximum number of characters per chunk.
    overlap:
        Number of trailing characters of a flushed chunk repeated at the
        start of the next one.

    Returns
    -------
    list[str]
        Non-empty chunks in document order; ``[]`` for blank input.  Text
        that already fits in one chunk comes back as ``[normalize_text(text)]``.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"overlap ({overlap}) must be >= 0 and < chunk_size ({chunk_size})")

    normalized = normalize_text(text)
    if not normalized:
        return []
    if len(normalized) <= chunk_size:
        return [normalized]

    def by_characters(sentence: str) -> list[str]:
        return _slice(sentence, chunk_size, overlap)

    def by_sentences(paragraph: str) -> list[str]:
        return _pack(split_sentences(paragraph), chunk_size, overlap, by_characters)

    return _pack(split_paragraphs(text), chunk_size, overlap, by_sentences)
