"""Text extraction — one extractor per mime type, resolved up front.

:class:`TextExtractorRegistry` maps a normalised mime type to a
:class:`TextExtractor`.  The mapping is fixed when the registry is built,
so an unsupported type fails with :class:`UnsupportedMimeTypeError` before
any parsing happens.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping

import docx
from pypdf import PdfReader

from kb_ingest.errors import UnsupportedMimeTypeError

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC = "application/msword"
PLAIN_TEXT = "text/plain"
MARKDOWN = "text/markdown"


def normalize_mime_type(mime_type: str) -> str:
    """Drop parameters (``; charset=...``) and lower-case."""
    return mime_type.split(";")[0].strip().lower()


class TextExtractor(ABC):
    """Turns the raw bytes of one file format into plain text."""

    @abstractmethod
    def extract(self, data: bytes) -> str:
        ...


class PdfExtractor(TextExtractor):
    """Concatenates the text layer of every page (pypdf)."""

    def extract(self, data: bytes) -> str:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        logger.debug("Extracted %d PDF pages", len(pages))
        return "\n\n".join(p for p in pages if p.strip())


class DocxExtractor(TextExtractor):
    """Word paragraphs joined by blank lines (python-docx)."""

    def extract(self, data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        paragraphs = [p.text for p in document.paragraphs if p.text and not p.text.isspace()]
        return "\n\n".join(paragraphs)


class PlainTextExtractor(TextExtractor):
    """UTF-8 text and Markdown; a leading BOM is dropped."""

    def extract(self, data: bytes) -> str:
        return data.decode("utf-8-sig", errors="replace")


def default_extractors() -> dict[str, TextExtractor]:
    pdf, word, text = PdfExtractor(), DocxExtractor(), PlainTextExtractor()
    return {
        PDF: pdf,
        DOCX: word,
        DOC: word,
        PLAIN_TEXT: text,
        MARKDOWN: text,
    }


class TextExtractorRegistry:
    """Dispatches extraction on mime type.

    Parameters
    ----------
    extractors:
        Mime type → extractor.  Defaults to PDF, DOCX/DOC, plain text and
        Markdown.
    """

    def __init__(self, extractors: Mapping[str, TextExtractor] | None = None) -> None:
        source = default_extractors() if extractors is None else extractors
        self._extractors = {normalize_mime_type(k): v for k, v in source.items()}

    @property
    def supported_types(self) -> list[str]:
        return sorted(self._extractors)

    def get(self, mime_type: str) -> TextExtractor:
        extractor = self._extractors.get(normalize_mime_type(mime_type))
        if extractor is None:
            raise UnsupportedMimeTypeError(mime_type)
        return extractor

    async def extract(self, data: bytes, mime_type: str) -> str:
        """Extract text off the event loop; parsers are CPU-bound."""
        extractor = self.get(mime_type)
        return await asyncio.to_thread(extractor.extract, data)
