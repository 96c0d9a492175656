"""Text extraction for the document types accepted at upload."""

from __future__ import annotations

import io
import json
import re
from abc import ABC, abstractmethod
from typing import Any

from pypdf import PdfReader

from rag_assistant.errors import CorruptDocumentError, UnsupportedTypeError

_MIN_PDF_TEXT_CHARS = 50


class Extractor(ABC):
    """Turns raw document bytes into plain text."""

    file_types: tuple[str, ...] = ()

    @abstractmethod
    def extract(self, data: bytes) -> str:
        """Return the document text or raise ``CorruptDocumentError``."""


class PlainTextExtractor(Extractor):
    file_types = ("txt", "text", "log")

    def extract(self, data: bytes) -> str:
        return _decode_utf8(data)


class MarkdownExtractor(Extractor):
    file_types = ("md", "markdown")

    def extract(self, data: bytes) -> str:
        return _decode_utf8(data)


class JsonExtractor(Extractor):
    """JSON documents, normalized with sorted keys so reindexing is stable."""

    file_types = ("json",)

    def extract(self, data: bytes) -> str:
        try:
            payload: Any = json.loads(_decode_utf8(data))
        except json.JSONDecodeError as exc:
            raise CorruptDocumentError(f"Invalid JSON document: {exc}") from exc
        if isinstance(payload, (dict, list)):
            return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
        return str(payload)


class PdfExtractor(Extractor):
    file_types = ("pdf",)

    def extract(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as exc:
            raise CorruptDocumentError(f"PDF parsing error: {exc}") from exc

        text = normalize_whitespace(" ".join(pages))
        if len(text) < _MIN_PDF_TEXT_CHARS:
            raise CorruptDocumentError(
                "PDF text extraction failed - document appears to be empty or corrupted"
            )
        return text


class ExtractorRegistry:
    """Maps file type tags to extractor implementations."""

    def __init__(self, extractors: list[Extractor] | None = None) -> None:
        self._extractors: dict[str, Extractor] = {}
        for extractor in extractors or [
            PlainTextExtractor(),
            MarkdownExtractor(),
            JsonExtractor(),
            PdfExtractor(),
        ]:
            self.register(extractor)

    def register(self, extractor: Extractor) -> None:
        for file_type in extractor.file_types:
            self._extractors[file_type.lower()] = extractor

    @property
    def file_types(self) -> list[str]:
        return sorted(self._extractors)

    def extract_text(self, data: bytes, file_type: str) -> str:
        extractor = self._extractors.get(file_type.lower().lstrip("."))
        if extractor is None:
            raise UnsupportedTypeError(file_type)
        return extractor.extract(data)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces/tabs and blank lines; trim the ends."""
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text)
    return text.strip()


def _decode_utf8(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptDocumentError(f"Document is not valid UTF-8: {exc}") from exc
