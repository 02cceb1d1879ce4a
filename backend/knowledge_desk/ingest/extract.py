"""Plain-text extraction for uploaded files."""

from __future__ import annotations

import io
from dataclasses import dataclass

from docx import Document as DocxDocument

from knowledge_desk.core.errors import UnsupportedFileTypeError
from knowledge_desk.utils.text import sanitize, snippet

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@dataclass(slots=True)
class ExtractedText:
    text: str
    snippet: str


class BaseExtractor:
    """Common extractor interface."""

    suffixes: tuple[str, ...] = ()
    mime_types: tuple[str, ...] = ()

    def can_extract(self, ext: str | None, mime: str | None) -> bool:
        if ext and ext.lower() in self.suffixes:
            return True
        return bool(mime) and mime in self.mime_types

    def extract(self, raw: bytes) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class PlainTextExtractor(BaseExtractor):
    suffixes = ("txt", "md", "markdown", "css", "html", "htm", "js", "py", "json", "csv", "log")
    mime_types = ("text/plain", "application/javascript", "application/json")

    def can_extract(self, ext: str | None, mime: str | None) -> bool:
        if super().can_extract(ext, mime):
            return True
        return bool(mime) and mime.startswith("text/")

    def extract(self, raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace")


class DocxExtractor(BaseExtractor):
    suffixes = ("docx",)
    mime_types = (DOCX_MIME,)

    def extract(self, raw: bytes) -> str:
        document = DocxDocument(io.BytesIO(raw))
        return "\n\n".join(para.text for para in document.paragraphs if para.text.strip())


class ExtractorRegistry:
    """Registry that selects an extractor for an extension or mime type."""

    def __init__(self, max_chars: int = 200_000) -> None:
        self.max_chars = max_chars
        self._extractors: list[BaseExtractor] = [DocxExtractor(), PlainTextExtractor()]

    def for_type(self, ext: str | None, mime: str | None) -> BaseExtractor | None:
        for extractor in self._extractors:
            if extractor.can_extract(ext, mime):
                return extractor
        return None

    def extract(self, raw: bytes, ext: str | None, mime: str | None) -> ExtractedText:
        extractor = self.for_type(ext, mime)
        if extractor is None:
            raise UnsupportedFileTypeError(ext, mime)
        text = sanitize(extractor.extract(raw), max_chars=self.max_chars)
        return ExtractedText(text=text, snippet=snippet(text))


__all__ = ["ExtractorRegistry", "ExtractedText", "BaseExtractor", "PlainTextExtractor", "DocxExtractor"]
