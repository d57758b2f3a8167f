"""
Text extraction from uploaded file bytes (PDF, DOCX, plain text).
"""

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

import docx2txt
from pypdf import PdfReader

from ...models.schemas import ExtractionResult
from ...utils.errors import ExtractionError
from ...utils.text import content_hash, normalize_whitespace, word_count

logger = logging.getLogger(__name__)

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class BaseExtractor(ABC):
    """Turns raw file bytes into cleaned text plus file metadata."""

    file_type: str = ""

    @abstractmethod
    def _extract_raw(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        """Return the raw text and any format-specific metadata."""

    def extract(self, data: bytes, filename: str) -> ExtractionResult:
        try:
            raw_text, extra = self._extract_raw(data)
        except Exception as e:
            logger.error(f"Failed to extract text from {filename}: {str(e)}")
            raise ExtractionError(
                f"Failed to extract text from {self.file_type.upper()}: {str(e)}",
                self.file_type,
                cause=e
            ) from e

        text = normalize_whitespace(raw_text)
        metadata = {
            "title": extra.pop("title", None) or filename,
            **extra,
            "file_type": self.file_type,
            "content_hash": content_hash(text),
            "word_count": word_count(text),
            "char_count": len(text),
        }
        return ExtractionResult(text=text, metadata=metadata)


class PdfExtractor(BaseExtractor):
    file_type = "pdf"

    def _extract_raw(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        reader = PdfReader(BytesIO(data))
        text = ""
        for page in reader.pages:
            text += (page.extract_text() or "") + "\n"

        info = reader.metadata
        extra: Dict[str, Any] = {"page_count": len(reader.pages)}
        if info:
            extra["title"] = info.title
            if info.author:
                extra["author"] = info.author
            if info.creation_date:
                extra["creation_date"] = info.creation_date.isoformat()
        return text, extra


class DocxExtractor(BaseExtractor):
    file_type = "docx"

    def _extract_raw(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        return docx2txt.process(BytesIO(data)) or "", {}


class TxtExtractor(BaseExtractor):
    file_type = "txt"

    def _extract_raw(self, data: bytes) -> Tuple[str, Dict[str, Any]]:
        return data.decode("utf-8"), {}


class TextExtractor:
    """Dispatches to the extractor matching a file extension or MIME type."""

    _EXTRACTORS = {
        "pdf": PdfExtractor,
        "application/pdf": PdfExtractor,
        "docx": DocxExtractor,
        DOCX_MIME_TYPE: DocxExtractor,
        "txt": TxtExtractor,
        "text/plain": TxtExtractor,
    }

    @staticmethod
    def _normalize(file_type: Optional[str]) -> str:
        return (file_type or "").strip().lower().lstrip(".")

    @classmethod
    def is_supported(cls, file_type: Optional[str]) -> bool:
        return cls._normalize(file_type) in cls._EXTRACTORS

    @classmethod
    def get_extractor(cls, file_type: Optional[str]) -> BaseExtractor:
        extractor_cls = cls._EXTRACTORS.get(cls._normalize(file_type))
        if extractor_cls is None:
            raise ExtractionError(f"Unsupported file type: {file_type}", file_type or "")
        return extractor_cls()

    @classmethod
    def extract_text(cls, data: bytes, filename: str, file_type: str) -> ExtractionResult:
        extractor = cls.get_extractor(file_type)
        result = extractor.extract(data, filename)
        logger.info(
            f"Extracted {result.metadata['char_count']} characters from {filename} "
            f"({extractor.file_type})"
        )
        return result
