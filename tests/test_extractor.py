from io import BytesIO

import pytest
from pypdf import PdfWriter

from ragcore.components.extraction.extractor import DOCX_MIME_TYPE, TextExtractor
from ragcore.utils.errors import ExtractionError
from ragcore.utils.text import content_hash


def test_plain_text_is_cleaned():
    data = "Line one.\r\n\r\n\r\n\r\nLine   two.".encode("utf-8")

    result = TextExtractor.extract_text(data, "notes.txt", "txt")

    assert result.text == "Line one. Line two."
    assert result.metadata["title"] == "notes.txt"
    assert result.metadata["file_type"] == "txt"
    assert result.metadata["word_count"] == 4
    assert result.metadata["char_count"] == len(result.text)
    assert result.metadata["content_hash"] == content_hash(result.text)


@pytest.mark.parametrize("file_type", ["pdf", ".PDF", "application/pdf", "docx", DOCX_MIME_TYPE, "txt", "text/plain"])
def test_supported_types(file_type):
    assert TextExtractor.is_supported(file_type)


@pytest.mark.parametrize("file_type", ["pptx", "image/png", "", None])
def test_unsupported_type_raises(file_type):
    assert not TextExtractor.is_supported(file_type)
    with pytest.raises(ExtractionError, match="Unsupported file type"):
        TextExtractor.extract_text(b"data", "file", file_type)


def test_invalid_utf8_raises_extraction_error():
    with pytest.raises(ExtractionError) as exc_info:
        TextExtractor.extract_text(b"\xff\xfe\xfa", "broken.txt", "txt")
    assert exc_info.value.file_type == "txt"
    assert exc_info.value.cause is not None


def test_corrupt_pdf_raises_extraction_error():
    with pytest.raises(ExtractionError) as exc_info:
        TextExtractor.extract_text(b"not a pdf at all", "broken.pdf", "pdf")
    assert exc_info.value.file_type == "pdf"


def test_corrupt_docx_raises_extraction_error():
    with pytest.raises(ExtractionError) as exc_info:
        TextExtractor.extract_text(b"not a zip archive", "broken.docx", DOCX_MIME_TYPE)
    assert exc_info.value.file_type == "docx"


def test_pdf_page_count():
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    writer.add_blank_page(width=612, height=792)
    buffer = BytesIO()
    writer.write(buffer)

    result = TextExtractor.extract_text(buffer.getvalue(), "blank.pdf", "application/pdf")

    assert result.text == ""
    assert result.metadata["page_count"] == 2
    assert result.metadata["file_type"] == "pdf"
    assert result.metadata["title"] == "blank.pdf"
