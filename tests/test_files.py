"""
Tests for uploaded file text extraction.
"""

import docx
import fitz
import pytest

from widget_rag.errors import InputError
from widget_rag.ingestion.files import (
    CSV, DOCX, MAX_FILE_BYTES, PDF, TEXT, extract_text_from_file, is_supported, validate_upload,
)


def test_plain_text(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("Opening hours: 9-5.\nClosed Sundays.", encoding="utf-8")
    assert extract_text_from_file(str(path), TEXT) == "Opening hours: 9-5.\nClosed Sundays."


def test_csv_is_read_as_text(tmp_path):
    path = tmp_path / "prices.csv"
    path.write_text("item,price\nbread,3\n", encoding="utf-8")
    assert "bread,3" in extract_text_from_file(str(path), CSV)


def test_word_document(tmp_path):
    path = tmp_path / "policy.docx"
    document = docx.Document()
    document.add_paragraph("Returns within 30 days.")
    document.add_paragraph("Keep your receipt.")
    document.save(str(path))

    text = extract_text_from_file(str(path), DOCX)
    assert "Returns within 30 days.\nKeep your receipt." in text


def test_pdf(tmp_path):
    path = tmp_path / "menu.pdf"
    pdf = fitz.open()
    page = pdf.new_page()
    page.insert_text((72, 72), "Soup of the day")
    pdf.save(str(path))
    pdf.close()

    assert "Soup of the day" in extract_text_from_file(str(path), PDF)


def test_unsupported_type(tmp_path):
    path = tmp_path / "image.png"
    path.write_bytes(b"\x89PNG")
    assert not is_supported("image/png")
    with pytest.raises(InputError):
        extract_text_from_file(str(path), "image/png")


def test_validate_upload_checks_type_then_size():
    validate_upload(PDF, MAX_FILE_BYTES)
    with pytest.raises(InputError, match="Invalid file type"):
        validate_upload("image/png", 10)
    with pytest.raises(InputError, match="File too large"):
        validate_upload(TEXT, MAX_FILE_BYTES + 1)


def test_corrupt_file_is_input_error(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"not really a pdf")
    with pytest.raises(InputError) as exc_info:
        extract_text_from_file(str(path), PDF)
    assert "PDF" in str(exc_info.value)
