"""Text extraction for uploaded files.

Supports PDF (PyMuPDF), Word (python-docx) and plain text/CSV. The mimetype
decides the extractor; anything else is rejected as invalid input.
"""
import logging
import os
from typing import Callable, Dict

import docx
import fitz  # PyMuPDF

from widget_rag.errors import InputError

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC = "application/msword"
TEXT = "text/plain"
CSV = "text/csv"

MAX_FILE_BYTES = 20 * 1024 * 1024


def extract_pdf_text(path: str) -> str:
    with fitz.open(path) as pdf:
        return "\n".join(page.get_text() for page in pdf)


def extract_word_text(path: str) -> str:
    document = docx.Document(path)
    return "\n".join(p.text for p in document.paragraphs)


def extract_plain_text(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


_EXTRACTORS: Dict[str, Callable[[str], str]] = {
    PDF: extract_pdf_text,
    DOCX: extract_word_text,
    DOC: extract_word_text,
    TEXT: extract_plain_text,
    CSV: extract_plain_text,
}

_FORMAT_NAMES = {PDF: "PDF", DOCX: "Word document", DOC: "Word document", TEXT: "text file", CSV: "text file"}


def is_supported(mimetype: str) -> bool:
    return mimetype in _EXTRACTORS


def validate_upload(mimetype: str, size: int) -> None:
    """Reject an unsupported type or an oversize file before its bytes are read.

    Raises:
        InputError: The mimetype has no extractor or ``size`` exceeds MAX_FILE_BYTES.
    """
    if not is_supported(mimetype):
        raise InputError("Invalid file type. Only PDF, Word, TXT, and CSV files are allowed.")
    if size > MAX_FILE_BYTES:
        raise InputError("File too large. The limit is 20MB.")


def extract_text_from_file(path: str, mimetype: str) -> str:
    """Extract raw text from a file on disk.

    Args:
        path: File path.
        mimetype: Declared MIME type of the upload.

    Raises:
        InputError: Unsupported type, or the file could not be parsed.
    """
    validate_upload(mimetype, os.path.getsize(path))
    extractor = _EXTRACTORS[mimetype]
    try:
        return extractor(path)
    except Exception as exc:
        logger.exception("Failed to extract text from %s (%s)", path, mimetype)
        raise InputError(f"Failed to extract text from {_FORMAT_NAMES[mimetype]}") from exc
