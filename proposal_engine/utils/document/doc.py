import os
import io
import re
import fitz
import docx
import asyncio
import threading
from pathlib import Path
from dataclasses import dataclass
from contextlib import contextmanager
from typing import List, Literal, Optional
from proposal_engine.utils.core.log import get_logger
from proposal_engine.utils.core.errors import (
    EmptyFile,
    FileTooLarge,
    UnsupportedFormat,
    EmptyExtraction,
    DocumentDecodeError,
)

fitz.TOOLS.mupdf_display_errors(False)
fitz.TOOLS.mupdf_display_warnings(False)

"""
pip install python-docx pymupdf
"""

DocumentKind = Literal["pdf", "docx", "txt"]

MAX_UPLOAD_BYTES = 5 * 1024 * 1024

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TXT_MIME = "text/plain"

MIME_TO_KIND: dict[str, DocumentKind] = {
    PDF_MIME: "pdf",
    DOCX_MIME: "docx",
    "application/octet-stream": "pdf",  # some browsers upload PDFs untyped
    TXT_MIME: "txt",
}

EXTENSION_TO_KIND: dict[str, DocumentKind] = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".txt": "txt",
}

KIND_TO_MIME: dict[DocumentKind, str] = {
    "pdf": PDF_MIME,
    "docx": DOCX_MIME,
    "txt": TXT_MIME,
}

# PyMuPDF is not thread-safe: every fitz call made from a worker thread
# happens under this lock.
_pymupdf_lock = threading.Lock()
_stderr_lock = threading.Lock()


@dataclass(frozen=True)
class ExtractedText:
    filename: str
    mime_type: str
    kind: DocumentKind
    text: str

    @property
    def word_count(self) -> int:
        return count_words(self.text)


@contextmanager
def muted_c_stderr():
    """Point fd 2 at /dev/null so MuPDF's C-level warnings stay off the console."""
    with _stderr_lock:
        saved_fd = os.dup(2)
        devnull_fd = os.open(os.devnull, os.O_WRONLY)
        try:
            os.dup2(devnull_fd, 2)
            yield
        finally:
            os.dup2(saved_fd, 2)
            os.close(saved_fd)
            os.close(devnull_fd)


def sanitize_text(text: str) -> str:
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())


def detect_kind(filename: str, mime_type: Optional[str]) -> Optional[DocumentKind]:
    """Declared MIME type first, then the filename extension."""
    kind = MIME_TO_KIND.get((mime_type or "").strip().lower())
    if kind:
        return kind
    return EXTENSION_TO_KIND.get(Path(filename or "").suffix.lower())


def extract_text_from_pdf(buffer: bytes, filename: str) -> str:
    logger = get_logger()

    with _pymupdf_lock, muted_c_stderr():
        try:
            pdf = fitz.open(stream=buffer, filetype="pdf")
        except Exception as e:
            logger.debug(f"fitz could not open {filename}: {e}")
            raise DocumentDecodeError(filename, "the PDF could not be opened") from e

        with pdf:
            try:
                pages = [page.get_text("text") for page in pdf]
            except Exception as e:
                logger.debug(f"fitz failed reading text from {filename}: {e}")
                raise DocumentDecodeError(filename, "the PDF text could not be read") from e

    logger.debug(f"{filename}: {len(pages)} page(s)")
    return "\n".join(pages)


def _docx_table_lines(document) -> List[str]:
    lines = []
    for table in document.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells]
            joined = " | ".join(c for c in cells if c)
            if joined:
                lines.append(joined)
    return lines


def extract_text_from_docx(buffer: bytes, filename: str) -> str:
    """Body paragraphs first, then table rows as ``cell | cell`` lines."""
    try:
        document = docx.Document(io.BytesIO(buffer))
    except Exception as e:
        get_logger().debug(f"python-docx could not open {filename}: {e}")
        raise DocumentDecodeError(filename, "the DOCX could not be opened") from e

    lines = [p.text for p in document.paragraphs if p.text.strip()]
    lines.extend(_docx_table_lines(document))
    return "\n".join(lines)


def extract_text_from_txt(buffer: bytes, filename: str) -> str:
    """Decodes a TXT upload as UTF-8; undecodable bytes are replaced."""
    return buffer.decode("utf-8", errors="replace")


_EXTRACTORS = {
    "pdf": extract_text_from_pdf,
    "docx": extract_text_from_docx,
    "txt": extract_text_from_txt,
}


def extract_document(buffer: bytes, filename: str, mime_type: Optional[str]) -> ExtractedText:
    """
    Turn one uploaded binary into sanitized plain text.

    Raises EmptyFile, FileTooLarge, UnsupportedFormat, DocumentDecodeError or
    EmptyExtraction.
    """
    if len(buffer) == 0:
        raise EmptyFile(filename)

    if len(buffer) > MAX_UPLOAD_BYTES:
        raise FileTooLarge(filename, MAX_UPLOAD_BYTES)

    kind = detect_kind(filename, mime_type)
    if not kind:
        raise UnsupportedFormat()

    clean = sanitize_text(_EXTRACTORS[kind](buffer, filename))
    if not clean:
        raise EmptyExtraction()

    return ExtractedText(
        filename=filename,
        mime_type=mime_type or KIND_TO_MIME[kind],
        kind=kind,
        text=clean,
    )


async def extract_document_async(
    buffer: bytes, filename: str, mime_type: Optional[str]
) -> ExtractedText:
    return await asyncio.to_thread(extract_document, buffer, filename, mime_type)
