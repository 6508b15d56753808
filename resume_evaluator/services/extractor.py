"""Plain-text extraction for uploaded resumes.

Each document kind has exactly one handler. PDFs go through the embedded text
layer first; when that yields too little usable text the caller runs the OCR
pass (``Extractor.ocr``) once before giving up.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from io import BytesIO

import docx
import pdfplumber
import pytesseract

from ..errors import ExtractionEmpty, ExtractionError, UnsupportedFormat
from .validator import normalize_extension

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50
MIN_PRINTABLE_RATIO = 0.6
MIN_UNIQUE_CHARS = 10
MIN_NON_WHITESPACE_RATIO = 0.3
MIN_WORD_COUNT = 5

EMPTY_MESSAGE = (
    "No text could be extracted from the document. "
    "It may be unreadable, scanned at low quality, or corrupt."
)

_PRINTABLE = re.compile(r"[\x20-\x7E\t\n\r]")
_WORD = re.compile(r"\b\w+\b")
_UTF16_RUN = re.compile(rb"(?:[\x20-\x7e]\x00){4,}")
_ASCII_RUN = re.compile(rb"[\x20-\x7e]{4,}")


class DocumentKind(Enum):
    TXT = ".txt"
    DOC = ".doc"
    DOCX = ".docx"
    PDF = ".pdf"

    @classmethod
    def from_file_type(cls, file_type):
        ext = normalize_extension(file_type)
        for kind in cls:
            if kind.value == ext:
                return kind
        raise UnsupportedFormat(f"Unsupported file type for text extraction: {file_type}")


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    method: str = "native"  # native | ocr
    page_count: int = 1
    needs_ocr: bool = False


def is_meaningful_text(text: str, page_count: int = 1, min_chars_per_page: int = 25) -> bool:
    """Heuristic test for a usable text layer (not empty, not glyph noise)."""
    if not text:
        return False
    if len(text) < max(MIN_TEXT_LENGTH, min_chars_per_page * max(page_count, 1)):
        return False
    if len(_PRINTABLE.findall(text)) / len(text) < MIN_PRINTABLE_RATIO:
        return False
    if len(set(text.lower())) < MIN_UNIQUE_CHARS:
        return False
    if len(re.sub(r"\s", "", text)) / len(text) < MIN_NON_WHITESPACE_RATIO:
        return False
    return len(_WORD.findall(text)) >= MIN_WORD_COUNT


def clean_text(text: str) -> str:
    text = (text or "").replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [re.sub(r"[ \t\f\v]+", " ", ln).strip() for ln in text.split("\n")]
    out = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", out).strip()


class Extractor:
    def __init__(self, ocr_enabled=True, ocr_lang="eng", ocr_resolution=300, min_chars_per_page=25):
        self.ocr_enabled = ocr_enabled
        self.ocr_lang = ocr_lang
        self.ocr_resolution = ocr_resolution
        self.min_chars_per_page = min_chars_per_page
        self._handlers = {
            DocumentKind.TXT: self._extract_txt,
            DocumentKind.DOC: self._extract_doc,
            DocumentKind.DOCX: self._extract_docx,
            DocumentKind.PDF: self._extract_pdf,
        }

    def extract_direct(self, file_bytes: bytes, file_type: str) -> ExtractionResult:
        """First pass: read text without OCR. ``needs_ocr`` is set for PDFs without a usable text layer."""
        kind = DocumentKind.from_file_type(file_type)
        return self._handlers[kind](file_bytes)

    def ocr(self, file_bytes: bytes) -> ExtractionResult:
        """Render every PDF page and run Tesseract over it."""
        texts = []
        try:
            with pdfplumber.open(BytesIO(file_bytes)) as pdf:
                page_count = len(pdf.pages)
                for page in pdf.pages:
                    img = page.to_image(resolution=self.ocr_resolution).original
                    t = pytesseract.image_to_string(img, lang=self.ocr_lang)
                    if t and t.strip():
                        texts.append(t)
        except pytesseract.TesseractNotFoundError as exc:
            raise ExtractionError("OCR engine is not available on this server") from exc
        except Exception as exc:
            logger.warning("OCR failed: %s", exc)
            raise ExtractionError(f"OCR extraction failed: {exc}") from exc
        return ExtractionResult(text=clean_text("\n\n".join(texts)), method="ocr", page_count=page_count)

    def finalize(self, direct: ExtractionResult, ocr_result: ExtractionResult = None) -> ExtractionResult:
        """Pick the final text after the direct pass and the optional OCR pass."""
        if ocr_result is not None and ocr_result.text.strip():
            return ocr_result
        if direct.text.strip():
            return ExtractionResult(text=direct.text, method=direct.method, page_count=direct.page_count)
        raise ExtractionEmpty(EMPTY_MESSAGE)

    def extract(self, file_bytes: bytes, file_type: str) -> ExtractionResult:
        direct = self.extract_direct(file_bytes, file_type)
        ocr_result = self.ocr(file_bytes) if direct.needs_ocr else None
        return self.finalize(direct, ocr_result)

    # handlers

    def _extract_txt(self, file_bytes):
        return ExtractionResult(text=clean_text(file_bytes.decode("utf-8-sig", errors="replace")))

    def _extract_docx(self, file_bytes):
        try:
            document = docx.Document(BytesIO(file_bytes))
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text from DOCX: {exc}") from exc
        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [c.text.strip() for c in row.cells if c.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
        return ExtractionResult(text=clean_text("\n".join(parts)))

    def _extract_doc(self, file_bytes):
        # legacy Word uploads are frequently OOXML with a .doc name
        try:
            return self._extract_docx(file_bytes)
        except ExtractionError:
            logger.info("Not an OOXML package; scanning binary .doc for text runs")
        runs = [m.decode("utf-16-le") for m in _UTF16_RUN.findall(file_bytes)]
        if not runs:
            runs = [m.decode("ascii") for m in _ASCII_RUN.findall(file_bytes)]
        return ExtractionResult(text=clean_text("\n".join(runs)))

    def _extract_pdf(self, file_bytes):
        try:
            with pdfplumber.open(BytesIO(file_bytes)) as pdf:
                page_count = len(pdf.pages)
                text = "\n".join((page.extract_text() or "") for page in pdf.pages)
        except Exception as exc:
            raise ExtractionError(_pdf_error_message(exc)) from exc

        text = clean_text(text)
        usable = is_meaningful_text(text, page_count, self.min_chars_per_page)
        if not usable:
            logger.info("PDF text layer too thin (%d chars over %d pages)", len(text), page_count)
        return ExtractionResult(
            text=text, method="native", page_count=page_count,
            needs_ocr=(not usable) and self.ocr_enabled,
        )


def _pdf_error_message(exc) -> str:
    msg = f"{type(exc).__name__}: {exc}".lower()
    if "password" in msg or "encrypt" in msg:
        return "PDF file is password protected or encrypted. Please provide an unencrypted PDF file."
    if "xref" in msg or "syntax" in msg or "eof" in msg:
        return "PDF file appears to be corrupted or has an invalid structure."
    return f"Failed to extract text from PDF: {exc}"
