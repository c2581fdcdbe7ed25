"""
Text extraction from uploaded files.

Supports PDF (via pdfplumber) and plain text. Extraction failures are raised
as typed errors (encrypted, corrupt, needs OCR) for the extraction gate to
classify.
"""

import io
import re
import unicodedata
from functools import lru_cache

import pdfplumber
import structlog

from nda_pipeline.config import get_settings
from nda_pipeline.exceptions import (
    CorruptDocumentError,
    EncryptedDocumentError,
    OcrRequiredError,
    UnsupportedDocumentError,
    UnsupportedLanguageError,
)
from nda_pipeline.models.document import ExtractedDocument, ExtractionQuality

logger = structlog.get_logger(__name__)

PDF_MIME_TYPE = "application/pdf"
TEXT_MIME_TYPES = ("text/plain", "text/markdown")

_LATIN_RE = re.compile(r"[a-zA-Z]")
_NON_ASCII_RE = re.compile(r"[^\x00-\x7F]")


def assess_extraction_quality(
    text: str,
    file_size: int,
    min_text_length: int = 100,
    min_text_ratio: float = 0.001,
    large_file_bytes: int = 100_000,
) -> ExtractionQuality:
    """
    Score how much real text an extraction produced.

    Fewer than ``min_text_length`` characters means the file is probably a
    scan and needs OCR. A large file with very little text is suspicious and
    gets a low-density warning. Confidence grows with the text-to-bytes ratio.
    """
    char_count = len(text)
    word_count = len(text.split())
    ratio = char_count / file_size if file_size > 0 else 0.0
    warnings: list[str] = []

    requires_ocr = char_count < min_text_length
    if requires_ocr:
        warnings.append("Document requires OCR processing (may take longer)")
    elif ratio < min_text_ratio and file_size > large_file_bytes:
        warnings.append("Document has unusually low text density")

    confidence = 0.0 if requires_ocr else min(1.0, ratio * 100)

    return ExtractionQuality(
        char_count=char_count,
        word_count=word_count,
        page_count=1,
        confidence=confidence,
        warnings=warnings,
        requires_ocr=requires_ocr,
    )


def detect_language(text: str) -> tuple[bool, float]:
    """Script heuristic on the first 5000 characters. Returns (is_english, confidence)."""
    sample = text[:5000]
    latin = len(_LATIN_RE.findall(sample))
    non_ascii = len(_NON_ASCII_RE.findall(sample))
    latin_ratio = latin / (latin + non_ascii + 1)
    return latin_ratio > 0.5, latin_ratio


class TextExtractor:
    """Extracts text from upload bytes and assesses its quality."""

    def __init__(
        self,
        min_text_length: int | None = None,
        min_text_ratio: float | None = None,
        large_file_bytes: int | None = None,
    ):
        settings = get_settings()
        self.min_text_length = min_text_length if min_text_length is not None else settings.extraction_min_text_length
        self.min_text_ratio = min_text_ratio if min_text_ratio is not None else settings.extraction_min_text_ratio
        self.large_file_bytes = (
            large_file_bytes if large_file_bytes is not None else settings.extraction_large_file_bytes
        )

    def extract(
        self,
        data: bytes,
        mime_type: str,
        file_size: int | None = None,
        check_language: bool = True,
        route_ocr: bool = True,
    ) -> ExtractedDocument:
        """
        Extract text from ``data``.

        Args:
            data: Raw upload bytes
            mime_type: Declared content type
            file_size: Size used for density scoring; defaults to len(data)
            check_language: Reject documents that are clearly not English
            route_ocr: Raise OcrRequiredError instead of returning a
                document flagged ``requires_ocr``

        Raises:
            EncryptedDocumentError, CorruptDocumentError, OcrRequiredError,
            UnsupportedDocumentError, UnsupportedLanguageError
        """
        size = file_size if file_size is not None else len(data)

        if mime_type == PDF_MIME_TYPE:
            text, page_count = self._extract_pdf(data)
        elif mime_type in TEXT_MIME_TYPES:
            text, page_count = self._extract_plain_text(data), 1
        else:
            raise UnsupportedDocumentError(f"Unsupported file type: {mime_type}")

        quality = assess_extraction_quality(
            text,
            size,
            min_text_length=self.min_text_length,
            min_text_ratio=self.min_text_ratio,
            large_file_bytes=self.large_file_bytes,
        )
        quality.page_count = page_count

        logger.info(
            "text_extracted",
            mime_type=mime_type,
            char_count=quality.char_count,
            page_count=page_count,
            confidence=round(quality.confidence, 3),
            requires_ocr=quality.requires_ocr,
        )

        if quality.requires_ocr and route_ocr:
            raise OcrRequiredError(char_count=quality.char_count)

        if check_language and len(text) > self.min_text_length:
            is_english, confidence = detect_language(text)
            if not is_english:
                raise UnsupportedLanguageError(
                    "This document appears to be in a non-English language. "
                    "Analysis is optimized for English documents."
                )
            if confidence < 0.7:
                quality.warnings.append(
                    f"Document may contain non-English text (confidence: {confidence:.0%})"
                )

        return ExtractedDocument(
            text=text,
            mime_type=mime_type,
            page_count=page_count,
            quality=quality,
        )

    @staticmethod
    def _extract_plain_text(data: bytes) -> str:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptDocumentError(f"Text file is not valid UTF-8: {e}") from e
        return unicodedata.normalize("NFC", text)

    @staticmethod
    def _extract_pdf(data: bytes) -> tuple[str, int]:
        """Extract text from PDF bytes using pdfplumber."""
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                text_parts = []
                for page in pdf.pages:
                    page_text = page.extract_text()
                    if page_text:
                        text_parts.append(page_text)
                page_count = len(pdf.pages)
        except Exception as e:
            if _is_encryption_error(e):
                raise EncryptedDocumentError() from e
            if _is_pdf_library_error(e):
                raise CorruptDocumentError(f"Could not parse PDF: {e}") from e
            raise

        text = unicodedata.normalize("NFC", "\n\n".join(text_parts))
        return text, page_count


def _error_chain(error: BaseException):
    seen = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_encryption_error(error: BaseException) -> bool:
    for exc in _error_chain(error):
        name = type(exc).__name__.lower()
        message = str(exc).lower()
        if "password" in name or "encrypt" in name:
            return True
        if "password" in message or "encrypted" in message:
            return True
    return False


def _is_pdf_library_error(error: BaseException) -> bool:
    return any(
        type(exc).__module__.startswith(("pdfminer", "pdfplumber"))
        for exc in _error_chain(error)
    )


@lru_cache()
def get_text_extractor() -> TextExtractor:
    """Get cached text extractor instance."""
    return TextExtractor()
