"""
Document Preparation Pipeline

Takes an upload from raw bytes to budget-checked chunks:
1. Upload limits (size, pages)
2. Text extraction + extraction-quality gate
3. Chunking + parser gate
4. Token budget gate (truncation)
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Callable

import structlog
from pydantic import BaseModel, Field

from nda_pipeline.config import get_settings
from nda_pipeline.exceptions import ExtractionError, PipelineHaltedError
from nda_pipeline.models.bootstrap import ProgressEvent
from nda_pipeline.models.document import (
    DocumentChunk,
    DocumentStatus,
    ExtractionQuality,
    TokenEstimate,
    TruncationResult,
)
from nda_pipeline.models.validation import PipelineWarning, ValidationCode
from nda_pipeline.pipeline.gates import (
    validate_classifier_output,
    validate_extraction_quality,
    validate_parser_output,
    validate_token_budget,
)
from nda_pipeline.pipeline.messages import UPLOAD_STAGE, format_validation_error
from nda_pipeline.services.budget import (
    count_pdf_pages,
    validate_file_size,
    validate_page_count,
)
from nda_pipeline.services.chunker import DocumentChunker
from nda_pipeline.services.extraction import PDF_MIME_TYPE, TextExtractor
from nda_pipeline.services.tokens import TokenEstimator, get_token_estimator

logger = structlog.get_logger(__name__)


class PreparedDocument(BaseModel):
    """A document ready for analysis, or parked for OCR."""

    status: DocumentStatus
    text: str = ""
    chunks: list[DocumentChunk] = Field(default_factory=list)
    estimate: TokenEstimate | None = None
    truncation: TruncationResult | None = None
    quality: ExtractionQuality | None = None
    warnings: list[PipelineWarning] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def truncated(self) -> bool:
        return self.truncation is not None and self.truncation.truncated


class DocumentPipeline:
    """
    Runs an upload through extraction, chunking and the budget gate.

    Hard gate failures raise PipelineHaltedError. An OCR reroute is not an
    error: the result comes back with status ``pending_ocr``.
    """

    def __init__(
        self,
        chunker: DocumentChunker | None = None,
        extractor: TextExtractor | None = None,
        estimator: TokenEstimator | None = None,
        token_budget: int | None = None,
        max_file_size: int | None = None,
        max_pages: int | None = None,
        confidence_threshold: float | None = None,
    ):
        self.settings = get_settings()
        self._estimator = estimator
        self._chunker = chunker
        self._extractor = extractor
        self.token_budget = token_budget or self.settings.token_budget
        self.max_file_size = max_file_size or self.settings.max_file_size
        self.max_pages = max_pages or self.settings.max_pages
        self.confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else self.settings.extraction_confidence_threshold
        )

        self._progress_callback: Callable[[ProgressEvent], None] | None = None

    @property
    def estimator(self) -> TokenEstimator:
        if self._estimator is None:
            self._estimator = get_token_estimator()
        return self._estimator

    @property
    def chunker(self) -> DocumentChunker:
        if self._chunker is None:
            self._chunker = DocumentChunker(
                max_tokens=self.settings.chunk_max_tokens,
                overlap_tokens=self.settings.chunk_overlap_tokens,
                estimator=self.estimator,
            )
        return self._chunker

    @property
    def extractor(self) -> TextExtractor:
        if self._extractor is None:
            self._extractor = TextExtractor()
        return self._extractor

    def set_progress_callback(self, callback: Callable[[ProgressEvent], None]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _report_progress(self, stage: str, percent: float, message: str, **data: Any) -> None:
        if self._progress_callback:
            self._progress_callback(
                ProgressEvent(stage=stage, percent=percent, message=message, data=data)
            )

    # =========================================================================
    # Main Pipeline
    # =========================================================================

    def prepare(self, data: bytes, mime_type: str, file_size: int | None = None) -> PreparedDocument:
        """
        Prepare an uploaded file.

        Args:
            data: Raw upload bytes
            mime_type: Declared content type
            file_size: Reported upload size; defaults to len(data)

        Returns:
            PreparedDocument with chunks, or status ``pending_ocr``

        Raises:
            PipelineHaltedError: an upload limit or gate failed
        """
        started_at = datetime.now()
        size = file_size if file_size is not None else len(data)

        self._report_progress("validating", 0.0, "Checking upload limits")
        self._check_upload_limits(data, mime_type, size)

        self._report_progress("extracting", 10.0, "Extracting text")
        try:
            extracted = self.extractor.extract(data, mime_type, file_size=size)
        except ExtractionError as e:
            gate = validate_extraction_quality(error=e, confidence_threshold=self.confidence_threshold)
            if gate.route_to_ocr:
                return self._pending_ocr(started_at)
            raise PipelineHaltedError(gate.error) from e

        gate = validate_extraction_quality(
            quality=extracted.quality,
            confidence_threshold=self.confidence_threshold,
        )
        if gate.route_to_ocr:
            return self._pending_ocr(started_at, quality=extracted.quality)
        if not gate.valid:
            raise PipelineHaltedError(gate.error)

        result = self.prepare_text(extracted.text, started_at=started_at)
        result.quality = extracted.quality
        result.warnings = gate.warnings + result.warnings
        return result

    def prepare_text(self, text: str, started_at: datetime | None = None) -> PreparedDocument:
        """Chunk and budget-check text that has already been extracted."""
        started_at = started_at or datetime.now()

        self._report_progress("chunking", 40.0, "Splitting document into sections")
        chunks = self.chunker.chunk(text)

        gate = validate_parser_output(text, chunks)
        if not gate.valid:
            logger.warning("parser_gate_failed", code=gate.error.code.value)
            raise PipelineHaltedError(gate.error)

        self._report_progress("budgeting", 70.0, "Checking token budget", chunks=len(chunks))
        budget_gate = validate_token_budget(text, chunks, budget=self.token_budget, estimator=self.estimator)

        warnings: list[PipelineWarning] = []
        if budget_gate.warning:
            warnings.append(budget_gate.warning)

        if budget_gate.truncation is not None:
            final_text = budget_gate.truncation.text
            final_chunks = budget_gate.truncation.chunks
        else:
            final_text, final_chunks = text, chunks

        completed_at = datetime.now()
        self._report_progress(
            "prepared",
            100.0,
            "Document ready for analysis",
            chunks=len(final_chunks),
            truncated=budget_gate.truncation is not None,
        )
        logger.info(
            "document_prepared",
            chunks=len(final_chunks),
            tokens=budget_gate.estimate.token_count,
            truncated=budget_gate.truncation is not None,
        )

        return PreparedDocument(
            status=DocumentStatus.READY,
            text=final_text,
            chunks=final_chunks,
            estimate=budget_gate.estimate,
            truncation=budget_gate.truncation,
            warnings=warnings,
            started_at=started_at,
            completed_at=completed_at,
        )

    def check_classifier(self, clauses: Sequence[Any]) -> None:
        """Halt if classification produced no clauses."""
        gate = validate_classifier_output(clauses)
        if not gate.valid:
            raise PipelineHaltedError(gate.error)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_upload_limits(self, data: bytes, mime_type: str, size: int) -> None:
        size_check = validate_file_size(size, self.max_file_size)
        if not size_check.valid:
            raise PipelineHaltedError(format_validation_error(ValidationCode.FILE_TOO_LARGE, UPLOAD_STAGE))

        if mime_type == PDF_MIME_TYPE:
            try:
                page_count = count_pdf_pages(data)
            except ExtractionError:
                # Extraction reports the corrupt file with the right code.
                return
            page_check = validate_page_count(page_count, self.max_pages)
            if not page_check.valid:
                raise PipelineHaltedError(
                    format_validation_error(ValidationCode.TOO_MANY_PAGES, UPLOAD_STAGE)
                )

    def _pending_ocr(
        self,
        started_at: datetime,
        quality: ExtractionQuality | None = None,
    ) -> PreparedDocument:
        logger.info("document_routed_to_ocr")
        self._report_progress("pending_ocr", 100.0, "Document queued for OCR")
        return PreparedDocument(
            status=DocumentStatus.PENDING_OCR,
            quality=quality,
            started_at=started_at,
            completed_at=datetime.now(),
        )
