"""
Validation gates run between pipeline stages.

Each gate is a pure function of the previous stage's output. A gate either
lets the pipeline proceed, halts it with a user-facing error, or (for
extraction) reroutes the document to OCR. Gates run outside any retry
wrapper: a failed gate is final.
"""

from collections.abc import Sequence
from typing import Any

import structlog

from nda_pipeline.exceptions import (
    CorruptDocumentError,
    EncryptedDocumentError,
    OcrRequiredError,
    UnsupportedDocumentError,
    UnsupportedLanguageError,
)
from nda_pipeline.models.document import DocumentChunk, ExtractionQuality
from nda_pipeline.models.validation import (
    BudgetGateResult,
    PipelineWarning,
    ValidationCode,
    ValidationResult,
    WarningCode,
)
from nda_pipeline.pipeline.messages import (
    CLASSIFICATION_STAGE,
    EXTRACTION_STAGE,
    PARSING_STAGE,
    format_validation_error,
)
from nda_pipeline.services.budget import TOKEN_BUDGET, check_token_budget, truncate_to_token_budget
from nda_pipeline.services.tokens import TokenEstimator

logger = structlog.get_logger(__name__)


def validate_parser_output(raw_text: str, chunks: Sequence[DocumentChunk]) -> ValidationResult:
    """Halt on empty text or on text that produced no chunks."""
    if not raw_text or not raw_text.strip():
        return ValidationResult(
            valid=False,
            error=format_validation_error(ValidationCode.EMPTY_DOCUMENT, PARSING_STAGE),
        )

    if len(chunks) == 0:
        return ValidationResult(
            valid=False,
            error=format_validation_error(ValidationCode.NO_CHUNKS, PARSING_STAGE),
        )

    return ValidationResult(valid=True)


def validate_classifier_output(clauses: Sequence[Any]) -> ValidationResult:
    """Zero extracted clauses always halts."""
    if len(clauses) == 0:
        return ValidationResult(
            valid=False,
            error=format_validation_error(ValidationCode.ZERO_CLAUSES, CLASSIFICATION_STAGE),
        )
    return ValidationResult(valid=True)


def validate_extraction_quality(
    quality: ExtractionQuality | None = None,
    error: BaseException | None = None,
    confidence_threshold: float = 0.5,
) -> ValidationResult:
    """
    Classify the outcome of text extraction.

    OCR-needed documents are a soft failure: the result is invalid but
    ``route_to_ocr`` is set so the caller can send the file down the OCR
    path instead of failing the upload. Encrypted, corrupt and unsupported
    files are hard failures. Low confidence only adds a warning. Errors this
    gate does not recognise are re-raised.
    """
    if error is not None:
        if isinstance(error, OcrRequiredError):
            return _ocr_reroute()
        if isinstance(error, EncryptedDocumentError):
            return ValidationResult(
                valid=False,
                error=format_validation_error(ValidationCode.ENCRYPTED, EXTRACTION_STAGE),
            )
        if isinstance(error, CorruptDocumentError):
            return ValidationResult(
                valid=False,
                error=format_validation_error(ValidationCode.CORRUPT, EXTRACTION_STAGE),
            )
        if isinstance(error, UnsupportedLanguageError):
            return ValidationResult(
                valid=False,
                error=format_validation_error(ValidationCode.UNSUPPORTED_LANGUAGE, EXTRACTION_STAGE),
            )
        if isinstance(error, UnsupportedDocumentError):
            return ValidationResult(
                valid=False,
                error=format_validation_error(ValidationCode.UNSUPPORTED_FORMAT, EXTRACTION_STAGE),
            )
        raise error

    if quality is None:
        raise ValueError("Either quality or error is required")

    if quality.requires_ocr:
        return _ocr_reroute()

    warnings = [
        PipelineWarning(code=WarningCode.LOW_CONFIDENCE, message=message)
        for message in quality.warnings
    ]
    if quality.confidence < confidence_threshold and not warnings:
        warnings.append(
            PipelineWarning(
                code=WarningCode.LOW_CONFIDENCE,
                message=f"Extraction confidence is low ({quality.confidence:.0%})",
            )
        )

    return ValidationResult(valid=True, warnings=warnings)


def validate_token_budget(
    text: str,
    chunks: list[DocumentChunk],
    budget: int = TOKEN_BUDGET,
    estimator: TokenEstimator | None = None,
) -> BudgetGateResult:
    """
    Enforce the token budget. Never halts.

    Over-budget documents are truncated at chunk boundaries and the result
    carries a warning naming how many sections were dropped.
    """
    estimate = check_token_budget(text, budget=budget, estimator=estimator)
    if estimate.within_budget:
        return BudgetGateResult(passed=True, estimate=estimate)

    truncation = truncate_to_token_budget(text, chunks, budget=budget, estimator=estimator)
    removed = len(truncation.removed_sections)
    message = (
        f"This document exceeds the analysis limit of {budget:,} tokens. "
        f"Analysis covers the first {len(truncation.chunks)} of {len(chunks)} sections"
    )
    if removed:
        message += f"; {removed} later section heading(s) were not analyzed."
    else:
        message += "."

    logger.warning(
        "token_budget_exceeded",
        token_count=estimate.token_count,
        budget=budget,
        removed_sections=removed,
    )

    return BudgetGateResult(
        passed=True,
        estimate=estimate,
        truncation=truncation,
        warning=PipelineWarning(code=WarningCode.DOCUMENT_TRUNCATED, message=message),
    )


def _ocr_reroute() -> ValidationResult:
    return ValidationResult(
        valid=False,
        error=format_validation_error(ValidationCode.OCR_REQUIRED, EXTRACTION_STAGE),
        route_to_ocr=True,
    )
