"""
Token budget enforcement and upload limits.

Budgets are enforced at chunk boundaries: trailing chunks are dropped until
the remainder fits, so the analysis stages only ever see whole sections.
"""

import io

import pdfplumber
import structlog

from nda_pipeline.exceptions import CorruptDocumentError
from nda_pipeline.models.document import DocumentChunk, TokenEstimate, TruncationResult
from nda_pipeline.models.validation import UploadLimitError, UploadValidationResult, ValidationCode
from nda_pipeline.services.tokens import TokenEstimator, get_token_estimator

logger = structlog.get_logger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_PAGES = 50
TOKEN_BUDGET = 200_000


def check_token_budget(
    text: str,
    budget: int = TOKEN_BUDGET,
    estimator: TokenEstimator | None = None,
) -> TokenEstimate:
    """Measure ``text`` against ``budget``."""
    estimator = estimator or get_token_estimator()
    token_count = estimator.count(text)
    within_budget = token_count <= budget
    return TokenEstimate(
        token_count=token_count,
        within_budget=within_budget,
        budget_remaining=max(0, budget - token_count),
        truncation_needed=not within_budget,
    )


def truncate_to_token_budget(
    text: str,
    chunks: list[DocumentChunk],
    budget: int = TOKEN_BUDGET,
    estimator: TokenEstimator | None = None,
) -> TruncationResult:
    """
    Drop trailing chunks until the document fits ``budget``.

    The first chunk is always kept, even when it alone exceeds the budget, so
    a non-empty document never truncates to nothing. Callers must check
    ``truncated_tokens`` against the budget if that matters to them.

    Returns:
        TruncationResult with the kept chunks and the labels of dropped sections
    """
    estimator = estimator or get_token_estimator()
    original_tokens = estimator.count(text)

    if original_tokens <= budget:
        return TruncationResult(
            text=text,
            chunks=chunks,
            truncated=False,
            original_tokens=original_tokens,
            truncated_tokens=original_tokens,
        )

    if not chunks:
        logger.warning("truncation_without_chunks", original_tokens=original_tokens, budget=budget)
        return TruncationResult(
            text="",
            chunks=[],
            truncated=True,
            original_tokens=original_tokens,
            truncated_tokens=0,
        )

    kept: list[DocumentChunk] = []
    running = 0
    for chunk in chunks:
        if running + chunk.token_count > budget and kept:
            break
        kept.append(chunk)
        running += chunk.token_count
        if running > budget:
            # Oversize first chunk
            break

    removed_sections: list[str] = []
    for chunk in chunks[len(kept):]:
        for label in chunk.section_path:
            if label and label not in removed_sections:
                removed_sections.append(label)

    logger.info(
        "document_truncated",
        original_tokens=original_tokens,
        truncated_tokens=running,
        kept_chunks=len(kept),
        dropped_chunks=len(chunks) - len(kept),
    )

    return TruncationResult(
        text="\n\n".join(chunk.content for chunk in kept),
        chunks=kept,
        truncated=True,
        original_tokens=original_tokens,
        truncated_tokens=running,
        removed_sections=removed_sections,
    )


# =========================================================================
# Upload Limits
# =========================================================================


def validate_file_size(size_bytes: int, max_size: int = MAX_FILE_SIZE) -> UploadValidationResult:
    if size_bytes > max_size:
        return UploadValidationResult(
            valid=False,
            error=UploadLimitError(
                code=ValidationCode.FILE_TOO_LARGE,
                message=(
                    f"File is {size_bytes / (1024 * 1024):.1f} MB; "
                    f"the limit is {max_size / (1024 * 1024):.0f} MB."
                ),
                limit=max_size,
                actual=size_bytes,
            ),
        )
    return UploadValidationResult(valid=True)


def validate_page_count(page_count: int, max_pages: int = MAX_PAGES) -> UploadValidationResult:
    if page_count > max_pages:
        return UploadValidationResult(
            valid=False,
            error=UploadLimitError(
                code=ValidationCode.TOO_MANY_PAGES,
                message=f"Document has {page_count} pages; the limit is {max_pages}.",
                limit=max_pages,
                actual=page_count,
            ),
        )
    return UploadValidationResult(valid=True)


def count_pdf_pages(data: bytes) -> int:
    """Count the pages of a PDF held in memory."""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            return len(pdf.pages)
    except Exception as e:
        raise CorruptDocumentError(f"Could not read PDF page count: {e}") from e
