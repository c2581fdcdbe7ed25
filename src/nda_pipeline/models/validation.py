"""
Validation gate models.
"""

from enum import Enum

from pydantic import BaseModel, Field

from nda_pipeline.models.document import TokenEstimate, TruncationResult


class ValidationCode(str, Enum):
    """Codes a gate can halt with."""

    EMPTY_DOCUMENT = "EMPTY_DOCUMENT"
    NO_CHUNKS = "NO_CHUNKS"
    ZERO_CLAUSES = "ZERO_CLAUSES"
    OCR_REQUIRED = "OCR_REQUIRED"
    ENCRYPTED = "ENCRYPTED"
    CORRUPT = "CORRUPT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    TOO_MANY_PAGES = "TOO_MANY_PAGES"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    UNSUPPORTED_LANGUAGE = "UNSUPPORTED_LANGUAGE"


class WarningCode(str, Enum):
    """Codes for non-fatal gate findings."""

    DOCUMENT_TRUNCATED = "DOCUMENT_TRUNCATED"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"


class ValidationErrorInfo(BaseModel):
    """User-facing description of why a gate halted."""

    code: ValidationCode
    stage: str
    user_message: str
    suggestion: str


class PipelineWarning(BaseModel):
    code: WarningCode
    message: str


class ValidationResult(BaseModel):
    """Outcome of a gate. ``route_to_ocr`` marks a soft failure."""

    valid: bool
    error: ValidationErrorInfo | None = None
    warnings: list[PipelineWarning] = Field(default_factory=list)
    route_to_ocr: bool = False


class BudgetGateResult(BaseModel):
    """The budget gate never halts; it may truncate and warn."""

    passed: bool = True
    estimate: TokenEstimate
    truncation: TruncationResult | None = None
    warning: PipelineWarning | None = None


class UploadLimitError(BaseModel):
    code: ValidationCode
    message: str
    limit: int
    actual: int


class UploadValidationResult(BaseModel):
    """Result of an upload pre-check (file size, page count)."""

    valid: bool
    error: UploadLimitError | None = None
