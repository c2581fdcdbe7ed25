"""
Pydantic models for the NDA pipeline.

- Document models for chunks, token estimates and truncation
- Validation models for gate outcomes and user-facing errors
- Bootstrap models for normalized records and ingestion progress
- Retrieval models for embeddings and ranked hits
"""

from nda_pipeline.models.document import (
    DocumentChunk,
    DocumentStatus,
    ExtractedDocument,
    ExtractionQuality,
    TokenEstimate,
    TruncationResult,
)
from nda_pipeline.models.validation import (
    BudgetGateResult,
    PipelineWarning,
    UploadLimitError,
    UploadValidationResult,
    ValidationCode,
    ValidationErrorInfo,
    ValidationResult,
    WarningCode,
)
from nda_pipeline.models.bootstrap import (
    BatchResult,
    BootstrapProgress,
    BootstrapStatus,
    BootstrapSummary,
    Granularity,
    NormalizedRecord,
    ProgressEvent,
    SourceOutcome,
)
from nda_pipeline.models.retrieval import (
    CachedEmbedding,
    CacheStats,
    EmbeddingBatchResult,
    InputType,
    RankedHit,
    RetrievalTier,
    VectorHit,
)

__all__ = [
    # Document models
    "DocumentChunk",
    "DocumentStatus",
    "ExtractedDocument",
    "ExtractionQuality",
    "TokenEstimate",
    "TruncationResult",
    # Validation models
    "BudgetGateResult",
    "PipelineWarning",
    "UploadLimitError",
    "UploadValidationResult",
    "ValidationCode",
    "ValidationErrorInfo",
    "ValidationResult",
    "WarningCode",
    # Bootstrap models
    "BatchResult",
    "BootstrapProgress",
    "BootstrapStatus",
    "BootstrapSummary",
    "Granularity",
    "NormalizedRecord",
    "ProgressEvent",
    "SourceOutcome",
    # Retrieval models
    "CachedEmbedding",
    "CacheStats",
    "EmbeddingBatchResult",
    "InputType",
    "RankedHit",
    "RetrievalTier",
    "VectorHit",
]
