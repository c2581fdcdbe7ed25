"""
Exception hierarchy for the NDA pipeline.

Every error is either retriable (transient: timeouts, rate limits, provider
5xx) or non-retriable (bad input, missing records, tripped breakers). Retry
wrappers consult ``is_retriable_error``; validation gates never retry.
"""

from typing import Any

from nda_pipeline.models.validation import ValidationErrorInfo


class NdaPipelineError(Exception):
    """Base exception for all pipeline errors."""

    retriable: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetriableError(NdaPipelineError):
    """Transient failure; the operation may succeed if attempted again."""

    retriable = True


class NonRetriableError(NdaPipelineError):
    """Permanent failure; retrying will not help."""

    retriable = False


# =========================================================================
# External Services
# =========================================================================


class ApiError(NdaPipelineError):
    """
    Error returned by an external API such as the embedding provider.

    Retriability follows the HTTP status: 5xx, 429 and 408 are transient,
    any other 4xx is permanent. A missing status means the request never got
    a response (network failure) and is treated as transient.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["provider"] = provider
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(f"{provider} API error: {message}", details)
        self.provider = provider
        self.status_code = status_code

    @property
    def retriable(self) -> bool:  # type: ignore[override]
        if self.status_code is None:
            return True
        if self.status_code >= 500:
            return True
        if self.status_code in (408, 429):
            return True
        return False

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class StoreUnavailableError(NonRetriableError):
    """A backing store (vector DB, progress DB) cannot be reached."""

    def __init__(self, store: str, message: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["store"] = store
        super().__init__(f"{store} unavailable: {message}", details)
        self.store = store


# =========================================================================
# Lookups and Limits
# =========================================================================


class NotFoundError(NonRetriableError):
    """Raised when a required record does not exist."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class UnknownSourceError(NonRetriableError):
    """Raised when no dataset parser is registered for a source name."""

    def __init__(self, source: str) -> None:
        super().__init__(f"Unknown dataset source: {source}", {"source": source})
        self.source = source


class BatchTooLargeError(NonRetriableError):
    """Raised when an embedding request exceeds the provider batch ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Batch of {size} texts exceeds provider limit of {limit}",
            {"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


# =========================================================================
# Bootstrap Ingestion
# =========================================================================


class CircuitBreakerOpenError(NonRetriableError):
    """Raised when a source's error rate crosses the configured threshold."""

    def __init__(self, source: str, error_count: int, processed: int, threshold: float) -> None:
        rate = error_count / processed if processed else 0.0
        super().__init__(
            f"Error rate {rate:.1%} exceeded {threshold:.0%} for source {source}",
            {
                "source": source,
                "error_count": error_count,
                "processed_records": processed,
                "threshold": threshold,
            },
        )
        self.source = source
        self.error_rate = rate


class IngestionCancelledError(NdaPipelineError):
    """Raised when an ingestion run is cancelled at a batch boundary."""

    retriable = True

    def __init__(self, source: str, last_batch_index: int) -> None:
        super().__init__(
            f"Ingestion of {source} cancelled after batch {last_batch_index}",
            {"source": source, "last_batch_index": last_batch_index},
        )
        self.source = source
        self.last_batch_index = last_batch_index


# =========================================================================
# Document Extraction
# =========================================================================


class ExtractionError(NonRetriableError):
    """Base for failures while pulling text out of an uploaded file."""


class OcrRequiredError(ExtractionError):
    """The file has too little embedded text and needs OCR."""

    def __init__(self, message: str = "Document requires OCR", char_count: int = 0) -> None:
        super().__init__(message, {"char_count": char_count})
        self.char_count = char_count


class EncryptedDocumentError(ExtractionError):
    """The file is password protected."""

    def __init__(self, message: str = "Document is encrypted") -> None:
        super().__init__(message)


class CorruptDocumentError(ExtractionError):
    """The file cannot be parsed."""

    def __init__(self, message: str = "Document is corrupt or unreadable") -> None:
        super().__init__(message)


class UnsupportedDocumentError(ExtractionError):
    """The file type cannot be analyzed."""


class UnsupportedLanguageError(UnsupportedDocumentError):
    """The document is not in a language the analysis supports."""


class PipelineHaltedError(NonRetriableError):
    """A validation gate stopped the document pipeline."""

    def __init__(self, error: ValidationErrorInfo) -> None:
        super().__init__(
            error.user_message,
            {"code": error.code.value, "stage": error.stage},
        )
        self.error = error

    @property
    def code(self):
        return self.error.code


def is_retriable_error(error: BaseException) -> bool:
    """
    Decide whether an error is worth retrying.

    Unknown exception types are treated as retriable so transient failures
    from third-party libraries are not silently turned into hard failures.
    """
    if isinstance(error, NdaPipelineError):
        return error.retriable
    return True
