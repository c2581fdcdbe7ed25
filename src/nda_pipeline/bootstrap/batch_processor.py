"""
Batch processor: dedup, embed with retry, insert.
"""

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from nda_pipeline.exceptions import (
    ApiError,
    StoreUnavailableError,
    is_retriable_error,
)
from nda_pipeline.models.bootstrap import BatchResult, NormalizedRecord
from nda_pipeline.models.retrieval import EmbeddingBatchResult
from nda_pipeline.services.embedding_client import BaseEmbeddingClient
from nda_pipeline.storage.base import VectorStore

logger = structlog.get_logger(__name__)


def document_id_for(record: NormalizedRecord) -> str:
    return f"{record.source}:{record.content_hash}"


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "embedding_retry",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class BatchProcessor:
    """
    Processes one batch of normalized records.

    Records whose hash is already stored are skipped. The rest are embedded
    in a single provider call (retried on transient errors) and inserted one
    by one. Failures are counted rather than raised, except for failures that
    make the whole source pointless to continue: rejected credentials and an
    unreachable store.
    """

    def __init__(
        self,
        embedder: BaseEmbeddingClient,
        store: VectorStore,
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 4.0,
    ):
        self.embedder = embedder
        self.store = store
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max

    async def process(self, records: list[NormalizedRecord], existing_hashes: set[str]) -> BatchResult:
        """
        Embed and store ``records``.

        ``existing_hashes`` is updated in place with every successfully
        inserted hash.
        """
        fresh: list[NormalizedRecord] = []
        seen: set[str] = set()
        for record in records:
            if record.content_hash in existing_hashes or record.content_hash in seen:
                continue
            seen.add(record.content_hash)
            fresh.append(record)
        skipped = len(records) - len(fresh)

        if not fresh:
            return BatchResult(skipped_duplicates=skipped)

        try:
            embedded = await self._embed_with_retry([r.content for r in fresh])
        except ApiError as e:
            if e.is_auth_failure:
                raise
            logger.error("batch_embedding_failed", records=len(fresh), error=str(e))
            return BatchResult(processed=len(fresh), errors=len(fresh), skipped_duplicates=skipped)
        except Exception as e:
            logger.error(
                "batch_embedding_failed",
                records=len(fresh),
                error=str(e),
                error_type=type(e).__name__,
            )
            return BatchResult(processed=len(fresh), errors=len(fresh), skipped_duplicates=skipped)

        if len(embedded.embeddings) != len(fresh):
            logger.error(
                "embedding_count_mismatch",
                expected=len(fresh),
                received=len(embedded.embeddings),
            )
            return BatchResult(processed=len(fresh), errors=len(fresh), skipped_duplicates=skipped)

        inserted = 0
        errors = 0
        last_hash: str | None = None
        for record, vector in zip(fresh, embedded.embeddings):
            if self.embedder.dimension and len(vector) != self.embedder.dimension:
                logger.warning(
                    "embedding_dimension_mismatch",
                    source_id=record.source_id,
                    expected=self.embedder.dimension,
                    received=len(vector),
                )
                errors += 1
                continue

            try:
                await self.store.insert(
                    document_id_for(record),
                    vector,
                    record.content,
                    record.content_hash,
                    record.to_payload(),
                )
            except StoreUnavailableError:
                raise
            except Exception as e:
                logger.warning("record_insert_failed", source_id=record.source_id, error=str(e))
                errors += 1
                continue

            inserted += 1
            existing_hashes.add(record.content_hash)
            last_hash = record.content_hash

        return BatchResult(
            processed=len(fresh),
            embedded=inserted,
            errors=errors,
            skipped_duplicates=skipped,
            last_hash=last_hash,
        )

    async def _embed_with_retry(self, texts: list[str]) -> EmbeddingBatchResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception(is_retriable_error),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self.embedder.embed_batch, texts, input_type="document")
