"""
Source Ingestion Worker

Streams one dataset through its parser in fixed-size batches, embeds each
batch and writes it to the reference corpus store, checkpointing after
every batch so an interrupted run can resume.

Batches are formed over non-empty records only, so batch indices are
stable across runs of the same dataset. On resume, batches before the
checkpoint are skipped without embedding; the checkpointed batch itself is
re-run, which only retries its failed records. Before a batch inserts
anything its fresh hashes are saved as pending, so a run that stops between
insert and checkpoint still counts those records when resumed.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path

import structlog

from nda_pipeline.bootstrap.batch_processor import BatchProcessor
from nda_pipeline.bootstrap.progress import ProgressTracker
from nda_pipeline.config import get_settings
from nda_pipeline.datasets.downloader import get_dataset_path
from nda_pipeline.datasets.sources import DatasetParser, DatasetSource, get_parser
from nda_pipeline.exceptions import CircuitBreakerOpenError, IngestionCancelledError
from nda_pipeline.models.bootstrap import (
    BootstrapProgress,
    BootstrapStatus,
    NormalizedRecord,
    ProgressEvent,
)
from nda_pipeline.services.embedding_client import BaseEmbeddingClient
from nda_pipeline.storage.base import ProgressStore, VectorStore

logger = structlog.get_logger(__name__)


def should_circuit_break(
    progress: BootstrapProgress,
    threshold: float = 0.10,
    min_records: int = 100,
) -> bool:
    """True once enough records were processed and the error rate exceeds ``threshold``."""
    if progress.processed_records < min_records:
        return False
    return progress.error_rate > threshold


def _default_dataset_path(source: str) -> Path:
    return get_dataset_path(DatasetSource(source))


class SourceIngestionWorker:
    """
    Ingests a single source into the reference corpus.

    The worker holds no per-run state, so one instance can serve several
    sources concurrently.
    """

    def __init__(
        self,
        embedder: BaseEmbeddingClient,
        store: VectorStore,
        progress_store: ProgressStore,
        parsers: dict[str, DatasetParser] | None = None,
        dataset_path: Callable[[str], Path] | None = None,
        batch_size: int | None = None,
        rate_limit_delay: float | None = None,
        error_rate_threshold: float | None = None,
        min_records_for_breaker: int | None = None,
        max_attempts: int | None = None,
        backoff_multiplier: float = 1.0,
        on_event: Callable[[ProgressEvent], None] | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.tracker = ProgressTracker(progress_store)
        self.parsers = parsers
        self.dataset_path = dataset_path or _default_dataset_path
        self.batch_size = batch_size or settings.bootstrap_batch_size
        self.rate_limit_delay = (
            settings.bootstrap_rate_limit_delay if rate_limit_delay is None else rate_limit_delay
        )
        self.error_rate_threshold = (
            settings.bootstrap_error_rate_threshold
            if error_rate_threshold is None
            else error_rate_threshold
        )
        self.min_records_for_breaker = (
            settings.bootstrap_min_records_for_breaker
            if min_records_for_breaker is None
            else min_records_for_breaker
        )
        self.processor = BatchProcessor(
            embedder,
            store,
            max_attempts=max_attempts or settings.bootstrap_embed_max_attempts,
            backoff_multiplier=backoff_multiplier,
        )
        self.on_event = on_event

        if self.batch_size > embedder.batch_limit:
            raise ValueError(
                f"batch_size {self.batch_size} exceeds embedding batch limit {embedder.batch_limit}"
            )

    async def run(
        self,
        progress_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> BootstrapProgress:
        """
        Ingest the source named by a progress record.

        Args:
            progress_id: Id of an existing BootstrapProgress record
            cancel_event: Checked between batches; when set the run stops
                and the record stays resumable

        Returns:
            The final progress record

        Raises:
            CircuitBreakerOpenError: Error rate exceeded the threshold
            IngestionCancelledError: cancel_event was set
        """
        progress = await self.tracker.require(progress_id)
        if progress.status == BootstrapStatus.COMPLETED:
            logger.info("ingestion_already_completed", source=progress.source, progress_id=progress_id)
            return progress

        source = progress.source
        parser = get_parser(source, self.parsers)
        path = self.dataset_path(source)

        progress = await self.tracker.mark_started(progress)
        resume_from = progress.last_batch_index

        try:
            existing = await self.store.content_hashes({"source": source})
            self._emit(
                "starting",
                f"Ingesting {source}",
                progress,
                resume_from_batch=resume_from,
                already_stored=len(existing),
            )

            batch: list[NormalizedRecord] = []
            batch_index = 0
            async for record in parser(path):
                if not record.content.strip():
                    continue
                batch.append(record)
                if len(batch) < self.batch_size:
                    continue
                progress = await self._handle_batch(
                    progress, batch, batch_index, resume_from, existing, cancel_event
                )
                batch = []
                batch_index += 1

            if batch:
                progress = await self._handle_batch(
                    progress, batch, batch_index, resume_from, existing, cancel_event, pause=False
                )
        except IngestionCancelledError:
            logger.info(
                "ingestion_cancelled",
                source=source,
                last_batch_index=progress.last_batch_index,
            )
            raise
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            logger.error("ingestion_aborted", source=source, error=str(e))
            # The stored record can hold a pending marker newer than ``progress``
            latest = await self.tracker.get(progress.id)
            await self.tracker.mark_failed(latest or progress)
            raise

        progress = await self.tracker.mark_completed(progress)
        self._emit("completed", f"Finished {source}", progress)
        return progress

    async def _handle_batch(
        self,
        progress: BootstrapProgress,
        batch: list[NormalizedRecord],
        batch_index: int,
        resume_from: int,
        existing: set[str],
        cancel_event: asyncio.Event | None,
        pause: bool = True,
    ) -> BootstrapProgress:
        if batch_index < resume_from:
            logger.debug("batch_skipped", source=progress.source, batch_index=batch_index)
            return progress

        if cancel_event is not None and cancel_event.is_set():
            raise IngestionCancelledError(progress.source, progress.last_batch_index)

        carried = self._stored_by_earlier_attempt(progress, batch, batch_index, existing)
        fresh = {record.content_hash for record in batch} - existing
        if fresh:
            progress = await self.tracker.mark_batch_pending(progress, batch_index, fresh)

        result = await self.processor.process(batch, existing)
        if carried:
            result = result.model_copy(
                update={
                    "processed": result.processed + carried,
                    "embedded": result.embedded + carried,
                    "skipped_duplicates": max(0, result.skipped_duplicates - carried),
                }
            )
        progress = await self.tracker.record_batch(progress, batch_index, result)

        logger.debug(
            "batch_processed",
            source=progress.source,
            batch_index=batch_index,
            embedded=result.embedded,
            errors=result.errors,
            skipped=result.skipped_duplicates,
        )
        self._emit(
            "ingesting",
            f"{progress.source}: batch {batch_index}",
            progress,
            batch_index=batch_index,
            errors=result.errors,
        )

        if should_circuit_break(progress, self.error_rate_threshold, self.min_records_for_breaker):
            await self.tracker.mark_failed(progress)
            raise CircuitBreakerOpenError(
                progress.source,
                progress.error_count,
                progress.processed_records,
                self.error_rate_threshold,
            )

        if pause:
            await self._pause(cancel_event)
        return progress

    @staticmethod
    def _stored_by_earlier_attempt(
        progress: BootstrapProgress,
        batch: list[NormalizedRecord],
        batch_index: int,
        existing: set[str],
    ) -> int:
        """
        Count records of this batch that a previous attempt already stored.

        These are skipped as duplicates on re-run but still belong to the
        batch's totals: the embedded share of a committed checkpoint batch,
        plus whatever an uncommitted attempt managed to insert before it
        stopped.
        """
        carried = 0
        if batch_index == progress.last_batch_index:
            carried += progress.last_batch_embedded
        if progress.pending_batch_index == batch_index:
            pending = set(progress.pending_hashes) & existing
            carried += len({r.content_hash for r in batch if r.content_hash in pending})
        return carried

    async def _pause(self, cancel_event: asyncio.Event | None) -> None:
        """Rate-limit delay that ends early on cancellation."""
        if self.rate_limit_delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(self.rate_limit_delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.rate_limit_delay)
        except asyncio.TimeoutError:
            pass

    def _emit(self, stage: str, message: str, progress: BootstrapProgress, **data) -> None:
        if self.on_event is None:
            return
        percent = None
        if progress.total_records:
            percent = min(100.0, 100.0 * progress.processed_records / progress.total_records)
        data.update(
            source=progress.source,
            processed=progress.processed_records,
            embedded=progress.embedded_records,
            errors=progress.error_count,
        )
        self.on_event(ProgressEvent(stage=stage, percent=percent, message=message, data=data))
