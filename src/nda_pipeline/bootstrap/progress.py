"""
Progress tracking for bootstrap ingestion.

Progress records are immutable snapshots: every transition returns a new
copy that has already been persisted.
"""

from datetime import datetime

import structlog

from nda_pipeline.exceptions import NotFoundError
from nda_pipeline.models.bootstrap import BatchResult, BootstrapProgress, BootstrapStatus
from nda_pipeline.storage.base import ProgressStore

logger = structlog.get_logger(__name__)


class ProgressTracker:
    """State transitions for BootstrapProgress records."""

    def __init__(self, store: ProgressStore):
        self.store = store

    async def create(self, source: str, total_records: int | None = None) -> BootstrapProgress:
        progress = BootstrapProgress(source=source, total_records=total_records)
        return await self.store.create(progress)

    async def get(self, progress_id: str) -> BootstrapProgress | None:
        return await self.store.get(progress_id)

    async def get_latest(self, source: str) -> BootstrapProgress | None:
        return await self.store.latest_for_source(source)

    async def require(self, progress_id: str) -> BootstrapProgress:
        progress = await self.store.get(progress_id)
        if progress is None:
            raise NotFoundError("bootstrap_progress", progress_id)
        return progress

    async def update(self, progress: BootstrapProgress, **changes) -> BootstrapProgress:
        changes["updated_at"] = datetime.now()
        return await self.store.save(progress.model_copy(update=changes))

    async def mark_started(self, progress: BootstrapProgress) -> BootstrapProgress:
        logger.info(
            "ingestion_started",
            source=progress.source,
            progress_id=progress.id,
            resume_from_batch=progress.last_batch_index,
        )
        return await self.update(
            progress,
            status=BootstrapStatus.IN_PROGRESS,
            started_at=progress.started_at or datetime.now(),
        )

    async def mark_batch_pending(
        self,
        progress: BootstrapProgress,
        batch_index: int,
        hashes: set[str],
    ) -> BootstrapProgress:
        """Persist the hashes a batch is about to insert, before any insert happens."""
        return await self.update(
            progress,
            pending_batch_index=batch_index,
            pending_hashes=sorted(hashes),
        )

    async def record_batch(
        self,
        progress: BootstrapProgress,
        batch_index: int,
        result: BatchResult,
    ) -> BootstrapProgress:
        """
        Commit a batch's counters and advance the checkpoint.

        Recording the batch already at the checkpoint replaces its earlier
        counters instead of adding to them, so re-running that batch on
        resume never counts a record twice.
        """
        replaced = batch_index == progress.last_batch_index
        changes = {
            "processed_records": progress.processed_records + result.processed,
            "embedded_records": progress.embedded_records + result.embedded,
            "error_count": progress.error_count + result.errors,
            "last_batch_index": max(progress.last_batch_index, batch_index),
            "last_processed_hash": result.last_hash or progress.last_processed_hash,
        }
        if replaced:
            changes["processed_records"] -= progress.last_batch_processed
            changes["embedded_records"] -= progress.last_batch_embedded
            changes["error_count"] -= progress.last_batch_errors
        if batch_index >= progress.last_batch_index:
            changes.update(
                last_batch_processed=result.processed,
                last_batch_embedded=result.embedded,
                last_batch_errors=result.errors,
            )
        if progress.pending_batch_index == batch_index:
            changes.update(pending_batch_index=None, pending_hashes=[])
        return await self.update(progress, **changes)

    async def mark_completed(self, progress: BootstrapProgress) -> BootstrapProgress:
        logger.info(
            "ingestion_completed",
            source=progress.source,
            processed=progress.processed_records,
            embedded=progress.embedded_records,
            errors=progress.error_count,
        )
        return await self.update(
            progress,
            status=BootstrapStatus.COMPLETED,
            completed_at=datetime.now(),
        )

    async def mark_failed(self, progress: BootstrapProgress) -> BootstrapProgress:
        logger.warning(
            "ingestion_failed",
            source=progress.source,
            last_batch_index=progress.last_batch_index,
            errors=progress.error_count,
        )
        return await self.update(progress, status=BootstrapStatus.FAILED)
