"""
Bootstrap Coordinator

Runs several sources through the ingestion worker with bounded
concurrency. A failing source never stops the others; its outcome is
recorded in the summary instead.
"""

import asyncio
from datetime import datetime

import structlog

from nda_pipeline.bootstrap.progress import ProgressTracker
from nda_pipeline.bootstrap.worker import SourceIngestionWorker
from nda_pipeline.config import get_settings
from nda_pipeline.datasets.downloader import DatasetDownloader
from nda_pipeline.datasets.sources import DatasetSource
from nda_pipeline.models.bootstrap import (
    BootstrapProgress,
    BootstrapStatus,
    BootstrapSummary,
    SourceOutcome,
)
from nda_pipeline.storage.base import ProgressStore

logger = structlog.get_logger(__name__)


class BootstrapCoordinator:
    """Schedules per-source ingestion runs."""

    def __init__(
        self,
        worker: SourceIngestionWorker,
        progress_store: ProgressStore,
        max_concurrent: int | None = None,
        downloader: DatasetDownloader | None = None,
    ):
        self.worker = worker
        self.tracker = ProgressTracker(progress_store)
        self.max_concurrent = max_concurrent or get_settings().bootstrap_max_concurrent_sources
        self.downloader = downloader

    async def run(
        self,
        sources: list[str],
        resume: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> BootstrapSummary:
        """
        Ingest ``sources``, at most ``max_concurrent`` at a time.

        Args:
            sources: Source names, e.g. ["cuad", "contract_nli"]
            resume: Continue the latest unfinished run of each source
                instead of starting a new one
            cancel_event: Forwarded to every worker run

        Returns:
            BootstrapSummary with one outcome per source, in input order
        """
        semaphore = asyncio.Semaphore(self.max_concurrent)
        started_at = datetime.now()

        async def run_source(source: str) -> SourceOutcome:
            async with semaphore:
                return await self._run_source(source, resume, cancel_event)

        outcomes = await asyncio.gather(*(run_source(s) for s in sources))

        summary = BootstrapSummary(
            outcomes=list(outcomes),
            started_at=started_at,
            completed_at=datetime.now(),
        )
        logger.info(
            "bootstrap_finished",
            sources=len(sources),
            succeeded=summary.succeeded,
            duration_seconds=summary.duration_seconds,
        )
        return summary

    async def _run_source(
        self,
        source: str,
        resume: bool,
        cancel_event: asyncio.Event | None,
    ) -> SourceOutcome:
        progress: BootstrapProgress | None = None
        try:
            if self.downloader is not None:
                await self.downloader.download(DatasetSource(source))
            progress = await self._progress_for(source, resume)
            progress = await self.worker.run(progress.id, cancel_event)
            return _outcome(progress)
        except Exception as e:
            logger.error("source_failed", source=source, error=str(e))
            if progress is not None:
                progress = await self.tracker.get(progress.id) or progress
                return _outcome(progress, error=str(e))
            return SourceOutcome(source=source, status=BootstrapStatus.FAILED, error=str(e))

    async def _progress_for(self, source: str, resume: bool) -> BootstrapProgress:
        if resume:
            latest = await self.tracker.get_latest(source)
            if latest is not None and latest.status.resumable:
                logger.info(
                    "resuming_source",
                    source=source,
                    progress_id=latest.id,
                    last_batch_index=latest.last_batch_index,
                )
                return latest
        return await self.tracker.create(source)


def _outcome(progress: BootstrapProgress, error: str | None = None) -> SourceOutcome:
    return SourceOutcome(
        source=progress.source,
        progress_id=progress.id,
        status=progress.status,
        processed_records=progress.processed_records,
        embedded_records=progress.embedded_records,
        error_count=progress.error_count,
        error=error,
    )
