"""Tests for nda_pipeline/bootstrap/coordinator.py: concurrency, isolation, resume."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from nda_pipeline.bootstrap.coordinator import BootstrapCoordinator
from nda_pipeline.bootstrap.progress import ProgressTracker
from nda_pipeline.bootstrap.worker import SourceIngestionWorker
from nda_pipeline.datasets.sources import DatasetSource
from nda_pipeline.models.bootstrap import BootstrapStatus


class ParserSet:
    """Async parsers for several sources that record how many run at once."""

    def __init__(self, contents: dict[str, list[str]], make_record, broken: tuple[str, ...] = ()):
        self.active = 0
        self.peak = 0
        self.table = {}
        for source, texts in contents.items():
            self.table[source] = self._parser(source, texts, make_record, source in broken)

    def _parser(self, source, texts, make_record, broken):
        async def parser(path):
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                for text in texts:
                    await asyncio.sleep(0)
                    yield make_record(text, source=source)
                if broken:
                    raise OSError(f"{source} dataset truncated")
            finally:
                self.active -= 1

        return parser


@pytest.fixture
def build(fake_embedder, vector_store, progress_store, make_record):
    def _build(contents, broken=(), **kwargs):
        parsers = ParserSet(contents, make_record, broken)
        worker = SourceIngestionWorker(
            fake_embedder,
            vector_store,
            progress_store,
            parsers=parsers.table,
            dataset_path=lambda source: Path("/unused"),
            batch_size=2,
            rate_limit_delay=0,
            backoff_multiplier=0,
        )
        return BootstrapCoordinator(worker, progress_store, **kwargs), parsers

    return _build


class TestBootstrapCoordinator:

    @pytest.mark.asyncio
    async def test_runs_all_sources_in_order(self, build, vector_store):
        coordinator, _ = build({"cuad": ["a", "b", "c"], "contract_nli": ["d"]})

        summary = await coordinator.run(["cuad", "contract_nli"])

        assert summary.succeeded
        assert [o.source for o in summary.outcomes] == ["cuad", "contract_nli"]
        assert [o.embedded_records for o in summary.outcomes] == [3, 1]
        assert summary.duration_seconds is not None
        assert await vector_store.count() == 4

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, build):
        coordinator, _ = build({"cuad": ["a", "b"], "bonterms": ["x"]}, broken=("bonterms",))

        summary = await coordinator.run(["bonterms", "cuad"])

        failed, ok = summary.outcomes
        assert not summary.succeeded
        assert failed.status == BootstrapStatus.FAILED
        assert "truncated" in failed.error
        assert failed.progress_id is not None
        assert ok.status == BootstrapStatus.COMPLETED
        assert ok.error is None

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, build):
        contents = {s.value: [f"{s.value} {i}" for i in range(6)] for s in DatasetSource}
        coordinator, parsers = build(contents, max_concurrent=1)

        summary = await coordinator.run(list(contents))

        assert summary.succeeded
        assert parsers.peak == 1

    @pytest.mark.asyncio
    async def test_sources_overlap_when_allowed(self, build):
        contents = {s.value: [f"{s.value} {i}" for i in range(6)] for s in DatasetSource}
        coordinator, parsers = build(contents, max_concurrent=4)

        await coordinator.run(list(contents))

        assert parsers.peak > 1

    @pytest.mark.asyncio
    async def test_resume_reuses_unfinished_run(self, build, progress_store):
        tracker = ProgressTracker(progress_store)
        previous = await tracker.create("cuad")
        previous = await tracker.update(previous, status=BootstrapStatus.FAILED)
        coordinator, _ = build({"cuad": ["a"]})

        summary = await coordinator.run(["cuad"])

        assert summary.outcomes[0].progress_id == previous.id
        assert summary.outcomes[0].status == BootstrapStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_fresh_run_ignores_previous(self, build, progress_store):
        previous = await ProgressTracker(progress_store).create("cuad")
        coordinator, _ = build({"cuad": ["a"]})

        summary = await coordinator.run(["cuad"], resume=False)

        assert summary.outcomes[0].progress_id != previous.id

    @pytest.mark.asyncio
    async def test_completed_run_starts_new_record(self, build):
        coordinator, _ = build({"cuad": ["a"]})
        first = await coordinator.run(["cuad"])
        second = await coordinator.run(["cuad"])

        assert second.outcomes[0].progress_id != first.outcomes[0].progress_id
        assert second.outcomes[0].embedded_records == 0

    @pytest.mark.asyncio
    async def test_downloads_before_ingesting(self, build):
        downloader = AsyncMock()
        coordinator, _ = build({"cuad": ["a"]}, downloader=downloader)

        await coordinator.run(["cuad"])

        downloader.download.assert_awaited_once_with(DatasetSource.CUAD)

    @pytest.mark.asyncio
    async def test_download_failure_recorded(self, build):
        downloader = AsyncMock()
        downloader.download.side_effect = OSError("disk full")
        coordinator, _ = build({"cuad": ["a"]}, downloader=downloader)

        summary = await coordinator.run(["cuad"])

        outcome = summary.outcomes[0]
        assert outcome.status == BootstrapStatus.FAILED
        assert outcome.progress_id is None
        assert outcome.error == "disk full"
