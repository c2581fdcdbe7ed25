"""
Command-line interface for the NDA pipeline.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
import structlog

from nda_pipeline.config import get_settings
from nda_pipeline.datasets.sources import DatasetSource
from nda_pipeline.exceptions import PipelineHaltedError
from nda_pipeline.logging_config import configure_logging

logger = structlog.get_logger(__name__)

SOURCE_CHOICES = [s.value for s in DatasetSource]

_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def guess_mime_type(path: Path) -> str:
    return _MIME_TYPES.get(path.suffix.lower(), "text/plain")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """NDA pipeline: document preparation and reference corpus ingestion."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    settings = get_settings()
    configure_logging(
        level="DEBUG" if debug or settings.debug else settings.log_level,
        json_output=settings.log_json,
    )


# =========================================================================
# Document Commands
# =========================================================================


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-tokens", default=None, type=int, help="Token ceiling per chunk")
@click.option("--overlap", default=None, type=int, help="Tokens carried into the next chunk")
@click.option("--budget", default=None, type=int, help="Truncate chunks to this token budget")
@click.option("--json", "as_json", is_flag=True, help="Print chunks as JSON")
def chunk(
    file: str,
    max_tokens: Optional[int],
    overlap: Optional[int],
    budget: Optional[int],
    as_json: bool,
) -> None:
    """Split a text file into section-aware chunks."""
    from nda_pipeline.services.budget import check_token_budget, truncate_to_token_budget
    from nda_pipeline.services.chunker import DocumentChunker

    settings = get_settings()
    text = Path(file).read_text(encoding="utf-8")

    try:
        chunker = DocumentChunker(
            max_tokens=max_tokens or settings.chunk_max_tokens,
            overlap_tokens=settings.chunk_overlap_tokens if overlap is None else overlap,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    chunks = chunker.chunk(text)
    removed: list[str] = []
    if budget is not None and not check_token_budget(text, budget).within_budget:
        truncation = truncate_to_token_budget(text, chunks, budget)
        chunks = truncation.chunks
        removed = truncation.removed_sections

    if as_json:
        click.echo(json.dumps([c.model_dump() for c in chunks], indent=2))
        return

    for c in chunks:
        heading = " > ".join(c.section_path) or "(no heading)"
        click.echo(f"[{c.index}] {heading}  tokens={c.token_count}  chars={c.start_position}-{c.end_position}")
    click.echo(f"\n{len(chunks)} chunk(s)")
    if removed:
        click.echo(f"Truncated sections: {', '.join(removed)}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--mime-type", default=None, help="Content type; guessed from the suffix by default")
def prepare(file: str, mime_type: str | None) -> None:
    """Run an upload through extraction, chunking and the budget gate."""
    from nda_pipeline.pipeline.document_pipeline import DocumentPipeline

    path = Path(file)
    pipeline = DocumentPipeline()

    try:
        result = pipeline.prepare(path.read_bytes(), mime_type or guess_mime_type(path))
    except PipelineHaltedError as e:
        info = e.error
        raise click.ClickException(f"[{info.stage}] {info.user_message} {info.suggestion}") from e

    click.echo(f"Status: {result.status.value}")
    if result.estimate:
        click.echo(f"Tokens: {result.estimate.token_count}")
    click.echo(f"Chunks: {len(result.chunks)}")
    if result.truncated:
        click.echo(f"Truncated sections: {', '.join(result.truncation.removed_sections)}")
    for warning in result.warnings:
        click.echo(f"Warning: {warning.message}")


# =========================================================================
# Bootstrap Commands
# =========================================================================


@cli.command()
@click.argument("sources", nargs=-1, type=click.Choice(SOURCE_CHOICES))
@click.option("--force", is_flag=True, help="Re-download cached datasets")
def download(sources: tuple[str, ...], force: bool) -> None:
    """Download reference datasets."""
    from nda_pipeline.datasets.downloader import DatasetDownloader

    selected = [DatasetSource(s) for s in (sources or SOURCE_CHOICES)]

    async def run_download():
        downloader = DatasetDownloader()
        try:
            results = await downloader.download_all(selected, force_refresh=force)
        finally:
            await downloader.close()
        for result in results:
            state = "cached" if result.cached else "downloaded"
            click.echo(f"{result.source.value}: {state} ({result.size_bytes} bytes) -> {result.path}")

    asyncio.run(run_download())


@cli.command()
@click.argument("sources", nargs=-1, type=click.Choice(SOURCE_CHOICES))
@click.option("--fresh", is_flag=True, help="Start new runs instead of resuming")
@click.option("--download", "fetch", is_flag=True, help="Download missing datasets first")
def ingest(sources: tuple[str, ...], fresh: bool, fetch: bool) -> None:
    """Ingest reference datasets into the corpus store."""
    from nda_pipeline.bootstrap import BootstrapCoordinator, SourceIngestionWorker
    from nda_pipeline.datasets.downloader import DatasetDownloader
    from nda_pipeline.services.embedding_client import get_embedding_client
    from nda_pipeline.storage import get_progress_store, get_reference_store

    selected = list(sources or SOURCE_CHOICES)

    def on_event(event) -> None:
        logger.info("ingestion_event", stage=event.stage, message=event.message, **event.data)

    async def run_ingest():
        embedder = get_embedding_client()
        progress_store = get_progress_store()
        worker = SourceIngestionWorker(
            embedder,
            get_reference_store(),
            progress_store,
            on_event=on_event,
        )
        downloader = DatasetDownloader() if fetch else None
        coordinator = BootstrapCoordinator(worker, progress_store, downloader=downloader)

        try:
            summary = await coordinator.run(selected, resume=not fresh)
        finally:
            await embedder.close()
            if downloader is not None:
                await downloader.close()

        click.echo("\n=== Ingestion Summary ===\n")
        for outcome in summary.outcomes:
            click.echo(
                f"{outcome.source}: {outcome.status.value}  processed={outcome.processed_records}  "
                f"embedded={outcome.embedded_records}  errors={outcome.error_count}"
            )
            if outcome.error:
                click.echo(f"  error: {outcome.error}", err=True)
        if summary.duration_seconds is not None:
            click.echo(f"\nDuration: {summary.duration_seconds:.2f}s")
        return summary.succeeded

    if not asyncio.run(run_ingest()):
        raise click.exceptions.Exit(1)


@cli.command()
@click.argument("source", type=click.Choice(SOURCE_CHOICES))
def progress(source: str) -> None:
    """Show the latest ingestion run for a source."""
    from nda_pipeline.bootstrap import ProgressTracker
    from nda_pipeline.storage import get_progress_store

    async def show_progress():
        latest = await ProgressTracker(get_progress_store()).get_latest(source)
        if latest is None:
            click.echo(f"No ingestion runs for {source}")
            return

        click.echo(f"\n=== {source} ===\n")
        click.echo(f"Run: {latest.id}")
        click.echo(f"Status: {latest.status.value}")
        click.echo(f"Processed: {latest.processed_records}")
        click.echo(f"Embedded: {latest.embedded_records}")
        click.echo(f"Errors: {latest.error_count} ({latest.error_rate:.1%})")
        click.echo(f"Last batch: {latest.last_batch_index}")
        if latest.completed_at:
            click.echo(f"Completed: {latest.completed_at.isoformat()}")

    asyncio.run(show_progress())


@cli.command()
@click.argument("source", type=click.Choice(SOURCE_CHOICES))
@click.option("--path", "dataset_path", type=click.Path(exists=True), help="Dataset location override")
def stats(source: str, dataset_path: Optional[str]) -> None:
    """Show parser statistics for a downloaded dataset."""
    from nda_pipeline.datasets.downloader import get_dataset_path
    from nda_pipeline.datasets.sources import get_dataset_stats

    path = Path(dataset_path) if dataset_path else get_dataset_path(DatasetSource(source))
    if not path.exists():
        raise click.ClickException(f"Dataset not found at {path}; run `nda-pipeline download {source}`")

    result = asyncio.run(get_dataset_stats(source, path))

    click.echo(f"\n=== {source} statistics ===\n")
    for key, value in result.items():
        if isinstance(value, dict):
            click.echo(f"{key}:")
            for name, count in value.items():
                click.echo(f"  {name}: {count}")
        else:
            click.echo(f"{key}: {value}")


# =========================================================================
# Config Commands
# =========================================================================


@cli.command()
def config() -> None:
    """Show current configuration."""
    settings = get_settings()

    click.echo("\n=== NDA Pipeline Configuration ===\n")
    click.echo(f"Environment: {settings.environment}")
    click.echo(f"\nToken budget: {settings.token_budget}")
    click.echo(f"Chunk size: {settings.chunk_max_tokens} (overlap {settings.chunk_overlap_tokens})")
    click.echo(f"\nEmbedding provider: {settings.embedding_provider}")
    click.echo(f"Embedding dimension: {settings.embedding_dimension}")
    click.echo(f"Vector backend: {settings.vector_backend}")
    click.echo(f"Progress backend: {settings.progress_backend}")
    click.echo(f"Datasets: {settings.datasets_dir}")


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
