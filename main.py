"""Main CLI entry point for the corpus ingestion engine."""
import asyncio
import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.table import Table

from utils.logger import attach_run_log, console, detach_run_log, setup_logger
from ingestion.chunker import chunk_sections, default_targets
from ingestion.models import ChunkingForm, ChunkTargets, WorkUnit
from ingestion.parsers import PARSERS, get_parser
from ingestion.source_config import SourceConfig, load_source_config
from extraction.checkpoint import CheckpointStore
from storage.record_store import RecordStore
from storage.merger import combine_sources
from monitoring.progress_tracker import ProgressReport, ProgressTracker
from execution.errors import FatalConfigError
from execution.ingestion_driver import IngestionDriver, RunSummary
from execution.rate_limiter import RateLimiter
from execution.retry_handler import RetryingFetcher
import config

logger = setup_logger(__name__)

FORM_CHOICES = [form.value for form in ChunkingForm]


def resolve_data_dir(source_config: SourceConfig, data_dir) -> Path:
    return Path(data_dir) if data_dir else config.DATA_DIR / source_config.source


def load_config_or_exit(config_path) -> SourceConfig:
    try:
        return load_source_config(Path(config_path))
    except FatalConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


async def run_ingestion(source_config: SourceConfig, data_dir: Path) -> RunSummary:
    checkpoint = CheckpointStore.for_data_dir(data_dir)
    rate_limiter = RateLimiter(
        source_config.rate_limit_seconds,
        per_host=source_config.per_host_rate_limit
    )

    with checkpoint.lock():
        # Loading prunes orphan chunk files, so only the lock holder may do it
        records = RecordStore(data_dir)
        report = ProgressReport(source_config, checkpoint, records, data_dir)
        async with RetryingFetcher(
            rate_limiter,
            max_retries=source_config.max_retries,
            base_delay=source_config.base_delay_seconds,
            timeout=source_config.timeout_seconds
        ) as fetcher:
            with ProgressTracker(console).create_progress() as progress:
                task = progress.add_task(
                    f"Ingesting {source_config.source}", total=len(source_config.units)
                )
                driver = IngestionDriver(
                    source_config,
                    fetcher,
                    checkpoint,
                    records,
                    report=report,
                    on_unit=lambda result: progress.advance(task)
                )
                return await driver.run()


@click.group()
def cli():
    """Corpus ingestion engine: fetch, chunk and merge public-domain texts."""
    pass


@cli.command()
@click.option('--config', 'config_path', required=True, type=click.Path(exists=True), help='Source configuration JSON')
@click.option('--data-dir', type=click.Path(), help='Output directory (default: DATA_DIR/<source>)')
def ingest(config_path, data_dir):
    """Ingest every work unit of a source, resuming from its checkpoint."""
    source_config = load_config_or_exit(config_path)
    data_dir = resolve_data_dir(source_config, data_dir)

    console.print(f"\n[bold cyan]Ingesting {source_config.source}[/bold cyan]\n")
    console.print(f"Units: {len(source_config.units)}")
    console.print(f"Output: [cyan]{data_dir}[/cyan]\n")

    run_log = attach_run_log(data_dir / config.RUN_LOG_FILENAME)
    try:
        summary = asyncio.run(run_ingestion(source_config, data_dir))
    except FatalConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        detach_run_log(run_log)

    table = Table(title=f"Run Summary: {summary.source}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Completed", str(summary.completed))
    table.add_row("Already done", str(summary.already_done))
    table.add_row("Skipped (not found)", str(summary.skipped))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Chunks", f"{summary.total_chunks:,}")
    console.print(table)

    if summary.failed_keys:
        console.print(f"[yellow]Failed units (retried next run): {', '.join(summary.failed_keys)}[/yellow]")


@cli.command()
@click.option('--config', 'config_path', required=True, type=click.Path(exists=True), help='Source configuration JSON')
@click.option('--data-dir', type=click.Path(), help='Output directory (default: DATA_DIR/<source>)')
def status(config_path, data_dir):
    """Show per-unit progress and regenerate the progress report."""
    source_config = load_config_or_exit(config_path)
    data_dir = resolve_data_dir(source_config, data_dir)

    checkpoint = CheckpointStore.for_data_dir(data_dir)
    try:
        progress = checkpoint.load()
        records = RecordStore(data_dir, prune_orphans=False)
    except FatalConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    report = ProgressReport(source_config, checkpoint, records, data_dir)
    report.write()

    table = Table(title=f"Progress: {source_config.source}")
    table.add_column("Unit", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")

    for unit in source_config.units:
        if unit.key in progress.completed:
            state = "[green]completed[/green]"
        elif unit.key in progress.skipped:
            state = "[yellow]skipped[/yellow]"
        elif unit.key in progress.failed:
            state = "[red]failed[/red]"
        else:
            state = "[dim]pending[/dim]"
        work = records.find_work(source_config.source, unit.stable_id)
        count = records.chunk_count(work.id) if work else 0
        table.add_row(unit.key, unit.title, state, str(count))

    console.print(table)
    console.print(f"Report: [cyan]{report.report_path}[/cyan]")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--form', type=click.Choice(FORM_CHOICES), default='prose', help='Chunking form')
@click.option('--parser', 'parser_name', type=click.Choice(sorted(PARSERS)), default='plaintext', help='Payload parser')
@click.option('--min', 'min_chars', type=int, help='Minimum chunk length')
@click.option('--target', 'target_chars', type=int, help='Target chunk length')
@click.option('--max', 'max_chars', type=int, help='Maximum chunk length')
@click.option('--overlap', type=int, help='Overlap in characters')
@click.option('--output', type=click.Path(), help='Write chunks as JSON to this path')
def chunk(file, form, parser_name, min_chars, target_chars, max_chars, overlap, output):
    """Chunk a local file and show the result."""
    path = Path(file)
    form = ChunkingForm(form)

    overrides = {
        key: value
        for key, value in (("min", min_chars), ("target", target_chars), ("max", max_chars), ("overlap", overlap))
        if value is not None
    }
    try:
        targets = ChunkTargets(**{**default_targets(form).model_dump(), **overrides})
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    unit = WorkUnit(
        key=path.stem,
        title=path.stem,
        author="Unknown",
        files=[str(path)],
        parser=parser_name,
        form=form,
        targets=targets
    )
    try:
        parsed = get_parser(parser_name)(path.read_text(encoding='utf-8'), unit, None)
    except Exception as e:
        console.print(f"[red]Error parsing {path}: {e}[/red]")
        sys.exit(1)

    drafts = chunk_sections(parsed.sections, form, targets)

    if output:
        output_path = Path(output)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump([d.model_dump() for d in drafts], f, indent=2, ensure_ascii=False)
        console.print(f"[green]✓ Wrote {len(drafts)} chunks to {output_path}[/green]")
        return

    table = Table(title=f"{path.name}: {len(drafts)} {form.value} chunks")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Type")
    table.add_column("Chars", justify="right")
    table.add_column("Position", style="cyan")
    table.add_column("Preview")
    for index, draft in enumerate(drafts):
        position = ", ".join(f"{k}={v}" for k, v in draft.metadata.items())
        table.add_row(
            str(index),
            draft.chunk_type,
            str(len(draft.content)),
            position,
            draft.content[:60].replace("\n", " ") + ("..." if len(draft.content) > 60 else "")
        )
    console.print(table)


@cli.command()
@click.option('--source-dir', 'source_dirs', multiple=True, required=True, type=click.Path(exists=True, file_okay=False), help='Source data directory (repeatable, in precedence order)')
@click.option('--out', 'out_dir', type=click.Path(file_okay=False), default=str(config.COMBINED_DIR), help='Combined output directory')
def merge(source_dirs, out_dir):
    """Merge several sources into one corpus with canonical authors."""
    console.print("\n[bold cyan]Combining sources[/bold cyan]\n")

    try:
        stats = combine_sources([Path(d) for d in source_dirs], Path(out_dir))
    except FatalConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    table = Table(title="Combined Corpus")
    table.add_column("Source", style="cyan")
    table.add_column("Authors", justify="right")
    table.add_column("Works", justify="right")
    table.add_column("Chunks", justify="right")
    for name, source_stats in stats.by_source.items():
        table.add_row(name, str(source_stats.authors), str(source_stats.works), f"{source_stats.chunks:,}")
    table.add_row(
        "[bold]Total[/bold]",
        str(stats.total_authors),
        str(stats.total_works),
        f"{stats.total_chunks:,}"
    )
    console.print(table)
    console.print(f"\n[green]✓ Written to {out_dir}[/green]")


if __name__ == '__main__':
    cli()
