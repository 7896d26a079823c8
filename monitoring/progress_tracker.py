"""Live progress display and the markdown progress report."""
from pathlib import Path
from typing import Optional

from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, MofNCompleteColumn, TimeRemainingColumn

from utils.logger import setup_logger
from utils.text import get_timestamp
from ingestion.models import WorkUnit
import config

logger = setup_logger(__name__)


class ProgressTracker:
    def __init__(self, console):
        self.console = console

    def create_progress(self):
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console
        )


class ProgressReport:
    """Writes ``progress.md`` (and ``DONE.txt``) for one source run.

    The report is derived entirely from the source configuration, the
    checkpoint and the record store, so it can be regenerated at any time.
    """

    def __init__(self, source_config, checkpoint, records, data_dir: Path):
        self.source_config = source_config
        self.checkpoint = checkpoint
        self.records = records
        self.data_dir = Path(data_dir)
        self.report_path = self.data_dir / config.PROGRESS_REPORT_FILENAME
        self.done_path = self.data_dir / "DONE.txt"

    def _chunk_count(self, unit: WorkUnit) -> int:
        work = self.records.find_work(self.source_config.source, unit.stable_id)
        return self.records.chunk_count(work.id) if work else 0

    def pending_units(self):
        progress = self.checkpoint.progress
        finished = set(progress.completed) | set(progress.skipped)
        return [u for u in self.source_config.units if u.key not in finished]

    def render(self, current: Optional[WorkUnit] = None) -> str:
        progress = self.checkpoint.progress
        units = self.source_config.units
        completed = [u for u in units if u.key in progress.completed]
        failed = [u for u in units if u.key in progress.failed and u.key not in progress.completed]
        skipped = [u for u in units if u.key in progress.skipped]
        pending = [u for u in self.pending_units() if u not in failed]
        percent = (len(completed) / len(units) * 100) if units else 100.0

        lines = [
            f"# Ingestion Progress: {self.source_config.source}",
            "",
            f"Last updated: {get_timestamp()}",
            "",
            "## Summary",
            "",
            f"- Completed: {len(completed)}/{len(units)} ({percent:.1f}%)",
            f"- Failed: {len(failed)}",
            f"- Skipped (not found): {len(skipped)}",
            f"- Pending: {len(pending)}",
            f"- Total chunks: {sum(self._chunk_count(u) for u in completed)}",
            "",
        ]

        if current is not None:
            lines += ["## In Progress", "", f"- {current.key}: {current.title}", ""]

        if completed:
            lines += ["## Completed", "", "| Unit | Title | Chunks |", "|---|---|---|"]
            lines += [f"| {u.key} | {u.title} | {self._chunk_count(u)} |" for u in completed]
            lines.append("")

        for heading, group in (("Failed", failed), ("Skipped", skipped), ("Pending", pending)):
            if group:
                lines += [f"## {heading}", ""]
                lines += [f"- {u.key}: {u.title}" for u in group]
                lines.append("")

        return "\n".join(lines)

    def write(self, current: Optional[WorkUnit] = None) -> None:
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        self.report_path.write_text(self.render(current), encoding='utf-8')

    def write_done(self, total_chunks: int) -> None:
        self.done_path.parent.mkdir(parents=True, exist_ok=True)
        self.done_path.write_text(
            f"Ingestion of '{self.source_config.source}' finished at {get_timestamp()}\n"
            f"Units: {len(self.source_config.units)}\n"
            f"Chunks: {total_chunks}\n",
            encoding='utf-8'
        )
        logger.info(f"✓ All units finished; wrote {self.done_path}")
