import asyncio
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from utils.logger import setup_logger
from ingestion.chunker import chunk_sections
from ingestion.models import Chunk, Section, WorkUnit
from ingestion.parsers import get_parser
from ingestion.source_config import SourceConfig
from extraction.checkpoint import CheckpointStore
from storage.record_store import RecordStore
from monitoring.progress_tracker import ProgressReport
from .errors import FatalConfigError, FetchError, IngestionError, NotFoundError, UnitFailure
from .retry_handler import RetryingFetcher

logger = setup_logger(__name__)


class UnitStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    ALREADY_DONE = "already_done"


class UnitResult(BaseModel):
    key: str
    status: UnitStatus
    chunk_count: int = 0
    error: str | None = None


class RunSummary(BaseModel):
    source: str
    total_units: int
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    already_done: int = 0
    total_chunks: int = 0
    failed_keys: List[str] = []
    error_summary: Dict[str, int] = {}

    def record(self, result: UnitResult) -> None:
        if result.status == UnitStatus.COMPLETED:
            self.completed += 1
            self.total_chunks += result.chunk_count
        elif result.status == UnitStatus.SKIPPED:
            self.skipped += 1
        elif result.status == UnitStatus.ALREADY_DONE:
            self.already_done += 1
        else:
            self.failed += 1
            self.failed_keys.append(result.key)


class IngestionDriver:
    def __init__(
        self,
        source_config: SourceConfig,
        fetcher: RetryingFetcher,
        checkpoint: CheckpointStore,
        records: RecordStore,
        report: Optional[ProgressReport] = None,
        on_unit: Optional[Callable[[UnitResult], None]] = None
    ):
        self.source_config = source_config
        self.fetcher = fetcher
        self.checkpoint = checkpoint
        self.records = records
        self.report = report
        self.on_unit = on_unit

    async def run(self) -> RunSummary:
        """Process every configured unit in order, resuming from the checkpoint.

        FatalConfigError propagates; every other failure is recorded against
        its unit and the run continues.
        """
        self.checkpoint.load()
        summary = RunSummary(
            source=self.source_config.source,
            total_units=len(self.source_config.units)
        )

        for unit in self.source_config.units:
            if self.checkpoint.is_done(unit.key):
                result = UnitResult(key=unit.key, status=UnitStatus.ALREADY_DONE)
            elif self.checkpoint.is_skipped(unit.key):
                result = UnitResult(key=unit.key, status=UnitStatus.SKIPPED, error="not found (earlier run)")
            else:
                self._write_report(current=unit)
                result = await self.process_unit(unit)
                if result.error:
                    kind = result.error.split(":", 1)[0]
                    summary.error_summary[kind] = summary.error_summary.get(kind, 0) + 1
                self._write_report()

            summary.record(result)
            if self.on_unit:
                self.on_unit(result)

        logger.info(
            f"[Run] {summary.source}: {summary.completed} completed, {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.already_done} already done, "
            f"{summary.total_chunks} chunks"
        )

        if self.report and not self.report.pending_units():
            self.report.write_done(self.records.total_chunks)
        return summary

    async def process_unit(self, unit: WorkUnit) -> UnitResult:
        """Fetch, parse, chunk and persist one unit, then checkpoint it."""
        logger.info(f"[Unit] {unit.key}: {unit.title}")
        try:
            sections = await self._load_sections(unit)
            if not sections:
                raise UnitFailure(unit.key, "no content extracted")

            drafts = chunk_sections(sections, unit.form, unit.targets)
            if not drafts:
                raise UnitFailure(unit.key, "no chunks produced")

            source = self.source_config.source
            author = self.records.get_or_create_author(unit)
            work = self.records.get_or_create_work(unit, author, source)
            chunks = []
            for index, draft in enumerate(drafts):
                metadata = dict(draft.metadata)
                if unit.tradition:
                    metadata["tradition"] = unit.tradition
                chunks.append(Chunk(
                    work_id=work.id,
                    author_id=work.author_id,
                    content=draft.content,
                    chunk_index=index,
                    chunk_type=draft.chunk_type,
                    source=source,
                    source_metadata=metadata
                ))

            self.records.commit_unit(author, work, chunks)
            self.checkpoint.mark_completed(unit.key)
            logger.info(f"✓ {unit.key}: {len(chunks)} chunks")
            return UnitResult(key=unit.key, status=UnitStatus.COMPLETED, chunk_count=len(chunks))

        except NotFoundError as e:
            logger.warning(f"[Unit] {unit.key} not found, skipping: {e}")
            self.checkpoint.mark_skipped(unit.key)
            return UnitResult(key=unit.key, status=UnitStatus.SKIPPED, error=f"not_found: {e}")

        except FatalConfigError:
            raise

        except FetchError as e:
            logger.error(f"[Unit] {unit.key} failed to fetch: {e}")
            self.checkpoint.mark_failed(unit.key)
            return UnitResult(key=unit.key, status=UnitStatus.FAILED, error=f"{e.kind.value}: {e}")

        except IngestionError as e:
            logger.error(f"[Unit] {unit.key} failed: {e}")
            self.checkpoint.mark_failed(unit.key)
            return UnitResult(key=unit.key, status=UnitStatus.FAILED, error=f"{e.__class__.__name__}: {e}")

        except Exception as e:
            logger.exception(f"[Unit] {unit.key} failed unexpectedly")
            self.checkpoint.mark_failed(unit.key)
            return UnitResult(key=unit.key, status=UnitStatus.FAILED, error=f"{e.__class__.__name__}: {e}")

    async def _load_sections(self, unit: WorkUnit) -> List[Section]:
        """Fetch or read every payload and parse it into sections.

        Pages that are not found are skipped; the unit is not found only
        when every page is.
        """
        parser = get_parser(unit.parser)
        payloads = unit.payloads
        multi_page = len(payloads) > 1
        sections: List[Section] = []
        missing: List[NotFoundError] = []

        for page, location in enumerate(payloads, start=1):
            try:
                text = await self._read_payload(location)
            except NotFoundError as e:
                logger.warning(f"[Unit] {unit.key} page {page} not found: {location}")
                missing.append(e)
                continue

            page_number = page if multi_page else None
            parsed = parser(text, unit, page_number)
            for section in parsed.sections:
                if page_number is not None and section.chapter is None:
                    section = section.model_copy(update={"chapter": page_number})
                sections.append(section)

        if payloads and len(missing) == len(payloads):
            raise missing[0]
        return sections

    async def _read_payload(self, location: str) -> str:
        if location.startswith(("http://", "https://")):
            return await self.fetcher.fetch_text(location)
        path = Path(location)
        if not path.exists():
            raise NotFoundError(location)
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    def _write_report(self, current: Optional[WorkUnit] = None) -> None:
        if self.report:
            self.report.write(current)
