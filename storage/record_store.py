"""JSON record store for one source's authors, works and chunks."""
import json
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from utils.logger import setup_logger
from utils.files import read_json, write_json_atomic
from utils.text import create_slug, normalize_name
from ingestion.models import Author, Chunk, Work, WorkUnit
from execution.errors import FatalConfigError

logger = setup_logger(__name__)


class RecordStore:
    """Authors, works and per-work chunk files under one data directory.

    Layout::

        <data_dir>/authors.json
        <data_dir>/works.json
        <data_dir>/chunks/<work_id>.json

    A unit's chunk file is written first, then authors, then works, so a
    crash in between leaves at most an unreferenced author or an orphan
    chunk file; orphan chunk files are removed on the next load.
    """

    def __init__(self, data_dir: Path, prune_orphans: bool = True):
        """Initialize record store and load existing records.

        Args:
            data_dir: Source output directory
            prune_orphans: Delete chunk files no work refers to (writers only)
        """
        self.data_dir = Path(data_dir)
        self.authors_path = self.data_dir / "authors.json"
        self.works_path = self.data_dir / "works.json"
        self.chunks_dir = self.data_dir / "chunks"

        self.authors: List[Author] = [Author(**a) for a in self._read_list(self.authors_path)]
        self.works: List[Work] = [Work(**w) for w in self._read_list(self.works_path)]
        self._chunk_counts: Dict[str, int] = {}
        self._load_chunk_counts(prune_orphans)

        logger.debug(
            f"Loaded {len(self.authors)} authors, {len(self.works)} works from {self.data_dir}"
        )

    def _read_list(self, path: Path) -> List[dict]:
        try:
            data = read_json(path)
        except json.JSONDecodeError as e:
            raise FatalConfigError(f"Corrupt record file {path}: {e}") from e
        return data or []

    def _load_chunk_counts(self, prune_orphans: bool) -> None:
        if not self.chunks_dir.exists():
            return
        work_ids = {w.id for w in self.works}
        for path in sorted(self.chunks_dir.glob("*.json")):
            if path.stem not in work_ids:
                if prune_orphans:
                    logger.warning(f"Removing orphan chunk file {path.name}")
                    path.unlink()
                continue
            self._chunk_counts[path.stem] = len(self._read_list(path))

    def chunk_file(self, work_id: str) -> Path:
        return self.chunks_dir / f"{work_id}.json"

    def find_author(self, name: str) -> Optional[Author]:
        key = normalize_name(name)
        return next((a for a in self.authors if normalize_name(a.name) == key), None)

    def find_work(self, source: str, source_id: str) -> Optional[Work]:
        return next(
            (w for w in self.works if w.source == source and w.source_id == source_id),
            None
        )

    def get_or_create_author(self, unit: WorkUnit) -> Author:
        """Existing author with the same normalized name, or a new unsaved one."""
        existing = self.find_author(unit.author)
        if existing:
            return existing
        return Author(
            name=unit.author,
            slug=create_slug(unit.author),
            birth_year=unit.birth_year,
            death_year=unit.death_year,
            nationality=unit.nationality,
            era=unit.era,
            bio=unit.bio,
            wikipedia_url=unit.wikipedia_url
        )

    def get_or_create_work(self, unit: WorkUnit, author: Author, source: str) -> Work:
        """Existing work with the unit's source_id, or a new unsaved one."""
        existing = self.find_work(source, unit.stable_id)
        if existing:
            return existing
        return Work(
            author_id=author.id,
            title=unit.title,
            slug=create_slug(unit.title),
            original_language=unit.language,
            genre=unit.genre,
            form=unit.form.value,
            source=source,
            source_id=unit.stable_id
        )

    def commit_unit(self, author: Author, work: Work, chunks: Sequence[Chunk]) -> None:
        """Persist one unit's records together.

        The chunk file replaces any earlier file for the same work.

        Args:
            author: Author (added if new)
            work: Work (added if new)
            chunks: Every chunk of the work, in order
        """
        write_json_atomic(self.chunk_file(work.id), [c.model_dump() for c in chunks])

        if all(a.id != author.id for a in self.authors):
            self.authors.append(author)
            write_json_atomic(self.authors_path, [a.model_dump() for a in self.authors])

        if all(w.id != work.id for w in self.works):
            self.works.append(work)
            write_json_atomic(self.works_path, [w.model_dump() for w in self.works])

        self._chunk_counts[work.id] = len(chunks)
        logger.debug(f"Saved {len(chunks)} chunks for '{work.title}'")

    def load_chunks(self, work_id: str) -> List[Chunk]:
        return [Chunk(**c) for c in self._read_list(self.chunk_file(work_id))]

    def iter_chunks(self) -> Iterator[Chunk]:
        """All chunks in work order."""
        for work in self.works:
            yield from self.load_chunks(work.id)

    def chunk_count(self, work_id: str) -> int:
        return self._chunk_counts.get(work_id, 0)

    @property
    def total_chunks(self) -> int:
        return sum(self._chunk_counts.values())
