"""Cross-source entity resolution and corpus combination."""
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple

from pydantic import BaseModel, Field

from utils.logger import setup_logger
from utils.files import write_json_atomic
from utils.text import get_timestamp, normalize_name
from ingestion.models import Author, Chunk, Work
from storage.record_store import RecordStore
from execution.errors import FatalConfigError

logger = setup_logger(__name__)

# Author fields a later duplicate may fill when the canonical record has none
FILLABLE_FIELDS = ("era", "bio", "wikipedia_url", "birth_year", "death_year")

IdMap = Dict[str, Dict[str, str]]


class AuthorMerge(BaseModel):
    authors: List[Author]
    id_maps: IdMap = Field(default_factory=dict)


class WorkMerge(BaseModel):
    works: List[Work]
    id_maps: IdMap = Field(default_factory=dict)
    # Per source: work ids folded into an earlier canonical work
    superseded: Dict[str, List[str]] = Field(default_factory=dict)


class SourceStats(BaseModel):
    authors: int = 0
    works: int = 0
    chunks: int = 0


class CombineStats(BaseModel):
    total_authors: int
    total_works: int
    total_chunks: int
    by_source: Dict[str, SourceStats]
    by_type: Dict[str, int]
    top_authors: List[Dict[str, Any]]
    generated_at: str = Field(default_factory=get_timestamp)


def merge_authors(authors_by_source: Dict[str, Sequence[Author]]) -> AuthorMerge:
    """Deduplicate authors across sources by normalized name.

    The first record seen for a name is canonical. Later duplicates only fill
    canonical fields that are still empty.

    Args:
        authors_by_source: Author lists keyed by source name, in merge order

    Returns:
        Canonical authors and a per-source old-id -> canonical-id map
    """
    canonical: Dict[str, Author] = {}
    id_maps: IdMap = {}

    for source, authors in authors_by_source.items():
        source_map = id_maps.setdefault(source, {})
        for author in authors:
            key = normalize_name(author.name)
            existing = canonical.get(key)
            if existing is None:
                canonical[key] = author.model_copy()
                source_map[author.id] = author.id
                continue

            updates = {
                field: getattr(author, field)
                for field in FILLABLE_FIELDS
                if getattr(existing, field) is None and getattr(author, field) is not None
            }
            if updates:
                canonical[key] = existing.model_copy(update=updates)
            source_map[author.id] = existing.id
            logger.debug(f"Merged author '{author.name}' ({source}) into '{existing.name}'")

    merged = list(canonical.values())
    total = sum(len(a) for a in authors_by_source.values())
    logger.info(f"Merged {total} author records into {len(merged)} authors")
    return AuthorMerge(authors=merged, id_maps=id_maps)


def merge_works(works_by_source: Dict[str, Sequence[Work]], author_id_maps: IdMap) -> WorkMerge:
    """Deduplicate works by (source, source_id) and point them at canonical authors.

    The first work seen is canonical; chunks of later duplicates are superseded
    so a work never carries two chunk sequences.
    """
    canonical: Dict[Tuple[str, str], Work] = {}
    id_maps: IdMap = {}
    superseded: Dict[str, List[str]] = {}

    for source, works in works_by_source.items():
        source_map = id_maps.setdefault(source, {})
        author_map = author_id_maps.get(source, {})
        for work in works:
            key = (work.source, work.source_id or work.id)
            existing = canonical.get(key)
            if existing is None:
                canonical[key] = work.model_copy(
                    update={"author_id": author_map.get(work.author_id, work.author_id)}
                )
                source_map[work.id] = work.id
            else:
                source_map[work.id] = existing.id
                superseded.setdefault(source, []).append(work.id)
                logger.info(f"Work '{work.title}' ({source}) duplicates {existing.id}; keeping the first")

    return WorkMerge(works=list(canonical.values()), id_maps=id_maps, superseded=superseded)


def remap_chunks(
    chunks: Iterable[Chunk],
    author_map: Dict[str, str],
    work_map: Dict[str, str]
) -> Iterator[Chunk]:
    """Substitute canonical author/work ids; unmapped ids pass through."""
    for chunk in chunks:
        author_id = author_map.get(chunk.author_id)
        if author_id is None:
            logger.debug(f"No author mapping for {chunk.author_id}; keeping it")
            author_id = chunk.author_id

        work_id = chunk.work_id
        if work_id is not None:
            if work_id in work_map:
                work_id = work_map[work_id]
            else:
                logger.debug(f"No work mapping for {work_id}; keeping it")

        yield chunk.model_copy(update={"author_id": author_id, "work_id": work_id})


def combine_sources(source_dirs: Sequence[Path], out_dir: Path) -> CombineStats:
    """Merge several source output directories into one corpus.

    Writes ``authors.json``, ``works.json``, ``chunks.json`` and
    ``stats.json`` to ``out_dir``.

    Args:
        source_dirs: Source data directories, in precedence order
        out_dir: Destination directory

    Returns:
        Summary statistics
    """
    stores: Dict[str, RecordStore] = {}
    for source_dir in source_dirs:
        source_dir = Path(source_dir)
        if source_dir.name in stores:
            raise FatalConfigError(
                f"Two source directories are named '{source_dir.name}' ({source_dir}); "
                "rename one so neither is dropped"
            )
        stores[source_dir.name] = RecordStore(source_dir, prune_orphans=False)

    author_merge = merge_authors({name: store.authors for name, store in stores.items()})
    work_merge = merge_works(
        {name: store.works for name, store in stores.items()},
        author_merge.id_maps
    )

    chunks: List[Chunk] = []
    by_source = {}
    for name, store in stores.items():
        before = len(chunks)
        superseded = set(work_merge.superseded.get(name, []))
        chunks.extend(remap_chunks(
            (c for c in store.iter_chunks() if c.work_id not in superseded),
            author_merge.id_maps.get(name, {}),
            work_merge.id_maps.get(name, {})
        ))
        by_source[name] = SourceStats(
            authors=len(store.authors),
            works=len(store.works),
            chunks=len(chunks) - before
        )
        logger.info(f"Loaded {by_source[name].chunks} chunks from {name}")

    author_counts = Counter(c.author_id for c in chunks)
    names = {a.id: a.name for a in author_merge.authors}
    stats = CombineStats(
        total_authors=len(author_merge.authors),
        total_works=len(work_merge.works),
        total_chunks=len(chunks),
        by_source=by_source,
        by_type=dict(Counter(c.chunk_type for c in chunks)),
        top_authors=[
            {"name": names.get(author_id, author_id), "chunk_count": count}
            for author_id, count in author_counts.most_common(20)
        ]
    )

    out_dir = Path(out_dir)
    write_json_atomic(out_dir / "authors.json", [a.model_dump() for a in author_merge.authors])
    write_json_atomic(out_dir / "works.json", [w.model_dump() for w in work_merge.works])
    write_json_atomic(out_dir / "chunks.json", [c.model_dump() for c in chunks])
    write_json_atomic(out_dir / "stats.json", stats.model_dump())

    logger.info(
        f"✓ Combined {stats.total_chunks} chunks, {stats.total_works} works, "
        f"{stats.total_authors} authors into {out_dir}"
    )
    return stats
