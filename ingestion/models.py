"""Pydantic models for ingestion records and chunking inputs."""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Dict, Any, Optional, Union

from utils.text import generate_id, get_timestamp

Position = Optional[Union[str, int]]


class ChunkingForm(str, Enum):
    """Chunking strategy selector declared per work unit."""
    PROSE = "prose"
    POETRY = "poetry"
    DRAMA = "drama"
    DIALOGUE = "dialogue"
    NUMBERED_VERSES = "numbered-verses"
    NUMBERED_SECTIONS = "numbered-sections"
    PRE_FORMATTED = "pre-formatted"


class SectionType(str, Enum):
    PROSE = "prose"
    VERSE = "verse"
    SPEECH = "speech"
    NUMBERED = "numbered"


class ChunkTargets(BaseModel):
    """Character window for one chunking form."""
    model_config = ConfigDict(frozen=True)

    min: int = Field(ge=1)
    target: int = Field(ge=1)
    max: int = Field(ge=1)
    overlap: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "ChunkTargets":
        if not (self.min <= self.target <= self.max):
            raise ValueError(
                f"chunk targets must satisfy min <= target <= max "
                f"(got {self.min}/{self.target}/{self.max})"
            )
        return self


class Section(BaseModel):
    """One structural unit of a parsed document (paragraph, verse group, speech)."""
    content: str
    section_type: SectionType = SectionType.PROSE
    book: Position = None
    chapter: Position = None
    section: Position = None
    card: Position = None
    verse: Position = None
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    speaker: Optional[str] = None
    title: Optional[str] = None

    def position(self) -> Dict[str, Any]:
        """Positional metadata with unset fields dropped."""
        return self.model_dump(
            exclude={"content", "section_type"},
            exclude_none=True
        )


class ParsedText(BaseModel):
    """Parser output for one fetched payload."""
    title: str = ""
    author: str = ""
    sections: List[Section] = Field(default_factory=list)


class ChunkDraft(BaseModel):
    """Chunk content and metadata before ids are assigned."""
    content: str
    chunk_type: str = "passage"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Author(BaseModel):
    id: str = Field(default_factory=generate_id)
    name: str
    slug: str = ""
    birth_year: Optional[int] = None
    death_year: Optional[int] = None
    nationality: Optional[str] = None
    era: Optional[str] = None
    bio: Optional[str] = None
    wikipedia_url: Optional[str] = None
    created_at: str = Field(default_factory=get_timestamp)


class Work(BaseModel):
    id: str = Field(default_factory=generate_id)
    author_id: str
    title: str
    slug: str = ""
    original_language: str = "en"
    genre: Optional[str] = None
    form: Optional[str] = None
    source: str
    source_id: Optional[str] = None
    created_at: str = Field(default_factory=get_timestamp)


class Chunk(BaseModel):
    """A bounded-size passage with provenance."""
    id: str = Field(default_factory=generate_id)
    work_id: Optional[str] = None
    author_id: str
    content: str
    chunk_index: int = Field(ge=0)
    chunk_type: str
    source: str
    source_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=get_timestamp)


class Progress(BaseModel):
    """Durable checkpoint contents."""
    completed: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    last_updated: str = Field(default_factory=get_timestamp)


class WorkUnit(BaseModel):
    """One fetchable, chunkable piece of work, as declared in source configuration."""
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    title: str
    author: str
    urls: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    parser: str = "plaintext"
    form: ChunkingForm = ChunkingForm.PROSE
    targets: Optional[ChunkTargets] = None
    source_id: Optional[str] = None

    # Descriptive fields copied onto the Author / Work records
    era: Optional[str] = None
    nationality: Optional[str] = None
    birth_year: Optional[int] = None
    death_year: Optional[int] = None
    bio: Optional[str] = None
    wikipedia_url: Optional[str] = None
    language: str = "en"
    genre: Optional[str] = None
    tradition: Optional[str] = None

    @model_validator(mode="after")
    def _check_payloads(self) -> "WorkUnit":
        if not self.urls and not self.files:
            raise ValueError(f"work unit {self.key!r} declares neither urls nor files")
        return self

    @property
    def stable_id(self) -> str:
        return self.source_id or self.key

    @property
    def payloads(self) -> List[str]:
        return list(self.urls) + list(self.files)
