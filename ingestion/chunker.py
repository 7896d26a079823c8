"""Form-aware text chunking.

Every chunking form shares one greedy accumulate/flush loop
(:class:`ChunkAccumulator`); the forms differ only in their character
window, in whether sections are accumulated together or kept whole, and in
the chunk type they emit.
"""
import abc
from typing import Dict, List, Optional, Sequence, Tuple, Type

from utils.logger import setup_logger
from ingestion.cleaner import (
    clean_text,
    collapse_whitespace,
    is_noise,
    split_paragraphs,
    split_sentences,
    split_words_to_fit,
)
from ingestion.models import ChunkDraft, ChunkingForm, ChunkTargets, Section, SectionType
import config

logger = setup_logger(__name__)


def default_targets(form: ChunkingForm) -> ChunkTargets:
    """Configured character window for a chunking form."""
    return ChunkTargets(**config.CHUNK_TARGETS[form.value])


class ChunkAccumulator:
    """Greedy bin-packer turning a stream of section texts into chunks.

    Pieces longer than ``max`` are re-split by sentence (then by word) before
    they are added. A buffer that would overflow is flushed if it already
    meets ``min``; otherwise it is topped up with leading words of the
    incoming piece and flushed at ``max``. The buffer is flushed as soon as it
    reaches ``target``.
    """

    def __init__(
        self,
        targets: ChunkTargets,
        chunk_type: str,
        separator: str = " ",
        prefix: str = "",
        overlap_words: int = 0
    ):
        """Initialize accumulator.

        Args:
            targets: Character window
            chunk_type: Type recorded on every emitted chunk
            separator: Joiner between accumulated pieces
            prefix: Text prepended to every emitted chunk (e.g. "HAMLET: ")
            overlap_words: Words of each flushed chunk carried into the next
        """
        self.targets = targets
        self.chunk_type = chunk_type
        self.separator = separator
        self.prefix = prefix
        self.overlap_words = overlap_words

        self.chunks: List[ChunkDraft] = []
        self._parts: List[str] = []
        self._bridge = ""
        self._first: Optional[Section] = None
        self._last: Optional[Section] = None

    @property
    def length(self) -> int:
        return len(self._render())

    def feed(self, text: str, section: Section) -> None:
        """Add one section's text (or a piece of it) to the buffer."""
        text = text.strip()
        if not text:
            return

        if len(self.prefix) + len(text) > self.targets.max:
            pieces = split_sentences(text)
            if len(pieces) <= 1:
                limit = max(self.targets.max - len(self.prefix), 1)
                pieces = split_words_to_fit(text, limit)
            if len(pieces) > 1:
                for piece in pieces:
                    self.feed(piece, section)
                return

        self._add(text, section)

    def finish(self, remainder_floor: int = config.REMAINDER_FLOOR_CHARS) -> List[ChunkDraft]:
        """Flush the final remainder and return every chunk.

        A remainder under ``min`` is appended to the previous chunk. With no
        previous chunk it is kept only when longer than ``remainder_floor``.

        Args:
            remainder_floor: Minimum length for a lone undersized remainder

        Returns:
            Emitted chunks in order
        """
        # A buffer holding only the overlap bridge has no new content
        if not self._parts:
            return self.chunks

        text = self._render()
        if len(text) >= self.targets.min:
            self._flush()
        elif self.chunks:
            last = self.chunks[-1]
            last.content = f"{last.content}{self.separator}{self._body()}"
            self._close_interval(last.metadata, self._last)
            self._reset()
        elif len(text) > remainder_floor:
            self._flush()
        else:
            logger.warning(f"Dropping {len(text)}-char remainder below floor: {text[:60]!r}")
            self._reset()

        return self.chunks

    def _add(self, text: str, section: Section) -> None:
        if self._parts and self.length + len(self.separator) + len(text) > self.targets.max:
            if self.length >= self.targets.min:
                self._flush()
            else:
                # Undersized buffer: fill it to max from the incoming piece
                room = self.targets.max - self.length - len(self.separator)
                head, tail = self._take_words(text, room)
                if head:
                    self._append(head, section)
                    self._flush()
                    if not tail:
                        return
                    self._add(tail, section)
                    return

        self._append(text, section)
        if self.length >= self.targets.target:
            self._flush()

    def _append(self, text: str, section: Section) -> None:
        if not self._parts:
            if self._bridge and len(self.prefix) + len(self._bridge) + len(self.separator) + len(text) > self.targets.max:
                self._bridge = ""
            self._first = section
        self._parts.append(text)
        self._last = section

    def _flush(self) -> None:
        content = self._render()
        metadata = self._first.position() if self._first else {}
        self._close_interval(metadata, self._last)
        self.chunks.append(ChunkDraft(content=content, chunk_type=self.chunk_type, metadata=metadata))

        bridge = ""
        if self.overlap_words:
            words = content[len(self.prefix):].split()
            bridge = " ".join(words[-self.overlap_words:])
        self._reset()
        self._bridge = bridge

    def _reset(self) -> None:
        self._parts = []
        self._bridge = ""
        self._first = None
        self._last = None

    def _body(self) -> str:
        return self.separator.join(self._parts)

    def _render(self) -> str:
        body = self._body()
        if self._bridge and body:
            body = f"{self._bridge}{self.separator}{body}"
        return f"{self.prefix}{body}"

    @staticmethod
    def _take_words(text: str, room: int) -> Tuple[str, str]:
        words = text.split()
        taken: List[str] = []
        used = 0
        for word in words:
            needed = len(word) + (1 if taken else 0)
            if used + needed > room:
                break
            taken.append(word)
            used += needed
        return " ".join(taken), " ".join(words[len(taken):])

    @staticmethod
    def _close_interval(metadata: Dict, last: Optional[Section]) -> None:
        """Extend positional metadata to end at the last contributing section."""
        if last is None:
            return
        line_end = last.line_end if last.line_end is not None else last.line_start
        if line_end is not None:
            metadata["line_end"] = line_end
        if last.verse is not None and last.verse != metadata.get("verse"):
            metadata["verse_end"] = last.verse
        if last.section is not None and last.section != metadata.get("section"):
            metadata["section_end"] = last.section


class ChunkStrategy(abc.ABC):
    """One chunking form: window, segmentation policy and chunk type."""

    form: ChunkingForm
    chunk_type = "passage"
    separator = " "

    def __init__(self, targets: Optional[ChunkTargets] = None):
        self.targets = targets or default_targets(self.form)

    def chunk(self, sections: Sequence[Section]) -> List[ChunkDraft]:
        """Chunk sections and drop noise/boilerplate chunks."""
        drafts = self._chunk(sections)
        kept = [d for d in drafts if not is_noise(d.content)]
        if len(kept) < len(drafts):
            logger.debug(f"Filtered {len(drafts) - len(kept)} noise/boilerplate chunks")
        return kept

    @abc.abstractmethod
    def _chunk(self, sections: Sequence[Section]) -> List[ChunkDraft]:
        ...

    def _accumulator(self, chunk_type: Optional[str] = None, prefix: str = "") -> ChunkAccumulator:
        return ChunkAccumulator(
            self.targets,
            chunk_type or self.chunk_type,
            separator=self.separator,
            prefix=prefix,
            overlap_words=self.targets.overlap // config.OVERLAP_CHARS_PER_WORD
        )


class AccumulatingStrategy(ChunkStrategy):
    """Packs consecutive sections together up to the window."""

    def _chunk(self, sections: Sequence[Section]) -> List[ChunkDraft]:
        acc = self._accumulator()
        for section in sections:
            acc.feed(section.content, section)
        return acc.finish()


class WholeSectionStrategy(ChunkStrategy):
    """Emits every section as its own chunk, splitting only oversized ones."""

    def _prefix(self, section: Section) -> str:
        return ""

    def _chunk(self, sections: Sequence[Section]) -> List[ChunkDraft]:
        drafts: List[ChunkDraft] = []
        for section in sections:
            acc = self._accumulator(prefix=self._prefix(section))
            acc.feed(section.content, section)
            drafts.extend(acc.finish(remainder_floor=0))
        return drafts


class ProseStrategy(AccumulatingStrategy):
    form = ChunkingForm.PROSE


class PoetryStrategy(AccumulatingStrategy):
    form = ChunkingForm.POETRY
    chunk_type = "verse_group"


class DialogueStrategy(AccumulatingStrategy):
    form = ChunkingForm.DIALOGUE


class DramaStrategy(ChunkStrategy):
    """Speeches are kept whole with a "SPEAKER: " prefix; choruses and
    stage directions between speeches are accumulated as passages."""

    form = ChunkingForm.DRAMA

    def _chunk(self, sections: Sequence[Section]) -> List[ChunkDraft]:
        drafts: List[ChunkDraft] = []
        run: Optional[ChunkAccumulator] = None

        for section in sections:
            if section.section_type == SectionType.SPEECH and section.speaker:
                if run is not None:
                    drafts.extend(run.finish())
                    run = None
                speech = self._accumulator(chunk_type="speech", prefix=f"{section.speaker}: ")
                speech.feed(section.content, section)
                drafts.extend(speech.finish(remainder_floor=0))
            else:
                if run is None:
                    run = self._accumulator()
                run.feed(section.content, section)

        if run is not None:
            drafts.extend(run.finish())
        return drafts


class NumberedVersesStrategy(WholeSectionStrategy):
    form = ChunkingForm.NUMBERED_VERSES
    chunk_type = "verse"


class NumberedSectionsStrategy(WholeSectionStrategy):
    form = ChunkingForm.NUMBERED_SECTIONS
    chunk_type = "section"


class PreFormattedStrategy(WholeSectionStrategy):
    form = ChunkingForm.PRE_FORMATTED


STRATEGIES: Dict[ChunkingForm, Type[ChunkStrategy]] = {
    ChunkingForm.PROSE: ProseStrategy,
    ChunkingForm.POETRY: PoetryStrategy,
    ChunkingForm.DRAMA: DramaStrategy,
    ChunkingForm.DIALOGUE: DialogueStrategy,
    ChunkingForm.NUMBERED_VERSES: NumberedVersesStrategy,
    ChunkingForm.NUMBERED_SECTIONS: NumberedSectionsStrategy,
    ChunkingForm.PRE_FORMATTED: PreFormattedStrategy,
}


def get_strategy(form: ChunkingForm, targets: Optional[ChunkTargets] = None) -> ChunkStrategy:
    return STRATEGIES[ChunkingForm(form)](targets)


def text_to_sections(text: str, form: ChunkingForm = ChunkingForm.PROSE) -> List[Section]:
    """Turn raw text into one section per blank-line paragraph.

    Pre-formatted text keeps its line breaks; everything else is collapsed
    to single spaces.
    """
    form = ChunkingForm(form)
    sections = []
    for number, paragraph in enumerate(split_paragraphs(clean_text(text)), start=1):
        if form != ChunkingForm.PRE_FORMATTED:
            paragraph = collapse_whitespace(paragraph)
        sections.append(Section(content=paragraph, section=number))
    return sections


def chunk_sections(
    sections: Sequence[Section],
    form: ChunkingForm,
    targets: Optional[ChunkTargets] = None
) -> List[ChunkDraft]:
    """Chunk parsed sections with the strategy for a form.

    Args:
        sections: Ordered structural sections
        form: Chunking form selector
        targets: Window override (defaults to the form's configured window)

    Returns:
        Ordered chunk drafts
    """
    strategy = get_strategy(form, targets)
    drafts = strategy.chunk(sections)
    logger.debug(
        f"Chunked {len(sections)} sections into {len(drafts)} {strategy.form.value} chunks"
    )
    return drafts


def chunk_plain_text(
    text: str,
    form: ChunkingForm = ChunkingForm.PROSE,
    targets: Optional[ChunkTargets] = None
) -> List[ChunkDraft]:
    """Chunk raw text, treating each blank-line paragraph as a section."""
    return chunk_sections(text_to_sections(text, form), form, targets)
