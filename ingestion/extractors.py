"""HTML section extractors and the fallback cascade that picks among them.

Each extractor is one heuristic for finding the passages of an HTML page.
An :class:`ExtractionCascade` tries them in order and keeps the first result
that yields at least ``min_yield`` sections, falling back to the last
non-empty result otherwise.
"""
import abc
import re
from typing import Callable, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from utils.logger import setup_logger
from ingestion.cleaner import collapse_whitespace, is_boilerplate, split_paragraphs
from ingestion.models import Section, SectionType
import config

logger = setup_logger(__name__)

# Lines made up only of CJK characters and punctuation
_CJK_ONLY = re.compile(r"^[\u3000-\u303f\u4e00-\u9fff\uff00-\uffef\s\d.,;:()]+$")
_BRACKETED = re.compile(r"^\[.*\]$")
_HR_SPLIT = re.compile(r"<hr\s*/?>", re.IGNORECASE)
_LEADING_NUMBER = re.compile(r"^(\d+)\.?\s")

# "1. text" at the start of a line
VERSE_PATTERN = r"(?:^|\n)\s*(\d+)\.\s+([\s\S]*?)(?=\n\s*\d+\.\s|$)"

# Tried in order for numbered-section texts
SECTION_PATTERNS = (
    r"(?:^|\n)\s*(\d+)\)\s*([\s\S]*?)(?=\n\s*\d+\)|$)",
    r"(?:^|\n)\s*\((\d+)\)\s*([\s\S]*?)(?=\n\s*\(\d+\)|$)",
    r"(?:^|\n)\s*(\d+)\.\s+([\s\S]*?)(?=\n\s*\d+\.\s|$)",
    r"(?:^|\n)\s*(\d+\.\d+)\s+([\s\S]*?)(?=\n\s*\d+\.\d+\s|$)",
)

# Short-numbered chapters ("1." .. "81.") on their own line
CHAPTER_PATTERN = r"(?:^|\n)\s*(\d{1,2})\.?\s+([\s\S]*?)(?=\n\s*\d{1,2}\.?\s+|$)"

# "12:" or "12." verse markers used by miscellaneous scripture pages
GENERIC_NUMBERED_PATTERN = r"(?:^|\n)\s*(\d+)[:.]\s+([\s\S]*?)(?=\n\s*\d+[:.]\s|$)"


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return root.get_text()


class SectionExtractor(abc.ABC):
    """One heuristic for splitting an HTML page into sections."""

    name = "extractor"

    @abc.abstractmethod
    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        ...


class HorizontalRuleExtractor(SectionExtractor):
    """Chapters separated by ``<hr>``, numbered from a leading "N." or in order."""

    name = "horizontal-rule"

    def __init__(self, min_length: int = 30):
        self.min_length = min_length

    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        root = soup.body or soup
        sections = []
        for part in _HR_SPLIT.split(str(root)):
            text = collapse_whitespace(make_soup(part).get_text())
            if len(text) < self.min_length or is_boilerplate(text):
                continue
            match = _LEADING_NUMBER.match(text)
            number = int(match.group(1)) if match else len(sections) + 1
            sections.append(Section(
                content=text,
                section_type=SectionType.NUMBERED,
                chapter=number
            ))
        return sections


class NumberedSegmentExtractor(SectionExtractor):
    """Segments introduced by a number matched with a regex over the page text."""

    name = "numbered"

    def __init__(
        self,
        pattern: str,
        field: str = "section",
        min_length: int = 10,
        max_number: Optional[int] = None
    ):
        """Initialize extractor.

        Args:
            pattern: Regex with groups (number, text)
            field: Section field the number is stored in ("verse", "section", "chapter")
            min_length: Shortest segment kept
            max_number: Segments numbered above this are ignored
        """
        self.pattern = re.compile(pattern)
        self.field = field
        self.min_length = min_length
        self.max_number = max_number

    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        sections = []
        for match in self.pattern.finditer(body_text(soup)):
            number, text = match.group(1), collapse_whitespace(match.group(2))
            if len(text) < self.min_length or is_boilerplate(text):
                continue
            value = float(number) if "." in number else int(number)
            if self.max_number is not None and value > self.max_number:
                continue

            position = {self.field: number if "." in number else int(number)}
            if chapter is not None and self.field != "chapter":
                position["chapter"] = chapter
            sections.append(Section(
                content=text,
                section_type=SectionType.NUMBERED,
                **position
            ))
        return sections


class ParagraphTagExtractor(SectionExtractor):
    """Every ``<p>`` element long enough to be a passage."""

    name = "paragraph-tags"

    def __init__(self, min_length: int = 40):
        self.min_length = min_length

    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        sections = []
        for p in soup.find_all("p"):
            text = collapse_whitespace(p.get_text())
            if len(text) < self.min_length or is_boilerplate(text) or _BRACKETED.match(text):
                continue
            sections.append(Section(content=text, chapter=chapter, section=len(sections) + 1))
        return sections


class BlankLineExtractor(SectionExtractor):
    """Paragraphs of the page text separated by blank lines."""

    name = "blank-lines"

    def __init__(self, min_length: int = 50):
        self.min_length = min_length

    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        sections = []
        for paragraph in split_paragraphs(body_text(soup)):
            text = collapse_whitespace(paragraph)
            if len(text) < self.min_length or is_boilerplate(text):
                continue
            sections.append(Section(content=text, chapter=chapter, section=len(sections) + 1))
        return sections


class PreFormattedExtractor(SectionExtractor):
    """Blocks of ``<pre>`` text with their line breaks kept."""

    name = "pre-formatted"

    def __init__(self, min_length: int = 40):
        self.min_length = min_length

    def extract(self, soup: BeautifulSoup, chapter: Optional[int] = None) -> List[Section]:
        text = "\n\n".join(pre.get_text() for pre in soup.find_all("pre"))
        if len(text.strip()) < 100:
            text = body_text(soup)

        sections = []
        for block in split_paragraphs(text):
            lines = [line.strip() for line in block.split("\n") if line.strip()]
            # Original-script lines of bilingual pages
            lines = [line for line in lines if not _CJK_ONLY.match(line)]
            content = "\n".join(lines)
            if len(content) < self.min_length or is_boilerplate(content):
                continue
            sections.append(Section(content=content, chapter=chapter, section=len(sections) + 1))
        return sections


class CascadeResult(BaseModel):
    sections: List[Section] = Field(default_factory=list)
    extractor: Optional[str] = None


class ExtractionCascade:
    """Ordered fallback over extractors."""

    def __init__(self, extractors: Sequence[SectionExtractor], min_yield: int = config.CASCADE_MIN_YIELD):
        self.extractors = list(extractors)
        self.min_yield = min_yield

    def run(self, html: str, chapter: Optional[int] = None) -> CascadeResult:
        """Run extractors until one yields at least ``min_yield`` sections.

        Args:
            html: Page source
            chapter: Page number applied to sections that carry no chapter

        Returns:
            The first result meeting the threshold, else the last non-empty
            result, else an empty result
        """
        soup = make_soup(html)
        fallback = CascadeResult()

        for extractor in self.extractors:
            sections = extractor.extract(soup, chapter)
            logger.debug(f"Extractor {extractor.name} yielded {len(sections)} sections")
            if len(sections) >= self.min_yield:
                return CascadeResult(sections=sections, extractor=extractor.name)
            if sections:
                fallback = CascadeResult(sections=sections, extractor=extractor.name)

        if fallback.sections:
            logger.info(
                f"No extractor reached {self.min_yield} sections; "
                f"using {fallback.extractor} ({len(fallback.sections)})"
            )
        return fallback


def _chapters_cascade() -> ExtractionCascade:
    return ExtractionCascade([
        HorizontalRuleExtractor(),
        NumberedSegmentExtractor(CHAPTER_PATTERN, field="chapter", min_length=20, max_number=81),
        BlankLineExtractor(min_length=30),
    ], min_yield=10)


def _numbered_verses_cascade() -> ExtractionCascade:
    return ExtractionCascade([
        NumberedSegmentExtractor(VERSE_PATTERN, field="verse"),
        ParagraphTagExtractor(),
        BlankLineExtractor(),
    ], min_yield=3)


def _numbered_sections_cascade() -> ExtractionCascade:
    return ExtractionCascade(
        [NumberedSegmentExtractor(pattern, field="section") for pattern in SECTION_PATTERNS]
        + [ParagraphTagExtractor(), BlankLineExtractor()],
        min_yield=5
    )


def _paragraphs_cascade() -> ExtractionCascade:
    return ExtractionCascade([ParagraphTagExtractor(), BlankLineExtractor()], min_yield=5)


def _pre_formatted_cascade() -> ExtractionCascade:
    return ExtractionCascade([PreFormattedExtractor(), BlankLineExtractor()], min_yield=1)


def _generic_cascade() -> ExtractionCascade:
    return ExtractionCascade([
        NumberedSegmentExtractor(GENERIC_NUMBERED_PATTERN, field="verse"),
        ParagraphTagExtractor(min_length=30),
        BlankLineExtractor(),
    ], min_yield=1)


CASCADES: Dict[str, Callable[[], ExtractionCascade]] = {
    "html-chapters": _chapters_cascade,
    "html-numbered-verses": _numbered_verses_cascade,
    "html-numbered-sections": _numbered_sections_cascade,
    "html-paragraphs": _paragraphs_cascade,
    "html-pre-formatted": _pre_formatted_cascade,
    "html-generic": _generic_cascade,
}
