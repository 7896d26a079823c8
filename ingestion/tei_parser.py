"""TEI-XML parser for classical texts.

Walks ``<body>`` in document order, carrying book/chapter/section/card
context down nested ``<div>`` elements, and emits one :class:`Section` per
speech (``<sp>``), paragraph (``<p>``) or verse line (``<l>``).
"""
import html
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from utils.logger import setup_logger
from ingestion.cleaner import collapse_whitespace
from ingestion.models import ParsedText, Section, SectionType
from execution.errors import ParseError

logger = setup_logger(__name__)

# Element content that never belongs in a passage
SKIPPED_TAGS = {"note", "bibl", "ref", "figure", "fw"}

# Children after which a space is needed so words do not run together
SPACED_TAGS = {"l", "lb", "p", "speaker", "head", "sp", "lg", "milestone"}

CONTEXT_LEVELS = ("book", "chapter", "section", "card")

MIN_SECTION_CHARS = 20

_XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}
_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
_DIV_RE = re.compile(r"^div\d?$")


def _local(tag) -> str:
    """Tag name without namespace ('' for comments/PIs)."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _resolve_entities(xml_text: str) -> str:
    """Replace HTML named entities that plain XML parsers reject."""
    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in _XML_ENTITIES:
            return match.group(0)
        resolved = html.unescape(match.group(0))
        return "" if resolved == match.group(0) else resolved

    return _ENTITY_RE.sub(replace, xml_text)


def element_text(element: ET.Element) -> str:
    """Text content of an element with notes and apparatus removed."""
    parts: List[str] = []

    def walk(el: ET.Element) -> None:
        if _local(el.tag) in SKIPPED_TAGS:
            return
        if el.text:
            parts.append(el.text)
        for child in el:
            walk(child)
            if _local(child.tag) in SPACED_TAGS:
                parts.append(" ")
            if child.tail:
                parts.append(child.tail)

    walk(element)
    return collapse_whitespace("".join(parts))


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _line_number(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.match(r"\d+", value)
    return int(match.group(0)) if match else None


def _milestone_lines(element: ET.Element) -> Dict[str, int]:
    """First/last line number from ``<milestone unit="line" n=..>`` markers."""
    numbers = []
    for el in element.iter():
        if _local(el.tag) == "milestone" and el.get("unit") == "line":
            number = _line_number(el.get("n"))
            if number is not None:
                numbers.append(number)
    if not numbers:
        return {}
    return {"line_start": min(numbers), "line_end": max(numbers)}


def _speaker(sp: ET.Element) -> str:
    speakers = _children(sp, "speaker")
    if speakers:
        return element_text(speakers[0])
    who = sp.get("who") or sp.get("n") or ""
    return who.lstrip("#")


def _speech_section(sp: ET.Element, context: Dict[str, str]) -> Optional[Section]:
    lines = [el for el in sp.iter() if _local(el.tag) == "l"]
    paragraphs = _children(sp, "p")

    if lines:
        content = " ".join(element_text(l) for l in lines)
        numbers = [n for n in (_line_number(l.get("n")) for l in lines) if n is not None]
        span = {"line_start": min(numbers), "line_end": max(numbers)} if numbers else {}
    elif paragraphs:
        content = " ".join(element_text(p) for p in paragraphs)
        span = _milestone_lines(sp)
    else:
        # Everything except the speaker label
        content = " ".join(
            element_text(child) for child in sp if _local(child.tag) != "speaker"
        )
        span = {}

    content = collapse_whitespace(content)
    if len(content) <= MIN_SECTION_CHARS:
        return None
    return Section(
        content=content,
        section_type=SectionType.SPEECH,
        speaker=_speaker(sp) or None,
        **context,
        **span
    )


def _verse_sections(lines: List[ET.Element], context: Dict[str, str]) -> List[Section]:
    sections = []
    previous: Optional[int] = None
    for line in lines:
        number = _line_number(line.get("n"))
        # Perseus often numbers only every fifth line
        if number is None and previous is not None:
            number = previous + 1
        previous = number if number is not None else previous

        content = element_text(line)
        if content:
            sections.append(Section(
                content=content,
                section_type=SectionType.VERSE,
                line_start=number,
                line_end=number,
                **context
            ))
    return sections


def _parse_div(div: ET.Element, context: Dict[str, str]) -> List[Section]:
    context = dict(context)
    level = next(
        (v for v in (div.get("subtype"), div.get("type")) if v in CONTEXT_LEVELS),
        None
    )
    if level and div.get("n") is not None:
        context[level] = div.get("n")

    has_speeches = bool(_children(div, "sp"))
    has_paragraphs = bool(_children(div, "p"))

    sections: List[Section] = []
    pending_lines: List[ET.Element] = []

    def flush_lines() -> None:
        if pending_lines:
            sections.extend(_verse_sections(pending_lines, context))
            pending_lines.clear()

    for child in div:
        name = _local(child.tag)
        if name in ("l", "lg"):
            if not has_speeches and not has_paragraphs:
                pending_lines.extend(
                    [child] if name == "l" else [l for l in child.iter() if _local(l.tag) == "l"]
                )
            continue

        flush_lines()
        if _DIV_RE.match(name):
            sections.extend(_parse_div(child, context))
        elif name == "sp":
            speech = _speech_section(child, context)
            if speech:
                sections.append(speech)
        elif name == "p" and not has_speeches:
            content = element_text(child)
            if len(content) > MIN_SECTION_CHARS:
                sections.append(Section(
                    content=content,
                    section_type=SectionType.PROSE,
                    **context,
                    **_milestone_lines(child)
                ))

    flush_lines()
    return sections


def parse_tei(xml_text: str, default_title: str = "", default_author: str = "") -> ParsedText:
    """Parse a TEI document into ordered sections.

    Args:
        xml_text: TEI-XML source
        default_title: Title used when the header has none
        default_author: Author used when the header has none

    Returns:
        ParsedText with header title/author and body sections

    Raises:
        ParseError: If the XML is malformed or has no TEI body
    """
    try:
        root = ET.fromstring(_resolve_entities(xml_text))
    except ET.ParseError as e:
        raise ParseError(f"Malformed TEI XML: {e}") from e

    if _local(root.tag) not in ("TEI", "TEI.2"):
        raise ParseError(f"No TEI root element (found <{_local(root.tag)}>)")

    body = next((el for el in root.iter() if _local(el.tag) == "body"), None)
    if body is None:
        raise ParseError("No <body> element found in TEI document")

    title, author = default_title, default_author
    title_stmt = next((el for el in root.iter() if _local(el.tag) == "titleStmt"), None)
    if title_stmt is not None:
        titles = _children(title_stmt, "title")
        if titles and element_text(titles[0]):
            title = element_text(titles[0])
        authors = _children(title_stmt, "author")
        if authors and element_text(authors[0]):
            author = element_text(authors[0])

    sections = _parse_div(body, {})
    logger.debug(f"Parsed TEI '{title}': {len(sections)} sections")
    return ParsedText(title=title, author=author, sections=sections)
