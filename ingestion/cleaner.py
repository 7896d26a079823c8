"""Text cleaning utilities."""
import re
from typing import List

import config

# Fixed blocklist of boilerplate predicates. Best effort, not a classifier.
BOILERPLATE_PATTERNS = (
    re.compile(r'^\s*(table of contents|contents)\b', re.IGNORECASE),
    re.compile(r'^\s*(next|previous|prev|index|home|back|top)\s*(page)?\s*[.:]?\s*$', re.IGNORECASE),
    re.compile(r'^\s*\[?\s*(p\.|page|pg\.?)\s*\d+\s*\]?\s*$', re.IGNORECASE),
    re.compile(r'^\s*\[?\d+\]?\s*$'),
    re.compile(r'^\s*(copyright|©|all rights reserved)', re.IGNORECASE),
    re.compile(r'\*{3}\s*(start|end) of (the|this) project gutenberg', re.IGNORECASE),
    re.compile(r'^\s*(the )?project gutenberg', re.IGNORECASE),
    re.compile(r'this ebook is for the use of anyone anywhere', re.IGNORECASE),
    re.compile(r'^\s*(sacred-texts|www\.|https?://)', re.IGNORECASE),
    re.compile(r'^\s*(translated by|transcribed by|produced by)\b.{0,120}$', re.IGNORECASE),
)

GUTENBERG_START_MARKERS = [
    "*** START OF THE PROJECT GUTENBERG EBOOK",
    "*** START OF THIS PROJECT GUTENBERG EBOOK",
    "***START OF THE PROJECT GUTENBERG EBOOK",
    "*END*THE SMALL PRINT!",
    "*** START OF THE PROJECT GUTENBERG",
    "***START OF THE PROJECT GUTENBERG",
]

GUTENBERG_END_MARKERS = [
    "*** END OF THE PROJECT GUTENBERG EBOOK",
    "*** END OF THIS PROJECT GUTENBERG EBOOK",
    "***END OF THE PROJECT GUTENBERG EBOOK",
    "End of the Project Gutenberg EBook",
    "End of Project Gutenberg",
    "*** END OF THE PROJECT GUTENBERG",
    "***END OF THE PROJECT GUTENBERG",
]

_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


def clean_text(text: str) -> str:
    """Clean extracted text by normalizing whitespace and fixing common issues.

    Args:
        text: Raw text

    Returns:
        Cleaned text with paragraph breaks preserved
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    # Remove excessive whitespace while preserving paragraph breaks
    text = re.sub(r'\n\s*\n\s*\n+', '\n\n', text)

    # Fix hyphenated line breaks (words split across lines)
    text = re.sub(r'(\w+)-\s*\n\s*(\w+)', r'\1\2', text)

    # Normalize whitespace within lines
    text = re.sub(r'[ \t]+', ' ', text)

    # Remove leading/trailing whitespace from each line
    lines = [line.strip() for line in text.split('\n')]
    text = '\n'.join(lines)

    return text.strip()


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (newlines included) to one space."""
    return re.sub(r'\s+', ' ', text).strip()


def strip_gutenberg_boilerplate(text: str) -> str:
    """Cut the Project Gutenberg licence header and footer if present.

    Args:
        text: Full plaintext e-book

    Returns:
        The body between the start and end markers (unchanged when absent)
    """
    content = text.replace('\r\n', '\n').replace('\r', '\n')

    for marker in GUTENBERG_START_MARKERS:
        idx = content.find(marker)
        if idx == -1:
            continue
        newline_after = content.find('\n', idx)
        if newline_after == -1:
            newline_after = idx + len(marker)
        # Sometimes the marker spans a second *** line
        next_line = content.find('\n', newline_after + 1)
        if next_line != -1 and '***' in content[newline_after:next_line]:
            newline_after = next_line
        content = content[newline_after + 1:]
        break

    for marker in GUTENBERG_END_MARKERS:
        idx = content.find(marker)
        if idx != -1:
            content = content[:idx]
            break

    return re.sub(r'\n{4,}', '\n\n\n', content).strip()


def split_paragraphs(text: str) -> List[str]:
    """Split text at blank lines, dropping empty paragraphs."""
    return [p.strip() for p in re.split(r'\n\s*\n', text) if p.strip()]


def split_sentences(text: str) -> List[str]:
    """Split after `.`, `!` or `?` followed by whitespace."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def split_words_to_fit(text: str, limit: int) -> List[str]:
    """Greedily pack words into pieces of at most `limit` characters.

    A single word longer than `limit` becomes its own piece.
    """
    pieces: List[str] = []
    current = ""
    for word in text.split():
        if current and len(current) + 1 + len(word) > limit:
            pieces.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        pieces.append(current)
    return pieces


def is_boilerplate(text: str) -> bool:
    return any(pattern.search(text) for pattern in BOILERPLATE_PATTERNS)


def is_noise(text: str, floor: int = config.NOISE_FLOOR_CHARS) -> bool:
    """True for content too short to stand alone or matching the blocklist."""
    stripped = text.strip()
    return len(stripped) < floor or is_boilerplate(stripped)
