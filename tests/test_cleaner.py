"""Test text cleaning helpers."""
import pytest
from ingestion.cleaner import (
    clean_text,
    is_boilerplate,
    is_noise,
    split_sentences,
    split_words_to_fit,
    strip_gutenberg_boilerplate,
)


GUTENBERG_TEXT = """The Project Gutenberg eBook of Meditations

This ebook is for the use of anyone anywhere in the United States.

*** START OF THE PROJECT GUTENBERG EBOOK MEDITATIONS ***

THE FIRST BOOK

Of my grandfather Verus I have learned to be gentle and meek.

*** END OF THE PROJECT GUTENBERG EBOOK MEDITATIONS ***

Updated editions will replace the previous one.
"""


def test_strip_gutenberg_boilerplate():
    """Test that header and footer around the markers are removed."""
    body = strip_gutenberg_boilerplate(GUTENBERG_TEXT)

    assert body.startswith("THE FIRST BOOK")
    assert body.endswith("gentle and meek.")
    assert "Project Gutenberg" not in body


def test_strip_gutenberg_without_markers_is_unchanged():
    """Test that text without markers passes through."""
    assert strip_gutenberg_boilerplate("Just a text.") == "Just a text."


def test_clean_text_normalizes_whitespace():
    """Test whitespace cleanup and hyphenated line joins."""
    text = "A  line\twith   spaces and a hyphen-\nated word.\r\n\r\n\r\n\r\nNext paragraph."

    cleaned = clean_text(text)

    assert cleaned == "A line with spaces and a hyphenated word.\n\nNext paragraph."


def test_split_sentences():
    """Test sentence splitting after terminal punctuation."""
    assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]


def test_split_words_to_fit():
    """Test greedy word packing."""
    pieces = split_words_to_fit("aaa bbb ccc ddd", 7)

    assert pieces == ["aaa bbb", "ccc ddd"]
    assert split_words_to_fit("supercalifragilistic", 5) == ["supercalifragilistic"]


@pytest.mark.parametrize("text", [
    "Table of Contents",
    "Next",
    "[Page 42]",
    "117",
    "Copyright 2004 by the editors",
    "*** START OF THE PROJECT GUTENBERG EBOOK ODYSSEY ***",
    "Produced by Distributed Proofreaders",
    "https://www.sacred-texts.com/index.htm",
])
def test_boilerplate_detected(text):
    """Test that common boilerplate matches the blocklist."""
    assert is_boilerplate(text)


def test_real_passage_is_not_noise():
    """Test that ordinary text is kept."""
    passage = "Begin the morning by saying to thyself, I shall meet with the busy-body."

    assert not is_boilerplate(passage)
    assert not is_noise(passage)
    assert is_noise("Too short")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
