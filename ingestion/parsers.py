"""Parser registry: payload text -> ParsedText, selected by name per work unit."""
from typing import Callable, Dict, Optional

from utils.logger import setup_logger
from ingestion.chunker import text_to_sections
from ingestion.cleaner import strip_gutenberg_boilerplate
from ingestion.extractors import CASCADES
from ingestion.models import ParsedText, WorkUnit
from ingestion.tei_parser import parse_tei
from execution.errors import FatalConfigError

logger = setup_logger(__name__)

ParseFn = Callable[[str, WorkUnit, Optional[int]], ParsedText]


def parse_tei_payload(payload: str, unit: WorkUnit, page: Optional[int] = None) -> ParsedText:
    parsed = parse_tei(payload, default_title=unit.title, default_author=unit.author)
    # Configured names win over header text
    return parsed.model_copy(update={"title": unit.title, "author": unit.author})


def parse_plaintext(payload: str, unit: WorkUnit, page: Optional[int] = None) -> ParsedText:
    """Plain text with any Project Gutenberg header/footer removed."""
    text = strip_gutenberg_boilerplate(payload)
    return ParsedText(
        title=unit.title,
        author=unit.author,
        sections=text_to_sections(text, unit.form)
    )


def _html_parser(kind: str) -> ParseFn:
    def parse(payload: str, unit: WorkUnit, page: Optional[int] = None) -> ParsedText:
        result = CASCADES[kind]().run(payload, chapter=page)
        logger.debug(f"{unit.key}: {kind} used {result.extractor} ({len(result.sections)} sections)")
        return ParsedText(title=unit.title, author=unit.author, sections=result.sections)

    parse.__name__ = f"parse_{kind.replace('-', '_')}"
    return parse


PARSERS: Dict[str, ParseFn] = {
    "tei": parse_tei_payload,
    "plaintext": parse_plaintext,
    **{kind: _html_parser(kind) for kind in CASCADES},
}


def get_parser(name: str) -> ParseFn:
    try:
        return PARSERS[name]
    except KeyError:
        raise FatalConfigError(
            f"Unknown parser '{name}' (available: {', '.join(sorted(PARSERS))})"
        ) from None
