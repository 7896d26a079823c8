"""Slug, identity and timestamp helpers shared by every source."""
import re
import unicodedata
import uuid
from datetime import datetime, timezone


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def create_slug(text: str, max_length: int = 100) -> str:
    """Create a URL slug: lowercase ASCII words joined by hyphens.

    Args:
        text: Text to slugify
        max_length: Maximum slug length

    Returns:
        Slug string (may be empty for text with no alphanumerics)
    """
    slug = _strip_diacritics(text.lower())
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-")
    return slug[:max_length]


def normalize_name(name: str) -> str:
    """Identity key for an author name.

    Lowercases, decomposes, drops diacritics and every non-alphanumeric
    character, so "Márcus Aurélius" and "marcus aurelius" share a key.
    """
    key = _strip_diacritics(name.lower())
    return re.sub(r"[^a-z0-9]", "", key)


def generate_id() -> str:
    return str(uuid.uuid4())


def get_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
