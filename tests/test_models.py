"""Test Pydantic models."""
import pytest
from pydantic import ValidationError

from ingestion.models import Author, Chunk, ChunkingForm, ChunkTargets, Progress, Section, WorkUnit
from utils.text import create_slug, normalize_name


def test_chunk_targets_require_ordered_window():
    """Test that min <= target <= max is enforced."""
    targets = ChunkTargets(min=200, target=400, max=600)
    assert targets.overlap == 0

    with pytest.raises(ValidationError):
        ChunkTargets(min=500, target=400, max=600)

    with pytest.raises(ValidationError):
        ChunkTargets(min=0, target=400, max=600)


def test_work_unit_needs_a_payload():
    """Test that a unit without urls or files is rejected."""
    with pytest.raises(ValidationError):
        WorkUnit(key="kjv:Genesis", title="Genesis", author="Various")


def test_work_unit_defaults():
    """Test work unit defaults and stable id."""
    unit = WorkUnit(
        key="kjv:Genesis",
        title="Genesis",
        author="Various",
        urls=["https://example.org/genesis.json"]
    )

    assert unit.form == ChunkingForm.PROSE
    assert unit.parser == "plaintext"
    assert unit.stable_id == "kjv:Genesis"
    assert unit.payloads == ["https://example.org/genesis.json"]

    with_id = unit.model_copy(update={"source_id": "gen-01"})
    assert with_id.stable_id == "gen-01"


def test_work_unit_is_frozen():
    """Test that work units cannot be mutated."""
    unit = WorkUnit(key="a", title="A", author="X", files=["a.txt"])

    with pytest.raises(ValidationError):
        unit.title = "B"


def test_section_position_drops_unset_fields():
    """Test that positional metadata only includes fields that are set."""
    section = Section(content="text", book="2", line_start=10, line_end=14, speaker="ODYSSEUS")

    assert section.position() == {
        "book": "2",
        "line_start": 10,
        "line_end": 14,
        "speaker": "ODYSSEUS",
    }


def test_chunk_rejects_negative_index():
    """Test that chunk_index must be non-negative."""
    with pytest.raises(ValidationError):
        Chunk(author_id="a", content="x", chunk_index=-1, chunk_type="passage", source="test")


def test_records_get_ids_and_timestamps():
    """Test that records are created with UUIDs and timestamps."""
    first = Author(name="Seneca")
    second = Author(name="Seneca")

    assert first.id != second.id
    assert first.created_at
    assert Progress().completed == []


def test_slug_and_name_normalization():
    """Test slug and identity key helpers."""
    assert create_slug("Márcus Aurélius: Meditations!") == "marcus-aurelius-meditations"
    assert normalize_name("Márcus Aurélius") == normalize_name("marcus aurelius") == "marcusaurelius"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
