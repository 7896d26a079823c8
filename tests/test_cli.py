"""Test the click command line."""
import json

import pytest
from click.testing import CliRunner

from extraction.checkpoint import CheckpointStore
from main import cli

PASSAGE = (
    "Begin the morning by saying to thyself that thou shalt meet with the busy-body, "
    "the ungrateful, arrogant, deceitful, envious and unsocial. All these things happen "
    "to them by reason of their ignorance of what is good and evil."
)


def test_chunk_command_writes_json(tmp_path):
    """Test chunking a local text file to JSON."""
    text_file = tmp_path / "meditations.txt"
    text_file.write_text("\n\n".join([PASSAGE] * 4), encoding="utf-8")
    output = tmp_path / "chunks.json"

    result = CliRunner().invoke(cli, ["chunk", str(text_file), "--form", "prose", "--output", str(output)])

    assert result.exit_code == 0, result.output
    chunks = json.loads(output.read_text())
    assert len(chunks) >= 2
    assert all(len(c["content"]) <= 600 for c in chunks)


def test_chunk_command_rejects_bad_window(tmp_path):
    """Test that an inconsistent window is a usage error."""
    text_file = tmp_path / "t.txt"
    text_file.write_text(PASSAGE, encoding="utf-8")

    result = CliRunner().invoke(cli, ["chunk", str(text_file), "--min", "500", "--max", "100"])

    assert result.exit_code == 2


def test_ingest_with_invalid_config_exits_1(tmp_path):
    """Test that a fatal configuration error exits with status 1."""
    config_file = tmp_path / "source.json"
    config_file.write_text(json.dumps({"source": "x", "units": [{"key": "a"}]}), encoding="utf-8")

    result = CliRunner().invoke(cli, ["ingest", "--config", str(config_file), "--data-dir", str(tmp_path / "out")])

    assert result.exit_code == 1


def test_ingest_local_files_then_status(tmp_path):
    """Test a full ingest of local files followed by status."""
    text_file = tmp_path / "meditations.txt"
    text_file.write_text("\n\n".join([PASSAGE] * 4), encoding="utf-8")
    config_file = tmp_path / "source.json"
    config_file.write_text(json.dumps({
        "source": "local",
        "units": [{"key": "med", "title": "Meditations", "author": "Marcus Aurelius", "files": ["meditations.txt"]}]
    }), encoding="utf-8")
    data_dir = tmp_path / "out"

    result = CliRunner().invoke(cli, ["ingest", "--config", str(config_file), "--data-dir", str(data_dir)])

    assert result.exit_code == 0, result.output
    assert (data_dir / "DONE.txt").exists()
    assert (data_dir / "ingest.log").exists()
    assert json.loads((data_dir / ".progress.json").read_text())["completed"] == ["med"]

    result = CliRunner().invoke(cli, ["status", "--config", str(config_file), "--data-dir", str(data_dir)])

    assert result.exit_code == 0, result.output
    assert (data_dir / "progress.md").exists()


def test_locked_ingest_leaves_other_runs_chunk_files(tmp_path):
    """Test that a run refused by the lock does not prune uncommitted chunk files."""
    text_file = tmp_path / "meditations.txt"
    text_file.write_text(PASSAGE, encoding="utf-8")
    config_file = tmp_path / "source.json"
    config_file.write_text(json.dumps({
        "source": "local",
        "units": [{"key": "med", "title": "Meditations", "author": "Marcus Aurelius", "files": ["meditations.txt"]}]
    }), encoding="utf-8")
    data_dir = tmp_path / "out"
    in_flight = data_dir / "chunks" / "uncommitted-work.json"
    in_flight.parent.mkdir(parents=True)
    in_flight.write_text("[]", encoding="utf-8")

    with CheckpointStore.for_data_dir(data_dir).lock():
        result = CliRunner().invoke(cli, ["ingest", "--config", str(config_file), "--data-dir", str(data_dir)])

    assert result.exit_code == 1
    assert in_flight.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
