"""Test source configuration loading."""
import json

import pytest
from execution.errors import FatalConfigError
from ingestion.models import ChunkingForm
from ingestion.source_config import load_source_config


def write_config(tmp_path, data) -> str:
    path = tmp_path / "source.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_valid_config(tmp_path):
    """Test a config with remote and local units."""
    (tmp_path / "texts").mkdir()
    (tmp_path / "texts" / "iliad.xml").write_text("<TEI/>", encoding="utf-8")
    path = write_config(tmp_path, {
        "source": "perseus",
        "rate_limit_seconds": 1.0,
        "units": [
            {
                "key": "perseus:iliad",
                "title": "Iliad",
                "author": "Homer",
                "files": ["texts/iliad.xml"],
                "parser": "tei",
                "form": "poetry"
            },
            {
                "key": "perseus:odyssey",
                "title": "Odyssey",
                "author": "Homer",
                "urls": ["https://example.org/odyssey.xml"],
                "parser": "tei",
                "form": "poetry",
                "targets": {"min": 100, "target": 250, "max": 400}
            }
        ]
    })

    source_config = load_source_config(path)

    assert source_config.source == "perseus"
    assert source_config.rate_limit_seconds == 1.0
    assert source_config.max_retries == 5
    iliad, odyssey = source_config.units
    assert iliad.form == ChunkingForm.POETRY
    assert iliad.files == [str(tmp_path / "texts" / "iliad.xml")]
    assert odyssey.targets.max == 400


@pytest.mark.parametrize("data", [
    {"units": []},
    {"source": "x", "units": [{"key": "a", "title": "A", "author": "B"}]},
    {"source": "x", "units": [{"key": "a", "title": "A", "author": "B", "urls": ["u"], "form": "sonnet"}]},
    {"source": "x", "units": [
        {"key": "a", "title": "A", "author": "B", "urls": ["u"]},
        {"key": "a", "title": "A2", "author": "B", "urls": ["v"]}
    ]},
    {"source": "x", "units": [{"key": "a", "title": "A", "author": "B", "urls": ["u"], "parser": "pdf"}]},
    {"source": "x", "units": [{"key": "a", "title": "A", "author": "B", "files": ["nowhere.txt"]}]},
])
def test_invalid_configs_are_fatal(tmp_path, data):
    """Test that every configuration problem raises FatalConfigError."""
    path = write_config(tmp_path, data)

    with pytest.raises(FatalConfigError):
        load_source_config(path)


def test_missing_and_malformed_files(tmp_path):
    """Test missing file and invalid JSON."""
    with pytest.raises(FatalConfigError):
        load_source_config(tmp_path / "absent.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{ nope", encoding="utf-8")
    with pytest.raises(FatalConfigError):
        load_source_config(bad)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
