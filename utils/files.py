"""JSON file helpers with atomic replacement."""
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def read_json(path: Path) -> Any:
    """Read a JSON file, returning None when it does not exist.

    Raises:
        json.JSONDecodeError: If the file exists but is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON so readers only ever see the old or the new file.

    The payload goes to a temp file in the same directory, is fsynced,
    then renamed over the target.

    Args:
        path: Destination file
        data: JSON-serializable payload
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
