"""Durable per-source ingestion checkpoint."""
import fcntl
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from utils.logger import setup_logger
from utils.files import read_json, write_json_atomic
from utils.text import get_timestamp
from ingestion.models import Progress
from execution.errors import CheckpointError
import config

logger = setup_logger(__name__)


class CheckpointStore:
    """Tracks which work units are completed, failed or skipped.

    Every mutation rewrites the whole file atomically so a crash leaves
    either the old or the new checkpoint, never a torn one.
    """

    def __init__(self, checkpoint_file: Path):
        """Initialize checkpoint store.

        Args:
            checkpoint_file: Path of the JSON checkpoint (usually
                ``<data_dir>/.progress.json``)
        """
        self.checkpoint_file = Path(checkpoint_file)
        self.lock_file = self.checkpoint_file.with_name(self.checkpoint_file.name + ".lock")
        self._progress = Progress()

    @classmethod
    def for_data_dir(cls, data_dir: Path) -> "CheckpointStore":
        return cls(Path(data_dir) / config.CHECKPOINT_FILENAME)

    @property
    def progress(self) -> Progress:
        return self._progress

    def load(self) -> Progress:
        """Load checkpoint, or start empty when none exists.

        Returns:
            Current progress

        Raises:
            CheckpointError: If the file exists but cannot be read or parsed
        """
        try:
            data = read_json(self.checkpoint_file)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise CheckpointError(f"Corrupt checkpoint {self.checkpoint_file}: {e}") from e

        if data is None:
            self._progress = Progress()
            return self._progress

        try:
            self._progress = Progress.model_validate(data)
        except ValidationError as e:
            raise CheckpointError(f"Corrupt checkpoint {self.checkpoint_file}: {e}") from e

        logger.info(
            f"✓ Checkpoint loaded: {len(self._progress.completed)} completed, "
            f"{len(self._progress.failed)} failed, {len(self._progress.skipped)} skipped"
        )
        return self._progress

    def save(self, completed: Optional[Iterable[str]] = None) -> None:
        """Atomically rewrite the checkpoint file.

        Args:
            completed: Replacement list of completed keys (current list if None)
        """
        if completed is not None:
            self._progress.completed = list(dict.fromkeys(completed))
        self._progress.last_updated = get_timestamp()

        try:
            write_json_atomic(self.checkpoint_file, self._progress.model_dump())
        except OSError as e:
            raise CheckpointError(f"Failed to write checkpoint {self.checkpoint_file}: {e}") from e

    def is_done(self, key: str) -> bool:
        return key in self._progress.completed

    def is_skipped(self, key: str) -> bool:
        return key in self._progress.skipped

    def mark_completed(self, key: str) -> None:
        progress = self._progress
        if key not in progress.completed:
            progress.completed.append(key)
        progress.failed = [k for k in progress.failed if k != key]
        progress.skipped = [k for k in progress.skipped if k != key]
        self.save()

    def mark_failed(self, key: str) -> None:
        if key not in self._progress.failed:
            self._progress.failed.append(key)
        self.save()

    def mark_skipped(self, key: str) -> None:
        progress = self._progress
        if key not in progress.skipped:
            progress.skipped.append(key)
        progress.failed = [k for k in progress.failed if k != key]
        self.save()

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive advisory lock for the duration of a run.

        Raises:
            CheckpointError: If another process holds the lock
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_file, 'w') as handle:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as e:
                raise CheckpointError(
                    f"Checkpoint {self.checkpoint_file} is locked by another ingestion run"
                ) from e
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)
