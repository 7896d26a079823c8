"""Test the ingestion checkpoint store."""
import json

import pytest
from extraction.checkpoint import CheckpointStore
from execution.errors import CheckpointError


def test_missing_checkpoint_starts_empty(tmp_path):
    """Test that a fresh data directory has no progress."""
    store = CheckpointStore.for_data_dir(tmp_path)

    progress = store.load()

    assert progress.completed == []
    assert not store.is_done("kjv:Genesis")
    assert not store.checkpoint_file.exists()


def test_mark_completed_persists(tmp_path):
    """Test that completions survive a reload."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.load()
    store.mark_completed("kjv:Genesis")
    store.mark_completed("kjv:Exodus")
    store.mark_completed("kjv:Genesis")

    reloaded = CheckpointStore.for_data_dir(tmp_path)
    progress = reloaded.load()

    assert progress.completed == ["kjv:Genesis", "kjv:Exodus"]
    assert reloaded.is_done("kjv:Exodus")
    data = json.loads(store.checkpoint_file.read_text())
    assert set(data) == {"completed", "failed", "skipped", "last_updated"}


def test_completion_clears_failure(tmp_path):
    """Test that a later success removes the key from failed."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.load()
    store.mark_failed("perseus:iliad")

    assert store.progress.failed == ["perseus:iliad"]
    assert not store.is_done("perseus:iliad")

    store.mark_completed("perseus:iliad")

    assert store.progress.failed == []
    assert store.is_done("perseus:iliad")


def test_mark_skipped(tmp_path):
    """Test that not-found units are recorded as skipped."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.load()
    store.mark_skipped("sacred:missing")

    reloaded = CheckpointStore.for_data_dir(tmp_path)
    reloaded.load()

    assert reloaded.is_skipped("sacred:missing")
    assert not reloaded.is_done("sacred:missing")


def test_save_replaces_completed_list(tmp_path):
    """Test save() with an explicit completed list."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.load()
    store.save(completed=["a", "b", "a"])

    assert CheckpointStore.for_data_dir(tmp_path).load().completed == ["a", "b"]


def test_corrupt_checkpoint_is_fatal(tmp_path):
    """Test that an unreadable checkpoint is never silently reset."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.checkpoint_file.write_text("{ not json")

    with pytest.raises(CheckpointError):
        store.load()


def test_wrongly_shaped_checkpoint_is_fatal(tmp_path):
    """Test that valid JSON with the wrong shape is rejected."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.checkpoint_file.write_text(json.dumps({"completed": "not-a-list"}))

    with pytest.raises(CheckpointError):
        store.load()


def test_atomic_write_leaves_no_temp_files(tmp_path):
    """Test that saves only leave the checkpoint itself behind."""
    store = CheckpointStore.for_data_dir(tmp_path)
    store.load()
    for n in range(5):
        store.mark_completed(f"unit-{n}")

    assert [p.name for p in tmp_path.iterdir()] == [".progress.json"]


def test_lock_excludes_second_owner(tmp_path):
    """Test that a second lock on the same checkpoint fails."""
    first = CheckpointStore.for_data_dir(tmp_path)
    second = CheckpointStore.for_data_dir(tmp_path)

    with first.lock():
        with pytest.raises(CheckpointError):
            with second.lock():
                pass

    # Released on exit
    with second.lock():
        pass


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
