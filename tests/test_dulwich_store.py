"""Tests for the dulwich-backed history store."""

from pathlib import Path

import pytest

from worktrail.errors import StoreError
from worktrail.store import DulwichHistoryStore, HistoryStore


@pytest.fixture
def store(tmp_path: Path) -> DulwichHistoryStore:
    store = DulwichHistoryStore(tmp_path / "store")
    store.init()
    return store


def commit_files(store: DulwichHistoryStore, files: dict[str, str], message: str):
    for rel, content in files.items():
        target = store.root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    store.stage(".")
    return store.commit(message)


def test_store_satisfies_protocol(store):
    assert isinstance(store, HistoryStore)


def test_init_creates_valid_empty_store(store):
    assert store.metadata_dir.is_dir()
    assert store.is_valid_store()
    assert store.log() == []
    assert store.status().is_clean


def test_init_is_idempotent_and_keeps_files(store):
    first = commit_files(store, {"a.txt": "1"}, "first")

    store.init()

    assert (store.root / "a.txt").read_text() == "1"
    assert store.log()[0].hash == first.commit_id


def test_first_empty_commit_is_no_op(store):
    store.stage(".")
    result = store.commit("empty")

    assert not result.committed
    assert result.status == "no_op"
    assert store.log() == []


def test_commit_and_log_order(store):
    first = commit_files(store, {"a.txt": "1"}, "first")
    second = commit_files(store, {"a.txt": "2"}, "second")

    log = store.log()

    assert [entry.hash for entry in log] == [second.commit_id, first.commit_id]
    assert log[0].message == "second"
    assert log[0].parent == first.commit_id
    assert log[1].parent is None
    assert store.log(max_count=1)[0].hash == second.commit_id


def test_unchanged_tree_is_no_op(store):
    commit_files(store, {"a.txt": "1"}, "first")

    store.stage(".")
    result = store.commit("again")

    assert result == result.no_op()
    assert len(store.log()) == 1


def test_stage_records_deletions(store):
    first = commit_files(store, {"a.txt": "1", "b.txt": "2"}, "first")
    (store.root / "b.txt").unlink()
    store.stage(".")
    second = store.commit("delete b")

    assert second.committed
    assert store.read_blob(first.commit_id, "b.txt") == b"2"
    assert store.read_blob(second.commit_id, "b.txt") is None


def test_status_reports_untracked_and_unstaged(store):
    commit_files(store, {"a.txt": "1"}, "first")
    (store.root / "a.txt").write_text("changed")
    (store.root / "new.txt").write_text("new")

    status = store.status()

    assert status.unstaged == ["a.txt"]
    assert status.untracked == ["new.txt"]
    assert not status.is_clean


def test_diff_summary_counts_lines(store):
    first = commit_files(store, {"a.txt": "1\n", "keep.txt": "same\n"}, "first")
    (store.root / "b.txt").write_text("x\ny\n")
    second = commit_files(store, {"a.txt": "2\n"}, "second")

    summary = store.diff_summary(first.commit_id, second.commit_id)
    by_path = {stat.path: stat for stat in summary.files}

    assert set(by_path) == {"a.txt", "b.txt"}
    assert (by_path["a.txt"].insertions, by_path["a.txt"].deletions) == (1, 1)
    assert (by_path["b.txt"].insertions, by_path["b.txt"].deletions) == (2, 0)
    assert summary.changed == 2
    assert summary.insertions == 3
    assert summary.deletions == 1


def test_diff_summary_flags_binary_files(store):
    first = commit_files(store, {"a.txt": "1"}, "first")
    (store.root / "blob.bin").write_bytes(b"\x00\x01\x02")
    store.stage(".")
    second = store.commit("binary")

    (stat,) = store.diff_summary(first.commit_id, second.commit_id).files

    assert stat.binary
    assert (stat.insertions, stat.deletions) == (0, 0)


def test_diff_text_between_snapshots(store):
    first = commit_files(store, {"a.txt": "one\n"}, "first")
    second = commit_files(store, {"a.txt": "two\n"}, "second")

    text = store.diff(f"{first.commit_id}..{second.commit_id}")

    assert "-one" in text
    assert "+two" in text
    assert store.diff(second.commit_id) == text


def test_read_blob_nested_path(store):
    result = commit_files(store, {"src/pkg/mod.py": "x = 1\n"}, "first")

    assert store.read_blob(result.commit_id, "src/pkg/mod.py") == b"x = 1\n"
    assert store.read_blob(result.commit_id, "src/pkg") is None
    assert store.read_blob(result.commit_id, "missing.py") is None


def test_unknown_commit_raises_store_error(store):
    commit_files(store, {"a.txt": "1"}, "first")

    with pytest.raises(StoreError):
        store.read_blob("0" * 40, "a.txt")


def test_clone_and_checkout_leave_source_untouched(store, tmp_path):
    first = commit_files(store, {"a.txt": "1", "old.txt": "old"}, "first")
    (store.root / "old.txt").unlink()
    commit_files(store, {"a.txt": "2", "dir/new.txt": "new"}, "second")

    clone = store.clone_to(tmp_path / "clone")
    clone.checkout(first.commit_id)

    assert (clone.root / "a.txt").read_text() == "1"
    assert (clone.root / "old.txt").read_text() == "old"
    assert not (clone.root / "dir").exists()
    assert (store.root / "a.txt").read_text() == "2"
    assert len(store.log()) == 2


def test_hard_reset_and_clean_restore_head(store):
    commit_files(store, {"a.txt": "1", "dir/b.txt": "b"}, "first")
    (store.root / "a.txt").write_text("dirty")
    (store.root / "dir" / "b.txt").unlink()
    (store.root / "junk").mkdir()
    (store.root / "junk" / "x.txt").write_text("x")

    store.hard_reset_to_head()
    removed = store.clean_untracked()

    assert removed == ["junk/x.txt"]
    assert (store.root / "a.txt").read_text() == "1"
    assert (store.root / "dir" / "b.txt").read_text() == "b"
    assert not (store.root / "junk").exists()
    assert store.status().is_clean


def test_hard_reset_without_snapshots_fails(store):
    with pytest.raises(StoreError):
        store.hard_reset_to_head()


def test_missing_metadata_is_reported(tmp_path):
    store = DulwichHistoryStore(tmp_path / "never")

    assert not store.is_valid_store()
    with pytest.raises(StoreError):
        store.log()


def test_corrupt_head_is_invalid(store):
    commit_files(store, {"a.txt": "1"}, "first")
    # Detached HEAD pointing at an object that does not exist
    (store.metadata_dir / "HEAD").write_text("f" * 40 + "\n")

    assert not store.is_valid_store()
    with pytest.raises(StoreError):
        store.log()
